"""
Module: commission_kernel.selectors.summary_selector
Responsibility: Per-partner commission summary: balances, rolling-window
    earnings, lifetime payouts, referral statistics, per-type totals and the
    most recent ledger entries.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Balances come from BalanceSnapshot; ``withdrawable`` is never
      recomputed here.
    - Display strings are a read-side transform of the integer cents.
    - Window boundaries are supplied by the caller (``now``), so the
      summary is reproducible under a deterministic clock.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select

from commission_kernel.db.types import format_minor_units, round_half_up
from commission_kernel.domain.balances import BalanceSnapshot
from commission_kernel.domain.clock import as_utc
from commission_kernel.domain.commission import TransactionStatus, TransactionType
from commission_kernel.exceptions import PartnerNotFoundError
from commission_kernel.models.commission_transaction import CommissionTransaction
from commission_kernel.models.order import Order, OrderStatus
from commission_kernel.models.partner import Partner, PartnerStatus
from commission_kernel.models.referred_client import ReferredClient
from commission_kernel.selectors.base import BaseSelector
from commission_kernel.selectors.transaction_selector import (
    CommissionTransactionDTO,
    TransactionSelector,
)

# Entries whose effect is on the partner balances. Keyed on the settlement
# stamps rather than status, which an admin correction may rewrite.
_APPLIED = (
    CommissionTransaction.settled_at.is_not(None),
    CommissionTransaction.reversed_at.is_(None),
)


def conversion_rate(clients: int, clicks: int) -> str:
    """Referred clients per click as a percentage with two decimals."""
    if clicks <= 0:
        return "0.00"
    rate = Decimal(clients) * 100 / Decimal(clicks)
    return str(rate.quantize(Decimal("0.01")))


@dataclass(frozen=True)
class TypeTotal:
    transaction_type: TransactionType
    count: int
    amount: int


@dataclass(frozen=True)
class PartnerSummary:
    partner_id: UUID
    name: str
    referral_code: str
    status: str
    currency: str
    commission_rate: Decimal
    balances: BalanceSnapshot
    window_days: int
    window_earnings: int
    lifetime_paid_out: int
    pending_payouts: int
    total_clients: int
    total_orders: int
    total_sales: int
    average_order_value: int
    referral_clicks: int
    conversion_rate: str
    type_totals: tuple[TypeTotal, ...]
    recent_transactions: tuple[CommissionTransactionDTO, ...]
    generated_at: datetime

    @property
    def formatted(self) -> dict[str, str]:
        """Major-unit strings for display."""
        def fmt(cents: int) -> str:
            return format_minor_units(cents, self.currency)

        return {
            "commission_earned": fmt(self.balances.earned),
            "commission_paid": fmt(self.balances.paid),
            "commission_on_hold": fmt(self.balances.on_hold),
            "available_commission": fmt(self.balances.available),
            "withdrawable_commission": fmt(self.balances.withdrawable),
            "window_earnings": fmt(self.window_earnings),
            "lifetime_paid_out": fmt(self.lifetime_paid_out),
            "pending_payouts": fmt(self.pending_payouts),
            "total_sales": fmt(self.total_sales),
            "average_order_value": fmt(self.average_order_value),
        }


class SummarySelector(BaseSelector[Partner]):
    """Builds PartnerSummary from one session snapshot."""

    def partner_summary(
        self,
        partner_id: UUID,
        now: datetime,
        window_days: int = 30,
        recent_limit: int = 10,
        currency: str = "EUR",
    ) -> PartnerSummary:
        partner = self.session.get(Partner, partner_id)
        if partner is None:
            raise PartnerNotFoundError(str(partner_id))

        now = as_utc(now)
        window_start = now - timedelta(days=window_days)

        window_earnings = self._sum(
            CommissionTransaction.partner_id == partner_id,
            CommissionTransaction.transaction_type == TransactionType.EARNED,
            *_APPLIED,
            CommissionTransaction.occurred_at >= window_start,
            CommissionTransaction.occurred_at <= now,
        )
        lifetime_paid_out = self._sum(
            CommissionTransaction.partner_id == partner_id,
            CommissionTransaction.transaction_type == TransactionType.PAID_OUT,
            *_APPLIED,
        )
        pending_payouts = self._sum(
            CommissionTransaction.partner_id == partner_id,
            CommissionTransaction.transaction_type == TransactionType.PAID_OUT,
            CommissionTransaction.status == TransactionStatus.PENDING,
        )

        total_clients = self._count(
            select(func.count()).select_from(ReferredClient).where(
                ReferredClient.referred_by_id == partner_id
            )
        )
        total_orders = self._count(
            select(func.count()).select_from(Order).where(
                Order.attributed_partner_id == partner_id,
                Order.status == OrderStatus.COMPLETED,
                Order.commission_processed.is_(True),
            )
        )
        total_sales = partner.total_referral_sales or 0
        average = round_half_up(Decimal(total_sales) / total_orders) if total_orders else 0
        clicks = partner.referral_clicks or 0

        return PartnerSummary(
            partner_id=partner.id,
            name=partner.name,
            referral_code=partner.referral_code,
            status=PartnerStatus(partner.status).value,
            currency=currency,
            commission_rate=Decimal(partner.commission_rate),
            balances=partner.balances,
            window_days=window_days,
            window_earnings=window_earnings,
            lifetime_paid_out=lifetime_paid_out,
            pending_payouts=pending_payouts,
            total_clients=total_clients,
            total_orders=total_orders,
            total_sales=total_sales,
            average_order_value=average,
            referral_clicks=clicks,
            conversion_rate=conversion_rate(total_clients, clicks),
            type_totals=self._type_totals(partner_id),
            recent_transactions=TransactionSelector(self.session).recent(partner_id, recent_limit),
            generated_at=now,
        )

    def _type_totals(self, partner_id: UUID) -> tuple[TypeTotal, ...]:
        stmt = (
            select(
                CommissionTransaction.transaction_type,
                func.count(),
                func.coalesce(func.sum(CommissionTransaction.amount), 0),
            )
            .where(
                CommissionTransaction.partner_id == partner_id,
                *_APPLIED,
            )
            .group_by(CommissionTransaction.transaction_type)
        )
        rows = {TransactionType(t): (int(c), int(a)) for t, c, a in self.session.execute(stmt)}
        return tuple(
            TypeTotal(t, *rows.get(t, (0, 0)))
            for t in TransactionType
        )

    def _sum(self, *conditions) -> int:
        stmt = select(func.coalesce(func.sum(CommissionTransaction.amount), 0)).where(*conditions)
        return int(self.session.execute(stmt).scalar_one())

    def _count(self, stmt) -> int:
        return int(self.session.execute(stmt).scalar_one())
