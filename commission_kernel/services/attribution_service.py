"""
ReferralAttributionService -- links completed orders to the partner who
referred them.

Responsibility:
    Captures an order's referral linkage at placement, records payment
    outcomes, and resolves commission eligibility exactly once when payment
    completes.  The resolved partner id is stamped on the order; EARN reads
    only that stamp.

Architecture position:
    Kernel > Services.  Flush-only.  Invoked by the commission orchestrator
    in the same transaction as the EARN that follows resolution.

Invariants enforced:
    - Eligible iff the order carries a referral linkage to an existing,
      ACTIVE partner and the linkage has not expired at resolution time.
    - Resolution is write-once: a second resolve returns the stamped
      outcome, so webhook redelivery cannot re-attribute an order.
    - A failed or cancelled payment never reaches EARN.

Failure modes:
    - OrderNotFoundError for unknown orders.
    - InvalidAmountError for non-positive order prices at registration.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from uuid import UUID, uuid4

from sqlalchemy import select

from commission_kernel.db.types import validate_currency
from commission_kernel.domain.actors import SYSTEM_ACTOR_ID
from commission_kernel.domain.clock import as_utc
from commission_kernel.exceptions import InvalidAmountError, OrderNotFoundError
from commission_kernel.logging_config import get_logger
from commission_kernel.models.order import Order, OrderStatus
from commission_kernel.models.partner import Partner, PartnerStatus
from commission_kernel.services.base import BaseService

logger = get_logger("services.attribution")


@dataclass(frozen=True)
class AttributionResult:
    order_id: UUID
    partner_id: UUID | None
    eligible: bool
    reason: str
    newly_resolved: bool


class ReferralAttributionService(BaseService[Order]):
    """Order-side referral linkage and one-time attribution."""

    def register_order(
        self,
        customer_email: str,
        price_cents: int,
        actor_id: UUID | None = None,
        referral_code: str | None = None,
        referral_window_days: int = 30,
        currency: str = "EUR",
    ) -> Order:
        """
        Record an order and, when the code belongs to an active partner,
        its referral linkage expiring after ``referral_window_days``.
        """
        if isinstance(price_cents, bool) or not isinstance(price_cents, int) or price_cents <= 0:
            raise InvalidAmountError(price_cents, "order price must be positive integer minor units")

        actor = actor_id or SYSTEM_ACTOR_ID
        now = self.clock.now()
        order = Order(
            id=uuid4(),
            customer_email=customer_email.strip().lower(),
            original_price=price_cents,
            currency=validate_currency(currency),
            status=OrderStatus.PENDING,
            created_by_id=actor,
        )

        partner = self._active_partner_by_code(referral_code) if referral_code else None
        if partner is not None:
            order.referral_code = partner.referral_code
            order.referred_by_id = partner.id
            order.referral_expires_at = now + timedelta(days=referral_window_days)
        elif referral_code:
            logger.info(
                "referral_code_ignored",
                extra={"referral_code": referral_code, "reason": "no_active_partner"},
            )

        self.session.add(order)
        self.session.flush()
        logger.info(
            "order_registered",
            extra={
                "order_id": str(order.id),
                "price": price_cents,
                "referred_by": str(order.referred_by_id) if order.referred_by_id else None,
            },
        )
        return order

    def confirm_payment(self, order_id: UUID, actor_id: UUID | None = None) -> Order:
        """Mark the order completed.  Repeated confirmation is a no-op."""
        order = self._lock_order(order_id)
        if order.status == OrderStatus.COMPLETED:
            return order
        order.status = OrderStatus.COMPLETED
        order.payment_confirmed_at = self.clock.now()
        order.payment_failure_reason = None
        order.updated_by_id = actor_id or SYSTEM_ACTOR_ID
        self.session.flush()
        logger.info("order_payment_confirmed", extra={"order_id": str(order_id)})
        return order

    def record_payment_failure(
        self, order_id: UUID, reason: str | None = None, actor_id: UUID | None = None
    ) -> Order:
        """
        Record a failed or cancelled payment.  No ledger effect.

        A completed order is left untouched: a late failure event cannot
        undo a confirmed payment.
        """
        order = self._lock_order(order_id)
        if order.status == OrderStatus.COMPLETED:
            logger.warning(
                "payment_failure_ignored",
                extra={"order_id": str(order_id), "reason": "order_already_completed"},
            )
            return order
        order.status = OrderStatus.FAILED
        order.payment_failure_reason = (reason or "payment failed")[:255]
        order.updated_by_id = actor_id or SYSTEM_ACTOR_ID
        self.session.flush()
        logger.info(
            "order_payment_failed",
            extra={"order_id": str(order_id), "reason": order.payment_failure_reason},
        )
        return order

    def resolve(self, order_id: UUID) -> AttributionResult:
        """Resolve eligibility once and stamp the outcome on the order."""
        order = self._lock_order(order_id)

        if order.attribution_resolved_at is not None:
            return AttributionResult(
                order_id=order.id,
                partner_id=order.attributed_partner_id,
                eligible=order.attributed_partner_id is not None,
                reason=order.attribution_note or "resolved",
                newly_resolved=False,
            )

        partner_id, reason = self._eligibility(order)
        order.attributed_partner_id = partner_id
        order.attribution_resolved_at = self.clock.now()
        order.attribution_note = reason
        self.session.flush()

        logger.info(
            "attribution_resolved",
            extra={
                "order_id": str(order.id),
                "partner_id": str(partner_id) if partner_id else None,
                "eligible": partner_id is not None,
                "reason": reason,
            },
        )
        return AttributionResult(
            order_id=order.id,
            partner_id=partner_id,
            eligible=partner_id is not None,
            reason=reason,
            newly_resolved=True,
        )

    def _eligibility(self, order: Order) -> tuple[UUID | None, str]:
        if order.referred_by_id is None:
            return None, "no_referral"
        partner = self.session.get(Partner, order.referred_by_id)
        if partner is None:
            return None, "partner_not_found"
        if not partner.is_active:
            return None, "partner_not_active"
        expires_at = as_utc(order.referral_expires_at)
        if expires_at is not None and expires_at < self.clock.now():
            return None, "referral_expired"
        return partner.id, "eligible"

    def _active_partner_by_code(self, referral_code: str) -> Partner | None:
        stmt = select(Partner).where(
            Partner.referral_code == referral_code.strip().upper(),
            Partner.status == PartnerStatus.ACTIVE,
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def _lock_order(self, order_id: UUID) -> Order:
        stmt = (
            select(Order)
            .where(Order.id == order_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        order = self.session.execute(stmt).scalar_one_or_none()
        if order is None:
            raise OrderNotFoundError(str(order_id))
        return order
