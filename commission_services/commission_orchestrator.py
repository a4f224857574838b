"""
commission_services.commission_orchestrator -- payment events and admin
ledger operations.

Responsibility:
    Entry point for everything that changes commission state: partner
    registry operations, order placement, the "payment completed" and
    "payment failed" events, and the administrative ADJUST / HOLD /
    RELEASE_HOLD / status-correction operations.  Converts decimal money
    strings at the edge, wires the kernel services for each unit of work
    and hands the unit to the TransactionRunner.

Architecture position:
    Services -- orchestration over kernel services.  Reads configuration
    once at construction and passes plain values into the kernel.

Invariants enforced:
    - Payment completion runs confirm -> resolve attribution -> EARN in
      ONE transaction, so a redelivered event either sees the processed
      order or nothing at all.
    - Money crosses this boundary as decimal major-unit strings and is
      converted to integer minor units before any kernel call.
    - Every admin operation requires an actor id.

Failure modes:
    Kernel errors propagate unchanged (the runner has already rolled back
    and retried transient ones).  Callers that need a response object
    rather than an exception use PayoutOrchestrator.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from commission_config.schema import CommissionConfig
from commission_kernel.db.types import to_minor_units
from commission_kernel.domain.clock import Clock, SystemClock
from commission_kernel.domain.commission import AdjustmentType, TransactionStatus
from commission_kernel.exceptions import MissingActorError
from commission_kernel.logging_config import get_logger
from commission_kernel.models.order import Order
from commission_kernel.models.partner import Partner
from commission_kernel.models.referred_client import ReferredClient
from commission_kernel.services.attribution_service import (
    AttributionResult,
    ReferralAttributionService,
)
from commission_kernel.services.ledger_service import (
    CommissionLedgerService,
    LedgerEntryResult,
    StatusCorrectionResult,
)
from commission_kernel.services.partner_service import PartnerService
from commission_services.transaction_runner import TransactionRunner

logger = get_logger("services.commission_orchestrator")

Money = str | Decimal | int


@dataclass(frozen=True)
class PaymentOutcome:
    """Result of handling a "payment completed" event."""

    order_id: UUID
    attribution: AttributionResult
    entry: LedgerEntryResult | None

    @property
    def commission_credited(self) -> bool:
        return self.entry is not None


class CommissionOrchestrator:
    """Runs commission use cases, one transaction each."""

    def __init__(
        self,
        runner: TransactionRunner,
        config: CommissionConfig,
        clock: Clock | None = None,
    ):
        self._runner = runner
        self._config = config
        self._clock = clock or SystemClock()

    @property
    def currency(self) -> str:
        return self._config.money.currency

    # ------------------------------------------------------------------
    # Service wiring
    # ------------------------------------------------------------------

    def _ledger(self, session: Session) -> CommissionLedgerService:
        return CommissionLedgerService(
            session,
            self._clock,
            currency=self.currency,
            minimum_payout=self._config.payout.minimum_payout,
        )

    def _attribution(self, session: Session) -> ReferralAttributionService:
        return ReferralAttributionService(session, self._clock)

    def _partners(self, session: Session) -> PartnerService:
        return PartnerService(session, self._clock)

    def _cents(self, amount: Money) -> int:
        return to_minor_units(amount, self.currency)

    # ------------------------------------------------------------------
    # Partner registry
    # ------------------------------------------------------------------

    def register_partner(
        self,
        name: str,
        email: str,
        actor_id: UUID,
        commission_rate: Money | None = None,
        activate: bool | None = None,
        preferred_payout_method: str | None = None,
    ) -> Partner:
        referral = self._config.referral
        rate = commission_rate if commission_rate is not None else referral.default_commission_rate
        return self._runner.run(
            "register_partner",
            lambda s: self._partners(s).register(
                name,
                email,
                actor_id,
                commission_rate=rate,
                activate=referral.activate_on_registration if activate is None else activate,
                referral_prefix=referral.referral_code_prefix,
                preferred_payout_method=preferred_payout_method,
            ),
            actor_id=actor_id,
        )

    def activate_partner(self, partner_id: UUID, actor_id: UUID) -> Partner:
        return self._runner.run(
            "activate_partner",
            lambda s: self._partners(s).activate(partner_id, actor_id),
            actor_id=actor_id,
            partner_id=partner_id,
        )

    def suspend_partner(self, partner_id: UUID, actor_id: UUID) -> Partner:
        return self._runner.run(
            "suspend_partner",
            lambda s: self._partners(s).suspend(partner_id, actor_id),
            actor_id=actor_id,
            partner_id=partner_id,
        )

    def deactivate_partner(self, partner_id: UUID, actor_id: UUID) -> Partner:
        return self._runner.run(
            "deactivate_partner",
            lambda s: self._partners(s).deactivate(partner_id, actor_id),
            actor_id=actor_id,
            partner_id=partner_id,
        )

    def update_commission_rate(self, partner_id: UUID, rate: Money, actor_id: UUID) -> Partner:
        return self._runner.run(
            "update_commission_rate",
            lambda s: self._partners(s).update_commission_rate(partner_id, rate, actor_id),
            actor_id=actor_id,
            partner_id=partner_id,
        )

    def record_referral_click(self, referral_code: str) -> int | None:
        return self._runner.run(
            "record_referral_click",
            lambda s: self._partners(s).record_referral_click(referral_code),
        )

    def register_referred_client(
        self,
        email: str,
        actor_id: UUID,
        name: str | None = None,
        referral_code: str | None = None,
    ) -> ReferredClient:
        return self._runner.run(
            "register_referred_client",
            lambda s: self._partners(s).register_referred_client(
                email, actor_id, name=name, referral_code=referral_code
            ),
            actor_id=actor_id,
        )

    # ------------------------------------------------------------------
    # Orders and payment events
    # ------------------------------------------------------------------

    def place_order(
        self,
        customer_email: str,
        price: Money,
        referral_code: str | None = None,
        actor_id: UUID | None = None,
    ) -> Order:
        """Record an order; ``price`` is in major units ("1000.00")."""
        price_cents = self._cents(price)
        return self._runner.run(
            "place_order",
            lambda s: self._attribution(s).register_order(
                customer_email,
                price_cents,
                actor_id=actor_id,
                referral_code=referral_code,
                referral_window_days=self._config.referral.referral_window_days,
                currency=self.currency,
            ),
            actor_id=actor_id,
        )

    def handle_payment_completed(
        self, order_id: UUID, actor_id: UUID | None = None
    ) -> PaymentOutcome:
        """
        Inbound "payment completed" event.

        Safe to redeliver: the second delivery finds the order confirmed,
        attribution resolved and commission processed, and returns an
        outcome with no entry.
        """

        def unit(session: Session) -> PaymentOutcome:
            self._attribution(session).confirm_payment(order_id, actor_id)
            attribution = self._attribution(session).resolve(order_id)
            entry = self._ledger(session).earn(order_id, actor_id) if attribution.eligible else None
            return PaymentOutcome(order_id=order_id, attribution=attribution, entry=entry)

        outcome = self._runner.run(
            "payment_completed", unit, order_id=order_id, actor_id=actor_id
        )
        logger.info(
            "payment_completed_handled",
            extra={
                "order_id": str(order_id),
                "eligible": outcome.attribution.eligible,
                "attribution_reason": outcome.attribution.reason,
                "commission": outcome.entry.amount if outcome.entry else 0,
            },
        )
        return outcome

    def handle_payment_failed(
        self, order_id: UUID, reason: str | None = None, actor_id: UUID | None = None
    ) -> Order:
        """Inbound "payment cancelled/failed" event.  No ledger effect."""
        return self._runner.run(
            "payment_failed",
            lambda s: self._attribution(s).record_payment_failure(order_id, reason, actor_id),
            order_id=order_id,
            actor_id=actor_id,
        )

    # ------------------------------------------------------------------
    # Admin ledger operations
    # ------------------------------------------------------------------

    def adjust(
        self,
        partner_id: UUID,
        amount: Money,
        adjustment_type: AdjustmentType | str,
        reason: str,
        actor_id: UUID,
        reference_order_id: UUID | None = None,
        notes: str | None = None,
        hold_transaction_id: UUID | None = None,
        hold_until: datetime | None = None,
    ) -> LedgerEntryResult:
        kind = AdjustmentType.parse(adjustment_type)
        cents = self._cents(amount)
        self._require_actor(actor_id, "adjustment")
        return self._runner.run(
            f"adjust_{kind.value.lower()}",
            lambda s: self._ledger(s).adjust(
                partner_id,
                cents,
                kind,
                reason,
                actor_id,
                reference_order_id=reference_order_id,
                notes=notes,
                hold_transaction_id=hold_transaction_id,
                hold_until=hold_until,
            ),
            actor_id=actor_id,
            partner_id=partner_id,
        )

    def hold(
        self,
        partner_id: UUID,
        amount: Money,
        reason: str,
        actor_id: UUID,
        hold_until: datetime | None = None,
        notes: str | None = None,
    ) -> LedgerEntryResult:
        cents = self._cents(amount)
        self._require_actor(actor_id, "hold")
        return self._runner.run(
            "hold",
            lambda s: self._ledger(s).hold(
                partner_id, cents, reason, actor_id, hold_until=hold_until, notes=notes
            ),
            actor_id=actor_id,
            partner_id=partner_id,
        )

    def release_hold(
        self,
        hold_transaction_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
        notes: str | None = None,
    ) -> LedgerEntryResult:
        self._require_actor(actor_id, "hold release")
        return self._runner.run(
            "release_hold",
            lambda s: self._ledger(s).release_hold(
                hold_transaction_id, actor_id, reason=reason, notes=notes
            ),
            actor_id=actor_id,
            transaction_id=hold_transaction_id,
        )

    def update_transaction_status(
        self,
        transaction_id: UUID,
        new_status: TransactionStatus | str,
        actor_id: UUID,
        notes: str | None = None,
    ) -> StatusCorrectionResult:
        target = TransactionStatus.parse(new_status)
        self._require_actor(actor_id, "status correction")
        return self._runner.run(
            "update_transaction_status",
            lambda s: self._ledger(s).correct_status(transaction_id, target, actor_id, notes),
            actor_id=actor_id,
            transaction_id=transaction_id,
        )

    def cancel_payout(
        self, transaction_id: UUID, actor_id: UUID, notes: str | None = None
    ) -> StatusCorrectionResult:
        self._require_actor(actor_id, "payout cancellation")
        return self._runner.run(
            "cancel_payout",
            lambda s: self._ledger(s).cancel_payout(transaction_id, actor_id, notes),
            actor_id=actor_id,
            transaction_id=transaction_id,
        )

    @staticmethod
    def _require_actor(actor_id: UUID | None, operation: str) -> None:
        if actor_id is None:
            raise MissingActorError(operation)
