"""
CommissionLedgerService -- the single writer of partner balances.

Responsibility:
    Validates and applies every balance-changing operation (EARN, PAYOUT,
    ADJUST, HOLD, RELEASE_HOLD, payout cancellation, status correction,
    payout request approval).  Each operation updates the partner's balance
    columns and appends exactly one ledger entry in the caller's
    transaction.

Architecture position:
    Kernel > Services.  Called by the orchestrators in
    ``commission_services``; never commits.

Invariants enforced:
    - Single writer: partner balance columns change only inside
      ``ledger_write_scope`` entered by this service (db/immutability.py).
    - Fresh read: the partner row is (re)loaded inside the transaction with
      SELECT ... FOR UPDATE (PostgreSQL) and ``populate_existing`` before any
      precondition is checked.  The ``version`` column turns a lost race on
      backends without row locks into StaleDataError.
    - Snapshot arithmetic: ``balance_after - balance_before`` equals
      ``available_effect`` of every settled entry; checked before flush.
    - Balance invariants (domain/balances.py) hold after every mutation;
      a violation raises BalanceInvariantError and aborts the transaction.
    - EARN idempotency: the order row is locked and its
      ``commission_processed`` flag is checked and set in the same
      transaction as the credit; a partial unique index backs it up.

Failure modes:
    - Validation errors before any read (amount, reason, actor, enums).
    - NotFound errors for partner / order / transaction.
    - Business-rule errors after the fresh read (insufficient funds,
      deduction or hold over available, hold missing or released).
    - StaleDataError / OperationalError propagate to the transaction
      runner, which classifies them as transient.

Audit relevance:
    Every entry records the acting admin (``processed_by_id``), the
    before/after snapshots of available and on-hold balances, and the
    operation's reason in its metadata.  A LedgerNotification is queued for
    delivery after commit.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from commission_kernel.db.immutability import ledger_write_scope
from commission_kernel.db.types import validate_currency
from commission_kernel.domain.actors import SYSTEM_ACTOR_ID
from commission_kernel.domain.balances import BalanceSnapshot
from commission_kernel.domain.clock import Clock
from commission_kernel.domain.commission import (
    AdjustmentType,
    PaymentMethod,
    TransactionStatus,
    TransactionType,
    available_effect,
    calculate_commission,
    on_hold_effect,
)
from commission_kernel.domain.notifications import (
    LedgerNotification,
    NotificationKind,
    queue_notification,
)
from commission_kernel.exceptions import (
    BalanceInvariantError,
    BelowMinimumPayoutError,
    DeductionExceedsBalanceError,
    HoldAlreadyReleasedError,
    HoldExceedsAvailableError,
    HoldNotFoundError,
    HoldReleaseMismatchError,
    InsufficientFundsError,
    InvalidAmountError,
    InvalidStatusTransitionError,
    MissingActorError,
    MissingReasonError,
    OrderNotCompletedError,
    OrderNotFoundError,
    PartnerNotFoundError,
    TransactionNotFoundError,
)
from commission_kernel.logging_config import get_logger
from commission_kernel.models.commission_transaction import CommissionTransaction
from commission_kernel.models.order import Order, OrderStatus
from commission_kernel.models.partner import Partner
from commission_kernel.services.base import BaseService
from commission_kernel.utils.references import generate_reference_number

logger = get_logger("services.ledger")


@dataclass(frozen=True)
class LedgerEntryResult:
    """Outcome of a successful ledger write."""

    transaction_id: UUID
    partner_id: UUID
    reference_number: str
    transaction_type: TransactionType
    status: TransactionStatus
    amount: int
    balance_before: int
    balance_after: int
    balances: BalanceSnapshot
    order_id: UUID | None = None


@dataclass(frozen=True)
class StatusCorrectionResult:
    """Outcome of an administrative status correction."""

    transaction_id: UUID
    partner_id: UUID
    previous_status: TransactionStatus
    new_status: TransactionStatus
    changed: bool
    payout_reversed: bool
    balances: BalanceSnapshot


class CommissionLedgerService(BaseService[CommissionTransaction]):
    """
    Commission ledger engine.

    Contract:
        Every public method runs inside the caller's transaction and either
        applies its full effect (balance columns + one ledger entry) or
        raises, leaving the caller to roll back.

    Non-goals:
        - Does NOT commit, roll back or retry (transaction runner).
        - Does NOT send notifications (queued for post-commit dispatch).
        - Does NOT parse decimal money strings (orchestrator edge).
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        currency: str = "EUR",
        minimum_payout: int = 0,
    ):
        super().__init__(session, clock)
        self.currency = validate_currency(currency)
        self.minimum_payout = minimum_payout

    # ------------------------------------------------------------------
    # EARN
    # ------------------------------------------------------------------

    def earn(self, order_id: UUID, actor_id: UUID | None = None) -> LedgerEntryResult | None:
        """
        Credit commission for a completed, attributed order.

        Returns None (no-op) when the order was already processed, carries
        no attribution, or yields a zero commission.
        """
        order = self._lock_order(order_id)

        if order.commission_processed:
            logger.info(
                "earn_skipped_already_processed",
                extra={"order_id": str(order_id)},
            )
            return None

        if not order.is_completed:
            raise OrderNotCompletedError(order_id=str(order_id), status=OrderStatus(order.status).value)

        if order.attributed_partner_id is None:
            logger.info("earn_skipped_not_attributed", extra={"order_id": str(order_id)})
            return None

        actor = actor_id or SYSTEM_ACTOR_ID
        partner = self._lock_partner(order.attributed_partner_id)
        commission = calculate_commission(order.original_price, partner.commission_rate)
        now = self.clock.now()

        order.commission_processed = True
        order.commission_processed_at = now
        order.commission_amount = commission
        order.updated_by_id = actor

        if commission <= 0:
            self.session.flush()
            logger.info(
                "earn_skipped_zero_commission",
                extra={"order_id": str(order_id), "partner_id": str(partner.id)},
            )
            return None

        before = partner.balances
        after = before.credit(commission)
        partner.total_referral_sales = (partner.total_referral_sales or 0) + order.original_price

        entry = self._append_entry(
            partner,
            TransactionType.EARNED,
            commission,
            before,
            after,
            actor_id=actor,
            description=f"Commission for order {order.id}",
            order_id=order.id,
            metadata={
                "order_price": order.original_price,
                "commission_rate": str(partner.commission_rate),
            },
        )
        self._apply(partner, before, after, entry, actor)
        self._notify(NotificationKind.COMMISSION_EARNED, entry, {"order_id": str(order.id)})
        return self._result(entry, after)

    # ------------------------------------------------------------------
    # PAYOUT
    # ------------------------------------------------------------------

    def payout(
        self,
        partner_id: UUID,
        amount: int,
        actor_id: UUID,
        method: PaymentMethod | str | None = None,
        external_reference: str | None = None,
        notes: str | None = None,
    ) -> LedgerEntryResult:
        """Pay out ``amount`` cents if it fits the fresh withdrawable balance."""
        self._require_amount(amount)
        self._require_actor(actor_id, "payout")
        payment_method = PaymentMethod.parse(method) if method is not None else None

        partner = self._lock_partner(partner_id)
        before = partner.balances
        if amount > before.withdrawable:
            logger.warning(
                "payout_rejected",
                extra={
                    "partner_id": str(partner_id),
                    "requested": amount,
                    "withdrawable": before.withdrawable,
                    "reason": "insufficient_funds",
                },
            )
            raise InsufficientFundsError(str(partner_id), amount, before.withdrawable)

        after = before.pay_out(amount)
        now = self.clock.now()
        entry = self._append_entry(
            partner,
            TransactionType.PAID_OUT,
            amount,
            before,
            after,
            actor_id=actor_id,
            description=f"Commission payout via {payment_method.value if payment_method else 'unspecified method'}",
            admin_notes=notes,
            payment_method=payment_method,
            external_reference=external_reference,
            payment_date=now,
        )
        partner.last_payout_at = now
        self._apply(partner, before, after, entry, actor_id)
        self._notify(NotificationKind.PAYOUT_COMPLETED, entry)
        return self._result(entry, after)

    # ------------------------------------------------------------------
    # ADJUST
    # ------------------------------------------------------------------

    def adjust(
        self,
        partner_id: UUID,
        amount: int,
        adjustment_type: AdjustmentType | str,
        reason: str,
        actor_id: UUID,
        reference_order_id: UUID | None = None,
        notes: str | None = None,
        hold_transaction_id: UUID | None = None,
        hold_until: datetime | None = None,
    ) -> LedgerEntryResult:
        """
        Administrative balance adjustment.

        ADD/BONUS credit, DEDUCT debits (bounded by available), HOLD and
        RELEASE_HOLD delegate to :meth:`hold` / :meth:`release_hold`.
        """
        kind = AdjustmentType.parse(adjustment_type)
        self._require_amount(amount)
        reason = self._require_reason(reason, f"{kind.value.lower()} adjustment")
        self._require_actor(actor_id, "adjustment")

        if kind is AdjustmentType.HOLD:
            return self.hold(partner_id, amount, reason, actor_id, hold_until=hold_until, notes=notes)
        if kind is AdjustmentType.RELEASE_HOLD:
            if hold_transaction_id is None:
                raise HoldNotFoundError(transaction_id="<missing hold reference>")
            return self.release_hold(
                hold_transaction_id, actor_id, reason=reason, expected_amount=amount, notes=notes
            )

        if reference_order_id is not None and self.session.get(Order, reference_order_id) is None:
            raise OrderNotFoundError(str(reference_order_id))

        partner = self._lock_partner(partner_id)
        before = partner.balances
        if kind is AdjustmentType.DEDUCT:
            if amount > before.available:
                logger.warning(
                    "adjustment_rejected",
                    extra={
                        "partner_id": str(partner_id),
                        "requested": amount,
                        "available": before.available,
                        "reason": "deduction_exceeds_balance",
                    },
                )
                raise DeductionExceedsBalanceError(str(partner_id), amount, before.available)
            after = before.debit(amount)
        else:
            after = before.credit(amount)

        entry = self._append_entry(
            partner,
            kind.transaction_type,
            amount,
            before,
            after,
            actor_id=actor_id,
            description=reason,
            admin_notes=notes,
            order_id=reference_order_id,
            metadata={"adjustment_type": kind.value, "reason": reason},
        )
        self._apply(partner, before, after, entry, actor_id)
        self._notify(NotificationKind.BALANCE_ADJUSTED, entry, {"adjustment_type": kind.value})
        return self._result(entry, after)

    # ------------------------------------------------------------------
    # HOLD / RELEASE_HOLD
    # ------------------------------------------------------------------

    def hold(
        self,
        partner_id: UUID,
        amount: int,
        reason: str,
        actor_id: UUID,
        hold_until: datetime | None = None,
        notes: str | None = None,
    ) -> LedgerEntryResult:
        """Freeze ``amount`` cents of available commission against withdrawal."""
        self._require_amount(amount)
        reason = self._require_reason(reason, "hold")
        self._require_actor(actor_id, "hold")

        partner = self._lock_partner(partner_id)
        before = partner.balances
        if amount > before.available:
            logger.warning(
                "hold_rejected",
                extra={
                    "partner_id": str(partner_id),
                    "requested": amount,
                    "available": before.available,
                },
            )
            raise HoldExceedsAvailableError(str(partner_id), amount, before.available)

        after = before.hold(amount)
        entry = self._append_entry(
            partner,
            TransactionType.HOLD,
            amount,
            before,
            after,
            actor_id=actor_id,
            description=f"Commission hold: {reason}",
            admin_notes=notes,
            status=TransactionStatus.ON_HOLD,
            metadata={
                "adjustment_type": AdjustmentType.HOLD.value,
                "hold_reason": reason,
                "held_by": str(actor_id),
                "hold_until": hold_until.isoformat() if hold_until else None,
            },
        )
        self._apply(partner, before, after, entry, actor_id)
        self._notify(NotificationKind.HOLD_PLACED, entry, {"hold_until": entry.transaction_metadata["hold_until"]})
        return self._result(entry, after)

    def release_hold(
        self,
        hold_transaction_id: UUID,
        actor_id: UUID,
        reason: str | None = None,
        expected_amount: int | None = None,
        notes: str | None = None,
    ) -> LedgerEntryResult:
        """Release a hold in full.  Rejects a second release of the same hold."""
        self._require_actor(actor_id, "hold release")

        hold = self._lock_transaction(hold_transaction_id)
        if hold is None or hold.transaction_type != TransactionType.HOLD:
            raise HoldNotFoundError(str(hold_transaction_id))
        if hold.status != TransactionStatus.ON_HOLD:
            logger.warning(
                "hold_release_rejected",
                extra={"transaction_id": str(hold_transaction_id), "status": TransactionStatus(hold.status).value},
            )
            raise HoldAlreadyReleasedError(str(hold_transaction_id))
        if expected_amount is not None and expected_amount != hold.amount:
            raise HoldReleaseMismatchError(str(hold_transaction_id), expected_amount, hold.amount)

        partner = self._lock_partner(hold.partner_id)
        before = partner.balances
        if hold.amount > before.on_hold:
            raise BalanceInvariantError(
                str(partner.id),
                f"hold {hold.id} of {hold.amount} exceeds on_hold balance {before.on_hold}",
            )
        after = before.release(hold.amount)
        now = self.clock.now()
        release_reason = (reason or "").strip() or "Hold released"

        entry = self._append_entry(
            partner,
            TransactionType.HOLD_RELEASED,
            hold.amount,
            before,
            after,
            actor_id=actor_id,
            description=f"Hold released: {release_reason}",
            admin_notes=notes,
            metadata={
                "adjustment_type": AdjustmentType.RELEASE_HOLD.value,
                "original_hold_id": str(hold.id),
                "released_by": str(actor_id),
                "reason": release_reason,
            },
        )
        hold.status = TransactionStatus.COMPLETED
        hold.transaction_metadata = {
            **(hold.transaction_metadata or {}),
            "released_by": str(actor_id),
            "released_at": now.isoformat(),
            "release_transaction_id": str(entry.id),
        }
        hold.updated_by_id = actor_id

        self._apply(partner, before, after, entry, actor_id)
        self._notify(NotificationKind.HOLD_RELEASED, entry, {"original_hold_id": str(hold.id)})
        return self._result(entry, after)

    # ------------------------------------------------------------------
    # Partner payout requests
    # ------------------------------------------------------------------

    def request_payout(
        self,
        partner_id: UUID,
        amount: int,
        method: PaymentMethod | str | None = None,
        notes: str | None = None,
        actor_id: UUID | None = None,
    ) -> LedgerEntryResult:
        """
        Record a partner-initiated payout request.

        Appends a PENDING PAID_OUT entry with no balance effect.  The amount
        must fit withdrawable funds minus other pending requests.
        """
        self._require_amount(amount)
        if amount < self.minimum_payout:
            raise BelowMinimumPayoutError(amount, self.minimum_payout)
        payment_method = PaymentMethod.parse(method) if method is not None else None

        partner = self._lock_partner(partner_id)
        balances = partner.balances
        pending = self._pending_payout_total(partner.id)
        headroom = max(0, balances.withdrawable - pending)
        if amount > headroom:
            logger.warning(
                "payout_request_rejected",
                extra={
                    "partner_id": str(partner_id),
                    "requested": amount,
                    "withdrawable": balances.withdrawable,
                    "pending_requests": pending,
                },
            )
            raise InsufficientFundsError(str(partner_id), amount, headroom)

        entry = self._append_entry(
            partner,
            TransactionType.PAID_OUT,
            amount,
            balances,
            balances,
            actor_id=actor_id or partner.id,
            description="Payout requested by partner",
            admin_notes=notes,
            payment_method=payment_method,
            status=TransactionStatus.PENDING,
            metadata={"requested_by": str(actor_id or partner.id)},
        )
        self.session.flush()
        self._notify(NotificationKind.PAYOUT_REQUESTED, entry)
        return self._result(entry, balances)

    def approve_payout_request(
        self,
        transaction_id: UUID,
        actor_id: UUID,
        external_reference: str | None = None,
        notes: str | None = None,
    ) -> LedgerEntryResult:
        """Settle a pending payout request in place after a fresh funds check."""
        self._require_actor(actor_id, "payout approval")

        entry = self._lock_transaction(transaction_id)
        if entry is None:
            raise TransactionNotFoundError(str(transaction_id))
        if entry.transaction_type != TransactionType.PAID_OUT or entry.status != TransactionStatus.PENDING:
            raise InvalidStatusTransitionError(
                str(transaction_id),
                TransactionStatus(entry.status).value,
                TransactionStatus.COMPLETED.value,
                "only pending payout requests can be approved",
            )

        partner = self._lock_partner(entry.partner_id)
        before = partner.balances
        if entry.amount > before.withdrawable:
            logger.warning(
                "payout_approval_rejected",
                extra={
                    "transaction_id": str(transaction_id),
                    "requested": entry.amount,
                    "withdrawable": before.withdrawable,
                },
            )
            raise InsufficientFundsError(str(partner.id), entry.amount, before.withdrawable)

        after = before.pay_out(entry.amount)
        now = self.clock.now()
        entry.status = TransactionStatus.COMPLETED
        entry.balance_before = before.available
        entry.balance_after = after.available
        entry.on_hold_before = before.on_hold
        entry.on_hold_after = after.on_hold
        entry.settled_at = now
        entry.payment_date = now
        entry.processed_by_id = actor_id
        entry.updated_by_id = actor_id
        if external_reference:
            entry.external_reference = external_reference
        if notes:
            entry.admin_notes = notes
        partner.last_payout_at = now

        self._apply(partner, before, after, entry, actor_id)
        self._notify(NotificationKind.PAYOUT_COMPLETED, entry, {"approved_request": True})
        return self._result(entry, after)

    # ------------------------------------------------------------------
    # Status correction
    # ------------------------------------------------------------------

    def cancel_payout(
        self, transaction_id: UUID, actor_id: UUID, notes: str | None = None
    ) -> StatusCorrectionResult:
        """Cancel a PAID_OUT entry; a settled payout is reversed exactly."""
        entry = self._lock_transaction(transaction_id)
        if entry is None:
            raise TransactionNotFoundError(str(transaction_id))
        if entry.transaction_type != TransactionType.PAID_OUT:
            raise InvalidStatusTransitionError(
                str(transaction_id),
                TransactionStatus(entry.status).value,
                TransactionStatus.CANCELLED.value,
                f"{TransactionType(entry.transaction_type).value} entries are not payouts",
            )
        return self.correct_status(transaction_id, TransactionStatus.CANCELLED, actor_id, notes)

    def correct_status(
        self,
        transaction_id: UUID,
        new_status: TransactionStatus | str,
        actor_id: UUID,
        notes: str | None = None,
    ) -> StatusCorrectionResult:
        """
        Administrative status override.

        Moving a settled PAID_OUT entry to CANCELLED reverses the payout.
        Every other allowed move is recorded without touching balances.
        """
        target = TransactionStatus.parse(new_status)
        self._require_actor(actor_id, "status correction")

        entry = self._lock_transaction(transaction_id)
        if entry is None:
            raise TransactionNotFoundError(str(transaction_id))
        current = TransactionStatus(entry.status)

        if current is target:
            logger.info(
                "status_correction_noop",
                extra={"transaction_id": str(transaction_id), "status": current.value},
            )
            partner = self.session.get(Partner, entry.partner_id)
            return StatusCorrectionResult(
                entry.id, entry.partner_id, current, target, False, False, partner.balances
            )

        self._check_transition(entry, current, target)

        reverse = (
            entry.transaction_type == TransactionType.PAID_OUT
            and target is TransactionStatus.CANCELLED
            and entry.is_settled
        )

        entry.status = target
        entry.processed_by_id = actor_id
        entry.updated_by_id = actor_id
        if notes:
            entry.admin_notes = notes

        if reverse:
            partner = self._lock_partner(entry.partner_id)
            before = partner.balances
            after = before.reverse_payout(entry.amount)
            now = self.clock.now()
            entry.reversed_at = now
            entry.transaction_metadata = {
                **(entry.transaction_metadata or {}),
                "reversal": {
                    "reversed_by": str(actor_id),
                    "reversed_at": now.isoformat(),
                    "balance_before": before.available,
                    "balance_after": after.available,
                },
            }
            self._apply(partner, before, after, None, actor_id)
            self._notify(NotificationKind.PAYOUT_CANCELLED, entry)
        else:
            self.session.flush()
            partner = self.session.get(Partner, entry.partner_id)
            after = partner.balances

        logger.info(
            "transaction_status_corrected",
            extra={
                "transaction_id": str(entry.id),
                "partner_id": str(entry.partner_id),
                "from_status": current.value,
                "to_status": target.value,
                "payout_reversed": reverse,
                "processed_by": str(actor_id),
            },
        )
        self._notify(
            NotificationKind.STATUS_CORRECTED,
            entry,
            {"from_status": current.value, "to_status": target.value},
        )
        return StatusCorrectionResult(
            entry.id, entry.partner_id, current, target, True, reverse, after
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _check_transition(
        entry: CommissionTransaction,
        current: TransactionStatus,
        target: TransactionStatus,
    ) -> None:
        def reject(reason: str) -> InvalidStatusTransitionError:
            return InvalidStatusTransitionError(str(entry.id), current.value, target.value, reason)

        if current is TransactionStatus.CANCELLED:
            raise reject("cancelled transactions are final")
        if TransactionStatus.ON_HOLD in (current, target):
            raise reject("holds change state only through hold release")
        if target is TransactionStatus.PENDING:
            raise reject("a processed transaction cannot return to pending")
        # Only entries whose effect was applied may read COMPLETED; an
        # unsettled payout request (PENDING, or FAILED before approval)
        # settles through approve_payout_request alone.
        if target is TransactionStatus.COMPLETED and entry.settled_at is None:
            raise reject("pending payout requests are completed through approval")

    def _lock_partner(self, partner_id: UUID) -> Partner:
        stmt = (
            select(Partner)
            .where(Partner.id == partner_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        partner = self.session.execute(stmt).scalar_one_or_none()
        if partner is None:
            raise PartnerNotFoundError(str(partner_id))
        return partner

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

    def _lock_transaction(self, transaction_id: UUID) -> CommissionTransaction | None:
        stmt = (
            select(CommissionTransaction)
            .where(CommissionTransaction.id == transaction_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def _next_sequence(self, partner_id: UUID) -> int:
        stmt = select(func.coalesce(func.max(CommissionTransaction.sequence), 0)).where(
            CommissionTransaction.partner_id == partner_id
        )
        return int(self.session.execute(stmt).scalar_one()) + 1

    def _pending_payout_total(self, partner_id: UUID) -> int:
        stmt = select(func.coalesce(func.sum(CommissionTransaction.amount), 0)).where(
            CommissionTransaction.partner_id == partner_id,
            CommissionTransaction.transaction_type == TransactionType.PAID_OUT,
            CommissionTransaction.status == TransactionStatus.PENDING,
        )
        return int(self.session.execute(stmt).scalar_one())

    def _append_entry(
        self,
        partner: Partner,
        transaction_type: TransactionType,
        amount: int,
        before: BalanceSnapshot,
        after: BalanceSnapshot,
        *,
        actor_id: UUID,
        description: str,
        status: TransactionStatus = TransactionStatus.COMPLETED,
        order_id: UUID | None = None,
        admin_notes: str | None = None,
        payment_method: PaymentMethod | None = None,
        external_reference: str | None = None,
        payment_date: datetime | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> CommissionTransaction:
        now = self.clock.now()
        entry = CommissionTransaction(
            id=uuid4(),
            partner_id=partner.id,
            sequence=self._next_sequence(partner.id),
            order_id=order_id,
            transaction_type=transaction_type,
            status=status,
            amount=amount,
            currency=self.currency,
            description=description[:500],
            admin_notes=admin_notes,
            reference_number=generate_reference_number(now),
            external_reference=external_reference,
            payment_method=payment_method.value if payment_method else None,
            payment_date=payment_date,
            processed_by_id=actor_id,
            balance_before=before.available,
            balance_after=after.available,
            on_hold_before=before.on_hold,
            on_hold_after=after.on_hold,
            occurred_at=now,
            settled_at=None if status is TransactionStatus.PENDING else now,
            transaction_metadata=metadata,
            created_by_id=actor_id,
        )
        self.session.add(entry)
        return entry

    def _apply(
        self,
        partner: Partner,
        before: BalanceSnapshot,
        after: BalanceSnapshot,
        entry: CommissionTransaction | None,
        actor_id: UUID,
    ) -> None:
        """Verify, write the balance columns inside the write scope, flush."""
        problems = after.violations()
        if entry is not None:
            expected = available_effect(entry.transaction_type, entry.amount, entry.adjustment_type)
            if entry.balance_after - entry.balance_before != expected:
                problems.append(
                    f"snapshot delta {entry.balance_after - entry.balance_before} "
                    f"!= signed effect {expected}"
                )
            expected_hold = on_hold_effect(entry.transaction_type, entry.amount)
            if entry.on_hold_after - entry.on_hold_before != expected_hold:
                problems.append(
                    f"on-hold delta {entry.on_hold_after - entry.on_hold_before} "
                    f"!= signed effect {expected_hold}"
                )
        if problems:
            logger.error(
                "balance_invariant_violation",
                extra={"partner_id": str(partner.id), "problems": problems},
            )
            raise BalanceInvariantError(str(partner.id), "; ".join(problems))

        with ledger_write_scope(self.session):
            partner.commission_earned = after.earned
            partner.commission_paid = after.paid
            partner.commission_on_hold = after.on_hold
            partner.available_commission = after.available
            partner.updated_by_id = actor_id
            self.session.flush()

        logger.info(
            "ledger_entry_applied",
            extra={
                "partner_id": str(partner.id),
                "transaction_id": str(entry.id) if entry is not None else None,
                "transaction_type": entry.transaction_type if entry is not None else "PAYOUT_REVERSAL",
                "amount": entry.amount if entry is not None else before.paid - after.paid,
                "balance_before": before.available,
                "balance_after": after.available,
                "on_hold": after.on_hold,
            },
        )

    def _notify(
        self,
        kind: NotificationKind,
        entry: CommissionTransaction,
        payload: dict[str, Any] | None = None,
    ) -> None:
        queue_notification(
            self.session,
            LedgerNotification(
                kind=kind,
                partner_id=entry.partner_id,
                transaction_id=entry.id,
                amount=entry.amount,
                occurred_at=self.clock.now(),
                payload={"reference_number": entry.reference_number, **(payload or {})},
            ),
        )

    @staticmethod
    def _result(entry: CommissionTransaction, balances: BalanceSnapshot) -> LedgerEntryResult:
        return LedgerEntryResult(
            transaction_id=entry.id,
            partner_id=entry.partner_id,
            reference_number=entry.reference_number,
            transaction_type=TransactionType(entry.transaction_type),
            status=TransactionStatus(entry.status),
            amount=entry.amount,
            balance_before=entry.balance_before,
            balance_after=entry.balance_after,
            balances=balances,
            order_id=entry.order_id,
        )

    @staticmethod
    def _require_amount(amount: int) -> None:
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise InvalidAmountError(amount, "amount must be integer minor units")
        if amount <= 0:
            raise InvalidAmountError(amount)

    @staticmethod
    def _require_reason(reason: str | None, operation: str) -> str:
        text = (reason or "").strip()
        if not text:
            raise MissingReasonError(operation)
        return text

    @staticmethod
    def _require_actor(actor_id: UUID | None, operation: str) -> None:
        if actor_id is None:
            raise MissingActorError(operation)
