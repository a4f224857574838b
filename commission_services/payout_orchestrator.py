"""
commission_services.payout_orchestrator -- caller-facing payout operations.

Responsibility:
    Receives payout requests, converts the decimal amount at the edge,
    delegates to the ledger engine's PAYOUT path (which re-derives
    withdrawable funds inside the transaction) and translates the outcome
    into a PayoutResponse.

Architecture position:
    Services.  Does not mutate balances itself and never consults a
    cached summary: the funds check lives in the engine, under the
    partner row lock.

Invariants enforced:
    - Every kernel error becomes a response carrying its ``code``,
      ``kind``, human message and ``retryable`` flag.
    - Structured error attributes are included in ``details`` only for
      administrative callers; partner-facing responses carry the message
      alone.

Failure modes:
    Exceptions outside the kernel taxonomy (programming errors) are not
    translated; they propagate after the runner has rolled back.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from commission_config.schema import CommissionConfig
from commission_kernel.db.types import to_minor_units
from commission_kernel.domain.clock import Clock, SystemClock
from commission_kernel.domain.commission import PaymentMethod
from commission_kernel.exceptions import CommissionKernelError, ErrorKind
from commission_kernel.logging_config import get_logger
from commission_kernel.services.ledger_service import CommissionLedgerService, LedgerEntryResult
from commission_services.transaction_runner import TransactionRunner

logger = get_logger("services.payout_orchestrator")


@dataclass(frozen=True)
class PayoutResponse:
    """Caller-facing outcome of a payout operation."""

    ok: bool
    code: str
    message: str
    kind: ErrorKind | None = None
    retryable: bool = False
    transaction: LedgerEntryResult | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(cls, entry: LedgerEntryResult, message: str) -> PayoutResponse:
        return cls(ok=True, code="OK", message=message, transaction=entry)

    @classmethod
    def failure(cls, error: CommissionKernelError, admin: bool) -> PayoutResponse:
        details: dict[str, Any] = {}
        if admin:
            details = {
                k: v for k, v in vars(error).items() if not k.startswith("_") and k != "args"
            }
            details["error_type"] = type(error).__name__
        return cls(
            ok=False,
            code=error.code,
            message=str(error),
            kind=error.kind,
            retryable=error.retryable,
            details=details,
        )


class PayoutOrchestrator:
    """Payout, payout request and approval use cases."""

    def __init__(
        self,
        runner: TransactionRunner,
        config: CommissionConfig,
        clock: Clock | None = None,
    ):
        self._runner = runner
        self._config = config
        self._clock = clock or SystemClock()

    def _ledger(self, session: Session) -> CommissionLedgerService:
        return CommissionLedgerService(
            session,
            self._clock,
            currency=self._config.money.currency,
            minimum_payout=self._config.payout.minimum_payout,
        )

    def process_payout(
        self,
        partner_id: UUID,
        amount: str | int,
        admin_id: UUID,
        method: PaymentMethod | str | None = None,
        external_reference: str | None = None,
        notes: str | None = None,
    ) -> PayoutResponse:
        """Admin-initiated payout of ``amount`` (major units, e.g. "40.00")."""

        def unit() -> LedgerEntryResult:
            cents = to_minor_units(amount, self._config.money.currency)
            return self._runner.run(
                "payout",
                lambda s: self._ledger(s).payout(
                    partner_id,
                    cents,
                    admin_id,
                    method=method,
                    external_reference=external_reference,
                    notes=notes,
                ),
                actor_id=admin_id,
                partner_id=partner_id,
            )

        return self._respond("payout", unit, admin=True, success_message="Payout processed")

    def request_payout(
        self,
        partner_id: UUID,
        amount: str | int,
        method: PaymentMethod | str | None = None,
        notes: str | None = None,
    ) -> PayoutResponse:
        """Partner-initiated request; settles only on admin approval."""

        def unit() -> LedgerEntryResult:
            cents = to_minor_units(amount, self._config.money.currency)
            return self._runner.run(
                "request_payout",
                lambda s: self._ledger(s).request_payout(
                    partner_id, cents, method=method, notes=notes, actor_id=partner_id
                ),
                partner_id=partner_id,
            )

        return self._respond(
            "request_payout", unit, admin=False, success_message="Payout request submitted"
        )

    def approve_payout_request(
        self,
        transaction_id: UUID,
        admin_id: UUID,
        external_reference: str | None = None,
        notes: str | None = None,
    ) -> PayoutResponse:
        def unit() -> LedgerEntryResult:
            return self._runner.run(
                "approve_payout_request",
                lambda s: self._ledger(s).approve_payout_request(
                    transaction_id, admin_id, external_reference=external_reference, notes=notes
                ),
                actor_id=admin_id,
                transaction_id=transaction_id,
            )

        return self._respond(
            "approve_payout_request", unit, admin=True, success_message="Payout request approved"
        )

    @staticmethod
    def _respond(
        operation: str,
        unit: Callable[[], LedgerEntryResult],
        admin: bool,
        success_message: str,
    ) -> PayoutResponse:
        try:
            entry = unit()
        except CommissionKernelError as exc:
            logger.info(
                "payout_operation_rejected",
                extra={
                    "operation_name": operation,
                    "error_code": exc.code,
                    "error_kind": exc.kind.value,
                    "retryable": exc.retryable,
                },
            )
            return PayoutResponse.failure(exc, admin=admin)
        return PayoutResponse.success(entry, success_message)
