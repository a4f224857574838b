"""
commission_services.reporting_service -- read-only commission views.

Responsibility:
    Partner summary, paginated transaction history, single transaction
    lookup and ledger reconciliation.  Each call opens its own session,
    reads, and releases it without writing.

Architecture position:
    Services.  Wraps the kernel selectors with configuration defaults and
    snapshot handling.

Invariants enforced:
    - No locks and no writes: reporting never blocks ledger writers.
    - One snapshot per call: on PostgreSQL the session runs at REPEATABLE
      READ, so every figure in a summary comes from the same moment.
    - Reporting output is informational; payout decisions never read it.
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import TypeVar
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from commission_config.schema import CommissionConfig
from commission_kernel.db.engine import is_postgres
from commission_kernel.domain.clock import Clock, SystemClock
from commission_kernel.domain.commission import TransactionStatus, TransactionType
from commission_kernel.exceptions import TransactionNotFoundError
from commission_kernel.logging_config import get_logger
from commission_kernel.selectors.reconciliation_selector import (
    ReconciliationReport,
    ReconciliationSelector,
)
from commission_kernel.selectors.summary_selector import PartnerSummary, SummarySelector
from commission_kernel.selectors.transaction_selector import (
    CommissionTransactionDTO,
    TransactionFilter,
    TransactionPage,
    TransactionSelector,
)

logger = get_logger("services.reporting")

T = TypeVar("T")


class ReportingService:
    """Snapshot reads over the commission ledger."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        config: CommissionConfig,
        clock: Clock | None = None,
    ):
        self._session_factory = session_factory
        self._config = config
        self._clock = clock or SystemClock()

    def partner_summary(self, partner_id: UUID) -> PartnerSummary:
        reporting = self._config.reporting
        return self._read(
            lambda s: SummarySelector(s).partner_summary(
                partner_id,
                now=self._clock.now(),
                window_days=reporting.summary_window_days,
                recent_limit=reporting.recent_transactions,
                currency=self._config.money.currency,
            )
        )

    def transaction_history(
        self,
        partner_id: UUID,
        transaction_type: TransactionType | str | None = None,
        status: TransactionStatus | str | None = None,
        start: datetime | None = None,
        end: datetime | None = None,
        search: str | None = None,
        page: int = 1,
        limit: int | None = None,
    ) -> TransactionPage:
        """Newest-first history; ``limit`` defaults to and is capped by config."""
        reporting = self._config.reporting
        filters = TransactionFilter(
            transaction_type=TransactionType.parse(transaction_type) if transaction_type else None,
            status=TransactionStatus.parse(status) if status else None,
            start=start,
            end=end,
            search=search,
        )
        return self._read(
            lambda s: TransactionSelector(s).list_for_partner(
                partner_id,
                filters,
                page=page,
                limit=limit or reporting.default_page_size,
                max_limit=reporting.max_page_size,
            )
        )

    def get_transaction(self, transaction_id: UUID) -> CommissionTransactionDTO:
        dto = self._read(lambda s: TransactionSelector(s).get(transaction_id))
        if dto is None:
            raise TransactionNotFoundError(str(transaction_id))
        return dto

    def reconcile(self, partner_id: UUID | None = None) -> list[ReconciliationReport]:
        """Reconcile one partner, or every partner when ``partner_id`` is None."""
        if partner_id is not None:
            reports = [self._read(lambda s: ReconciliationSelector(s).verify_partner(partner_id))]
        else:
            reports = self._read(lambda s: ReconciliationSelector(s).verify_all())
        inconsistent = sum(1 for r in reports if not r.is_consistent)
        logger.info(
            "reconciliation_completed",
            extra={"partners_checked": len(reports), "inconsistent": inconsistent},
        )
        return reports

    def _read(self, fn: Callable[[Session], T]) -> T:
        session = self._session_factory()
        try:
            if is_postgres(session):
                session.connection(execution_options={"isolation_level": "REPEATABLE READ"})
            return fn(session)
        finally:
            session.rollback()
            session.close()
