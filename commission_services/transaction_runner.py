"""
commission_services.transaction_runner -- transaction, retry and timeout
ownership for ledger writes.

Responsibility:
    Runs one unit of work against a fresh session per attempt: applies
    lock and statement timeouts, commits on success, rolls back on any
    failure, retries transient failures with bounded exponential backoff,
    and hands queued notifications to the dispatcher only after a
    successful commit.

Architecture position:
    Services.  The only place in the system that calls ``commit()`` or
    ``rollback()`` on a ledger write session.  Kernel services are
    flush-only and run inside the callable passed to :meth:`run`.

Invariants enforced:
    - All or nothing: a failed attempt is rolled back in full before the
      next attempt or before the error reaches the caller.
    - Bounded: every attempt carries a lock timeout (and, on PostgreSQL,
      a statement timeout); attempts are capped by ``max_attempts``.
    - Only transient errors are retried.  Validation, business-rule,
      not-found and integrity errors propagate on the first attempt.
    - Notifications from a rolled-back attempt are discarded.

Failure modes:
    - ConcurrencyConflictError: version conflict (StaleDataError) or a
      unique-index race (IntegrityError) that persisted through every
      attempt.
    - LedgerTimeoutError: lock wait or statement timeout on every attempt.
    - StoreUnavailableError: the database could not be reached.
    - Any other exception propagates unchanged after rollback.

Audit relevance:
    Each run is logged with its correlation id, operation, attempts and
    duration, so a retried payout can be traced end to end.
"""

from __future__ import annotations

import random
import time
from collections.abc import Callable
from typing import Any, TypeVar
from uuid import uuid4

from sqlalchemy import text
from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from commission_config.schema import RetryConfig
from commission_kernel.db.engine import is_postgres
from commission_kernel.domain.notifications import drain_notifications
from commission_kernel.exceptions import (
    CommissionKernelError,
    ConcurrencyConflictError,
    LedgerTimeoutError,
    StoreUnavailableError,
)
from commission_kernel.logging_config import LogContext, get_logger
from commission_services.notifications import NotificationDispatcher

logger = get_logger("services.transaction_runner")

T = TypeVar("T")

_TIMEOUT_MARKERS = (
    "database is locked",
    "lock timeout",
    "lock_timeout",
    "canceling statement",
    "statement timeout",
    "deadlock",
    "could not obtain lock",
)

_UNIQUE_MARKERS = ("unique", "duplicate key")


class TransactionRunner:
    """
    Owns commit, rollback, retry and timeouts for ledger writes.

    Usage:
        runner = TransactionRunner(get_session_factory(), config.retry)
        result = runner.run(
            "payout",
            lambda session: CommissionLedgerService(session).payout(...),
            partner_id=partner_id,
        )
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        retry: RetryConfig | None = None,
        dispatcher: NotificationDispatcher | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._session_factory = session_factory
        self._retry = retry or RetryConfig()
        self._dispatcher = dispatcher or NotificationDispatcher()
        self._sleep = sleep

    def run(
        self,
        operation: str,
        fn: Callable[[Session], T],
        **log_context: Any,
    ) -> T:
        """
        Execute ``fn(session)`` in its own transaction, retrying transient
        failures.  ``log_context`` (actor_id, partner_id, order_id,
        transaction_id) is bound to every log line of the run.
        """
        correlation_id = LogContext.get("correlation_id") or str(uuid4())
        with LogContext.bind(correlation_id=correlation_id, operation=operation, **log_context):
            attempt = 0
            t0 = time.monotonic()
            while True:
                attempt += 1
                session = self._session_factory()
                try:
                    self._apply_timeouts(session)
                    result = fn(session)
                    session.commit()
                except Exception as exc:
                    self._discard(session)
                    error = self._translate(operation, exc, attempt)
                    duration_ms = round((time.monotonic() - t0) * 1000, 2)

                    if error is None or not error.retryable or attempt >= self._retry.max_attempts:
                        logger.warning(
                            "transaction_failed",
                            extra={
                                "attempts": attempt,
                                "duration_ms": duration_ms,
                                "error_code": getattr(error, "code", type(exc).__name__),
                                "retryable": bool(error is not None and error.retryable),
                            },
                        )
                        if error is None or error is exc:
                            raise
                        raise error from exc

                    delay = self._backoff(attempt)
                    logger.warning(
                        "transaction_retrying",
                        extra={
                            "attempt": attempt,
                            "max_attempts": self._retry.max_attempts,
                            "delay_seconds": round(delay, 4),
                            "error_code": error.code,
                        },
                    )
                    self._sleep(delay)
                    continue

                notifications = drain_notifications(session)
                session.close()
                logger.info(
                    "transaction_committed",
                    extra={
                        "attempts": attempt,
                        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                        "notifications": len(notifications),
                    },
                )
                self._dispatcher.dispatch(notifications)
                return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _apply_timeouts(self, session: Session) -> None:
        if not is_postgres(session):
            return
        lock_ms = int(self._retry.lock_timeout_seconds * 1000)
        statement_ms = int(self._retry.statement_timeout_seconds * 1000)
        session.execute(text(f"SET LOCAL lock_timeout = '{lock_ms}ms'"))
        session.execute(text(f"SET LOCAL statement_timeout = '{statement_ms}ms'"))

    @staticmethod
    def _discard(session: Session) -> None:
        drain_notifications(session)
        try:
            session.rollback()
        finally:
            session.close()

    @staticmethod
    def _translate(operation: str, exc: Exception, attempt: int) -> CommissionKernelError | None:
        """Map an exception to the kernel taxonomy; None means unknown."""
        if isinstance(exc, CommissionKernelError):
            return exc
        if isinstance(exc, StaleDataError):
            return ConcurrencyConflictError("record", str(exc), attempts=attempt)
        if isinstance(exc, IntegrityError):
            detail = str(exc.orig).lower()
            if any(marker in detail for marker in _UNIQUE_MARKERS):
                return ConcurrencyConflictError(
                    "commission_transaction", str(exc.orig), attempts=attempt
                )
            return None
        if isinstance(exc, OperationalError):
            detail = str(exc.orig).lower()
            if any(marker in detail for marker in _TIMEOUT_MARKERS):
                return LedgerTimeoutError(operation, str(exc.orig))
            return StoreUnavailableError(operation, str(exc.orig))
        if isinstance(exc, DBAPIError) and exc.connection_invalidated:
            return StoreUnavailableError(operation, str(exc.orig))
        return None

    def _backoff(self, attempt: int) -> float:
        base = self._retry.backoff_base_seconds * (2 ** (attempt - 1))
        capped = min(base, self._retry.backoff_max_seconds)
        return capped * (0.5 + random.random() / 2)
