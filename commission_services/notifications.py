"""
commission_services.notifications -- post-commit notification dispatch.

Responsibility:
    Delivers LedgerNotifications queued by the ledger engine to the
    configured sinks (email gateway, webhook relay, ...) after the ledger
    transaction has committed.

Architecture position:
    Services.  Called only by TransactionRunner, after ``commit()``.

Invariants enforced:
    - Best effort: a failing sink is logged and skipped; dispatch never
      raises into the caller and never touches the ledger.
    - Notifications from a rolled-back transaction are never dispatched
      (the runner discards them before they reach this module).
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from concurrent.futures import Executor
from typing import Protocol

from commission_kernel.domain.notifications import LedgerNotification, NotificationKind
from commission_kernel.logging_config import get_logger

logger = get_logger("services.notifications")


class NotificationSink(Protocol):
    """Pluggable delivery channel."""

    name: str

    def deliver(self, notification: LedgerNotification) -> None:
        """Deliver one notification.  May raise; the dispatcher logs it."""
        ...


class LoggingNotificationSink:
    """Writes each notification to the structured log."""

    name = "log"

    def deliver(self, notification: LedgerNotification) -> None:
        logger.info(
            "notification_delivered",
            extra={
                "sink": self.name,
                "kind": NotificationKind(notification.kind).value,
                "partner_id": str(notification.partner_id),
                "transaction_id": str(notification.transaction_id),
                "amount": notification.amount,
            },
        )


class NotificationDispatcher:
    """
    Fans notifications out to every sink.

    With an ``executor`` delivery runs in the background and ``dispatch``
    returns immediately; without one it runs inline after commit.
    """

    def __init__(
        self,
        sinks: Sequence[NotificationSink] | None = None,
        executor: Executor | None = None,
    ):
        self._sinks = tuple(sinks) if sinks is not None else (LoggingNotificationSink(),)
        self._executor = executor

    def dispatch(self, notifications: Iterable[LedgerNotification]) -> None:
        for notification in notifications:
            for sink in self._sinks:
                if self._executor is not None:
                    self._executor.submit(self._deliver, sink, notification)
                else:
                    self._deliver(sink, notification)

    @staticmethod
    def _deliver(sink: NotificationSink, notification: LedgerNotification) -> None:
        try:
            sink.deliver(notification)
        except Exception:
            logger.error(
                "notification_delivery_failed",
                extra={
                    "sink": getattr(sink, "name", type(sink).__name__),
                    "kind": NotificationKind(notification.kind).value,
                    "transaction_id": str(notification.transaction_id),
                },
                exc_info=True,
            )
