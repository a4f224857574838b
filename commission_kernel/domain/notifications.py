"""
LedgerNotification -- post-commit side-effect record.

The ledger engine never sends anything itself.  Each successful write
queues a LedgerNotification on the session; the transaction runner hands
the queue to the notification dispatcher only after the commit succeeded,
and drops it on rollback.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

PENDING_NOTIFICATIONS_KEY = "commission_pending_notifications"


class NotificationKind(str, Enum):
    COMMISSION_EARNED = "commission.earned"
    PAYOUT_COMPLETED = "payout.completed"
    PAYOUT_REQUESTED = "payout.requested"
    PAYOUT_CANCELLED = "payout.cancelled"
    BALANCE_ADJUSTED = "balance.adjusted"
    HOLD_PLACED = "hold.placed"
    HOLD_RELEASED = "hold.released"
    STATUS_CORRECTED = "transaction.status_corrected"


@dataclass(frozen=True)
class LedgerNotification:
    kind: NotificationKind
    partner_id: UUID
    transaction_id: UUID
    amount: int
    occurred_at: datetime
    payload: dict[str, Any] = field(default_factory=dict)


def queue_notification(session, notification: LedgerNotification) -> None:
    """Attach a notification to the session's pending post-commit queue."""
    session.info.setdefault(PENDING_NOTIFICATIONS_KEY, []).append(notification)


def drain_notifications(session) -> list[LedgerNotification]:
    """Remove and return every queued notification."""
    return session.info.pop(PENDING_NOTIFICATIONS_KEY, [])
