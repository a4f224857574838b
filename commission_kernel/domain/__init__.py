"""Pure domain layer: time, balance arithmetic, ledger vocabulary, notifications."""

from commission_kernel.domain.balances import BalanceSnapshot
from commission_kernel.domain.clock import Clock, DeterministicClock, SystemClock, as_utc
from commission_kernel.domain.commission import (
    AdjustmentType,
    PaymentMethod,
    TransactionStatus,
    TransactionType,
    available_effect,
    calculate_commission,
    on_hold_effect,
)
from commission_kernel.domain.notifications import LedgerNotification, NotificationKind

__all__ = [
    "AdjustmentType",
    "BalanceSnapshot",
    "Clock",
    "DeterministicClock",
    "LedgerNotification",
    "NotificationKind",
    "PaymentMethod",
    "SystemClock",
    "TransactionStatus",
    "TransactionType",
    "as_utc",
    "available_effect",
    "calculate_commission",
    "on_hold_effect",
]
