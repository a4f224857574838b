"""
Commission vocabulary and arithmetic.

Responsibility:
    The ledger's closed vocabularies (transaction type, status, payment
    method, adjustment type) and the two pieces of pure arithmetic every
    other layer relies on: the commission amount for an order, and the
    signed effect of a ledger entry on available commission.

Architecture position:
    Kernel > Domain -- pure functions and enums, zero I/O.  Imported by
    models/, services/ and selectors/.

Invariants enforced:
    - Commission is integer cents, rounded half-up exactly once.
    - For every settled entry, ``balance_after - balance_before`` equals
      ``available_effect(...)`` of that entry.
"""

from __future__ import annotations

from decimal import Decimal
from enum import Enum

from commission_kernel.db.types import round_half_up
from commission_kernel.exceptions import (
    InvalidAdjustmentTypeError,
    InvalidCommissionRateError,
    InvalidPaymentMethodError,
    InvalidTransactionStatusError,
    InvalidTransactionTypeError,
)


class TransactionType(str, Enum):
    EARNED = "EARNED"
    PAID_OUT = "PAID_OUT"
    ADJUSTED = "ADJUSTED"
    HOLD = "HOLD"
    HOLD_RELEASED = "HOLD_RELEASED"
    BONUS = "BONUS"

    @classmethod
    def parse(cls, value: object) -> TransactionType:
        try:
            return value if isinstance(value, cls) else cls(str(value).strip().upper())
        except ValueError:
            raise InvalidTransactionTypeError(value) from None


class TransactionStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    ON_HOLD = "ON_HOLD"
    CANCELLED = "CANCELLED"

    @classmethod
    def parse(cls, value: object) -> TransactionStatus:
        try:
            return value if isinstance(value, cls) else cls(str(value).strip().upper())
        except ValueError:
            raise InvalidTransactionStatusError(value) from None


class PaymentMethod(str, Enum):
    BANK_TRANSFER = "BANK_TRANSFER"
    PAYPAL = "PAYPAL"
    STRIPE = "STRIPE"
    CASH = "CASH"
    OTHER = "OTHER"

    @classmethod
    def parse(cls, value: object) -> PaymentMethod:
        try:
            return value if isinstance(value, cls) else cls(str(value).strip().upper())
        except ValueError:
            raise InvalidPaymentMethodError(value) from None


class AdjustmentType(str, Enum):
    """Admin adjustment kinds accepted by ADJUST."""

    ADD = "ADD"
    DEDUCT = "DEDUCT"
    HOLD = "HOLD"
    RELEASE_HOLD = "RELEASE_HOLD"
    BONUS = "BONUS"

    @classmethod
    def parse(cls, value: object) -> AdjustmentType:
        try:
            return value if isinstance(value, cls) else cls(str(value).strip().upper())
        except ValueError:
            raise InvalidAdjustmentTypeError(value) from None

    @property
    def transaction_type(self) -> TransactionType:
        """Ledger entry type recorded for this adjustment."""
        return _ADJUSTMENT_ENTRY_TYPE[self]


_ADJUSTMENT_ENTRY_TYPE = {
    AdjustmentType.ADD: TransactionType.ADJUSTED,
    AdjustmentType.DEDUCT: TransactionType.ADJUSTED,
    AdjustmentType.BONUS: TransactionType.BONUS,
    AdjustmentType.HOLD: TransactionType.HOLD,
    AdjustmentType.RELEASE_HOLD: TransactionType.HOLD_RELEASED,
}


def validate_commission_rate(rate: Decimal | int | str) -> Decimal:
    """Rate is a percentage in [0, 100]."""
    try:
        value = Decimal(str(rate))
    except ArithmeticError:
        raise InvalidCommissionRateError(rate) from None
    if not value.is_finite() or value < 0 or value > 100:
        raise InvalidCommissionRateError(rate)
    return value


def calculate_commission(price_cents: int, rate_percent: Decimal | int | str) -> int:
    """
    Commission in cents for an order.

    ``round(price * rate / 100)`` with halves rounded up: 100000 cents at
    10% is 10000 cents; 1005 cents at 10% is 101 cents (100.5 rounds up).
    """
    rate = validate_commission_rate(rate_percent)
    return round_half_up(Decimal(price_cents) * rate / Decimal(100))


def available_effect(
    transaction_type: TransactionType | str,
    amount: int,
    adjustment_type: AdjustmentType | str | None = None,
) -> int:
    """
    Signed effect of a settled entry on available commission.

    Positive for EARNED, BONUS, HOLD_RELEASED and ADJUSTED/ADD; negative for
    PAID_OUT, HOLD and ADJUSTED/DEDUCT.
    """
    kind = TransactionType(transaction_type)
    if kind in (TransactionType.EARNED, TransactionType.BONUS, TransactionType.HOLD_RELEASED):
        return amount
    if kind in (TransactionType.PAID_OUT, TransactionType.HOLD):
        return -amount
    if adjustment_type is not None and AdjustmentType.parse(adjustment_type) is AdjustmentType.DEDUCT:
        return -amount
    return amount


def on_hold_effect(transaction_type: TransactionType | str, amount: int) -> int:
    """Signed effect of a settled entry on the on-hold balance."""
    kind = TransactionType(transaction_type)
    if kind is TransactionType.HOLD:
        return amount
    if kind is TransactionType.HOLD_RELEASED:
        return -amount
    return 0
