"""
Unit tests for the commission domain rules: rate validation, commission
calculation, enum parsing and the signed balance effect of each entry type.
"""

from decimal import Decimal

import pytest

from commission_kernel.domain.commission import (
    AdjustmentType,
    PaymentMethod,
    TransactionStatus,
    TransactionType,
    available_effect,
    calculate_commission,
    on_hold_effect,
    validate_commission_rate,
)
from commission_kernel.exceptions import (
    ErrorKind,
    InvalidAdjustmentTypeError,
    InvalidCommissionRateError,
    InvalidPaymentMethodError,
    InvalidTransactionStatusError,
    InvalidTransactionTypeError,
)


class TestCalculateCommission:
    def test_ten_percent_of_thousand_euros(self):
        assert calculate_commission(100_000, Decimal("10")) == 10_000

    def test_half_cent_rounds_up(self):
        assert calculate_commission(1005, "10") == 101

    def test_below_half_cent_rounds_down(self):
        assert calculate_commission(1004, "10") == 100

    def test_fractional_rate(self):
        assert calculate_commission(10_000, "12.5") == 1250

    def test_zero_rate(self):
        assert calculate_commission(100_000, 0) == 0

    def test_full_rate(self):
        assert calculate_commission(4321, 100) == 4321


class TestValidateCommissionRate:
    @pytest.mark.parametrize("rate", ["0", "10", "99.99", 100, Decimal("7.25")])
    def test_accepts_percentages(self, rate):
        assert validate_commission_rate(rate) == Decimal(str(rate))

    @pytest.mark.parametrize("rate", ["-1", "100.01", "abc", "NaN", "Infinity"])
    def test_rejects_out_of_range(self, rate):
        with pytest.raises(InvalidCommissionRateError):
            validate_commission_rate(rate)


class TestEnumParsing:
    """Boundary parsing accepts any case and rejects unknown values with a typed error."""

    def test_adjustment_type_lower_case(self):
        assert AdjustmentType.parse(" deduct ") is AdjustmentType.DEDUCT

    def test_enum_instance_passes_through(self):
        assert TransactionStatus.parse(TransactionStatus.CANCELLED) is TransactionStatus.CANCELLED

    def test_payment_method(self):
        assert PaymentMethod.parse("paypal") is PaymentMethod.PAYPAL

    def test_transaction_type(self):
        assert TransactionType.parse("hold_released") is TransactionType.HOLD_RELEASED

    @pytest.mark.parametrize(
        "parser,error",
        [
            (AdjustmentType.parse, InvalidAdjustmentTypeError),
            (TransactionStatus.parse, InvalidTransactionStatusError),
            (TransactionType.parse, InvalidTransactionTypeError),
            (PaymentMethod.parse, InvalidPaymentMethodError),
        ],
    )
    def test_unknown_value(self, parser, error):
        with pytest.raises(error) as exc_info:
            parser("NOT_A_VALUE")
        assert exc_info.value.kind is ErrorKind.VALIDATION
        assert exc_info.value.retryable is False

    def test_adjustment_entry_types(self):
        assert AdjustmentType.ADD.transaction_type is TransactionType.ADJUSTED
        assert AdjustmentType.DEDUCT.transaction_type is TransactionType.ADJUSTED
        assert AdjustmentType.BONUS.transaction_type is TransactionType.BONUS
        assert AdjustmentType.HOLD.transaction_type is TransactionType.HOLD
        assert AdjustmentType.RELEASE_HOLD.transaction_type is TransactionType.HOLD_RELEASED


class TestSignedEffects:
    """Effect of a settled entry on available and on-hold balances."""

    @pytest.mark.parametrize(
        "transaction_type,adjustment,expected_available,expected_hold",
        [
            (TransactionType.EARNED, None, 500, 0),
            (TransactionType.BONUS, "BONUS", 500, 0),
            (TransactionType.ADJUSTED, "ADD", 500, 0),
            (TransactionType.ADJUSTED, "DEDUCT", -500, 0),
            (TransactionType.PAID_OUT, None, -500, 0),
            (TransactionType.HOLD, "HOLD", -500, 500),
            (TransactionType.HOLD_RELEASED, "RELEASE_HOLD", 500, -500),
        ],
    )
    def test_effects(self, transaction_type, adjustment, expected_available, expected_hold):
        assert available_effect(transaction_type, 500, adjustment) == expected_available
        assert on_hold_effect(transaction_type, 500) == expected_hold

    def test_adjusted_without_metadata_is_credit(self):
        assert available_effect("ADJUSTED", 500) == 500

    def test_accepts_stored_string_values(self):
        assert available_effect("PAID_OUT", 250) == -250
        assert on_hold_effect("HOLD", 250) == 250
