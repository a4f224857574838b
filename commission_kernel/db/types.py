"""
Module: commission_kernel.db.types
Responsibility: The money conversion edge.
    Decimal major-unit values ("40.00") are converted to integer minor units
    here and nowhere else; integer cents are formatted back for display here
    and nowhere else.
Architecture position: Kernel > DB.  Imported by models/, domain/,
    services/ and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats.  to_minor_units() rejects float input outright.
    - No silent precision loss.  A value with more decimal places than the
      currency's minor unit is rejected rather than rounded.
    - Currency codes are validated against the supported ISO 4217 table.

Failure modes:
    - InvalidMoneyFormatError on non-numeric, float, non-finite or
      over-precise input.
    - InvalidAmountError (from callers) on non-positive amounts.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from commission_kernel.exceptions import InvalidCurrencyError, InvalidMoneyFormatError

DEFAULT_ROUNDING = ROUND_HALF_UP

# Minor-unit exponent per supported currency
CURRENCY_EXPONENTS: dict[str, int] = {
    "EUR": 2,
    "USD": 2,
    "GBP": 2,
    "CHF": 2,
    "SEK": 2,
    "NOK": 2,
    "DKK": 2,
    "PLN": 2,
    "CZK": 2,
    "CAD": 2,
    "AUD": 2,
    "JPY": 0,
}

def validate_currency(code: str) -> str:
    """Return the upper-cased code or raise InvalidCurrencyError."""
    if not isinstance(code, str):
        raise InvalidCurrencyError(code)
    normalized = code.strip().upper()
    if normalized not in CURRENCY_EXPONENTS:
        raise InvalidCurrencyError(code)
    return normalized

def to_minor_units(value: str | Decimal | int, currency: str = "EUR") -> int:
    """
    Convert a major-unit amount to integer minor units.

    ``"40.00"`` -> 4000, ``Decimal("0.5")`` -> 50, ``12`` -> 1200.

    Raises:
        InvalidMoneyFormatError: float input, non-numeric text, NaN/inf, or
            more decimal places than the currency allows.
    """
    exponent = CURRENCY_EXPONENTS[validate_currency(currency)]

    if isinstance(value, bool) or isinstance(value, float):
        raise InvalidMoneyFormatError(value, "floating point amounts are not accepted")
    if isinstance(value, int):
        return value * (10 ** exponent)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise InvalidMoneyFormatError(value, "empty amount")
        try:
            amount = Decimal(text)
        except InvalidOperation:
            raise InvalidMoneyFormatError(value, "not a decimal number") from None
    elif isinstance(value, Decimal):
        amount = value
    else:
        raise InvalidMoneyFormatError(value, f"unsupported type {type(value).__name__}")

    if not amount.is_finite():
        raise InvalidMoneyFormatError(value, "amount must be finite")

    scaled = amount.scaleb(exponent)
    if scaled != scaled.to_integral_value():
        raise InvalidMoneyFormatError(
            value, f"more than {exponent} decimal places for {currency}"
        )
    return int(scaled)

def from_minor_units(cents: int, currency: str = "EUR") -> Decimal:
    """Integer minor units -> Decimal major units with the currency's scale."""
    exponent = CURRENCY_EXPONENTS[validate_currency(currency)]
    return Decimal(cents).scaleb(-exponent).quantize(Decimal(1).scaleb(-exponent))

def format_minor_units(cents: int, currency: str = "EUR") -> str:
    """Display form: 4000 -> "40.00".  Pure read-side transform."""
    return str(from_minor_units(cents, currency))

def round_half_up(value: Decimal) -> int:
    """Round a Decimal to the nearest integer, halves away from zero."""
    return int(value.quantize(Decimal(1), rounding=DEFAULT_ROUNDING))
