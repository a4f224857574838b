"""
Human-facing identifiers for partners and ledger entries.

Referral codes are shared by partners with customers; reference numbers
appear on payout statements and in support conversations.  Both are
random, so uniqueness is ultimately guaranteed by the unique constraints
on the owning tables; callers retry generation on collision.
"""

import secrets
from datetime import datetime


def generate_referral_code(prefix: str = "HKP") -> str:
    """
    Generate a referral code.

    Format: ``{prefix}-XXXXXX`` with six upper-case hex digits.

    Example:
        >>> generate_referral_code()
        'HKP-3FA92C'
    """
    return f"{prefix}-{secrets.token_hex(3).upper()}"


def generate_reference_number(now: datetime, prefix: str = "CTX") -> str:
    """
    Generate a ledger entry reference number.

    Format: ``{prefix}-{8 HEX}-{last 6 digits of the epoch milliseconds}``.
    """
    millis = int(now.timestamp() * 1000)
    return f"{prefix}-{secrets.token_hex(4).upper()}-{millis % 1_000_000:06d}"


def parse_reference_number(reference: str) -> tuple[str, str, str]:
    """
    Split a reference number into (prefix, random part, time part).

    Raises:
        ValueError: If the reference is not in the generated format.
    """
    parts = reference.split("-")
    if len(parts) != 3 or len(parts[1]) != 8 or len(parts[2]) != 6:
        raise ValueError(f"Invalid reference number format: {reference}")
    return parts[0], parts[1], parts[2]
