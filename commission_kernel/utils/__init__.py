"""Utility functions for the commission kernel."""

from commission_kernel.utils.references import (
    generate_reference_number,
    generate_referral_code,
    parse_reference_number,
)

__all__ = [
    "generate_reference_number",
    "generate_referral_code",
    "parse_reference_number",
]
