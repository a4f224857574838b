"""Flush-only kernel services.  The caller owns the transaction."""

from commission_kernel.services.attribution_service import (
    AttributionResult,
    ReferralAttributionService,
)
from commission_kernel.services.ledger_service import (
    CommissionLedgerService,
    LedgerEntryResult,
    StatusCorrectionResult,
)
from commission_kernel.services.partner_service import PartnerService

__all__ = [
    "AttributionResult",
    "CommissionLedgerService",
    "LedgerEntryResult",
    "PartnerService",
    "ReferralAttributionService",
    "StatusCorrectionResult",
]
