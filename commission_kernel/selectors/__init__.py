"""Read-only query side of the commission kernel."""

from commission_kernel.selectors.reconciliation_selector import (
    EntryDiscrepancy,
    ReconciliationReport,
    ReconciliationSelector,
)
from commission_kernel.selectors.summary_selector import (
    PartnerSummary,
    SummarySelector,
    TypeTotal,
    conversion_rate,
)
from commission_kernel.selectors.transaction_selector import (
    CommissionTransactionDTO,
    TransactionFilter,
    TransactionPage,
    TransactionSelector,
)

__all__ = [
    "CommissionTransactionDTO",
    "EntryDiscrepancy",
    "PartnerSummary",
    "ReconciliationReport",
    "ReconciliationSelector",
    "SummarySelector",
    "TransactionFilter",
    "TransactionPage",
    "TransactionSelector",
    "TypeTotal",
    "conversion_rate",
]
