"""ORM models for the commission ledger."""

from commission_kernel.models.commission_transaction import CommissionTransaction
from commission_kernel.models.order import Order, OrderStatus
from commission_kernel.models.partner import BALANCE_COLUMNS, Partner, PartnerStatus
from commission_kernel.models.referred_client import ClientSource, ReferredClient

__all__ = [
    "BALANCE_COLUMNS",
    "ClientSource",
    "CommissionTransaction",
    "Order",
    "OrderStatus",
    "Partner",
    "PartnerStatus",
    "ReferredClient",
]
