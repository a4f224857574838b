"""
Module: commission_kernel.models.order
Responsibility: ORM persistence for customer orders as seen by the
    commission ledger.  Checkout, pricing and fulfilment live elsewhere; the
    ledger reads an order's price and referral linkage and stamps the
    attribution and commission-processed markers.
Architecture position: Kernel > Models.  May import db/ only.

Invariants enforced:
    - ``commission_processed`` is set in the same transaction that appends
      the EARNED entry, so a redelivered payment event cannot credit twice.
    - ``attribution_resolved_at`` is set exactly once; afterwards
      ``attributed_partner_id`` is the only input EARN uses.
    - ``version`` guards concurrent status updates (optimistic locking).

Audit relevance:
    commission_amount records the cents credited for the order, so the
    order row and its EARNED entry can be cross-checked.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import BigInteger, Boolean, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from commission_kernel.db.base import TrackedBase, UUIDString


class OrderStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"


class Order(TrackedBase):
    """A customer order that may carry a referral linkage."""

    __tablename__ = "orders"

    __table_args__ = (
        Index("idx_order_referred_by", "referred_by_id"),
        Index("idx_order_attributed_partner", "attributed_partner_id"),
        Index("idx_order_status", "status"),
    )

    customer_email: Mapped[str] = mapped_column(String(255), nullable=False)

    # Integer cents
    original_price: Mapped[int] = mapped_column(BigInteger, nullable=False)

    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="EUR")

    status: Mapped[OrderStatus] = mapped_column(
        String(20),
        nullable=False,
        default=OrderStatus.PENDING,
    )

    # Referral linkage captured at order placement
    referral_code: Mapped[str | None] = mapped_column(String(20), nullable=True)
    referred_by_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("partners.id"), nullable=True
    )
    referral_expires_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Attribution outcome, resolved once at payment completion
    attributed_partner_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("partners.id"), nullable=True
    )
    attribution_resolved_at: Mapped[datetime | None] = mapped_column(nullable=True)
    attribution_note: Mapped[str | None] = mapped_column(String(100), nullable=True)

    payment_confirmed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    payment_failure_reason: Mapped[str | None] = mapped_column(String(255), nullable=True)

    commission_processed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    commission_processed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    commission_amount: Mapped[int | None] = mapped_column(BigInteger, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def is_completed(self) -> bool:
        return self.status == OrderStatus.COMPLETED

    def __repr__(self) -> str:
        return f"<Order {self.id}: {self.original_price} {self.currency} ({self.status})>"
