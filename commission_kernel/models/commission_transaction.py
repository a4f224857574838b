"""
Module: commission_kernel.models.commission_transaction
Responsibility: ORM persistence for commission ledger entries.  One row per
    balance-affecting event (plus pending payout requests, which affect no
    balance until approved).
Architecture position: Kernel > Models.  May import db/ and domain/.
    MUST NOT import services/, selectors/ or outer packages.

Invariants enforced:
    - At most one EARNED entry per order (partial unique index
      ``uq_commission_earned_per_order``).  This is the storage-level
      backstop for EARN idempotency.
    - reference_number is unique.
    - Once a row has left PENDING its financial fields (amount, type,
      partner, order, snapshots, reference) are frozen; only ``status`` and
      annotation fields may change (db/immutability.py).
    - ``settled_at`` marks the moment the entry's effect was applied to the
      partner; ``reversed_at`` marks a cancelled payout whose effect was
      undone.  Both are write-once.
    - Rows are never deleted.

Failure modes:
    - IntegrityError on a second EARNED row for the same order.
    - ImmutabilityViolationError on edits to a settled entry.

Audit relevance:
    balance_before / balance_after bracket ``available_commission`` and
    on_hold_before / on_hold_after bracket ``commission_on_hold`` at the
    moment of the operation, so every balance can be re-derived and every
    step checked (selectors/reconciliation_selector.py).
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, BigInteger, ForeignKey, Index, String, Text, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from commission_kernel.db.base import TrackedBase, UUIDString
from commission_kernel.domain.commission import TransactionStatus, TransactionType

# Columns frozen once the row leaves PENDING
FINANCIAL_FIELDS = frozenset(
    {
        "partner_id",
        "order_id",
        "transaction_type",
        "amount",
        "balance_before",
        "balance_after",
        "on_hold_before",
        "on_hold_after",
        "reference_number",
        "sequence",
    }
)

# Columns that may be set once and never changed afterwards
WRITE_ONCE_FIELDS = frozenset({"settled_at", "reversed_at"})


class CommissionTransaction(TrackedBase):
    """An immutable commission ledger entry."""

    __tablename__ = "commission_transactions"

    __table_args__ = (
        UniqueConstraint("reference_number", name="uq_commission_reference_number"),
        UniqueConstraint("partner_id", "sequence", name="uq_commission_partner_sequence"),
        Index("idx_commission_partner_occurred", "partner_id", "occurred_at"),
        Index("idx_commission_type_status", "transaction_type", "status"),
        Index(
            "uq_commission_earned_per_order",
            "order_id",
            unique=True,
            sqlite_where=text("transaction_type = 'EARNED'"),
            postgresql_where=text("transaction_type = 'EARNED'"),
        ),
    )

    partner_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("partners.id"),
        nullable=False,
    )

    order_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("orders.id"),
        nullable=True,
    )

    # Per-partner monotonic position in the ledger
    sequence: Mapped[int] = mapped_column(BigInteger, nullable=False)

    transaction_type: Mapped[TransactionType] = mapped_column(String(20), nullable=False)

    status: Mapped[TransactionStatus] = mapped_column(
        String(20),
        nullable=False,
        default=TransactionStatus.COMPLETED,
    )

    # Positive integer cents
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)

    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="EUR")

    description: Mapped[str] = mapped_column(String(500), nullable=False)

    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    reference_number: Mapped[str] = mapped_column(String(40), nullable=False)

    # Processor id for payouts (bank reference, PayPal id, ...)
    external_reference: Mapped[str | None] = mapped_column(String(255), nullable=True)

    payment_method: Mapped[str | None] = mapped_column(String(20), nullable=True)

    payment_date: Mapped[datetime | None] = mapped_column(nullable=True)

    # Admin who performed or last corrected the entry
    processed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    # Snapshots of available_commission
    balance_before: Mapped[int] = mapped_column(BigInteger, nullable=False)
    balance_after: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # Snapshots of commission_on_hold
    on_hold_before: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    on_hold_after: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    # Business time from the injected clock
    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    settled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    reversed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    transaction_metadata: Mapped[dict[str, Any] | None] = mapped_column(
        "metadata",
        JSON,
        nullable=True,
    )

    @property
    def is_settled(self) -> bool:
        """Effect has been applied and not undone."""
        return self.settled_at is not None and self.reversed_at is None

    @property
    def adjustment_type(self) -> str | None:
        return (self.transaction_metadata or {}).get("adjustment_type")

    def __repr__(self) -> str:
        return (
            f"<CommissionTransaction {self.reference_number}: {self.transaction_type} "
            f"{self.amount} ({self.status})>"
        )
