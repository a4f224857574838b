"""
Module: commission_kernel.selectors.transaction_selector
Responsibility: Read-only access to commission ledger entries: single
    lookup, filtered and paginated history (newest first), recent entries.
Architecture position: Kernel > Selectors.  Returns frozen DTOs.

Invariants enforced:
    - No locks, no writes.
    - History order is (occurred_at DESC, sequence DESC): deterministic even
      when several entries share a timestamp.
    - Free-text search is case-insensitive over description, reference
      number and external reference; LIKE wildcards in the term are
      matched literally.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func, or_, select

from commission_kernel.db.types import format_minor_units
from commission_kernel.domain.clock import as_utc
from commission_kernel.domain.commission import TransactionStatus, TransactionType
from commission_kernel.models.commission_transaction import CommissionTransaction
from commission_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class CommissionTransactionDTO:
    id: UUID
    partner_id: UUID
    sequence: int
    reference_number: str
    transaction_type: TransactionType
    status: TransactionStatus
    amount: int
    currency: str
    description: str
    balance_before: int
    balance_after: int
    on_hold_before: int
    on_hold_after: int
    occurred_at: datetime
    order_id: UUID | None = None
    admin_notes: str | None = None
    external_reference: str | None = None
    payment_method: str | None = None
    payment_date: datetime | None = None
    processed_by_id: UUID | None = None
    settled_at: datetime | None = None
    reversed_at: datetime | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def formatted_amount(self) -> str:
        return format_minor_units(self.amount, self.currency)


@dataclass(frozen=True)
class TransactionFilter:
    """History filters.  ``end`` is exclusive."""

    transaction_type: TransactionType | None = None
    status: TransactionStatus | None = None
    start: datetime | None = None
    end: datetime | None = None
    search: str | None = None


@dataclass(frozen=True)
class TransactionPage:
    items: tuple[CommissionTransactionDTO, ...]
    total: int
    page: int
    limit: int

    @property
    def pages(self) -> int:
        return (self.total + self.limit - 1) // self.limit if self.limit else 0

    @property
    def has_next(self) -> bool:
        return self.page < self.pages


def _escape_like(term: str) -> str:
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class TransactionSelector(BaseSelector[CommissionTransaction]):
    """Commission ledger queries."""

    def get(self, transaction_id: UUID) -> CommissionTransactionDTO | None:
        row = self.session.get(CommissionTransaction, transaction_id)
        return self._to_dto(row) if row is not None else None

    def list_for_partner(
        self,
        partner_id: UUID,
        filters: TransactionFilter | None = None,
        page: int = 1,
        limit: int = 20,
        max_limit: int = 100,
    ) -> TransactionPage:
        page = max(1, page)
        limit = max(1, min(limit, max_limit))
        conditions = self._conditions(partner_id, filters or TransactionFilter())

        total = self.session.execute(
            select(func.count()).select_from(CommissionTransaction).where(*conditions)
        ).scalar_one()

        rows = self.session.execute(
            select(CommissionTransaction)
            .where(*conditions)
            .order_by(
                CommissionTransaction.occurred_at.desc(),
                CommissionTransaction.sequence.desc(),
            )
            .offset((page - 1) * limit)
            .limit(limit)
        ).scalars()

        return TransactionPage(
            items=tuple(self._to_dto(r) for r in rows),
            total=int(total),
            page=page,
            limit=limit,
        )

    def recent(self, partner_id: UUID, limit: int = 10) -> tuple[CommissionTransactionDTO, ...]:
        return self.list_for_partner(partner_id, page=1, limit=limit, max_limit=limit).items

    @staticmethod
    def _conditions(partner_id: UUID, filters: TransactionFilter) -> list:
        conditions = [CommissionTransaction.partner_id == partner_id]
        if filters.transaction_type is not None:
            kind = TransactionType.parse(filters.transaction_type)
            conditions.append(CommissionTransaction.transaction_type == kind)
        if filters.status is not None:
            conditions.append(CommissionTransaction.status == TransactionStatus.parse(filters.status))
        if filters.start is not None:
            conditions.append(CommissionTransaction.occurred_at >= as_utc(filters.start))
        if filters.end is not None:
            conditions.append(CommissionTransaction.occurred_at < as_utc(filters.end))
        term = (filters.search or "").strip()
        if term:
            pattern = f"%{_escape_like(term)}%"
            conditions.append(
                or_(
                    CommissionTransaction.description.ilike(pattern, escape="\\"),
                    CommissionTransaction.reference_number.ilike(pattern, escape="\\"),
                    CommissionTransaction.external_reference.ilike(pattern, escape="\\"),
                )
            )
        return conditions

    @staticmethod
    def _to_dto(row: CommissionTransaction) -> CommissionTransactionDTO:
        return CommissionTransactionDTO(
            id=row.id,
            partner_id=row.partner_id,
            sequence=row.sequence,
            reference_number=row.reference_number,
            transaction_type=TransactionType(row.transaction_type),
            status=TransactionStatus(row.status),
            amount=row.amount,
            currency=row.currency,
            description=row.description,
            balance_before=row.balance_before,
            balance_after=row.balance_after,
            on_hold_before=row.on_hold_before,
            on_hold_after=row.on_hold_after,
            occurred_at=as_utc(row.occurred_at),
            order_id=row.order_id,
            admin_notes=row.admin_notes,
            external_reference=row.external_reference,
            payment_method=row.payment_method,
            payment_date=as_utc(row.payment_date),
            processed_by_id=row.processed_by_id,
            settled_at=as_utc(row.settled_at),
            reversed_at=as_utc(row.reversed_at),
            metadata=dict(row.transaction_metadata or {}),
        )
