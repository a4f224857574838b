"""
Module: commission_kernel.selectors.reconciliation_selector
Responsibility: Re-derive partner balances from the commission ledger and
    compare them with the stored Partner columns.
Architecture position: Kernel > Selectors.  Read-only; used by the
    reporting service and ``scripts/reconcile_commissions.py``.

Invariants checked:
    - Stored balances equal the replay of every entry whose effect is
      applied (``settled_at`` set, ``reversed_at`` not set).
    - For every applied entry, ``balance_after - balance_before`` equals its
      signed effect on available commission and ``on_hold_after -
      on_hold_before`` its effect on the on-hold balance.
    - Entries never applied (pending, or cancelled before approval) carry
      identical before and after snapshots.
    - No entry reads COMPLETED unless its effect was applied.
    - The stored snapshot satisfies the balance invariants.

Failure modes:
    Never raises for drift; every finding is reported in
    ReconciliationReport.  PartnerNotFoundError for unknown partners.

Audit relevance:
    A consistent report is evidence that no code path wrote balances
    outside the ledger engine.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID

from sqlalchemy import select

from commission_kernel.domain.balances import BalanceSnapshot
from commission_kernel.domain.commission import (
    TransactionStatus,
    TransactionType,
    available_effect,
    on_hold_effect,
)
from commission_kernel.exceptions import PartnerNotFoundError
from commission_kernel.logging_config import get_logger
from commission_kernel.models.commission_transaction import CommissionTransaction
from commission_kernel.models.partner import Partner
from commission_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.reconciliation")


@dataclass(frozen=True)
class EntryDiscrepancy:
    transaction_id: UUID
    reference_number: str
    problem: str


@dataclass(frozen=True)
class ReconciliationReport:
    partner_id: UUID
    stored: BalanceSnapshot
    derived: BalanceSnapshot
    entries_checked: int
    entry_discrepancies: tuple[EntryDiscrepancy, ...] = ()
    balance_problems: tuple[str, ...] = field(default_factory=tuple)

    @property
    def balance_drift(self) -> dict[str, int]:
        """Field -> stored minus derived, for fields that differ."""
        stored, derived = self.stored.as_dict(), self.derived.as_dict()
        return {k: stored[k] - derived[k] for k in stored if stored[k] != derived[k]}

    @property
    def is_consistent(self) -> bool:
        return not (self.balance_drift or self.entry_discrepancies or self.balance_problems)


def replay(snapshot: BalanceSnapshot, entry: CommissionTransaction) -> BalanceSnapshot:
    """Apply one ledger entry's effect to ``snapshot``."""
    kind = TransactionType(entry.transaction_type)
    if kind in (TransactionType.EARNED, TransactionType.BONUS):
        return snapshot.credit(entry.amount)
    if kind is TransactionType.ADJUSTED:
        if available_effect(kind, entry.amount, entry.adjustment_type) < 0:
            return snapshot.debit(entry.amount)
        return snapshot.credit(entry.amount)
    if kind is TransactionType.PAID_OUT:
        return snapshot.pay_out(entry.amount)
    if kind is TransactionType.HOLD:
        return snapshot.hold(entry.amount)
    return snapshot.release(entry.amount)


class ReconciliationSelector(BaseSelector[CommissionTransaction]):
    """Ledger replay and stored-balance comparison."""

    def derive_balances(self, partner_id: UUID) -> BalanceSnapshot:
        snapshot = BalanceSnapshot()
        for entry in self._entries(partner_id):
            if entry.is_settled:
                snapshot = replay(snapshot, entry)
        return snapshot

    def verify_partner(self, partner_id: UUID) -> ReconciliationReport:
        partner = self.session.get(Partner, partner_id)
        if partner is None:
            raise PartnerNotFoundError(str(partner_id))

        entries = self._entries(partner_id)
        derived = BalanceSnapshot()
        discrepancies: list[EntryDiscrepancy] = []
        for entry in entries:
            problem = self._check_entry(entry)
            if problem:
                discrepancies.append(EntryDiscrepancy(entry.id, entry.reference_number, problem))
            if entry.is_settled:
                derived = replay(derived, entry)

        report = ReconciliationReport(
            partner_id=partner.id,
            stored=partner.balances,
            derived=derived,
            entries_checked=len(entries),
            entry_discrepancies=tuple(discrepancies),
            balance_problems=tuple(partner.balances.violations()),
        )
        if not report.is_consistent:
            logger.warning(
                "reconciliation_drift",
                extra={
                    "partner_id": str(partner_id),
                    "drift": report.balance_drift,
                    "entry_discrepancies": len(discrepancies),
                    "balance_problems": list(report.balance_problems),
                },
            )
        return report

    def verify_all(self) -> list[ReconciliationReport]:
        stmt = select(Partner.id).order_by(Partner.created_at, Partner.id)
        partner_ids = list(self.session.execute(stmt).scalars())
        return [self.verify_partner(pid) for pid in partner_ids]

    def _entries(self, partner_id: UUID) -> list[CommissionTransaction]:
        stmt = (
            select(CommissionTransaction)
            .where(CommissionTransaction.partner_id == partner_id)
            .order_by(CommissionTransaction.sequence)
        )
        return list(self.session.execute(stmt).scalars())

    @staticmethod
    def _check_entry(entry: CommissionTransaction) -> str | None:
        delta = entry.balance_after - entry.balance_before
        hold_delta = entry.on_hold_after - entry.on_hold_before
        if entry.settled_at is None:
            if entry.status == TransactionStatus.COMPLETED:
                return "completed entry was never applied to balances"
            if delta or hold_delta:
                return f"unapplied entry moved balances (available {delta}, on_hold {hold_delta})"
            return None
        expected = available_effect(entry.transaction_type, entry.amount, entry.adjustment_type)
        if delta != expected:
            return f"available delta {delta} != signed effect {expected}"
        expected_hold = on_hold_effect(entry.transaction_type, entry.amount)
        if hold_delta != expected_hold:
            return f"on_hold delta {hold_delta} != signed effect {expected_hold}"
        return None
