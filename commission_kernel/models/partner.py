"""
Module: commission_kernel.models.partner
Responsibility: ORM persistence for referral partners and their balance
    columns.
Architecture position: Kernel > Models.  May import db/ and domain/ (pure
    value objects).  MUST NOT import services/, selectors/ or outer packages.

Invariants enforced:
    - email and referral_code are unique; referral_code is immutable after
      insert (db/immutability.py).
    - Balance columns are integer cents and change only inside the ledger
      engine's write scope (db/immutability.py).
    - ``version`` is the optimistic concurrency counter: a stale UPDATE
      raises StaleDataError instead of overwriting a concurrent write.
    - Partners are never deleted; retirement is ``status = inactive``.

Failure modes:
    - IntegrityError on duplicate email or referral code.
    - StaleDataError when two transactions update the same partner from
      the same version.

Audit relevance:
    The four balance columns are a materialized view of the commission
    ledger.  selectors/reconciliation_selector.py recomputes them from the
    ledger and reports any drift.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy import BigInteger, Index, Integer, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from commission_kernel.db.base import TrackedBase
from commission_kernel.domain.balances import BalanceSnapshot

BALANCE_COLUMNS = (
    "commission_earned",
    "commission_paid",
    "commission_on_hold",
    "available_commission",
)


class PartnerStatus(str, Enum):
    """Partner lifecycle.

    pending -> active <-> suspended, any -> inactive.  Only active partners
    are eligible for new commission attribution.
    """

    PENDING = "pending"
    ACTIVE = "active"
    SUSPENDED = "suspended"
    INACTIVE = "inactive"


class Partner(TrackedBase):
    """A referral agent earning commission on referred orders."""

    __tablename__ = "partners"

    __table_args__ = (
        UniqueConstraint("email", name="uq_partner_email"),
        UniqueConstraint("referral_code", name="uq_partner_referral_code"),
        Index("idx_partner_status", "status"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Stored lower-cased
    email: Mapped[str] = mapped_column(String(255), nullable=False)

    referral_code: Mapped[str] = mapped_column(String(20), nullable=False)

    status: Mapped[PartnerStatus] = mapped_column(
        String(20),
        nullable=False,
        default=PartnerStatus.PENDING,
    )

    # Percent of the order price, e.g. 10.00
    commission_rate: Mapped[Decimal] = mapped_column(
        Numeric(5, 2),
        nullable=False,
        default=Decimal("10"),
    )

    # Balance columns (integer cents), owned by the ledger engine
    commission_earned: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    commission_paid: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    commission_on_hold: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    available_commission: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)

    # Reporting counters
    total_referral_sales: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    referral_clicks: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    last_click_at: Mapped[datetime | None] = mapped_column(nullable=True)

    preferred_payout_method: Mapped[str | None] = mapped_column(String(20), nullable=True)
    last_payout_at: Mapped[datetime | None] = mapped_column(nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    @property
    def balances(self) -> BalanceSnapshot:
        return BalanceSnapshot.of(self)

    @property
    def withdrawable_commission(self) -> int:
        """Derived through BalanceSnapshot; never stored."""
        return self.balances.withdrawable

    @property
    def is_active(self) -> bool:
        return self.status == PartnerStatus.ACTIVE

    def __repr__(self) -> str:
        return f"<Partner {self.referral_code}: {self.email} ({self.status})>"