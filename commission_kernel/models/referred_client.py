"""
Module: commission_kernel.models.referred_client
Responsibility: Clients who signed up, optionally through a partner's
    referral code.  Append-only; used for partner statistics (client count,
    conversion rate), never for money.
"""

from __future__ import annotations

from enum import Enum
from uuid import UUID

from sqlalchemy import ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from commission_kernel.db.base import TrackedBase, UUIDString


class ClientSource(str, Enum):
    DIRECT = "direct"
    REFERRAL = "referral"


class ReferredClient(TrackedBase):
    __tablename__ = "referred_clients"

    __table_args__ = (
        UniqueConstraint("email", name="uq_referred_client_email"),
        Index("idx_referred_client_partner", "referred_by_id"),
    )

    email: Mapped[str] = mapped_column(String(255), nullable=False)

    name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    referred_by_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("partners.id"), nullable=True
    )

    referral_code: Mapped[str | None] = mapped_column(String(20), nullable=True)

    source: Mapped[ClientSource] = mapped_column(
        String(20),
        nullable=False,
        default=ClientSource.DIRECT,
    )

    def __repr__(self) -> str:
        return f"<ReferredClient {self.email} ({self.source})>"
