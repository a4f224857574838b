"""
PartnerService -- partner registry and referral tracking.

Responsibility:
    Registers partners (unique email, generated referral code, zero
    balances), moves them through their soft lifecycle, records referral
    clicks and links signing-up clients to the referring partner.

Architecture position:
    Kernel > Services.  Flush-only.

Invariants enforced:
    - Never touches balance columns; new partners start at zero and the
      ledger engine is the only writer afterwards.
    - referral_code is generated once and never changed.
    - Lifecycle: pending -> active, active <-> suspended, any -> inactive.
      inactive is final.  No hard deletes.

Failure modes:
    - DuplicatePartnerError for an already-registered email.
    - PartnerStatusError for a disallowed lifecycle move.
    - InvalidCommissionRateError for a rate outside [0, 100].
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select, update

from commission_kernel.domain.commission import validate_commission_rate
from commission_kernel.exceptions import (
    DuplicatePartnerError,
    PartnerNotFoundError,
    PartnerStatusError,
)
from commission_kernel.logging_config import get_logger
from commission_kernel.models.partner import Partner, PartnerStatus
from commission_kernel.models.referred_client import ClientSource, ReferredClient
from commission_kernel.services.base import BaseService
from commission_kernel.utils.references import generate_referral_code

logger = get_logger("services.partner")

_CODE_ATTEMPTS = 5

_ALLOWED_TRANSITIONS: dict[PartnerStatus, frozenset[PartnerStatus]] = {
    PartnerStatus.PENDING: frozenset({PartnerStatus.ACTIVE, PartnerStatus.INACTIVE}),
    PartnerStatus.ACTIVE: frozenset({PartnerStatus.SUSPENDED, PartnerStatus.INACTIVE}),
    PartnerStatus.SUSPENDED: frozenset({PartnerStatus.ACTIVE, PartnerStatus.INACTIVE}),
    PartnerStatus.INACTIVE: frozenset(),
}


class PartnerService(BaseService[Partner]):
    """Partner registration, lifecycle and referral counters."""

    def register(
        self,
        name: str,
        email: str,
        actor_id: UUID,
        commission_rate: Decimal | str | int = Decimal("10"),
        activate: bool = False,
        referral_prefix: str = "HKP",
        preferred_payout_method: str | None = None,
    ) -> Partner:
        normalized = email.strip().lower()
        existing = self.session.execute(
            select(Partner.id).where(Partner.email == normalized)
        ).scalar_one_or_none()
        if existing is not None:
            raise DuplicatePartnerError(normalized)

        partner = Partner(
            id=uuid4(),
            name=name.strip(),
            email=normalized,
            referral_code=self._unique_referral_code(referral_prefix),
            status=PartnerStatus.ACTIVE if activate else PartnerStatus.PENDING,
            commission_rate=validate_commission_rate(commission_rate),
            commission_earned=0,
            commission_paid=0,
            commission_on_hold=0,
            available_commission=0,
            total_referral_sales=0,
            referral_clicks=0,
            preferred_payout_method=preferred_payout_method,
            created_by_id=actor_id,
        )
        self.session.add(partner)
        self.session.flush()

        logger.info(
            "partner_registered",
            extra={
                "partner_id": str(partner.id),
                "referral_code": partner.referral_code,
                "status": PartnerStatus(partner.status).value,
            },
        )
        return partner

    def get(self, partner_id: UUID) -> Partner:
        partner = self.session.get(Partner, partner_id)
        if partner is None:
            raise PartnerNotFoundError(str(partner_id))
        return partner

    def get_by_referral_code(self, referral_code: str) -> Partner | None:
        stmt = select(Partner).where(Partner.referral_code == referral_code.strip().upper())
        return self.session.execute(stmt).scalar_one_or_none()

    def activate(self, partner_id: UUID, actor_id: UUID) -> Partner:
        return self._transition(partner_id, PartnerStatus.ACTIVE, actor_id)

    def suspend(self, partner_id: UUID, actor_id: UUID) -> Partner:
        return self._transition(partner_id, PartnerStatus.SUSPENDED, actor_id)

    def deactivate(self, partner_id: UUID, actor_id: UUID) -> Partner:
        return self._transition(partner_id, PartnerStatus.INACTIVE, actor_id)

    def update_commission_rate(
        self, partner_id: UUID, rate: Decimal | str | int, actor_id: UUID
    ) -> Partner:
        """Change the rate applied to future EARNs; past entries keep theirs."""
        value = validate_commission_rate(rate)
        partner = self.get(partner_id)
        previous = partner.commission_rate
        partner.commission_rate = value
        partner.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "partner_commission_rate_changed",
            extra={"partner_id": str(partner_id), "from_rate": previous, "to_rate": value},
        )
        return partner

    def record_referral_click(self, referral_code: str) -> int | None:
        """
        Count one click on a referral link.

        Uses a single UPDATE ... SET referral_clicks = referral_clicks + 1 so
        concurrent clicks never lose increments and never contend with the
        ledger's versioned balance writes.  Unknown codes return None.
        """
        code = referral_code.strip().upper()
        result = self.session.execute(
            update(Partner)
            .where(Partner.referral_code == code)
            .values(
                referral_clicks=Partner.referral_clicks + 1,
                last_click_at=self.clock.now(),
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            logger.info("referral_click_unknown_code", extra={"referral_code": code})
            return None
        clicks = self.session.execute(
            select(Partner.referral_clicks).where(Partner.referral_code == code)
        ).scalar_one()
        logger.debug("referral_click_recorded", extra={"referral_code": code, "clicks": clicks})
        return clicks

    def register_referred_client(
        self,
        email: str,
        actor_id: UUID,
        name: str | None = None,
        referral_code: str | None = None,
    ) -> ReferredClient:
        """Record a client signup, linked to the partner when the code is active."""
        partner = None
        if referral_code:
            partner = self.get_by_referral_code(referral_code)
            if partner is not None and not partner.is_active:
                partner = None

        client = ReferredClient(
            id=uuid4(),
            email=email.strip().lower(),
            name=name,
            referred_by_id=partner.id if partner else None,
            referral_code=partner.referral_code if partner else None,
            source=ClientSource.REFERRAL if partner else ClientSource.DIRECT,
            created_by_id=actor_id,
        )
        self.session.add(client)
        self.session.flush()
        logger.info(
            "client_registered",
            extra={
                "client_id": str(client.id),
                "partner_id": str(partner.id) if partner else None,
                "source": ClientSource(client.source).value,
            },
        )
        return client

    def _transition(self, partner_id: UUID, target: PartnerStatus, actor_id: UUID) -> Partner:
        partner = self.get(partner_id)
        current = PartnerStatus(partner.status)
        if current is target:
            return partner
        if target not in _ALLOWED_TRANSITIONS[current]:
            raise PartnerStatusError(str(partner_id), current.value, target.value)
        partner.status = target
        partner.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "partner_status_changed",
            extra={
                "partner_id": str(partner_id),
                "from_status": current.value,
                "to_status": target.value,
            },
        )
        return partner

    def _unique_referral_code(self, prefix: str) -> str:
        for _ in range(_CODE_ATTEMPTS):
            code = generate_referral_code(prefix)
            taken = self.session.execute(
                select(Partner.id).where(Partner.referral_code == code)
            ).scalar_one_or_none()
            if taken is None:
                return code
        raise RuntimeError(f"Could not generate a unique referral code after {_CODE_ATTEMPTS} attempts")
