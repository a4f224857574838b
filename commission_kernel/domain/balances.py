"""
BalanceSnapshot -- the single authoritative balance derivation.

Responsibility:
    Value object for a partner's four balance columns plus the pure
    transitions the ledger engine applies to them.  ``withdrawable`` is
    derived here and nowhere else.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  The ledger engine is the only
    writer that turns a snapshot back into column values.

Invariants enforced:
    Symmetric hold convention: a HOLD moves cents from ``available`` into
    ``on_hold``; a release moves them back.  Therefore at all times

        available   == earned - paid - on_hold
        withdrawable == max(0, available)
        0 <= on_hold,  0 <= available,  0 <= paid

    With no active hold this reduces to ``available == earned - paid``.

Failure modes:
    ``violations()`` lists broken invariants; it never raises.  The ledger
    engine turns a non-empty list into BalanceInvariantError.
"""

from __future__ import annotations

from dataclasses import dataclass, replace


@dataclass(frozen=True)
class BalanceSnapshot:
    """Partner balances in integer cents."""

    earned: int = 0
    paid: int = 0
    on_hold: int = 0
    available: int = 0

    @classmethod
    def of(cls, partner) -> BalanceSnapshot:
        return cls(
            earned=partner.commission_earned or 0,
            paid=partner.commission_paid or 0,
            on_hold=partner.commission_on_hold or 0,
            available=partner.available_commission or 0,
        )

    @property
    def withdrawable(self) -> int:
        return max(0, self.available)

    # -- transitions ---------------------------------------------------------

    def credit(self, amount: int) -> BalanceSnapshot:
        """EARN, ADD and BONUS."""
        return replace(self, earned=self.earned + amount, available=self.available + amount)

    def debit(self, amount: int) -> BalanceSnapshot:
        """DEDUCT."""
        return replace(self, earned=self.earned - amount, available=self.available - amount)

    def pay_out(self, amount: int) -> BalanceSnapshot:
        return replace(self, paid=self.paid + amount, available=self.available - amount)

    def reverse_payout(self, amount: int) -> BalanceSnapshot:
        return replace(self, paid=self.paid - amount, available=self.available + amount)

    def hold(self, amount: int) -> BalanceSnapshot:
        return replace(self, on_hold=self.on_hold + amount, available=self.available - amount)

    def release(self, amount: int) -> BalanceSnapshot:
        return replace(self, on_hold=self.on_hold - amount, available=self.available + amount)

    # -- invariants ----------------------------------------------------------

    def violations(self) -> list[str]:
        problems: list[str] = []
        if self.available != self.earned - self.paid - self.on_hold:
            problems.append(
                f"available {self.available} != earned {self.earned} - paid "
                f"{self.paid} - on_hold {self.on_hold}"
            )
        if self.available < 0:
            problems.append(f"available {self.available} is negative")
        if self.on_hold < 0:
            problems.append(f"on_hold {self.on_hold} is negative")
        if self.paid < 0:
            problems.append(f"paid {self.paid} is negative")
        return problems

    def as_dict(self) -> dict[str, int]:
        return {
            "earned": self.earned,
            "paid": self.paid,
            "on_hold": self.on_hold,
            "available": self.available,
            "withdrawable": self.withdrawable,
        }
