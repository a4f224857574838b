"""
Property-based tests for the commission ledger.

Random sequences of administrative operations (adjustments, holds,
releases, payouts, payout requests, approvals and cancellations) run
against one partner.  After every step:

- the stored balances match a shadow model updated only on success,
- earned - paid - on_hold == available, with paid and on_hold never negative,
- replaying the ledger reproduces the stored balances.

Business-rule rejections are expected along the way; they must leave the
balances untouched.
"""

from uuid import uuid4

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from commission_kernel.domain.commission import AdjustmentType
from commission_kernel.exceptions import (
    BusinessRuleError,
    DeductionExceedsBalanceError,
    InsufficientFundsError,
)
from commission_kernel.selectors.reconciliation_selector import ReconciliationSelector
from tests.conftest import TEST_ACTOR_ID

OPERATIONS = ("add", "bonus", "deduct", "hold", "release", "payout", "request", "approve", "cancel")

amounts = st.integers(min_value=1, max_value=50_000)
steps = st.lists(st.tuples(st.sampled_from(OPERATIONS), amounts, st.integers(0, 10)), max_size=25)


class Shadow:
    """Expected balances, updated only when the ledger accepts an operation."""

    def __init__(self):
        self.earned = 0
        self.paid = 0
        self.on_hold = 0
        self.holds: dict = {}
        self.requests: dict = {}
        self.settled_payouts: dict = {}

    @property
    def available(self) -> int:
        return self.earned - self.paid - self.on_hold

    @property
    def withdrawable(self) -> int:
        return max(0, self.available)


def _pick(pool: dict, index: int):
    if not pool:
        return None
    return list(pool)[index % len(pool)]


def _apply(ledger, partner_id, shadow: Shadow, op: str, amount: int, index: int) -> None:
    if op in ("add", "bonus"):
        kind = AdjustmentType.ADD if op == "add" else AdjustmentType.BONUS
        ledger.adjust(partner_id, amount, kind, f"Fuzz {op}", TEST_ACTOR_ID)
        shadow.earned += amount
    elif op == "deduct":
        try:
            ledger.adjust(partner_id, amount, AdjustmentType.DEDUCT, "Fuzz deduct", TEST_ACTOR_ID)
        except DeductionExceedsBalanceError:
            assert amount > shadow.available
            return
        assert amount <= shadow.available
        shadow.earned -= amount
    elif op == "hold":
        result = ledger.hold(partner_id, amount, "Fuzz hold", TEST_ACTOR_ID)
        shadow.on_hold += amount
        shadow.holds[result.transaction_id] = amount
    elif op == "release":
        hold_id = _pick(shadow.holds, index)
        if hold_id is None:
            return
        ledger.release_hold(hold_id, TEST_ACTOR_ID, reason="Fuzz release")
        shadow.on_hold -= shadow.holds.pop(hold_id)
    elif op == "payout":
        try:
            result = ledger.payout(partner_id, amount, TEST_ACTOR_ID)
        except InsufficientFundsError:
            assert amount > shadow.withdrawable
            return
        assert amount <= shadow.withdrawable
        shadow.paid += amount
        shadow.settled_payouts[result.transaction_id] = amount
    elif op == "request":
        result = ledger.request_payout(partner_id, amount)
        shadow.requests[result.transaction_id] = amount
    elif op == "approve":
        request_id = _pick(shadow.requests, index)
        if request_id is None:
            return
        try:
            ledger.approve_payout_request(request_id, TEST_ACTOR_ID)
        except InsufficientFundsError:
            assert shadow.requests[request_id] > shadow.withdrawable
            return
        requested = shadow.requests.pop(request_id)
        shadow.paid += requested
        shadow.settled_payouts[request_id] = requested
    elif op == "cancel":
        payout_id = _pick(shadow.settled_payouts, index)
        if payout_id is None:
            return
        result = ledger.cancel_payout(payout_id, TEST_ACTOR_ID)
        assert result.payout_reversed
        shadow.paid -= shadow.settled_payouts.pop(payout_id)


class TestLedgerProperties:
    @given(operations=steps)
    @settings(
        max_examples=60,
        deadline=None,
        suppress_health_check=[HealthCheck.too_slow, HealthCheck.function_scoped_fixture],
    )
    def test_balances_follow_the_ledger(self, session, ledger, partner_service, operations):
        partner = partner_service.register(
            "Fuzz Partner", f"fuzz-{uuid4().hex}@example.com", TEST_ACTOR_ID, activate=True
        )
        shadow = Shadow()

        for op, amount, index in operations:
            before = partner.balances
            try:
                _apply(ledger, partner.id, shadow, op, amount, index)
            except BusinessRuleError:
                assert partner.balances == before
                continue

            balances = partner.balances
            assert (balances.earned, balances.paid, balances.on_hold) == (
                shadow.earned,
                shadow.paid,
                shadow.on_hold,
            )
            assert balances.available == shadow.available
            assert balances.paid >= 0 and balances.on_hold >= 0
            assert not balances.violations()

        session.flush()
        report = ReconciliationSelector(session).verify_partner(partner.id)
        assert report.is_consistent, (report.balance_drift, report.entry_discrepancies)

    @given(amount=amounts, pending=st.lists(amounts, max_size=4))
    @settings(
        max_examples=40,
        deadline=None,
        suppress_health_check=[HealthCheck.function_scoped_fixture],
    )
    def test_requests_never_exceed_withdrawable(self, ledger, partner_service, amount, pending):
        partner = partner_service.register(
            "Request Partner", f"req-{uuid4().hex}@example.com", TEST_ACTOR_ID, activate=True
        )
        ledger.adjust(partner.id, amount, AdjustmentType.ADD, "Fuzz funding", TEST_ACTOR_ID)

        reserved = 0
        for requested in pending:
            try:
                ledger.request_payout(partner.id, requested)
            except BusinessRuleError:
                assert reserved + requested > amount
                continue
            reserved += requested

        assert reserved <= amount
        assert ledger._pending_payout_total(partner.id) == reserved
        assert partner.balances.available == amount
