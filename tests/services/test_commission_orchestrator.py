"""
Tests for CommissionOrchestrator: payment events end to end, and the
administrative ledger operations run through the transaction runner.

Every call here commits; state is read back through a fresh session.
"""

from uuid import uuid4

import pytest
from sqlalchemy import func, select

from commission_kernel.domain.commission import TransactionStatus, TransactionType
from commission_kernel.exceptions import (
    DeductionExceedsBalanceError,
    HoldAlreadyReleasedError,
    InvalidMoneyFormatError,
    MissingActorError,
)
from commission_kernel.models.commission_transaction import CommissionTransaction
from commission_kernel.models.order import Order, OrderStatus
from commission_kernel.models.partner import Partner, PartnerStatus
from tests.conftest import TEST_ACTOR_ID


def _partner(session_factory, partner_id) -> Partner:
    with session_factory() as s:
        return s.get(Partner, partner_id)


def _entries(session_factory, partner_id) -> list[CommissionTransaction]:
    with session_factory() as s:
        return list(
            s.execute(
                select(CommissionTransaction)
                .where(CommissionTransaction.partner_id == partner_id)
                .order_by(CommissionTransaction.sequence)
            ).scalars()
        )


class TestPaymentCompleted:
    """Payment completion runs confirm, attribution and EARN in one transaction."""

    def test_completed_payment_earns_commission(self, session_factory, make_partner, completed_order):
        partner = make_partner()

        outcome = completed_order(partner, "1000.00")

        assert outcome.commission_credited
        assert outcome.entry.amount == 10_000
        assert outcome.attribution.eligible
        stored = _partner(session_factory, partner.id)
        assert stored.available_commission == 10_000
        assert stored.total_referral_sales == 100_000

    def test_redelivered_event_is_idempotent(self, session_factory, orchestrator, make_partner):
        partner = make_partner()
        order = orchestrator.place_order("client@example.com", "250.00", referral_code=partner.referral_code)
        orchestrator.handle_payment_completed(order.id)

        second = orchestrator.handle_payment_completed(order.id)

        assert second.entry is None
        assert second.attribution.newly_resolved is False
        assert len(_entries(session_factory, partner.id)) == 1
        assert _partner(session_factory, partner.id).available_commission == 2_500

    def test_unreferred_order(self, session_factory, orchestrator):
        order = orchestrator.place_order("walkin@example.com", "99.99")

        outcome = orchestrator.handle_payment_completed(order.id)

        assert outcome.commission_credited is False
        assert outcome.attribution.reason == "no_referral"
        with session_factory() as s:
            assert s.get(Order, order.id).status == OrderStatus.COMPLETED

    def test_partner_suspended_before_payment(self, orchestrator, make_partner):
        partner = make_partner()
        order = orchestrator.place_order("client@example.com", "100.00", referral_code=partner.referral_code)
        orchestrator.suspend_partner(partner.id, TEST_ACTOR_ID)

        outcome = orchestrator.handle_payment_completed(order.id)

        assert outcome.entry is None
        assert outcome.attribution.reason == "partner_not_active"

    def test_earn_notification_dispatched_after_commit(self, notification_sink, make_partner, completed_order):
        partner = make_partner()

        completed_order(partner)

        assert "commission.earned" in notification_sink.kinds()

    def test_invalid_price(self, orchestrator):
        with pytest.raises(InvalidMoneyFormatError):
            orchestrator.place_order("client@example.com", "12.345")


class TestPaymentFailed:
    def test_failed_payment_has_no_ledger_effect(self, session_factory, orchestrator, make_partner):
        partner = make_partner()
        order = orchestrator.place_order("client@example.com", "100.00", referral_code=partner.referral_code)

        failed = orchestrator.handle_payment_failed(order.id, "card declined")

        assert failed.status == OrderStatus.FAILED
        assert _entries(session_factory, partner.id) == []

    def test_failure_after_completion_is_ignored(self, session_factory, orchestrator, make_partner):
        partner = make_partner()
        order = orchestrator.place_order("client@example.com", "100.00", referral_code=partner.referral_code)
        orchestrator.handle_payment_completed(order.id)

        orchestrator.handle_payment_failed(order.id, "late webhook")

        with session_factory() as s:
            assert s.get(Order, order.id).status == OrderStatus.COMPLETED
        assert _partner(session_factory, partner.id).available_commission == 1_000


class TestAdminOperations:
    """Decimal strings are converted at the edge; failures leave no trace."""

    def test_adjust_with_decimal_string(self, session_factory, make_partner, fund):
        partner = make_partner()

        result = fund(partner.id, "123.45")

        assert result.amount == 12_345
        assert _partner(session_factory, partner.id).available_commission == 12_345

    def test_rejected_deduction_commits_nothing(self, session_factory, orchestrator, make_partner, fund):
        partner = make_partner()
        fund(partner.id, "100.00")

        with pytest.raises(DeductionExceedsBalanceError):
            orchestrator.adjust(partner.id, "150.00", "DEDUCT", "Chargeback", TEST_ACTOR_ID)

        assert _partner(session_factory, partner.id).available_commission == 10_000
        assert len(_entries(session_factory, partner.id)) == 1

    def test_hold_and_release(self, session_factory, orchestrator, make_partner, fund):
        partner = make_partner()
        fund(partner.id, "100.00")

        hold = orchestrator.hold(partner.id, "40.00", "Fraud review", TEST_ACTOR_ID)
        assert _partner(session_factory, partner.id).commission_on_hold == 4_000

        orchestrator.release_hold(hold.transaction_id, TEST_ACTOR_ID, reason="Cleared")
        stored = _partner(session_factory, partner.id)
        assert (stored.available_commission, stored.commission_on_hold) == (10_000, 0)

        with pytest.raises(HoldAlreadyReleasedError):
            orchestrator.release_hold(hold.transaction_id, TEST_ACTOR_ID)

    def test_cancel_payout_restores_balance(self, session_factory, orchestrator, payout_orchestrator, make_partner, fund):
        partner = make_partner()
        fund(partner.id, "100.00")
        response = payout_orchestrator.process_payout(partner.id, "40.00", TEST_ACTOR_ID)

        result = orchestrator.cancel_payout(response.transaction.transaction_id, TEST_ACTOR_ID)

        assert result.payout_reversed
        assert _partner(session_factory, partner.id).available_commission == 10_000

    def test_status_correction_by_string(self, session_factory, orchestrator, make_partner, fund):
        partner = make_partner()
        entry = fund(partner.id, "10.00")

        result = orchestrator.update_transaction_status(entry.transaction_id, "failed", TEST_ACTOR_ID)

        assert result.new_status is TransactionStatus.FAILED
        with session_factory() as s:
            assert s.get(CommissionTransaction, entry.transaction_id).status == TransactionStatus.FAILED

    @pytest.mark.parametrize(
        "call",
        [
            lambda o, pid: o.adjust(pid, "1.00", "ADD", "Reason", None),
            lambda o, pid: o.hold(pid, "1.00", "Reason", None),
            lambda o, pid: o.release_hold(uuid4(), None),
            lambda o, pid: o.update_transaction_status(uuid4(), "CANCELLED", None),
            lambda o, pid: o.cancel_payout(uuid4(), None),
        ],
    )
    def test_actor_required(self, orchestrator, make_partner, call):
        partner = make_partner()

        with pytest.raises(MissingActorError):
            call(orchestrator, partner.id)


class TestPartnerRegistry:
    def test_register_uses_configured_defaults(self, orchestrator, config):
        partner = orchestrator.register_partner("Default", "default@example.com", TEST_ACTOR_ID)

        assert partner.status == PartnerStatus.PENDING
        assert partner.commission_rate == config.referral.default_commission_rate
        assert partner.referral_code.startswith(config.referral.referral_code_prefix + "-")

    def test_clicks_and_clients(self, session_factory, orchestrator, make_partner):
        partner = make_partner()

        assert orchestrator.record_referral_click(partner.referral_code) == 1
        client = orchestrator.register_referred_client(
            "client@example.com", TEST_ACTOR_ID, referral_code=partner.referral_code
        )

        assert client.referred_by_id == partner.id
        assert _partner(session_factory, partner.id).referral_clicks == 1

    def test_rate_change_applies_to_later_orders(self, orchestrator, make_partner, completed_order):
        partner = make_partner(rate="10")
        first = completed_order(partner, "100.00")
        orchestrator.update_commission_rate(partner.id, "20", TEST_ACTOR_ID)

        second = completed_order(partner, "100.00")

        assert (first.entry.amount, second.entry.amount) == (1_000, 2_000)
        assert second.entry.transaction_type is TransactionType.EARNED
