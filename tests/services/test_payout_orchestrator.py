"""
Tests for PayoutOrchestrator responses.

Successful payouts return the ledger entry; every kernel error becomes a
response with its code, kind and retryable flag.  Structured details are
exposed to admin callers only.
"""

from uuid import uuid4

from commission_kernel.domain.commission import TransactionStatus
from commission_kernel.exceptions import ErrorKind
from commission_kernel.models.partner import Partner
from tests.conftest import TEST_ACTOR_ID


class TestProcessPayout:
    def test_successful_payout(self, session_factory, payout_orchestrator, make_partner, fund):
        partner = make_partner()
        fund(partner.id, "100.00")

        response = payout_orchestrator.process_payout(
            partner.id, "40.00", TEST_ACTOR_ID, method="bank_transfer", external_reference="SEPA-1"
        )

        assert response.ok
        assert response.code == "OK"
        assert response.transaction.amount == 4_000
        assert response.transaction.balances.available == 6_000
        with session_factory() as s:
            assert s.get(Partner, partner.id).commission_paid == 4_000

    def test_insufficient_funds_response(self, payout_orchestrator, make_partner, fund):
        partner = make_partner()
        fund(partner.id, "100.00")

        response = payout_orchestrator.process_payout(partner.id, "120.00", TEST_ACTOR_ID)

        assert not response.ok
        assert response.code == "INSUFFICIENT_FUNDS"
        assert response.kind is ErrorKind.BUSINESS_RULE
        assert response.retryable is False
        assert response.details["withdrawable"] == 10_000
        assert response.details["shortfall"] == 2_000
        assert response.details["error_type"] == "InsufficientFundsError"

    def test_bad_money_format_is_a_response(self, payout_orchestrator, make_partner):
        partner = make_partner()

        response = payout_orchestrator.process_payout(partner.id, "40.001", TEST_ACTOR_ID)

        assert response.code == "INVALID_MONEY_FORMAT"
        assert response.kind is ErrorKind.VALIDATION

    def test_unknown_partner(self, payout_orchestrator):
        response = payout_orchestrator.process_payout(uuid4(), "1.00", TEST_ACTOR_ID)

        assert response.code == "PARTNER_NOT_FOUND"
        assert response.kind is ErrorKind.NOT_FOUND

    def test_rejection_is_logged(self, captured_logs, payout_orchestrator, make_partner):
        partner = make_partner()

        payout_orchestrator.process_payout(partner.id, "1.00", TEST_ACTOR_ID)

        rejected = [r for r in captured_logs() if r["message"] == "payout_operation_rejected"]
        assert rejected and rejected[0]["error_code"] == "INSUFFICIENT_FUNDS"


class TestPayoutRequests:
    def test_partner_request_hides_details(self, payout_orchestrator, make_partner, fund):
        partner = make_partner()
        fund(partner.id, "10.00")

        response = payout_orchestrator.request_payout(partner.id, "50.00")

        assert not response.ok
        assert response.code == "INSUFFICIENT_FUNDS"
        assert response.details == {}
        assert "withdrawable" in response.message

    def test_request_then_approve(self, session_factory, payout_orchestrator, make_partner, fund, notification_sink):
        partner = make_partner()
        fund(partner.id, "100.00")

        requested = payout_orchestrator.request_payout(partner.id, "60.00", method="paypal")
        assert requested.ok
        assert requested.transaction.status is TransactionStatus.PENDING
        with session_factory() as s:
            assert s.get(Partner, partner.id).available_commission == 10_000

        approved = payout_orchestrator.approve_payout_request(
            requested.transaction.transaction_id, TEST_ACTOR_ID, external_reference="PP-9"
        )

        assert approved.ok
        assert approved.transaction.status is TransactionStatus.COMPLETED
        assert approved.transaction.balances.available == 4_000
        assert "payout.requested" in notification_sink.kinds()
        assert notification_sink.kinds().count("payout.completed") == 1

    def test_approving_twice_is_rejected(self, payout_orchestrator, make_partner, fund):
        partner = make_partner()
        fund(partner.id, "100.00")
        requested = payout_orchestrator.request_payout(partner.id, "10.00")
        payout_orchestrator.approve_payout_request(requested.transaction.transaction_id, TEST_ACTOR_ID)

        again = payout_orchestrator.approve_payout_request(
            requested.transaction.transaction_id, TEST_ACTOR_ID
        )

        assert again.code == "INVALID_STATUS_TRANSITION"
