"""
Tests for the read side: transaction history, partner summary and ledger
reconciliation, exercised through ReportingService over committed data.
"""

from datetime import timedelta
from uuid import uuid4

import pytest

from commission_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from commission_kernel.domain.commission import TransactionStatus, TransactionType
from commission_kernel.exceptions import (
    InvalidTransactionTypeError,
    PartnerNotFoundError,
    TransactionNotFoundError,
)
from commission_kernel.models.commission_transaction import CommissionTransaction
from commission_kernel.models.partner import Partner
from commission_kernel.selectors.reconciliation_selector import ReconciliationSelector
from commission_kernel.selectors.summary_selector import conversion_rate
from tests.conftest import TEST_ACTOR_ID


@pytest.fixture
def ledger_history(clock, orchestrator, payout_orchestrator, make_partner, fund):
    """
    One partner with four entries on four consecutive days:

        day 0  ADJUSTED  +100.00  "Test funding"
        day 1  HOLD       -10.00  (ON_HOLD)
        day 2  PAID_OUT   -20.00  external reference SEPA-XYZ
        day 3  BONUS       +5.00
    """
    start = clock.now()
    partner = make_partner("History")
    fund(partner.id, "100.00")
    clock.advance(days=1)
    orchestrator.hold(partner.id, "10.00", "Chargeback review", TEST_ACTOR_ID)
    clock.advance(days=1)
    payout = payout_orchestrator.process_payout(
        partner.id, "20.00", TEST_ACTOR_ID, external_reference="SEPA-XYZ"
    )
    clock.advance(days=1)
    orchestrator.adjust(partner.id, "5.00", "BONUS", "Spring campaign", TEST_ACTOR_ID)
    return partner, start, payout.transaction.transaction_id


class TestTransactionHistory:
    def test_newest_first(self, reporting, ledger_history):
        partner, _, _ = ledger_history

        page = reporting.transaction_history(partner.id)

        assert [t.transaction_type for t in page.items] == [
            TransactionType.BONUS,
            TransactionType.PAID_OUT,
            TransactionType.HOLD,
            TransactionType.ADJUSTED,
        ]
        assert page.total == 4

    def test_filter_by_type(self, reporting, ledger_history):
        partner, _, payout_id = ledger_history

        page = reporting.transaction_history(partner.id, transaction_type="paid_out")

        assert [t.id for t in page.items] == [payout_id]

    def test_filter_by_status(self, reporting, ledger_history):
        partner, _, _ = ledger_history

        page = reporting.transaction_history(partner.id, status=TransactionStatus.ON_HOLD)

        assert [t.transaction_type for t in page.items] == [TransactionType.HOLD]

    def test_date_range_end_is_exclusive(self, reporting, ledger_history):
        partner, start, _ = ledger_history

        page = reporting.transaction_history(
            partner.id, start=start + timedelta(days=1), end=start + timedelta(days=3)
        )

        assert [t.transaction_type for t in page.items] == [
            TransactionType.PAID_OUT,
            TransactionType.HOLD,
        ]

    def test_search_is_case_insensitive(self, reporting, ledger_history):
        partner, _, payout_id = ledger_history

        page = reporting.transaction_history(partner.id, search="sepa-xyz")

        assert [t.id for t in page.items] == [payout_id]

    def test_search_wildcards_are_literal(self, reporting, ledger_history):
        partner, _, _ = ledger_history

        assert reporting.transaction_history(partner.id, search="%").total == 0
        assert reporting.transaction_history(partner.id, search="_").total == 0

    def test_search_by_reference_number(self, reporting, ledger_history):
        partner, _, payout_id = ledger_history
        reference = reporting.get_transaction(payout_id).reference_number

        page = reporting.transaction_history(partner.id, search=reference.lower())

        assert [t.id for t in page.items] == [payout_id]

    def test_pagination(self, reporting, ledger_history):
        partner, _, _ = ledger_history

        first = reporting.transaction_history(partner.id, page=1, limit=3)
        second = reporting.transaction_history(partner.id, page=2, limit=3)

        assert (len(first.items), first.pages, first.has_next) == (3, 2, True)
        assert (len(second.items), second.has_next) == (1, False)
        assert {t.id for t in first.items}.isdisjoint({t.id for t in second.items})

    def test_limit_is_capped_and_page_floored(self, reporting, ledger_history, config):
        partner, _, _ = ledger_history

        page = reporting.transaction_history(partner.id, page=0, limit=10_000)

        assert page.limit == config.reporting.max_page_size
        assert page.page == 1

    def test_invalid_type_filter(self, reporting, ledger_history):
        partner, _, _ = ledger_history

        with pytest.raises(InvalidTransactionTypeError):
            reporting.transaction_history(partner.id, transaction_type="REFUND")

    def test_get_transaction(self, reporting, ledger_history):
        _, _, payout_id = ledger_history

        dto = reporting.get_transaction(payout_id)

        assert dto.formatted_amount == "20.00"
        assert dto.external_reference == "SEPA-XYZ"
        assert dto.occurred_at.tzinfo is not None

    def test_get_unknown_transaction(self, reporting):
        with pytest.raises(TransactionNotFoundError):
            reporting.get_transaction(uuid4())


class TestPartnerSummary:
    def test_summary_figures(
        self, clock, reporting, orchestrator, payout_orchestrator, make_partner, completed_order
    ):
        partner = make_partner("Summary")
        completed_order(partner, "1000.00")
        completed_order(partner, "500.00")
        for _ in range(4):
            orchestrator.record_referral_click(partner.referral_code)
        orchestrator.register_referred_client(
            "client@example.com", TEST_ACTOR_ID, referral_code=partner.referral_code
        )
        payout_orchestrator.process_payout(partner.id, "30.00", TEST_ACTOR_ID)
        payout_orchestrator.request_payout(partner.id, "20.00")

        summary = reporting.partner_summary(partner.id)

        assert summary.balances.earned == 15_000
        assert summary.balances.available == 12_000
        assert summary.window_earnings == 15_000
        assert summary.lifetime_paid_out == 3_000
        assert summary.pending_payouts == 2_000
        assert summary.total_orders == 2
        assert summary.total_sales == 150_000
        assert summary.average_order_value == 75_000
        assert summary.referral_clicks == 4
        assert summary.total_clients == 1
        assert summary.conversion_rate == "25.00"
        assert summary.formatted["available_commission"] == "120.00"
        assert summary.status == "active"
        assert len(summary.recent_transactions) == 4

    def test_window_excludes_old_earnings(self, clock, reporting, make_partner, completed_order):
        partner = make_partner("Window")
        completed_order(partner, "100.00")
        clock.advance(days=31)
        completed_order(partner, "200.00")

        summary = reporting.partner_summary(partner.id)

        assert summary.window_earnings == 2_000
        assert summary.balances.earned == 3_000

    def test_reversed_payout_not_counted(self, reporting, orchestrator, payout_orchestrator, make_partner, fund):
        partner = make_partner("Reversed")
        fund(partner.id, "100.00")
        response = payout_orchestrator.process_payout(partner.id, "40.00", TEST_ACTOR_ID)
        orchestrator.cancel_payout(response.transaction.transaction_id, TEST_ACTOR_ID)

        summary = reporting.partner_summary(partner.id)

        assert summary.lifetime_paid_out == 0
        assert summary.balances.available == 10_000

    def test_payout_corrected_to_failed_still_counts_as_paid(
        self, reporting, orchestrator, payout_orchestrator, make_partner, fund
    ):
        partner = make_partner("Corrected")
        fund(partner.id, "100.00")
        response = payout_orchestrator.process_payout(partner.id, "40.00", TEST_ACTOR_ID)
        orchestrator.update_transaction_status(
            response.transaction.transaction_id, TransactionStatus.FAILED, TEST_ACTOR_ID
        )

        summary = reporting.partner_summary(partner.id)

        assert summary.balances.paid == 4_000
        assert summary.lifetime_paid_out == summary.balances.paid
        totals = {t.transaction_type: t for t in summary.type_totals}
        assert totals[TransactionType.PAID_OUT].amount == 4_000

    def test_failed_request_is_neither_paid_nor_pending(
        self, reporting, orchestrator, payout_orchestrator, make_partner, fund
    ):
        partner = make_partner("Failed Request")
        fund(partner.id, "100.00")
        requested = payout_orchestrator.request_payout(partner.id, "30.00")
        orchestrator.update_transaction_status(
            requested.transaction.transaction_id, TransactionStatus.FAILED, TEST_ACTOR_ID
        )

        summary = reporting.partner_summary(partner.id)

        assert summary.lifetime_paid_out == summary.balances.paid == 0
        assert summary.pending_payouts == 0
        assert summary.balances.available == 10_000

    def test_type_totals(self, reporting, ledger_history):
        partner, _, _ = ledger_history

        totals = {t.transaction_type: t for t in reporting.partner_summary(partner.id).type_totals}

        assert totals[TransactionType.HOLD].amount == 1_000
        assert totals[TransactionType.PAID_OUT].count == 1
        assert totals[TransactionType.EARNED].count == 0

    def test_unknown_partner(self, reporting):
        with pytest.raises(PartnerNotFoundError):
            reporting.partner_summary(uuid4())

    @pytest.mark.parametrize(
        "clients,clicks,expected",
        [(0, 0, "0.00"), (1, 3, "33.33"), (2, 3, "66.67"), (5, 5, "100.00")],
    )
    def test_conversion_rate(self, clients, clicks, expected):
        assert conversion_rate(clients, clicks) == expected


class TestReconciliation:
    def test_ledger_operations_reconcile(
        self, reporting, orchestrator, payout_orchestrator, make_partner, completed_order, fund
    ):
        partner = make_partner("Clean")
        completed_order(partner, "1000.00")
        fund(partner.id, "50.00")
        orchestrator.adjust(partner.id, "20.00", "DEDUCT", "Refund clawback", TEST_ACTOR_ID)
        hold = orchestrator.hold(partner.id, "30.00", "Review", TEST_ACTOR_ID)
        orchestrator.release_hold(hold.transaction_id, TEST_ACTOR_ID)
        orchestrator.hold(partner.id, "10.00", "Second review", TEST_ACTOR_ID)
        paid = payout_orchestrator.process_payout(partner.id, "25.00", TEST_ACTOR_ID)
        orchestrator.cancel_payout(paid.transaction.transaction_id, TEST_ACTOR_ID)
        requested = payout_orchestrator.request_payout(partner.id, "15.00")
        payout_orchestrator.approve_payout_request(requested.transaction.transaction_id, TEST_ACTOR_ID)
        payout_orchestrator.request_payout(partner.id, "5.00")

        (report,) = reporting.reconcile(partner.id)

        assert report.is_consistent, (report.balance_drift, report.entry_discrepancies)
        assert report.entries_checked == 9
        assert report.derived == report.stored

    def test_derived_balances_match_stored(self, session_factory, orchestrator, make_partner, fund):
        partner = make_partner("Derived")
        fund(partner.id, "80.00")
        orchestrator.hold(partner.id, "30.00", "Review", TEST_ACTOR_ID)

        with session_factory() as s:
            derived = ReconciliationSelector(s).derive_balances(partner.id)
            stored = s.get(Partner, partner.id).balances

        assert derived == stored
        assert (derived.available, derived.on_hold, derived.withdrawable) == (5_000, 3_000, 5_000)

    def test_reconcile_all_partners(self, reporting, make_partner, fund):
        first, second = make_partner("First"), make_partner("Second")
        fund(first.id, "10.00")
        fund(second.id, "20.00")

        reports = reporting.reconcile()

        assert {r.partner_id for r in reports} == {first.id, second.id}
        assert all(r.is_consistent for r in reports)

    def test_tampered_balance_is_detected(self, session_factory, reporting, make_partner, fund, captured_logs):
        partner = make_partner("Tampered")
        fund(partner.id, "100.00")

        unregister_immutability_listeners()
        try:
            with session_factory() as s:
                stored = s.get(Partner, partner.id)
                stored.available_commission += 500
                s.commit()
        finally:
            register_immutability_listeners()

        (report,) = reporting.reconcile(partner.id)

        assert not report.is_consistent
        assert report.balance_drift["available"] == 500
        assert report.balance_problems
        assert any(r["message"] == "reconciliation_drift" for r in captured_logs())

    def test_tampered_entry_is_detected(self, session_factory, reporting, make_partner, fund):
        partner = make_partner("Tampered Entry")
        entry = fund(partner.id, "100.00")

        unregister_immutability_listeners()
        try:
            with session_factory() as s:
                row = s.get(CommissionTransaction, entry.transaction_id)
                row.amount = 9_000
                s.commit()
        finally:
            register_immutability_listeners()

        (report,) = reporting.reconcile(partner.id)

        assert len(report.entry_discrepancies) == 1
        assert report.entry_discrepancies[0].transaction_id == entry.transaction_id
        assert report.balance_drift["earned"] == 1_000

    def test_completed_but_unapplied_entry_is_detected(
        self, session_factory, reporting, payout_orchestrator, make_partner, fund
    ):
        partner = make_partner("Unapplied")
        fund(partner.id, "100.00")
        requested = payout_orchestrator.request_payout(partner.id, "30.00")

        unregister_immutability_listeners()
        try:
            with session_factory() as s:
                s.get(CommissionTransaction, requested.transaction.transaction_id).status = (
                    TransactionStatus.COMPLETED
                )
                s.commit()
        finally:
            register_immutability_listeners()

        (report,) = reporting.reconcile(partner.id)

        assert not report.is_consistent
        (discrepancy,) = report.entry_discrepancies
        assert discrepancy.transaction_id == requested.transaction.transaction_id
        assert "never applied" in discrepancy.problem
        assert report.balance_drift == {}
