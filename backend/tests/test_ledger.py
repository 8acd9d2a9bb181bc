# tests/test_ledger.py
"""
Tests for the ledger aggregator and the trial balance.
"""

from datetime import date
from decimal import Decimal

import pytest

from accounting.commands import deactivate_account
from accounting.ledger import account_ledger, general_ledger
from accounting.trial_balance import build_trial_balance


@pytest.fixture
def activity(post_entry, make_entry):
    """Capital paid in, a purchase, its payment, and one entry left in DRAFT."""
    post_entry([("521", "DEBIT", 1000000), ("101", "CREDIT", 1000000)], journal="BQ", entry_date=date(2024, 1, 5))
    post_entry([("601", "DEBIT", 300000), ("401", "CREDIT", 300000)], journal="AC", entry_date=date(2024, 2, 3))
    post_entry([("401", "DEBIT", 300000), ("521", "CREDIT", 300000)], journal="BQ", entry_date=date(2024, 2, 20))
    make_entry([("601", "DEBIT", 5000), ("521", "CREDIT", 5000)], journal="OD", entry_date=date(2024, 2, 25))


@pytest.mark.django_db
class TestAccountLedger:
    def test_running_balance(self, exercise, activity):
        ledger = account_ledger(exercise, "521")

        assert [(row.entry_number, row.debit, row.credit, row.balance) for row in ledger.rows] == [
            ("BQ-0001", Decimal("1000000.00"), Decimal("0.00"), Decimal("1000000.00")),
            ("BQ-0002", Decimal("0.00"), Decimal("300000.00"), Decimal("700000.00")),
        ]
        assert ledger.opening_balance == 0
        assert ledger.closing_balance == Decimal("700000.00")

    def test_opening_balance_from_earlier_postings(self, exercise, activity):
        ledger = account_ledger(exercise, "521", date_from=date(2024, 2, 1))

        assert ledger.opening_balance == Decimal("1000000.00")
        assert [row.entry_number for row in ledger.rows] == ["BQ-0002"]
        assert ledger.closing_balance == Decimal("700000.00")

    def test_only_posted_entries_count(self, exercise, activity):
        ledger = account_ledger(exercise, "601")

        assert ledger.total_debit == Decimal("300000.00")
        assert [row.entry_number for row in ledger.rows] == ["AC-0001"]

    def test_window_end_excludes_later_lines(self, exercise, activity):
        ledger = account_ledger(exercise, "521", date_to=date(2024, 1, 31))

        assert ledger.closing_balance == Decimal("1000000.00")

    def test_closing_matches_account_counters(self, exercise, activity):
        from accounting.queries import get_account

        for number in ("521", "101", "601", "401"):
            account = get_account(exercise, number)
            assert account_ledger(exercise, account).closing_balance == account.net_balance

    def test_general_ledger_skips_idle_accounts(self, exercise, activity):
        numbers = [ledger.account_number for ledger in general_ledger(exercise)]

        assert numbers == ["101", "401", "521", "601"]

    def test_same_input_same_output(self, exercise, activity):
        first = [ledger.to_dict() for ledger in general_ledger(exercise)]
        second = [ledger.to_dict() for ledger in general_ledger(exercise)]

        assert first == second


@pytest.mark.django_db
class TestTrialBalance:
    def test_three_way_equilibrium(self, exercise, activity):
        tb = build_trial_balance(exercise)

        assert tb.is_balanced
        assert tb.totals["movement_debit"] == Decimal("1600000.00")
        assert tb.totals["movement_credit"] == Decimal("1600000.00")
        assert tb.totals["closing_debit"] == tb.totals["closing_credit"] == Decimal("1000000.00")

    def test_rows_split_net_balance(self, exercise, activity):
        rows = {row.account_number: row for row in build_trial_balance(exercise).rows}

        assert (rows["521"].closing_debit, rows["521"].closing_credit) == (Decimal("700000.00"), Decimal("0.00"))
        assert (rows["101"].closing_debit, rows["101"].closing_credit) == (Decimal("0.00"), Decimal("1000000.00"))
        assert rows["401"].closing_debit == rows["401"].closing_credit == 0

    def test_opening_columns_for_later_window(self, exercise, activity):
        tb = build_trial_balance(exercise, date_from=date(2024, 2, 1))
        rows = {row.account_number: row for row in tb.rows}

        assert rows["521"].opening_debit == Decimal("1000000.00")
        assert rows["101"].opening_credit == Decimal("1000000.00")
        assert tb.totals["opening_debit"] == tb.totals["opening_credit"]
        assert tb.is_balanced

    def test_deactivated_account_keeps_its_opening(self, actor, exercise, post_entry):
        post_entry([("411", "DEBIT", 100), ("701", "CREDIT", 100)], journal="VE", entry_date=date(2024, 1, 10))
        post_entry([("521", "DEBIT", 100), ("411", "CREDIT", 100)], journal="BQ", entry_date=date(2024, 2, 10))
        assert deactivate_account(actor, exercise, "411").success

        tb = build_trial_balance(exercise, date_from=date(2024, 2, 1))
        rows = {row.account_number: row for row in tb.rows}

        assert rows["411"].opening_debit == Decimal("100.00")
        assert rows["411"].movement_credit == Decimal("100.00")
        assert tb.totals["opening_debit"] == tb.totals["opening_credit"] == Decimal("100.00")
        assert tb.is_balanced

    def test_for_class_rederives_totals(self, exercise, activity):
        class_5 = build_trial_balance(exercise).for_class(5)

        assert [row.account_number for row in class_5.rows] == ["521"]
        assert class_5.totals["closing_debit"] == Decimal("700000.00")
        assert not class_5.is_balanced

    def test_unbalanced_entry_is_reported(self, exercise, raw_posted_entry):
        raw_posted_entry([("601", "DEBIT", 100), ("401", "CREDIT", 99)])

        tb = build_trial_balance(exercise)

        assert not tb.is_balanced
        assert tb.discrepancies["movement"] == Decimal("1.00")

    def test_rebuild_is_identical(self, exercise, activity):
        assert build_trial_balance(exercise).to_dict() == build_trial_balance(exercise).to_dict()
