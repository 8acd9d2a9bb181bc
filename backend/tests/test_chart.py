# tests/test_chart.py
"""
Tests for the chart of accounts: numbering rules and chart commands.
"""

import logging

import pytest
from django.core.exceptions import PermissionDenied

from accounting import chart
from accounting.commands import (
    create_account,
    create_exercise,
    deactivate_account,
    initialize_chart,
)
from accounting.models import Account
from accounting.policies import Reason
from accounting.queries import account_tree, accounts_by_class, accounts_by_nature, get_account


class TestNumbering:
    @pytest.mark.parametrize("number,expected", [("601", 6), ("4011", 4), ("13", 1), ("9", 9)])
    def test_class_is_leading_digit(self, number, expected):
        assert chart.account_class(number) == expected

    @pytest.mark.parametrize("number", ["", "0601", "60A", "6 01", "-1"])
    def test_malformed_numbers_rejected(self, number):
        with pytest.raises(chart.ChartError):
            chart.validate_account_number(number)

    def test_nature_follows_class(self):
        assert chart.nature_for_class(1) == chart.LIABILITY
        assert {chart.nature_for_class(k) for k in (2, 3, 4, 5)} == {chart.ASSET}
        assert chart.nature_for_class(6) == chart.EXPENSE
        assert chart.nature_for_class(7) == chart.REVENUE
        assert chart.nature_for_class(8) == chart.SPECIAL

    def test_only_third_party_class_is_lettrable(self):
        assert chart.is_lettrable(4)
        assert not any(chart.is_lettrable(k) for k in (1, 2, 3, 5, 6, 7, 8, 9))


@pytest.mark.django_db
class TestChartCommands:
    def test_initialize_seeds_default_chart(self, exercise):
        supplier = get_account(exercise, "401")
        assert supplier.label == "Fournisseurs"
        assert supplier.parent.number == "40"
        assert supplier.nature == Account.Nature.ASSET
        assert supplier.is_lettrable
        assert exercise.accounts.count() == len(chart.DEFAULT_CHART)

    def test_initialize_is_idempotent(self, actor, exercise):
        result = initialize_chart(actor, exercise)

        assert result.success
        assert result.details == {"created": 0, "skipped": len(chart.DEFAULT_CHART)}

    def test_initialize_logs_at_info_level(self, actor, next_exercise, caplog, monkeypatch):
        monkeypatch.setattr(logging.getLogger("accounting"), "propagate", True)
        caplog.set_level(logging.INFO, logger="accounting")

        result = initialize_chart(actor, next_exercise)

        assert result.success, result.error
        record = next(r for r in caplog.records if r.getMessage() == "Chart initialized")
        assert record.created_count == len(chart.DEFAULT_CHART)
        assert record.exercise == "2025"

    def test_initialize_copies_source_chart(self, actor, exercise, next_exercise):
        create_account(actor, exercise, "6011", "Achats locaux", parent_number="601")

        result = initialize_chart(actor, next_exercise, source_exercise=exercise)

        assert result.success
        copied = get_account(next_exercise, "6011")
        assert copied.parent.number == "601"
        assert copied.parent.exercise_id == next_exercise.id
        assert copied.debit_balance == 0

    def test_create_account_derives_classification(self, actor, exercise):
        result = create_account(actor, exercise, "4111", "Clients locaux", parent_number="411")

        assert result.success
        account = result.data
        assert account.account_class == 4
        assert account.nature == Account.Nature.ASSET
        assert account.is_lettrable

    def test_create_account_rejects_malformed_number(self, actor, exercise):
        result = create_account(actor, exercise, "0601", "Bad")

        assert not result.success
        assert result.code == Reason.INVALID_ACCOUNT
        assert not Account.objects.filter(exercise=exercise, number="0601").exists()

    def test_create_account_rejects_duplicate(self, actor, exercise):
        result = create_account(actor, exercise, "601", "Again")

        assert not result.success
        assert result.code == Reason.DUPLICATE_ACCOUNT

    def test_create_account_rejects_unknown_parent(self, actor, exercise):
        result = create_account(actor, exercise, "6019", "Orphan", parent_number="699")

        assert not result.success
        assert result.code == Reason.INVALID_ACCOUNT

    def test_parent_from_another_exercise_not_found(self, actor, exercise, next_exercise):
        result = create_account(actor, next_exercise, "6011", "Achats", parent_number="601")

        assert not result.success
        assert "not found in exercise 2025" in result.error

    def test_viewer_cannot_create_accounts(self, viewer_actor, exercise):
        with pytest.raises(PermissionDenied):
            create_account(viewer_actor, exercise, "6012", "Achats")

    def test_deactivate_account(self, actor, exercise):
        result = deactivate_account(actor, exercise, "571")

        assert result.success
        assert not get_account(exercise, "571").is_active

    def test_deactivate_refused_with_balance(self, actor, exercise, post_entry):
        post_entry([("521", "DEBIT", 1000), ("101", "CREDIT", 1000)])

        result = deactivate_account(actor, exercise, "521")

        assert not result.success
        assert result.code == Reason.ACCOUNT_HAS_BALANCE

    def test_fetch_by_class_and_nature(self, exercise):
        numbers = [a.number for a in accounts_by_class(exercise, 7)]
        assert "701" in numbers
        assert all(n.startswith("7") for n in numbers)

        expenses = accounts_by_nature(exercise, Account.Nature.EXPENSE)
        assert {a.account_class for a in expenses} == {6}

    def test_account_tree_nests_children(self, exercise):
        tree = {node["number"]: node for node in account_tree(exercise)}

        assert "401" not in tree
        assert [child["number"] for child in tree["40"]["children"]] == ["401"]
        assert {child["number"] for child in tree["44"]["children"]} == {"441", "443", "445"}

    def test_overlapping_exercise_refused(self, actor, exercise):
        from datetime import date

        result = create_exercise(actor, "2024B", date(2024, 6, 1), date(2025, 5, 31))

        assert not result.success
        assert result.code == Reason.INVALID_EXERCISE
