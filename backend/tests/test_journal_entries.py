# tests/test_journal_entries.py
"""
Tests for the journal entry workflow:
create -> validate -> post, reject, cancel, convenience entries and lettering.
"""

from datetime import date
from decimal import Decimal

import pytest
from django.core.exceptions import PermissionDenied
from django.db import DatabaseError

from accounting.commands import (
    CUSTOMER_RECEIPT,
    SUPPLIER_PAYMENT,
    cancel_journal_entry,
    create_journal_entry,
    create_payment_entry,
    create_purchase_entry,
    create_sales_entry,
    deactivate_account,
    letter_lines,
    post_journal_entry,
    reject_journal_entry,
    unletter_lines,
    validate_journal_entry,
)
from accounting.models import Account, EntryLine, JournalEntry, Sequence
from accounting.policies import Reason
from tests.conftest import line


def balances(exercise, number):
    account = Account.objects.get(exercise=exercise, number=number)
    return account.debit_balance, account.credit_balance


@pytest.mark.django_db
class TestCreateEntry:
    def test_balanced_purchase_is_draft(self, actor, exercise):
        result = create_journal_entry(
            actor,
            exercise,
            "AC",
            date(2024, 1, 15),
            [
                line("601", "DEBIT", "45000000", "Achat marchandises"),
                line("401", "CREDIT", "45000000", "Fournisseur X"),
            ],
            label="Facture F-001",
            reference="F-001",
        )

        assert result.success, result.error
        entry = result.data
        assert entry.status == JournalEntry.Status.DRAFT
        assert entry.is_balanced
        assert entry.number == "AC-0001"
        assert entry.period == "2024-01"
        assert entry.total_amount == Decimal("45000000.00")
        assert [(l.line_number, l.account_number, l.side) for l in entry.lines.all()] == [
            (1, "601", "DEBIT"),
            (2, "401", "CREDIT"),
        ]
        assert entry.lines.first().account_label == "Achats de marchandises"

    def test_unbalanced_entry_refused(self, actor, exercise):
        result = create_journal_entry(
            actor,
            exercise,
            "AC",
            date(2024, 1, 15),
            [line("601", "DEBIT", "45000000"), line("401", "CREDIT", "44000000")],
            label="Facture",
        )

        assert not result.success
        assert result.code == Reason.UNBALANCED
        assert "discrepancy = 1000000.00" in result.error
        assert result.details["discrepancy"] == "1000000.00"
        assert not JournalEntry.objects.filter(exercise=exercise).exists()

    def test_unknown_account_refused(self, actor, exercise):
        result = create_journal_entry(
            actor,
            exercise,
            "OD",
            date(2024, 1, 15),
            [line("609", "DEBIT", 10), line("401", "CREDIT", 10)],
        )

        assert not result.success
        assert result.code == Reason.UNKNOWN_ACCOUNT
        assert result.details["accounts"] == ["609"]

    def test_empty_lines_refused(self, actor, exercise):
        result = create_journal_entry(actor, exercise, "OD", date(2024, 1, 15), [])

        assert not result.success
        assert result.code == Reason.INVALID_LINES

    def test_invalid_side_refused(self, actor, exercise):
        result = create_journal_entry(
            actor,
            exercise,
            "OD",
            date(2024, 1, 15),
            [line("601", "BOTH", 10)],
        )

        assert not result.success
        assert result.code == Reason.INVALID_LINES

    def test_unknown_journal_refused(self, actor, exercise):
        result = create_journal_entry(
            actor, exercise, "ZZ", date(2024, 1, 15),
            [line("601", "DEBIT", 10), line("401", "CREDIT", 10)],
        )

        assert not result.success
        assert result.code == Reason.INVALID_ENTRY

    def test_date_outside_exercise_refused(self, actor, exercise):
        result = create_journal_entry(
            actor, exercise, "OD", date(2025, 1, 2),
            [line("601", "DEBIT", 10), line("401", "CREDIT", 10)],
        )

        assert not result.success
        assert result.code == Reason.INVALID_ENTRY

    def test_inactive_account_refused(self, actor, exercise):
        deactivate_account(actor, exercise, "571")

        result = create_journal_entry(
            actor, exercise, "CA", date(2024, 1, 15),
            [line("571", "DEBIT", 10), line("701", "CREDIT", 10)],
        )

        assert not result.success
        assert result.code == Reason.INACTIVE_ACCOUNT

    def test_foreign_currency_requires_rate(self, actor, exercise):
        result = create_journal_entry(
            actor, exercise, "AC", date(2024, 1, 15),
            [
                line("601", "DEBIT", "1000", currency="EUR"),
                line("401", "CREDIT", "655957"),
            ],
        )

        assert not result.success
        assert result.code == Reason.MISSING_EXCHANGE_RATE

    def test_foreign_currency_base_amount_computed(self, actor, exercise):
        result = create_journal_entry(
            actor, exercise, "AC", date(2024, 1, 15),
            [
                line("601", "DEBIT", "1000", currency="EUR", exchange_rate="655.957"),
                line("401", "CREDIT", "655957"),
            ],
        )

        assert result.success, result.error
        eur_line = result.data.lines.get(line_number=1)
        assert eur_line.base_amount == Decimal("655957.00")
        assert eur_line.exchange_rate == Decimal("655.957")
        assert result.data.lines.get(line_number=2).exchange_rate is None

    def test_inconsistent_base_amount_refused(self, actor, exercise):
        result = create_journal_entry(
            actor, exercise, "AC", date(2024, 1, 15),
            [
                line("601", "DEBIT", "1000", currency="EUR", exchange_rate="655.957", base_amount="650000"),
                line("401", "CREDIT", "650000"),
            ],
        )

        assert not result.success
        assert result.code == Reason.INVALID_BASE_AMOUNT

    def test_exchange_rate_rounded_to_stored_precision(self, actor, exercise):
        result = create_journal_entry(
            actor, exercise, "AC", date(2024, 1, 15),
            [
                line("601", "DEBIT", "100000", currency="EUR", exchange_rate="655.9570004"),
                line("401", "CREDIT", "65595700"),
            ],
        )

        assert result.success, result.error
        eur_line = result.data.lines.get(line_number=1)
        assert eur_line.exchange_rate == Decimal("655.957000")
        assert eur_line.base_amount == Decimal("65595700.00")
        assert validate_journal_entry(actor, result.data).success

    def test_rate_rounding_to_zero_refused(self, actor, exercise):
        result = create_journal_entry(
            actor, exercise, "AC", date(2024, 1, 15),
            [
                line("601", "DEBIT", "10", currency="EUR", exchange_rate="0.0000004"),
                line("401", "CREDIT", "10"),
            ],
        )

        assert result.code == Reason.MISSING_EXCHANGE_RATE

    @pytest.mark.parametrize("amount", [0, -10])
    def test_non_positive_amount_refused(self, actor, exercise, amount):
        result = create_journal_entry(
            actor, exercise, "OD", date(2024, 1, 15),
            [line("601", "DEBIT", amount), line("401", "CREDIT", amount)],
        )

        assert result.code == Reason.INVALID_LINES
        assert "strictly positive" in result.error
        assert not JournalEntry.objects.filter(exercise=exercise).exists()

    def test_sequence_per_journal(self, make_entry):
        first = make_entry([("601", "DEBIT", 10), ("401", "CREDIT", 10)], journal="AC")
        second = make_entry([("601", "DEBIT", 20), ("401", "CREDIT", 20)], journal="AC")
        other = make_entry([("521", "DEBIT", 5), ("411", "CREDIT", 5)], journal="BQ")

        assert (first.sequence_number, second.sequence_number) == (1, 2)
        assert other.number == "BQ-0001"

    def test_failed_attempts_do_not_consume_numbers(self, actor, exercise, make_entry):
        make_entry([("601", "DEBIT", 10), ("401", "CREDIT", 10)], journal="AC")
        create_journal_entry(
            actor, exercise, "AC", date(2024, 1, 15),
            [line("601", "DEBIT", 10), line("401", "CREDIT", 9)],
        )
        create_journal_entry(
            actor, exercise, "AC", date(2024, 1, 15),
            [line("699", "DEBIT", 10), line("401", "CREDIT", 10)],
        )

        entry = make_entry([("601", "DEBIT", 30), ("401", "CREDIT", 30)], journal="AC")

        assert entry.sequence_number == 2

    def test_persistence_failure_rolls_back_header_and_sequence(self, actor, exercise, monkeypatch):
        original_save = EntryLine.save

        def failing_save(self, *args, **kwargs):
            if self.line_number == 2:
                raise DatabaseError("disk full")
            return original_save(self, *args, **kwargs)

        monkeypatch.setattr(EntryLine, "save", failing_save)

        result = create_journal_entry(
            actor, exercise, "AC", date(2024, 1, 15),
            [line("601", "DEBIT", 10), line("401", "CREDIT", 10)],
        )

        assert not result.success
        assert result.code == Reason.PERSISTENCE_FAILURE
        assert not JournalEntry.objects.filter(exercise=exercise).exists()
        assert not EntryLine.objects.exists()
        assert not Sequence.objects.filter(exercise=exercise, name="journal:AC").exists()

    def test_budget_gate(self, actor, exercise, settings):
        settings.LEDGER_BUDGET_ORACLE = "accounting.budget.StaticBudgetOracle"
        settings.LEDGER_BUDGET_AVAILABLE = {"6011-FONCT": "100.00"}
        lines = [line("601", "DEBIT", 150), line("401", "CREDIT", 150)]

        refused = create_journal_entry(
            actor, exercise, "AC", date(2024, 1, 15), lines, budget_line="6011-FONCT"
        )
        unchecked = create_journal_entry(actor, exercise, "AC", date(2024, 1, 15), lines)

        assert refused.code == Reason.BUDGET_INSUFFICIENT
        assert unchecked.success

    def test_viewer_cannot_create(self, viewer_actor, exercise):
        with pytest.raises(PermissionDenied):
            create_journal_entry(
                viewer_actor, exercise, "OD", date(2024, 1, 15),
                [line("601", "DEBIT", 10), line("401", "CREDIT", 10)],
            )


@pytest.mark.django_db
class TestWorkflow:
    def test_validate_then_post_updates_balances(self, actor, exercise, make_entry):
        entry = make_entry([("601", "DEBIT", 45000000), ("401", "CREDIT", 45000000)], journal="AC")

        validated = validate_journal_entry(actor, entry)
        assert validated.success, validated.error
        assert validated.data.status == JournalEntry.Status.VALIDATED
        assert validated.data.validated_by == actor.user

        posted = post_journal_entry(actor, entry)
        assert posted.success, posted.error
        assert posted.data.status == JournalEntry.Status.POSTED
        assert posted.data.posted_at is not None
        assert balances(exercise, "601") == (Decimal("45000000.00"), Decimal("0.00"))
        assert balances(exercise, "401") == (Decimal("0.00"), Decimal("45000000.00"))

    def test_post_requires_validation(self, actor, exercise, make_entry):
        entry = make_entry([("601", "DEBIT", 10), ("401", "CREDIT", 10)])

        result = post_journal_entry(actor, entry)

        assert result.code == Reason.INVALID_TRANSITION
        assert balances(exercise, "601") == (Decimal("0.00"), Decimal("0.00"))

    def test_posting_is_atomic_when_account_deactivated(self, actor, exercise, make_entry):
        entry = make_entry([("601", "DEBIT", 10), ("571", "CREDIT", 10)])
        assert validate_journal_entry(actor, entry).success
        assert deactivate_account(actor, exercise, "571").success

        result = post_journal_entry(actor, entry)

        assert not result.success
        assert result.code == Reason.INACTIVE_ACCOUNT
        assert balances(exercise, "601") == (Decimal("0.00"), Decimal("0.00"))
        entry.refresh_from_db()
        assert entry.status == JournalEntry.Status.VALIDATED

    def test_posting_failure_leaves_balances_untouched(self, actor, exercise, make_entry, monkeypatch):
        entry = make_entry([("601", "DEBIT", 10), ("401", "CREDIT", 10)])
        assert validate_journal_entry(actor, entry).success

        original_save = Account.save
        saved = []

        def failing_save(self, *args, **kwargs):
            if "debit_balance" in (kwargs.get("update_fields") or ()):
                saved.append(self.number)
                if len(saved) == 2:
                    raise DatabaseError("connection lost")
            return original_save(self, *args, **kwargs)

        monkeypatch.setattr(Account, "save", failing_save)

        result = post_journal_entry(actor, entry)

        assert len(saved) == 2
        assert result.code == Reason.PERSISTENCE_FAILURE
        assert balances(exercise, "601") == (Decimal("0.00"), Decimal("0.00"))
        assert balances(exercise, "401") == (Decimal("0.00"), Decimal("0.00"))
        entry.refresh_from_db()
        assert entry.status == JournalEntry.Status.VALIDATED
        assert entry.posted_at is None

    def test_validation_warnings_do_not_block(self, actor, make_entry):
        entry = make_entry([("601", "DEBIT", 10), ("401", "CREDIT", 10)], label="")

        result = validate_journal_entry(actor, entry)

        assert result.success
        assert [f["rule_id"] for f in result.details["findings"]] == ["CTRL_005"]
        assert entry.anomalies.count() == 1

    def test_reject_draft(self, actor, make_entry):
        entry = make_entry([("601", "DEBIT", 10), ("401", "CREDIT", 10)])

        result = reject_journal_entry(actor, entry, "Pièce manquante")

        assert result.success
        assert result.data.status == JournalEntry.Status.REJECTED
        assert result.data.status_reason == "Pièce manquante"

    def test_cancel_validated(self, actor, make_entry):
        entry = make_entry([("601", "DEBIT", 10), ("401", "CREDIT", 10)])
        validate_journal_entry(actor, entry)

        result = cancel_journal_entry(actor, entry, "Doublon")

        assert result.data.status == JournalEntry.Status.CANCELLED

    def test_cancel_draft_is_invalid_transition(self, actor, make_entry):
        entry = make_entry([("601", "DEBIT", 10), ("401", "CREDIT", 10)])

        result = cancel_journal_entry(actor, entry, "Doublon")

        assert result.code == Reason.INVALID_TRANSITION
        entry.refresh_from_db()
        assert entry.status == JournalEntry.Status.DRAFT

    def test_posted_entry_cannot_be_rejected(self, actor, post_entry):
        entry = post_entry([("601", "DEBIT", 10), ("401", "CREDIT", 10)])

        result = reject_journal_entry(actor, entry, "Trop tard")

        assert result.code == Reason.INVALID_TRANSITION
        assert "POSTED -> REJECTED" in result.error

    def test_accountant_cannot_post(self, actor, accountant_actor, make_entry):
        entry = make_entry([("601", "DEBIT", 10), ("401", "CREDIT", 10)])
        assert validate_journal_entry(accountant_actor, entry).success

        with pytest.raises(PermissionDenied):
            post_journal_entry(accountant_actor, entry)


@pytest.mark.django_db
class TestConvenienceEntries:
    def test_purchase_with_vat(self, actor, exercise):
        result = create_purchase_entry(
            actor, exercise, date(2024, 2, 1), net_amount="1000000", vat_amount="192500",
            label="Facture fournisseur",
        )

        assert result.success, result.error
        entry = result.data
        assert entry.journal_code == "AC"
        assert [(l.account_number, l.side, l.amount) for l in entry.lines.all()] == [
            ("601", "DEBIT", Decimal("1000000.00")),
            ("445", "DEBIT", Decimal("192500.00")),
            ("401", "CREDIT", Decimal("1192500.00")),
        ]

    def test_sales_with_vat(self, actor, exercise):
        result = create_sales_entry(
            actor, exercise, date(2024, 2, 1), net_amount="500000", vat_amount="96250",
            label="Facture client",
        )

        assert result.success, result.error
        assert [(l.account_number, l.side) for l in result.data.lines.all()] == [
            ("411", "DEBIT"),
            ("701", "CREDIT"),
            ("443", "CREDIT"),
        ]

    def test_payment_directions(self, actor, exercise):
        paid = create_payment_entry(
            actor, exercise, date(2024, 2, 10), "1192500", SUPPLIER_PAYMENT, "Règlement"
        )
        received = create_payment_entry(
            actor, exercise, date(2024, 2, 11), "596250", CUSTOMER_RECEIPT, "Encaissement"
        )

        assert [(l.account_number, l.side) for l in paid.data.lines.all()] == [
            ("401", "DEBIT"), ("521", "CREDIT"),
        ]
        assert [(l.account_number, l.side) for l in received.data.lines.all()] == [
            ("521", "DEBIT"), ("411", "CREDIT"),
        ]
        assert paid.data.number == "BQ-0001"

    def test_unknown_payment_kind(self, actor, exercise):
        result = create_payment_entry(actor, exercise, date(2024, 2, 10), "10", "GIFT", "?")

        assert result.code == Reason.INVALID_ENTRY


@pytest.mark.django_db
class TestLettering:
    def _supplier_lines(self, post_entry):
        invoice = post_entry([("601", "DEBIT", 1000), ("401", "CREDIT", 1000)], journal="AC")
        payment = post_entry([("401", "DEBIT", 1000), ("521", "CREDIT", 1000)], journal="BQ")
        return [
            invoice.lines.get(account_number="401").id,
            payment.lines.get(account_number="401").id,
        ]

    def test_letter_balanced_lines(self, actor, exercise, post_entry):
        line_ids = self._supplier_lines(post_entry)

        result = letter_lines(actor, exercise, line_ids)

        assert result.success, result.error
        assert result.details["tag"] == "A"
        assert set(EntryLine.objects.filter(id__in=line_ids).values_list("reconciliation_tag", flat=True)) == {"A"}

    def test_second_code_is_b(self, actor, exercise, post_entry):
        letter_lines(actor, exercise, self._supplier_lines(post_entry))

        result = letter_lines(actor, exercise, self._supplier_lines(post_entry))

        assert result.details["tag"] == "B"

    def test_already_lettered_refused(self, actor, exercise, post_entry):
        line_ids = self._supplier_lines(post_entry)
        letter_lines(actor, exercise, line_ids)

        result = letter_lines(actor, exercise, line_ids)

        assert result.code == Reason.LETTERING_FAILED

    def test_unbalanced_lettering_refused(self, actor, exercise, post_entry):
        invoice = post_entry([("601", "DEBIT", 1000), ("401", "CREDIT", 1000)], journal="AC")
        payment = post_entry([("401", "DEBIT", 400), ("521", "CREDIT", 400)], journal="BQ")

        result = letter_lines(
            actor,
            exercise,
            [invoice.lines.get(account_number="401").id, payment.lines.get(account_number="401").id],
        )

        assert result.code == Reason.LETTERING_FAILED
        assert "must balance" in result.error

    def test_non_lettrable_account_refused(self, actor, exercise, post_entry):
        first = post_entry([("601", "DEBIT", 10), ("401", "CREDIT", 10)])
        second = post_entry([("401", "DEBIT", 10), ("601", "CREDIT", 10)])

        result = letter_lines(
            actor,
            exercise,
            [first.lines.get(account_number="601").id, second.lines.get(account_number="601").id],
        )

        assert "not lettrable" in result.error

    def test_unletter(self, actor, exercise, post_entry):
        line_ids = self._supplier_lines(post_entry)
        letter_lines(actor, exercise, line_ids)

        result = unletter_lines(actor, exercise, "A")

        assert result.success
        assert not EntryLine.objects.filter(reconciliation_tag="A").exists()
