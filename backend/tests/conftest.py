# tests/conftest.py
"""
Pytest fixtures for ledger tests.

- users with each role and their ActorContext
- a 2024 exercise seeded with the default chart
- helpers to create, validate and post entries through the commands
"""

from datetime import date
from decimal import Decimal

import pytest
from django.conf import settings
from django.contrib.auth import get_user_model
from rest_framework.test import APIClient

from accounts.authz import ActorContext
from accounting.commands import (
    create_exercise,
    create_journal_entry,
    initialize_chart,
    post_journal_entry,
    validate_journal_entry,
)


User = get_user_model()


@pytest.fixture(autouse=True, scope="session")
def _testing_settings():
    """Lift the ledger write barrier so fixtures can build rows directly."""
    settings.TESTING = True


# =============================================================================
# User & Actor Fixtures
# =============================================================================

def _make_user(email, role, name):
    return User.objects.create_user(email=email, password="testpass123", name=name, role=role)


@pytest.fixture
def owner(db):
    return _make_user("owner@test.com", User.Role.OWNER, "Test Owner")


@pytest.fixture
def accountant(db):
    return _make_user("accountant@test.com", User.Role.ACCOUNTANT, "Test Accountant")


@pytest.fixture
def viewer(db):
    return _make_user("viewer@test.com", User.Role.VIEWER, "Test Viewer")


@pytest.fixture
def actor(owner):
    return ActorContext.for_user(owner)


@pytest.fixture
def accountant_actor(accountant):
    return ActorContext.for_user(accountant)


@pytest.fixture
def viewer_actor(viewer):
    return ActorContext.for_user(viewer)


# =============================================================================
# Exercise Fixtures
# =============================================================================

@pytest.fixture
def exercise(actor):
    """Exercise 2024, calendar year, base currency XAF, default chart."""
    result = create_exercise(actor, "2024", date(2024, 1, 1), date(2024, 12, 31), label="Exercice 2024")
    assert result.success, result.error
    chart = initialize_chart(actor, result.data)
    assert chart.success, chart.error
    return result.data


@pytest.fixture
def next_exercise(actor):
    result = create_exercise(actor, "2025", date(2025, 1, 1), date(2025, 12, 31), label="Exercice 2025")
    assert result.success, result.error
    return result.data


# =============================================================================
# Entry helpers
# =============================================================================

def line(account, side, amount, label="Ligne", **extra):
    return {"account": account, "side": side, "amount": Decimal(str(amount)), "label": label, **extra}


@pytest.fixture
def make_entry(actor, exercise):
    """
    Create a DRAFT entry. Lines are (account, side, amount) tuples.

        entry = make_entry([("601", "DEBIT", 100), ("401", "CREDIT", 100)])
    """
    def _make(lines, journal="OD", entry_date=date(2024, 1, 15), label="Opération", target=None, **kwargs):
        result = create_journal_entry(
            actor,
            target or exercise,
            journal,
            entry_date,
            [line(*args) for args in lines],
            label=label,
            **kwargs,
        )
        assert result.success, result.error
        return result.data

    return _make


@pytest.fixture
def post_entry(actor, make_entry):
    """Create, validate and post an entry; returns the posted entry."""
    def _post(lines, **kwargs):
        entry = make_entry(lines, **kwargs)
        validated = validate_journal_entry(actor, entry)
        assert validated.success, validated.error
        posted = post_journal_entry(actor, entry)
        assert posted.success, posted.error
        return posted.data

    return _post


@pytest.fixture
def api_client(owner):
    client = APIClient()
    client.force_authenticate(user=owner)
    return client


@pytest.fixture
def raw_posted_entry(exercise):
    """
    Insert a POSTED entry straight into the tables, bypassing every check.
    Used to simulate an unbalanced entry that slipped through.
    """
    from accounting.models import Account, EntryLine, JournalEntry, month_label

    counter = {"n": 900}

    def _insert(lines, entry_date=date(2024, 1, 20), label="Saisie directe"):
        counter["n"] += 1
        entry = JournalEntry.objects.create(
            exercise=exercise,
            journal_code="OD",
            sequence_number=counter["n"],
            number=f"OD-{counter['n']:04d}",
            entry_date=entry_date,
            period=month_label(entry_date),
            label=label,
            status=JournalEntry.Status.POSTED,
        )
        for index, (number, side, amount) in enumerate(lines, start=1):
            account = Account.objects.get(exercise=exercise, number=number)
            EntryLine.objects.create(
                entry=entry,
                line_number=index,
                account=account,
                account_number=number,
                label=label,
                side=side,
                amount=Decimal(str(amount)),
                currency=exercise.base_currency,
                base_amount=Decimal(str(amount)),
            )
        return entry

    return _insert
