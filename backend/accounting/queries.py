# accounting/queries.py
"""
Read helpers over the chart of accounts and entries.

Pure reads; nothing here takes a lock or writes.
"""

from accounting import chart
from accounting.models import Account, JournalEntry


def get_account(exercise, number: str) -> Account | None:
    return Account.objects.filter(exercise=exercise, number=number).first()


def accounts_by_class(exercise, account_class: int, active_only: bool = False):
    qs = Account.objects.filter(exercise=exercise, account_class=account_class)
    if active_only:
        qs = qs.filter(is_active=True)
    return qs.order_by("number")


def accounts_by_nature(exercise, nature: str, active_only: bool = False):
    qs = Account.objects.filter(exercise=exercise, nature=nature)
    if active_only:
        qs = qs.filter(is_active=True)
    return qs.order_by("number")


def account_tree(exercise) -> list[dict]:
    """Chart of the exercise nested by parent account."""
    return chart.build_tree(Account.objects.filter(exercise=exercise).order_by("number"))


def entries_for_exercise(exercise, status: str = None, journal_code: str = None, period: str = None):
    qs = (
        JournalEntry.objects.filter(exercise=exercise)
        .select_related("created_by", "validated_by", "posted_by")
        .prefetch_related("lines")
    )
    if status:
        qs = qs.filter(status=status)
    if journal_code:
        qs = qs.filter(journal_code=journal_code)
    if period:
        qs = qs.filter(period=period)
    return qs.order_by("entry_date", "journal_code", "sequence_number")
