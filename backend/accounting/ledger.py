# accounting/ledger.py
"""
Ledger aggregator (grand livre).

For an account and a window [date_from, date_to] of an exercise:
- opening balance: signed sum (debit +, credit -) of POSTED base amounts
  dated strictly before date_from
- rows: POSTED lines inside the window, in chronological order, each
  carrying the running balance
- closing balance: opening + total debit - total credit

Only POSTED entries contribute, both to the opening balance and to the
movements. The output is a pure function of the posted lines, so two
runs with no posting in between return equal results.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from django.db.models import Sum

from accounting.models import Account, EntryLine, JournalEntry, ZERO


@dataclass
class LedgerRow:
    date: date
    entry_number: str
    sequence_number: int
    journal_code: str
    label: str
    reference: str
    debit: Decimal
    credit: Decimal
    balance: Decimal
    reconciliation_tag: str = ""

    def to_dict(self) -> dict:
        return {
            "date": self.date.isoformat(),
            "entry_number": self.entry_number,
            "sequence_number": self.sequence_number,
            "journal_code": self.journal_code,
            "label": self.label,
            "reference": self.reference,
            "debit": str(self.debit),
            "credit": str(self.credit),
            "balance": str(self.balance),
            "reconciliation_tag": self.reconciliation_tag,
        }


@dataclass
class AccountLedger:
    account_number: str
    account_label: str
    account_class: int
    opening_balance: Decimal = ZERO
    rows: list[LedgerRow] = field(default_factory=list)
    total_debit: Decimal = ZERO
    total_credit: Decimal = ZERO

    @property
    def closing_balance(self) -> Decimal:
        return self.opening_balance + self.total_debit - self.total_credit

    @property
    def has_activity(self) -> bool:
        return bool(self.rows) or self.opening_balance != 0

    def to_dict(self) -> dict:
        return {
            "account_number": self.account_number,
            "account_label": self.account_label,
            "account_class": self.account_class,
            "opening_balance": str(self.opening_balance),
            "total_debit": str(self.total_debit),
            "total_credit": str(self.total_credit),
            "closing_balance": str(self.closing_balance),
            "rows": [row.to_dict() for row in self.rows],
        }


def _window(exercise, date_from, date_to) -> tuple[date, date]:
    return date_from or exercise.start_date, date_to or exercise.end_date


def _posted_lines(exercise):
    return EntryLine.objects.filter(
        entry__exercise=exercise,
        entry__status=JournalEntry.Status.POSTED,
    )


def _opening_balances(exercise, date_from, account_ids=None) -> dict[int, Decimal]:
    qs = _posted_lines(exercise).filter(entry__entry_date__lt=date_from)
    if account_ids is not None:
        qs = qs.filter(account_id__in=account_ids)

    opening: dict[int, Decimal] = {}
    for row in qs.values("account_id", "side").annotate(total=Sum("base_amount")).order_by():
        signed = row["total"] if row["side"] == EntryLine.Side.DEBIT else -row["total"]
        opening[row["account_id"]] = opening.get(row["account_id"], ZERO) + signed
    return opening


def _movements(exercise, date_from, date_to, account_ids=None):
    qs = _posted_lines(exercise).filter(
        entry__entry_date__gte=date_from,
        entry__entry_date__lte=date_to,
    )
    if account_ids is not None:
        qs = qs.filter(account_id__in=account_ids)
    return qs.select_related("entry").order_by(
        "entry__entry_date",
        "entry__journal_code",
        "entry__sequence_number",
        "line_number",
        "id",
    )


def _replay(ledger: AccountLedger, lines) -> AccountLedger:
    balance = ledger.opening_balance
    for line in lines:
        debit = line.debit
        credit = line.credit
        balance += debit - credit
        ledger.total_debit += debit
        ledger.total_credit += credit
        ledger.rows.append(LedgerRow(
            date=line.entry.entry_date,
            entry_number=line.entry.number,
            sequence_number=line.entry.sequence_number,
            journal_code=line.entry.journal_code,
            label=line.label or line.entry.label,
            reference=line.entry.reference,
            debit=debit,
            credit=credit,
            balance=balance,
            reconciliation_tag=line.reconciliation_tag,
        ))
    return ledger


def account_ledger(exercise, account: Account | str, date_from=None, date_to=None) -> AccountLedger:
    """Ledger of one account. `account` is an Account or its number."""
    if not isinstance(account, Account):
        account = Account.objects.get(exercise=exercise, number=account)
    date_from, date_to = _window(exercise, date_from, date_to)

    ledger = AccountLedger(
        account_number=account.number,
        account_label=account.label,
        account_class=account.account_class,
        opening_balance=_opening_balances(exercise, date_from, [account.id]).get(account.id, ZERO),
    )
    return _replay(ledger, _movements(exercise, date_from, date_to, [account.id]))


def general_ledger(exercise, date_from=None, date_to=None, accounts=None) -> list[AccountLedger]:
    """
    Ledger of every account (or of `accounts`), keeping only accounts
    with movements in the window or a non-zero opening balance.
    """
    date_from, date_to = _window(exercise, date_from, date_to)
    if accounts is None:
        accounts = Account.objects.filter(exercise=exercise)
    accounts = list(accounts.order_by("number")) if hasattr(accounts, "order_by") else sorted(
        accounts, key=lambda a: a.number
    )
    account_ids = [account.id for account in accounts]

    opening = _opening_balances(exercise, date_from, account_ids)
    lines_by_account: dict[int, list[EntryLine]] = {}
    for line in _movements(exercise, date_from, date_to, account_ids):
        lines_by_account.setdefault(line.account_id, []).append(line)

    ledgers = []
    for account in accounts:
        ledger = _replay(
            AccountLedger(
                account_number=account.number,
                account_label=account.label,
                account_class=account.account_class,
                opening_balance=opening.get(account.id, ZERO),
            ),
            lines_by_account.get(account.id, []),
        )
        if ledger.has_activity:
            ledgers.append(ledger)
    return ledgers
