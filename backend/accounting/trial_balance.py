# accounting/trial_balance.py
"""
Trial balance builder (balance générale).

Folds the ledger of every account with activity into three column pairs:
opening, movement and closing, each split into debit and credit. A net
debit goes to the debit column, a net credit to the credit column.

Equilibrium requires, within 0.01:
    total opening debit  = total opening credit
    total movement debit = total movement credit
    total closing debit  = total closing credit
A gap means an unbalanced entry slipped through; it is reported, not fixed.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal

from accounting.ledger import general_ledger
from accounting.models import TOLERANCE, ZERO


def _split(net: Decimal) -> tuple[Decimal, Decimal]:
    if net >= 0:
        return net, ZERO
    return ZERO, -net


@dataclass
class TrialBalanceRow:
    account_number: str
    account_label: str
    account_class: int
    opening_debit: Decimal = ZERO
    opening_credit: Decimal = ZERO
    movement_debit: Decimal = ZERO
    movement_credit: Decimal = ZERO
    closing_debit: Decimal = ZERO
    closing_credit: Decimal = ZERO

    def to_dict(self) -> dict:
        return {
            "account_number": self.account_number,
            "account_label": self.account_label,
            "account_class": self.account_class,
            "opening_debit": str(self.opening_debit),
            "opening_credit": str(self.opening_credit),
            "movement_debit": str(self.movement_debit),
            "movement_credit": str(self.movement_credit),
            "closing_debit": str(self.closing_debit),
            "closing_credit": str(self.closing_credit),
        }


COLUMNS = (
    "opening_debit",
    "opening_credit",
    "movement_debit",
    "movement_credit",
    "closing_debit",
    "closing_credit",
)


@dataclass
class TrialBalance:
    exercise_code: str
    date_from: date
    date_to: date
    rows: list[TrialBalanceRow] = field(default_factory=list)
    totals: dict = field(default_factory=dict)

    def __post_init__(self):
        if not self.totals:
            self.totals = self._sum_rows(self.rows)

    @staticmethod
    def _sum_rows(rows) -> dict:
        totals = {column: ZERO for column in COLUMNS}
        for row in rows:
            for column in COLUMNS:
                totals[column] += getattr(row, column)
        return totals

    @property
    def discrepancies(self) -> dict:
        return {
            "opening": abs(self.totals["opening_debit"] - self.totals["opening_credit"]),
            "movement": abs(self.totals["movement_debit"] - self.totals["movement_credit"]),
            "closing": abs(self.totals["closing_debit"] - self.totals["closing_credit"]),
        }

    @property
    def is_balanced(self) -> bool:
        return all(gap < TOLERANCE for gap in self.discrepancies.values())

    def for_class(self, account_class: int) -> "TrialBalance":
        """Rows of one class, totals re-derived from those rows only."""
        rows = [row for row in self.rows if row.account_class == account_class]
        return TrialBalance(
            exercise_code=self.exercise_code,
            date_from=self.date_from,
            date_to=self.date_to,
            rows=rows,
        )

    def to_dict(self) -> dict:
        return {
            "exercise": self.exercise_code,
            "date_from": self.date_from.isoformat(),
            "date_to": self.date_to.isoformat(),
            "rows": [row.to_dict() for row in self.rows],
            "totals": {column: str(value) for column, value in self.totals.items()},
            "is_balanced": self.is_balanced,
            "discrepancies": {name: str(value) for name, value in self.discrepancies.items()},
        }


def build_trial_balance(exercise, date_from=None, date_to=None) -> TrialBalance:
    date_from = date_from or exercise.start_date
    date_to = date_to or exercise.end_date

    # Inactive accounts stay in: they may carry an opening balance for
    # windows starting before they were settled.
    rows = []
    for ledger in general_ledger(exercise, date_from, date_to):
        opening_debit, opening_credit = _split(ledger.opening_balance)
        closing_debit, closing_credit = _split(ledger.closing_balance)
        rows.append(TrialBalanceRow(
            account_number=ledger.account_number,
            account_label=ledger.account_label,
            account_class=ledger.account_class,
            opening_debit=opening_debit,
            opening_credit=opening_credit,
            movement_debit=ledger.total_debit,
            movement_credit=ledger.total_credit,
            closing_debit=closing_debit,
            closing_credit=closing_credit,
        ))

    return TrialBalance(
        exercise_code=exercise.code,
        date_from=date_from,
        date_to=date_to,
        rows=rows,
    )
