# accounting/budget.py
"""
Budget availability gate.

The ledger does not manage budgets. When an entry names a budget line,
the configured oracle is asked whether the entry's amount is still
available on that line; a negative answer refuses the entry.

Configure with a dotted path:
    LEDGER_BUDGET_ORACLE = "accounting.budget.StaticBudgetOracle"
An empty setting disables the gate.
"""

from decimal import Decimal
from typing import Protocol

from django.conf import settings
from django.utils.module_loading import import_string


class BudgetOracle(Protocol):
    def is_available(self, budget_line: str, amount: Decimal) -> bool:
        ...


class StaticBudgetOracle:
    """
    Remaining amounts per budget line, read from settings.LEDGER_BUDGET_AVAILABLE:

        LEDGER_BUDGET_AVAILABLE = {"6011-FONCT": "25000000.00"}

    Unknown lines have nothing available.
    """

    def __init__(self, available: dict | None = None):
        if available is None:
            available = getattr(settings, "LEDGER_BUDGET_AVAILABLE", {})
        self.available = {line: Decimal(str(amount)) for line, amount in available.items()}

    def is_available(self, budget_line: str, amount: Decimal) -> bool:
        return amount <= self.available.get(budget_line, Decimal("0"))


def get_budget_oracle() -> BudgetOracle | None:
    path = getattr(settings, "LEDGER_BUDGET_ORACLE", "")
    if not path:
        return None
    return import_string(path)()
