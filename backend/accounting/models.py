# accounting/models.py
"""
Ledger models.

These tables are the primary state of the ledger. They are written only
by the command layer (accounting/commands.py, accounting/closing.py):

- every model refuses save()/delete() outside command_writes_allowed()
- Account balance counters refuse changes outside posting_writes_allowed()

The barrier is lifted when settings.TESTING is set, so fixtures can build
rows directly.

Models:
- Exercise: fiscal year owning accounts, entries and closures
- Account: SYSCOHADA chart of accounts, with running debit/credit counters
- Sequence: per-exercise counters (entry numbers, lettering codes)
- JournalEntry / EntryLine: double-entry transactions
- Anomaly: findings of the validation engine
- PeriodClosure: period closing records (CLOSED / REOPENED)
- CarryForward: opening balances carried into the next exercise
- BankReconciliation: bank statement reconciliation status per period
"""

import calendar
from datetime import date
from decimal import Decimal, ROUND_HALF_UP
import uuid

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.db.models import Q
from django.utils import timezone

from accounting import chart
from accounting.write_barrier import write_context_allowed


MONEY_Q = Decimal("0.01")
# Exchange rates are stored with six decimals.
RATE_Q = Decimal("0.000001")
# Largest discrepancy tolerated between debit and credit sums.
TOLERANCE = Decimal("0.01")
ZERO = Decimal("0.00")


def quantize_money(value) -> Decimal:
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(MONEY_Q, rounding=ROUND_HALF_UP)


def quantize_rate(value: Decimal) -> Decimal:
    return value.quantize(RATE_Q, rounding=ROUND_HALF_UP)


def default_base_currency() -> str:
    return getattr(settings, "LEDGER_BASE_CURRENCY", "XAF")


def month_label(value: date) -> str:
    return f"{value.year:04d}-{value.month:02d}"


def month_bounds(label: str) -> tuple[date, date]:
    """First and last day of a "YYYY-MM" period. Raises ValueError if malformed."""
    year, month = (int(part) for part in label.split("-"))
    return date(year, month, 1), date(year, month, calendar.monthrange(year, month)[1])


def _barrier_lifted() -> bool:
    return getattr(settings, "TESTING", False)


class LedgerModel(models.Model):
    """Base for ledger tables: writes only from the command layer."""

    WRITE_CONTEXTS = {"command", "posting"}

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        if not write_context_allowed(self.WRITE_CONTEXTS) and not _barrier_lifted():
            raise RuntimeError(
                f"{self.__class__.__name__} is written by accounting commands. "
                "Direct saves are only allowed within command_writes_allowed()."
            )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        if not write_context_allowed(self.WRITE_CONTEXTS) and not _barrier_lifted():
            raise RuntimeError(
                f"{self.__class__.__name__} is written by accounting commands. "
                "Direct deletes are only allowed within command_writes_allowed()."
            )
        return super().delete(*args, **kwargs)


class Exercise(LedgerModel):
    """
    Fiscal exercise (exercice comptable).

    Every ledger operation takes an exercise explicitly.
    """

    code = models.CharField(max_length=20, unique=True)
    label = models.CharField(max_length=255, blank=True, default="")
    start_date = models.DateField()
    end_date = models.DateField()
    base_currency = models.CharField(max_length=3, default=default_base_currency)

    is_closed = models.BooleanField(default=False)
    closed_at = models.DateTimeField(null=True, blank=True)
    closed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="closed_exercises",
    )
    opening_balances_validated = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["start_date"]

    def __str__(self):
        return self.code

    def contains(self, value: date) -> bool:
        return self.start_date <= value <= self.end_date

    def months(self) -> list[str]:
        """Period labels ("YYYY-MM") from start to end, inclusive."""
        labels = []
        year, month = self.start_date.year, self.start_date.month
        while (year, month) <= (self.end_date.year, self.end_date.month):
            labels.append(f"{year:04d}-{month:02d}")
            month += 1
            if month > 12:
                year, month = year + 1, 1
        return labels


class Account(LedgerModel):
    """
    Chart of Accounts entry for one exercise.

    Class, nature and lettrable status derive from the number and are
    recomputed on every save. Balances are two non-negative counters;
    the net balance is computed on read.
    """

    class Nature(models.TextChoices):
        ASSET = chart.ASSET, "Asset"
        LIABILITY = chart.LIABILITY, "Liability"
        EXPENSE = chart.EXPENSE, "Expense"
        REVENUE = chart.REVENUE, "Revenue"
        SPECIAL = chart.SPECIAL, "Special"

    exercise = models.ForeignKey(
        Exercise,
        on_delete=models.PROTECT,
        related_name="accounts",
    )
    number = models.CharField(max_length=20)
    label = models.CharField(max_length=255)

    account_class = models.PositiveSmallIntegerField(editable=False)
    nature = models.CharField(max_length=10, choices=Nature.choices, editable=False)
    parent = models.ForeignKey(
        "self",
        null=True,
        blank=True,
        on_delete=models.PROTECT,
        related_name="children",
    )
    is_lettrable = models.BooleanField(default=False, editable=False)
    is_active = models.BooleanField(default=True)

    debit_balance = models.DecimalField(max_digits=18, decimal_places=2, default=ZERO)
    credit_balance = models.DecimalField(max_digits=18, decimal_places=2, default=ZERO)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["exercise", "number"],
                name="uniq_account_number_per_exercise",
            ),
        ]
        ordering = ["number"]
        indexes = [
            models.Index(fields=["exercise", "account_class"], name="accounting__exercis_5b0c1e_idx"),
        ]

    def __str__(self):
        return f"{self.number} - {self.label}"

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._loaded_balances = (
            instance.__dict__.get("debit_balance"),
            instance.__dict__.get("credit_balance"),
        )
        return instance

    def refresh_from_db(self, *args, **kwargs):
        super().refresh_from_db(*args, **kwargs)
        self._loaded_balances = (self.debit_balance, self.credit_balance)

    @property
    def net_balance(self) -> Decimal:
        return self.debit_balance - self.credit_balance

    def _balances_changed(self) -> bool:
        current = (self.debit_balance, self.credit_balance)
        loaded = getattr(self, "_loaded_balances", None)
        if loaded is None:
            return any(Decimal(v) != 0 for v in current)
        return loaded != current

    def clean(self):
        try:
            chart.validate_account_number(self.number)
        except chart.ChartError as exc:
            raise ValidationError({"number": str(exc)})

        if self.parent and self.parent.exercise_id != self.exercise_id:
            raise ValidationError("Parent account must belong to the same exercise.")

        if self.debit_balance < 0 or self.credit_balance < 0:
            raise ValidationError("Balance counters cannot be negative.")

    def save(self, *args, **kwargs):
        if (
            self._balances_changed()
            and not write_context_allowed({"posting"})
            and not _barrier_lifted()
        ):
            raise RuntimeError(
                f"Balances of account {self.number} can only change while posting "
                "an entry (posting_writes_allowed())."
            )

        self.number = (self.number or "").strip()
        if chart.ACCOUNT_NUMBER_RE.match(self.number):
            self.account_class = chart.account_class(self.number)
            self.nature = chart.nature_for_class(self.account_class)
            self.is_lettrable = chart.is_lettrable(self.account_class)
        self.full_clean()
        super().save(*args, **kwargs)
        self._loaded_balances = (self.debit_balance, self.credit_balance)


class Sequence(LedgerModel):
    """
    Per-exercise counters for gap-free identifiers.

    Allocated under select_for_update by the command layer, inside the
    same transaction as the row that consumes the number.
    """

    exercise = models.ForeignKey(
        Exercise,
        on_delete=models.CASCADE,
        related_name="sequences",
    )
    name = models.CharField(max_length=100)
    next_value = models.BigIntegerField(default=1)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["exercise", "name"],
                name="uniq_exercise_sequence_name",
            ),
        ]

    def __str__(self):
        return f"{self.exercise_id}:{self.name}={self.next_value}"


class JournalEntry(LedgerModel):
    """
    Journal entry header (écriture).

    Workflow (forward only):
        DRAFT -> VALIDATED -> POSTED
        DRAFT -> REJECTED
        VALIDATED -> CANCELLED
    Content is immutable once VALIDATED.
    """

    class Status(models.TextChoices):
        DRAFT = "DRAFT", "Draft"
        VALIDATED = "VALIDATED", "Validated"
        POSTED = "POSTED", "Posted"
        REJECTED = "REJECTED", "Rejected"
        CANCELLED = "CANCELLED", "Cancelled"

    class EntryType(models.TextChoices):
        OPERATION = "OPERATION", "Operation"
        CLOSING = "CLOSING", "Closing"
        CARRY_FORWARD = "CARRY_FORWARD", "Carry-forward"

    public_id = models.UUIDField(default=uuid.uuid4, editable=False, unique=True)
    exercise = models.ForeignKey(
        Exercise,
        on_delete=models.PROTECT,
        related_name="entries",
    )

    journal_code = models.CharField(max_length=10)
    journal_label = models.CharField(max_length=100, blank=True, default="")
    sequence_number = models.PositiveIntegerField()
    number = models.CharField(max_length=30)

    entry_type = models.CharField(
        max_length=20,
        choices=EntryType.choices,
        default=EntryType.OPERATION,
    )
    entry_date = models.DateField()
    document_date = models.DateField(null=True, blank=True)
    period = models.CharField(max_length=7)

    label = models.CharField(max_length=255, blank=True, default="")
    reference = models.CharField(max_length=100, blank=True, default="")
    budget_line = models.CharField(max_length=50, blank=True, default="")

    total_amount = models.DecimalField(max_digits=18, decimal_places=2, default=ZERO)
    is_balanced = models.BooleanField(default=False)

    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.DRAFT,
    )
    status_reason = models.TextField(blank=True, default="")

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="created_entries",
    )
    validated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="validated_entries",
    )
    posted_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="posted_entries",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    validated_at = models.DateTimeField(null=True, blank=True)
    posted_at = models.DateTimeField(null=True, blank=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["exercise", "journal_code", "sequence_number"],
                name="uniq_entry_sequence_per_journal",
            ),
        ]
        ordering = ["entry_date", "journal_code", "sequence_number"]
        indexes = [
            models.Index(fields=["exercise", "period"], name="accounting__exercis_8f4d2a_idx"),
            models.Index(fields=["exercise", "status"], name="accounting__exercis_c71e90_idx"),
        ]

    def __str__(self):
        return f"{self.number} ({self.status})"

    @property
    def total_debit(self) -> Decimal:
        return sum(
            (line.base_amount for line in self.lines.all() if line.side == EntryLine.Side.DEBIT),
            ZERO,
        )

    @property
    def total_credit(self) -> Decimal:
        return sum(
            (line.base_amount for line in self.lines.all() if line.side == EntryLine.Side.CREDIT),
            ZERO,
        )


class EntryLine(LedgerModel):
    """
    One debit or credit movement of an entry.

    Amount is in the line currency; base_amount is the amount in the
    exercise base currency (amount x exchange_rate) and is what every
    aggregate uses.
    """

    class Side(models.TextChoices):
        DEBIT = "DEBIT", "Debit"
        CREDIT = "CREDIT", "Credit"

    entry = models.ForeignKey(
        JournalEntry,
        on_delete=models.CASCADE,
        related_name="lines",
    )
    line_number = models.PositiveSmallIntegerField()

    account = models.ForeignKey(
        Account,
        on_delete=models.PROTECT,
        related_name="lines",
    )
    account_number = models.CharField(max_length=20)
    account_label = models.CharField(max_length=255, blank=True, default="")
    label = models.CharField(max_length=255, blank=True, default="")

    side = models.CharField(max_length=6, choices=Side.choices)
    amount = models.DecimalField(max_digits=18, decimal_places=2)
    currency = models.CharField(max_length=3)
    exchange_rate = models.DecimalField(max_digits=18, decimal_places=6, null=True, blank=True)
    base_amount = models.DecimalField(max_digits=18, decimal_places=2)

    reconciliation_tag = models.CharField(max_length=20, blank=True, default="")
    lettered_at = models.DateField(null=True, blank=True)

    cost_center = models.CharField(max_length=50, blank=True, default="")
    project = models.CharField(max_length=50, blank=True, default="")

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["entry", "line_number"],
                name="uniq_line_number_per_entry",
            ),
        ]
        ordering = ["line_number"]
        indexes = [
            models.Index(fields=["account", "reconciliation_tag"], name="accounting__account_3e9a7b_idx"),
        ]

    def __str__(self):
        return f"{self.entry_id}#{self.line_number} {self.side} {self.account_number} {self.base_amount}"

    @property
    def debit(self) -> Decimal:
        return self.base_amount if self.side == self.Side.DEBIT else ZERO

    @property
    def credit(self) -> Decimal:
        return self.base_amount if self.side == self.Side.CREDIT else ZERO


class Anomaly(LedgerModel):
    """A finding of the validation engine, kept for audit."""

    class Category(models.TextChoices):
        EQUILIBRIUM = "EQUILIBRIUM", "Equilibrium"
        CONSISTENCY = "CONSISTENCY", "Consistency"
        COMPLETENESS = "COMPLETENESS", "Completeness"

    class Severity(models.TextChoices):
        BLOCKING = "BLOCKING", "Blocking"
        ERROR = "ERROR", "Error"
        WARNING = "WARNING", "Warning"
        INFO = "INFO", "Info"

    class Status(models.TextChoices):
        OPEN = "OPEN", "Open"
        RESOLVED = "RESOLVED", "Resolved"
        IGNORED = "IGNORED", "Ignored"

    exercise = models.ForeignKey(
        Exercise,
        on_delete=models.CASCADE,
        related_name="anomalies",
    )
    entry = models.ForeignKey(
        JournalEntry,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="anomalies",
    )
    period = models.CharField(max_length=10, blank=True, default="")
    rule_id = models.CharField(max_length=20)
    category = models.CharField(max_length=20, choices=Category.choices)
    severity = models.CharField(max_length=10, choices=Severity.choices)
    description = models.TextField()
    details = models.JSONField(default=dict, blank=True)
    detected_at = models.DateTimeField(default=timezone.now)
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.OPEN)

    class Meta:
        ordering = ["-detected_at", "id"]
        indexes = [
            models.Index(fields=["exercise", "severity", "status"], name="accounting__exercis_a2f6d4_idx"),
        ]

    def __str__(self):
        return f"{self.rule_id} {self.severity}: {self.description}"


class PeriodClosure(LedgerModel):
    """
    Closing record for a period of an exercise.

    At most one CLOSED row per (exercise, period); reopening flips the
    row to REOPENED so a later close inserts a new row.
    """

    class ClosureType(models.TextChoices):
        MONTHLY = "MONTHLY", "Monthly"
        QUARTERLY = "QUARTERLY", "Quarterly"
        ANNUAL = "ANNUAL", "Annual"

    class Status(models.TextChoices):
        CLOSED = "CLOSED", "Closed"
        REOPENED = "REOPENED", "Reopened"

    exercise = models.ForeignKey(
        Exercise,
        on_delete=models.PROTECT,
        related_name="closures",
    )
    period = models.CharField(max_length=10)
    closure_type = models.CharField(max_length=10, choices=ClosureType.choices)
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.CLOSED)

    closed_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="period_closures",
    )
    closed_at = models.DateTimeField(default=timezone.now)
    controls = models.JSONField(default=dict, blank=True)
    anomaly_count = models.PositiveIntegerField(default=0)

    reopened_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="reopened_closures",
    )
    reopened_at = models.DateTimeField(null=True, blank=True)
    reopen_reason = models.TextField(blank=True, default="")

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["exercise", "period"],
                condition=Q(status="CLOSED"),
                name="uniq_closed_period_per_exercise",
            ),
        ]
        ordering = ["exercise", "closed_at"]

    def __str__(self):
        return f"{self.exercise_id}:{self.period} {self.status}"

    @property
    def months(self) -> list[str]:
        return self.controls.get("months", [])


class CarryForward(LedgerModel):
    """Opening balances (à-nouveaux) carried from one exercise into the next."""

    class Status(models.TextChoices):
        GENERATED = "GENERATED", "Generated"
        VALIDATED = "VALIDATED", "Validated"

    source_exercise = models.OneToOneField(
        Exercise,
        on_delete=models.PROTECT,
        related_name="carry_forward",
    )
    destination_exercise = models.ForeignKey(
        Exercise,
        on_delete=models.PROTECT,
        related_name="carried_in",
    )
    entry = models.OneToOneField(
        JournalEntry,
        on_delete=models.PROTECT,
        related_name="carry_forward",
    )
    # [{"account": "521", "debit": "125000000.00", "credit": "0.00"}, ...]
    balances = models.JSONField(default=list)
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.GENERATED)
    generated_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="carry_forwards",
    )
    generated_at = models.DateTimeField(default=timezone.now)

    def __str__(self):
        return f"{self.source_exercise_id} -> {self.destination_exercise_id}"


class BankReconciliation(LedgerModel):
    """Bank statement reconciliation of a treasury account for one month."""

    class Status(models.TextChoices):
        DRAFT = "DRAFT", "Draft"
        VALIDATED = "VALIDATED", "Validated"

    exercise = models.ForeignKey(
        Exercise,
        on_delete=models.CASCADE,
        related_name="bank_reconciliations",
    )
    account_number = models.CharField(max_length=20)
    period = models.CharField(max_length=7)
    statement_balance = models.DecimalField(max_digits=18, decimal_places=2)
    book_balance = models.DecimalField(max_digits=18, decimal_places=2)
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.DRAFT)
    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="bank_reconciliations",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["exercise", "account_number", "period"],
                name="uniq_bank_reconciliation_per_period",
            ),
        ]

    @property
    def difference(self) -> Decimal:
        return self.statement_balance - self.book_balance
