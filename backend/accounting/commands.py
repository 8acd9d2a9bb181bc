# accounting/commands.py
"""
Command layer for ledger operations.

Commands are the single point where business operations happen.
Views call commands; commands enforce rules and write the ledger tables.

Pattern:
1. Validate permissions (require)
2. Apply business policies (can_*)
3. Perform the operation (model changes inside a write context)
4. Log and count the outcome
5. Return CommandResult

Business failures are returned, never raised: the caller gets the
message, a reason code from policies.Reason and optional details.
Permission failures raise PermissionDenied.

The closing engine (accounting/closing.py) reuses the internal
_create_entry / _validate_entry / _post_entry helpers so the entries it
generates go through the exact same path as manual ones.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation

from django.conf import settings
from django.db import DatabaseError, IntegrityError, transaction
from django.utils import timezone

from accounts.authz import ActorContext, require
from accounting import chart
from accounting.budget import get_budget_oracle
from accounting.ledger import account_ledger
from accounting.models import (
    Account,
    BankReconciliation,
    EntryLine,
    Exercise,
    JournalEntry,
    Sequence,
    TOLERANCE,
    ZERO,
    month_bounds,
    month_label,
    quantize_money,
    quantize_rate,
)
from accounting.policies import (
    Reason,
    can_deactivate_account,
    can_modify_exercise,
    can_post_to_account,
    can_post_to_period,
    validate_status_transition,
)
from accounting.validation import (
    check_equilibrium,
    persist_findings,
    run_entry_checks,
    side_totals,
)
from accounting.write_barrier import command_writes_allowed, posting_writes_allowed
from ops import metrics

logger = logging.getLogger(__name__)


class CommandResult:
    """
    Wrapper for command results with success/failure info.

    Usage:
        result = create_journal_entry(actor, exercise, "AC", date, lines)
        if result.success:
            entry = result.data
        else:
            error_message = result.error
            reason_code = result.code
    """

    def __init__(self, success: bool, data=None, error: str = None, code: str = None, details=None):
        self.success = success
        self.data = data
        self.error = error
        self.code = code
        self.details = details or {}

    @classmethod
    def ok(cls, data=None, details=None):
        return cls(success=True, data=data, details=details)

    @classmethod
    def fail(cls, error: str, code: str = None, details=None):
        return cls(success=False, error=error, code=code, details=details)

    def __repr__(self):
        if self.success:
            return f"CommandResult(ok, data={self.data!r})"
        return f"CommandResult(fail, code={self.code}, error={self.error!r})"


class _PostingAborted(Exception):
    """Unwinds the posting transaction; carries the failure to report."""

    def __init__(self, message: str, code: str, details=None):
        super().__init__(message)
        self.code = code
        self.details = details or {}


def _fail(command: str, error: str, code: str, details=None) -> CommandResult:
    logger.warning(
        "%s refused: %s",
        command,
        error,
        extra={"command": command, "reason_code": code},
    )
    metrics.record_failure(command, code)
    return CommandResult.fail(error, code=code, details=details)


def _period_reason(exercise) -> str:
    return Reason.EXERCISE_CLOSED if exercise.is_closed else Reason.PERIOD_CLOSED


def _next_sequence(exercise, name: str) -> int:
    """
    Allocate the next value of an exercise sequence.

    Uses select_for_update to avoid concurrent duplicates. Must run in
    the transaction that persists the numbered row, so a rollback gives
    the number back.
    """
    with command_writes_allowed():
        try:
            seq = Sequence.objects.select_for_update().get(exercise=exercise, name=name)
        except Sequence.DoesNotExist:
            try:
                with transaction.atomic():
                    seq = Sequence.objects.create(exercise=exercise, name=name, next_value=1)
            except IntegrityError:
                seq = Sequence.objects.select_for_update().get(exercise=exercise, name=name)

        value = seq.next_value
        seq.next_value = value + 1
        seq.save(update_fields=["next_value", "updated_at"])
        return value


def _lettering_code(value: int) -> str:
    """1 -> A, 26 -> Z, 27 -> AA."""
    letters = ""
    while value > 0:
        value, remainder = divmod(value - 1, 26)
        letters = chr(ord("A") + remainder) + letters
    return letters


def _to_decimal(value) -> Decimal | None:
    if value is None or value == "":
        return None
    try:
        number = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValueError(f"'{value}' is not a number")
    if not number.is_finite():
        raise ValueError(f"'{value}' is not a number")
    return number


# =============================================================================
# Exercise & Chart Commands
# =============================================================================

@transaction.atomic
def create_exercise(
    actor: ActorContext,
    code: str,
    start_date: date,
    end_date: date,
    label: str = "",
    base_currency: str = None,
) -> CommandResult:
    """Open a new fiscal exercise. Exercises never overlap."""
    require(actor, "exercise.manage")

    code = (code or "").strip()
    if not code:
        return _fail("create_exercise", "Exercise code is required.", Reason.INVALID_EXERCISE)
    if not isinstance(start_date, date) or not isinstance(end_date, date) or end_date <= start_date:
        return _fail(
            "create_exercise",
            "Exercise end date must be after its start date.",
            Reason.INVALID_EXERCISE,
        )
    if Exercise.objects.filter(code=code).exists():
        return _fail("create_exercise", f"Exercise {code} already exists.", Reason.INVALID_EXERCISE)

    overlapping = Exercise.objects.filter(start_date__lte=end_date, end_date__gte=start_date).first()
    if overlapping:
        return _fail(
            "create_exercise",
            f"Exercise dates overlap exercise {overlapping.code}.",
            Reason.INVALID_EXERCISE,
        )

    with command_writes_allowed():
        exercise = Exercise.objects.create(
            code=code,
            label=label,
            start_date=start_date,
            end_date=end_date,
            base_currency=(base_currency or settings.LEDGER_BASE_CURRENCY).upper(),
        )

    logger.info("Exercise created", extra={"exercise": exercise.code})
    return CommandResult.ok(exercise)


def _insert_account(exercise, number: str, label: str, parent: Account | None) -> Account:
    with command_writes_allowed():
        return Account.objects.create(
            exercise=exercise,
            number=number,
            label=label,
            parent=parent,
        )


@transaction.atomic
def initialize_chart(actor: ActorContext, exercise: Exercise, source_exercise: Exercise = None) -> CommandResult:
    """
    Seed the chart of an exercise.

    Without a source, the default SYSCOHADA chart is used; otherwise the
    accounts of `source_exercise` are copied with zero balances.
    Numbers already present are skipped, so running it twice is harmless.
    """
    require(actor, "accounts.manage")

    allowed, reason = can_modify_exercise(exercise)
    if not allowed:
        return _fail("initialize_chart", reason, Reason.EXERCISE_CLOSED)

    if source_exercise is not None:
        if source_exercise.pk == exercise.pk:
            return _fail(
                "initialize_chart",
                "Cannot copy the chart of an exercise into itself.",
                Reason.INVALID_EXERCISE,
            )
        source_accounts = list(source_exercise.accounts.select_related("parent"))
        # Shorter numbers first so parents exist before their children.
        source_accounts.sort(key=lambda a: (len(a.number), a.number))
        rows = [
            (a.number, a.label, a.parent.number if a.parent else None, a.is_active)
            for a in source_accounts
        ]
    else:
        rows = [(number, label, parent, True) for number, label, parent in chart.DEFAULT_CHART]

    by_number = {a.number: a for a in exercise.accounts.all()}
    created = []
    skipped = 0
    for number, label, parent_number, is_active in rows:
        if number in by_number:
            skipped += 1
            continue
        account = _insert_account(exercise, number, label, by_number.get(parent_number))
        if not is_active:
            with command_writes_allowed():
                account.is_active = False
                account.save(update_fields=["is_active", "updated_at"])
        by_number[number] = account
        created.append(account)

    logger.info(
        "Chart initialized",
        extra={
            "exercise": exercise.code,
            "source_exercise": source_exercise.code if source_exercise else None,
            "created_count": len(created),
            "skipped": skipped,
        },
    )
    return CommandResult.ok(created, details={"created": len(created), "skipped": skipped})


@transaction.atomic
def create_account(
    actor: ActorContext,
    exercise: Exercise,
    number: str,
    label: str,
    parent_number: str = None,
) -> CommandResult:
    """
    Add an account to the chart of an exercise.

    Class, nature and lettrable status are derived from the number.
    """
    require(actor, "accounts.manage")

    allowed, reason = can_modify_exercise(exercise)
    if not allowed:
        return _fail("create_account", reason, Reason.EXERCISE_CLOSED)

    try:
        number = chart.validate_account_number(number)
    except chart.ChartError as exc:
        return _fail("create_account", str(exc), Reason.INVALID_ACCOUNT)

    label = (label or "").strip()
    if not label:
        return _fail("create_account", "Account label is required.", Reason.INVALID_ACCOUNT)

    if Account.objects.filter(exercise=exercise, number=number).exists():
        return _fail(
            "create_account",
            f"Account {number} already exists in exercise {exercise.code}.",
            Reason.DUPLICATE_ACCOUNT,
        )

    parent = None
    if parent_number:
        parent = Account.objects.filter(exercise=exercise, number=parent_number).first()
        if parent is None:
            return _fail(
                "create_account",
                f"Parent account {parent_number} not found in exercise {exercise.code}.",
                Reason.INVALID_ACCOUNT,
            )

    try:
        with transaction.atomic():
            account = _insert_account(exercise, number, label, parent)
    except IntegrityError:
        return _fail(
            "create_account",
            f"Account {number} already exists in exercise {exercise.code}.",
            Reason.DUPLICATE_ACCOUNT,
        )

    logger.info(
        "Account created",
        extra={"exercise": exercise.code, "account": account.number, "account_class": account.account_class},
    )
    return CommandResult.ok(account)


@transaction.atomic
def deactivate_account(actor: ActorContext, exercise: Exercise, number: str) -> CommandResult:
    """Soft delete: the account stays in the chart but refuses new postings."""
    require(actor, "accounts.manage")

    try:
        account = Account.objects.select_for_update().get(exercise=exercise, number=number)
    except Account.DoesNotExist:
        return _fail("deactivate_account", f"Account {number} not found.", Reason.NOT_FOUND)

    allowed, reason = can_deactivate_account(account)
    if not allowed:
        code = Reason.ACCOUNT_HAS_BALANCE if account.is_active else Reason.INACTIVE_ACCOUNT
        return _fail("deactivate_account", reason, code)

    with command_writes_allowed():
        account.is_active = False
        account.save(update_fields=["is_active", "updated_at"])

    logger.info("Account deactivated", extra={"exercise": exercise.code, "account": account.number})
    return CommandResult.ok(account)


# =============================================================================
# Journal Entry Commands
# =============================================================================

@dataclass
class _LineDraft:
    """A line as received, before it is persisted."""

    line_number: int
    account_number: str
    side: str
    amount: Decimal
    currency: str
    label: str = ""
    exchange_rate: Decimal | None = None
    base_amount: Decimal | None = None
    cost_center: str = ""
    project: str = ""


@dataclass
class _HeaderDraft:
    label: str
    entry_date: date
    document_date: date | None


def _parse_lines(lines, base_currency: str) -> list[_LineDraft]:
    """Structural parsing. Raises ValueError with a message naming the line."""
    drafts = []
    for index, raw in enumerate(lines, start=1):
        if not isinstance(raw, dict):
            raise ValueError(f"Line {index}: expected an object.")

        account_number = str(raw.get("account") or raw.get("account_number") or "").strip()
        if not account_number:
            raise ValueError(f"Line {index}: account is required.")

        side = str(raw.get("side") or "").upper()
        if side not in EntryLine.Side.values:
            raise ValueError(f"Line {index}: side must be DEBIT or CREDIT.")

        try:
            amount = _to_decimal(raw.get("amount"))
            exchange_rate = _to_decimal(raw.get("exchange_rate"))
            base_amount = _to_decimal(raw.get("base_amount"))
        except ValueError as exc:
            raise ValueError(f"Line {index}: {exc}.")
        if amount is None:
            raise ValueError(f"Line {index}: amount is required.")
        amount = quantize_money(amount)
        if amount <= 0:
            raise ValueError(f"Line {index}: amount must be strictly positive.")
        if exchange_rate is not None:
            exchange_rate = quantize_rate(exchange_rate)

        drafts.append(_LineDraft(
            line_number=index,
            account_number=account_number,
            side=side,
            amount=amount,
            currency=str(raw.get("currency") or base_currency).upper(),
            label=raw.get("label") or "",
            exchange_rate=exchange_rate,
            base_amount=base_amount,
            cost_center=raw.get("cost_center") or "",
            project=raw.get("project") or "",
        ))
    return drafts


def _apply_exchange_rates(drafts: list[_LineDraft], base_currency: str) -> tuple[str, str, dict] | None:
    """
    Fill base amounts. Base-currency lines carry no rate and base = amount.
    Returns (message, code, details) on the first inconsistent line.
    """
    for draft in drafts:
        if draft.currency == base_currency:
            draft.exchange_rate = None
            draft.base_amount = draft.amount
            continue

        if draft.exchange_rate is None or draft.exchange_rate <= 0:
            return (
                f"Line {draft.line_number}: a positive exchange rate is required for "
                f"{draft.currency} (base currency {base_currency}).",
                Reason.MISSING_EXCHANGE_RATE,
                {"line": draft.line_number, "currency": draft.currency},
            )

        computed = quantize_money(draft.amount * draft.exchange_rate)
        if draft.base_amount is not None and abs(draft.base_amount - computed) >= TOLERANCE:
            return (
                f"Line {draft.line_number}: base amount {draft.base_amount} does not match "
                f"{draft.amount} x {draft.exchange_rate} = {computed}.",
                Reason.INVALID_BASE_AMOUNT,
                {
                    "line": draft.line_number,
                    "base_amount": str(draft.base_amount),
                    "expected": str(computed),
                },
            )
        draft.base_amount = computed
    return None


def _create_entry(
    actor: ActorContext,
    exercise: Exercise,
    journal_code: str,
    entry_date: date,
    lines: list,
    label: str = "",
    reference: str = "",
    document_date: date = None,
    budget_line: str = "",
    entry_type: str = JournalEntry.EntryType.OPERATION,
    command: str = "create_journal_entry",
) -> CommandResult:
    journals = getattr(settings, "LEDGER_JOURNALS", {})
    journal_code = (journal_code or "").strip().upper()
    if journal_code not in journals:
        return _fail(command, f"Unknown journal code: {journal_code or '(empty)'}", Reason.INVALID_ENTRY)

    if not isinstance(entry_date, date):
        return _fail(command, "Entry date is required.", Reason.INVALID_ENTRY)

    allowed, reason = can_modify_exercise(exercise)
    if not allowed:
        return _fail(command, reason, Reason.EXERCISE_CLOSED)

    if not exercise.contains(entry_date):
        return _fail(
            command,
            f"Date {entry_date.isoformat()} is outside exercise {exercise.code}.",
            Reason.INVALID_ENTRY,
        )

    if not lines:
        return _fail(command, "An entry needs at least one line.", Reason.INVALID_LINES)

    base_currency = exercise.base_currency
    try:
        drafts = _parse_lines(lines, base_currency)
    except ValueError as exc:
        return _fail(command, str(exc), Reason.INVALID_LINES)

    problem = _apply_exchange_rates(drafts, base_currency)
    if problem:
        message, code, details = problem
        return _fail(command, message, code, details)

    header = _HeaderDraft(label=label, entry_date=entry_date, document_date=document_date)
    unbalanced = check_equilibrium(header, drafts, exercise)
    if unbalanced:
        return _fail(command, unbalanced[0].description, Reason.UNBALANCED, unbalanced[0].details)

    numbers = {draft.account_number for draft in drafts}
    accounts = {
        account.number: account
        for account in Account.objects.filter(exercise=exercise, number__in=numbers)
    }
    missing = sorted(numbers - set(accounts))
    if missing:
        return _fail(
            command,
            f"Unknown account(s) in exercise {exercise.code}: {', '.join(missing)}",
            Reason.UNKNOWN_ACCOUNT,
            {"accounts": missing},
        )
    for number in sorted(numbers):
        allowed, reason = can_post_to_account(accounts[number])
        if not allowed:
            return _fail(command, reason, Reason.INACTIVE_ACCOUNT, {"account": number})

    total_debit, _ = side_totals(drafts)
    if budget_line:
        oracle = get_budget_oracle()
        if oracle is not None and not oracle.is_available(budget_line, total_debit):
            return _fail(
                command,
                f"Insufficient budget on line {budget_line} for {total_debit}.",
                Reason.BUDGET_INSUFFICIENT,
                {"budget_line": budget_line, "amount": str(total_debit)},
            )

    allowed, reason = can_post_to_period(exercise, entry_date, entry_type)
    if not allowed:
        return _fail(command, reason, _period_reason(exercise))

    try:
        with transaction.atomic():
            sequence_number = _next_sequence(exercise, f"journal:{journal_code}")
            with command_writes_allowed():
                entry = JournalEntry.objects.create(
                    exercise=exercise,
                    journal_code=journal_code,
                    journal_label=journals[journal_code],
                    sequence_number=sequence_number,
                    number=f"{journal_code}-{sequence_number:04d}",
                    entry_type=entry_type,
                    entry_date=entry_date,
                    document_date=document_date,
                    period=month_label(entry_date),
                    label=label or "",
                    reference=reference or "",
                    budget_line=budget_line or "",
                    total_amount=total_debit,
                    is_balanced=True,
                    status=JournalEntry.Status.DRAFT,
                    created_by=actor.user,
                )
                for draft in drafts:
                    account = accounts[draft.account_number]
                    EntryLine.objects.create(
                        entry=entry,
                        line_number=draft.line_number,
                        account=account,
                        account_number=account.number,
                        account_label=account.label,
                        label=draft.label,
                        side=draft.side,
                        amount=draft.amount,
                        currency=draft.currency,
                        exchange_rate=draft.exchange_rate,
                        base_amount=draft.base_amount,
                        cost_center=draft.cost_center,
                        project=draft.project,
                    )
    except DatabaseError as exc:
        logger.error(
            "Entry persistence failed",
            extra={"exercise": exercise.code, "journal": journal_code, "error": str(exc)},
        )
        return _fail(command, f"Could not persist the entry: {exc}", Reason.PERSISTENCE_FAILURE)

    metrics.entries_created.labels(journal=journal_code).inc()
    logger.info(
        "Journal entry created",
        extra={
            "exercise": exercise.code,
            "entry": entry.number,
            "entry_type": entry_type,
            "total_amount": str(total_debit),
            "line_count": len(drafts),
        },
    )
    return CommandResult.ok(JournalEntry.objects.prefetch_related("lines").get(pk=entry.pk))


@transaction.atomic
def create_journal_entry(
    actor: ActorContext,
    exercise: Exercise,
    journal_code: str,
    entry_date: date,
    lines: list,
    label: str = "",
    reference: str = "",
    document_date: date = None,
    budget_line: str = "",
) -> CommandResult:
    """
    Create a DRAFT operation entry.

    Each line is a dict:
        {"account": "601", "side": "DEBIT", "amount": "1000.00", "label": "...",
         "currency": "EUR", "exchange_rate": "655.957", "base_amount": "655957.00",
         "cost_center": "", "project": ""}
    `currency` defaults to the exercise base currency.

    Checks run in order (structure, currency, equilibrium, accounts,
    budget, period lock). The journal sequence is only consumed once
    every check has passed, in the transaction that writes the entry.
    """
    require(actor, "journal.create")
    return _create_entry(
        actor,
        exercise,
        journal_code,
        entry_date,
        lines,
        label=label,
        reference=reference,
        document_date=document_date,
        budget_line=budget_line,
    )


def _lock_entry(entry: JournalEntry) -> JournalEntry:
    return JournalEntry.objects.select_for_update().get(pk=entry.pk)


def _validate_entry(actor: ActorContext, entry: JournalEntry, command: str = "validate_journal_entry") -> CommandResult:
    entry = _lock_entry(entry)

    allowed, reason = validate_status_transition(entry.status, JournalEntry.Status.VALIDATED)
    if not allowed:
        return _fail(command, reason, Reason.INVALID_TRANSITION)

    exercise = entry.exercise
    allowed, reason = can_modify_exercise(exercise)
    if not allowed:
        return _fail(command, reason, Reason.EXERCISE_CLOSED)

    lines = list(entry.lines.all())
    report = run_entry_checks(entry, lines, exercise)
    # Findings are kept even when validation is refused.
    persist_findings(exercise, report.findings, entry=entry, period=entry.period)

    if not report.valid:
        return _fail(
            command,
            f"Entry {entry.number} failed validation: "
            + "; ".join(finding.description for finding in report.blocking),
            Reason.VALIDATION_FAILED,
            report.to_dict(),
        )

    with command_writes_allowed():
        entry.status = JournalEntry.Status.VALIDATED
        entry.validated_by = actor.user
        entry.validated_at = timezone.now()
        entry.save(update_fields=["status", "validated_by", "validated_at", "updated_at"])

    logger.info(
        "Journal entry validated",
        extra={"entry": entry.number, "warnings": len(report.findings)},
    )
    return CommandResult.ok(entry, details=report.to_dict())


@transaction.atomic
def validate_journal_entry(actor: ActorContext, entry: JournalEntry) -> CommandResult:
    """
    DRAFT -> VALIDATED.

    Runs the whole anomaly battery and stores every finding. Refused if
    any finding is BLOCKING or ERROR; warnings do not block.
    """
    require(actor, "journal.validate")
    return _validate_entry(actor, entry)


def _transition_with_reason(actor, entry, new_status, reason_text: str, command: str) -> CommandResult:
    entry = _lock_entry(entry)

    allowed, reason = validate_status_transition(entry.status, new_status)
    if not allowed:
        return _fail(command, reason, Reason.INVALID_TRANSITION)

    reason_text = (reason_text or "").strip()
    if not reason_text:
        return _fail(command, "A reason is required.", Reason.INVALID_ENTRY)

    with command_writes_allowed():
        entry.status = new_status
        entry.status_reason = reason_text
        entry.save(update_fields=["status", "status_reason", "updated_at"])

    logger.info(
        "Journal entry status changed",
        extra={"entry": entry.number, "status": new_status, "actor": actor.user.email},
    )
    return CommandResult.ok(entry)


@transaction.atomic
def reject_journal_entry(actor: ActorContext, entry: JournalEntry, reason: str) -> CommandResult:
    """DRAFT -> REJECTED."""
    require(actor, "journal.validate")
    return _transition_with_reason(actor, entry, JournalEntry.Status.REJECTED, reason, "reject_journal_entry")


@transaction.atomic
def cancel_journal_entry(actor: ActorContext, entry: JournalEntry, reason: str) -> CommandResult:
    """VALIDATED -> CANCELLED."""
    require(actor, "journal.validate")
    return _transition_with_reason(actor, entry, JournalEntry.Status.CANCELLED, reason, "cancel_journal_entry")


def _post_entry(actor: ActorContext, entry: JournalEntry, command: str = "post_journal_entry") -> CommandResult:
    entry = _lock_entry(entry)

    allowed, reason = validate_status_transition(entry.status, JournalEntry.Status.POSTED)
    if not allowed:
        return _fail(command, reason, Reason.INVALID_TRANSITION)

    exercise = entry.exercise
    allowed, reason = can_post_to_period(exercise, entry.entry_date, entry.entry_type)
    if not allowed:
        return _fail(command, reason, _period_reason(exercise))

    lines = list(entry.lines.all())
    try:
        with transaction.atomic():
            # Stable lock order so concurrent postings cannot deadlock.
            accounts = {
                account.id: account
                for account in Account.objects.select_for_update()
                .filter(id__in={line.account_id for line in lines})
                .order_by("id")
            }
            for account in accounts.values():
                allowed, reason = can_post_to_account(account)
                if not allowed:
                    raise _PostingAborted(reason, Reason.INACTIVE_ACCOUNT, {"account": account.number})

            with posting_writes_allowed():
                for line in lines:
                    account = accounts[line.account_id]
                    if line.side == EntryLine.Side.DEBIT:
                        account.debit_balance += line.base_amount
                    else:
                        account.credit_balance += line.base_amount
                for account in accounts.values():
                    account.save(update_fields=["debit_balance", "credit_balance", "updated_at"])

            with command_writes_allowed():
                entry.status = JournalEntry.Status.POSTED
                entry.posted_by = actor.user
                entry.posted_at = timezone.now()
                entry.save(update_fields=["status", "posted_by", "posted_at", "updated_at"])
    except _PostingAborted as exc:
        return _fail(command, str(exc), exc.code, exc.details)
    except DatabaseError as exc:
        logger.error("Posting failed", extra={"entry": entry.number, "error": str(exc)})
        return _fail(command, f"Could not post entry {entry.number}: {exc}", Reason.PERSISTENCE_FAILURE)

    metrics.entries_posted.labels(journal=entry.journal_code).inc()
    logger.info(
        "Journal entry posted",
        extra={
            "exercise": exercise.code,
            "entry": entry.number,
            "total_amount": str(entry.total_amount),
            "accounts": sorted(account.number for account in accounts.values()),
        },
    )
    return CommandResult.ok(entry)


@transaction.atomic
def post_journal_entry(actor: ActorContext, entry: JournalEntry) -> CommandResult:
    """
    VALIDATED -> POSTED: the only writer of account balances.

    Every touched account is locked, then each line's base amount is
    added to the matching counter. Any failure leaves every balance
    untouched.
    """
    require(actor, "journal.post")
    return _post_entry(actor, entry)


# =============================================================================
# Convenience entries
# =============================================================================

@transaction.atomic
def create_purchase_entry(
    actor: ActorContext,
    exercise: Exercise,
    entry_date: date,
    net_amount,
    vat_amount,
    label: str,
    reference: str = "",
    document_date: date = None,
    budget_line: str = "",
    expense_account: str = "601",
    vat_account: str = "445",
    supplier_account: str = "401",
) -> CommandResult:
    """Supplier invoice in journal AC: expense and recoverable VAT against the supplier."""
    require(actor, "journal.create")
    try:
        net = quantize_money(_to_decimal(net_amount) or ZERO)
        vat = quantize_money(_to_decimal(vat_amount) or ZERO)
    except ValueError as exc:
        return _fail("create_purchase_entry", str(exc), Reason.INVALID_LINES)

    lines = [{"account": expense_account, "side": "DEBIT", "amount": net, "label": label}]
    if vat:
        lines.append({"account": vat_account, "side": "DEBIT", "amount": vat, "label": f"TVA {label}"})
    lines.append({"account": supplier_account, "side": "CREDIT", "amount": net + vat, "label": label})

    return _create_entry(
        actor,
        exercise,
        "AC",
        entry_date,
        lines,
        label=label,
        reference=reference,
        document_date=document_date,
        budget_line=budget_line,
        command="create_purchase_entry",
    )


@transaction.atomic
def create_sales_entry(
    actor: ActorContext,
    exercise: Exercise,
    entry_date: date,
    net_amount,
    vat_amount,
    label: str,
    reference: str = "",
    document_date: date = None,
    customer_account: str = "411",
    revenue_account: str = "701",
    vat_account: str = "443",
) -> CommandResult:
    """Customer invoice in journal VE: customer against revenue and collected VAT."""
    require(actor, "journal.create")
    try:
        net = quantize_money(_to_decimal(net_amount) or ZERO)
        vat = quantize_money(_to_decimal(vat_amount) or ZERO)
    except ValueError as exc:
        return _fail("create_sales_entry", str(exc), Reason.INVALID_LINES)

    lines = [
        {"account": customer_account, "side": "DEBIT", "amount": net + vat, "label": label},
        {"account": revenue_account, "side": "CREDIT", "amount": net, "label": label},
    ]
    if vat:
        lines.append({"account": vat_account, "side": "CREDIT", "amount": vat, "label": f"TVA {label}"})

    return _create_entry(
        actor,
        exercise,
        "VE",
        entry_date,
        lines,
        label=label,
        reference=reference,
        document_date=document_date,
        command="create_sales_entry",
    )


SUPPLIER_PAYMENT = "SUPPLIER_PAYMENT"
CUSTOMER_RECEIPT = "CUSTOMER_RECEIPT"


@transaction.atomic
def create_payment_entry(
    actor: ActorContext,
    exercise: Exercise,
    entry_date: date,
    amount,
    kind: str,
    label: str,
    reference: str = "",
    third_party_account: str = None,
    bank_account: str = "521",
) -> CommandResult:
    """
    Bank movement in journal BQ.

    SUPPLIER_PAYMENT: DEBIT supplier (401), CREDIT bank.
    CUSTOMER_RECEIPT: DEBIT bank, CREDIT customer (411).
    """
    require(actor, "journal.create")

    if kind == SUPPLIER_PAYMENT:
        third_party = third_party_account or "401"
        debit_account, credit_account = third_party, bank_account
    elif kind == CUSTOMER_RECEIPT:
        third_party = third_party_account or "411"
        debit_account, credit_account = bank_account, third_party
    else:
        return _fail("create_payment_entry", f"Unknown payment kind: {kind}", Reason.INVALID_ENTRY)

    lines = [
        {"account": debit_account, "side": "DEBIT", "amount": amount, "label": label},
        {"account": credit_account, "side": "CREDIT", "amount": amount, "label": label},
    ]
    return _create_entry(
        actor,
        exercise,
        "BQ",
        entry_date,
        lines,
        label=label,
        reference=reference,
        command="create_payment_entry",
    )


# =============================================================================
# Lettering & bank reconciliation
# =============================================================================

@transaction.atomic
def letter_lines(actor: ActorContext, exercise: Exercise, line_ids: list) -> CommandResult:
    """
    Match posted lines of one third-party account that settle each other.

    All lines must be POSTED, on the same lettrable account, not yet
    lettered, and their debits must equal their credits.
    """
    require(actor, "journal.letter")

    line_ids = set(line_ids or [])
    if len(line_ids) < 2:
        return _fail("letter_lines", "Lettering needs at least two lines.", Reason.LETTERING_FAILED)

    lines = list(
        EntryLine.objects.select_for_update()
        .filter(id__in=line_ids, entry__exercise=exercise)
        .select_related("entry", "account")
        .order_by("id")
    )
    if len(lines) != len(line_ids):
        found = {line.id for line in lines}
        return _fail(
            "letter_lines",
            "Lines not found in exercise: " + ", ".join(str(i) for i in sorted(line_ids - found)),
            Reason.NOT_FOUND,
        )

    not_posted = [line.entry.number for line in lines if line.entry.status != JournalEntry.Status.POSTED]
    if not_posted:
        return _fail(
            "letter_lines",
            f"Only posted lines can be lettered: {', '.join(sorted(set(not_posted)))}",
            Reason.LETTERING_FAILED,
        )

    account_numbers = {line.account_number for line in lines}
    if len(account_numbers) != 1:
        return _fail(
            "letter_lines",
            f"Lines belong to different accounts: {', '.join(sorted(account_numbers))}",
            Reason.LETTERING_FAILED,
        )

    account = lines[0].account
    if not account.is_lettrable:
        return _fail("letter_lines", f"Account {account.number} is not lettrable.", Reason.LETTERING_FAILED)

    already = sorted({line.reconciliation_tag for line in lines if line.reconciliation_tag})
    if already:
        return _fail(
            "letter_lines",
            f"Lines are already lettered ({', '.join(already)}).",
            Reason.LETTERING_FAILED,
        )

    debit, credit = side_totals(lines)
    if abs(debit - credit) >= TOLERANCE:
        return _fail(
            "letter_lines",
            f"Lettered lines must balance: debit {debit}, credit {credit}.",
            Reason.LETTERING_FAILED,
            {"total_debit": str(debit), "total_credit": str(credit)},
        )

    tag = _lettering_code(_next_sequence(exercise, "lettering"))
    today = timezone.localdate()
    with command_writes_allowed():
        for line in lines:
            line.reconciliation_tag = tag
            line.lettered_at = today
            line.save(update_fields=["reconciliation_tag", "lettered_at"])

    logger.info(
        "Lines lettered",
        extra={"exercise": exercise.code, "account": account.number, "tag": tag, "line_count": len(lines)},
    )
    return CommandResult.ok(lines, details={"tag": tag, "account": account.number})


@transaction.atomic
def unletter_lines(actor: ActorContext, exercise: Exercise, tag: str) -> CommandResult:
    """Remove a lettering code from every line carrying it."""
    require(actor, "journal.letter")

    lines = []
    if tag:
        lines = list(
            EntryLine.objects.select_for_update()
            .filter(entry__exercise=exercise, reconciliation_tag=tag)
            .order_by("id")
        )
    if not lines:
        return _fail("unletter_lines", f"No lines lettered {tag or '(empty)'}.", Reason.NOT_FOUND)

    with command_writes_allowed():
        for line in lines:
            line.reconciliation_tag = ""
            line.lettered_at = None
            line.save(update_fields=["reconciliation_tag", "lettered_at"])

    logger.info("Lines unlettered", extra={"exercise": exercise.code, "tag": tag, "line_count": len(lines)})
    return CommandResult.ok(lines, details={"tag": tag})


@transaction.atomic
def record_bank_reconciliation(
    actor: ActorContext,
    exercise: Exercise,
    account_number: str,
    period: str,
    statement_balance,
    book_balance=None,
) -> CommandResult:
    """
    Record the bank statement balance of a treasury account for a month.

    The book balance defaults to the account's ledger balance at the end
    of the month. The reconciliation is VALIDATED when both agree within
    0.01 and stays DRAFT otherwise. Recording again replaces the figures.
    """
    require(actor, "journal.letter")

    try:
        month_start, month_end = month_bounds(period)
    except ValueError:
        return _fail("record_bank_reconciliation", f"Invalid period: {period}", Reason.INVALID_PERIOD)
    if not (exercise.contains(month_start) and exercise.contains(month_end)):
        return _fail(
            "record_bank_reconciliation",
            f"Period {period} is outside exercise {exercise.code}.",
            Reason.INVALID_PERIOD,
        )

    account = Account.objects.filter(exercise=exercise, number=account_number).first()
    if account is None:
        return _fail("record_bank_reconciliation", f"Account {account_number} not found.", Reason.NOT_FOUND)
    if account.account_class != 5:
        return _fail(
            "record_bank_reconciliation",
            f"Account {account_number} is not a treasury account.",
            Reason.INVALID_ACCOUNT,
        )

    try:
        statement = _to_decimal(statement_balance)
        book = _to_decimal(book_balance)
    except ValueError as exc:
        return _fail("record_bank_reconciliation", str(exc), Reason.INVALID_ENTRY)
    if statement is None:
        return _fail("record_bank_reconciliation", "Statement balance is required.", Reason.INVALID_ENTRY)
    statement = quantize_money(statement)
    if book is None:
        book = account_ledger(exercise, account, date_to=month_end).closing_balance
    book = quantize_money(book)

    status = (
        BankReconciliation.Status.VALIDATED
        if abs(statement - book) < TOLERANCE
        else BankReconciliation.Status.DRAFT
    )
    with command_writes_allowed():
        reconciliation, _ = BankReconciliation.objects.update_or_create(
            exercise=exercise,
            account_number=account.number,
            period=period,
            defaults={
                "statement_balance": statement,
                "book_balance": book,
                "status": status,
                "created_by": actor.user,
            },
        )

    logger.info(
        "Bank reconciliation recorded",
        extra={
            "exercise": exercise.code,
            "account": account.number,
            "period": period,
            "difference": str(reconciliation.difference),
            "status": status,
        },
    )
    return CommandResult.ok(reconciliation)
