# accounting/closing.py
"""
Closing engine.

- close_period: run the closing controls over the months a period
  covers and lock them against new operation entries
- close_exercise: once every month is closed, zero the income statement
  accounts (classes 6 and 7) into the result account and close the
  exercise
- carry_forward: open the next exercise with the balance sheet balances
  (classes 1 to 5) of a closed one
- reopen_period: unlock a closed period, keeping its history

Every operation locks the exercise row first. The unique constraints on
PeriodClosure (one CLOSED row per period label) and CarryForward (one
per source exercise) turn the "not already done" check into an atomic
check-and-set.

Generated entries go through the ordinary create -> validate -> post
path; if any step refuses, the whole operation rolls back.
"""

import logging
from datetime import date
from decimal import Decimal

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from accounts.authz import ActorContext, require
from accounting.commands import (
    CommandResult,
    _create_entry,
    _fail,
    _insert_account,
    _post_entry,
    _validate_entry,
)
from accounting.models import (
    Account,
    Anomaly,
    BankReconciliation,
    CarryForward,
    EntryLine,
    Exercise,
    JournalEntry,
    PeriodClosure,
    TOLERANCE,
    ZERO,
    month_bounds,
)
from accounting.policies import Reason, can_modify_exercise, closed_months
from accounting.trial_balance import build_trial_balance
from accounting.validation import (
    Finding,
    check_balance_signs,
    check_equilibrium,
    check_trial_balance,
    persist_findings,
)
from accounting.write_barrier import command_writes_allowed
from ops import metrics

logger = logging.getLogger(__name__)

ClosureType = PeriodClosure.ClosureType

# Bank accounts (SYSCOHADA 52x) are expected to carry a monthly reconciliation.
BANK_ACCOUNT_PREFIX = "52"


class _ClosingAborted(Exception):
    """Raised inside the closing transaction to roll it back."""

    def __init__(self, result: CommandResult):
        super().__init__(result.error)
        self.result = result


def _lock_exercise(exercise) -> Exercise:
    return Exercise.objects.select_for_update().get(pk=exercise.pk)


def covered_months(exercise, period: str, closure_type: str) -> list[str]:
    """
    Months ("YYYY-MM") covered by a period label.

        MONTHLY    "2024-03"
        QUARTERLY  "2024-Q1"  (calendar quarter)
        ANNUAL     the exercise code, or empty: every month of the exercise

    Raises ValueError when the label is malformed or falls outside the exercise.
    """
    months = exercise.months()

    if closure_type == ClosureType.ANNUAL:
        if period and period != exercise.code:
            raise ValueError(f"Annual closure period must be the exercise code {exercise.code}.")
        return months

    if closure_type == ClosureType.MONTHLY:
        try:
            month_bounds(period)
        except ValueError:
            raise ValueError(f"Invalid month: {period}")
        wanted = [period]
    elif closure_type == ClosureType.QUARTERLY:
        year, _, quarter = (period or "").partition("-Q")
        if not (year.isdigit() and quarter in ("1", "2", "3", "4")):
            raise ValueError(f"Invalid quarter: {period}")
        first = 3 * (int(quarter) - 1) + 1
        wanted = [f"{int(year):04d}-{month:02d}" for month in range(first, first + 3)]
    else:
        raise ValueError(f"Unknown closure type: {closure_type}")

    outside = [month for month in wanted if month not in months]
    if outside:
        raise ValueError(f"Period {period} is outside exercise {exercise.code}.")
    return wanted


def _window(months: list[str]) -> tuple[date, date]:
    return month_bounds(months[0])[0], month_bounds(months[-1])[1]


# =============================================================================
# Closing controls
# =============================================================================

def _entry_equilibrium(exercise, start: date, end: date) -> list[tuple[JournalEntry, Finding]]:
    entries = (
        JournalEntry.objects.filter(
            exercise=exercise,
            entry_date__gte=start,
            entry_date__lte=end,
        )
        .exclude(status__in=[JournalEntry.Status.CANCELLED, JournalEntry.Status.REJECTED])
        .prefetch_related("lines")
        .order_by("entry_date", "journal_code", "sequence_number")
    )
    offending = []
    for entry in entries:
        for finding in check_equilibrium(entry, list(entry.lines.all()), exercise):
            finding.description = f"{entry.number}: {finding.description}"
            finding.details["entry"] = entry.number
            offending.append((entry, finding))
    return offending


def _lettering_findings(exercise, start: date, end: date) -> list[Finding]:
    open_lines = (
        EntryLine.objects.filter(
            entry__exercise=exercise,
            entry__status=JournalEntry.Status.POSTED,
            entry__entry_date__gte=start,
            entry__entry_date__lte=end,
            account__is_lettrable=True,
            reconciliation_tag="",
        )
        .values_list("account_number", flat=True)
    )
    counts: dict[str, int] = {}
    for number in open_lines:
        counts[number] = counts.get(number, 0) + 1

    return [
        Finding(
            rule_id="LET_001",
            category=Anomaly.Category.COMPLETENESS,
            severity=Anomaly.Severity.WARNING,
            description=f"Account {number} has {count} unlettered posted line(s).",
            details={"account": number, "unlettered_lines": count},
        )
        for number, count in sorted(counts.items())
    ]


def _bank_reconciliation_findings(exercise, months: list[str], end: date) -> list[Finding]:
    bank_accounts = sorted(set(
        EntryLine.objects.filter(
            entry__exercise=exercise,
            entry__status=JournalEntry.Status.POSTED,
            entry__entry_date__lte=end,
            account_number__startswith=BANK_ACCOUNT_PREFIX,
        ).values_list("account_number", flat=True)
    ))
    if not bank_accounts:
        return []

    validated = set(
        BankReconciliation.objects.filter(
            exercise=exercise,
            period__in=months,
            status=BankReconciliation.Status.VALIDATED,
        ).values_list("account_number", "period")
    )
    findings = []
    for number in bank_accounts:
        for month in months:
            if (number, month) in validated:
                continue
            findings.append(Finding(
                rule_id="BNK_001",
                category=Anomaly.Category.COMPLETENESS,
                severity=Anomaly.Severity.WARNING,
                description=f"No validated bank reconciliation for account {number} in {month}.",
                details={"account": number, "period": month},
            ))
    return findings


def run_closing_controls(exercise, months: list[str]) -> tuple[dict, list[tuple[JournalEntry | None, Finding]]]:
    """
    Run the five closing controls over the covered months.

    Returns the control snapshot stored on the closure and every
    finding, paired with the entry it concerns (or None).
    """
    start, end = _window(months)

    unbalanced = _entry_equilibrium(exercise, start, end)

    trial_balance = build_trial_balance(exercise, exercise.start_date, end)
    tb_findings = check_trial_balance(trial_balance)
    sign_findings = check_balance_signs(trial_balance)
    lettering = _lettering_findings(exercise, start, end)
    bank = _bank_reconciliation_findings(exercise, months, end)

    snapshot = {
        "months": months,
        "period_start": start.isoformat(),
        "period_end": end.isoformat(),
        "equilibrium": {
            "passed": not unbalanced,
            "unbalanced_entries": [entry.number for entry, _ in unbalanced],
        },
        "trial_balance": {
            "passed": trial_balance.is_balanced,
            "discrepancies": {k: str(v) for k, v in trial_balance.discrepancies.items()},
        },
        "balance_signs": {"warnings": len(sign_findings)},
        "lettering": {
            "unlettered_lines": sum(f.details["unlettered_lines"] for f in lettering),
        },
        "bank_reconciliation": {
            "missing": [f"{f.details['account']}:{f.details['period']}" for f in bank],
        },
    }

    findings = list(unbalanced)
    findings += [(None, f) for f in tb_findings + sign_findings + lettering + bank]
    return snapshot, findings


# =============================================================================
# Period closing
# =============================================================================

@transaction.atomic
def close_period(
    actor: ActorContext,
    exercise: Exercise,
    period: str,
    closure_type: str = ClosureType.MONTHLY,
) -> CommandResult:
    """
    Close a month, a quarter or the whole exercise calendar.

    Refused on unbalanced entries or an unbalanced trial balance;
    sign, lettering and bank reconciliation findings are advisory.
    Every finding is stored as an Anomaly, whether or not the closing
    goes through.
    """
    require(actor, "periods.close")

    exercise = _lock_exercise(exercise)
    allowed, reason = can_modify_exercise(exercise)
    if not allowed:
        return _fail("close_period", reason, Reason.EXERCISE_CLOSED)

    try:
        months = covered_months(exercise, period, closure_type)
    except ValueError as exc:
        return _fail("close_period", str(exc), Reason.INVALID_PERIOD)
    period = period or exercise.code

    if PeriodClosure.objects.filter(
        exercise=exercise, period=period, status=PeriodClosure.Status.CLOSED
    ).exists():
        return _fail("close_period", f"Period {period} is already closed", Reason.ALREADY_CLOSED)

    snapshot, findings = run_closing_controls(exercise, months)
    for entry, finding in findings:
        persist_findings(exercise, [finding], entry=entry, period=period)

    blocking = [finding for _, finding in findings if finding.is_blocking]
    if blocking:
        return _fail(
            "close_period",
            f"Closing controls failed for {period}: "
            + "; ".join(finding.description for finding in blocking),
            Reason.CONTROLS_FAILED,
            {"controls": snapshot},
        )

    try:
        with transaction.atomic():
            with command_writes_allowed():
                closure = PeriodClosure.objects.create(
                    exercise=exercise,
                    period=period,
                    closure_type=closure_type,
                    status=PeriodClosure.Status.CLOSED,
                    closed_by=actor.user,
                    closed_at=timezone.now(),
                    controls=snapshot,
                    anomaly_count=len(findings),
                )
    except IntegrityError:
        return _fail("close_period", f"Period {period} is already closed", Reason.ALREADY_CLOSED)

    metrics.closures.labels(closure_type=closure_type).inc()
    logger.info(
        "Period closed",
        extra={
            "exercise": exercise.code,
            "period": period,
            "closure_type": closure_type,
            "anomaly_count": len(findings),
        },
    )
    return CommandResult.ok(closure, details={"controls": snapshot})


@transaction.atomic
def reopen_period(actor: ActorContext, closure: PeriodClosure, reason: str) -> CommandResult:
    """
    Reopen a closed period. Posted entries are left as they are; the
    closure row is kept with status REOPENED.
    """
    require(actor, "periods.reopen")

    closure = PeriodClosure.objects.select_for_update().get(pk=closure.pk)
    if closure.status != PeriodClosure.Status.CLOSED:
        return _fail("reopen_period", f"Period {closure.period} is not closed.", Reason.NOT_CLOSED)

    allowed, message = can_modify_exercise(closure.exercise)
    if not allowed:
        return _fail("reopen_period", message, Reason.EXERCISE_CLOSED)

    reason = (reason or "").strip()
    if not reason:
        return _fail("reopen_period", "A reason is required to reopen a period.", Reason.INVALID_PERIOD)

    with command_writes_allowed():
        closure.status = PeriodClosure.Status.REOPENED
        closure.reopened_by = actor.user
        closure.reopened_at = timezone.now()
        closure.reopen_reason = reason
        closure.save(update_fields=["status", "reopened_by", "reopened_at", "reopen_reason"])

    logger.info(
        "Period reopened",
        extra={"exercise": closure.exercise.code, "period": closure.period, "reason": reason},
    )
    return CommandResult.ok(closure)


# =============================================================================
# Generated entries
# =============================================================================

def _generate_entry(actor, exercise, **kwargs) -> JournalEntry:
    """create -> validate -> post, raising _ClosingAborted on the first refusal."""
    result = _create_entry(actor, exercise, **kwargs)
    if not result.success:
        raise _ClosingAborted(result)
    entry = result.data

    for step in (_validate_entry, _post_entry):
        result = step(actor, entry, command=kwargs["command"])
        if not result.success:
            raise _ClosingAborted(result)
    return result.data


def closing_lines(exercise) -> tuple[list[dict], Decimal]:
    """
    Lines zeroing every class 6 and 7 account, plus the net result.

    A net debit is cancelled by a credit of the same amount and the
    other way round. The result is revenue minus expenses.
    """
    lines = []
    net_total = ZERO
    accounts = Account.objects.filter(exercise=exercise, account_class__in=(6, 7)).order_by("number")
    for account in accounts:
        net = account.net_balance
        if abs(net) < TOLERANCE:
            continue
        net_total += net
        lines.append({
            "account": account.number,
            "side": "CREDIT" if net > 0 else "DEBIT",
            "amount": abs(net),
            "label": f"Solde {account.number}",
        })
    return lines, -net_total


@transaction.atomic
def close_exercise(actor: ActorContext, exercise: Exercise) -> CommandResult:
    """
    Close the exercise.

    Requires every month to be covered by a CLOSED closure. Posts a
    CLOSING entry in journal OD dated on the last day of the exercise,
    moving the income statement into the result account (credited on
    a profit, debited on a loss), then marks the exercise closed.
    """
    require(actor, "exercise.close")

    exercise = _lock_exercise(exercise)
    if exercise.is_closed:
        return _fail("close_exercise", f"Exercise {exercise.code} is already closed", Reason.ALREADY_CLOSED)

    closed = closed_months(exercise)
    missing = [month for month in exercise.months() if month not in closed]
    if missing:
        return _fail(
            "close_exercise",
            f"Periods not closed: {', '.join(missing)}",
            Reason.PERIODS_NOT_CLOSED,
            {"periods": missing},
        )

    result_account = settings.LEDGER_RESULT_ACCOUNT
    lines, net_result = closing_lines(exercise)
    if lines and abs(net_result) >= TOLERANCE:
        lines.append({
            "account": result_account,
            "side": "CREDIT" if net_result >= 0 else "DEBIT",
            "amount": abs(net_result),
            "label": "Résultat de l'exercice",
        })

    try:
        with transaction.atomic():
            entry = None
            if lines:
                entry = _generate_entry(
                    actor,
                    exercise,
                    journal_code="OD",
                    entry_date=exercise.end_date,
                    lines=lines,
                    label=f"Clôture de l'exercice {exercise.code}",
                    entry_type=JournalEntry.EntryType.CLOSING,
                    command="close_exercise",
                )
            with command_writes_allowed():
                exercise.is_closed = True
                exercise.closed_at = timezone.now()
                exercise.closed_by = actor.user
                exercise.save(update_fields=["is_closed", "closed_at", "closed_by"])
    except _ClosingAborted as exc:
        return _fail(
            "close_exercise",
            f"Closing entry refused: {exc.result.error}",
            exc.result.code,
            exc.result.details,
        )

    metrics.closures.labels(closure_type="EXERCISE").inc()
    logger.info(
        "Exercise closed",
        extra={
            "exercise": exercise.code,
            "net_result": str(net_result),
            "closing_entry": entry.number if entry else None,
        },
    )
    return CommandResult.ok(
        exercise,
        details={
            "net_result": str(net_result),
            "result_account": result_account,
            "closing_entry": entry.number if entry else None,
        },
    )


# =============================================================================
# Carry-forward
# =============================================================================

def _ensure_account(destination, source_account: Account, existing: dict) -> Account:
    """Find or create `source_account` (and its parents) in the destination chart."""
    account = existing.get(source_account.number)
    if account is not None:
        return account
    parent = None
    if source_account.parent_id:
        parent = _ensure_account(destination, source_account.parent, existing)
    account = _insert_account(destination, source_account.number, source_account.label, parent)
    existing[account.number] = account
    return account


@transaction.atomic
def carry_forward(actor: ActorContext, source: Exercise, destination: Exercise) -> CommandResult:
    """
    Carry the balance sheet of a closed exercise into the next one.

    One CARRY_FORWARD entry (journal AN, dated on the first day of the
    destination) with a line per class 1 to 5 account whose net balance
    is not zero: a debit for a net debit, a credit otherwise.
    """
    require(actor, "exercise.close")

    if source.pk == destination.pk:
        return _fail("carry_forward", "Source and destination must differ.", Reason.INVALID_EXERCISE)

    locked = {
        ex.pk: ex
        for ex in Exercise.objects.select_for_update().filter(pk__in=[source.pk, destination.pk]).order_by("pk")
    }
    source, destination = locked[source.pk], locked[destination.pk]

    if not source.is_closed:
        return _fail(
            "carry_forward",
            f"Exercise {source.code} must be closed before carrying forward.",
            Reason.EXERCISE_NOT_CLOSED,
        )
    if destination.start_date <= source.end_date:
        return _fail(
            "carry_forward",
            f"Exercise {destination.code} does not follow exercise {source.code}.",
            Reason.INVALID_EXERCISE,
        )
    allowed, reason = can_modify_exercise(destination)
    if not allowed:
        return _fail("carry_forward", reason, Reason.EXERCISE_CLOSED)
    if CarryForward.objects.filter(source_exercise=source).exists():
        return _fail(
            "carry_forward",
            f"Exercise {source.code} was already carried forward.",
            Reason.ALREADY_CARRIED_FORWARD,
        )

    carried = []
    for account in (
        Account.objects.filter(exercise=source, account_class__in=(1, 2, 3, 4, 5))
        .select_related("parent")
        .order_by("number")
    ):
        net = account.net_balance
        if abs(net) >= TOLERANCE:
            carried.append((account, net))

    if not carried:
        return _fail(
            "carry_forward",
            f"Exercise {source.code} has no balance sheet balance to carry forward.",
            Reason.NOTHING_TO_CARRY,
        )

    lines = []
    balances = []
    for account, net in carried:
        lines.append({
            "account": account.number,
            "side": "DEBIT" if net > 0 else "CREDIT",
            "amount": abs(net),
            "label": f"À-nouveau {account.number}",
        })
        balances.append({
            "account": account.number,
            "debit": str(net if net > 0 else ZERO),
            "credit": str(-net if net < 0 else ZERO),
        })

    try:
        with transaction.atomic():
            existing = {a.number: a for a in destination.accounts.all()}
            for account, _ in carried:
                _ensure_account(destination, account, existing)

            entry = _generate_entry(
                actor,
                destination,
                journal_code="AN",
                entry_date=destination.start_date,
                lines=lines,
                label=f"À-nouveaux de l'exercice {source.code}",
                entry_type=JournalEntry.EntryType.CARRY_FORWARD,
                command="carry_forward",
            )
            with command_writes_allowed():
                record = CarryForward.objects.create(
                    source_exercise=source,
                    destination_exercise=destination,
                    entry=entry,
                    balances=balances,
                    status=CarryForward.Status.VALIDATED,
                    generated_by=actor.user,
                )
                destination.opening_balances_validated = True
                destination.save(update_fields=["opening_balances_validated"])
    except _ClosingAborted as exc:
        return _fail(
            "carry_forward",
            f"Carry-forward entry refused: {exc.result.error}",
            exc.result.code,
            exc.result.details,
        )
    except IntegrityError:
        return _fail(
            "carry_forward",
            f"Exercise {source.code} was already carried forward.",
            Reason.ALREADY_CARRIED_FORWARD,
        )

    logger.info(
        "Balances carried forward",
        extra={
            "source_exercise": source.code,
            "destination_exercise": destination.code,
            "entry": entry.number,
            "accounts": len(balances),
        },
    )
    return CommandResult.ok(record)
