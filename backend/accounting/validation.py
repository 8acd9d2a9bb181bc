# accounting/validation.py
"""
Validation / anomaly engine.

A fixed, ordered battery of checks. Each check returns findings rather
than raising, so a caller sees every problem of an entry at once:

    CTRL_001  debit/credit equilibrium            EQUILIBRIUM   BLOCKING
    CTRL_002  account exists in the exercise      CONSISTENCY   BLOCKING
    CTRL_003  document date after entry date      CONSISTENCY   WARNING
    CTRL_004  line amount <= 0                    CONSISTENCY   ERROR
    CTRL_005  missing entry or line label         COMPLETENESS  WARNING
    CTRL_006  foreign currency without rate/base  CONSISTENCY   BLOCKING

An entry is valid iff none of its findings is BLOCKING or ERROR.

Balance-level checks (used by period closing):

    BAL_001   trial balance three-way equilibrium EQUILIBRIUM   BLOCKING
    BAL_002   balance sign sanity per class       CONSISTENCY   WARNING

The battery works on anything shaped like an entry: stored JournalEntry
rows, or header/line candidates before they are persisted.
"""

from dataclasses import dataclass, field, asdict
from decimal import Decimal

from accounting.models import (
    Anomaly,
    EntryLine,
    TOLERANCE,
    ZERO,
    quantize_money,
)
from accounting.write_barrier import command_writes_allowed

Category = Anomaly.Category
Severity = Anomaly.Severity

BLOCKING_SEVERITIES = frozenset({Severity.BLOCKING, Severity.ERROR})


@dataclass
class Finding:
    rule_id: str
    category: str
    severity: str
    description: str
    details: dict = field(default_factory=dict)

    @property
    def is_blocking(self) -> bool:
        return self.severity in BLOCKING_SEVERITIES

    def to_dict(self) -> dict:
        return asdict(self)


@dataclass
class ValidationReport:
    findings: list[Finding] = field(default_factory=list)

    @property
    def valid(self) -> bool:
        return not any(f.is_blocking for f in self.findings)

    @property
    def blocking(self) -> list[Finding]:
        return [f for f in self.findings if f.is_blocking]

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "findings": [f.to_dict() for f in self.findings],
        }


def _base_amount(line) -> Decimal:
    if line.base_amount is not None:
        return Decimal(line.base_amount)
    return Decimal(line.amount or 0)


def side_totals(lines) -> tuple[Decimal, Decimal]:
    debit = ZERO
    credit = ZERO
    for line in lines:
        if line.side == EntryLine.Side.DEBIT:
            debit += _base_amount(line)
        else:
            credit += _base_amount(line)
    return quantize_money(debit), quantize_money(credit)


# =============================================================================
# Entry checks
# =============================================================================

def check_equilibrium(entry, lines, exercise) -> list[Finding]:
    debit, credit = side_totals(lines)
    discrepancy = abs(debit - credit)
    if discrepancy < TOLERANCE:
        return []
    return [Finding(
        rule_id="CTRL_001",
        category=Category.EQUILIBRIUM,
        severity=Severity.BLOCKING,
        description=f"Entry is not balanced, discrepancy = {discrepancy}",
        details={
            "total_debit": str(debit),
            "total_credit": str(credit),
            "discrepancy": str(discrepancy),
        },
    )]


def check_accounts_exist(entry, lines, exercise) -> list[Finding]:
    numbers = {line.account_number for line in lines}
    known = set(
        exercise.accounts.filter(number__in=numbers).values_list("number", flat=True)
    )
    findings = []
    for number in sorted(numbers - known):
        findings.append(Finding(
            rule_id="CTRL_002",
            category=Category.CONSISTENCY,
            severity=Severity.BLOCKING,
            description=f"Account {number} does not exist in exercise {exercise.code}.",
            details={"account": number},
        ))
    return findings


def check_dates(entry, lines, exercise) -> list[Finding]:
    if entry.document_date and entry.entry_date and entry.document_date > entry.entry_date:
        return [Finding(
            rule_id="CTRL_003",
            category=Category.CONSISTENCY,
            severity=Severity.WARNING,
            description="Document date is later than the entry date.",
            details={
                "document_date": entry.document_date.isoformat(),
                "entry_date": entry.entry_date.isoformat(),
            },
        )]
    return []


def check_positive_amounts(entry, lines, exercise) -> list[Finding]:
    findings = []
    for line in lines:
        if line.amount is None or Decimal(line.amount) <= 0:
            findings.append(Finding(
                rule_id="CTRL_004",
                category=Category.CONSISTENCY,
                severity=Severity.ERROR,
                description=f"Line {line.line_number}: amount must be strictly positive.",
                details={"line": line.line_number, "amount": str(line.amount)},
            ))
    return findings


def check_labels(entry, lines, exercise) -> list[Finding]:
    findings = []
    if not (entry.label or "").strip():
        findings.append(Finding(
            rule_id="CTRL_005",
            category=Category.COMPLETENESS,
            severity=Severity.WARNING,
            description="Entry label is missing.",
        ))
    missing = [line.line_number for line in lines if not (line.label or "").strip()]
    if missing:
        findings.append(Finding(
            rule_id="CTRL_005",
            category=Category.COMPLETENESS,
            severity=Severity.WARNING,
            description=f"Line label missing on lines {', '.join(str(n) for n in missing)}.",
            details={"lines": missing},
        ))
    return findings


def check_currencies(entry, lines, exercise) -> list[Finding]:
    findings = []
    for line in lines:
        if line.currency == exercise.base_currency:
            continue
        rate = line.exchange_rate
        if rate is None or Decimal(rate) <= 0:
            findings.append(Finding(
                rule_id="CTRL_006",
                category=Category.CONSISTENCY,
                severity=Severity.BLOCKING,
                description=(
                    f"Line {line.line_number}: exchange rate required for "
                    f"{line.currency} (base {exercise.base_currency})."
                ),
                details={"line": line.line_number, "currency": line.currency},
            ))
            continue

        expected = quantize_money(Decimal(line.amount or 0) * Decimal(rate))
        base = line.base_amount
        if base is None or Decimal(base) <= 0 or abs(Decimal(base) - expected) >= TOLERANCE:
            findings.append(Finding(
                rule_id="CTRL_006",
                category=Category.CONSISTENCY,
                severity=Severity.BLOCKING,
                description=(
                    f"Line {line.line_number}: base amount {base} does not match "
                    f"{line.amount} x {rate} = {expected}."
                ),
                details={
                    "line": line.line_number,
                    "base_amount": None if base is None else str(base),
                    "expected": str(expected),
                },
            ))
    return findings


ENTRY_CHECKS = (
    check_equilibrium,
    check_accounts_exist,
    check_dates,
    check_positive_amounts,
    check_labels,
    check_currencies,
)


def run_entry_checks(entry, lines, exercise) -> ValidationReport:
    """Run the whole battery in order and aggregate every finding."""
    report = ValidationReport()
    for check in ENTRY_CHECKS:
        report.findings.extend(check(entry, lines, exercise))
    return report


# =============================================================================
# Balance-level checks
# =============================================================================

def check_trial_balance(trial_balance) -> list[Finding]:
    """Three-way equilibrium of a built trial balance."""
    if trial_balance.is_balanced:
        return []
    gaps = {name: str(value) for name, value in trial_balance.discrepancies.items()}
    return [Finding(
        rule_id="BAL_001",
        category=Category.EQUILIBRIUM,
        severity=Severity.BLOCKING,
        description=(
            "Trial balance is not balanced: "
            + ", ".join(f"{name} gap = {value}" for name, value in gaps.items())
        ),
        details=gaps,
    )]


def check_balance_signs(trial_balance) -> list[Finding]:
    """
    Class 1 (resources) should not end with a net debit; classes 2 to 5
    should not end with a net credit. Reported, never corrected.
    """
    findings = []
    for row in trial_balance.rows:
        net = row.closing_debit - row.closing_credit
        if row.account_class == 1 and net > 0:
            expected = "credit"
        elif row.account_class in (2, 3, 4, 5) and net < 0:
            expected = "debit"
        else:
            continue
        findings.append(Finding(
            rule_id="BAL_002",
            category=Category.CONSISTENCY,
            severity=Severity.WARNING,
            description=(
                f"Account {row.account_number} (class {row.account_class}) "
                f"has an abnormal balance of {net}; expected a {expected} balance."
            ),
            details={"account": row.account_number, "net_balance": str(net)},
        ))
    return findings


# =============================================================================
# Persistence
# =============================================================================

def persist_findings(exercise, findings, entry=None, period: str = "") -> list[Anomaly]:
    """Write one Anomaly row per finding, advisory ones included."""
    anomalies = []
    with command_writes_allowed():
        for finding in findings:
            anomalies.append(Anomaly.objects.create(
                exercise=exercise,
                entry=entry,
                period=period,
                rule_id=finding.rule_id,
                category=finding.category,
                severity=finding.severity,
                description=finding.description,
                details=finding.details,
            ))
    return anomalies
