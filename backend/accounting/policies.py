# accounting/policies.py
"""
Business policy functions for ledger operations.

Policies answer: "Is this action allowed given the current state?"
They do NOT perform the action; that's the command's job.

Usage:
    from accounting.policies import can_post_to_account

    allowed, reason = can_post_to_account(account)
    if not allowed:
        return CommandResult.fail(reason, code=Reason.INACTIVE_ACCOUNT)

Policies are pure reads and return (bool, str) tuples.
"""


class Reason:
    """Reason codes carried by failed command results."""

    INVALID_ENTRY = "INVALID_ENTRY"
    INVALID_LINES = "INVALID_LINES"
    UNBALANCED = "UNBALANCED"
    UNKNOWN_ACCOUNT = "UNKNOWN_ACCOUNT"
    INACTIVE_ACCOUNT = "INACTIVE_ACCOUNT"
    MISSING_EXCHANGE_RATE = "MISSING_EXCHANGE_RATE"
    INVALID_BASE_AMOUNT = "INVALID_BASE_AMOUNT"
    BUDGET_INSUFFICIENT = "BUDGET_INSUFFICIENT"
    PERIOD_CLOSED = "PERIOD_CLOSED"
    EXERCISE_CLOSED = "EXERCISE_CLOSED"
    PERSISTENCE_FAILURE = "PERSISTENCE_FAILURE"
    INVALID_TRANSITION = "INVALID_TRANSITION"
    VALIDATION_FAILED = "VALIDATION_FAILED"
    NOT_FOUND = "NOT_FOUND"
    INVALID_ACCOUNT = "INVALID_ACCOUNT"
    DUPLICATE_ACCOUNT = "DUPLICATE_ACCOUNT"
    ACCOUNT_HAS_BALANCE = "ACCOUNT_HAS_BALANCE"
    INVALID_EXERCISE = "INVALID_EXERCISE"
    LETTERING_FAILED = "LETTERING_FAILED"
    INVALID_PERIOD = "INVALID_PERIOD"
    ALREADY_CLOSED = "ALREADY_CLOSED"
    CONTROLS_FAILED = "CONTROLS_FAILED"
    PERIODS_NOT_CLOSED = "PERIODS_NOT_CLOSED"
    EXERCISE_NOT_CLOSED = "EXERCISE_NOT_CLOSED"
    ALREADY_CARRIED_FORWARD = "ALREADY_CARRIED_FORWARD"
    NOTHING_TO_CARRY = "NOTHING_TO_CARRY"
    NOT_CLOSED = "NOT_CLOSED"


# =============================================================================
# Exercise & Period Policies
# =============================================================================

def can_modify_exercise(exercise) -> tuple[bool, str]:
    """Closed exercises accept no new accounts, entries or postings."""
    if exercise.is_closed:
        return False, f"Exercise {exercise.code} is closed."
    return True, ""


def closed_months(exercise) -> set[str]:
    """
    Months ("YYYY-MM") covered by a CLOSED closure of the exercise.

    Monthly, quarterly and annual closures each record the months they
    cover in their control snapshot.
    """
    from accounting.models import PeriodClosure

    months = set()
    closures = PeriodClosure.objects.filter(
        exercise=exercise,
        status=PeriodClosure.Status.CLOSED,
    ).only("period", "controls")
    for closure in closures:
        months.update(closure.months or [closure.period])
    return months


def can_post_to_period(exercise, entry_date, entry_type) -> tuple[bool, str]:
    """
    Check if an entry dated `entry_date` may be created or posted.

    Rules:
    - Exercise must be open
    - Date must fall inside the exercise
    - OPERATION entries cannot land in a closed month; CLOSING and
      CARRY_FORWARD entries are generated by the closing engine and may
    """
    from accounting.models import JournalEntry, month_label

    allowed, reason = can_modify_exercise(exercise)
    if not allowed:
        return False, reason

    if not exercise.contains(entry_date):
        return False, (
            f"Date {entry_date.isoformat()} is outside exercise {exercise.code} "
            f"({exercise.start_date.isoformat()} - {exercise.end_date.isoformat()})."
        )

    if entry_type != JournalEntry.EntryType.OPERATION:
        return True, ""

    label = month_label(entry_date)
    if label in closed_months(exercise):
        return False, f"Period {label} is closed."

    return True, ""


# =============================================================================
# Account Policies
# =============================================================================

def can_post_to_account(account) -> tuple[bool, str]:
    """Only active accounts receive postings."""
    if not account.is_active:
        return False, f"Cannot post to inactive account: {account.number}"
    return True, ""


def can_deactivate_account(account) -> tuple[bool, str]:
    """
    Rules:
    - Account must be active
    - Net balance must be zero, so trial balances over active
      accounts stay in equilibrium
    """
    if not account.is_active:
        return False, f"Account {account.number} is already inactive."

    if account.net_balance != 0:
        return False, (
            f"Account {account.number} carries a balance of {account.net_balance}; "
            "settle it before deactivating."
        )

    return True, ""


# =============================================================================
# Journal Entry Status Transition Policies (Workflow Rules)
# =============================================================================

def validate_status_transition(old_status, new_status) -> tuple[bool, str]:
    """
    Validate a status transition is allowed.

    Allowed transitions (forward only, nothing returns to DRAFT):
    - DRAFT -> VALIDATED
    - DRAFT -> REJECTED
    - VALIDATED -> POSTED
    - VALIDATED -> CANCELLED
    """
    from accounting.models import JournalEntry

    allowed_transitions = {
        (JournalEntry.Status.DRAFT, JournalEntry.Status.VALIDATED),
        (JournalEntry.Status.DRAFT, JournalEntry.Status.REJECTED),
        (JournalEntry.Status.VALIDATED, JournalEntry.Status.POSTED),
        (JournalEntry.Status.VALIDATED, JournalEntry.Status.CANCELLED),
    }

    if (old_status, new_status) in allowed_transitions:
        return True, ""

    return False, f"Invalid status transition: {old_status} -> {new_status}"
