# accounting/serializers.py
"""
Serializers for the ledger API.

Note: These serializers are used for:
1. Input validation (shape and types only)
2. Output formatting

The actual business rules live in commands.py and closing.py; a
payload that passes these serializers can still be refused there.
"""

from rest_framework import serializers

from .models import (
    Account,
    Anomaly,
    BankReconciliation,
    CarryForward,
    EntryLine,
    Exercise,
    JournalEntry,
    PeriodClosure,
)


# =============================================================================
# Exercise & Account Serializers
# =============================================================================

class ExerciseSerializer(serializers.ModelSerializer):
    closed_by = serializers.EmailField(source="closed_by.email", read_only=True, default=None)

    class Meta:
        model = Exercise
        fields = [
            "id", "code", "label", "start_date", "end_date", "base_currency",
            "is_closed", "closed_at", "closed_by", "opening_balances_validated",
            "created_at",
        ]
        read_only_fields = fields


class ExerciseCreateSerializer(serializers.Serializer):
    code = serializers.CharField(max_length=20)
    label = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    start_date = serializers.DateField()
    end_date = serializers.DateField()
    base_currency = serializers.CharField(max_length=3, required=False, allow_blank=True, default="")


class ChartInitializeSerializer(serializers.Serializer):
    """Empty body seeds the default chart; `source_exercise` copies another one."""
    source_exercise = serializers.CharField(max_length=20, required=False, allow_blank=True, default="")


class AccountSerializer(serializers.ModelSerializer):
    """
    Serializer for Account model.
    Used for listing and retrieving; creation goes through commands.
    """
    parent_number = serializers.CharField(source="parent.number", read_only=True, default=None)
    net_balance = serializers.DecimalField(max_digits=18, decimal_places=2, read_only=True)

    class Meta:
        model = Account
        fields = [
            "id", "number", "label", "account_class", "nature",
            "parent_number", "is_lettrable", "is_active",
            "debit_balance", "credit_balance", "net_balance",
            "created_at", "updated_at",
        ]
        read_only_fields = fields


class AccountCreateSerializer(serializers.Serializer):
    """Serializer for creating accounts via command."""
    number = serializers.CharField(max_length=20)
    label = serializers.CharField(max_length=255)
    parent_number = serializers.CharField(max_length=20, required=False, allow_blank=True, allow_null=True)


# =============================================================================
# Journal Entry Serializers
# =============================================================================

class EntryLineSerializer(serializers.ModelSerializer):
    """Serializer for individual entry lines."""

    class Meta:
        model = EntryLine
        fields = [
            "id", "line_number", "account_number", "account_label", "label",
            "side", "amount", "currency", "exchange_rate", "base_amount",
            "reconciliation_tag", "lettered_at", "cost_center", "project",
        ]
        read_only_fields = fields


class EntryLineInputSerializer(serializers.Serializer):
    """
    One line of a new entry. `currency` defaults to the exercise base
    currency; `exchange_rate` is required for any other currency.
    """
    account = serializers.CharField(max_length=20)
    side = serializers.ChoiceField(choices=EntryLine.Side.choices)
    amount = serializers.DecimalField(max_digits=18, decimal_places=2)
    label = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    currency = serializers.CharField(max_length=3, required=False, allow_blank=True, default="")
    exchange_rate = serializers.DecimalField(max_digits=18, decimal_places=6, required=False, allow_null=True)
    base_amount = serializers.DecimalField(max_digits=18, decimal_places=2, required=False, allow_null=True)
    cost_center = serializers.CharField(max_length=50, required=False, allow_blank=True, default="")
    project = serializers.CharField(max_length=50, required=False, allow_blank=True, default="")


class JournalEntryCreateSerializer(serializers.Serializer):
    journal_code = serializers.CharField(max_length=10)
    entry_date = serializers.DateField()
    document_date = serializers.DateField(required=False, allow_null=True, default=None)
    label = serializers.CharField(max_length=255, required=False, allow_blank=True, default="")
    reference = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")
    budget_line = serializers.CharField(max_length=50, required=False, allow_blank=True, default="")
    lines = EntryLineInputSerializer(many=True)


class JournalEntrySerializer(serializers.ModelSerializer):
    """
    Full journal entry serializer with nested lines.
    Used for retrieval and display.
    """
    lines = EntryLineSerializer(many=True, read_only=True)
    total_debit = serializers.DecimalField(max_digits=18, decimal_places=2, read_only=True)
    total_credit = serializers.DecimalField(max_digits=18, decimal_places=2, read_only=True)
    exercise = serializers.CharField(source="exercise.code", read_only=True)
    created_by = serializers.EmailField(source="created_by.email", read_only=True, default=None)
    validated_by = serializers.EmailField(source="validated_by.email", read_only=True, default=None)
    posted_by = serializers.EmailField(source="posted_by.email", read_only=True, default=None)

    class Meta:
        model = JournalEntry
        fields = [
            "public_id", "exercise", "number", "journal_code", "journal_label",
            "sequence_number", "entry_type", "entry_date", "document_date", "period",
            "label", "reference", "budget_line", "total_amount", "is_balanced",
            "status", "status_reason",
            "created_by", "created_at", "validated_by", "validated_at",
            "posted_by", "posted_at", "updated_at",
            "lines", "total_debit", "total_credit",
        ]
        read_only_fields = fields


class ReasonSerializer(serializers.Serializer):
    reason = serializers.CharField()


# =============================================================================
# Lettering, anomalies, reconciliation
# =============================================================================

class LetteringSerializer(serializers.Serializer):
    line_ids = serializers.ListField(child=serializers.IntegerField(), min_length=2)


class UnletteringSerializer(serializers.Serializer):
    tag = serializers.CharField(max_length=20)


class AnomalySerializer(serializers.ModelSerializer):
    entry_number = serializers.CharField(source="entry.number", read_only=True, default=None)

    class Meta:
        model = Anomaly
        fields = [
            "id", "rule_id", "category", "severity", "description", "details",
            "period", "entry_number", "detected_at", "status",
        ]
        read_only_fields = fields


class BankReconciliationSerializer(serializers.ModelSerializer):
    difference = serializers.DecimalField(max_digits=18, decimal_places=2, read_only=True)

    class Meta:
        model = BankReconciliation
        fields = [
            "id", "account_number", "period", "statement_balance",
            "book_balance", "difference", "status", "created_at",
        ]
        read_only_fields = fields


class BankReconciliationCreateSerializer(serializers.Serializer):
    account_number = serializers.CharField(max_length=20)
    period = serializers.CharField(max_length=7)
    statement_balance = serializers.DecimalField(max_digits=18, decimal_places=2)
    book_balance = serializers.DecimalField(max_digits=18, decimal_places=2, required=False, allow_null=True)


# =============================================================================
# Reports
# =============================================================================

class LedgerQuerySerializer(serializers.Serializer):
    account = serializers.CharField(max_length=20, required=False)
    date_from = serializers.DateField(required=False)
    date_to = serializers.DateField(required=False)

    def validate(self, attrs):
        if attrs.get("date_from") and attrs.get("date_to") and attrs["date_from"] > attrs["date_to"]:
            raise serializers.ValidationError("date_from must not be after date_to.")
        return attrs


class TrialBalanceQuerySerializer(LedgerQuerySerializer):
    account = None
    account_class = serializers.IntegerField(required=False, min_value=1, max_value=9)


# =============================================================================
# Closing
# =============================================================================

class PeriodClosureSerializer(serializers.ModelSerializer):
    closed_by = serializers.EmailField(source="closed_by.email", read_only=True, default=None)
    reopened_by = serializers.EmailField(source="reopened_by.email", read_only=True, default=None)

    class Meta:
        model = PeriodClosure
        fields = [
            "id", "period", "closure_type", "status", "closed_by", "closed_at",
            "controls", "anomaly_count", "reopened_by", "reopened_at", "reopen_reason",
        ]
        read_only_fields = fields


class PeriodClosureCreateSerializer(serializers.Serializer):
    period = serializers.CharField(max_length=10, required=False, allow_blank=True, default="")
    closure_type = serializers.ChoiceField(
        choices=PeriodClosure.ClosureType.choices,
        default=PeriodClosure.ClosureType.MONTHLY,
    )


class CarryForwardRequestSerializer(serializers.Serializer):
    destination = serializers.CharField(max_length=20)


class CarryForwardSerializer(serializers.ModelSerializer):
    source_exercise = serializers.CharField(source="source_exercise.code", read_only=True)
    destination_exercise = serializers.CharField(source="destination_exercise.code", read_only=True)
    entry_number = serializers.CharField(source="entry.number", read_only=True)

    class Meta:
        model = CarryForward
        fields = [
            "id", "source_exercise", "destination_exercise", "entry_number",
            "balances", "status", "generated_at",
        ]
        read_only_fields = fields
