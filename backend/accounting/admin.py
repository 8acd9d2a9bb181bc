# accounting/admin.py
"""
Django admin configuration for ledger models.

The admin is for viewing only. Every change goes through the command
layer (accounting/commands.py, accounting/closing.py); the models'
write barrier would refuse an admin save anyway.
"""

from django.contrib import admin
from django.utils.html import format_html

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


class ReadOnlyModelAdmin(admin.ModelAdmin):
    """
    Base admin class for ledger tables.

    To modify these models, use the command layer.
    """

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    def changeform_view(self, request, object_id=None, form_url="", extra_context=None):
        extra_context = extra_context or {}
        extra_context["show_save"] = False
        extra_context["show_save_and_continue"] = False
        extra_context["show_save_and_add_another"] = False
        extra_context["readonly_message"] = (
            "Ledger rows are written by the API/command layer only."
        )
        return super().changeform_view(request, object_id, form_url, extra_context)


class ReadOnlyInline(admin.TabularInline):
    def has_add_permission(self, request, obj=None):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class EntryLineInline(ReadOnlyInline):
    model = EntryLine
    extra = 0
    fields = [
        "line_number", "account_number", "label", "side",
        "amount", "currency", "base_amount", "reconciliation_tag",
    ]
    readonly_fields = fields


@admin.register(Exercise)
class ExerciseAdmin(ReadOnlyModelAdmin):
    list_display = ["code", "label", "start_date", "end_date", "base_currency", "is_closed"]
    list_filter = ["is_closed"]
    ordering = ["-start_date"]


@admin.register(Account)
class AccountAdmin(ReadOnlyModelAdmin):
    """Chart of accounts per exercise (read-only)."""

    list_display = [
        "number", "label", "account_class", "nature", "is_lettrable",
        "is_active", "debit_balance", "credit_balance", "exercise",
    ]
    list_filter = ["exercise", "account_class", "nature", "is_active"]
    search_fields = ["number", "label"]
    list_select_related = ["exercise", "parent"]
    ordering = ["exercise", "number"]

    fieldsets = (
        (None, {
            "fields": ("exercise", "number", "label", "parent"),
        }),
        ("Classification", {
            "fields": ("account_class", "nature", "is_lettrable", "is_active"),
        }),
        ("Balances", {
            "fields": ("debit_balance", "credit_balance"),
        }),
        ("Timestamps", {
            "fields": ("created_at", "updated_at"),
            "classes": ("collapse",),
        }),
    )
    readonly_fields = [
        "exercise", "number", "label", "parent", "account_class", "nature",
        "is_lettrable", "is_active", "debit_balance", "credit_balance",
        "created_at", "updated_at",
    ]


@admin.register(JournalEntry)
class JournalEntryAdmin(ReadOnlyModelAdmin):
    list_display = [
        "number", "entry_date", "journal_code", "label_truncated", "entry_type",
        "status_colored", "total_amount", "exercise",
    ]
    list_filter = ["exercise", "journal_code", "status", "entry_type"]
    search_fields = ["number", "label", "reference"]
    date_hierarchy = "entry_date"
    list_select_related = ["exercise", "created_by", "posted_by"]
    ordering = ["-entry_date", "-id"]

    fieldsets = (
        (None, {
            "fields": ("exercise", "number", "journal_code", "entry_type", "entry_date", "period"),
        }),
        ("Content", {
            "fields": ("label", "reference", "document_date", "budget_line", "total_amount"),
        }),
        ("Workflow", {
            "fields": (
                "status", "status_reason",
                "validated_at", "validated_by", "posted_at", "posted_by",
            ),
        }),
        ("Audit", {
            "fields": ("created_at", "created_by", "updated_at"),
            "classes": ("collapse",),
        }),
    )
    readonly_fields = [
        "exercise", "number", "journal_code", "entry_type", "entry_date", "period",
        "label", "reference", "document_date", "budget_line", "total_amount",
        "status", "status_reason", "validated_at", "validated_by",
        "posted_at", "posted_by", "created_at", "created_by", "updated_at",
    ]
    inlines = [EntryLineInline]

    def label_truncated(self, obj):
        if len(obj.label) > 50:
            return f"{obj.label[:50]}..."
        return obj.label
    label_truncated.short_description = "Label"

    def status_colored(self, obj):
        colors = {
            JournalEntry.Status.DRAFT: "#999",
            JournalEntry.Status.VALIDATED: "#007bff",
            JournalEntry.Status.POSTED: "#28a745",
            JournalEntry.Status.REJECTED: "#dc3545",
            JournalEntry.Status.CANCELLED: "#6c757d",
        }
        return format_html(
            '<span style="color: {}; font-weight: bold;">{}</span>',
            colors.get(obj.status, "#000"),
            obj.get_status_display(),
        )
    status_colored.short_description = "Status"
    status_colored.admin_order_field = "status"


@admin.register(Anomaly)
class AnomalyAdmin(ReadOnlyModelAdmin):
    list_display = ["rule_id", "severity", "category", "period", "entry", "status", "detected_at"]
    list_filter = ["exercise", "severity", "category", "status"]
    search_fields = ["rule_id", "description"]
    list_select_related = ["entry"]


@admin.register(PeriodClosure)
class PeriodClosureAdmin(ReadOnlyModelAdmin):
    list_display = ["exercise", "period", "closure_type", "status", "anomaly_count", "closed_by", "closed_at"]
    list_filter = ["exercise", "closure_type", "status"]


@admin.register(CarryForward)
class CarryForwardAdmin(ReadOnlyModelAdmin):
    list_display = ["source_exercise", "destination_exercise", "entry", "status", "generated_at"]


@admin.register(BankReconciliation)
class BankReconciliationAdmin(ReadOnlyModelAdmin):
    list_display = ["exercise", "account_number", "period", "statement_balance", "book_balance", "status"]
    list_filter = ["exercise", "status"]
