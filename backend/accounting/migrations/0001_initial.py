import uuid
from decimal import Decimal

import accounting.models
import django.db.models.deletion
import django.utils.timezone
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Exercise",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("code", models.CharField(max_length=20, unique=True)),
                ("label", models.CharField(blank=True, default="", max_length=255)),
                ("start_date", models.DateField()),
                ("end_date", models.DateField()),
                ("base_currency", models.CharField(default=accounting.models.default_base_currency, max_length=3)),
                ("is_closed", models.BooleanField(default=False)),
                ("closed_at", models.DateTimeField(blank=True, null=True)),
                ("opening_balances_validated", models.BooleanField(default=False)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("closed_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="closed_exercises", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["start_date"],
            },
        ),
        migrations.CreateModel(
            name="Account",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("number", models.CharField(max_length=20)),
                ("label", models.CharField(max_length=255)),
                ("account_class", models.PositiveSmallIntegerField(editable=False)),
                ("nature", models.CharField(choices=[("ASSET", "Asset"), ("LIABILITY", "Liability"), ("EXPENSE", "Expense"), ("REVENUE", "Revenue"), ("SPECIAL", "Special")], editable=False, max_length=10)),
                ("is_lettrable", models.BooleanField(default=False, editable=False)),
                ("is_active", models.BooleanField(default=True)),
                ("debit_balance", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("credit_balance", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("exercise", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="accounts", to="accounting.exercise")),
                ("parent", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.PROTECT, related_name="children", to="accounting.account")),
            ],
            options={
                "ordering": ["number"],
                "indexes": [models.Index(fields=["exercise", "account_class"], name="accounting__exercis_5b0c1e_idx")],
            },
        ),
        migrations.AddConstraint(
            model_name="account",
            constraint=models.UniqueConstraint(fields=("exercise", "number"), name="uniq_account_number_per_exercise"),
        ),
        migrations.CreateModel(
            name="Sequence",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=100)),
                ("next_value", models.BigIntegerField(default=1)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("exercise", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="sequences", to="accounting.exercise")),
            ],
        ),
        migrations.AddConstraint(
            model_name="sequence",
            constraint=models.UniqueConstraint(fields=("exercise", "name"), name="uniq_exercise_sequence_name"),
        ),
        migrations.CreateModel(
            name="JournalEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("public_id", models.UUIDField(default=uuid.uuid4, editable=False, unique=True)),
                ("journal_code", models.CharField(max_length=10)),
                ("journal_label", models.CharField(blank=True, default="", max_length=100)),
                ("sequence_number", models.PositiveIntegerField()),
                ("number", models.CharField(max_length=30)),
                ("entry_type", models.CharField(choices=[("OPERATION", "Operation"), ("CLOSING", "Closing"), ("CARRY_FORWARD", "Carry-forward")], default="OPERATION", max_length=20)),
                ("entry_date", models.DateField()),
                ("document_date", models.DateField(blank=True, null=True)),
                ("period", models.CharField(max_length=7)),
                ("label", models.CharField(blank=True, default="", max_length=255)),
                ("reference", models.CharField(blank=True, default="", max_length=100)),
                ("budget_line", models.CharField(blank=True, default="", max_length=50)),
                ("total_amount", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=18)),
                ("is_balanced", models.BooleanField(default=False)),
                ("status", models.CharField(choices=[("DRAFT", "Draft"), ("VALIDATED", "Validated"), ("POSTED", "Posted"), ("REJECTED", "Rejected"), ("CANCELLED", "Cancelled")], default="DRAFT", max_length=20)),
                ("status_reason", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("validated_at", models.DateTimeField(blank=True, null=True)),
                ("posted_at", models.DateTimeField(blank=True, null=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("exercise", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="entries", to="accounting.exercise")),
                ("created_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="created_entries", to=settings.AUTH_USER_MODEL)),
                ("validated_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="validated_entries", to=settings.AUTH_USER_MODEL)),
                ("posted_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="posted_entries", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["entry_date", "journal_code", "sequence_number"],
                "indexes": [
                    models.Index(fields=["exercise", "period"], name="accounting__exercis_8f4d2a_idx"),
                    models.Index(fields=["exercise", "status"], name="accounting__exercis_c71e90_idx"),
                ],
            },
        ),
        migrations.AddConstraint(
            model_name="journalentry",
            constraint=models.UniqueConstraint(fields=("exercise", "journal_code", "sequence_number"), name="uniq_entry_sequence_per_journal"),
        ),
        migrations.CreateModel(
            name="EntryLine",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("line_number", models.PositiveSmallIntegerField()),
                ("account_number", models.CharField(max_length=20)),
                ("account_label", models.CharField(blank=True, default="", max_length=255)),
                ("label", models.CharField(blank=True, default="", max_length=255)),
                ("side", models.CharField(choices=[("DEBIT", "Debit"), ("CREDIT", "Credit")], max_length=6)),
                ("amount", models.DecimalField(decimal_places=2, max_digits=18)),
                ("currency", models.CharField(max_length=3)),
                ("exchange_rate", models.DecimalField(blank=True, decimal_places=6, max_digits=18, null=True)),
                ("base_amount", models.DecimalField(decimal_places=2, max_digits=18)),
                ("reconciliation_tag", models.CharField(blank=True, default="", max_length=20)),
                ("lettered_at", models.DateField(blank=True, null=True)),
                ("cost_center", models.CharField(blank=True, default="", max_length=50)),
                ("project", models.CharField(blank=True, default="", max_length=50)),
                ("entry", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="lines", to="accounting.journalentry")),
                ("account", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="lines", to="accounting.account")),
            ],
            options={
                "ordering": ["line_number"],
                "indexes": [models.Index(fields=["account", "reconciliation_tag"], name="accounting__account_3e9a7b_idx")],
            },
        ),
        migrations.AddConstraint(
            model_name="entryline",
            constraint=models.UniqueConstraint(fields=("entry", "line_number"), name="uniq_line_number_per_entry"),
        ),
        migrations.CreateModel(
            name="Anomaly",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("period", models.CharField(blank=True, default="", max_length=10)),
                ("rule_id", models.CharField(max_length=20)),
                ("category", models.CharField(choices=[("EQUILIBRIUM", "Equilibrium"), ("CONSISTENCY", "Consistency"), ("COMPLETENESS", "Completeness")], max_length=20)),
                ("severity", models.CharField(choices=[("BLOCKING", "Blocking"), ("ERROR", "Error"), ("WARNING", "Warning"), ("INFO", "Info")], max_length=10)),
                ("description", models.TextField()),
                ("details", models.JSONField(blank=True, default=dict)),
                ("detected_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("status", models.CharField(choices=[("OPEN", "Open"), ("RESOLVED", "Resolved"), ("IGNORED", "Ignored")], default="OPEN", max_length=10)),
                ("exercise", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="anomalies", to="accounting.exercise")),
                ("entry", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="anomalies", to="accounting.journalentry")),
            ],
            options={
                "ordering": ["-detected_at", "id"],
                "indexes": [models.Index(fields=["exercise", "severity", "status"], name="accounting__exercis_a2f6d4_idx")],
            },
        ),
        migrations.CreateModel(
            name="PeriodClosure",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("period", models.CharField(max_length=10)),
                ("closure_type", models.CharField(choices=[("MONTHLY", "Monthly"), ("QUARTERLY", "Quarterly"), ("ANNUAL", "Annual")], max_length=10)),
                ("status", models.CharField(choices=[("CLOSED", "Closed"), ("REOPENED", "Reopened")], default="CLOSED", max_length=10)),
                ("closed_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("controls", models.JSONField(blank=True, default=dict)),
                ("anomaly_count", models.PositiveIntegerField(default=0)),
                ("reopened_at", models.DateTimeField(blank=True, null=True)),
                ("reopen_reason", models.TextField(blank=True, default="")),
                ("exercise", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="closures", to="accounting.exercise")),
                ("closed_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="period_closures", to=settings.AUTH_USER_MODEL)),
                ("reopened_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="reopened_closures", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "ordering": ["exercise", "closed_at"],
            },
        ),
        migrations.AddConstraint(
            model_name="periodclosure",
            constraint=models.UniqueConstraint(condition=models.Q(("status", "CLOSED")), fields=("exercise", "period"), name="uniq_closed_period_per_exercise"),
        ),
        migrations.CreateModel(
            name="CarryForward",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("balances", models.JSONField(default=list)),
                ("status", models.CharField(choices=[("GENERATED", "Generated"), ("VALIDATED", "Validated")], default="GENERATED", max_length=10)),
                ("generated_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("source_exercise", models.OneToOneField(on_delete=django.db.models.deletion.PROTECT, related_name="carry_forward", to="accounting.exercise")),
                ("destination_exercise", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="carried_in", to="accounting.exercise")),
                ("entry", models.OneToOneField(on_delete=django.db.models.deletion.PROTECT, related_name="carry_forward", to="accounting.journalentry")),
                ("generated_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="carry_forwards", to=settings.AUTH_USER_MODEL)),
            ],
        ),
        migrations.CreateModel(
            name="BankReconciliation",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("account_number", models.CharField(max_length=20)),
                ("period", models.CharField(max_length=7)),
                ("statement_balance", models.DecimalField(decimal_places=2, max_digits=18)),
                ("book_balance", models.DecimalField(decimal_places=2, max_digits=18)),
                ("status", models.CharField(choices=[("DRAFT", "Draft"), ("VALIDATED", "Validated")], default="DRAFT", max_length=10)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("exercise", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="bank_reconciliations", to="accounting.exercise")),
                ("created_by", models.ForeignKey(blank=True, null=True, on_delete=django.db.models.deletion.SET_NULL, related_name="bank_reconciliations", to=settings.AUTH_USER_MODEL)),
            ],
        ),
        migrations.AddConstraint(
            model_name="bankreconciliation",
            constraint=models.UniqueConstraint(fields=("exercise", "account_number", "period"), name="uniq_bank_reconciliation_per_period"),
        ),
    ]
