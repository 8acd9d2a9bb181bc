# accounting/views.py
"""
Thin views that delegate to the commands layer.

Views handle: HTTP parsing, authentication, response formatting.
Commands handle: permissions, business rules, writes.

Views never call .save() on ledger models; the write barrier would
refuse it anyway. A refused command becomes a 400 response:

    {"detail": "<message>", "code": "<reason code>", "details": {...}}
"""

from django.http import Http404
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from accounts.authz import resolve_actor, require
from .closing import carry_forward, close_exercise, close_period, reopen_period
from .commands import (
    cancel_journal_entry,
    create_account,
    create_exercise,
    create_journal_entry,
    deactivate_account,
    initialize_chart,
    letter_lines,
    post_journal_entry,
    record_bank_reconciliation,
    reject_journal_entry,
    unletter_lines,
    validate_journal_entry,
)
from .ledger import account_ledger, general_ledger
from .models import (
    Account,
    Anomaly,
    BankReconciliation,
    Exercise,
    JournalEntry,
    PeriodClosure,
)
from .policies import Reason
from .queries import (
    account_tree,
    accounts_by_class,
    accounts_by_nature,
    entries_for_exercise,
)
from .serializers import (
    AccountCreateSerializer,
    AccountSerializer,
    AnomalySerializer,
    BankReconciliationCreateSerializer,
    BankReconciliationSerializer,
    CarryForwardRequestSerializer,
    CarryForwardSerializer,
    ChartInitializeSerializer,
    EntryLineSerializer,
    ExerciseCreateSerializer,
    ExerciseSerializer,
    JournalEntryCreateSerializer,
    JournalEntrySerializer,
    LedgerQuerySerializer,
    LetteringSerializer,
    PeriodClosureCreateSerializer,
    PeriodClosureSerializer,
    ReasonSerializer,
    TrialBalanceQuerySerializer,
    UnletteringSerializer,
)
from .trial_balance import build_trial_balance


def _refused(result) -> Response:
    return Response(
        {"detail": result.error, "code": result.code, "details": result.details},
        status=status.HTTP_400_BAD_REQUEST,
    )


def _query(request, *names) -> dict:
    """Query parameters present in the request, renamed where needed."""
    data = {}
    for name in names:
        source, _, target = name.partition(":")
        value = request.query_params.get(source)
        if value not in (None, ""):
            data[target or source] = value
    return data


def _get_exercise(code) -> Exercise:
    return get_object_or_404(Exercise, code=code)


def _get_entry(public_id) -> JournalEntry:
    return get_object_or_404(JournalEntry, public_id=public_id)


# =============================================================================
# Exercise & Chart Views
# =============================================================================

class ExerciseListCreateView(APIView):
    """
    GET /api/accounting/exercises/ -> list exercises
    POST /api/accounting/exercises/ -> open an exercise
    """
    permission_classes = [IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "periods.view")
        return Response(ExerciseSerializer(Exercise.objects.all(), many=True).data)

    def post(self, request):
        actor = resolve_actor(request)
        # Permission check happens in command

        serializer = ExerciseCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = create_exercise(
            actor,
            code=data["code"],
            start_date=data["start_date"],
            end_date=data["end_date"],
            label=data["label"],
            base_currency=data["base_currency"] or None,
        )
        if not result.success:
            return _refused(result)
        return Response(ExerciseSerializer(result.data).data, status=status.HTTP_201_CREATED)


class ExerciseDetailView(APIView):
    """GET /api/accounting/exercises/<code>/"""
    permission_classes = [IsAuthenticated]

    def get(self, request, code):
        actor = resolve_actor(request)
        require(actor, "periods.view")
        return Response(ExerciseSerializer(_get_exercise(code)).data)


class ChartInitializeView(APIView):
    """
    POST /api/accounting/exercises/<code>/chart/initialize/

    Seeds the default SYSCOHADA chart, or copies the chart of
    `source_exercise` when given.
    """
    permission_classes = [IsAuthenticated]

    def post(self, request, code):
        actor = resolve_actor(request)
        exercise = _get_exercise(code)

        serializer = ChartInitializeSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        source_code = serializer.validated_data["source_exercise"]
        source = _get_exercise(source_code) if source_code else None

        result = initialize_chart(actor, exercise, source_exercise=source)
        if not result.success:
            return _refused(result)
        return Response(result.details, status=status.HTTP_201_CREATED)


class AccountListCreateView(APIView):
    """
    GET /api/accounting/exercises/<code>/accounts/ -> list accounts
        optional filters: class, nature, active
    POST /api/accounting/exercises/<code>/accounts/ -> create account
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, code):
        actor = resolve_actor(request)
        require(actor, "accounts.view")
        exercise = _get_exercise(code)

        active_only = request.query_params.get("active") in ("1", "true")
        account_class = request.query_params.get("class")
        nature = request.query_params.get("nature")
        if account_class and account_class.isdigit():
            accounts = accounts_by_class(exercise, int(account_class), active_only=active_only)
        elif nature:
            accounts = accounts_by_nature(exercise, nature.upper(), active_only=active_only)
        else:
            accounts = Account.objects.filter(exercise=exercise).order_by("number")
            if active_only:
                accounts = accounts.filter(is_active=True)

        return Response(AccountSerializer(accounts.select_related("parent"), many=True).data)

    def post(self, request, code):
        actor = resolve_actor(request)
        exercise = _get_exercise(code)

        serializer = AccountCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = create_account(
            actor,
            exercise,
            number=data["number"],
            label=data["label"],
            parent_number=data.get("parent_number") or None,
        )
        if not result.success:
            return _refused(result)
        return Response(AccountSerializer(result.data).data, status=status.HTTP_201_CREATED)


class AccountTreeView(APIView):
    """GET /api/accounting/exercises/<code>/accounts/tree/"""
    permission_classes = [IsAuthenticated]

    def get(self, request, code):
        actor = resolve_actor(request)
        require(actor, "accounts.view")
        return Response(account_tree(_get_exercise(code)))


class AccountDetailView(APIView):
    """
    GET /api/accounting/exercises/<code>/accounts/<number>/ -> retrieve account
    DELETE /api/accounting/exercises/<code>/accounts/<number>/ -> deactivate account
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, code, number):
        actor = resolve_actor(request)
        require(actor, "accounts.view")
        account = get_object_or_404(
            Account.objects.select_related("parent"),
            exercise=_get_exercise(code),
            number=number,
        )
        return Response(AccountSerializer(account).data)

    def delete(self, request, code, number):
        actor = resolve_actor(request)
        result = deactivate_account(actor, _get_exercise(code), number)
        if not result.success:
            if result.code == Reason.NOT_FOUND:
                raise Http404
            return _refused(result)
        return Response(AccountSerializer(result.data).data)


# =============================================================================
# Journal Entry Views
# =============================================================================

class JournalEntryListCreateView(APIView):
    """
    GET /api/accounting/exercises/<code>/entries/ -> list entries
        optional filters: status, journal, period
    POST /api/accounting/exercises/<code>/entries/ -> create a DRAFT entry
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, code):
        actor = resolve_actor(request)
        require(actor, "journal.view")

        entries = entries_for_exercise(
            _get_exercise(code),
            status=request.query_params.get("status"),
            journal_code=request.query_params.get("journal"),
            period=request.query_params.get("period"),
        )
        return Response(JournalEntrySerializer(entries, many=True).data)

    def post(self, request, code):
        actor = resolve_actor(request)
        exercise = _get_exercise(code)

        serializer = JournalEntryCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = create_journal_entry(
            actor,
            exercise,
            journal_code=data["journal_code"],
            entry_date=data["entry_date"],
            lines=[dict(line) for line in data["lines"]],
            label=data["label"],
            reference=data["reference"],
            document_date=data["document_date"],
            budget_line=data["budget_line"],
        )
        if not result.success:
            return _refused(result)
        return Response(JournalEntrySerializer(result.data).data, status=status.HTTP_201_CREATED)


class JournalEntryDetailView(APIView):
    """GET /api/accounting/entries/<public_id>/"""
    permission_classes = [IsAuthenticated]

    def get(self, request, public_id):
        actor = resolve_actor(request)
        require(actor, "journal.view")
        return Response(JournalEntrySerializer(_get_entry(public_id)).data)


class JournalValidateView(APIView):
    """
    POST /api/accounting/entries/<public_id>/validate/

    A refusal still stores the findings; they come back in `details`.
    """
    permission_classes = [IsAuthenticated]

    def post(self, request, public_id):
        actor = resolve_actor(request)
        result = validate_journal_entry(actor, _get_entry(public_id))
        if not result.success:
            return _refused(result)
        return Response({
            "entry": JournalEntrySerializer(result.data).data,
            "report": result.details,
        })


class _ReasonedTransitionView(APIView):
    permission_classes = [IsAuthenticated]
    command = None

    def post(self, request, public_id):
        actor = resolve_actor(request)
        entry = _get_entry(public_id)

        serializer = ReasonSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = self.command(actor, entry, serializer.validated_data["reason"])
        if not result.success:
            return _refused(result)
        return Response(JournalEntrySerializer(result.data).data)


class JournalRejectView(_ReasonedTransitionView):
    """POST /api/accounting/entries/<public_id>/reject/ {"reason": "..."}"""
    command = staticmethod(reject_journal_entry)


class JournalCancelView(_ReasonedTransitionView):
    """POST /api/accounting/entries/<public_id>/cancel/ {"reason": "..."}"""
    command = staticmethod(cancel_journal_entry)


class JournalPostView(APIView):
    """POST /api/accounting/entries/<public_id>/post/"""
    permission_classes = [IsAuthenticated]

    def post(self, request, public_id):
        actor = resolve_actor(request)
        result = post_journal_entry(actor, _get_entry(public_id))
        if not result.success:
            return _refused(result)

        entry = result.data
        return Response({
            "public_id": entry.public_id,
            "number": entry.number,
            "status": entry.status,
            "posted_at": entry.posted_at,
            "posted_by": actor.user.email,
        })


# =============================================================================
# Lettering
# =============================================================================

class LetteringView(APIView):
    """
    POST /api/accounting/exercises/<code>/lettering/ {"line_ids": [...]} -> letter
    DELETE /api/accounting/exercises/<code>/lettering/ {"tag": "A"} -> unletter
    """
    permission_classes = [IsAuthenticated]

    def post(self, request, code):
        actor = resolve_actor(request)
        exercise = _get_exercise(code)

        serializer = LetteringSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = letter_lines(actor, exercise, serializer.validated_data["line_ids"])
        if not result.success:
            return _refused(result)
        return Response({
            "tag": result.details["tag"],
            "account": result.details["account"],
            "lines": EntryLineSerializer(result.data, many=True).data,
        })

    def delete(self, request, code):
        actor = resolve_actor(request)
        exercise = _get_exercise(code)

        serializer = UnletteringSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = unletter_lines(actor, exercise, serializer.validated_data["tag"])
        if not result.success:
            return _refused(result)
        return Response(status=status.HTTP_204_NO_CONTENT)


# =============================================================================
# Reports
# =============================================================================

class LedgerView(APIView):
    """
    GET /api/accounting/exercises/<code>/ledger/?account=&date_from=&date_to=

    With `account`: that account's ledger. Without: every account with
    activity in the window or a non-zero opening balance.
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, code):
        actor = resolve_actor(request)
        require(actor, "reports.view")
        exercise = _get_exercise(code)

        query = LedgerQuerySerializer(data=_query(request, "account", "date_from", "date_to"))
        query.is_valid(raise_exception=True)
        params = query.validated_data

        if params.get("account"):
            account = get_object_or_404(Account, exercise=exercise, number=params["account"])
            ledger = account_ledger(exercise, account, params.get("date_from"), params.get("date_to"))
            return Response(ledger.to_dict())

        ledgers = general_ledger(exercise, params.get("date_from"), params.get("date_to"))
        return Response([ledger.to_dict() for ledger in ledgers])


class TrialBalanceView(APIView):
    """GET /api/accounting/exercises/<code>/trial-balance/?class=&date_from=&date_to="""
    permission_classes = [IsAuthenticated]

    def get(self, request, code):
        actor = resolve_actor(request)
        require(actor, "reports.view")
        exercise = _get_exercise(code)

        query = TrialBalanceQuerySerializer(
            data=_query(request, "date_from", "date_to", "class:account_class")
        )
        query.is_valid(raise_exception=True)
        params = query.validated_data

        trial_balance = build_trial_balance(exercise, params.get("date_from"), params.get("date_to"))
        if params.get("account_class"):
            trial_balance = trial_balance.for_class(params["account_class"])
        return Response(trial_balance.to_dict())


class AnomalyListView(APIView):
    """GET /api/accounting/exercises/<code>/anomalies/?severity=&status=&period="""
    permission_classes = [IsAuthenticated]

    def get(self, request, code):
        actor = resolve_actor(request)
        require(actor, "journal.view")

        filters = _query(request, "severity", "status", "period")
        for key in ("severity", "status"):
            if key in filters:
                filters[key] = filters[key].upper()

        anomalies = Anomaly.objects.filter(exercise=_get_exercise(code), **filters).select_related("entry")
        return Response(AnomalySerializer(anomalies, many=True).data)


class BankReconciliationListCreateView(APIView):
    """
    GET /api/accounting/exercises/<code>/bank-reconciliations/
    POST /api/accounting/exercises/<code>/bank-reconciliations/
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, code):
        actor = resolve_actor(request)
        require(actor, "reports.view")
        reconciliations = BankReconciliation.objects.filter(
            exercise=_get_exercise(code),
        ).order_by("period", "account_number")
        return Response(BankReconciliationSerializer(reconciliations, many=True).data)

    def post(self, request, code):
        actor = resolve_actor(request)
        exercise = _get_exercise(code)

        serializer = BankReconciliationCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = record_bank_reconciliation(
            actor,
            exercise,
            account_number=data["account_number"],
            period=data["period"],
            statement_balance=data["statement_balance"],
            book_balance=data.get("book_balance"),
        )
        if not result.success:
            return _refused(result)
        return Response(BankReconciliationSerializer(result.data).data, status=status.HTTP_201_CREATED)


# =============================================================================
# Closing
# =============================================================================

class ClosureListCreateView(APIView):
    """
    GET /api/accounting/exercises/<code>/closures/ -> closing history
    POST /api/accounting/exercises/<code>/closures/ -> close a period
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, code):
        actor = resolve_actor(request)
        require(actor, "periods.view")
        closures = PeriodClosure.objects.filter(exercise=_get_exercise(code)).select_related(
            "closed_by", "reopened_by"
        )
        return Response(PeriodClosureSerializer(closures, many=True).data)

    def post(self, request, code):
        actor = resolve_actor(request)
        exercise = _get_exercise(code)

        serializer = PeriodClosureCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        result = close_period(actor, exercise, data["period"], data["closure_type"])
        if not result.success:
            return _refused(result)
        return Response(PeriodClosureSerializer(result.data).data, status=status.HTTP_201_CREATED)


class ClosureReopenView(APIView):
    """POST /api/accounting/closures/<pk>/reopen/ {"reason": "..."}"""
    permission_classes = [IsAuthenticated]

    def post(self, request, pk):
        actor = resolve_actor(request)
        closure = get_object_or_404(PeriodClosure, pk=pk)

        serializer = ReasonSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        result = reopen_period(actor, closure, serializer.validated_data["reason"])
        if not result.success:
            return _refused(result)
        return Response(PeriodClosureSerializer(result.data).data)


class ExerciseCloseView(APIView):
    """POST /api/accounting/exercises/<code>/close/"""
    permission_classes = [IsAuthenticated]

    def post(self, request, code):
        actor = resolve_actor(request)
        result = close_exercise(actor, _get_exercise(code))
        if not result.success:
            return _refused(result)
        return Response({
            "exercise": ExerciseSerializer(result.data).data,
            **result.details,
        })


class CarryForwardView(APIView):
    """POST /api/accounting/exercises/<code>/carry-forward/ {"destination": "2025"}"""
    permission_classes = [IsAuthenticated]

    def post(self, request, code):
        actor = resolve_actor(request)
        source = _get_exercise(code)

        serializer = CarryForwardRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        destination = _get_exercise(serializer.validated_data["destination"])

        result = carry_forward(actor, source, destination)
        if not result.success:
            return _refused(result)
        return Response(CarryForwardSerializer(result.data).data, status=status.HTTP_201_CREATED)
