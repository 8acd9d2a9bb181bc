# accounting/urls.py
"""
URL configuration for the ledger API.

Endpoints:
- /exercises/ - Exercises, their chart, entries, reports and closings
- /entries/<public_id>/ - Journal entry workflow actions
- /closures/<id>/reopen/ - Reopen a closed period
"""

from django.urls import path

from .views import (
    # Exercise & chart views
    ExerciseListCreateView,
    ExerciseDetailView,
    ChartInitializeView,
    AccountListCreateView,
    AccountTreeView,
    AccountDetailView,
    # Journal entry views
    JournalEntryListCreateView,
    JournalEntryDetailView,
    JournalValidateView,
    JournalRejectView,
    JournalCancelView,
    JournalPostView,
    LetteringView,
    # Reports
    LedgerView,
    TrialBalanceView,
    AnomalyListView,
    BankReconciliationListCreateView,
    # Closing
    ClosureListCreateView,
    ClosureReopenView,
    ExerciseCloseView,
    CarryForwardView,
)

app_name = "accounting"

urlpatterns = [
    # ==========================================================================
    # Exercises & Chart of Accounts
    # ==========================================================================
    path("exercises/", ExerciseListCreateView.as_view(), name="exercise-list-create"),
    path("exercises/<str:code>/", ExerciseDetailView.as_view(), name="exercise-detail"),
    path(
        "exercises/<str:code>/chart/initialize/",
        ChartInitializeView.as_view(),
        name="chart-initialize",
    ),
    path(
        "exercises/<str:code>/accounts/",
        AccountListCreateView.as_view(),
        name="account-list-create",
    ),
    path(
        "exercises/<str:code>/accounts/tree/",
        AccountTreeView.as_view(),
        name="account-tree",
    ),
    path(
        "exercises/<str:code>/accounts/<str:number>/",
        AccountDetailView.as_view(),
        name="account-detail",
    ),

    # ==========================================================================
    # Journal Entries
    # ==========================================================================
    path(
        "exercises/<str:code>/entries/",
        JournalEntryListCreateView.as_view(),
        name="entry-list-create",
    ),
    path("entries/<uuid:public_id>/", JournalEntryDetailView.as_view(), name="entry-detail"),

    # Journal Entry Workflow Actions
    path("entries/<uuid:public_id>/validate/", JournalValidateView.as_view(), name="entry-validate"),
    path("entries/<uuid:public_id>/reject/", JournalRejectView.as_view(), name="entry-reject"),
    path("entries/<uuid:public_id>/cancel/", JournalCancelView.as_view(), name="entry-cancel"),
    path("entries/<uuid:public_id>/post/", JournalPostView.as_view(), name="entry-post"),

    path("exercises/<str:code>/lettering/", LetteringView.as_view(), name="lettering"),

    # ==========================================================================
    # Reports
    # ==========================================================================
    path("exercises/<str:code>/ledger/", LedgerView.as_view(), name="ledger"),
    path("exercises/<str:code>/trial-balance/", TrialBalanceView.as_view(), name="trial-balance"),
    path("exercises/<str:code>/anomalies/", AnomalyListView.as_view(), name="anomaly-list"),
    path(
        "exercises/<str:code>/bank-reconciliations/",
        BankReconciliationListCreateView.as_view(),
        name="bank-reconciliation-list-create",
    ),

    # ==========================================================================
    # Closing
    # ==========================================================================
    path(
        "exercises/<str:code>/closures/",
        ClosureListCreateView.as_view(),
        name="closure-list-create",
    ),
    path("closures/<int:pk>/reopen/", ClosureReopenView.as_view(), name="closure-reopen"),
    path("exercises/<str:code>/close/", ExerciseCloseView.as_view(), name="exercise-close"),
    path(
        "exercises/<str:code>/carry-forward/",
        CarryForwardView.as_view(),
        name="carry-forward",
    ),
]
