# tests/test_api.py
"""
API tests: the views are thin wrappers, so these check routing,
payload shapes, refusal format and permissions.
"""

import pytest
from rest_framework.test import APIClient

BASE = "/api/accounting"

PURCHASE = {
    "journal_code": "AC",
    "entry_date": "2024-01-15",
    "label": "Facture F-001",
    "reference": "F-001",
    "lines": [
        {"account": "601", "side": "DEBIT", "amount": "45000000.00", "label": "Achat marchandises"},
        {"account": "401", "side": "CREDIT", "amount": "45000000.00", "label": "Fournisseur X"},
    ],
}


@pytest.fixture
def viewer_client(viewer):
    client = APIClient()
    client.force_authenticate(user=viewer)
    return client


@pytest.mark.django_db
class TestEntryEndpoints:
    def test_create_validate_post(self, api_client, exercise):
        created = api_client.post(f"{BASE}/exercises/2024/entries/", PURCHASE, format="json")
        assert created.status_code == 201, created.data
        assert created.data["status"] == "DRAFT"
        assert created.data["number"] == "AC-0001"
        assert created.data["total_debit"] == "45000000.00"
        public_id = created.data["public_id"]

        validated = api_client.post(f"{BASE}/entries/{public_id}/validate/")
        assert validated.status_code == 200
        assert validated.data["entry"]["status"] == "VALIDATED"
        assert validated.data["report"]["valid"] is True

        posted = api_client.post(f"{BASE}/entries/{public_id}/post/")
        assert posted.status_code == 200
        assert posted.data["status"] == "POSTED"
        assert posted.data["posted_by"] == "owner@test.com"

        account = api_client.get(f"{BASE}/exercises/2024/accounts/601/")
        assert account.data["debit_balance"] == "45000000.00"

    def test_unbalanced_entry_refusal_shape(self, api_client, exercise):
        payload = dict(PURCHASE)
        payload["lines"] = [
            {"account": "601", "side": "DEBIT", "amount": "45000000.00"},
            {"account": "401", "side": "CREDIT", "amount": "44000000.00"},
        ]

        response = api_client.post(f"{BASE}/exercises/2024/entries/", payload, format="json")

        assert response.status_code == 400
        assert response.data["code"] == "UNBALANCED"
        assert "1000000.00" in response.data["detail"]
        assert response.data["details"]["discrepancy"] == "1000000.00"

    def test_malformed_payload_is_400(self, api_client, exercise):
        response = api_client.post(
            f"{BASE}/exercises/2024/entries/",
            {"journal_code": "AC", "lines": []},
            format="json",
        )

        assert response.status_code == 400
        assert "entry_date" in response.data

    def test_reject_requires_reason(self, api_client, exercise):
        public_id = api_client.post(f"{BASE}/exercises/2024/entries/", PURCHASE, format="json").data["public_id"]

        missing = api_client.post(f"{BASE}/entries/{public_id}/reject/", {}, format="json")
        rejected = api_client.post(f"{BASE}/entries/{public_id}/reject/", {"reason": "Doublon"}, format="json")

        assert missing.status_code == 400
        assert rejected.data["status"] == "REJECTED"

    def test_invalid_transition_is_400(self, api_client, exercise):
        public_id = api_client.post(f"{BASE}/exercises/2024/entries/", PURCHASE, format="json").data["public_id"]

        response = api_client.post(f"{BASE}/entries/{public_id}/post/")

        assert response.status_code == 400
        assert response.data["code"] == "INVALID_TRANSITION"

    def test_list_filters_by_status(self, api_client, exercise, make_entry):
        make_entry([("601", "DEBIT", 10), ("401", "CREDIT", 10)])

        drafts = api_client.get(f"{BASE}/exercises/2024/entries/", {"status": "DRAFT"})
        posted = api_client.get(f"{BASE}/exercises/2024/entries/", {"status": "POSTED"})

        assert len(drafts.data) == 1
        assert posted.data == []

    def test_unknown_entry_is_404(self, api_client, exercise):
        response = api_client.get(f"{BASE}/entries/00000000-0000-0000-0000-000000000000/")

        assert response.status_code == 404


@pytest.mark.django_db
class TestReportEndpoints:
    def test_trial_balance(self, api_client, exercise, post_entry):
        post_entry([("521", "DEBIT", 1000), ("101", "CREDIT", 1000)], journal="BQ")

        response = api_client.get(f"{BASE}/exercises/2024/trial-balance/")

        assert response.status_code == 200
        assert response.data["is_balanced"] is True
        assert [row["account_number"] for row in response.data["rows"]] == ["101", "521"]

    def test_trial_balance_for_one_class(self, api_client, exercise, post_entry):
        post_entry([("521", "DEBIT", 1000), ("101", "CREDIT", 1000)], journal="BQ")

        response = api_client.get(f"{BASE}/exercises/2024/trial-balance/", {"class": "5"})

        assert [row["account_number"] for row in response.data["rows"]] == ["521"]

    def test_account_ledger(self, api_client, exercise, post_entry):
        post_entry([("521", "DEBIT", 1000), ("101", "CREDIT", 1000)], journal="BQ")

        response = api_client.get(f"{BASE}/exercises/2024/ledger/", {"account": "521"})

        assert response.data["closing_balance"] == "1000.00"
        assert response.data["rows"][0]["entry_number"] == "BQ-0001"

    def test_account_tree(self, api_client, exercise):
        response = api_client.get(f"{BASE}/exercises/2024/accounts/tree/")

        assert response.status_code == 200
        numbers = {node["number"] for node in response.data}
        assert {"10", "52", "60"} <= numbers


@pytest.mark.django_db
class TestClosingEndpoints:
    def test_close_and_reopen_month(self, api_client, exercise):
        closed = api_client.post(f"{BASE}/exercises/2024/closures/", {"period": "2024-01"}, format="json")
        assert closed.status_code == 201, closed.data
        assert closed.data["status"] == "CLOSED"

        again = api_client.post(f"{BASE}/exercises/2024/closures/", {"period": "2024-01"}, format="json")
        assert again.status_code == 400
        assert again.data["code"] == "ALREADY_CLOSED"

        reopened = api_client.post(
            f"{BASE}/closures/{closed.data['id']}/reopen/", {"reason": "Correction"}, format="json"
        )
        assert reopened.data["status"] == "REOPENED"

    def test_close_exercise_refused_with_open_months(self, api_client, exercise):
        response = api_client.post(f"{BASE}/exercises/2024/close/")

        assert response.status_code == 400
        assert response.data["code"] == "PERIODS_NOT_CLOSED"
        assert len(response.data["details"]["periods"]) == 12


@pytest.mark.django_db
class TestPermissions:
    def test_anonymous_is_rejected(self, exercise):
        response = APIClient().get(f"{BASE}/exercises/")

        assert response.status_code == 401

    def test_viewer_can_read(self, viewer_client, exercise):
        response = viewer_client.get(f"{BASE}/exercises/2024/trial-balance/")

        assert response.status_code == 200

    def test_viewer_cannot_create_entries(self, viewer_client, exercise):
        response = viewer_client.post(f"{BASE}/exercises/2024/entries/", PURCHASE, format="json")

        assert response.status_code == 403

    def test_viewer_cannot_close(self, viewer_client, exercise):
        response = viewer_client.post(f"{BASE}/exercises/2024/closures/", {"period": "2024-01"}, format="json")

        assert response.status_code == 403
