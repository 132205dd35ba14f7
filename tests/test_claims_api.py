"""Tests for claims API endpoints."""
from datetime import date
from io import BytesIO

import pytest

from revcycle.utils.errors import ClearinghouseSubmissionFailed
from tests.factories import build_remittance, remittance_claim


@pytest.fixture
def billed_encounter(client, encounter):
    for code, pointers in (("99214", [1, 2]), ("99213", [2])):
        response = client.post(
            "/api/v1/charges",
            json={"encounter_id": encounter.id, "code": code, "diagnosis_pointers": pointers},
        )
        assert response.status_code == 201
    return encounter


@pytest.fixture
def draft_claim(client, billed_encounter, coverage):
    response = client.post(
        "/api/v1/claims", json={"encounter_id": billed_encounter.id, "insurance_id": coverage.id}
    )
    assert response.status_code == 201
    return response.json()


@pytest.mark.api
class TestCreateClaim:
    """Tests for POST /api/v1/claims."""

    def test_create_claim(self, draft_claim):
        assert draft_claim["claim_number"] == "CLM000000001"
        assert draft_claim["status"] == "draft"
        assert draft_claim["total_charge_amount"] == "275.00"
        assert draft_claim["total_paid_amount"] == "0.00"
        assert [line["line_number"] for line in draft_claim["lines"]] == [1, 2]
        assert [line["charge"]["code"] for line in draft_claim["lines"]] == ["99214", "99213"]
        assert all(line["charge"]["status"] == "submitted" for line in draft_claim["lines"])

    def test_nothing_to_bill(self, client, encounter, coverage):
        response = client.post("/api/v1/claims", json={"encounter_id": encounter.id, "insurance_id": coverage.id})

        assert response.status_code == 422
        assert response.json()["error"] == "NO_CHARGES_TO_BILL"

    def test_missing_fields(self, client):
        assert client.post("/api/v1/claims", json={"encounter_id": 1}).status_code == 422


@pytest.mark.api
class TestGetClaim:
    def test_get_claim(self, client, draft_claim):
        response = client.get(f"/api/v1/claims/{draft_claim['id']}")

        assert response.status_code == 200
        assert response.json()["claim_number"] == "CLM000000001"
        assert response.json()["edi_content"] is None

    def test_unknown_claim(self, client, db_session):
        response = client.get("/api/v1/claims/999")

        assert response.status_code == 404
        assert response.json() == {
            "error": "CLAIM_NOT_FOUND",
            "message": "Claim not found (id: 999)",
            "details": {},
        }


@pytest.mark.api
class TestSubmitClaim:
    """Tests for POST /api/v1/claims/{claim_id}/submit."""

    def test_submit(self, client, draft_claim, gateway):
        response = client.post(f"/api/v1/claims/{draft_claim['id']}/submit", headers={"X-User-Id": "biller-1"})

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "submitted"
        assert data["clearinghouse_claim_id"] == "CH-CLM000000001"
        assert data["submission_count"] == 1
        assert "lines" not in data
        assert gateway.submissions[0][1] == "CLM000000001"

        stored = client.get(f"/api/v1/claims/{draft_claim['id']}").json()
        assert stored["edi_content"].startswith("ISA*")
        assert "CLM*CLM000000001*275.00***11:B:1*Y*A*Y*Y~" in stored["edi_content"]

    def test_clearinghouse_down(self, client, draft_claim, gateway):
        gateway.fail_with = ClearinghouseSubmissionFailed("Clearinghouse request failed: timed out")

        response = client.post(f"/api/v1/claims/{draft_claim['id']}/submit")

        assert response.status_code == 502
        assert response.json()["error"] == "CLEARINGHOUSE_SUBMISSION_FAILED"
        assert client.get(f"/api/v1/claims/{draft_claim['id']}").json()["status"] == "draft"

    def test_submit_twice(self, client, draft_claim):
        client.post(f"/api/v1/claims/{draft_claim['id']}/submit")

        response = client.post(f"/api/v1/claims/{draft_claim['id']}/submit")

        assert response.status_code == 409
        assert response.json()["error"] == "INVALID_STATE_TRANSITION"


@pytest.mark.api
class TestResubmitClaim:
    def test_resubmit_denied_claim(self, client, draft_claim, gateway):
        client.post(f"/api/v1/claims/{draft_claim['id']}/submit")
        remit = build_remittance(
            [remittance_claim("CLM000000001", "4", "275.00", "0", payer_control_number="PCN7788",
                              adjustments=[("CO", "16", "275.00")])],
            production_date=date.today(),
        )
        client.post("/api/v1/remits/upload", files={"file": ("era.835", BytesIO(remit.encode()), "text/plain")})

        response = client.post(f"/api/v1/claims/{draft_claim['id']}/resubmit")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "submitted"
        assert data["frequency_code"] == "7"
        assert data["submission_count"] == 2
        assert "REF*F8*PCN7788~" in gateway.submissions[-1][0]

    def test_draft_cannot_be_resubmitted(self, client, draft_claim):
        assert client.post(f"/api/v1/claims/{draft_claim['id']}/resubmit").status_code == 409
