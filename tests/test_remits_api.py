"""Tests for the remittance upload endpoint."""
from datetime import date
from decimal import Decimal
from io import BytesIO

import pytest

from tests.factories import build_remittance, remittance_claim


def upload(client, content: str, filename: str = "era_20240401.835", **kwargs):
    return client.post(
        "/api/v1/remits/upload",
        files={"file": (filename, BytesIO(content.encode("utf-8")), "text/plain")},
        **kwargs,
    )


@pytest.mark.api
class TestUploadRemitFile:
    """Tests for POST /api/v1/remits/upload."""

    def test_posts_payment(self, client, submitted_claim):
        content = build_remittance(
            [remittance_claim("CLM000000001", "1", "275.00", "275.00")], total_paid=Decimal("275.00")
        )

        response = upload(client, content, headers={"X-User-Id": "biller-1"})

        assert response.status_code == 200
        data = response.json()
        assert data["processed_count"] == 1
        assert data["errors"] == []
        assert data["filename"] == "era_20240401.835"
        assert data["trace_number"] == "TRC0001"
        assert data["payer_id"] == "PAYER000"
        assert data["claims_in_file"] == 1
        posting = data["postings"][0]
        assert posting["status"] == "paid"
        assert posting["paid_amount"] == "275.00"
        assert posting["balanced"] is True
        assert client.get(f"/api/v1/claims/{submitted_claim.id}").json()["total_paid_amount"] == "275.00"

    def test_partial_failure_reports_each_claim(self, client, submitted_claim):
        content = build_remittance(
            [
                remittance_claim("CLM404", "1", "50.00", "50.00"),
                remittance_claim("CLM000000001", "4", "275.00", "0", adjustments=[("CO", "29", "275.00")]),
            ],
            production_date=date.today(),
        )

        data = upload(client, content).json()

        assert data["processed_count"] == 1
        assert data["errors"] == [{"claim_number": "CLM404", "error_message": "Claim not found (id: CLM404)"}]
        assert data["postings"][0]["status"] == "denied"
        assert data["postings"][0]["denial_id"] is not None

    def test_replayed_file(self, client, submitted_claim):
        content = build_remittance([remittance_claim("CLM000000001", "1", "275.00", "275.00")])
        upload(client, content)

        data = upload(client, content).json()

        assert data["processed_count"] == 0
        assert data["errors"][0]["error_message"] == "Remittance for claim CLM000000001 already posted"

    def test_unreadable_file(self, client, db_session):
        content = build_remittance([remittance_claim("CLM1", "1", "100.00", "ABC")])

        response = upload(client, content)

        assert response.status_code == 422
        body = response.json()
        assert body["error"] == "REMITTANCE_PARSE_ERROR"
        assert body["details"] == {"segment_id": "CLP", "position": 10}

    def test_empty_file(self, client, db_session):
        response = upload(client, "")

        assert response.status_code == 422
        assert response.json()["message"] == "Remittance file is empty"

    def test_missing_file(self, client):
        assert client.post("/api/v1/remits/upload").status_code == 422
