"""
test_image_check.py — Tests for server-side report image verification.

Covers:
    • Sensitive-category matching (case, substrings, custom lists)
    • VerificationRecord status mapping
    • POST /functions/v1/verify-image responses and validation

Run with:
    pytest tests/test_image_check.py -v
"""

from __future__ import annotations

from datetime import timezone

import pytest
from fastapi.testclient import TestClient

from backend.app.main import app
from backend.app.moderation.image_check import (
    NextStep,
    ReviewStatus,
    is_sensitive_category,
    verify_report,
)

URL = "/functions/v1/verify-image"


class TestIsSensitiveCategory:

    @pytest.mark.parametrize("category", [
        "murder", "MURDER", "Suspected homicide", "dead body found",
        "Violent Death", "killing",
    ])
    def test_sensitive(self, category):
        assert is_sensitive_category(category) is True

    @pytest.mark.parametrize("category", ["theft", "harassment", "", "fraud"])
    def test_not_sensitive(self, category):
        assert is_sensitive_category(category) is False

    def test_custom_list(self):
        assert is_sensitive_category("Arson", ["arson"]) is True
        assert is_sensitive_category("murder", ["arson"]) is False


class TestVerifyReport:

    def test_sensitive_needs_review(self):
        record = verify_report("R1", "https://img/1.jpg", "u1", "Murder")
        assert record.is_sensitive is True
        assert record.needs_human_review is True
        assert record.overall_status == ReviewStatus.NEEDS_REVIEW
        assert record.next_step == NextStep.HUMAN_MODERATION

    def test_regular_approved(self):
        record = verify_report("R2", "https://img/2.jpg", "u1", "Theft")
        assert record.overall_status == ReviewStatus.APPROVED
        assert record.next_step == NextStep.PUBLISH

    def test_to_dict(self):
        record = verify_report(
            "R3", "https://img/3.jpg", "u9", "theft", client_check={"blur": 0.1},
        )
        d = record.to_dict()
        assert d["report_id"] == "R3"
        assert d["client_check"] == {"blur": 0.1}
        assert d["overall_status"] == "approved"
        assert d["needs_human_review"] is False
        assert record.created_at.tzinfo == timezone.utc


class TestVerifyImageEndpoint:

    @pytest.fixture
    def client(self):
        return TestClient(app)

    def _body(self, category):
        return {
            "reportId": "R1",
            "imageUrl": "https://storage/reports/R1.jpg",
            "verificationData": {"is_ai_generated": False},
            "userId": "u1",
            "crimeCategory": category,
        }

    def test_sensitive(self, client):
        response = client.post(URL, json=self._body("Homicide"))
        assert response.status_code == 200
        assert response.json() == {
            "success": True,
            "message": "Verification received",
            "overall_status": "needs_review",
            "is_sensitive": True,
            "next_step": "human_moderation",
        }

    def test_approved(self, client):
        data = client.post(URL, json=self._body("Pickpocketing")).json()
        assert data["overall_status"] == "approved"
        assert data["next_step"] == "publish"
        assert data["is_sensitive"] is False

    def test_missing_category_is_400(self, client):
        body = self._body("x")
        del body["crimeCategory"]
        response = client.post(URL, json=body)
        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_cors_headers(self, client):
        response = client.post(URL, json=self._body("theft"))
        assert response.headers["access-control-allow-origin"] == "*"

    def test_options(self, client):
        response = client.options(URL)
        assert response.status_code == 200
        assert response.text == "ok"
