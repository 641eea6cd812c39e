"""
Tests for the HTTP API.

The app runs on in-memory storage with fake vision models injected.
"""

from io import BytesIO

import pytest
from fastapi.testclient import TestClient
from openpyxl import load_workbook

from conftest import SAMPLE_IMAGE, WALMART_ANSWER, FakeVisionModel
from expense_tracker.api.app import create_app
from expense_tracker.api.rate_limit import RateLimiter
from expense_tracker.services.storage import ConnectionError
from expense_tracker.services.vision import VisionAuthenticationError, VisionRateLimitError


EXPENSE = {
    "amount": 45.5,
    "category": "groceries",
    "person": "ana",
    "storeName": "Shufersal",
    "date": "05/03/2024",
    "description": "weekly shop",
}


@pytest.fixture
def rate_limiter() -> RateLimiter:
    return RateLimiter(max_requests=100, window_seconds=900)


@pytest.fixture
def make_client(expense_flow, make_receipt_flow, rate_limiter):
    """Factory: TestClient over an app with the given vision models."""

    def factory(*models, flow=None) -> TestClient:
        app = create_app(
            expense_flow=flow or expense_flow,
            receipt_flow=make_receipt_flow(*models),
            rate_limiter=rate_limiter,
        )
        return TestClient(app)

    return factory


@pytest.fixture
def client(make_client) -> TestClient:
    return make_client(FakeVisionModel("google/gemma-3-27b:free", response=WALMART_ANSWER))


class TestHealth:

    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.json() == {
            "status": "healthy",
            "storage": "memory",
            "storageConnected": True,
            "visionModels": ["google/gemma-3-27b:free"],
        }


class TestExpensesApi:
    """GET/POST/DELETE /api/expenses."""

    def test_add_and_list(self, client):
        created = client.post("/api/expenses", json=EXPENSE)

        assert created.status_code == 201
        expense = created.json()["expense"]
        assert expense["storeName"] == "Shufersal"
        assert expense["amount"] == 45.5
        assert isinstance(expense["id"], int)

        listed = client.get("/api/expenses").json()["expenses"]
        assert [e["id"] for e in listed] == [expense["id"]]

    def test_invalid_expense(self, client):
        response = client.post("/api/expenses", json={**EXPENSE, "amount": -5, "category": "cars"})

        assert response.status_code == 400
        body = response.json()
        assert body["error"] == "Validation failed"
        assert body["details"] == [
            "Amount must be a positive number less than 1,000,000",
            "Invalid category",
        ]
        assert client.get("/api/expenses").json()["expenses"] == []

    @pytest.mark.parametrize("amount", ["1e30", 1e30])
    def test_amount_beyond_precision(self, client, amount):
        response = client.post("/api/expenses", json={**EXPENSE, "amount": amount})

        assert response.status_code == 400
        assert response.json()["details"] == [
            "Amount must be a positive number less than 1,000,000",
        ]

    def test_non_object_body(self, client):
        response = client.post("/api/expenses", json=[1, 2, 3])
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid request body"

    def test_delete(self, client):
        expense_id = client.post("/api/expenses", json=EXPENSE).json()["expense"]["id"]

        response = client.delete(f"/api/expenses?id={expense_id}")

        assert response.json() == {"success": True}
        assert client.get("/api/expenses").json()["expenses"] == []

    @pytest.mark.parametrize("query, status, error", [
        ("", 400, "Expense ID is required"),
        ("?id=abc", 400, "Invalid expense ID"),
        ("?id=123", 404, "Expense not found"),
    ])
    def test_delete_errors(self, client, query, status, error):
        response = client.delete(f"/api/expenses{query}")
        assert response.status_code == status
        assert response.json()["error"] == error

    def test_database_unavailable(self, make_client, expense_flow, monkeypatch):
        async def unavailable():
            raise ConnectionError("Failed to list expenses: no servers")

        monkeypatch.setattr(expense_flow, "list_expenses", unavailable)
        client = make_client()

        response = client.get("/api/expenses")

        assert response.status_code == 503
        assert response.json() == {"error": "Database unavailable. Please try again later."}


class TestRateLimit:

    def test_limit_applies_per_client(self, make_client, rate_limiter):
        rate_limiter.max_requests = 2
        client = make_client()
        headers = {"X-Forwarded-For": "203.0.113.7"}

        assert client.get("/api/expenses", headers=headers).status_code == 200
        assert client.get("/api/settings", headers=headers).status_code == 200
        limited = client.get("/api/expenses", headers=headers)

        assert limited.status_code == 429
        assert limited.json() == {"error": "Rate limit exceeded"}
        other = client.get("/api/expenses", headers={"X-Forwarded-For": "198.51.100.1"})
        assert other.status_code == 200

    def test_conversion_not_rate_limited(self, make_client, rate_limiter):
        rate_limiter.max_requests = 1
        client = make_client()
        for _ in range(3):
            assert client.get("/api/conversion").status_code == 200


class TestSettingsApi:

    def test_defaults(self, client):
        response = client.get("/api/settings")
        assert response.json()["settings"]["sharedAccountBalance"] == 0.0

    def test_update(self, client):
        response = client.post("/api/settings", json={"sharedAccountBalance": 1200})

        assert response.status_code == 200
        assert response.json()["success"] is True
        assert client.get("/api/settings").json()["settings"]["sharedAccountBalance"] == 1200.0

    def test_invalid_balance(self, client):
        response = client.post("/api/settings", json={"sharedAccountBalance": "1200"})
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid shared account balance value"

    def test_balance_beyond_precision(self, client):
        response = client.post("/api/settings", json={"sharedAccountBalance": 1e30})
        assert response.status_code == 400
        assert response.json()["error"] == "Invalid shared account balance value"


class TestConversionApi:
    """CRUD on /api/conversion."""

    def test_list(self, client):
        body = client.get("/api/conversion").json()
        assert body["success"] is True
        assert [e["id_name"] for e in body["entries"]] == ["edeka", "super-pharm"]

    def test_lookup_by_name(self, client):
        body = client.get("/api/conversion", params={"id_name": "EDEKA Center"}).json()
        assert body["entry"]["store_name"] == "EDEKA Markt"

        missing = client.get("/api/conversion", params={"id_name": "Lidl"}).json()
        assert missing == {"success": True, "entry": None}

    def test_add_update_delete(self, client):
        added = client.post("/api/conversion", json={
            "id_name": "Rami Levy",
            "store_name": "Rami Levy",
            "category": "groceries",
        }).json()
        assert added["entry"]["id"] == 3
        assert added["entry"]["id_name"] == "rami levy"

        updated = client.put("/api/conversion", json={
            "id": 3,
            "id_name": "rami levy",
            "store_name": "Rami Levy Hashikma",
            "category": "groceries",
            "comment": "discount chain",
        }).json()
        assert updated["entry"]["store_name"] == "Rami Levy Hashikma"

        deleted = client.delete("/api/conversion?id=3").json()
        assert deleted == {"success": True, "message": "Conversion entry deleted successfully"}

    def test_add_invalid(self, client):
        response = client.post("/api/conversion", json={"id_name": "x", "store_name": "X"})
        assert response.status_code == 400
        assert response.json()["success"] is False
        assert response.json()["error"] == "category is required"

    def test_update_missing(self, client):
        response = client.put("/api/conversion", json={
            "id": 99, "id_name": "x", "store_name": "X", "category": "other",
        })
        assert response.status_code == 404
        assert response.json() == {"success": False, "error": "Conversion entry not found"}

    @pytest.mark.parametrize("query, status, error", [
        ("", 400, "ID is required"),
        ("?id=x", 400, "Invalid ID"),
        ("?id=42", 404, "Conversion entry not found"),
    ])
    def test_delete_errors(self, client, query, status, error):
        response = client.delete(f"/api/conversion{query}")
        assert response.status_code == status
        assert response.json()["success"] is False
        assert response.json()["error"] == error


class TestReceiptApi:
    """POST /api/receipt."""

    def test_scan(self, client):
        response = client.post("/api/receipt", json={"image": SAMPLE_IMAGE})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["data"] == {"storeName": "Walmart", "totalAmount": 12.5}
        assert body["usedModel"] == "gemma-3-27b:free"
        assert body["prefill"]["amount"] == "12.5"

    def test_scan_does_not_save(self, client):
        client.post("/api/receipt", json={"image": SAMPLE_IMAGE})
        assert client.get("/api/expenses").json()["expenses"] == []

    def test_missing_image(self, client):
        response = client.post("/api/receipt", json={})
        assert response.status_code == 400
        assert response.json()["error"] == "No image provided"

    def test_all_rate_limited(self, make_client):
        client = make_client(
            FakeVisionModel("a/one", error=VisionRateLimitError("a/one", "quota exceeded", 429)),
            FakeVisionModel("b/two", error=VisionRateLimitError("b/two", "quota exceeded", 429)),
        )

        response = client.post("/api/receipt", json={"image": SAMPLE_IMAGE})

        assert response.status_code == 429
        body = response.json()
        assert body["code"] == "RATE_LIMIT_EXCEEDED"
        assert body["lastError"] == "quota exceeded"

    def test_mixed_failures(self, make_client):
        client = make_client(
            FakeVisionModel("a/one", error=VisionAuthenticationError("a/one", "bad key", 401)),
            FakeVisionModel("b/two", error=VisionRateLimitError("b/two", "quota", 429)),
        )

        response = client.post("/api/receipt", json={"image": SAMPLE_IMAGE})

        assert response.status_code == 503
        assert response.json()["code"] == "ALL_MODELS_FAILED"
        assert "enter details manually" in response.json()["error"]

    def test_no_models_configured(self, make_client):
        response = make_client().post("/api/receipt", json={"image": SAMPLE_IMAGE})

        assert response.status_code == 503
        assert response.json()["lastError"] == "Unknown error"


class TestReportsApi:
    """Summary and export."""

    def test_summary_for_month(self, client):
        client.post("/api/settings", json={"sharedAccountBalance": 100})
        client.post("/api/expenses", json=EXPENSE)
        client.post("/api/expenses", json={**EXPENSE, "date": "01/01/2024", "amount": 10})

        body = client.get("/api/summary", params={"month": "2024-03"}).json()

        assert body["summary"]["month"] == "2024-03"
        assert body["summary"]["totals"]["total"] == 45.5
        assert body["summary"]["remainingBalance"] == 54.5
        assert body["availableMonths"] == ["2024-03", "2024-01"]

    def test_summary_bad_month(self, client):
        response = client.get("/api/summary", params={"month": "2024-13"})
        assert response.status_code == 400
        assert response.json()["error"] == "Month must be in YYYY-MM format"

    def test_export(self, client):
        client.post("/api/expenses", json=EXPENSE)

        response = client.get("/api/export")

        assert response.status_code == 200
        assert response.headers["content-type"].startswith(
            "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
        )
        assert 'filename="expenses-report-' in response.headers["content-disposition"]
        workbook = load_workbook(BytesIO(response.content))
        assert workbook["Expenses"]["B2"].value == "Shufersal"
