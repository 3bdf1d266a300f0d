from fastapi.testclient import TestClient

from auth import SignedTokenAuthProvider
from config import Settings
from database import Database
from main import create_app


def _settings(**overrides) -> Settings:
    values = dict(
        database_url="sqlite://",
        timezone="America/New_York",
        secret_key="test-secret",
        auth_mode="default",
        default_user_id=1,
        token_max_age_secs=3600,
        reminder_window_days=30,
        scheduler_enabled=False,
    )
    values.update(overrides)
    return Settings(**values)


def _client(**kwargs) -> TestClient:
    settings = _settings()
    app = create_app(settings, Database(settings.database_url), **kwargs)
    return TestClient(app)


def test_health() -> None:
    with _client() as client:
        assert client.get("/api/health").json() == {"status": "ok"}


def test_bill_validation_errors_are_returned_together() -> None:
    with _client() as client:
        resp = client.post("/api/bills", json={"amount": 0})
        assert resp.status_code == 422
        assert [e["field"] for e in resp.json()["detail"]] == [
            "name",
            "amount",
            "day",
            "category_id",
        ]


def test_bill_and_income_crud_and_monthly_summary() -> None:
    with _client() as client:
        category = client.post(
            "/api/categories", json={"name": "Housing", "color": "#ef4444"}
        )
        assert category.status_code == 201
        category_id = category.json()["id"]

        bill = client.post(
            "/api/bills",
            json={
                "name": "Rent",
                "amount": 1500,
                "day": 31,
                "category_id": category_id,
                "isOneTime": False,
            },
        )
        assert bill.status_code == 201
        assert bill.json()["category_name"] == "Housing"
        assert bill.json()["category_color"] == "#ef4444"

        income = client.post(
            "/api/incomes",
            json={
                "source": "Salary",
                "amount": 2000,
                "date": "2025-01-01",
                "occurrenceType": "twice-monthly",
                "firstDate": 1,
                "secondDate": 15,
            },
        )
        assert income.status_code == 201
        income_id = income.json()["id"]
        assert client.get(f"/api/incomes/{income_id}").json()["occurrenceType"] == (
            "twice-monthly"
        )

        summary = client.get("/api/summary/monthly", params={"year": 2024, "month": 2})
        assert summary.status_code == 200
        body = summary.json()
        assert body["total_income"] == 4000.0
        assert body["total_bills"] == 1500.0
        assert body["balance"] == 2500.0
        assert body["display"]["balance"] == "$2,500.00"
        assert body["days"][28]["bills"][0]["name"] == "Rent"

        occurrences = client.get("/api/occurrences", params={"month": "2025-01"})
        assert [item["date"] for item in occurrences.json()["items"]] == [
            "2025-01-01",
            "2025-01-15",
            "2025-01-31",
        ]

        assert client.delete(f"/api/incomes/{income_id}").status_code == 204
        assert client.get(f"/api/incomes/{income_id}").status_code == 404


def test_update_with_unknown_category_is_not_found() -> None:
    with _client() as client:
        category_id = client.post("/api/categories", json={"name": "Food"}).json()["id"]
        bill = client.post(
            "/api/bills",
            json={"name": "Groceries", "amount": 80, "day": 3, "category_id": category_id},
        ).json()
        resp = client.put(
            f"/api/bills/{bill['id']}",
            json={"name": "Groceries", "amount": 80, "day": 3, "category_id": 404},
        )
        assert resp.status_code == 404


def test_duplicate_category_is_bad_request() -> None:
    with _client() as client:
        assert client.post("/api/categories", json={"name": "Food"}).status_code == 201
        resp = client.post("/api/categories", json={"name": "FOOD"})
        assert resp.status_code == 400


def test_bad_period_is_bad_request() -> None:
    with _client() as client:
        resp = client.get("/api/occurrences", params={"month": "2025-13"})
        assert resp.status_code == 400


def test_occurrence_csv_export() -> None:
    with _client() as client:
        client.post(
            "/api/incomes",
            json={
                "source": "=HYPERLINK()",
                "amount": 10,
                "date": "2025-05-05",
                "occurrenceType": "once",
            },
        )
        resp = client.get("/api/occurrences/export.csv", params={"month": "2025-05"})
        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/csv")
        lines = resp.text.splitlines()
        assert lines[0] == "Date,Kind,Name,Amount,Category"
        assert lines[1].startswith("2025-05-05,income,\t=HYPERLINK()")


def test_token_auth_scopes_requests_to_user() -> None:
    provider = SignedTokenAuthProvider("test-secret", 3600)
    with _client(auth=provider) as client:
        assert client.get("/api/bills").status_code == 401

        headers = {"Authorization": f"Bearer {provider.issue_token(7)}"}
        created = client.post("/api/categories", json={"name": "Mine"}, headers=headers)
        assert created.json()["user_id"] == 7

        other = {"Authorization": f"Bearer {provider.issue_token(8)}"}
        assert client.get("/api/categories", headers=other).json() == []


def test_occurrences_at_end_of_calendar() -> None:
    with _client() as client:
        client.post(
            "/api/incomes",
            json={
                "source": "Paycheck",
                "amount": 900,
                "date": "2025-01-06",
                "occurrenceType": "weekly",
            },
        )
        resp = client.get(
            "/api/occurrences",
            params={"period": "custom", "start": "9999-12-01", "end": "9999-12-31"},
        )
        assert resp.status_code == 200
        assert [item["date"] for item in resp.json()["items"]] == [
            "9999-12-06",
            "9999-12-13",
            "9999-12-20",
            "9999-12-27",
        ]

        summary = client.get("/api/summary/monthly", params={"year": 9999, "month": 12})
        assert summary.status_code == 200
        assert len(summary.json()["days"]) == 31


def test_oversized_amount_is_a_validation_error() -> None:
    with _client() as client:
        resp = client.post(
            "/api/incomes",
            json={
                "source": "Lottery",
                "amount": 1e30,
                "date": "2025-01-01",
                "occurrenceType": "once",
            },
        )
        assert resp.status_code == 422
        assert resp.json()["detail"] == [
            {"field": "amount", "message": "Amount must be at most 9,999,999,999.99"}
        ]


def test_register_login_logout_flow() -> None:
    provider = SignedTokenAuthProvider("test-secret", 3600)
    with _client(auth=provider) as client:
        registered = client.post(
            "/api/auth/register", json={"username": "ana", "password": "hunter22"}
        )
        assert registered.status_code == 201
        body = registered.json()
        assert body["username"] == "ana"
        assert "password_hash" not in body
        assert provider.user_id_from_token(body["token"]) == body["id"]

        # the session cookie alone authenticates follow-up requests
        assert client.get("/api/auth/user").json() == {"id": body["id"], "username": "ana"}

        assert client.post("/api/auth/logout").status_code == 200
        assert client.get("/api/auth/user").status_code == 401

        duplicate = client.post(
            "/api/auth/register", json={"username": "ana", "password": "other"}
        )
        assert duplicate.status_code == 400

        wrong = client.post("/api/auth/login", json={"username": "ana", "password": "nope"})
        assert wrong.status_code == 401

        login = client.post("/api/auth/login", json={"username": "ana", "password": "hunter22"})
        assert login.status_code == 200
        headers = {"Authorization": f"Bearer {login.json()['token']}"}
        created = client.post("/api/categories", json={"name": "Mine"}, headers=headers)
        assert created.json()["user_id"] == body["id"]


def test_register_requires_credentials() -> None:
    with _client(auth=SignedTokenAuthProvider("test-secret", 3600)) as client:
        resp = client.post("/api/auth/register", json={"username": "ana"})
        assert resp.status_code == 422
        assert [e["field"] for e in resp.json()["detail"]] == ["password"]


def test_accounts_are_disabled_in_single_user_mode() -> None:
    with _client() as client:
        resp = client.post("/api/auth/login", json={"username": "ana", "password": "x"})
        assert resp.status_code == 400
