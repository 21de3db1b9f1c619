"""
Integration tests for the Lending Engine API
Tests end-to-end workflows using FastAPI TestClient
"""

import pytest
from fastapi.testclient import TestClient

import lending_core.api.dependencies
from lending_core.api import app
from lending_core.api.dependencies import LendingSystem
from lending_core.config import LendingConfig


@pytest.fixture
def client():
    """Create a test client backed by a fresh in-memory lending system"""
    test_system = LendingSystem(LendingConfig(late_fee_amount="5.00"), storage_backend="memory")

    original_system = lending_core.api.dependencies.lending_system
    lending_core.api.dependencies.lending_system = test_system

    yield TestClient(app)

    lending_core.api.dependencies.lending_system = original_system


def create_open_ended_loan(client):
    r = client.post("/loans", json={
        "principal": {"amount": "1000.00", "currency": "USD"},
        "rate": "2",
        "period_type": "open_ended",
        "start_date": "2024-01-10",
        "customer_id": "cust-1"
    })
    assert r.status_code == 201
    return r.json()


def create_biweekly_loan(client):
    r = client.post("/loans", json={
        "principal": {"amount": "1000.00", "currency": "USD"},
        "rate": "2",
        "period_type": "biweekly",
        "term_periods": 4,
        "start_date": "2024-01-01"
    })
    assert r.status_code == 201
    return r.json()


class TestHealthEndpoints:
    """Test basic health and root endpoints"""

    def test_health(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json()["status"] == "healthy"

    def test_root(self, client):
        r = client.get("/")
        assert r.status_code == 200
        assert "loans" in r.json()["endpoints"]


class TestLoanFlow:
    """End-to-end loan lifecycle"""

    def test_create_open_ended_loan(self, client):
        loan = create_open_ended_loan(client)

        assert loan["status"] == "active"
        assert loan["principal_balance"] == {"amount": "1000.00", "currency": "USD"}
        assert loan["next_due_date"] == "2024-01-15"
        assert loan["projection"]["per_period"] == "20.00"
        assert loan["projection"]["annual_return_percent"] == "48.00"

    def test_create_fixed_term_loan(self, client):
        loan = create_biweekly_loan(client)
        assert loan["maturity_date"] == "2024-03-01"
        assert loan["next_due_date"] == "2024-01-16"

    def test_get_and_list(self, client):
        loan = create_open_ended_loan(client)
        create_biweekly_loan(client)

        r = client.get(f"/loans/{loan['id']}")
        assert r.status_code == 200
        assert r.json()["customer_id"] == "cust-1"

        r = client.get("/loans", params={"open_ended": "true"})
        assert [l["id"] for l in r.json()["loans"]] == [loan["id"]]

    def test_accrue_then_pay(self, client):
        loan = create_open_ended_loan(client)

        r = client.post(f"/loans/{loan['id']}/accrue", json={"as_of": "2024-02-20T00:00:00+00:00"})
        assert r.status_code == 200
        body = r.json()
        assert body["new_interest"] == "60.00"
        assert body["periods_elapsed"] == 3
        assert body["loan"]["status"] == "overdue"

        r = client.post(f"/loans/{loan['id']}/payments", json={
            "amount": {"amount": "160.00", "currency": "USD"},
            "applied_at": "2024-02-20T12:00:00+00:00",
            "method": "transfer",
            "reference": "TRX-99"
        })
        assert r.status_code == 201
        payment = r.json()["payment"]
        assert payment["interest_portion"]["amount"] == "60.00"
        assert payment["principal_portion"]["amount"] == "100.00"
        assert payment["overflow"]["amount"] == "0.00"
        assert payment["number"].startswith("PG240220")
        assert r.json()["loan"]["status"] == "active"
        assert r.json()["loan"]["next_due_date"] == "2024-02-29"

        r = client.get(f"/loans/{loan['id']}/payments")
        assert len(r.json()["payments"]) == 1

    def test_payment_accrues_interest_first(self, client):
        loan = create_open_ended_loan(client)

        r = client.post(f"/loans/{loan['id']}/payments", json={
            "amount": {"amount": "50.00", "currency": "USD"},
            "applied_at": "2024-02-20T00:00:00+00:00"
        })
        payment = r.json()["payment"]
        assert payment["interest_portion"]["amount"] == "50.00"
        assert payment["principal_allowed"] is False
        assert r.json()["loan"]["pending_interest"]["amount"] == "10.00"

    def test_penalty(self, client):
        loan = create_open_ended_loan(client)

        r = client.post(f"/loans/{loan['id']}/penalties", json={
            "amount": {"amount": "5.00", "currency": "USD"},
            "as_of": "2024-01-20T00:00:00+00:00"
        })
        assert r.status_code == 200
        assert r.json()["penalty_balance"]["amount"] == "5.00"
        assert r.json()["days_overdue"] == 5

    def test_schedule(self, client):
        loan = create_biweekly_loan(client)

        r = client.get(f"/loans/{loan['id']}/schedule", params={"as_of": "2024-01-20"})
        assert r.status_code == 200
        body = r.json()
        assert len(body["schedule"]) == 4
        assert body["schedule"][0]["interest_portion"]["amount"] == "20.00"
        assert body["schedule"][0]["status"] == "overdue"
        assert body["summary"]["total_interest"] == "49.60"


class TestErrors:
    """Test domain error mapping"""

    def test_unknown_loan(self, client):
        assert client.get("/loans/missing").status_code == 404
        r = client.post("/loans/missing/payments", json={"amount": {"amount": "10.00"}})
        assert r.status_code == 404
        assert client.post("/loans/missing/accrue").status_code == 404

    def test_invalid_period_type(self, client):
        r = client.post("/loans", json={
            "principal": {"amount": "1000.00"},
            "rate": "2",
            "period_type": "weekly",
            "term_periods": 4
        })
        assert r.status_code == 400

    def test_fixed_term_without_term(self, client):
        r = client.post("/loans", json={
            "principal": {"amount": "1000.00"},
            "rate": "2",
            "period_type": "monthly"
        })
        assert r.status_code == 400

    def test_non_positive_payment(self, client):
        loan = create_open_ended_loan(client)
        r = client.post(f"/loans/{loan['id']}/payments", json={"amount": {"amount": "-5"}})
        assert r.status_code == 400

    def test_currency_mismatch(self, client):
        loan = create_open_ended_loan(client)
        r = client.post(f"/loans/{loan['id']}/payments", json={
            "amount": {"amount": "10.00", "currency": "EUR"}
        })
        assert r.status_code == 400

    def test_backwards_accrual(self, client):
        loan = create_open_ended_loan(client)
        r = client.post(f"/loans/{loan['id']}/accrue", json={"as_of": "2023-12-01T00:00:00Z"})
        assert r.status_code == 400

    def test_payment_on_finalized_loan(self, client):
        loan = create_open_ended_loan(client)
        client.post(f"/loans/{loan['id']}/payments", json={
            "amount": {"amount": "1000.00"},
            "applied_at": "2024-01-12T00:00:00Z"
        })

        r = client.post(f"/loans/{loan['id']}/payments", json={
            "amount": {"amount": "10.00"},
            "applied_at": "2024-01-13T00:00:00Z"
        })
        assert r.status_code == 409

    def test_open_ended_schedule(self, client):
        loan = create_open_ended_loan(client)
        assert client.get(f"/loans/{loan['id']}/schedule").status_code == 400


class TestAllocationPreview:
    """Test the stateless waterfall endpoint"""

    def test_payment_below_interest(self, client):
        r = client.post("/loans/allocation-preview", json={
            "amount": "60.00", "principal_balance": "500.00", "pending_interest": "100.00"
        })
        assert r.status_code == 200
        assert r.json() == {
            "penalty_portion": "0.00",
            "interest_portion": "60.00",
            "principal_portion": "0.00",
            "overflow": "0.00",
            "principal_allowed": False
        }

    def test_invalid_amount(self, client):
        r = client.post("/loans/allocation-preview", json={
            "amount": "0", "principal_balance": "500.00", "pending_interest": "100.00"
        })
        assert r.status_code == 400


class TestInterestSweep:
    """Test the sweep endpoint"""

    def test_sweep(self, client):
        create_open_ended_loan(client)
        create_biweekly_loan(client)

        r = client.post("/sweeps/interest", json={"as_of": "2024-02-20T00:00:00+00:00"})
        assert r.status_code == 200
        body = r.json()
        assert body["processed"] == 2
        assert body["updated"] == 2
        assert body["late_fees_charged"] == 6
        assert body["failures"] == {}

    def test_sweep_open_ended_only(self, client):
        create_open_ended_loan(client)
        create_biweekly_loan(client)

        r = client.post("/sweeps/interest", json={
            "as_of": "2024-02-20T00:00:00+00:00", "open_ended_only": True
        })
        assert r.json()["processed"] == 1
