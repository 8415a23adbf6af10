"""HTTP-level tests for the settlement API."""

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from settlement.database import get_session
from settlement.main import app


@pytest_asyncio.fixture
async def client(db_session):
    async def override_session():
        yield db_session

    app.dependency_overrides[get_session] = override_session
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


async def create_payout(client, producer_id="PRD-1", orders=None):
    orders = orders or [{"order_id": "ORD-1", "amount": "1000.00", "order_date": "2024-11-04"}]
    response = await client.post("/api/payouts", json={"producer_id": producer_id, "orders": orders})
    assert response.status_code == 201
    return response.json()


async def verified_account(client, producer_id="PRD-1"):
    response = await client.post("/api/bank-accounts", json={
        "producer_id": producer_id,
        "bank_name": "Commercial Bank of Ethiopia",
        "account_name": "Abebe Kebede",
        "account_number": "1000123456789",
        "is_primary": True,
    })
    assert response.status_code == 201
    account = response.json()
    response = await client.post(f"/api/bank-accounts/{account['id']}/verify", json={"actor": "admin-1"})
    assert response.status_code == 200
    return response.json()


@pytest.mark.asyncio
class TestHealth:
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok", "database": "ok"}


@pytest.mark.asyncio
class TestPayoutEndpoints:
    async def test_create(self, client):
        payout = await create_payout(client)
        assert payout["status"] == "PENDING"
        assert payout["gross_amount"] == 1000.0
        assert payout["commission"] == 100.0
        assert payout["net_amount"] == 900.0
        assert payout["orders"][0]["order_id"] == "ORD-1"
        assert payout["orders"][0]["released"] is False

    async def test_create_invalid_order(self, client):
        response = await client.post("/api/payouts", json={
            "producer_id": "PRD-1",
            "orders": [{"order_id": "ORD-1", "amount": "0"}],
        })
        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "validation_error"

    @pytest.mark.parametrize("amount", ["0.004", "1e30"])
    async def test_create_unusable_amount(self, client, amount):
        response = await client.post("/api/payouts", json={
            "producer_id": "PRD-1",
            "orders": [{"order_id": "ORD-1", "amount": amount}],
        })
        assert response.status_code == 400
        assert response.json()["detail"]["details"]["skip_reason"] == "invalid_amount"

    async def test_full_lifecycle(self, client):
        account = await verified_account(client)
        payout = await create_payout(client)

        response = await client.post(f"/api/payouts/{payout['id']}/schedule")
        assert response.status_code == 200
        assert response.json()["status"] == "SCHEDULED"

        response = await client.post(f"/api/payouts/{payout['id']}/process", json={"actor": "admin-1"})
        assert response.json()["status"] == "PROCESSING"

        response = await client.post(f"/api/payouts/{payout['id']}/complete", json={
            "bank_account_id": account["id"],
            "payment_reference": "TX-001",
            "actor": "admin-1",
        })
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "COMPLETED"
        assert body["payment_method"] == "BANK_TRANSFER"
        assert body["bank_account_snapshot"]["bank_name"] == "Commercial Bank of Ethiopia"

        trace = (await client.get(f"/api/payouts/{payout['id']}/trace")).json()
        assert [e["action"] for e in trace["audit_trail"]] == [
            "payout_created",
            "payout_scheduled",
            "payout_processing",
            "payout_completed",
        ]
        assert trace["audit_trail"][-1]["details"]["account_number"] == "***6789"

    async def test_complete_pending_conflicts(self, client):
        account = await verified_account(client)
        payout = await create_payout(client)

        response = await client.post(f"/api/payouts/{payout['id']}/complete", json={
            "bank_account_id": account["id"],
            "payment_reference": "TX-001",
        })
        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "invalid_transition"

    async def test_complete_without_reference(self, client):
        account = await verified_account(client)
        payout = await create_payout(client)
        await client.post(f"/api/payouts/{payout['id']}/schedule")

        response = await client.post(f"/api/payouts/{payout['id']}/complete", json={"bank_account_id": account["id"]})
        assert response.status_code == 400

    async def test_fail_releases_orders(self, client):
        payout = await create_payout(client)
        await client.post(f"/api/payouts/{payout['id']}/schedule")

        response = await client.post(f"/api/payouts/{payout['id']}/fail", json={"reason": "Bank rejected"})
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "FAILED"
        assert body["orders"][0]["released"] is True

        await create_payout(client)

    async def test_schedule_past_date(self, client):
        payout = await create_payout(client)
        response = await client.post(f"/api/payouts/{payout['id']}/schedule", json={"scheduled_for": "2020-01-03T12:00:00Z"})
        assert response.status_code == 400

    async def test_not_found(self, client):
        response = await client.get("/api/payouts/missing")
        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "not_found"

    async def test_list_filters(self, client):
        first = await create_payout(client, "PRD-1")
        await create_payout(client, "PRD-2", [{"order_id": "ORD-2", "amount": 50}])
        await client.post(f"/api/payouts/{first['id']}/schedule")

        response = await client.get("/api/payouts", params={"status": "SCHEDULED"})
        assert [p["id"] for p in response.json()] == [first["id"]]

        response = await client.get("/api/payouts", params={"producer_id": "PRD-2"})
        assert len(response.json()) == 1

        response = await client.get("/api/payouts", params={"status": "PAID"})
        assert response.status_code == 422

    async def test_due(self, client):
        payout = await create_payout(client)
        await client.post(f"/api/payouts/{payout['id']}/schedule")

        assert (await client.get("/api/payouts/due")).json() == []
        response = await client.get("/api/payouts/due", params={"as_of": "2999-01-01T00:00:00Z"})
        assert [p["id"] for p in response.json()] == [payout["id"]]


@pytest.mark.asyncio
class TestProducerEndpoints:
    async def test_history(self, client):
        for i in range(3):
            await create_payout(client, orders=[{"order_id": f"ORD-{i}", "amount": 10}])

        response = await client.get("/api/producers/PRD-1/payouts", params={"page": 1, "limit": 2})
        body = response.json()
        assert body["total_count"] == 3
        assert body["total_pages"] == 2
        assert len(body["payouts"]) == 2

    async def test_earnings(self, client):
        await create_payout(client)
        body = (await client.get("/api/producers/PRD-1/earnings")).json()
        assert body["in_flight"] == 900.0
        assert body["completed"] == 0
        assert body["payout_count"] == 1

    async def test_bank_accounts(self, client):
        await verified_account(client)
        response = await client.get("/api/producers/PRD-1/bank-accounts", params={"include_unverified": False})
        accounts = response.json()
        assert len(accounts) == 1
        assert accounts[0]["verification_status"] == "VERIFIED"


@pytest.mark.asyncio
class TestBankAccountEndpoints:
    async def test_register_missing_fields(self, client):
        response = await client.post("/api/bank-accounts", json={"producer_id": "PRD-1", "bank_name": "Awash Bank"})
        assert response.status_code == 400

    async def test_reject_and_resubmit(self, client):
        response = await client.post("/api/bank-accounts", json={
            "producer_id": "PRD-1",
            "bank_name": "Awash Bank",
            "account_name": "Tigist Alemu",
            "account_number": "0132045678901",
        })
        account_id = response.json()["id"]

        response = await client.post(f"/api/bank-accounts/{account_id}/reject", json={"reason": ""})
        assert response.status_code == 400

        response = await client.post(f"/api/bank-accounts/{account_id}/reject", json={"reason": "Name mismatch"})
        assert response.json()["verification_status"] == "REJECTED"

        response = await client.post(f"/api/bank-accounts/{account_id}/verify")
        assert response.status_code == 409

        response = await client.post(f"/api/bank-accounts/{account_id}/resubmit", json={"account_name": "Tigist A. Alemu"})
        body = response.json()
        assert body["verification_status"] == "PENDING"
        assert body["account_name"] == "Tigist A. Alemu"

    async def test_set_primary(self, client):
        first = await verified_account(client)
        response = await client.post("/api/bank-accounts", json={
            "producer_id": "PRD-1",
            "bank_name": "Awash Bank",
            "account_name": "Abebe Kebede",
            "account_number": "0132045678901",
        })
        second = response.json()

        response = await client.post(f"/api/bank-accounts/{second['id']}/set-primary")
        assert response.json()["is_primary"] is True
        assert (await client.get(f"/api/bank-accounts/{first['id']}")).json()["is_primary"] is False
