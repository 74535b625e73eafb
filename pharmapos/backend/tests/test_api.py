"""
HTTP surface tests for the usage and limits endpoints
"""
import asyncio
import pytest
from datetime import timedelta
from decimal import Decimal
from sqlalchemy import select

from app.db.models import Notification, Sale, UsageRecord
from app.services.usage_metering import pending_checks
from app.utils.date import utcnow

API = "/api/v1/usage"


@pytest.fixture
def headers(tenant):
    return {"X-Tenant-ID": tenant.id}


@pytest.mark.asyncio
class TestHealthAndTenancy:

    async def test_health(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["scheduler_running"] is False
        assert "X-Request-ID" in response.headers

    async def test_missing_tenant_header(self, client):
        response = await client.get(f"{API}/metrics")

        assert response.status_code == 400
        assert response.json()["detail"] == "X-Tenant-ID header is required"

    async def test_blank_tenant_header(self, client):
        response = await client.get(f"{API}/metrics", headers={"X-Tenant-ID": "   "})

        assert response.status_code == 400


@pytest.mark.asyncio
class TestUsageEndpoints:

    async def test_metrics(self, client, headers, admins, subscription, make_products):
        await make_products(2)

        response = await client.get(f"{API}/metrics", headers=headers)

        assert response.status_code == 200
        body = response.json()
        assert body["tenant_id"] == "pharmacy-001"
        assert body["users"] == {"current": 2, "limit": 10, "percentage": 20.0}
        assert body["products"]["current"] == 2
        assert body["products"]["limit"] == 3

    async def test_metrics_without_subscription(self, client, headers, admins):
        response = await client.get(f"{API}/metrics", headers=headers)

        assert response.status_code == 200
        assert response.json()["users"] == {"current": 0, "limit": 0, "percentage": 0.0}

    async def test_limit_check(self, client, headers, db_session, admins, subscription, make_products):
        await make_products(3)

        response = await client.get(f"{API}/limits/products", headers=headers)

        assert response.status_code == 200
        body = response.json()
        assert body["is_within_limit"] is False
        assert body["reason"] == "Product limit exceeded (3/3)"

        # Read-only check does not notify
        result = await db_session.execute(select(Notification))
        assert list(result.scalars().all()) == []

    async def test_unknown_resource(self, client, headers, subscription):
        response = await client.get(f"{API}/limits/prescriptions", headers=headers)

        assert response.status_code == 422

    async def test_alerts(self, client, headers, admins, subscription, make_branches):
        await make_branches(1)

        response = await client.get(f"{API}/alerts", headers=headers)

        assert response.status_code == 200
        assert [a["type"] for a in response.json()] == ["branches"]

    async def test_analytics(self, client, headers, admins, subscription):
        response = await client.get(f"{API}/analytics", headers=headers)

        assert response.status_code == 200
        body = response.json()
        assert body["current_metrics"]["users"]["current"] == 2
        assert body["peak_usage_hours"] == []

    async def test_feature_access(self, client, headers, subscription):
        response = await client.get(f"{API}/features/sales", headers=headers)

        assert response.status_code == 200
        assert response.json()["allowed"] is True

    async def test_history(self, client, headers, make_sales):
        today = utcnow().date()
        await make_sales(2)

        response = await client.get(
            f"{API}/history",
            headers=headers,
            params={"start_date": (today - timedelta(days=2)).isoformat(), "end_date": today.isoformat()},
        )

        assert response.status_code == 200
        daily = response.json()["daily_usage"]
        assert len(daily) == 3
        assert daily[-1]["transactions"] == 2

    async def test_history_rejects_inverted_range(self, client, headers):
        response = await client.get(
            f"{API}/history",
            headers=headers,
            params={"start_date": "2025-02-01", "end_date": "2025-01-01"},
        )

        assert response.status_code == 400


@pytest.mark.asyncio
class TestTransactionGate:

    async def test_transaction_is_recorded(self, client, headers, db_session, tenant, admins, subscription):
        response = await client.post(f"{API}/transactions", headers=headers, json={"amount": "12.50"})
        await asyncio.gather(*list(pending_checks))

        assert response.status_code == 201
        assert response.json()["activity_type"] == "transaction"

        result = await db_session.execute(select(UsageRecord).where(UsageRecord.tenant_id == tenant.id))
        records = list(result.scalars().all())
        assert len(records) == 1
        assert records[0].details == {"amount": "12.50"}

        result = await db_session.execute(select(Sale).where(Sale.tenant_id == tenant.id))
        sales = list(result.scalars().all())
        assert len(sales) == 1
        assert sales[0].status == "completed"
        assert sales[0].total == Decimal("12.50")

    async def test_recorded_transactions_consume_monthly_quota(self, client, headers, admins, subscription):
        """
        Test: Six transactions posted on a 5-transaction plan, no prior sales

        Expected: the first five are accepted and the sixth is rejected
        """
        statuses = []
        for _ in range(6):
            response = await client.post(f"{API}/transactions", headers=headers, json={"amount": "5.00"})
            await asyncio.gather(*list(pending_checks))
            statuses.append(response.status_code)

        assert statuses == [201] * 5 + [429]
        assert response.json()["detail"]["message"] == "Transaction limit exceeded (5/5)"

    async def test_transaction_rejected_at_ceiling(self, client, headers, db_session, admins, subscription, make_sales):
        """
        Test: Five completed sales this month on a 5-transaction plan

        Expected: 429 with the limit payload; tenant admins notified; nothing recorded
        """
        await make_sales(5)

        response = await client.post(f"{API}/transactions", headers=headers, json={"amount": "9.99"})

        assert response.status_code == 429
        detail = response.json()["detail"]
        assert detail["error"] == "limit_exceeded"
        assert detail["limit_type"] == "transaction_limit"
        assert detail["current_usage"] == 5
        assert detail["limit"] == 5
        assert detail["message"] == "Transaction limit exceeded (5/5)"
        assert detail["upgrade_url"] == "/billing/upgrade"

        result = await db_session.execute(select(UsageRecord))
        assert list(result.scalars().all()) == []

        result = await db_session.execute(select(Notification).where(Notification.category == "limit"))
        assert len(list(result.scalars().all())) == 2

    async def test_transaction_rejected_without_subscription(self, client, headers, admins):
        response = await client.post(f"{API}/transactions", headers=headers, json={"amount": "1.00"})

        assert response.status_code == 429
        assert response.json()["detail"]["message"] == "No active subscription found"
