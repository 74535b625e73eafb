"""
Tests for the usage metering engine

Covers:
1. Current usage vs. plan ceilings (percentages, unlimited, zero ceilings)
2. Additional user seats
3. Activity recording and the background approaching-limit check
4. Analytics and daily history
"""
import asyncio
import pytest
from datetime import date, datetime, timedelta
from decimal import Decimal
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models import AdditionalUserPurchase, Notification, SubscriptionPlan, UsageRecord
from app.schemas.usage import UsageMetric, UsageMetrics
from app.services.usage_metering import (
    UsageMeteringService, growth_rate, pending_checks, usage_percentage, usage_ratio,
)


@pytest.mark.asyncio
class TestUsageMetrics:
    """Usage metrics against the entitled plan"""

    @pytest.fixture
    def metering(self, db_session: AsyncSession, session_factory):
        return UsageMeteringService(db_session, session_factory=session_factory)

    async def test_metrics_for_entitled_tenant(
        self, metering, tenant, admins, subscription, make_products, make_sales, make_branches, now
    ):
        """
        Test: Counts come from the domain tables, transactions from the current month only

        Expected: users 2/10, products 2/3, transactions 4/5, branches 1/1
        """
        await make_products(2)
        await make_products(1, is_active=False)
        await make_sales(4, created_at=now - timedelta(days=3))
        await make_sales(1, created_at=now - timedelta(days=3), status="voided")
        await make_sales(2, created_at=datetime(2024, 12, 20))
        await make_branches(1)

        metrics = await metering.get_usage_metrics(tenant.id, now=now)

        assert metrics.users.current == 2
        assert metrics.users.limit == 10
        assert metrics.users.percentage == 20.0
        assert metrics.products.current == 2
        assert metrics.products.percentage == pytest.approx(66.67)
        assert metrics.transactions.current == 4
        assert metrics.transactions.limit == 5
        assert metrics.transactions.percentage == 80.0
        assert metrics.branches.percentage == 100.0

    async def test_no_subscription_reports_zero_metrics(self, metering, tenant, admins, make_products):
        """
        Test: Tenant without an active or grace-period subscription

        Expected: every metric is {0, 0, 0}
        """
        await make_products(2)

        metrics = await metering.get_usage_metrics(tenant.id)

        for _, metric in metrics.items():
            assert metric.current == 0
            assert metric.limit == 0
            assert metric.percentage == 0

    async def test_grace_period_subscription_is_still_entitled(self, metering, db_session, tenant, subscription, make_products):
        subscription.status = "grace_period"
        await db_session.commit()
        await make_products(1)

        metrics = await metering.get_usage_metrics(tenant.id)

        assert metrics.products.current == 1
        assert metrics.products.limit == 3

    async def test_unlimited_ceiling_reports_zero_percentage(
        self, metering, db_session, tenant, plan, subscription, make_products
    ):
        plan.max_products = -1
        await db_session.commit()
        await make_products(3)

        metrics = await metering.get_usage_metrics(tenant.id)

        assert metrics.products.current == 3
        assert metrics.products.limit == -1
        assert metrics.products.percentage == 0

    async def test_zero_ceiling_with_usage_reports_full(
        self, metering, db_session, tenant, plan, subscription, make_branches
    ):
        plan.max_branches = 0
        await db_session.commit()
        await make_branches(1)

        metrics = await metering.get_usage_metrics(tenant.id)

        assert metrics.branches.limit == 0
        assert metrics.branches.percentage == 100.0

    async def test_malformed_ceiling_reads_as_zero(self, metering, db_session, tenant, plan, subscription):
        """
        Test: A stored ceiling below -1

        Expected: treated as 0 rather than unlimited
        """
        plan.max_products = -5
        await db_session.commit()

        metrics = await metering.get_usage_metrics(tenant.id)

        assert metrics.products.limit == 0

    async def test_storage_estimate_is_deterministic(self, metering, tenant, admins, subscription):
        """
        Test: 2 users, nothing else

        Expected: (2 * 0.5 + 0.5 floor + 10 overhead) MB = 0.01 GB
        """
        first = await metering.get_usage_metrics(tenant.id)
        second = await metering.get_usage_metrics(tenant.id)

        assert first.storage.current == pytest.approx(0.01)
        assert first.storage.current == second.storage.current
        assert first.storage.limit == 5


@pytest.mark.asyncio
class TestAdditionalUsers:

    async def test_only_currently_valid_purchases_count(self, db_session, tenant, subscription, now):
        db_session.add_all([
            AdditionalUserPurchase(tenant_id=tenant.id, number_of_users=2, start_date=now - timedelta(days=5)),
            AdditionalUserPurchase(
                tenant_id=tenant.id, number_of_users=3,
                start_date=now - timedelta(days=5), end_date=now + timedelta(days=25),
            ),
            # Expired
            AdditionalUserPurchase(
                tenant_id=tenant.id, number_of_users=10,
                start_date=now - timedelta(days=60), end_date=now - timedelta(days=30),
            ),
            # Not started yet
            AdditionalUserPurchase(tenant_id=tenant.id, number_of_users=10, start_date=now + timedelta(days=1)),
            # Cancelled
            AdditionalUserPurchase(
                tenant_id=tenant.id, number_of_users=10,
                start_date=now - timedelta(days=5), status="cancelled",
            ),
            AdditionalUserPurchase(
                tenant_id=tenant.id, number_of_users=10,
                start_date=now - timedelta(days=5), is_active=False,
            ),
        ])
        await db_session.commit()

        metering = UsageMeteringService(db_session)

        assert await metering.get_additional_user_count(tenant.id, now=now) == 5
        metrics = await metering.get_usage_metrics(tenant.id, now=now)
        assert metrics.users.limit == 15
        assert metrics.additional_users == 5

    async def test_seats_do_not_apply_to_unlimited_plan(self, db_session, tenant, plan, subscription, now):
        plan.max_users = -1
        db_session.add(AdditionalUserPurchase(tenant_id=tenant.id, number_of_users=4, start_date=now - timedelta(days=1)))
        await db_session.commit()

        metrics = await UsageMeteringService(db_session).get_usage_metrics(tenant.id, now=now)

        assert metrics.users.limit == -1


@pytest.mark.asyncio
class TestActivityRecording:

    async def test_record_transaction_appends_usage_record(self, db_session, session_factory, tenant, admins, subscription):
        metering = UsageMeteringService(db_session, session_factory=session_factory)

        record = await metering.record_transaction(tenant.id, Decimal("25.50"), user_id=admins[0].id)
        await asyncio.gather(*list(pending_checks))

        result = await db_session.execute(select(UsageRecord).where(UsageRecord.tenant_id == tenant.id))
        records = list(result.scalars().all())
        assert [r.id for r in records] == [record.id]
        assert records[0].activity_type == "transaction"
        assert records[0].details == {"amount": "25.50"}
        assert records[0].user_id == admins[0].id

    async def test_activity_triggers_limit_exceeded_notification(
        self, db_session, session_factory, tenant, admins, subscription, make_products
    ):
        """
        Test: Products at 3/3 when activity is recorded

        Expected: background check notifies both admins with a critical limit alert
        """
        await make_products(3)
        metering = UsageMeteringService(db_session, session_factory=session_factory)

        await metering.record_product_operation(tenant.id, "create")
        await asyncio.gather(*list(pending_checks))

        result = await db_session.execute(select(Notification).where(Notification.tenant_id == tenant.id))
        notifications = list(result.scalars().all())
        assert len(notifications) == 2
        assert {n.user_id for n in notifications} == {a.id for a in admins}
        assert all(n.title == "PRODUCT_LIMIT Limit Exceeded" for n in notifications)
        assert all(n.severity == "critical" for n in notifications)
        assert all(n.details["recommendation"] == "Upgrade your plan immediately" for n in notifications)

    async def test_activity_below_threshold_sends_nothing(
        self, db_session, session_factory, tenant, admins, subscription, make_products
    ):
        await make_products(1)
        metering = UsageMeteringService(db_session, session_factory=session_factory)

        await metering.record_activity(tenant.id, None, "report_generated", {"report": "daily"})
        await asyncio.gather(*list(pending_checks))

        result = await db_session.execute(select(Notification))
        assert list(result.scalars().all()) == []


@pytest.mark.asyncio
class TestUsageAlerts:

    async def test_warning_between_90_and_100_percent(self, db_session, tenant, plan, subscription, make_products):
        plan.max_products = 10
        await db_session.commit()
        await make_products(9)

        alerts = await UsageMeteringService(db_session).get_usage_alerts(tenant.id)

        assert len(alerts) == 1
        assert alerts[0].type == "product_limit"
        assert alerts[0].severity == "warning"
        assert alerts[0].recommendation == "Consider upgrading soon"
        assert alerts[0].message == "Product limit: 9/10 (90.0%)"

    async def test_is_approaching_limit(self, db_session, tenant, subscription, make_products):
        await make_products(3)
        metering = UsageMeteringService(db_session)

        assert await metering.is_approaching_limit(tenant.id, "products") is True
        assert await metering.is_approaching_limit(tenant.id, "users") is False
        assert await metering.is_approaching_limit(tenant.id, "prescriptions") is False

    async def test_threshold_uses_unrounded_usage(self, db_session, tenant, monkeypatch):
        """
        Test: 179991 of 200000 users, which displays as 90.0%

        Expected: no alert, since the true ratio is just under 90%
        """
        metering = UsageMeteringService(db_session)

        async def metrics(tenant_id, now=None):
            return UsageMetrics(
                tenant_id=tenant_id,
                users=UsageMetric(current=179991, limit=200000, percentage=usage_percentage(179991, 200000)),
            )

        monkeypatch.setattr(metering, "get_usage_metrics", metrics)

        assert await metering.get_usage_alerts(tenant.id) == []
        assert await metering.is_approaching_limit(tenant.id, "users") is False


@pytest.mark.asyncio
class TestUsageAnalytics:

    async def test_growth_peak_hours_and_features(
        self, db_session, tenant, admins, subscription, make_users, make_products, make_sales, now
    ):
        await make_users(1, created_at=now - timedelta(days=1))
        await make_products(2, created_at=now - timedelta(days=5))
        await make_sales(4, created_at=now - timedelta(days=2))
        await make_sales(2, created_at=datetime(2024, 12, 10))

        day = now.replace(hour=0)
        records = (
            [("transaction", day.replace(hour=9))] * 3
            + [("transaction", day.replace(hour=14))] * 2
            + [("product_operation", day.replace(hour=18))]
            + [("user_activity", day.replace(hour=20))]
            # Outside the 30-day window
            + [("report", now - timedelta(days=40))] * 5
        )
        db_session.add_all([
            UsageRecord(tenant_id=tenant.id, activity_type=activity, timestamp=ts)
            for activity, ts in records
        ])
        await db_session.commit()

        analytics = await UsageMeteringService(db_session).get_usage_analytics(tenant.id, now=now)

        assert analytics.user_growth_rate == 50.0
        assert analytics.product_growth_rate == 100.0
        assert analytics.transaction_growth_rate == 100.0
        assert analytics.peak_usage_hours == [9, 14, 18]
        assert analytics.most_used_features == ["transaction", "product_operation", "user_activity"]
        assert analytics.current_metrics.users.current == 3


class TestRateHelpers:

    def test_growth_rate_from_zero(self):
        assert growth_rate(5, 0) == 100.0
        assert growth_rate(0, 0) == 0.0
        assert growth_rate(3, 4) == -25.0

    def test_usage_percentage(self):
        assert usage_percentage(12, 10) == 120.0
        assert usage_percentage(3, -1) == 0.0
        assert usage_percentage(0, 0) == 0.0

    def test_usage_ratio_is_not_rounded(self):
        assert usage_percentage(179991, 200000) == 90.0
        assert usage_ratio(179991, 200000) < 90
        assert usage_ratio(9, 10) == 90.0
        assert usage_ratio(27, 30) == 90.0
        assert usage_ratio(5, 0) == 100.0


@pytest.mark.asyncio
class TestUsageHistory:

    async def test_daily_transactions_and_revenue(self, db_session, tenant, make_sales):
        await make_sales(1, created_at=datetime(2025, 1, 13, 9), total=Decimal("10.00"))
        await make_sales(1, created_at=datetime(2025, 1, 13, 17), total=Decimal("5.50"))
        await make_sales(1, created_at=datetime(2025, 1, 15, 23, 59), total=Decimal("20.00"))
        await make_sales(1, created_at=datetime(2025, 1, 15, 10), status="refunded")
        await make_sales(1, created_at=datetime(2025, 1, 16, 0, 0))

        history = await UsageMeteringService(db_session).get_usage_history(
            tenant.id, date(2025, 1, 13), date(2025, 1, 15)
        )

        assert [d.date for d in history.daily_usage] == [date(2025, 1, 13), date(2025, 1, 14), date(2025, 1, 15)]
        assert [d.transactions for d in history.daily_usage] == [2, 0, 1]
        assert history.daily_usage[0].revenue == Decimal("15.50")
        assert history.daily_usage[2].revenue == Decimal("20.00")
