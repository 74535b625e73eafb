"""
Usage Metering Engine

Compares live tenant consumption (users, products, monthly transactions,
branches, storage) against the ceilings of the tenant's entitled plan, and
keeps the activity log used for analytics.

Reads degrade to zero-valued metrics on failure. Callers that gate on the
result treat zero limits as deny.
"""
import asyncio
from collections import OrderedDict
from datetime import date, datetime, time, timedelta
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Set, Union
from uuid import UUID
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.constants import (
    FILE_STORAGE_FLOOR_MB,
    FILE_STORAGE_PER_USER_MB,
    LIMIT_ALERT_TYPES,
    LIMIT_LABELS,
    STORAGE_ESTIMATE_MB,
    STORAGE_OVERHEAD_MB,
    UNLIMITED,
    ActivityType,
    NotificationSeverity,
    ResourceType,
)
from app.core.exceptions import StoreUnavailable
from app.db.models.usage import UsageRecord
from app.db.repositories.subscription_repository import SubscriptionRepository
from app.db.repositories.tenant_repository import TenantRepository
from app.db.repositories.usage_repository import UsageRepository
from app.db.repositories.user_repository import UserRepository
from app.schemas.usage import (
    DailyUsage,
    UsageAlert,
    UsageAnalytics,
    UsageHistory,
    UsageMetric,
    UsageMetrics,
)
from app.services.plan_catalog import plan_ceiling
from app.utils.date import add_months, month_window, utcnow

logger = logging.getLogger(__name__)

# Approaching-limit re-checks still running; kept referenced until done
pending_checks: Set[asyncio.Task] = set()


def usage_ratio(current: Union[int, float], limit: int) -> float:
    """Unrounded percentage of the ceiling; thresholds compare against this"""
    if limit == UNLIMITED:
        return 0.0
    if limit <= 0:
        return 100.0 if current > 0 else 0.0
    return current * 100 / limit


def usage_percentage(current: Union[int, float], limit: int) -> float:
    """Display percentage, rounded to 2 places"""
    return round(usage_ratio(current, limit), 2)


def growth_rate(current: Union[int, float], previous: Union[int, float]) -> float:
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return round((current - previous) / previous * 100, 2)


def _metric(current: Union[int, float], limit: int) -> UsageMetric:
    return UsageMetric(current=current, limit=limit, percentage=usage_percentage(current, limit))


class UsageMeteringService:
    """Per-tenant consumption against plan ceilings"""

    def __init__(
        self,
        session: AsyncSession,
        session_factory: Optional[Callable[[], AsyncSession]] = None,
    ):
        self.session = session
        self.session_factory = session_factory
        self.subscriptions = SubscriptionRepository(session)
        self.users = UserRepository(session)
        self.tenants = TenantRepository(session)
        self.usage = UsageRepository(session)

    async def measure(self, tenant_id: str, now: Optional[datetime] = None) -> Optional[UsageMetrics]:
        """
        Current usage against the entitled plan.

        Returns:
            None when the tenant has no active or grace-period subscription

        Raises:
            StoreUnavailable: any read failed
        """
        now = now or utcnow()
        try:
            subscription = await self.subscriptions.get_entitled(tenant_id)
            if subscription is None or subscription.plan is None:
                return None
            plan = subscription.plan

            additional_users = await self.subscriptions.sum_additional_users(tenant_id, now)
            month_start, next_month_start = month_window(now)

            users = await self.users.count_active(tenant_id)
            products = await self.tenants.count_active_products(tenant_id)
            transactions = await self.tenants.count_completed_sales(tenant_id, month_start, next_month_start)
            branches = await self.tenants.count_active_branches(tenant_id)
            storage = await self._estimate_storage_gb(tenant_id, users, products, branches)
        except SQLAlchemyError as e:
            raise StoreUnavailable("measure", e) from e

        user_limit = plan_ceiling(plan, ResourceType.USERS)
        if user_limit != UNLIMITED:
            user_limit += additional_users

        return UsageMetrics(
            tenant_id=tenant_id,
            users=_metric(users, user_limit),
            products=_metric(products, plan_ceiling(plan, ResourceType.PRODUCTS)),
            transactions=_metric(transactions, plan_ceiling(plan, ResourceType.TRANSACTIONS)),
            branches=_metric(branches, plan_ceiling(plan, ResourceType.BRANCHES)),
            storage=_metric(storage, plan_ceiling(plan, ResourceType.STORAGE)),
            additional_users=additional_users,
        )

    async def get_usage_metrics(self, tenant_id: str, now: Optional[datetime] = None) -> UsageMetrics:
        try:
            metrics = await self.measure(tenant_id, now)
        except Exception as e:
            logger.error(f"Error getting usage metrics for tenant {tenant_id}: {e}", extra={"tenant_id": tenant_id})
            return UsageMetrics(tenant_id=tenant_id)

        if metrics is None:
            logger.warning(f"No active subscription for tenant {tenant_id}", extra={"tenant_id": tenant_id})
            return UsageMetrics(tenant_id=tenant_id)
        return metrics

    async def get_additional_user_count(self, tenant_id: str, now: Optional[datetime] = None) -> int:
        try:
            return await self.subscriptions.sum_additional_users(tenant_id, now or utcnow())
        except Exception as e:
            logger.error(f"Error getting additional user count for tenant {tenant_id}: {e}")
            return 0

    async def _estimate_storage_gb(self, tenant_id: str, users: int, products: int, branches: int) -> float:
        """Heuristic footprint: per-row sizes, attachments per user, fixed overhead"""
        sales = await self.tenants.count_all_sales(tenant_id)
        usage_records = await self.tenants.count_usage_records(tenant_id)

        database_mb = (
            users * STORAGE_ESTIMATE_MB["users"]
            + products * STORAGE_ESTIMATE_MB["products"]
            + sales * STORAGE_ESTIMATE_MB["sales"]
            + branches * STORAGE_ESTIMATE_MB["branches"]
            + usage_records * STORAGE_ESTIMATE_MB["usage_records"]
        )
        file_mb = max(users * FILE_STORAGE_PER_USER_MB, FILE_STORAGE_FLOOR_MB)

        return round((database_mb + file_mb + STORAGE_OVERHEAD_MB) / 1024, 2)

    # Activity log

    async def record_activity(
        self,
        tenant_id: str,
        user_id: Optional[UUID],
        activity_type: Union[ActivityType, str],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> UsageRecord:
        """
        Append a usage record, then re-check approaching limits in the background.

        Raises:
            StoreUnavailable: the record could not be written
        """
        activity = activity_type.value if isinstance(activity_type, ActivityType) else activity_type
        try:
            record = await self.usage.create({
                "tenant_id": tenant_id,
                "user_id": user_id,
                "activity_type": activity,
                "timestamp": utcnow(),
                "details": metadata or {},
            })
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Error recording activity {activity} for tenant {tenant_id}: {e}")
            raise StoreUnavailable("record_activity", e) from e

        self._schedule_limit_check(tenant_id)
        return record

    async def record_transaction(
        self, tenant_id: str, amount: Union[Decimal, float], user_id: Optional[UUID] = None
    ) -> UsageRecord:
        return await self.record_activity(
            tenant_id, user_id, ActivityType.TRANSACTION, {"amount": str(amount)}
        )

    async def record_sale(
        self, tenant_id: str, amount: Union[Decimal, float], user_id: Optional[UUID] = None
    ) -> UsageRecord:
        """
        Persist a completed sale, which counts toward the monthly transaction
        ceiling, and log it as a transaction.

        Raises:
            StoreUnavailable: the sale or its usage record could not be written
        """
        try:
            sale = await self.tenants.create_completed_sale(tenant_id, Decimal(str(amount)))
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Error recording sale for tenant {tenant_id}: {e}")
            raise StoreUnavailable("record_sale", e) from e

        logger.info(f"Recorded sale {sale.id} for tenant {tenant_id}", extra={"tenant_id": tenant_id})
        return await self.record_transaction(tenant_id, amount, user_id)

    async def record_product_operation(
        self, tenant_id: str, operation: str, user_id: Optional[UUID] = None
    ) -> UsageRecord:
        return await self.record_activity(
            tenant_id, user_id, ActivityType.PRODUCT_OPERATION, {"operation": operation}
        )

    def _schedule_limit_check(self, tenant_id: str) -> None:
        if self.session_factory is None:
            from app.db.database import async_session_local
            self.session_factory = async_session_local

        task = asyncio.create_task(self._check_approaching_limits(tenant_id))
        pending_checks.add(task)
        task.add_done_callback(pending_checks.discard)

    async def _check_approaching_limits(self, tenant_id: str) -> None:
        """Notify admins about every resource at or above the alert threshold"""
        from app.services.notification_dispatcher import SubscriptionNotificationService

        try:
            async with self.session_factory() as session:
                alerts = await UsageMeteringService(session).get_usage_alerts(tenant_id)
                notifier = SubscriptionNotificationService(session)
                for alert in alerts:
                    if alert.severity == NotificationSeverity.CRITICAL.value:
                        await notifier.send_limit_exceeded(tenant_id, alert)
                    else:
                        await notifier.send_limit_approaching(tenant_id, alert)
        except Exception as e:
            logger.error(f"Error checking approaching limits for tenant {tenant_id}: {e}")

    # Alerts

    async def get_usage_alerts(self, tenant_id: str) -> List[UsageAlert]:
        metrics = await self.get_usage_metrics(tenant_id)
        alerts = []

        for resource, metric in metrics.items():
            ratio = usage_ratio(metric.current, metric.limit)
            if metric.limit == UNLIMITED or ratio < settings.LIMIT_ALERT_THRESHOLD:
                continue

            critical = ratio >= 100
            alerts.append(UsageAlert(
                type=LIMIT_ALERT_TYPES[resource],
                severity=(NotificationSeverity.CRITICAL if critical else NotificationSeverity.WARNING).value,
                message=(
                    f"{LIMIT_LABELS[resource]} limit: {metric.current}/{metric.limit} "
                    f"({metric.percentage:.1f}%)"
                ),
                recommendation="Upgrade your plan immediately" if critical else "Consider upgrading soon",
                current=metric.current,
                limit=metric.limit,
                percentage=metric.percentage,
            ))

        return alerts

    async def is_approaching_limit(self, tenant_id: str, metric_type: str, threshold: float = 0.9) -> bool:
        try:
            resource = ResourceType(metric_type.lower())
        except ValueError:
            return False

        metrics = await self.get_usage_metrics(tenant_id)
        metric = getattr(metrics, resource.value)
        if metric.limit == UNLIMITED:
            return False
        return usage_ratio(metric.current, metric.limit) >= threshold * 100

    # Analytics

    async def get_usage_analytics(self, tenant_id: str, now: Optional[datetime] = None) -> UsageAnalytics:
        now = now or utcnow()
        metrics = await self.get_usage_metrics(tenant_id, now)
        analytics = UsageAnalytics(tenant_id=tenant_id, current_metrics=metrics)

        window_start = now - timedelta(days=settings.ANALYTICS_WINDOW_DAYS)
        month_start, _ = month_window(now)
        try:
            previous_users = await self.users.count_active(tenant_id, created_before=window_start)
            previous_products = await self.tenants.count_active_products(tenant_id, created_before=window_start)
            previous_transactions = await self.tenants.count_completed_sales(
                tenant_id, add_months(month_start, -1), month_start
            )
            peak_hours = await self.usage.peak_hours(tenant_id, window_start)
            top_features = await self.usage.top_activity_types(tenant_id, window_start)
        except Exception as e:
            logger.error(f"Error getting usage analytics for tenant {tenant_id}: {e}")
            return analytics

        analytics.user_growth_rate = growth_rate(metrics.users.current, previous_users)
        analytics.product_growth_rate = growth_rate(metrics.products.current, previous_products)
        analytics.transaction_growth_rate = growth_rate(metrics.transactions.current, previous_transactions)
        analytics.peak_usage_hours = [hour for hour, _ in peak_hours]
        analytics.most_used_features = [activity for activity, _ in top_features]
        return analytics

    async def get_usage_history(self, tenant_id: str, start_date: date, end_date: date) -> UsageHistory:
        """Completed transactions and revenue per day, both ends inclusive"""
        history = UsageHistory(tenant_id=tenant_id, start_date=start_date, end_date=end_date)
        if end_date < start_date:
            return history

        days: "OrderedDict[date, DailyUsage]" = OrderedDict()
        day = start_date
        while day <= end_date:
            days[day] = DailyUsage(date=day)
            day += timedelta(days=1)

        try:
            sales = await self.tenants.list_completed_sales(
                tenant_id,
                datetime.combine(start_date, time.min),
                datetime.combine(end_date + timedelta(days=1), time.min),
            )
        except Exception as e:
            logger.error(f"Error getting usage history for tenant {tenant_id}: {e}")
            sales = []

        for created_at, total in sales:
            entry = days.get(created_at.date())
            if entry is None:
                continue
            entry.transactions += 1
            entry.revenue += Decimal(str(total or 0))

        history.daily_usage = list(days.values())
        return history
