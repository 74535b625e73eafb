"""
Subscription Notification Dispatcher

Turns lifecycle and limit events into persisted, per-admin notifications.

Delivery is best-effort: every public entry point logs and suppresses its own
failures and returns the number of rows written (0 on failure).
"""
from datetime import timedelta
from functools import wraps
from typing import Any, Dict, List, Optional, Sequence
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.constants import (
    NotificationCategory,
    NotificationSeverity,
    RENEW_ACTION_URL,
    UPGRADE_ACTION_URL,
)
from app.core.exceptions import NotificationDeliveryFailure
from app.db.models.subscription import Subscription
from app.db.repositories.notification_repository import NotificationRepository
from app.db.repositories.user_repository import UserRepository
from app.schemas.usage import UsageAlert
from app.utils.date import utcnow

logger = logging.getLogger(__name__)


def _plan_name(subscription: Subscription) -> Optional[str]:
    plan = subscription.plan
    return plan.name if plan is not None else None


def best_effort(event: str):
    """Log and swallow any failure of a send_* entry point, returning 0"""
    def decorator(func):
        @wraps(func)
        async def wrapper(self, *args, **kwargs) -> int:
            try:
                return await func(self, *args, **kwargs)
            except Exception as e:
                logger.error(f"Failed to dispatch {event} notification: {e}")
                return 0
        return wrapper
    return decorator


class SubscriptionNotificationService:
    """Fan-out of subscription events to tenant administrators"""

    def __init__(
        self,
        session: AsyncSession,
        admin_roles: Optional[Sequence[str]] = None,
        expiry_days: Optional[int] = None,
        grace_period_days: Optional[int] = None,
    ):
        self.session = session
        self.admin_roles = list(admin_roles or settings.ADMIN_ROLES)
        self.expiry_days = expiry_days if expiry_days is not None else settings.NOTIFICATION_EXPIRY_DAYS
        self.grace_period_days = (
            grace_period_days if grace_period_days is not None else settings.GRACE_PERIOD_DAYS
        )
        self.users = UserRepository(session)
        self.notifications = NotificationRepository(session)

    @best_effort("subscription_expired")
    async def send_subscription_expired(self, subscription: Subscription) -> int:
        return await self._dispatch(
            tenant_id=subscription.tenant_id,
            event="subscription_expired",
            title="Subscription Expired",
            message="Your subscription has expired. Please renew to continue using PharmaPOS services.",
            category=NotificationCategory.SUBSCRIPTION,
            severity=NotificationSeverity.CRITICAL,
            metadata={
                "subscription_id": subscription.id,
                "plan_name": _plan_name(subscription),
                "expired_date": subscription.end_date.isoformat(),
                "action_url": RENEW_ACTION_URL,
            },
        )

    @best_effort("grace_period_started")
    async def send_grace_period_started(self, subscription: Subscription) -> int:
        grace_end = subscription.grace_period_ends_at(self.grace_period_days)
        return await self._dispatch(
            tenant_id=subscription.tenant_id,
            event="grace_period_started",
            title="Grace Period Started",
            message=(
                f"Your subscription has entered a {self.grace_period_days}-day grace period. "
                "Please renew to avoid service interruption."
            ),
            category=NotificationCategory.SUBSCRIPTION,
            severity=NotificationSeverity.WARNING,
            metadata={
                "subscription_id": subscription.id,
                "plan_name": _plan_name(subscription),
                "grace_period_end": grace_end.isoformat(),
                "action_url": RENEW_ACTION_URL,
            },
        )

    @best_effort("expiration_warning")
    async def send_expiration_warning(self, subscription: Subscription, days_until_expiration: int) -> int:
        severity = (
            NotificationSeverity.CRITICAL if days_until_expiration <= 3 else NotificationSeverity.WARNING
        )
        if days_until_expiration == 1:
            title = "Subscription Expires Tomorrow"
        else:
            title = f"Subscription Expires in {days_until_expiration} Days"

        return await self._dispatch(
            tenant_id=subscription.tenant_id,
            event="expiration_warning",
            title=title,
            message=(
                f"Your subscription will expire in {days_until_expiration} day(s). "
                "Please renew to continue using our services."
            ),
            category=NotificationCategory.SUBSCRIPTION,
            severity=severity,
            metadata={
                "subscription_id": subscription.id,
                "plan_name": _plan_name(subscription),
                "expiration_date": subscription.end_date.isoformat(),
                "days_until_expiration": days_until_expiration,
                "action_url": RENEW_ACTION_URL,
            },
        )

    @best_effort("limit_exceeded")
    async def send_limit_exceeded(self, tenant_id: str, alert: UsageAlert) -> int:
        return await self._dispatch(
            tenant_id=tenant_id,
            event="limit_exceeded",
            title=f"{alert.type.upper()} Limit Exceeded",
            message=f"You have exceeded your {alert.type} limit. {alert.message}",
            category=NotificationCategory.LIMIT,
            severity=NotificationSeverity.CRITICAL,
            metadata=self._alert_metadata(alert),
        )

    @best_effort("limit_approaching")
    async def send_limit_approaching(self, tenant_id: str, alert: UsageAlert) -> int:
        return await self._dispatch(
            tenant_id=tenant_id,
            event="limit_approaching",
            title=f"{alert.type.upper()} Limit Warning",
            message=f"You are approaching your {alert.type} limit. {alert.message}",
            category=NotificationCategory.LIMIT,
            severity=NotificationSeverity.WARNING,
            metadata=self._alert_metadata(alert),
        )

    @best_effort("upgrade_required")
    async def send_upgrade_prompt(self, tenant_id: str, feature: str, required_plan: str) -> int:
        return await self._dispatch(
            tenant_id=tenant_id,
            event="upgrade_required",
            title="Feature Upgrade Required",
            message=f"The '{feature}' feature requires a {required_plan} subscription or higher.",
            category=NotificationCategory.UPGRADE,
            severity=NotificationSeverity.INFO,
            metadata={
                "feature": feature,
                "required_plan": required_plan,
                "action_url": UPGRADE_ACTION_URL,
            },
        )

    @staticmethod
    def _alert_metadata(alert: UsageAlert) -> Dict[str, Any]:
        return {
            "alert_type": alert.type,
            "current_usage": alert.current,
            "limit": alert.limit,
            "percentage": round(alert.percentage, 2),
            "recommendation": alert.recommendation,
            "action_url": UPGRADE_ACTION_URL,
        }

    async def _dispatch(
        self,
        tenant_id: str,
        event: str,
        title: str,
        message: str,
        category: NotificationCategory,
        severity: NotificationSeverity,
        metadata: Dict[str, Any],
    ) -> int:
        try:
            rows = await self._persist(tenant_id, title, message, category, severity, metadata)
        except Exception as e:
            logger.error(
                f"Failed to dispatch {event} notification for tenant {tenant_id}: {e}",
                extra={"tenant_id": tenant_id},
            )
            return 0

        logger.info(
            f"Dispatched {event} notification to {rows} admin(s) of tenant {tenant_id}",
            extra={"tenant_id": tenant_id},
        )
        return rows

    async def _persist(
        self,
        tenant_id: str,
        title: str,
        message: str,
        category: NotificationCategory,
        severity: NotificationSeverity,
        metadata: Dict[str, Any],
    ) -> int:
        try:
            admins = await self.users.list_admins(tenant_id, self.admin_roles)
            if not admins:
                return 0

            now = utcnow()
            rows: List[dict] = [
                {
                    "tenant_id": tenant_id,
                    "user_id": admin.id,
                    "title": title,
                    "message": message,
                    "category": category.value,
                    "severity": severity.value,
                    "is_read": False,
                    "details": metadata,
                    "created_at": now,
                    "updated_at": now,
                    "expires_at": now + timedelta(days=self.expiry_days),
                }
                for admin in admins
            ]
            await self.notifications.create_many(rows)
            return len(rows)
        except Exception as e:
            await self.session.rollback()
            raise NotificationDeliveryFailure(str(e)) from e
