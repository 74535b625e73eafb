"""
Limit Enforcement Gate

Consulted before mutating operations. Every check fails closed: no
entitlement, a malformed plan, or a store error all deny.

Check-then-act is not atomic; concurrent callers may overshoot a ceiling
by the number of racing requests.
"""
from datetime import datetime
from typing import List, Optional
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.constants import (
    ADMIN_OVERRIDE_RECOMMENDATION,
    DEFAULT_REQUIRED_PLAN,
    FEATURE_NAMES,
    LIMIT_ALERT_TYPES,
    LIMIT_LABELS,
    UNLIMITED,
    UPGRADE_RECOMMENDATIONS,
    NotificationSeverity,
    ResourceType,
)
from app.schemas.usage import FeatureAccessResult, LimitAlert, LimitCheckResult, UsageAlert
from app.services.notification_dispatcher import SubscriptionNotificationService
from app.services.plan_catalog import PlanCatalogService
from app.services.usage_metering import UsageMeteringService, usage_ratio

logger = logging.getLogger(__name__)

NO_SUBSCRIPTION_REASON = "No active subscription found"
CHECK_ERROR_REASON = "Error checking limit"


class LimitEnforcementService:
    """Per-resource allow/deny decisions against the tenant's plan"""

    def __init__(
        self,
        session: AsyncSession,
        metering: Optional[UsageMeteringService] = None,
        notifier: Optional[SubscriptionNotificationService] = None,
    ):
        self.session = session
        self.metering = metering or UsageMeteringService(session)
        self.notifier = notifier or SubscriptionNotificationService(session)
        self.catalog = PlanCatalogService(session)

    async def check_user_limit(
        self, tenant_id: str, allow_admin_override: bool = False, now: Optional[datetime] = None
    ) -> LimitCheckResult:
        return await self.check_limit(tenant_id, ResourceType.USERS, allow_admin_override, now)

    async def check_product_limit(self, tenant_id: str, now: Optional[datetime] = None) -> LimitCheckResult:
        return await self.check_limit(tenant_id, ResourceType.PRODUCTS, now=now)

    async def check_transaction_limit(self, tenant_id: str, now: Optional[datetime] = None) -> LimitCheckResult:
        return await self.check_limit(tenant_id, ResourceType.TRANSACTIONS, now=now)

    async def check_branch_limit(self, tenant_id: str, now: Optional[datetime] = None) -> LimitCheckResult:
        return await self.check_limit(tenant_id, ResourceType.BRANCHES, now=now)

    async def check_storage_limit(self, tenant_id: str, now: Optional[datetime] = None) -> LimitCheckResult:
        """Advisory only: no operation is gated on storage"""
        return await self.check_limit(tenant_id, ResourceType.STORAGE, now=now)

    async def check_limit(
        self,
        tenant_id: str,
        resource: ResourceType,
        allow_admin_override: bool = False,
        now: Optional[datetime] = None,
    ) -> LimitCheckResult:
        resource = ResourceType(resource)
        try:
            usage = await self.metering.measure(tenant_id, now)
        except Exception as e:
            logger.error(
                f"Error checking {resource.value} limit for tenant {tenant_id}: {e}",
                extra={"tenant_id": tenant_id},
            )
            return LimitCheckResult(is_within_limit=False, reason=CHECK_ERROR_REASON)

        if usage is None:
            return LimitCheckResult(is_within_limit=False, reason=NO_SUBSCRIPTION_REASON)

        metric = getattr(usage, resource.value)
        current, limit = metric.current, metric.limit
        label = LIMIT_LABELS[resource]
        unit = "GB" if resource == ResourceType.STORAGE else ""
        additional_users = usage.additional_users if resource == ResourceType.USERS else 0

        result = LimitCheckResult(
            is_within_limit=False,
            current=current,
            limit=limit,
            percentage=metric.percentage,
            additional_users=additional_users,
        )

        if allow_admin_override and resource == ResourceType.USERS and additional_users > 0:
            result.is_within_limit = True
            result.reason = (
                f"User limit: {current}/{limit} (includes {additional_users} additional paid users)"
            )
            return result

        if limit == UNLIMITED:
            result.is_within_limit = True
            result.reason = f"{label} limit: {current}{unit}/unlimited"
        elif current < limit:
            result.is_within_limit = True
            result.reason = f"{label} limit: {current}{unit}/{limit}{unit}"
        else:
            result.reason = f"{label} limit exceeded ({current}{unit}/{limit}{unit})"

        return result

    # Gates

    async def can_create_user(self, tenant_id: str) -> bool:
        return await self._gate(tenant_id, ResourceType.USERS)

    async def can_add_product(self, tenant_id: str) -> bool:
        return await self._gate(tenant_id, ResourceType.PRODUCTS)

    async def can_process_transaction(self, tenant_id: str) -> bool:
        return await self._gate(tenant_id, ResourceType.TRANSACTIONS)

    async def can_create_branch(self, tenant_id: str) -> bool:
        return await self._gate(tenant_id, ResourceType.BRANCHES)

    async def can_create_user_with_admin_override(self, tenant_id: str) -> bool:
        """
        User gate for administrators: any additional paid seat unlocks creation.

        Admins are only notified when no seat has been purchased, since buying
        seats is the remedy being suggested.
        """
        result = await self.check_user_limit(tenant_id, allow_admin_override=True)
        if not result.is_within_limit and result.additional_users == 0:
            await self._notify_denied(tenant_id, ResourceType.USERS, result, ADMIN_OVERRIDE_RECOMMENDATION)
        return result.is_within_limit

    async def enforce(self, tenant_id: str, resource: ResourceType) -> LimitCheckResult:
        """Check `resource` and notify tenant admins when the check denies"""
        resource = ResourceType(resource)
        result = await self.check_limit(tenant_id, resource)
        if not result.is_within_limit:
            logger.warning(
                f"Denied {resource.value} for tenant {tenant_id}: {result.reason}",
                extra={"tenant_id": tenant_id},
            )
            await self._notify_denied(tenant_id, resource, result, UPGRADE_RECOMMENDATIONS[resource])
        return result

    async def _gate(self, tenant_id: str, resource: ResourceType) -> bool:
        return (await self.enforce(tenant_id, resource)).is_within_limit

    async def _notify_denied(
        self, tenant_id: str, resource: ResourceType, result: LimitCheckResult, recommendation: str
    ) -> None:
        alert = UsageAlert(
            type=LIMIT_ALERT_TYPES[resource],
            severity=NotificationSeverity.CRITICAL.value,
            message=result.reason,
            recommendation=recommendation,
            current=result.current,
            limit=result.limit,
            percentage=result.percentage,
        )
        try:
            await self.notifier.send_limit_exceeded(tenant_id, alert)
        except Exception as e:
            logger.error(f"Error sending {alert.type} notification for tenant {tenant_id}: {e}")

    # Reporting

    async def get_limit_alerts(self, tenant_id: str) -> List[LimitAlert]:
        """Every metered resource at or above the alert threshold. Read-only."""
        alerts: List[LimitAlert] = []
        metrics = await self.metering.get_usage_metrics(tenant_id)

        for resource, metric in metrics.items():
            ratio = usage_ratio(metric.current, metric.limit)
            if metric.limit == UNLIMITED or ratio < settings.LIMIT_ALERT_THRESHOLD:
                continue

            unit = "GB" if resource == ResourceType.STORAGE else ""
            alerts.append(LimitAlert(
                type=resource,
                severity=(
                    NotificationSeverity.CRITICAL if ratio >= 100 else NotificationSeverity.WARNING
                ).value,
                current=metric.current,
                limit=metric.limit,
                percentage=metric.percentage,
                message=(
                    f"{LIMIT_LABELS[resource]} usage: {metric.current}{unit}/{metric.limit}{unit} "
                    f"({metric.percentage:.1f}%)"
                ),
            ))

        return alerts

    async def get_additional_user_count(self, tenant_id: str) -> int:
        return await self.metering.get_additional_user_count(tenant_id)

    async def check_feature_access(self, tenant_id: str, feature: str) -> FeatureAccessResult:
        """
        Whether the entitled plan includes `feature`.

        `feature` may be a route segment ("prescriptions") or a plan feature
        name ("Prescription Management"). Denials send an upgrade prompt
        naming the cheapest plan that has it.
        """
        feature_name = FEATURE_NAMES.get(feature.lower(), feature)
        try:
            subscription = await self.metering.subscriptions.get_entitled(tenant_id)
        except Exception as e:
            logger.error(f"Error checking feature {feature_name} for tenant {tenant_id}: {e}")
            return FeatureAccessResult(feature=feature_name, allowed=False, reason=CHECK_ERROR_REASON)

        if subscription is None or subscription.plan is None:
            return FeatureAccessResult(feature=feature_name, allowed=False, reason=NO_SUBSCRIPTION_REASON)

        if subscription.plan.has_feature(feature_name):
            return FeatureAccessResult(feature=feature_name, allowed=True, reason=f"Included in {subscription.plan.name}")

        required_plan = DEFAULT_REQUIRED_PLAN
        try:
            cheapest = await self.catalog.find_cheapest_plan_with_feature(feature_name)
            if cheapest is not None:
                required_plan = cheapest.name
        except Exception as e:
            logger.error(f"Error resolving plan for feature {feature_name}: {e}")

        await self.notifier.send_upgrade_prompt(tenant_id, feature_name, required_plan)
        return FeatureAccessResult(
            feature=feature_name,
            allowed=False,
            reason=f"Feature '{feature_name}' is not included in the {subscription.plan.name} plan",
            required_plan=required_plan,
        )
