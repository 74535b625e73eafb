"""
Subscription Service

Creates, extends and cancels tenant subscriptions. Write operations raise
typed errors to their callers; the lifecycle scheduler owns time-based
transitions.
"""
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_FLOOR
from typing import List, Optional, Union
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.constants import BILLING_CYCLE_MONTHS, BillingCycle, SubscriptionStatus
from app.core.exceptions import NotEntitled, StoreUnavailable, SubscriptionError, SubscriptionStateError
from app.db.models.additional_user import AdditionalUserPurchase
from app.db.models.subscription import Subscription
from app.db.repositories.plan_repository import PlanRepository
from app.db.repositories.subscription_repository import SubscriptionRepository
from app.db.repositories.tenant_repository import TenantRepository
from app.services.payment_processor import PaymentProcessor
from app.utils.date import add_months, utcnow

logger = logging.getLogger(__name__)


class SubscriptionService:
    """Tenant subscription management"""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.subscriptions = SubscriptionRepository(session)
        self.plans = PlanRepository(session)
        self.tenants = TenantRepository(session)

    async def create_subscription(
        self,
        tenant_id: str,
        plan_id: int,
        billing_cycle: Union[BillingCycle, str] = BillingCycle.MONTHLY,
        start_date: Optional[datetime] = None,
        auto_renew: bool = False,
    ) -> Subscription:
        """
        Subscribe a tenant to a plan for one billing cycle.

        Raises:
            SubscriptionError: unknown tenant, unknown or inactive plan, bad billing cycle
            SubscriptionStateError: the tenant already holds an active or grace-period subscription
        """
        try:
            cycle = BillingCycle(billing_cycle)
        except ValueError:
            raise SubscriptionError(f"Unknown billing cycle: {billing_cycle}")

        if not await self.tenants.get_by_id(tenant_id):
            raise SubscriptionError(f"Tenant {tenant_id} not found")

        plan = await self.plans.get(plan_id)
        if not plan or not plan.is_active:
            raise SubscriptionError("Subscription plan not found or inactive")

        if await self.subscriptions.get_entitled(tenant_id):
            raise SubscriptionStateError(f"Tenant {tenant_id} already has an active subscription")

        months = BILLING_CYCLE_MONTHS[cycle]
        start = start_date or utcnow()

        try:
            subscription = await self.subscriptions.create({
                "tenant_id": tenant_id,
                "plan_id": plan.id,
                "start_date": start,
                "end_date": add_months(start, months),
                "amount": Decimal(plan.price) * months,
                "auto_renew": auto_renew,
                "status": SubscriptionStatus.ACTIVE.value,
                "is_active": True,
            })
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Error creating subscription for tenant {tenant_id}: {e}")
            raise StoreUnavailable("create_subscription", e) from e

        logger.info(
            f"Created subscription {subscription.id} for tenant {tenant_id} with plan {plan.name}",
            extra={"tenant_id": tenant_id, "subscription_id": subscription.id},
        )
        return subscription

    async def get_active_subscription(self, tenant_id: str) -> Optional[Subscription]:
        return await self.subscriptions.get_entitled(tenant_id)

    async def require_active_subscription(self, tenant_id: str) -> Subscription:
        subscription = await self.subscriptions.get_entitled(tenant_id)
        if subscription is None:
            raise NotEntitled(tenant_id)
        return subscription

    async def apply_payment(
        self, subscription_id: int, amount: Union[Decimal, float, int], now: Optional[datetime] = None
    ) -> Subscription:
        """
        Credit a payment to a subscription.

        Buys floor(amount / monthly price) months, at least one, counted from
        the later of the current end date and now. Reactivates grace-period and
        expired subscriptions.

        Raises:
            SubscriptionError: unknown subscription or non-positive amount
            SubscriptionStateError: the subscription was cancelled
        """
        now = now or utcnow()
        amount = Decimal(str(amount))
        if amount <= 0:
            raise SubscriptionError("Payment amount must be positive")

        subscription = await self.subscriptions.get(subscription_id)
        if not subscription:
            raise SubscriptionError(f"Subscription {subscription_id} not found")
        if subscription.status == SubscriptionStatus.CANCELLED.value:
            raise SubscriptionStateError(f"Subscription {subscription_id} is cancelled")

        price = Decimal(subscription.plan.price)
        months = 1
        if price > 0:
            months = max(1, int((amount / price).to_integral_value(rounding=ROUND_FLOOR)))

        previous_status = subscription.status
        subscription.extend(months, now)
        subscription.amount = amount

        try:
            await self.session.commit()
            await self.session.refresh(subscription)
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Error applying payment to subscription {subscription_id}: {e}")
            raise StoreUnavailable("apply_payment", e) from e

        logger.info(
            f"Applied payment of {amount} to subscription {subscription_id}: +{months} month(s), "
            f"{previous_status} -> {subscription.status}, ends {subscription.end_date.isoformat()}",
            extra={"tenant_id": subscription.tenant_id, "subscription_id": subscription_id},
        )
        return subscription

    async def renew(
        self,
        subscription_id: int,
        processor: PaymentProcessor,
        amount: Optional[Union[Decimal, float, int]] = None,
        now: Optional[datetime] = None,
    ) -> Optional[Subscription]:
        """
        Charge through `processor` and apply the payment on success.

        Defaults to one month at the plan price. Returns None when the charge
        is declined; the subscription is left untouched.
        """
        subscription = await self.subscriptions.get(subscription_id)
        if not subscription:
            raise SubscriptionError(f"Subscription {subscription_id} not found")
        if subscription.status == SubscriptionStatus.CANCELLED.value:
            raise SubscriptionStateError(f"Subscription {subscription_id} is cancelled")

        charge = Decimal(str(amount)) if amount is not None else Decimal(subscription.plan.price)
        if not await processor.charge(subscription, charge):
            logger.warning(
                f"Renewal charge of {charge} declined for subscription {subscription_id}",
                extra={"tenant_id": subscription.tenant_id, "subscription_id": subscription_id},
            )
            return None

        return await self.apply_payment(subscription_id, charge, now)

    async def cancel_subscription(self, subscription_id: int) -> Subscription:
        subscription = await self.subscriptions.get(subscription_id)
        if not subscription:
            raise SubscriptionError(f"Subscription {subscription_id} not found")

        return await self._set_status(subscription, SubscriptionStatus.CANCELLED, is_active=False)

    async def update_status(self, subscription_id: int, status: Union[SubscriptionStatus, str]) -> Subscription:
        """
        Manual status change.

        Raises:
            SubscriptionStateError: leaving `cancelled`, which is terminal
        """
        status = SubscriptionStatus(status)
        subscription = await self.subscriptions.get(subscription_id)
        if not subscription:
            raise SubscriptionError(f"Subscription {subscription_id} not found")
        if subscription.status == SubscriptionStatus.CANCELLED.value and status != SubscriptionStatus.CANCELLED:
            raise SubscriptionStateError(f"Subscription {subscription_id} is cancelled")

        is_active = status in (SubscriptionStatus.ACTIVE, SubscriptionStatus.GRACE_PERIOD)
        return await self._set_status(subscription, status, is_active=is_active)

    async def _set_status(self, subscription: Subscription, status: SubscriptionStatus, is_active: bool) -> Subscription:
        previous = subscription.status
        subscription.status = status.value
        subscription.is_active = is_active
        subscription.updated_at = utcnow()

        try:
            await self.session.commit()
            await self.session.refresh(subscription)
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Error updating subscription {subscription.id}: {e}")
            raise StoreUnavailable("update_status", e) from e

        logger.info(
            f"Subscription {subscription.id}: {previous} -> {status.value}",
            extra={"tenant_id": subscription.tenant_id, "subscription_id": subscription.id},
        )
        return subscription

    async def get_expiring_soon(self, days_ahead: int = 7, now: Optional[datetime] = None) -> List[Subscription]:
        now = now or utcnow()
        return await self.subscriptions.list_expiring_between(now, now + timedelta(days=days_ahead))

    async def get_lapsed_subscriptions(self) -> List[Subscription]:
        """Grace-period and expired subscriptions, oldest end date first"""
        return await self.subscriptions.list_lapsed()

    async def purchase_additional_users(
        self,
        tenant_id: str,
        number_of_users: int,
        months: Optional[int] = None,
        amount: Union[Decimal, float, int] = 0,
        start_date: Optional[datetime] = None,
    ) -> AdditionalUserPurchase:
        """
        Add paid seats on top of the plan's user ceiling.

        Open-ended when `months` is None.
        """
        if number_of_users <= 0:
            raise SubscriptionError("number_of_users must be positive")
        if not await self.tenants.get_by_id(tenant_id):
            raise SubscriptionError(f"Tenant {tenant_id} not found")

        start = start_date or utcnow()
        purchase = AdditionalUserPurchase(
            tenant_id=tenant_id,
            number_of_users=number_of_users,
            amount=Decimal(str(amount)),
            start_date=start,
            end_date=add_months(start, months) if months else None,
            status="active",
            is_active=True,
        )
        self.session.add(purchase)

        try:
            await self.session.commit()
            await self.session.refresh(purchase)
        except SQLAlchemyError as e:
            await self.session.rollback()
            logger.error(f"Error purchasing additional users for tenant {tenant_id}: {e}")
            raise StoreUnavailable("purchase_additional_users", e) from e

        logger.info(
            f"Tenant {tenant_id} purchased {number_of_users} additional user(s)",
            extra={"tenant_id": tenant_id},
        )
        return purchase
