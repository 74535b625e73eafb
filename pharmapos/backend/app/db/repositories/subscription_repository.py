# backend/app/db/repositories/subscription_repository.py
from typing import List, Optional
from datetime import datetime
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.constants import SubscriptionStatus, ENTITLED_STATUSES
from app.db.models.subscription import Subscription
from app.db.models.additional_user import AdditionalUserPurchase
from app.db.repositories.base import BaseRepository


class SubscriptionRepository(BaseRepository[Subscription]):
    """Repository for Subscription lifecycle queries"""

    def __init__(self, session: AsyncSession):
        super().__init__(Subscription, session)

    async def get_entitled(self, tenant_id: str) -> Optional[Subscription]:
        """
        The tenant's active or grace-period subscription.

        Several historical rows may exist; the one ending last wins.
        """
        result = await self.session.execute(
            select(Subscription)
            .where(Subscription.tenant_id == tenant_id)
            .where(Subscription.status.in_(ENTITLED_STATUSES))
            .order_by(Subscription.end_date.desc(), Subscription.id.desc())
            .limit(1)
        )
        return result.scalars().first()

    async def list_past_grace(self, cutoff: datetime) -> List[Subscription]:
        """Entitled subscriptions whose end_date is before `cutoff` (now minus grace)"""
        result = await self.session.execute(
            select(Subscription)
            .where(Subscription.status.in_(ENTITLED_STATUSES))
            .where(Subscription.end_date < cutoff)
            .order_by(Subscription.id)
        )
        return list(result.scalars().all())

    async def list_entering_grace(self, cutoff: datetime, now: datetime) -> List[Subscription]:
        """Active subscriptions that ended within the grace window [cutoff, now)"""
        result = await self.session.execute(
            select(Subscription)
            .where(Subscription.status == SubscriptionStatus.ACTIVE.value)
            .where(Subscription.end_date >= cutoff)
            .where(Subscription.end_date < now)
            .order_by(Subscription.id)
        )
        return list(result.scalars().all())

    async def list_expiring_between(self, now: datetime, horizon: datetime) -> List[Subscription]:
        """Active subscriptions with now < end_date <= horizon"""
        result = await self.session.execute(
            select(Subscription)
            .where(Subscription.status == SubscriptionStatus.ACTIVE.value)
            .where(Subscription.end_date > now)
            .where(Subscription.end_date <= horizon)
            .order_by(Subscription.end_date)
        )
        return list(result.scalars().all())

    async def list_lapsed(self) -> List[Subscription]:
        result = await self.session.execute(
            select(Subscription)
            .where(Subscription.status.in_([
                SubscriptionStatus.EXPIRED.value,
                SubscriptionStatus.GRACE_PERIOD.value,
            ]))
            .order_by(Subscription.end_date)
        )
        return list(result.scalars().all())

    async def sum_additional_users(self, tenant_id: str, now: datetime) -> int:
        """Seats from purchases whose validity window contains `now`"""
        result = await self.session.execute(
            select(func.coalesce(func.sum(AdditionalUserPurchase.number_of_users), 0))
            .where(AdditionalUserPurchase.tenant_id == tenant_id)
            .where(AdditionalUserPurchase.status == "active")
            .where(AdditionalUserPurchase.is_active.is_(True))
            .where(AdditionalUserPurchase.start_date <= now)
            .where(
                (AdditionalUserPurchase.end_date.is_(None))
                | (AdditionalUserPurchase.end_date >= now)
            )
        )
        return int(result.scalar() or 0)
