# backend/app/db/repositories/plan_repository.py
from typing import List, Optional
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.plan import SubscriptionPlan
from app.db.repositories.base import BaseRepository


class PlanRepository(BaseRepository[SubscriptionPlan]):
    """Repository for SubscriptionPlan operations"""

    def __init__(self, session: AsyncSession):
        super().__init__(SubscriptionPlan, session)

    async def get_by_name(self, name: str) -> Optional[SubscriptionPlan]:
        result = await self.session.execute(
            select(SubscriptionPlan).where(SubscriptionPlan.name == name)
        )
        return result.scalar_one_or_none()

    async def list_plans(self, include_inactive: bool = False) -> List[SubscriptionPlan]:
        """Plans ordered by price, cheapest first"""
        query = select(SubscriptionPlan)
        if not include_inactive:
            query = query.where(SubscriptionPlan.is_active.is_(True))

        result = await self.session.execute(
            query.order_by(SubscriptionPlan.price, SubscriptionPlan.id)
        )
        return list(result.scalars().all())
