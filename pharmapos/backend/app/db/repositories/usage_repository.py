# backend/app/db/repositories/usage_repository.py
from typing import List, Tuple
from datetime import datetime
from sqlalchemy import select, func, extract
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.usage import UsageRecord
from app.db.repositories.base import BaseRepository


class UsageRepository(BaseRepository[UsageRecord]):
    """Repository for the usage activity log"""

    def __init__(self, session: AsyncSession):
        super().__init__(UsageRecord, session)

    async def peak_hours(self, tenant_id: str, since: datetime, limit: int = 3) -> List[Tuple[int, int]]:
        """(hour_of_day, count) ranked by frequency"""
        hour = extract("hour", UsageRecord.timestamp)
        count = func.count(UsageRecord.id)
        result = await self.session.execute(
            select(hour, count)
            .where(UsageRecord.tenant_id == tenant_id)
            .where(UsageRecord.timestamp >= since)
            .group_by(hour)
            .order_by(count.desc(), hour)
            .limit(limit)
        )
        return [(int(row[0]), int(row[1])) for row in result.all()]

    async def top_activity_types(self, tenant_id: str, since: datetime, limit: int = 5) -> List[Tuple[str, int]]:
        """(activity_type, count) ranked by frequency"""
        count = func.count(UsageRecord.id)
        result = await self.session.execute(
            select(UsageRecord.activity_type, count)
            .where(UsageRecord.tenant_id == tenant_id)
            .where(UsageRecord.timestamp >= since)
            .group_by(UsageRecord.activity_type)
            .order_by(count.desc(), UsageRecord.activity_type)
            .limit(limit)
        )
        return [(row[0], int(row[1])) for row in result.all()]
