# backend/app/db/repositories/notification_repository.py
from typing import List, Optional
from uuid import UUID
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.notification import Notification
from app.db.repositories.base import BaseRepository


class NotificationRepository(BaseRepository[Notification]):
    """Repository for Notification operations"""

    def __init__(self, session: AsyncSession):
        super().__init__(Notification, session)

    async def create_many(self, rows: List[dict]) -> List[Notification]:
        """Insert several notifications in one commit"""
        notifications = [Notification(**row) for row in rows]
        self.session.add_all(notifications)
        await self.session.commit()
        return notifications

    async def list_for_tenant(
        self,
        tenant_id: str,
        category: Optional[str] = None,
        user_id: Optional[UUID] = None,
    ) -> List[Notification]:
        query = select(Notification).where(Notification.tenant_id == tenant_id)
        if category:
            query = query.where(Notification.category == category)
        if user_id:
            query = query.where(Notification.user_id == user_id)

        result = await self.session.execute(query.order_by(Notification.created_at))
        return list(result.scalars().all())
