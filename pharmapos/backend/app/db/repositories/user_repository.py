# backend/app/db/repositories/user_repository.py
from typing import List, Optional, Sequence
from datetime import datetime
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.models.user import User
from app.db.repositories.base import BaseRepository


class UserRepository(BaseRepository[User]):
    """Repository for User operations"""

    def __init__(self, session: AsyncSession):
        super().__init__(User, session)

    async def count_active(self, tenant_id: str, created_before: Optional[datetime] = None) -> int:
        """Count active users in tenant"""
        query = (
            select(func.count(User.id))
            .where(User.tenant_id == tenant_id)
            .where(User.is_active.is_(True))
        )
        if created_before is not None:
            query = query.where(User.created_at < created_before)

        result = await self.session.execute(query)
        return result.scalar() or 0

    async def list_admins(self, tenant_id: str, roles: Sequence[str]) -> List[User]:
        """Active users holding an administrative role in the tenant"""
        result = await self.session.execute(
            select(User)
            .where(User.tenant_id == tenant_id)
            .where(User.is_active.is_(True))
            .where(User.role.in_(list(roles)))
            .order_by(User.created_at)
        )
        return list(result.scalars().all())
