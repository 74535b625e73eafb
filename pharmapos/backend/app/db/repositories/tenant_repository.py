# backend/app/db/repositories/tenant_repository.py
from typing import Optional, List, Tuple
from decimal import Decimal
from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import datetime

from app.core.constants import SaleStatus
from app.db.models.tenant import Tenant
from app.db.models.inventory import InventoryItem
from app.db.models.sale import Sale
from app.db.models.branch import Branch
from app.db.models.usage import UsageRecord
from app.db.repositories.base import BaseRepository


class TenantRepository(BaseRepository[Tenant]):
    """Tenant lookups and the resource counts metered against plan ceilings"""

    def __init__(self, session: AsyncSession):
        super().__init__(Tenant, session)

    async def get_by_id(self, tenant_id: str) -> Optional[Tenant]:
        """Get tenant by ID"""
        result = await self.session.execute(
            select(Tenant).where(Tenant.id == tenant_id)
        )
        return result.scalar_one_or_none()

    async def count_active_products(self, tenant_id: str, created_before: Optional[datetime] = None) -> int:
        query = (
            select(func.count(InventoryItem.id))
            .where(InventoryItem.tenant_id == tenant_id)
            .where(InventoryItem.is_active.is_(True))
        )
        if created_before is not None:
            query = query.where(InventoryItem.created_at < created_before)

        result = await self.session.execute(query)
        return result.scalar() or 0

    async def count_completed_sales(self, tenant_id: str, start: datetime, end: datetime) -> int:
        """Count completed sales in the half-open window [start, end)"""
        result = await self.session.execute(
            select(func.count(Sale.id))
            .where(Sale.tenant_id == tenant_id)
            .where(Sale.status == SaleStatus.COMPLETED.value)
            .where(Sale.created_at >= start)
            .where(Sale.created_at < end)
        )
        return result.scalar() or 0

    async def create_completed_sale(self, tenant_id: str, total: Decimal) -> Sale:
        sale = Sale(tenant_id=tenant_id, total=total, status=SaleStatus.COMPLETED.value)
        self.session.add(sale)
        await self.session.commit()
        await self.session.refresh(sale)
        return sale

    async def list_completed_sales(
        self, tenant_id: str, start: datetime, end: datetime
    ) -> List[Tuple[datetime, Decimal]]:
        """(created_at, total) of completed sales in [start, end)"""
        result = await self.session.execute(
            select(Sale.created_at, Sale.total)
            .where(Sale.tenant_id == tenant_id)
            .where(Sale.status == SaleStatus.COMPLETED.value)
            .where(Sale.created_at >= start)
            .where(Sale.created_at < end)
            .order_by(Sale.created_at)
        )
        return [(row[0], row[1]) for row in result.all()]

    async def count_active_branches(self, tenant_id: str) -> int:
        result = await self.session.execute(
            select(func.count(Branch.id))
            .where(Branch.tenant_id == tenant_id)
            .where(Branch.is_active.is_(True))
        )
        return result.scalar() or 0

    async def count_all_sales(self, tenant_id: str) -> int:
        result = await self.session.execute(
            select(func.count(Sale.id)).where(Sale.tenant_id == tenant_id)
        )
        return result.scalar() or 0

    async def count_usage_records(self, tenant_id: str) -> int:
        result = await self.session.execute(
            select(func.count(UsageRecord.id)).where(UsageRecord.tenant_id == tenant_id)
        )
        return result.scalar() or 0
