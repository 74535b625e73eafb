# backend/app/api/dependencies.py
from fastapi import Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.constants import LIMIT_ALERT_TYPES, UPGRADE_ACTION_URL, ResourceType
from app.core.tenant import require_tenant
from app.db.database import async_session_local, get_db
from app.schemas.usage import LimitCheckResult
from app.services.limit_enforcement import LimitEnforcementService
from app.services.usage_metering import UsageMeteringService

ENFORCEABLE_RESOURCES = (
    ResourceType.USERS,
    ResourceType.PRODUCTS,
    ResourceType.TRANSACTIONS,
    ResourceType.BRANCHES,
)


def get_session_factory():
    """Factory for sessions that outlive the request (background limit checks)"""
    return async_session_local


async def get_metering_service(
    db: AsyncSession = Depends(get_db),
    session_factory=Depends(get_session_factory),
) -> UsageMeteringService:
    return UsageMeteringService(db, session_factory=session_factory)


async def get_limit_service(db: AsyncSession = Depends(get_db)) -> LimitEnforcementService:
    return LimitEnforcementService(db)


def enforce_limit(resource: ResourceType):
    """
    Dependency factory that rejects the request with 429 when the tenant is
    at its ceiling for `resource`.

    Usage:
        @router.post("/products", dependencies=[Depends(enforce_limit(ResourceType.PRODUCTS))])
    """
    resource = ResourceType(resource)
    if resource not in ENFORCEABLE_RESOURCES:
        raise ValueError(f"{resource.value} is not an enforceable resource")

    async def checker(
        tenant_id: str = Depends(require_tenant),
        limits: LimitEnforcementService = Depends(get_limit_service),
    ) -> LimitCheckResult:
        result = await limits.enforce(tenant_id, resource)
        if result.is_within_limit:
            return result

        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail={
                "error": "limit_exceeded",
                "message": result.reason,
                "limit_type": LIMIT_ALERT_TYPES[resource],
                "current_usage": result.current,
                "limit": result.limit,
                "upgrade_url": UPGRADE_ACTION_URL,
            },
        )

    return checker
