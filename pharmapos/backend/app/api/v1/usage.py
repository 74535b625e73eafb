"""
Usage & Limits API Endpoints

Read-only views over the tenant's consumption against its plan, plus the
transaction recording hook that domain services call after a completed sale.
"""
from datetime import date, timedelta
from decimal import Decimal
from typing import List, Optional
from uuid import UUID
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel

from app.api.dependencies import enforce_limit, get_limit_service, get_metering_service
from app.core.constants import ResourceType
from app.core.exceptions import StoreUnavailable
from app.core.tenant import require_tenant
from app.schemas.usage import (
    FeatureAccessResult,
    LimitAlert,
    LimitCheckResult,
    UsageAnalytics,
    UsageHistory,
    UsageMetrics,
)
from app.services.limit_enforcement import LimitEnforcementService
from app.services.usage_metering import UsageMeteringService

logger = logging.getLogger(__name__)

router = APIRouter()


class TransactionRecord(BaseModel):
    amount: Decimal
    user_id: Optional[UUID] = None


@router.get("/metrics", response_model=UsageMetrics)
async def get_usage_metrics(
    tenant_id: str = Depends(require_tenant),
    metering: UsageMeteringService = Depends(get_metering_service),
):
    """Current usage of every metered resource"""
    return await metering.get_usage_metrics(tenant_id)


@router.get("/alerts", response_model=List[LimitAlert])
async def get_limit_alerts(
    tenant_id: str = Depends(require_tenant),
    limits: LimitEnforcementService = Depends(get_limit_service),
):
    return await limits.get_limit_alerts(tenant_id)


@router.get("/analytics", response_model=UsageAnalytics)
async def get_usage_analytics(
    tenant_id: str = Depends(require_tenant),
    metering: UsageMeteringService = Depends(get_metering_service),
):
    """Growth rates, peak hours and most used features over the last 30 days"""
    return await metering.get_usage_analytics(tenant_id)


@router.get("/history", response_model=UsageHistory)
async def get_usage_history(
    start_date: Optional[date] = Query(None),
    end_date: Optional[date] = Query(None),
    tenant_id: str = Depends(require_tenant),
    metering: UsageMeteringService = Depends(get_metering_service),
):
    """Daily completed transactions and revenue; defaults to the last 30 days"""
    end_date = end_date or date.today()
    start_date = start_date or end_date - timedelta(days=29)
    if start_date > end_date:
        raise HTTPException(status_code=400, detail="start_date must not be after end_date")

    return await metering.get_usage_history(tenant_id, start_date, end_date)


@router.get("/limits/{resource}", response_model=LimitCheckResult)
async def check_limit(
    resource: ResourceType,
    tenant_id: str = Depends(require_tenant),
    limits: LimitEnforcementService = Depends(get_limit_service),
):
    """Non-mutating limit check; never notifies"""
    return await limits.check_limit(tenant_id, resource)


@router.get("/features/{feature}", response_model=FeatureAccessResult)
async def check_feature_access(
    feature: str,
    tenant_id: str = Depends(require_tenant),
    limits: LimitEnforcementService = Depends(get_limit_service),
):
    return await limits.check_feature_access(tenant_id, feature)


@router.post(
    "/transactions",
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(enforce_limit(ResourceType.TRANSACTIONS))],
)
async def record_transaction(
    payload: TransactionRecord,
    tenant_id: str = Depends(require_tenant),
    metering: UsageMeteringService = Depends(get_metering_service),
):
    """Record a completed sale; it counts toward this month's transaction ceiling"""
    try:
        record = await metering.record_sale(tenant_id, payload.amount, payload.user_id)
    except StoreUnavailable as e:
        logger.error(f"Failed to record transaction for tenant {tenant_id}: {e}")
        raise HTTPException(status_code=503, detail="Usage store unavailable")

    return {"id": str(record.id), "activity_type": record.activity_type, "timestamp": record.timestamp}
