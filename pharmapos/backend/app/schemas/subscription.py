# backend/app/schemas/subscription.py
from pydantic import BaseModel, AfterValidator
from typing import Annotated, Optional, List
from decimal import Decimal

from app.core.constants import UNLIMITED


def _validate_ceiling(v: int) -> int:
    if v < UNLIMITED:
        raise ValueError("ceiling must be -1 (unlimited) or a non-negative integer")
    return v


Ceiling = Annotated[int, AfterValidator(_validate_ceiling)]


class PlanBase(BaseModel):
    name: str
    price: Decimal
    max_users: Ceiling
    max_products: Ceiling
    max_transactions_per_month: Ceiling
    max_branches: Ceiling
    max_storage_gb: Ceiling
    features: List[str] = []


class PlanCreate(PlanBase):
    pass


class PlanUpdate(BaseModel):
    name: Optional[str] = None
    price: Optional[Decimal] = None
    max_users: Optional[Ceiling] = None
    max_products: Optional[Ceiling] = None
    max_transactions_per_month: Optional[Ceiling] = None
    max_branches: Optional[Ceiling] = None
    max_storage_gb: Optional[Ceiling] = None
    features: Optional[List[str]] = None
    is_active: Optional[bool] = None


class LifecycleRunResult(BaseModel):
    expired_count: int = 0
    grace_period_count: int = 0
    warnings_sent: int = 0
    messages: List[str] = []
