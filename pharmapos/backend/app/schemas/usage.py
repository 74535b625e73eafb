# backend/app/schemas/usage.py
from pydantic import BaseModel, Field
from typing import List, Union
from datetime import datetime, date
from decimal import Decimal

from app.utils.date import utcnow


class UsageMetric(BaseModel):
    current: Union[int, float] = 0
    limit: int = 0  # -1 when the plan is unlimited for this resource
    percentage: float = 0.0


class UsageMetrics(BaseModel):
    tenant_id: str
    users: UsageMetric = Field(default_factory=UsageMetric)
    products: UsageMetric = Field(default_factory=UsageMetric)
    transactions: UsageMetric = Field(default_factory=UsageMetric)
    branches: UsageMetric = Field(default_factory=UsageMetric)
    storage: UsageMetric = Field(default_factory=UsageMetric)
    additional_users: int = 0  # already folded into users.limit

    def items(self):
        """(resource, metric) pairs in a fixed order"""
        return [
            ("users", self.users),
            ("products", self.products),
            ("transactions", self.transactions),
            ("branches", self.branches),
            ("storage", self.storage),
        ]


class LimitCheckResult(BaseModel):
    is_within_limit: bool
    reason: str = ""
    current: Union[int, float] = 0
    limit: int = 0
    percentage: float = 0.0
    additional_users: int = 0
    checked_at: datetime = Field(default_factory=utcnow)


class LimitAlert(BaseModel):
    type: str  # users, products, transactions, branches, storage
    severity: str  # warning, critical
    current: Union[int, float]
    limit: int
    percentage: float
    message: str
    created_at: datetime = Field(default_factory=utcnow)


class UsageAlert(BaseModel):
    type: str  # user_limit, product_limit, ...
    severity: str
    message: str
    recommendation: str = ""
    current: Union[int, float] = 0
    limit: int = 0
    percentage: float = 0.0


class FeatureAccessResult(BaseModel):
    feature: str
    allowed: bool
    reason: str = ""
    required_plan: str = ""


class UsageAnalytics(BaseModel):
    tenant_id: str
    current_metrics: UsageMetrics
    user_growth_rate: float = 0.0
    product_growth_rate: float = 0.0
    transaction_growth_rate: float = 0.0
    peak_usage_hours: List[int] = []
    most_used_features: List[str] = []


class DailyUsage(BaseModel):
    date: date
    transactions: int = 0
    revenue: Decimal = Decimal("0")


class UsageHistory(BaseModel):
    tenant_id: str
    start_date: date
    end_date: date
    daily_usage: List[DailyUsage] = []
