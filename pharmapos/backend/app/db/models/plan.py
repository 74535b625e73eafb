# backend/app/db/models/plan.py
from sqlalchemy import Column, String, Integer, Boolean, Numeric, JSON
from app.db.base import BaseModel
from app.core.constants import RESOURCE_CEILING_FIELDS, UNLIMITED
from app.core.exceptions import InvalidPlanConfiguration


class SubscriptionPlan(BaseModel):
    """Named plan with per-resource ceilings (-1 means unlimited)"""
    __tablename__ = "subscription_plans"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), unique=True, nullable=False, index=True)
    price = Column(Numeric(12, 2), nullable=False, default=0)  # per month

    # Ceilings
    max_users = Column(Integer, nullable=False, default=0)
    max_products = Column(Integer, nullable=False, default=0)
    max_transactions_per_month = Column(Integer, nullable=False, default=0)
    max_branches = Column(Integer, nullable=False, default=0)
    max_storage_gb = Column(Integer, nullable=False, default=0)

    features = Column(JSON, default=list)

    # Soft-deactivated, never deleted: historical subscriptions still resolve it
    is_active = Column(Boolean, default=True, nullable=False)

    def ceiling_for(self, resource: str) -> int:
        """
        Ceiling for a metered resource.

        Raises:
            InvalidPlanConfiguration: value is missing, not an integer, or below -1
        """
        field = RESOURCE_CEILING_FIELDS[resource]
        value = getattr(self, field, None)
        if isinstance(value, bool) or not isinstance(value, int):
            raise InvalidPlanConfiguration(self.name, field, value)
        if value < UNLIMITED:
            raise InvalidPlanConfiguration(self.name, field, value)
        return value

    def has_feature(self, feature_name: str) -> bool:
        names = {str(f).lower() for f in (self.features or [])}
        return feature_name.lower() in names or "all features" in names
