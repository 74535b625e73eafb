# backend/app/db/models/subscription.py
from datetime import datetime, timedelta
from sqlalchemy import Column, String, Integer, Boolean, Numeric, DateTime, ForeignKey, CheckConstraint
from sqlalchemy.orm import relationship
from app.db.base import BaseModel
from app.core.constants import SubscriptionStatus, ENTITLED_STATUSES
from app.utils.date import add_months


class Subscription(BaseModel):
    """Links a tenant to a plan for a validity window"""
    __tablename__ = "subscriptions"
    __table_args__ = (
        CheckConstraint("end_date >= start_date", name="ck_subscriptions_end_after_start"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String(100), ForeignKey("tenants.id"), nullable=False, index=True)
    plan_id = Column(Integer, ForeignKey("subscription_plans.id"), nullable=False)

    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False, index=True)
    amount = Column(Numeric(12, 2), nullable=False, default=0)
    auto_renew = Column(Boolean, default=False, nullable=False)

    # active, grace_period, expired, cancelled
    status = Column(String(20), default=SubscriptionStatus.ACTIVE.value, nullable=False, index=True)
    is_active = Column(Boolean, default=True, nullable=False)

    # Relationships
    tenant = relationship("Tenant", back_populates="subscriptions")
    plan = relationship("SubscriptionPlan", lazy="joined")

    @property
    def is_entitled(self) -> bool:
        return self.status in ENTITLED_STATUSES

    def grace_period_ends_at(self, grace_days: int) -> datetime:
        return self.end_date + timedelta(days=grace_days)

    def extend(self, months: int, now: datetime) -> None:
        """Push end_date forward from whichever is later: the current end date or now"""
        base = self.end_date if self.end_date > now else now
        self.end_date = add_months(base, months)
        self.status = SubscriptionStatus.ACTIVE.value
        self.is_active = True
        self.updated_at = now
