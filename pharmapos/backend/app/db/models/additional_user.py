# backend/app/db/models/additional_user.py
from sqlalchemy import Column, String, Integer, Boolean, Numeric, DateTime, ForeignKey
from app.db.base import BaseModel


class AdditionalUserPurchase(BaseModel):
    """Extra user seats purchased on top of the plan ceiling"""
    __tablename__ = "additional_user_purchases"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String(100), ForeignKey("tenants.id"), nullable=False, index=True)
    number_of_users = Column(Integer, nullable=False)
    amount = Column(Numeric(12, 2), nullable=False, default=0)

    # Validity window; open-ended when end_date is null
    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=True)

    status = Column(String(20), default="active", nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
