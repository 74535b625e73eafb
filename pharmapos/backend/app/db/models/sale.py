# backend/app/db/models/sale.py
from sqlalchemy import Column, String, Integer, Numeric, ForeignKey
from app.db.base import BaseModel


class Sale(BaseModel):
    """Point-of-sale transaction; completed sales count against the monthly ceiling"""
    __tablename__ = "sales"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String(100), ForeignKey("tenants.id"), nullable=False, index=True)
    total = Column(Numeric(12, 2), nullable=False, default=0)
    status = Column(String(20), default="completed", nullable=False)  # pending, completed, voided, refunded
