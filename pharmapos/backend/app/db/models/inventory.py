# backend/app/db/models/inventory.py
from sqlalchemy import Column, String, Integer, Boolean, Numeric, ForeignKey
from app.db.base import BaseModel


class InventoryItem(BaseModel):
    """Stocked product; active rows count against the product ceiling"""
    __tablename__ = "inventory_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String(100), ForeignKey("tenants.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    unit_price = Column(Numeric(12, 2), default=0)
    quantity = Column(Integer, default=0)
    is_active = Column(Boolean, default=True, nullable=False)
