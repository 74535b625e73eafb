# backend/app/db/models/branch.py
from sqlalchemy import Column, String, Integer, Boolean, ForeignKey
from app.db.base import BaseModel


class Branch(BaseModel):
    __tablename__ = "branches"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(String(100), ForeignKey("tenants.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)
