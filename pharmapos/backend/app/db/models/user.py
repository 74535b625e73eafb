# backend/app/db/models/user.py
from sqlalchemy import Column, String, Boolean, ForeignKey, Uuid
from sqlalchemy.orm import relationship
import uuid
from app.db.base import BaseModel


class User(BaseModel):
    """Tenant user account"""
    __tablename__ = "users"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)

    # Profile
    full_name = Column(String(255), nullable=True)

    # Tenant relationship
    tenant_id = Column(String(100), ForeignKey("tenants.id"), nullable=False, index=True)
    role = Column(String(50), default="cashier", nullable=False)  # admin, tenant_admin, pharmacist, cashier

    # Status
    is_active = Column(Boolean, default=True, nullable=False)

    # Relationships
    tenant = relationship("Tenant", back_populates="users")
