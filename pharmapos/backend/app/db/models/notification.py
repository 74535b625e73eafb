# backend/app/db/models/notification.py
from sqlalchemy import Column, String, Boolean, ForeignKey, DateTime, Text, JSON, Uuid
import uuid
from app.db.base import BaseModel


class Notification(BaseModel):
    """Persisted per-user message, polled by clients"""
    __tablename__ = "notifications"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    tenant_id = Column(String(100), ForeignKey("tenants.id"), nullable=False, index=True)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)

    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    category = Column(String(50), nullable=False)  # subscription, limit, upgrade
    severity = Column(String(20), nullable=False)  # critical, warning, info

    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime, nullable=True)
    expires_at = Column(DateTime, nullable=True)

    details = Column("metadata", JSON, default=dict)
