# backend/app/db/models/usage.py
from sqlalchemy import Column, String, ForeignKey, DateTime, JSON, Uuid
import uuid
from app.db.base import BaseModel
from app.utils.date import utcnow


class UsageRecord(BaseModel):
    """Append-only activity log used for usage analytics"""
    __tablename__ = "usage_records"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4, index=True)
    tenant_id = Column(String(100), ForeignKey("tenants.id"), nullable=False, index=True)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=True)

    # Free-form tag: transaction, product_operation, ...
    activity_type = Column(String(100), nullable=False, index=True)
    timestamp = Column(DateTime, default=utcnow, nullable=False, index=True)

    # `metadata` is reserved on declarative classes
    details = Column("metadata", JSON, default=dict)
