# backend/app/db/base.py
from sqlalchemy.orm import declarative_base
from sqlalchemy import Column, DateTime

from app.utils.date import utcnow

Base = declarative_base()


class BaseModel(Base):
    """Abstract base model with common fields"""
    __abstract__ = True

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
