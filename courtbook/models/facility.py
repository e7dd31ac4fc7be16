"""Facility model."""
from sqlalchemy import Column, Integer, String, DateTime, Time
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from datetime import time

from courtbook.core.database import Base


class Facility(Base):
    """A sports venue hosting courts, coaches and rental equipment."""

    __tablename__ = "facilities"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    address = Column(String, nullable=True)
    timezone = Column(String, nullable=False, default="UTC")
    opening_time = Column(Time, nullable=False, default=time(6, 0))
    closing_time = Column(Time, nullable=False, default=time(22, 0))
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    courts = relationship("Court", back_populates="facility", cascade="all, delete-orphan")
