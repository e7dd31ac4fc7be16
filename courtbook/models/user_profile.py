"""User profile aggregate model."""
from sqlalchemy import Column, Integer, Numeric, DateTime
from sqlalchemy.sql import func

from courtbook.core.database import Base


class UserProfile(Base):
    """Running booking totals for a user, maintained alongside reservation writes."""

    __tablename__ = "user_profiles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, unique=True, nullable=False, index=True)
    total_bookings = Column(Integer, nullable=False, default=0)
    total_spent = Column(Numeric(12, 2), nullable=False, default=0)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
