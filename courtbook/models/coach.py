"""Coach and coach unavailability models."""
from sqlalchemy import Column, Integer, String, ForeignKey, Boolean, Numeric, Date, Time, Index

from courtbook.core.database import Base


class Coach(Base):
    """A coach who can be added to a reservation for a flat fee."""

    __tablename__ = "coaches"

    id = Column(Integer, primary_key=True, index=True)
    facility_id = Column(Integer, ForeignKey("facilities.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    specialization = Column(String, nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)


class CoachUnavailability(Base):
    """A date (optionally narrowed to a local time range) on which a coach cannot be booked."""

    __tablename__ = "coach_unavailability"

    id = Column(Integer, primary_key=True, index=True)
    coach_id = Column(Integer, ForeignKey("coaches.id", ondelete="CASCADE"), nullable=False)
    date = Column(Date, nullable=False)        # Local to the coach's facility
    start_time = Column(Time, nullable=True)   # Null start/end blocks the whole day
    end_time = Column(Time, nullable=True)
    reason = Column(String, nullable=True)

    __table_args__ = (
        Index("ix_coach_unavailability_coach_date", "coach_id", "date"),
    )
