"""Pricing rule model."""
import enum

from sqlalchemy import Column, Integer, String, ForeignKey, Boolean, Numeric, Time

from courtbook.core.database import Base


class RuleKind(str, enum.Enum):
    WEEKEND = "weekend"
    PEAK_HOUR = "peak_hour"
    TIME_BASED = "time_based"


class PricingRule(Base):
    """A conditional price adjustment: ``price = price * multiplier + surcharge``."""

    __tablename__ = "pricing_rules"

    id = Column(Integer, primary_key=True, index=True)
    facility_id = Column(Integer, ForeignKey("facilities.id", ondelete="CASCADE"), nullable=True, index=True)  # Null applies everywhere
    name = Column(String, nullable=False)
    kind = Column(String, nullable=False)        # weekend, peak_hour, time_based
    court_type = Column(String, nullable=True)   # Null applies to every court type
    start_time = Column(Time, nullable=True)     # Local wall-clock window
    end_time = Column(Time, nullable=True)
    day_of_week = Column(Integer, nullable=True)  # 0=Sunday ... 6=Saturday
    multiplier = Column(Numeric(6, 3), nullable=False, default=1)
    surcharge = Column(Numeric(10, 2), nullable=False, default=0)
    is_active = Column(Boolean, default=True, nullable=False)
