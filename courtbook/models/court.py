"""Court model."""
from sqlalchemy import Column, Integer, String, ForeignKey, Boolean, Numeric
from sqlalchemy.orm import relationship

from courtbook.core.database import Base


class Court(Base):
    """A bookable court at a facility."""

    __tablename__ = "courts"

    id = Column(Integer, primary_key=True, index=True)
    facility_id = Column(Integer, ForeignKey("facilities.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    court_type = Column(String, nullable=False)  # e.g., "Tennis", "Basketball"
    base_price = Column(Numeric(10, 2), nullable=False)
    indoor = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    # Relationships
    facility = relationship("Facility", back_populates="courts")
