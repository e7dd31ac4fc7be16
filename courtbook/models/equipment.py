"""Rental equipment model."""
from sqlalchemy import Column, Integer, String, ForeignKey, Boolean, Numeric, CheckConstraint

from courtbook.core.database import Base


class EquipmentItem(Base):
    """Rentable equipment with a fixed capacity and a live available counter."""

    __tablename__ = "equipment"

    id = Column(Integer, primary_key=True, index=True)
    facility_id = Column(Integer, ForeignKey("facilities.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String, nullable=False)
    equipment_type = Column(String, nullable=True)
    total_stock = Column(Integer, nullable=False)
    available_stock = Column(Integer, nullable=False)
    price_per_unit = Column(Numeric(10, 2), nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    __table_args__ = (
        CheckConstraint("available_stock >= 0", name="ck_equipment_available_non_negative"),
        CheckConstraint("available_stock <= total_stock", name="ck_equipment_available_within_total"),
    )
