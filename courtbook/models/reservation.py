"""Reservation models."""
import enum

from sqlalchemy import Column, Integer, String, ForeignKey, DateTime, Numeric, Index, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from courtbook.core.database import Base


class ReservationStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    NO_SHOW = "no_show"
    FAILED = "failed"


class PaymentStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"
    FAILED = "failed"


class PaymentMethod(str, enum.Enum):
    CREDIT_CARD = "credit_card"
    DEBIT_CARD = "debit_card"
    WALLET = "wallet"
    CASH = "cash"  # Paid at the venue; no online capture


# Reservations in these states hold the court, the coach and their equipment
ACTIVE_STATUSES = frozenset({ReservationStatus.PENDING.value, ReservationStatus.CONFIRMED.value})

TERMINAL_STATUSES = frozenset({
    ReservationStatus.CANCELLED.value,
    ReservationStatus.COMPLETED.value,
    ReservationStatus.NO_SHOW.value,
    ReservationStatus.FAILED.value,
})

# Reservations in these states are excluded from the user profile totals
UNCOUNTED_STATUSES = frozenset({ReservationStatus.CANCELLED.value, ReservationStatus.FAILED.value})


class Reservation(Base):
    """A booking of a court for a half-open interval ``[start_time, end_time)``."""

    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, index=True)
    booking_reference = Column(String, unique=True, nullable=False, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    facility_id = Column(Integer, ForeignKey("facilities.id"), nullable=False)
    court_id = Column(Integer, ForeignKey("courts.id"), nullable=False)
    coach_id = Column(Integer, ForeignKey("coaches.id"), nullable=True)
    start_time = Column(DateTime(timezone=True), nullable=False)
    end_time = Column(DateTime(timezone=True), nullable=False)
    status = Column(String, nullable=False, default=ReservationStatus.PENDING.value)
    payment_status = Column(String, nullable=False, default=PaymentStatus.PENDING.value)
    payment_method = Column(String, nullable=False)
    payment_reference = Column(String, nullable=True)
    idempotency_key = Column(String, nullable=True)

    # Price breakdown, fixed at creation
    base_price = Column(Numeric(10, 2), nullable=False)
    court_price = Column(Numeric(10, 2), nullable=False)  # Base price after pricing rules
    equipment_cost = Column(Numeric(10, 2), nullable=False, default=0)
    coach_cost = Column(Numeric(10, 2), nullable=False, default=0)
    total_price = Column(Numeric(10, 2), nullable=False)

    # Cancellation and refund metadata
    cancellation_reason = Column(String, nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    refund_amount = Column(Numeric(10, 2), nullable=True)
    refund_percentage = Column(Integer, nullable=True)
    refunded_at = Column(DateTime(timezone=True), nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    # Relationships
    equipment_lines = relationship("ReservationEquipment", back_populates="reservation")

    __table_args__ = (
        UniqueConstraint("user_id", "idempotency_key", name="uq_reservation_user_idempotency_key"),
        Index("ix_reservations_court_window", "court_id", "start_time", "end_time"),
        Index("ix_reservations_coach_window", "coach_id", "start_time", "end_time"),
        Index("ix_reservations_status_created", "status", "created_at"),
    )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


class ReservationEquipment(Base):
    """Equipment quantity held by a reservation, priced at booking time."""

    __tablename__ = "reservation_equipment"

    id = Column(Integer, primary_key=True, index=True)
    reservation_id = Column(Integer, ForeignKey("reservations.id", ondelete="CASCADE"), nullable=False, index=True)
    equipment_id = Column(Integer, ForeignKey("equipment.id"), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    price_per_unit = Column(Numeric(10, 2), nullable=False)

    # Relationships
    reservation = relationship("Reservation", back_populates="equipment_lines")
