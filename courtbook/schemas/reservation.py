"""Reservation schemas."""
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional, List
from datetime import datetime
from decimal import Decimal

from courtbook.core.clock import ensure_utc
from courtbook.models import PaymentMethod, ReservationStatus


class EquipmentRequest(BaseModel):
    """Schema for a requested equipment rental."""

    equipment_id: int
    quantity: int = Field(gt=0)


class PriceQuoteRequest(BaseModel):
    """Schema for pricing a booking without making it."""

    court_id: int
    start_time: datetime
    end_time: datetime
    coach_id: Optional[int] = None
    equipment: List[EquipmentRequest] = Field(default_factory=list)


class ReservationCreate(PriceQuoteRequest):
    """Schema for creating a reservation."""

    payment_method: PaymentMethod = PaymentMethod.CREDIT_CARD
    idempotency_key: Optional[str] = Field(default=None, min_length=1, max_length=128)


class PriceBreakdown(BaseModel):
    """Itemized reservation price."""

    base_price: Decimal
    court_price: Decimal  # After pricing rules
    equipment_cost: Decimal
    coach_cost: Decimal
    total: Decimal

    model_config = ConfigDict(from_attributes=True)


class PriceQuoteResponse(BaseModel):
    """Schema for a price quote."""

    court_id: int
    start_time: datetime
    end_time: datetime
    breakdown: PriceBreakdown


class ReservationEquipmentLine(BaseModel):
    """Schema for equipment held by a reservation."""

    equipment_id: int
    quantity: int
    price_per_unit: Decimal

    model_config = ConfigDict(from_attributes=True)


class ReservationResponse(BaseModel):
    """Schema for a reservation."""

    id: int
    booking_reference: str
    user_id: int
    facility_id: int
    court_id: int
    coach_id: Optional[int] = None
    start_time: datetime
    end_time: datetime
    status: ReservationStatus
    payment_status: str
    payment_method: str
    payment_reference: Optional[str] = None
    breakdown: PriceBreakdown
    equipment: List[ReservationEquipmentLine]
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    refund_amount: Optional[Decimal] = None
    refund_percentage: Optional[int] = None
    created_at: datetime
    replayed: bool = False

    @classmethod
    def from_result(cls, result) -> "ReservationResponse":
        """Build the response from a booking service result."""
        reservation = result.reservation
        return cls(
            id=reservation.id,
            booking_reference=reservation.booking_reference,
            user_id=reservation.user_id,
            facility_id=reservation.facility_id,
            court_id=reservation.court_id,
            coach_id=reservation.coach_id,
            start_time=ensure_utc(reservation.start_time),
            end_time=ensure_utc(reservation.end_time),
            status=reservation.status,
            payment_status=reservation.payment_status,
            payment_method=reservation.payment_method,
            payment_reference=reservation.payment_reference,
            breakdown=PriceBreakdown(
                base_price=reservation.base_price,
                court_price=reservation.court_price,
                equipment_cost=reservation.equipment_cost,
                coach_cost=reservation.coach_cost,
                total=reservation.total_price,
            ),
            equipment=[ReservationEquipmentLine.model_validate(line) for line in result.equipment_lines],
            cancellation_reason=reservation.cancellation_reason,
            cancelled_at=ensure_utc(reservation.cancelled_at) if reservation.cancelled_at else None,
            refund_amount=reservation.refund_amount,
            refund_percentage=reservation.refund_percentage,
            created_at=ensure_utc(reservation.created_at),
            replayed=result.replayed,
        )


class CancellationRequest(BaseModel):
    """Schema for cancelling a reservation."""

    reason: Optional[str] = Field(default=None, max_length=500)


class CancellationResponse(BaseModel):
    """Schema for a cancellation outcome."""

    reservation_id: int
    status: ReservationStatus
    refund_amount: Decimal
    refund_percentage: int

    model_config = ConfigDict(from_attributes=True)


class OverrideRequest(BaseModel):
    """Schema for an administrative status override."""

    status: ReservationStatus
    reason: str = Field(min_length=1, max_length=500)
