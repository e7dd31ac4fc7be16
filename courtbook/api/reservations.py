"""Reservation endpoints."""
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Response

from courtbook.api.deps import get_booking_service, get_cancellation_service
from courtbook.core.security import Principal, get_principal
from courtbook.models import ReservationStatus
from courtbook.schemas.reservation import (
    CancellationRequest,
    CancellationResponse,
    PriceBreakdown,
    PriceQuoteRequest,
    PriceQuoteResponse,
    ReservationCreate,
    ReservationResponse,
)
from courtbook.services.booking import BookingRequest, BookingService
from courtbook.services.cancellation import CancellationService

router = APIRouter(prefix="/reservations", tags=["reservations"])


@router.post("", response_model=ReservationResponse, status_code=201)
async def create_reservation(
    payload: ReservationCreate,
    response: Response,
    principal: Principal = Depends(get_principal),
    service: BookingService = Depends(get_booking_service),
):
    """
    Reserve a court, with an optional coach and equipment.

    Availability is checked and the reservation written in one transaction.
    Repeating a request with the same idempotency key returns the original
    reservation with status 200.

    Args:
        payload: Reservation request
        response: Outgoing response, used to flag replays
        principal: Authenticated caller
        service: Booking service

    Returns:
        Created reservation with its price breakdown
    """
    request = BookingRequest(
        court_id=payload.court_id,
        start_time=payload.start_time,
        end_time=payload.end_time,
        payment_method=payload.payment_method,
        coach_id=payload.coach_id,
        equipment=[(item.equipment_id, item.quantity) for item in payload.equipment],
        idempotency_key=payload.idempotency_key,
    )
    result = await service.create_reservation(request, principal)
    if result.replayed:
        response.status_code = 200
    return ReservationResponse.from_result(result)


@router.post("/quote", response_model=PriceQuoteResponse)
async def quote_reservation(
    payload: PriceQuoteRequest,
    service: BookingService = Depends(get_booking_service),
):
    """
    Price a prospective reservation without making it.

    Pricing rules are applied in the facility's local time, as for a real
    booking. Availability is not checked.

    Args:
        payload: Court, interval, optional coach and equipment
        service: Booking service

    Returns:
        Itemized price
    """
    request = BookingRequest(
        court_id=payload.court_id,
        start_time=payload.start_time,
        end_time=payload.end_time,
        coach_id=payload.coach_id,
        equipment=[(item.equipment_id, item.quantity) for item in payload.equipment],
    )
    quote = await service.quote_price(request)
    return PriceQuoteResponse(
        court_id=payload.court_id,
        start_time=payload.start_time,
        end_time=payload.end_time,
        breakdown=PriceBreakdown.model_validate(quote),
    )


@router.get("", response_model=List[ReservationResponse])
async def list_reservations(
    status: Optional[ReservationStatus] = Query(None),
    user_id: Optional[int] = Query(None, description="Owner filter, admins only for other users"),
    principal: Principal = Depends(get_principal),
    service: BookingService = Depends(get_booking_service),
):
    """List the caller's reservations, latest first. Admins see everyone's."""
    results = await service.list_reservations(principal, user_id=user_id, status=status)
    return [ReservationResponse.from_result(result) for result in results]


@router.get("/{reservation_id}", response_model=ReservationResponse)
async def get_reservation(
    reservation_id: int,
    principal: Principal = Depends(get_principal),
    service: BookingService = Depends(get_booking_service),
):
    """Get a reservation owned by the caller (any reservation for admins)."""
    result = await service.get_reservation(reservation_id, principal)
    return ReservationResponse.from_result(result)


@router.post("/{reservation_id}/payment", response_model=ReservationResponse)
async def capture_payment(
    reservation_id: int,
    principal: Principal = Depends(get_principal),
    service: BookingService = Depends(get_booking_service),
):
    """
    Capture payment for a pending reservation.

    A declined payment returns the reservation in status ``failed``.

    Args:
        reservation_id: Reservation ID
        principal: Authenticated caller
        service: Booking service

    Returns:
        Updated reservation
    """
    result = await service.capture_payment(reservation_id, principal)
    return ReservationResponse.from_result(result)


@router.post("/{reservation_id}/cancellation", response_model=CancellationResponse)
async def cancel_reservation(
    reservation_id: int,
    payload: Optional[CancellationRequest] = None,
    principal: Principal = Depends(get_principal),
    service: CancellationService = Depends(get_cancellation_service),
):
    """
    Cancel a reservation.

    Refunds 100% at least 24 hours before the start, 50% at least 2 hours
    before, nothing after that.

    Args:
        reservation_id: Reservation ID
        payload: Optional cancellation reason
        principal: Authenticated caller
        service: Cancellation service

    Returns:
        Refund amount, percentage and new status
    """
    reason = payload.reason if payload else None
    result = await service.cancel(reservation_id, principal, reason)
    return CancellationResponse.model_validate(result)
