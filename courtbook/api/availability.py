"""Availability endpoints."""
from datetime import date, datetime

from fastapi import APIRouter, Depends, Query

from courtbook.api.deps import get_availability_checker, get_suggestion_service
from courtbook.schemas.availability import (
    AlternativeSlotsResponse,
    CourtAvailabilityResponse,
    SlotSuggestionResponse,
)
from courtbook.services.availability import AvailabilityChecker
from courtbook.services.suggestions import MAX_SUGGESTIONS, SuggestionService

router = APIRouter(prefix="/courts/{court_id}", tags=["availability"])


@router.get("/availability", response_model=CourtAvailabilityResponse)
async def get_court_availability(
    court_id: int,
    day: date = Query(..., alias="date", description="Date in the facility's timezone"),
    checker: AvailabilityChecker = Depends(get_availability_checker),
):
    """
    Get a court's fixed-size slots for one day.

    Slots run from the facility's opening to closing time. Unavailable slots
    carry a reason: ``Booked`` or ``Maintenance``.

    Args:
        court_id: Court ID
        day: Local date
        checker: Availability checker

    Returns:
        Ordered slots for the day
    """
    schedule = await checker.day_slots(court_id, day)
    return CourtAvailabilityResponse.from_schedule(schedule)


@router.get("/alternatives", response_model=AlternativeSlotsResponse)
async def get_alternative_slots(
    court_id: int,
    start_time: datetime = Query(...),
    end_time: datetime = Query(...),
    limit: int = Query(MAX_SUGGESTIONS, ge=1, le=20),
    service: SuggestionService = Depends(get_suggestion_service),
):
    """
    Suggest free slots near a requested court and time.

    Tries the same court an hour or two either side, then other courts at
    the same facility, then courts of the same type elsewhere.
    """
    suggestions = await service.alternative_slots(court_id, start_time, end_time, limit=limit)
    return AlternativeSlotsResponse(
        court_id=court_id,
        start_time=start_time,
        end_time=end_time,
        suggestions=[SlotSuggestionResponse.model_validate(suggestion) for suggestion in suggestions],
    )
