"""Availability schemas."""
from pydantic import BaseModel, ConfigDict
from typing import Optional, List
from datetime import datetime, date
from decimal import Decimal


class SlotResponse(BaseModel):
    """Schema for a single fixed-size slot."""

    start_time: datetime
    end_time: datetime
    available: bool
    reason: Optional[str] = None  # Booked, Maintenance

    model_config = ConfigDict(from_attributes=True)


class CourtAvailabilityResponse(BaseModel):
    """Schema for a court's slots on one local date."""

    court_id: int
    day: date
    timezone: str
    court_active: bool
    slots: List[SlotResponse]

    @classmethod
    def from_schedule(cls, schedule) -> "CourtAvailabilityResponse":
        return cls(
            court_id=schedule.court_id,
            day=schedule.date,
            timezone=schedule.timezone,
            court_active=schedule.court_active,
            slots=[
                SlotResponse(
                    start_time=slot.start_time,
                    end_time=slot.end_time,
                    available=slot.available,
                    reason=slot.reason.value if slot.reason else None,
                )
                for slot in schedule.slots
            ],
        )


class SlotSuggestionResponse(BaseModel):
    """Schema for a suggested alternative slot."""

    kind: str  # same_court_different_time, same_facility_different_court, different_facility
    court_id: int
    court_name: str
    facility_id: int
    start_time: datetime
    end_time: datetime
    base_price: Decimal
    score: int
    label: str

    model_config = ConfigDict(from_attributes=True)


class AlternativeSlotsResponse(BaseModel):
    """Schema for alternatives to a requested court and time."""

    court_id: int
    start_time: datetime
    end_time: datetime
    suggestions: List[SlotSuggestionResponse]
