"""Administrative scheduling schemas."""
from pydantic import BaseModel, ConfigDict, Field
from typing import Optional
from datetime import datetime, date, time


class MaintenanceBlockCreate(BaseModel):
    """Schema for creating a maintenance block."""

    court_id: int
    start_time: datetime
    end_time: datetime
    reason: str = Field(min_length=1, max_length=500)


class MaintenanceBlockInDB(BaseModel):
    """Schema for a maintenance block from database."""

    id: int
    court_id: int
    start_time: datetime
    end_time: datetime
    reason: str
    created_by: Optional[int] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class CoachUnavailabilityCreate(BaseModel):
    """Schema for marking a coach unavailable; omit both times for the whole day."""

    day: date
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    reason: Optional[str] = Field(default=None, max_length=500)


class CoachUnavailabilityInDB(BaseModel):
    """Schema for coach unavailability from database."""

    id: int
    coach_id: int
    day: date = Field(validation_alias="date")
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    reason: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
