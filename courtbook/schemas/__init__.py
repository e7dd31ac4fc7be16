"""API schemas."""
from courtbook.schemas.reservation import (
    EquipmentRequest,
    PriceQuoteRequest,
    ReservationCreate,
    PriceBreakdown,
    PriceQuoteResponse,
    ReservationEquipmentLine,
    ReservationResponse,
    CancellationRequest,
    CancellationResponse,
    OverrideRequest,
)
from courtbook.schemas.availability import (
    SlotResponse,
    CourtAvailabilityResponse,
    SlotSuggestionResponse,
    AlternativeSlotsResponse,
)
from courtbook.schemas.admin import (
    MaintenanceBlockCreate,
    MaintenanceBlockInDB,
    CoachUnavailabilityCreate,
    CoachUnavailabilityInDB,
)
from courtbook.schemas.profile import UserProfileResponse

__all__ = [
    "EquipmentRequest",
    "PriceQuoteRequest",
    "ReservationCreate",
    "PriceBreakdown",
    "PriceQuoteResponse",
    "ReservationEquipmentLine",
    "ReservationResponse",
    "CancellationRequest",
    "CancellationResponse",
    "OverrideRequest",
    "SlotResponse",
    "CourtAvailabilityResponse",
    "SlotSuggestionResponse",
    "AlternativeSlotsResponse",
    "MaintenanceBlockCreate",
    "MaintenanceBlockInDB",
    "CoachUnavailabilityCreate",
    "CoachUnavailabilityInDB",
    "UserProfileResponse",
]
