"""Administrative endpoints."""
from datetime import date, datetime
from typing import List, Optional

from fastapi import APIRouter, Depends, Query

from courtbook.api.deps import get_booking_service, get_maintenance_service
from courtbook.core.security import Principal, get_principal, require_admin
from courtbook.schemas.admin import (
    CoachUnavailabilityCreate,
    CoachUnavailabilityInDB,
    MaintenanceBlockCreate,
    MaintenanceBlockInDB,
)
from courtbook.schemas.reservation import OverrideRequest, ReservationResponse
from courtbook.services.booking import BookingService
from courtbook.services.maintenance import MaintenanceService

router = APIRouter(prefix="/admin", tags=["admin"])


def get_admin(principal: Principal = Depends(get_principal)) -> Principal:
    return require_admin(principal)


@router.post("/maintenance-blocks", response_model=MaintenanceBlockInDB, status_code=201)
async def create_maintenance_block(
    block: MaintenanceBlockCreate,
    principal: Principal = Depends(get_admin),
    service: MaintenanceService = Depends(get_maintenance_service),
):
    """
    Close a court for maintenance.

    Fails with ``CourtConflict`` if an active reservation overlaps the block.

    Args:
        block: Maintenance block to create
        principal: Admin caller
        service: Maintenance service

    Returns:
        Created maintenance block
    """
    return await service.create_block(
        block.court_id, block.start_time, block.end_time, block.reason, principal
    )


@router.get("/maintenance-blocks", response_model=List[MaintenanceBlockInDB])
async def list_maintenance_blocks(
    court_id: Optional[int] = Query(None),
    start: Optional[datetime] = Query(None, description="Only blocks ending after this instant"),
    end: Optional[datetime] = Query(None, description="Only blocks starting before this instant"),
    principal: Principal = Depends(get_admin),
    service: MaintenanceService = Depends(get_maintenance_service),
):
    """List maintenance blocks, earliest first."""
    return await service.list_blocks(principal, court_id=court_id, start=start, end=end)


@router.delete("/maintenance-blocks/{block_id}", status_code=204)
async def delete_maintenance_block(
    block_id: int,
    principal: Principal = Depends(get_admin),
    service: MaintenanceService = Depends(get_maintenance_service),
):
    """Remove a maintenance block."""
    await service.delete_block(block_id, principal)


@router.post(
    "/coaches/{coach_id}/unavailability",
    response_model=CoachUnavailabilityInDB,
    status_code=201,
)
async def add_coach_unavailability(
    coach_id: int,
    record: CoachUnavailabilityCreate,
    principal: Principal = Depends(get_admin),
    service: MaintenanceService = Depends(get_maintenance_service),
):
    """Mark a coach unavailable for a local date or part of it."""
    return await service.add_coach_unavailability(
        coach_id, record.day, record.start_time, record.end_time, record.reason, principal
    )


@router.get("/coaches/{coach_id}/unavailability", response_model=List[CoachUnavailabilityInDB])
async def list_coach_unavailability(
    coach_id: int,
    from_date: Optional[date] = Query(None),
    to_date: Optional[date] = Query(None),
    principal: Principal = Depends(get_admin),
    service: MaintenanceService = Depends(get_maintenance_service),
):
    """List a coach's unavailability records between two local dates, inclusive."""
    return await service.list_coach_unavailability(
        coach_id, principal, from_date=from_date, to_date=to_date
    )


@router.post("/reservations/{reservation_id}/override", response_model=ReservationResponse)
async def override_reservation_status(
    reservation_id: int,
    override: OverrideRequest,
    principal: Principal = Depends(get_admin),
    service: BookingService = Depends(get_booking_service),
):
    """
    Force a reservation into a new status.

    Allowed targets are confirmed, cancelled, completed and no_show. The
    change is recorded in the audit trail.

    Args:
        reservation_id: Reservation ID
        override: Target status and reason
        principal: Admin caller
        service: Booking service

    Returns:
        Updated reservation
    """
    result = await service.override_status(reservation_id, override.status, override.reason, principal)
    return ReservationResponse.from_result(result)
