"""Administrative scheduling: maintenance blocks and coach unavailability."""
import logging
from datetime import date, datetime, time
from typing import List, Optional

from courtbook.core.clock import Clock, ensure_utc, utcnow
from courtbook.core.errors import InvalidRequestError, NotFoundError, ReasonCode, UnavailableError
from courtbook.core.security import Principal, require_admin
from courtbook.models import CoachUnavailability, MaintenanceBlock
from courtbook.repositories.base import BookingRepository

logger = logging.getLogger(__name__)


class MaintenanceService:
    """Blocks courts and coaches out of the bookable calendar."""

    def __init__(self, repo: BookingRepository, clock: Clock = utcnow):
        self.repo = repo
        self.clock = clock

    async def create_block(
        self,
        court_id: int,
        start: datetime,
        end: datetime,
        reason: str,
        principal: Principal,
    ) -> MaintenanceBlock:
        """
        Create a maintenance block on a court.

        Args:
            court_id: Court ID
            start: Block start
            end: Block end, exclusive
            reason: Why the court is closed
            principal: Must be an admin

        Returns:
            The created block

        Raises:
            UnavailableError: If an active reservation overlaps the block
        """
        require_admin(principal)
        start = ensure_utc(start)
        end = ensure_utc(end)
        if end <= start:
            raise InvalidRequestError("end_time must be after start_time")

        async with self.repo.unit_of_work():
            court = await self.repo.lock_court(court_id)
            if court is None:
                raise NotFoundError(f"Court {court_id} not found")

            conflicts = await self.repo.find_court_reservations(court_id, start, end)
            if conflicts:
                references = ", ".join(r.booking_reference for r in conflicts)
                raise UnavailableError(
                    ReasonCode.COURT_CONFLICT,
                    f"Maintenance overlaps active reservations: {references}",
                )

            block = MaintenanceBlock(
                court_id=court_id,
                start_time=start,
                end_time=end,
                reason=reason,
                created_by=principal.user_id,
                created_at=self.clock(),
            )
            await self.repo.add_maintenance_block(block)

        logger.info(f"Admin {principal.user_id} blocked court {court_id} from {start} to {end}: {reason}")
        return block

    async def delete_block(self, block_id: int, principal: Principal) -> None:
        require_admin(principal)
        async with self.repo.unit_of_work():
            block = await self.repo.get_maintenance_block(block_id)
            if block is None:
                raise NotFoundError(f"Maintenance block {block_id} not found")
            await self.repo.delete_maintenance_block(block)

        logger.info(f"Admin {principal.user_id} removed maintenance block {block_id}")

    async def add_coach_unavailability(
        self,
        coach_id: int,
        day: date,
        start_time: Optional[time],
        end_time: Optional[time],
        reason: Optional[str],
        principal: Principal,
    ) -> CoachUnavailability:
        """
        Mark a coach unavailable on a facility-local date.

        Leaving both times empty blocks the whole day. Existing reservations
        are not touched.
        """
        require_admin(principal)
        if (start_time is None) != (end_time is None):
            raise InvalidRequestError("start_time and end_time must be given together")
        if start_time is not None and end_time <= start_time:
            raise InvalidRequestError("end_time must be after start_time")

        async with self.repo.unit_of_work():
            coach = await self.repo.get_coach(coach_id)
            if coach is None:
                raise NotFoundError(f"Coach {coach_id} not found")

            record = CoachUnavailability(
                coach_id=coach_id,
                date=day,
                start_time=start_time,
                end_time=end_time,
                reason=reason,
            )
            await self.repo.add_coach_unavailability(record)

        logger.info(f"Admin {principal.user_id} marked coach {coach_id} unavailable on {day}")
        return record

    async def list_blocks(
        self,
        principal: Principal,
        court_id: Optional[int] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[MaintenanceBlock]:
        """
        List maintenance blocks, earliest first.

        Args:
            principal: Must be an admin
            court_id: Only blocks on this court
            start: Only blocks ending after this instant
            end: Only blocks starting before this instant
        """
        require_admin(principal)
        start = ensure_utc(start) if start is not None else None
        end = ensure_utc(end) if end is not None else None
        if start is not None and end is not None and end <= start:
            raise InvalidRequestError("end must be after start")
        return await self.repo.list_maintenance_blocks(court_id, start, end)

    async def list_coach_unavailability(
        self,
        coach_id: int,
        principal: Principal,
        from_date: Optional[date] = None,
        to_date: Optional[date] = None,
    ) -> List[CoachUnavailability]:
        """List a coach's unavailability records between two local dates, inclusive."""
        require_admin(principal)
        if from_date is not None and to_date is not None and to_date < from_date:
            raise InvalidRequestError("to_date must not be before from_date")
        coach = await self.repo.get_coach(coach_id)
        if coach is None:
            raise NotFoundError(f"Coach {coach_id} not found")
        return await self.repo.find_coach_unavailability(coach_id, from_date, to_date)
