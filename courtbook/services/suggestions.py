"""Alternative slot suggestions for a requested court and time."""
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from courtbook.core.clock import Clock, ensure_utc, overlaps, to_local, utcnow
from courtbook.core.errors import InvalidRequestError, NotFoundError
from courtbook.models import Court
from courtbook.repositories.base import BookingRepository
from courtbook.services.availability import AvailabilityChecker, DaySchedule

logger = logging.getLogger(__name__)

SAME_COURT = "same_court_different_time"
SAME_FACILITY = "same_facility_different_court"
OTHER_FACILITY = "different_facility"

NEARBY_HOURS = 2  # Shifts tried either side of the requested start
OTHER_FACILITY_COURTS = 5
MAX_SUGGESTIONS = 5


@dataclass
class SlotSuggestion:
    """A free court and time offered instead of the requested one."""

    kind: str
    court_id: int
    court_name: str
    facility_id: int
    start_time: datetime
    end_time: datetime
    base_price: Decimal
    score: int
    label: str


class SuggestionService:
    """Finds free alternatives when a requested slot is taken."""

    def __init__(
        self,
        repo: BookingRepository,
        checker: Optional[AvailabilityChecker] = None,
        clock: Clock = utcnow,
    ):
        self.repo = repo
        self.checker = checker or AvailabilityChecker(repo)
        self.clock = clock

    async def alternative_slots(
        self,
        court_id: int,
        start: datetime,
        end: datetime,
        limit: int = MAX_SUGGESTIONS,
    ) -> List[SlotSuggestion]:
        """
        Suggest free slots close to a requested booking.

        Candidates, best first:
        1. the same court shifted by up to two hours (scored 100 minus 10 per hour);
        2. other active courts at the same facility and time (80);
        3. courts of the same type at other facilities, same time (60).

        A candidate qualifies when every slot of the court's day grid it
        touches is available. Candidates starting in the past are skipped.

        Args:
            court_id: Requested court
            start: Requested start
            end: Requested end, exclusive
            limit: Maximum number of suggestions

        Returns:
            Suggestions ordered by score

        Raises:
            InvalidRequestError: If the interval is empty
            NotFoundError: If the court does not exist
        """
        start = ensure_utc(start)
        end = ensure_utc(end)
        if end <= start:
            raise InvalidRequestError("end_time must be after start_time")

        court = await self.repo.get_court(court_id)
        if court is None:
            raise NotFoundError(f"Court {court_id} not found")

        now = self.clock()
        schedules: Dict[Tuple[int, date], DaySchedule] = {}
        suggestions: List[SlotSuggestion] = []

        for hours in range(-NEARBY_HOURS, NEARBY_HOURS + 1):
            if hours == 0:
                continue
            shifted_start = start + timedelta(hours=hours)
            shifted_end = end + timedelta(hours=hours)
            if shifted_start < now:
                continue
            if await self._is_free(court, shifted_start, shifted_end, schedules):
                label = f"{abs(hours)}h earlier" if hours < 0 else f"{hours}h later"
                suggestions.append(
                    self._suggest(SAME_COURT, court, shifted_start, shifted_end, 100 - abs(hours) * 10, label)
                )

        if start >= now:
            for other in await self.repo.list_active_courts(facility_id=court.facility_id):
                if other.id != court.id and await self._is_free(other, start, end, schedules):
                    suggestions.append(
                        self._suggest(SAME_FACILITY, other, start, end, 80, "Different court, same time")
                    )

            same_type = await self.repo.list_active_courts(court_type=court.court_type)
            elsewhere = [other for other in same_type if other.facility_id != court.facility_id]
            for other in elsewhere[:OTHER_FACILITY_COURTS]:
                if await self._is_free(other, start, end, schedules):
                    suggestions.append(self._suggest(OTHER_FACILITY, other, start, end, 60, "Nearby facility"))

        # Stable sort keeps nearer shifts and lower court ids first among equals
        suggestions.sort(key=lambda suggestion: suggestion.score, reverse=True)
        logger.info(f"Found {len(suggestions)} alternatives for court {court_id} at {start}")
        return suggestions[:limit]

    async def _is_free(
        self,
        court: Court,
        start: datetime,
        end: datetime,
        schedules: Dict[Tuple[int, date], DaySchedule],
    ) -> bool:
        facility = await self.repo.get_facility(court.facility_id)
        day = to_local(start, facility.timezone if facility else None).date()

        key = (court.id, day)
        if key not in schedules:
            schedules[key] = await self.checker.day_slots(court.id, day)
        slots = schedules[key].slots

        # Outside opening hours
        if not slots or start < slots[0].start_time or end > slots[-1].end_time:
            return False
        return all(
            slot.available
            for slot in slots
            if overlaps(slot.start_time, slot.end_time, start, end)
        )

    @staticmethod
    def _suggest(kind: str, court: Court, start: datetime, end: datetime, score: int, label: str) -> SlotSuggestion:
        return SlotSuggestion(
            kind=kind,
            court_id=court.id,
            court_name=court.name,
            facility_id=court.facility_id,
            start_time=start,
            end_time=end,
            base_price=court.base_price,
            score=score,
            label=label,
        )
