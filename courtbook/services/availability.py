"""Availability checks for courts, coaches and rental equipment."""
import enum
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Mapping, Optional

from courtbook.core.clock import ensure_utc, local_to_utc, overlaps, to_local
from courtbook.core.config import settings
from courtbook.core.errors import NotFoundError, ReasonCode, UnavailableError
from courtbook.models import Coach, CoachUnavailability, Court, EquipmentItem
from courtbook.repositories.base import BookingRepository

logger = logging.getLogger(__name__)


class SlotReason(str, enum.Enum):
    BOOKED = "Booked"
    MAINTENANCE = "Maintenance"


@dataclass
class AvailabilityResult:
    """Outcome of an availability check, with the locked resources when available."""

    available: bool
    reason: Optional[ReasonCode] = None
    message: Optional[str] = None
    court: Optional[Court] = None
    coach: Optional[Coach] = None
    equipment: Dict[int, EquipmentItem] = field(default_factory=dict)

    @classmethod
    def unavailable(cls, reason: ReasonCode, message: str) -> "AvailabilityResult":
        return cls(available=False, reason=reason, message=message)

    def raise_if_unavailable(self) -> None:
        if not self.available:
            raise UnavailableError(self.reason, self.message)


@dataclass
class SlotStatus:
    start_time: datetime
    end_time: datetime
    available: bool
    reason: Optional[SlotReason] = None


@dataclass
class DaySchedule:
    court_id: int
    date: date
    timezone: str
    court_active: bool
    slots: List[SlotStatus]


class AvailabilityChecker:
    """Detects conflicts for a requested booking interval."""

    def __init__(self, repo: BookingRepository, slot_minutes: Optional[int] = None):
        """
        Initialize the checker.

        Args:
            repo: Booking repository
            slot_minutes: Slot size for the daily grid
        """
        self.repo = repo
        self.slot_minutes = slot_minutes or settings.SLOT_MINUTES

    async def check_availability(
        self,
        court_id: int,
        start: datetime,
        end: datetime,
        coach_id: Optional[int] = None,
        equipment: Optional[Mapping[int, int]] = None,
        exclude_reservation_id: Optional[int] = None,
    ) -> AvailabilityResult:
        """
        Check whether a court (and optional coach and equipment) is free.

        Must run inside a unit of work: the court, coach and equipment rows
        are locked here and stay locked until it ends. Checks stop at the
        first conflict, so the order below decides the reported reason.

        Args:
            court_id: Court to book
            start: Interval start (UTC)
            end: Interval end (UTC), exclusive
            coach_id: Optional coach to book alongside the court
            equipment: Requested quantity per equipment id
            exclude_reservation_id: Reservation to ignore, when re-checking an existing one

        Returns:
            Result carrying the reason code of the first conflict found
        """
        start = ensure_utc(start)
        end = ensure_utc(end)

        court = await self.repo.lock_court(court_id)
        if court is None or not court.is_active:
            return AvailabilityResult.unavailable(
                ReasonCode.RESOURCE_INACTIVE, f"Court {court_id} is not available for booking"
            )

        if await self.repo.find_court_reservations(court_id, start, end, exclude_reservation_id):
            return AvailabilityResult.unavailable(
                ReasonCode.COURT_CONFLICT, f"Court {court_id} is already booked for the requested time"
            )

        if await self.repo.find_maintenance_blocks(court_id, start, end):
            return AvailabilityResult.unavailable(
                ReasonCode.MAINTENANCE_CONFLICT, f"Court {court_id} is under maintenance for the requested time"
            )

        coach = None
        if coach_id is not None:
            coach = await self.repo.lock_coach(coach_id)
            if coach is None:
                return AvailabilityResult.unavailable(ReasonCode.NOT_FOUND, f"Coach {coach_id} not found")
            if not coach.is_active:
                return AvailabilityResult.unavailable(
                    ReasonCode.RESOURCE_INACTIVE, f"Coach {coach_id} is not available for booking"
                )
            if await self.repo.find_coach_reservations(coach_id, start, end, exclude_reservation_id):
                return AvailabilityResult.unavailable(
                    ReasonCode.COACH_CONFLICT, f"Coach {coach_id} is already booked for the requested time"
                )
            if await self._coach_unavailable(coach, start, end):
                return AvailabilityResult.unavailable(
                    ReasonCode.COACH_UNAVAILABLE, f"Coach {coach_id} is unavailable for the requested time"
                )

        items: Dict[int, EquipmentItem] = {}
        if equipment:
            items = await self.repo.lock_equipment(sorted(equipment))
            for equipment_id in sorted(equipment):
                requested = equipment[equipment_id]
                item = items.get(equipment_id)
                if item is None:
                    return AvailabilityResult.unavailable(
                        ReasonCode.NOT_FOUND, f"Equipment {equipment_id} not found"
                    )
                if not item.is_active:
                    return AvailabilityResult.unavailable(
                        ReasonCode.RESOURCE_INACTIVE, f"Equipment {equipment_id} is not available for rent"
                    )

                committed = await self.repo.committed_equipment_quantity(
                    equipment_id, start, end, exclude_reservation_id
                )
                remaining = item.available_stock - committed
                if remaining < requested:
                    return AvailabilityResult.unavailable(
                        ReasonCode.INSUFFICIENT_STOCK,
                        f"Only {max(remaining, 0)} of equipment {equipment_id} available, {requested} requested",
                    )

        return AvailabilityResult(available=True, court=court, coach=coach, equipment=items)

    async def _coach_unavailable(self, coach: Coach, start: datetime, end: datetime) -> bool:
        """
        Check explicit coach unavailability records against the interval.

        Records are kept in the facility's local calendar; a record without
        a time range blocks the whole local day.
        """
        facility = await self.repo.get_facility(coach.facility_id)
        tz_name = facility.timezone if facility else None

        first_day = to_local(start, tz_name).date()
        last_day = to_local(end - timedelta(microseconds=1), tz_name).date()
        records = await self.repo.find_coach_unavailability(coach.id, first_day, last_day)

        for record in records:
            blocked_start, blocked_end = self._unavailability_window(record, tz_name)
            if overlaps(blocked_start, blocked_end, start, end):
                return True
        return False

    def _unavailability_window(self, record: CoachUnavailability, tz_name: Optional[str]):
        if record.start_time is None or record.end_time is None:
            return (
                local_to_utc(record.date, time(0, 0), tz_name),
                local_to_utc(record.date + timedelta(days=1), time(0, 0), tz_name),
            )
        return (
            local_to_utc(record.date, record.start_time, tz_name),
            local_to_utc(record.date, record.end_time, tz_name),
        )

    async def day_slots(self, court_id: int, day: date) -> DaySchedule:
        """
        Build the fixed-size slot grid for a court on a local date.

        Args:
            court_id: Court ID
            day: Date in the facility's timezone

        Returns:
            Slots between opening and closing time, in order

        Raises:
            NotFoundError: If the court does not exist
        """
        court = await self.repo.get_court(court_id)
        if court is None:
            raise NotFoundError(f"Court {court_id} not found")

        facility = await self.repo.get_facility(court.facility_id)
        tz_name = facility.timezone if facility else "UTC"
        opening = facility.opening_time if facility else time(0, 0)
        closing = facility.closing_time if facility else time(0, 0)

        day_start = local_to_utc(day, opening, tz_name)
        # Closing at or before opening means the facility closes after midnight
        closing_day = day if closing > opening else day + timedelta(days=1)
        day_end = local_to_utc(closing_day, closing, tz_name)

        reservations = await self.repo.find_court_reservations(court_id, day_start, day_end)
        blocks = await self.repo.find_maintenance_blocks(court_id, day_start, day_end)
        booked = [(ensure_utc(r.start_time), ensure_utc(r.end_time)) for r in reservations]
        blocked = [(ensure_utc(b.start_time), ensure_utc(b.end_time)) for b in blocks]

        step = timedelta(minutes=self.slot_minutes)
        slots = []
        cursor = day_start
        while cursor + step <= day_end:
            slot_end = cursor + step
            reason = None
            if any(overlaps(s, e, cursor, slot_end) for s, e in booked):
                reason = SlotReason.BOOKED
            elif any(overlaps(s, e, cursor, slot_end) for s, e in blocked):
                reason = SlotReason.MAINTENANCE

            slots.append(
                SlotStatus(
                    start_time=cursor,
                    end_time=slot_end,
                    available=court.is_active and reason is None,
                    reason=reason,
                )
            )
            cursor = slot_end

        logger.debug(f"Built {len(slots)} slots for court {court_id} on {day}")

        return DaySchedule(
            court_id=court_id,
            date=day,
            timezone=tz_name,
            court_active=bool(court.is_active),
            slots=slots,
        )
