"""In-memory collaborators for service tests."""
import asyncio
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from courtbook.core.clock import ensure_utc, overlaps
from courtbook.core.errors import TransientError
from courtbook.models import (
    AuditEvent,
    Coach,
    CoachUnavailability,
    Court,
    EquipmentItem,
    Facility,
    MaintenanceBlock,
    PaymentStatus,
    PricingRule,
    Reservation,
    ReservationEquipment,
    ReservationStatus,
    UserProfile,
)
from courtbook.models.reservation import ACTIVE_STATUSES
from courtbook.repositories.base import BookingRepository
from courtbook.services.notifications import NotificationDispatcher

# Monday morning
NOW = datetime(2026, 10, 19, 8, 0, tzinfo=timezone.utc)


class FixedClock:
    """Clock returning a settable instant."""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class InMemoryStore:
    """Rows and row locks shared by every repository, like one database."""

    def __init__(self):
        self.facilities: Dict[int, Facility] = {}
        self.courts: Dict[int, Court] = {}
        self.coaches: Dict[int, Coach] = {}
        self.equipment: Dict[int, EquipmentItem] = {}
        self.pricing_rules: Dict[int, PricingRule] = {}
        self.maintenance_blocks: Dict[int, MaintenanceBlock] = {}
        self.coach_unavailability: Dict[int, CoachUnavailability] = {}
        self.reservations: Dict[int, Reservation] = {}
        self.reservation_equipment: Dict[int, ReservationEquipment] = {}
        self.profiles: Dict[int, UserProfile] = {}
        self.audit_events: List[AuditEvent] = []
        self._sequences = defaultdict(int)
        self._locks = {}

    def next_id(self, table: str) -> int:
        self._sequences[table] += 1
        return self._sequences[table]

    def lock_for(self, table: str, row_id: int) -> asyncio.Lock:
        key = (table, row_id)
        if key not in self._locks:
            self._locks[key] = asyncio.Lock()
        return self._locks[key]

    # Seeding

    def add_facility(self, name="Central Club", timezone="UTC", opening_time=time(6, 0), closing_time=time(22, 0)):
        facility = Facility(
            id=self.next_id("facilities"),
            name=name,
            timezone=timezone,
            opening_time=opening_time,
            closing_time=closing_time,
        )
        self.facilities[facility.id] = facility
        return facility

    def add_court(self, facility, name="Court 1", court_type="Tennis", base_price="50.00", is_active=True):
        court = Court(
            id=self.next_id("courts"),
            facility_id=facility.id,
            name=name,
            court_type=court_type,
            base_price=Decimal(base_price),
            indoor=False,
            is_active=is_active,
        )
        self.courts[court.id] = court
        return court

    def add_coach(self, facility, name="Alex", price="30.00", is_active=True):
        coach = Coach(
            id=self.next_id("coaches"),
            facility_id=facility.id,
            name=name,
            price=Decimal(price),
            is_active=is_active,
        )
        self.coaches[coach.id] = coach
        return coach

    def add_equipment(self, facility, name="Racket", total_stock=10, available_stock=None,
                      price_per_unit="5.00", is_active=True):
        item = EquipmentItem(
            id=self.next_id("equipment"),
            facility_id=facility.id,
            name=name,
            total_stock=total_stock,
            available_stock=total_stock if available_stock is None else available_stock,
            price_per_unit=Decimal(price_per_unit),
            is_active=is_active,
        )
        self.equipment[item.id] = item
        return item

    def add_pricing_rule(self, kind, facility=None, court_type=None, start_time=None, end_time=None,
                         day_of_week=None, multiplier="1", surcharge="0", is_active=True):
        rule = PricingRule(
            id=self.next_id("pricing_rules"),
            facility_id=facility.id if facility else None,
            name=f"{kind} rule",
            kind=kind,
            court_type=court_type,
            start_time=start_time,
            end_time=end_time,
            day_of_week=day_of_week,
            multiplier=Decimal(multiplier),
            surcharge=Decimal(surcharge),
            is_active=is_active,
        )
        self.pricing_rules[rule.id] = rule
        return rule

    def add_maintenance(self, court, start, end, reason="Resurfacing"):
        block = MaintenanceBlock(
            id=self.next_id("maintenance_blocks"),
            court_id=court.id,
            start_time=start,
            end_time=end,
            reason=reason,
        )
        self.maintenance_blocks[block.id] = block
        return block

    def add_unavailability(self, coach, day, start_time=None, end_time=None, reason="Leave"):
        record = CoachUnavailability(
            id=self.next_id("coach_unavailability"),
            coach_id=coach.id,
            date=day,
            start_time=start_time,
            end_time=end_time,
            reason=reason,
        )
        self.coach_unavailability[record.id] = record
        return record

    def add_reservation_row(self, court, start, end, user_id=500, coach=None,
                            status=ReservationStatus.CONFIRMED.value, total="50.00"):
        """Insert an existing booking directly, bypassing the services."""
        reservation = Reservation(
            id=self.next_id("reservations"),
            booking_reference=f"SEED{len(self.reservations) + 1}",
            user_id=user_id,
            facility_id=court.facility_id,
            court_id=court.id,
            coach_id=coach.id if coach else None,
            start_time=start,
            end_time=end,
            status=status,
            payment_status=PaymentStatus.PENDING.value,
            payment_method="cash",
            base_price=Decimal(total),
            court_price=Decimal(total),
            equipment_cost=Decimal("0"),
            coach_cost=Decimal("0"),
            total_price=Decimal(total),
            created_at=NOW,
        )
        self.reservations[reservation.id] = reservation
        return reservation

    def lines_for(self, reservation_id: int) -> List[ReservationEquipment]:
        return [line for line in self.reservation_equipment.values() if line.reservation_id == reservation_id]


class InMemoryBookingRepository(BookingRepository):
    """
    Repository over an ``InMemoryStore``.

    Row locks are per-resource asyncio locks held until the unit of work
    ends. Every mutation registers an undo step so a failed unit of work
    leaves the store exactly as it found it.
    """

    def __init__(self, store: InMemoryStore):
        self.store = store
        self._held: List[asyncio.Lock] = []
        self._undo: Optional[list] = None

    @asynccontextmanager
    async def unit_of_work(self):
        self._undo = []
        try:
            yield
        except BaseException:
            for step in reversed(self._undo):
                step()
            raise
        finally:
            self._undo = None
            for lock in reversed(self._held):
                lock.release()
            self._held = []

    def _record(self, step) -> None:
        if self._undo is None:
            raise RuntimeError("Writes require a unit of work")
        self._undo.append(step)

    async def _acquire(self, table: str, row_id: int) -> None:
        if self._undo is None:
            raise RuntimeError("Row locks require a unit of work")
        lock = self.store.lock_for(table, row_id)
        if lock in self._held:
            return
        await lock.acquire()
        self._held.append(lock)

    def _snapshot(self, obj) -> None:
        values = {column.name: getattr(obj, column.name) for column in obj.__table__.columns}

        def restore():
            for name, value in values.items():
                setattr(obj, name, value)

        self._record(restore)

    def _insert(self, table: Dict[int, object], obj) -> None:
        table[obj.id] = obj
        self._record(lambda: table.pop(obj.id, None))

    async def _io(self) -> None:
        # Give other tasks a chance to run, as a database round trip would
        await asyncio.sleep(0)

    # Catalog

    async def lock_court(self, court_id: int) -> Optional[Court]:
        await self._acquire("courts", court_id)
        await self._io()
        return self.store.courts.get(court_id)

    async def get_court(self, court_id: int) -> Optional[Court]:
        return self.store.courts.get(court_id)

    async def get_facility(self, facility_id: int) -> Optional[Facility]:
        return self.store.facilities.get(facility_id)

    async def lock_coach(self, coach_id: int) -> Optional[Coach]:
        await self._acquire("coaches", coach_id)
        await self._io()
        return self.store.coaches.get(coach_id)

    async def get_coach(self, coach_id: int) -> Optional[Coach]:
        return self.store.coaches.get(coach_id)

    async def lock_equipment(self, equipment_ids: Sequence[int]) -> Dict[int, EquipmentItem]:
        found = {}
        for equipment_id in sorted(set(equipment_ids)):
            await self._acquire("equipment", equipment_id)
            item = self.store.equipment.get(equipment_id)
            if item is not None:
                found[equipment_id] = item
        await self._io()
        return found

    async def get_equipment(self, equipment_ids: Sequence[int]) -> Dict[int, EquipmentItem]:
        return {i: self.store.equipment[i] for i in sorted(set(equipment_ids)) if i in self.store.equipment}

    async def list_active_courts(self, facility_id=None, court_type=None) -> List[Court]:
        return [
            court for _, court in sorted(self.store.courts.items())
            if court.is_active
            and facility_id in (None, court.facility_id)
            and court_type in (None, court.court_type)
        ]

    async def list_pricing_rules(self, facility_id: int, court_type: str) -> List[PricingRule]:
        return [
            rule
            for _, rule in sorted(self.store.pricing_rules.items())
            if rule.is_active
            and rule.facility_id in (None, facility_id)
            and rule.court_type in (None, court_type)
        ]

    # Conflict queries

    def _active_overlapping(self, reservation, start, end, exclude_id) -> bool:
        return (
            reservation.status in ACTIVE_STATUSES
            and reservation.id != exclude_id
            and overlaps(ensure_utc(reservation.start_time), ensure_utc(reservation.end_time), start, end)
        )

    async def find_court_reservations(self, court_id, start, end, exclude_id=None) -> List[Reservation]:
        await self._io()
        return [
            r for r in self.store.reservations.values()
            if r.court_id == court_id and self._active_overlapping(r, start, end, exclude_id)
        ]

    async def find_coach_reservations(self, coach_id, start, end, exclude_id=None) -> List[Reservation]:
        await self._io()
        return [
            r for r in self.store.reservations.values()
            if r.coach_id == coach_id and self._active_overlapping(r, start, end, exclude_id)
        ]

    async def find_maintenance_blocks(self, court_id, start, end) -> List[MaintenanceBlock]:
        await self._io()
        return [
            block for block in self.store.maintenance_blocks.values()
            if block.court_id == court_id
            and overlaps(ensure_utc(block.start_time), ensure_utc(block.end_time), start, end)
        ]

    async def find_coach_unavailability(self, coach_id, from_date=None, to_date=None) -> List[CoachUnavailability]:
        records = [
            record for record in self.store.coach_unavailability.values()
            if record.coach_id == coach_id
            and (from_date is None or record.date >= from_date)
            and (to_date is None or record.date <= to_date)
        ]
        return sorted(records, key=lambda record: (record.date, record.id))

    async def committed_equipment_quantity(self, equipment_id, start, end, exclude_id=None) -> int:
        await self._io()
        total = 0
        for line in self.store.reservation_equipment.values():
            if line.equipment_id != equipment_id:
                continue
            reservation = self.store.reservations.get(line.reservation_id)
            if reservation is not None and self._active_overlapping(reservation, start, end, exclude_id):
                total += line.quantity
        return total

    # Reservations

    async def add_reservation(self, reservation, lines) -> Reservation:
        if reservation.idempotency_key and await self.find_by_idempotency_key(
            reservation.user_id, reservation.idempotency_key
        ):
            raise TransientError("Duplicate idempotency key")

        reservation.id = self.store.next_id("reservations")
        self._insert(self.store.reservations, reservation)
        for line in lines:
            line.id = self.store.next_id("reservation_equipment")
            line.reservation_id = reservation.id
            self._insert(self.store.reservation_equipment, line)
        return reservation

    async def get_reservation(self, reservation_id, lock=False) -> Optional[Reservation]:
        if lock:
            await self._acquire("reservations", reservation_id)
        reservation = self.store.reservations.get(reservation_id)
        if lock and reservation is not None:
            self._snapshot(reservation)
        return reservation

    async def find_by_idempotency_key(self, user_id, key) -> Optional[Reservation]:
        for reservation in self.store.reservations.values():
            if reservation.user_id == user_id and reservation.idempotency_key == key:
                return reservation
        return None

    async def list_equipment_lines(self, reservation_id) -> List[ReservationEquipment]:
        return sorted(self.store.lines_for(reservation_id), key=lambda line: line.equipment_id)

    async def list_reservations(self, user_id=None, status=None) -> List[Reservation]:
        found = [
            r for r in self.store.reservations.values()
            if user_id in (None, r.user_id) and status in (None, r.status)
        ]
        return sorted(found, key=lambda r: (ensure_utc(r.start_time), r.id), reverse=True)

    async def list_expired_pending(self, cutoff) -> List[Reservation]:
        return [
            r for _, r in sorted(self.store.reservations.items())
            if r.status == ReservationStatus.PENDING.value
            and r.payment_status == PaymentStatus.PENDING.value
            and ensure_utc(r.created_at) < cutoff
        ]

    # Stock

    async def reserve_stock(self, equipment_id, quantity) -> bool:
        item = self.store.equipment.get(equipment_id)
        if item is None or item.available_stock < quantity:
            return False
        previous = item.available_stock
        item.available_stock = previous - quantity
        self._record(lambda: setattr(item, "available_stock", previous))
        return True

    async def release_stock(self, equipment_id, quantity) -> None:
        item = self.store.equipment.get(equipment_id)
        if item is None:
            return
        previous = item.available_stock
        item.available_stock = min(item.total_stock, previous + quantity)
        self._record(lambda: setattr(item, "available_stock", previous))

    # Aggregates and records

    async def adjust_user_profile(self, user_id, bookings_delta, spent_delta) -> None:
        profile = self.store.profiles.get(user_id)
        if profile is None:
            profile = UserProfile(
                id=self.store.next_id("user_profiles"),
                user_id=user_id,
                total_bookings=0,
                total_spent=Decimal("0.00"),
            )
            self.store.profiles[user_id] = profile
            self._record(lambda: self.store.profiles.pop(user_id, None))

        self._snapshot(profile)
        profile.total_bookings += bookings_delta
        profile.total_spent += Decimal(spent_delta)

    async def get_user_profile(self, user_id) -> Optional[UserProfile]:
        return self.store.profiles.get(user_id)

    async def add_audit_event(self, event) -> AuditEvent:
        event.id = self.store.next_id("audit_events")
        self.store.audit_events.append(event)
        self._record(lambda: self.store.audit_events.remove(event))
        return event

    async def add_maintenance_block(self, block) -> MaintenanceBlock:
        block.id = self.store.next_id("maintenance_blocks")
        self._insert(self.store.maintenance_blocks, block)
        return block

    async def list_maintenance_blocks(self, court_id=None, start=None, end=None) -> List[MaintenanceBlock]:
        found = [
            block for block in self.store.maintenance_blocks.values()
            if court_id in (None, block.court_id)
            and (start is None or ensure_utc(block.end_time) > start)
            and (end is None or ensure_utc(block.start_time) < end)
        ]
        return sorted(found, key=lambda block: (ensure_utc(block.start_time), block.id))

    async def get_maintenance_block(self, block_id) -> Optional[MaintenanceBlock]:
        return self.store.maintenance_blocks.get(block_id)

    async def delete_maintenance_block(self, block) -> None:
        self.store.maintenance_blocks.pop(block.id, None)
        self._record(lambda: self.store.maintenance_blocks.__setitem__(block.id, block))

    async def add_coach_unavailability(self, record) -> CoachUnavailability:
        record.id = self.store.next_id("coach_unavailability")
        self._insert(self.store.coach_unavailability, record)
        return record


class StubPaymentGateway:
    """Gateway with a fixed outcome that records every capture."""

    def __init__(self, succeed: bool = True):
        self.succeed = succeed
        self.captured: List[int] = []

    async def capture(self, reservation):
        self.captured.append(reservation.id)
        if not self.succeed:
            return False, None
        return True, f"PAY-TEST-{reservation.id}"


class RecordingNotifier(NotificationDispatcher):
    """Dispatcher that keeps events in memory instead of sending them."""

    def __init__(self):
        super().__init__(webhook_url="")
        self.events = []

    async def notify(self, event, reservation, **details):
        self.events.append((event, reservation.id, details))

    @property
    def names(self) -> List[str]:
        return [event for event, _, _ in self.events]
