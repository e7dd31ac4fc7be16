"""Persistence port used by the booking engine."""
from abc import ABC, abstractmethod
from datetime import date, datetime
from decimal import Decimal
from typing import AsyncContextManager, Dict, List, Optional, Sequence

from courtbook.models import (
    AuditEvent,
    Coach,
    CoachUnavailability,
    Court,
    EquipmentItem,
    Facility,
    MaintenanceBlock,
    PricingRule,
    Reservation,
    ReservationEquipment,
    UserProfile,
)


class BookingRepository(ABC):
    """
    Typed storage operations the booking services depend on.

    Every write happens inside ``unit_of_work()``: the block commits when it
    exits normally and rolls back completely when it raises. The ``lock_*``
    methods take a row lock that is held until the unit of work ends, so
    callers lock court, then coach, then equipment (ascending id) before
    reading anything that decides availability.

    All datetimes passed in are aware UTC values.
    """

    @abstractmethod
    def unit_of_work(self) -> AsyncContextManager[None]:
        """Open an atomic unit of work."""

    # Catalog

    @abstractmethod
    async def lock_court(self, court_id: int) -> Optional[Court]:
        ...

    @abstractmethod
    async def get_court(self, court_id: int) -> Optional[Court]:
        ...

    @abstractmethod
    async def get_facility(self, facility_id: int) -> Optional[Facility]:
        ...

    @abstractmethod
    async def lock_coach(self, coach_id: int) -> Optional[Coach]:
        ...

    @abstractmethod
    async def get_coach(self, coach_id: int) -> Optional[Coach]:
        ...

    @abstractmethod
    async def lock_equipment(self, equipment_ids: Sequence[int]) -> Dict[int, EquipmentItem]:
        """
        Lock equipment rows in ascending id order.

        Args:
            equipment_ids: Requested equipment ids

        Returns:
            Found items keyed by id; missing ids are absent from the mapping
        """

    @abstractmethod
    async def get_equipment(self, equipment_ids: Sequence[int]) -> Dict[int, EquipmentItem]:
        """Read equipment rows without locking them; missing ids are absent from the mapping."""

    @abstractmethod
    async def list_active_courts(
        self, facility_id: Optional[int] = None, court_type: Optional[str] = None
    ) -> List[Court]:
        """Active courts ordered by id, optionally narrowed to a facility and court type."""

    @abstractmethod
    async def list_pricing_rules(self, facility_id: int, court_type: str) -> List[PricingRule]:
        """
        Active rules scoped to the facility (or global) and court type (or all).

        Returns:
            Rules ordered by id, which is the order they are applied in
        """

    # Conflict queries

    @abstractmethod
    async def find_court_reservations(
        self,
        court_id: int,
        start: datetime,
        end: datetime,
        exclude_id: Optional[int] = None,
    ) -> List[Reservation]:
        """Active reservations on the court overlapping ``[start, end)``."""

    @abstractmethod
    async def find_coach_reservations(
        self,
        coach_id: int,
        start: datetime,
        end: datetime,
        exclude_id: Optional[int] = None,
    ) -> List[Reservation]:
        """Active reservations with the coach, on any court, overlapping ``[start, end)``."""

    @abstractmethod
    async def find_maintenance_blocks(
        self, court_id: int, start: datetime, end: datetime
    ) -> List[MaintenanceBlock]:
        ...

    @abstractmethod
    async def find_coach_unavailability(
        self, coach_id: int, from_date: Optional[date] = None, to_date: Optional[date] = None
    ) -> List[CoachUnavailability]:
        """Unavailability records dated within ``[from_date, to_date]`` (facility-local dates); None leaves a side open."""

    @abstractmethod
    async def committed_equipment_quantity(
        self,
        equipment_id: int,
        start: datetime,
        end: datetime,
        exclude_id: Optional[int] = None,
    ) -> int:
        """Quantity held by active reservations overlapping ``[start, end)``."""

    # Reservations

    @abstractmethod
    async def add_reservation(
        self, reservation: Reservation, lines: Sequence[ReservationEquipment]
    ) -> Reservation:
        """Persist a reservation and its equipment lines; ids are assigned on return."""

    @abstractmethod
    async def get_reservation(self, reservation_id: int, lock: bool = False) -> Optional[Reservation]:
        ...

    @abstractmethod
    async def find_by_idempotency_key(self, user_id: int, key: str) -> Optional[Reservation]:
        ...

    @abstractmethod
    async def list_equipment_lines(self, reservation_id: int) -> List[ReservationEquipment]:
        ...

    @abstractmethod
    async def list_reservations(
        self, user_id: Optional[int] = None, status: Optional[str] = None
    ) -> List[Reservation]:
        """Reservations, latest start first; ``user_id=None`` lists every user's."""

    @abstractmethod
    async def list_expired_pending(self, cutoff: datetime) -> List[Reservation]:
        """Reservations awaiting payment that were created before ``cutoff``."""

    # Stock

    @abstractmethod
    async def reserve_stock(self, equipment_id: int, quantity: int) -> bool:
        """
        Decrement available stock only if enough remains.

        Returns:
            False when the conditional decrement matched no row
        """

    @abstractmethod
    async def release_stock(self, equipment_id: int, quantity: int) -> None:
        """Return quantity to available stock, never above total stock."""

    # Aggregates and records

    @abstractmethod
    async def adjust_user_profile(
        self, user_id: int, bookings_delta: int, spent_delta: Decimal
    ) -> None:
        """Apply deltas to the user's totals, creating the profile on first use."""

    @abstractmethod
    async def get_user_profile(self, user_id: int) -> Optional[UserProfile]:
        ...

    @abstractmethod
    async def add_audit_event(self, event: AuditEvent) -> AuditEvent:
        ...

    @abstractmethod
    async def add_maintenance_block(self, block: MaintenanceBlock) -> MaintenanceBlock:
        ...

    @abstractmethod
    async def list_maintenance_blocks(
        self,
        court_id: Optional[int] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[MaintenanceBlock]:
        """Blocks ordered by start, optionally narrowed to a court and to those overlapping ``[start, end)``."""

    @abstractmethod
    async def get_maintenance_block(self, block_id: int) -> Optional[MaintenanceBlock]:
        ...

    @abstractmethod
    async def delete_maintenance_block(self, block: MaintenanceBlock) -> None:
        ...

    @abstractmethod
    async def add_coach_unavailability(self, record: CoachUnavailability) -> CoachUnavailability:
        ...
