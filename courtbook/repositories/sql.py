"""SQLAlchemy implementation of the booking repository."""
import logging
from contextlib import asynccontextmanager
from datetime import date, datetime
from decimal import Decimal
from typing import AsyncIterator, Dict, List, Optional, Sequence

from sqlalchemy import case, func, or_, select, text, update
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from courtbook.core.config import settings
from courtbook.core.errors import TransientError
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
    ReservationStatus,
    PaymentStatus,
    UserProfile,
)
from courtbook.models.reservation import ACTIVE_STATUSES
from courtbook.repositories.base import BookingRepository

logger = logging.getLogger(__name__)


class SqlAlchemyBookingRepository(BookingRepository):
    """Booking repository backed by an async SQLAlchemy session."""

    def __init__(self, db: AsyncSession, lock_timeout_ms: Optional[int] = None):
        """
        Initialize the repository.

        Args:
            db: Database session; one repository per request
            lock_timeout_ms: Row-lock wait bound applied on PostgreSQL
        """
        self.db = db
        self.lock_timeout_ms = lock_timeout_ms if lock_timeout_ms is not None else settings.LOCK_TIMEOUT_MS

    @asynccontextmanager
    async def unit_of_work(self) -> AsyncIterator[None]:
        try:
            await self._apply_lock_timeout()
            yield
            await self.db.commit()
        except (OperationalError, DBAPIError) as e:
            # Lock timeouts, deadlocks, serialization failures and unique-key races
            await self.db.rollback()
            logger.error(f"Unit of work failed in storage: {e}", exc_info=True)
            raise TransientError(f"Storage failure: {e.__class__.__name__}") from e
        except BaseException:
            await self.db.rollback()
            raise

    async def _apply_lock_timeout(self):
        if self.db.get_bind().dialect.name != "postgresql":
            return
        await self.db.execute(text(f"SET LOCAL lock_timeout = {int(self.lock_timeout_ms)}"))

    async def _one(self, stmt):
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def _all(self, stmt) -> list:
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    # Catalog

    async def lock_court(self, court_id: int) -> Optional[Court]:
        return await self._one(
            select(Court)
            .where(Court.id == court_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )

    async def get_court(self, court_id: int) -> Optional[Court]:
        return await self._one(select(Court).where(Court.id == court_id))

    async def get_facility(self, facility_id: int) -> Optional[Facility]:
        return await self._one(select(Facility).where(Facility.id == facility_id))

    async def lock_coach(self, coach_id: int) -> Optional[Coach]:
        return await self._one(
            select(Coach)
            .where(Coach.id == coach_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )

    async def get_coach(self, coach_id: int) -> Optional[Coach]:
        return await self._one(select(Coach).where(Coach.id == coach_id))

    async def lock_equipment(self, equipment_ids: Sequence[int]) -> Dict[int, EquipmentItem]:
        if not equipment_ids:
            return {}
        items = await self._all(
            select(EquipmentItem)
            .where(EquipmentItem.id.in_(sorted(set(equipment_ids))))
            .order_by(EquipmentItem.id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return {item.id: item for item in items}

    async def get_equipment(self, equipment_ids: Sequence[int]) -> Dict[int, EquipmentItem]:
        if not equipment_ids:
            return {}
        items = await self._all(select(EquipmentItem).where(EquipmentItem.id.in_(sorted(set(equipment_ids)))))
        return {item.id: item for item in items}

    async def list_active_courts(
        self, facility_id: Optional[int] = None, court_type: Optional[str] = None
    ) -> List[Court]:
        stmt = select(Court).where(Court.is_active == True)
        if facility_id is not None:
            stmt = stmt.where(Court.facility_id == facility_id)
        if court_type is not None:
            stmt = stmt.where(Court.court_type == court_type)
        return await self._all(stmt.order_by(Court.id))

    async def list_pricing_rules(self, facility_id: int, court_type: str) -> List[PricingRule]:
        return await self._all(
            select(PricingRule)
            .where(
                PricingRule.is_active == True,
                or_(PricingRule.facility_id == facility_id, PricingRule.facility_id.is_(None)),
                or_(PricingRule.court_type == court_type, PricingRule.court_type.is_(None)),
            )
            .order_by(PricingRule.id)
        )

    # Conflict queries

    def _active_overlapping(self, start: datetime, end: datetime, exclude_id: Optional[int]):
        conditions = [
            Reservation.status.in_(ACTIVE_STATUSES),
            Reservation.start_time < end,
            Reservation.end_time > start,
        ]
        if exclude_id is not None:
            conditions.append(Reservation.id != exclude_id)
        return conditions

    async def find_court_reservations(
        self,
        court_id: int,
        start: datetime,
        end: datetime,
        exclude_id: Optional[int] = None,
    ) -> List[Reservation]:
        return await self._all(
            select(Reservation)
            .where(Reservation.court_id == court_id, *self._active_overlapping(start, end, exclude_id))
            .order_by(Reservation.start_time)
        )

    async def find_coach_reservations(
        self,
        coach_id: int,
        start: datetime,
        end: datetime,
        exclude_id: Optional[int] = None,
    ) -> List[Reservation]:
        return await self._all(
            select(Reservation)
            .where(Reservation.coach_id == coach_id, *self._active_overlapping(start, end, exclude_id))
            .order_by(Reservation.start_time)
        )

    async def find_maintenance_blocks(
        self, court_id: int, start: datetime, end: datetime
    ) -> List[MaintenanceBlock]:
        return await self._all(
            select(MaintenanceBlock)
            .where(
                MaintenanceBlock.court_id == court_id,
                MaintenanceBlock.start_time < end,
                MaintenanceBlock.end_time > start,
            )
            .order_by(MaintenanceBlock.start_time)
        )

    async def find_coach_unavailability(
        self, coach_id: int, from_date: Optional[date] = None, to_date: Optional[date] = None
    ) -> List[CoachUnavailability]:
        stmt = select(CoachUnavailability).where(CoachUnavailability.coach_id == coach_id)
        if from_date is not None:
            stmt = stmt.where(CoachUnavailability.date >= from_date)
        if to_date is not None:
            stmt = stmt.where(CoachUnavailability.date <= to_date)
        return await self._all(stmt.order_by(CoachUnavailability.date, CoachUnavailability.id))

    async def committed_equipment_quantity(
        self,
        equipment_id: int,
        start: datetime,
        end: datetime,
        exclude_id: Optional[int] = None,
    ) -> int:
        result = await self.db.execute(
            select(func.coalesce(func.sum(ReservationEquipment.quantity), 0))
            .join(Reservation, Reservation.id == ReservationEquipment.reservation_id)
            .where(
                ReservationEquipment.equipment_id == equipment_id,
                *self._active_overlapping(start, end, exclude_id),
            )
        )
        return int(result.scalar_one())

    # Reservations

    async def add_reservation(
        self, reservation: Reservation, lines: Sequence[ReservationEquipment]
    ) -> Reservation:
        self.db.add(reservation)
        await self.db.flush()

        for line in lines:
            line.reservation_id = reservation.id
        self.db.add_all(list(lines))
        await self.db.flush()
        return reservation

    async def get_reservation(self, reservation_id: int, lock: bool = False) -> Optional[Reservation]:
        stmt = select(Reservation).where(Reservation.id == reservation_id)
        if lock:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return await self._one(stmt)

    async def find_by_idempotency_key(self, user_id: int, key: str) -> Optional[Reservation]:
        return await self._one(
            select(Reservation).where(
                Reservation.user_id == user_id,
                Reservation.idempotency_key == key,
            )
        )

    async def list_equipment_lines(self, reservation_id: int) -> List[ReservationEquipment]:
        return await self._all(
            select(ReservationEquipment)
            .where(ReservationEquipment.reservation_id == reservation_id)
            .order_by(ReservationEquipment.equipment_id)
        )

    async def list_reservations(
        self, user_id: Optional[int] = None, status: Optional[str] = None
    ) -> List[Reservation]:
        stmt = select(Reservation)
        if user_id is not None:
            stmt = stmt.where(Reservation.user_id == user_id)
        if status is not None:
            stmt = stmt.where(Reservation.status == status)
        return await self._all(stmt.order_by(Reservation.start_time.desc(), Reservation.id.desc()))

    async def list_expired_pending(self, cutoff: datetime) -> List[Reservation]:
        return await self._all(
            select(Reservation)
            .where(
                Reservation.status == ReservationStatus.PENDING.value,
                Reservation.payment_status == PaymentStatus.PENDING.value,
                Reservation.created_at < cutoff,
            )
            .order_by(Reservation.id)
        )

    # Stock

    async def reserve_stock(self, equipment_id: int, quantity: int) -> bool:
        result = await self.db.execute(
            update(EquipmentItem)
            .where(
                EquipmentItem.id == equipment_id,
                EquipmentItem.available_stock >= quantity,
            )
            .values(available_stock=EquipmentItem.available_stock - quantity)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def release_stock(self, equipment_id: int, quantity: int) -> None:
        restored = EquipmentItem.available_stock + quantity
        await self.db.execute(
            update(EquipmentItem)
            .where(EquipmentItem.id == equipment_id)
            .values(
                available_stock=case(
                    (restored > EquipmentItem.total_stock, EquipmentItem.total_stock),
                    else_=restored,
                )
            )
            .execution_options(synchronize_session=False)
        )

    # Aggregates and records

    async def adjust_user_profile(
        self, user_id: int, bookings_delta: int, spent_delta: Decimal
    ) -> None:
        result = await self.db.execute(
            update(UserProfile)
            .where(UserProfile.user_id == user_id)
            .values(
                total_bookings=UserProfile.total_bookings + bookings_delta,
                total_spent=UserProfile.total_spent + spent_delta,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            return

        self.db.add(
            UserProfile(
                user_id=user_id,
                total_bookings=bookings_delta,
                total_spent=spent_delta,
            )
        )
        await self.db.flush()

    async def get_user_profile(self, user_id: int) -> Optional[UserProfile]:
        return await self._one(
            select(UserProfile)
            .where(UserProfile.user_id == user_id)
            .execution_options(populate_existing=True)
        )

    async def add_audit_event(self, event: AuditEvent) -> AuditEvent:
        self.db.add(event)
        await self.db.flush()
        return event

    async def add_maintenance_block(self, block: MaintenanceBlock) -> MaintenanceBlock:
        self.db.add(block)
        await self.db.flush()
        return block

    async def list_maintenance_blocks(
        self,
        court_id: Optional[int] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[MaintenanceBlock]:
        stmt = select(MaintenanceBlock)
        if court_id is not None:
            stmt = stmt.where(MaintenanceBlock.court_id == court_id)
        if start is not None:
            stmt = stmt.where(MaintenanceBlock.end_time > start)
        if end is not None:
            stmt = stmt.where(MaintenanceBlock.start_time < end)
        return await self._all(stmt.order_by(MaintenanceBlock.start_time, MaintenanceBlock.id))

    async def get_maintenance_block(self, block_id: int) -> Optional[MaintenanceBlock]:
        return await self._one(select(MaintenanceBlock).where(MaintenanceBlock.id == block_id))

    async def delete_maintenance_block(self, block: MaintenanceBlock) -> None:
        await self.db.delete(block)
        await self.db.flush()

    async def add_coach_unavailability(self, record: CoachUnavailability) -> CoachUnavailability:
        self.db.add(record)
        await self.db.flush()
        return record
