"""Booking transaction manager.

Owns the reservation lifecycle: atomic check-then-reserve, payment capture,
administrative overrides and expiry of unpaid holds.
"""
import logging
import secrets
import string
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from courtbook.core.clock import Clock, ensure_utc, to_local, utcnow
from courtbook.core.config import settings
from courtbook.core.errors import (
    InvalidRequestError,
    InvalidTransitionError,
    NotAuthorizedError,
    NotFoundError,
    ReasonCode,
    TransientError,
    UnavailableError,
)
from courtbook.core.security import Principal, require_admin
from courtbook.models import (
    AuditEvent,
    Court,
    PaymentMethod,
    PaymentStatus,
    PricingRule,
    Reservation,
    ReservationEquipment,
    ReservationStatus,
)
from courtbook.models.reservation import ACTIVE_STATUSES, UNCOUNTED_STATUSES
from courtbook.repositories.base import BookingRepository
from courtbook.services.availability import AvailabilityChecker
from courtbook.services.notifications import (
    RESERVATION_CONFIRMED,
    RESERVATION_CREATED,
    RESERVATION_FAILED,
    RESERVATION_OVERRIDDEN,
    NotificationDispatcher,
    notification_dispatcher,
)
from courtbook.services.payments import PaymentGateway, payment_gateway
from courtbook.services.pricing import EquipmentLine, apply_pricing_rules, compute_total, equipment_cost, to_money

logger = logging.getLogger(__name__)

REFERENCE_ALPHABET = string.ascii_uppercase + string.digits
REFERENCE_SUFFIX_LENGTH = 6

# Statuses an administrator may force a reservation into
OVERRIDE_TARGETS = frozenset({
    ReservationStatus.CONFIRMED,
    ReservationStatus.CANCELLED,
    ReservationStatus.COMPLETED,
    ReservationStatus.NO_SHOW,
})


@dataclass
class BookingRequest:
    """A customer's request to reserve a court."""

    court_id: int
    start_time: datetime
    end_time: datetime
    payment_method: PaymentMethod = PaymentMethod.CREDIT_CARD
    coach_id: Optional[int] = None
    equipment: Sequence[Tuple[int, int]] = field(default_factory=list)  # (equipment_id, quantity)
    idempotency_key: Optional[str] = None


@dataclass
class BookingResult:
    reservation: Reservation
    equipment_lines: List[ReservationEquipment]
    replayed: bool = False


@dataclass
class PriceQuote:
    """Itemized price of a booking."""

    base_price: Decimal
    court_price: Decimal  # After pricing rules
    equipment_cost: Decimal
    coach_cost: Decimal
    total: Decimal


def priced_lines(equipment: Dict[int, int], unit_prices: Dict[int, Decimal]) -> List[EquipmentLine]:
    return [
        EquipmentLine(quantity=quantity, unit_price=unit_prices[equipment_id])
        for equipment_id, quantity in sorted(equipment.items())
    ]


def price_booking(
    court: Court,
    rules: Sequence[PricingRule],
    local_start: datetime,
    lines: Sequence[EquipmentLine],
    coach_price: Optional[Decimal],
) -> PriceQuote:
    """Price a court booking at a facility-local start time."""
    return PriceQuote(
        base_price=to_money(court.base_price),
        court_price=to_money(apply_pricing_rules(court.base_price, rules, local_start)),
        equipment_cost=to_money(equipment_cost(lines)),
        coach_cost=to_money(coach_price or 0),
        total=compute_total(court.base_price, rules, local_start, lines, coach_price),
    )


def _base36(value: int) -> str:
    digits = string.digits + string.ascii_uppercase
    if value == 0:
        return "0"
    encoded = ""
    while value:
        value, remainder = divmod(value, 36)
        encoded = digits[remainder] + encoded
    return encoded


def generate_booking_reference(now: datetime, prefix: Optional[str] = None) -> str:
    """Prefix + base-36 millisecond timestamp + random uppercase suffix."""
    prefix = settings.BOOKING_REFERENCE_PREFIX if prefix is None else prefix
    stamp = _base36(int(ensure_utc(now).timestamp() * 1000))
    suffix = "".join(secrets.choice(REFERENCE_ALPHABET) for _ in range(REFERENCE_SUFFIX_LENGTH))
    return f"{prefix}{stamp}{suffix}"


def merge_equipment_requests(equipment: Sequence[Tuple[int, int]]) -> Dict[int, int]:
    """
    Validate requested quantities and merge duplicate equipment ids.

    Raises:
        InvalidRequestError: If any quantity is not positive
    """
    merged: Dict[int, int] = {}
    for equipment_id, quantity in equipment:
        if quantity is None or quantity <= 0:
            raise InvalidRequestError(f"Quantity for equipment {equipment_id} must be positive")
        merged[equipment_id] = merged.get(equipment_id, 0) + quantity
    return merged


def clear_cancellation(reservation: Reservation) -> None:
    """Drop cancellation and refund details from a reservation returning to active."""
    reservation.cancellation_reason = None
    reservation.cancelled_at = None
    reservation.refund_amount = None
    reservation.refund_percentage = None
    if reservation.payment_status == PaymentStatus.REFUNDED.value:
        # The refund went out, so the restored booking is owed again
        reservation.payment_status = PaymentStatus.PENDING.value
        reservation.refunded_at = None


async def release_equipment_holds(repo: BookingRepository, reservation: Reservation) -> List[ReservationEquipment]:
    """Return every equipment quantity held by a reservation to stock."""
    lines = await repo.list_equipment_lines(reservation.id)
    for line in sorted(lines, key=lambda item: item.equipment_id):
        await repo.release_stock(line.equipment_id, line.quantity)
    return lines


class BookingService:
    """Creates reservations and drives them through their lifecycle."""

    def __init__(
        self,
        repo: BookingRepository,
        gateway: Optional[PaymentGateway] = None,
        notifier: Optional[NotificationDispatcher] = None,
        clock: Clock = utcnow,
    ):
        self.repo = repo
        self.checker = AvailabilityChecker(repo)
        self.gateway = gateway or payment_gateway
        self.notifier = notifier or notification_dispatcher
        self.clock = clock

    async def create_reservation(self, request: BookingRequest, principal: Principal) -> BookingResult:
        """
        Atomically check availability, price and persist a reservation.

        Args:
            request: Booking request
            principal: Authenticated caller; the reservation belongs to them

        Returns:
            The new reservation, or the earlier one when the idempotency key was seen before

        Raises:
            InvalidRequestError: Malformed interval or quantities
            UnavailableError: Any availability conflict, or a lost stock race
        """
        start = ensure_utc(request.start_time)
        end = ensure_utc(request.end_time)
        if end <= start:
            raise InvalidRequestError("end_time must be after start_time")
        equipment = merge_equipment_requests(request.equipment)
        now = self.clock()

        try:
            result = await self._reserve(request, principal, start, end, equipment, now)
        except TransientError:
            if not request.idempotency_key:
                raise
            # A concurrent request with the same key may have won the unique constraint
            async with self.repo.unit_of_work():
                result = await self._replay(principal.user_id, request.idempotency_key)
            if result is None:
                raise
            logger.info(
                f"Replaying reservation {result.reservation.booking_reference} "
                f"after losing the race for idempotency key {request.idempotency_key}"
            )
            return result

        if result.replayed:
            return result

        reservation = result.reservation
        logger.info(
            f"Created reservation {reservation.booking_reference} for user {principal.user_id} "
            f"on court {reservation.court_id} ({reservation.status}, total {reservation.total_price})"
        )
        await self.notifier.notify(RESERVATION_CREATED, reservation)
        return result

    async def _replay(self, user_id: int, idempotency_key: str) -> Optional[BookingResult]:
        existing = await self.repo.find_by_idempotency_key(user_id, idempotency_key)
        if existing is None:
            return None
        lines = await self.repo.list_equipment_lines(existing.id)
        return BookingResult(existing, lines, replayed=True)

    async def _reserve(
        self,
        request: BookingRequest,
        principal: Principal,
        start: datetime,
        end: datetime,
        equipment: Dict[int, int],
        now: datetime,
    ) -> BookingResult:
        async with self.repo.unit_of_work():
            # Serializes retries naming the same court; other races fail on the unique key
            await self.repo.lock_court(request.court_id)
            if request.idempotency_key:
                replayed = await self._replay(principal.user_id, request.idempotency_key)
                if replayed is not None:
                    logger.info(
                        f"Replaying reservation {replayed.reservation.booking_reference} "
                        f"for idempotency key {request.idempotency_key}"
                    )
                    return replayed

            if start < now:
                raise InvalidRequestError("Cannot book a time in the past")

            availability = await self.checker.check_availability(
                request.court_id, start, end, request.coach_id, equipment
            )
            if not availability.available:
                logger.info(
                    f"Booking rejected for user {principal.user_id} on court {request.court_id}: "
                    f"{availability.reason.value}"
                )
            availability.raise_if_unavailable()

            court = availability.court
            coach = availability.coach
            facility = await self.repo.get_facility(court.facility_id)
            if facility is None:
                raise NotFoundError(f"Facility {court.facility_id} not found")
            rules = await self.repo.list_pricing_rules(facility.id, court.court_type)

            unit_prices = {equipment_id: item.price_per_unit for equipment_id, item in availability.equipment.items()}
            # Rules are written against the facility's wall clock
            quote = price_booking(
                court,
                rules,
                to_local(start, facility.timezone),
                priced_lines(equipment, unit_prices),
                coach.price if coach is not None else None,
            )

            method = PaymentMethod(request.payment_method)
            status = ReservationStatus.CONFIRMED if method == PaymentMethod.CASH else ReservationStatus.PENDING

            reservation = Reservation(
                booking_reference=generate_booking_reference(now),
                user_id=principal.user_id,
                facility_id=court.facility_id,
                court_id=court.id,
                coach_id=coach.id if coach is not None else None,
                start_time=start,
                end_time=end,
                status=status.value,
                payment_status=PaymentStatus.PENDING.value,
                payment_method=method.value,
                idempotency_key=request.idempotency_key,
                base_price=quote.base_price,
                court_price=quote.court_price,
                equipment_cost=quote.equipment_cost,
                coach_cost=quote.coach_cost,
                total_price=quote.total,
                created_at=now,
            )
            lines = [
                ReservationEquipment(
                    equipment_id=equipment_id,
                    quantity=quantity,
                    price_per_unit=unit_prices[equipment_id],
                )
                for equipment_id, quantity in sorted(equipment.items())
            ]
            await self.repo.add_reservation(reservation, lines)

            for equipment_id, quantity in sorted(equipment.items()):
                if not await self.repo.reserve_stock(equipment_id, quantity):
                    raise UnavailableError(
                        ReasonCode.INSUFFICIENT_STOCK,
                        f"Equipment {equipment_id} ran out of stock, please retry",
                    )

            await self.repo.adjust_user_profile(principal.user_id, 1, quote.total)

        return BookingResult(reservation, lines)

    async def quote_price(self, request: BookingRequest) -> PriceQuote:
        """
        Price a prospective booking without reserving anything.

        Uses the same rule scoping and facility-local pricing as
        ``create_reservation`` but does not check availability.

        Args:
            request: Booking request; payment method and idempotency key are ignored

        Returns:
            Itemized price

        Raises:
            InvalidRequestError: Malformed interval or quantities
            NotFoundError: Unknown court, coach or equipment
        """
        start = ensure_utc(request.start_time)
        end = ensure_utc(request.end_time)
        if end <= start:
            raise InvalidRequestError("end_time must be after start_time")
        equipment = merge_equipment_requests(request.equipment)

        court = await self.repo.get_court(request.court_id)
        if court is None:
            raise NotFoundError(f"Court {request.court_id} not found")
        facility = await self.repo.get_facility(court.facility_id)
        if facility is None:
            raise NotFoundError(f"Facility {court.facility_id} not found")

        coach_price = None
        if request.coach_id is not None:
            coach = await self.repo.get_coach(request.coach_id)
            if coach is None:
                raise NotFoundError(f"Coach {request.coach_id} not found")
            coach_price = coach.price

        items = await self.repo.get_equipment(sorted(equipment))
        for equipment_id in sorted(equipment):
            if equipment_id not in items:
                raise NotFoundError(f"Equipment {equipment_id} not found")
        unit_prices = {equipment_id: item.price_per_unit for equipment_id, item in items.items()}

        rules = await self.repo.list_pricing_rules(facility.id, court.court_type)
        return price_booking(
            court,
            rules,
            to_local(start, facility.timezone),
            priced_lines(equipment, unit_prices),
            coach_price,
        )

    async def get_reservation(self, reservation_id: int, principal: Principal) -> BookingResult:
        """
        Load a reservation the caller is allowed to see.

        Raises:
            NotFoundError: If it does not exist
            NotAuthorizedError: If the caller is neither the owner nor an admin
        """
        reservation = await self.repo.get_reservation(reservation_id)
        if reservation is None:
            raise NotFoundError(f"Reservation {reservation_id} not found")
        if not principal.can_act_for(reservation.user_id):
            raise NotAuthorizedError("You can only view your own reservations")
        lines = await self.repo.list_equipment_lines(reservation.id)
        return BookingResult(reservation, lines)

    async def list_reservations(
        self,
        principal: Principal,
        user_id: Optional[int] = None,
        status: Optional[ReservationStatus] = None,
    ) -> List[BookingResult]:
        """
        List reservations, latest start first.

        Customers see only their own reservations. Admins see everyone's
        unless ``user_id`` narrows the list.

        Args:
            principal: Authenticated caller
            user_id: Owner to filter by
            status: Status to filter by

        Raises:
            NotAuthorizedError: If a customer asks for another user's reservations
        """
        if not principal.is_admin:
            if user_id is not None and user_id != principal.user_id:
                raise NotAuthorizedError("You can only list your own reservations")
            user_id = principal.user_id

        status_value = ReservationStatus(status).value if status is not None else None
        reservations = await self.repo.list_reservations(user_id, status_value)
        return [
            BookingResult(reservation, await self.repo.list_equipment_lines(reservation.id))
            for reservation in reservations
        ]

    async def capture_payment(self, reservation_id: int, principal: Principal) -> BookingResult:
        """
        Capture payment for a pending reservation.

        A declined payment fails the reservation and releases everything it held.

        Args:
            reservation_id: Reservation ID
            principal: Owner or admin

        Returns:
            The reservation, now confirmed or failed
        """
        async with self.repo.unit_of_work():
            reservation = await self.repo.get_reservation(reservation_id, lock=True)
            if reservation is None:
                raise NotFoundError(f"Reservation {reservation_id} not found")
            if not principal.can_act_for(reservation.user_id):
                raise NotAuthorizedError("You can only pay for your own reservations")
            if (
                reservation.status != ReservationStatus.PENDING.value
                or reservation.payment_status != PaymentStatus.PENDING.value
            ):
                raise InvalidTransitionError(
                    f"Reservation {reservation.booking_reference} is not awaiting payment"
                )

            success, payment_reference = await self.gateway.capture(reservation)
            if success:
                reservation.status = ReservationStatus.CONFIRMED.value
                reservation.payment_status = PaymentStatus.PAID.value
                reservation.payment_reference = payment_reference
                lines = await self.repo.list_equipment_lines(reservation.id)
            else:
                lines = await self._fail_reservation(
                    reservation, "payment_failed", "Payment declined", actor_id=principal.user_id
                )

        if success:
            await self.notifier.notify(RESERVATION_CONFIRMED, reservation, payment_reference=payment_reference)
        else:
            await self.notifier.notify(RESERVATION_FAILED, reservation, reason="payment declined")
        return BookingResult(reservation, lines)

    async def _fail_reservation(
        self,
        reservation: Reservation,
        action: str,
        reason: str,
        actor_id: Optional[int] = None,
    ) -> List[ReservationEquipment]:
        """Move a locked pending reservation to failed and undo what it holds."""
        lines = await release_equipment_holds(self.repo, reservation)
        await self.repo.adjust_user_profile(reservation.user_id, -1, -Decimal(reservation.total_price))

        previous = reservation.status
        reservation.status = ReservationStatus.FAILED.value
        reservation.payment_status = PaymentStatus.FAILED.value

        await self.repo.add_audit_event(
            AuditEvent(
                actor_id=actor_id,
                action=action,
                reservation_id=reservation.id,
                from_status=previous,
                to_status=reservation.status,
                reason=reason,
                created_at=self.clock(),
            )
        )
        return lines

    async def override_status(
        self,
        reservation_id: int,
        target: ReservationStatus,
        reason: str,
        principal: Principal,
    ) -> BookingResult:
        """
        Force a reservation into a status, bypassing the normal state machine.

        Resources follow the new status: leaving the active set releases
        equipment, re-entering it re-checks the court and coach and holds the
        equipment again. The profile totals follow the counted statuses.

        Args:
            reservation_id: Reservation ID
            target: New status
            reason: Why the override was made, kept in the audit trail
            principal: Must be an admin

        Returns:
            The updated reservation
        """
        require_admin(principal)
        target = ReservationStatus(target)
        if target not in OVERRIDE_TARGETS:
            raise InvalidTransitionError(f"Cannot override a reservation to '{target.value}'")
        if not reason or not reason.strip():
            raise InvalidRequestError("An override reason is required")

        now = self.clock()
        async with self.repo.unit_of_work():
            reservation = await self.repo.get_reservation(reservation_id, lock=True)
            if reservation is None:
                raise NotFoundError(f"Reservation {reservation_id} not found")

            previous = reservation.status
            if previous == target.value:
                raise InvalidTransitionError(f"Reservation is already {previous}")

            was_active = previous in ACTIVE_STATUSES
            becomes_active = target.value in ACTIVE_STATUSES
            if was_active and not becomes_active:
                await release_equipment_holds(self.repo, reservation)
            elif becomes_active and not was_active:
                await self._rehold(reservation)
                clear_cancellation(reservation)

            was_counted = previous not in UNCOUNTED_STATUSES
            becomes_counted = target.value not in UNCOUNTED_STATUSES
            if was_counted != becomes_counted:
                sign = 1 if becomes_counted else -1
                await self.repo.adjust_user_profile(
                    reservation.user_id, sign, sign * Decimal(reservation.total_price)
                )

            reservation.status = target.value
            if target == ReservationStatus.CANCELLED:
                reservation.cancelled_at = now
                reservation.cancellation_reason = reason

            await self.repo.add_audit_event(
                AuditEvent(
                    actor_id=principal.user_id,
                    action="status_override",
                    reservation_id=reservation.id,
                    from_status=previous,
                    to_status=target.value,
                    reason=reason,
                    created_at=now,
                )
            )
            lines = await self.repo.list_equipment_lines(reservation.id)

        logger.warning(
            f"Admin {principal.user_id} overrode reservation {reservation.booking_reference} "
            f"from {previous} to {target.value}: {reason}"
        )
        await self.notifier.notify(RESERVATION_OVERRIDDEN, reservation, previous_status=previous, reason=reason)
        return BookingResult(reservation, lines)

    async def _rehold(self, reservation: Reservation) -> None:
        """Re-acquire the court, coach and equipment for a reservation returning to active."""
        availability = await self.checker.check_availability(
            reservation.court_id,
            ensure_utc(reservation.start_time),
            ensure_utc(reservation.end_time),
            reservation.coach_id,
            exclude_reservation_id=reservation.id,
        )
        availability.raise_if_unavailable()

        lines = await self.repo.list_equipment_lines(reservation.id)
        await self.repo.lock_equipment([line.equipment_id for line in lines])
        for line in sorted(lines, key=lambda item: item.equipment_id):
            if not await self.repo.reserve_stock(line.equipment_id, line.quantity):
                raise UnavailableError(
                    ReasonCode.INSUFFICIENT_STOCK,
                    f"Equipment {line.equipment_id} no longer has {line.quantity} in stock",
                )

    async def expire_pending_holds(self, hold_minutes: Optional[int] = None) -> int:
        """
        Fail reservations whose payment was never captured.

        Each reservation is expired in its own unit of work so one failure
        does not keep the others holding their resources.

        Args:
            hold_minutes: Grace period after creation; defaults to PENDING_HOLD_MINUTES

        Returns:
            Number of reservations expired
        """
        hold_minutes = settings.PENDING_HOLD_MINUTES if hold_minutes is None else hold_minutes
        cutoff = self.clock() - timedelta(minutes=hold_minutes)

        async with self.repo.unit_of_work():
            candidates = [reservation.id for reservation in await self.repo.list_expired_pending(cutoff)]

        expired = []
        for reservation_id in candidates:
            async with self.repo.unit_of_work():
                reservation = await self.repo.get_reservation(reservation_id, lock=True)
                # Paid or cancelled since it was listed
                if (
                    reservation is None
                    or reservation.status != ReservationStatus.PENDING.value
                    or reservation.payment_status != PaymentStatus.PENDING.value
                ):
                    continue
                await self._fail_reservation(reservation, "hold_expired", f"Unpaid after {hold_minutes} minutes")
            expired.append(reservation)

        for reservation in expired:
            logger.info(f"Expired unpaid reservation {reservation.booking_reference}")
            await self.notifier.notify(RESERVATION_FAILED, reservation, reason="hold expired")

        return len(expired)
