"""Cancellation and refund engine."""
import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from courtbook.core.clock import Clock, ensure_utc, utcnow
from courtbook.core.errors import AlreadyCancelledError, NotAuthorizedError, NotFoundError
from courtbook.core.security import Principal
from courtbook.models import PaymentStatus, ReservationStatus
from courtbook.repositories.base import BookingRepository
from courtbook.services.booking import release_equipment_holds
from courtbook.services.notifications import RESERVATION_CANCELLED, NotificationDispatcher, notification_dispatcher
from courtbook.services.pricing import to_money

logger = logging.getLogger(__name__)

# (minimum hours before start, refund percentage), checked top to bottom
REFUND_TIERS = (
    (24, 100),
    (2, 50),
)


def refund_percentage(hours_until_start: float) -> int:
    """Refund percentage for a cancellation made this many hours before the start."""
    for min_hours, percentage in REFUND_TIERS:
        if hours_until_start >= min_hours:
            return percentage
    return 0


def hours_until(start: datetime, now: datetime) -> float:
    return (ensure_utc(start) - ensure_utc(now)).total_seconds() / 3600


@dataclass
class CancellationResult:
    reservation_id: int
    status: str
    refund_amount: Decimal
    refund_percentage: int


class CancellationService:
    """Cancels reservations and computes refunds by lead time."""

    def __init__(
        self,
        repo: BookingRepository,
        notifier: Optional[NotificationDispatcher] = None,
        clock: Clock = utcnow,
    ):
        self.repo = repo
        self.notifier = notifier or notification_dispatcher
        self.clock = clock

    async def cancel(
        self,
        reservation_id: int,
        principal: Principal,
        reason: Optional[str] = None,
    ) -> CancellationResult:
        """
        Cancel a reservation and refund according to the lead-time tiers.

        The status change, equipment release, refund bookkeeping and profile
        update commit together or not at all.

        Args:
            reservation_id: Reservation ID
            principal: Owner of the reservation or an admin
            reason: Optional cancellation reason

        Returns:
            Refund amount and percentage with the new status

        Raises:
            NotFoundError: If the reservation does not exist
            NotAuthorizedError: If the caller is neither owner nor admin
            AlreadyCancelledError: If the reservation is already in a terminal state
        """
        now = self.clock()

        async with self.repo.unit_of_work():
            reservation = await self.repo.get_reservation(reservation_id, lock=True)
            if reservation is None:
                raise NotFoundError(f"Reservation {reservation_id} not found")
            if not principal.can_act_for(reservation.user_id):
                raise NotAuthorizedError("You can only cancel your own reservations")
            if reservation.is_terminal:
                raise AlreadyCancelledError(
                    f"Reservation {reservation.booking_reference} is already {reservation.status}"
                )

            total = Decimal(reservation.total_price)
            percentage = refund_percentage(hours_until(reservation.start_time, now))
            refund_amount = to_money(total * percentage / 100)

            await release_equipment_holds(self.repo, reservation)

            reservation.status = ReservationStatus.CANCELLED.value
            reservation.cancelled_at = now
            reservation.cancellation_reason = reason
            reservation.refund_percentage = percentage
            reservation.refund_amount = refund_amount
            if reservation.payment_status == PaymentStatus.PAID.value:
                reservation.payment_status = PaymentStatus.REFUNDED.value
                reservation.refunded_at = now

            # Gross spend excludes the whole booking, whatever was refunded
            await self.repo.adjust_user_profile(reservation.user_id, -1, -total)

        logger.info(
            f"Cancelled reservation {reservation.booking_reference} by user {principal.user_id}: "
            f"refund {refund_amount} ({percentage}%)"
        )
        await self.notifier.notify(
            RESERVATION_CANCELLED,
            reservation,
            refund_amount=str(refund_amount),
            refund_percentage=percentage,
        )

        return CancellationResult(
            reservation_id=reservation.id,
            status=reservation.status,
            refund_amount=refund_amount,
            refund_percentage=percentage,
        )
