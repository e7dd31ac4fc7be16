"""Simulated payment gateway."""
import logging
import random
import secrets
from typing import Optional, Protocol, Tuple

from courtbook.core.config import settings
from courtbook.models import Reservation

logger = logging.getLogger(__name__)


class PaymentGateway(Protocol):
    async def capture(self, reservation: Reservation) -> Tuple[bool, Optional[str]]:
        """Capture the reservation total; returns success and a payment reference."""
        ...


class SimulatedPaymentGateway:
    """Stand-in for a card processor with a configurable success rate."""

    def __init__(self, success_rate: Optional[float] = None, rng: Optional[random.Random] = None):
        self.success_rate = settings.PAYMENT_SUCCESS_RATE if success_rate is None else success_rate
        self.rng = rng or random.Random()

    async def capture(self, reservation: Reservation) -> Tuple[bool, Optional[str]]:
        """
        Simulate capturing payment for a reservation.

        Args:
            reservation: Reservation being paid

        Returns:
            Tuple of (success, payment reference or None)
        """
        success = self.rng.random() < self.success_rate
        if not success:
            logger.warning(
                f"Payment declined for reservation {reservation.booking_reference} "
                f"({reservation.payment_method}, {reservation.total_price})"
            )
            return False, None

        reference = f"PAY-{secrets.token_hex(6).upper()}"
        logger.info(f"Payment {reference} captured for reservation {reservation.booking_reference}")
        return True, reference


# Singleton instance
payment_gateway = SimulatedPaymentGateway()
