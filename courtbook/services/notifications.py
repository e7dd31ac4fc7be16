"""Booking outcome notifications.

Every outcome is logged. When a webhook URL is configured the event is also
POSTed as JSON; delivery failures are logged and never reach the caller.
"""
import asyncio
import logging
from typing import Any, Dict, Optional

import httpx

from courtbook.core.clock import ensure_utc
from courtbook.core.config import settings
from courtbook.models import Reservation

logger = logging.getLogger(__name__)

RESERVATION_CREATED = "reservation.created"
RESERVATION_CONFIRMED = "reservation.confirmed"
RESERVATION_CANCELLED = "reservation.cancelled"
RESERVATION_FAILED = "reservation.failed"
RESERVATION_OVERRIDDEN = "reservation.overridden"


class NotificationDispatcher:
    """Publishes reservation events to the log and an optional webhook."""

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        timeout: Optional[float] = None,
        max_retries: Optional[int] = None,
        retry_backoff: float = 1.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the dispatcher.

        Args:
            webhook_url: Endpoint receiving JSON events; None disables delivery
            timeout: Per-request timeout in seconds
            max_retries: Delivery attempts before giving up
            retry_backoff: Base delay in seconds, doubled after each failed attempt
            transport: Custom httpx transport
        """
        self.webhook_url = webhook_url if webhook_url is not None else settings.NOTIFICATION_WEBHOOK_URL
        self.timeout = timeout or settings.NOTIFICATION_TIMEOUT_SECONDS
        self.max_retries = max_retries or settings.MAX_RETRIES
        self.retry_backoff = retry_backoff
        self.transport = transport

    def _build_event(self, event: str, reservation: Reservation, details: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "event": event,
            "reservation_id": reservation.id,
            "booking_reference": reservation.booking_reference,
            "user_id": reservation.user_id,
            "court_id": reservation.court_id,
            "coach_id": reservation.coach_id,
            "start_time": ensure_utc(reservation.start_time).isoformat(),
            "end_time": ensure_utc(reservation.end_time).isoformat(),
            "status": reservation.status,
            "payment_status": reservation.payment_status,
            "total_price": str(reservation.total_price),
            **details,
        }

    async def notify(self, event: str, reservation: Reservation, **details: Any) -> None:
        """
        Publish a reservation event.

        Args:
            event: Event name, e.g. ``reservation.created``
            reservation: Reservation the event is about
            **details: Extra JSON-serializable fields
        """
        payload = self._build_event(event, reservation, details)
        logger.info(
            f"Notification {event}: reservation {reservation.booking_reference} "
            f"for user {reservation.user_id} is {reservation.status}"
        )

        if not self.webhook_url:
            return

        try:
            await self._deliver(payload)
        except httpx.HTTPError as e:
            logger.error(f"Failed to deliver {event} for {reservation.booking_reference}: {e}")

    async def _deliver(self, payload: Dict[str, Any]) -> None:
        """
        POST an event with retries and exponential backoff.

        Raises:
            httpx.HTTPError: If delivery fails after retries
        """
        async with httpx.AsyncClient(transport=self.transport) as client:
            for attempt in range(self.max_retries):
                try:
                    response = await client.post(self.webhook_url, json=payload, timeout=self.timeout)
                    response.raise_for_status()
                    return

                except httpx.HTTPError as e:
                    logger.warning(
                        f"Webhook delivery failed (attempt {attempt + 1}/{self.max_retries}): {e}"
                    )

                    if attempt == self.max_retries - 1:
                        raise

                    # Exponential backoff
                    await asyncio.sleep(self.retry_backoff * 2 ** attempt)


# Singleton instance
notification_dispatcher = NotificationDispatcher()
