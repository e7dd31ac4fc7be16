"""Background scheduler for expiring unpaid reservation holds."""
import logging
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from courtbook.core.config import settings
from courtbook.core.database import AsyncSessionLocal
from courtbook.repositories.sql import SqlAlchemyBookingRepository
from courtbook.services.booking import BookingService

logger = logging.getLogger(__name__)


class HoldExpiryScheduler:
    """Periodically fails reservations whose payment was never captured."""

    def __init__(self, interval_minutes: Optional[int] = None):
        """Initialize the scheduler."""
        self.scheduler = AsyncIOScheduler()
        self.interval_minutes = interval_minutes or settings.HOLD_EXPIRY_CHECK_MINUTES
        self.running = False

    async def start(self):
        """Start the scheduler."""
        if self.running:
            logger.warning("Scheduler is already running")
            return

        logger.info("Starting hold expiry scheduler")

        self.scheduler.add_job(
            self._expire_holds,
            IntervalTrigger(minutes=self.interval_minutes),
            id="hold_expiry_job",
            name="Expire unpaid reservation holds",
            replace_existing=True,
            max_instances=1,
        )

        self.scheduler.start()
        self.running = True
        logger.info(f"Hold expiry scheduler started (every {self.interval_minutes} min)")

    async def stop(self):
        """Stop the scheduler."""
        if not self.running:
            return

        logger.info("Stopping hold expiry scheduler")
        self.scheduler.shutdown(wait=False)
        self.running = False
        logger.info("Hold expiry scheduler stopped")

    async def _expire_holds(self):
        logger.debug("Running hold expiry check")

        async with AsyncSessionLocal() as db:
            try:
                service = BookingService(SqlAlchemyBookingRepository(db))
                expired = await service.expire_pending_holds()
                if expired:
                    logger.info(f"Expired {expired} unpaid reservation(s)")
            except Exception as e:
                logger.error(f"Error in hold expiry check: {e}", exc_info=True)


# Singleton instance
hold_expiry_scheduler = HoldExpiryScheduler()
