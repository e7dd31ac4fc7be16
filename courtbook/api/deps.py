"""Shared endpoint dependencies."""
from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from courtbook.core.database import get_db
from courtbook.repositories.base import BookingRepository
from courtbook.repositories.sql import SqlAlchemyBookingRepository
from courtbook.services.availability import AvailabilityChecker
from courtbook.services.booking import BookingService
from courtbook.services.cancellation import CancellationService
from courtbook.services.maintenance import MaintenanceService
from courtbook.services.suggestions import SuggestionService
from courtbook.services.notifications import NotificationDispatcher, notification_dispatcher
from courtbook.services.payments import PaymentGateway, payment_gateway


def get_repository(db: AsyncSession = Depends(get_db)) -> BookingRepository:
    return SqlAlchemyBookingRepository(db)


def get_payment_gateway() -> PaymentGateway:
    return payment_gateway


def get_notifier() -> NotificationDispatcher:
    return notification_dispatcher


def get_booking_service(
    repo: BookingRepository = Depends(get_repository),
    gateway: PaymentGateway = Depends(get_payment_gateway),
    notifier: NotificationDispatcher = Depends(get_notifier),
) -> BookingService:
    return BookingService(repo, gateway=gateway, notifier=notifier)


def get_cancellation_service(
    repo: BookingRepository = Depends(get_repository),
    notifier: NotificationDispatcher = Depends(get_notifier),
) -> CancellationService:
    return CancellationService(repo, notifier=notifier)


def get_maintenance_service(repo: BookingRepository = Depends(get_repository)) -> MaintenanceService:
    return MaintenanceService(repo)


def get_availability_checker(repo: BookingRepository = Depends(get_repository)) -> AvailabilityChecker:
    return AvailabilityChecker(repo)


def get_suggestion_service(repo: BookingRepository = Depends(get_repository)) -> SuggestionService:
    return SuggestionService(repo)
