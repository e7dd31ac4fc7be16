"""Booking persistence port and adapters."""
from courtbook.repositories.base import BookingRepository
from courtbook.repositories.sql import SqlAlchemyBookingRepository

__all__ = ["BookingRepository", "SqlAlchemyBookingRepository"]
