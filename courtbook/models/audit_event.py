"""Audit event model."""
from sqlalchemy import Column, Integer, String, ForeignKey, DateTime

from courtbook.core.database import Base


class AuditEvent(Base):
    """Record of an administrative or system action on a reservation."""

    __tablename__ = "audit_events"

    id = Column(Integer, primary_key=True, index=True)
    actor_id = Column(Integer, nullable=True)  # Null for scheduled jobs
    action = Column(String, nullable=False)    # status_override, hold_expired, payment_failed
    reservation_id = Column(Integer, ForeignKey("reservations.id"), nullable=True, index=True)
    from_status = Column(String, nullable=True)
    to_status = Column(String, nullable=True)
    reason = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
