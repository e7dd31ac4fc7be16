"""Database models."""
from courtbook.models.facility import Facility
from courtbook.models.court import Court
from courtbook.models.coach import Coach, CoachUnavailability
from courtbook.models.equipment import EquipmentItem
from courtbook.models.pricing_rule import PricingRule, RuleKind
from courtbook.models.maintenance_block import MaintenanceBlock
from courtbook.models.reservation import (
    Reservation,
    ReservationEquipment,
    ReservationStatus,
    PaymentStatus,
    PaymentMethod,
)
from courtbook.models.user_profile import UserProfile
from courtbook.models.audit_event import AuditEvent

__all__ = [
    "Facility",
    "Court",
    "Coach",
    "CoachUnavailability",
    "EquipmentItem",
    "PricingRule",
    "RuleKind",
    "MaintenanceBlock",
    "Reservation",
    "ReservationEquipment",
    "ReservationStatus",
    "PaymentStatus",
    "PaymentMethod",
    "UserProfile",
    "AuditEvent",
]
