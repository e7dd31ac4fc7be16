"""Dynamic pricing calculator.

Pure functions: the same inputs always give the same price. Callers are
responsible for filtering rules by facility and court type and for passing
the booking start in the facility's local time.
"""
from dataclasses import dataclass
from datetime import datetime, time as dt_time
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional, Sequence

from courtbook.models.pricing_rule import PricingRule, RuleKind

CENT = Decimal("0.01")

# Python's weekday() is Monday=0; rules use Sunday=0
SATURDAY = 6
SUNDAY = 0


@dataclass(frozen=True)
class EquipmentLine:
    quantity: int
    unit_price: Decimal


def to_money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


def day_of_week(moment: datetime) -> int:
    """Day of week with Sunday=0 ... Saturday=6."""
    return (moment.weekday() + 1) % 7


def _decimal(value, default) -> Decimal:
    return Decimal(str(value)) if value is not None else Decimal(default)


def _minutes(value: dt_time) -> int:
    return value.hour * 60 + value.minute


def _in_window(rule: PricingRule, moment: datetime) -> bool:
    if rule.start_time is None or rule.end_time is None:
        return False
    minute_of_day = moment.hour * 60 + moment.minute
    return _minutes(rule.start_time) <= minute_of_day < _minutes(rule.end_time)


def rule_matches(rule: PricingRule, booking_start: datetime) -> bool:
    """Time predicate for a single rule; scope is not checked here."""
    weekday = day_of_week(booking_start)

    if rule.kind == RuleKind.WEEKEND.value:
        if rule.day_of_week is None:
            return weekday in (SATURDAY, SUNDAY)
        return weekday == rule.day_of_week

    if rule.kind == RuleKind.PEAK_HOUR.value:
        return _in_window(rule, booking_start)

    if rule.kind == RuleKind.TIME_BASED.value:
        if rule.day_of_week is not None and weekday != rule.day_of_week:
            return False
        return _in_window(rule, booking_start)

    return False


def apply_pricing_rules(
    base_price: Decimal,
    rules: Sequence[PricingRule],
    booking_start: datetime,
) -> Decimal:
    """
    Apply every matching active rule cumulatively, in input order.

    Each match computes ``price * multiplier + surcharge``.
    """
    price = _decimal(base_price, 0)
    for rule in rules:
        if not rule.is_active:
            continue
        if not rule_matches(rule, booking_start):
            continue
        price = price * _decimal(rule.multiplier, 1) + _decimal(rule.surcharge, 0)
    return price


def equipment_cost(lines: Iterable[EquipmentLine]) -> Decimal:
    return sum((_decimal(line.unit_price, 0) * line.quantity for line in lines), Decimal(0))


def compute_total(
    base_price: Decimal,
    rules: Sequence[PricingRule],
    booking_start: datetime,
    equipment_lines: Sequence[EquipmentLine] = (),
    coach_price: Optional[Decimal] = None,
) -> Decimal:
    """
    Compute the total price of a booking.

    Args:
        base_price: Court base price
        rules: Scope-filtered pricing rules, in application order
        booking_start: Booking start in facility-local time
        equipment_lines: Quantity and unit price per rented item
        coach_price: Coach fee, if a coach was requested

    Returns:
        Total rounded to cents
    """
    total = apply_pricing_rules(base_price, rules, booking_start)
    total += equipment_cost(equipment_lines)
    if coach_price:
        total += _decimal(coach_price, 0)
    return to_money(total)
