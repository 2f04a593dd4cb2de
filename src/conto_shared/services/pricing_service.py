"""
Pricing policy resolver: per-guest cover and all-you-can-eat charges.

``resolve_pricing`` is a pure function of the restaurant configuration and the
clock. Callers pass one fixed ``now`` per bill computation so every
materialization inside a settlement sees the same prices.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime, time
from decimal import Decimal
from typing import Any

from pydantic import BaseModel, Field, ValidationError, field_validator

from conto_shared.constants import (
    CENT,
    DAY_KEYS,
    DEFAULT_DINNER_START,
    DEFAULT_LUNCH_START,
    ZERO,
    MealPeriod,
)
from conto_shared.logging_config import get_logger

logger = get_logger(__name__)


class MealCharge(BaseModel):
    enabled: bool = True
    price: Decimal = Field(default=ZERO, ge=0)


class DayCharges(BaseModel):
    lunch: MealCharge | None = None
    dinner: MealCharge | None = None
    max_orders: int | None = Field(default=None, ge=0)


class WeeklySchedule(BaseModel):
    """
    Weekly price grid stored on the restaurant as JSON.

    ``schedule`` is keyed by lowercase English day names.
    """

    enabled: bool = False
    default_price: Decimal = Field(default=ZERO, ge=0)
    default_max_orders: int = Field(default=0, ge=0)
    use_weekly_schedule: bool = False
    schedule: dict[str, DayCharges] = Field(default_factory=dict)

    @field_validator("schedule")
    @classmethod
    def validate_day_keys(cls, value: dict[str, DayCharges]) -> dict[str, DayCharges]:
        unknown = set(value) - set(DAY_KEYS)
        if unknown:
            raise ValueError(f"Días desconocidos en el horario: {sorted(unknown)}")
        return value


@dataclass(frozen=True)
class PricingPolicy:
    cover_enabled: bool = False
    cover_price: Decimal = ZERO
    ayce_enabled: bool = False
    ayce_price: Decimal = ZERO
    ayce_max_orders: int = 0
    meal_period: MealPeriod | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "cover_enabled": self.cover_enabled,
            "cover_price": f"{self.cover_price:.2f}",
            "ayce_enabled": self.ayce_enabled,
            "ayce_price": f"{self.ayce_price:.2f}",
            "ayce_max_orders": self.ayce_max_orders,
            "meal_period": self.meal_period.value if self.meal_period else None,
        }


def _money(value: Any) -> Decimal:
    return Decimal(str(value or 0)).quantize(CENT)


def _parse_hhmm(value: str | None, default: str) -> time:
    raw = value or default
    try:
        hours, minutes = (int(part) for part in raw.split(":"))
        return time(hours, minutes)
    except (ValueError, TypeError):
        logger.warning("Invalid meal start time %r, using %s", raw, default)
        hours, minutes = (int(part) for part in default.split(":"))
        return time(hours, minutes)


def get_meal_period(now: datetime, lunch_start: str, dinner_start: str) -> MealPeriod | None:
    """
    Lunch runs from lunch start until dinner start, dinner until midnight.

    Returns None before lunch service starts.
    """
    current = now.time().replace(second=0, microsecond=0)
    lunch = _parse_hhmm(lunch_start, DEFAULT_LUNCH_START)
    dinner = _parse_hhmm(dinner_start, DEFAULT_DINNER_START)

    if lunch <= current < dinner:
        return MealPeriod.LUNCH
    if current >= dinner:
        return MealPeriod.DINNER
    return None


def _load_schedule(raw: dict[str, Any] | None, label: str) -> WeeklySchedule | None:
    if not raw:
        return None
    try:
        return WeeklySchedule.model_validate(raw)
    except ValidationError as exc:
        logger.error("Invalid %s schedule, falling back to legacy pricing: %s", label, exc)
        return None


def _scheduled_meal(
    schedule: WeeklySchedule, now: datetime, meal_period: MealPeriod | None
) -> tuple[MealCharge | None, DayCharges | None]:
    if meal_period is None:
        return None, None
    day = schedule.schedule.get(DAY_KEYS[now.weekday()])
    if day is None:
        return None, None
    return getattr(day, meal_period.value), day


def resolve_cover(restaurant, now: datetime, meal_period: MealPeriod | None) -> tuple[bool, Decimal]:
    schedule = _load_schedule(getattr(restaurant, "weekly_cover", None), "cover")

    if schedule is None:
        legacy_price = _money(getattr(restaurant, "cover_charge_per_person", 0))
        return legacy_price > 0, legacy_price

    if not schedule.enabled:
        return False, ZERO

    if not schedule.use_weekly_schedule:
        return True, _money(schedule.default_price)

    meal, _ = _scheduled_meal(schedule, now, meal_period)
    if meal is None:
        return True, _money(schedule.default_price)
    return meal.enabled, _money(meal.price)


def resolve_ayce(
    restaurant, now: datetime, meal_period: MealPeriod | None
) -> tuple[bool, Decimal, int]:
    schedule = _load_schedule(getattr(restaurant, "weekly_ayce", None), "ayce")

    if schedule is None:
        legacy = getattr(restaurant, "all_you_can_eat", None)
        if not legacy or not isinstance(legacy, dict):
            return bool(legacy), ZERO, 0
        return (
            bool(legacy.get("enabled")),
            _money(legacy.get("price_per_person")),
            int(legacy.get("max_orders") or 0),
        )

    if not schedule.enabled:
        return False, ZERO, 0

    if not schedule.use_weekly_schedule:
        return True, _money(schedule.default_price), schedule.default_max_orders

    meal, day = _scheduled_meal(schedule, now, meal_period)
    if meal is None:
        return True, _money(schedule.default_price), schedule.default_max_orders

    max_orders = day.max_orders if day.max_orders is not None else schedule.default_max_orders
    return meal.enabled, _money(meal.price), max_orders


def resolve_pricing(restaurant, now: datetime) -> PricingPolicy:
    """
    Resolve the per-guest charges active at ``now``.

    Args:
        restaurant: Object exposing the restaurant pricing attributes
        now: Local wall-clock time of the restaurant

    Returns:
        PricingPolicy with the cover and all-you-can-eat settings
    """
    meal_period = get_meal_period(
        now,
        getattr(restaurant, "lunch_start", None) or DEFAULT_LUNCH_START,
        getattr(restaurant, "dinner_start", None) or DEFAULT_DINNER_START,
    )
    cover_enabled, cover_price = resolve_cover(restaurant, now, meal_period)
    ayce_enabled, ayce_price, ayce_max_orders = resolve_ayce(restaurant, now, meal_period)

    return PricingPolicy(
        cover_enabled=cover_enabled,
        cover_price=cover_price,
        ayce_enabled=ayce_enabled,
        ayce_price=ayce_price,
        ayce_max_orders=ayce_max_orders,
        meal_period=meal_period,
    )


def apply_session_overrides(policy: PricingPolicy, session) -> PricingPolicy:
    """A session can switch off charges chosen at opening time, never switch them on."""
    return replace(
        policy,
        cover_enabled=policy.cover_enabled and bool(session.cover_enabled),
        ayce_enabled=policy.ayce_enabled and bool(session.ayce_enabled),
    )
