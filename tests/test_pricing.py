"""Pricing policy resolution: legacy flat prices and weekly schedules."""

from dataclasses import replace
from datetime import datetime
from decimal import Decimal
from types import SimpleNamespace

import pytest

from conto_shared.constants import MealPeriod
from conto_shared.services.pricing_service import (
    PricingPolicy,
    apply_session_overrides,
    get_meal_period,
    resolve_pricing,
)

SATURDAY_DINNER = datetime(2026, 3, 14, 21, 30)
SATURDAY_LUNCH = datetime(2026, 3, 14, 13, 0)
SATURDAY_MORNING = datetime(2026, 3, 14, 10, 0)
MONDAY_DINNER = datetime(2026, 3, 16, 20, 0)


def _restaurant(**overrides):
    values = {
        "cover_charge_per_person": Decimal("0.00"),
        "weekly_cover": None,
        "all_you_can_eat": None,
        "weekly_ayce": None,
        "lunch_start": "12:00",
        "dinner_start": "19:00",
    }
    values.update(overrides)
    return SimpleNamespace(**values)


WEEKLY_COVER = {
    "enabled": True,
    "default_price": "2.00",
    "use_weekly_schedule": True,
    "schedule": {
        "saturday": {
            "lunch": {"enabled": True, "price": "2.50"},
            "dinner": {"enabled": True, "price": "3.00"},
        },
        "sunday": {"dinner": {"enabled": False, "price": "3.00"}},
    },
}

WEEKLY_AYCE = {
    "enabled": True,
    "default_price": "22.00",
    "default_max_orders": 5,
    "use_weekly_schedule": True,
    "schedule": {
        "saturday": {
            "lunch": {"enabled": True, "price": "19.90"},
            "dinner": {"enabled": True, "price": "27.90"},
            "max_orders": 8,
        },
        "friday": {"dinner": {"enabled": True, "price": "25.90"}},
    },
}


class TestMealPeriod:
    @pytest.mark.parametrize(
        "hour,minute,expected",
        [
            (11, 59, None),
            (12, 0, MealPeriod.LUNCH),
            (18, 59, MealPeriod.LUNCH),
            (19, 0, MealPeriod.DINNER),
            (23, 59, MealPeriod.DINNER),
        ],
    )
    def test_boundaries(self, hour, minute, expected):
        now = datetime(2026, 3, 14, hour, minute)
        assert get_meal_period(now, "12:00", "19:00") == expected

    def test_invalid_start_time_uses_default(self):
        assert get_meal_period(datetime(2026, 3, 14, 19, 30), "12:00", "late") == MealPeriod.DINNER


class TestLegacyPricing:
    def test_flat_cover_price(self):
        policy = resolve_pricing(_restaurant(cover_charge_per_person=Decimal("2.5")), SATURDAY_DINNER)
        assert policy.cover_enabled is True
        assert policy.cover_price == Decimal("2.50")
        assert policy.ayce_enabled is False

    def test_zero_cover_price_disables_cover(self):
        policy = resolve_pricing(_restaurant(), SATURDAY_DINNER)
        assert policy.cover_enabled is False
        assert policy.cover_price == Decimal("0.00")

    def test_legacy_ayce(self):
        restaurant = _restaurant(
            all_you_can_eat={"enabled": True, "price_per_person": 24.9, "max_orders": 6}
        )
        policy = resolve_pricing(restaurant, SATURDAY_DINNER)
        assert policy.ayce_enabled is True
        assert policy.ayce_price == Decimal("24.90")
        assert policy.ayce_max_orders == 6


class TestWeeklySchedules:
    def test_dinner_price_for_the_day(self):
        policy = resolve_pricing(_restaurant(weekly_cover=WEEKLY_COVER), SATURDAY_DINNER)
        assert policy.meal_period == MealPeriod.DINNER
        assert policy.cover_price == Decimal("3.00")

    def test_lunch_price_for_the_day(self):
        policy = resolve_pricing(_restaurant(weekly_cover=WEEKLY_COVER), SATURDAY_LUNCH)
        assert policy.meal_period == MealPeriod.LUNCH
        assert policy.cover_price == Decimal("2.50")

    def test_outside_meal_window_uses_default_price(self):
        policy = resolve_pricing(_restaurant(weekly_cover=WEEKLY_COVER), SATURDAY_MORNING)
        assert policy.meal_period is None
        assert policy.cover_enabled is True
        assert policy.cover_price == Decimal("2.00")

    def test_unscheduled_day_uses_default_price(self):
        policy = resolve_pricing(_restaurant(weekly_cover=WEEKLY_COVER), MONDAY_DINNER)
        assert policy.cover_price == Decimal("2.00")

    def test_disabled_meal_slot(self):
        sunday_dinner = datetime(2026, 3, 15, 20, 0)
        policy = resolve_pricing(_restaurant(weekly_cover=WEEKLY_COVER), sunday_dinner)
        assert policy.cover_enabled is False

    def test_disabled_schedule_wins_over_legacy_price(self):
        restaurant = _restaurant(
            cover_charge_per_person=Decimal("2.00"),
            weekly_cover={**WEEKLY_COVER, "enabled": False},
        )
        policy = resolve_pricing(restaurant, SATURDAY_DINNER)
        assert policy.cover_enabled is False
        assert policy.cover_price == Decimal("0.00")

    def test_schedule_not_in_use_applies_default(self):
        restaurant = _restaurant(weekly_cover={**WEEKLY_COVER, "use_weekly_schedule": False})
        assert resolve_pricing(restaurant, SATURDAY_DINNER).cover_price == Decimal("2.00")

    def test_ayce_day_max_orders(self):
        policy = resolve_pricing(_restaurant(weekly_ayce=WEEKLY_AYCE), SATURDAY_DINNER)
        assert policy.ayce_enabled is True
        assert policy.ayce_price == Decimal("27.90")
        assert policy.ayce_max_orders == 8

    def test_ayce_falls_back_to_default_max_orders(self):
        friday_dinner = datetime(2026, 3, 13, 20, 0)
        policy = resolve_pricing(_restaurant(weekly_ayce=WEEKLY_AYCE), friday_dinner)
        assert policy.ayce_price == Decimal("25.90")
        assert policy.ayce_max_orders == 5

    def test_invalid_schedule_falls_back_to_legacy(self):
        broken = {**WEEKLY_COVER, "schedule": {"caturday": {}}}
        restaurant = _restaurant(cover_charge_per_person=Decimal("1.50"), weekly_cover=broken)
        policy = resolve_pricing(restaurant, SATURDAY_DINNER)
        assert policy.cover_price == Decimal("1.50")

    def test_same_clock_same_policy(self):
        restaurant = _restaurant(weekly_cover=WEEKLY_COVER, weekly_ayce=WEEKLY_AYCE)
        assert resolve_pricing(restaurant, SATURDAY_DINNER) == resolve_pricing(
            restaurant, SATURDAY_DINNER
        )


class TestSessionOverrides:
    POLICY = PricingPolicy(
        cover_enabled=True,
        cover_price=Decimal("2.00"),
        ayce_enabled=True,
        ayce_price=Decimal("25.00"),
    )

    def test_session_can_disable_charges(self):
        session = SimpleNamespace(cover_enabled=False, ayce_enabled=True)
        policy = apply_session_overrides(self.POLICY, session)
        assert policy.cover_enabled is False
        assert policy.ayce_enabled is True

    def test_session_cannot_enable_disabled_charge(self):
        session = SimpleNamespace(cover_enabled=True, ayce_enabled=True)
        policy = apply_session_overrides(replace(self.POLICY, ayce_enabled=False), session)
        assert policy.ayce_enabled is False
