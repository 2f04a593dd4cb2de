"""
Application constants and enums.

Every status literal stored in the database goes through one of these enums so
comparisons never depend on the casing a client happened to send.
"""

from decimal import Decimal
from enum import Enum


class SessionStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


class OrderStatus(str, Enum):
    OPEN = "open"
    PENDING = "pending"
    PREPARING = "preparing"
    READY = "ready"
    SERVED = "served"
    COMPLETED = "completed"
    PAID = "paid"
    CANCELLED = "cancelled"


class OrderItemStatus(str, Enum):
    PENDING = "pending"
    READY = "ready"
    SERVED = "served"
    PAID = "paid"
    CANCELLED = "cancelled"


class ChargeKind(str, Enum):
    """Per-guest charges synthesized from the session head count."""

    COVER = "cover"
    AYCE = "ayce"


class MealPeriod(str, Enum):
    LUNCH = "lunch"
    DINNER = "dinner"


class Roles(str, Enum):
    OWNER = "owner"
    ADMIN = "admin"
    CASHIER = "cashier"
    WAITER = "waiter"
    CHEF = "chef"

    @classmethod
    def all_values(cls) -> set:
        return {member.value for member in cls}


class SessionAction(str, Enum):
    ACTIVATE = "activate"
    SETTLE = "settle"
    CLOSE = "close"
    FORCE_CLOSE = "force_close"
    UPDATE_CUSTOMER_COUNT = "update_customer_count"


SETTLED_ORDER_STATUSES = {
    OrderStatus.PAID,
    OrderStatus.CANCELLED,
}

# Items in these states still owe money and can be selected for payment.
UNSETTLED_ITEM_STATUSES = {
    OrderItemStatus.PENDING,
    OrderItemStatus.READY,
    OrderItemStatus.SERVED,
}

CHARGE_LABELS = {
    ChargeKind.COVER: "Coperto",
    ChargeKind.AYCE: "All You Can Eat",
}

DAY_KEYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")

DEFAULT_LUNCH_START = "12:00"
DEFAULT_DINNER_START = "19:00"

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

MAX_CUSTOMER_COUNT = 200
