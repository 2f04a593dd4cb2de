"""
SQLAlchemy ORM models shared by the conto services.
"""

from __future__ import annotations

import json
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator

from .constants import (
    DEFAULT_DINNER_START,
    DEFAULT_LUNCH_START,
    OrderItemStatus,
    OrderStatus,
    SessionStatus,
)


class JSONBType(TypeDecorator):
    """
    Custom type that provides JSONB support for PostgreSQL
    and falls back to TEXT with JSON serialization for SQLite.

    This allows tests to run with SQLite while production uses PostgreSQL JSONB.
    """

    impl = Text
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(JSONB())
        return dialect.type_descriptor(Text())

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if dialect.name == "postgresql":
            return value
        return json.dumps(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if dialect.name == "postgresql":
            return value
        if isinstance(value, str):
            return json.loads(value)
        return value

    @property
    def python_type(self):
        return object


JSONB_TYPE = JSONBType()

_OPEN_SESSION = text("status = 'open'")


class Base(DeclarativeBase):
    """Declarative base for all ORM models."""


class Restaurant(Base):
    """
    Restaurant-wide pricing configuration consumed by the pricing resolver.

    ``weekly_cover`` / ``weekly_ayce`` hold the weekly schedules as JSON; when
    they are empty the legacy flat fields apply.
    """

    __tablename__ = "conto_restaurants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    cover_charge_per_person: Mapped[Decimal] = mapped_column(
        Numeric(10, 2), nullable=False, default=Decimal("0.00")
    )
    weekly_cover: Mapped[dict[str, Any] | None] = mapped_column(JSONB_TYPE, nullable=True)
    all_you_can_eat: Mapped[dict[str, Any] | None] = mapped_column(
        JSONB_TYPE, nullable=True
    )  # {"enabled", "price_per_person", "max_orders"}
    weekly_ayce: Mapped[dict[str, Any] | None] = mapped_column(JSONB_TYPE, nullable=True)
    lunch_start: Mapped[str] = mapped_column(String(5), nullable=False, default=DEFAULT_LUNCH_START)
    dinner_start: Mapped[str] = mapped_column(
        String(5), nullable=False, default=DEFAULT_DINNER_START
    )
    timezone: Mapped[str] = mapped_column(String(64), nullable=False, default="Europe/Rome")
    allow_waiter_payments: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )

    tables: Mapped[list[Table]] = relationship("Table", back_populates="restaurant")
    dishes: Mapped[list[Dish]] = relationship("Dish", back_populates="restaurant")


class Room(Base):
    __tablename__ = "conto_rooms"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    restaurant_id: Mapped[int] = mapped_column(ForeignKey("conto_restaurants.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(80), nullable=False)

    tables: Mapped[list[Table]] = relationship("Table", back_populates="room")


class Table(Base):
    """Physical table. Never deleted while a session references it."""

    __tablename__ = "conto_tables"
    __table_args__ = (
        UniqueConstraint("restaurant_id", "number", name="uq_table_restaurant_number"),
        Index("ix_table_room", "room_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    restaurant_id: Mapped[int] = mapped_column(ForeignKey("conto_restaurants.id"), nullable=False)
    room_id: Mapped[int | None] = mapped_column(ForeignKey("conto_rooms.id"), nullable=True)
    number: Mapped[str] = mapped_column(String(32), nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False, default=4)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )

    restaurant: Mapped[Restaurant] = relationship("Restaurant", back_populates="tables")
    room: Mapped[Room | None] = relationship("Room", back_populates="tables")
    sessions: Mapped[list[TableSession]] = relationship("TableSession", back_populates="table")


class Dish(Base):
    """Read-only catalog entry as far as billing is concerned."""

    __tablename__ = "conto_dishes"
    __table_args__ = (Index("ix_dish_restaurant", "restaurant_id"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    restaurant_id: Mapped[int] = mapped_column(ForeignKey("conto_restaurants.id"), nullable=False)
    name: Mapped[str] = mapped_column(String(120), nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    is_ayce: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False
    )  # Included in the all-you-can-eat flat charge
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    restaurant: Mapped[Restaurant] = relationship("Restaurant", back_populates="dishes")


class TableSession(Base):
    """
    One continuous occupancy of a table.

    At most one row per table may be open; the partial unique index enforces it
    at the database level so two terminals racing to seat the same table cannot
    both succeed.
    """

    __tablename__ = "conto_table_sessions"
    __table_args__ = (
        Index("ix_table_session_status", "status"),
        Index("ix_table_session_opened_at", "opened_at"),
        Index(
            "uq_table_session_open_table",
            "table_id",
            unique=True,
            postgresql_where=_OPEN_SESSION,
            sqlite_where=_OPEN_SESSION,
        ),
        CheckConstraint("customer_count >= 0", name="ck_table_session_customer_count"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    restaurant_id: Mapped[int] = mapped_column(ForeignKey("conto_restaurants.id"), nullable=False)
    table_id: Mapped[int] = mapped_column(ForeignKey("conto_tables.id"), nullable=False)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=SessionStatus.OPEN.value
    )
    opened_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    customer_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    cover_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    ayce_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    closed_without_payment: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    close_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    restaurant: Mapped[Restaurant] = relationship("Restaurant")
    table: Mapped[Table] = relationship("Table", back_populates="sessions")
    orders: Mapped[list[Order]] = relationship(
        "Order", back_populates="session", order_by="Order.id"
    )
    settled_charges: Mapped[list[SettledCharge]] = relationship(
        "SettledCharge", back_populates="session", order_by="SettledCharge.id"
    )
    events: Mapped[list[SessionEvent]] = relationship(
        "SessionEvent", back_populates="session", order_by="SessionEvent.id"
    )


class Order(Base):
    __tablename__ = "conto_orders"
    __table_args__ = (
        Index("ix_order_session_id", "table_session_id"),
        Index("ix_order_status", "status"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    table_session_id: Mapped[int] = mapped_column(
        ForeignKey("conto_table_sessions.id"), nullable=False
    )
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=OrderStatus.OPEN.value)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)

    session: Mapped[TableSession] = relationship("TableSession", back_populates="orders")
    items: Mapped[list[OrderItem]] = relationship(
        "OrderItem", back_populates="order", order_by="OrderItem.id"
    )


class OrderItem(Base):
    """
    A line on an order.

    ``price`` is the unit price captured when the item was ordered; catalog
    price changes never touch it.
    """

    __tablename__ = "conto_order_items"
    __table_args__ = (
        Index("ix_order_item_order_id", "order_id"),
        Index("ix_order_item_status", "status"),
        CheckConstraint("quantity >= 1", name="ck_order_item_quantity"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    order_id: Mapped[int] = mapped_column(ForeignKey("conto_orders.id"), nullable=False)
    dish_id: Mapped[int] = mapped_column(ForeignKey("conto_dishes.id"), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    note: Mapped[str | None] = mapped_column(Text, nullable=True)
    course_number: Mapped[int | None] = mapped_column(Integer, nullable=True)
    status: Mapped[str] = mapped_column(
        String(16), nullable=False, default=OrderItemStatus.PENDING.value
    )
    split_from_id: Mapped[int | None] = mapped_column(
        ForeignKey("conto_order_items.id"), nullable=True
    )  # Set on the PAID clone created by a partial payment
    paid_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )

    order: Mapped[Order] = relationship("Order", back_populates="items")
    dish: Mapped[Dish] = relationship("Dish")


class SettledCharge(Base):
    """
    Durable record of a paid per-guest charge line (cover / all-you-can-eat).

    Those lines have no order item behind them, so this table is what keeps
    them out of the next bill, across reloads and across terminals.
    """

    __tablename__ = "conto_settled_charges"
    __table_args__ = (
        UniqueConstraint("session_id", "line_id", name="uq_settled_charge_line"),
        Index("ix_settled_charge_session", "session_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    session_id: Mapped[int] = mapped_column(ForeignKey("conto_table_sessions.id"), nullable=False)
    line_id: Mapped[str] = mapped_column(String(64), nullable=False)
    kind: Mapped[str] = mapped_column(String(16), nullable=False)
    guest_number: Mapped[int] = mapped_column(Integer, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    employee_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    settled_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    session: Mapped[TableSession] = relationship("TableSession", back_populates="settled_charges")


class SessionEvent(Base):
    """Audit trail for money-relevant session operations."""

    __tablename__ = "conto_session_events"
    __table_args__ = (
        Index("ix_session_event_session", "session_id"),
        Index("ix_session_event_action", "action"),
        Index("ix_session_event_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    session_id: Mapped[int] = mapped_column(ForeignKey("conto_table_sessions.id"), nullable=False)
    action: Mapped[str] = mapped_column(String(32), nullable=False)
    employee_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    role: Mapped[str | None] = mapped_column(String(32), nullable=True)
    amount: Mapped[Decimal | None] = mapped_column(Numeric(10, 2), nullable=True)
    details: Mapped[dict[str, Any] | None] = mapped_column(JSONB_TYPE, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)

    session: Mapped[TableSession] = relationship("TableSession", back_populates="events")


class RealtimeEvent(Base):
    """
    Change notifications picked up by the realtime transport.

    Consumers treat them as "something changed, refetch", never as an ordered
    event stream.
    """

    __tablename__ = "conto_realtime_events"
    __table_args__ = (
        Index("ix_realtime_event_type", "event_type"),
        Index("ix_realtime_event_created_at", "created_at"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    event_type: Mapped[str] = mapped_column(String(64), nullable=False)
    payload: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, server_default=func.now(), nullable=False
    )
