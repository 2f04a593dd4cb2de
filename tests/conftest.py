"""Pytest configuration and fixtures."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest

from conto_shared.config import AppConfig
from conto_shared.constants import OrderItemStatus, OrderStatus
from conto_shared.db import dispose_engine, get_session
from conto_shared.models import Dish, Order, OrderItem, Restaurant, Table
from conto_shared.permissions import build_actor
from conto_shared.services.session_service import activate_table
from conto_employees.app import create_app

# Saturday 14 March 2026, 21:30 in Rome: dinner service
NOW = datetime(2026, 3, 14, 20, 30, tzinfo=timezone.utc)


@pytest.fixture
def config() -> AppConfig:
    return AppConfig(
        app_name="conto-tests",
        db_host="localhost",
        db_port=5432,
        db_user="conto",
        db_password="conto",
        db_name="conto",
        db_sslmode="disable",
        database_url="sqlite://",
        secret_key="test-secret",
        log_level="WARNING",
        restaurant_name="Trattoria Test",
        restaurant_slug="trattoria-test",
        currency="EUR",
        currency_symbol="€",
        debug_mode=True,
    )


@pytest.fixture
def app(config):
    """Application bound to a fresh in-memory SQLite database."""
    app = create_app(config)
    app.config["TESTING"] = True
    yield app
    dispose_engine()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def restaurant_settings() -> dict:
    """Override in a test module to change the seeded restaurant."""
    return {}


@pytest.fixture
def seed(app, restaurant_settings) -> dict:
    """Restaurant with two tables and a small menu."""
    settings = {
        "name": "Trattoria Test",
        "cover_charge_per_person": Decimal("2.00"),
        "timezone": "Europe/Rome",
        "allow_waiter_payments": False,
        **restaurant_settings,
    }
    with get_session() as db_session:
        restaurant = Restaurant(**settings)
        db_session.add(restaurant)
        db_session.flush()

        tables = [
            Table(restaurant_id=restaurant.id, number="1", capacity=4),
            Table(restaurant_id=restaurant.id, number="2", capacity=2),
        ]
        dishes = {
            "pizza": Dish(restaurant_id=restaurant.id, name="Pizza", price=Decimal("8.00")),
            "water": Dish(restaurant_id=restaurant.id, name="Acqua", price=Decimal("1.50")),
            "sushi": Dish(
                restaurant_id=restaurant.id, name="Nigiri", price=Decimal("5.00"), is_ayce=True
            ),
        }
        db_session.add_all(tables + list(dishes.values()))
        db_session.flush()

        return {
            "restaurant_id": restaurant.id,
            "table_ids": [table.id for table in tables],
            "dishes": {key: (dish.id, dish.price) for key, dish in dishes.items()},
        }


@pytest.fixture
def owner():
    return build_actor("owner", employee_id=1)


@pytest.fixture
def cashier():
    return build_actor("cashier", employee_id=2)


@pytest.fixture
def waiter():
    return build_actor("waiter", employee_id=3)


@pytest.fixture
def open_session(seed, owner):
    """Factory opening a session on the first table (or the one given)."""

    def _open(customer_count: int = 2, table_index: int = 0, **flags):
        table_session = activate_table(
            seed["table_ids"][table_index], customer_count, owner, now=NOW, **flags
        )
        return table_session.id

    return _open


@pytest.fixture
def add_order(seed):
    """
    Factory adding one order to a session.

    ``items`` is a list of ``(dish_key, quantity)`` or
    ``(dish_key, quantity, status)`` tuples. Returns the order item ids.
    """

    def _add(session_id: int, items: list[tuple], order_status: str = OrderStatus.SERVED.value):
        with get_session() as db_session:
            order = Order(table_session_id=session_id, status=order_status)
            db_session.add(order)
            db_session.flush()

            created = []
            for entry in items:
                dish_key, quantity = entry[0], entry[1]
                status = entry[2] if len(entry) > 2 else OrderItemStatus.SERVED.value
                dish_id, price = seed["dishes"][dish_key]
                item = OrderItem(
                    order_id=order.id,
                    dish_id=dish_id,
                    quantity=quantity,
                    price=price,
                    status=status,
                )
                db_session.add(item)
                created.append(item)
            db_session.flush()
            return [item.id for item in created]

    return _add


@pytest.fixture
def headers():
    def _headers(role: str = "owner", employee_id: int = 1) -> dict:
        return {"X-Employee-Role": role, "X-Employee-Id": str(employee_id)}

    return _headers
