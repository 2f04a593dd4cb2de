"""
Bill materialization: turns the unsettled order items of a table session plus
the active per-guest charges into a flat list of unit-priced lines.

Lines are produced fresh on every call. Their ids are deterministic, so two
materializations of the same data agree on line identity:

* ``item:<order_item_id>:<unit>`` for each unit (1-based) of an order item;
* ``cover:<guest>`` / ``ayce:<guest>`` for per-guest charges (1-based).
"""

from __future__ import annotations

import hashlib
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from conto_shared.constants import (
    CENT,
    CHARGE_LABELS,
    SETTLED_ORDER_STATUSES,
    UNSETTLED_ITEM_STATUSES,
    ZERO,
    ChargeKind,
    SessionStatus,
)
from conto_shared.datetime_utils import to_local, utcnow
from conto_shared.db import get_session
from conto_shared.errors import SessionNotFound, translate_store_errors
from conto_shared.logging_config import get_logger
from conto_shared.models import Order, OrderItem, SettledCharge, TableSession
from conto_shared.services.pricing_service import (
    PricingPolicy,
    apply_session_overrides,
    resolve_pricing,
)

logger = get_logger(__name__)

_UNSETTLED_ITEM_VALUES = {status.value for status in UNSETTLED_ITEM_STATUSES}
_SETTLED_ORDER_VALUES = {status.value for status in SETTLED_ORDER_STATUSES}


@dataclass(frozen=True)
class BillLine:
    """One unit of an ordered item."""

    line_id: str
    source_order_item_id: int
    order_id: int
    dish_id: int
    dish_name: str
    unit_price: Decimal
    unit_number: int
    course_number: int | None = None
    note: str | None = None
    ayce_included: bool = False

    @property
    def amount(self) -> Decimal:
        return self.unit_price


@dataclass(frozen=True)
class VirtualChargeLine:
    """A per-guest charge with no order item behind it."""

    line_id: str
    kind: ChargeKind
    guest_number: int
    label: str
    price: Decimal

    @property
    def amount(self) -> Decimal:
        return self.price


@dataclass
class Bill:
    session_id: int
    session_status: str
    customer_count: int
    bill_lines: list[BillLine]
    virtual_lines: list[VirtualChargeLine]
    pricing: PricingPolicy
    computed_at: datetime | None = None
    total: Decimal = field(init=False)

    def __post_init__(self) -> None:
        self.total = sum_lines(self.bill_lines, self.virtual_lines)

    @property
    def line_ids(self) -> list[str]:
        return [line.line_id for line in self.bill_lines] + [
            line.line_id for line in self.virtual_lines
        ]

    @property
    def lines_by_id(self) -> dict[str, BillLine | VirtualChargeLine]:
        lines: dict[str, Any] = {line.line_id: line for line in self.bill_lines}
        lines.update({line.line_id: line for line in self.virtual_lines})
        return lines

    @property
    def fingerprint(self) -> str:
        """
        Digest of every line id with its amount.

        Terminals send it back with a payment; settlement refuses it when the
        re-materialized bill no longer matches what was shown.
        """
        digest = hashlib.sha256(f"session:{self.session_id}".encode())
        for line_id, line in self.lines_by_id.items():
            digest.update(f"|{line_id}={line.amount:.2f}".encode())
        return digest.hexdigest()[:32]

    @property
    def is_settled(self) -> bool:
        return self.total == ZERO

    def amount_for(self, line_ids: Iterable[str]) -> Decimal:
        lines = self.lines_by_id
        return sum((lines[line_id].amount for line_id in line_ids), ZERO).quantize(CENT)


def sum_lines(
    bill_lines: Iterable[BillLine], virtual_lines: Iterable[VirtualChargeLine]
) -> Decimal:
    total = sum((line.unit_price for line in bill_lines), ZERO)
    total += sum((line.price for line in virtual_lines), ZERO)
    return Decimal(total).quantize(CENT)


def item_line_id(order_item_id: int, unit_number: int) -> str:
    return f"item:{order_item_id}:{unit_number}"


def charge_line_id(kind: ChargeKind, guest_number: int) -> str:
    return f"{kind.value}:{guest_number}"


def count_settled(settled_line_ids: Iterable[str], kind: ChargeKind) -> int:
    prefix = f"{kind.value}:"
    return sum(1 for line_id in settled_line_ids if line_id.startswith(prefix))


def _unit_price(item: OrderItem, policy: PricingPolicy) -> tuple[Decimal, bool]:
    dish = item.dish
    included = bool(policy.ayce_enabled and dish is not None and dish.is_ayce)
    if included:
        return ZERO, True
    return Decimal(str(item.price)).quantize(CENT), False


def expand_items(orders: Iterable[Order], policy: PricingPolicy) -> list[BillLine]:
    """
    Expand every unsettled item into one line per unit.

    Orders and items are walked in ascending id order so repeated calls yield
    the same sequence.
    """
    lines: list[BillLine] = []
    for order in sorted(orders, key=lambda o: o.id):
        if order.status in _SETTLED_ORDER_VALUES:
            continue
        for item in sorted(order.items, key=lambda i: i.id):
            if item.status not in _UNSETTLED_ITEM_VALUES or item.quantity < 1:
                continue
            unit_price, included = _unit_price(item, policy)
            dish_name = item.dish.name if item.dish is not None else f"#{item.dish_id}"
            for unit_number in range(1, item.quantity + 1):
                lines.append(
                    BillLine(
                        line_id=item_line_id(item.id, unit_number),
                        source_order_item_id=item.id,
                        order_id=order.id,
                        dish_id=item.dish_id,
                        dish_name=dish_name,
                        unit_price=unit_price,
                        unit_number=unit_number,
                        course_number=item.course_number,
                        note=item.note,
                        ayce_included=included,
                    )
                )
    return lines


def synthesize_charges(
    customer_count: int, policy: PricingPolicy, settled_line_ids: Iterable[str] = ()
) -> list[VirtualChargeLine]:
    """
    One cover line and one all-you-can-eat line per guest, minus the ones already paid.

    The number of open lines of a kind is the head count minus the lines of
    that kind already settled. They take the lowest guest numbers not yet
    settled, so ids stay stable when the head count changes.
    """
    settled = set(settled_line_ids)
    guests = max(int(customer_count or 0), 0)
    charges = (
        (ChargeKind.COVER, policy.cover_enabled, policy.cover_price),
        (ChargeKind.AYCE, policy.ayce_enabled, policy.ayce_price),
    )

    lines: list[VirtualChargeLine] = []
    for kind, enabled, price in charges:
        if not enabled or price <= 0:
            continue
        open_count = guests - count_settled(settled, kind)
        guest_number = 0
        while open_count > 0:
            guest_number += 1
            line_id = charge_line_id(kind, guest_number)
            if line_id in settled:
                continue
            open_count -= 1
            lines.append(
                VirtualChargeLine(
                    line_id=line_id,
                    kind=kind,
                    guest_number=guest_number,
                    label=CHARGE_LABELS[kind],
                    price=price,
                )
            )
    return lines


def materialize(
    session: TableSession,
    orders: Iterable[Order],
    policy: PricingPolicy,
    settled_line_ids: Iterable[str] = (),
    computed_at: datetime | None = None,
) -> Bill:
    """
    Build the bill for a table session.

    Args:
        session: The table session (its flags must already be applied to ``policy``)
        orders: Orders of the session with their items and dishes loaded
        policy: Pricing policy resolved for this computation
        settled_line_ids: Per-guest charge lines already paid
        computed_at: Clock value used for this computation

    Returns:
        Bill whose total is the sum of every produced line
    """
    bill_lines = expand_items(orders, policy)
    if session.status == SessionStatus.CLOSED.value:
        virtual_lines: list[VirtualChargeLine] = []
    else:
        virtual_lines = synthesize_charges(session.customer_count, policy, settled_line_ids)

    return Bill(
        session_id=session.id,
        session_status=session.status,
        customer_count=session.customer_count,
        bill_lines=bill_lines,
        virtual_lines=virtual_lines,
        pricing=policy,
        computed_at=computed_at,
    )


def load_table_session(db_session: Session, session_id: int, for_update: bool = False):
    stmt = select(TableSession).where(TableSession.id == session_id)
    if for_update:
        stmt = stmt.with_for_update()
    table_session = db_session.execute(stmt).scalars().first()
    if table_session is None:
        raise SessionNotFound(session_id=session_id)
    return table_session


def load_orders(db_session: Session, session_id: int) -> list[Order]:
    return list(
        db_session.execute(
            select(Order)
            .options(selectinload(Order.items).selectinload(OrderItem.dish))
            .where(Order.table_session_id == session_id)
            .order_by(Order.id)
            .execution_options(populate_existing=True)
        )
        .scalars()
        .all()
    )


def load_settled_line_ids(db_session: Session, session_id: int) -> set[str]:
    return set(
        db_session.execute(
            select(SettledCharge.line_id).where(SettledCharge.session_id == session_id)
        )
        .scalars()
        .all()
    )


def resolve_session_pricing(table_session: TableSession, now: datetime) -> PricingPolicy:
    restaurant = table_session.restaurant
    local_now = to_local(now, getattr(restaurant, "timezone", None))
    return apply_session_overrides(resolve_pricing(restaurant, local_now), table_session)


def compute_bill(db_session: Session, table_session: TableSession, now: datetime) -> Bill:
    """Materialize the bill inside an existing transaction."""
    policy = resolve_session_pricing(table_session, now)
    orders = load_orders(db_session, table_session.id)
    settled = load_settled_line_ids(db_session, table_session.id)
    return materialize(table_session, orders, policy, settled, computed_at=now)


@translate_store_errors
def get_bill(session_id: int, now: datetime | None = None) -> Bill:
    """
    Read-only bill for a table session; safe to poll.

    Takes no row locks, so it never waits on a settlement in flight.
    """
    now = now or utcnow()
    with get_session() as db_session:
        table_session = load_table_session(db_session, session_id)
        bill = compute_bill(db_session, table_session, now)

    logger.debug(
        "Bill computed",
        extra={
            "session_id": session_id,
            "lines": len(bill.bill_lines),
            "virtual_lines": len(bill.virtual_lines),
            "total": str(bill.total),
        },
    )
    return bill
