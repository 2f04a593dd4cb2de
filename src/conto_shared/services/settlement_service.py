"""
Settlement engine.

Marks a chosen subset of bill lines as paid. Every call is one transaction: the
session row is locked, the bill is re-materialized from the store, each
targeted order item is written with a conditional update guarded by the
quantity and status observed in that same transaction, and any mismatch aborts
the whole call with ``StaleItem``.
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from conto_shared.constants import (
    SETTLED_ORDER_STATUSES,
    UNSETTLED_ITEM_STATUSES,
    ChargeKind,
    OrderItemStatus,
    OrderStatus,
    SessionAction,
    SessionStatus,
)
from conto_shared.datetime_utils import to_db_timestamp, utcnow
from conto_shared.db import get_session
from conto_shared.errors import (
    EmptySelection,
    SessionAlreadyClosed,
    StaleItem,
    UnknownLine,
    ZeroAmountSelection,
    translate_store_errors,
)
from conto_shared.logging_config import get_logger
from conto_shared.models import Order, OrderItem, SessionEvent, SettledCharge, TableSession
from conto_shared.permissions import Actor, Permission
from conto_shared.realtime import RealtimeManager
from conto_shared.services.bill_service import (
    Bill,
    BillLine,
    VirtualChargeLine,
    compute_bill,
    load_table_session,
)

logger = get_logger(__name__)

_LINE_ID_PATTERN = re.compile(r"^(?:item:[1-9]\d*:[1-9]\d*|(?:cover|ayce):[1-9]\d*)$")

_UNSETTLED_ITEM_VALUES = [status.value for status in UNSETTLED_ITEM_STATUSES]
_SETTLED_ORDER_VALUES = [status.value for status in SETTLED_ORDER_STATUSES]


@dataclass
class SettlementResult:
    session_id: int
    table_id: int
    settled_line_ids: list[str]
    amount_settled: Decimal
    total_before: Decimal
    remaining_total: Decimal
    full_payment: bool
    paid_item_ids: list[int] = field(default_factory=list)
    split_item_ids: list[int] = field(default_factory=list)
    settled_charge_ids: list[str] = field(default_factory=list)
    paid_order_ids: list[int] = field(default_factory=list)

    @property
    def can_close(self) -> bool:
        return self.remaining_total == 0


def normalize_selection(line_ids: Iterable[str] | None) -> list[str]:
    """
    Drop duplicates (keeping the first occurrence) and reject malformed ids.

    Raises:
        EmptySelection: Nothing was chosen
        UnknownLine: An id does not have the shape of any bill line
    """
    selection = list(dict.fromkeys(str(line_id).strip() for line_id in (line_ids or [])))
    if not selection:
        raise EmptySelection()

    malformed = [line_id for line_id in selection if not _LINE_ID_PATTERN.match(line_id)]
    if malformed:
        raise UnknownLine(line_ids=malformed)
    return selection


def _guarded_item_update(db_session: Session, item: OrderItem, values: dict) -> None:
    """
    Write to one order item only if it still has the quantity and status read
    in this transaction.
    """
    result = db_session.execute(
        update(OrderItem)
        .where(
            OrderItem.id == item.id,
            OrderItem.quantity == item.quantity,
            OrderItem.status == item.status,
        )
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        logger.warning(
            "Order item changed concurrently",
            extra={"order_item_id": item.id, "expected_quantity": item.quantity},
        )
        raise StaleItem(order_item_id=item.id)


def _settle_units(
    db_session: Session, units_by_item: Counter, paid_at: datetime, result: SettlementResult
) -> None:
    for order_item_id in sorted(units_by_item):
        units = units_by_item[order_item_id]
        item = db_session.get(OrderItem, order_item_id)
        if item is None:
            raise StaleItem(order_item_id=order_item_id)

        if units >= item.quantity:
            _guarded_item_update(
                db_session, item, {"status": OrderItemStatus.PAID.value, "paid_at": paid_at}
            )
            result.paid_item_ids.append(item.id)
            continue

        _guarded_item_update(db_session, item, {"quantity": item.quantity - units})
        clone = OrderItem(
            order_id=item.order_id,
            dish_id=item.dish_id,
            quantity=units,
            price=item.price,
            note=item.note,
            course_number=item.course_number,
            status=OrderItemStatus.PAID.value,
            split_from_id=item.id,
            paid_at=paid_at,
        )
        db_session.add(clone)
        db_session.flush()
        result.split_item_ids.append(clone.id)


def _settle_everything(
    db_session: Session, bill: Bill, paid_at: datetime, result: SettlementResult
) -> None:
    """Pay-in-full: one statement for every item on the bill."""
    item_ids = sorted({line.source_order_item_id for line in bill.bill_lines})
    if not item_ids:
        return

    updated = db_session.execute(
        update(OrderItem)
        .where(OrderItem.id.in_(item_ids), OrderItem.status.in_(_UNSETTLED_ITEM_VALUES))
        .values(status=OrderItemStatus.PAID.value, paid_at=paid_at)
        .execution_options(synchronize_session=False)
    )
    if updated.rowcount != len(item_ids):
        logger.warning(
            "Full payment found items settled concurrently",
            extra={"session_id": bill.session_id, "expected": len(item_ids)},
        )
        raise StaleItem(session_id=bill.session_id)
    result.paid_item_ids.extend(item_ids)


def _settle_charges(
    db_session: Session,
    charges: list[VirtualChargeLine],
    table_session: TableSession,
    actor: Actor,
    settled_at: datetime,
    result: SettlementResult,
) -> None:
    for charge in charges:
        db_session.add(
            SettledCharge(
                session_id=table_session.id,
                line_id=charge.line_id,
                kind=ChargeKind(charge.kind).value,
                guest_number=charge.guest_number,
                amount=charge.price,
                employee_id=actor.employee_id,
                settled_at=settled_at,
            )
        )
        result.settled_charge_ids.append(charge.line_id)
    if charges:
        db_session.flush()


def mark_paid_orders(db_session: Session, session_id: int, updated_at: datetime) -> list[int]:
    """
    Promote orders whose items are all settled.

    An order with at least one PAID item and nothing left to pay becomes PAID.
    One whose items were all cancelled becomes CANCELLED. Orders without items
    stay as they are, since more items may still be added to them.

    Returns:
        Ids of the orders that became PAID
    """
    orders = (
        db_session.execute(
            select(Order)
            .where(
                Order.table_session_id == session_id,
                Order.status.notin_(_SETTLED_ORDER_VALUES),
            )
            .execution_options(populate_existing=True)
        )
        .scalars()
        .all()
    )

    paid: list[int] = []
    for order in orders:
        statuses = set(
            db_session.execute(select(OrderItem.status).where(OrderItem.order_id == order.id))
            .scalars()
            .all()
        )
        if not statuses or statuses & set(_UNSETTLED_ITEM_VALUES):
            continue

        if OrderItemStatus.PAID.value in statuses:
            order.status = OrderStatus.PAID.value
            paid.append(order.id)
        else:
            order.status = OrderStatus.CANCELLED.value
        order.updated_at = updated_at
    return paid


def _apply(
    db_session: Session,
    table_session: TableSession,
    bill: Bill,
    selection: list[str],
    actor: Actor,
    now: datetime,
) -> SettlementResult:
    lines = bill.lines_by_id
    missing = [line_id for line_id in selection if line_id not in lines]
    if missing:
        logger.warning(
            "Selection no longer matches the bill",
            extra={"session_id": table_session.id, "line_ids": missing},
        )
        raise StaleItem(line_ids=missing)

    full_payment = set(selection) == set(bill.line_ids)
    amount = bill.amount_for(selection)
    # Zero-priced lines only leave the bill with the rest of it
    if amount == 0 and not full_payment:
        raise ZeroAmountSelection(line_ids=selection)

    timestamp = to_db_timestamp(now)
    result = SettlementResult(
        session_id=table_session.id,
        table_id=table_session.table_id,
        settled_line_ids=selection,
        amount_settled=amount,
        total_before=bill.total,
        remaining_total=bill.total,
        full_payment=full_payment,
    )

    selected = [lines[line_id] for line_id in selection]
    charges = [line for line in selected if isinstance(line, VirtualChargeLine)]

    if full_payment:
        _settle_everything(db_session, bill, timestamp, result)
    else:
        units_by_item = Counter(
            line.source_order_item_id for line in selected if isinstance(line, BillLine)
        )
        _settle_units(db_session, units_by_item, timestamp, result)

    _settle_charges(db_session, charges, table_session, actor, timestamp, result)
    db_session.flush()

    result.paid_order_ids = mark_paid_orders(db_session, table_session.id, timestamp)
    db_session.flush()

    result.remaining_total = compute_bill(db_session, table_session, now).total

    db_session.add(
        SessionEvent(
            session_id=table_session.id,
            action=SessionAction.SETTLE.value,
            employee_id=actor.employee_id,
            role=actor.role,
            amount=result.amount_settled,
            details={
                "line_ids": selection,
                "full_payment": full_payment,
                "split_item_ids": result.split_item_ids,
                "remaining_total": f"{result.remaining_total:.2f}",
            },
            created_at=timestamp,
        )
    )
    return result


def _run(
    session_id: int,
    actor: Actor,
    now: datetime,
    selection: list[str] | None,
    fingerprint: str | None = None,
) -> SettlementResult:
    try:
        with get_session() as db_session:
            table_session = load_table_session(db_session, session_id, for_update=True)
            if table_session.status != SessionStatus.OPEN.value:
                raise SessionAlreadyClosed(session_id=session_id)

            bill = compute_bill(db_session, table_session, now)
            if fingerprint is not None and fingerprint != bill.fingerprint:
                logger.warning(
                    "Bill changed since it was shown",
                    extra={"session_id": session_id, "total": str(bill.total)},
                )
                raise StaleItem(session_id=session_id, reason="bill_changed")
            if selection is None:
                selection = bill.line_ids
                if not selection:
                    raise EmptySelection()

            result = _apply(db_session, table_session, bill, selection, actor, now)
    except IntegrityError as exc:
        logger.warning(
            "Concurrent settlement detected",
            extra={"session_id": session_id, "error": str(exc.orig)},
        )
        raise StaleItem(session_id=session_id) from exc

    logger.info(
        "Settlement committed",
        extra={
            "session_id": session_id,
            "employee_id": actor.employee_id,
            "lines": len(result.settled_line_ids),
            "amount": str(result.amount_settled),
            "remaining_total": str(result.remaining_total),
            "full_payment": result.full_payment,
        },
    )
    RealtimeManager.emit_session_changed(
        session_id,
        SessionAction.SETTLE.value,
        table_id=result.table_id,
        remaining_total=result.remaining_total,
    )
    return result


@translate_store_errors
def settle(
    session_id: int,
    line_ids: Iterable[str],
    actor: Actor,
    now: datetime | None = None,
    fingerprint: str | None = None,
) -> SettlementResult:
    """
    Settle the selected lines of a session's bill.

    Args:
        session_id: Table session to settle against
        line_ids: Ids of the bill lines and per-guest charge lines being paid
        actor: Employee taking the payment; needs ``payments:process``
        now: Clock used for pricing and timestamps (defaults to now)
        fingerprint: ``Bill.fingerprint`` of the bill the guest was shown; when
            given, the payment is refused if the bill changed since then

    Returns:
        SettlementResult with the settled amount and the remaining total

    Raises:
        PermissionDenied: The actor cannot take payments
        EmptySelection: Nothing was selected
        UnknownLine: A selected id is malformed
        ZeroAmountSelection: Only zero-priced lines were chosen from a larger bill
        StaleItem: A selected line is no longer on the bill, changed concurrently,
            or the bill no longer matches ``fingerprint``
        SessionAlreadyClosed: The session is not open
    """
    actor.require(Permission.PAYMENTS_PROCESS)
    selection = normalize_selection(line_ids)
    return _run(session_id, actor, now or utcnow(), selection, fingerprint)


@translate_store_errors
def settle_all(
    session_id: int,
    actor: Actor,
    now: datetime | None = None,
    fingerprint: str | None = None,
) -> SettlementResult:
    """Settle whatever the bill holds at the moment of the call."""
    actor.require(Permission.PAYMENTS_PROCESS)
    return _run(session_id, actor, now or utcnow(), None, fingerprint)
