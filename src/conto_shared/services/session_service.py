"""
Session lifecycle: activating a table, adjusting the head count and freeing
the table again.

A session is OPEN from activation until it is closed and never reopens;
reactivating a table creates a new session row. At most one OPEN session per
table is guaranteed by the partial unique index on ``conto_table_sessions``.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from conto_shared.constants import (
    MAX_CUSTOMER_COUNT,
    SETTLED_ORDER_STATUSES,
    UNSETTLED_ITEM_STATUSES,
    ZERO,
    OrderItemStatus,
    OrderStatus,
    SessionAction,
    SessionStatus,
)
from conto_shared.datetime_utils import to_db_timestamp, to_local, utcnow
from conto_shared.db import get_session
from conto_shared.errors import (
    InvalidCustomerCount,
    OutstandingBalance,
    SessionAlreadyActive,
    SessionAlreadyClosed,
    TableNotFound,
    translate_store_errors,
)
from conto_shared.logging_config import get_logger
from conto_shared.models import (
    Order,
    OrderItem,
    Restaurant,
    SessionEvent,
    SettledCharge,
    Table,
    TableSession,
)
from conto_shared.permissions import Actor, Permission
from conto_shared.realtime import RealtimeManager
from conto_shared.services.bill_service import compute_bill, load_table_session
from conto_shared.services.pricing_service import resolve_pricing

logger = get_logger(__name__)

_UNSETTLED_ITEM_VALUES = [status.value for status in UNSETTLED_ITEM_STATUSES]
_SETTLED_ORDER_VALUES = [status.value for status in SETTLED_ORDER_STATUSES]


@dataclass
class CloseResult:
    session_id: int
    table_id: int
    forced: bool
    outstanding_amount: Decimal
    closed_at: datetime
    reason: str | None = None


def validate_customer_count(customer_count) -> int:
    """Head counts are whole numbers between 1 and ``MAX_CUSTOMER_COUNT``."""
    if isinstance(customer_count, bool):
        raise InvalidCustomerCount(customer_count=customer_count)
    try:
        count = int(customer_count)
    except (TypeError, ValueError) as exc:
        raise InvalidCustomerCount(customer_count=customer_count) from exc
    if count != customer_count and not isinstance(customer_count, str):
        raise InvalidCustomerCount(customer_count=customer_count)
    if count < 1 or count > MAX_CUSTOMER_COUNT:
        raise InvalidCustomerCount(customer_count=count)
    return count


def _record_event(
    db_session,
    table_session: TableSession,
    action: SessionAction,
    actor: Actor,
    created_at: datetime,
    amount: Decimal | None = None,
    **details,
) -> None:
    db_session.add(
        SessionEvent(
            session_id=table_session.id,
            action=action.value,
            employee_id=actor.employee_id,
            role=actor.role,
            amount=amount,
            details=details or None,
            created_at=created_at,
        )
    )


@translate_store_errors
def activate_table(
    table_id: int,
    customer_count: int,
    actor: Actor,
    cover_enabled: bool | None = None,
    ayce_enabled: bool | None = None,
    now: datetime | None = None,
) -> TableSession:
    """
    Open a new session on a free table.

    Session flags start from what the restaurant charges at opening time and
    can only switch a charge off.

    Raises:
        PermissionDenied: The actor cannot open tables
        InvalidCustomerCount: Head count is not between 1 and the maximum
        TableNotFound: No such table
        SessionAlreadyActive: The table already has an open session
    """
    actor.require(Permission.SESSIONS_OPEN)
    count = validate_customer_count(customer_count)
    now = now or utcnow()
    timestamp = to_db_timestamp(now)

    try:
        with get_session() as db_session:
            table = db_session.get(Table, table_id)
            if table is None:
                raise TableNotFound(table_id=table_id)

            restaurant = table.restaurant
            policy = resolve_pricing(restaurant, to_local(now, restaurant.timezone))
            table_session = TableSession(
                restaurant_id=table.restaurant_id,
                table_id=table.id,
                status=SessionStatus.OPEN.value,
                opened_at=timestamp,
                customer_count=count,
                cover_enabled=policy.cover_enabled and cover_enabled is not False,
                ayce_enabled=policy.ayce_enabled and ayce_enabled is not False,
            )
            db_session.add(table_session)
            db_session.flush()

            _record_event(
                db_session,
                table_session,
                SessionAction.ACTIVATE,
                actor,
                timestamp,
                customer_count=count,
                cover_enabled=table_session.cover_enabled,
                ayce_enabled=table_session.ayce_enabled,
            )
    except IntegrityError as exc:
        logger.warning(
            "Table already has an open session",
            extra={"table_id": table_id, "employee_id": actor.employee_id},
        )
        raise SessionAlreadyActive(table_id=table_id) from exc

    logger.info(
        "Table activated",
        extra={
            "table_id": table_id,
            "session_id": table_session.id,
            "customer_count": count,
            "employee_id": actor.employee_id,
        },
    )
    RealtimeManager.emit_session_changed(
        table_session.id, SessionAction.ACTIVATE.value, table_id=table_id
    )
    return table_session


@translate_store_errors
def update_customer_count(
    session_id: int, customer_count: int, actor: Actor, now: datetime | None = None
) -> TableSession:
    """
    Change the head count of an open session.

    The count can never drop below the number of per-guest charges of one
    kind that were already paid.
    """
    actor.require(Permission.SESSIONS_OPEN)
    count = validate_customer_count(customer_count)
    timestamp = to_db_timestamp(now or utcnow())

    with get_session() as db_session:
        table_session = load_table_session(db_session, session_id, for_update=True)
        if table_session.status != SessionStatus.OPEN.value:
            raise SessionAlreadyClosed(session_id=session_id)

        settled_by_kind = Counter(
            db_session.execute(
                select(SettledCharge.kind).where(SettledCharge.session_id == session_id)
            )
            .scalars()
            .all()
        )
        settled_guests = max(settled_by_kind.values(), default=0)
        if count < settled_guests:
            raise InvalidCustomerCount(
                "Hay más coperti cobrados que comensales",
                customer_count=count,
                settled=settled_guests,
            )

        previous = table_session.customer_count
        table_session.customer_count = count
        _record_event(
            db_session,
            table_session,
            SessionAction.UPDATE_CUSTOMER_COUNT,
            actor,
            timestamp,
            previous=previous,
            customer_count=count,
        )

    logger.info(
        "Customer count updated",
        extra={"session_id": session_id, "previous": previous, "customer_count": count},
    )
    RealtimeManager.emit_session_changed(
        session_id,
        SessionAction.UPDATE_CUSTOMER_COUNT.value,
        table_id=table_session.table_id,
    )
    return table_session


def _finish_items(db_session, session_id: int, status: str, timestamp: datetime) -> None:
    order_ids = select(Order.id).where(Order.table_session_id == session_id)
    values = {"status": status}
    if status == OrderItemStatus.PAID.value:
        values["paid_at"] = timestamp

    db_session.execute(
        update(OrderItem)
        .where(OrderItem.order_id.in_(order_ids), OrderItem.status.in_(_UNSETTLED_ITEM_VALUES))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    db_session.execute(
        update(Order)
        .where(Order.table_session_id == session_id, Order.status.notin_(_SETTLED_ORDER_VALUES))
        .values(status=status, updated_at=timestamp)
        .execution_options(synchronize_session=False)
    )


@translate_store_errors
def close_session(
    session_id: int,
    actor: Actor,
    force: bool = False,
    reason: str | None = None,
    now: datetime | None = None,
) -> CloseResult:
    """
    Free the table.

    Args:
        session_id: Session to close
        actor: Employee closing the table
        force: Close without collecting; whatever is still owed is cancelled
        reason: Free text stored with a forced close
        now: Clock used for pricing and timestamps

    Returns:
        CloseResult with the amount left uncollected (zero unless forced)

    Raises:
        PermissionDenied: Missing ``sessions:close`` (or ``sessions:force_close``)
        OutstandingBalance: Non-forced close while the bill is not zero
        SessionAlreadyClosed: The session was closed already
    """
    actor.require(Permission.SESSIONS_FORCE_CLOSE if force else Permission.SESSIONS_CLOSE)
    now = now or utcnow()
    timestamp = to_db_timestamp(now)

    with get_session() as db_session:
        table_session = load_table_session(db_session, session_id, for_update=True)
        if table_session.status != SessionStatus.OPEN.value:
            raise SessionAlreadyClosed(session_id=session_id)

        bill = compute_bill(db_session, table_session, now)
        outstanding = bill.total

        if force:
            _finish_items(db_session, session_id, OrderStatus.CANCELLED.value, timestamp)
        else:
            if outstanding > ZERO:
                raise OutstandingBalance(session_id=session_id, total=f"{outstanding:.2f}")
            _finish_items(db_session, session_id, OrderStatus.PAID.value, timestamp)

        closed = db_session.execute(
            update(TableSession)
            .where(
                TableSession.id == session_id,
                TableSession.status == SessionStatus.OPEN.value,
            )
            .values(
                status=SessionStatus.CLOSED.value,
                closed_at=timestamp,
                closed_without_payment=force and outstanding > ZERO,
                close_reason=reason,
            )
            .execution_options(synchronize_session=False)
        )
        if closed.rowcount != 1:
            raise SessionAlreadyClosed(session_id=session_id)

        action = SessionAction.FORCE_CLOSE if force else SessionAction.CLOSE
        _record_event(
            db_session,
            table_session,
            action,
            actor,
            timestamp,
            amount=outstanding,
            reason=reason,
            cancelled_lines=len(bill.line_ids) if force else 0,
        )
        table_id = table_session.table_id

    log = logger.warning if force and outstanding > ZERO else logger.info
    log(
        "Session closed",
        extra={
            "session_id": session_id,
            "forced": force,
            "outstanding": str(outstanding),
            "employee_id": actor.employee_id,
            "reason": reason,
        },
    )
    RealtimeManager.emit_session_changed(session_id, action.value, table_id=table_id)
    return CloseResult(
        session_id=session_id,
        table_id=table_id,
        forced=force,
        outstanding_amount=outstanding,
        closed_at=timestamp,
        reason=reason,
    )


@translate_store_errors
def get_open_session(table_id: int) -> TableSession | None:
    with get_session() as db_session:
        if db_session.get(Table, table_id) is None:
            raise TableNotFound(table_id=table_id)
        return (
            db_session.execute(
                select(TableSession).where(
                    TableSession.table_id == table_id,
                    TableSession.status == SessionStatus.OPEN.value,
                )
            )
            .scalars()
            .first()
        )


@translate_store_errors
def get_restaurant(session_id: int | None = None, table_id: int | None = None) -> Restaurant | None:
    """Restaurant owning a session or a table; used to resolve the caller's permissions."""
    with get_session() as db_session:
        if session_id is not None:
            table_session = db_session.get(TableSession, session_id)
            return table_session.restaurant if table_session is not None else None
        if table_id is not None:
            table = db_session.get(Table, table_id)
            return table.restaurant if table is not None else None
        return None
