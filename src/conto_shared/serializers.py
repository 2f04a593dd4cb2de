"""
Serializers for consistent API responses.

Money always leaves the service as a string with two decimals.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any

from conto_shared.models import TableSession
from conto_shared.services.bill_service import Bill, BillLine, VirtualChargeLine
from conto_shared.services.session_service import CloseResult
from conto_shared.services.settlement_service import SettlementResult
from conto_shared.services.split_service import SplitSummary


def money(value: Decimal | None) -> str | None:
    if value is None:
        return None
    return f"{Decimal(value):.2f}"


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value else None


def serialize_bill_line(line: BillLine) -> dict[str, Any]:
    return {
        "line_id": line.line_id,
        "type": "item",
        "order_id": line.order_id,
        "order_item_id": line.source_order_item_id,
        "dish_id": line.dish_id,
        "dish_name": line.dish_name,
        "unit_price": money(line.unit_price),
        "unit_number": line.unit_number,
        "course_number": line.course_number,
        "note": line.note,
        "ayce_included": line.ayce_included,
    }


def serialize_virtual_line(line: VirtualChargeLine) -> dict[str, Any]:
    return {
        "line_id": line.line_id,
        "type": line.kind.value,
        "guest_number": line.guest_number,
        "label": line.label,
        "price": money(line.price),
    }


def serialize_bill(bill: Bill) -> dict[str, Any]:
    return {
        "session_id": bill.session_id,
        "status": bill.session_status,
        "customer_count": bill.customer_count,
        "bill_lines": [serialize_bill_line(line) for line in bill.bill_lines],
        "virtual_lines": [serialize_virtual_line(line) for line in bill.virtual_lines],
        "total": money(bill.total),
        "can_close": bill.is_settled,
        "fingerprint": bill.fingerprint,
        "pricing": bill.pricing.to_dict(),
        "computed_at": _iso(bill.computed_at),
    }


def serialize_settlement(result: SettlementResult) -> dict[str, Any]:
    return {
        "session_id": result.session_id,
        "settled_line_ids": result.settled_line_ids,
        "amount_settled": money(result.amount_settled),
        "total_before": money(result.total_before),
        "remaining_total": money(result.remaining_total),
        "full_payment": result.full_payment,
        "can_close": result.can_close,
        "paid_item_ids": result.paid_item_ids,
        "split_item_ids": result.split_item_ids,
        "settled_charge_ids": result.settled_charge_ids,
        "paid_order_ids": result.paid_order_ids,
    }


def serialize_session(table_session: TableSession) -> dict[str, Any]:
    return {
        "id": table_session.id,
        "table_id": table_session.table_id,
        "status": table_session.status,
        "customer_count": table_session.customer_count,
        "cover_enabled": table_session.cover_enabled,
        "ayce_enabled": table_session.ayce_enabled,
        "opened_at": _iso(table_session.opened_at),
        "closed_at": _iso(table_session.closed_at),
        "closed_without_payment": table_session.closed_without_payment,
    }


def serialize_close(result: CloseResult) -> dict[str, Any]:
    return {
        "session_id": result.session_id,
        "table_id": result.table_id,
        "status": "closed",
        "forced": result.forced,
        "outstanding_amount": money(result.outstanding_amount),
        "closed_at": _iso(result.closed_at),
        "reason": result.reason,
    }


def serialize_split(summary: SplitSummary) -> dict[str, Any]:
    return {
        "session_id": summary.session_id,
        "total": money(summary.total),
        "people": summary.people,
        "per_person": money(summary.per_person),
        "shares": [money(share) for share in summary.shares],
    }


def success_response(data: Any, message: str | None = None) -> dict[str, Any]:
    """Create a standardized success response."""
    response = {"status": "success", "data": data, "error": None}
    if message:
        response["message"] = message
    return response


def error_response(
    error: str, details: dict[str, Any] | None = None, **extra: Any
) -> dict[str, Any]:
    """Create a standardized error response."""
    response = {"status": "error", "data": None, "error": error}
    response.update(extra)
    if details:
        response["details"] = details
    return response
