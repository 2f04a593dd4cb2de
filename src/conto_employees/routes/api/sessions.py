"""
Sessions API - Endpoints para la cuenta de una mesa
Handles bill lookup, payments, equal split and closing
"""

from http import HTTPStatus

from flask import Blueprint, g, jsonify, request

from conto_employees.decorators import permission_required
from conto_shared.audit_middleware import audit_action
from conto_shared.permissions import Permission
from conto_shared.schemas import (
    CloseSessionRequest,
    SettleAllRequest,
    SettleRequest,
    SplitQuery,
    UpdateCustomerCountRequest,
)
from conto_shared.serializers import (
    serialize_bill,
    serialize_close,
    serialize_session,
    serialize_settlement,
    serialize_split,
    success_response,
)
from conto_shared.services.bill_service import get_bill
from conto_shared.services.session_service import close_session, update_customer_count
from conto_shared.services.settlement_service import settle, settle_all
from conto_shared.services.split_service import split_bill

# Create blueprint without url_prefix (inherited from parent)
sessions_bp = Blueprint("sessions", __name__)


@sessions_bp.get("/sessions/<int:session_id>/bill")
@permission_required(Permission.BILLS_VIEW)
def get_session_bill(session_id: int):
    """
    Obtener la cuenta de la mesa

    Solo lectura; los terminales pueden consultarla periódicamente.
    """
    bill = get_bill(session_id)
    return jsonify(success_response(serialize_bill(bill))), HTTPStatus.OK


@sessions_bp.post("/sessions/<int:session_id>/settle")
@permission_required(Permission.PAYMENTS_PROCESS)
def post_settle(session_id: int):
    """
    Cobrar las líneas seleccionadas

    Body:
        {
            "line_ids": [str] - ids devueltos por GET /bill,
            "fingerprint": str (opcional) - huella de la cuenta mostrada
        }
    """
    payload = SettleRequest.model_validate(request.get_json(silent=True) or {})
    result = settle(session_id, payload.line_ids, g.actor, fingerprint=payload.fingerprint)
    audit_action(
        "SETTLE",
        details=f"session={session_id} amount={result.amount_settled:.2f}",
    )
    return jsonify(success_response(serialize_settlement(result))), HTTPStatus.OK


@sessions_bp.post("/sessions/<int:session_id>/settle-all")
@permission_required(Permission.PAYMENTS_PROCESS)
def post_settle_all(session_id: int):
    """
    Cobrar toda la cuenta pendiente

    También lo usa el cobro desde la división en partes iguales.

    Body (opcional):
        {
            "fingerprint": str - huella de la cuenta mostrada
        }
    """
    payload = SettleAllRequest.model_validate(request.get_json(silent=True) or {})
    result = settle_all(session_id, g.actor, fingerprint=payload.fingerprint)
    audit_action(
        "SETTLE_ALL",
        details=f"session={session_id} amount={result.amount_settled:.2f}",
    )
    return jsonify(success_response(serialize_settlement(result))), HTTPStatus.OK


@sessions_bp.get("/sessions/<int:session_id>/split")
@permission_required(Permission.BILLS_VIEW)
def get_equal_split(session_id: int):
    """Dividir la cuenta en partes iguales (informativo)"""
    query = SplitQuery.model_validate({"people": request.args.get("people") or None})
    summary = split_bill(session_id, people=query.people)
    return jsonify(success_response(serialize_split(summary))), HTTPStatus.OK


@sessions_bp.patch("/sessions/<int:session_id>/customers")
@permission_required(Permission.SESSIONS_OPEN)
def patch_customer_count(session_id: int):
    payload = UpdateCustomerCountRequest.model_validate(request.get_json(silent=True) or {})
    table_session = update_customer_count(session_id, payload.customer_count, g.actor)
    return jsonify(success_response(serialize_session(table_session))), HTTPStatus.OK


@sessions_bp.post("/sessions/<int:session_id>/close")
@permission_required(Permission.SESSIONS_CLOSE)
def post_close_session(session_id: int):
    """
    Liberar la mesa

    Sin ``force`` la cuenta debe estar en cero. Con ``force`` se cierra sin
    cobrar y queda registrado el importe pendiente.

    Body:
        {
            "force": bool (opcional),
            "reason": str (opcional)
        }
    """
    payload = CloseSessionRequest.model_validate(request.get_json(silent=True) or {})
    result = close_session(session_id, g.actor, force=payload.force, reason=payload.reason)
    audit_action(
        "FORCE_CLOSE" if result.forced else "CLOSE",
        details=f"session={session_id} outstanding={result.outstanding_amount:.2f}",
    )
    return jsonify(success_response(serialize_close(result))), HTTPStatus.OK
