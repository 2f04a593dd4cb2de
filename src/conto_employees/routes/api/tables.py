"""
Tables API - Activación de mesas y consulta de la sesión abierta
"""

from http import HTTPStatus

from flask import Blueprint, g, jsonify, request

from conto_employees.decorators import permission_required
from conto_shared.audit_middleware import audit_action
from conto_shared.permissions import Permission
from conto_shared.schemas import ActivateTableRequest
from conto_shared.serializers import error_response, serialize_session, success_response
from conto_shared.services.session_service import activate_table, get_open_session

tables_bp = Blueprint("tables", __name__)


@tables_bp.post("/tables/<int:table_id>/activate")
@permission_required(Permission.SESSIONS_OPEN)
def post_activate_table(table_id: int):
    """
    Abrir una sesión en una mesa libre

    Body:
        {
            "customer_count": int,
            "cover_enabled": bool (opcional),
            "ayce_enabled": bool (opcional)
        }
    """
    payload = ActivateTableRequest.model_validate(request.get_json(silent=True) or {})
    table_session = activate_table(
        table_id,
        payload.customer_count,
        g.actor,
        cover_enabled=payload.cover_enabled,
        ayce_enabled=payload.ayce_enabled,
    )
    audit_action("ACTIVATE", details=f"table={table_id} session={table_session.id}")
    return jsonify(success_response(serialize_session(table_session))), HTTPStatus.CREATED


@tables_bp.get("/tables/<int:table_id>/session")
@permission_required(Permission.BILLS_VIEW)
def get_table_session(table_id: int):
    table_session = get_open_session(table_id)
    if table_session is None:
        return jsonify(error_response("La mesa no tiene una sesión abierta")), HTTPStatus.NOT_FOUND
    return jsonify(success_response(serialize_session(table_session))), HTTPStatus.OK
