"""Decorators for route protection using the identity headers set upstream."""

from __future__ import annotations

from functools import wraps
from http import HTTPStatus

from flask import g, jsonify, request

from conto_shared.constants import Roles
from conto_shared.permissions import Actor, Permission, build_actor
from conto_shared.serializers import error_response
from conto_shared.services.session_service import get_restaurant

EMPLOYEE_ID_HEADER = "X-Employee-Id"
EMPLOYEE_ROLE_HEADER = "X-Employee-Role"


def current_actor(session_id: int | None = None, table_id: int | None = None) -> Actor | None:
    """
    Build the caller's capability from the request headers.

    Returns None when the headers are missing or malformed.
    """
    role = (request.headers.get(EMPLOYEE_ROLE_HEADER) or "").strip().lower()
    raw_employee_id = (request.headers.get(EMPLOYEE_ID_HEADER) or "").strip()
    if role not in Roles.all_values() or not raw_employee_id.isdigit():
        return None

    restaurant = get_restaurant(session_id=session_id, table_id=table_id)
    return build_actor(role, int(raw_employee_id), restaurant)


def permission_required(permission: Permission):
    """
    Decorator factory to require a permission for a route.

    The actor is stored on ``g.actor`` for the view and the audit log. Waiter
    payment rights depend on the restaurant of the session or table in the URL.
    """

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            actor = current_actor(
                session_id=kwargs.get("session_id"), table_id=kwargs.get("table_id")
            )
            if actor is None:
                return jsonify(error_response("Autenticacion requerida")), HTTPStatus.UNAUTHORIZED

            g.actor = actor
            actor.require(permission)
            return f(*args, **kwargs)

        return decorated_function

    return decorator
