import logging
import time

from flask import Flask, Response, g, request

logger = logging.getLogger("audit")

EMPLOYEE_ID_HEADER = "X-Employee-Id"


def _request_user() -> str:
    actor = g.get("actor")
    if actor is not None and actor.employee_id is not None:
        return f"{actor.role}:{actor.employee_id}"
    return request.headers.get(EMPLOYEE_ID_HEADER) or "ANONYMOUS"


def _trace_id() -> str:
    trace_id = request.headers.get("X-Request-ID") or "NO_SESSION"
    if len(trace_id) > 20:
        trace_id = trace_id[:8] + "..."
    return trace_id


def init_audit_middleware(app: Flask):
    """
    Registra hooks para auditoría de requests y responses.
    Estándar: USER|ACTION|TYPE|CODE|RETVAL|SESSION|TIME
    """

    @app.before_request
    def start_timer():
        g.start_time = time.time()

    @app.after_request
    def log_request(response: Response):
        action = f"{request.method} {request.path}"

        duration = 0
        if hasattr(g, "start_time"):
            duration = int((time.time() - g.start_time) * 1000)

        status_code = response.status_code
        content_length = 0
        if not response.direct_passthrough:
            content_length = response.content_length or len(response.get_data())

        log_line = (
            f"{_request_user()}|{action}|RESPONSE|{status_code}|{content_length} bytes"
            f"|{_trace_id()}|{duration}ms"
        )

        # Nivel de log: Error si 5xx, Warn si 4xx, Info si 2xx/3xx
        if status_code >= 500:
            logger.error(log_line)
        elif status_code >= 400:
            logger.warning(log_line)
        else:
            logger.info(log_line)

        return response


def audit_action(action_name: str, details: str = "", status: str = "OK"):
    """
    Registra una acción interna de negocio para trazabilidad profunda.
    Usa el mismo estándar con TYPE forzado a 'INTERNAL'.
    """
    try:
        user_id = _request_user()
        session_trace_id = _trace_id()
        duration = 0
        if hasattr(g, "start_time"):
            duration = int((time.time() - g.start_time) * 1000)
    except RuntimeError:
        # Fuera de un request (tareas en segundo plano, scripts)
        user_id = "SYSTEM"
        session_trace_id = "BACKGROUND"
        duration = 0

    logger.info(
        f"{user_id}|{action_name}|INTERNAL|{status}|{details}|{session_trace_id}|{duration}ms"
    )
