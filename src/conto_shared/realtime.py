"""
Realtime manager para notificaciones de cambio de sesión.

Los eventos se persisten en ``conto_realtime_events`` para que los terminales
los consuman mediante polling o streams. Un evento solo indica "algo cambió,
vuelva a pedir la cuenta"; nunca transporta el estado de la cuenta.
"""

import json
import logging
from datetime import datetime
from decimal import Decimal
from typing import Any

from sqlalchemy.exc import SQLAlchemyError

logger = logging.getLogger(__name__)

SESSIONS_CHANGED = "sessions.changed"


class RealtimeManager:
    """
    Publica eventos de cambio después del commit de cada operación.

    Un fallo al publicar se registra y no deshace la operación ya confirmada.
    """

    @staticmethod
    def _serialize_value(value: Any) -> Any:
        if isinstance(value, datetime):
            return value.isoformat()
        if isinstance(value, Decimal):
            return f"{value:.2f}"
        if isinstance(value, (set, tuple, frozenset)):
            return list(value)
        return str(value)

    @classmethod
    def _persist_event(cls, event_type: str, payload: dict[str, Any] | None) -> None:
        from conto_shared.db import get_session
        from conto_shared.models import RealtimeEvent

        payload_json = None
        if payload:
            payload_json = json.dumps(payload, default=cls._serialize_value)

        try:
            with get_session() as session:
                session.add(RealtimeEvent(event_type=event_type, payload=payload_json))
        except SQLAlchemyError as exc:
            logger.error("Error persisting realtime event '%s': %s", event_type, exc)

    @classmethod
    def emit_session_changed(
        cls, session_id: int, action: str, table_id: int | None = None, **extra_data
    ) -> None:
        """
        Emite un evento de cambio de sesión.

        Se usa tras abrir, cobrar, cambiar comensales o cerrar una mesa.
        """
        payload = {
            "session_id": session_id,
            "table_id": table_id,
            "action": action,
            **extra_data,
        }
        cls._persist_event(SESSIONS_CHANGED, payload)
