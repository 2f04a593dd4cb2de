"""
Billing error taxonomy.

Validation errors are rejected before any write; concurrency errors ask the
caller to refetch the bill and retry; authorization errors are final for the
request; store errors are safe to retry blindly because every operation runs in
a single transaction.
"""

from __future__ import annotations

from collections.abc import Callable
from functools import wraps
from http import HTTPStatus
from typing import Any, TypeVar

from sqlalchemy.exc import DBAPIError, IntegrityError, OperationalError

F = TypeVar("F", bound=Callable[..., Any])


class BillingError(Exception):
    """Base class for every error the billing core reports to callers."""

    code = "BILL_000"
    http_status = HTTPStatus.BAD_REQUEST
    retryable = False
    refetch_bill = False
    default_message = "Error de facturación"

    def __init__(self, message: str | None = None, **details: Any):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message
        self.details = details

    def flags(self) -> dict[str, Any]:
        """Fields telling a terminal how to recover."""
        return {
            "code": self.code,
            "retryable": self.retryable,
            "refetch_bill": self.refetch_bill,
        }


# Validation -----------------------------------------------------------------


class EmptySelection(BillingError):
    code = "BILL_001"
    default_message = "No se seleccionó ningún elemento para pagar"


class InvalidCustomerCount(BillingError):
    code = "BILL_002"
    default_message = "Número de comensales inválido"


class UnknownLine(BillingError):
    code = "BILL_003"
    default_message = "La selección contiene líneas que no pertenecen a la cuenta"
    refetch_bill = True


class ZeroAmountSelection(BillingError):
    code = "BILL_004"
    default_message = "La selección no tiene importe; cobre la cuenta completa"


# Concurrency ----------------------------------------------------------------


class StaleItem(BillingError):
    code = "BILL_010"
    http_status = HTTPStatus.CONFLICT
    retryable = True
    refetch_bill = True
    default_message = "La cuenta cambió en otro terminal; actualice y vuelva a intentar"


class SessionAlreadyActive(BillingError):
    code = "SESSION_010"
    http_status = HTTPStatus.CONFLICT
    retryable = True
    refetch_bill = True
    default_message = "La mesa ya tiene una sesión abierta"


# Authorization --------------------------------------------------------------


class PermissionDenied(BillingError):
    code = "PERM_001"
    http_status = HTTPStatus.FORBIDDEN
    default_message = "No tiene permiso para realizar esta acción"


# Lifecycle ------------------------------------------------------------------


class SessionNotFound(BillingError):
    code = "SESSION_001"
    http_status = HTTPStatus.NOT_FOUND
    default_message = "Sesión no encontrada"


class TableNotFound(BillingError):
    code = "TABLE_001"
    http_status = HTTPStatus.NOT_FOUND
    default_message = "Mesa no encontrada"


class SessionAlreadyClosed(BillingError):
    code = "SESSION_002"
    http_status = HTTPStatus.CONFLICT
    refetch_bill = True
    default_message = "La sesión ya está cerrada"


class OutstandingBalance(BillingError):
    code = "SESSION_003"
    http_status = HTTPStatus.CONFLICT
    refetch_bill = True
    default_message = "La cuenta todavía tiene saldo pendiente"


# Store ----------------------------------------------------------------------


class StoreUnavailable(BillingError):
    code = "SYSTEM_002"
    http_status = HTTPStatus.SERVICE_UNAVAILABLE
    retryable = True
    default_message = "Base de datos no disponible; vuelva a intentar"


def translate_store_errors(func: F) -> F:
    """
    Report connection loss and timeouts as ``StoreUnavailable``.

    Integrity violations are left alone: services map the ones they expect to a
    concurrency error themselves.
    """

    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except IntegrityError:
            raise
        except (OperationalError, DBAPIError) as exc:
            raise StoreUnavailable(detail=str(exc.orig or exc)) from exc

    return wrapper  # type: ignore[return-value]
