"""
Sistema de permisos para cobros y cierre de mesas.

Los permisos se resuelven una vez por request y viajan como capacidad
(``Actor``) hacia los servicios, en lugar de consultarse en un flag global.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum

from conto_shared.constants import Roles
from conto_shared.errors import PermissionDenied

logger = logging.getLogger(__name__)


class Permission(str, Enum):
    """Permisos disponibles en el motor de cuentas"""

    BILLS_VIEW = "bills:view"
    PAYMENTS_PROCESS = "payments:process"
    SESSIONS_OPEN = "sessions:open"
    SESSIONS_CLOSE = "sessions:close"
    SESSIONS_FORCE_CLOSE = "sessions:force_close"


# Mapeo de roles a permisos
ROLE_PERMISSIONS: dict[str, set[Permission]] = {
    Roles.OWNER.value: set(Permission),
    Roles.ADMIN.value: set(Permission),
    Roles.CASHIER.value: {
        Permission.BILLS_VIEW,
        Permission.PAYMENTS_PROCESS,
        Permission.SESSIONS_OPEN,
        Permission.SESSIONS_CLOSE,
    },
    Roles.WAITER.value: {
        Permission.BILLS_VIEW,
        Permission.SESSIONS_OPEN,
        Permission.SESSIONS_CLOSE,
    },
    Roles.CHEF.value: set(),
}

# Granted to waiters only when the restaurant enables waiter payments.
WAITER_PAYMENT_PERMISSIONS = {Permission.PAYMENTS_PROCESS}


@dataclass(frozen=True)
class Actor:
    """The employee on whose behalf a billing operation runs."""

    role: str
    employee_id: int | None = None
    permissions: frozenset[Permission] = field(default_factory=frozenset)

    def can(self, permission: Permission) -> bool:
        return permission in self.permissions

    def require(self, permission: Permission) -> None:
        if not self.can(permission):
            logger.warning(
                "Permission denied",
                extra={
                    "employee_id": self.employee_id,
                    "role": self.role,
                    "permission": permission.value,
                },
            )
            raise PermissionDenied(permission=permission.value, role=self.role)


def get_permissions_for_role(role: str, allow_waiter_payments: bool = False) -> set[Permission]:
    permissions = set(ROLE_PERMISSIONS.get(role, set()))
    if role == Roles.WAITER.value and allow_waiter_payments:
        permissions |= WAITER_PAYMENT_PERMISSIONS
    return permissions


def build_actor(role: str, employee_id: int | None = None, restaurant=None) -> Actor:
    """
    Resolve the capability set for an employee.

    Args:
        role: Role code as sent by the authentication layer (case-insensitive)
        employee_id: Employee identifier used for auditing
        restaurant: Restaurant whose ``allow_waiter_payments`` flag applies

    Returns:
        Actor carrying the effective permissions
    """
    normalized = (role or "").strip().lower()
    allow_waiter_payments = bool(getattr(restaurant, "allow_waiter_payments", False))
    return Actor(
        role=normalized,
        employee_id=employee_id,
        permissions=frozenset(get_permissions_for_role(normalized, allow_waiter_payments)),
    )
