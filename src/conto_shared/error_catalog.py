"""
Catálogo centralizado de errores controlados del motor de cuentas.
Usado para documentación y referencia en la interfaz administrativa.
"""

from conto_shared import errors

ERROR_CATALOG = {
    errors.EmptySelection.code: {
        "title": "Selección Vacía",
        "description": "Se intentó registrar un pago sin seleccionar platos ni coperti.",
        "http_code": 400,
        "solution": "Seleccionar al menos un elemento de la cuenta.",
    },
    errors.InvalidCustomerCount.code: {
        "title": "Comensales Inválidos",
        "description": (
            "El número de comensales es menor que 1 o menor que los cargos por persona "
            "ya cobrados."
        ),
        "http_code": 400,
        "solution": "Corregir el número de comensales.",
    },
    errors.UnknownLine.code: {
        "title": "Línea Desconocida",
        "description": "La selección contiene identificadores que no existen en la cuenta.",
        "http_code": 400,
        "solution": "Actualizar la cuenta y seleccionar de nuevo.",
    },
    errors.ZeroAmountSelection.code: {
        "title": "Selección Sin Importe",
        "description": (
            "Solo se seleccionaron líneas a precio cero (platos incluidos en el All You Can "
            "Eat); el total de la cuenta no bajaría."
        ),
        "http_code": 400,
        "solution": "Añadir líneas con importe o cobrar la cuenta completa.",
    },
    errors.StaleItem.code: {
        "title": "Cuenta Desactualizada",
        "description": (
            "Otro terminal modificó o cobró alguno de los elementos seleccionados "
            "mientras se preparaba el pago, o los precios cambiaron desde que se mostró "
            "la cuenta. No se registró ningún cambio."
        ),
        "http_code": 409,
        "solution": "Actualizar la cuenta y repetir el cobro.",
    },
    errors.SessionAlreadyActive.code: {
        "title": "Mesa Ocupada",
        "description": "Otro terminal ya abrió una sesión para esta mesa.",
        "http_code": 409,
        "solution": "Actualizar el plano de mesas y usar la sesión existente.",
    },
    errors.PermissionDenied.code: {
        "title": "Acceso Denegado",
        "description": "El rol del empleado no permite cobrar o cerrar mesas.",
        "http_code": 403,
        "solution": "Solicitar al responsable que habilite los cobros para meseros.",
    },
    errors.SessionNotFound.code: {
        "title": "Sesión Inexistente",
        "description": "Referencia a una sesión de mesa que no existe.",
        "http_code": 404,
        "solution": "Verificar el identificador de la sesión.",
    },
    errors.TableNotFound.code: {
        "title": "Mesa Inexistente",
        "description": "Referencia a una mesa que no existe.",
        "http_code": 404,
        "solution": "Verificar el identificador de la mesa.",
    },
    errors.SessionAlreadyClosed.code: {
        "title": "Sesión Cerrada",
        "description": "La sesión ya fue cerrada; no admite pagos ni cambios.",
        "http_code": 409,
        "solution": "Abrir una nueva sesión para la mesa.",
    },
    errors.OutstandingBalance.code: {
        "title": "Saldo Pendiente",
        "description": "Se intentó liberar la mesa con importe pendiente de cobro.",
        "http_code": 409,
        "solution": "Cobrar el saldo o usar el cierre sin cobro (auditado).",
    },
    errors.StoreUnavailable.code: {
        "title": "Base de Datos No Disponible",
        "description": "Tiempo de espera o pérdida de conexión. La operación no dejó cambios.",
        "http_code": 503,
        "solution": "Reintentar la operación.",
    },
    "SYSTEM_001": {
        "title": "Error Interno",
        "description": "Excepción no controlada en el servidor (Bug o falla de infraestructura).",
        "http_code": 500,
        "solution": "Revisar logs del servidor.",
    },
}


def describe(code: str) -> dict:
    return ERROR_CATALOG.get(code, ERROR_CATALOG["SYSTEM_001"])
