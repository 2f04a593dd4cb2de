"""
Centralized error handlers for Flask applications.
"""

from http import HTTPStatus

from flask import Flask, jsonify
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.exc import SQLAlchemyError
from werkzeug.exceptions import HTTPException

from conto_shared.error_catalog import describe
from conto_shared.errors import BillingError, StoreUnavailable
from conto_shared.logging_config import get_logger
from conto_shared.serializers import error_response

logger = get_logger(__name__)


def register_error_handlers(app: Flask) -> None:
    """
    Register centralized error handlers for the Flask app.

    Args:
        app: Flask application instance
    """

    @app.errorhandler(BillingError)
    def handle_billing_error(e: BillingError):
        """Handle billing errors raised by the services."""
        if e.http_status >= HTTPStatus.INTERNAL_SERVER_ERROR:
            logger.error(f"Billing error {e.code}: {e.message}")
        else:
            logger.warning(f"Billing error {e.code}: {e.message}")
        return jsonify(
            error_response(
                e.message, e.details, solution=describe(e.code)["solution"], **e.flags()
            )
        ), e.http_status

    @app.errorhandler(PydanticValidationError)
    def handle_pydantic_validation_error(e: PydanticValidationError):
        """Handle Pydantic validation errors."""
        logger.warning(f"Pydantic validation error: {e}")
        return jsonify(
            error_response(
                "Datos inválidos",
                {"errors": e.errors(include_url=False, include_context=False)},
                code="VALIDATION_001",
                retryable=False,
                refetch_bill=False,
            )
        ), HTTPStatus.BAD_REQUEST

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(e: SQLAlchemyError):
        """Handle database errors that escaped the services."""
        logger.error(f"Database error: {e}", exc_info=True)
        unavailable = StoreUnavailable()
        return jsonify(
            error_response(unavailable.message, **unavailable.flags())
        ), unavailable.http_status

    @app.errorhandler(HTTPException)
    def handle_http_exception(e: HTTPException):
        """Handle HTTP exceptions from Werkzeug."""
        logger.warning(f"HTTP exception {e.code}: {e.description}")
        return jsonify(error_response(e.description or str(e))), e.code

    @app.errorhandler(Exception)
    def handle_generic_exception(e: Exception):
        """Handle any unhandled exceptions."""
        logger.error(f"Unhandled exception: {e}", exc_info=True)
        return jsonify(
            error_response("Error interno del servidor", code="SYSTEM_001")
        ), HTTPStatus.INTERNAL_SERVER_ERROR
