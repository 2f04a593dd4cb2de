"""
Factory for the staff-terminal Flask API.

Authentication happens upstream; the identity of the employee arrives in the
``X-Employee-Id`` / ``X-Employee-Role`` headers.
"""

from __future__ import annotations

import logging
import os

from flask import Flask
from flask_cors import CORS

from conto_shared.audit_middleware import init_audit_middleware
from conto_shared.config import AppConfig, load_config, validate_required_env_vars
from conto_shared.db import dispose_engine, init_db, init_engine
from conto_shared.error_handlers import register_error_handlers
from conto_shared.logging_config import configure_logging
from conto_shared.models import Base

logger = logging.getLogger(__name__)

DEFAULT_DEV_ORIGINS = [
    "http://localhost:6081",
    "http://localhost:6080",
    "http://127.0.0.1:6081",
    "http://127.0.0.1:6080",
]


def create_app(config: AppConfig | None = None) -> Flask:
    """
    Build the Flask application used by waiter devices and the host station.
    """
    if config is None:
        # Validate all required environment variables (fail-fast)
        validate_required_env_vars(skip_in_debug=True)
        config = load_config("conto-employees")

    configure_logging(config.app_name, config.log_level)

    app = Flask(__name__)
    app.config["SECRET_KEY"] = config.secret_key
    app.config["APP_NAME"] = config.app_name
    app.config["RESTAURANT_NAME"] = config.restaurant_name
    app.config["RESTAURANT_SLUG"] = config.restaurant_slug
    app.config["CURRENCY"] = config.currency
    app.config["CURRENCY_SYMBOL"] = config.currency_symbol
    app.config["DEBUG_MODE"] = config.debug_mode
    app.json.sort_keys = False

    # A rebuilt app may point at another database
    dispose_engine()
    init_engine(config)
    init_db(Base.metadata)

    init_audit_middleware(app)
    register_error_handlers(app)

    from conto_employees.routes.api import api_bp

    app.register_blueprint(api_bp, url_prefix="/api")

    allowed_origins = [
        origin.strip()
        for origin in os.getenv("CORS_ALLOWED_ORIGINS", "").split(",")
        if origin.strip()
    ]
    if config.debug_mode or not allowed_origins:
        allowed_origins = DEFAULT_DEV_ORIGINS
    CORS(
        app,
        resources={r"/api/*": {"origins": allowed_origins, "supports_credentials": True}},
        supports_credentials=True,
    )

    logger.info(
        "Conto employees API ready",
        extra={"restaurant": config.restaurant_name, "debug_mode": config.debug_mode},
    )
    return app
