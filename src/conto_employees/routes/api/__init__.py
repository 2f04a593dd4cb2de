"""
Employees API - Modular Blueprint Structure

Each sub-blueprint handles one resource of the table billing flow.
"""

from flask import Blueprint

# Create main API blueprint
api_bp = Blueprint("api", __name__)

from .sessions import sessions_bp  # noqa: E402
from .tables import tables_bp  # noqa: E402

# Register sub-blueprints
api_bp.register_blueprint(sessions_bp)
api_bp.register_blueprint(tables_bp)


# Health check endpoint
@api_bp.get("/health")
def health_check():
    """Simple health check endpoint"""
    return {"status": "ok", "service": "conto-employees"}, 200


__all__ = ["api_bp"]
