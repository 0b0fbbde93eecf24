# backend/matmx/routes/system.py
"""
System health and stored-file endpoints.
"""

import time
from flask import Blueprint, current_app, g, send_from_directory
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import User
from ..services import attachment_service
from ..decorators import require_auth
from matmx.time_utils import utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        user_count = db.session.query(User).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "users": user_count,
            }
        }
    except SQLAlchemyError:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


@system_bp.get("/health")
def health():
    """
    Health check endpoint.

    Returns:
    - 200: database reachable
    - 503: database unreachable
    """
    database_health = check_database_health()
    healthy = database_health["status"] == "healthy"

    response = {
        "status": "healthy" if healthy else "unhealthy",
        "timestamp": utcnow().isoformat() + "Z",
        "checks": {
            "database": database_health,
        }
    }

    return response, 200 if healthy else 503


@system_bp.get("/uploads/<path:stored_name>")
@require_auth
def download_attachment(stored_name: str):
    """
    Serve a stored attachment. Access follows the owning quote or order.
    """
    attachment = attachment_service.get_attachment_by_stored_name(
        stored_name=stored_name,
        actor=g.current_user,
    )
    return send_from_directory(
        attachment_service.upload_folder(),
        attachment.stored_name,
        as_attachment=True,
        download_name=attachment.filename,
    )
