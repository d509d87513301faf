"""
System Routes - health check
"""

import structlog
from flask import Blueprint, jsonify
from sqlalchemy import text

from mdchecker import __version__
from mdchecker.db import db
from mdchecker.utils import now_ms

logger = structlog.get_logger("routes.system")

system_bp = Blueprint("system", __name__)


@system_bp.route("/health", methods=["GET"])
def health_check():
    status = {"version": __version__, "timestamp": now_ms(), "database": "healthy"}
    try:
        db.session.execute(text("SELECT 1"))
    except Exception as e:
        logger.error(f"Health check database error: {e}")
        status["database"] = "unhealthy"
        return jsonify({"status": "unhealthy", **status}), 503
    return jsonify({"status": "healthy", **status})
