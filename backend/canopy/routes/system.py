# backend/canopy/routes/system.py
"""
System health and version endpoints.
"""

import sys
import time

from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import InventoryType, Location
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)

API_VERSION = "1.0.0"


def check_database_health() -> dict:
    """
    Check database connectivity and that reference data is seeded.

    Missing inventory types leave the lifecycle unusable, so they report
    as degraded rather than healthy.
    """
    start_time = time.time()
    try:
        location_count = db.session.query(Location).count()
        type_count = db.session.query(InventoryType).filter_by(is_active=True).count()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "error": "Database error",
        }

    elapsed_ms = (time.time() - start_time) * 1000
    result = {
        "status": "healthy",
        "latency_ms": round(elapsed_ms, 2),
        "details": {
            "locations": location_count,
            "inventory_types": type_count,
        },
    }
    if type_count == 0:
        result["status"] = "degraded"
        result["warning"] = "Inventory types not seeded (run: flask system seed-types)"
    return result


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: database unreachable
    """
    database_health = check_database_health()
    http_status = 503 if database_health["status"] == "unhealthy" else 200

    return {
        "status": database_health["status"],
        "timestamp": to_utc_z(utcnow()),
        "checks": {"database": database_health},
    }, http_status


@system_bp.get("/version")
def version():
    env = "production" if not current_app.debug else "development"
    return {
        "api_version": API_VERSION,
        "environment": env,
        "python_version": sys.version.split()[0],
        "server_time": to_utc_z(utcnow()),
    }
