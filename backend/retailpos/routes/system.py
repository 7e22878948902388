# backend/retailpos/routes/system.py
"""
System health endpoint.

Reports database connectivity for load balancers and deployment checks.
"""

import time
from flask import Blueprint, current_app, jsonify
from ..extensions import db
from ..models import Product, Sale
from retailpos.time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    """
    Check database connectivity and basic operations.

    Returns dict with status and details.
    """
    start_time = time.time()
    try:
        product_count = db.session.query(Product).count()
        sale_count = db.session.query(Sale).count()

        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "products": product_count,
                "sales": sale_count,
            }
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error"
        }


@system_bp.get("/api/health")
def health():
    database = check_database_health()
    status_code = 200 if database["status"] == "healthy" else 503
    return jsonify({
        "status": database["status"],
        "time": to_utc_z(utcnow()),
        "database": database,
    }), status_code
