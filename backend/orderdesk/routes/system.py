# backend/orderdesk/routes/system.py
"""
System health endpoint.

Unauthenticated; reports database reachability and the size of the
notification failure backlog.
"""

import time
from flask import Blueprint, current_app
from ..extensions import db
from ..models import NotificationLog, Order, Permission
from orderdesk.time_utils import utcnow

system_bp = Blueprint("system", __name__, url_prefix="/api")


def check_database_health() -> dict:
    start_time = time.time()
    try:
        order_count = db.session.query(Order).count()
        permission_count = db.session.query(Permission).count()
        elapsed_ms = (time.time() - start_time) * 1000

        return {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {
                "orders": order_count,
                "permissions": permission_count,
            },
        }
    except Exception:
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_notification_health() -> dict:
    """Degraded while any delivery sits in FAILED."""
    try:
        failed = db.session.query(NotificationLog).filter_by(status="FAILED").count()
    except Exception:
        current_app.logger.exception("Notification health check failed")
        return {"status": "unhealthy", "error": "Database error"}
    return {
        "status": "degraded" if failed else "healthy",
        "details": {"failed": failed},
    }


@system_bp.get("/health")
def health():
    """
    Returns:
    - 200: healthy or degraded
    - 503: database unreachable
    """
    start_time = time.time()

    database_health = check_database_health()
    notification_health = check_notification_health()

    all_checks = [database_health, notification_health]
    if any(check["status"] == "unhealthy" for check in all_checks):
        overall_status, http_status = "unhealthy", 503
    elif any(check["status"] == "degraded" for check in all_checks):
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": utcnow().isoformat() + "Z",
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": {
            "database": database_health,
            "notifications": notification_health,
        },
    }, http_status
