# backend/orderdesk/routes/notifications.py
"""
Notification failure monitor.

Quote and cancellation emails are sent after the order transition commits;
deliveries that failed stay FAILED here until retried.
"""

from flask import Blueprint, request, jsonify

from ..api_errors import DOMAIN_ERRORS, error_response, internal_error
from ..decorators import require_auth, require_permission
from ..permissions import NOTIFICATIONS_READ, NOTIFICATIONS_RETRY
from ..services import notification_service
from ..validation import ValidationError, parse_int


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("/failed")
@require_auth
@require_permission(NOTIFICATIONS_READ)
def list_failed_route():
    """Query params: limit (default 200, max 500)."""
    try:
        limit = parse_int(request.args.get("limit", "200"), "limit")
        if limit < 1 or limit > 500:
            raise ValidationError("limit must be between 1 and 500")
        logs = notification_service.list_failed_notifications(limit=limit)
        return jsonify({"notifications": [log.to_dict() for log in logs]}), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("list failed notifications")


@notifications_bp.post("/<int:log_id>/retry")
@require_auth
@require_permission(NOTIFICATIONS_RETRY)
def retry_route(log_id: int):
    """
    Re-attempt one FAILED delivery.

    Returns 200 with the log whether the retry succeeded (SENT) or failed
    again (FAILED); 404 for unknown logs, 409 for logs not in FAILED.
    """
    try:
        log = notification_service.retry_notification(log_id)
        return jsonify({"notification": log.to_dict()}), 200
    except DOMAIN_ERRORS as e:
        return error_response(e)
    except Exception:
        return internal_error("retry notification")
