# Overview: Domain exception to JSON error response mapping.

from flask import current_app, jsonify

from .services.fabrication_service import ServiceRequestError
from .services.line_item_service import LineItemError
from .services.notification_service import NotificationError
from .services.order_service import OrderError
from .services.permission_service import PermissionDeniedError
from .validation import ValidationError


# Errors a client can act on. Anything else is a 500.
DOMAIN_ERRORS = (
    OrderError,
    LineItemError,
    ServiceRequestError,
    NotificationError,
    PermissionDeniedError,
    ValidationError,
)


def _status_for(exc: Exception) -> int:
    if isinstance(exc, PermissionDeniedError):
        return 403
    if isinstance(exc, ValidationError):
        return 422
    return getattr(exc, "http_status", 400)


def error_response(exc: Exception):
    """{"error", "code", "details"} body with the status the error maps to."""
    return jsonify({
        "error": str(exc),
        "code": getattr(exc, "code", type(exc).__name__),
        "details": getattr(exc, "details", {}) or {},
    }), _status_for(exc)


def internal_error(action: str):
    """Log the active exception with traceback and hide it from the client."""
    current_app.logger.exception("Failed to %s", action)
    return jsonify({"error": "Internal server error", "code": "InternalError", "details": {}}), 500
