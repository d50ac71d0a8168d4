# Overview: Request and permission decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

from .services import permission_service, token_service
from .services.permission_service import actor_for_user


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user') and hasattr(g, 'actor')


def require_auth(f):
    """
    Require a valid bearer token.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.actor: Actor carrying the user's capability codes

    SECURITY: Returns 401 if:
    - No Authorization header
    - Unknown, revoked or expired token
    - User account deactivated
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        auth_header = request.headers.get("Authorization")

        if not auth_header or not auth_header.startswith("Bearer "):
            return jsonify({"error": "Authentication required", "code": "AuthenticationRequired", "details": {}}), 401

        token = auth_header.split(" ", 1)[1].strip()
        user = token_service.validate_token(token) if token else None

        if user is None:
            permission_service.log_security_event(
                user_id=None,
                event_type="TOKEN_INVALID",
                success=False,
                resource=request.path,
                action=request.method,
                reason="Invalid or expired token",
                ip_address=request.remote_addr,
            )
            return jsonify({"error": "Invalid or expired token", "code": "InvalidToken", "details": {}}), 401

        g.current_user = user
        g.actor = actor_for_user(user)

        return f(*args, **kwargs)

    return decorated_function


def require_permission(permission_code: str):
    """
    Require a specific capability.

    Services check the same capability again; this only turns a denial
    into an early 403 with a security event.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Ensure @require_auth was called first
            if not _is_authenticated():
                return jsonify({"error": "Authentication required", "code": "AuthenticationRequired", "details": {}}), 401

            if not g.actor.can(permission_code):
                permission_service.log_security_event(
                    user_id=g.current_user.id,
                    event_type="PERMISSION_DENIED",
                    success=False,
                    resource=request.path,
                    action=permission_code,
                    reason=f"Missing capability: {permission_code}",
                    ip_address=request.remote_addr,
                )
                return jsonify({
                    "error": "Permission denied",
                    "code": "PermissionDenied",
                    "details": {"required_permission": permission_code},
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
