# Overview: Request and permission decorators for API routes.

from functools import wraps
from flask import current_app, request, jsonify, g

from .services import session_service, permission_service
from .errors import PermissionDeniedError


def _is_authenticated() -> bool:
    return hasattr(g, 'current_user')


def extract_token() -> str | None:
    """Bearer header first, then the auth cookie set at login."""
    auth_header = request.headers.get("Authorization")
    if auth_header:
        if not auth_header.startswith("Bearer "):
            return None
        return auth_header.split(" ", 1)[1].strip() or None
    return request.cookies.get(current_app.config.get("AUTH_COOKIE_NAME", "token"))


def require_auth(f):
    """
    Require authentication.

    Sets the following Flask g attributes:
    - g.current_user: The authenticated User object
    - g.session_context: The full SessionContext object

    SECURITY: Returns 401 if:
    - No token (header or cookie)
    - Invalid, tampered or expired token
    - User deleted or deactivated since the token was issued
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        token = extract_token()

        if not token:
            return jsonify({"error": "Authentication required", "code": "unauthorized"}), 401

        context = session_service.validate_session(token)

        if not context:
            return jsonify({"error": "Invalid or expired token", "code": "unauthorized"}), 401

        g.current_user = context.user
        g.session_context = context

        return f(*args, **kwargs)

    return decorated_function


def require_permission(permission_code: str):
    """
    Require a specific permission (role gate). Ownership gates run in the services.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            # Ensure @require_auth was called first
            if not _is_authenticated():
                return jsonify({"error": "Authentication required", "code": "unauthorized"}), 401

            # Check permission (denials logged to security_events)
            try:
                permission_service.require_permission(
                    g.current_user,
                    permission_code,
                    resource=request.path,
                    ip_address=request.remote_addr,
                    user_agent=request.headers.get("User-Agent"),
                )
            except PermissionDeniedError as e:
                return jsonify({
                    "error": "Permission denied",
                    "code": "forbidden",
                    "required_permission": permission_code,
                    "message": str(e)
                }), 403

            return f(*args, **kwargs)

        return decorated_function
    return decorator
