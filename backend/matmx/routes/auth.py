# Overview: Flask API routes for auth operations; parses input and returns JSON responses.

# backend/matmx/routes/auth.py
"""
Authentication API routes

SECURITY FEATURES:
- bcrypt password verification
- Signed, expiring session tokens (Bearer header or HttpOnly cookie)
- Failed logins logged as security events for the audit trail
- Deactivated accounts are refused even with a correct password
"""

from flask import Blueprint, request, jsonify, current_app, g

from ..services import auth_service
from ..services import session_service
from ..services import permission_service
from ..decorators import require_auth


auth_bp = Blueprint("auth", __name__, url_prefix="/api")


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Returns user info and session token on success. The token is also set as
    an HttpOnly cookie for browser clients.
    """
    data = request.get_json(silent=True) or {}
    email = data.get("email")
    password = data.get("password")

    if not email or not password:
        return jsonify({"error": "email and password required", "code": "invalid_input"}), 400

    user = auth_service.authenticate(email, password)

    if not user:
        current_app.logger.warning("Failed login for %r from %s", email, request.remote_addr)
        permission_service.log_security_event(
            user_id=None,
            event_type="LOGIN_FAILED",
            success=False,
            resource=request.path,
            reason="Invalid credentials",
            ip_address=request.remote_addr,
            user_agent=request.headers.get("User-Agent"),
        )
        return jsonify({"error": "Invalid credentials", "code": "unauthorized"}), 401

    token = session_service.create_token(user)

    response = jsonify({"token": token, "user": user.to_dict()})
    response.set_cookie(
        current_app.config["AUTH_COOKIE_NAME"],
        token,
        httponly=True,
        secure=current_app.config.get("AUTH_COOKIE_SECURE", False),
        samesite="Lax",
        max_age=current_app.config["JWT_EXPIRES_MINUTES"] * 60,
    )
    return response


@auth_bp.post("/logout")
def logout_route():
    """
    Clear the auth cookie. Tokens are stateless; a bearer client simply drops its copy.
    """
    response = jsonify({"message": "Logged out"})
    response.delete_cookie(current_app.config["AUTH_COOKIE_NAME"])
    return response


@auth_bp.get("/me")
@require_auth
def me_route():
    user = g.current_user
    data = user.to_dict()
    data["permissions"] = sorted(permission_service.get_user_permissions(user))
    return jsonify({"user": data})
