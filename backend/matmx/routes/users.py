# Overview: Flask API routes for the staff directory (used by assignment pickers).

from flask import Blueprint, request, jsonify

from ..services import auth_service
from ..decorators import require_auth, require_permission

users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@require_auth
@require_permission("VIEW_USERS")
def list_users_route():
    users = auth_service.list_users()
    return jsonify([u.to_directory_dict() for u in users])


@users_bp.get("/roles")
@require_auth
@require_permission("VIEW_USERS")
def list_users_by_role_route():
    """Active users holding ?role=<role>."""
    role = request.args.get("role")
    if not role:
        return jsonify({"error": "role is required", "code": "invalid_input"}), 400
    users = auth_service.list_users_by_role(role)
    return jsonify([u.to_directory_dict() for u in users])
