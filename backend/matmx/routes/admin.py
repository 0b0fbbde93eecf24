# Overview: Flask API routes for admin operations; parses input and returns JSON responses.

# backend/matmx/routes/admin.py
"""
Admin routes for user management.

Provides endpoints for:
- User management (list, create, update, delete)
- Password reset
- Activation / deactivation
- Read-only permission catalog and role grants

All endpoints require authentication and MANAGE_USERS (super_admin).
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..errors import NotFoundError
from ..permissions import (
    DEFAULT_ROLE_PERMISSIONS,
    PermissionCategory,
    get_all_permission_codes,
    get_permission_definition,
    get_permissions_by_category,
    validate_permission_code,
)
from ..services import auth_service
from ..decorators import require_auth, require_permission

admin_bp = Blueprint("admin", __name__, url_prefix="/api/admin")


# =============================================================================
# USER MANAGEMENT
# =============================================================================

@admin_bp.get("/users")
@require_auth
@require_permission("MANAGE_USERS")
def list_users():
    """
    List all users, active and inactive.

    Query params:
    - include_inactive: bool (default true)
    """
    include_inactive = request.args.get("include_inactive", "true").lower() == "true"
    users = auth_service.list_users()
    if not include_inactive:
        users = [u for u in users if u.is_active]
    return jsonify({"users": [u.to_dict() for u in users], "count": len(users)})


@admin_bp.post("/users")
@require_auth
@require_permission("MANAGE_USERS")
def create_user():
    """
    Create a new user.

    Request body:
    {
        "name": "Jane Doe",
        "email": "jane@example.com",
        "password": "Password123!",
        "role": "sales_rep"
    }
    """
    data = request.get_json(silent=True) or {}

    user = auth_service.create_user(
        name=data.get("name"),
        email=data.get("email"),
        password=data.get("password"),
        role=data.get("role"),
    )

    current_app.logger.info("User %s created by %s", user.id, g.current_user.id)
    return jsonify({"user": user.to_dict()}), 201


@admin_bp.patch("/users/<int:user_id>")
@require_auth
@require_permission("MANAGE_USERS")
def update_user(user_id: int):
    """Update name, email or role."""
    data = request.get_json(silent=True) or {}
    user = auth_service.update_user(user_id, data)
    return jsonify({"user": user.to_dict()})


@admin_bp.delete("/users/<int:user_id>")
@require_auth
@require_permission("MANAGE_USERS")
def delete_user(user_id: int):
    auth_service.delete_user(user_id, actor=g.current_user)
    current_app.logger.info("User %s deleted by %s", user_id, g.current_user.id)
    return jsonify({"message": "User deleted"})


@admin_bp.patch("/users/<int:user_id>/password")
@require_auth
@require_permission("MANAGE_USERS")
def reset_password(user_id: int):
    """
    Set a new password.

    Request body:
    {
        "password": "NewPassword123!"
    }
    """
    data = request.get_json(silent=True) or {}
    auth_service.reset_password(user_id, data.get("password"))
    return jsonify({"message": "Password updated"})


@admin_bp.patch("/users/<int:user_id>/activate")
@require_auth
@require_permission("MANAGE_USERS")
def activate_user(user_id: int):
    user = auth_service.set_user_active(user_id, True, actor=g.current_user)
    return jsonify({"user": user.to_dict()})


@admin_bp.patch("/users/<int:user_id>/deactivate")
@require_auth
@require_permission("MANAGE_USERS")
def deactivate_user(user_id: int):
    """
    Deactivate a user. Existing tokens stop working on the next request.
    """
    user = auth_service.set_user_active(user_id, False, actor=g.current_user)
    return jsonify({"user": user.to_dict()})


# =============================================================================
# PERMISSION CATALOG
# =============================================================================

@admin_bp.get("/permissions")
@require_auth
@require_permission("MANAGE_USERS")
def list_permissions():
    """
    List all permission codes.

    Query params:
    - category: str - filter by category
    """
    category = request.args.get("category")
    if category:
        codes = [perm[0] for perm in get_permissions_by_category(category)]
    else:
        codes = get_all_permission_codes()
    return jsonify({"permissions": [get_permission_definition(code) for code in sorted(codes)]})


@admin_bp.get("/permissions/categories")
@require_auth
@require_permission("MANAGE_USERS")
def list_permission_categories():
    categories = sorted(
        value for name, value in vars(PermissionCategory).items() if not name.startswith("_")
    )
    return jsonify({"categories": categories})


@admin_bp.get("/permissions/<permission_code>/roles")
@require_auth
@require_permission("MANAGE_USERS")
def roles_for_permission(permission_code: str):
    """Roles whose default grant set includes the permission."""
    if not validate_permission_code(permission_code):
        raise NotFoundError("Permission not found")
    roles = sorted(role for role, codes in DEFAULT_ROLE_PERMISSIONS.items() if permission_code in codes)
    return jsonify({"permission": get_permission_definition(permission_code), "roles": roles})
