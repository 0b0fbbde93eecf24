# Overview: Flask API routes for CRM customer operations; parses input and returns JSON responses.

# backend/matmx/routes/customers.py
"""
CRM customer routes.

SECURITY: All routes require authentication.
- Role gates come from the policy table via @require_permission
- Ownership gates (customer assignment) are applied in customer_service;
  super_admin bypasses them
"""

from flask import Blueprint, request, jsonify, g

from ..models import Customer
from ..services import audit_service, customer_service
from ..validation import ModelValidationPolicy, validate_payload
from ..decorators import require_auth, require_permission

CUSTOMER_POLICY = ModelValidationPolicy(
    writable_fields={"name", "company", "email", "phone", "status", "notes"},
    required_on_create={"name"},
)

customers_bp = Blueprint("customers", __name__, url_prefix="/api/crm")


@customers_bp.get("")
@require_auth
@require_permission("VIEW_CUSTOMERS")
def list_customers_route():
    """
    List customers visible to the caller, newest first.

    Each row carries current_stage and the assigned users.
    """
    return jsonify(customer_service.list_customers(g.current_user))


@customers_bp.get("/search")
@require_auth
@require_permission("VIEW_CUSTOMERS")
def search_customers_route():
    term = request.args.get("search", "")
    return jsonify(customer_service.search_customers(g.current_user, term))


@customers_bp.get("/<int:customer_id>")
@require_auth
@require_permission("VIEW_CUSTOMERS")
def get_customer_route(customer_id: int):
    return jsonify(customer_service.get_customer_detail(g.current_user, customer_id))


@customers_bp.post("")
@require_auth
@require_permission("CREATE_CUSTOMER")
def create_customer_route():
    """
    Create a customer. The caller is assigned to it automatically.

    Request body:
    {
        "name": "Acme Corp",          (required)
        "company": "Acme",
        "email": "buyer@acme.test",
        "phone": "555-0100",
        "status": "lead",             (default)
        "notes": "..."
    }
    """
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=False)

    customer = customer_service.create_customer(patch=patch, actor=g.current_user)
    return jsonify(customer_service.get_customer_detail(g.current_user, customer.id)), 201


@customers_bp.put("/<int:customer_id>")
@require_auth
@require_permission("EDIT_CUSTOMER")
def update_customer_route(customer_id: int):
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Customer, payload=payload, policy=CUSTOMER_POLICY, partial=True)

    customer_service.update_customer(customer_id=customer_id, patch=patch, actor=g.current_user)
    return jsonify(customer_service.get_customer_detail(g.current_user, customer_id))


@customers_bp.delete("/<int:customer_id>")
@require_auth
@require_permission("DELETE_CUSTOMER")
def delete_customer_route(customer_id: int):
    """
    Delete a customer with its tasks, logs, assignments and pipeline history.

    Customers that have quotes or orders return 409.
    """
    customer_service.delete_customer(customer_id=customer_id, actor=g.current_user)
    return jsonify({"message": "Customer deleted"})


# =============================================================================
# ASSIGNMENTS
# =============================================================================

@customers_bp.post("/<int:customer_id>/assign")
@require_auth
@require_permission("ASSIGN_CUSTOMERS")
def assign_customer_route(customer_id: int):
    """
    Replace the assignment set.

    Request body:
    {
        "user_ids": [2, 5]
    }
    """
    data = request.get_json(silent=True) or {}
    assignments = customer_service.assign_customer(
        customer_id=customer_id,
        user_ids=data.get("user_ids"),
        actor=g.current_user,
    )
    return jsonify({"assignments": [a.to_dict() for a in assignments]})


@customers_bp.post("/<int:customer_id>/unassign")
@require_auth
@require_permission("ASSIGN_CUSTOMERS")
def unassign_customer_route(customer_id: int):
    data = request.get_json(silent=True) or {}
    user_id = data.get("user_id")
    if not isinstance(user_id, int) or isinstance(user_id, bool):
        return jsonify({"error": "user_id must be an integer", "code": "invalid_input"}), 400

    customer_service.unassign_customer(customer_id=customer_id, user_id=user_id, actor=g.current_user)
    return jsonify({"message": "User unassigned"})


# =============================================================================
# LOGS AND INTERACTIONS
# =============================================================================

@customers_bp.get("/<int:customer_id>/logs")
@require_auth
@require_permission("VIEW_CRM_LOGS")
def crm_logs_route(customer_id: int):
    customer_service.get_customer(customer_id)
    logs = audit_service.list_crm_logs(customer_id)
    return jsonify([entry.to_dict() for entry in logs])


@customers_bp.get("/<int:customer_id>/interactions")
@require_auth
@require_permission("LOG_INTERACTIONS")
def list_interactions_route(customer_id: int):
    entries = customer_service.list_interactions(customer_id=customer_id, actor=g.current_user)
    return jsonify([e.to_dict() for e in entries])


@customers_bp.post("/<int:customer_id>/interactions")
@require_auth
@require_permission("LOG_INTERACTIONS")
def add_interaction_route(customer_id: int):
    """
    Record a call, email, meeting, etc.

    Request body:
    {
        "type": "call",
        "note": "Asked for pricing on mats"
    }
    """
    data = request.get_json(silent=True) or {}
    entry = customer_service.add_interaction(
        customer_id=customer_id,
        actor=g.current_user,
        type=data.get("type"),
        note=data.get("note"),
    )
    return jsonify(entry.to_dict()), 201
