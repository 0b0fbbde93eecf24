# Overview: Flask API routes for customer tasks; parses input and returns JSON responses.

# backend/matmx/routes/tasks.py
"""
Customer task routes.

Grouped views return folded structures:
- /grouped:   rep -> customers -> open tasks
- /completed: rep -> completed tasks (trailing three months)
"""

from flask import Blueprint, request, jsonify, g

from ..models import CustomerTask
from ..services import task_service
from ..validation import ModelValidationPolicy, validate_payload
from ..decorators import require_auth, require_permission

TASK_POLICY = ModelValidationPolicy(
    writable_fields={"customer_id", "title", "description", "due_date", "assigned_to"},
    required_on_create={"customer_id", "title"},
)

tasks_bp = Blueprint("tasks", __name__, url_prefix="/api/crm/tasks")


def _task_payload(task: CustomerTask) -> dict:
    data = task.to_dict()
    data["customer_name"] = task.customer.name if task.customer else None
    data["assigned_to_name"] = task.assignee.name if task.assignee else None
    return data


@tasks_bp.get("")
@require_auth
@require_permission("MANAGE_TASKS")
def list_open_tasks_route():
    """Open tasks for the caller (all open tasks for super_admin), by due date."""
    return jsonify(task_service.list_open_tasks(g.current_user))


@tasks_bp.post("")
@require_auth
@require_permission("MANAGE_TASKS")
def create_task_route():
    """
    Create a task on a customer the caller can access.

    Request body:
    {
        "customer_id": 1,        (required)
        "title": "Call back",    (required)
        "description": "...",
        "due_date": "2026-11-01",
        "assigned_to": 3         (defaults to the caller)
    }
    """
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=CustomerTask, payload=payload, policy=TASK_POLICY, partial=False)

    task = task_service.create_task(patch=patch, actor=g.current_user)
    return jsonify(_task_payload(task)), 201


@tasks_bp.post("/<int:task_id>/complete")
@require_auth
@require_permission("MANAGE_TASKS")
def complete_task_route(task_id: int):
    task = task_service.complete_task(task_id=task_id, actor=g.current_user)
    return jsonify(_task_payload(task))


@tasks_bp.post("/<int:task_id>/undo")
@require_auth
@require_permission("MANAGE_TASKS")
def reopen_task_route(task_id: int):
    task = task_service.reopen_task(task_id=task_id, actor=g.current_user)
    return jsonify(_task_payload(task))


@tasks_bp.get("/grouped")
@require_auth
@require_permission("MANAGE_TASKS")
def grouped_tasks_route():
    groups = task_service.grouped_open_tasks(g.current_user)
    return jsonify([group.to_dict() for group in groups])


@tasks_bp.get("/completed")
@require_auth
@require_permission("MANAGE_TASKS")
def completed_tasks_route():
    """
    Completed tasks grouped by rep.

    Query params:
    - customerId: int (optional) - restrict to one customer
    """
    customer_id = request.args.get("customerId", type=int)
    groups = task_service.completed_tasks_by_rep(g.current_user, customer_id=customer_id)
    return jsonify([group.to_dict() for group in groups])


@tasks_bp.get("/customer/<int:customer_id>/open")
@require_auth
@require_permission("MANAGE_TASKS")
def customer_open_tasks_route(customer_id: int):
    tasks = task_service.list_customer_open_tasks(customer_id=customer_id, actor=g.current_user)
    return jsonify(tasks)
