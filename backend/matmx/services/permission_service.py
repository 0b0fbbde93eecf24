# Overview: Service-layer operations for permission; the access control guard.

"""
Permission Checking and Security Event Logging

WHY: Enforce role-based access control and create audit trail.
Every denied check is logged for security monitoring.

Two gates, both consulted here and nowhere else:
- Role gate: DEFAULT_ROLE_PERMISSIONS maps each role to the actions it may perform.
- Ownership gate: OWNERSHIP_PREDICATES maps a resource type to a predicate
  (actor, resource) -> bool. Roles in OWNERSHIP_BYPASS_ROLES skip it.

DESIGN PRINCIPLES:
- Fail closed: Deny by default, unknown roles and unknown actions are denied
- Log denials only: Permission grants are not logged
- Checks run before any mutating work, so a denial leaves nothing behind
"""

from flask import has_request_context, request

from ..errors import PermissionDeniedError
from ..extensions import db
from ..models import CustomerAssignment, SecurityEvent, User
from ..permissions import OWNERSHIP_BYPASS_ROLES, get_role_permissions
from matmx.time_utils import utcnow


def log_security_event(
    user_id: int | None,
    event_type: str,
    success: bool,
    resource: str | None = None,
    action: str | None = None,
    reason: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> SecurityEvent:
    """
    Log security event to audit trail.

    WHY: Immutable audit log for security monitoring.

    event_type examples:
    - PERMISSION_DENIED
    - OWNERSHIP_DENIED
    - LOGIN_FAILED
    - LOGIN_INACTIVE
    """
    event = SecurityEvent(
        user_id=user_id,
        event_type=event_type,
        resource=resource,
        action=action,
        success=success,
        reason=reason,
        ip_address=ip_address,
        user_agent=user_agent,
        occurred_at=utcnow()
    )

    db.session.add(event)
    db.session.commit()

    return event


def _client_context() -> dict:
    if not has_request_context():
        return {"ip_address": None, "user_agent": None}
    return {
        "ip_address": request.remote_addr,
        "user_agent": request.headers.get("User-Agent"),
    }


def get_user_permissions(user: User) -> set[str]:
    """Permission codes for the user's current role."""
    if user is None or not user.is_active:
        return set()
    return set(get_role_permissions(user.role))


def user_has_permission(user: User, permission_code: str) -> bool:
    return permission_code in get_user_permissions(user)


def bypasses_ownership(user: User) -> bool:
    return user is not None and user.role in OWNERSHIP_BYPASS_ROLES


# -- Ownership predicates (actor, resource) -> bool --

def _owns_customer(user: User, customer) -> bool:
    customer_id = getattr(customer, "id", customer)
    return db.session.query(
        db.session.query(CustomerAssignment)
        .filter_by(customer_id=customer_id, user_id=user.id)
        .exists()
    ).scalar()


def _owns_task(user: User, task) -> bool:
    return user.id in (task.assigned_to, task.created_by)


def _owns_sales_document(user: User, document) -> bool:
    return document.rep_id == user.id


OWNERSHIP_PREDICATES = {
    "customer": _owns_customer,
    "task": _owns_task,
    "quote": _owns_sales_document,
    "order": _owns_sales_document,
}


def authorize(user: User, action: str | None, resource_type: str | None = None, resource=None) -> bool:
    """
    Pure decision: may `user` perform `action` on `resource`?

    action=None checks ownership only; resource_type=None checks the role gate only.
    """
    if user is None or not user.is_active:
        return False
    if action is not None and not user_has_permission(user, action):
        return False
    if resource_type is None or bypasses_ownership(user):
        return True
    predicate = OWNERSHIP_PREDICATES.get(resource_type)
    if predicate is None:
        return False
    return bool(predicate(user, resource))


def require_permission(
    user: User,
    permission_code: str,
    resource: str | None = None,
    ip_address: str | None = None,
    user_agent: str | None = None,
) -> None:
    """
    Require user to have permission, raise PermissionDeniedError if not.

    Usage:
        require_permission(g.current_user, "DELETE_CUSTOMER", resource=request.path)
    """
    if not authorize(user, permission_code):
        # Log only denials (policy: no granted logs)
        log_security_event(
            user_id=user.id if user else None,
            event_type="PERMISSION_DENIED",
            success=False,
            resource=resource,
            action=permission_code,
            reason=f"Role {user.role if user else None} lacks {permission_code}",
            ip_address=ip_address,
            user_agent=user_agent,
        )
        raise PermissionDeniedError(f"Permission denied: {permission_code}")


def require_ownership(user: User, resource_type: str, resource, action: str | None = None) -> None:
    """
    Raise PermissionDeniedError unless the ownership predicate for resource_type holds.

    super_admin passes unconditionally.
    """
    if authorize(user, None, resource_type, resource):
        return

    resource_id = getattr(resource, "id", resource)
    log_security_event(
        user_id=user.id if user else None,
        event_type="OWNERSHIP_DENIED",
        success=False,
        resource=f"{resource_type}:{resource_id}",
        action=action,
        reason=f"User is not an owner of {resource_type} {resource_id}",
        **_client_context(),
    )
    raise PermissionDeniedError(f"You do not have access to this {resource_type}")
