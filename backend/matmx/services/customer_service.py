# Overview: Service-layer operations for CRM customers; encapsulates business logic and database work.

"""
Customer Service

Visibility: super_admin sees every customer; everyone else sees the customers
they are assigned to (CustomerAssignment). Every single-customer operation
goes through get_customer_for(), which applies the ownership gate before any
write starts.

Multi-row writes (create, assign, delete) run inside one atomic() block
together with their CRM audit row.
"""

from __future__ import annotations

from sqlalchemy import func, or_, select

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import (
    Customer,
    CustomerAssignment,
    CustomerLog,
    CrmLog,
    CustomerTask,
    Order,
    Quote,
    SalesPipelineEntry,
    User,
)
from . import audit_service, permission_service
from .concurrency import atomic
from matmx.time_utils import utcnow

CUSTOMER_MUTABLE_FIELDS = {"name", "company", "email", "phone", "status", "notes"}

SEARCH_LIMIT = 10


def _current_stage_subquery():
    return (
        select(SalesPipelineEntry.stage)
        .where(SalesPipelineEntry.customer_id == Customer.id)
        .order_by(SalesPipelineEntry.created_at.desc(), SalesPipelineEntry.id.desc())
        .limit(1)
        .correlate(Customer)
        .scalar_subquery()
    )


def _visible_customers_query(user: User):
    q = db.session.query(Customer, _current_stage_subquery().label("current_stage"))
    if not permission_service.bypasses_ownership(user):
        q = q.join(
            CustomerAssignment,
            (CustomerAssignment.customer_id == Customer.id) & (CustomerAssignment.user_id == user.id),
        )
    return q


def _serialize_row(customer: Customer, stage: str | None) -> dict:
    data = customer.to_dict()
    data["current_stage"] = stage
    data["assigned_users"] = [
        {"id": a.user_id, "name": a.user.name if a.user else None}
        for a in customer.assignments
    ]
    data["assigned_user_ids"] = [a.user_id for a in customer.assignments]
    return data


def list_customers(user: User) -> list[dict]:
    """Customers visible to `user`, newest first, with current stage and assignees."""
    rows = (
        _visible_customers_query(user)
        .order_by(Customer.created_at.desc(), Customer.id.desc())
        .all()
    )
    return [_serialize_row(c, stage) for c, stage in rows]


def search_customers(user: User, term: str) -> list[dict]:
    """Case-insensitive substring match on name, company or email (max 10)."""
    term = (term or "").strip()
    if not term:
        return []
    pattern = f"%{term.lower()}%"
    rows = (
        _visible_customers_query(user)
        .filter(
            or_(
                func.lower(Customer.name).like(pattern),
                func.lower(Customer.company).like(pattern),
                func.lower(Customer.email).like(pattern),
            )
        )
        .order_by(Customer.name.asc(), Customer.id.asc())
        .limit(SEARCH_LIMIT)
        .all()
    )
    return [_serialize_row(c, stage) for c, stage in rows]


def get_customer(customer_id: int) -> Customer:
    customer = db.session.get(Customer, customer_id)
    if customer is None:
        raise NotFoundError("Customer not found")
    return customer


def get_customer_for(user: User, customer_id: int, action: str | None = None) -> Customer:
    """Load a customer and apply the ownership gate (NotFound before Forbidden)."""
    customer = get_customer(customer_id)
    permission_service.require_ownership(user, "customer", customer, action=action)
    return customer


def current_stage(customer_id: int) -> str | None:
    """Stage of the newest pipeline entry, or None before the first move."""
    return db.session.execute(
        select(SalesPipelineEntry.stage)
        .where(SalesPipelineEntry.customer_id == customer_id)
        .order_by(SalesPipelineEntry.created_at.desc(), SalesPipelineEntry.id.desc())
        .limit(1)
    ).scalar()


def get_customer_detail(user: User, customer_id: int) -> dict:
    customer = get_customer_for(user, customer_id, action="VIEW_CUSTOMERS")
    return _serialize_row(customer, current_stage(customer.id))


def create_customer(*, patch: dict, actor: User) -> Customer:
    """
    Create a customer, assign the creator to it and write the audit row.

    status defaults to "lead". All three rows commit together.
    """
    with atomic():
        customer = Customer(created_by=actor.id, status=patch.get("status") or "lead")
        for k, v in patch.items():
            if k in CUSTOMER_MUTABLE_FIELDS and k != "status":
                setattr(customer, k, v)
        db.session.add(customer)
        db.session.flush()

        db.session.add(CustomerAssignment(customer_id=customer.id, user_id=actor.id))
        audit_service.append_crm_log(
            customer_id=customer.id,
            user_id=actor.id,
            action=audit_service.CREATED_CUSTOMER,
            details=f"Created customer '{customer.name}'",
        )

    return customer


def update_customer(*, customer_id: int, patch: dict, actor: User) -> Customer:
    customer = get_customer_for(actor, customer_id, action="EDIT_CUSTOMER")

    with atomic():
        changed = []
        for k, v in patch.items():
            if k not in CUSTOMER_MUTABLE_FIELDS:
                continue
            if getattr(customer, k) != v:
                setattr(customer, k, v)
                changed.append(k)
        audit_service.append_crm_log(
            customer_id=customer.id,
            user_id=actor.id,
            action=audit_service.UPDATED_CUSTOMER,
            details=f"Updated fields: {', '.join(changed)}" if changed else "No field changes",
        )

    return customer


def _clean_user_ids(user_ids) -> list[int]:
    if not isinstance(user_ids, list):
        raise ValidationError("user_ids must be a list")
    cleaned: list[int] = []
    for raw in user_ids:
        # Null/empty entries are skipped, duplicates collapse to one assignment
        if raw is None or raw == "":
            continue
        if isinstance(raw, bool):
            raise ValidationError("user_ids must contain integers")
        try:
            uid = int(raw)
        except (TypeError, ValueError):
            raise ValidationError("user_ids must contain integers")
        if uid not in cleaned:
            cleaned.append(uid)
    return cleaned


def assign_customer(*, customer_id: int, user_ids, actor: User) -> list[CustomerAssignment]:
    """
    Replace the customer's assignment set with exactly `user_ids`.

    Delete-all then insert, in one transaction. An unknown user id aborts the
    whole replacement (NotFoundError) and the previous set stays intact.
    """
    cleaned = _clean_user_ids(user_ids)
    customer = get_customer(customer_id)

    with atomic():
        db.session.query(CustomerAssignment).filter(
            CustomerAssignment.customer_id == customer.id
        ).delete(synchronize_session="fetch")
        db.session.flush()

        for uid in cleaned:
            if db.session.get(User, uid) is None:
                raise NotFoundError(f"User {uid} not found")
            db.session.add(CustomerAssignment(customer_id=customer.id, user_id=uid))
            db.session.flush()

        audit_service.append_crm_log(
            customer_id=customer.id,
            user_id=actor.id,
            action=audit_service.UPDATED_ASSIGNMENTS,
            details=f"Assigned users: {', '.join(str(u) for u in cleaned) or 'none'}",
        )

    db.session.expire(customer, ["assignments"])
    return list(customer.assignments)


def unassign_customer(*, customer_id: int, user_id: int, actor: User) -> None:
    """Remove one (customer, user) pair. Missing pair -> NotFoundError."""
    customer = get_customer(customer_id)

    with atomic():
        removed = db.session.query(CustomerAssignment).filter_by(
            customer_id=customer.id, user_id=user_id
        ).delete(synchronize_session="fetch")
        if not removed:
            raise NotFoundError("Assignment not found")
        audit_service.append_crm_log(
            customer_id=customer.id,
            user_id=actor.id,
            action=audit_service.UNASSIGNED_CUSTOMER,
            details=f"Unassigned user {user_id}",
        )

    db.session.expire(customer, ["assignments"])


def delete_customer(*, customer_id: int, actor: User) -> None:
    """
    Delete a customer and everything it owns, atomically.

    Order: tasks, interaction logs, assignments, pipeline entries, CRM logs,
    then the customer row. Quotes and orders are business documents and are
    never cascaded; a customer that still has any is a ConflictError.
    """
    customer = get_customer(customer_id)

    with atomic():
        has_documents = (
            db.session.query(Quote.id).filter(Quote.customer_id == customer.id).first()
            or db.session.query(Order.id).filter(Order.customer_id == customer.id).first()
        )
        if has_documents:
            raise ConflictError("Customer has quotes or orders and cannot be deleted")

        name = customer.name
        for model in (CustomerTask, CustomerLog, CustomerAssignment, SalesPipelineEntry, CrmLog):
            db.session.query(model).filter(model.customer_id == customer.id).delete(
                synchronize_session="fetch"
            )
        db.session.query(Customer).filter(Customer.id == customer.id).delete(
            synchronize_session="fetch"
        )

        audit_service.append_crm_log(
            customer_id=None,
            user_id=actor.id,
            action=audit_service.DELETED_CUSTOMER,
            details=f"Deleted customer #{customer_id} '{name}'",
        )


# -- Interactions (customer logs) --

def list_interactions(*, customer_id: int, actor: User) -> list[CustomerLog]:
    customer = get_customer_for(actor, customer_id, action="LOG_INTERACTIONS")
    return (
        db.session.query(CustomerLog)
        .filter(CustomerLog.customer_id == customer.id)
        .order_by(CustomerLog.created_at.desc(), CustomerLog.id.desc())
        .all()
    )


def add_interaction(*, customer_id: int, actor: User, type: str, note: str | None) -> CustomerLog:
    """Record an interaction and bump the customer's last_contacted_at."""
    if not isinstance(type, str) or not type.strip():
        raise ValidationError("type is required")
    customer = get_customer_for(actor, customer_id, action="LOG_INTERACTIONS")

    with atomic():
        entry = CustomerLog(
            customer_id=customer.id,
            user_id=actor.id,
            type=type.strip()[:32],
            note=note.strip() if isinstance(note, str) else None,
        )
        db.session.add(entry)
        customer.last_contacted_at = utcnow()

    return entry
