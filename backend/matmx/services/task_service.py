# Overview: Service-layer operations for customer tasks and their grouped views.

"""
Customer Task Service

Writes: create, complete, reopen. Status is a two-state toggle (open <-> completed).

Reads: flat lists plus two grouped views. Grouping is a pure fold over an
ordered flat result (group_open_tasks / group_completed_tasks): rows in,
immutable tuples of frozen dataclasses out, nothing persisted.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from itertools import groupby
from types import MappingProxyType
from typing import Iterable, Mapping

from sqlalchemy import func, or_, select
from sqlalchemy.orm import aliased

from ..errors import NotFoundError, ValidationError
from ..extensions import db
from ..models import Customer, CustomerAssignment, CustomerTask, User
from ..models.tasks import TASK_STATUS_COMPLETED, TASK_STATUS_OPEN
from . import permission_service
from .concurrency import atomic
from .customer_service import get_customer_for
from matmx.time_utils import months_ago, utcnow

UNASSIGNED_REP = "Unassigned"
COMPLETED_WINDOW_MONTHS = 3


# -- Grouped shapes --

@dataclass(frozen=True)
class CustomerTaskGroup:
    customer_id: int
    customer_name: str | None
    tasks: tuple

    def to_dict(self) -> dict:
        return {
            "customer_id": self.customer_id,
            "customer_name": self.customer_name,
            "tasks": [dict(t) for t in self.tasks],
        }


@dataclass(frozen=True)
class RepTaskGroup:
    rep_id: int | None
    rep_name: str
    customers: tuple

    def to_dict(self) -> dict:
        return {
            "rep_id": self.rep_id,
            "rep_name": self.rep_name,
            "customers": [c.to_dict() for c in self.customers],
        }


@dataclass(frozen=True)
class RepCompletedGroup:
    rep_id: int | None
    rep_name: str
    tasks: tuple

    def to_dict(self) -> dict:
        return {
            "rep_id": self.rep_id,
            "rep_name": self.rep_name,
            "tasks": [dict(t) for t in self.tasks],
        }


def _rep_key(row: Mapping):
    return (row["assigned_to"], row.get("assigned_to_name"))


def _customer_key(row: Mapping):
    return (row["customer_id"], row.get("customer_name"))


def _freeze(rows: Iterable[Mapping]) -> tuple:
    return tuple(MappingProxyType(dict(r)) for r in rows)


def group_open_tasks(rows: Iterable[Mapping]) -> tuple[RepTaskGroup, ...]:
    """
    Fold rows ordered by (rep, customer) into rep -> customers -> tasks.

    Rows must already be ordered so each rep, and each customer within a rep,
    is contiguous; the fold preserves that order.
    """
    return tuple(
        RepTaskGroup(
            rep_id=rep_id,
            rep_name=rep_name or UNASSIGNED_REP,
            customers=tuple(
                CustomerTaskGroup(customer_id=customer_id, customer_name=customer_name, tasks=_freeze(task_rows))
                for (customer_id, customer_name), task_rows in groupby(rep_rows, key=_customer_key)
            ),
        )
        for (rep_id, rep_name), rep_rows in groupby(rows, key=_rep_key)
    )


def group_completed_tasks(rows: Iterable[Mapping]) -> tuple[RepCompletedGroup, ...]:
    """Fold rows ordered by rep into rep -> tasks."""
    return tuple(
        RepCompletedGroup(
            rep_id=rep_id,
            rep_name=rep_name or UNASSIGNED_REP,
            tasks=_freeze(task_rows),
        )
        for (rep_id, rep_name), task_rows in groupby(rows, key=_rep_key)
    )


# -- Queries --

def _task_rows_query():
    assignee = aliased(User)
    creator = aliased(User)
    q = (
        db.session.query(CustomerTask, Customer.name, assignee.name, creator.name)
        .join(Customer, Customer.id == CustomerTask.customer_id)
        .outerjoin(assignee, assignee.id == CustomerTask.assigned_to)
        .outerjoin(creator, creator.id == CustomerTask.created_by)
    )
    return q, assignee


def _to_row(task: CustomerTask, customer_name, assigned_to_name, created_by_name) -> dict:
    row = task.to_dict()
    row["customer_name"] = customer_name
    row["assigned_to_name"] = assigned_to_name
    row["created_by_name"] = created_by_name
    return row


def _due_date_order():
    # Undated tasks last, portable across SQLite/Postgres
    return (CustomerTask.due_date.is_(None), CustomerTask.due_date.asc())


def get_task(task_id: int) -> CustomerTask:
    task = db.session.get(CustomerTask, task_id)
    if task is None:
        raise NotFoundError("Task not found")
    return task


def create_task(*, patch: dict, actor: User) -> CustomerTask:
    """
    Create an open task on a customer the actor can access.

    assigned_to defaults to the actor; created_by is always the actor.
    """
    customer_id = patch.get("customer_id")
    if customer_id is None:
        raise ValidationError("customer_id is required")
    customer = get_customer_for(actor, customer_id, action="MANAGE_TASKS")

    assigned_to = patch.get("assigned_to") or actor.id
    if db.session.get(User, assigned_to) is None:
        raise NotFoundError(f"User {assigned_to} not found")

    with atomic():
        task = CustomerTask(
            customer_id=customer.id,
            title=patch["title"],
            description=patch.get("description"),
            due_date=patch.get("due_date"),
            assigned_to=assigned_to,
            created_by=actor.id,
            status=TASK_STATUS_OPEN,
        )
        db.session.add(task)

    return task


def list_open_tasks(actor: User) -> list[dict]:
    """Open tasks by due date; non-admins see tasks assigned to them."""
    q, _ = _task_rows_query()
    q = q.filter(CustomerTask.status != TASK_STATUS_COMPLETED)
    if not permission_service.bypasses_ownership(actor):
        q = q.filter(CustomerTask.assigned_to == actor.id)
    rows = q.order_by(*_due_date_order(), CustomerTask.id.asc()).all()
    return [_to_row(*r) for r in rows]


def list_customer_open_tasks(*, customer_id: int, actor: User) -> list[dict]:
    customer = get_customer_for(actor, customer_id, action="MANAGE_TASKS")
    q, _ = _task_rows_query()
    rows = (
        q.filter(
            CustomerTask.customer_id == customer.id,
            CustomerTask.status != TASK_STATUS_COMPLETED,
        )
        .order_by(*_due_date_order(), CustomerTask.id.asc())
        .all()
    )
    return [_to_row(*r) for r in rows]


def _set_status(task_id: int, actor: User, status: str) -> CustomerTask:
    task = get_task(task_id)
    permission_service.require_ownership(actor, "task", task, action="MANAGE_TASKS")

    with atomic():
        if task.status != status:
            task.status = status
            task.completed_at = utcnow() if status == TASK_STATUS_COMPLETED else None

    return task


def complete_task(*, task_id: int, actor: User) -> CustomerTask:
    return _set_status(task_id, actor, TASK_STATUS_COMPLETED)


def reopen_task(*, task_id: int, actor: User) -> CustomerTask:
    return _set_status(task_id, actor, TASK_STATUS_OPEN)


def grouped_open_tasks(actor: User) -> tuple[RepTaskGroup, ...]:
    """
    Open tasks grouped rep -> customer -> tasks.

    Non-admin scope: tasks assigned to the actor, plus any task on a customer
    the actor is assigned to.
    """
    q, assignee = _task_rows_query()
    q = q.filter(CustomerTask.status != TASK_STATUS_COMPLETED)
    if not permission_service.bypasses_ownership(actor):
        assigned_customers = select(CustomerAssignment.customer_id).where(
            CustomerAssignment.user_id == actor.id
        )
        q = q.filter(
            or_(
                CustomerTask.assigned_to == actor.id,
                CustomerTask.customer_id.in_(assigned_customers),
            )
        )
    rows = q.order_by(
        assignee.name.asc(),
        CustomerTask.assigned_to.asc(),
        Customer.name.asc(),
        Customer.id.asc(),
        *_due_date_order(),
        CustomerTask.id.asc(),
    ).all()
    return group_open_tasks(_to_row(*r) for r in rows)


def completed_tasks_by_rep(
    actor: User,
    customer_id: int | None = None,
    now: datetime | None = None,
) -> tuple[RepCompletedGroup, ...]:
    """
    Completed tasks from the trailing three calendar months, grouped by rep.

    The window is measured on completed_at, falling back to created_at for rows
    completed before completion time was recorded. Non-admin scope: tasks
    assigned to or created by the actor.
    """
    cutoff = months_ago(now or utcnow(), COMPLETED_WINDOW_MONTHS)
    q, assignee = _task_rows_query()
    q = q.filter(
        CustomerTask.status == TASK_STATUS_COMPLETED,
        func.coalesce(CustomerTask.completed_at, CustomerTask.created_at) >= cutoff,
    )
    if customer_id is not None:
        q = q.filter(CustomerTask.customer_id == customer_id)
    if not permission_service.bypasses_ownership(actor):
        q = q.filter(
            or_(
                CustomerTask.assigned_to == actor.id,
                CustomerTask.created_by == actor.id,
            )
        )
    rows = q.order_by(
        assignee.name.asc(),
        CustomerTask.assigned_to.asc(),
        func.coalesce(CustomerTask.completed_at, CustomerTask.created_at).desc(),
        CustomerTask.id.desc(),
    ).all()
    return group_completed_tasks(_to_row(*r) for r in rows)
