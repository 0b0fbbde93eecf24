from __future__ import annotations

from ..extensions import db
from matmx.time_utils import to_iso_date, to_utc_z


TASK_STATUS_OPEN = "open"
TASK_STATUS_COMPLETED = "completed"


class CustomerTask(db.Model):
    """
    Follow-up task on a customer, assigned to one staff member.

    Status is a two-state toggle: open <-> completed. completed_at is stamped on
    completion and cleared when the task is reopened.
    """
    __tablename__ = "customer_tasks"
    __table_args__ = (
        db.Index("ix_customer_tasks_assigned_status", "assigned_to", "status"),
        db.Index("ix_customer_tasks_customer_status", "customer_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False)

    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    assigned_to = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    status = db.Column(db.String(16), nullable=False, default=TASK_STATUS_OPEN)  # open, completed

    due_date = db.Column(db.Date, nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    customer = db.relationship("Customer")
    assignee = db.relationship("User", foreign_keys=[assigned_to])
    creator = db.relationship("User", foreign_keys=[created_by])

    def to_dict(self):
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "title": self.title,
            "description": self.description,
            "created_by": self.created_by,
            "assigned_to": self.assigned_to,
            "status": self.status,
            "due_date": to_iso_date(self.due_date),
            "completed_at": to_utc_z(self.completed_at),
            "created_at": to_utc_z(self.created_at),
        }
