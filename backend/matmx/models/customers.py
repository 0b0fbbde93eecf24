from __future__ import annotations

from ..extensions import db
from matmx.time_utils import to_utc_z


PIPELINE_STAGES = (
    "lead",
    "contacted",
    "qualified",
    "proposal",
    "negotiation",
    "won",
    "lost",
)


class Customer(db.Model):
    """
    CRM customer record.

    Visibility for non-admin staff is granted through CustomerAssignment rows.
    created_by is set once at creation and never written again.

    WHY: Customers own their assignments, logs, pipeline history and tasks;
    deleting a customer removes all of those in the same transaction.
    """
    __tablename__ = "customers"
    __table_args__ = (
        db.Index("ix_customers_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(255), nullable=False)
    company = db.Column(db.String(255), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    phone = db.Column(db.String(64), nullable=True)

    # Free-form lifecycle label (lead, active, inactive, ...)
    status = db.Column(db.String(32), nullable=False, default="lead")
    notes = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    last_contacted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    creator = db.relationship("User", foreign_keys=[created_by])
    assignments = db.relationship(
        "CustomerAssignment",
        back_populates="customer",
        lazy=True,
        order_by="CustomerAssignment.user_id",
    )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "company": self.company,
            "email": self.email,
            "phone": self.phone,
            "status": self.status,
            "notes": self.notes,
            "created_by": self.created_by,
            "last_contacted_at": to_utc_z(self.last_contacted_at) if self.last_contacted_at else None,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class CustomerAssignment(db.Model):
    """
    Many-to-many link granting a user visibility/ownership over a customer.

    The (customer_id, user_id) pair is the primary key, so a pair exists at most once.
    """
    __tablename__ = "customer_assignments"

    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), primary_key=True, index=True)
    assigned_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    customer = db.relationship("Customer", back_populates="assignments")
    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "customer_id": self.customer_id,
            "user_id": self.user_id,
            "user_name": self.user.name if self.user else None,
            "assigned_at": to_utc_z(self.assigned_at),
        }


class CrmLog(db.Model):
    """
    System audit trail of CRM actions (created_customer, updated_assignments, ...).

    IMMUTABLE: Append-only. Written in the same transaction as the action it records.
    """
    __tablename__ = "crm_logs"
    __table_args__ = (
        db.Index("ix_crm_logs_customer_created", "customer_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)

    action = db.Column(db.String(64), nullable=False)
    details = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "user_id": self.user_id,
            "user_name": self.user.name if self.user else None,
            "action": self.action,
            "details": self.details,
            "created_at": to_utc_z(self.created_at),
        }


class CustomerLog(db.Model):
    """
    Staff interaction notes (call, email, meeting, ...) on a customer.

    IMMUTABLE: Append-only.
    """
    __tablename__ = "customer_logs"
    __table_args__ = (
        db.Index("ix_customer_logs_customer_created", "customer_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    type = db.Column(db.String(32), nullable=False)
    note = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "user_id": self.user_id,
            "user_name": self.user.name if self.user else None,
            "type": self.type,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }


class SalesPipelineEntry(db.Model):
    """
    Append-only stage history. The current stage is the newest entry.
    """
    __tablename__ = "sales_pipeline"
    __table_args__ = (
        db.Index("ix_sales_pipeline_customer_created", "customer_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False)
    stage = db.Column(db.String(32), nullable=False)
    moved_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)
    comment = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    mover = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "stage": self.stage,
            "moved_by": self.moved_by,
            "moved_by_name": self.mover.name if self.mover else None,
            "comment": self.comment,
            "created_at": to_utc_z(self.created_at),
        }
