from __future__ import annotations

from ..extensions import db
from matmx.time_utils import to_utc_z


# Fixed role enum. Policy per role lives in matmx.permissions.roles.
ROLE_SUPER_ADMIN = "super_admin"
ROLE_INVENTORY_MANAGER = "inventory_manager"
ROLE_ACCOUNTANT = "accountant"
ROLE_SALES_REP = "sales_rep"
ROLE_CSR = "CSR"

ROLES = (
    ROLE_SUPER_ADMIN,
    ROLE_INVENTORY_MANAGER,
    ROLE_ACCOUNTANT,
    ROLE_SALES_REP,
    ROLE_CSR,
)


class User(db.Model):
    """
    Staff accounts for authentication and attribution.

    Email is unique (stored lower-cased). Each user carries exactly one role
    from ROLES.

    WHY: Every action must be attributable. No shared logins.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.UniqueConstraint("email", name="uq_users_email"),
        db.Index("ix_users_role", "role"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    name = db.Column(db.String(128), nullable=False)
    email = db.Column(db.String(255), nullable=False)

    # Bcrypt hashed password
    password_hash = db.Column(db.String(255), nullable=False)

    role = db.Column(db.String(32), nullable=False)

    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    last_login_at = db.Column(db.DateTime(timezone=True), nullable=True)

    @property
    def is_super_admin(self) -> bool:
        return self.role == ROLE_SUPER_ADMIN

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
            "last_login_at": to_utc_z(self.last_login_at) if self.last_login_at else None,
        }

    def to_directory_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "email": self.email, "role": self.role}
