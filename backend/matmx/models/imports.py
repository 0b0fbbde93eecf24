from __future__ import annotations

from ..extensions import db
from matmx.time_utils import to_utc_z

class InventoryImportLog(db.Model):
    """
    One summary row per CSV inventory import batch.

    WHY: Imports are best-effort (rows succeed or fail independently), so the
    batch outcome is only visible through these counts.
    """
    __tablename__ = "inventory_import_logs"
    __table_args__ = (
        db.Index("ix_inventory_import_logs_uploader_created", "uploaded_by", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    uploaded_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    # Source file information
    filename = db.Column(db.String(255), nullable=True)

    # Row counts
    success_count = db.Column(db.Integer, nullable=False, default=0)
    failure_count = db.Column(db.Integer, nullable=False, default=0)

    note = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    uploader = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "uploaded_by": self.uploaded_by,
            "uploaded_by_name": self.uploader.name if self.uploader else None,
            "filename": self.filename,
            "success_count": self.success_count,
            "failure_count": self.failure_count,
            "note": self.note,
            "created_at": to_utc_z(self.created_at),
        }
