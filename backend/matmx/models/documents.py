from __future__ import annotations

from ..extensions import db
from matmx.time_utils import to_utc_z


ATTACHMENT_RELATED_TYPES = ("quote", "order")


class SalesAttachment(db.Model):
    """
    File attached to a quote or an order.

    Polymorphic: (related_type, related_id) points at quotes.id or orders.id,
    so there is no foreign key on related_id. The bytes live in UPLOAD_FOLDER;
    file_url is the path they are served from.
    """
    __tablename__ = "sales_attachments"
    __table_args__ = (
        db.Index("ix_sales_attachments_related", "related_type", "related_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    related_type = db.Column(db.String(16), nullable=False)  # quote, order
    related_id = db.Column(db.Integer, nullable=False)

    filename = db.Column(db.String(255), nullable=False)
    stored_name = db.Column(db.String(255), nullable=False, unique=True)
    file_url = db.Column(db.String(512), nullable=False)

    uploaded_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    uploader = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "related_type": self.related_type,
            "related_id": self.related_id,
            "filename": self.filename,
            "file_url": self.file_url,
            "uploaded_by": self.uploaded_by,
            "uploaded_by_name": self.uploader.name if self.uploader else None,
            "created_at": to_utc_z(self.created_at),
        }
