# Overview: Service-layer operations for sales attachments (files on quotes and orders).

from __future__ import annotations

import os
import uuid

from flask import current_app
from werkzeug.utils import secure_filename

from ..errors import InternalError, NotFoundError, ValidationError
from ..extensions import db
from ..models import SalesAttachment, User
from ..models.documents import ATTACHMENT_RELATED_TYPES
from .concurrency import atomic
from .sales_service import get_order_for, get_quote_for


def _load_related(actor: User, related_type: str, related_id: int, action: str):
    if related_type not in ATTACHMENT_RELATED_TYPES:
        raise ValidationError(f"related_type must be one of: {', '.join(ATTACHMENT_RELATED_TYPES)}")
    if related_type == "quote":
        return get_quote_for(actor, related_id, action=action)
    return get_order_for(actor, related_id, action=action)


def upload_folder() -> str:
    folder = current_app.config["UPLOAD_FOLDER"]
    os.makedirs(folder, exist_ok=True)
    return folder


def save_attachment(*, related_type: str, related_id: int, file_storage, actor: User) -> SalesAttachment:
    """
    Store an uploaded file under a unique name and record it.

    The file is written first; if the row cannot be stored the file is removed.
    """
    _load_related(actor, related_type, related_id, "UPLOAD_ATTACHMENTS")

    if file_storage is None or not file_storage.filename:
        raise ValidationError("No file uploaded")
    original = secure_filename(file_storage.filename)
    if not original:
        raise ValidationError("Invalid file name")

    stored_name = f"{uuid.uuid4().hex}_{original}"
    path = os.path.join(upload_folder(), stored_name)
    try:
        file_storage.save(path)
    except OSError as exc:
        current_app.logger.error("Could not store attachment %s: %s", stored_name, exc)
        raise InternalError("Could not store the uploaded file") from exc

    prefix = current_app.config.get("UPLOAD_URL_PREFIX", "/uploads").rstrip("/")
    try:
        with atomic():
            attachment = SalesAttachment(
                related_type=related_type,
                related_id=related_id,
                filename=original,
                stored_name=stored_name,
                file_url=f"{prefix}/{stored_name}",
                uploaded_by=actor.id,
            )
            db.session.add(attachment)
    except Exception:
        os.remove(path)
        raise

    return attachment


def list_attachments(*, related_type: str, related_id: int, actor: User) -> list[SalesAttachment]:
    view_action = "VIEW_QUOTES" if related_type == "quote" else "VIEW_ORDERS"
    _load_related(actor, related_type, related_id, view_action)
    return (
        db.session.query(SalesAttachment)
        .filter_by(related_type=related_type, related_id=related_id)
        .order_by(SalesAttachment.created_at.desc(), SalesAttachment.id.desc())
        .all()
    )


def get_attachment_by_stored_name(*, stored_name: str, actor: User) -> SalesAttachment:
    """Resolve a stored file name and apply the owning document's ownership gate."""
    attachment = db.session.query(SalesAttachment).filter_by(stored_name=stored_name).first()
    if attachment is None:
        raise NotFoundError("Attachment not found")
    view_action = "VIEW_QUOTES" if attachment.related_type == "quote" else "VIEW_ORDERS"
    _load_related(actor, attachment.related_type, attachment.related_id, view_action)
    return attachment
