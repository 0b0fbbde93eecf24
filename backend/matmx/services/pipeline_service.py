# Overview: Service-layer operations for the sales pipeline (append-only stage history).

from __future__ import annotations

from ..errors import ValidationError
from ..extensions import db
from ..models import PIPELINE_STAGES, SalesPipelineEntry, User
from . import audit_service
from .concurrency import atomic
from .customer_service import current_stage, get_customer_for  # noqa: F401  (re-exported)


def get_history(*, customer_id: int, actor: User) -> list[SalesPipelineEntry]:
    """Stage history, newest first."""
    customer = get_customer_for(actor, customer_id, action="MANAGE_PIPELINE")
    return (
        db.session.query(SalesPipelineEntry)
        .filter(SalesPipelineEntry.customer_id == customer.id)
        .order_by(SalesPipelineEntry.created_at.desc(), SalesPipelineEntry.id.desc())
        .all()
    )


def add_stage(*, customer_id: int, actor: User, stage, comment=None) -> SalesPipelineEntry:
    """Append a stage entry; the newest entry is the customer's current stage."""
    if not isinstance(stage, str) or not stage.strip():
        raise ValidationError("stage is required")
    stage = stage.strip().lower()
    if stage not in PIPELINE_STAGES:
        raise ValidationError(f"stage must be one of: {', '.join(PIPELINE_STAGES)}")
    if comment is not None and not isinstance(comment, str):
        raise ValidationError("comment must be a string")

    customer = get_customer_for(actor, customer_id, action="MANAGE_PIPELINE")

    with atomic():
        entry = SalesPipelineEntry(
            customer_id=customer.id,
            stage=stage,
            moved_by=actor.id,
            comment=comment.strip() if comment else None,
        )
        db.session.add(entry)
        audit_service.append_crm_log(
            customer_id=customer.id,
            user_id=actor.id,
            action=audit_service.MOVED_STAGE,
            details=f"Moved to stage '{stage}'",
        )

    return entry
