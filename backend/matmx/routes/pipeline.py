# Overview: Flask API routes for the sales pipeline stage history of a customer.

from flask import Blueprint, request, jsonify, g

from ..services import pipeline_service
from ..decorators import require_auth, require_permission

pipeline_bp = Blueprint("pipeline", __name__, url_prefix="/api/crm")


@pipeline_bp.get("/<int:customer_id>/pipeline")
@require_auth
@require_permission("MANAGE_PIPELINE")
def pipeline_history_route(customer_id: int):
    entries = pipeline_service.get_history(customer_id=customer_id, actor=g.current_user)
    return jsonify([e.to_dict() for e in entries])


@pipeline_bp.post("/<int:customer_id>/pipeline")
@require_auth
@require_permission("MANAGE_PIPELINE")
def add_pipeline_stage_route(customer_id: int):
    """
    Move a customer to a stage.

    Request body:
    {
        "stage": "qualified",
        "comment": "Budget confirmed"
    }
    """
    data = request.get_json(silent=True) or {}
    entry = pipeline_service.add_stage(
        customer_id=customer_id,
        actor=g.current_user,
        stage=data.get("stage"),
        comment=data.get("comment"),
    )
    return jsonify(entry.to_dict()), 201
