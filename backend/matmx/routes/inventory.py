# Overview: Flask API routes for products, stock adjustments, CSV import/export and reorder alerts.

# backend/matmx/routes/inventory.py
"""
Inventory routes.

SECURITY: All routes require authentication.
- Read operations require VIEW_PRODUCTS / VIEW_REORDER_ALERTS
- Product writes require MANAGE_PRODUCTS; stock changes require ADJUST_INVENTORY
- History and import logs are super_admin only
"""

from flask import Blueprint, Response, request, jsonify, g

from ..models import InventoryAdjustment, Product
from ..services import import_service, inventory_service, products_service
from ..validation import (
    ModelValidationPolicy,
    validate_payload,
    enforce_rules_product,
    enforce_rules_inventory_adjust,
)
from ..decorators import require_auth, require_permission
from matmx.time_utils import parse_iso_date, utcnow

PRODUCT_CREATE_POLICY = ModelValidationPolicy(
    writable_fields={"sku", "name", "vendor", "category", "notes", "stock", "reorder_threshold", "unit_price"},
    required_on_create={"sku", "name"},
)

# stock is changed only through adjustments
PRODUCT_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"sku", "name", "vendor", "category", "notes", "reorder_threshold", "unit_price"},
)

ADJUST_POLICY = ModelValidationPolicy(
    writable_fields={"change", "reason", "note"},
    required_on_create={"change"},
)

inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("")
@require_auth
@require_permission("VIEW_PRODUCTS")
def list_products_route():
    products = products_service.list_products()
    return jsonify([p.to_dict() for p in products])


@inventory_bp.post("")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def create_product_route():
    """
    Create a product. A non-zero initial stock is recorded as an adjustment.
    """
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_CREATE_POLICY, partial=False)
    enforce_rules_product(patch)

    product = products_service.create_product(patch=patch, actor=g.current_user)
    return jsonify(product.to_dict()), 201


@inventory_bp.put("/<int:product_id>")
@require_auth
@require_permission("MANAGE_PRODUCTS")
def update_product_route(product_id: int):
    payload = request.get_json(silent=True) or {}
    if "stock" in payload:
        return jsonify({
            "error": "stock cannot be set directly; use /adjust",
            "code": "invalid_input",
        }), 400
    patch = validate_payload(model=Product, payload=payload, policy=PRODUCT_UPDATE_POLICY, partial=True)
    enforce_rules_product(patch)

    product = products_service.update_product(product_id=product_id, patch=patch)
    return jsonify(product.to_dict())


@inventory_bp.post("/<int:product_id>/adjust")
@require_auth
@require_permission("ADJUST_INVENTORY")
def adjust_inventory_route(product_id: int):
    """
    Apply a signed stock change.

    Request body:
    {
        "change": -3,           (required, non-zero)
        "reason": "damaged",
        "note": "Water damage in bay 4"
    }
    """
    payload = request.get_json(silent=True) or {}
    patch = validate_payload(model=InventoryAdjustment, payload=payload, policy=ADJUST_POLICY, partial=False)
    enforce_rules_inventory_adjust(patch)

    adjustment = inventory_service.adjust_inventory(
        product_id=product_id,
        change=patch["change"],
        reason=patch.get("reason"),
        note=patch.get("note"),
        actor_id=g.current_user.id,
    )
    return jsonify(adjustment.to_dict()), 201


@inventory_bp.get("/<int:product_id>/history")
@require_auth
@require_permission("VIEW_INVENTORY_HISTORY")
def adjustment_history_route(product_id: int):
    adjustments = inventory_service.list_adjustments(product_id)
    return jsonify([a.to_dict() for a in adjustments])


@inventory_bp.get("/reorder-alerts")
@require_auth
@require_permission("VIEW_REORDER_ALERTS")
def reorder_alerts_route():
    products = inventory_service.reorder_alerts()
    return jsonify([p.to_dict() for p in products])


# =============================================================================
# CSV IMPORT / EXPORT
# =============================================================================

@inventory_bp.get("/export")
@require_auth
@require_permission("EXPORT_INVENTORY")
def export_inventory_route():
    filename = f"inventory_export_{utcnow().strftime('%Y%m%d_%H%M%S')}.csv"
    return Response(
        import_service.export_inventory_csv(),
        mimetype="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@inventory_bp.post("/import")
@require_auth
@require_permission("IMPORT_INVENTORY")
def import_inventory_route():
    """
    Upsert products from a CSV upload (multipart field "file", optional "note").

    Rows are independent; bad rows are counted and reported, never fatal.
    """
    if "file" not in request.files:
        return jsonify({"error": "file is required", "code": "invalid_input"}), 400

    file = request.files["file"]
    rows = import_service.read_csv_rows(file.stream.read())

    summary = import_service.import_inventory(
        rows,
        filename=file.filename or None,
        note=request.form.get("note"),
        actor_id=g.current_user.id,
    )
    return jsonify(summary.to_dict())


@inventory_bp.get("/imports")
@require_auth
@require_permission("VIEW_IMPORT_LOGS")
def import_logs_route():
    """
    Import history, newest first.

    Query params:
    - uploaded_by: int
    - start_date / end_date: YYYY-MM-DD (inclusive)
    """
    try:
        start_date = parse_iso_date(request.args.get("start_date"))
        end_date = parse_iso_date(request.args.get("end_date"))
    except ValueError:
        return jsonify({"error": "Dates must be YYYY-MM-DD", "code": "invalid_input"}), 400

    logs = import_service.list_import_logs(
        uploaded_by=request.args.get("uploaded_by", type=int),
        start_date=start_date,
        end_date=end_date,
    )
    return jsonify([entry.to_dict() for entry in logs])
