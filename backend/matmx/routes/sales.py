# Overview: Flask API routes for quotes, orders and their attachments; parses input and returns JSON responses.

# backend/matmx/routes/sales.py
"""
Sales routes: quotes, quote-to-order conversion, orders, attachments.

SECURITY: All routes require authentication.
- Role gates: VIEW_/MANAGE_/CONVERT_/SEND_QUOTES, VIEW_/MANAGE_ORDERS, UPLOAD_ATTACHMENTS
- Ownership: non-admin callers only reach documents where they are the rep

Quote bodies carry the complete item set; an update replaces every item.
"""

from flask import Blueprint, request, jsonify, g, current_app

from ..services import attachment_service, sales_service
from ..decorators import require_auth, require_permission

sales_bp = Blueprint("sales", __name__, url_prefix="/api/sales")


# =============================================================================
# QUOTES
# =============================================================================

@sales_bp.get("/quotes")
@require_auth
@require_permission("VIEW_QUOTES")
def list_quotes_route():
    quotes = sales_service.list_quotes(g.current_user)
    return jsonify([q.to_dict() for q in quotes])


@sales_bp.get("/quotes/<int:quote_id>")
@require_auth
@require_permission("VIEW_QUOTES")
def get_quote_route(quote_id: int):
    return jsonify(sales_service.get_quote_detail(quote_id=quote_id, actor=g.current_user))


@sales_bp.post("/quotes")
@require_auth
@require_permission("MANAGE_QUOTES")
def create_quote_route():
    """
    Create a quote with all of its items.

    Request body:
    {
        "customer_id": 1,                          (required)
        "title": "Spring order",
        "valid_until": "2026-12-01T00:00:00Z",
        "currency": "USD",
        "items": [                                 (required)
            {"product_id": 4, "quantity": 2, "unit_price": "15.00",
             "markup_percent": "0", "discount_percent": "10"}
        ]
    }

    total is computed from the items; a client-supplied total is ignored.
    """
    data = request.get_json(silent=True) or {}
    customer_id = data.get("customer_id")
    if not isinstance(customer_id, int) or isinstance(customer_id, bool):
        return jsonify({"error": "customer_id must be an integer", "code": "invalid_input"}), 400

    quote = sales_service.create_quote(
        customer_id=customer_id,
        actor=g.current_user,
        header=data,
        items=data.get("items"),
    )
    return jsonify(sales_service.get_quote_detail(quote_id=quote.id, actor=g.current_user)), 201


@sales_bp.put("/quotes/<int:quote_id>")
@require_auth
@require_permission("MANAGE_QUOTES")
def update_quote_route(quote_id: int):
    data = request.get_json(silent=True) or {}
    sales_service.update_quote(
        quote_id=quote_id,
        actor=g.current_user,
        header=data,
        items=data.get("items"),
    )
    return jsonify(sales_service.get_quote_detail(quote_id=quote_id, actor=g.current_user))


@sales_bp.post("/quotes/<int:quote_id>/convert")
@require_auth
@require_permission("CONVERT_QUOTES")
def convert_quote_route(quote_id: int):
    """
    Convert a quote to an order. A quote converts once; a second call returns 409.
    """
    order = sales_service.convert_quote_to_order(quote_id=quote_id, actor=g.current_user)
    return jsonify(sales_service.get_order_detail(order_id=order.id, actor=g.current_user)), 201


@sales_bp.post("/quotes/<int:quote_id>/email")
@require_auth
@require_permission("SEND_QUOTES")
def email_quote_route(quote_id: int):
    result = sales_service.email_quote(quote_id=quote_id, actor=g.current_user)
    return jsonify({"message": "Quote emailed", **result})


# =============================================================================
# ORDERS
# =============================================================================

@sales_bp.get("/orders")
@require_auth
@require_permission("VIEW_ORDERS")
def list_orders_route():
    orders = sales_service.list_orders(g.current_user)
    return jsonify([o.to_dict() for o in orders])


@sales_bp.get("/orders/<int:order_id>")
@require_auth
@require_permission("VIEW_ORDERS")
def get_order_route(order_id: int):
    return jsonify(sales_service.get_order_detail(order_id=order_id, actor=g.current_user))


@sales_bp.put("/orders/<int:order_id>")
@require_auth
@require_permission("MANAGE_ORDERS")
def update_order_route(order_id: int):
    """
    Update status and shipping details.

    Request body (all optional):
    {
        "status": "shipped",
        "shipping_method": "Freight",
        "shipping_cost": "45.00",
        "fulfillment_date": "2026-11-03T15:00:00Z"
    }
    """
    data = request.get_json(silent=True) or {}
    sales_service.update_order(order_id=order_id, actor=g.current_user, payload=data)
    return jsonify(sales_service.get_order_detail(order_id=order_id, actor=g.current_user))


# =============================================================================
# ATTACHMENTS
# =============================================================================

def _upload(related_type: str, related_id: int):
    attachment = attachment_service.save_attachment(
        related_type=related_type,
        related_id=related_id,
        file_storage=request.files.get("file"),
        actor=g.current_user,
    )
    current_app.logger.info(
        "Attachment %s stored for %s %s by user %s",
        attachment.stored_name, related_type, related_id, g.current_user.id,
    )
    return jsonify(attachment.to_dict()), 201


def _list(related_type: str, related_id: int):
    attachments = attachment_service.list_attachments(
        related_type=related_type,
        related_id=related_id,
        actor=g.current_user,
    )
    return jsonify([a.to_dict() for a in attachments])


@sales_bp.post("/quotes/<int:quote_id>/attachment")
@require_auth
@require_permission("UPLOAD_ATTACHMENTS")
def upload_quote_attachment_route(quote_id: int):
    return _upload("quote", quote_id)


@sales_bp.get("/quotes/<int:quote_id>/attachments")
@require_auth
@require_permission("VIEW_QUOTES")
def list_quote_attachments_route(quote_id: int):
    return _list("quote", quote_id)


@sales_bp.post("/orders/<int:order_id>/attachment")
@require_auth
@require_permission("UPLOAD_ATTACHMENTS")
def upload_order_attachment_route(order_id: int):
    return _upload("order", order_id)


@sales_bp.get("/orders/<int:order_id>/attachments")
@require_auth
@require_permission("VIEW_ORDERS")
def list_order_attachments_route(order_id: int):
    return _list("order", order_id)
