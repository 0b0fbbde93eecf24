"""
Sales Service - quotes, quote-to-order conversion, orders

WHY: Quotes are atomic business documents. A quote and its items are always
written together: creation inserts the header and every item in one
transaction, and an update replaces the full item set (delete all, re-insert)
in one transaction. If any item fails (unknown product, constraint), nothing
from that call is kept.

Totals:
- QuoteItem.total_price is trusted as supplied. When omitted it is computed
  once from quantity, unit_price, markup and discount (money.line_total).
- Quote.total is the sum of its items' total_price, recomputed on every write.
- Conversion copies items verbatim and sets order subtotal = total = the sum
  of the items' stored total_price.

Conversion is one-way and happens at most once per quote: the quote row is
locked, must not already be "converted", and orders.quote_id is unique.
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..errors import ConflictError, NotFoundError, ValidationError
from ..extensions import db
from ..models import Order, OrderItem, Product, Quote, QuoteItem, User
from ..models.sales import DEFAULT_CURRENCY, ORDER_STATUSES, QUOTE_STATUSES, QUOTE_STATUS_CONVERTED
from ..money import ZERO, line_total, sum_money
from ..validation import (
    ModelValidationPolicy,
    enforce_rules_order,
    enforce_rules_quote_item,
    validate_payload,
)
from . import audit_service, mail_service, permission_service
from .concurrency import atomic, lock_for_update
from .customer_service import get_customer_for


QUOTE_HEADER_POLICY = ModelValidationPolicy(
    writable_fields={
        "title",
        "valid_until",
        "delivery_date",
        "internal_note",
        "customer_note",
        "currency",
        "status",
    },
)

QUOTE_ITEM_POLICY = ModelValidationPolicy(
    writable_fields={
        "product_id",
        "quantity",
        "unit_price",
        "markup_percent",
        "discount_percent",
        "total_price",
    },
    required_on_create={"product_id", "quantity"},
)

ORDER_UPDATE_POLICY = ModelValidationPolicy(
    writable_fields={"status", "shipping_method", "shipping_cost", "fulfillment_date"},
)

# Keys accepted in a quote body that are not header columns
_QUOTE_BODY_KEYS = {"customer_id", "items", "total"}


# -- Input cleaning (runs before any store access) --

def clean_quote_header(payload: dict | None) -> dict:
    payload = dict(payload or {})
    for key in _QUOTE_BODY_KEYS:
        # total is derived from items; a client-sent total is ignored
        payload.pop(key, None)

    header = validate_payload(model=Quote, payload=payload, policy=QUOTE_HEADER_POLICY, partial=True)

    if "currency" in header:
        currency = (header["currency"] or "").upper()
        if len(currency) != 3 or not currency.isalpha():
            raise ValidationError("currency must be a 3-letter code")
        header["currency"] = currency
    if "status" in header:
        if header["status"] not in QUOTE_STATUSES or header["status"] == QUOTE_STATUS_CONVERTED:
            allowed = [s for s in QUOTE_STATUSES if s != QUOTE_STATUS_CONVERTED]
            raise ValidationError(f"status must be one of: {', '.join(allowed)}")
    return header


def clean_quote_items(items) -> list[dict]:
    if items is None:
        raise ValidationError("items is required (the complete item set)")
    if not isinstance(items, list):
        raise ValidationError("items must be a list")

    cleaned = []
    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"items[{index}] must be an object")
        try:
            line = validate_payload(model=QuoteItem, payload=raw, policy=QUOTE_ITEM_POLICY, partial=False)
            enforce_rules_quote_item(line)
        except ValidationError as exc:
            raise ValidationError(f"items[{index}]: {exc.message}")
        cleaned.append(line)
    return cleaned


# -- Reads --

def get_quote(quote_id: int) -> Quote:
    quote = db.session.get(Quote, quote_id)
    if quote is None:
        raise NotFoundError("Quote not found")
    return quote


def get_quote_for(actor: User, quote_id: int, action: str | None = None) -> Quote:
    quote = get_quote(quote_id)
    permission_service.require_ownership(actor, "quote", quote, action=action)
    return quote


def quote_items(quote_id: int) -> list[QuoteItem]:
    return (
        db.session.query(QuoteItem)
        .filter(QuoteItem.quote_id == quote_id)
        .order_by(QuoteItem.id.asc())
        .all()
    )


def get_quote_detail(*, quote_id: int, actor: User) -> dict:
    """Quote header plus items (two independent reads)."""
    quote = get_quote_for(actor, quote_id, action="VIEW_QUOTES")
    data = quote.to_dict()
    data["items"] = [i.to_dict() for i in quote_items(quote.id)]
    return data


def list_quotes(actor: User) -> list[Quote]:
    """Newest first. Non-admins see only quotes where they are the rep."""
    q = db.session.query(Quote)
    if not permission_service.bypasses_ownership(actor):
        q = q.filter(Quote.rep_id == actor.id)
    return q.order_by(Quote.created_at.desc(), Quote.id.desc()).all()


# -- Writes --

def _insert_items(quote: Quote, lines: list[dict]) -> list[QuoteItem]:
    """Insert one QuoteItem per line, flushing each. Caller owns the transaction."""
    stored = []
    for line in lines:
        product = db.session.get(Product, line["product_id"])
        if product is None:
            raise NotFoundError(f"Product {line['product_id']} not found")

        unit_price = line.get("unit_price")
        if unit_price is None:
            unit_price = product.unit_price
        if unit_price is None:
            raise ValidationError(f"unit_price is required for product {product.id} (no list price)")

        markup = line.get("markup_percent")
        markup = ZERO if markup is None else markup
        discount = line.get("discount_percent")
        discount = ZERO if discount is None else discount

        total_price = line.get("total_price")
        if total_price is None:
            total_price = line_total(line["quantity"], unit_price, markup, discount)

        item = QuoteItem(
            quote_id=quote.id,
            product_id=product.id,
            quantity=line["quantity"],
            unit_price=Decimal(unit_price),
            markup_percent=markup,
            discount_percent=discount,
            total_price=total_price,
        )
        db.session.add(item)
        db.session.flush()
        stored.append(item)
    return stored


def create_quote(*, customer_id: int, actor: User, header: dict | None, items) -> Quote:
    """
    Create a quote and all of its items atomically. rep_id is the actor.

    Raises:
        ValidationError: bad header or item fields (nothing written)
        NotFoundError: unknown customer or product (whole quote rolled back)
        PermissionDeniedError: actor cannot access the customer
    """
    header = clean_quote_header(header)
    lines = clean_quote_items(items)
    customer = get_customer_for(actor, customer_id, action="MANAGE_QUOTES")

    with atomic():
        quote = Quote(
            customer_id=customer.id,
            rep_id=actor.id,
            currency=header.pop("currency", None) or DEFAULT_CURRENCY,
            status=header.pop("status", None) or "draft",
            total=ZERO,
            **header,
        )
        db.session.add(quote)
        db.session.flush()

        stored = _insert_items(quote, lines)
        quote.total = sum_money(i.total_price for i in stored)

        audit_service.append_crm_log(
            customer_id=customer.id,
            user_id=actor.id,
            action=audit_service.CREATED_QUOTE,
            details=f"Created quote #{quote.id} with {len(stored)} item(s), total {quote.total} {quote.currency}",
        )

    current_app.logger.info("Quote %s created by user %s", quote.id, actor.id)
    return quote


def _lock_quote(quote_id: int) -> Quote:
    quote = (
        lock_for_update(db.session.query(Quote).filter(Quote.id == quote_id))
        .populate_existing()
        .first()
    )
    if quote is None:
        raise NotFoundError("Quote not found")
    return quote


def update_quote(*, quote_id: int, actor: User, header: dict | None, items) -> Quote:
    """
    Update header fields and replace the complete item set, atomically.

    Existing items are deleted and the supplied set inserted; the stored set
    always equals the last submission. Converted quotes are read-only.
    """
    header = clean_quote_header(header)
    lines = clean_quote_items(items)
    get_quote_for(actor, quote_id, action="MANAGE_QUOTES")

    with atomic():
        quote = _lock_quote(quote_id)
        if quote.status == QUOTE_STATUS_CONVERTED:
            raise ConflictError("Quote has been converted to an order and can no longer be edited")

        for k, v in header.items():
            setattr(quote, k, v)

        db.session.query(QuoteItem).filter(QuoteItem.quote_id == quote.id).delete(
            synchronize_session="fetch"
        )
        db.session.flush()

        stored = _insert_items(quote, lines)
        quote.total = sum_money(i.total_price for i in stored)

        audit_service.append_crm_log(
            customer_id=quote.customer_id,
            user_id=actor.id,
            action=audit_service.UPDATED_QUOTE,
            details=f"Updated quote #{quote.id}: {len(stored)} item(s), total {quote.total} {quote.currency}",
        )

    return quote


def convert_quote_to_order(*, quote_id: int, actor: User) -> Order:
    """
    Turn a quote into an order with copies of its items. One way, once.

    Raises:
        NotFoundError: quote missing
        ValidationError: quote has no items
        ConflictError: quote was already converted
    """
    get_quote_for(actor, quote_id, action="CONVERT_QUOTES")

    with atomic():
        quote = _lock_quote(quote_id)
        if quote.status == QUOTE_STATUS_CONVERTED:
            raise ConflictError(f"Quote {quote.id} has already been converted to an order")

        items = quote_items(quote.id)
        if not items:
            raise ValidationError("Cannot convert a quote with no items")

        subtotal = sum_money(i.total_price for i in items)
        order = Order(
            quote_id=quote.id,
            customer_id=quote.customer_id,
            rep_id=quote.rep_id,
            subtotal=subtotal,
            total=subtotal,
            currency=quote.currency,
            status="pending",
        )
        db.session.add(order)
        db.session.flush()

        for item in items:
            db.session.add(OrderItem(
                order_id=order.id,
                product_id=item.product_id,
                quantity=item.quantity,
                unit_price=item.unit_price,
                discount_percent=item.discount_percent,
                total_price=item.total_price,
            ))

        quote.status = QUOTE_STATUS_CONVERTED
        db.session.flush()

        audit_service.append_crm_log(
            customer_id=quote.customer_id,
            user_id=actor.id,
            action=audit_service.CONVERTED_QUOTE,
            details=f"Converted quote #{quote.id} to order #{order.id} ({order.total} {order.currency})",
        )

    current_app.logger.info("Quote %s converted to order %s by user %s", quote_id, order.id, actor.id)
    return order


def email_quote(*, quote_id: int, actor: User) -> dict:
    """
    Send the quote summary to the customer's email address.

    The audit row is written only after the message was handed to SMTP.
    """
    quote = get_quote_for(actor, quote_id, action="SEND_QUOTES")
    recipient = quote.customer.email if quote.customer else None
    if not recipient:
        raise ValidationError("Customer has no email address")

    items = quote_items(quote.id)
    mail_service.send_quote_email(quote=quote, items=items, recipient=recipient)

    with atomic():
        audit_service.append_crm_log(
            customer_id=quote.customer_id,
            user_id=actor.id,
            action=audit_service.EMAILED_QUOTE,
            details=f"Emailed quote #{quote.id} to {recipient}",
        )

    return {"quote_id": quote.id, "recipient": recipient}


# -- Orders --

def get_order(order_id: int) -> Order:
    order = db.session.get(Order, order_id)
    if order is None:
        raise NotFoundError("Order not found")
    return order


def get_order_for(actor: User, order_id: int, action: str | None = None) -> Order:
    order = get_order(order_id)
    permission_service.require_ownership(actor, "order", order, action=action)
    return order


def list_orders(actor: User) -> list[Order]:
    q = db.session.query(Order)
    if not permission_service.bypasses_ownership(actor):
        q = q.filter(Order.rep_id == actor.id)
    return q.order_by(Order.created_at.desc(), Order.id.desc()).all()


def get_order_detail(*, order_id: int, actor: User) -> dict:
    order = get_order_for(actor, order_id, action="VIEW_ORDERS")
    data = order.to_dict()
    data["items"] = [
        i.to_dict()
        for i in db.session.query(OrderItem).filter(OrderItem.order_id == order.id).order_by(OrderItem.id.asc())
    ]
    return data


def update_order(*, order_id: int, actor: User, payload: dict | None) -> Order:
    """Update status and shipping fields. Totals and items are write-once."""
    patch = validate_payload(model=Order, payload=payload, policy=ORDER_UPDATE_POLICY, partial=True)
    enforce_rules_order(patch)
    if "status" in patch and patch["status"] not in ORDER_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(ORDER_STATUSES)}")

    order = get_order_for(actor, order_id, action="MANAGE_ORDERS")

    with atomic():
        for k, v in patch.items():
            setattr(order, k, v)

    return order
