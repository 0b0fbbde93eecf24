from __future__ import annotations

from ..extensions import db
from matmx.money import percent_str, to_money_str
from matmx.time_utils import to_iso_date, to_utc_z


QUOTE_STATUSES = ("draft", "sent", "accepted", "rejected", "converted")
QUOTE_STATUS_CONVERTED = "converted"

ORDER_STATUSES = ("pending", "processing", "shipped", "delivered", "cancelled")

DEFAULT_CURRENCY = "USD"


class Quote(db.Model):
    """
    Sales quote document.

    WHY: Quotes are business documents. Their items are always written as a
    complete set (create, or delete-all-then-reinsert on update) and total is
    the sum of item total_price, computed at write time.

    LIFECYCLE: draft -> sent -> accepted/rejected; any of those -> converted.
    converted is terminal: the quote can neither be edited nor converted again.
    """
    __tablename__ = "quotes"
    __table_args__ = (
        db.Index("ix_quotes_rep_created", "rep_id", "created_at"),
        db.Index("ix_quotes_customer", "customer_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False)
    rep_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    title = db.Column(db.String(255), nullable=True)
    valid_until = db.Column(db.Date, nullable=True)
    delivery_date = db.Column(db.Date, nullable=True)
    internal_note = db.Column(db.Text, nullable=True)
    customer_note = db.Column(db.Text, nullable=True)

    currency = db.Column(db.String(3), nullable=False, default=DEFAULT_CURRENCY)
    total = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    status = db.Column(db.String(16), nullable=False, default="draft")

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    customer = db.relationship("Customer")
    rep = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "customer_id": self.customer_id,
            "customer_name": self.customer.name if self.customer else None,
            "rep_id": self.rep_id,
            "rep_name": self.rep.name if self.rep else None,
            "title": self.title,
            "valid_until": to_iso_date(self.valid_until),
            "delivery_date": to_iso_date(self.delivery_date),
            "internal_note": self.internal_note,
            "customer_note": self.customer_note,
            "currency": self.currency,
            "total": to_money_str(self.total),
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class QuoteItem(db.Model):
    """
    Quote line. total_price is stored as supplied by the caller.
    """
    __tablename__ = "quote_items"
    __table_args__ = (
        db.Index("ix_quote_items_quote", "quote_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    quote_id = db.Column(db.Integer, db.ForeignKey("quotes.id"), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    markup_percent = db.Column(db.Numeric(6, 2), nullable=False, default=0)
    discount_percent = db.Column(db.Numeric(6, 2), nullable=False, default=0)
    total_price = db.Column(db.Numeric(12, 2), nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "quote_id": self.quote_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_price": to_money_str(self.unit_price),
            "markup_percent": percent_str(self.markup_percent),
            "discount_percent": percent_str(self.discount_percent),
            "total_price": to_money_str(self.total_price),
        }


class Order(db.Model):
    """
    Sales order. Created only by converting a quote.

    quote_id is unique: a quote yields at most one order.
    """
    __tablename__ = "orders"
    __table_args__ = (
        db.UniqueConstraint("quote_id", name="uq_orders_quote"),
        db.Index("ix_orders_rep_created", "rep_id", "created_at"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    quote_id = db.Column(db.Integer, db.ForeignKey("quotes.id"), nullable=True)
    customer_id = db.Column(db.Integer, db.ForeignKey("customers.id"), nullable=False)
    rep_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    subtotal = db.Column(db.Numeric(12, 2), nullable=False)
    total = db.Column(db.Numeric(12, 2), nullable=False)
    currency = db.Column(db.String(3), nullable=False, default=DEFAULT_CURRENCY)

    status = db.Column(db.String(16), nullable=False, default="pending")

    # Shipping
    shipping_method = db.Column(db.String(64), nullable=True)
    shipping_cost = db.Column(db.Numeric(12, 2), nullable=True)
    fulfillment_date = db.Column(db.Date, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), onupdate=db.func.now())

    customer = db.relationship("Customer")
    rep = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "quote_id": self.quote_id,
            "customer_id": self.customer_id,
            "customer_name": self.customer.name if self.customer else None,
            "rep_id": self.rep_id,
            "rep_name": self.rep.name if self.rep else None,
            "subtotal": to_money_str(self.subtotal),
            "total": to_money_str(self.total),
            "currency": self.currency,
            "status": self.status,
            "shipping_method": self.shipping_method,
            "shipping_cost": to_money_str(self.shipping_cost),
            "fulfillment_date": to_iso_date(self.fulfillment_date),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class OrderItem(db.Model):
    """
    Order line, copied verbatim from a quote line at conversion. Write-once.
    """
    __tablename__ = "order_items"
    __table_args__ = (
        db.Index("ix_order_items_order", "order_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    order_id = db.Column(db.Integer, db.ForeignKey("orders.id"), nullable=False)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price = db.Column(db.Numeric(12, 2), nullable=False)
    discount_percent = db.Column(db.Numeric(6, 2), nullable=False, default=0)
    total_price = db.Column(db.Numeric(12, 2), nullable=False)

    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "order_id": self.order_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "quantity": self.quantity,
            "unit_price": to_money_str(self.unit_price),
            "discount_percent": percent_str(self.discount_percent),
            "total_price": to_money_str(self.total_price),
        }
