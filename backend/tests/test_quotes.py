"""
Quote, order and attachment tests.

Quotes are written as a whole (header + complete item set) and convert to an
order at most once.
"""

import io
import smtplib
from decimal import Decimal

import pytest

from matmx.errors import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from matmx.models import CrmLog, Order, OrderItem, Quote, QuoteItem
from matmx.services import mail_service, sales_service


@pytest.fixture
def quote_setup(rep, make_customer, make_product):
    """A customer assigned to rep and two priced products."""
    customer = make_customer(rep)
    mat = make_product(name="Floor Mat", unit_price="15.00")
    runner = make_product(name="Runner", unit_price="8.25")
    return customer, mat, runner


def _create(actor, customer, items, **header):
    return sales_service.create_quote(customer_id=customer.id, actor=actor, header=header, items=items)


class TestCreateQuote:
    def test_totals_computed_from_items(self, client, rep, rep_headers, quote_setup):
        customer, mat, runner = quote_setup
        resp = client.post(
            "/api/sales/quotes",
            json={
                "customer_id": customer.id,
                "title": "Spring order",
                "total": "1.00",
                "items": [
                    {"product_id": mat.id, "quantity": 2, "discount_percent": "10"},
                    {"product_id": runner.id, "quantity": 1, "unit_price": "8.00", "markup_percent": "25"},
                ],
            },
            headers=rep_headers,
        )
        assert resp.status_code == 201
        body = resp.json
        assert body["rep_id"] == rep.id
        assert body["status"] == "draft"
        assert body["currency"] == "USD"
        assert [i["total_price"] for i in body["items"]] == ["27.00", "10.00"]
        assert body["items"][0]["unit_price"] == "15.00"
        assert body["total"] == "37.00"

    def test_supplied_total_price_is_kept(self, rep, quote_setup):
        customer, mat, _ = quote_setup
        quote = _create(rep, customer, [{"product_id": mat.id, "quantity": 3, "total_price": "40.00"}])
        assert quote.total == Decimal("40.00")

    def test_line_total_rounds_half_up(self, rep, quote_setup):
        customer, mat, _ = quote_setup
        quote = _create(
            rep, customer,
            [{"product_id": mat.id, "quantity": 1, "unit_price": "0.05", "discount_percent": "50"}],
        )
        assert quote.total == Decimal("0.03")

    def test_unknown_product_rolls_back_everything(self, rep, quote_setup, db_session):
        customer, mat, runner = quote_setup
        with pytest.raises(NotFoundError):
            _create(
                rep, customer,
                [
                    {"product_id": mat.id, "quantity": 1},
                    {"product_id": runner.id, "quantity": 1},
                    {"product_id": 99999, "quantity": 1},
                ],
            )
        assert db_session.query(Quote).count() == 0
        assert db_session.query(QuoteItem).count() == 0
        assert db_session.query(CrmLog).filter_by(action="created_quote").count() == 0

    def test_invalid_item_rejected_before_writing(self, client, rep_headers, quote_setup, db_session):
        customer, mat, _ = quote_setup
        resp = client.post(
            "/api/sales/quotes",
            json={"customer_id": customer.id, "items": [{"product_id": mat.id, "quantity": 0}]},
            headers=rep_headers,
        )
        assert resp.status_code == 400
        assert "items[0]" in resp.json["error"]
        assert db_session.query(Quote).count() == 0

    def test_items_required(self, rep, quote_setup):
        customer, _, _ = quote_setup
        with pytest.raises(ValidationError):
            _create(rep, customer, None)

    def test_customer_id_must_be_integer(self, client, rep_headers, quote_setup):
        resp = client.post(
            "/api/sales/quotes", json={"customer_id": "1", "items": []}, headers=rep_headers
        )
        assert resp.status_code == 400

    def test_product_without_price_needs_unit_price(self, rep, quote_setup, make_product):
        customer, _, _ = quote_setup
        unpriced = make_product(unit_price=None)
        with pytest.raises(ValidationError):
            _create(rep, customer, [{"product_id": unpriced.id, "quantity": 1}])

    def test_converted_status_cannot_be_set_directly(self, rep, quote_setup):
        customer, mat, _ = quote_setup
        with pytest.raises(ValidationError):
            _create(rep, customer, [{"product_id": mat.id, "quantity": 1}], status="converted")

    def test_create_is_audited(self, rep, quote_setup, db_session):
        customer, mat, _ = quote_setup
        quote = _create(rep, customer, [{"product_id": mat.id, "quantity": 1}])
        log = db_session.query(CrmLog).filter_by(customer_id=customer.id, action="created_quote").one()
        assert f"#{quote.id}" in log.details


class TestUpdateQuote:
    def test_item_set_is_replaced(self, client, rep, rep_headers, quote_setup, db_session):
        customer, mat, runner = quote_setup
        quote = _create(
            rep, customer,
            [{"product_id": mat.id, "quantity": 1}, {"product_id": runner.id, "quantity": 4}],
        )

        resp = client.put(
            f"/api/sales/quotes/{quote.id}",
            json={"status": "sent", "items": [{"product_id": runner.id, "quantity": 2}]},
            headers=rep_headers,
        )
        assert resp.status_code == 200
        assert resp.json["status"] == "sent"
        assert [(i["product_id"], i["quantity"]) for i in resp.json["items"]] == [(runner.id, 2)]
        assert resp.json["total"] == "16.50"
        assert db_session.query(QuoteItem).filter_by(quote_id=quote.id).count() == 1

    def test_empty_item_list_clears_items(self, rep, quote_setup):
        customer, mat, _ = quote_setup
        quote = _create(rep, customer, [{"product_id": mat.id, "quantity": 1}])
        quote = sales_service.update_quote(quote_id=quote.id, actor=rep, header={}, items=[])
        assert quote.total == Decimal("0.00")
        assert sales_service.quote_items(quote.id) == []

    def test_failed_update_keeps_previous_items(self, rep, quote_setup, db_session):
        customer, mat, _ = quote_setup
        quote = _create(rep, customer, [{"product_id": mat.id, "quantity": 1}])

        with pytest.raises(NotFoundError):
            sales_service.update_quote(
                quote_id=quote.id, actor=rep, header={}, items=[{"product_id": 424242, "quantity": 1}]
            )

        items = db_session.query(QuoteItem).filter_by(quote_id=quote.id).all()
        assert [(i.product_id, i.quantity) for i in items] == [(mat.id, 1)]
        assert db_session.get(Quote, quote.id).total == Decimal("15.00")

    def test_other_rep_cannot_update(self, rep, other_rep, quote_setup):
        customer, mat, _ = quote_setup
        quote = _create(rep, customer, [{"product_id": mat.id, "quantity": 1}])
        with pytest.raises(PermissionDeniedError):
            sales_service.update_quote(quote_id=quote.id, actor=other_rep, header={}, items=[])


class TestConvertQuote:
    def test_conversion_copies_items_and_totals(self, client, rep, rep_headers, quote_setup, db_session):
        customer, mat, runner = quote_setup
        quote = _create(
            rep, customer,
            [
                {"product_id": mat.id, "quantity": 2, "discount_percent": "10"},
                {"product_id": runner.id, "quantity": 1, "total_price": "5.00"},
            ],
        )

        resp = client.post(f"/api/sales/quotes/{quote.id}/convert", headers=rep_headers)
        assert resp.status_code == 201
        order = resp.json
        assert order["quote_id"] == quote.id
        assert order["customer_id"] == customer.id
        assert order["rep_id"] == rep.id
        assert order["status"] == "pending"
        assert order["subtotal"] == order["total"] == "32.00"
        assert [(i["product_id"], i["quantity"], i["total_price"]) for i in order["items"]] == [
            (mat.id, 2, "27.00"),
            (runner.id, 1, "5.00"),
        ]
        assert db_session.get(Quote, quote.id).status == "converted"

    def test_second_conversion_conflicts(self, client, rep, rep_headers, quote_setup, db_session):
        customer, mat, _ = quote_setup
        quote = _create(rep, customer, [{"product_id": mat.id, "quantity": 1}])

        assert client.post(f"/api/sales/quotes/{quote.id}/convert", headers=rep_headers).status_code == 201
        resp = client.post(f"/api/sales/quotes/{quote.id}/convert", headers=rep_headers)
        assert resp.status_code == 409
        assert db_session.query(Order).filter_by(quote_id=quote.id).count() == 1

    def test_converted_quote_is_read_only(self, rep, quote_setup):
        customer, mat, _ = quote_setup
        quote = _create(rep, customer, [{"product_id": mat.id, "quantity": 1}])
        sales_service.convert_quote_to_order(quote_id=quote.id, actor=rep)

        with pytest.raises(ConflictError):
            sales_service.update_quote(quote_id=quote.id, actor=rep, header={"title": "late"}, items=[])

    def test_empty_quote_cannot_convert(self, rep, quote_setup, db_session):
        customer, _, _ = quote_setup
        quote = _create(rep, customer, [])
        with pytest.raises(ValidationError):
            sales_service.convert_quote_to_order(quote_id=quote.id, actor=rep)
        assert db_session.query(Order).count() == 0

    def test_missing_quote(self, client, rep_headers):
        assert client.post("/api/sales/quotes/555/convert", headers=rep_headers).status_code == 404

    def test_conversion_is_audited(self, rep, quote_setup, db_session):
        customer, mat, _ = quote_setup
        quote = _create(rep, customer, [{"product_id": mat.id, "quantity": 1}])
        order = sales_service.convert_quote_to_order(quote_id=quote.id, actor=rep)
        log = db_session.query(CrmLog).filter_by(action="converted_quote").one()
        assert f"order #{order.id}" in log.details


class TestQuoteVisibility:
    def test_reps_only_list_their_quotes(self, client, login, rep, other_rep, admin, quote_setup):
        customer, mat, _ = quote_setup
        _create(rep, customer, [{"product_id": mat.id, "quantity": 1}])

        assert len(client.get("/api/sales/quotes", headers=login(rep)).json) == 1
        assert client.get("/api/sales/quotes", headers=login(other_rep)).json == []
        assert len(client.get("/api/sales/quotes", headers=login(admin)).json) == 1

    def test_other_rep_gets_403_on_detail(self, client, login, rep, other_rep, quote_setup):
        customer, mat, _ = quote_setup
        quote = _create(rep, customer, [{"product_id": mat.id, "quantity": 1}])
        resp = client.get(f"/api/sales/quotes/{quote.id}", headers=login(other_rep))
        assert resp.status_code == 403

    def test_cannot_quote_unassigned_customer(self, client, login, other_rep, quote_setup):
        customer, mat, _ = quote_setup
        resp = client.post(
            "/api/sales/quotes",
            json={"customer_id": customer.id, "items": [{"product_id": mat.id, "quantity": 1}]},
            headers=login(other_rep),
        )
        assert resp.status_code == 403


class TestEmailQuote:
    def test_email_is_sent_and_logged(self, client, rep, rep_headers, quote_setup, db_session):
        customer, mat, _ = quote_setup
        quote = _create(rep, customer, [{"product_id": mat.id, "quantity": 1}])

        resp = client.post(f"/api/sales/quotes/{quote.id}/email", headers=rep_headers)
        assert resp.status_code == 200
        assert resp.json["recipient"] == "buyer@acme.test"
        assert db_session.query(CrmLog).filter_by(action="emailed_quote").count() == 1

    def test_customer_without_email(self, client, rep, rep_headers, make_customer, make_product):
        customer = make_customer(rep, email=None)
        product = make_product()
        quote = _create(rep, customer, [{"product_id": product.id, "quantity": 1}])

        resp = client.post(f"/api/sales/quotes/{quote.id}/email", headers=rep_headers)
        assert resp.status_code == 400

    def test_smtp_failure_is_500_and_not_logged(self, app, client, monkeypatch, rep, rep_headers, quote_setup, db_session):
        customer, mat, _ = quote_setup
        quote = _create(rep, customer, [{"product_id": mat.id, "quantity": 1}])

        def _refuse(*args, **kwargs):
            raise smtplib.SMTPConnectError(421, "unavailable")

        monkeypatch.setitem(app.config, "MAIL_SUPPRESS_SEND", False)
        monkeypatch.setattr(mail_service.smtplib, "SMTP", _refuse)

        resp = client.post(f"/api/sales/quotes/{quote.id}/email", headers=rep_headers)
        assert resp.status_code == 500
        assert resp.json["code"] == "internal"
        assert db_session.query(CrmLog).filter_by(action="emailed_quote").count() == 0

    def test_summary_lists_items(self, rep, quote_setup):
        customer, mat, _ = quote_setup
        quote = _create(rep, customer, [{"product_id": mat.id, "quantity": 2}])
        body = mail_service.build_quote_summary(quote, sales_service.quote_items(quote.id))
        assert f"Quote #{quote.id}" in body
        assert "Rep: Riley Rep" in body
        assert "Total: 30.00 USD" in body
        assert "- Floor Mat: 2 x 15.00 = 30.00" in body


class TestOrders:
    @pytest.fixture
    def order(self, rep, quote_setup):
        customer, mat, _ = quote_setup
        quote = _create(rep, customer, [{"product_id": mat.id, "quantity": 1}])
        return sales_service.convert_quote_to_order(quote_id=quote.id, actor=rep)

    def test_update_shipping(self, client, rep_headers, order):
        resp = client.put(
            f"/api/sales/orders/{order.id}",
            json={
                "status": "shipped",
                "shipping_method": "Freight",
                "shipping_cost": "45.00",
                "fulfillment_date": "2026-11-03",
            },
            headers=rep_headers,
        )
        assert resp.status_code == 200
        assert resp.json["status"] == "shipped"
        assert resp.json["shipping_cost"] == "45.00"
        assert resp.json["fulfillment_date"] == "2026-11-03"
        assert resp.json["total"] == "15.00"

    def test_totals_not_writable(self, client, rep_headers, order):
        resp = client.put(f"/api/sales/orders/{order.id}", json={"total": "1.00"}, headers=rep_headers)
        assert resp.status_code == 400

    def test_unknown_status(self, client, rep_headers, order):
        resp = client.put(f"/api/sales/orders/{order.id}", json={"status": "lost"}, headers=rep_headers)
        assert resp.status_code == 400

    def test_order_scoping(self, client, login, rep, other_rep, order):
        assert len(client.get("/api/sales/orders", headers=login(rep)).json) == 1
        assert client.get("/api/sales/orders", headers=login(other_rep)).json == []
        assert client.get(f"/api/sales/orders/{order.id}", headers=login(other_rep)).status_code == 403

    def test_order_items_are_separate_rows(self, order, db_session):
        assert db_session.query(OrderItem).filter_by(order_id=order.id).count() == 1


class TestAttachments:
    def _upload(self, client, headers, path, name="price sheet.pdf", content=b"%PDF-1.4 test"):
        return client.post(
            path,
            data={"file": (io.BytesIO(content), name)},
            headers=headers,
            content_type="multipart/form-data",
        )

    def test_upload_list_and_download(self, client, rep, rep_headers, quote_setup):
        customer, mat, _ = quote_setup
        quote = _create(rep, customer, [{"product_id": mat.id, "quantity": 1}])

        resp = self._upload(client, rep_headers, f"/api/sales/quotes/{quote.id}/attachment")
        assert resp.status_code == 201
        assert resp.json["filename"] == "price_sheet.pdf"
        assert resp.json["file_url"].startswith("/uploads/")

        listed = client.get(f"/api/sales/quotes/{quote.id}/attachments", headers=rep_headers).json
        assert [a["id"] for a in listed] == [resp.json["id"]]

        download = client.get(resp.json["file_url"], headers=rep_headers)
        assert download.status_code == 200
        assert download.data == b"%PDF-1.4 test"
        download.close()

    def test_other_rep_cannot_download(self, client, login, rep, other_rep, quote_setup):
        customer, mat, _ = quote_setup
        quote = _create(rep, customer, [{"product_id": mat.id, "quantity": 1}])
        resp = self._upload(client, login(rep), f"/api/sales/quotes/{quote.id}/attachment")

        assert client.get(resp.json["file_url"], headers=login(other_rep)).status_code == 403

    def test_order_attachment(self, client, rep, rep_headers, quote_setup):
        customer, mat, _ = quote_setup
        quote = _create(rep, customer, [{"product_id": mat.id, "quantity": 1}])
        order = sales_service.convert_quote_to_order(quote_id=quote.id, actor=rep)

        resp = self._upload(client, rep_headers, f"/api/sales/orders/{order.id}/attachment", name="po.txt")
        assert resp.status_code == 201
        assert resp.json["related_type"] == "order"

    def test_missing_file(self, client, rep, rep_headers, quote_setup):
        customer, mat, _ = quote_setup
        quote = _create(rep, customer, [{"product_id": mat.id, "quantity": 1}])
        resp = client.post(f"/api/sales/quotes/{quote.id}/attachment", headers=rep_headers)
        assert resp.status_code == 400

    def test_upload_to_missing_quote(self, client, rep_headers):
        resp = self._upload(client, rep_headers, "/api/sales/quotes/8080/attachment")
        assert resp.status_code == 404

    def test_unknown_stored_name(self, client, rep_headers):
        assert client.get("/uploads/nope.pdf", headers=rep_headers).status_code == 404
