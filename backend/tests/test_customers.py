"""
CRM customer tests: create/update/delete, assignments, interactions,
search and pipeline stages.
"""

from decimal import Decimal

import pytest

from matmx.errors import ConflictError, NotFoundError, ValidationError
from matmx.models import (
    CrmLog,
    Customer,
    CustomerAssignment,
    CustomerLog,
    CustomerTask,
    Quote,
    SalesPipelineEntry,
)
from matmx.services import customer_service, pipeline_service, task_service


class TestCreateCustomer:
    def test_create_assigns_creator_and_logs(self, client, rep, rep_headers, db_session):
        resp = client.post(
            "/api/crm",
            json={"name": "Globex", "company": "Globex Inc", "email": "ops@globex.test"},
            headers=rep_headers,
        )
        assert resp.status_code == 201
        body = resp.json
        assert body["status"] == "lead"
        assert body["created_by"] == rep.id
        assert body["assigned_user_ids"] == [rep.id]
        assert body["current_stage"] is None

        logs = db_session.query(CrmLog).filter_by(customer_id=body["id"]).all()
        assert [log.action for log in logs] == ["created_customer"]

    def test_name_required(self, client, rep_headers):
        resp = client.post("/api/crm", json={"company": "Nameless"}, headers=rep_headers)
        assert resp.status_code == 400

    def test_blank_name_rejected(self, client, rep_headers):
        resp = client.post("/api/crm", json={"name": "   "}, headers=rep_headers)
        assert resp.status_code == 400

    def test_unknown_field_rejected(self, client, rep_headers):
        resp = client.post("/api/crm", json={"name": "X", "created_by": 1}, headers=rep_headers)
        assert resp.status_code == 400
        assert "created_by" in resp.json["error"]


class TestUpdateCustomer:
    def test_update_fields(self, client, rep, rep_headers, make_customer):
        customer = make_customer(rep)
        resp = client.put(
            f"/api/crm/{customer.id}",
            json={"phone": "555-0100", "status": "active"},
            headers=rep_headers,
        )
        assert resp.status_code == 200
        assert resp.json["phone"] == "555-0100"
        assert resp.json["status"] == "active"

    def test_update_logs_changed_fields(self, rep, make_customer, db_session):
        customer = make_customer(rep)
        customer_service.update_customer(
            customer_id=customer.id, patch={"notes": "VIP"}, actor=rep
        )
        log = (
            db_session.query(CrmLog)
            .filter_by(customer_id=customer.id, action="updated_customer")
            .one()
        )
        assert "notes" in log.details

    def test_update_missing_customer(self, client, rep_headers):
        resp = client.put("/api/crm/4242", json={"phone": "1"}, headers=rep_headers)
        assert resp.status_code == 404


class TestAssignments:
    def test_replace_assignment_set(self, client, admin_headers, rep, other_rep, make_customer):
        customer = make_customer(rep)
        resp = client.post(
            f"/api/crm/{customer.id}/assign",
            json={"user_ids": [other_rep.id, other_rep.id, None]},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert [a["user_id"] for a in resp.json["assignments"]] == [other_rep.id]

    def test_empty_list_clears_assignments(self, admin, rep, make_customer, db_session):
        customer = make_customer(rep)
        assert customer_service.assign_customer(customer_id=customer.id, user_ids=[], actor=admin) == []
        assert db_session.query(CustomerAssignment).filter_by(customer_id=customer.id).count() == 0

    def test_unknown_user_keeps_previous_set(self, admin, rep, make_customer, db_session):
        customer = make_customer(rep)
        with pytest.raises(NotFoundError):
            customer_service.assign_customer(
                customer_id=customer.id, user_ids=[rep.id, 99999], actor=admin
            )
        pairs = db_session.query(CustomerAssignment).filter_by(customer_id=customer.id).all()
        assert [p.user_id for p in pairs] == [rep.id]

    def test_user_ids_must_be_list(self, client, admin_headers, rep, make_customer):
        customer = make_customer(rep)
        resp = client.post(
            f"/api/crm/{customer.id}/assign", json={"user_ids": "1"}, headers=admin_headers
        )
        assert resp.status_code == 400

    def test_unassign(self, client, admin_headers, rep, make_customer):
        customer = make_customer(rep)
        resp = client.post(
            f"/api/crm/{customer.id}/unassign", json={"user_id": rep.id}, headers=admin_headers
        )
        assert resp.status_code == 200

        resp = client.post(
            f"/api/crm/{customer.id}/unassign", json={"user_id": rep.id}, headers=admin_headers
        )
        assert resp.status_code == 404

    def test_unassign_requires_integer(self, client, admin_headers, rep, make_customer):
        customer = make_customer(rep)
        resp = client.post(
            f"/api/crm/{customer.id}/unassign", json={"user_id": "abc"}, headers=admin_headers
        )
        assert resp.status_code == 400


class TestDeleteCustomer:
    def test_delete_cascades_owned_rows(self, client, admin, admin_headers, rep, make_customer, db_session):
        customer = make_customer(rep)
        customer_service.add_interaction(customer_id=customer.id, actor=rep, type="call", note="hi")
        pipeline_service.add_stage(customer_id=customer.id, actor=rep, stage="contacted")
        task_service.create_task(patch={"customer_id": customer.id, "title": "Follow up"}, actor=rep)
        customer_id = customer.id

        resp = client.delete(f"/api/crm/{customer_id}", headers=admin_headers)
        assert resp.status_code == 200

        assert db_session.get(Customer, customer_id) is None
        for model in (CustomerTask, CustomerLog, CustomerAssignment, SalesPipelineEntry, CrmLog):
            assert db_session.query(model).filter_by(customer_id=customer_id).count() == 0

        tombstone = db_session.query(CrmLog).filter_by(action="deleted_customer").one()
        assert tombstone.customer_id is None
        assert tombstone.user_id == admin.id

    def test_customer_with_quotes_cannot_be_deleted(self, admin, rep, make_customer, db_session):
        customer = make_customer(rep)
        db_session.add(Quote(customer_id=customer.id, rep_id=rep.id, total=Decimal("0.00")))
        db_session.commit()

        with pytest.raises(ConflictError):
            customer_service.delete_customer(customer_id=customer.id, actor=admin)
        assert db_session.get(Customer, customer.id) is not None

    def test_delete_missing(self, client, admin_headers):
        assert client.delete("/api/crm/777", headers=admin_headers).status_code == 404


class TestInteractions:
    def test_add_interaction_bumps_last_contacted(self, client, rep, rep_headers, make_customer):
        customer = make_customer(rep)
        assert customer.last_contacted_at is None

        resp = client.post(
            f"/api/crm/{customer.id}/interactions",
            json={"type": "call", "note": "Asked about pricing"},
            headers=rep_headers,
        )
        assert resp.status_code == 201
        assert resp.json["type"] == "call"

        detail = client.get(f"/api/crm/{customer.id}", headers=rep_headers).json
        assert detail["last_contacted_at"] is not None

        listed = client.get(f"/api/crm/{customer.id}/interactions", headers=rep_headers).json
        assert [e["note"] for e in listed] == ["Asked about pricing"]

    def test_type_required(self, rep, make_customer):
        customer = make_customer(rep)
        with pytest.raises(ValidationError):
            customer_service.add_interaction(customer_id=customer.id, actor=rep, type="", note=None)

    def test_crm_logs_admin_only(self, client, login, admin, rep, make_customer):
        customer = make_customer(rep)
        assert client.get(f"/api/crm/{customer.id}/logs", headers=login(rep)).status_code == 403

        resp = client.get(f"/api/crm/{customer.id}/logs", headers=login(admin))
        assert resp.status_code == 200
        assert resp.json[0]["action"] == "created_customer"


class TestSearch:
    def test_matches_name_company_email(self, client, rep, rep_headers, make_customer):
        make_customer(rep, name="Initech", company="Software", email="a@initech.test")
        make_customer(rep, name="Hooli", company="Initech Partners", email="b@hooli.test")
        make_customer(rep, name="Umbrella", email="c@umbrella.test")

        resp = client.get("/api/crm/search?search=INITECH", headers=rep_headers)
        assert resp.status_code == 200
        assert [c["name"] for c in resp.json] == ["Hooli", "Initech"]

    def test_empty_term_returns_nothing(self, client, rep, rep_headers, make_customer):
        make_customer(rep)
        assert client.get("/api/crm/search?search=", headers=rep_headers).json == []

    def test_search_respects_assignments(self, client, login, rep, other_rep, make_customer):
        make_customer(other_rep, name="Hidden Co")
        assert client.get("/api/crm/search?search=hidden", headers=login(rep)).json == []


class TestPipeline:
    def test_newest_entry_is_current_stage(self, client, rep, rep_headers, make_customer):
        customer = make_customer(rep)
        for stage in ("contacted", "qualified"):
            resp = client.post(
                f"/api/crm/{customer.id}/pipeline",
                json={"stage": stage, "comment": "moving"},
                headers=rep_headers,
            )
            assert resp.status_code == 201

        history = client.get(f"/api/crm/{customer.id}/pipeline", headers=rep_headers).json
        assert [e["stage"] for e in history] == ["qualified", "contacted"]
        assert pipeline_service.current_stage(customer.id) == "qualified"

        rows = client.get("/api/crm", headers=rep_headers).json
        assert rows[0]["current_stage"] == "qualified"

        detail = client.get(f"/api/crm/{customer.id}", headers=rep_headers).json
        assert detail["current_stage"] == "qualified"

    def test_unknown_stage_rejected(self, client, rep, rep_headers, make_customer):
        customer = make_customer(rep)
        resp = client.post(
            f"/api/crm/{customer.id}/pipeline", json={"stage": "maybe"}, headers=rep_headers
        )
        assert resp.status_code == 400

    def test_stage_change_is_audited(self, rep, make_customer, db_session):
        customer = make_customer(rep)
        pipeline_service.add_stage(customer_id=customer.id, actor=rep, stage="Won")
        log = db_session.query(CrmLog).filter_by(customer_id=customer.id, action="moved_stage").one()
        assert "won" in log.details
