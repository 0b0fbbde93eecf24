"""
Customer task tests.

The grouping folds are pure, so most of their behavior is checked on plain
dict rows; the endpoint tests cover scoping and the completed-task window.
"""

from dataclasses import FrozenInstanceError
from datetime import date, datetime

import pytest

from matmx.errors import NotFoundError, PermissionDeniedError
from matmx.services import task_service
from matmx.services.task_service import group_completed_tasks, group_open_tasks


def _row(task_id, rep_id, rep_name, customer_id, customer_name, title="t"):
    return {
        "id": task_id,
        "assigned_to": rep_id,
        "assigned_to_name": rep_name,
        "customer_id": customer_id,
        "customer_name": customer_name,
        "title": title,
    }


class TestGroupingFold:
    def test_open_tasks_nest_rep_customer_task(self):
        rows = [
            _row(1, 10, "Alice", 100, "Acme"),
            _row(2, 10, "Alice", 100, "Acme"),
            _row(3, 10, "Alice", 200, "Globex"),
            _row(4, 11, "Bob", 100, "Acme"),
        ]
        groups = group_open_tasks(rows)

        assert [g.rep_name for g in groups] == ["Alice", "Bob"]
        alice = groups[0]
        assert [c.customer_name for c in alice.customers] == ["Acme", "Globex"]
        assert [t["id"] for t in alice.customers[0].tasks] == [1, 2]
        assert [t["id"] for t in groups[1].customers[0].tasks] == [4]

    def test_unassigned_rep_label(self):
        groups = group_open_tasks([_row(1, None, None, 100, "Acme")])
        assert groups[0].rep_id is None
        assert groups[0].rep_name == "Unassigned"

    def test_empty_input(self):
        assert group_open_tasks([]) == ()
        assert group_completed_tasks([]) == ()

    def test_result_is_immutable(self):
        groups = group_completed_tasks([_row(1, 10, "Alice", 100, "Acme")])
        with pytest.raises(FrozenInstanceError):
            groups[0].rep_name = "Mallory"
        with pytest.raises(TypeError):
            groups[0].tasks[0]["title"] = "changed"

    def test_input_rows_untouched(self):
        rows = [_row(1, 10, "Alice", 100, "Acme")]
        group_open_tasks(rows)
        assert rows == [_row(1, 10, "Alice", 100, "Acme")]

    def test_to_dict_shape(self):
        groups = group_open_tasks([_row(1, 10, "Alice", 100, "Acme")])
        assert groups[0].to_dict() == {
            "rep_id": 10,
            "rep_name": "Alice",
            "customers": [
                {
                    "customer_id": 100,
                    "customer_name": "Acme",
                    "tasks": [_row(1, 10, "Alice", 100, "Acme")],
                }
            ],
        }

    def test_completed_grouped_by_rep(self):
        rows = [
            _row(5, 10, "Alice", 100, "Acme"),
            _row(4, 10, "Alice", 200, "Globex"),
            _row(3, 11, "Bob", 100, "Acme"),
        ]
        groups = group_completed_tasks(rows)
        assert [(g.rep_name, [t["id"] for t in g.tasks]) for g in groups] == [
            ("Alice", [5, 4]),
            ("Bob", [3]),
        ]


class TestTaskLifecycle:
    def test_create_defaults_to_actor(self, client, rep, rep_headers, make_customer):
        customer = make_customer(rep)
        resp = client.post(
            "/api/crm/tasks",
            json={"customer_id": customer.id, "title": "Call back", "due_date": "2026-11-01"},
            headers=rep_headers,
        )
        assert resp.status_code == 201
        assert resp.json["assigned_to"] == rep.id
        assert resp.json["created_by"] == rep.id
        assert resp.json["status"] == "open"
        assert resp.json["due_date"] == "2026-11-01"
        assert resp.json["customer_name"] == "Acme Corp"

    def test_title_required(self, client, rep, rep_headers, make_customer):
        customer = make_customer(rep)
        resp = client.post("/api/crm/tasks", json={"customer_id": customer.id}, headers=rep_headers)
        assert resp.status_code == 400

    def test_cannot_create_on_unassigned_customer(self, client, login, rep, other_rep, make_customer):
        customer = make_customer(rep)
        resp = client.post(
            "/api/crm/tasks",
            json={"customer_id": customer.id, "title": "Sneaky"},
            headers=login(other_rep),
        )
        assert resp.status_code == 403

    def test_unknown_assignee(self, rep, make_customer):
        customer = make_customer(rep)
        with pytest.raises(NotFoundError):
            task_service.create_task(
                patch={"customer_id": customer.id, "title": "x", "assigned_to": 9999}, actor=rep
            )

    def test_complete_and_undo(self, client, rep, rep_headers, make_customer):
        customer = make_customer(rep)
        task = task_service.create_task(patch={"customer_id": customer.id, "title": "Quote"}, actor=rep)

        resp = client.post(f"/api/crm/tasks/{task.id}/complete", headers=rep_headers)
        assert resp.status_code == 200
        assert resp.json["status"] == "completed"
        assert resp.json["completed_at"] is not None

        resp = client.post(f"/api/crm/tasks/{task.id}/undo", headers=rep_headers)
        assert resp.json["status"] == "open"
        assert resp.json["completed_at"] is None

    def test_other_rep_cannot_complete(self, rep, other_rep, make_customer):
        customer = make_customer(rep)
        task = task_service.create_task(patch={"customer_id": customer.id, "title": "Mine"}, actor=rep)
        with pytest.raises(PermissionDeniedError):
            task_service.complete_task(task_id=task.id, actor=other_rep)

    def test_complete_missing_task(self, client, rep_headers):
        assert client.post("/api/crm/tasks/4040/complete", headers=rep_headers).status_code == 404


class TestTaskViews:
    def test_open_list_sorted_by_due_date_undated_last(self, client, rep, rep_headers, make_customer):
        customer = make_customer(rep)
        for title, due in (("undated", None), ("later", date(2026, 12, 1)), ("soon", date(2026, 11, 1))):
            task_service.create_task(
                patch={"customer_id": customer.id, "title": title, "due_date": due}, actor=rep
            )

        resp = client.get("/api/crm/tasks", headers=rep_headers)
        assert [t["title"] for t in resp.json] == ["soon", "later", "undated"]

        resp = client.get(f"/api/crm/tasks/customer/{customer.id}/open", headers=rep_headers)
        assert len(resp.json) == 3

    def test_grouped_endpoint(self, client, admin, admin_headers, rep, other_rep, make_customer):
        acme = make_customer(rep, name="Acme")
        globex = make_customer(other_rep, name="Globex", email="g@globex.test")
        task_service.create_task(patch={"customer_id": acme.id, "title": "a"}, actor=rep)
        task_service.create_task(patch={"customer_id": globex.id, "title": "b"}, actor=other_rep)

        resp = client.get("/api/crm/tasks/grouped", headers=admin_headers)
        assert resp.status_code == 200
        assert [g["rep_name"] for g in resp.json] == ["Riley Rep", "Sam Seller"]
        assert resp.json[0]["customers"][0]["customer_name"] == "Acme"

    def test_grouped_scoped_for_rep(self, client, rep, rep_headers, other_rep, make_customer):
        globex = make_customer(other_rep, name="Globex")
        task_service.create_task(patch={"customer_id": globex.id, "title": "b"}, actor=other_rep)
        assert client.get("/api/crm/tasks/grouped", headers=rep_headers).json == []

    def test_completed_window(self, admin, rep, make_customer, db_session):
        customer = make_customer(rep)
        recent = task_service.create_task(patch={"customer_id": customer.id, "title": "recent"}, actor=rep)
        old = task_service.create_task(patch={"customer_id": customer.id, "title": "old"}, actor=rep)
        task_service.complete_task(task_id=recent.id, actor=rep)
        task_service.complete_task(task_id=old.id, actor=rep)

        recent.completed_at = datetime(2026, 6, 15, 12, 0)
        old.completed_at = datetime(2026, 2, 1, 12, 0)
        db_session.commit()

        groups = task_service.completed_tasks_by_rep(admin, now=datetime(2026, 7, 31, 12, 0))
        assert [t["title"] for t in groups[0].tasks] == ["recent"]

        groups = task_service.completed_tasks_by_rep(
            admin, customer_id=customer.id + 1, now=datetime(2026, 7, 31, 12, 0)
        )
        assert groups == ()

    def test_completed_endpoint(self, client, rep, rep_headers, make_customer):
        customer = make_customer(rep)
        task = task_service.create_task(patch={"customer_id": customer.id, "title": "done"}, actor=rep)
        task_service.complete_task(task_id=task.id, actor=rep)

        resp = client.get(f"/api/crm/tasks/completed?customerId={customer.id}", headers=rep_headers)
        assert resp.status_code == 200
        assert resp.json[0]["rep_name"] == "Riley Rep"
        assert [t["title"] for t in resp.json[0]["tasks"]] == ["done"]
