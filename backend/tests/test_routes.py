"""
HTTP surface: status codes, actor attribution and JSON shapes.

Dates are far in the future so results do not depend on the day the suite runs.
"""

import pytest
from sqlalchemy.orm.exc import StaleDataError

from paytrack.services import item_service


def _item_body(category_id, **overrides):
    body = {
        "name": "Scaffolding",
        "category_id": category_id,
        "total_amount_cents": 30000,
        "start_date": "2030-01-10",
    }
    body.update(overrides)
    return body


@pytest.fixture
def created(client, db_session, category):
    response = client.post("/api/items", json=_item_body(category.id), headers={"X-Actor": "carol"})
    assert response.status_code == 201
    return response.get_json()["item"]


class TestItemRoutes:
    def test_create_returns_planned_records(self, client, db_session, category):
        response = client.post("/api/items", json=_item_body(
            category.id, payment_type="monthly", total_amount_cents=90000,
            start_date="2030-01-01", end_date="2030-03-01",
        ))
        assert response.status_code == 201
        data = response.get_json()
        assert data["item"]["status"] == "pending"
        assert [r["amount_cents"] for r in data["planned_records"]] == [30000, 30000, 30000]

    def test_validation_error_is_400(self, client, db_session, category):
        response = client.post("/api/items", json=_item_body(category.id, total_amount_cents="12.5"))
        assert response.status_code == 400
        assert "error" in response.get_json()

    def test_missing_item_is_404(self, client, db_session):
        assert client.get("/api/items/9999").status_code == 404
        assert client.post("/api/items/9999/payments", json={"amount_cents": 1}).status_code == 404

    def test_overpayment_is_409(self, client, created):
        response = client.post(f"/api/items/{created['id']}/payments", json={"amount_cents": 30001})
        assert response.status_code == 409

    def test_payment_then_list_records(self, client, created):
        response = client.post(
            f"/api/items/{created['id']}/payments",
            json={"amount_cents": 10000, "payment_date": "2030-01-05", "method": "transfer"},
        )
        assert response.status_code == 201
        assert response.get_json()["item"]["status"] == "partial"

        records = client.get(f"/api/items/{created['id']}/records").get_json()["records"]
        assert [r["amount_cents"] for r in records] == [10000]

    def test_lifecycle(self, client, created):
        item_id = created["id"]
        assert client.post(f"/api/items/{item_id}/purge").status_code == 409

        assert client.delete(f"/api/items/{item_id}").status_code == 200
        assert client.get(f"/api/items/{item_id}").status_code == 404
        deleted = client.get("/api/items/deleted").get_json()
        assert [i["id"] for i in deleted["items"]] == [item_id]

        assert client.post(f"/api/items/{item_id}/restore").status_code == 200
        assert client.post(f"/api/items/{item_id}/restore").status_code == 409

        client.delete(f"/api/items/{item_id}")
        purged = client.post(f"/api/items/{item_id}/purge")
        assert purged.status_code == 200
        assert purged.get_json()["item_id"] == item_id

    def test_list_rejects_unknown_status(self, client, db_session):
        assert client.get("/api/items?status=lost").status_code == 400

    def test_payment_in_decimal_units(self, client, created):
        response = client.post(f"/api/items/{created['id']}/payments", json={"amount": "100.50"})
        assert response.status_code == 201
        assert response.get_json()["record"]["amount_cents"] == 10050

    @pytest.mark.parametrize("body", [
        {"amount": "100.00", "amount_cents": 10000},
        {"amount": "ten"},
        {"amount": 1.5},
        {},
    ])
    def test_payment_amount_forms_rejected(self, client, created, body):
        response = client.post(f"/api/items/{created['id']}/payments", json=body)
        assert response.status_code == 400

    def test_monthly_total_edit_regenerates_plan(self, client, db_session, category):
        item = client.post("/api/items", json=_item_body(
            category.id, payment_type="monthly", total_amount_cents=90000,
            start_date="2030-01-01", end_date="2030-03-01",
        )).get_json()["item"]

        response = client.patch(f"/api/items/{item['id']}", json={"total_amount_cents": 120000})

        assert response.status_code == 200
        planned = client.get(f"/api/items/{item['id']}/records?planned=true").get_json()["records"]
        assert [r["amount_cents"] for r in planned] == [40000, 40000, 40000]

    def test_record_correction_and_removal(self, client, created):
        payment = client.post(f"/api/items/{created['id']}/payments", json={"amount_cents": 10000}).get_json()
        record_id = payment["record"]["id"]

        corrected = client.patch(f"/api/items/records/{record_id}", json={"amount": "300.00", "reason": "typo"})
        assert corrected.status_code == 200
        data = corrected.get_json()
        assert data["record"]["amount_cents"] == 30000
        assert (data["item"]["paid_amount_cents"], data["item"]["status"]) == (30000, "paid")

        overpaid = client.patch(f"/api/items/records/{record_id}", json={"amount_cents": 30001})
        assert overpaid.status_code == 409

        removed = client.delete(f"/api/items/records/{record_id}")
        assert removed.status_code == 200
        assert (removed.get_json()["item"]["paid_amount_cents"], removed.get_json()["item"]["status"]) == (0, "pending")
        assert client.delete(f"/api/items/records/{record_id}").status_code == 404

    def test_recompute(self, client, created):
        response = client.post(f"/api/items/{created['id']}/recompute")
        assert response.status_code == 200
        assert response.get_json()["item"]["paid_amount_cents"] == 0

    def test_batch_update(self, client, db_session, category):
        first = client.post("/api/items", json=_item_body(category.id, name="first")).get_json()["item"]
        second = client.post("/api/items", json=_item_body(category.id, name="second")).get_json()["item"]

        response = client.post("/api/items/batch", json={
            "item_ids": [first["id"], second["id"]], "action": "update_priority", "data": {"priority": 4},
        }, headers={"X-Actor": "dana"})

        assert response.status_code == 200
        data = response.get_json()
        assert data["count"] == 2
        assert {i["priority"] for i in data["items"]} == {4}

        history = client.get(f"/api/audit/payment_items/{first['id']}").get_json()
        assert history["entries"][0]["actor"] == "dana"

        assert client.post("/api/items/batch", json={
            "item_ids": [first["id"]], "action": "delete",
        }).status_code == 400
        assert client.post("/api/items/batch", json={
            "item_ids": [first["id"], 9999], "action": "archive",
        }).status_code == 404

    def test_concurrent_write_is_409(self, client, created, monkeypatch):
        def stale(*args, **kwargs):
            raise StaleDataError("UPDATE statement on table 'payment_items' expected to update 1 row(s); 0 were matched.")

        monkeypatch.setattr(item_service, "update_item", stale)
        response = client.patch(f"/api/items/{created['id']}", json={"name": "Renamed"})
        assert response.status_code == 409
        assert "retry" in response.get_json()["error"]


class TestAllocationRoute:
    def test_waterfall(self, client, db_session, category):
        first = client.post("/api/items", json=_item_body(category.id, name="first")).get_json()["item"]
        second = client.post("/api/items", json=_item_body(
            category.id, name="second", total_amount_cents=50000, start_date="2030-02-10",
        )).get_json()["item"]

        response = client.post("/api/allocations", json={
            "category_id": category.id, "amount_cents": 60000, "payment_date": "2029-12-20",
        })

        assert response.status_code == 200
        data = response.get_json()
        assert data["method"] == "subcategory_allocation"
        assert data["leftover_cents"] == 0
        assert [(l["item_id"], l["allocated_cents"], l["is_fully_paid"]) for l in data["lines"]] == [
            (first["id"], 30000, True),
            (second["id"], 30000, False),
        ]

    def test_scope_required(self, client, db_session):
        assert client.post("/api/allocations", json={"amount_cents": 100}).status_code == 400

    def test_amount_required(self, client, db_session, category):
        response = client.post("/api/allocations", json={"category_id": category.id})
        assert response.status_code == 400

    def test_decimal_amount(self, client, db_session, category):
        client.post("/api/items", json=_item_body(category.id))
        response = client.post("/api/allocations", json={"category_id": category.id, "amount": "250.00"})
        assert response.status_code == 200
        data = response.get_json()
        assert data["amount_cents"] == 25000
        assert data["lines"][0]["allocated_cents"] == 25000


class TestAuditRoutes:
    def test_history_carries_actor(self, client, created):
        client.patch(f"/api/items/{created['id']}", json={"name": "Scaffolding hire"},
                     headers={"X-Actor": "dave"})

        entries = client.get(f"/api/audit/payment_items/{created['id']}").get_json()["entries"]
        assert [(e["action"], e["actor"]) for e in entries] == [("UPDATE", "dave"), ("INSERT", "carol")]
        assert entries[0]["changed_fields"] == ["name"]

    def test_default_actor_from_config(self, client, db_session, category):
        item = client.post("/api/items", json=_item_body(category.id)).get_json()["item"]
        entries = client.get("/api/audit?table=payment_items").get_json()["entries"]
        assert entries[0]["record_id"] == item["id"]
        assert entries[0]["actor"] == "test-suite"


class TestForecastRoute:
    def test_hide_and_details(self, client, db_session):
        response = client.get("/api/forecast?months=2&hide=budget,paid&details=false")
        assert response.status_code == 200
        data = response.get_json()
        assert len(data["months"]) == 2
        assert data["visibility"]["budget"] is False
        assert data["visibility"]["scheduled"] is True
        assert "details" not in data["months"][0]

    def test_bad_parameters(self, client, db_session):
        assert client.get("/api/forecast?months=abc").status_code == 400
        assert client.get("/api/forecast?months=0").status_code == 400
        assert client.get("/api/forecast?hide=taxes").status_code == 400


class TestScheduleAndBudgetRoutes:
    def test_schedule_flow(self, client, created):
        response = client.post("/api/schedules", json={
            "payment_item_id": created["id"], "scheduled_date": "2030-01-05", "scheduled_amount_cents": 10000,
        })
        assert response.status_code == 201
        schedule_id = response.get_json()["schedule"]["id"]

        moved = client.post(f"/api/schedules/{schedule_id}/reschedule", json={"scheduled_date": "2030-01-08"})
        assert moved.status_code == 200
        assert moved.get_json()["schedule"]["reschedule_count"] == 1

        january = client.get("/api/schedules?year=2030&month=1").get_json()["schedules"]
        assert [s["id"] for s in january] == [schedule_id]

        assert client.post(f"/api/schedules/{schedule_id}/complete").status_code == 200
        assert client.post(f"/api/schedules/{schedule_id}/cancel").status_code == 409

    def test_overdue_and_unscheduled_listings(self, client, created):
        schedule_id = client.post("/api/schedules", json={
            "payment_item_id": created["id"], "scheduled_date": "2030-01-05", "scheduled_amount_cents": 10000,
        }).get_json()["schedule"]["id"]

        overdue = client.get("/api/schedules/overdue?as_of=2030-01-08").get_json()
        assert [(s["id"], s["overdue_days"]) for s in overdue["schedules"]] == [(schedule_id, 3)]
        assert client.get("/api/schedules/overdue?as_of=soon").status_code == 400

        unscheduled = client.get("/api/schedules/unscheduled?year=2030&month=1").get_json()
        assert [(i["id"], i["unscheduled_cents"]) for i in unscheduled["items"]] == [(created["id"], 20000)]
        assert client.get("/api/schedules/unscheduled?year=2030").status_code == 400

    def test_budget_conversion(self, client, db_session, category):
        plan = client.post("/api/budget/plans", json={
            "name": "2030", "start_date": "2030-01-01", "end_date": "2030-12-31",
        }).get_json()["plan"]
        budget_item = client.post(f"/api/budget/plans/{plan['id']}/items", json={
            "name": "Facade", "planned_amount_cents": 250000, "category_id": category.id,
        }).get_json()["budget_item"]

        response = client.post(f"/api/budget/items/{budget_item['id']}/convert")
        assert response.status_code == 201
        data = response.get_json()
        assert data["budget_item"]["converted_to_payment"] is True
        assert data["payment_item"]["total_amount_cents"] == 250000

        assert client.post(f"/api/budget/items/{budget_item['id']}/convert").status_code == 409


def test_health(client, db_session):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.get_json()["checks"]["database"]["status"] == "healthy"
