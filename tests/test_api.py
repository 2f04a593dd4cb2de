"""Staff terminal HTTP API."""

from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.exc import OperationalError

from conto_shared.db import get_session
from conto_shared.models import OrderItem, RealtimeEvent
from conto_shared.services import settlement_service


class TestHealth:
    def test_health(self, client):
        resp = client.get("/api/health")
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "ok"


class TestAuthentication:
    def test_missing_headers(self, client, open_session):
        session_id = open_session()
        resp = client.get(f"/api/sessions/{session_id}/bill")
        assert resp.status_code == 401

    def test_unknown_role(self, client, open_session):
        session_id = open_session()
        resp = client.get(
            f"/api/sessions/{session_id}/bill",
            headers={"X-Employee-Role": "guest", "X-Employee-Id": "1"},
        )
        assert resp.status_code == 401

    def test_waiter_cannot_settle(self, client, open_session, headers):
        session_id = open_session()
        resp = client.post(
            f"/api/sessions/{session_id}/settle",
            json={"line_ids": ["cover:1"]},
            headers=headers("waiter", 3),
        )
        assert resp.status_code == 403
        assert resp.get_json()["code"] == "PERM_001"


class TestBillFlow:
    def test_get_bill(self, client, open_session, add_order, headers):
        session_id = open_session(customer_count=2)
        (pizza_id,) = add_order(session_id, [("pizza", 3)])

        resp = client.get(f"/api/sessions/{session_id}/bill", headers=headers("waiter", 3))

        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["total"] == "28.00"
        assert [line["line_id"] for line in data["bill_lines"]] == [
            f"item:{pizza_id}:1",
            f"item:{pizza_id}:2",
            f"item:{pizza_id}:3",
        ]
        assert [line["price"] for line in data["virtual_lines"]] == ["2.00", "2.00"]
        assert data["can_close"] is False

    def test_settle_then_close(self, client, open_session, add_order, headers):
        session_id = open_session(customer_count=2)
        (pizza_id,) = add_order(session_id, [("pizza", 3)])

        resp = client.post(
            f"/api/sessions/{session_id}/settle",
            json={"line_ids": [f"item:{pizza_id}:1"]},
            headers=headers("cashier", 2),
        )
        assert resp.status_code == 200
        assert resp.get_json()["data"]["remaining_total"] == "20.00"

        resp = client.post(f"/api/sessions/{session_id}/close", json={}, headers=headers())
        assert resp.status_code == 409
        body = resp.get_json()
        assert body["code"] == "SESSION_003"
        assert body["refetch_bill"] is True

        resp = client.post(f"/api/sessions/{session_id}/settle-all", headers=headers("cashier", 2))
        assert resp.status_code == 200
        assert resp.get_json()["data"]["can_close"] is True

        resp = client.post(f"/api/sessions/{session_id}/close", json={}, headers=headers())
        assert resp.status_code == 200
        assert resp.get_json()["data"]["status"] == "closed"

        with get_session() as db_session:
            events = db_session.execute(select(RealtimeEvent.event_type)).scalars().all()
        assert set(events) == {"sessions.changed"}
        assert len(events) == 4

    def test_stale_selection_asks_for_refetch(self, client, open_session, add_order, headers):
        session_id = open_session(customer_count=1)
        (pizza_id,) = add_order(session_id, [("pizza", 2)])
        client.post(
            f"/api/sessions/{session_id}/settle",
            json={"line_ids": [f"item:{pizza_id}:1"]},
            headers=headers(),
        )

        resp = client.post(
            f"/api/sessions/{session_id}/settle",
            json={"line_ids": [f"item:{pizza_id}:2"]},
            headers=headers(),
        )

        assert resp.status_code == 409
        body = resp.get_json()
        assert body["code"] == "BILL_010"
        assert body["retryable"] is True
        assert body["refetch_bill"] is True
        assert body["solution"] == "Actualizar la cuenta y repetir el cobro."

    def test_settle_against_the_bill_that_was_shown(
        self, client, open_session, add_order, headers
    ):
        session_id = open_session(customer_count=1)
        (pizza_id,) = add_order(session_id, [("pizza", 1)])
        shown = client.get(f"/api/sessions/{session_id}/bill", headers=headers()).get_json()
        fingerprint = shown["data"]["fingerprint"]
        add_order(session_id, [("water", 1)])

        resp = client.post(
            f"/api/sessions/{session_id}/settle",
            json={"line_ids": [f"item:{pizza_id}:1"], "fingerprint": fingerprint},
            headers=headers(),
        )
        assert resp.status_code == 409
        assert resp.get_json()["code"] == "BILL_010"

        current = client.get(f"/api/sessions/{session_id}/bill", headers=headers()).get_json()
        resp = client.post(
            f"/api/sessions/{session_id}/settle-all",
            json={"fingerprint": current["data"]["fingerprint"]},
            headers=headers(),
        )
        assert resp.status_code == 200
        assert resp.get_json()["data"]["amount_settled"] == "11.50"

    def test_only_zero_priced_lines(self, client, open_session, add_order, headers):
        session_id = open_session(customer_count=1)
        (water_id,) = add_order(session_id, [("water", 1)])
        with get_session() as db_session:
            db_session.get(OrderItem, water_id).price = Decimal("0.00")

        resp = client.post(
            f"/api/sessions/{session_id}/settle",
            json={"line_ids": [f"item:{water_id}:1"]},
            headers=headers(),
        )
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "BILL_004"

    def test_store_unavailable(self, client, open_session, add_order, headers, monkeypatch):
        session_id = open_session(customer_count=1)
        (pizza_id,) = add_order(session_id, [("pizza", 1)])

        def lose_connection(*args, **kwargs):
            raise OperationalError("SELECT 1", {}, Exception("could not connect to server"))

        monkeypatch.setattr(settlement_service, "mark_paid_orders", lose_connection)

        resp = client.post(
            f"/api/sessions/{session_id}/settle",
            json={"line_ids": [f"item:{pizza_id}:1"]},
            headers=headers(),
        )

        assert resp.status_code == 503
        body = resp.get_json()
        assert body["code"] == "SYSTEM_002"
        assert body["retryable"] is True
        assert body["refetch_bill"] is False
        assert body["solution"] == "Reintentar la operación."

    def test_empty_selection(self, client, open_session, headers):
        session_id = open_session()
        resp = client.post(
            f"/api/sessions/{session_id}/settle", json={"line_ids": []}, headers=headers()
        )
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "BILL_001"

    def test_invalid_body(self, client, open_session, headers):
        session_id = open_session()
        resp = client.post(
            f"/api/sessions/{session_id}/settle", json={"line_ids": "cover:1"}, headers=headers()
        )
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "VALIDATION_001"

    def test_unknown_session(self, client, seed, headers):
        resp = client.get("/api/sessions/4242/bill", headers=headers())
        assert resp.status_code == 404
        assert resp.get_json()["code"] == "SESSION_001"

    def test_force_close(self, client, open_session, add_order, headers):
        session_id = open_session(customer_count=2)
        add_order(session_id, [("pizza", 1)])

        resp = client.post(
            f"/api/sessions/{session_id}/close",
            json={"force": True, "reason": "comped"},
            headers=headers("waiter", 3),
        )
        assert resp.status_code == 403

        resp = client.post(
            f"/api/sessions/{session_id}/close",
            json={"force": True, "reason": "comped"},
            headers=headers("admin", 5),
        )
        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["forced"] is True
        assert data["outstanding_amount"] == "12.00"


class TestSplit:
    def test_split(self, client, open_session, add_order, headers):
        session_id = open_session(customer_count=2)
        add_order(session_id, [("pizza", 3)])

        resp = client.get(f"/api/sessions/{session_id}/split?people=3", headers=headers())

        assert resp.status_code == 200
        data = resp.get_json()["data"]
        assert data["per_person"] == "9.33"
        assert data["shares"] == ["9.33", "9.33", "9.34"]

    def test_split_rejects_zero_people(self, client, open_session, headers):
        session_id = open_session()
        resp = client.get(f"/api/sessions/{session_id}/split?people=0", headers=headers())
        assert resp.status_code == 400


class TestTables:
    def test_activate_and_lookup(self, client, seed, headers):
        table_id = seed["table_ids"][1]

        resp = client.post(
            f"/api/tables/{table_id}/activate",
            json={"customer_count": 2},
            headers=headers("waiter", 3),
        )
        assert resp.status_code == 201
        session_id = resp.get_json()["data"]["id"]

        resp = client.get(f"/api/tables/{table_id}/session", headers=headers("waiter", 3))
        assert resp.status_code == 200
        assert resp.get_json()["data"]["id"] == session_id

    def test_activate_busy_table(self, client, seed, headers):
        table_id = seed["table_ids"][0]
        client.post(f"/api/tables/{table_id}/activate", json={"customer_count": 2}, headers=headers())

        resp = client.post(
            f"/api/tables/{table_id}/activate", json={"customer_count": 3}, headers=headers()
        )

        assert resp.status_code == 409
        assert resp.get_json()["code"] == "SESSION_010"

    def test_activate_with_no_guests(self, client, seed, headers):
        resp = client.post(
            f"/api/tables/{seed['table_ids'][0]}/activate",
            json={"customer_count": 0},
            headers=headers(),
        )
        assert resp.status_code == 400
        assert resp.get_json()["code"] == "BILL_002"

    def test_free_table_has_no_session(self, client, seed, headers):
        resp = client.get(f"/api/tables/{seed['table_ids'][0]}/session", headers=headers())
        assert resp.status_code == 404

    def test_update_customer_count(self, client, open_session, headers):
        session_id = open_session(customer_count=2)

        resp = client.patch(
            f"/api/sessions/{session_id}/customers", json={"customer_count": 5}, headers=headers()
        )

        assert resp.status_code == 200
        assert resp.get_json()["data"]["customer_count"] == 5
