"""HTTP-level tests for the order routes and the error mapping."""

from __future__ import annotations

from conftest import ADMIN, BUYER, SELLER, STRANGER, FakeRedis

from marketplace_escrow.infrastructure.redis_client import IdempotencyCache


class TestPlaceAndGet:
    def test_place_order(self, client) -> None:
        resp = client.post(
            "/api/v1/orders",
            json={
                "buyer_id": BUYER,
                "seller_id": SELLER,
                "price": "100.00",
                "delivery_days": 3,
                "service_name": "Logo design",
            },
        )
        assert resp.status_code == 201
        body = resp.json()
        assert body["status"] == "awaiting_acceptance"
        assert body["price"] == "100.00"
        assert body["service_name"] == "Logo design"
        assert "X-Request-ID" in resp.headers

        fetched = client.get(f"/api/v1/orders/{body['id']}")
        assert fetched.status_code == 200
        assert fetched.json()["id"] == body["id"]

    def test_invalid_body_is_422(self, client) -> None:
        resp = client.post(
            "/api/v1/orders",
            json={"buyer_id": BUYER, "seller_id": SELLER, "price": "-1", "delivery_days": 3},
        )
        assert resp.status_code == 422

    def test_unknown_order_is_404(self, client) -> None:
        resp = client.get("/api/v1/orders/ORD-NOPE")
        assert resp.status_code == 404
        assert resp.json()["error"] == "NOT_FOUND"

    def test_list_by_user(self, client, api_order) -> None:
        order_id = api_order()
        resp = client.get("/api/v1/orders", params={"user_id": SELLER, "role": "seller"})
        assert [o["id"] for o in resp.json()] == [order_id]

    def test_list_by_status(self, client, api_order) -> None:
        api_order()
        delivered = api_order("delivered")
        resp = client.get("/api/v1/orders", params={"status": "delivered"})
        assert [o["id"] for o in resp.json()] == [delivered]


class TestErrorMapping:
    def test_forbidden_is_403(self, client, api_order) -> None:
        order_id = api_order()
        resp = client.post(f"/api/v1/orders/{order_id}/accept", json={"actor_id": STRANGER})
        assert resp.status_code == 403
        assert resp.json()["error"] == "FORBIDDEN"

    def test_invalid_state_is_409(self, client, api_order) -> None:
        order_id = api_order()
        resp = client.post(
            f"/api/v1/orders/{order_id}/deliver", json={"actor_id": SELLER, "message": "Too early"}
        )
        assert resp.status_code == 409
        assert resp.json()["error"] == "INVALID_STATE"

    def test_short_justification_is_422(self, client, api_order) -> None:
        order_id = api_order("pending")
        resp = client.post(f"/api/v1/orders/{order_id}/cancel", json={"actor_id": BUYER, "reason": "no"})
        assert resp.status_code == 422

    def test_duplicate_dispute_is_409(self, client, api_order) -> None:
        order_id = api_order("delivered")
        first = client.post(f"/api/v1/orders/{order_id}/dispute", json={"actor_id": BUYER, "reason": "Wrong"})
        assert first.status_code == 201
        second = client.post(f"/api/v1/orders/{order_id}/dispute", json={"actor_id": SELLER, "reason": "Late"})
        assert second.status_code == 409
        assert second.json()["error"] == "CONFLICT"

    def test_second_release_is_already_processed(self, client, api_order) -> None:
        order_id = api_order("delivered")
        first = client.post(f"/api/v1/orders/{order_id}/release", json={"actor_id": BUYER})
        assert first.status_code == 200
        assert first.json()["status"] == "completed"

        second = client.post(f"/api/v1/orders/{order_id}/release", json={"actor_id": BUYER})
        assert second.status_code == 200
        assert second.json() == {
            "result": "already_processed",
            "code": "ALREADY_COMPLETED",
            "message": f"Already completed: {order_id}",
        }

    def test_expired_acceptance_is_already_processed(self, client, api_order, clock) -> None:
        order_id = api_order()
        clock.advance(hours=25)
        resp = client.post(f"/api/v1/orders/{order_id}/accept", json={"actor_id": SELLER})
        assert resp.status_code == 200
        assert resp.json()["code"] == "EXPIRED"


class TestLifecycleOverHttp:
    def test_extension_flow(self, client, api_order) -> None:
        order_id = api_order("in_progress")
        resp = client.post(
            f"/api/v1/orders/{order_id}/extension",
            json={"actor_id": SELLER, "days": 2, "reason": "Client added scope"},
        )
        assert resp.json()["extension_requested"] is True
        resp = client.post(f"/api/v1/orders/{order_id}/extension/approve", json={"actor_id": BUYER})
        assert resp.status_code == 200
        assert resp.json()["extension_granted_days"] == 2

    def test_dispute_resolution(self, client, api_order) -> None:
        order_id = api_order("delivered")
        client.post(f"/api/v1/orders/{order_id}/dispute", json={"actor_id": BUYER, "reason": "Wrong colours"})
        resp = client.post(
            f"/api/v1/orders/{order_id}/dispute/resolve",
            json={"admin_id": ADMIN, "decision": "partial_refund", "notes": "Split after review"},
        )
        assert resp.status_code == 200
        payment = resp.json()["resolution"]["payment"]
        assert payment == {"buyer_refund": "50.00", "seller_payment": "45.00", "platform_fee": "5.00"}

        order = client.get(f"/api/v1/orders/{order_id}").json()
        assert order["status"] == "dispute_resolved"

    def test_unknown_decision_is_422(self, client, api_order) -> None:
        order_id = api_order("delivered")
        client.post(f"/api/v1/orders/{order_id}/dispute", json={"actor_id": BUYER, "reason": "Wrong colours"})
        resp = client.post(
            f"/api/v1/orders/{order_id}/dispute/resolve",
            json={"admin_id": ADMIN, "decision": "coin_flip", "notes": "Split after review"},
        )
        assert resp.status_code == 422
        assert resp.json()["error"] == "INVALID_DECISION"

    def test_messages_and_requirements(self, client, api_order) -> None:
        order_id = api_order()
        resp = client.put(
            f"/api/v1/orders/{order_id}/requirements",
            json={"actor_id": BUYER, "requirements": "Blue palette"},
        )
        assert resp.json()["requirements"] == "Blue palette"
        resp = client.post(f"/api/v1/orders/{order_id}/messages", json={"actor_id": SELLER, "message": "Noted"})
        assert resp.json()["messages"][0]["sender_role"] == "seller"

    def test_time_remaining_and_audit(self, client, api_order) -> None:
        order_id = api_order("delivered")
        remaining = client.get(f"/api/v1/orders/{order_id}/time-remaining").json()
        assert remaining["kind"] == "review"
        assert remaining["remaining"] == {"days": 3, "hours": 0, "minutes": 0}

        audit = client.get(f"/api/v1/orders/{order_id}/audit").json()
        assert audit[0]["event_type"] == "ORDER_PLACED"
        assert [e["new_status"] for e in audit[1:]] == ["pending", "in_progress", "delivered"]


class TestIdempotencyKey:
    def test_replay_returns_first_response(self, client, api_order) -> None:
        client.app.state.idempotency = IdempotencyCache(FakeRedis(), ttl_seconds=60)
        order_id = api_order("delivered")
        headers = {"Idempotency-Key": "release-1"}
        first = client.post(f"/api/v1/orders/{order_id}/release", json={"actor_id": BUYER}, headers=headers)
        second = client.post(f"/api/v1/orders/{order_id}/release", json={"actor_id": BUYER}, headers=headers)
        assert first.status_code == second.status_code == 200
        assert second.json() == first.json()
        assert second.json()["status"] == "completed"
