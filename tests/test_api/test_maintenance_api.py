"""HTTP-level tests for the sweep endpoint and the health check."""

from __future__ import annotations


class TestSweepEndpoint:
    def test_dry_run_lists_without_applying(self, client, api_order, clock) -> None:
        order_id = api_order()
        clock.advance(hours=25)

        resp = client.post("/api/v1/maintenance/sweep", params={"dry_run": "true"})
        assert resp.status_code == 200
        report = resp.json()
        assert report["dry_run"] is True
        assert report["applied"] == 0
        assert report["actions"] == [
            {
                "subject_kind": "order",
                "subject_id": order_id,
                "action": "expire_acceptance",
                "outcome": "planned",
                "detail": None,
            }
        ]
        assert client.get(f"/api/v1/orders/{order_id}").json()["status"] == "awaiting_acceptance"

    def test_sweep_applies_due_actions_once(self, client, api_order, clock) -> None:
        order_id = api_order("delivered")
        clock.advance(days=3, minutes=1)

        first = client.post("/api/v1/maintenance/sweep").json()
        assert first["applied"] == 1
        assert first["actions"][0]["action"] == "auto_release"
        assert client.get(f"/api/v1/orders/{order_id}").json()["status"] == "completed"

        second = client.post("/api/v1/maintenance/sweep").json()
        assert second["actions"] == []


class TestHealth:
    def test_health_reports_backends(self, client) -> None:
        resp = client.get("/health")
        assert resp.status_code == 200
        body = resp.json()
        assert body["status"] == "ok"
        assert body["redis"] == "not_configured"
        assert body["sweeper"] == "stopped"
