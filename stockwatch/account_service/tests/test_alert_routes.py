# stockwatch/account_service/tests/test_alert_routes.py
"""
User-facing alert CRUD plus the internal pending/trigger endpoints.
"""
import pytest

from stockwatch.account_service import app as account_app


def _create(client, headers, symbol="AAPL", target_price=100, condition="below"):
    return client.post(
        "/alerts",
        json={"symbol": symbol, "target_price": target_price, "condition": condition},
        headers=headers,
    )


class TestAlertCrud:

    def test_create_alert_returns_row(self, client, auth_headers):
        r = _create(client, auth_headers, symbol="aapl", target_price="100.5", condition="Below")
        assert r.status_code == 201
        body = r.get_json()
        assert body["symbol"] == "AAPL"
        assert body["condition"] == "below"
        assert body["is_triggered"] is False
        # DECIMAL(10, 2) serialized as a string to keep exactness
        assert body["target_price"] == "100.50"
        assert body["created_at"]

    @pytest.mark.parametrize("payload", [
        {"symbol": "AAPL", "target_price": 100, "condition": "sideways"},
        {"symbol": "AAPL", "target_price": -1, "condition": "above"},
        {"symbol": "AAPL", "target_price": 0, "condition": "above"},
        {"symbol": "AAPL", "target_price": "abc", "condition": "above"},
        {"symbol": "AAPL", "target_price": 1e12, "condition": "above"},
        {"symbol": "AAPL", "condition": "above"},
        {"target_price": 100, "condition": "above"},
    ])
    def test_invalid_alert_is_400(self, client, auth_headers, payload):
        r = client.post("/alerts", json=payload, headers=auth_headers)
        assert r.status_code == 400
        assert "error" in r.get_json()

    def test_list_newest_first(self, client, auth_headers):
        first = _create(client, auth_headers, symbol="AAPL").get_json()
        second = _create(client, auth_headers, symbol="MSFT").get_json()
        ids = [a["id"] for a in client.get("/alerts", headers=auth_headers).get_json()]
        assert ids == [second["id"], first["id"]]

    def test_delete_only_own_alert(self, client, register_and_login):
        alice_token, _ = register_and_login("alice", "pw1")
        bob_token, _ = register_and_login("bob", "pw2")
        alice = {"Authorization": f"Bearer {alice_token}"}
        bob = {"Authorization": f"Bearer {bob_token}"}

        alert_id = _create(client, alice).get_json()["id"]
        # bob's delete is scoped to bob and silently affects nothing
        assert client.delete(f"/alerts/{alert_id}", headers=bob).status_code == 200
        assert [a["id"] for a in client.get("/alerts", headers=alice).get_json()] == [alert_id]

        assert client.delete(f"/alerts/{alert_id}", headers=alice).status_code == 200
        assert client.get("/alerts", headers=alice).get_json() == []

    def test_alerts_require_auth(self, client):
        assert client.get("/alerts").status_code == 401
        assert client.post("/alerts", json={}).status_code == 401
        assert client.delete("/alerts/1").status_code == 401


class TestInternalEndpoints:

    def test_pending_lists_untriggered_alerts_with_username(self, client, register_and_login):
        token, user = register_and_login("alice", "pw")
        headers = {"Authorization": f"Bearer {token}"}
        alert = _create(client, headers, symbol="AAPL", target_price=100, condition="below").get_json()

        r = client.get("/internal/alerts/pending")
        assert r.status_code == 200
        assert r.get_json() == [{
            "id": alert["id"],
            "user_id": user["id"],
            "symbol": "AAPL",
            "target_price": "100.00",
            "condition": "below",
            "username": "alice",
        }]

    def test_trigger_removes_alert_from_pending_and_is_idempotent(self, client, auth_headers):
        alert_id = _create(client, auth_headers).get_json()["id"]

        r1 = client.patch(f"/alerts/{alert_id}/trigger")
        r2 = client.patch(f"/alerts/{alert_id}/trigger")
        assert r1.status_code == 200
        assert r2.status_code == 200
        assert r1.get_json() == r2.get_json()

        assert client.get("/internal/alerts/pending").get_json() == []
        alerts = client.get("/alerts", headers=auth_headers).get_json()
        assert alerts[0]["is_triggered"] is True

    def test_trigger_unknown_alert_is_a_noop_success(self, client):
        r = client.patch("/alerts/424242/trigger")
        assert r.status_code == 200

    def test_internal_key_enforced_when_configured(self, client, monkeypatch):
        monkeypatch.setattr(account_app, "INTERNAL_API_KEY", "k3y")

        assert client.get("/internal/alerts/pending").status_code == 401
        assert client.patch("/alerts/1/trigger").status_code == 401
        assert client.get("/internal/alerts/pending", headers={"X-Internal-Key": "wrong"}).status_code == 401

        ok = client.get("/internal/alerts/pending", headers={"X-Internal-Key": "k3y"})
        assert ok.status_code == 200
        assert client.patch("/alerts/1/trigger", headers={"X-Internal-Key": "k3y"}).status_code == 200

    def test_pending_returns_500_when_database_fails(self, client, monkeypatch):
        from stockwatch.account_service.services import alert_service

        def _boom(session):
            raise RuntimeError("db down")

        monkeypatch.setattr(alert_service, "list_pending_alerts", _boom)
        r = client.get("/internal/alerts/pending")
        assert r.status_code == 500
        assert r.get_json()["error"] == "Failed to fetch pending alerts"
