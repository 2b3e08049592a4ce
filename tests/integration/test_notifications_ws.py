import pytest
from starlette.websockets import WebSocket, WebSocketDisconnect

from portail.auth.models import CurrentUser
from portail.feed.notifications import NOTIFICATIONS_COLLECTION

def _fake_resolver():
    users = {
        "tok-u1": CurrentUser(id="u1", email="user@example.com"),
        "tok-admin": CurrentUser(id="admin-1", email="admin@example.com", is_admin=True),
    }

    async def _resolve(channel, token):
        return users.get(token)
    return _resolve

def _seed(app):
    app.state.channel.set(NOTIFICATIONS_COLLECTION, "n1", {
        "is_active": True, "type": "info", "title": {"fr": "Bienvenue", "en": "Welcome"},
        "message": "m", "created_at": "2024-01-01T00:00:00Z",
    })
    app.state.channel.set(NOTIFICATIONS_COLLECTION, "n2", {
        "is_active": True, "type": "warning", "title": "Admins", "message": "m",
        "audience": "admins", "created_at": "2024-02-01T00:00:00Z",
    })
    app.state.channel.set(NOTIFICATIONS_COLLECTION, "n3", {"is_active": False, "title": "Ancienne"})

def test_visitor_gets_empty_feed(client, monkeypatch):
    monkeypatch.setattr("portail.auth.service.resolve_current_user", _fake_resolver())
    with client.websocket_connect("/ws/notifications") as ws:
        assert ws.receive_json() == {"type": "session", "authenticated": False}
        assert ws.receive_json() == {"type": "notifications", "items": []}

def test_feed_follows_identity_and_updates(client, app, monkeypatch):
    monkeypatch.setattr("portail.auth.service.resolve_current_user", _fake_resolver())
    _seed(app)
    client.cookies.set("sb_access", "tok-u1")

    with client.websocket_connect("/ws/notifications?lang=fr") as ws:
        assert ws.receive_json() == {"type": "session", "authenticated": True}
        first = ws.receive_json()
        assert [i["id"] for i in first["items"]] == ["n1"]
        assert first["items"][0]["title"] == "Bienvenue"

        # Nouvelle notification: la liste complète est renvoyée, plus récente d'abord
        app.state.channel.set(NOTIFICATIONS_COLLECTION, "n4", {
            "is_active": True, "title": "Nouveau", "message": "m", "created_at": "2024-03-01T00:00:00Z",
        })
        assert [i["id"] for i in ws.receive_json()["items"]] == ["n4", "n1"]

        # Ré-authentification en admin: filtre d'audience élargi
        ws.send_json({"token": "tok-admin"})
        assert ws.receive_json() == {"type": "session", "authenticated": True}
        assert [i["id"] for i in ws.receive_json()["items"]] == ["n4", "n2", "n1"]

        # Déconnexion: flux fermé, liste vide
        ws.send_json({"token": None})
        assert ws.receive_json() == {"type": "session", "authenticated": False}
        assert ws.receive_json() == {"type": "notifications", "items": []}

def test_send_failure_closes_socket(client, app, monkeypatch):
    monkeypatch.setattr("portail.auth.service.resolve_current_user", _fake_resolver())
    _seed(app)
    client.cookies.set("sb_access", "tok-u1")
    original_send_json = WebSocket.send_json

    async def _failing_send_json(self, data, mode="text"):
        if data.get("type") == "notifications":
            raise RuntimeError("envoi impossible")
        await original_send_json(self, data, mode)

    monkeypatch.setattr(WebSocket, "send_json", _failing_send_json)

    with client.websocket_connect("/ws/notifications") as ws:
        assert ws.receive_json() == {"type": "session", "authenticated": True}
        with pytest.raises(WebSocketDisconnect) as exc:
            ws.receive_json()
        assert exc.value.code == 1011
