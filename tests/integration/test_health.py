def test_health(client):
    res = client.get("/health")
    assert res.status_code == 200
    body = res.json()
    assert body["ok"] is True
    assert body["document_backend"] == "memory"
    assert body["pending_checkouts"] == 0
    assert body["rate_limit"]["enabled"] is False
