from __future__ import annotations


def test_create_session_for_unknown_assistant_is_404(client):
    resp = client.post("/api/sessions", json={"assistant_id": "missing"})

    assert resp.status_code == 404
    assert resp.json()["detail"] == "Assistant not found"


def test_session_lifecycle(client, make_assistant):
    assistant_id, _ = make_assistant()

    created = client.post(
        "/api/sessions", json={"assistant_id": assistant_id, "metadata": {"channel": "web"}}
    )
    assert created.status_code == 201
    session_id = created.json()["session_id"]

    session = client.get(f"/api/sessions/{session_id}").json()
    assert session["status"] == "active"
    assert session["session_type"] == "socket"
    assert session["assistant_id"] == assistant_id
    assert session["metadata"] == {"channel": "web"}
    assert client.get(f"/api/sessions/{session_id}/messages").json() == []

    ended = client.post(f"/api/sessions/{session_id}/end").json()
    assert ended["status"] == "ended"
    assert ended["ended_at"] is not None

    # Ending again keeps the session ended.
    again = client.post(f"/api/sessions/{session_id}/end").json()
    assert again["status"] == "ended"
    assert again["ended_at"] == ended["ended_at"]


def test_unknown_session_is_404(client):
    assert client.get("/api/sessions/nope").status_code == 404
    assert client.post("/api/sessions/nope/end").status_code == 404
    assert client.get("/api/sessions/nope/messages").status_code == 404


def test_ending_a_session_releases_live_socket(client, make_assistant, app):
    assistant_id, _ = make_assistant()
    session_id = client.post("/api/sessions", json={"assistant_id": assistant_id}).json()["session_id"]

    with client.websocket_connect(f"/api/ws?session_id={session_id}") as ws:
        ws.receive_json()
        assert session_id in app.state.registry

        client.post(f"/api/sessions/{session_id}/end")
        assert session_id not in app.state.registry

        ws.send_json({"type": "user-message", "text": "Hello?"})
        assert ws.receive_json() == {"type": "error", "message": "Session has ended."}


def test_health(client):
    assert client.get("/health").json() == {"status": "ok"}
