from __future__ import annotations

import base64
from functools import partial


def _start_session(client, assistant_id: str) -> str:
    resp = client.post("/api/sessions", json={"assistant_id": assistant_id})
    assert resp.status_code == 201
    body = resp.json()
    assert body["websocket_url"].endswith(f"/api/ws?session_id={body['session_id']}")
    return body["session_id"]


def test_text_turn_over_socket_persists_user_and_assistant(client, make_assistant):
    assistant_id, _ = make_assistant()
    session_id = _start_session(client, assistant_id)

    with client.websocket_connect(f"/api/ws?session_id={session_id}") as ws:
        assert ws.receive_json() == {"type": "connected", "sessionId": session_id}

        ws.send_json({"type": "user-message", "text": "Hi"})
        reply = ws.receive_json()
        assert reply["type"] == "assistant-message"
        assert reply["text"]
        assert base64.b64decode(reply["audio"])

        ws.send_json({"type": "end-session"})
        assert ws.receive_json() == {"type": "session-ended"}

    messages = client.get(f"/api/sessions/{session_id}/messages").json()
    assert [(m["role"], m["content"]) for m in messages] == [
        ("user", "Hi"),
        ("assistant", reply["text"]),
    ]
    assert client.get(f"/api/sessions/{session_id}").json()["status"] == "ended"


def test_greeting_is_sent_after_connected(client, make_assistant):
    assistant_id, _ = make_assistant(first_message="Welcome to the clinic")
    session_id = _start_session(client, assistant_id)

    with client.websocket_connect(f"/api/ws?session_id={session_id}") as ws:
        assert ws.receive_json()["type"] == "connected"
        greeting = ws.receive_json()

    assert greeting["type"] == "assistant-message"
    assert greeting["text"] == "Welcome to the clinic"
    assert base64.b64decode(greeting["audio"]) == b"AUDIO:Welcome to the clinic"


def test_missing_session_id_is_rejected(client):
    with client.websocket_connect("/api/ws") as ws:
        assert ws.receive_json() == {"type": "error", "message": "session_id required"}


def test_unknown_session_is_rejected(client):
    with client.websocket_connect("/api/ws?session_id=does-not-exist") as ws:
        assert ws.receive_json() == {"type": "error", "message": "Session not found"}


def test_ended_session_cannot_be_resumed(client, make_assistant):
    assistant_id, _ = make_assistant()
    session_id = _start_session(client, assistant_id)
    assert client.post(f"/api/sessions/{session_id}/end").json()["status"] == "ended"

    with client.websocket_connect(f"/api/ws?session_id={session_id}") as ws:
        assert ws.receive_json() == {"type": "error", "message": "Session has ended"}


def test_bad_messages_report_errors_and_keep_connection(client, make_assistant, fake_transcriber):
    assistant_id, _ = make_assistant()
    session_id = _start_session(client, assistant_id)

    with client.websocket_connect(f"/api/ws?session_id={session_id}") as ws:
        ws.receive_json()

        ws.send_json({"type": "user-audio"})
        assert ws.receive_json() == {"type": "error", "message": "Audio data required"}

        ws.send_text("{not json")
        assert ws.receive_json()["type"] == "error"

        ws.send_json({"type": "user-dance"})
        assert ws.receive_json()["type"] == "error"

        ws.send_json({"type": "user-message", "text": "Still there?"})
        assert ws.receive_json()["type"] == "assistant-message"

    assert fake_transcriber.calls == []


def test_audio_message_is_transcribed(client, make_assistant, fake_transcriber):
    assistant_id, _ = make_assistant()
    session_id = _start_session(client, assistant_id)
    audio = b"\x10\x20\x30"

    with client.websocket_connect(f"/api/ws?session_id={session_id}") as ws:
        ws.receive_json()
        ws.send_json({"type": "user-audio", "data": base64.b64encode(audio).decode("ascii")})
        reply = ws.receive_json()

    assert reply["type"] == "assistant-message"
    assert reply["transcription"] == "I need an appointment"
    assert fake_transcriber.calls == [(audio, "audio/webm")]


def test_streaming_audio_produces_interims_and_a_turn(client, make_assistant, live_connector):
    assistant_id, _ = make_assistant()
    session_id = _start_session(client, assistant_id)
    chunk = base64.b64encode(b"\x01\x02").decode("ascii")

    with client.websocket_connect(f"/api/ws?session_id={session_id}") as ws:
        ws.receive_json()

        # A chunk before the stream starts is ignored.
        ws.send_json({"type": "user-audio-stream-chunk", "data": chunk})
        ws.send_json({"type": "user-audio-stream-start"})
        assert ws.receive_json() == {"type": "audio-stream-ready"}

        ws.send_json({"type": "user-audio-stream-chunk", "data": chunk})
        connection = live_connector.latest
        client.portal.call(partial(connection.push, "I'd like", is_final=False, confidence=0.5))
        assert ws.receive_json() == {
            "type": "interim-transcript",
            "text": "I'd like",
            "confidence": 0.5,
        }

        client.portal.call(partial(connection.push, "I'd like a checkup", is_final=True))
        reply = ws.receive_json()
        assert reply["type"] == "assistant-message"
        assert reply["transcription"] == "I'd like a checkup"

        ws.send_json({"type": "user-audio-stream-end"})
        assert ws.receive_json() == {"type": "audio-stream-closed"}

    assert len(live_connector.connections) == 1
    assert connection.sent == [b"\x01\x02"]
    assert connection.finished

    messages = client.get(f"/api/sessions/{session_id}/messages").json()
    assert [m["role"] for m in messages] == ["user", "assistant"]
    assert messages[0]["content"] == "I'd like a checkup"


def test_generation_failure_reports_error_and_keeps_connection(client, make_assistant, fake_llm):
    assistant_id, _ = make_assistant()
    session_id = _start_session(client, assistant_id)

    with client.websocket_connect(f"/api/ws?session_id={session_id}") as ws:
        ws.receive_json()

        fake_llm.fail = True
        ws.send_json({"type": "user-message", "text": "Hi"})
        assert ws.receive_json() == {"type": "error", "message": "Language model request failed."}

        fake_llm.fail = False
        ws.send_json({"type": "user-message", "text": "Hi again"})
        assert ws.receive_json()["type"] == "assistant-message"

    messages = client.get(f"/api/sessions/{session_id}/messages").json()
    assert [(m["role"], m["content"]) for m in messages] == [
        ("user", "Hi"),
        ("user", "Hi again"),
        ("assistant", "Happy to help with that."),
    ]


def test_end_session_interrupts_a_turn_in_progress(client, make_assistant, fake_llm):
    assistant_id, _ = make_assistant()
    session_id = _start_session(client, assistant_id)

    with client.websocket_connect(f"/api/ws?session_id={session_id}") as ws:
        ws.receive_json()

        fake_llm.stall = True
        ws.send_json({"type": "user-message", "text": "Tell me everything"})
        ws.send_json({"type": "end-session"})
        assert ws.receive_json() == {"type": "session-ended"}

    assert client.get(f"/api/sessions/{session_id}").json()["status"] == "ended"
    messages = client.get(f"/api/sessions/{session_id}/messages").json()
    assert "assistant" not in [m["role"] for m in messages]
