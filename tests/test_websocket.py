import pytest
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketDisconnect

WS_PATH = "/ws/expert-chat"


def test_two_rooms_end_to_end(client: TestClient) -> None:
    with client.websocket_connect(WS_PATH) as a, \
            client.websocket_connect(WS_PATH) as b, \
            client.websocket_connect(WS_PATH) as c:
        a.send_json({"type": "auth", "userId": 1, "connectionId": 42})
        assert a.receive_json() == {"type": "auth_success", "message": "Connected to chat"}
        b.send_json({"type": "auth", "userId": 2, "connectionId": 42})
        assert b.receive_json()["type"] == "auth_success"
        c.send_json({"type": "auth", "userId": 3, "connectionId": 99})
        assert c.receive_json()["type"] == "auth_success"

        a.send_json({"type": "message", "text": "hi"})
        expected = {"type": "new_message", "message": {"type": "message", "text": "hi"}}
        assert a.receive_json() == expected
        assert b.receive_json() == expected

        # anything queued for C would arrive before the pong
        c.send_json({"type": "ping"})
        assert c.receive_json() == {"type": "pong"}


def test_typing_reaches_peers_not_sender(client: TestClient) -> None:
    with client.websocket_connect(WS_PATH) as a, client.websocket_connect(WS_PATH) as b:
        a.send_json({"type": "auth", "userId": 1, "conversationId": 5})
        a.receive_json()
        b.send_json({"type": "auth", "userId": 2, "conversationId": 5})
        b.receive_json()

        a.send_json({"type": "typing", "isTyping": True})
        assert b.receive_json() == {"type": "typing", "userId": 1, "isTyping": True}

        a.send_json({"type": "ping"})
        assert a.receive_json() == {"type": "pong"}


def test_message_before_auth_gets_error_frame(client: TestClient) -> None:
    with client.websocket_connect(WS_PATH) as member, client.websocket_connect(WS_PATH) as stranger:
        member.send_json({"type": "auth", "userId": 1, "conversationId": 8})
        member.receive_json()

        stranger.send_json({"type": "message", "conversationId": 8, "text": "let me in"})
        error = stranger.receive_json()
        assert error["type"] == "error"
        assert error["reason"] == "not_authenticated"

        member.send_json({"type": "ping"})
        assert member.receive_json() == {"type": "pong"}


def test_malformed_frame_does_not_close_socket(client: TestClient) -> None:
    with client.websocket_connect(WS_PATH) as ws:
        ws.send_text("definitely not json")
        error = ws.receive_json()
        assert error["type"] == "error"
        assert error["reason"] == "invalid_json"

        ws.send_json({"type": "auth", "userId": 1, "conversationId": 3})
        assert ws.receive_json()["type"] == "auth_success"

        ws.send_json({"type": "message", "text": "still here"})
        assert ws.receive_json()["message"]["text"] == "still here"


def test_deeply_nested_frame_does_not_close_socket(client: TestClient) -> None:
    with client.websocket_connect(WS_PATH) as ws:
        ws.send_text("[" * 100000)
        error = ws.receive_json()
        assert error["type"] == "error"
        assert error["reason"] == "invalid_json"

        ws.send_json({"type": "ping"})
        assert ws.receive_json() == {"type": "pong"}


def test_binary_frames_are_accepted(client: TestClient) -> None:
    with client.websocket_connect(WS_PATH) as ws:
        ws.send_bytes(b'{"type": "auth", "userId": 1, "conversationId": 3}')
        assert ws.receive_json()["type"] == "auth_success"


def test_idle_socket_is_pinged_then_closed(make_client) -> None:
    with make_client(idle_timeout_seconds=0.2, pong_timeout_seconds=0.2) as client:
        with pytest.raises(WebSocketDisconnect) as exc:
            with client.websocket_connect(WS_PATH) as ws:
                ws.send_json({"type": "auth", "userId": 1, "conversationId": 3})
                assert ws.receive_json()["type"] == "auth_success"
                assert ws.receive_json() == {"type": "ping"}
                ws.receive_json()
        assert exc.value.code == 1001

        health = client.get("/health").json()
        assert health["connections"] == 0
        assert health["rooms"] == 0


def test_pong_keeps_idle_socket_alive(make_client) -> None:
    with make_client(idle_timeout_seconds=0.2, pong_timeout_seconds=1.0) as client:
        with client.websocket_connect(WS_PATH) as ws:
            assert ws.receive_json() == {"type": "ping"}
            ws.send_json({"type": "pong"})
            assert ws.receive_json() == {"type": "ping"}
            ws.send_json({"type": "ping"})
            assert ws.receive_json() == {"type": "pong"}


def test_token_required_when_enabled(make_client) -> None:
    with make_client(ws_require_token=True) as client:
        issued = client.post(
            "/api/v1/chat/conversations/42/ws-token", json={"userId": 1}
        ).json()["data"]

        with client.websocket_connect(WS_PATH) as ws:
            ws.send_json({"type": "auth", "userId": 1, "conversationId": 42})
            assert ws.receive_json()["reason"] == "auth_failed"

            ws.send_json({"type": "auth", "userId": 2, "conversationId": 42, "token": issued["token"]})
            assert ws.receive_json()["reason"] == "auth_failed"

            ws.send_json({"type": "auth", "userId": 1, "conversationId": 42, "token": issued["token"]})
            assert ws.receive_json()["type"] == "auth_success"
