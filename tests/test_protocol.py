import pytest

from careeros_chat.schemas.base import ErrorCode
from careeros_chat.utils.exceptions import ProtocolError
from careeros_chat.websocket.protocol import (
    ServerMessage,
    parse_auth,
    parse_frame,
    parse_typing,
)


def test_parse_frame_requires_object_with_type() -> None:
    assert parse_frame('{"type": "ping"}') == {"type": "ping"}

    with pytest.raises(ProtocolError) as exc:
        parse_frame("{nope")
    assert exc.value.reason == "invalid_json"

    with pytest.raises(ProtocolError) as exc:
        parse_frame('"just a string"')
    assert exc.value.reason == "invalid_frame"

    with pytest.raises(ProtocolError) as exc:
        parse_frame('{"text": "no type"}')
    assert exc.value.reason == "invalid_frame"


def test_parse_frame_rejects_deep_nesting() -> None:
    with pytest.raises(ProtocolError) as exc:
        parse_frame("[" * 100000)
    assert exc.value.reason == "invalid_json"
    assert exc.value.code == ErrorCode.PARAM_ERROR


def test_parse_frame_rejects_non_utf8_bytes() -> None:
    with pytest.raises(ProtocolError) as exc:
        parse_frame(b"\xff\xfe")
    assert exc.value.code == ErrorCode.PARAM_ERROR


def test_auth_accepts_conversation_or_connection_id() -> None:
    auth = parse_auth({"type": "auth", "userId": 1, "conversationId": 42})
    assert (auth.user_id, auth.conversation_id, auth.token) == (1, 42, None)

    legacy = parse_auth({"type": "auth", "userId": 2, "connectionId": 42, "token": "t"})
    assert (legacy.user_id, legacy.conversation_id, legacy.token) == (2, 42, "t")


def test_auth_without_room_is_invalid() -> None:
    with pytest.raises(ProtocolError) as exc:
        parse_auth({"type": "auth", "userId": 1})
    assert exc.value.reason == "invalid_frame"


def test_typing_requires_flag() -> None:
    assert parse_typing({"type": "typing", "isTyping": True}).is_typing is True
    with pytest.raises(ProtocolError):
        parse_typing({"type": "typing"})


def test_server_frames_keep_wire_shapes() -> None:
    assert ServerMessage.auth_success().to_dict() == {
        "type": "auth_success",
        "message": "Connected to chat",
    }
    assert ServerMessage.typing(3, False).to_dict() == {
        "type": "typing",
        "userId": 3,
        "isTyping": False,
    }
    assert ServerMessage.pong().to_dict() == {"type": "pong"}
    assert ServerMessage.error(1004, "not_authenticated", "Send an auth frame first").to_dict() == {
        "type": "error",
        "code": 1004,
        "reason": "not_authenticated",
        "message": "Send an auth frame first",
    }


def test_new_message_forwards_payload_untouched() -> None:
    payload = {"type": "message", "text": "hi", "attachment": None, "tags": ["a"]}
    assert ServerMessage.new_message(payload).to_dict() == {
        "type": "new_message",
        "message": payload,
    }
