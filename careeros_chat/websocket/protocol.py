"""WebSocket message protocol definitions"""

from pydantic import AliasChoices, BaseModel, Field, ValidationError
from typing import Any, Optional, Union
from enum import Enum
import json

from careeros_chat.schemas.base import ErrorCode
from careeros_chat.utils.exceptions import ProtocolError


class ClientMessageType(str, Enum):
    """Client to server message types"""
    AUTH = "auth"
    MESSAGE = "message"
    TYPING = "typing"
    PING = "ping"
    PONG = "pong"


class ServerMessageType(str, Enum):
    """Server to client message types"""
    AUTH_SUCCESS = "auth_success"
    NEW_MESSAGE = "new_message"
    TYPING = "typing"
    ERROR = "error"
    PING = "ping"
    PONG = "pong"


class ConnectionState(str, Enum):
    """Per-socket lifecycle"""
    CONNECTED = "connected"
    AUTHENTICATED = "authenticated"
    CLOSED = "closed"


# Client -> Server message data models
class AuthData(BaseModel):
    """Auth frame data. ``connectionId`` is what the existing frontend sends."""
    user_id: int = Field(validation_alias=AliasChoices("userId", "user_id"))
    conversation_id: int = Field(
        validation_alias=AliasChoices("conversationId", "connectionId", "conversation_id")
    )
    token: Optional[str] = None


class TypingData(BaseModel):
    """Typing indicator data"""
    is_typing: bool = Field(validation_alias=AliasChoices("isTyping", "is_typing"))


def parse_frame(raw: Union[str, bytes]) -> dict:
    """Decode one inbound frame into a dict carrying a string ``type``."""
    if isinstance(raw, bytes):
        try:
            raw = raw.decode("utf-8")
        except UnicodeDecodeError:
            raise ProtocolError(ErrorCode.PARAM_ERROR, "invalid_json", "Frame is not UTF-8 text")

    try:
        frame = json.loads(raw)
    except json.JSONDecodeError:
        raise ProtocolError(ErrorCode.PARAM_ERROR, "invalid_json", "Invalid JSON format")
    except RecursionError:
        raise ProtocolError(ErrorCode.PARAM_ERROR, "invalid_json", "JSON nested too deeply")

    if not isinstance(frame, dict):
        raise ProtocolError(ErrorCode.PARAM_ERROR, "invalid_frame", "Frame must be a JSON object")
    if not isinstance(frame.get("type"), str):
        raise ProtocolError(ErrorCode.PARAM_ERROR, "invalid_frame", "Missing message type")
    return frame


def parse_auth(frame: dict) -> AuthData:
    try:
        return AuthData.model_validate(frame)
    except ValidationError as e:
        raise ProtocolError(
            ErrorCode.PARAM_ERROR,
            "invalid_frame",
            f"Invalid auth frame: {e.errors()[0]['msg']}",
        )


def parse_typing(frame: dict) -> TypingData:
    try:
        return TypingData.model_validate(frame)
    except ValidationError as e:
        raise ProtocolError(
            ErrorCode.PARAM_ERROR,
            "invalid_frame",
            f"Invalid typing frame: {e.errors()[0]['msg']}",
        )


class ServerMessage(BaseModel):
    """Generic server message structure.

    Only the fields a given message type uses are set; ``to_dict`` drops the
    rest so frames keep the exact wire shapes clients already parse.
    """
    type: ServerMessageType
    message: Optional[Any] = None
    userId: Optional[int] = None
    isTyping: Optional[bool] = None
    code: Optional[int] = None
    reason: Optional[str] = None

    def to_dict(self) -> dict:
        return {k: v for k, v in self.model_dump(mode="json").items() if v is not None}

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    @classmethod
    def auth_success(cls) -> "ServerMessage":
        """Create auth acknowledgment"""
        return cls(type=ServerMessageType.AUTH_SUCCESS, message="Connected to chat")

    @classmethod
    def new_message(cls, payload: Any) -> "ServerMessage":
        """Wrap a chat payload for fan-out"""
        return cls(type=ServerMessageType.NEW_MESSAGE, message=payload)

    @classmethod
    def typing(cls, user_id: int, is_typing: bool) -> "ServerMessage":
        """Create typing indicator"""
        return cls(type=ServerMessageType.TYPING, userId=user_id, isTyping=is_typing)

    @classmethod
    def error(cls, code: int, reason: str, message: str) -> "ServerMessage":
        """Create error message"""
        return cls(type=ServerMessageType.ERROR, code=int(code), reason=reason, message=message)

    @classmethod
    def ping(cls) -> "ServerMessage":
        return cls(type=ServerMessageType.PING)

    @classmethod
    def pong(cls) -> "ServerMessage":
        return cls(type=ServerMessageType.PONG)
