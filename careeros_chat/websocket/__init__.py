"""WebSocket module for expert chat"""

from careeros_chat.websocket.relay import ChatRelay, Connection
from careeros_chat.websocket.handler import websocket_endpoint
from careeros_chat.websocket.protocol import (
    ClientMessageType,
    ConnectionState,
    ServerMessage,
    ServerMessageType,
)

__all__ = [
    "ChatRelay",
    "Connection",
    "websocket_endpoint",
    "ClientMessageType",
    "ConnectionState",
    "ServerMessage",
    "ServerMessageType",
]
