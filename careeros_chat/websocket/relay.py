"""In-memory chat relay for expert conversations.

Sockets join a room (one per conversation id) by sending an ``auth`` frame.
Chat messages fan out to every socket in the sender's room, typing
indicators to everyone but the sender.

Everything here runs on a single event loop. Room mutations and fan-out
loops never await, so a broadcast sees a consistent membership snapshot
without a lock. Socket writes happen on a per-connection writer task fed by
a bounded queue; a slow reader can only fill its own queue.
"""

import asyncio
import json
import logging
import uuid
from typing import Any, Callable, Dict, List, Optional, Set, Union

from fastapi import WebSocket
from starlette.websockets import WebSocketState

from careeros_chat.schemas.base import ErrorCode
from careeros_chat.utils.exceptions import ProtocolError
from careeros_chat.websocket.protocol import (
    ClientMessageType,
    ConnectionState,
    ServerMessage,
    parse_auth,
    parse_frame,
    parse_typing,
)

logger = logging.getLogger(__name__)

OVERFLOW_DISCONNECT = "disconnect"
OVERFLOW_DROP_OLDEST = "drop_oldest"

CLOSE_GOING_AWAY = 1001
CLOSE_POLICY_VIOLATION = 1008

TokenVerifier = Callable[[Optional[str], int, int], bool]


class Connection:
    """One WebSocket and its room binding."""

    def __init__(self, websocket: WebSocket, queue_size: int):
        self.id = uuid.uuid4().hex
        self.websocket = websocket
        self.user_id: Optional[int] = None
        self.conversation_id: Optional[int] = None
        self.state = ConnectionState.CONNECTED
        self.outbox: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self.writer_task: Optional[asyncio.Task] = None
        self.dropped_frames = 0

    @property
    def is_authenticated(self) -> bool:
        return self.state == ConnectionState.AUTHENTICATED

    @property
    def is_open(self) -> bool:
        return (
            self.state != ConnectionState.CLOSED
            and self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    def __repr__(self) -> str:
        return (
            f"<Connection {self.id[:8]} user={self.user_id} "
            f"conv={self.conversation_id} state={self.state.value}>"
        )


class ChatRelay:
    """
    Routes chat frames between sockets joined to the same conversation.

    One instance is created per process by the app factory and shared with
    the HTTP layer for out-of-band pushes.
    """

    def __init__(
        self,
        send_queue_size: int = 256,
        overflow_policy: str = OVERFLOW_DISCONNECT,
        token_verifier: Optional[TokenVerifier] = None,
    ):
        if send_queue_size < 1:
            raise ValueError("send_queue_size must be at least 1")
        if overflow_policy not in (OVERFLOW_DISCONNECT, OVERFLOW_DROP_OLDEST):
            raise ValueError(f"Unknown overflow policy: {overflow_policy}")

        self.send_queue_size = send_queue_size
        self.overflow_policy = overflow_policy
        self.token_verifier = token_verifier
        # conversation_id -> {connection id -> Connection}, insertion ordered
        self.rooms: Dict[int, Dict[str, Connection]] = {}
        # every live connection, authenticated or not
        self.connections: Dict[str, Connection] = {}
        self._close_tasks: Set[asyncio.Task] = set()

    # Lifecycle

    def register(self, websocket: WebSocket) -> Connection:
        """Track an accepted socket and start its writer."""
        connection = Connection(websocket, self.send_queue_size)
        connection.writer_task = asyncio.create_task(self._writer(connection))
        self.connections[connection.id] = connection
        logger.info("[relay.connect] conn=%s", connection.id)
        return connection

    def authenticate(self, connection: Connection, user_id: int, conversation_id: int) -> None:
        """Bind a socket to a user and room, leaving any previous room first."""
        if connection.state == ConnectionState.CLOSED:
            return

        if connection.conversation_id is not None:
            logger.info(
                "[relay.auth] re-auth conn=%s moving conv_id=%s -> %s",
                connection.id,
                connection.conversation_id,
                conversation_id,
            )
            self._leave_room(connection)

        connection.user_id = user_id
        connection.conversation_id = conversation_id
        connection.state = ConnectionState.AUTHENTICATED
        self.rooms.setdefault(conversation_id, {})[connection.id] = connection

        logger.info(
            "[relay.auth] user_id=%s joined conv_id=%s conn=%s members=%s",
            user_id,
            conversation_id,
            connection.id,
            len(self.rooms[conversation_id]),
        )
        self.send(connection, ServerMessage.auth_success())

    def unregister(self, connection: Connection) -> None:
        """Remove a socket from its room and stop its writer. Idempotent."""
        if connection.state == ConnectionState.CLOSED:
            return

        self._leave_room(connection)
        connection.state = ConnectionState.CLOSED
        self.connections.pop(connection.id, None)

        writer = connection.writer_task
        if writer is not None and writer is not asyncio.current_task():
            writer.cancel()
        self._discard_outbox(connection)

        logger.info(
            "[relay.disconnect] conn=%s user_id=%s conv_id=%s",
            connection.id,
            connection.user_id,
            connection.conversation_id,
        )

    async def close(self, connection: Connection, code: int, reason: str) -> None:
        """Unregister and close the transport."""
        self.unregister(connection)
        await self._close_socket(connection, code, reason)

    def disconnect(self, connection: Connection, code: int, reason: str) -> None:
        """Unregister and close the transport in the background."""
        self.unregister(connection)
        task = asyncio.create_task(self._close_socket(connection, code, reason))
        self._close_tasks.add(task)
        task.add_done_callback(self._close_tasks.discard)

    async def close_all(self, code: int = CLOSE_GOING_AWAY, reason: str = "Server shutting down") -> None:
        """Close every socket; used on application shutdown."""
        connections = list(self.connections.values())
        for connection in connections:
            self.unregister(connection)
        await asyncio.gather(
            *(self._close_socket(c, code, reason) for c in connections),
            return_exceptions=True,
        )
        if self._close_tasks:
            await asyncio.gather(*self._close_tasks, return_exceptions=True)
        logger.info("[relay.shutdown] closed %s connections", len(connections))

    # Inbound

    def handle_frame(self, connection: Connection, raw: Union[str, bytes]) -> None:
        """Parse and dispatch one inbound frame. Protocol errors go back to the sender only."""
        try:
            frame = parse_frame(raw)
            self._dispatch(connection, frame)
        except ProtocolError as e:
            logger.warning(
                "[relay.protocol] conn=%s user_id=%s reason=%s detail=%s",
                connection.id,
                connection.user_id,
                e.reason,
                e.message,
            )
            self.send(connection, ServerMessage.error(e.code, e.reason, e.message))

    def _dispatch(self, connection: Connection, frame: dict) -> None:
        message_type = frame["type"]

        if message_type == ClientMessageType.AUTH:
            auth = parse_auth(frame)
            if self.token_verifier is not None and not self.token_verifier(
                auth.token, auth.conversation_id, auth.user_id
            ):
                raise ProtocolError(ErrorCode.AUTH_FAILED, "auth_failed", "Invalid or mismatched token")
            self.authenticate(connection, auth.user_id, auth.conversation_id)

        elif message_type == ClientMessageType.MESSAGE:
            self.broadcast_message(connection, frame)

        elif message_type == ClientMessageType.TYPING:
            typing = parse_typing(frame)
            self.broadcast_typing(connection, typing.is_typing)

        elif message_type == ClientMessageType.PING:
            self.send(connection, ServerMessage.pong())

        elif message_type == ClientMessageType.PONG:
            pass

        else:
            raise ProtocolError(
                ErrorCode.UNSUPPORTED_TYPE,
                "unsupported_type",
                f"Unknown message type: {message_type}",
            )

    # Fan-out

    def broadcast_message(self, connection: Connection, payload: Any) -> int:
        """Send ``new_message`` to every socket in the sender's room, sender included."""
        self._require_auth(connection)
        frame = ServerMessage.new_message(payload).to_json()
        return self._fan_out(connection.conversation_id, frame)

    def broadcast_typing(self, connection: Connection, is_typing: bool) -> int:
        """Send a typing indicator to everyone in the sender's room except the sender."""
        self._require_auth(connection)
        frame = ServerMessage.typing(connection.user_id, is_typing).to_json()
        return self._fan_out(connection.conversation_id, frame, exclude=connection)

    def send_to_conversation(self, conversation_id: int, frame: dict) -> int:
        """Push a raw frame into a room from outside the socket path."""
        return self._fan_out(conversation_id, json.dumps(frame, ensure_ascii=False, default=str))

    def push_message(self, conversation_id: int, payload: Any) -> int:
        """Deliver an already persisted message to a room as ``new_message``."""
        return self._fan_out(conversation_id, ServerMessage.new_message(payload).to_json())

    def send(self, connection: Connection, message: ServerMessage) -> bool:
        """Queue a frame for a single socket."""
        if not connection.is_open:
            return False
        return self._enqueue(connection, message.to_json())

    def _fan_out(self, conversation_id: int, text: str, exclude: Optional[Connection] = None) -> int:
        members = self.rooms.get(conversation_id)
        if not members:
            return 0

        delivered = 0
        # snapshot: an overflow disconnect removes members mid-loop
        for connection in list(members.values()):
            if connection is exclude or not connection.is_open:
                continue
            if self._enqueue(connection, text):
                delivered += 1
        return delivered

    def _enqueue(self, connection: Connection, text: str) -> bool:
        try:
            connection.outbox.put_nowait(text)
            return True
        except asyncio.QueueFull:
            pass

        if self.overflow_policy == OVERFLOW_DROP_OLDEST:
            try:
                connection.outbox.get_nowait()
                connection.outbox.task_done()
            except asyncio.QueueEmpty:
                pass
            connection.dropped_frames += 1
            connection.outbox.put_nowait(text)
            logger.warning(
                "[relay.overflow] conn=%s dropped oldest frame (total dropped=%s)",
                connection.id,
                connection.dropped_frames,
            )
            return True

        logger.warning(
            "[relay.overflow] conn=%s user_id=%s send queue full (%s), disconnecting",
            connection.id,
            connection.user_id,
            self.send_queue_size,
        )
        self.disconnect(connection, CLOSE_POLICY_VIOLATION, "Send queue overflow")
        return False

    # Outbound

    async def _writer(self, connection: Connection) -> None:
        websocket = connection.websocket
        while True:
            text = await connection.outbox.get()
            failed = False
            try:
                if connection.is_open:
                    await websocket.send_text(text)
            except Exception as e:
                logger.error(
                    "[relay.send] conn=%s user_id=%s transport error: %s",
                    connection.id,
                    connection.user_id,
                    e,
                )
                failed = True
            finally:
                connection.outbox.task_done()
            if failed:
                self.unregister(connection)
                return

    async def drain(self) -> None:
        """Wait until every queued frame has been handed to its socket."""
        await asyncio.gather(
            *(c.outbox.join() for c in list(self.connections.values()))
        )

    async def _close_socket(self, connection: Connection, code: int, reason: str) -> None:
        try:
            await connection.websocket.close(code=code, reason=reason)
        except Exception as e:
            logger.debug("[relay.close] conn=%s close failed: %s", connection.id, e)

    # Room bookkeeping

    def _leave_room(self, connection: Connection) -> None:
        conversation_id = connection.conversation_id
        if conversation_id is None:
            return
        members = self.rooms.get(conversation_id)
        if members is None:
            return
        members.pop(connection.id, None)
        if not members:
            del self.rooms[conversation_id]
            logger.debug("[relay.room] conv_id=%s empty, removed", conversation_id)

    def _discard_outbox(self, connection: Connection) -> None:
        while True:
            try:
                connection.outbox.get_nowait()
            except asyncio.QueueEmpty:
                return
            connection.outbox.task_done()

    def _require_auth(self, connection: Connection) -> None:
        if not connection.is_authenticated:
            raise ProtocolError(ErrorCode.NOT_AUTHENTICATED, "not_authenticated", "Send an auth frame first")

    # Introspection

    def room_members(self, conversation_id: int) -> List[Connection]:
        return list(self.rooms.get(conversation_id, {}).values())

    def room_size(self, conversation_id: int) -> int:
        return len(self.rooms.get(conversation_id, ()))

    def room_user_ids(self, conversation_id: int) -> List[int]:
        seen: Dict[int, None] = {}
        for connection in self.room_members(conversation_id):
            seen[connection.user_id] = None
        return list(seen)

    @property
    def room_count(self) -> int:
        return len(self.rooms)

    @property
    def connection_count(self) -> int:
        return len(self.connections)
