"""WebSocket endpoint handler for expert chat"""

from fastapi import WebSocket, WebSocketDisconnect
import asyncio
import logging

from careeros_chat.websocket.protocol import ServerMessage
from careeros_chat.websocket.relay import ChatRelay, CLOSE_GOING_AWAY

logger = logging.getLogger(__name__)


async def receive_frame(websocket: WebSocket):
    """Receive one text or binary frame; raise WebSocketDisconnect on close."""
    message = await websocket.receive()
    if message["type"] == "websocket.disconnect":
        raise WebSocketDisconnect(message.get("code", 1000), message.get("reason"))
    if message.get("text") is not None:
        return message["text"]
    return message.get("bytes") or b""


async def websocket_endpoint(
    websocket: WebSocket,
    relay: ChatRelay,
    idle_timeout: float = 60.0,
    pong_timeout: float = 10.0,
) -> None:
    """
    Serve one chat socket until it closes.

    After ``idle_timeout`` seconds without any inbound frame the relay sends a
    ping; if nothing arrives within ``pong_timeout`` the socket is closed.
    """
    await websocket.accept()
    connection = relay.register(websocket)
    awaiting_pong = False

    try:
        while True:
            timeout = pong_timeout if awaiting_pong else idle_timeout
            try:
                raw = await asyncio.wait_for(receive_frame(websocket), timeout=timeout)
            except asyncio.TimeoutError:
                if awaiting_pong:
                    logger.info(
                        "[ws.idle] no pong, closing conn=%s user_id=%s",
                        connection.id,
                        connection.user_id,
                    )
                    await relay.close(connection, CLOSE_GOING_AWAY, "Idle timeout")
                    return
                awaiting_pong = True
                relay.send(connection, ServerMessage.ping())
                continue

            awaiting_pong = False
            relay.handle_frame(connection, raw)

    except WebSocketDisconnect as e:
        logger.info(
            "[ws.close] conn=%s user_id=%s conv_id=%s code=%s",
            connection.id,
            connection.user_id,
            connection.conversation_id,
            e.code,
        )
    except Exception as e:
        logger.error(
            "[ws.error] conn=%s user_id=%s: %s",
            connection.id,
            connection.user_id,
            e,
            exc_info=True,
        )
    finally:
        relay.unregister(connection)
