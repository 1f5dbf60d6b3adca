from fastapi import APIRouter, Path, Query, Request
from datetime import datetime, timedelta, timezone
from typing import Optional
import logging

from careeros_chat.api.deps import AppSettings, Relay, Store
from careeros_chat.schemas.base import BaseResponse
from careeros_chat.schemas.chat import (
    MessageCreateData,
    MessageCreateRequest,
    MessageListData,
    PresenceData,
    WsTokenData,
    WsTokenRequest,
)
from careeros_chat.utils.exceptions import ValidationException
from careeros_chat.utils.security import create_ws_token

logger = logging.getLogger(__name__)

router = APIRouter()

MAX_FETCH_LIMIT = 200


@router.post(
    "/conversations/{conversation_id}/messages",
    response_model=BaseResponse[MessageCreateData],
)
async def send_message(
    request: MessageCreateRequest,
    relay: Relay,
    store: Store,
    conversation_id: int = Path(..., ge=1, description="Conversation ID"),
):
    """
    Persist a chat message, then push it to every socket in the conversation.

    Lets a client without a live socket still reach those that have one.
    """
    if not request.content.strip():
        raise ValidationException("Message content is empty")

    record = await store.append(
        conversation_id,
        request.user_id,
        request.content,
        metadata=request.metadata,
    )
    delivered = relay.push_message(conversation_id, record.model_dump(mode="json", by_alias=True))
    logger.info(
        "[api.send] conv_id=%s user_id=%s message_id=%s delivered=%s",
        conversation_id,
        request.user_id,
        record.id,
        delivered,
    )

    return BaseResponse.success(data=MessageCreateData(message=record, delivered=delivered))


@router.get(
    "/conversations/{conversation_id}/messages",
    response_model=BaseResponse[MessageListData],
)
async def list_messages(
    store: Store,
    settings: AppSettings,
    conversation_id: int = Path(..., ge=1, description="Conversation ID"),
    limit: Optional[int] = Query(default=None, ge=1, le=MAX_FETCH_LIMIT),
):
    """
    Most recent messages, oldest first.

    Clients call this on (re)connect before sending ``auth``; the relay does
    not replay anything sent while a socket was away.
    """
    if limit is None:
        limit = settings.message_fetch_default

    messages = await store.recent(conversation_id, limit)
    total = await store.count(conversation_id)
    return BaseResponse.success(
        data=MessageListData(conversation_id=conversation_id, total=total, list=messages)
    )


@router.get(
    "/conversations/{conversation_id}/presence",
    response_model=BaseResponse[PresenceData],
)
async def get_presence(
    relay: Relay,
    conversation_id: int = Path(..., ge=1, description="Conversation ID"),
):
    """Sockets currently joined to a conversation on this instance"""
    return BaseResponse.success(
        data=PresenceData(
            conversation_id=conversation_id,
            online_count=relay.room_size(conversation_id),
            user_ids=relay.room_user_ids(conversation_id),
        )
    )


@router.post(
    "/conversations/{conversation_id}/ws-token",
    response_model=BaseResponse[WsTokenData],
)
async def issue_ws_token(
    request: WsTokenRequest,
    http_request: Request,
    settings: AppSettings,
    conversation_id: int = Path(..., ge=1, description="Conversation ID"),
):
    """Issue a WebSocket token bound to one user and conversation"""
    expire_at = datetime.now(timezone.utc) + timedelta(seconds=settings.ws_token_expire_seconds)
    token = create_ws_token(conversation_id, request.user_id, settings)

    host = http_request.headers.get("host", "localhost:8000")
    # Use wss for HTTPS, ws for HTTP
    ws_scheme = "wss" if http_request.url.scheme == "https" else "ws"
    ws_url = f"{ws_scheme}://{host}{settings.ws_path}"

    return BaseResponse.success(
        data=WsTokenData(
            conversation_id=conversation_id,
            ws_url=ws_url,
            token=token,
            expire_at=expire_at,
        )
    )
