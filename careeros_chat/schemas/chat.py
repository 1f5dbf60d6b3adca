from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Any, Dict, List, Optional
from datetime import datetime


class CamelModel(BaseModel):
    """Serializes in camelCase, matching the frontend's field names"""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChatMessageRecord(CamelModel):
    """A chat message as persisted by the message store"""
    id: int
    conversation_id: int
    user_id: int
    type: str = "message"
    content: str
    created_at: datetime
    metadata: Optional[Dict[str, Any]] = None


class MessageCreateRequest(CamelModel):
    """Send message request"""
    user_id: int
    content: str = Field(..., min_length=1, max_length=10000)
    metadata: Optional[Dict[str, Any]] = None


class MessageCreateData(CamelModel):
    """Send message response data"""
    message: ChatMessageRecord
    delivered: int  # sockets reached out of band


class MessageListData(CamelModel):
    """Recent messages, oldest first"""
    conversation_id: int
    total: int
    list: List[ChatMessageRecord]


class PresenceData(CamelModel):
    """Who is connected to a conversation right now"""
    conversation_id: int
    online_count: int
    user_ids: List[int]


class WsTokenRequest(CamelModel):
    """WebSocket token request"""
    user_id: int


class WsTokenData(CamelModel):
    """WebSocket token response data"""
    conversation_id: int
    ws_url: str
    token: str
    expire_at: datetime
