"""Chat message persistence.

The relay never stores messages. The HTTP API writes each message here
first, then pushes the stored record to the room, so a client that
reconnects can fetch what it missed.
"""

import itertools
import logging
from collections import defaultdict, deque
from datetime import datetime, timezone
from typing import Any, Deque, Dict, List, Optional

from redis.exceptions import RedisError

from careeros_chat.redis_client import RedisClient
from careeros_chat.schemas.chat import ChatMessageRecord
from careeros_chat.utils.exceptions import StoreUnavailableException

logger = logging.getLogger(__name__)

MESSAGES_KEY = "chat:messages:{conversation_id}"
MESSAGE_ID_KEY = "chat:message_id:{conversation_id}"


class MessageStore:
    """Append-only, per-conversation message history."""

    async def connect(self) -> None:
        pass

    async def close(self) -> None:
        pass

    async def append(
        self,
        conversation_id: int,
        user_id: int,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> ChatMessageRecord:
        raise NotImplementedError

    async def recent(self, conversation_id: int, limit: int) -> List[ChatMessageRecord]:
        """Last ``limit`` messages, oldest first"""
        raise NotImplementedError

    async def count(self, conversation_id: int) -> int:
        raise NotImplementedError


class InMemoryMessageStore(MessageStore):
    """Process-local store for development and tests."""

    def __init__(self, history_limit: int = 500):
        self.history_limit = history_limit
        self._messages: Dict[int, Deque[ChatMessageRecord]] = defaultdict(
            lambda: deque(maxlen=history_limit)
        )
        self._ids: Dict[int, itertools.count] = defaultdict(lambda: itertools.count(1))

    async def append(self, conversation_id, user_id, content, metadata=None):
        record = ChatMessageRecord(
            id=next(self._ids[conversation_id]),
            conversation_id=conversation_id,
            user_id=user_id,
            content=content,
            created_at=datetime.now(timezone.utc),
            metadata=metadata,
        )
        self._messages[conversation_id].append(record)
        return record

    async def recent(self, conversation_id, limit):
        messages = self._messages.get(conversation_id)
        if not messages or limit <= 0:
            return []
        return list(messages)[-limit:]

    async def count(self, conversation_id):
        return len(self._messages.get(conversation_id, ()))


class RedisMessageStore(MessageStore):
    """Redis lists, trimmed to the newest ``history_limit`` entries."""

    def __init__(self, redis_client: RedisClient, history_limit: int = 500):
        self.redis = redis_client
        self.history_limit = history_limit

    async def connect(self) -> None:
        await self.redis.connect()
        try:
            await self.redis.ping()
            logger.info("[store] redis connected url=%s", self.redis.url)
        except RedisError as e:
            # Not fatal at startup; requests fail with 503 until Redis is back
            logger.error("[store] redis ping failed url=%s: %s", self.redis.url, e)

    async def close(self) -> None:
        await self.redis.close()

    async def append(self, conversation_id, user_id, content, metadata=None):
        key = MESSAGES_KEY.format(conversation_id=conversation_id)
        try:
            message_id = await self.redis.incr(MESSAGE_ID_KEY.format(conversation_id=conversation_id))
            record = ChatMessageRecord(
                id=message_id,
                conversation_id=conversation_id,
                user_id=user_id,
                content=content,
                created_at=datetime.now(timezone.utc),
                metadata=metadata,
            )
            await self.redis.rpush(key, record.model_dump_json(by_alias=True))
            await self.redis.ltrim(key, -self.history_limit, -1)
        except RedisError as e:
            logger.error("[store] append failed conv_id=%s: %s", conversation_id, e)
            raise StoreUnavailableException()
        return record

    async def recent(self, conversation_id, limit):
        if limit <= 0:
            return []
        key = MESSAGES_KEY.format(conversation_id=conversation_id)
        try:
            raw_messages = await self.redis.lrange(key, -limit, -1)
        except RedisError as e:
            logger.error("[store] read failed conv_id=%s: %s", conversation_id, e)
            raise StoreUnavailableException()

        records = []
        for raw in raw_messages:
            try:
                records.append(ChatMessageRecord.model_validate_json(raw))
            except ValueError as e:
                logger.warning("[store] skipping corrupt entry conv_id=%s: %s", conversation_id, e)
        return records

    async def count(self, conversation_id):
        try:
            return await self.redis.llen(MESSAGES_KEY.format(conversation_id=conversation_id))
        except RedisError as e:
            logger.error("[store] count failed conv_id=%s: %s", conversation_id, e)
            raise StoreUnavailableException()


def create_message_store(backend: str, redis_url: str, history_limit: int) -> MessageStore:
    if backend == "redis":
        return RedisMessageStore(RedisClient(redis_url), history_limit=history_limit)
    if backend == "memory":
        return InMemoryMessageStore(history_limit=history_limit)
    raise ValueError(f"Unknown message store backend: {backend}")
