# chatroom/services/redis_message_store.py
import json
import logging
from typing import List

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import RedisError
from redis.exceptions import TimeoutError as RedisTimeoutError

from chatroom.core.config import settings
from chatroom.models.models import Message
from chatroom.services.errors import StorageError
from chatroom.services.message_store import MessageStore

logger = logging.getLogger(__name__)


def _storage_error(action: str, exc: RedisError) -> StorageError:
    transient = isinstance(exc, (RedisConnectionError, RedisTimeoutError))
    return StorageError(f"Redis {action} failed: {exc}", transient=transient)


class RedisMessageStore(MessageStore):
    """
    Message store backed by a Redis list.

    Keys (with the default ROOM_TOPIC "chat:lobby"):
        chat:lobby:messages  list of JSON-encoded messages, oldest first
        chat:lobby:last_id   highest id written so far

    The record and the id counter are written in one MULTI/EXEC pipeline,
    so a failed append never leaves a gap or a dangling id.
    """

    backend = "redis"

    def __init__(self, host: str = "localhost", port: int = 6379, topic: str = "chat:lobby", client=None):
        super().__init__()
        self.host = host
        self.port = port
        self.client = client
        self.access_key = settings.REDIS_ACCESS_KEY
        self.messages_key = f"{topic}:messages"
        self.last_id_key = f"{topic}:last_id"

    async def connect(self):
        """Establish async connection to Redis."""
        if self.client is None:
            scheme = "rediss" if settings.REDIS_SSL else "redis"
            self.client = redis.from_url(
                f"{scheme}://:{self.access_key}@{self.host}:{self.port}",
                decode_responses=True
            )
        try:
            await self.client.ping()
        except RedisError as e:
            raise _storage_error("connect", e) from e
        logger.info("✓ Connected to Redis at %s:%s", self.host, self.port)

    async def _write(self, message: Message) -> None:
        payload = json.dumps(message.model_dump(mode="json"))
        try:
            async with self.client.pipeline(transaction=True) as pipe:
                pipe.rpush(self.messages_key, payload)
                pipe.set(self.last_id_key, message.id)
                await pipe.execute()
        except RedisError as e:
            logger.error("Redis append error: %s", e)
            raise _storage_error("append", e) from e
        logger.info("📤 Stored message #%d in '%s'", message.id, self.messages_key)

    async def _read_recent(self, limit: int) -> List[Message]:
        try:
            raw = await self.client.lrange(self.messages_key, -limit, -1)
        except RedisError as e:
            raise _storage_error("read", e) from e

        messages = []
        for item in raw:
            try:
                messages.append(Message.model_validate_json(item))
            except ValueError as e:
                logger.warning("Skipping undecodable Redis record: %s", e)
        return messages

    async def _last_id(self) -> int:
        try:
            value = await self.client.get(self.last_id_key)
        except RedisError as e:
            raise _storage_error("read", e) from e
        return int(value) if value else 0

    async def close(self):
        """Close connections."""
        if self.client:
            await self.client.aclose()
        logger.info("Redis connection closed")
