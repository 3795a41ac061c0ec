# chatroom/core/state.py
from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from chatroom.core.config import settings
from chatroom.core.logging import get_logger
from chatroom.services.broadcast_hub import BroadcastHub
from chatroom.services.chat import ChatService
from chatroom.services.message_store import FileMessageStore, InMemoryMessageStore, MessageStore

logger = get_logger(__name__)

# Global singletons for app state, built on startup
store: Optional[MessageStore] = None
hub: Optional[BroadcastHub] = None
chat: Optional[ChatService] = None

# Metrics
app_start_time: datetime = datetime.now(timezone.utc)


async def init_state() -> None:
    """Build the store, hub and chat service for the configured backend."""
    global store, hub, chat, app_start_time

    if settings.MESSAGE_STORE == "redis":
        from chatroom.services.redis_message_store import RedisMessageStore

        redis_store = RedisMessageStore(host=settings.REDIS_HOST, port=settings.REDIS_PORT, topic=settings.ROOM_TOPIC)
        await redis_store.connect()
        store = redis_store
    elif settings.MESSAGE_STORE == "file":
        store = FileMessageStore(settings.MESSAGES_FILE)
    else:
        store = InMemoryMessageStore()

    hub = BroadcastHub(topic=settings.ROOM_TOPIC, queue_size=settings.SUBSCRIBER_QUEUE_SIZE)
    chat = ChatService(store=store, hub=hub)
    app_start_time = datetime.now(timezone.utc)
    logger.info("✓ Message store '%s' ready for topic '%s'", store.backend, settings.ROOM_TOPIC)


async def shutdown_state() -> None:
    global store, hub, chat

    if hub is not None:
        hub.close()
    if store is not None:
        await store.close()
    store = hub = chat = None
