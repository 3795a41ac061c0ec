# chatroom/services/chat.py

from __future__ import annotations

import asyncio
import logging
from typing import List, Tuple

from chatroom.models.models import Message
from chatroom.services.broadcast_hub import BroadcastHub, Subscription
from chatroom.services.message_store import HISTORY_LIMIT, MessageStore

logger = logging.getLogger(__name__)


class ChatService:
    """
    The chat room: store + hub behind one sequencing lock.

    The store does not know about the hub. This class owns the contract
    between them:
        - create_message() appends, and only on success publishes the
          stored record. Append and publish happen under one lock, so
          publish order is always store order.
        - join() subscribes and reads history under the same lock, so a
          joining client gets every message exactly once: either in its
          history or through its subscription, never both, never neither.
    """

    def __init__(self, store: MessageStore, hub: BroadcastHub) -> None:
        self.store = store
        self.hub = hub
        self.message_counter = 0
        self._lock = asyncio.Lock()

    async def list_messages(self) -> List[Message]:
        """Returns the last HISTORY_LIMIT messages, oldest first."""
        return await self.store.list_recent(HISTORY_LIMIT)

    async def create_message(self, sender, body) -> Message:
        """
        Store a message and broadcast it to every live client.

        Raises:
            ValidationError / StorageError from the store; nothing is
            published in either case.
        """
        async with self._lock:
            message = await self.store.append(sender, body)
            self.hub.publish(message)
        self.message_counter += 1
        return message

    async def join(self) -> Tuple[Subscription, List[Message]]:
        """
        Go live: register with the hub and load the history to show first.

        Returns:
            (subscription, history) where history is oldest first
        """
        async with self._lock:
            subscription = self.hub.subscribe()
            try:
                history = await self.store.list_recent(HISTORY_LIMIT)
            except Exception:
                self.hub.unsubscribe(subscription)
                raise
        return subscription, history

    def leave(self, subscription: Subscription) -> None:
        self.hub.unsubscribe(subscription)
