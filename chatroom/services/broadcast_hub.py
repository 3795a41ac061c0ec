# chatroom/services/broadcast_hub.py

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Dict

from chatroom.models.models import Message

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 64


class Subscription:
    """
    One live client's registration with the hub.

    The queue is the receiving end of the delivery channel. `dropped`
    counts deliveries discarded because the queue was full; a reader that
    sees it grow knows it has a gap and should reload history.
    """

    def __init__(self, subscription_id: int, topic: str, maxsize: int) -> None:
        self.id = subscription_id
        self.topic = topic
        self.queue: asyncio.Queue[Message] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    async def get(self) -> Message:
        return await self.queue.get()

    def __repr__(self) -> str:
        return f"<Subscription #{self.id} topic={self.topic} pending={self.queue.qsize()} dropped={self.dropped}>"


# ============================================================================
# BROADCAST HUB
# ============================================================================

class BroadcastHub:
    """
    In-memory fan-out of stored messages to every live client of the room.

    Every live client owns a Subscription with a bounded queue. publish()
    pushes the message into each queue with put_nowait and never awaits,
    so on the event loop it runs as one step: subscribe/unsubscribe can
    never interleave with a publish, and every subscriber receives
    messages in the order publish() was called.

    Data Structures:
        subscriptions: Maps subscription id -> Subscription
                       Example: {1: <Subscription #1>, 2: <Subscription #2>}

    Slow clients:
        A full queue means that client is not draining its deliveries.
        The message is dropped for that client only and its `dropped`
        counter is bumped; other subscribers are unaffected.

    Scaling:
        - Single instance only. Every process owns its own registry.
    """

    def __init__(self, topic: str = "chat:lobby", queue_size: int = DEFAULT_QUEUE_SIZE) -> None:
        """Initialize hub with an empty registry."""
        self.topic = topic
        self.queue_size = queue_size
        self.subscriptions: Dict[int, Subscription] = {}
        self.total_dropped = 0
        self._ids = itertools.count(1)

    def subscribe(self) -> Subscription:
        """
        Register a new delivery target.

        Every call creates a distinct registration, even for the same client.

        Returns:
            Subscription: handle for unsubscribe() and the delivery queue
        """
        subscription = Subscription(next(self._ids), self.topic, self.queue_size)
        self.subscriptions[subscription.id] = subscription
        logger.info("→ Subscription #%d joined '%s'. Total: %d", subscription.id, self.topic, len(self.subscriptions))
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """
        Remove a registration.

        Safe to call with a handle that is already gone: disconnects can race
        with delivery and cleanup, so a missing handle is a no-op. Once this
        returns no later publish() will reach the handle.
        """
        if self.subscriptions.pop(subscription.id, None) is not None:
            logger.info("✗ Subscription #%d left '%s'. Total: %d", subscription.id, self.topic, len(self.subscriptions))

    def publish(self, message: Message) -> int:
        """
        Deliver a stored message to every registered subscription.

        Args:
            message: The Message returned by the store

        Returns:
            Number of subscriptions the message was queued for
        """
        if not self.subscriptions:
            logger.info("[routing] Skipped broadcast: topic=%s has 0 subscribers", self.topic)
            return 0

        delivered = 0
        subscriptions = list(self.subscriptions.values())  # Copy so cleanup during delivery is safe

        logger.info("📨 Broadcasting message #%d to '%s': %d clients", message.id, self.topic, len(subscriptions))

        for subscription in subscriptions:
            try:
                subscription.queue.put_nowait(message)
                delivered += 1
            except asyncio.QueueFull:
                subscription.dropped += 1
                self.total_dropped += 1
                logger.warning(
                    "Subscription #%d queue full, dropped message #%d (dropped so far: %d)",
                    subscription.id, message.id, subscription.dropped,
                )
        return delivered

    @property
    def subscriber_count(self) -> int:
        return len(self.subscriptions)

    def close(self) -> None:
        """Forget every registration (application shutdown)."""
        self.subscriptions.clear()
