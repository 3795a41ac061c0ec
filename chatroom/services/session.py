# chatroom/services/session.py

from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import List, Optional, Protocol

from chatroom.models.models import SENDER_MAX_LENGTH, SENDER_MIN_LENGTH, FieldError, Message
from chatroom.services.broadcast_hub import Subscription
from chatroom.services.chat import ChatService
from chatroom.services.errors import StorageError, ValidationError
from chatroom.services.message_store import HISTORY_LIMIT, check_field

logger = logging.getLogger(__name__)


class TransportClosed(Exception):
    """The client went away."""


class InvalidFrame(Exception):
    """The client sent something that is not a JSON object."""


class Transport(Protocol):
    """
    Duplex channel to one client.

    receive() returns the next client frame as a dict, raising
    TransportClosed on disconnect and InvalidFrame on garbage.
    send() pushes one frame; it may block while the outbound buffer is full.
    """

    async def receive(self) -> dict: ...

    async def send(self, frame: dict) -> None: ...


class SessionState(str, Enum):
    STATIC = "static"
    LIVE = "live"
    ACTIVE = "active"
    CLOSED = "closed"


def _dump(messages: List[Message]) -> List[dict]:
    return [m.model_dump(mode="json") for m in messages]


# ============================================================================
# CHAT SESSION
# ============================================================================

class ChatSession:
    """
    Bridges one client connection to the chat room.

    Lifecycle:
    ==========
    1. STATIC: snapshot() only reads history, nothing is registered
    2. LIVE: go_live() subscribes and loads history in one step, then
       pushes a "history" frame
    3. ACTIVE: client submissions go to ChatService.create_message();
       hub deliveries are pushed as "message" frames. The sender's own
       message comes back through the hub like everyone else's.
    4. CLOSED: close() releases the subscription. Always runs, even when
       the session crashes.

    Protocol:
    =========
    Client -> Server:
        {"action": "join", "username": "alice"}
        {"action": "send_message", "body": "hi", "sender": "alice"}   (sender optional after join)

    Server -> Client:
        {"type": "history", "messages": [...]}
        {"type": "message", "message": {...}}
        {"type": "resync", "messages": [...]}
        {"type": "joined", "username": "alice"}
        {"type": "error", "errors": [{"field": "body", "reason": "too_long"}]}
        {"type": "error", "message": "...", "retryable": true}
    """

    def __init__(
        self,
        chat: ChatService,
        transport: Transport,
        username: str = "",
        retry_attempts: int = 3,
        retry_backoff: float = 0.1,
    ) -> None:
        self.chat = chat
        self.transport = transport
        self.username = username.strip() if username else ""
        self.retry_attempts = max(1, retry_attempts)
        self.retry_backoff = retry_backoff

        self.state = SessionState.STATIC
        self.messages: List[Message] = []
        self.subscription: Optional[Subscription] = None
        self._seen_dropped = 0

    @property
    def last_id(self) -> int:
        return self.messages[-1].id if self.messages else 0

    async def snapshot(self) -> List[Message]:
        """History for a non-live page load."""
        self.messages = await self.chat.list_messages()
        return list(self.messages)

    async def go_live(self) -> None:
        """Register with the hub and push the history that precedes live delivery."""
        self.subscription, history = await self.chat.join()
        self.state = SessionState.LIVE
        self.messages = history
        await self.transport.send({"type": "history", "messages": _dump(history)})
        self.state = SessionState.ACTIVE
        logger.info("✓ Session %s live with %d messages of history", self.subscription.id, len(history))

    # ------------------------------------------------------------------
    # Inbound client frames
    # ------------------------------------------------------------------

    async def handle_frame(self, frame: dict) -> None:
        action = frame.get("action")
        logger.debug("Session input: Action: %s", action)

        if action == "join":
            await self.join(frame.get("username"))
        elif action == "send_message":
            await self.submit(frame.get("sender") or self.username, frame.get("body"))
        else:
            await self.transport.send({"type": "error", "message": f"Unknown action: {action}"})

    async def join(self, username) -> None:
        error = check_field("sender", username, SENDER_MIN_LENGTH, SENDER_MAX_LENGTH)
        if error is not None:
            await self._send_field_errors([error])
            return
        self.username = username.strip()
        await self.transport.send({"type": "joined", "username": self.username})

    async def submit(self, sender, body) -> Optional[Message]:
        """
        Forward one submission to the room.

        Errors go back to this client only. Transient storage failures are
        retried with exponential backoff before being reported.
        """
        local_errors = [
            FieldError(field=name, reason="blank")
            for name, value in (("sender", sender), ("body", body))
            if not isinstance(value, str) or not value
        ]
        if local_errors:
            await self._send_field_errors(local_errors)
            return None

        for attempt in range(1, self.retry_attempts + 1):
            try:
                return await self.chat.create_message(sender, body)
            except ValidationError as e:
                await self._send_field_errors(e.errors)
                return None
            except StorageError as e:
                if not e.transient or attempt == self.retry_attempts:
                    logger.error("Storage error after %d attempt(s): %s", attempt, e)
                    await self.transport.send(
                        {
                            "type": "error",
                            "message": "Could not store your message, please try again",
                            "retryable": e.transient,
                        }
                    )
                    return None
                delay = self.retry_backoff * (2 ** (attempt - 1))
                logger.warning("Transient storage error (attempt %d), retrying in %.2fs: %s", attempt, delay, e)
                await asyncio.sleep(delay)
        return None

    async def _send_field_errors(self, errors: List[FieldError]) -> None:
        await self.transport.send({"type": "error", "errors": [e.model_dump() for e in errors]})

    # ------------------------------------------------------------------
    # Hub deliveries
    # ------------------------------------------------------------------

    async def deliver(self, message: Message) -> None:
        """Append a hub delivery to the visible list and push it to the client."""
        if self.subscription is not None and self.subscription.dropped > self._seen_dropped:
            self._seen_dropped = self.subscription.dropped
            await self.resync()

        if message.id <= self.last_id:
            return  # already shown (resync covered it)

        self.messages.append(message)
        del self.messages[:-HISTORY_LIMIT]
        await self.transport.send({"type": "message", "message": message.model_dump(mode="json")})

    async def resync(self) -> None:
        """
        Fill a delivery gap from the store.

        Merges recent history into the visible list by id, keeps the newest
        HISTORY_LIMIT messages and pushes that window so the client can
        replace what it shows.
        """
        recent = await self.chat.store.list_recent(HISTORY_LIMIT)
        merged = {m.id: m for m in self.messages}
        merged.update((m.id, m) for m in recent)
        self.messages = [merged[i] for i in sorted(merged)][-HISTORY_LIMIT:]
        logger.warning("Session %s resynced after dropped deliveries", self.subscription.id if self.subscription else "-")
        await self.transport.send({"type": "resync", "messages": _dump(self.messages)})

    # ------------------------------------------------------------------
    # Connection loop
    # ------------------------------------------------------------------

    async def _receive_loop(self) -> None:
        while True:
            try:
                frame = await self.transport.receive()
            except InvalidFrame:
                await self.transport.send({"type": "error", "message": "Invalid JSON"})
                continue
            await self.handle_frame(frame)

    async def _pump(self) -> None:
        while True:
            message = await self.subscription.get()
            await self.deliver(message)

    async def run(self) -> None:
        """
        Serve the connection until the client disconnects.

        Any failure is contained here: it is logged, this session is
        closed, and no other session or the hub is affected.
        """
        tasks: List[asyncio.Task] = []
        try:
            await self.go_live()

            tasks = [
                asyncio.create_task(self._receive_loop()),
                asyncio.create_task(self._pump()),
            ]
            done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)

            for task in done:
                exc = task.exception()
                if exc is not None and not isinstance(exc, TransportClosed):
                    raise exc
        except TransportClosed:
            pass
        except Exception as e:
            logger.error("Session error: %s", e, exc_info=True)
        finally:
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)
            self.close()

    def close(self) -> None:
        """Release the hub registration. Idempotent."""
        if self.subscription is not None:
            self.chat.leave(self.subscription)
        self.state = SessionState.CLOSED
