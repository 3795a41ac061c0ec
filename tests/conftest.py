import asyncio
from datetime import datetime, timezone

import pytest

from chatroom.models.models import Message
from chatroom.services.broadcast_hub import BroadcastHub
from chatroom.services.chat import ChatService
from chatroom.services.message_store import InMemoryMessageStore
from chatroom.services.session import InvalidFrame, TransportClosed


def make_message(message_id: int, sender: str = "alice", body: str = "hi") -> Message:
    return Message(id=message_id, sender=sender, body=body, created_at=datetime.now(timezone.utc))


class FakeTransport:
    """In-memory duplex channel: tests push client frames and read server frames."""

    CLOSE = object()
    GARBAGE = object()

    def __init__(self):
        self.inbound: asyncio.Queue = asyncio.Queue()
        self.outbound: asyncio.Queue = asyncio.Queue()
        self.sent = []

    async def receive(self) -> dict:
        frame = await self.inbound.get()
        if frame is self.CLOSE:
            raise TransportClosed()
        if frame is self.GARBAGE:
            raise InvalidFrame("not json")
        return frame

    async def send(self, frame: dict) -> None:
        self.sent.append(frame)
        await self.outbound.put(frame)

    async def next_frame(self, timeout: float = 1.0) -> dict:
        return await asyncio.wait_for(self.outbound.get(), timeout)

    def push(self, frame) -> None:
        self.inbound.put_nowait(frame)

    def close(self) -> None:
        self.inbound.put_nowait(self.CLOSE)


@pytest.fixture
def store():
    return InMemoryMessageStore()


@pytest.fixture
def hub():
    return BroadcastHub(topic="chat:test", queue_size=64)


@pytest.fixture
def chat(store, hub):
    return ChatService(store=store, hub=hub)
