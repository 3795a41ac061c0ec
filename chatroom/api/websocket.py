# chatroom/api/websocket.py

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from chatroom.core import state
from chatroom.core.config import settings
from chatroom.services.session import ChatSession, InvalidFrame, TransportClosed

logger = logging.getLogger(__name__)

router = APIRouter()


class WebSocketTransport:
    """Adapts a FastAPI WebSocket to the session Transport protocol."""

    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket

    async def receive(self) -> dict:
        try:
            data = await self.websocket.receive_text()
        except WebSocketDisconnect as e:
            raise TransportClosed() from e

        try:
            frame = json.loads(data)
        except json.JSONDecodeError as e:
            raise InvalidFrame(data) from e
        if not isinstance(frame, dict):
            raise InvalidFrame(data)
        return frame

    async def send(self, frame: dict) -> None:
        try:
            await self.websocket.send_json(frame)
        except (WebSocketDisconnect, RuntimeError) as e:
            # RuntimeError: send after the socket was closed
            raise TransportClosed() from e


# ============================================================================
# WEBSOCKET ENDPOINT
# ============================================================================

@router.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket, username: str = ""):
    """
    WebSocket endpoint for the live chat feed.

    Protocol:
    =========

    Client -> Server Actions:
    -------------------------
    Join (pick a display name):
        {"action": "join", "username": "alice"}
        Response: {"type": "joined", "username": "alice"}

    Send Message:
        {"action": "send_message", "body": "hi"}
        {"action": "send_message", "body": "hi", "sender": "alice"}
        No direct response on success: the message arrives as a
        regular "message" frame, same as for every other client.

    Server -> Client Messages:
    -------------------------
    History (first frame after connecting):
        {"type": "history", "messages": [{"id": 1, "sender": "alice", "body": "hi", "created_at": "..."}]}

    New Message:
        {"type": "message", "message": {"id": 2, ...}}

    Resync (after this client fell behind and missed deliveries):
        {"type": "resync", "messages": [...]}

    Error:
        {"type": "error", "errors": [{"field": "body", "reason": "too_long"}]}
        {"type": "error", "message": "...", "retryable": true}

    Lifecycle:
    ==========
    1. Client connects, optionally with ?username=alice
    2. Connection accepted, subscribed to the room, history pushed
    3. Client sends messages, receives every message of the room
    4. On disconnect, the subscription is released

    Args:
        websocket: WebSocket connection object
        username: Query parameter pre-setting the display name
    """
    await websocket.accept()

    session = ChatSession(
        chat=state.chat,
        transport=WebSocketTransport(websocket),
        username=username,
        retry_attempts=settings.STORE_RETRY_ATTEMPTS,
        retry_backoff=settings.STORE_RETRY_BACKOFF,
    )
    logger.info("✓ Client %s connected", username or "anonymous")

    await session.run()

    logger.info("✗ Client %s disconnected. Live: %d", session.username or "anonymous", state.hub.subscriber_count)
