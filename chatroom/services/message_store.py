# chatroom/services/message_store.py

from __future__ import annotations

import asyncio
import json
import logging
import os
from datetime import datetime, timezone
from typing import List, Optional

from chatroom.models.models import (
    BODY_MAX_LENGTH,
    BODY_MIN_LENGTH,
    SENDER_MAX_LENGTH,
    SENDER_MIN_LENGTH,
    FieldError,
    Message,
)
from chatroom.services.errors import StorageError, ValidationError

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 50  # Static cap on history handed to a joining client


def check_field(name: str, value, min_length: int, max_length: int) -> Optional[FieldError]:
    if not isinstance(value, str) or not value.strip():
        return FieldError(field=name, reason="blank")
    length = len(value.strip())
    if length < min_length:
        return FieldError(field=name, reason="too_short")
    if length > max_length:
        return FieldError(field=name, reason="too_long")
    return None


def validate_message(sender, body) -> tuple[str, str]:
    """
    Validate and normalize a submission.

    Returns:
        (sender, body) trimmed of surrounding whitespace

    Raises:
        ValidationError: listing every failing field
    """
    errors = [
        error
        for error in (
            check_field("sender", sender, SENDER_MIN_LENGTH, SENDER_MAX_LENGTH),
            check_field("body", body, BODY_MIN_LENGTH, BODY_MAX_LENGTH),
        )
        if error is not None
    ]
    if errors:
        raise ValidationError(errors)
    return sender.strip(), body.strip()


# ============================================================================
# MESSAGE STORE
# ============================================================================

class MessageStore:
    """
    Append-only, ordered persistence of chat messages.

    The store is the single source of truth for message order: ids and
    created_at timestamps are assigned here, under a lock, so concurrent
    appends always get strictly increasing ids and non-decreasing
    timestamps.

    Subclasses implement:
        _write(message): persist one fully built Message
        _read_recent(limit): return up to `limit` newest messages, oldest first
        _last_id(): highest id already persisted (0 when empty)
    """

    backend = "abstract"

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._next_id: Optional[int] = None
        self._last_created_at: Optional[datetime] = None

    async def append(self, sender, body) -> Message:
        """
        Validate, stamp and persist a message.

        Args:
            sender: Display name, 1-20 chars after trimming
            body: Message text, 1-500 chars after trimming

        Returns:
            Message: The stored record with id and created_at assigned

        Raises:
            ValidationError: Nothing is written
            StorageError: The backend failed; nothing is considered stored
        """
        sender, body = validate_message(sender, body)

        async with self._lock:
            if self._next_id is None:
                self._next_id = await self._last_id() + 1

            created_at = datetime.now(timezone.utc)
            if self._last_created_at is not None and created_at < self._last_created_at:
                created_at = self._last_created_at

            message = Message(
                id=self._next_id,
                sender=sender,
                body=body,
                created_at=created_at,
            )
            try:
                await self._write(message)
            except BaseException:
                # The write may have landed before failing; re-read the backend's last id next time
                self._next_id = None
                raise

            self._next_id += 1
            self._last_created_at = created_at

        logger.debug("✓ Stored message #%d from %s", message.id, message.sender)
        return message

    async def list_recent(self, limit: int = HISTORY_LIMIT) -> List[Message]:
        """
        Return up to `limit` most recent messages, oldest first.

        `limit` is clamped to HISTORY_LIMIT so initial payloads stay small.
        """
        limit = max(0, min(limit, HISTORY_LIMIT))
        if limit == 0:
            return []
        return await self._read_recent(limit)

    async def close(self) -> None:
        """Release backend resources. No-op by default."""

    async def _write(self, message: Message) -> None:
        raise NotImplementedError

    async def _read_recent(self, limit: int) -> List[Message]:
        raise NotImplementedError

    async def _last_id(self) -> int:
        raise NotImplementedError


class InMemoryMessageStore(MessageStore):
    """Process-local store. Messages are lost on restart."""

    backend = "memory"

    def __init__(self) -> None:
        super().__init__()
        self.messages: List[Message] = []

    async def _write(self, message: Message) -> None:
        self.messages.append(message)

    async def _read_recent(self, limit: int) -> List[Message]:
        return list(self.messages[-limit:])

    async def _last_id(self) -> int:
        return self.messages[-1].id if self.messages else 0


class FileMessageStore(MessageStore):
    """
    Append-only JSON-lines file store.

    Every message is one line in `path`. Existing lines are loaded into
    memory on startup so history reads never touch the disk, and new
    messages are appended (and flushed) before append() returns.

    Storage Format (messages.jsonl):
        {"id": 1, "sender": "alice", "body": "hi", "created_at": "2026-01-01T12:00:00Z"}
        {"id": 2, "sender": "bob", "body": "hey", "created_at": "2026-01-01T12:00:05Z"}
    """

    backend = "file"

    def __init__(self, path: str) -> None:
        super().__init__()
        self.path = path
        self.messages: List[Message] = []
        self.load_messages()

    def load_messages(self) -> None:
        """
        Load messages from the file, if it exists.

        Lines that fail to parse are skipped with a warning; a missing file
        simply means an empty room.
        """
        if not os.path.exists(self.path):
            logger.info("✓ No message file at %s, starting empty", self.path)
            return

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                for lineno, line in enumerate(f, start=1):
                    line = line.strip()
                    if not line:
                        continue
                    try:
                        self.messages.append(Message.model_validate_json(line))
                    except ValueError as e:
                        logger.warning("Skipping corrupt line %d in %s: %s", lineno, self.path, e)
        except OSError as e:
            raise StorageError(f"Cannot read {self.path}: {e}", transient=False) from e

        self.messages.sort(key=lambda m: m.id)
        logger.info("✓ Loaded %d messages from %s", len(self.messages), self.path)

    async def _write(self, message: Message) -> None:
        line = json.dumps(message.model_dump(mode="json"))
        size = os.path.getsize(self.path) if os.path.isfile(self.path) else 0
        try:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line + "\n")
                f.flush()
        except OSError as e:
            logger.error("Write error: %s", e)
            self._truncate(size)
            raise StorageError(f"Cannot append to {self.path}: {e}", transient=True) from e
        self.messages.append(message)

    def _truncate(self, size: int) -> None:
        """Drop whatever a failed append left past `size` bytes."""
        if not os.path.isfile(self.path):
            return
        try:
            os.truncate(self.path, size)
        except OSError as e:
            logger.error("Could not roll back partial write in %s: %s", self.path, e)

    async def _read_recent(self, limit: int) -> List[Message]:
        return list(self.messages[-limit:])

    async def _last_id(self) -> int:
        return self.messages[-1].id if self.messages else 0
