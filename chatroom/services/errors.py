# chatroom/services/errors.py

from __future__ import annotations

from typing import List

from chatroom.models.models import FieldError


class ChatError(Exception):
    """Base class for errors raised by the message core."""


class ValidationError(ChatError):
    """
    A submission failed field validation.

    Client-correctable: never retried automatically, never broadcast.
    One FieldError per failing field.
    """

    def __init__(self, errors: List[FieldError]) -> None:
        self.errors = errors
        summary = ", ".join(f"{e.field}: {e.reason}" for e in errors)
        super().__init__(f"Invalid message ({summary})")

    def fields(self) -> List[str]:
        return [e.field for e in self.errors]


class StorageError(ChatError):
    """
    The persistence layer failed.

    transient=True means the same submission may succeed on retry
    (connection lost, disk temporarily unavailable).
    """

    def __init__(self, message: str, transient: bool = True) -> None:
        self.transient = transient
        super().__init__(message)
