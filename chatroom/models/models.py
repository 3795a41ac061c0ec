# chatroom/models/models.py
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict

SENDER_MIN_LENGTH = 1
SENDER_MAX_LENGTH = 20
BODY_MIN_LENGTH = 1
BODY_MAX_LENGTH = 500


class Message(BaseModel):
    """A stored chat message. Immutable once the store has assigned id and created_at."""

    model_config = ConfigDict(frozen=True)

    id: int
    sender: str
    body: str
    created_at: datetime


class FieldError(BaseModel):
    field: str
    reason: str  # "blank" | "too_short" | "too_long"


class PublishMessageRequest(BaseModel):
    sender: Optional[str] = ""
    body: Optional[str] = ""
