# chatroom/api/routes/messages.py
from typing import List

from fastapi import APIRouter, HTTPException, status

from chatroom.core import state
from chatroom.models.models import Message, PublishMessageRequest
from chatroom.services.errors import StorageError, ValidationError

# ============================================================================
# MESSAGE ENDPOINTS
# ============================================================================

router = APIRouter()


@router.get("/messages", response_model=List[Message])
async def list_messages():
    """
    Recent history, oldest first.

    This is the static snapshot for a first page load; live updates
    come over /ws.
    """
    try:
        return await state.chat.list_messages()
    except StorageError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))


@router.post("/messages", response_model=Message, status_code=status.HTTP_201_CREATED)
async def publish_message(request: PublishMessageRequest):
    """
    Store a message and broadcast it to every live client.

    Args:
        request: PublishMessageRequest with sender and body

    Returns:
        Message: The stored message with its id and timestamp

    Raises:
        HTTPException: 422 with field errors on invalid input,
                       503 when the store is unavailable
    """
    try:
        return await state.chat.create_message(request.sender, request.body)
    except ValidationError as e:
        raise HTTPException(
            status_code=422,
            detail=[err.model_dump() for err in e.errors],
        )
    except StorageError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"message": str(e), "retryable": e.transient},
        )
