# chatroom/api/routes/health.py

from fastapi import APIRouter

from chatroom.core import state

router = APIRouter()

@router.get("/health")
async def health():
    """
    Health check endpoint.

    Returns current system status, live subscriber count and store backend.
    Used by container health probes and monitoring.
    """
    return {
        "status": "healthy",
        "store": state.store.backend,
        "subscribers": state.hub.subscriber_count,
    }
