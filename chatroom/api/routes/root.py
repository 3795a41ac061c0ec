# chatroom/api/routes/root.py

from fastapi import APIRouter

from chatroom.core.config import settings

router = APIRouter()


@router.get("/")
async def root():
    """
    Root endpoint - API information.

    Returns basic info about the API and its features.
    """
    return {
        "message": "Lobby Chat - real-time message board",
        "version": "1.0",
        "room": settings.ROOM_TOPIC,
        "architecture": "single process, in-memory broadcast hub",
        "features": ["live_feed", "history_on_join", "ordered_delivery"],
        "endpoints": {
            "websocket": "/ws",
            "messages": "/messages",
            "health": "/health",
            "metrics": "/metrics",
        },
    }
