# chatroom/api/routes/metrics.py
from datetime import datetime, timezone

from fastapi import APIRouter

from chatroom.core import state

router = APIRouter()

@router.get("/metrics")
async def get_metrics():
    """
    Traffic metrics for this process.

    Returns:
        dict: Message statistics (total since start, messages/sec, daily
        projection), live subscribers, and how many deliveries were
        dropped because a client could not keep up.
    """
    uptime_seconds = (datetime.now(timezone.utc) - state.app_start_time).total_seconds()

    if uptime_seconds > 0:
        messages_per_second = state.chat.message_counter / uptime_seconds
        daily_messages = int(messages_per_second * 86400)
    else:
        messages_per_second = 0
        daily_messages = 0

    return {
        # Statistics
        "total_messages": state.chat.message_counter,
        "uptime_hours": round(uptime_seconds / 3600, 2) if uptime_seconds > 0 else 0,
        "daily_messages_projected": daily_messages,
        "messages_per_second": round(messages_per_second, 2),

        # Delivery
        "concurrent_subscribers": state.hub.subscriber_count,
        "dropped_deliveries": state.hub.total_dropped,
    }
