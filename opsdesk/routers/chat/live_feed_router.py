# opsdesk/routers/chat/live_feed_router.py
from typing import Optional
from uuid import UUID
import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import async_sessionmaker
from sse_starlette.sse import EventSourceResponse
from starlette.background import BackgroundTask

from ...core.database import get_session_factory
from ...core.exceptions import OpsDeskException
from ...core.security import ChatSession, get_current_session
from ...services.chat.live_feed import LiveFeedConnection

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/chat", tags=["Chat Live Feed"])

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "X-Accel-Buffering": "no",
    "Connection": "keep-alive",
}


@router.get("/stream")
async def stream_chat_events(
    room_id: Optional[UUID] = Query(None),
    session: ChatSession = Depends(get_current_session),
    session_factory: async_sessionmaker = Depends(get_session_factory),
):
    """Server-sent events for one room, or for every accessible room.

    Emits `connected`, then `new_message`, `unread_update`, `user_online`,
    `user_offline` and `typing` events until the client disconnects or the
    connection reaches its maximum lifetime.
    """
    connection = LiveFeedConnection(
        user_id=session.user_id,
        role=session.role,
        room_id=room_id,
        session_factory=session_factory,
    )

    try:
        await connection.open()
    except OpsDeskException:
        raise
    except Exception as e:
        logger.error(f"Live feed open failed for user {session.user_id}: {e}")
        raise HTTPException(status_code=500, detail="Internal server error")

    async def event_generator():
        async for event in connection.events():
            yield {"event": event["type"], "data": json.dumps(event, default=str)}

    async def release():
        # Covers responses that end before the generator ever ran
        connection.close()

    return EventSourceResponse(
        event_generator(),
        headers=SSE_HEADERS,
        ping=15,
        background=BackgroundTask(release),
    )
