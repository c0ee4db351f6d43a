# opsdesk/routers/chat/chat_router.py
from datetime import datetime
from typing import Optional
from uuid import UUID
import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from ...core.config import settings
from ...core.database import get_db
from ...core.exceptions import OpsDeskException
from ...core.rate_limiter import rate_limiter
from ...core.security import ChatSession, get_current_session
from ...schemas.chat_schemas import (
    CreateRoomRequest,
    MarkReadRequest,
    MarkReadResponse,
    MessageListResponse,
    MessageResponse,
    OnlineUsersResponse,
    RoomListResponse,
    RoomResponse,
    SendMessageRequest,
    TotalUnreadResponse,
    TypingRequest,
    UnreadResponse,
    UserListResponse,
)
from ...services.chat.chat_service import ChatService, room_detail
from ...services.chat.message_service import MessageService, message_payload
from ...services.chat.presence import presence_hub
from ...services.chat.receipt_service import ReceiptService
from ...services.chat.room_access import RoomAccessResolver
from ...services.chat.user_directory import UserDirectory

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/chat", tags=["Chat"])


def _internal_error(action: str, e: Exception) -> HTTPException:
    logger.error(f"Chat {action} error: {e}")
    return HTTPException(status_code=500, detail="Internal server error")


async def send_rate_limit(session: ChatSession = Depends(get_current_session)):
    rate_limiter.check_rate_limit(
        f"chat-send:{session.user_id}",
        max_requests=settings.chat_send_rate_limit_per_minute,
    )


@router.get("/rooms", response_model=RoomListResponse)
async def list_rooms(
    session: ChatSession = Depends(get_current_session),
    db: AsyncSession = Depends(get_db)
):
    """Rooms for the current user with last message and unread count"""
    service = ChatService(db)

    try:
        rooms = await service.list_rooms(session.user_id)
        return {"rooms": rooms}
    except OpsDeskException:
        raise
    except Exception as e:
        raise _internal_error("rooms list", e)


@router.post("/rooms", response_model=RoomResponse)
async def create_or_get_room(
    request: CreateRoomRequest,
    session: ChatSession = Depends(get_current_session),
    db: AsyncSession = Depends(get_db)
):
    """Create or get the TEAM room, or a DIRECT room with target_user_id"""
    service = ChatService(db)

    try:
        room = await service.create_or_get_room(
            room_type=request.type,
            user_id=session.user_id,
            role=session.role,
            target_user_id=request.target_user_id,
        )
        return {"room": room_detail(room)}
    except OpsDeskException:
        raise
    except Exception as e:
        raise _internal_error("rooms create", e)


@router.get("/rooms/{room_id}/messages", response_model=MessageListResponse)
async def list_room_messages(
    room_id: UUID,
    limit: Optional[int] = Query(None, ge=1),
    before: Optional[datetime] = Query(None),
    session: ChatSession = Depends(get_current_session),
    db: AsyncSession = Depends(get_db)
):
    """Last N messages (default 50, max 100), optionally older than `before`"""
    service = MessageService(db)

    try:
        messages = await service.list_messages(
            room_id=room_id,
            user_id=session.user_id,
            role=session.role,
            before=before,
            limit=limit,
        )
        return {"messages": [message_payload(m) for m in messages]}
    except OpsDeskException:
        raise
    except Exception as e:
        raise _internal_error("room messages", e)


@router.get("/rooms/{room_id}/unread", response_model=UnreadResponse)
async def room_unread_count(
    room_id: UUID,
    session: ChatSession = Depends(get_current_session),
    db: AsyncSession = Depends(get_db)
):
    service = ReceiptService(db)

    try:
        await service.access.require_access(room_id, session.user_id, session.role)
        count = await service.unread_count(room_id, session.user_id)
        return {"room_id": room_id, "unread_count": count}
    except OpsDeskException:
        raise
    except Exception as e:
        raise _internal_error("room unread", e)


@router.get("/unread", response_model=TotalUnreadResponse)
async def total_unread(
    session: ChatSession = Depends(get_current_session),
    db: AsyncSession = Depends(get_db)
):
    """Total unread across every room the user can access"""
    service = ReceiptService(db)

    try:
        total = await service.total_unread(session.user_id)
        return {"total_unread": total}
    except OpsDeskException:
        raise
    except Exception as e:
        raise _internal_error("unread", e)


@router.post("/send", response_model=MessageResponse, dependencies=[Depends(send_rate_limit)])
async def send_message(
    request: SendMessageRequest,
    session: ChatSession = Depends(get_current_session),
    db: AsyncSession = Depends(get_db)
):
    """Idempotent send: a repeated client_msg_id returns the stored message"""
    service = MessageService(db)

    try:
        message = await service.send_message(
            room_id=request.room_id,
            sender_id=session.user_id,
            role=session.role,
            text=request.text,
            client_msg_id=request.client_msg_id,
        )
    except OpsDeskException:
        raise
    except Exception as e:
        raise _internal_error("send", e)

    presence_hub.nudge_room(request.room_id, exclude_user=session.user_id)
    return {"message": message_payload(message)}


@router.post("/read-receipts", response_model=MarkReadResponse)
async def mark_room_read(
    request: MarkReadRequest,
    session: ChatSession = Depends(get_current_session),
    db: AsyncSession = Depends(get_db)
):
    """Move the read cursor for the room to now"""
    service = ReceiptService(db)

    try:
        last_read_at = await service.mark_read(request.room_id, session.user_id, session.role)
        return {"success": True, "last_read_at": last_read_at}
    except OpsDeskException:
        raise
    except Exception as e:
        raise _internal_error("read-receipts", e)


@router.get("/users", response_model=UserListResponse)
async def list_direct_targets(
    session: ChatSession = Depends(get_current_session),
    db: AsyncSession = Depends(get_db)
):
    """Users the caller may start a direct conversation with"""
    directory = UserDirectory(db)

    try:
        users = await directory.list_direct_targets(session.user_id, session.role)
        return {"users": users}
    except OpsDeskException:
        raise
    except Exception as e:
        raise _internal_error("users", e)


@router.get("/online", response_model=OnlineUsersResponse)
async def online_users(session: ChatSession = Depends(get_current_session)):
    return {"user_ids": presence_hub.online_user_ids(exclude_user=session.user_id)}


@router.post("/typing", status_code=202)
async def typing_indicator(
    request: TypingRequest,
    session: ChatSession = Depends(get_current_session),
    db: AsyncSession = Depends(get_db)
):
    """Fan a typing indicator out to other open feeds on the room"""
    try:
        await RoomAccessResolver(db).require_access(request.room_id, session.user_id, session.role)
    except OpsDeskException:
        raise
    except Exception as e:
        raise _internal_error("typing", e)

    delivered = presence_hub.broadcast_to_room({
        "type": "typing",
        "room_id": str(request.room_id),
        "user_id": str(session.user_id),
        "is_typing": request.is_typing,
    }, request.room_id, exclude_user=session.user_id)
    return {"delivered": delivered}
