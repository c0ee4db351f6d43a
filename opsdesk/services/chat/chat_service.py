# opsdesk/services/chat/chat_service.py
from typing import Dict, List, Optional
from uuid import UUID
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..base_service import BaseService
from .message_service import MessageService, as_utc
from .receipt_service import ReceiptService
from .room_access import RoomAccessResolver
from .user_directory import user_summary
from ...core.exceptions import ValidationError
from ...models.chat.chat_member import ChatMember
from ...models.chat.chat_room import ChatRoom, RoomType
from ...models.user import UserRole

logger = logging.getLogger(__name__)


def room_detail(room: ChatRoom) -> Dict:
    return {
        "id": room.id,
        "type": room.type,
        "members": [user_summary(m.user) for m in room.members if m.user is not None],
    }


class ChatService(BaseService[ChatRoom]):
    """Room-level views for the current user"""

    def __init__(self, db: AsyncSession):
        super().__init__(ChatRoom, db)
        self.access = RoomAccessResolver(db)
        self.messages = MessageService(db)
        self.receipts = ReceiptService(db)

    async def create_or_get_room(
        self,
        room_type: str,
        user_id: UUID,
        role: UserRole,
        target_user_id: Optional[UUID] = None,
    ) -> ChatRoom:
        if room_type == RoomType.TEAM.value:
            return await self.access.get_or_create_team_room(user_id)

        if room_type == RoomType.DIRECT.value:
            if target_user_id is None:
                raise ValidationError("target_user_id is required for DIRECT room", field="target_user_id")
            return await self.access.get_or_create_direct_room(user_id, role, target_user_id)

        raise ValidationError("Invalid room type", field="type")

    async def list_rooms(self, user_id: UUID) -> List[Dict]:
        """Accessible rooms with last message, unread count and DIRECT participants"""
        room_ids = await self.access.accessible_room_ids(user_id)
        if not room_ids:
            return []

        stmt = (
            select(ChatRoom)
            .options(selectinload(ChatRoom.members).selectinload(ChatMember.user))
            .where(ChatRoom.id.in_(room_ids))
            .execution_options(populate_existing=True)
        )
        rooms = (await self.db.execute(stmt)).scalars().all()

        summaries = []
        for room in rooms:
            last = await self.messages.last_message(room.id)
            unread = await self.receipts.unread_count(room.id, user_id) if last else 0
            participants = []
            if room.type == RoomType.DIRECT:
                participants = [
                    user_summary(m.user) for m in room.members
                    if m.user_id != user_id and m.user is not None
                ]
            summaries.append({
                "id": room.id,
                "type": room.type,
                "unread_count": unread,
                "last_message": {
                    "id": last.id,
                    "text": last.text,
                    "sender": user_summary(last.sender) if last.sender else None,
                    "created_at": last.created_at,
                } if last else None,
                "participants": participants,
                "_activity": as_utc(last.created_at if last else room.created_at),
            })

        # TEAM first, then DIRECT rooms by most recent activity
        summaries.sort(key=lambda r: r["_activity"], reverse=True)
        summaries.sort(key=lambda r: r["type"] != RoomType.TEAM)
        for summary in summaries:
            summary.pop("_activity")
        return summaries
