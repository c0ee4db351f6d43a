# opsdesk/services/chat/receipt_service.py
"""Read cursors, read receipts and unread counts.

Unread is always derived from the message log: messages in the room created
after the member's ``last_read_at`` (epoch when never read) and not sent by
the viewer. No running counter is stored.
"""
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional
from uuid import UUID
import logging

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from .message_service import receipt_row
from .room_access import RoomAccessResolver
from ...core.database import upsert_insert, utcnow
from ...models.chat.chat_member import ChatMember
from ...models.chat.chat_message import ChatMessage
from ...models.chat.message_receipt import MessageReceipt, ReceiptStatus
from ...models.user import UserRole

logger = logging.getLogger(__name__)

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
RECEIPT_BATCH_SIZE = 500


class ReceiptService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.access = RoomAccessResolver(db)

    async def mark_read(self, room_id: UUID, user_id: UUID, role: UserRole) -> datetime:
        """Move the read cursor to now and flip covered receipts to READ"""
        await self.access.require_access(room_id, user_id, role)

        now = utcnow()
        stmt = (
            update(ChatMember)
            .where(ChatMember.room_id == room_id, ChatMember.user_id == user_id)
            .values(last_read_at=now, updated_at=now)
        )
        await self.db.execute(stmt)
        await self.db.commit()

        await self._mark_receipts_read(room_id, user_id, now)
        return now

    async def _mark_receipts_read(self, room_id: UUID, user_id: UUID, up_to: datetime):
        """Best effort: the cursor above is authoritative for unread counts"""
        try:
            message_ids = (
                await self.db.execute(
                    select(ChatMessage.id).where(
                        ChatMessage.room_id == room_id,
                        ChatMessage.created_at <= up_to,
                    )
                )
            ).scalars().all()

            for start in range(0, len(message_ids), RECEIPT_BATCH_SIZE):
                batch = message_ids[start:start + RECEIPT_BATCH_SIZE]
                rows = [receipt_row(message_id, user_id, ReceiptStatus.READ) for message_id in batch]
                stmt = upsert_insert(self.db, MessageReceipt).values(rows)
                stmt = stmt.on_conflict_do_update(
                    index_elements=["message_id", "user_id"],
                    set_={"status": stmt.excluded.status, "updated_at": stmt.excluded.updated_at},
                )
                await self.db.execute(stmt)
            await self.db.commit()
        except Exception as e:
            logger.error(f"Marking receipts read failed for user {user_id} in room {room_id}: {e}")
            await self.db.rollback()

    async def last_read_at(self, room_id: UUID, user_id: UUID) -> Optional[datetime]:
        stmt = select(ChatMember.last_read_at).where(
            ChatMember.room_id == room_id,
            ChatMember.user_id == user_id,
        )
        return (await self.db.execute(stmt)).scalar_one_or_none()

    async def unread_count(self, room_id: UUID, user_id: UUID) -> int:
        cutoff = await self.last_read_at(room_id, user_id) or EPOCH
        stmt = select(func.count(ChatMessage.id)).where(
            ChatMessage.room_id == room_id,
            ChatMessage.created_at > cutoff,
            ChatMessage.sender_id != user_id,
        )
        return (await self.db.execute(stmt)).scalar_one()

    async def unread_counts(self, user_id: UUID, room_ids: Iterable[UUID]) -> Dict[UUID, int]:
        return {room_id: await self.unread_count(room_id, user_id) for room_id in room_ids}

    async def total_unread(self, user_id: UUID, room_ids: Optional[List[UUID]] = None) -> int:
        if room_ids is None:
            room_ids = await self.access.accessible_room_ids(user_id)
        counts = await self.unread_counts(user_id, room_ids)
        return sum(counts.values())
