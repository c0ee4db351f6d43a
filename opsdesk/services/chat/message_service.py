# opsdesk/services/chat/message_service.py
"""Idempotent message send and backward-paginated history."""
from datetime import datetime, timezone
from typing import Dict, List, Optional
from uuid import UUID, uuid4
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from ..base_service import BaseService
from .room_access import RoomAccessResolver
from ...core.config import settings
from ...core.database import upsert_insert, utcnow
from ...core.exceptions import ValidationError
from ...models.chat.chat_member import ChatMember
from ...models.chat.chat_message import ChatMessage
from ...models.chat.message_receipt import MessageReceipt, ReceiptStatus
from ...models.user import UserRole
from ...schemas.chat_schemas import MessageOut

logger = logging.getLogger(__name__)


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are taken to be UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def receipt_row(message_id: UUID, user_id: UUID, status: ReceiptStatus) -> Dict:
    now = utcnow()
    return {
        "id": uuid4(),
        "message_id": message_id,
        "user_id": user_id,
        "status": status,
        "created_at": now,
        "updated_at": now,
    }


def message_payload(message: ChatMessage) -> Dict:
    """JSON-ready message shape shared by the HTTP API and the live feed"""
    return MessageOut.model_validate(message).model_dump(mode="json")


class MessageService(BaseService[ChatMessage]):
    def __init__(self, db: AsyncSession):
        super().__init__(ChatMessage, db)
        self.access = RoomAccessResolver(db)

    def _message_query(self):
        return (
            select(ChatMessage)
            .options(selectinload(ChatMessage.sender), selectinload(ChatMessage.receipts))
            .execution_options(populate_existing=True)
        )

    async def get_message(self, message_id: UUID) -> Optional[ChatMessage]:
        result = await self.db.execute(self._message_query().where(ChatMessage.id == message_id))
        return result.scalar_one_or_none()

    async def get_by_client_msg_id(self, room_id: UUID, client_msg_id: str) -> Optional[ChatMessage]:
        stmt = self._message_query().where(
            ChatMessage.room_id == room_id,
            ChatMessage.client_msg_id == client_msg_id,
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    def _validate(self, text: Optional[str], client_msg_id: Optional[str]):
        if text is None or not text.strip():
            raise ValidationError("Message text is required", field="text")
        if len(text) > settings.chat_message_max_length:
            raise ValidationError(
                f"Message text exceeds {settings.chat_message_max_length} characters",
                field="text",
            )
        if client_msg_id is None or not client_msg_id.strip():
            raise ValidationError("client_msg_id is required", field="client_msg_id")

    async def send_message(
        self,
        room_id: UUID,
        sender_id: UUID,
        role: UserRole,
        text: str,
        client_msg_id: str,
    ) -> ChatMessage:
        """Persist a message once per (room, client_msg_id) and fan out receipts.

        A retry with the same token returns the stored message unchanged.
        """
        await self.access.require_access(room_id, sender_id, role)
        self._validate(text, client_msg_id)

        existing = await self.get_by_client_msg_id(room_id, client_msg_id)
        if existing is not None:
            logger.info(f"Idempotent replay of {client_msg_id} in room {room_id}")
            return existing

        message_id = uuid4()
        now = utcnow()
        stmt = upsert_insert(self.db, ChatMessage).values(
            id=message_id,
            room_id=room_id,
            sender_id=sender_id,
            text=text,
            client_msg_id=client_msg_id,
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_nothing(index_elements=["room_id", "client_msg_id"]).returning(ChatMessage.id)
        inserted = (await self.db.execute(stmt)).scalar_one_or_none()
        await self.db.commit()

        if inserted is None:
            # A concurrent send with the same token won the insert
            logger.info(f"Concurrent send of {client_msg_id} in room {room_id}; returning winner")
            return await self.get_by_client_msg_id(room_id, client_msg_id)

        await self._fan_out_receipts(message_id, room_id, sender_id)
        return await self.get_message(message_id)

    async def _fan_out_receipts(self, message_id: UUID, room_id: UUID, sender_id: UUID):
        """SENT receipt for every member and the sender; failures never undo the send"""
        try:
            member_ids = (
                await self.db.execute(select(ChatMember.user_id).where(ChatMember.room_id == room_id))
            ).scalars().all()
            recipients = set(member_ids)
            recipients.add(sender_id)

            rows = [receipt_row(message_id, user_id, ReceiptStatus.SENT) for user_id in recipients]
            stmt = upsert_insert(self.db, MessageReceipt).values(rows)
            await self.db.execute(stmt.on_conflict_do_nothing(index_elements=["message_id", "user_id"]))
            await self.db.commit()
        except Exception as e:
            logger.error(f"Receipt fan-out failed for message {message_id}: {e}")
            await self.db.rollback()

    async def list_messages(
        self,
        room_id: UUID,
        user_id: UUID,
        role: UserRole,
        before: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[ChatMessage]:
        """Newest page of messages older than ``before``, returned oldest first"""
        await self.access.require_access(room_id, user_id, role)

        limit = limit or settings.chat_page_size_default
        limit = max(1, min(limit, settings.chat_page_size_max))

        stmt = self._message_query().where(ChatMessage.room_id == room_id)
        if before is not None:
            stmt = stmt.where(ChatMessage.created_at < as_utc(before))
        stmt = stmt.order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc()).limit(limit)

        result = await self.db.execute(stmt)
        return list(reversed(result.scalars().all()))

    async def last_message(self, room_id: UUID) -> Optional[ChatMessage]:
        stmt = (
            select(ChatMessage)
            .options(selectinload(ChatMessage.sender))
            .where(ChatMessage.room_id == room_id)
            .order_by(ChatMessage.created_at.desc(), ChatMessage.id.desc())
            .limit(1)
        )
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()
