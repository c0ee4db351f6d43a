# opsdesk/schemas/chat_schemas.py
from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from ..models.chat.chat_room import RoomType
from ..models.chat.message_receipt import ReceiptStatus
from ..models.user import UserRole


class UserSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    email: str
    role: UserRole


class ReceiptOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    user_id: UUID
    status: ReceiptStatus


class MessageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    room_id: UUID
    sender_id: UUID
    text: str
    client_msg_id: str
    created_at: datetime
    sender: Optional[UserSummary] = None
    receipts: List[ReceiptOut] = []


class LastMessageOut(BaseModel):
    id: UUID
    text: str
    sender: Optional[UserSummary] = None
    created_at: datetime


class RoomSummary(BaseModel):
    id: UUID
    type: RoomType
    unread_count: int
    last_message: Optional[LastMessageOut] = None
    participants: List[UserSummary] = []


class RoomDetail(BaseModel):
    id: UUID
    type: RoomType
    members: List[UserSummary] = []


# Requests

class CreateRoomRequest(BaseModel):
    type: Literal["TEAM", "DIRECT"]
    target_user_id: Optional[UUID] = None


class SendMessageRequest(BaseModel):
    room_id: UUID
    text: str
    client_msg_id: str = Field(..., min_length=1, max_length=100)


class MarkReadRequest(BaseModel):
    room_id: UUID


class TypingRequest(BaseModel):
    room_id: UUID
    is_typing: bool = True


# Responses

class RoomListResponse(BaseModel):
    rooms: List[RoomSummary]


class RoomResponse(BaseModel):
    room: RoomDetail


class MessageResponse(BaseModel):
    message: MessageOut


class MessageListResponse(BaseModel):
    messages: List[MessageOut]


class MarkReadResponse(BaseModel):
    success: bool = True
    last_read_at: datetime


class UnreadResponse(BaseModel):
    room_id: Optional[UUID] = None
    unread_count: int


class TotalUnreadResponse(BaseModel):
    total_unread: int


class UserListResponse(BaseModel):
    users: List[UserSummary]


class OnlineUsersResponse(BaseModel):
    user_ids: List[UUID]
