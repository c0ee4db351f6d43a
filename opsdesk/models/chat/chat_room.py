# opsdesk/models/chat/chat_room.py
import enum

from sqlalchemy import Column, Enum, String
from sqlalchemy.orm import relationship
from ..base import Base


class RoomType(str, enum.Enum):
    TEAM = "TEAM"
    DIRECT = "DIRECT"


TEAM_ROOM_KEY = "TEAM"


def direct_room_key(user_a, user_b) -> str:
    """Canonical key for the unordered pair, so one DIRECT room per pair"""
    lo, hi = sorted((str(user_a), str(user_b)))
    return f"DIRECT:{lo}:{hi}"


class ChatRoom(Base):
    __tablename__ = "chat_rooms"

    type = Column(Enum(RoomType, native_enum=False, length=10), nullable=False, index=True)
    # Unique per topology: the single TEAM room, or one DIRECT room per pair
    room_key = Column(String(100), nullable=False, unique=True)

    # Relationships
    members = relationship("ChatMember", back_populates="room", cascade="all, delete-orphan")
    messages = relationship("ChatMessage", back_populates="room", cascade="all, delete-orphan")
