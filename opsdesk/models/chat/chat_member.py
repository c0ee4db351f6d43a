# opsdesk/models/chat/chat_member.py
from sqlalchemy import Column, DateTime, ForeignKey, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship
from ..base import Base

class ChatMember(Base):
    __tablename__ = "chat_members"

    room_id = Column(Uuid(as_uuid=True), ForeignKey("chat_rooms.id"), nullable=False, index=True)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    # Read cursor; NULL means nothing read yet
    last_read_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    room = relationship("ChatRoom", back_populates="members")
    user = relationship("User")

    __table_args__ = (
        UniqueConstraint('room_id', 'user_id', name='uq_chat_member_room_user'),
    )
