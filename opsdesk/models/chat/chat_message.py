# opsdesk/models/chat/chat_message.py
from sqlalchemy import Column, String, Text, ForeignKey, Index, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship
from ..base import Base

class ChatMessage(Base):
    __tablename__ = "chat_messages"

    room_id = Column(Uuid(as_uuid=True), ForeignKey("chat_rooms.id"), nullable=False, index=True)
    sender_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    text = Column(Text, nullable=False)
    # Idempotency token supplied by the client
    client_msg_id = Column(String(100), nullable=False)

    # Relationships
    room = relationship("ChatRoom", back_populates="messages")
    sender = relationship("User")
    receipts = relationship("MessageReceipt", back_populates="message", cascade="all, delete-orphan")

    __table_args__ = (
        UniqueConstraint('room_id', 'client_msg_id', name='uq_chat_message_room_client_msg'),
        Index('idx_chat_message_room_time', 'room_id', 'created_at'),
    )
