# opsdesk/models/chat/message_receipt.py
import enum

from sqlalchemy import Column, Enum, ForeignKey, Uuid, UniqueConstraint
from sqlalchemy.orm import relationship
from ..base import Base


class ReceiptStatus(str, enum.Enum):
    SENT = "SENT"
    READ = "READ"


class MessageReceipt(Base):
    __tablename__ = "message_receipts"

    message_id = Column(Uuid(as_uuid=True), ForeignKey("chat_messages.id"), nullable=False, index=True)
    user_id = Column(Uuid(as_uuid=True), ForeignKey("users.id"), nullable=False, index=True)
    status = Column(Enum(ReceiptStatus, native_enum=False, length=10), nullable=False, default=ReceiptStatus.SENT)

    # Relationships
    message = relationship("ChatMessage", back_populates="receipts")

    __table_args__ = (
        UniqueConstraint('message_id', 'user_id', name='uq_message_receipt_message_user'),
    )
