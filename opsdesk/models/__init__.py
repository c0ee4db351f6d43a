# opsdesk/models/__init__.py
"""Import all models here, if needed for Alembic migration."""
from .base import Base
from .user import User, UserRole
from .chat import ChatRoom, RoomType, ChatMember, ChatMessage, MessageReceipt, ReceiptStatus

# This ensures all models are loaded when importing models
