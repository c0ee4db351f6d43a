# opsdesk/models/chat/__init__.py
from .chat_room import ChatRoom, RoomType
from .chat_member import ChatMember
from .chat_message import ChatMessage
from .message_receipt import MessageReceipt, ReceiptStatus

__all__ = ["ChatRoom", "RoomType", "ChatMember", "ChatMessage", "MessageReceipt", "ReceiptStatus"]
