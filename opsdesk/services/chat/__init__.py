# opsdesk/services/chat/__init__.py
from .room_access import RoomAccess, RoomAccessResolver
from .message_service import MessageService
from .receipt_service import ReceiptService
from .chat_service import ChatService
from .user_directory import UserDirectory
from .presence import PresenceHub, presence_hub
from .live_feed import FeedState, LiveFeedConnection

__all__ = [
    "RoomAccess",
    "RoomAccessResolver",
    "MessageService",
    "ReceiptService",
    "ChatService",
    "UserDirectory",
    "PresenceHub",
    "presence_hub",
    "FeedState",
    "LiveFeedConnection",
]
