from . import health
from .chat import chat_router, live_feed_router

__all__ = [
    "health",
    "chat_router",
    "live_feed_router",
]
