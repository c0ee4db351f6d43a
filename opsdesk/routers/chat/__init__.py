# opsdesk/routers/chat/__init__.py
from .chat_router import router as chat_router
from .live_feed_router import router as live_feed_router

__all__ = ["chat_router", "live_feed_router"]
