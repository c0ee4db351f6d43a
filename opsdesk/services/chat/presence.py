# opsdesk/services/chat/presence.py
from typing import Dict, List, Optional, TYPE_CHECKING
from uuid import UUID
import logging

if TYPE_CHECKING:
    from .live_feed import LiveFeedConnection

logger = logging.getLogger(__name__)

class PresenceHub:
    """In-process registry of open live feed connections.

    Presence is best effort: nothing is persisted or acknowledged, and a
    process that dies without closing its feeds never reports the users
    offline.
    """

    def __init__(self):
        # {connection_id: LiveFeedConnection}
        self.active_connections: Dict[str, "LiveFeedConnection"] = {}

    def connect(self, connection: "LiveFeedConnection"):
        """Register a connection; announce the user on their first connection"""
        first_connection = not self.is_user_online(connection.user_id)
        self.active_connections[connection.connection_id] = connection
        logger.info(f"User {connection.user_id} connected ({connection.connection_id})")

        if first_connection:
            self.broadcast({
                "type": "user_online",
                "user_id": str(connection.user_id),
            }, exclude_user=connection.user_id)

    def disconnect(self, connection: "LiveFeedConnection"):
        """Drop a connection; announce the user offline when none remain"""
        if self.active_connections.pop(connection.connection_id, None) is None:
            return
        logger.info(f"User {connection.user_id} disconnected ({connection.connection_id})")

        if not self.is_user_online(connection.user_id):
            self.broadcast({
                "type": "user_offline",
                "user_id": str(connection.user_id),
            }, exclude_user=connection.user_id)

    def broadcast(self, event: dict, exclude_user: Optional[UUID] = None):
        for connection in list(self.active_connections.values()):
            if connection.user_id == exclude_user:
                continue
            connection.deliver(event)

    def broadcast_to_room(self, event: dict, room_id: UUID, exclude_user: Optional[UUID] = None) -> int:
        """Send an ephemeral event to every connection watching the room"""
        sent_count = 0
        for connection in list(self.active_connections.values()):
            if connection.user_id == exclude_user or not connection.watches(room_id):
                continue
            connection.deliver(event)
            sent_count += 1
        return sent_count

    def nudge_room(self, room_id: UUID, exclude_user: Optional[UUID] = None):
        """Wake local feeds watching the room so they poll before their next tick"""
        for connection in list(self.active_connections.values()):
            if connection.user_id == exclude_user or not connection.watches(room_id):
                continue
            connection.nudge()

    def online_user_ids(self, exclude_user: Optional[UUID] = None) -> List[UUID]:
        user_ids = {c.user_id for c in self.active_connections.values()}
        user_ids.discard(exclude_user)
        return sorted(user_ids, key=str)

    def is_user_online(self, user_id: UUID) -> bool:
        return any(c.user_id == user_id for c in self.active_connections.values())

# Global presence hub instance
presence_hub = PresenceHub()
