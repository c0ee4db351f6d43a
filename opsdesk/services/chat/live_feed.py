# opsdesk/services/chat/live_feed.py
"""Live feed: server push simulated by per-connection database polling.

Every open connection runs its own loop. Each tick looks for messages created
after the connection's watermark (minus a small overlap for commit skew),
skips the viewer's own messages and anything already delivered, and emits
them oldest first. A message is only emitted once it is older than the
overlap, so later commits cannot slip in ahead of it. Ticks run
sequentially inside the loop, so a slow query delays the next tick instead
of stacking up behind it.

Connection lifecycle: CONNECTING -> OPEN -> CLOSING -> CLOSED.
"""
from collections import deque
from datetime import datetime, timedelta
from typing import AsyncIterator, Deque, Dict, List, Optional, Set
from uuid import UUID, uuid4
import asyncio
import enum
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import selectinload

from .message_service import as_utc, message_payload
from .presence import PresenceHub, presence_hub
from .receipt_service import ReceiptService
from .room_access import RoomAccessResolver
from ...core.config import settings
from ...core.database import get_session_factory, utcnow
from ...models.chat.chat_message import ChatMessage
from ...models.user import UserRole

logger = logging.getLogger(__name__)

PENDING_EVENT_LIMIT = 100
SEEN_MESSAGE_LIMIT = 1000
# Messages sent while the client was still connecting are picked up too
CONNECT_LOOKBACK = timedelta(seconds=2)


class FeedState(str, enum.Enum):
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSING = "closing"
    CLOSED = "closed"


class LiveFeedConnection:
    def __init__(
        self,
        user_id: UUID,
        role: UserRole,
        room_id: Optional[UUID] = None,
        *,
        session_factory: Optional[async_sessionmaker] = None,
        hub: Optional[PresenceHub] = None,
        poll_interval: Optional[float] = None,
        overlap: Optional[float] = None,
        max_lifetime: Optional[float] = None,
    ):
        self.connection_id = uuid4().hex
        self.user_id = user_id
        self.role = role
        self.room_id = room_id
        self.session_factory = session_factory or get_session_factory()
        self.hub = hub if hub is not None else presence_hub
        self.poll_interval = poll_interval if poll_interval is not None else settings.chat_poll_interval_seconds
        self.overlap = timedelta(
            seconds=overlap if overlap is not None else settings.chat_poll_overlap_seconds
        )
        self.max_lifetime = max_lifetime if max_lifetime is not None else settings.chat_stream_max_lifetime_seconds

        self.state = FeedState.CONNECTING
        self.room_ids: Set[UUID] = set()
        self.watermark: Optional[datetime] = None
        self.last_unread_total = 0

        self._connected_event: Optional[Dict] = None
        self._deadline: Optional[float] = None
        self._wake = asyncio.Event()
        self._nudged = False
        self._pending: Deque[Dict] = deque(maxlen=PENDING_EVENT_LIMIT)
        self._seen_order: Deque[UUID] = deque()
        self._seen: Set[UUID] = set()
        self._last_emitted: Dict[UUID, datetime] = {}

    # Lifecycle

    async def open(self) -> Dict:
        """Verify access once and register with the hub.

        Raises ForbiddenError before anything is streamed when the room is off
        limits, so the caller can answer with a plain 403.
        """
        if self.state is not FeedState.CONNECTING:
            raise RuntimeError(f"Cannot open a feed in state {self.state.value}")

        async with self.session_factory() as db:
            resolver = RoomAccessResolver(db)
            if self.room_id is not None:
                await resolver.require_access(self.room_id, self.user_id, self.role)
                self.room_ids = {self.room_id}
            else:
                self.room_ids = set(await resolver.accessible_room_ids(self.user_id))

        self.watermark = utcnow() - CONNECT_LOOKBACK
        self._deadline = asyncio.get_running_loop().time() + self.max_lifetime
        self.state = FeedState.OPEN
        self.hub.connect(self)

        self._connected_event = {
            "type": "connected",
            "user_id": str(self.user_id),
            "room_id": str(self.room_id) if self.room_id else None,
            "online_users": [str(u) for u in self.hub.online_user_ids(exclude_user=self.user_id)],
        }
        logger.info(f"Live feed {self.connection_id} open for user {self.user_id} (room {self.room_id or 'all'})")
        return self._connected_event

    def close(self):
        """Stop the loop and unregister; safe to call any number of times"""
        if self.state in (FeedState.CLOSING, FeedState.CLOSED):
            return
        was_open = self.state is FeedState.OPEN
        self.state = FeedState.CLOSING
        if was_open:
            self.hub.disconnect(self)
        self.state = FeedState.CLOSED
        self._wake.set()
        logger.info(f"Live feed {self.connection_id} closed for user {self.user_id}")

    @property
    def is_open(self) -> bool:
        return self.state is FeedState.OPEN

    # Hub callbacks

    def watches(self, room_id: UUID) -> bool:
        return room_id in self.room_ids

    def deliver(self, event: Dict):
        """Queue an ephemeral event (presence, typing) for the next wake-up"""
        if not self.is_open:
            return
        self._pending.append(event)
        self._wake.set()

    def nudge(self):
        if not self.is_open:
            return
        self._nudged = True
        self._wake.set()

    # Polling

    def _remember(self, message_id: UUID) -> bool:
        """Record a delivered id; False when it was already delivered"""
        if message_id in self._seen:
            return False
        self._seen.add(message_id)
        self._seen_order.append(message_id)
        if len(self._seen_order) > SEEN_MESSAGE_LIMIT:
            self._seen.discard(self._seen_order.popleft())
        return True

    def _in_room_order(self, message: ChatMessage) -> bool:
        """False for a straggler older than something already emitted in its room"""
        created_at = as_utc(message.created_at)
        last = self._last_emitted.get(message.room_id)
        if last is not None and created_at < last:
            logger.warning(
                f"Live feed {self.connection_id} skipped late message {message.id} "
                f"in room {message.room_id}; it remains in the room history"
            )
            return False
        self._last_emitted[message.room_id] = created_at
        return True

    async def _collect(self, db: AsyncSession, cutoff: datetime) -> List[Dict]:
        """New messages stamped in (watermark - overlap, cutoff], oldest first.

        Messages newer than the cutoff are still inside the skew window and
        wait for a later tick, so a late commit with an older stamp is
        emitted before anything stamped after it.
        """
        if self.room_id is None:
            # DIRECT rooms can appear while the feed is open
            self.room_ids = set(await RoomAccessResolver(db).accessible_room_ids(self.user_id))
        if not self.room_ids:
            return []

        check_from = self.watermark - self.overlap
        stmt = (
            select(ChatMessage)
            .options(selectinload(ChatMessage.sender), selectinload(ChatMessage.receipts))
            .where(
                ChatMessage.room_id.in_(self.room_ids),
                ChatMessage.sender_id != self.user_id,
                ChatMessage.created_at > check_from,
                ChatMessage.created_at <= cutoff,
            )
            .order_by(ChatMessage.created_at.asc(), ChatMessage.id.asc())
        )
        messages = (await db.execute(stmt)).scalars().all()

        events = [
            {"type": "new_message", "message": message_payload(message)}
            for message in messages
            if self._remember(message.id) and self._in_room_order(message)
        ]

        total_unread = await ReceiptService(db).total_unread(self.user_id, list(self.room_ids))
        if total_unread != self.last_unread_total:
            self.last_unread_total = total_unread
            events.append({"type": "unread_update", "total_unread": total_unread})
        return events

    async def poll_once(self) -> List[Dict]:
        """One tick. Never raises: a failed tick is a tick with no new data."""
        if not self.is_open:
            return []

        cutoff = utcnow() - self.overlap
        try:
            async with self.session_factory() as db:
                events = await self._collect(db, cutoff)
        except Exception as e:
            logger.error(f"Live feed poll failed for {self.connection_id}: {e}")
            return []

        if not self.is_open:
            # Closed mid-tick: the query finished but nothing goes out
            return []
        # Only advance after a successful tick so a failed one is retried
        if cutoff > self.watermark:
            self.watermark = cutoff
        return events

    async def events(self) -> AsyncIterator[Dict]:
        """Yield the connected event, then ephemeral and polled events until closed"""
        if self.state is FeedState.CONNECTING:
            await self.open()

        loop = asyncio.get_running_loop()
        try:
            if self._connected_event is not None and self.is_open:
                yield self._connected_event

            next_tick = loop.time() + self.poll_interval
            while self.is_open:
                now = loop.time()
                if now >= self._deadline:
                    logger.info(f"Live feed {self.connection_id} reached its maximum lifetime")
                    break

                timeout = min(next_tick, self._deadline) - now
                if timeout > 0 and not self._wake.is_set():
                    try:
                        await asyncio.wait_for(self._wake.wait(), timeout)
                    except asyncio.TimeoutError:
                        pass
                self._wake.clear()
                if not self.is_open:
                    break

                while self._pending and self.is_open:
                    yield self._pending.popleft()

                if self.is_open and (self._nudged or loop.time() >= next_tick):
                    self._nudged = False
                    for event in await self.poll_once():
                        if not self.is_open:
                            break
                        yield event
                    next_tick = loop.time() + self.poll_interval
        finally:
            self.close()
