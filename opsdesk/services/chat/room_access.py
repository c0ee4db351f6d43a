# opsdesk/services/chat/room_access.py
"""Room access control and lazy room/membership creation.

TEAM is a single global room every authenticated user may join. DIRECT rooms
hold exactly two members and stay usable only while at least one member is a
manager or super admin.

Room creation never relies on find-then-create alone: both topologies carry a
unique ``room_key`` and are inserted with ON CONFLICT DO NOTHING, so the loser
of a concurrent first access re-reads the winner's row.
"""
from dataclasses import dataclass
from typing import Dict, List, Optional
from uuid import UUID, uuid4
import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import aliased, selectinload

from ..base_service import BaseService
from .user_directory import UserDirectory
from ...core.database import upsert_insert, utcnow
from ...core.exceptions import ForbiddenError, NotFoundError, ValidationError
from ...models.chat.chat_member import ChatMember
from ...models.chat.chat_room import ChatRoom, RoomType, TEAM_ROOM_KEY, direct_room_key
from ...models.user import PRIVILEGED_ROLES, User, UserRole

logger = logging.getLogger(__name__)

ROOM_NOT_FOUND = "Room not found"
NOT_A_MEMBER = "Not a member of this room"
ACCESS_DENIED = "Access denied"


@dataclass
class RoomAccess:
    allowed: bool
    room: Optional[ChatRoom] = None
    reason: Optional[str] = None


def membership_row(room_id: UUID, user_id: UUID) -> Dict:
    now = utcnow()
    return {
        "id": uuid4(),
        "room_id": room_id,
        "user_id": user_id,
        "created_at": now,
        "updated_at": now,
    }


def has_privileged_member(room: ChatRoom) -> bool:
    return any(m.user is not None and m.user.role in PRIVILEGED_ROLES for m in room.members)


class RoomAccessResolver(BaseService[ChatRoom]):
    def __init__(self, db: AsyncSession):
        super().__init__(ChatRoom, db)

    def _room_query(self):
        return (
            select(ChatRoom)
            .options(selectinload(ChatRoom.members).selectinload(ChatMember.user))
            .execution_options(populate_existing=True)
        )

    async def load_room(self, room_id: UUID) -> Optional[ChatRoom]:
        result = await self.db.execute(self._room_query().where(ChatRoom.id == room_id))
        return result.scalar_one_or_none()

    async def _find_by_key(self, room_key: str) -> Optional[ChatRoom]:
        result = await self.db.execute(self._room_query().where(ChatRoom.room_key == room_key))
        return result.scalar_one_or_none()

    async def _ensure_membership(self, room_id: UUID, user_id: UUID):
        stmt = upsert_insert(self.db, ChatMember).values(**membership_row(room_id, user_id))
        await self.db.execute(stmt.on_conflict_do_nothing(index_elements=["room_id", "user_id"]))

    async def check_access(self, room_id: UUID, user_id: UUID, role: UserRole) -> RoomAccess:
        """Decide whether the user may read/write the room, auto-joining TEAM"""
        room = await self.load_room(room_id)
        if room is None:
            return RoomAccess(allowed=False, reason=ROOM_NOT_FOUND)

        is_member = any(m.user_id == user_id for m in room.members)

        if room.type == RoomType.TEAM:
            if is_member:
                return RoomAccess(allowed=True, room=room)
            await self._ensure_membership(room.id, user_id)
            await self.db.commit()
            logger.info(f"User {user_id} auto-joined team room {room.id}")
            return RoomAccess(allowed=True, room=await self.load_room(room.id))

        if not is_member:
            return RoomAccess(allowed=False, reason=NOT_A_MEMBER)
        if not has_privileged_member(room):
            return RoomAccess(allowed=False, reason=ACCESS_DENIED)
        return RoomAccess(allowed=True, room=room)

    async def require_access(self, room_id: UUID, user_id: UUID, role: UserRole) -> ChatRoom:
        access = await self.check_access(room_id, user_id, role)
        if not access.allowed:
            logger.info(f"Room access denied for user {user_id} on room {room_id}: {access.reason}")
            raise ForbiddenError(access.reason or "Forbidden")
        return access.room

    async def get_or_create_team_room(self, user_id: UUID) -> ChatRoom:
        """Find or create the single TEAM room and make sure the user is in it"""
        room = await self._find_by_key(TEAM_ROOM_KEY)
        if room is None:
            stmt = upsert_insert(self.db, ChatRoom).values(
                id=uuid4(),
                type=RoomType.TEAM,
                room_key=TEAM_ROOM_KEY,
                created_at=utcnow(),
                updated_at=utcnow(),
            )
            await self.db.execute(stmt.on_conflict_do_nothing(index_elements=["room_key"]))
            room = await self._find_by_key(TEAM_ROOM_KEY)
            logger.info(f"Team room ready: {room.id}")

        if not any(m.user_id == user_id for m in room.members):
            await self._ensure_membership(room.id, user_id)
            await self.db.commit()
            room = await self.load_room(room.id)
        return room

    async def find_direct_room(self, user_a: UUID, user_b: UUID) -> Optional[ChatRoom]:
        """DIRECT room both users belong to, looked up by membership intersection"""
        member_a = aliased(ChatMember)
        member_b = aliased(ChatMember)
        stmt = (
            select(ChatRoom.id)
            .join(member_a, member_a.room_id == ChatRoom.id)
            .join(member_b, member_b.room_id == ChatRoom.id)
            .where(
                ChatRoom.type == RoomType.DIRECT,
                member_a.user_id == user_a,
                member_b.user_id == user_b,
            )
            .limit(1)
        )
        room_id = (await self.db.execute(stmt)).scalar_one_or_none()
        if room_id is None:
            return None
        return await self.load_room(room_id)

    async def get_or_create_direct_room(
        self,
        creator_id: UUID,
        creator_role: UserRole,
        target_user_id: UUID,
    ) -> ChatRoom:
        if creator_role not in PRIVILEGED_ROLES:
            raise ForbiddenError("Only managers can start direct conversations")
        if creator_id == target_user_id:
            raise ValidationError("Cannot message yourself", field="target_user_id")

        target = await UserDirectory(self.db).get_user(target_user_id)
        if target is None or not target.is_active:
            raise NotFoundError("User not found")
        if creator_role == UserRole.MANAGER and target.role != UserRole.EMPLOYEE:
            raise ForbiddenError("Managers can only message employees")

        existing = await self.find_direct_room(creator_id, target_user_id)
        if existing is not None:
            return existing

        room_key = direct_room_key(creator_id, target_user_id)
        room_id = uuid4()
        stmt = upsert_insert(self.db, ChatRoom).values(
            id=room_id,
            type=RoomType.DIRECT,
            room_key=room_key,
            created_at=utcnow(),
            updated_at=utcnow(),
        )
        stmt = stmt.on_conflict_do_nothing(index_elements=["room_key"]).returning(ChatRoom.id)
        inserted = (await self.db.execute(stmt)).scalar_one_or_none()

        if inserted is not None:
            # Both memberships go in with the room, in the same transaction
            members = upsert_insert(self.db, ChatMember).values([
                membership_row(room_id, creator_id),
                membership_row(room_id, target_user_id),
            ])
            await self.db.execute(members.on_conflict_do_nothing(index_elements=["room_id", "user_id"]))
            logger.info(f"Created direct room {room_id} for {creator_id} and {target_user_id}")
        await self.db.commit()

        return await self._find_by_key(room_key)

    async def accessible_room_ids(self, user_id: UUID) -> List[UUID]:
        """TEAM room plus DIRECT rooms of the user that still have a privileged member"""
        await self.get_or_create_team_room(user_id)

        stmt = (
            select(ChatMember.room_id, ChatRoom.type)
            .join(ChatRoom, ChatRoom.id == ChatMember.room_id)
            .where(ChatMember.user_id == user_id)
        )
        rows = (await self.db.execute(stmt)).all()

        room_ids = [room_id for room_id, room_type in rows if room_type == RoomType.TEAM]
        direct_ids = [room_id for room_id, room_type in rows if room_type == RoomType.DIRECT]

        if direct_ids:
            privileged_stmt = (
                select(ChatMember.room_id)
                .join(User, User.id == ChatMember.user_id)
                .where(ChatMember.room_id.in_(direct_ids), User.role.in_(PRIVILEGED_ROLES))
                .distinct()
            )
            privileged = set((await self.db.execute(privileged_stmt)).scalars().all())
            room_ids.extend(room_id for room_id in direct_ids if room_id in privileged)

        return room_ids
