"""Room registry: the general room plus at most one room per championship."""

import logging
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from gridchat.config import settings
from gridchat.errors import NotFoundError, ValidationError
from gridchat.models.championship import Championship
from gridchat.models.chat_room import ChatRoom, RoomType
from gridchat.schemas.chat import ChatRoomWithStats
from gridchat.services.message_store import MessageStore

logger = logging.getLogger(__name__)


class RoomRegistry:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, room_id: str) -> Optional[ChatRoom]:
        result = await self.db.execute(select(ChatRoom).where(ChatRoom.id == room_id))
        return result.scalar_one_or_none()

    async def require(self, room_id: str) -> ChatRoom:
        room = await self.get(room_id)
        if room is None:
            raise NotFoundError("Chat room not found")
        return room

    async def get_for_championship(self, championship_id: str) -> Optional[ChatRoom]:
        result = await self.db.execute(
            select(ChatRoom).where(ChatRoom.championship_id == championship_id)
        )
        return result.scalar_one_or_none()

    async def create_or_get(
        self,
        name: str,
        type: str = RoomType.GENERAL.value,
        championship_id: Optional[str] = None,
    ) -> ChatRoom:
        """Create an active room, or return the championship's existing one unchanged.

        The unique index on ``championship_id`` settles two interleaved
        creates: the loser's insert fails and it returns the winner's row.
        """
        if not name or not name.strip():
            raise ValidationError("Room name cannot be empty")

        if championship_id:
            existing = await self.get_for_championship(championship_id)
            if existing is not None:
                return existing
            championship = await self.db.get(Championship, championship_id)
            if championship is None:
                raise NotFoundError("Championship not found")

        room = ChatRoom(
            name=name.strip(),
            type=type,
            championship_id=championship_id,
            is_active=True,
        )
        self.db.add(room)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            if not championship_id:
                raise
            existing = await self.get_for_championship(championship_id)
            if existing is None:
                raise
            logger.info("Championship %s room created concurrently, reusing %s", championship_id, existing.id)
            return existing

        logger.info("Created chat room %s (%s)", room.id, room.name)
        return room

    async def list(self) -> List[ChatRoom]:
        """Active rooms in creation order."""
        result = await self.db.execute(
            select(ChatRoom)
            .where(ChatRoom.is_active.is_(True))
            .order_by(ChatRoom.created_at)
        )
        return list(result.scalars().all())

    async def list_with_stats(self, viewer_id: Optional[str] = None) -> List[ChatRoomWithStats]:
        """Active rooms, general first, each with its visible message count and latest message."""
        rooms = sorted(
            await self.list(),
            key=lambda r: r.type != RoomType.GENERAL.value,
        )
        store = MessageStore(self.db)

        stats = []
        for room in rooms:
            last = await store.list_recent(room.id, limit=1, viewer_id=viewer_id)
            item = ChatRoomWithStats.model_validate(room)
            item.message_count = await store.count_visible(room.id)
            item.last_message = last[0] if last else None
            stats.append(item)
        return stats

    async def ensure_general(self, name: str = settings.GENERAL_ROOM_NAME) -> ChatRoom:
        result = await self.db.execute(
            select(ChatRoom)
            .where(ChatRoom.type == RoomType.GENERAL.value)
            .order_by(ChatRoom.created_at)
            .limit(1)
        )
        room = result.scalar_one_or_none()
        if room is not None:
            return room
        return await self.create_or_get(name, RoomType.GENERAL.value)

    async def ensure_championship_room(self, championship: Championship) -> ChatRoom:
        return await self.create_or_get(
            f"{championship.name} Chat",
            RoomType.CHAMPIONSHIP.value,
            championship.id,
        )
