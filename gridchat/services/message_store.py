"""
Message store: durable, append-only chat log with soft-delete, pin and like
annotations.

Every mutating call commits before it returns, so a caller that publishes
after awaiting it never announces a row other sessions cannot read yet.
"""

import logging
from typing import Dict, List, Optional, Sequence, Set

from sqlalchemy import delete, desc, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from gridchat.config import settings
from gridchat.database import new_id, utcnow
from gridchat.errors import NotFoundError, ValidationError
from gridchat.models.chat_message import ChatMessage
from gridchat.models.chat_room import ChatRoom
from gridchat.models.member import Member
from gridchat.models.message_like import MessageLike
from gridchat.schemas.chat import ChatMessageWithMember
from gridchat.services.mentions import record_mentions

logger = logging.getLogger(__name__)


def clamp_limit(limit: Optional[int]) -> int:
    """Page size within ``[1, HISTORY_MAX_PAGE_SIZE]``; ``None`` means the default."""
    if limit is None:
        return settings.HISTORY_PAGE_SIZE
    return max(1, min(limit, settings.HISTORY_MAX_PAGE_SIZE))


class MessageStore:
    def __init__(self, db: AsyncSession, max_length: int = settings.MESSAGE_MAX_LENGTH):
        self.db = db
        self.max_length = max_length

    # ── Lookups ──

    async def get(self, message_id: str, include_deleted: bool = False) -> Optional[ChatMessage]:
        stmt = select(ChatMessage).where(ChatMessage.id == message_id)
        if not include_deleted:
            stmt = stmt.where(ChatMessage.is_deleted.is_(False))
        result = await self.db.execute(stmt)
        return result.scalar_one_or_none()

    async def require(self, message_id: str) -> ChatMessage:
        """Like :meth:`get` but raises ``NotFoundError`` for missing or deleted messages."""
        message = await self.get(message_id)
        if message is None:
            raise NotFoundError("Message not found")
        return message

    async def _require_room(self, room_id: str) -> ChatRoom:
        result = await self.db.execute(select(ChatRoom).where(ChatRoom.id == room_id))
        room = result.scalar_one_or_none()
        if room is None:
            raise NotFoundError("Chat room not found")
        return room

    async def _require_member(self, member_id: str) -> Member:
        result = await self.db.execute(select(Member).where(Member.id == member_id))
        member = result.scalar_one_or_none()
        if member is None:
            raise NotFoundError("Member not found")
        return member

    # ── Append ──

    def validate_body(self, body: Optional[str]) -> str:
        text = (body or "").strip()
        if not text:
            raise ValidationError("Message cannot be empty")
        if len(text) > self.max_length:
            raise ValidationError(
                f"Message cannot be longer than {self.max_length} characters"
            )
        return text

    async def append(
        self,
        room_id: str,
        author_id: str,
        body: str,
        reply_to: Optional[str] = None,
    ) -> ChatMessage:
        """Validate, persist and commit a new message.

        Mention notifications are written in the same transaction, so a
        committed message always has its notifications and a failed one has
        neither. The returned row has its ``member`` loaded, which is all a
        ``new-message`` payload needs, so callers can publish without another
        database round-trip.
        """
        text = self.validate_body(body)
        await self._require_room(room_id)
        author = await self._require_member(author_id)

        if reply_to:
            parent = await self.get(reply_to, include_deleted=True)
            if parent is None or parent.chat_room_id != room_id:
                raise NotFoundError("Reply target not found in this room")

        message = ChatMessage(
            id=new_id(),
            chat_room_id=room_id,
            member_id=author.id,
            message=text,
            reply_to_message_id=reply_to,
            created_at=utcnow(),
        )
        message.member = author
        self.db.add(message)
        await record_mentions(self.db, message)
        await self.db.commit()

        logger.debug("Appended message %s to room %s", message.id, room_id)
        return message

    # ── Reads ──

    async def list_recent(
        self,
        room_id: str,
        limit: Optional[int] = None,
        viewer_id: Optional[str] = None,
    ) -> List[ChatMessageWithMember]:
        """Newest ``limit`` visible messages of a room, returned oldest-first."""
        await self._require_room(room_id)

        result = await self.db.execute(
            select(ChatMessage)
            .options(selectinload(ChatMessage.member))
            .where(
                ChatMessage.chat_room_id == room_id,
                ChatMessage.is_deleted.is_(False),
            )
            .order_by(desc(ChatMessage.created_at))
            .limit(clamp_limit(limit))
        )
        messages = list(result.scalars().all())
        messages.reverse()  # chronological order for display
        return await self.annotate(messages, viewer_id)

    async def list_pinned(
        self, room_id: str, viewer_id: Optional[str] = None
    ) -> List[ChatMessageWithMember]:
        await self._require_room(room_id)

        result = await self.db.execute(
            select(ChatMessage)
            .options(selectinload(ChatMessage.member))
            .where(
                ChatMessage.chat_room_id == room_id,
                ChatMessage.is_pinned.is_(True),
                ChatMessage.is_deleted.is_(False),
            )
            .order_by(ChatMessage.pinned_at)
        )
        return await self.annotate(list(result.scalars().all()), viewer_id)

    async def get_with_member(
        self, message_id: str, viewer_id: Optional[str] = None
    ) -> Optional[ChatMessageWithMember]:
        result = await self.db.execute(
            select(ChatMessage)
            .options(selectinload(ChatMessage.member))
            .where(ChatMessage.id == message_id, ChatMessage.is_deleted.is_(False))
        )
        message = result.scalar_one_or_none()
        if message is None:
            return None
        annotated = await self.annotate([message], viewer_id)
        return annotated[0]

    async def count_visible(self, room_id: str) -> int:
        result = await self.db.execute(
            select(func.count(ChatMessage.id)).where(
                ChatMessage.chat_room_id == room_id,
                ChatMessage.is_deleted.is_(False),
            )
        )
        return result.scalar() or 0

    async def annotate(
        self, messages: Sequence[ChatMessage], viewer_id: Optional[str] = None
    ) -> List[ChatMessageWithMember]:
        """Attach like counts and the viewer's own like flag in two queries."""
        if not messages:
            return []
        ids = [m.id for m in messages]

        count_rows = await self.db.execute(
            select(MessageLike.message_id, func.count(MessageLike.id))
            .where(MessageLike.message_id.in_(ids))
            .group_by(MessageLike.message_id)
        )
        counts: Dict[str, int] = {row[0]: row[1] for row in count_rows.all()}

        liked: Set[str] = set()
        if viewer_id:
            liked_rows = await self.db.execute(
                select(MessageLike.message_id).where(
                    MessageLike.message_id.in_(ids),
                    MessageLike.member_id == viewer_id,
                )
            )
            liked = set(liked_rows.scalars().all())

        annotated = []
        for m in messages:
            item = ChatMessageWithMember.model_validate(m)
            item.like_count = counts.get(m.id, 0)
            item.is_liked_by_current_user = m.id in liked
            annotated.append(item)
        return annotated

    # ── Soft delete ──

    async def soft_delete(
        self, message_id: str, deleted_by: str, room_id: Optional[str] = None
    ) -> bool:
        """Hide a message from standard reads. Repeating the call is a no-op."""
        message = await self.get(message_id, include_deleted=True)
        if message is None or (room_id is not None and message.chat_room_id != room_id):
            return False
        if message.is_deleted:
            return True

        message.is_deleted = True
        message.deleted_by = deleted_by
        message.deleted_at = utcnow()
        await self.db.commit()
        logger.info("Message %s deleted by %s", message_id, deleted_by)
        return True

    # ── Pins ──

    async def pin(self, message_id: str, pinned_by: str) -> bool:
        message = await self.get(message_id)
        if message is None:
            return False
        if not message.is_pinned:
            message.is_pinned = True
            message.pinned_by = pinned_by
            message.pinned_at = utcnow()
            await self.db.commit()
        return True

    async def unpin(self, message_id: str) -> bool:
        message = await self.get(message_id)
        if message is None:
            return False
        if message.is_pinned:
            message.is_pinned = False
            message.pinned_by = None
            message.pinned_at = None
            await self.db.commit()
        return True

    # ── Likes ──

    async def like(self, message_id: str, member_id: str) -> bool:
        """Record a like. ``False`` when this member already likes the message."""
        await self.require(message_id)
        await self._require_member(member_id)

        existing = await self.db.execute(
            select(MessageLike.id).where(
                MessageLike.message_id == message_id,
                MessageLike.member_id == member_id,
            )
        )
        if existing.scalar_one_or_none() is not None:
            return False

        self.db.add(MessageLike(message_id=message_id, member_id=member_id))
        try:
            await self.db.commit()
        except IntegrityError:
            # A concurrent like from the same member won the unique constraint.
            await self.db.rollback()
            return False
        return True

    async def unlike(self, message_id: str, member_id: str) -> bool:
        """Remove a like. ``False`` when there was none."""
        await self.require(message_id)

        result = await self.db.execute(
            delete(MessageLike).where(
                MessageLike.message_id == message_id,
                MessageLike.member_id == member_id,
            )
        )
        await self.db.commit()
        return (result.rowcount or 0) > 0

    async def like_count(self, message_id: str) -> int:
        result = await self.db.execute(
            select(func.count(MessageLike.id)).where(MessageLike.message_id == message_id)
        )
        return result.scalar() or 0
