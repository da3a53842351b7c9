"""@mention extraction and in-app mention notifications."""

import logging
import re
from typing import List, Set

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from gridchat.models.chat_message import ChatMessage
from gridchat.models.member import Member
from gridchat.models.notification import Notification, NotificationType

logger = logging.getLogger(__name__)

MENTION_RE = re.compile(r"(?<![\w@])@([A-Za-z0-9_.\-]{2,100})")


def extract_gamertags(body: str) -> Set[str]:
    """Lower-cased gamertags mentioned in ``body``."""
    return {tag.rstrip(".-").lower() for tag in MENTION_RE.findall(body or "")}


async def record_mentions(db: AsyncSession, message: ChatMessage) -> List[Notification]:
    """Create one mention notification per member tagged in ``message``.

    The author is never notified about their own message and unknown
    gamertags are ignored. Rows are only added to the session; the caller
    commits them together with the message.
    """
    tags = extract_gamertags(message.message)
    if not tags:
        return []

    result = await db.execute(
        select(Member).where(
            func.lower(Member.gamertag).in_(tags),
            Member.id != message.member_id,
        )
    )
    notifications = [
        Notification(
            member_id=member.id,
            message_id=message.id,
            type=NotificationType.MENTION.value,
        )
        for member in result.scalars().all()
    ]
    if notifications:
        db.add_all(notifications)
        logger.info("Message %s mentioned %d member(s)", message.id, len(notifications))
    return notifications
