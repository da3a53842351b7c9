"""Notifications router: a member's mention notifications, read and mark-all-read."""

from typing import List

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy import desc, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from gridchat.database import get_db
from gridchat.errors import NotFoundError
from gridchat.models.chat_message import ChatMessage
from gridchat.models.chat_room import ChatRoom
from gridchat.models.notification import Notification
from gridchat.schemas.chat import ChatRoomOut, NotificationOut
from gridchat.services.message_store import MessageStore

router = APIRouter(prefix="/api", tags=["notifications"])


@router.get("/members/{member_id}/notifications")
async def get_notifications(
    member_id: str,
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    """Return the latest notifications + unread count for a member."""
    # Unread count
    count_result = await db.execute(
        select(func.count(Notification.id)).where(
            Notification.member_id == member_id,
            Notification.is_read.is_(False),
        )
    )
    unread_count = count_result.scalar() or 0

    result = await db.execute(
        select(Notification, ChatMessage.chat_room_id)
        .join(ChatMessage, ChatMessage.id == Notification.message_id)
        .where(Notification.member_id == member_id)
        .order_by(desc(Notification.created_at))
        .limit(limit)
    )
    rows = result.all()

    store = MessageStore(db)
    room_ids = {room_id for _, room_id in rows}
    rooms = {}
    if room_ids:
        room_result = await db.execute(select(ChatRoom).where(ChatRoom.id.in_(room_ids)))
        rooms = {r.id: ChatRoomOut.model_validate(r) for r in room_result.scalars()}

    notifications: List[NotificationOut] = []
    for notif, room_id in rows:
        item = NotificationOut.model_validate(notif)
        # Deleted messages drop out of the payload but the notice itself stays.
        item.message = await store.get_with_member(notif.message_id, viewer_id=member_id)
        item.chat_room = rooms.get(room_id)
        notifications.append(item)

    return {
        "unreadCount": unread_count,
        "notifications": [n.model_dump(mode="json", by_alias=True) for n in notifications],
    }


@router.post("/notifications/{notif_id}/read", response_model=NotificationOut)
async def mark_read(notif_id: str, db: AsyncSession = Depends(get_db)):
    """Mark a single notification as read."""
    result = await db.execute(select(Notification).where(Notification.id == notif_id))
    notif = result.scalar_one_or_none()
    if not notif:
        raise NotFoundError("Notification not found")

    notif.is_read = True
    await db.commit()
    return notif


@router.post("/members/{member_id}/notifications/read-all")
async def mark_all_read(member_id: str, db: AsyncSession = Depends(get_db)):
    """Mark all notifications as read for a member."""
    await db.execute(
        update(Notification)
        .where(
            Notification.member_id == member_id,
            Notification.is_read.is_(False),
        )
        .values(is_read=True)
    )
    await db.commit()
    return JSONResponse({"ok": True})
