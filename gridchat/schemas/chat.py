"""Chat Pydantic schemas: rooms, messages, likes, pins, notifications."""

from datetime import datetime
from typing import Optional

from gridchat.models.chat_room import RoomType
from gridchat.schemas.member import CamelModel, MemberOut


# ── Rooms ──

class ChatRoomCreate(CamelModel):
    name: str
    type: str = RoomType.GENERAL.value
    championship_id: Optional[str] = None


class ChatRoomOut(CamelModel):
    id: str
    name: str
    type: str
    championship_id: Optional[str] = None
    is_active: bool
    created_at: datetime


# ── Messages ──

class ChatMessageCreate(CamelModel):
    """Body of ``POST /api/chat-rooms/{roomId}/messages``.

    Length and blankness are checked by the message store so that every
    caller gets the same rule, not only HTTP clients.
    """
    message: str
    member_id: str
    reply_to_message_id: Optional[str] = None


class ChatMessageOut(CamelModel):
    id: str
    chat_room_id: str
    member_id: str
    message: str
    reply_to_message_id: Optional[str] = None
    is_deleted: bool = False
    deleted_by: Optional[str] = None
    deleted_at: Optional[datetime] = None
    is_pinned: bool = False
    pinned_by: Optional[str] = None
    pinned_at: Optional[datetime] = None
    created_at: datetime


class ChatMessageWithMember(ChatMessageOut):
    member: MemberOut
    like_count: int = 0
    is_liked_by_current_user: bool = False


class ChatRoomWithStats(ChatRoomOut):
    message_count: int = 0
    last_message: Optional[ChatMessageWithMember] = None


# ── Annotations ──

class DeleteMessageRequest(CamelModel):
    deleted_by: str = "admin"


class LikeRequest(CamelModel):
    member_id: str


class LikeResult(CamelModel):
    liked: bool
    like_count: int
    changed: bool


class PinRequest(CamelModel):
    pinned_by: str


class PinResult(CamelModel):
    message_id: str
    is_pinned: bool


# ── Notifications ──

class NotificationOut(CamelModel):
    id: str
    member_id: str
    message_id: str
    type: str
    is_read: bool
    created_at: datetime
    message: Optional[ChatMessageWithMember] = None
    chat_room: Optional[ChatRoomOut] = None
