"""
Chat router: rooms, history, sending, deletion, likes and pins.

Every mutation commits through the store first and only then publishes the
matching room event, so subscribers never hear about a row that a history
fetch could not return.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from gridchat.database import get_db
from gridchat.errors import NotFoundError
from gridchat.schemas.chat import (
    ChatMessageCreate,
    ChatMessageOut,
    ChatMessageWithMember,
    ChatRoomCreate,
    ChatRoomOut,
    ChatRoomWithStats,
    DeleteMessageRequest,
    LikeRequest,
    LikeResult,
    PinRequest,
    PinResult,
)
from gridchat.schemas.events import LikeChanged, MessageDeleted, MessagePinned, NewMessage
from gridchat.services.broadcast import BroadcastChannel
from gridchat.services.message_store import MessageStore
from gridchat.services.room_registry import RoomRegistry

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["chat"])


# ==============================================================================
# Dependencies
# ==============================================================================

def get_channel(request: Request) -> BroadcastChannel:
    return request.app.state.channel


def get_store(db: AsyncSession = Depends(get_db)) -> MessageStore:
    return MessageStore(db)


def get_registry(db: AsyncSession = Depends(get_db)) -> RoomRegistry:
    return RoomRegistry(db)


# ==============================================================================
# Rooms
# ==============================================================================

@router.get("/chat-rooms", response_model=List[ChatRoomWithStats])
async def list_chat_rooms(
    current_user_id: Optional[str] = Query(None, alias="currentUserId"),
    registry: RoomRegistry = Depends(get_registry),
):
    """Active rooms, general first, with message counts and the latest message."""
    return await registry.list_with_stats(viewer_id=current_user_id)


@router.get("/chat-rooms/{room_id}", response_model=ChatRoomOut)
async def get_chat_room(room_id: str, registry: RoomRegistry = Depends(get_registry)):
    return await registry.require(room_id)


@router.post("/chat-rooms", response_model=ChatRoomOut, status_code=status.HTTP_201_CREATED)
async def create_chat_room(
    payload: ChatRoomCreate,
    registry: RoomRegistry = Depends(get_registry),
):
    """Create a room. A championship that already has one gets it back unchanged."""
    return await registry.create_or_get(payload.name, payload.type, payload.championship_id)


# ==============================================================================
# Messages
# ==============================================================================

@router.get("/chat-rooms/{room_id}/messages", response_model=List[ChatMessageWithMember])
async def get_chat_messages(
    room_id: str,
    limit: Optional[int] = Query(None),
    current_user_id: Optional[str] = Query(None, alias="currentUserId"),
    store: MessageStore = Depends(get_store),
):
    """Latest page of visible messages, oldest first."""
    return await store.list_recent(room_id, limit=limit, viewer_id=current_user_id)


@router.get("/chat-rooms/{room_id}/pinned-messages", response_model=List[ChatMessageWithMember])
async def get_pinned_messages(
    room_id: str,
    current_user_id: Optional[str] = Query(None, alias="currentUserId"),
    store: MessageStore = Depends(get_store),
):
    return await store.list_pinned(room_id, viewer_id=current_user_id)


@router.post(
    "/chat-rooms/{room_id}/messages",
    response_model=ChatMessageOut,
    status_code=status.HTTP_201_CREATED,
)
async def send_message(
    room_id: str,
    payload: ChatMessageCreate,
    store: MessageStore = Depends(get_store),
    channel: BroadcastChannel = Depends(get_channel),
):
    """Append a message (with its mention notifications) and push it to the room."""
    message = await store.append(
        room_id, payload.member_id, payload.message, payload.reply_to_message_id
    )

    # Nothing is awaited between the commit above and this publish.
    channel.publish(
        room_id,
        NewMessage(
            chat_room_id=room_id,
            message=ChatMessageWithMember.model_validate(message),
        ),
    )

    return ChatMessageOut.model_validate(message)


@router.delete("/chat-rooms/{room_id}/messages/{message_id}")
async def delete_message(
    room_id: str,
    message_id: str,
    payload: Optional[DeleteMessageRequest] = None,
    registry: RoomRegistry = Depends(get_registry),
    store: MessageStore = Depends(get_store),
    channel: BroadcastChannel = Depends(get_channel),
):
    """Soft-delete a message. Authorization is enforced by the admin layer in front."""
    await registry.require(room_id)

    message = await store.get(message_id, include_deleted=True)
    if message is None or message.chat_room_id != room_id:
        raise NotFoundError("Message not found")
    was_deleted = message.is_deleted

    deleted_by = payload.deleted_by if payload else "admin"
    await store.soft_delete(message_id, deleted_by, room_id=room_id)

    if not was_deleted:
        channel.publish(room_id, MessageDeleted(chat_room_id=room_id, message_id=message_id))
    return {"message": "Message deleted successfully"}


# ==============================================================================
# Likes
# ==============================================================================

@router.post("/messages/{message_id}/like", response_model=LikeResult)
async def like_message(
    message_id: str,
    payload: LikeRequest,
    store: MessageStore = Depends(get_store),
    channel: BroadcastChannel = Depends(get_channel),
):
    """Like a message. Liking twice is a silent no-op (``changed`` is false)."""
    message = await store.require(message_id)
    changed = await store.like(message_id, payload.member_id)
    count = await store.like_count(message_id)

    if changed:
        channel.publish(
            message.chat_room_id,
            LikeChanged(
                chat_room_id=message.chat_room_id,
                message_id=message_id,
                member_id=payload.member_id,
                liked=True,
                like_count=count,
            ),
        )
    return LikeResult(liked=True, like_count=count, changed=changed)


@router.delete("/messages/{message_id}/like", response_model=LikeResult)
async def unlike_message(
    message_id: str,
    payload: LikeRequest,
    store: MessageStore = Depends(get_store),
    channel: BroadcastChannel = Depends(get_channel),
):
    message = await store.require(message_id)
    changed = await store.unlike(message_id, payload.member_id)
    count = await store.like_count(message_id)

    if changed:
        channel.publish(
            message.chat_room_id,
            LikeChanged(
                chat_room_id=message.chat_room_id,
                message_id=message_id,
                member_id=payload.member_id,
                liked=False,
                like_count=count,
            ),
        )
    return LikeResult(liked=False, like_count=count, changed=changed)


# ==============================================================================
# Pins
# ==============================================================================

@router.post("/messages/{message_id}/pin", response_model=PinResult)
async def pin_message(
    message_id: str,
    payload: PinRequest,
    store: MessageStore = Depends(get_store),
    channel: BroadcastChannel = Depends(get_channel),
):
    message = await store.require(message_id)
    was_pinned = message.is_pinned
    await store.pin(message_id, payload.pinned_by)

    if not was_pinned:
        channel.publish(
            message.chat_room_id,
            MessagePinned(chat_room_id=message.chat_room_id, message_id=message_id, is_pinned=True),
        )
    return PinResult(message_id=message_id, is_pinned=True)


@router.delete("/messages/{message_id}/pin", response_model=PinResult)
async def unpin_message(
    message_id: str,
    store: MessageStore = Depends(get_store),
    channel: BroadcastChannel = Depends(get_channel),
):
    message = await store.require(message_id)
    was_pinned = message.is_pinned
    await store.unpin(message_id)

    if was_pinned:
        channel.publish(
            message.chat_room_id,
            MessagePinned(chat_room_id=message.chat_room_id, message_id=message_id, is_pinned=False),
        )
    return PinResult(message_id=message_id, is_pinned=False)
