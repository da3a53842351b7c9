"""
Live channel frames.

Every frame is a JSON object tagged by ``type``. Inbound frames come from
clients over the socket; room events are published by the HTTP handlers and
fanned out to subscribers; ``joined`` acknowledges a join to its sender.
"""

from typing import Annotated, Any, Dict, Literal, Union

from pydantic import Field, TypeAdapter

from gridchat.schemas.chat import ChatMessageWithMember
from gridchat.schemas.member import CamelModel


# ── Inbound (client → server) ──

class JoinChatRoom(CamelModel):
    type: Literal["join-chat-room"] = "join-chat-room"
    chat_room_id: str = Field(min_length=1)


class LeaveChatRoom(CamelModel):
    type: Literal["leave-chat-room"] = "leave-chat-room"


InboundFrame = Annotated[Union[JoinChatRoom, LeaveChatRoom], Field(discriminator="type")]
inbound_frames: TypeAdapter[InboundFrame] = TypeAdapter(InboundFrame)


# ── Room events (server → subscribers) ──

class NewMessage(CamelModel):
    type: Literal["new-message"] = "new-message"
    chat_room_id: str
    message: ChatMessageWithMember


class MessageDeleted(CamelModel):
    type: Literal["message-deleted"] = "message-deleted"
    chat_room_id: str
    message_id: str


class LikeChanged(CamelModel):
    type: Literal["like-changed"] = "like-changed"
    chat_room_id: str
    message_id: str
    member_id: str
    liked: bool
    like_count: int


class MessagePinned(CamelModel):
    type: Literal["message-pinned"] = "message-pinned"
    chat_room_id: str
    message_id: str
    is_pinned: bool


RoomEvent = Union[NewMessage, MessageDeleted, LikeChanged, MessagePinned]


# ── Control (server → one connection) ──

class Joined(CamelModel):
    type: Literal["joined"] = "joined"
    chat_room_id: str


OutboundFrame = Annotated[
    Union[NewMessage, MessageDeleted, LikeChanged, MessagePinned, Joined],
    Field(discriminator="type"),
]
outbound_frames: TypeAdapter[OutboundFrame] = TypeAdapter(OutboundFrame)


def encode_frame(frame: CamelModel) -> Dict[str, Any]:
    """JSON-ready dict with camelCase keys."""
    return frame.model_dump(mode="json", by_alias=True)
