"""Chat Room model."""

import enum
from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from gridchat.database import Base, new_id, utcnow


class RoomType(str, enum.Enum):
    GENERAL = "general"
    CHAMPIONSHIP = "championship"


class ChatRoom(Base):
    """
    One general room plus at most one room per championship.
    ``type`` is an open tag: values beyond RoomType are display hints
    owned by the CRUD layer and are stored as given.
    """
    __tablename__ = "chat_rooms"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[str] = mapped_column(String(50), nullable=False, default=RoomType.GENERAL.value)
    # NULLs never collide, so any number of rooms may have no championship.
    championship_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("championships.id", ondelete="SET NULL"), unique=True
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
