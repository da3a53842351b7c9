"""Chat message model."""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from gridchat.database import Base, new_id, utcnow


class ChatMessage(Base):
    """
    Append-only: the body is never edited after creation and rows are never
    physically removed. Deletion and pinning only flip the annotation columns.
    """
    __tablename__ = "chat_messages"
    __table_args__ = (
        Index("ix_chat_messages_room_created", "chat_room_id", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    chat_room_id: Mapped[str] = mapped_column(
        ForeignKey("chat_rooms.id", ondelete="CASCADE"), nullable=False
    )
    member_id: Mapped[str] = mapped_column(ForeignKey("members.id"), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    # Looked up, never cascaded.
    reply_to_message_id: Mapped[Optional[str]] = mapped_column(String(36))

    # ── Soft delete ──
    is_deleted: Mapped[bool] = mapped_column(Boolean, default=False)
    deleted_by: Mapped[Optional[str]] = mapped_column(String(36))
    deleted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # ── Pin ──
    is_pinned: Mapped[bool] = mapped_column(Boolean, default=False)
    pinned_by: Mapped[Optional[str]] = mapped_column(String(36))
    pinned_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )

    # ── Relationships ──
    member: Mapped["Member"] = relationship("Member", lazy="raise")  # noqa: F821
