"""Member model: the slice of a club member the chat core needs."""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from gridchat.database import Base, new_id, utcnow


class Member(Base):
    """
    Owned by the membership CRUD layer. Chat only reads it to attribute
    messages, resolve @mentions and annotate likes.
    """
    __tablename__ = "members"

    # ── Identity ──
    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    display_name: Mapped[str] = mapped_column(Text, nullable=False)
    gamertag: Mapped[str] = mapped_column(
        String(100), unique=True, index=True, nullable=False
    )
    is_admin: Mapped[bool] = mapped_column(Boolean, default=False)

    # ── Profile ──
    profile_image_url: Mapped[Optional[str]] = mapped_column(String(500))

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow
    )
