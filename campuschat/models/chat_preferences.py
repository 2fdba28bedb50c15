"""Per-user, per-chat preference collections (mutes and bookmarks)."""
from __future__ import annotations

from sqlalchemy import Column, DateTime, String, UniqueConstraint
from sqlalchemy.sql import func

from campuschat.database import Base
from .base import JSONList, generate_id


class ChatMute(Base):
    __tablename__ = "chat_mutes"
    __table_args__ = (UniqueConstraint("user_id", "chat_id", name="uq_chat_mutes_user_chat"),)

    id = Column(String(36), primary_key=True, default=generate_id)
    user_id = Column(String(36), nullable=False, index=True)
    chat_id = Column(String(36), nullable=False, index=True)
    # NULL means muted until explicitly unmuted.
    muted_until = Column(DateTime(timezone=True), nullable=True)
    mute_type = Column(String(16), nullable=False, server_default="all", default="all")
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


class ChatBookmark(Base):
    __tablename__ = "chat_bookmarks"
    __table_args__ = (UniqueConstraint("user_id", "chat_id", name="uq_chat_bookmarks_user_chat"),)

    id = Column(String(36), primary_key=True, default=generate_id)
    user_id = Column(String(36), nullable=False, index=True)
    chat_id = Column(String(36), nullable=False, index=True)
    message_ids = Column(JSONList, nullable=False, default=list)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)


__all__ = ["ChatMute", "ChatBookmark"]
