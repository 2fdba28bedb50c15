"""SQLAlchemy ORM model for chat messages."""
from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String, Text
from sqlalchemy.sql import expression, func

from campuschat.database import Base
from .base import JSONList, generate_id


class Message(Base):
    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=generate_id)
    chat_id = Column(String(36), ForeignKey("chats.id", ondelete="CASCADE"), nullable=False, index=True)
    sender_id = Column(String(36), nullable=False, index=True)
    sender_name = Column(String(150), nullable=True)
    content = Column(Text, nullable=False, default="")
    image_url = Column(String(1024), nullable=True)
    reply_to_id = Column(String(36), nullable=True)
    reply_to_content = Column(Text, nullable=True)
    reply_to_sender = Column(String(150), nullable=True)
    mentions_all = Column(Boolean, nullable=False, server_default=expression.false(), default=False)
    is_pinned = Column(Boolean, nullable=False, server_default=expression.false(), default=False)
    pinned_by = Column(String(36), nullable=True)
    pinned_at = Column(DateTime(timezone=True), nullable=True)
    read_by = Column(JSONList, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)


__all__ = ["Message"]
