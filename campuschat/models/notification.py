"""SQLAlchemy ORM model for notifications."""
from __future__ import annotations

from sqlalchemy import Boolean, Column, DateTime, String
from sqlalchemy.sql import expression, func

from campuschat.database import Base
from .base import generate_id


class Notification(Base):
    __tablename__ = "notifications"

    id = Column(String(36), primary_key=True, default=generate_id)
    user_id = Column(String(36), nullable=False, index=True)
    sender_id = Column(String(36), nullable=False, index=True)
    sender_name = Column(String(150), nullable=True)
    sender_profile_picture = Column(String(1024), nullable=True)
    type = Column(String(32), nullable=False)
    post_id = Column(String(36), nullable=True)
    post_preview = Column(String(64), nullable=True)
    chat_id = Column(String(36), nullable=True)
    is_read = Column(Boolean, nullable=False, server_default=expression.false(), default=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


__all__ = ["Notification"]
