"""SQLAlchemy ORM model for chats (private and group)."""
from __future__ import annotations

from enum import StrEnum

from sqlalchemy import Boolean, Column, DateTime, Integer, String, Text
from sqlalchemy.sql import expression

from campuschat.database import Base
from .base import JSONList, TimestampMixin, generate_id


class ChatType(StrEnum):
    PRIVATE = "private"
    STAGE_GROUP = "stage_group"
    DEPARTMENT_GROUP = "department_group"
    CUSTOM_GROUP = "custom_group"


GROUP_CHAT_TYPES = frozenset({ChatType.STAGE_GROUP, ChatType.DEPARTMENT_GROUP, ChatType.CUSTOM_GROUP})


class Chat(TimestampMixin, Base):
    __tablename__ = "chats"

    id = Column(String(36), primary_key=True, default=generate_id)
    name = Column(String(120), nullable=True)
    type = Column(String(32), nullable=False, index=True)
    department = Column(String(150), nullable=True, index=True)
    stage = Column(String(32), nullable=True)
    description = Column(String(500), nullable=True)
    participants = Column(JSONList, nullable=False, default=list)
    admins = Column(JSONList, nullable=False, default=list)
    representatives = Column(JSONList, nullable=False, default=list)
    requires_representative = Column(Boolean, nullable=False, server_default=expression.false(), default=False)
    # Serialized JSON blob; parse through ChatSettings.from_blob before use.
    settings = Column(Text, nullable=True)
    last_message = Column(String(128), nullable=True)
    last_message_at = Column(DateTime(timezone=True), nullable=True)
    message_count = Column(Integer, nullable=False, server_default="0", default=0)
    pinned_messages = Column(JSONList, nullable=False, default=list)
    created_by = Column(String(36), nullable=True)


__all__ = ["Chat", "ChatType", "GROUP_CHAT_TYPES"]
