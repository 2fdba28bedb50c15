"""Chat document management: creation, lookup, membership and settings."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, Sequence

from fastapi import HTTPException, status
from sqlalchemy import cast, delete, or_, select
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import GROUP_CHAT_TYPES, Chat, ChatType, Message
from ..schemas import (
    ChatResponse,
    ChatSettings,
    ChatSettingsError,
    ChatSettingsUpdate,
    GroupChatCreate,
)
from .permissions import is_chat_admin

logger = logging.getLogger(__name__)


def _unique(values: Iterable[str | None]) -> list[str]:
    seen: list[str] = []
    for raw in values:
        value = (raw or "").strip()
        if value and value not in seen:
            seen.append(value)
    return seen


def _contains_member(db: Session, column, user_id: str):
    """SQL containment test for a JSON member list, or ``None`` where unsupported."""

    if db.get_bind().dialect.name != "postgresql":
        return None
    return cast(column, JSONB).contains([user_id])


def _commit(db: Session, detail: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception(detail)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail) from exc


def _require_chat_id(chat_id: str | None) -> str:
    if not chat_id or not isinstance(chat_id, str):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid chat ID")
    return chat_id


def to_chat_response(chat: Chat) -> ChatResponse:
    try:
        settings: ChatSettings | None = ChatSettings.from_blob(chat.settings)
    except ChatSettingsError:
        settings = None
    return ChatResponse(
        id=chat.id,
        name=chat.name,
        type=chat.type,
        department=chat.department,
        stage=chat.stage,
        description=chat.description,
        participants=list(chat.participants or []),
        admins=list(chat.admins or []),
        representatives=list(chat.representatives or []),
        requires_representative=bool(chat.requires_representative),
        settings=settings,
        last_message=chat.last_message,
        last_message_at=chat.last_message_at,
        message_count=chat.message_count or 0,
        pinned_messages=list(chat.pinned_messages or []),
        created_at=chat.created_at,
    )


def create_group_chat(db: Session, payload: GroupChatCreate, *, created_by: str | None = None) -> Chat:
    """Persist a group chat of one of the group types."""

    name = payload.name.strip()
    if not name:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Chat name is required")
    try:
        chat_type = ChatType(payload.type)
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid chat type") from exc
    if chat_type not in GROUP_CHAT_TYPES:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid chat type")
    if chat_type in (ChatType.STAGE_GROUP, ChatType.DEPARTMENT_GROUP) and not payload.department:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Department is required")

    participants = _unique([created_by, *payload.participants])
    admins = _unique(payload.admins)
    if chat_type == ChatType.CUSTOM_GROUP and created_by and created_by not in admins:
        admins.insert(0, created_by)

    chat = Chat(
        name=name,
        type=str(chat_type),
        department=payload.department,
        stage=str(payload.stage) if payload.stage is not None else None,
        description=payload.description,
        participants=participants,
        admins=admins,
        representatives=_unique(payload.representatives),
        requires_representative=payload.requires_representative,
        settings=(payload.settings or ChatSettings()).to_blob(),
        message_count=0,
        pinned_messages=[],
        created_by=created_by,
    )
    db.add(chat)
    _commit(db, "Failed to create group chat")
    db.refresh(chat)
    logger.info("Created %s chat %s (%s)", chat.type, chat.id, chat.name)
    return chat


def create_stage_group_chat(db: Session, department: str, stage: str | int, stage_name: str) -> Chat:
    return create_group_chat(
        db,
        GroupChatCreate(
            name=f"{stage_name} - {department}",
            type=ChatType.STAGE_GROUP.value,
            department=department,
            stage=str(stage),
            requires_representative=True,
            description=f"Group chat for {stage_name} students in {department}",
        ),
    )


def create_department_group_chat(db: Session, department: str) -> Chat:
    return create_group_chat(
        db,
        GroupChatCreate(
            name=f"{department} - All Stages",
            type=ChatType.DEPARTMENT_GROUP.value,
            department=department,
            requires_representative=False,
            description=f"Group chat for all students in {department}",
        ),
    )


def initialize_group_chats_for_department(
    db: Session,
    department: str,
    stages: Sequence[tuple[str | int, str]],
) -> list[Chat]:
    """Create the department-wide chat followed by one chat per ``(value, label)`` stage."""

    created = [create_department_group_chat(db, department)]
    for value, label in stages:
        created.append(create_stage_group_chat(db, department, value, label))
    return created


def create_private_chat(db: Session, user_id: str, other_user_id: str) -> Chat:
    """Return the private chat between two users, creating it on first use."""

    if not user_id or not other_user_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Participants array is required")
    if user_id == other_user_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cannot start a chat with yourself")

    stmt = select(Chat).where(Chat.type == str(ChatType.PRIVATE))
    for member in (user_id, other_user_id):
        condition = _contains_member(db, Chat.participants, member)
        if condition is not None:
            stmt = stmt.where(condition)
    for chat in db.scalars(stmt):
        members = set(chat.participants or [])
        if members == {user_id, other_user_id}:
            return chat

    chat = Chat(
        type=str(ChatType.PRIVATE),
        participants=[user_id, other_user_id],
        admins=[],
        representatives=[],
        settings=ChatSettings().to_blob(),
        message_count=0,
        pinned_messages=[],
        created_by=user_id,
    )
    db.add(chat)
    _commit(db, "Failed to create chat")
    db.refresh(chat)
    return chat


def get_chat(db: Session, chat_id: str | None) -> Chat:
    chat = db.get(Chat, _require_chat_id(chat_id))
    if chat is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Chat not found")
    return chat


def _activity_key(chat: Chat) -> datetime:
    moment = chat.last_message_at or chat.created_at
    if moment is None:
        return datetime.min.replace(tzinfo=timezone.utc)
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def list_user_chats(db: Session, user_id: str) -> list[Chat]:
    """Return chats where the user is a participant, admin or representative."""

    if not user_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid user ID")
    stmt = select(Chat)
    conditions = [_contains_member(db, column, user_id) for column in (Chat.participants, Chat.admins, Chat.representatives)]
    if conditions[0] is not None:
        stmt = stmt.where(or_(*conditions))
    chats = [
        chat
        for chat in db.scalars(stmt)
        if user_id in (chat.participants or [])
        or user_id in (chat.admins or [])
        or user_id in (chat.representatives or [])
    ]
    return sorted(chats, key=_activity_key, reverse=True)


def list_group_chats(db: Session, department: str, stage: str | int | None = None) -> list[Chat]:
    """Return the department-wide chats plus the chats for ``stage``, newest activity first."""

    if not department or not isinstance(department, str):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid department")

    conditions = [Chat.type == str(ChatType.DEPARTMENT_GROUP)]
    if stage is not None and str(stage):
        conditions.append((Chat.type == str(ChatType.STAGE_GROUP)) & (Chat.stage == str(stage)))

    stmt = select(Chat).where(Chat.department == department, or_(*conditions))
    return sorted(db.scalars(stmt), key=_activity_key, reverse=True)


def delete_chat(db: Session, chat_id: str, requester_id: str) -> None:
    chat = get_chat(db, chat_id)
    if chat.type == ChatType.PRIVATE:
        allowed = requester_id in (chat.participants or [])
    else:
        allowed = requester_id in (chat.admins or []) or requester_id == chat.created_by
    if not allowed:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You cannot delete this chat")
    db.execute(delete(Message).where(Message.chat_id == chat.id))
    db.delete(chat)
    _commit(db, "Failed to delete chat")


def add_representative(db: Session, chat_id: str, user_id: str) -> Chat:
    if not chat_id or not user_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid chat ID or user ID")
    chat = get_chat(db, chat_id)
    current = list(chat.representatives or [])
    if user_id in current:
        return chat
    chat.representatives = [*current, user_id]
    _commit(db, "Failed to update representatives")
    db.refresh(chat)
    return chat


def remove_representative(db: Session, chat_id: str, user_id: str) -> Chat:
    if not chat_id or not user_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid chat ID or user ID")
    chat = get_chat(db, chat_id)
    current = list(chat.representatives or [])
    if user_id not in current:
        return chat
    chat.representatives = [member for member in current if member != user_id]
    _commit(db, "Failed to update representatives")
    db.refresh(chat)
    return chat


def update_chat_settings(db: Session, chat_id: str, requester_id: str, payload: ChatSettingsUpdate) -> Chat:
    """Merge a partial settings update into the stored blob (admins only)."""

    chat = get_chat(db, chat_id)
    if chat.type == ChatType.PRIVATE:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Private chats have no settings")
    if not is_chat_admin(chat, requester_id):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only admins can change chat settings")

    try:
        current = ChatSettings.from_blob(chat.settings)
    except ChatSettingsError:
        logger.warning("Replacing unreadable settings on chat %s with defaults", chat_id)
        current = ChatSettings()

    changes = payload.model_dump(exclude_unset=True, exclude_none=True)
    if not changes:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No changes provided")

    chat.settings = current.model_copy(update=changes).to_blob()
    _commit(db, "Failed to update chat settings")
    db.refresh(chat)
    return chat


__all__ = [
    "add_representative",
    "create_department_group_chat",
    "create_group_chat",
    "create_private_chat",
    "create_stage_group_chat",
    "delete_chat",
    "get_chat",
    "initialize_group_chats_for_department",
    "list_group_chats",
    "list_user_chats",
    "remove_representative",
    "to_chat_response",
    "update_chat_settings",
]
