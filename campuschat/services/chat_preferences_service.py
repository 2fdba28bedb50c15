"""Per-user chat preferences: mutes and bookmarked messages."""
from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import ChatBookmark, ChatMute

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _require(user_id: str | None, chat_id: str | None) -> None:
    if not user_id or not chat_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User ID and chat ID are required")


def _commit(db: Session, detail: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception(detail)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=detail) from exc


def _find_mute(db: Session, user_id: str, chat_id: str) -> ChatMute | None:
    return db.scalar(select(ChatMute).where(ChatMute.user_id == user_id, ChatMute.chat_id == chat_id))


def _is_expired(mute: ChatMute, now: datetime) -> bool:
    until = _aware(mute.muted_until)
    return until is not None and until <= now


def mute_chat(
    db: Session,
    user_id: str,
    chat_id: str,
    duration_minutes: int | None = None,
    mute_type: str = "all",
) -> ChatMute:
    """Mute a chat for ``duration_minutes`` or until unmuted when no duration is given."""

    _require(user_id, chat_id)
    if mute_type not in ("all", "mentions"):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid mute type")
    muted_until = _now() + timedelta(minutes=duration_minutes) if duration_minutes else None

    mute = _find_mute(db, user_id, chat_id)
    if mute is None:
        mute = ChatMute(user_id=user_id, chat_id=chat_id, created_at=_now())
        db.add(mute)
    mute.muted_until = muted_until
    mute.mute_type = mute_type
    _commit(db, "Failed to mute chat")
    db.refresh(mute)
    return mute


def unmute_chat(db: Session, user_id: str, chat_id: str) -> None:
    _require(user_id, chat_id)
    mute = _find_mute(db, user_id, chat_id)
    if mute is None:
        return
    db.delete(mute)
    _commit(db, "Failed to unmute chat")


def get_mute_status(db: Session, user_id: str, chat_id: str) -> ChatMute | None:
    """Return the active mute, dropping it first when it has run out."""

    _require(user_id, chat_id)
    mute = _find_mute(db, user_id, chat_id)
    if mute is None:
        return None
    if _is_expired(mute, _now()):
        try:
            db.delete(mute)
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.warning("Expired mute for %s in chat %s could not be cleared", user_id, chat_id)
        return None
    return mute


def list_muted_chat_ids(db: Session, user_id: str) -> list[str]:
    if not user_id:
        return []
    now = _now()
    mutes = db.scalars(select(ChatMute).where(ChatMute.user_id == user_id))
    return [mute.chat_id for mute in mutes if not _is_expired(mute, now)]


def _find_bookmark(db: Session, user_id: str, chat_id: str) -> ChatBookmark | None:
    return db.scalar(select(ChatBookmark).where(ChatBookmark.user_id == user_id, ChatBookmark.chat_id == chat_id))


def bookmark_message(db: Session, user_id: str, chat_id: str, message_id: str) -> list[str]:
    _require(user_id, chat_id)
    if not message_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid message ID")
    bookmark = _find_bookmark(db, user_id, chat_id)
    if bookmark is None:
        bookmark = ChatBookmark(user_id=user_id, chat_id=chat_id, message_ids=[])
        db.add(bookmark)
    current = list(bookmark.message_ids or [])
    if message_id in current:
        return current
    bookmark.message_ids = [*current, message_id]
    _commit(db, "Failed to bookmark message")
    return list(bookmark.message_ids)


def unbookmark_message(db: Session, user_id: str, chat_id: str, message_id: str) -> list[str]:
    _require(user_id, chat_id)
    bookmark = _find_bookmark(db, user_id, chat_id)
    if bookmark is None:
        return []
    current = list(bookmark.message_ids or [])
    if message_id not in current:
        return current
    bookmark.message_ids = [item for item in current if item != message_id]
    _commit(db, "Failed to remove bookmark")
    return list(bookmark.message_ids)


def get_bookmarked_message_ids(db: Session, user_id: str, chat_id: str) -> list[str]:
    _require(user_id, chat_id)
    bookmark = _find_bookmark(db, user_id, chat_id)
    return list(bookmark.message_ids or []) if bookmark is not None else []


__all__ = [
    "bookmark_message",
    "get_bookmarked_message_ids",
    "get_mute_status",
    "list_muted_chat_ids",
    "mute_chat",
    "unbookmark_message",
    "unmute_chat",
]
