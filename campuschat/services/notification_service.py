"""Notification helper logic for the notifications collection."""
from __future__ import annotations

import asyncio
import logging
from concurrent.futures import Future
from contextvars import ContextVar
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any

from fastapi import HTTPException, status
from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..constants import NOTIFICATION_PREVIEW_CHARS
from ..models import Notification
from ..schemas import NotificationResponse
from .notification_stream import notification_stream_manager

logger = logging.getLogger(__name__)

# Loop that owns the notification sockets, for work running in worker threads.
event_loop: ContextVar[asyncio.AbstractEventLoop | None] = ContextVar("notification_event_loop", default=None)
_pending_events: set[asyncio.Task[None] | Future[None]] = set()


class NotificationType(StrEnum):
    POST_LIKE = "post_like"
    POST_REPLY = "post_reply"
    MENTION = "mention"
    FRIEND_POST = "friend_post"
    FOLLOW = "follow"


def _preview(text: str | None) -> str | None:
    if text is None:
        return None
    return text[:NOTIFICATION_PREVIEW_CHARS]


def create_notification(
    db: Session,
    *,
    user_id: str,
    sender_id: str,
    type_: NotificationType | str,
    sender_name: str | None = None,
    sender_profile_picture: str | None = None,
    post_id: str | None = None,
    post_preview: str | None = None,
    chat_id: str | None = None,
) -> Notification | None:
    """Persist a notification for ``user_id``; self-notifications are skipped."""

    if not user_id or not type_:
        raise ValueError("user_id and type are required")
    try:
        notification_type = NotificationType(str(type_))
    except ValueError as exc:
        raise ValueError(f"Unknown notification type '{type_}'") from exc

    if user_id == sender_id:
        return None

    notification = Notification(
        user_id=user_id,
        sender_id=sender_id,
        sender_name=sender_name,
        sender_profile_picture=sender_profile_picture,
        type=str(notification_type),
        post_id=post_id,
        post_preview=_preview(post_preview),
        chat_id=chat_id,
        is_read=False,
        created_at=datetime.now(timezone.utc),
    )
    db.add(notification)
    db.commit()
    db.refresh(notification)

    _broadcast_notification(notification)
    return notification


def list_notifications(db: Session, user_id: str, *, limit: int = 20, offset: int = 0) -> list[Notification]:
    """Return notifications for the supplied recipient ordered newest first."""

    stmt = (
        select(Notification)
        .where(Notification.user_id == user_id)
        .order_by(Notification.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(db.scalars(stmt))


def count_unread_notifications(db: Session, user_id: str) -> int:
    """Return the unread notification total; failures count as zero."""

    if not user_id:
        return 0
    stmt = (
        select(func.count())
        .select_from(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
    )
    try:
        return int(db.scalar(stmt) or 0)
    except SQLAlchemyError:
        logger.warning("Unread notification count failed for %s", user_id)
        return 0


def _get_owned_notification(db: Session, notification_id: str, user_id: str) -> Notification:
    notification = db.get(Notification, notification_id)
    if notification is None or notification.user_id != user_id:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Notification not found")
    return notification


def mark_notification_as_read(db: Session, notification_id: str, user_id: str) -> Notification:
    notification = _get_owned_notification(db, notification_id, user_id)
    if notification.is_read:
        return notification
    notification.is_read = True
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to update notification") from exc
    db.refresh(notification)
    return notification


def mark_all_read(db: Session, user_id: str) -> None:
    """Mark all notifications for the given recipient as read."""

    stmt = (
        update(Notification)
        .where(Notification.user_id == user_id, Notification.is_read.is_(False))
        .values(is_read=True)
    )
    db.execute(stmt)
    db.commit()
    _schedule_notification_event(user_id, {"type": "notification.read_all"})


def delete_notification(db: Session, notification_id: str, user_id: str) -> None:
    notification = _get_owned_notification(db, notification_id, user_id)
    try:
        db.delete(notification)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to delete notification") from exc
    _schedule_notification_event(user_id, {"type": "notification.deleted", "notification_id": notification_id})


def delete_all_notifications(db: Session, user_id: str) -> int:
    stmt = delete(Notification).where(Notification.user_id == user_id)
    try:
        result = db.execute(stmt)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to delete notifications") from exc
    deleted = int(result.rowcount or 0)
    if deleted:
        _schedule_notification_event(user_id, {"type": "notification.deleted_all", "deleted": deleted})
    return deleted


def notify_post_like(
    db: Session,
    *,
    post_owner_id: str,
    liker_id: str,
    liker_name: str | None,
    liker_photo: str | None,
    post_id: str,
    post_preview: str | None,
) -> Notification | None:
    return create_notification(
        db,
        user_id=post_owner_id,
        sender_id=liker_id,
        sender_name=liker_name,
        sender_profile_picture=liker_photo,
        type_=NotificationType.POST_LIKE,
        post_id=post_id,
        post_preview=post_preview,
    )


def notify_post_reply(
    db: Session,
    *,
    post_owner_id: str,
    replier_id: str,
    replier_name: str | None,
    replier_photo: str | None,
    post_id: str,
    reply_preview: str | None,
) -> Notification | None:
    return create_notification(
        db,
        user_id=post_owner_id,
        sender_id=replier_id,
        sender_name=replier_name,
        sender_profile_picture=replier_photo,
        type_=NotificationType.POST_REPLY,
        post_id=post_id,
        post_preview=reply_preview,
    )


def notify_mention(
    db: Session,
    *,
    mentioned_user_id: str,
    mentioner_id: str,
    mentioner_name: str | None,
    mentioner_photo: str | None = None,
    post_id: str | None = None,
    context_preview: str | None = None,
    chat_id: str | None = None,
) -> Notification | None:
    return create_notification(
        db,
        user_id=mentioned_user_id,
        sender_id=mentioner_id,
        sender_name=mentioner_name,
        sender_profile_picture=mentioner_photo,
        type_=NotificationType.MENTION,
        post_id=post_id,
        post_preview=context_preview,
        chat_id=chat_id,
    )


def notify_friend_post(
    db: Session,
    *,
    follower_id: str,
    poster_id: str,
    poster_name: str | None,
    poster_photo: str | None,
    post_id: str,
    post_preview: str | None,
) -> Notification | None:
    return create_notification(
        db,
        user_id=follower_id,
        sender_id=poster_id,
        sender_name=poster_name,
        sender_profile_picture=poster_photo,
        type_=NotificationType.FRIEND_POST,
        post_id=post_id,
        post_preview=post_preview,
    )


def notify_follow(
    db: Session,
    *,
    followed_user_id: str,
    follower_id: str,
    follower_name: str | None,
    follower_photo: str | None,
) -> Notification | None:
    return create_notification(
        db,
        user_id=followed_user_id,
        sender_id=follower_id,
        sender_name=follower_name,
        sender_profile_picture=follower_photo,
        type_=NotificationType.FOLLOW,
    )


def _broadcast_notification(notification: Notification) -> None:
    payload = {
        "type": "notification.created",
        "notification": NotificationResponse.model_validate(notification).model_dump(mode="json"),
    }
    _schedule_notification_event(notification.user_id, payload)


def _schedule_notification_event(user_id: str, payload: dict[str, Any]) -> None:
    coro = notification_stream_manager.broadcast([str(user_id)], payload)
    try:
        pending: asyncio.Task[None] | Future[None] = asyncio.get_running_loop().create_task(coro)
    except RuntimeError:
        loop = event_loop.get()
        if loop is None or loop.is_closed():
            coro.close()
            logger.debug("No event loop to deliver notification event for %s", user_id)
            return
        pending = asyncio.run_coroutine_threadsafe(coro, loop)
    _pending_events.add(pending)
    pending.add_done_callback(_pending_events.discard)


__all__ = [
    "NotificationType",
    "event_loop",
    "create_notification",
    "list_notifications",
    "count_unread_notifications",
    "mark_notification_as_read",
    "mark_all_read",
    "delete_notification",
    "delete_all_notifications",
    "notify_post_like",
    "notify_post_reply",
    "notify_mention",
    "notify_friend_post",
    "notify_follow",
]
