"""Messaging pipeline: send, fetch with cache, read receipts and pins."""
from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Sequence

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import get_settings
from ..constants import EMPTY_MESSAGE_DETAIL, IMAGE_MESSAGE_PREVIEW, LAST_MESSAGE_PREVIEW_CHARS
from ..models import Chat, Message, User
from ..schemas import MessageResponse, MessageSendRequest
from .cache_manager import CacheManager, ImageCache, UserCache, get_cache_manager
from .mentions import check_for_everyone_mention, extract_user_mentions
from .notification_service import notify_mention
from .permissions import (
    PermissionDecision,
    can_user_mention_everyone,
    can_user_pin_message,
    can_user_send_message,
)

logger = logging.getLogger(__name__)


def get_chat_messages_cache_key(chat_id: str) -> str:
    return f"messages_{chat_id}"


def to_message_response(message: Message) -> MessageResponse:
    return MessageResponse(
        id=message.id,
        chat_id=message.chat_id,
        sender_id=message.sender_id,
        sender_name=message.sender_name,
        content=message.content or "",
        image_url=message.image_url,
        reply_to_id=message.reply_to_id,
        reply_to_content=message.reply_to_content,
        reply_to_sender=message.reply_to_sender,
        mentions_all=bool(message.mentions_all),
        is_pinned=bool(message.is_pinned),
        pinned_by=message.pinned_by,
        pinned_at=message.pinned_at,
        read_by=list(message.read_by or []),
        created_at=message.created_at,
    )


def enforce_permission(decision: PermissionDecision, detail: str) -> None:
    """Raise for write paths: 403 on denial, 503 when the check could not complete."""

    if decision.allowed:
        return
    if decision.is_indeterminate:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Unable to verify permissions: {decision.cause}",
        )
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


def _require_id(value: str | None, detail: str) -> str:
    if not value or not isinstance(value, str):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=detail)
    return value


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Send pipeline
# ---------------------------------------------------------------------------


def _resolve_sender_name(db: Session, sender_id: str, provided: str | None, users: UserCache) -> str | None:
    if provided:
        return provided
    cached = users.get_cached_user_data(sender_id)
    if cached and cached.get("name"):
        return cached["name"]
    user = db.get(User, sender_id)
    if user is None:
        return None
    users.cache_user_data(sender_id, {"id": user.id, "name": user.name, "profilePicture": user.profile_picture})
    return user.name


def _update_chat_after_send(db: Session, chat_id: str, preview: str) -> None:
    try:
        chat = db.get(Chat, chat_id)
        if chat is None:
            return
        chat.last_message = preview
        chat.last_message_at = _now()
        chat.message_count = (chat.message_count or 0) + 1
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.warning("Message stored but chat %s preview/counters were not updated", chat_id, exc_info=True)


def _push_to_cache(cache: CacheManager, message: MessageResponse) -> None:
    key = get_chat_messages_cache_key(message.chat_id)
    entry = cache.peek(key)
    if entry is None or not cache.is_fresh(entry) or not isinstance(entry.value, dict):
        return
    page_size = int(entry.value.get("limit") or 0)
    cached = [item for item in entry.value.get("messages", []) if item.get("id") != message.id]
    cache.set(key, {"limit": page_size, "messages": [message.model_dump(mode="json"), *cached][:page_size]})


def _resolve_mentioned_users(db: Session, chat: Chat, handles: Sequence[str]) -> list[str]:
    if not handles:
        return []
    wanted = {handle.lower() for handle in handles}
    member_ids = list(chat.participants or [])
    if not member_ids:
        return []
    matched: list[str] = []
    for user in db.scalars(select(User).where(User.id.in_(member_ids))):
        compact_name = "".join((user.name or "").split()).lower()
        if user.id.lower() in wanted or compact_name in wanted:
            matched.append(user.id)
    return matched


def _notify_mentions(db: Session, chat: Chat, message: Message) -> None:
    if message.mentions_all:
        recipients = [member for member in (chat.participants or []) if member != message.sender_id]
    else:
        recipients = _resolve_mentioned_users(db, chat, extract_user_mentions(message.content))
    for recipient in recipients:
        try:
            notify_mention(
                db,
                mentioned_user_id=recipient,
                mentioner_id=message.sender_id,
                mentioner_name=message.sender_name,
                context_preview=message.content,
                chat_id=chat.id,
            )
        except (SQLAlchemyError, ValueError):
            db.rollback()
            logger.warning("Mention notification to %s failed for message %s", recipient, message.id)


def send_message(
    db: Session,
    chat_id: str | None,
    payload: MessageSendRequest,
    *,
    cache: CacheManager | None = None,
) -> Message:
    """Validate, authorize and persist a chat message, then update denormalized state."""

    chat_id = _require_id(chat_id, "Invalid chat ID")
    if not payload.sender_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing required message fields")

    content = payload.content or ""
    has_content = bool(content.strip())
    images = [url for url in payload.images if url]
    has_images = bool(images)
    if not has_content and not has_images:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=EMPTY_MESSAGE_DETAIL)

    enforce_permission(
        can_user_send_message(db, chat_id, payload.sender_id),
        "User does not have permission to send messages in this chat",
    )

    mentions_all = False
    if has_content and check_for_everyone_mention(content):
        mentions_all = can_user_mention_everyone(db, chat_id, payload.sender_id).allowed
        if not mentions_all:
            logger.info("Ignoring everyone mention from %s in chat %s", payload.sender_id, chat_id)

    cache = cache or get_cache_manager()
    sender_name = _resolve_sender_name(db, payload.sender_id, payload.sender_name, UserCache(cache))

    message = Message(
        chat_id=chat_id,
        sender_id=payload.sender_id,
        sender_name=sender_name,
        content=content,
        mentions_all=mentions_all,
        read_by=[],
        created_at=_now(),
    )
    if has_images:
        message.image_url = images[0]
    if payload.reply_to_id:
        message.reply_to_id = payload.reply_to_id
        message.reply_to_content = payload.reply_to_content
        message.reply_to_sender = payload.reply_to_sender

    try:
        db.add(message)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Failed to persist message in chat %s", chat_id)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to persist message") from exc
    db.refresh(message)

    preview = content[:LAST_MESSAGE_PREVIEW_CHARS] if has_content else IMAGE_MESSAGE_PREVIEW
    _update_chat_after_send(db, chat_id, preview)
    if message.image_url:
        ImageCache(cache).cache_image(message.image_url)
    _push_to_cache(cache, to_message_response(message))

    chat = db.get(Chat, chat_id)
    if chat is not None and has_content:
        _notify_mentions(db, chat, message)

    return message


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------


def _fetch_messages(db: Session, chat_id: str, limit: int, offset: int) -> list[Message]:
    stmt = (
        select(Message)
        .where(Message.chat_id == chat_id)
        .order_by(Message.created_at.desc(), Message.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(db.scalars(stmt))


def _cached_page(value: object, page_size: int, *, partial_ok: bool = False) -> list[MessageResponse] | None:
    # Cached first pages are stored as {"limit": n, "messages": [...]}, newest first.
    if not isinstance(value, dict) or not isinstance(value.get("messages"), list):
        return None
    stored_limit = int(value.get("limit") or 0)
    items = value["messages"]
    covers_request = stored_limit >= page_size or len(items) < stored_limit
    if not covers_request and not partial_ok:
        return None
    return [MessageResponse.model_validate(item) for item in items[:page_size]]


def get_messages(
    db: Session,
    chat_id: str | None,
    limit: int = 50,
    offset: int = 0,
    *,
    use_cache: bool = True,
    cache: CacheManager | None = None,
) -> list[MessageResponse]:
    """Return a page of messages, newest first.

    The first page is served from the cache while the entry is fresh. A
    database failure on the first page falls back to a stale cached copy when
    one exists.
    """

    chat_id = _require_id(chat_id, "Invalid chat ID")
    page_size = max(1, min(limit, get_settings().message_page_limit))
    offset = max(0, offset)
    cache_key = get_chat_messages_cache_key(chat_id)

    entry = None
    if offset == 0:
        cache = cache or get_cache_manager()
        entry = cache.peek(cache_key)
        if use_cache and entry is not None and cache.is_fresh(entry):
            cached = _cached_page(entry.value, page_size)
            if cached is not None:
                return cached

    try:
        records = _fetch_messages(db, chat_id, page_size, offset)
    except SQLAlchemyError as exc:
        db.rollback()
        stale = _cached_page(entry.value, page_size, partial_ok=True) if entry is not None else None
        if stale is not None:
            logger.warning("Serving stale cached messages for chat %s after fetch failure", chat_id)
            return stale
        logger.error("Fetching messages for chat %s failed", chat_id)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to load messages") from exc

    messages = [to_message_response(record) for record in records]
    if offset == 0 and cache is not None:
        cache.set(cache_key, {"limit": page_size, "messages": [item.model_dump(mode="json") for item in messages]})
    return messages


def get_message(db: Session, message_id: str | None) -> Message:
    message = db.get(Message, _require_id(message_id, "Invalid message ID"))
    if message is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Message not found")
    return message


def delete_message(
    db: Session,
    message_id: str,
    user_id: str,
    *,
    cache: CacheManager | None = None,
) -> MessageResponse:
    """Delete the sender's own message and return its last known state."""

    message = get_message(db, message_id)
    if message.sender_id != user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You can only delete your own messages")
    snapshot = to_message_response(message)

    chat = db.get(Chat, message.chat_id)
    if chat is not None and message.id in (chat.pinned_messages or []):
        chat.pinned_messages = [item for item in chat.pinned_messages if item != message.id]

    try:
        db.delete(message)
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to delete message") from exc

    (cache or get_cache_manager()).remove(get_chat_messages_cache_key(snapshot.chat_id))
    return snapshot


# ---------------------------------------------------------------------------
# Read receipts
# ---------------------------------------------------------------------------


def mark_message_as_read(
    db: Session,
    message_id: str,
    user_id: str,
    *,
    cache: CacheManager | None = None,
) -> Message:
    """Append ``user_id`` to the message's ``read_by`` list once.

    The cached first page of the chat is dropped so readers see the receipt.
    """

    _require_id(user_id, "Invalid user ID")
    message = get_message(db, message_id)
    readers = list(message.read_by or [])
    if user_id in readers:
        return message
    message.read_by = [*readers, user_id]
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to mark message as read") from exc
    db.refresh(message)
    (cache or get_cache_manager()).remove(get_chat_messages_cache_key(message.chat_id))
    return message


def _mark_latest_as_read(
    db: Session,
    chat_id: str,
    user_id: str,
    window: int,
    cache: CacheManager | None,
) -> int:
    if not chat_id or not user_id:
        return 0
    marked = 0
    try:
        messages = _fetch_messages(db, chat_id, window, 0)
    except SQLAlchemyError:
        db.rollback()
        logger.warning("Could not load messages to mark chat %s as read", chat_id)
        return 0

    for message in messages:
        readers = list(message.read_by or [])
        if message.sender_id == user_id or user_id in readers:
            continue
        message.read_by = [*readers, user_id]
        try:
            db.commit()
            marked += 1
        except SQLAlchemyError:
            db.rollback()
            logger.warning("Read receipt for message %s was not stored", message.id)
    if marked:
        (cache or get_cache_manager()).remove(get_chat_messages_cache_key(chat_id))
    return marked


def mark_all_messages_as_read(db: Session, chat_id: str, user_id: str, *, cache: CacheManager | None = None) -> int:
    """Best-effort read receipts over the latest messages; returns how many were marked."""

    return _mark_latest_as_read(db, chat_id, user_id, get_settings().read_receipt_batch, cache)


def mark_chat_as_read(db: Session, chat_id: str, user_id: str, *, cache: CacheManager | None = None) -> int:
    return _mark_latest_as_read(db, chat_id, user_id, get_settings().chat_read_batch, cache)


def get_unread_count(db: Session, chat_id: str, user_id: str) -> int:
    if not chat_id or not user_id:
        return 0
    try:
        messages = _fetch_messages(db, chat_id, get_settings().read_receipt_batch, 0)
    except SQLAlchemyError:
        db.rollback()
        logger.warning("Unread count for chat %s failed", chat_id)
        return 0
    return sum(
        1 for message in messages
        if message.sender_id != user_id and user_id not in (message.read_by or [])
    )


# ---------------------------------------------------------------------------
# Pins
# ---------------------------------------------------------------------------


def _load_chat_message(db: Session, chat_id: str, message_id: str) -> Message:
    message = get_message(db, message_id)
    if message.chat_id != chat_id:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Message does not belong to this chat")
    return message


def _set_pinned_list(db: Session, chat_id: str, message_id: str, pinned: bool) -> None:
    # Second write of the pin pair; the message flag is already committed.
    try:
        chat = db.get(Chat, chat_id)
        if chat is None:
            return
        current = list(chat.pinned_messages or [])
        if pinned and message_id not in current:
            chat.pinned_messages = [*current, message_id]
        elif not pinned and message_id in current:
            chat.pinned_messages = [item for item in current if item != message_id]
        else:
            return
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.warning("Pinned list of chat %s is out of sync for message %s", chat_id, message_id)


def pin_message(
    db: Session,
    chat_id: str,
    message_id: str,
    user_id: str,
    *,
    cache: CacheManager | None = None,
) -> Message:
    enforce_permission(can_user_pin_message(db, chat_id, user_id), "You cannot pin messages in this chat")
    message = _load_chat_message(db, chat_id, message_id)
    if not message.is_pinned:
        message.is_pinned = True
        message.pinned_by = user_id
        message.pinned_at = _now()
        try:
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to pin message") from exc
        db.refresh(message)
    _set_pinned_list(db, chat_id, message_id, True)
    (cache or get_cache_manager()).remove(get_chat_messages_cache_key(chat_id))
    return message


def unpin_message(
    db: Session,
    chat_id: str,
    message_id: str,
    user_id: str,
    *,
    cache: CacheManager | None = None,
) -> Message:
    enforce_permission(can_user_pin_message(db, chat_id, user_id), "You cannot unpin messages in this chat")
    message = _load_chat_message(db, chat_id, message_id)
    if message.is_pinned:
        message.is_pinned = False
        message.pinned_by = None
        message.pinned_at = None
        try:
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Failed to unpin message") from exc
        db.refresh(message)
    _set_pinned_list(db, chat_id, message_id, False)
    (cache or get_cache_manager()).remove(get_chat_messages_cache_key(chat_id))
    return message


def get_pinned_messages(db: Session, chat_id: str) -> list[Message]:
    """Return pinned messages, repairing the chat's pinned list from the message flags."""

    chat = db.get(Chat, _require_id(chat_id, "Invalid chat ID"))
    if chat is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Chat not found")

    stmt = (
        select(Message)
        .where(Message.chat_id == chat_id, Message.is_pinned.is_(True))
        .order_by(Message.pinned_at.desc(), Message.id.desc())
    )
    pinned = list(db.scalars(stmt))
    pinned_ids = [message.id for message in pinned]

    if set(pinned_ids) != set(chat.pinned_messages or []):
        logger.info("Repairing pinned list for chat %s", chat_id)
        chat.pinned_messages = pinned_ids
        try:
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.warning("Pinned list repair for chat %s failed", chat_id)
    return pinned


__all__ = [
    "delete_message",
    "enforce_permission",
    "get_chat_messages_cache_key",
    "get_message",
    "get_messages",
    "get_pinned_messages",
    "get_unread_count",
    "mark_all_messages_as_read",
    "mark_chat_as_read",
    "mark_message_as_read",
    "pin_message",
    "send_message",
    "to_message_response",
    "unpin_message",
]
