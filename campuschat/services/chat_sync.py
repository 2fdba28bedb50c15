"""Message list reconciliation for an open chat room.

A :class:`ChatRoomSync` keeps the chronological message list a chat screen
renders. It loads cache-first, applies realtime events from the chat stream,
polls the database on an interval as a safety net, and tracks optimistic sends
until the server confirms them.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, TypeVar
from uuid import uuid4

from fastapi import HTTPException, status
from pydantic import ValidationError
from sqlalchemy.orm import Session

from ..config import get_settings
from ..constants import EMPTY_MESSAGE_DETAIL
from ..schemas import MessageResponse, MessageSendRequest
from .cache_manager import CacheManager
from .message_service import get_messages, mark_chat_as_read, send_message, to_message_response
from .message_stream import MessageStreamManager, message_stream_manager, publish_message_event
from .notification_service import event_loop as notification_event_loop

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]
ChangeCallback = Callable[[list[MessageResponse]], None]
T = TypeVar("T")

LOCAL_ID_PREFIX = "local-"
PENDING = "pending"
FAILED = "failed"


def _sort_key(message: MessageResponse) -> tuple[datetime, str]:
    created = message.created_at
    if created.tzinfo is None:
        created = created.replace(tzinfo=timezone.utc)
    return created, message.id


def _chronological(messages: Iterable[MessageResponse]) -> list[MessageResponse]:
    return sorted(messages, key=_sort_key)


def _send_and_render(db: Session, chat_id: str, payload: MessageSendRequest, cache: CacheManager | None) -> MessageResponse:
    return to_message_response(send_message(db, chat_id, payload, cache=cache))


class ChatRoomSync:
    """Owns the message list of one chat for one user."""

    def __init__(
        self,
        chat_id: str,
        user_id: str,
        session_factory: SessionFactory,
        *,
        user_name: str | None = None,
        stream: MessageStreamManager | None = None,
        poll_interval: float | None = None,
        limit: int = 100,
        cache: CacheManager | None = None,
        on_change: ChangeCallback | None = None,
    ) -> None:
        self.chat_id = chat_id
        self.user_id = user_id
        self.user_name = user_name
        self._session_factory = session_factory
        self._stream = stream or message_stream_manager
        self.poll_interval = poll_interval if poll_interval is not None else get_settings().chat_poll_interval_seconds
        self.limit = limit
        self._cache = cache
        self._on_change = on_change

        self._messages: list[MessageResponse] = []
        self._outbox: dict[str, MessageSendRequest] = {}
        self._last_seen_id: str | None = None
        self._unsubscribe: Callable[[], None] | None = None
        self._poll_task: asyncio.Task[None] | None = None
        self._started = False
        self._paused = False

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def messages(self) -> list[MessageResponse]:
        return list(self._messages)

    @property
    def is_polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    def _index_of(self, message_id: str) -> int | None:
        for index, message in enumerate(self._messages):
            if message.id == message_id:
                return index
        return None

    def _apply(self, messages: list[MessageResponse]) -> bool:
        if messages == self._messages:
            return False
        self._messages = messages
        if self._on_change is not None:
            try:
                self._on_change(self.messages)
            except Exception:
                logger.exception("Change callback failed for chat %s", self.chat_id)
        return True

    def _call(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        with self._session_factory() as session:
            return func(session, *args, **kwargs)

    async def _run(self, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        token = notification_event_loop.set(asyncio.get_running_loop())
        try:
            return await asyncio.to_thread(self._call, func, *args, **kwargs)
        finally:
            notification_event_loop.reset(token)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> list[MessageResponse]:
        """Load the latest messages, subscribe to the chat stream and begin polling."""

        if self._started:
            return self.messages
        page = await self._run(get_messages, self.chat_id, self.limit, 0, use_cache=True, cache=self._cache)
        if page:
            self._last_seen_id = page[0].id
        self._apply(_chronological(page))

        self._unsubscribe = self._stream.subscribe(self.chat_id, self._handle_event)
        self._started = True
        if not self._paused:
            self._start_polling(immediate=False)
        return self.messages

    async def stop(self) -> None:
        self._started = False
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        await self._cancel_polling()

    def pause(self) -> None:
        self._paused = True
        if self._poll_task is not None:
            self._poll_task.cancel()
            self._poll_task = None

    def resume(self) -> None:
        self._paused = False
        if self._started and not self.is_polling:
            self._start_polling(immediate=True)

    def on_app_state_change(self, state: str) -> None:
        """Pause polling while the app is backgrounded and resume on return."""

        if state == "active":
            self.resume()
        elif state in ("background", "inactive"):
            self.pause()
        else:
            logger.debug("Ignoring unknown app state %s", state)

    def _start_polling(self, *, immediate: bool) -> None:
        loop = asyncio.get_running_loop()
        self._poll_task = loop.create_task(self._poll_loop(immediate))

    async def _cancel_polling(self) -> None:
        task, self._poll_task = self._poll_task, None
        if task is None:
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def _poll_loop(self, immediate: bool) -> None:
        if not immediate:
            await asyncio.sleep(self.poll_interval)
        while True:
            try:
                await self.poll_once()
            except Exception:
                logger.exception("Polling chat %s failed", self.chat_id)
            await asyncio.sleep(self.poll_interval)

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def poll_once(self) -> bool:
        """Fetch the latest page and merge it; returns whether the list changed."""

        page = await self._run(get_messages, self.chat_id, self.limit, 0, use_cache=False, cache=self._cache)
        newest_id = page[0].id if page else None
        if newest_id == self._last_seen_id:
            return False
        self._last_seen_id = newest_id
        return self._apply(self._merge(_chronological(page)))

    def _merge(self, fetched: list[MessageResponse]) -> list[MessageResponse]:
        fetched_ids = {message.id for message in fetched}
        newest_key = _sort_key(fetched[-1]) if fetched else None
        kept: list[MessageResponse] = []
        for message in self._messages:
            if message.id in fetched_ids:
                continue
            if message.delivery_status in (PENDING, FAILED):
                kept.append(message)
            elif newest_key is not None and _sort_key(message) > newest_key:
                # Delivered through the stream after the page was read.
                kept.append(message)
        return _chronological([*fetched, *kept])

    # ------------------------------------------------------------------
    # Realtime events
    # ------------------------------------------------------------------

    async def _handle_event(self, payload: dict[str, Any]) -> None:
        event_type = payload.get("type")
        raw = payload.get("message")
        if payload.get("chat_id") not in (None, self.chat_id) or not isinstance(raw, dict):
            return
        try:
            message = MessageResponse.model_validate(raw)
        except ValidationError:
            logger.warning("Dropping malformed %s event for chat %s", event_type, self.chat_id)
            return

        index = self._index_of(message.id)
        if event_type == "message.created":
            if index is not None:
                return
            self._apply(_chronological([*self._messages, message]))
        elif event_type == "message.deleted":
            if index is None:
                return
            self._apply([item for item in self._messages if item.id != message.id])
        elif event_type in ("message.pinned", "message.unpinned", "message.read"):
            if index is None:
                return
            updated = list(self._messages)
            updated[index] = message
            self._apply(updated)
        else:
            logger.debug("Unhandled chat event %s", event_type)

    # ------------------------------------------------------------------
    # Sending
    # ------------------------------------------------------------------

    async def send(
        self,
        content: str | None = None,
        images: list[str] | None = None,
        *,
        reply_to: MessageResponse | None = None,
    ) -> MessageResponse:
        """Show the message immediately, then replace it with the stored copy.

        On failure the local copy stays in the list marked ``failed`` and the
        error is re-raised; :meth:`retry` resends it.
        """

        images = [url for url in images or [] if url]
        if not (content or "").strip() and not images:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=EMPTY_MESSAGE_DETAIL)

        payload = MessageSendRequest(
            sender_id=self.user_id,
            sender_name=self.user_name,
            content=content,
            images=images,
            reply_to_id=reply_to.id if reply_to else None,
            reply_to_content=reply_to.content if reply_to else None,
            reply_to_sender=reply_to.sender_name if reply_to else None,
        )
        local = MessageResponse(
            id=f"{LOCAL_ID_PREFIX}{uuid4().hex}",
            chat_id=self.chat_id,
            sender_id=self.user_id,
            sender_name=self.user_name,
            content=content or "",
            image_url=images[0] if images else None,
            reply_to_id=payload.reply_to_id,
            reply_to_content=payload.reply_to_content,
            reply_to_sender=payload.reply_to_sender,
            created_at=datetime.now(timezone.utc),
            delivery_status=PENDING,
        )
        self._outbox[local.id] = payload
        self._apply(_chronological([*self._messages, local]))
        return await self._deliver(local.id)

    async def retry(self, local_id: str) -> MessageResponse:
        index = self._index_of(local_id)
        if local_id not in self._outbox or index is None or self._messages[index].delivery_status != FAILED:
            raise ValueError(f"No failed message with id {local_id}")
        updated = list(self._messages)
        updated[index] = updated[index].model_copy(update={"delivery_status": PENDING})
        self._apply(updated)
        return await self._deliver(local_id)

    async def _deliver(self, local_id: str) -> MessageResponse:
        payload = self._outbox[local_id]
        try:
            stored = await self._run(_send_and_render, self.chat_id, payload, self._cache)
        except Exception:
            self._set_status(local_id, FAILED)
            logger.warning("Message %s in chat %s failed to send", local_id, self.chat_id)
            raise

        self._outbox.pop(local_id, None)
        remaining = [item for item in self._messages if item.id not in (local_id, stored.id)]
        self._apply(_chronological([*remaining, stored]))
        await publish_message_event(stored, stream=self._stream)
        return stored

    def _set_status(self, local_id: str, delivery_status: str) -> None:
        index = self._index_of(local_id)
        if index is None:
            return
        updated = list(self._messages)
        updated[index] = updated[index].model_copy(update={"delivery_status": delivery_status})
        self._apply(updated)

    async def mark_read(self) -> int:
        return await self._run(mark_chat_as_read, self.chat_id, self.user_id, cache=self._cache)


__all__ = ["ChatRoomSync", "LOCAL_ID_PREFIX"]
