"""Per-chat event fan-out to WebSocket clients and in-process listeners."""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable

from fastapi import WebSocket

from ..schemas import MessageResponse

logger = logging.getLogger(__name__)

ChatEventListener = Callable[[dict[str, Any]], Awaitable[None]]


class MessageStreamManager:
    """Track per-chat WebSocket connections and listeners, and broadcast events."""

    def __init__(self) -> None:
        self._channels: dict[str, set[WebSocket]] = {}
        self._connections: dict[WebSocket, str] = {}
        self._listeners: dict[str, list[ChatEventListener]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, chat_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            group = self._channels.setdefault(chat_id, set())
            group.add(websocket)
            self._connections[websocket] = chat_id

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            chat_id = self._connections.pop(websocket, None)
            if not chat_id:
                return
            group = self._channels.get(chat_id)
            if group is None:
                return
            group.discard(websocket)
            if not group:
                self._channels.pop(chat_id, None)

    def subscribe(self, chat_id: str, listener: ChatEventListener) -> Callable[[], None]:
        """Register an in-process listener; returns a callable that removes it."""

        self._listeners.setdefault(chat_id, []).append(listener)

        def _unsubscribe() -> None:
            listeners = self._listeners.get(chat_id)
            if not listeners:
                return
            if listener in listeners:
                listeners.remove(listener)
            if not listeners:
                self._listeners.pop(chat_id, None)

        return _unsubscribe

    def listener_count(self, chat_id: str) -> int:
        return len(self._listeners.get(chat_id, ()))

    async def broadcast(self, chat_id: str | None, payload: dict[str, Any]) -> None:
        if not chat_id:
            return
        for listener in list(self._listeners.get(chat_id, ())):
            try:
                await listener(payload)
            except Exception:
                logger.exception("Chat listener failed for chat %s", chat_id)

        serialized = json.dumps(payload, default=str)
        async with self._lock:
            targets = list(self._channels.get(chat_id, ()))
        for connection in targets:
            try:
                await connection.send_text(serialized)
            except Exception:
                await self.disconnect(connection)


message_stream_manager = MessageStreamManager()


async def publish_message_event(
    message: MessageResponse,
    event_type: str = "message.created",
    *,
    stream: MessageStreamManager | None = None,
) -> None:
    target = stream or message_stream_manager
    await target.broadcast(
        message.chat_id,
        {
            "type": event_type,
            "chat_id": message.chat_id,
            "message": message.model_dump(mode="json"),
        },
    )


__all__ = ["ChatEventListener", "MessageStreamManager", "message_stream_manager", "publish_message_event"]
