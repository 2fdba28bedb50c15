"""Per-user notification events for WebSocket clients and in-process listeners."""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Iterable

from fastapi import WebSocket

logger = logging.getLogger(__name__)

NotificationListener = Callable[[dict[str, Any]], Awaitable[None]]


class NotificationStreamManager:
    """Routes notification events to every socket and listener of a recipient.

    A user may hold several sockets at once (phone and browser), so channels
    are keyed by recipient id and an event is delivered to all of them.
    Sockets that fail on send are dropped.
    """

    def __init__(self) -> None:
        self._sockets: dict[str, set[WebSocket]] = {}
        self._owners: dict[WebSocket, str] = {}
        self._listeners: dict[str, list[NotificationListener]] = {}
        self._lock = asyncio.Lock()

    async def connect(self, user_id: str, websocket: WebSocket) -> None:
        await websocket.accept()
        async with self._lock:
            self._sockets.setdefault(user_id, set()).add(websocket)
            self._owners[websocket] = user_id

    async def disconnect(self, websocket: WebSocket) -> None:
        async with self._lock:
            user_id = self._owners.pop(websocket, None)
            sockets = self._sockets.get(user_id) if user_id else None
            if sockets is None:
                return
            sockets.discard(websocket)
            if not sockets:
                del self._sockets[user_id]

    def subscribe(self, user_id: str, listener: NotificationListener) -> Callable[[], None]:
        self._listeners.setdefault(user_id, []).append(listener)

        def _unsubscribe() -> None:
            listeners = self._listeners.get(user_id, [])
            if listener in listeners:
                listeners.remove(listener)
            if not listeners:
                self._listeners.pop(user_id, None)

        return _unsubscribe

    def connection_count(self, user_id: str) -> int:
        return len(self._sockets.get(user_id, ())) + len(self._listeners.get(user_id, ()))

    async def broadcast(self, users: str | Iterable[str], payload: dict[str, Any]) -> None:
        if isinstance(users, str):
            users = [users]
        recipients = list(dict.fromkeys(user for user in users if user))
        if not recipients:
            return

        for user_id in recipients:
            for listener in list(self._listeners.get(user_id, ())):
                try:
                    await listener(payload)
                except Exception:
                    logger.exception("Notification listener failed for user %s", user_id)

        serialized = json.dumps(payload, default=str)
        async with self._lock:
            sockets = [ws for user_id in recipients for ws in self._sockets.get(user_id, ())]
        for ws in sockets:
            try:
                await ws.send_text(serialized)
            except Exception:
                logger.debug("Dropping notification socket after failed send", exc_info=True)
                await self.disconnect(ws)


notification_stream_manager = NotificationStreamManager()


__all__ = ["NotificationListener", "NotificationStreamManager", "notification_stream_manager"]
