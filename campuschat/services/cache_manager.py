"""TTL cache layered over the persistent key/value store.

Entries are stored as JSON envelopes ``{"value", "timestamp", "expiryTime"}``
under a ``cache_`` prefixed key. Staleness is computed at read time and expired
entries are evicted lazily by :meth:`CacheManager.get`; there is no size bound
and no background sweep.
"""
from __future__ import annotations

import hashlib
import json
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..config import get_settings
from ..constants import CACHE_PREFIX
from ..models import KeyValueEntry

logger = logging.getLogger(__name__)

SessionFactory = Callable[[], Session]


@dataclass(frozen=True, slots=True)
class CacheEntry:
    value: Any
    timestamp: float
    expiry_time: float

    def age(self, now: float) -> float:
        return now - self.timestamp

    def is_stale(self, now: float) -> bool:
        return self.age(now) > self.expiry_time


class CacheManager:
    """Generic key/value cache with per-entry expiry."""

    def __init__(
        self,
        session_factory: SessionFactory,
        *,
        clock: Callable[[], float] = time.time,
        default_expiry: float | None = None,
    ) -> None:
        self._session_factory = session_factory
        self._clock = clock
        if default_expiry is None:
            default_expiry = get_settings().cache_expiry_seconds
        self.default_expiry = default_expiry

    @staticmethod
    def storage_key(key: str) -> str:
        return f"{CACHE_PREFIX}{key}"

    def set(self, key: str, value: Any, expiry_time: float | None = None) -> None:
        envelope = {
            "value": value,
            "timestamp": self._clock(),
            "expiryTime": self.default_expiry if expiry_time is None else expiry_time,
        }
        try:
            raw = json.dumps(envelope, default=str)
        except (TypeError, ValueError):
            logger.error("Cache set error: value for %s is not serializable", key)
            return
        try:
            with self._session_factory() as session:
                session.merge(KeyValueEntry(key=self.storage_key(key), value=raw))
                session.commit()
        except SQLAlchemyError:
            logger.error("Cache set error for %s", key, exc_info=True)

    def peek(self, key: str) -> CacheEntry | None:
        """Return the stored entry, stale or not, without evicting it."""

        try:
            with self._session_factory() as session:
                row = session.get(KeyValueEntry, self.storage_key(key))
                raw = row.value if row is not None else None
        except SQLAlchemyError:
            logger.error("Cache get error for %s", key, exc_info=True)
            return None
        if raw is None:
            return None
        try:
            envelope = json.loads(raw)
            return CacheEntry(
                value=envelope["value"],
                timestamp=float(envelope["timestamp"]),
                expiry_time=float(envelope["expiryTime"]),
            )
        except (ValueError, KeyError, TypeError):
            logger.error("Cache get error: corrupt entry for %s", key)
            return None

    def is_fresh(self, entry: CacheEntry) -> bool:
        return not entry.is_stale(self._clock())

    def get(self, key: str) -> Any | None:
        entry = self.peek(key)
        if entry is None:
            return None
        if entry.is_stale(self._clock()):
            self.remove(key)
            return None
        return entry.value

    def remove(self, key: str) -> None:
        try:
            with self._session_factory() as session:
                session.execute(delete(KeyValueEntry).where(KeyValueEntry.key == self.storage_key(key)))
                session.commit()
        except SQLAlchemyError:
            logger.error("Cache remove error for %s", key, exc_info=True)

    def clear(self) -> None:
        """Remove every cache entry, leaving other key/value records untouched."""

        try:
            with self._session_factory() as session:
                keys = list(session.scalars(select(KeyValueEntry.key)))
                cache_keys = [key for key in keys if key.startswith(CACHE_PREFIX)]
                if cache_keys:
                    session.execute(delete(KeyValueEntry).where(KeyValueEntry.key.in_(cache_keys)))
                session.commit()
        except SQLAlchemyError:
            logger.error("Cache clear error", exc_info=True)


class ImageCache:
    """Remembers hosted image URLs for longer than regular cache entries."""

    def __init__(self, cache: CacheManager, *, multiplier: int | None = None) -> None:
        self._cache = cache
        if multiplier is None:
            multiplier = get_settings().image_cache_multiplier
        self.expiry_time = cache.default_expiry * multiplier

    @staticmethod
    def key_for(url: str) -> str:
        # Keyed by digest; URLs may be longer than the key column.
        digest = hashlib.sha256(url.encode("utf-8")).hexdigest()
        return f"image_{digest}"

    def cache_image(self, url: str | None) -> str | None:
        if not url:
            return None
        cached = self._cache.get(self.key_for(url))
        if cached:
            return cached
        self._cache.set(self.key_for(url), url, self.expiry_time)
        return url

    def get_cached_image(self, url: str | None) -> str | None:
        if not url:
            return None
        return self._cache.get(self.key_for(url))


class UserCache:
    def __init__(self, cache: CacheManager) -> None:
        self._cache = cache

    def cache_user_data(self, user_id: str | None, user_data: dict[str, Any] | None) -> None:
        if not user_id or not user_data:
            return
        self._cache.set(f"user_{user_id}", user_data)

    def get_cached_user_data(self, user_id: str | None) -> dict[str, Any] | None:
        if not user_id:
            return None
        return self._cache.get(f"user_{user_id}")


_default_cache: CacheManager | None = None


def get_cache_manager() -> CacheManager:
    """Return the process-wide cache bound to the application session factory."""

    global _default_cache
    if _default_cache is None:
        from ..database import create_session

        _default_cache = CacheManager(create_session)
    return _default_cache


def set_cache_manager(cache: CacheManager | None) -> None:
    """Swap the process-wide cache; ``None`` resets to the lazily built default."""

    global _default_cache
    _default_cache = cache


__all__ = [
    "CacheEntry",
    "CacheManager",
    "ImageCache",
    "UserCache",
    "get_cache_manager",
    "set_cache_manager",
]
