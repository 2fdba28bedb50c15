"""Tests for the TTL cache over the key/value table."""
from __future__ import annotations

import os
from typing import Iterator

import pytest
from sqlalchemy import select

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///./test_campuschat.db")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

from campuschat.database import Base, SessionLocal, engine  # noqa: E402
from campuschat.models import KeyValueEntry  # noqa: E402
from campuschat.services.cache_manager import CacheManager, ImageCache, UserCache  # noqa: E402


class FakeClock:
    def __init__(self, now: float = 1_000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(scope="module", autouse=True)
def _create_schema() -> Iterator[None]:
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def _clean_database() -> Iterator[None]:
    with SessionLocal() as session:
        for table in reversed(Base.metadata.sorted_tables):
            session.execute(table.delete())
        session.commit()
    yield


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def cache(clock: FakeClock) -> CacheManager:
    return CacheManager(SessionLocal, clock=clock, default_expiry=60)


def _stored_keys() -> list[str]:
    with SessionLocal() as session:
        return list(session.scalars(select(KeyValueEntry.key)))


def test_set_then_get_returns_value(cache: CacheManager):
    cache.set("profile", {"name": "Sara", "stage": 2})
    assert cache.get("profile") == {"name": "Sara", "stage": 2}
    assert _stored_keys() == ["cache_profile"]


def test_expired_entry_is_a_miss_and_is_evicted(cache: CacheManager, clock: FakeClock):
    cache.set("profile", {"name": "Sara"})
    clock.advance(61)
    assert cache.get("profile") is None
    assert _stored_keys() == []


def test_entry_at_exact_expiry_is_still_fresh(cache: CacheManager, clock: FakeClock):
    cache.set("profile", "value", expiry_time=10)
    clock.advance(10)
    assert cache.get("profile") == "value"


def test_peek_keeps_stale_entries(cache: CacheManager, clock: FakeClock):
    cache.set("messages_chat", [{"id": "m1"}])
    clock.advance(120)
    entry = cache.peek("messages_chat")
    assert entry is not None
    assert entry.value == [{"id": "m1"}]
    assert not cache.is_fresh(entry)
    assert _stored_keys() == ["cache_messages_chat"]


def test_clear_only_removes_cache_entries(cache: CacheManager):
    with SessionLocal() as session:
        session.add(KeyValueEntry(key="session_token", value="abc"))
        session.commit()
    cache.set("one", 1)
    cache.set("two", 2)

    cache.clear()

    assert _stored_keys() == ["session_token"]


def test_corrupt_entry_degrades_to_miss(cache: CacheManager):
    with SessionLocal() as session:
        session.add(KeyValueEntry(key="cache_broken", value="{not json"))
        session.commit()
    assert cache.get("broken") is None


def test_unserializable_value_is_not_stored(cache: CacheManager):
    circular: list = []
    circular.append(circular)
    cache.set("bad", circular)
    assert cache.get("bad") is None
    assert _stored_keys() == []


def test_image_cache_outlives_regular_entries(cache: CacheManager, clock: FakeClock):
    images = ImageCache(cache, multiplier=7)
    url = "https://img.example.com/a.jpg"
    assert images.cache_image(url) == url
    cache.set("regular", True)

    clock.advance(61)
    assert cache.get("regular") is None
    assert images.get_cached_image(url) == url

    clock.advance(60 * 7)
    assert images.get_cached_image(url) is None
    assert images.cache_image(None) is None


def test_user_cache_round_trip(cache: CacheManager):
    users = UserCache(cache)
    users.cache_user_data("u1", {"name": "Omar"})
    users.cache_user_data("u2", None)
    assert users.get_cached_user_data("u1") == {"name": "Omar"}
    assert users.get_cached_user_data("u2") is None
    assert users.get_cached_user_data(None) is None


def test_long_image_urls_fit_the_key_column(cache: CacheManager):
    images = ImageCache(cache)
    url = "https://img.example.com/" + "a" * 1000 + ".jpg"
    assert images.cache_image(url) == url
    assert images.get_cached_image(url) == url
    (key,) = _stored_keys()
    assert len(key) <= KeyValueEntry.__table__.c.key.type.length
