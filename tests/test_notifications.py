"""Tests for notification helpers."""
from __future__ import annotations

import asyncio
import os
from typing import Any, Iterator

import pytest
from fastapi import HTTPException

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///./test_campuschat.db")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

from campuschat.database import Base, SessionLocal, engine  # noqa: E402
from campuschat.services import notification_service  # noqa: E402
from campuschat.services.notification_stream import NotificationStreamManager  # noqa: E402
from campuschat.services.notification_service import (  # noqa: E402
    NotificationType,
    count_unread_notifications,
    create_notification,
    delete_all_notifications,
    delete_notification,
    list_notifications,
    mark_notification_as_read,
    notify_follow,
    notify_mention,
    notify_post_like,
    notify_post_reply,
)


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


def test_self_notifications_are_skipped():
    with SessionLocal() as session:
        result = notify_post_like(
            session,
            post_owner_id="ana",
            liker_id="ana",
            liker_name="Ana",
            liker_photo=None,
            post_id="p1",
            post_preview="my post",
        )
        assert result is None
        assert list_notifications(session, "ana") == []


def test_preview_is_truncated():
    with SessionLocal() as session:
        notification = notify_post_reply(
            session,
            post_owner_id="ana",
            replier_id="ben",
            replier_name="Ben",
            replier_photo="https://img.example.com/ben.jpg",
            post_id="p1",
            reply_preview="r" * 80,
        )
        assert notification.post_preview == "r" * 50
        assert notification.type == NotificationType.POST_REPLY


def test_unknown_type_and_missing_recipient_are_rejected():
    with SessionLocal() as session:
        with pytest.raises(ValueError):
            create_notification(session, user_id="ana", sender_id="ben", type_="poke")
        with pytest.raises(ValueError):
            create_notification(session, user_id="", sender_id="ben", type_=NotificationType.FOLLOW)


def test_listing_read_and_delete():
    with SessionLocal() as session:
        follow = notify_follow(session, followed_user_id="ana", follower_id="ben", follower_name="Ben", follower_photo=None)
        mention = notify_mention(
            session,
            mentioned_user_id="ana",
            mentioner_id="cai",
            mentioner_name="Cai",
            context_preview="@ana check this",
            chat_id="chat-1",
        )
        assert count_unread_notifications(session, "ana") == 2
        assert {item.id for item in list_notifications(session, "ana", limit=1, offset=0)} <= {follow.id, mention.id}
        assert len(list_notifications(session, "ana", limit=1, offset=1)) == 1

        with pytest.raises(HTTPException) as exc:
            mark_notification_as_read(session, follow.id, "ben")
        assert exc.value.status_code == 404

        assert mark_notification_as_read(session, follow.id, "ana").is_read is True
        assert count_unread_notifications(session, "ana") == 1

        delete_notification(session, follow.id, "ana")
        assert delete_all_notifications(session, "ana") == 1
        assert count_unread_notifications(session, "ana") == 0


def test_unread_count_without_user_is_zero():
    with SessionLocal() as session:
        assert count_unread_notifications(session, "") == 0


def test_listeners_receive_created_and_deleted_events(monkeypatch):
    stream = NotificationStreamManager()
    monkeypatch.setattr(notification_service, "notification_stream_manager", stream)
    received: list[dict[str, Any]] = []

    async def _record(payload: dict[str, Any]) -> None:
        received.append(payload)

    async def scenario() -> None:
        unsubscribe = stream.subscribe("ana", _record)
        assert stream.connection_count("ana") == 1
        with SessionLocal() as session:
            follow = notify_follow(session, followed_user_id="ana", follower_id="ben", follower_name="Ben", follower_photo=None)
            notify_follow(session, followed_user_id="ana", follower_id="cai", follower_name="Cai", follower_photo=None)
            notify_follow(session, followed_user_id="ben", follower_id="cai", follower_name="Cai", follower_photo=None)
            delete_notification(session, follow.id, "ana")
            assert delete_all_notifications(session, "ana") == 1
            assert delete_all_notifications(session, "ana") == 0
        for _ in range(5):
            await asyncio.sleep(0)
        unsubscribe()
        assert stream.connection_count("ana") == 0

    asyncio.run(scenario())

    assert [event["type"] for event in received] == [
        "notification.created",
        "notification.created",
        "notification.deleted",
        "notification.deleted_all",
    ]
    assert received[0]["notification"]["sender_id"] == "ben"
    assert received[2]["notification_id"] == received[0]["notification"]["id"]
