"""Tests for chat lifecycle helpers and per-user chat preferences."""
from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from typing import Iterator

import pytest
from fastapi import HTTPException
from sqlalchemy import select
from sqlalchemy.dialects import postgresql

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///./test_campuschat.db")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

from campuschat.database import Base, SessionLocal, engine  # noqa: E402
from campuschat.models import Chat, ChatMute, Message  # noqa: E402
from campuschat.schemas import GroupChatCreate  # noqa: E402
from campuschat.services import chat_service  # noqa: E402
from campuschat.services.chat_preferences_service import (  # noqa: E402
    bookmark_message,
    get_bookmarked_message_ids,
    get_mute_status,
    list_muted_chat_ids,
    mute_chat,
    unbookmark_message,
    unmute_chat,
)
from campuschat.services.chat_service import (  # noqa: E402
    create_group_chat,
    create_private_chat,
    delete_chat,
    initialize_group_chats_for_department,
    list_group_chats,
    list_user_chats,
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


def test_timed_mute_expires_on_read():
    with SessionLocal() as session:
        mute_chat(session, "ana", "chat-1", duration_minutes=10)
        assert get_mute_status(session, "ana", "chat-1") is not None

        mute = session.scalar(select(ChatMute))
        mute.muted_until = datetime.now(timezone.utc) - timedelta(minutes=1)
        session.commit()

        assert list_muted_chat_ids(session, "ana") == []
        assert get_mute_status(session, "ana", "chat-1") is None
        assert session.scalar(select(ChatMute)) is None


def test_mute_without_duration_lasts_until_unmuted():
    with SessionLocal() as session:
        mute = mute_chat(session, "ana", "chat-1")
        assert mute.muted_until is None
        assert mute.mute_type == "all"
        mute_chat(session, "ana", "chat-1", mute_type="mentions")
        assert len(list(session.scalars(select(ChatMute)))) == 1
        assert list_muted_chat_ids(session, "ana") == ["chat-1"]

        unmute_chat(session, "ana", "chat-1")
        unmute_chat(session, "ana", "chat-1")
        assert get_mute_status(session, "ana", "chat-1") is None

        with pytest.raises(HTTPException):
            mute_chat(session, "ana", "chat-1", mute_type="loud")


def test_bookmarks_are_kept_per_user_and_chat():
    with SessionLocal() as session:
        bookmark_message(session, "ana", "chat-1", "m1")
        bookmark_message(session, "ana", "chat-1", "m2")
        assert bookmark_message(session, "ana", "chat-1", "m1") == ["m1", "m2"]
        assert get_bookmarked_message_ids(session, "ben", "chat-1") == []

        assert unbookmark_message(session, "ana", "chat-1", "m1") == ["m2"]
        assert unbookmark_message(session, "ben", "chat-1", "m1") == []
        assert get_bookmarked_message_ids(session, "ana", "chat-1") == ["m2"]


def test_department_initialisation_creates_all_stage_chats():
    with SessionLocal() as session:
        created = initialize_group_chats_for_department(session, "Physics", [("1", "First Stage"), ("2", "Second Stage")])
        assert [chat.name for chat in created] == [
            "Physics - All Stages",
            "First Stage - Physics",
            "Second Stage - Physics",
        ]
        assert all(chat.requires_representative for chat in created[1:])
        assert not created[0].requires_representative

        stage_two = list_group_chats(session, "Physics", "2")
        assert sorted(chat.name for chat in stage_two) == ["Physics - All Stages", "Second Stage - Physics"]

        with pytest.raises(HTTPException):
            list_group_chats(session, "")


def test_private_chat_deletion_removes_messages():
    with SessionLocal() as session:
        chat = create_private_chat(session, "ana", "ben")
        session.add(Message(chat_id=chat.id, sender_id="ana", content="hi", read_by=[]))
        session.commit()

        with pytest.raises(HTTPException) as exc:
            delete_chat(session, chat.id, "mallory")
        assert exc.value.status_code == 403

        delete_chat(session, chat.id, "ben")
        assert session.get(Chat, chat.id) is None
        assert session.scalar(select(Message)) is None


def test_member_lookup_uses_jsonb_containment_on_postgres():
    fake_session = SimpleNamespace(get_bind=lambda: SimpleNamespace(dialect=SimpleNamespace(name="postgresql")))
    condition = chat_service._contains_member(fake_session, Chat.participants, "ana")
    assert "@>" in str(condition.compile(dialect=postgresql.dialect()))

    with SessionLocal() as session:
        assert chat_service._contains_member(session, Chat.participants, "ana") is None


def test_user_chats_include_admin_and_representative_roles():
    with SessionLocal() as session:
        private = create_private_chat(session, "ana", "ben")
        group = create_group_chat(
            session,
            GroupChatCreate(name="Board", type="custom_group", participants=["cai"], representatives=["rep"]),
            created_by="dee",
        )
        assert create_private_chat(session, "ben", "ana").id == private.id
        assert [chat.id for chat in list_user_chats(session, "dee")] == [group.id]
        assert [chat.id for chat in list_user_chats(session, "rep")] == [group.id]
        assert [chat.id for chat in list_user_chats(session, "ana")] == [private.id]
        assert list_user_chats(session, "zed") == []
