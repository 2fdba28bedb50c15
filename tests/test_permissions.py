"""Tests for chat permission gates."""
from __future__ import annotations

import os
from typing import Callable, Iterator

import pytest
from sqlalchemy.exc import OperationalError

os.environ.setdefault("DATABASE_URL", "sqlite+pysqlite:///./test_campuschat.db")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")

from campuschat.database import Base, SessionLocal, engine  # noqa: E402
from campuschat.models import Chat, ChatType  # noqa: E402
from campuschat.schemas import ChatSettings  # noqa: E402
from campuschat.services import (  # noqa: E402
    PermissionStatus,
    can_user_mention_everyone,
    can_user_pin_message,
    can_user_send_message,
    can_user_view_chat,
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


@pytest.fixture
def chat_factory() -> Callable[..., str]:
    def _factory(chat_type: ChatType, **fields) -> str:
        settings = fields.pop("settings", ChatSettings())
        with SessionLocal() as session:
            chat = Chat(
                name=fields.pop("name", f"{chat_type} chat"),
                type=str(chat_type),
                participants=fields.pop("participants", []),
                admins=fields.pop("admins", []),
                representatives=fields.pop("representatives", []),
                settings=settings if isinstance(settings, str) else settings.to_blob(),
                **fields,
            )
            session.add(chat)
            session.commit()
            return chat.id
    return _factory


def test_non_participants_are_denied_in_member_chats(chat_factory):
    private_id = chat_factory(ChatType.PRIVATE, participants=["ana", "ben"])
    custom_id = chat_factory(ChatType.CUSTOM_GROUP, participants=["ana", "ben"], admins=["ana"])

    with SessionLocal() as session:
        for chat_id in (private_id, custom_id):
            decision = can_user_send_message(session, chat_id, "mallory")
            assert not decision
            assert decision.status is PermissionStatus.DENIED
            assert can_user_send_message(session, chat_id, "ben")


def test_representative_only_stage_group_denies_regular_students(chat_factory):
    chat_id = chat_factory(
        ChatType.STAGE_GROUP,
        department="Physics",
        stage="2",
        representatives=["rep"],
        requires_representative=True,
    )
    with SessionLocal() as session:
        assert not can_user_send_message(session, chat_id, "student")
        assert can_user_send_message(session, chat_id, "rep")


def test_open_department_group_allows_anyone(chat_factory):
    chat_id = chat_factory(ChatType.DEPARTMENT_GROUP, department="Physics")
    with SessionLocal() as session:
        assert can_user_send_message(session, chat_id, "anyone")
        assert can_user_view_chat(session, chat_id, "anyone")


def test_only_admins_can_post_setting(chat_factory):
    chat_id = chat_factory(
        ChatType.CUSTOM_GROUP,
        participants=["ana", "ben", "cai"],
        admins=["ana"],
        representatives=["cai"],
        settings=ChatSettings(only_admins_can_post=True),
    )
    with SessionLocal() as session:
        assert can_user_send_message(session, chat_id, "ana")
        assert can_user_send_message(session, chat_id, "cai")
        denied = can_user_send_message(session, chat_id, "ben")
        assert denied.cause == "only admins can post"


def test_missing_ids_and_missing_chat_are_denied(chat_factory):
    with SessionLocal() as session:
        assert can_user_send_message(session, None, "ana").status is PermissionStatus.DENIED
        assert can_user_send_message(session, "chat", "").status is PermissionStatus.DENIED
        missing = can_user_send_message(session, "does-not-exist", "ana")
        assert missing.status is PermissionStatus.DENIED
        assert missing.cause == "chat not found"


def test_malformed_settings_are_indeterminate(chat_factory):
    broken_json = chat_factory(ChatType.CUSTOM_GROUP, participants=["ana"], settings="{not json")
    wrong_types = chat_factory(
        ChatType.CUSTOM_GROUP,
        participants=["ana"],
        settings='{"onlyAdminsCanPost": "yes"}',
    )
    with SessionLocal() as session:
        for chat_id in (broken_json, wrong_types):
            decision = can_user_send_message(session, chat_id, "ana")
            assert decision.is_indeterminate
            assert not decision


def test_unknown_settings_keys_are_ignored(chat_factory):
    chat_id = chat_factory(
        ChatType.CUSTOM_GROUP,
        participants=["ana"],
        settings='{"theme": "dark", "onlyAdminsCanPost": false}',
    )
    with SessionLocal() as session:
        assert can_user_send_message(session, chat_id, "ana")


def test_database_failure_is_indeterminate(chat_factory, monkeypatch):
    chat_id = chat_factory(ChatType.PRIVATE, participants=["ana", "ben"])

    def _boom(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    with SessionLocal() as session:
        monkeypatch.setattr(session, "get", _boom)
        decision = can_user_send_message(session, chat_id, "ana")
    assert decision.status is PermissionStatus.INDETERMINATE
    assert "OperationalError" in (decision.cause or "")


def test_mention_everyone_rules(chat_factory):
    private_id = chat_factory(ChatType.PRIVATE, participants=["ana", "ben"])
    disabled_id = chat_factory(
        ChatType.DEPARTMENT_GROUP,
        department="Physics",
        settings=ChatSettings(allow_everyone_mention=False),
    )
    admins_only_id = chat_factory(
        ChatType.CUSTOM_GROUP,
        participants=["ana", "ben"],
        admins=["ana"],
        settings=ChatSettings(only_admins_can_mention=True),
    )
    custom_id = chat_factory(ChatType.CUSTOM_GROUP, participants=["ana"])

    with SessionLocal() as session:
        assert not can_user_mention_everyone(session, private_id, "ana")
        assert not can_user_mention_everyone(session, disabled_id, "ana")
        assert can_user_mention_everyone(session, admins_only_id, "ana")
        assert not can_user_mention_everyone(session, admins_only_id, "ben")
        assert can_user_mention_everyone(session, custom_id, "ana")
        assert not can_user_mention_everyone(session, custom_id, "outsider")


def test_pin_rules(chat_factory):
    private_id = chat_factory(ChatType.PRIVATE, participants=["ana", "ben"])
    stage_id = chat_factory(ChatType.STAGE_GROUP, department="Physics", stage="1", representatives=["rep"])
    members_pin_id = chat_factory(
        ChatType.CUSTOM_GROUP,
        participants=["ana", "ben"],
        admins=["ana"],
        settings=ChatSettings(members_can_pin=True),
    )
    admin_pin_id = chat_factory(ChatType.CUSTOM_GROUP, participants=["ana", "ben"], admins=["ana"])

    with SessionLocal() as session:
        assert can_user_pin_message(session, private_id, "ben")
        assert not can_user_pin_message(session, private_id, "mallory")
        assert can_user_pin_message(session, stage_id, "rep")
        assert not can_user_pin_message(session, stage_id, "student")
        assert can_user_pin_message(session, members_pin_id, "ben")
        assert not can_user_pin_message(session, members_pin_id, "outsider")
        assert can_user_pin_message(session, admin_pin_id, "ana")
        assert not can_user_pin_message(session, admin_pin_id, "ben")


def test_private_chats_are_hidden_from_outsiders(chat_factory):
    chat_id = chat_factory(ChatType.PRIVATE, participants=["ana", "ben"])
    with SessionLocal() as session:
        assert can_user_view_chat(session, chat_id, "ana")
        assert not can_user_view_chat(session, chat_id, "mallory")
