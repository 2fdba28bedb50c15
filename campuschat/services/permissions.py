"""Permission gates for chat actions.

Each gate fetches the chat document and evaluates a small decision table over
the chat type, its member lists and the typed :class:`ChatSettings`. Results
are tagged so callers can tell a real denial from a check that could not be
completed (database failure, malformed settings).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import StrEnum
from typing import Callable

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import Chat, ChatType
from ..schemas import ChatSettings, ChatSettingsError

logger = logging.getLogger(__name__)


class PermissionStatus(StrEnum):
    ALLOWED = "allowed"
    DENIED = "denied"
    INDETERMINATE = "indeterminate"


@dataclass(frozen=True, slots=True)
class PermissionDecision:
    """Outcome of a permission check; truthy only when the action is allowed."""

    status: PermissionStatus
    cause: str | None = None

    @classmethod
    def allow(cls) -> "PermissionDecision":
        return cls(PermissionStatus.ALLOWED)

    @classmethod
    def deny(cls, cause: str | None = None) -> "PermissionDecision":
        return cls(PermissionStatus.DENIED, cause)

    @classmethod
    def indeterminate(cls, cause: str) -> "PermissionDecision":
        return cls(PermissionStatus.INDETERMINATE, cause)

    @property
    def allowed(self) -> bool:
        return self.status is PermissionStatus.ALLOWED

    @property
    def is_indeterminate(self) -> bool:
        return self.status is PermissionStatus.INDETERMINATE

    def __bool__(self) -> bool:
        return self.allowed


def _members(values: list[str] | None) -> list[str]:
    return list(values or [])


def is_chat_admin(chat: Chat, user_id: str) -> bool:
    """Admins and representatives share elevated rights inside group chats."""

    return user_id in _members(chat.admins) or user_id in _members(chat.representatives)


def send_decision(chat: Chat, settings: ChatSettings, user_id: str) -> PermissionDecision:
    participants = _members(chat.participants)
    if chat.type == ChatType.PRIVATE:
        return PermissionDecision.allow() if user_id in participants else PermissionDecision.deny("not a participant")

    if chat.type == ChatType.CUSTOM_GROUP:
        if user_id not in participants:
            return PermissionDecision.deny("not a participant")
        if settings.only_admins_can_post and not is_chat_admin(chat, user_id):
            return PermissionDecision.deny("only admins can post")
        return PermissionDecision.allow()

    if not chat.requires_representative:
        return PermissionDecision.allow()

    if user_id in _members(chat.representatives):
        return PermissionDecision.allow()
    return PermissionDecision.deny("representative required")


def mention_everyone_decision(chat: Chat, settings: ChatSettings, user_id: str) -> PermissionDecision:
    if chat.type == ChatType.PRIVATE:
        return PermissionDecision.deny("not available in private chats")
    if not settings.allow_everyone_mention:
        return PermissionDecision.deny("everyone mentions disabled")
    if settings.only_admins_can_mention and not is_chat_admin(chat, user_id):
        return PermissionDecision.deny("only admins can mention everyone")
    if chat.type == ChatType.CUSTOM_GROUP and user_id not in _members(chat.participants):
        return PermissionDecision.deny("not a participant")
    return PermissionDecision.allow()


def pin_decision(chat: Chat, settings: ChatSettings, user_id: str) -> PermissionDecision:
    participants = _members(chat.participants)
    if chat.type == ChatType.PRIVATE:
        return PermissionDecision.allow() if user_id in participants else PermissionDecision.deny("not a participant")
    if is_chat_admin(chat, user_id):
        return PermissionDecision.allow()
    if chat.type == ChatType.CUSTOM_GROUP and settings.members_can_pin and user_id in participants:
        return PermissionDecision.allow()
    return PermissionDecision.deny("only admins can pin")


def view_decision(chat: Chat, settings: ChatSettings, user_id: str) -> PermissionDecision:
    if chat.type in (ChatType.STAGE_GROUP, ChatType.DEPARTMENT_GROUP):
        return PermissionDecision.allow()
    if user_id in _members(chat.participants) or is_chat_admin(chat, user_id):
        return PermissionDecision.allow()
    return PermissionDecision.deny("not a participant")


def _evaluate(
    db: Session,
    chat_id: str | None,
    user_id: str | None,
    rule: Callable[[Chat, ChatSettings, str], PermissionDecision],
) -> PermissionDecision:
    if not chat_id or not user_id:
        return PermissionDecision.deny("chat id and user id are required")

    try:
        chat = db.get(Chat, chat_id)
    except SQLAlchemyError as exc:
        logger.warning("Permission check for chat %s could not load the chat", chat_id, exc_info=True)
        return PermissionDecision.indeterminate(f"chat lookup failed: {exc.__class__.__name__}")

    if chat is None:
        return PermissionDecision.deny("chat not found")

    try:
        settings = ChatSettings.from_blob(chat.settings)
    except ChatSettingsError as exc:
        logger.warning("Chat %s has unreadable settings: %s", chat_id, exc)
        return PermissionDecision.indeterminate(str(exc))

    return rule(chat, settings, user_id)


def can_user_send_message(db: Session, chat_id: str | None, user_id: str | None) -> PermissionDecision:
    """Return whether ``user_id`` may post in the chat."""

    return _evaluate(db, chat_id, user_id, send_decision)


def can_user_mention_everyone(db: Session, chat_id: str | None, user_id: str | None) -> PermissionDecision:
    """Return whether ``user_id`` may use ``@everyone``/``@all`` in the chat."""

    return _evaluate(db, chat_id, user_id, mention_everyone_decision)


def can_user_pin_message(db: Session, chat_id: str | None, user_id: str | None) -> PermissionDecision:
    """Return whether ``user_id`` may pin or unpin messages in the chat."""

    return _evaluate(db, chat_id, user_id, pin_decision)


def can_user_view_chat(db: Session, chat_id: str | None, user_id: str | None) -> PermissionDecision:
    """Stage and department groups are readable by anyone; other chats by members only."""

    return _evaluate(db, chat_id, user_id, view_decision)


__all__ = [
    "PermissionDecision",
    "PermissionStatus",
    "can_user_mention_everyone",
    "can_user_pin_message",
    "can_user_send_message",
    "can_user_view_chat",
    "is_chat_admin",
]
