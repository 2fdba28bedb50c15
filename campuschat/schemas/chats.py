"""Schemas used by chat endpoints and the chat settings blob."""
from __future__ import annotations

import json
from datetime import datetime
from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class ChatSettingsError(ValueError):
    """Raised when a stored settings blob cannot be parsed into :class:`ChatSettings`."""


class ChatSettings(BaseModel):
    """Typed view of the JSON settings stored on a chat document."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True, strict=True)

    only_admins_can_post: bool = Field(default=False, alias="onlyAdminsCanPost")
    allow_everyone_mention: bool = Field(default=True, alias="allowEveryoneMention")
    only_admins_can_mention: bool = Field(default=False, alias="onlyAdminsCanMention")
    members_can_pin: bool = Field(default=False, alias="membersCanPin")

    @classmethod
    def from_blob(cls, raw: str | None) -> "ChatSettings":
        """Parse a stored blob; empty blobs yield defaults, malformed ones raise."""

        if raw is None or not raw.strip():
            return cls()
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ChatSettingsError("Chat settings are not valid JSON") from exc
        if not isinstance(data, dict):
            raise ChatSettingsError("Chat settings must be a JSON object")
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise ChatSettingsError(f"Chat settings failed validation: {exc.error_count()} error(s)") from exc

    def to_blob(self) -> str:
        return json.dumps(self.model_dump(by_alias=True), separators=(",", ":"))


class GroupChatCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    type: Literal["stage_group", "department_group", "custom_group"]
    department: str | None = None
    stage: str | None = None
    description: str | None = Field(default=None, max_length=500)
    participants: List[str] = Field(default_factory=list)
    admins: List[str] = Field(default_factory=list)
    representatives: List[str] = Field(default_factory=list)
    requires_representative: bool = False
    settings: ChatSettings | None = None


class PrivateChatCreate(BaseModel):
    other_user_id: str = Field(..., min_length=1)


class RepresentativeRequest(BaseModel):
    user_id: str = Field(..., min_length=1)


class ChatSettingsUpdate(BaseModel):
    only_admins_can_post: bool | None = None
    allow_everyone_mention: bool | None = None
    only_admins_can_mention: bool | None = None
    members_can_pin: bool | None = None


class ChatResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    name: str | None = None
    type: str
    department: str | None = None
    stage: str | None = None
    description: str | None = None
    participants: List[str] = Field(default_factory=list)
    admins: List[str] = Field(default_factory=list)
    representatives: List[str] = Field(default_factory=list)
    requires_representative: bool = False
    settings: ChatSettings | None = None
    last_message: str | None = None
    last_message_at: datetime | None = None
    message_count: int = 0
    pinned_messages: List[str] = Field(default_factory=list)
    created_at: datetime | None = None


class PermissionResponse(BaseModel):
    action: str
    allowed: bool
    status: str
    cause: str | None = None


class ChatPermissionsResponse(BaseModel):
    chat_id: str
    send: PermissionResponse
    pin: PermissionResponse
    mention_everyone: PermissionResponse


class MuteRequest(BaseModel):
    duration_minutes: int | None = Field(default=None, ge=1)
    mute_type: Literal["all", "mentions"] = "all"


class MuteStatusResponse(BaseModel):
    chat_id: str
    is_muted: bool
    muted_until: datetime | None = None
    mute_type: str | None = None


class UnreadCountResponse(BaseModel):
    chat_id: str
    unread_count: int = 0


class MarkReadResponse(BaseModel):
    chat_id: str
    marked: int = 0


__all__ = [
    "ChatSettings",
    "ChatSettingsError",
    "ChatSettingsUpdate",
    "GroupChatCreate",
    "PrivateChatCreate",
    "RepresentativeRequest",
    "ChatResponse",
    "PermissionResponse",
    "ChatPermissionsResponse",
    "MuteRequest",
    "MuteStatusResponse",
    "UnreadCountResponse",
    "MarkReadResponse",
]
