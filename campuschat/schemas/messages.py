"""Schemas used by messaging endpoints."""
from __future__ import annotations

from datetime import datetime
from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field


class MessageSendRequest(BaseModel):
    sender_id: str | None = Field(None, description="Filled from the bearer token by the API layer")
    sender_name: str | None = None
    content: str | None = Field(None, max_length=4000)
    images: List[str] = Field(default_factory=list, description="Hosted image URLs; only the first is stored")
    reply_to_id: str | None = None
    reply_to_content: str | None = None
    reply_to_sender: str | None = None


class MessageResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    chat_id: str
    sender_id: str
    sender_name: str | None = None
    content: str = ""
    image_url: str | None = None
    reply_to_id: str | None = None
    reply_to_content: str | None = None
    reply_to_sender: str | None = None
    mentions_all: bool = False
    is_pinned: bool = False
    pinned_by: str | None = None
    pinned_at: datetime | None = None
    read_by: List[str] = Field(default_factory=list)
    created_at: datetime
    # Client-side only; the sync layer marks optimistic sends.
    delivery_status: Literal["sent", "pending", "failed"] = "sent"


class MessageListResponse(BaseModel):
    chat_id: str
    messages: List[MessageResponse]


class BookmarkListResponse(BaseModel):
    chat_id: str
    message_ids: List[str]


__all__ = [
    "MessageSendRequest",
    "MessageResponse",
    "MessageListResponse",
    "BookmarkListResponse",
]
