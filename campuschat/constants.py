"""Project-wide constant values."""
from __future__ import annotations

LAST_MESSAGE_PREVIEW_CHARS = 100
NOTIFICATION_PREVIEW_CHARS = 50
IMAGE_MESSAGE_PREVIEW = "📷 Image"

CACHE_PREFIX = "cache_"

EMPTY_MESSAGE_DETAIL = "Message must have either content or an image"  # shared by API and sync layer

__all__ = [
    "LAST_MESSAGE_PREVIEW_CHARS",
    "NOTIFICATION_PREVIEW_CHARS",
    "IMAGE_MESSAGE_PREVIEW",
    "CACHE_PREFIX",
    "EMPTY_MESSAGE_DETAIL",
]
