"""Convenience exports for ORM models."""
from .cache_entry import KeyValueEntry
from .chat import GROUP_CHAT_TYPES, Chat, ChatType
from .chat_preferences import ChatBookmark, ChatMute
from .message import Message
from .notification import Notification
from .user import User

__all__ = [
    "Chat",
    "ChatType",
    "GROUP_CHAT_TYPES",
    "ChatBookmark",
    "ChatMute",
    "KeyValueEntry",
    "Message",
    "Notification",
    "User",
]
