"""Aggregate router exports."""
from .chats import router as chats_router
from .messages import router as messages_router
from .notifications import router as notifications_router

__all__ = [
    "chats_router",
    "messages_router",
    "notifications_router",
]
