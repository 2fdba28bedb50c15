"""Convenience exports for schema layer."""
from .chats import (
    ChatPermissionsResponse,
    ChatResponse,
    ChatSettings,
    ChatSettingsError,
    ChatSettingsUpdate,
    GroupChatCreate,
    MarkReadResponse,
    MuteRequest,
    MuteStatusResponse,
    PermissionResponse,
    PrivateChatCreate,
    RepresentativeRequest,
    UnreadCountResponse,
)
from .messages import BookmarkListResponse, MessageListResponse, MessageResponse, MessageSendRequest
from .notifications import NotificationListResponse, NotificationResponse, NotificationSummaryResponse

__all__ = [
    "BookmarkListResponse",
    "ChatPermissionsResponse",
    "ChatResponse",
    "ChatSettings",
    "ChatSettingsError",
    "ChatSettingsUpdate",
    "GroupChatCreate",
    "MarkReadResponse",
    "MessageListResponse",
    "MessageResponse",
    "MessageSendRequest",
    "MuteRequest",
    "MuteStatusResponse",
    "NotificationListResponse",
    "NotificationResponse",
    "NotificationSummaryResponse",
    "PermissionResponse",
    "PrivateChatCreate",
    "RepresentativeRequest",
    "UnreadCountResponse",
]
