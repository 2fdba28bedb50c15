"""Convenience exports for service layer."""
from .auth_service import create_access_token, decode_access_token, get_current_user
from .cache_manager import CacheEntry, CacheManager, ImageCache, UserCache, get_cache_manager, set_cache_manager
from .chat_preferences_service import (
    bookmark_message,
    get_bookmarked_message_ids,
    get_mute_status,
    list_muted_chat_ids,
    mute_chat,
    unbookmark_message,
    unmute_chat,
)
from .chat_service import (
    add_representative,
    create_department_group_chat,
    create_group_chat,
    create_private_chat,
    create_stage_group_chat,
    delete_chat,
    get_chat,
    initialize_group_chats_for_department,
    list_group_chats,
    list_user_chats,
    remove_representative,
    to_chat_response,
    update_chat_settings,
)
from .chat_sync import ChatRoomSync
from .mentions import check_for_everyone_mention, extract_user_mentions
from .message_service import (
    delete_message,
    get_chat_messages_cache_key,
    get_message,
    get_messages,
    get_pinned_messages,
    get_unread_count,
    mark_all_messages_as_read,
    mark_chat_as_read,
    mark_message_as_read,
    pin_message,
    send_message,
    to_message_response,
    unpin_message,
)
from .notification_service import (
    NotificationType,
    count_unread_notifications,
    create_notification,
    delete_all_notifications,
    delete_notification,
    list_notifications,
    mark_all_read,
    mark_notification_as_read,
    notify_follow,
    notify_friend_post,
    notify_mention,
    notify_post_like,
    notify_post_reply,
)
from .permissions import (
    PermissionDecision,
    PermissionStatus,
    can_user_mention_everyone,
    can_user_pin_message,
    can_user_send_message,
    can_user_view_chat,
)

__all__ = [
    "create_access_token",
    "decode_access_token",
    "get_current_user",
    "CacheEntry",
    "CacheManager",
    "ImageCache",
    "UserCache",
    "get_cache_manager",
    "set_cache_manager",
    "bookmark_message",
    "get_bookmarked_message_ids",
    "get_mute_status",
    "list_muted_chat_ids",
    "mute_chat",
    "unbookmark_message",
    "unmute_chat",
    "add_representative",
    "create_department_group_chat",
    "create_group_chat",
    "create_private_chat",
    "create_stage_group_chat",
    "delete_chat",
    "get_chat",
    "initialize_group_chats_for_department",
    "list_group_chats",
    "list_user_chats",
    "remove_representative",
    "to_chat_response",
    "update_chat_settings",
    "ChatRoomSync",
    "check_for_everyone_mention",
    "extract_user_mentions",
    "delete_message",
    "get_chat_messages_cache_key",
    "get_message",
    "get_messages",
    "get_pinned_messages",
    "get_unread_count",
    "mark_all_messages_as_read",
    "mark_chat_as_read",
    "mark_message_as_read",
    "pin_message",
    "send_message",
    "to_message_response",
    "unpin_message",
    "NotificationType",
    "count_unread_notifications",
    "create_notification",
    "delete_all_notifications",
    "delete_notification",
    "list_notifications",
    "mark_all_read",
    "mark_notification_as_read",
    "notify_follow",
    "notify_friend_post",
    "notify_mention",
    "notify_post_like",
    "notify_post_reply",
    "PermissionDecision",
    "PermissionStatus",
    "can_user_mention_everyone",
    "can_user_pin_message",
    "can_user_send_message",
    "can_user_view_chat",
]
