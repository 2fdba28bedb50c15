"""Chat API routes."""
from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from ..database import get_session
from ..schemas import (
    ChatPermissionsResponse,
    ChatResponse,
    ChatSettingsUpdate,
    GroupChatCreate,
    MarkReadResponse,
    MessageListResponse,
    MuteRequest,
    MuteStatusResponse,
    PermissionResponse,
    PrivateChatCreate,
    RepresentativeRequest,
    UnreadCountResponse,
)
from ..services import (
    PermissionDecision,
    add_representative,
    can_user_mention_everyone,
    can_user_pin_message,
    can_user_send_message,
    can_user_view_chat,
    create_group_chat,
    create_private_chat,
    delete_chat,
    get_chat,
    get_current_user,
    get_mute_status,
    get_pinned_messages,
    get_unread_count,
    list_group_chats,
    list_muted_chat_ids,
    list_user_chats,
    mark_chat_as_read,
    mute_chat,
    remove_representative,
    to_chat_response,
    to_message_response,
    unmute_chat,
    update_chat_settings,
)
from ..services.message_service import enforce_permission
from ..services.permissions import is_chat_admin

router = APIRouter(prefix="/chats", tags=["chats"])


def _permission_response(action: str, decision: PermissionDecision) -> PermissionResponse:
    return PermissionResponse(
        action=action,
        allowed=decision.allowed,
        status=str(decision.status),
        cause=decision.cause,
    )


def _require_view(db: Session, chat_id: str, user_id: str) -> None:
    get_chat(db, chat_id)
    enforce_permission(can_user_view_chat(db, chat_id, user_id), "You are not a member of this chat")


@router.post("/groups", response_model=ChatResponse, status_code=status.HTTP_201_CREATED)
async def create_group_endpoint(
    payload: GroupChatCreate,
    current_user: str = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> ChatResponse:
    chat = create_group_chat(db, payload, created_by=current_user)
    return to_chat_response(chat)


@router.post("/private", response_model=ChatResponse)
async def open_private_chat_endpoint(
    payload: PrivateChatCreate,
    current_user: str = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> ChatResponse:
    chat = create_private_chat(db, current_user, payload.other_user_id)
    return to_chat_response(chat)


@router.get("/", response_model=list[ChatResponse])
async def list_my_chats_endpoint(
    current_user: str = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> list[ChatResponse]:
    return [to_chat_response(chat) for chat in list_user_chats(db, current_user)]


@router.get("/groups", response_model=list[ChatResponse])
async def list_group_chats_endpoint(
    department: str = Query(..., min_length=1),
    stage: str | None = Query(None),
    current_user: str = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> list[ChatResponse]:
    return [to_chat_response(chat) for chat in list_group_chats(db, department, stage)]


@router.get("/muted", response_model=list[str])
async def list_muted_chats_endpoint(
    current_user: str = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> list[str]:
    return list_muted_chat_ids(db, current_user)


@router.get("/{chat_id}", response_model=ChatResponse)
async def chat_detail_endpoint(
    chat_id: str,
    current_user: str = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> ChatResponse:
    _require_view(db, chat_id, current_user)
    return to_chat_response(get_chat(db, chat_id))


@router.delete("/{chat_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_chat_endpoint(
    chat_id: str,
    current_user: str = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> None:
    delete_chat(db, chat_id, current_user)


@router.post("/{chat_id}/representatives", response_model=ChatResponse)
async def add_representative_endpoint(
    chat_id: str,
    payload: RepresentativeRequest,
    current_user: str = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> ChatResponse:
    if not is_chat_admin(get_chat(db, chat_id), current_user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only admins can manage representatives")
    return to_chat_response(add_representative(db, chat_id, payload.user_id))


@router.delete("/{chat_id}/representatives/{user_id}", response_model=ChatResponse)
async def remove_representative_endpoint(
    chat_id: str,
    user_id: str,
    current_user: str = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> ChatResponse:
    if not is_chat_admin(get_chat(db, chat_id), current_user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Only admins can manage representatives")
    return to_chat_response(remove_representative(db, chat_id, user_id))


@router.patch("/{chat_id}/settings", response_model=ChatResponse)
async def update_settings_endpoint(
    chat_id: str,
    payload: ChatSettingsUpdate,
    current_user: str = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> ChatResponse:
    return to_chat_response(update_chat_settings(db, chat_id, current_user, payload))


@router.get("/{chat_id}/permissions", response_model=ChatPermissionsResponse)
async def chat_permissions_endpoint(
    chat_id: str,
    current_user: str = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> ChatPermissionsResponse:
    return ChatPermissionsResponse(
        chat_id=chat_id,
        send=_permission_response("send", can_user_send_message(db, chat_id, current_user)),
        pin=_permission_response("pin", can_user_pin_message(db, chat_id, current_user)),
        mention_everyone=_permission_response(
            "mention_everyone", can_user_mention_everyone(db, chat_id, current_user)
        ),
    )


@router.post("/{chat_id}/mute", response_model=MuteStatusResponse)
async def mute_chat_endpoint(
    chat_id: str,
    payload: MuteRequest,
    current_user: str = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> MuteStatusResponse:
    mute = mute_chat(db, current_user, chat_id, payload.duration_minutes, payload.mute_type)
    return MuteStatusResponse(chat_id=chat_id, is_muted=True, muted_until=mute.muted_until, mute_type=mute.mute_type)


@router.delete("/{chat_id}/mute", status_code=status.HTTP_204_NO_CONTENT)
async def unmute_chat_endpoint(
    chat_id: str,
    current_user: str = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> None:
    unmute_chat(db, current_user, chat_id)


@router.get("/{chat_id}/mute", response_model=MuteStatusResponse)
async def mute_status_endpoint(
    chat_id: str,
    current_user: str = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> MuteStatusResponse:
    mute = get_mute_status(db, current_user, chat_id)
    if mute is None:
        return MuteStatusResponse(chat_id=chat_id, is_muted=False)
    return MuteStatusResponse(chat_id=chat_id, is_muted=True, muted_until=mute.muted_until, mute_type=mute.mute_type)


@router.get("/{chat_id}/pinned", response_model=MessageListResponse)
async def pinned_messages_endpoint(
    chat_id: str,
    current_user: str = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> MessageListResponse:
    _require_view(db, chat_id, current_user)
    messages = get_pinned_messages(db, chat_id)
    return MessageListResponse(chat_id=chat_id, messages=[to_message_response(item) for item in messages])


@router.post("/{chat_id}/read", response_model=MarkReadResponse)
async def mark_chat_read_endpoint(
    chat_id: str,
    current_user: str = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> MarkReadResponse:
    _require_view(db, chat_id, current_user)
    return MarkReadResponse(chat_id=chat_id, marked=mark_chat_as_read(db, chat_id, current_user))


@router.get("/{chat_id}/unread", response_model=UnreadCountResponse)
async def unread_count_endpoint(
    chat_id: str,
    current_user: str = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> UnreadCountResponse:
    _require_view(db, chat_id, current_user)
    return UnreadCountResponse(chat_id=chat_id, unread_count=get_unread_count(db, chat_id, current_user))
