"""Messaging API routes."""
from __future__ import annotations

import json

from fastapi import APIRouter, Depends, Query, status
from fastapi.websockets import WebSocket, WebSocketDisconnect
from sqlalchemy.orm import Session

from ..database import get_session
from ..schemas import BookmarkListResponse, MessageListResponse, MessageResponse, MessageSendRequest
from ..services import (
    bookmark_message,
    can_user_view_chat,
    decode_access_token,
    delete_message,
    get_bookmarked_message_ids,
    get_chat,
    get_current_user,
    get_message,
    get_messages,
    mark_message_as_read,
    pin_message,
    send_message,
    to_message_response,
    unbookmark_message,
    unpin_message,
)
from ..services.message_service import enforce_permission
from ..services.message_stream import message_stream_manager, publish_message_event

router = APIRouter(prefix="/messages", tags=["messages"])


def _require_view(db: Session, chat_id: str, user_id: str) -> None:
    get_chat(db, chat_id)
    enforce_permission(can_user_view_chat(db, chat_id, user_id), "You are not a member of this chat")


@router.post("/{chat_id}", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def send_message_endpoint(
    chat_id: str,
    payload: MessageSendRequest,
    current_user: str = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> MessageResponse:
    payload = payload.model_copy(update={"sender_id": current_user})
    record = send_message(db, chat_id, payload)
    response = to_message_response(record)
    await publish_message_event(response)
    return response


@router.get("/{chat_id}", response_model=MessageListResponse)
async def list_messages_endpoint(
    chat_id: str,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current_user: str = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> MessageListResponse:
    _require_view(db, chat_id, current_user)
    messages = get_messages(db, chat_id, limit, offset)
    return MessageListResponse(chat_id=chat_id, messages=messages)


@router.delete("/{message_id}", response_model=MessageResponse)
async def delete_message_endpoint(
    message_id: str,
    current_user: str = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> MessageResponse:
    response = delete_message(db, message_id, current_user)
    await publish_message_event(response, event_type="message.deleted")
    return response


@router.post("/{message_id}/read", response_model=MessageResponse)
async def mark_message_read_endpoint(
    message_id: str,
    current_user: str = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> MessageResponse:
    _require_view(db, get_message(db, message_id).chat_id, current_user)
    response = to_message_response(mark_message_as_read(db, message_id, current_user))
    await publish_message_event(response, event_type="message.read")
    return response


@router.post("/{chat_id}/{message_id}/pin", response_model=MessageResponse)
async def pin_message_endpoint(
    chat_id: str,
    message_id: str,
    current_user: str = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> MessageResponse:
    response = to_message_response(pin_message(db, chat_id, message_id, current_user))
    await publish_message_event(response, event_type="message.pinned")
    return response


@router.delete("/{chat_id}/{message_id}/pin", response_model=MessageResponse)
async def unpin_message_endpoint(
    chat_id: str,
    message_id: str,
    current_user: str = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> MessageResponse:
    response = to_message_response(unpin_message(db, chat_id, message_id, current_user))
    await publish_message_event(response, event_type="message.unpinned")
    return response


@router.get("/{chat_id}/bookmarks", response_model=BookmarkListResponse)
async def list_bookmarks_endpoint(
    chat_id: str,
    current_user: str = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> BookmarkListResponse:
    _require_view(db, chat_id, current_user)
    return BookmarkListResponse(chat_id=chat_id, message_ids=get_bookmarked_message_ids(db, current_user, chat_id))


@router.post("/{chat_id}/{message_id}/bookmark", response_model=BookmarkListResponse)
async def bookmark_message_endpoint(
    chat_id: str,
    message_id: str,
    current_user: str = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> BookmarkListResponse:
    _require_view(db, chat_id, current_user)
    return BookmarkListResponse(chat_id=chat_id, message_ids=bookmark_message(db, current_user, chat_id, message_id))


@router.delete("/{chat_id}/{message_id}/bookmark", response_model=BookmarkListResponse)
async def unbookmark_message_endpoint(
    chat_id: str,
    message_id: str,
    current_user: str = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> BookmarkListResponse:
    return BookmarkListResponse(chat_id=chat_id, message_ids=unbookmark_message(db, current_user, chat_id, message_id))


@router.websocket("/ws/{chat_id}")
async def message_thread_socket(
    websocket: WebSocket,
    chat_id: str,
    token: str = Query(..., alias="token"),
    db: Session = Depends(get_session),
) -> None:
    try:
        user_id = decode_access_token(token)
    except Exception:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    if not can_user_view_chat(db, chat_id, user_id):
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await message_stream_manager.connect(chat_id, websocket)
    await websocket.send_text(json.dumps({"type": "ready", "chat_id": chat_id}))
    try:
        while True:
            try:
                payload = await websocket.receive_text()
            except WebSocketDisconnect:
                break
            if payload.strip().lower() == "ping":
                await websocket.send_text(json.dumps({"type": "pong", "chat_id": chat_id}))
    finally:
        await message_stream_manager.disconnect(websocket)
