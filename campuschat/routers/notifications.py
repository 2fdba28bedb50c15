"""Notification API routes."""
from __future__ import annotations

import json

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from sqlalchemy.orm import Session

from ..database import get_session
from ..schemas import NotificationListResponse, NotificationResponse, NotificationSummaryResponse
from ..services import (
    count_unread_notifications,
    decode_access_token,
    delete_all_notifications,
    delete_notification,
    get_current_user,
    list_notifications,
    mark_all_read,
    mark_notification_as_read,
)
from ..services.notification_stream import notification_stream_manager

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("/", response_model=NotificationListResponse)
async def list_my_notifications(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current_user: str = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> NotificationListResponse:
    records = list_notifications(db, current_user, limit=limit, offset=offset)
    return NotificationListResponse(items=[NotificationResponse.model_validate(item) for item in records])


@router.get("/summary", response_model=NotificationSummaryResponse)
async def notification_summary_endpoint(
    current_user: str = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> NotificationSummaryResponse:
    unread = count_unread_notifications(db, current_user)
    return NotificationSummaryResponse(unread_count=unread)


@router.post("/mark-read", status_code=status.HTTP_204_NO_CONTENT)
async def mark_notifications_read(
    current_user: str = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> None:
    mark_all_read(db, current_user)


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_read_endpoint(
    notification_id: str,
    current_user: str = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> NotificationResponse:
    record = mark_notification_as_read(db, notification_id, current_user)
    return NotificationResponse.model_validate(record)


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_notification_endpoint(
    notification_id: str,
    current_user: str = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> None:
    delete_notification(db, notification_id, current_user)


@router.delete("/", response_model=dict[str, int])
async def delete_all_notifications_endpoint(
    current_user: str = Depends(get_current_user),
    db: Session = Depends(get_session),
) -> dict[str, int]:
    return {"deleted": delete_all_notifications(db, current_user)}


@router.websocket("/ws")
async def notifications_socket(
    websocket: WebSocket,
    token: str = Query(..., alias="token"),
) -> None:
    try:
        user_id = decode_access_token(token)
    except Exception:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await notification_stream_manager.connect(user_id, websocket)
    await websocket.send_text(json.dumps({"type": "ready"}))
    try:
        while True:
            try:
                payload = await websocket.receive_text()
            except WebSocketDisconnect:
                break
            if payload.strip().lower() == "ping":
                await websocket.send_text(json.dumps({"type": "pong"}))
    finally:
        await notification_stream_manager.disconnect(websocket)
