from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session
import uuid

from app.api.deps import dump, get_current_user, ok
from app.db import get_session
from app.models import User
from app.schemas.notification import NotificationResponse
from app.services import notification_service

router = APIRouter()


@router.get("")
def list_notifications(
    limit: int = Query(default=20, ge=1, le=100),
    unread_only: bool = Query(default=False, alias="unreadOnly"),
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    rows, unread = notification_service.list_notifications(session, user.id, limit=limit, unread_only=unread_only)
    return ok({"notifications": [dump(NotificationResponse, n) for n in rows], "unreadCount": unread})


@router.put("/read-all")
def mark_all_read(session: Session = Depends(get_session), user: User = Depends(get_current_user)):
    notification_service.mark_all_read(session, user.id)
    return ok(message="All notifications marked as read")


@router.put("/{notification_id}/read")
def mark_read(
    notification_id: uuid.UUID,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    notification = notification_service.mark_read(session, user.id, notification_id)
    return ok({"notification": dump(NotificationResponse, notification)})


@router.delete("/{notification_id}")
def delete_notification(
    notification_id: uuid.UUID,
    session: Session = Depends(get_session),
    user: User = Depends(get_current_user),
):
    notification_service.delete_notification(session, user.id, notification_id)
    return ok(message="Notification deleted")
