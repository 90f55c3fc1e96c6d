"""
In-app notifications. Rows are written by other services (order fulfillment) and read
through the notifications router; nothing is pushed to the client.
"""

from __future__ import annotations

import logging
import uuid
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from app.exceptions import NotFoundError
from app.models import Notification

logger = logging.getLogger(__name__)


def create_notification(
    session: Session,
    user_id: uuid.UUID,
    type: str,
    title: str,
    message: str,
    action_url: str | None = None,
    metadata: dict[str, Any] | None = None,
) -> Notification:
    notification = Notification(
        user_id=user_id,
        type=type,
        title=title,
        message=message,
        action_url=action_url,
        metadata_=dict(metadata or {}),
        read=False,
    )
    session.add(notification)
    session.flush()
    logger.debug(f"Notification {notification.id} ({type}) for user {user_id}")
    return notification


def list_notifications(
    session: Session, user_id: uuid.UUID, limit: int = 20, unread_only: bool = False
) -> tuple[list[Notification], int]:
    """Newest first, plus the user's total unread count."""
    conditions = [Notification.user_id == user_id]
    if unread_only:
        conditions.append(Notification.read.is_(False))
    rows = session.scalars(
        select(Notification)
        .where(*conditions)
        .order_by(Notification.created_at.desc(), Notification.id)
        .limit(limit)
    ).all()
    unread = session.scalar(
        select(func.count())
        .select_from(Notification)
        .where(Notification.user_id == user_id, Notification.read.is_(False))
    )
    return list(rows), int(unread or 0)


def get_notification(session: Session, user_id: uuid.UUID, notification_id: uuid.UUID) -> Notification:
    notification = session.get(Notification, notification_id)
    if notification is None or notification.user_id != user_id:
        raise NotFoundError("Notification not found", error_code="NOTIFICATION_NOT_FOUND")
    return notification


def mark_read(session: Session, user_id: uuid.UUID, notification_id: uuid.UUID) -> Notification:
    notification = get_notification(session, user_id, notification_id)
    notification.read = True
    session.flush()
    return notification


def mark_all_read(session: Session, user_id: uuid.UUID) -> int:
    result = session.execute(
        update(Notification)
        .where(Notification.user_id == user_id, Notification.read.is_(False))
        .values(read=True)
        .execution_options(synchronize_session="fetch")
    )
    session.flush()
    return int(result.rowcount or 0)


def delete_notification(session: Session, user_id: uuid.UUID, notification_id: uuid.UUID) -> None:
    notification = get_notification(session, user_id, notification_id)
    session.delete(notification)
    session.flush()
