"""Notification endpoints."""

from __future__ import annotations

from typing import Literal

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from .. import schemas
from ..auth import get_current_user_id
from ..deps import get_db, get_deadline, get_notifications
from ..services.social_notifications import NotificationDispatcher
from ..transactions import Deadline

router = APIRouter(prefix="/notifications", tags=["Notifications"])


@router.get("/", response_model=schemas.Page[schemas.Notification])
def list_notifications(
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    notification_type: Literal["like", "comment", "friend_request", "tag", "follow"]
    | None = Query(None, alias="type"),
    unread_only: bool = Query(False, description="Only return unread notifications"),
    db: Session = Depends(get_db),
    notifications: NotificationDispatcher = Depends(get_notifications),
    deadline: Deadline = Depends(get_deadline),
    current_user_id: str = Depends(get_current_user_id),
) -> schemas.Page[schemas.Notification]:
    """
    List notifications for the current user.

    Returns notifications in reverse chronological order with offset pagination.
    """
    items = notifications.list_notifications(
        db,
        current_user_id,
        limit=limit,
        offset=offset,
        notification_type=notification_type,
        unread_only=unread_only,
        deadline=deadline,
    )
    return schemas.Page(
        items=[schemas.Notification.model_validate(n) for n in items],
        limit=limit,
        offset=offset,
    )


@router.get("/unread-count", response_model=schemas.UnreadCount)
def get_unread_count(
    db: Session = Depends(get_db),
    notifications: NotificationDispatcher = Depends(get_notifications),
    deadline: Deadline = Depends(get_deadline),
    current_user_id: str = Depends(get_current_user_id),
) -> schemas.UnreadCount:
    """Get unread notification count for the current user."""
    count = notifications.unread_count(db, current_user_id, deadline=deadline)
    return schemas.UnreadCount(unread_count=count)


@router.post("/mark-all-read", response_model=schemas.MarkAllReadResponse)
def mark_all_read(
    db: Session = Depends(get_db),
    notifications: NotificationDispatcher = Depends(get_notifications),
    deadline: Deadline = Depends(get_deadline),
    current_user_id: str = Depends(get_current_user_id),
) -> schemas.MarkAllReadResponse:
    updated = notifications.mark_all_read(db, current_user_id, deadline=deadline)
    return schemas.MarkAllReadResponse(updated=updated)


@router.post("/{notification_id}/read", status_code=status.HTTP_204_NO_CONTENT)
def mark_read(
    notification_id: str,
    db: Session = Depends(get_db),
    notifications: NotificationDispatcher = Depends(get_notifications),
    deadline: Deadline = Depends(get_deadline),
    current_user_id: str = Depends(get_current_user_id),
) -> None:
    """Mark one notification as read. Re-marking is a no-op."""
    notifications.mark_read(db, notification_id, current_user_id, deadline=deadline)


@router.delete("/{notification_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_notification(
    notification_id: str,
    db: Session = Depends(get_db),
    notifications: NotificationDispatcher = Depends(get_notifications),
    deadline: Deadline = Depends(get_deadline),
    current_user_id: str = Depends(get_current_user_id),
) -> None:
    notifications.delete_notification(db, notification_id, current_user_id, deadline=deadline)
