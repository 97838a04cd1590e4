"""Notification feed for lawyers and clients."""
from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from ..payments.errors import InvalidState
from ..schemas.notifications import (
    NotificationListResponse,
    NotificationMarkReadRequest,
    NotificationMarkReadResponse,
    NotificationUnreadCount,
)
from ..services import notifications as notifications_service
from .dependencies import get_current_user

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("", response_model=NotificationListResponse)
def list_notifications(
    *,
    cursor: Optional[str] = Query(default=None),
    limit: int = Query(default=notifications_service.DEFAULT_PAGE_SIZE, ge=1, le=notifications_service.MAX_PAGE_SIZE),
    reference_id: Optional[str] = Query(default=None, alias="referenceId"),
    unread_only: bool = Query(default=False, alias="unreadOnly"),
    current_user=Depends(get_current_user),
) -> NotificationListResponse:
    """Newest-first feed; ``referenceId`` narrows it to one quote."""

    try:
        return notifications_service.list_notifications(
            str(current_user.id),
            limit=limit,
            cursor=cursor,
            reference_id=reference_id,
            unread_only=unread_only,
        )
    except ValueError as exc:
        raise InvalidState(str(exc)) from exc


@router.get("/unread-count", response_model=NotificationUnreadCount)
def get_unread_count(*, current_user=Depends(get_current_user)) -> NotificationUnreadCount:
    by_type = notifications_service.unread_counts(str(current_user.id))
    return NotificationUnreadCount(count=sum(by_type.values()), by_type=by_type)


@router.post("/mark-read", response_model=NotificationMarkReadResponse)
def mark_notifications_read(
    payload: NotificationMarkReadRequest,
    *,
    current_user=Depends(get_current_user),
) -> NotificationMarkReadResponse:
    user_id = str(current_user.id)
    updated_ids = notifications_service.mark_read(
        user_id,
        notification_ids=payload.ids,
        reference_id=payload.reference_id,
    )
    return NotificationMarkReadResponse(
        updated_ids=updated_ids,
        unread_count=notifications_service.unread_count(user_id),
    )
