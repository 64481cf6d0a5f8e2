"""Notification endpoints: list, count and mark-read for the caller."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query

from plantlife.auth import get_current_user
from plantlife.dependencies import get_services
from plantlife.entities import User
from plantlife.schemas import (
    MarkAllReadResponse,
    NotificationListResponse,
    NotificationResponse,
    UnreadCountResponse,
)
from plantlife.services import Services

router = APIRouter(prefix="/api/notifications", tags=["notifications"])


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=100),
    services: Services = Depends(get_services),
    user: User = Depends(get_current_user),
):
    """List notifications for the current user, newest first."""
    items = await services.notifications.list_for(user.id, limit, unread_only)
    unread = await services.notifications.unread_count(user.id)
    return NotificationListResponse(
        items=[NotificationResponse.model_validate(n) for n in items],
        unread_count=unread,
    )


@router.get("/unread-count", response_model=UnreadCountResponse)
async def get_unread_count(
    services: Services = Depends(get_services),
    user: User = Depends(get_current_user),
):
    return UnreadCountResponse(count=await services.notifications.unread_count(user.id))


@router.post("/read-all", response_model=MarkAllReadResponse)
async def mark_all_read(
    services: Services = Depends(get_services),
    user: User = Depends(get_current_user),
):
    return MarkAllReadResponse(updated=await services.notifications.mark_all_read(user.id))


@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_read(
    notification_id: UUID,
    services: Services = Depends(get_services),
    user: User = Depends(get_current_user),
):
    """Mark a single notification as read."""
    notification = await services.notifications.mark_read(notification_id, user.id)
    return NotificationResponse.model_validate(notification)
