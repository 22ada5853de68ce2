"""In-app notification endpoints."""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query

from trackcer.api.dependencies import CurrentUser, get_notification_service
from trackcer.application.services import NotificationService
from trackcer.application.services.notification_service import serialize_notification

router = APIRouter()

NotificationsDep = Annotated[NotificationService, Depends(get_notification_service)]


@router.get("")
async def list_notifications(
    user: CurrentUser,
    notifications: NotificationsDep,
    page: Annotated[int, Query(ge=1)] = 1,
) -> dict[str, Any]:
    """20 per page, newest first."""
    return await notifications.list_for_user(user.id, page)


# Declared before /{notification_id}/read, both are PUTs but keep literal paths first.
@router.put("/read-all")
async def mark_all_read(user: CurrentUser, notifications: NotificationsDep) -> dict[str, Any]:
    updated = await notifications.mark_all_read(user.id)
    return {"message": "All notifications marked as read", "updated": updated}


@router.put("/{notification_id}/read")
async def mark_read(
    notification_id: int, user: CurrentUser, notifications: NotificationsDep
) -> dict[str, Any]:
    notification = await notifications.mark_read(user.id, notification_id)
    return {
        "message": "Notification marked as read",
        "notification": serialize_notification(notification),
    }


@router.get("/unread-count")
async def unread_count(user: CurrentUser, notifications: NotificationsDep) -> dict[str, int]:
    return {"unread_count": await notifications.unread_count(user.id)}
