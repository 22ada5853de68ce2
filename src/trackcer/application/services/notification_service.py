"""In-app notifications ("another user played a track by your producer")."""

import logging
import math
from collections.abc import Sequence
from typing import Any

from sqlalchemy.ext.asyncio import AsyncSession

from trackcer.infrastructure.persistence.models import (
    ListeningHistoryModel,
    NotificationModel,
    UserModel,
    utc_now,
)
from trackcer.infrastructure.persistence.repositories import NotificationRepository

logger = logging.getLogger(__name__)

TRACK_PLAYED_BY_ANOTHER_USER = "track_played_by_another_user"
NOTIFICATIONS_PER_PAGE = 20


def serialize_notification(notification: NotificationModel) -> dict[str, Any]:
    return {
        "id": notification.id,
        "type": notification.type,
        "data": notification.data or {},
        "producer_id": notification.producer_id,
        "listening_history_id": notification.listening_history_id,
        "is_read": notification.is_read,
        "read_at": notification.read_at.isoformat() if notification.read_at else None,
        "created_at": notification.created_at.isoformat(),
    }


class NotificationService:
    def __init__(self, session: AsyncSession) -> None:
        self.repo = NotificationRepository(session)

    async def notify_track_played(
        self,
        recipients: Sequence[UserModel],
        history: ListeningHistoryModel,
        played_by: UserModel,
        producer_ids: Sequence[int],
        producer_names: Sequence[str],
    ) -> int:
        """Tell each recipient that played_by listened to a track by one of their producers.

        Returns:
            Number of notifications created
        """
        producer_name = ", ".join(producer_names)
        data = {
            "track_name": history.track_name,
            "artist_name": history.artist_name,
            "played_by_user_id": played_by.id,
            "played_by_name": played_by.name,
            "track_id": history.id,
            "producer_name": producer_name,
            "message": (
                f"{played_by.name} played {history.track_name} by {history.artist_name}"
                f" (produced by {producer_name})"
            ),
        }
        for recipient in recipients:
            await self.repo.add(
                NotificationModel(
                    user_id=recipient.id,
                    producer_id=producer_ids[0] if producer_ids else None,
                    listening_history_id=history.id,
                    type=TRACK_PLAYED_BY_ANOTHER_USER,
                    data=dict(data),
                )
            )

        if recipients:
            logger.info(
                "Sent track played notifications",
                extra={"history_id": history.id, "recipients": len(recipients)},
            )
        return len(recipients)

    async def list_for_user(self, user_id: int, page: int = 1) -> dict[str, Any]:
        """One page of notifications, newest first, with pagination meta."""
        page = max(1, page)
        notifications, total = await self.repo.paginate_for_user(
            user_id, page, NOTIFICATIONS_PER_PAGE
        )
        return {
            "data": [serialize_notification(n) for n in notifications],
            "meta": {
                "current_page": page,
                "per_page": NOTIFICATIONS_PER_PAGE,
                "total": total,
                "last_page": max(1, math.ceil(total / NOTIFICATIONS_PER_PAGE)),
            },
        }

    async def mark_read(self, user_id: int, notification_id: int) -> NotificationModel:
        """Mark one of the user's notifications as read.

        Raises:
            EntityNotFoundException: Unknown id or someone else's notification
        """
        notification = await self.repo.get_for_user(user_id, notification_id)
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = utc_now()
        return notification

    async def mark_all_read(self, user_id: int) -> int:
        return await self.repo.mark_all_read(user_id)

    async def unread_count(self, user_id: int) -> int:
        return await self.repo.unread_count(user_id)
