"""Notification service: append-only event records with a read flag."""

from typing import Callable
from uuid import UUID, uuid4

from plantlife.entities import Notification, NotificationKind
from plantlife.exceptions import ForbiddenError, NotFoundError, UnauthenticatedError
from plantlife.logging_config import get_logger
from plantlife.storage import Storage
from plantlife.utils import utcnow

logger = get_logger(__name__)

DEFAULT_PAGE_SIZE = 50

MESSAGES = {
    NotificationKind.LIKE: "{name} liked your post",
    NotificationKind.SHARE: "{name} shared your post",
    NotificationKind.FOLLOW: "{name} started following you",
    NotificationKind.REPLY: "{name} replied to your post",
}


def describe(kind: NotificationKind, actor_name: str) -> str:
    """Human-readable message for a notification caused by ``actor_name``."""
    return MESSAGES[kind].format(name=actor_name or "Someone")


class NotificationService:
    def __init__(
        self,
        storage: Storage,
        page_size: int = DEFAULT_PAGE_SIZE,
        clock: Callable = utcnow,
    ):
        self.storage = storage
        self.page_size = page_size
        self.clock = clock

    async def emit(
        self,
        target_user_id: UUID,
        from_user_id: UUID | None,
        kind: NotificationKind,
        message: str,
        post_id: UUID | None = None,
    ) -> Notification:
        """Insert a single notification."""
        notification = Notification(
            id=uuid4(),
            user_id=target_user_id,
            from_user_id=from_user_id,
            kind=NotificationKind(kind),
            post_id=post_id,
            message=message,
            created_at=self.clock(),
        )
        await self.storage.insert_notification(notification)
        logger.info(
            "notification_emitted",
            user_id=str(target_user_id),
            kind=notification.kind.value,
            post_id=str(post_id) if post_id else None,
        )
        return notification

    async def list_for(
        self,
        user_id: UUID | None,
        limit: int | None = None,
        unread_only: bool = False,
    ) -> list[Notification]:
        """Newest first, bounded by the page size."""
        if user_id is None:
            raise UnauthenticatedError()
        limit = min(limit or self.page_size, self.page_size)
        return await self.storage.list_notifications(user_id, limit, unread_only)

    async def unread_count(self, user_id: UUID | None) -> int:
        if user_id is None:
            raise UnauthenticatedError()
        return await self.storage.count_unread_notifications(user_id)

    async def mark_read(self, notification_id: UUID, actor_id: UUID | None) -> Notification:
        if actor_id is None:
            raise UnauthenticatedError()
        notification = await self.storage.get_notification(notification_id)
        if notification is None:
            raise NotFoundError("Notification", str(notification_id))
        if notification.user_id != actor_id:
            raise ForbiddenError("Not your notification")
        if notification.is_read:
            return notification
        return await self.storage.mark_notification_read(notification_id) or notification

    async def mark_all_read(self, actor_id: UUID | None) -> int:
        if actor_id is None:
            raise UnauthenticatedError()
        count = await self.storage.mark_all_notifications_read(actor_id)
        logger.info("notifications_marked_read", user_id=str(actor_id), count=count)
        return count
