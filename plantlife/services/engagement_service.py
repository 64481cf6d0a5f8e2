"""Engagement service: idempotent likes and shares."""

from typing import Callable
from uuid import UUID

from plantlife.entities import NotificationKind, Post
from plantlife.exceptions import NotFoundError, UnauthenticatedError
from plantlife.logging_config import get_logger
from plantlife.services import push
from plantlife.services.effects import BroadcastIntent, NotificationIntent, Outcome
from plantlife.services.identity_service import IdentityService
from plantlife.services.notification_service import describe
from plantlife.storage import EngagementKind, Storage
from plantlife.utils import utcnow

logger = get_logger(__name__)

_ADDED = {
    EngagementKind.LIKE: (push.POST_LIKED, NotificationKind.LIKE),
    EngagementKind.SHARE: (push.POST_SHARED, NotificationKind.SHARE),
}
_REMOVED = {
    EngagementKind.LIKE: push.POST_UNLIKED,
    EngagementKind.SHARE: push.POST_UNSHARED,
}


class EngagementService:
    def __init__(self, storage: Storage, identity: IdentityService, clock: Callable = utcnow):
        self.storage = storage
        self.identity = identity
        self.clock = clock

    async def _post(self, actor_id: UUID | None, post_id: UUID) -> Post:
        if actor_id is None:
            raise UnauthenticatedError()
        post = await self.storage.get_post(post_id)
        if post is None:
            raise NotFoundError("Post", str(post_id))
        return post

    @staticmethod
    def _payload(post: Post, actor_id: UUID) -> dict:
        return {
            "post_id": str(post.id),
            "user_id": str(actor_id),
            "likes_count": post.likes_count,
            "shares_count": post.shares_count,
        }

    async def _add(self, kind: EngagementKind, actor_id: UUID | None, post_id: UUID) -> Outcome[Post]:
        post = await self._post(actor_id, post_id)
        created = await self.storage.insert_engagement(kind, actor_id, post_id, self.clock())
        refreshed = await self.storage.get_post(post_id) or post
        if not created:
            return Outcome(refreshed)

        event, notification_kind = _ADDED[kind]
        logger.info(event, post_id=str(post_id), user_id=str(actor_id))
        effects = []
        if post.author_id != actor_id:
            actor = await self.identity.get(actor_id)
            effects.append(
                NotificationIntent(
                    user_id=post.author_id,
                    from_user_id=actor_id,
                    kind=notification_kind,
                    message=describe(notification_kind, actor.display_name if actor else ""),
                    post_id=post_id,
                )
            )
        effects.append(BroadcastIntent(event, self._payload(refreshed, actor_id)))
        return Outcome(refreshed, effects)

    async def _remove(
        self, kind: EngagementKind, actor_id: UUID | None, post_id: UUID
    ) -> Outcome[Post]:
        post = await self._post(actor_id, post_id)
        removed = await self.storage.delete_engagement(kind, actor_id, post_id)
        refreshed = await self.storage.get_post(post_id) or post
        if not removed:
            return Outcome(refreshed)
        logger.info(_REMOVED[kind], post_id=str(post_id), user_id=str(actor_id))
        return Outcome(refreshed, [BroadcastIntent(_REMOVED[kind], self._payload(refreshed, actor_id))])

    async def like(self, actor_id: UUID | None, post_id: UUID) -> Outcome[Post]:
        return await self._add(EngagementKind.LIKE, actor_id, post_id)

    async def unlike(self, actor_id: UUID | None, post_id: UUID) -> Outcome[Post]:
        return await self._remove(EngagementKind.LIKE, actor_id, post_id)

    async def share(self, actor_id: UUID | None, post_id: UUID) -> Outcome[Post]:
        return await self._add(EngagementKind.SHARE, actor_id, post_id)

    async def unshare(self, actor_id: UUID | None, post_id: UUID) -> Outcome[Post]:
        return await self._remove(EngagementKind.SHARE, actor_id, post_id)

    async def is_liked(self, user_id: UUID, post_id: UUID) -> bool:
        return await self.storage.engagement_exists(EngagementKind.LIKE, user_id, post_id)

    async def is_shared(self, user_id: UUID, post_id: UUID) -> bool:
        return await self.storage.engagement_exists(EngagementKind.SHARE, user_id, post_id)
