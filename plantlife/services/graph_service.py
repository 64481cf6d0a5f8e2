"""Social graph service: directed follow edges."""

from typing import Callable
from uuid import UUID

from plantlife.entities import Follow, NotificationKind, User
from plantlife.exceptions import InvalidOperationError, UnauthenticatedError
from plantlife.logging_config import get_logger
from plantlife.services import push
from plantlife.services.effects import BroadcastIntent, NotificationIntent, Outcome
from plantlife.services.identity_service import IdentityService
from plantlife.services.notification_service import describe
from plantlife.storage import Storage
from plantlife.utils import utcnow

logger = get_logger(__name__)


class GraphService:
    def __init__(self, storage: Storage, identity: IdentityService, clock: Callable = utcnow):
        self.storage = storage
        self.identity = identity
        self.clock = clock

    async def _endpoints(self, actor_id: UUID | None, followee_id: UUID) -> tuple[User, User]:
        if actor_id is None:
            raise UnauthenticatedError()
        if actor_id == followee_id:
            raise InvalidOperationError("Cannot follow yourself")
        followee = await self.identity.require(followee_id)
        actor = await self.identity.require(actor_id)
        return actor, followee

    async def follow(self, actor_id: UUID | None, followee_id: UUID) -> Outcome[bool]:
        """Create the edge actor -> followee. Repeating it is a no-op.

        The outcome value is True when a new edge was stored.
        """
        actor, followee = await self._endpoints(actor_id, followee_id)
        created = await self.storage.insert_follow(
            Follow(follower_id=actor.id, followee_id=followee.id, created_at=self.clock())
        )
        if not created:
            return Outcome(False)

        await self.identity.recompute_counters(actor.id)
        await self.identity.recompute_counters(followee.id)
        logger.info("user_followed", follower_id=str(actor.id), followee_id=str(followee.id))
        return Outcome(
            True,
            [
                NotificationIntent(
                    user_id=followee.id,
                    from_user_id=actor.id,
                    kind=NotificationKind.FOLLOW,
                    message=describe(NotificationKind.FOLLOW, actor.display_name),
                ),
                BroadcastIntent(
                    push.USER_FOLLOWED,
                    {"follower_id": str(actor.id), "followee_id": str(followee.id)},
                ),
            ],
        )

    async def unfollow(self, actor_id: UUID | None, followee_id: UUID) -> Outcome[bool]:
        """Remove the edge actor -> followee. A missing edge is a no-op."""
        actor, followee = await self._endpoints(actor_id, followee_id)
        removed = await self.storage.delete_follow(actor.id, followee.id)
        if not removed:
            return Outcome(False)

        await self.identity.recompute_counters(actor.id)
        await self.identity.recompute_counters(followee.id)
        logger.info("user_unfollowed", follower_id=str(actor.id), followee_id=str(followee.id))
        return Outcome(
            True,
            [
                BroadcastIntent(
                    push.USER_UNFOLLOWED,
                    {"follower_id": str(actor.id), "followee_id": str(followee.id)},
                )
            ],
        )

    async def is_following(self, follower_id: UUID, followee_id: UUID) -> bool:
        return await self.storage.follow_exists(follower_id, followee_id)
