"""Content service: posts, reply threads and deletion cascades."""

from typing import Callable
from uuid import UUID, uuid4

from plantlife.entities import NotificationKind, Post
from plantlife.exceptions import (
    ForbiddenError,
    NotFoundError,
    UnauthenticatedError,
    ValidationError,
)
from plantlife.logging_config import get_logger
from plantlife.services import push
from plantlife.services.effects import BroadcastIntent, NotificationIntent, Outcome
from plantlife.services.identity_service import IdentityService
from plantlife.services.moderation import ModerationResult
from plantlife.services.notification_service import describe
from plantlife.storage import Storage
from plantlife.utils import utcnow

logger = get_logger(__name__)

Moderator = Callable[[str], ModerationResult]


class ContentService:
    def __init__(
        self,
        storage: Storage,
        identity: IdentityService,
        max_length: int = 280,
        moderator: Moderator | None = None,
        search_limit: int = 50,
        clock: Callable = utcnow,
    ):
        self.storage = storage
        self.identity = identity
        self.max_length = max_length
        self.moderator = moderator
        self.search_limit = search_limit
        self.clock = clock

    def _validate_body(self, body: str | None) -> str:
        if body is None or not body.strip():
            raise ValidationError("Post body cannot be empty", field="body")
        if len(body) > self.max_length:
            raise ValidationError(
                f"Post body exceeds {self.max_length} characters", field="body"
            )
        if self.moderator is not None:
            verdict = self.moderator(body)
            if not verdict.is_valid:
                logger.info("post_rejected_by_moderation", category=verdict.category)
                raise ValidationError(verdict.reason or "Content rejected", field="body")
        return body

    async def create(
        self,
        actor_id: UUID | None,
        body: str,
        reply_to_id: UUID | None = None,
        media_url: str | None = None,
    ) -> Outcome[Post]:
        if actor_id is None:
            raise UnauthenticatedError()
        body = self._validate_body(body)
        author = await self.identity.require(actor_id)

        parent = None
        if reply_to_id is not None:
            parent = await self.storage.get_post(reply_to_id)
            if parent is None:
                raise NotFoundError("Post", str(reply_to_id))

        now = self.clock()
        post = Post(
            id=uuid4(),
            author_id=author.id,
            body=body,
            reply_to_id=reply_to_id,
            media_url=media_url,
            created_at=now,
            updated_at=now,
        )
        post = await self.storage.insert_post(post)
        await self.identity.recompute_counters(author.id)
        logger.info(
            "post_created",
            post_id=str(post.id),
            author_id=str(author.id),
            reply_to_id=str(reply_to_id) if reply_to_id else None,
        )

        effects = []
        if parent is not None and parent.author_id != author.id:
            effects.append(
                NotificationIntent(
                    user_id=parent.author_id,
                    from_user_id=author.id,
                    kind=NotificationKind.REPLY,
                    message=describe(NotificationKind.REPLY, author.display_name),
                    post_id=post.id,
                )
            )
        effects.append(
            BroadcastIntent(
                push.NEW_POST,
                {
                    "post_id": str(post.id),
                    "author_id": str(author.id),
                    "reply_to_id": str(reply_to_id) if reply_to_id else None,
                },
            )
        )
        return Outcome(post, effects)

    async def get(self, post_id: UUID) -> Post | None:
        return await self.storage.get_post(post_id)

    async def require(self, post_id: UUID) -> Post:
        post = await self.storage.get_post(post_id)
        if post is None:
            raise NotFoundError("Post", str(post_id))
        return post

    async def list_by_author(self, author_id: UUID) -> list[Post]:
        return await self.storage.list_posts_by_author(author_id)

    async def list_replies(self, post_id: UUID) -> list[Post]:
        """Direct children only, in thread (oldest first) order."""
        return await self.storage.list_replies(post_id)

    async def search(self, query: str, limit: int | None = None) -> list[Post]:
        query = (query or "").strip()
        if not query:
            return []
        limit = min(limit or self.search_limit, self.search_limit)
        return await self.storage.search_posts(query, limit)

    async def delete(self, post_id: UUID, actor_id: UUID | None) -> Outcome[list[Post]]:
        """Delete a post with its reply subtree; only the author may do this."""
        if actor_id is None:
            raise UnauthenticatedError()
        post = await self.require(post_id)
        if post.author_id != actor_id:
            raise ForbiddenError("Only the author can delete this post")

        deleted = await self.storage.delete_post_tree(post_id)
        for author_id in {p.author_id for p in deleted}:
            await self.identity.recompute_counters(author_id)
        logger.info("post_deleted", post_id=str(post_id), cascade=len(deleted) - 1)
        return Outcome(
            deleted,
            [
                BroadcastIntent(
                    push.POST_DELETED,
                    {"post_id": str(post_id), "deleted_ids": [str(p.id) for p in deleted]},
                )
            ],
        )
