"""Timeline assembly: follow graph fan-in, enriched for the viewer."""

from uuid import UUID

from plantlife.entities import Post, TimelinePost
from plantlife.exceptions import UnauthenticatedError
from plantlife.logging_config import get_logger
from plantlife.services.identity_service import IdentityService
from plantlife.storage import EngagementKind, Storage

logger = get_logger(__name__)

DEFAULT_PAGE_SIZE = 50


class TimelineService:
    def __init__(
        self,
        storage: Storage,
        identity: IdentityService,
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        self.storage = storage
        self.identity = identity
        self.page_size = page_size

    async def enrich(self, posts: list[Post], viewer_id: UUID | None) -> list[TimelinePost]:
        """Attach author profiles and the viewer's like/share flags."""
        if not posts:
            return []
        post_ids = [p.id for p in posts]
        authors = await self.storage.get_users({p.author_id for p in posts})
        liked: set[UUID] = set()
        shared: set[UUID] = set()
        if viewer_id is not None:
            liked = await self.storage.engaged_post_ids(EngagementKind.LIKE, viewer_id, post_ids)
            shared = await self.storage.engaged_post_ids(EngagementKind.SHARE, viewer_id, post_ids)
        return [
            TimelinePost(
                post=post,
                author=authors.get(post.author_id),
                is_liked=post.id in liked,
                is_shared=post.id in shared,
            )
            for post in posts
        ]

    async def timeline_for(self, user_id: UUID | None) -> list[TimelinePost]:
        """Posts by the user and everyone they follow, newest first, one page."""
        if user_id is None:
            raise UnauthenticatedError()

        authors = set(await self.storage.list_following_ids(user_id))
        authors.add(user_id)
        posts = await self.storage.list_posts_by_authors(authors, self.page_size)
        posts = sorted(posts, key=Post.newest_first_key)[: self.page_size]

        timeline = await self.enrich(posts, user_id)
        logger.debug("timeline_assembled", user_id=str(user_id), authors=len(authors), posts=len(timeline))
        return timeline

    async def user_posts(self, handle: str, viewer_id: UUID | None = None) -> list[TimelinePost]:
        """Profile feed for ``handle``; anonymous viewers get no engagement flags."""
        user = await self.identity.require_by_handle(handle)
        posts = await self.storage.list_posts_by_author(user.id)
        return await self.enrich(posts[: self.page_size], viewer_id)
