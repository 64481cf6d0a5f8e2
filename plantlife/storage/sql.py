"""Relational storage adapter over SQLAlchemy async sessions.

Each public method runs in its own transaction. Derived post counters are
recounted from their source rows inside the transaction that changed them.
"""

from __future__ import annotations

from datetime import datetime
from typing import Iterable
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from plantlife.entities import (
    AccountCategory,
    Follow,
    Notification,
    NotificationKind,
    Post,
    User,
    VerificationCategory,
    VerificationRequest,
    VerificationStatus,
)
from plantlife.exceptions import ConflictError
from plantlife.logging_config import get_logger
from plantlife.models import (
    FollowRow,
    LikeRow,
    NotificationRow,
    PostRow,
    ShareRow,
    UserRow,
    VerificationRequestRow,
)
from plantlife.storage.base import EngagementKind, Storage
from plantlife.utils import ensure_utc

logger = get_logger(__name__)

_ENGAGEMENT_MODELS = {
    EngagementKind.LIKE: (LikeRow, "likes_count"),
    EngagementKind.SHARE: (ShareRow, "shares_count"),
}

# Written by update_user; derived counters only change through set_user_counters.
_PROFILE_FIELDS = (
    "phone",
    "handle",
    "display_name",
    "bio",
    "location",
    "website",
    "profile_image_url",
    "is_verified",
    "is_admin",
    "updated_at",
)
_COUNTER_FIELDS = ("followers_count", "following_count", "posts_count")

_NEWEST_FIRST = (PostRow.created_at.desc(), PostRow.seq.asc())
_OLDEST_FIRST = (PostRow.created_at.asc(), PostRow.seq.asc())


def _opt_utc(value: datetime | None) -> datetime | None:
    return ensure_utc(value) if value is not None else None


def _to_user(row: UserRow) -> User:
    return User(
        id=row.id,
        phone=row.phone,
        handle=row.handle,
        display_name=row.display_name,
        bio=row.bio,
        location=row.location,
        website=row.website,
        profile_image_url=row.profile_image_url,
        account_category=AccountCategory(row.account_category),
        is_verified=row.is_verified,
        verification_category=(
            VerificationCategory(row.verification_category) if row.verification_category else None
        ),
        is_admin=row.is_admin,
        followers_count=row.followers_count,
        following_count=row.following_count,
        posts_count=row.posts_count,
        created_at=ensure_utc(row.created_at),
        updated_at=ensure_utc(row.updated_at),
    )


def _to_post(row: PostRow) -> Post:
    return Post(
        id=row.id,
        author_id=row.author_id,
        body=row.body,
        reply_to_id=row.reply_to_id,
        media_url=row.media_url,
        likes_count=row.likes_count,
        shares_count=row.shares_count,
        replies_count=row.replies_count,
        created_at=ensure_utc(row.created_at),
        updated_at=ensure_utc(row.updated_at),
        sequence=row.seq,
    )


def _to_notification(row: NotificationRow) -> Notification:
    return Notification(
        id=row.id,
        user_id=row.user_id,
        kind=NotificationKind(row.kind),
        message=row.message,
        from_user_id=row.from_user_id,
        post_id=row.post_id,
        is_read=row.is_read,
        created_at=ensure_utc(row.created_at),
    )


def _to_request(row: VerificationRequestRow) -> VerificationRequest:
    return VerificationRequest(
        id=row.id,
        user_id=row.user_id,
        category=VerificationCategory(row.category),
        institute_name=row.institute_name,
        proof_of_work_url=row.proof_of_work_url,
        selfie_url=row.selfie_url,
        status=VerificationStatus(row.status),
        reviewed_by=row.reviewed_by,
        admin_notes=row.admin_notes,
        submitted_at=ensure_utc(row.submitted_at),
        reviewed_at=_opt_utc(row.reviewed_at),
    )


class SqlStorage(Storage):
    """Storage backed by PostgreSQL (asyncpg) or SQLite (aiosqlite)."""

    name = "sql"

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    # -- users -------------------------------------------------------------

    async def get_user(self, user_id: UUID) -> User | None:
        async with self._session_factory() as session:
            row = await session.get(UserRow, user_id)
            return _to_user(row) if row else None

    async def get_users(self, user_ids: Iterable[UUID]) -> dict[UUID, User]:
        ids = list(set(user_ids))
        if not ids:
            return {}
        async with self._session_factory() as session:
            result = await session.execute(select(UserRow).where(UserRow.id.in_(ids)))
            return {row.id: _to_user(row) for row in result.scalars()}

    async def get_user_by_handle(self, handle: str) -> User | None:
        async with self._session_factory() as session:
            result = await session.execute(select(UserRow).where(UserRow.handle == handle))
            row = result.scalar_one_or_none()
            return _to_user(row) if row else None

    async def get_user_by_phone(self, phone: str) -> User | None:
        async with self._session_factory() as session:
            result = await session.execute(select(UserRow).where(UserRow.phone == phone))
            row = result.scalar_one_or_none()
            return _to_user(row) if row else None

    async def list_users(self, limit: int, exclude: set[UUID] | None = None) -> list[User]:
        query = select(UserRow).order_by(UserRow.created_at.asc()).limit(limit)
        if exclude:
            query = query.where(UserRow.id.notin_(list(exclude)))
        async with self._session_factory() as session:
            result = await session.execute(query)
            return [_to_user(row) for row in result.scalars()]

    async def _check_unique(self, session: AsyncSession, user: User) -> None:
        result = await session.execute(
            select(UserRow.phone, UserRow.handle).where(
                UserRow.id != user.id,
                (UserRow.phone == user.phone) | (UserRow.handle == user.handle),
            )
        )
        for phone, handle in result.all():
            if phone == user.phone:
                raise ConflictError(f"Phone {user.phone} is already registered")
            if handle == user.handle:
                raise ConflictError(f"Handle @{user.handle} is already taken")

    async def insert_user(self, user: User) -> User:
        try:
            async with self._session_factory() as session, session.begin():
                await self._check_unique(session, user)
                session.add(
                    UserRow(
                        id=user.id,
                        account_category=user.account_category.value,
                        verification_category=(
                            user.verification_category.value if user.verification_category else None
                        ),
                        created_at=user.created_at,
                        **{name: getattr(user, name) for name in _PROFILE_FIELDS + _COUNTER_FIELDS},
                    )
                )
        except IntegrityError as e:
            logger.warning("user_insert_conflict", handle=user.handle, error=str(e.orig))
            raise ConflictError("Phone or handle is already registered") from e
        return user

    async def update_user(self, user: User) -> User:
        try:
            async with self._session_factory() as session, session.begin():
                await self._check_unique(session, user)
                row = await session.get(UserRow, user.id)
                if row is None:
                    raise ConflictError(f"User {user.id} does not exist")
                for name in _PROFILE_FIELDS:
                    setattr(row, name, getattr(user, name))
                row.account_category = user.account_category.value
                row.verification_category = (
                    user.verification_category.value if user.verification_category else None
                )
                await session.flush()
                stored = _to_user(row)
        except IntegrityError as e:
            raise ConflictError("Phone or handle is already registered") from e
        return stored

    async def _count(self, query) -> int:
        async with self._session_factory() as session:
            result = await session.execute(query)
            return result.scalar_one()

    async def count_followers(self, user_id: UUID) -> int:
        return await self._count(
            select(func.count()).select_from(FollowRow).where(FollowRow.followee_id == user_id)
        )

    async def count_following(self, user_id: UUID) -> int:
        return await self._count(
            select(func.count()).select_from(FollowRow).where(FollowRow.follower_id == user_id)
        )

    async def count_posts(self, user_id: UUID) -> int:
        return await self._count(
            select(func.count()).select_from(PostRow).where(PostRow.author_id == user_id)
        )

    async def set_user_counters(
        self,
        user_id: UUID,
        followers: int,
        following: int,
        posts: int,
        updated_at: datetime,
    ) -> User | None:
        async with self._session_factory() as session, session.begin():
            row = await session.get(UserRow, user_id)
            if row is None:
                return None
            row.followers_count = followers
            row.following_count = following
            row.posts_count = posts
            row.updated_at = updated_at
            await session.flush()
            return _to_user(row)

    # -- posts -------------------------------------------------------------

    @staticmethod
    async def _refresh_replies(session: AsyncSession, post_id: UUID) -> None:
        children = (
            select(func.count())
            .select_from(PostRow)
            .where(PostRow.reply_to_id == post_id)
            .scalar_subquery()
        )
        await session.execute(
            update(PostRow)
            .where(PostRow.id == post_id)
            .values(replies_count=children)
            .execution_options(synchronize_session=False)
        )

    async def insert_post(self, post: Post) -> Post:
        try:
            async with self._session_factory() as session, session.begin():
                row = PostRow(
                    id=post.id,
                    author_id=post.author_id,
                    body=post.body,
                    reply_to_id=post.reply_to_id,
                    media_url=post.media_url,
                    created_at=post.created_at,
                    updated_at=post.updated_at,
                )
                session.add(row)
                await session.flush()
                if post.reply_to_id is not None:
                    await self._refresh_replies(session, post.reply_to_id)
                stored = _to_post(row)
        except IntegrityError as e:
            raise ConflictError(f"Post {post.id} could not be stored") from e
        return stored

    @staticmethod
    async def _post_row(session: AsyncSession, post_id: UUID) -> PostRow | None:
        result = await session.execute(select(PostRow).where(PostRow.id == post_id))
        return result.scalar_one_or_none()

    async def get_post(self, post_id: UUID) -> Post | None:
        async with self._session_factory() as session:
            row = await self._post_row(session, post_id)
            return _to_post(row) if row else None

    async def _select_posts(self, query) -> list[Post]:
        async with self._session_factory() as session:
            result = await session.execute(query)
            return [_to_post(row) for row in result.scalars()]

    async def list_posts_by_author(self, author_id: UUID) -> list[Post]:
        return await self._select_posts(
            select(PostRow).where(PostRow.author_id == author_id).order_by(*_NEWEST_FIRST)
        )

    async def list_posts_by_authors(self, author_ids: Iterable[UUID], limit: int) -> list[Post]:
        ids = list(set(author_ids))
        if not ids:
            return []
        return await self._select_posts(
            select(PostRow)
            .where(PostRow.author_id.in_(ids))
            .order_by(*_NEWEST_FIRST)
            .limit(limit)
        )

    async def list_replies(self, post_id: UUID) -> list[Post]:
        return await self._select_posts(
            select(PostRow).where(PostRow.reply_to_id == post_id).order_by(*_OLDEST_FIRST)
        )

    async def search_posts(self, query: str, limit: int) -> list[Post]:
        return await self._select_posts(
            select(PostRow)
            .where(func.lower(PostRow.body).contains(query.lower(), autoescape=True))
            .order_by(*_NEWEST_FIRST)
            .limit(limit)
        )

    async def delete_post_tree(self, post_id: UUID) -> list[Post]:
        async with self._session_factory() as session, session.begin():
            root = await self._post_row(session, post_id)
            if root is None:
                return []

            rows = [root]
            frontier = [post_id]
            while frontier:
                result = await session.execute(
                    select(PostRow)
                    .where(PostRow.reply_to_id.in_(frontier))
                    .order_by(*_OLDEST_FIRST)
                )
                children = list(result.scalars())
                rows.extend(children)
                frontier = [child.id for child in children]

            deleted = [_to_post(row) for row in rows]
            ids = [row.id for row in rows]
            for model in (LikeRow, ShareRow):
                await session.execute(delete(model).where(model.post_id.in_(ids)))
            await session.execute(delete(NotificationRow).where(NotificationRow.post_id.in_(ids)))
            await session.execute(
                delete(PostRow)
                .where(PostRow.id.in_(ids))
                .execution_options(synchronize_session=False)
            )
            if root.reply_to_id is not None:
                await self._refresh_replies(session, root.reply_to_id)

        logger.debug("post_tree_deleted", post_id=str(post_id), deleted=len(deleted))
        return deleted

    # -- follows -----------------------------------------------------------

    async def insert_follow(self, follow: Follow) -> bool:
        try:
            async with self._session_factory() as session, session.begin():
                existing = await session.get(FollowRow, (follow.follower_id, follow.followee_id))
                if existing is not None:
                    return False
                session.add(
                    FollowRow(
                        follower_id=follow.follower_id,
                        followee_id=follow.followee_id,
                        created_at=follow.created_at,
                    )
                )
        except IntegrityError:
            # Concurrent insert of the same edge.
            return False
        return True

    async def delete_follow(self, follower_id: UUID, followee_id: UUID) -> bool:
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                delete(FollowRow).where(
                    FollowRow.follower_id == follower_id,
                    FollowRow.followee_id == followee_id,
                )
            )
            return result.rowcount > 0

    async def follow_exists(self, follower_id: UUID, followee_id: UUID) -> bool:
        async with self._session_factory() as session:
            return await session.get(FollowRow, (follower_id, followee_id)) is not None

    async def list_following_ids(self, user_id: UUID) -> list[UUID]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(FollowRow.followee_id)
                .where(FollowRow.follower_id == user_id)
                .order_by(FollowRow.created_at.asc())
            )
            return list(result.scalars())

    async def list_follower_ids(self, user_id: UUID) -> list[UUID]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(FollowRow.follower_id)
                .where(FollowRow.followee_id == user_id)
                .order_by(FollowRow.created_at.asc())
            )
            return list(result.scalars())

    # -- engagement --------------------------------------------------------

    @staticmethod
    async def _refresh_engagement(session: AsyncSession, kind: EngagementKind, post_id: UUID) -> None:
        model, column = _ENGAGEMENT_MODELS[kind]
        count = (
            select(func.count()).select_from(model).where(model.post_id == post_id).scalar_subquery()
        )
        await session.execute(
            update(PostRow)
            .where(PostRow.id == post_id)
            .values({column: count})
            .execution_options(synchronize_session=False)
        )

    async def insert_engagement(
        self,
        kind: EngagementKind,
        user_id: UUID,
        post_id: UUID,
        created_at: datetime,
    ) -> bool:
        model, _ = _ENGAGEMENT_MODELS[kind]
        try:
            async with self._session_factory() as session, session.begin():
                if await self._post_row(session, post_id) is None:
                    return False
                if await session.get(model, (user_id, post_id)) is not None:
                    return False
                session.add(model(user_id=user_id, post_id=post_id, created_at=created_at))
                await session.flush()
                await self._refresh_engagement(session, kind, post_id)
        except IntegrityError:
            return False
        return True

    async def delete_engagement(self, kind: EngagementKind, user_id: UUID, post_id: UUID) -> bool:
        model, _ = _ENGAGEMENT_MODELS[kind]
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                delete(model).where(model.user_id == user_id, model.post_id == post_id)
            )
            if result.rowcount == 0:
                return False
            await self._refresh_engagement(session, kind, post_id)
            return True

    async def engagement_exists(self, kind: EngagementKind, user_id: UUID, post_id: UUID) -> bool:
        model, _ = _ENGAGEMENT_MODELS[kind]
        async with self._session_factory() as session:
            return await session.get(model, (user_id, post_id)) is not None

    async def engaged_post_ids(
        self,
        kind: EngagementKind,
        user_id: UUID,
        post_ids: Iterable[UUID],
    ) -> set[UUID]:
        ids = list(set(post_ids))
        if not ids:
            return set()
        model, _ = _ENGAGEMENT_MODELS[kind]
        async with self._session_factory() as session:
            result = await session.execute(
                select(model.post_id).where(model.user_id == user_id, model.post_id.in_(ids))
            )
            return set(result.scalars())

    # -- notifications -----------------------------------------------------

    async def insert_notification(self, notification: Notification) -> Notification:
        async with self._session_factory() as session, session.begin():
            session.add(
                NotificationRow(
                    id=notification.id,
                    user_id=notification.user_id,
                    from_user_id=notification.from_user_id,
                    kind=notification.kind.value,
                    post_id=notification.post_id,
                    message=notification.message,
                    is_read=notification.is_read,
                    created_at=notification.created_at,
                )
            )
        return notification

    async def get_notification(self, notification_id: UUID) -> Notification | None:
        async with self._session_factory() as session:
            row = await session.get(NotificationRow, notification_id)
            return _to_notification(row) if row else None

    async def list_notifications(
        self,
        user_id: UUID,
        limit: int,
        unread_only: bool = False,
    ) -> list[Notification]:
        query = select(NotificationRow).where(NotificationRow.user_id == user_id)
        if unread_only:
            query = query.where(NotificationRow.is_read.is_(False))
        query = query.order_by(NotificationRow.created_at.desc()).limit(limit)
        async with self._session_factory() as session:
            result = await session.execute(query)
            return [_to_notification(row) for row in result.scalars()]

    async def mark_notification_read(self, notification_id: UUID) -> Notification | None:
        async with self._session_factory() as session, session.begin():
            row = await session.get(NotificationRow, notification_id)
            if row is None:
                return None
            row.is_read = True
            await session.flush()
            return _to_notification(row)

    async def mark_all_notifications_read(self, user_id: UUID) -> int:
        async with self._session_factory() as session, session.begin():
            result = await session.execute(
                update(NotificationRow)
                .where(NotificationRow.user_id == user_id, NotificationRow.is_read.is_(False))
                .values(is_read=True)
                .execution_options(synchronize_session=False)
            )
            return result.rowcount

    async def count_unread_notifications(self, user_id: UUID) -> int:
        return await self._count(
            select(func.count())
            .select_from(NotificationRow)
            .where(NotificationRow.user_id == user_id, NotificationRow.is_read.is_(False))
        )

    # -- verification ------------------------------------------------------

    async def insert_verification_request(self, request: VerificationRequest) -> VerificationRequest:
        try:
            async with self._session_factory() as session, session.begin():
                session.add(
                    VerificationRequestRow(
                        id=request.id,
                        user_id=request.user_id,
                        category=request.category.value,
                        institute_name=request.institute_name,
                        proof_of_work_url=request.proof_of_work_url,
                        selfie_url=request.selfie_url,
                        status=request.status.value,
                        reviewed_by=request.reviewed_by,
                        admin_notes=request.admin_notes,
                        submitted_at=request.submitted_at,
                        reviewed_at=request.reviewed_at,
                    )
                )
        except IntegrityError as e:
            # uq_verification_pending_user: one pending request per user.
            logger.info("verification_insert_conflict", user_id=str(request.user_id))
            raise ConflictError("A pending verification request already exists") from e
        return request

    async def get_verification_request(self, request_id: UUID) -> VerificationRequest | None:
        async with self._session_factory() as session:
            row = await session.get(VerificationRequestRow, request_id)
            return _to_request(row) if row else None

    async def list_verification_requests(self, user_id: UUID) -> list[VerificationRequest]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(VerificationRequestRow)
                .where(VerificationRequestRow.user_id == user_id)
                .order_by(VerificationRequestRow.submitted_at.desc())
            )
            return [_to_request(row) for row in result.scalars()]

    async def list_pending_verification_requests(self) -> list[VerificationRequest]:
        async with self._session_factory() as session:
            result = await session.execute(
                select(VerificationRequestRow)
                .where(VerificationRequestRow.status == VerificationStatus.PENDING.value)
                .order_by(VerificationRequestRow.submitted_at.asc())
            )
            return [_to_request(row) for row in result.scalars()]

    async def update_verification_request(self, request: VerificationRequest) -> VerificationRequest:
        async with self._session_factory() as session, session.begin():
            row = await session.get(VerificationRequestRow, request.id)
            if row is None:
                raise ConflictError(f"Verification request {request.id} does not exist")
            row.status = request.status.value
            row.reviewed_by = request.reviewed_by
            row.admin_notes = request.admin_notes
            row.reviewed_at = request.reviewed_at
        return request
