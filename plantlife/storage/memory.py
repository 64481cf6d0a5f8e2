"""In-process storage adapter.

Every method runs without an await point, so each one is atomic with
respect to other coroutines on the same event loop. Records are copied on
the way in and out.
"""

from __future__ import annotations

import itertools
from dataclasses import replace
from datetime import datetime
from typing import Iterable
from uuid import UUID

from plantlife.entities import (
    Follow,
    Notification,
    Post,
    User,
    VerificationRequest,
    VerificationStatus,
)
from plantlife.exceptions import ConflictError
from plantlife.storage.base import EngagementKind, Storage


class MemoryStorage(Storage):
    name = "memory"

    def __init__(self) -> None:
        self._users: dict[UUID, User] = {}
        self._posts: dict[UUID, Post] = {}
        self._post_sequence = itertools.count(1)
        self._follows: dict[tuple[UUID, UUID], Follow] = {}
        self._engagements: dict[EngagementKind, dict[tuple[UUID, UUID], datetime]] = {
            kind: {} for kind in EngagementKind
        }
        self._notifications: dict[UUID, Notification] = {}
        self._verification_requests: dict[UUID, VerificationRequest] = {}

    # -- users -------------------------------------------------------------

    async def get_user(self, user_id: UUID) -> User | None:
        user = self._users.get(user_id)
        return replace(user) if user else None

    async def get_users(self, user_ids: Iterable[UUID]) -> dict[UUID, User]:
        return {uid: replace(self._users[uid]) for uid in set(user_ids) if uid in self._users}

    async def get_user_by_handle(self, handle: str) -> User | None:
        for user in self._users.values():
            if user.handle == handle:
                return replace(user)
        return None

    async def get_user_by_phone(self, phone: str) -> User | None:
        for user in self._users.values():
            if user.phone == phone:
                return replace(user)
        return None

    async def list_users(self, limit: int, exclude: set[UUID] | None = None) -> list[User]:
        exclude = exclude or set()
        users = sorted(self._users.values(), key=lambda u: u.created_at)
        return [replace(u) for u in users if u.id not in exclude][:limit]

    def _check_unique(self, user: User) -> None:
        for other in self._users.values():
            if other.id == user.id:
                continue
            if other.phone == user.phone:
                raise ConflictError(f"Phone {user.phone} is already registered")
            if other.handle == user.handle:
                raise ConflictError(f"Handle @{user.handle} is already taken")

    async def insert_user(self, user: User) -> User:
        if user.id in self._users:
            raise ConflictError(f"User {user.id} already exists")
        self._check_unique(user)
        self._users[user.id] = replace(user)
        return replace(user)

    async def update_user(self, user: User) -> User:
        stored = self._users.get(user.id)
        if stored is None:
            raise ConflictError(f"User {user.id} does not exist")
        self._check_unique(user)
        self._users[user.id] = replace(
            user,
            followers_count=stored.followers_count,
            following_count=stored.following_count,
            posts_count=stored.posts_count,
        )
        return replace(self._users[user.id])

    async def count_followers(self, user_id: UUID) -> int:
        return sum(1 for (_, followee) in self._follows if followee == user_id)

    async def count_following(self, user_id: UUID) -> int:
        return sum(1 for (follower, _) in self._follows if follower == user_id)

    async def count_posts(self, user_id: UUID) -> int:
        return sum(1 for post in self._posts.values() if post.author_id == user_id)

    async def set_user_counters(
        self,
        user_id: UUID,
        followers: int,
        following: int,
        posts: int,
        updated_at: datetime,
    ) -> User | None:
        user = self._users.get(user_id)
        if user is None:
            return None
        user.followers_count = followers
        user.following_count = following
        user.posts_count = posts
        user.updated_at = updated_at
        return replace(user)

    # -- posts -------------------------------------------------------------

    def _refresh_replies(self, post_id: UUID | None) -> None:
        parent = self._posts.get(post_id) if post_id else None
        if parent is not None:
            parent.replies_count = sum(1 for p in self._posts.values() if p.reply_to_id == post_id)

    def _refresh_engagement(self, kind: EngagementKind, post_id: UUID) -> None:
        post = self._posts.get(post_id)
        if post is None:
            return
        count = sum(1 for (_, pid) in self._engagements[kind] if pid == post_id)
        if kind is EngagementKind.LIKE:
            post.likes_count = count
        else:
            post.shares_count = count

    async def insert_post(self, post: Post) -> Post:
        if post.id in self._posts:
            raise ConflictError(f"Post {post.id} already exists")
        self._posts[post.id] = replace(post, sequence=next(self._post_sequence))
        self._refresh_replies(post.reply_to_id)
        return replace(self._posts[post.id])

    async def get_post(self, post_id: UUID) -> Post | None:
        post = self._posts.get(post_id)
        return replace(post) if post else None

    @staticmethod
    def _newest_first(posts: Iterable[Post]) -> list[Post]:
        return [replace(p) for p in sorted(posts, key=Post.newest_first_key)]

    async def list_posts_by_author(self, author_id: UUID) -> list[Post]:
        return self._newest_first(p for p in self._posts.values() if p.author_id == author_id)

    async def list_posts_by_authors(self, author_ids: Iterable[UUID], limit: int) -> list[Post]:
        authors = set(author_ids)
        return self._newest_first(p for p in self._posts.values() if p.author_id in authors)[:limit]

    async def list_replies(self, post_id: UUID) -> list[Post]:
        replies = [p for p in self._posts.values() if p.reply_to_id == post_id]
        return [replace(p) for p in sorted(replies, key=Post.oldest_first_key)]

    async def search_posts(self, query: str, limit: int) -> list[Post]:
        needle = query.lower()
        return self._newest_first(p for p in self._posts.values() if needle in p.body.lower())[:limit]

    async def delete_post_tree(self, post_id: UUID) -> list[Post]:
        root = self._posts.get(post_id)
        if root is None:
            return []

        deleted: list[Post] = []
        frontier = [post_id]
        while frontier:
            current = frontier.pop(0)
            deleted.append(self._posts[current])
            frontier.extend(p.id for p in self._posts.values() if p.reply_to_id == current)

        ids = {p.id for p in deleted}
        for post_key in ids:
            del self._posts[post_key]
        for rows in self._engagements.values():
            for key in [k for k in rows if k[1] in ids]:
                del rows[key]
        for nid in [n.id for n in self._notifications.values() if n.post_id in ids]:
            del self._notifications[nid]

        self._refresh_replies(root.reply_to_id)
        return deleted

    # -- follows -----------------------------------------------------------

    async def insert_follow(self, follow: Follow) -> bool:
        key = (follow.follower_id, follow.followee_id)
        if key in self._follows:
            return False
        self._follows[key] = replace(follow)
        return True

    async def delete_follow(self, follower_id: UUID, followee_id: UUID) -> bool:
        return self._follows.pop((follower_id, followee_id), None) is not None

    async def follow_exists(self, follower_id: UUID, followee_id: UUID) -> bool:
        return (follower_id, followee_id) in self._follows

    async def list_following_ids(self, user_id: UUID) -> list[UUID]:
        return [followee for (follower, followee) in self._follows if follower == user_id]

    async def list_follower_ids(self, user_id: UUID) -> list[UUID]:
        return [follower for (follower, followee) in self._follows if followee == user_id]

    # -- engagement --------------------------------------------------------

    async def insert_engagement(
        self,
        kind: EngagementKind,
        user_id: UUID,
        post_id: UUID,
        created_at: datetime,
    ) -> bool:
        rows = self._engagements[kind]
        if (user_id, post_id) in rows or post_id not in self._posts:
            return False
        rows[(user_id, post_id)] = created_at
        self._refresh_engagement(kind, post_id)
        return True

    async def delete_engagement(self, kind: EngagementKind, user_id: UUID, post_id: UUID) -> bool:
        if self._engagements[kind].pop((user_id, post_id), None) is None:
            return False
        self._refresh_engagement(kind, post_id)
        return True

    async def engagement_exists(self, kind: EngagementKind, user_id: UUID, post_id: UUID) -> bool:
        return (user_id, post_id) in self._engagements[kind]

    async def engaged_post_ids(
        self,
        kind: EngagementKind,
        user_id: UUID,
        post_ids: Iterable[UUID],
    ) -> set[UUID]:
        rows = self._engagements[kind]
        return {pid for pid in post_ids if (user_id, pid) in rows}

    # -- notifications -----------------------------------------------------

    async def insert_notification(self, notification: Notification) -> Notification:
        self._notifications[notification.id] = replace(notification)
        return replace(notification)

    async def get_notification(self, notification_id: UUID) -> Notification | None:
        notification = self._notifications.get(notification_id)
        return replace(notification) if notification else None

    async def list_notifications(
        self,
        user_id: UUID,
        limit: int,
        unread_only: bool = False,
    ) -> list[Notification]:
        rows = [
            n
            for n in self._notifications.values()
            if n.user_id == user_id and not (unread_only and n.is_read)
        ]
        rows.sort(key=lambda n: n.created_at, reverse=True)
        return [replace(n) for n in rows[:limit]]

    async def mark_notification_read(self, notification_id: UUID) -> Notification | None:
        notification = self._notifications.get(notification_id)
        if notification is None:
            return None
        notification.is_read = True
        return replace(notification)

    async def mark_all_notifications_read(self, user_id: UUID) -> int:
        changed = 0
        for notification in self._notifications.values():
            if notification.user_id == user_id and not notification.is_read:
                notification.is_read = True
                changed += 1
        return changed

    async def count_unread_notifications(self, user_id: UUID) -> int:
        return sum(
            1 for n in self._notifications.values() if n.user_id == user_id and not n.is_read
        )

    # -- verification ------------------------------------------------------

    async def insert_verification_request(self, request: VerificationRequest) -> VerificationRequest:
        if request.status == VerificationStatus.PENDING and any(
            r.user_id == request.user_id and r.status == VerificationStatus.PENDING
            for r in self._verification_requests.values()
        ):
            raise ConflictError("A pending verification request already exists")
        self._verification_requests[request.id] = replace(request)
        return replace(request)

    async def get_verification_request(self, request_id: UUID) -> VerificationRequest | None:
        request = self._verification_requests.get(request_id)
        return replace(request) if request else None

    async def list_verification_requests(self, user_id: UUID) -> list[VerificationRequest]:
        rows = [r for r in self._verification_requests.values() if r.user_id == user_id]
        rows.sort(key=lambda r: r.submitted_at, reverse=True)
        return [replace(r) for r in rows]

    async def list_pending_verification_requests(self) -> list[VerificationRequest]:
        rows = [
            r for r in self._verification_requests.values() if r.status == VerificationStatus.PENDING
        ]
        rows.sort(key=lambda r: r.submitted_at)
        return [replace(r) for r in rows]

    async def update_verification_request(self, request: VerificationRequest) -> VerificationRequest:
        self._verification_requests[request.id] = replace(request)
        return replace(request)
