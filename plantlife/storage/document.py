"""Document-store adapter over Redis.

Every record is one JSON document under ``{prefix}:{collection}:{id}``;
lookups go through secondary structures kept next to the documents:

* ``user:handle`` / ``user:phone`` hashes map unique keys to user ids
* sorted sets (scored by timestamp) index posts by author, replies by parent,
  follow edges in both directions, notifications and verification requests
* plain sets hold like/share membership and unread notification ids

Post counters are never stored: they are the cardinality of the engagement
and reply sets, read in the same pipeline as the document. Posts take their
insertion ``sequence`` from an INCR counter; sorted-set scores only hold the
timestamp, so listings re-sort on ``(created_at, sequence)``.
"""

from __future__ import annotations

import json
from dataclasses import replace
from datetime import datetime
from typing import Any, Callable, Iterable
from uuid import UUID

import redis.asyncio as aioredis
from redis.exceptions import WatchError

from plantlife.entities import (
    Follow,
    Notification,
    Post,
    User,
    VerificationRequest,
    VerificationStatus,
)
from plantlife.exceptions import ConflictError
from plantlife.logging_config import get_logger
from plantlife.storage.base import EngagementKind, Storage

logger = get_logger(__name__)

# Only set_user_counters writes these.
_COUNTER_FIELDS = ("followers_count", "following_count", "posts_count")


def _score(value: datetime) -> float:
    return value.timestamp()


class DocumentStorage(Storage):
    """Storage backed by a Redis database with ``decode_responses=True``."""

    name = "document"

    def __init__(self, redis: aioredis.Redis, prefix: str = "plantlife"):
        self._redis = redis
        self._prefix = prefix

    def _key(self, *parts: Any) -> str:
        return ":".join([self._prefix, *(str(p) for p in parts)])

    async def _load(self, collection: str, ids: list[str]) -> list[dict]:
        if not ids:
            return []
        raws = await self._redis.mget([self._key(collection, i) for i in ids])
        return [json.loads(raw) for raw in raws if raw is not None]

    async def _update_document(
        self,
        key: str,
        mutate: Callable[[dict], dict],
    ) -> dict | None:
        """Read-modify-write one document under WATCH."""
        async with self._redis.pipeline(transaction=True) as pipe:
            while True:
                try:
                    await pipe.watch(key)
                    raw = await pipe.get(key)
                    if raw is None:
                        await pipe.unwatch()
                        return None
                    data = mutate(json.loads(raw))
                    pipe.multi()
                    pipe.set(key, json.dumps(data))
                    await pipe.execute()
                    return data
                except WatchError:
                    logger.debug("document_write_retry", key=key)
                    continue

    # -- users -------------------------------------------------------------

    async def get_user(self, user_id: UUID) -> User | None:
        raw = await self._redis.get(self._key("user", user_id))
        return User.from_dict(json.loads(raw)) if raw else None

    async def get_users(self, user_ids: Iterable[UUID]) -> dict[UUID, User]:
        docs = await self._load("user", [str(uid) for uid in set(user_ids)])
        users = [User.from_dict(doc) for doc in docs]
        return {user.id: user for user in users}

    async def _user_by_index(self, index: str, value: str) -> User | None:
        user_id = await self._redis.hget(self._key("user", index), value)
        if user_id is None:
            return None
        return await self.get_user(UUID(user_id))

    async def get_user_by_handle(self, handle: str) -> User | None:
        return await self._user_by_index("handle", handle)

    async def get_user_by_phone(self, phone: str) -> User | None:
        return await self._user_by_index("phone", phone)

    async def list_users(self, limit: int, exclude: set[UUID] | None = None) -> list[User]:
        excluded = {str(uid) for uid in exclude or set()}
        ids = [i for i in await self._redis.zrange(self._key("users"), 0, -1) if i not in excluded]
        docs = await self._load("user", ids[:limit])
        return [User.from_dict(doc) for doc in docs]

    async def _claim(self, index: str, value: str, user_id: str) -> bool:
        """Reserve a unique key for a user; True if it is (now) theirs."""
        key = self._key("user", index)
        if await self._redis.hsetnx(key, value, user_id):
            return True
        return await self._redis.hget(key, value) == user_id

    async def insert_user(self, user: User) -> User:
        uid = str(user.id)
        if not await self._claim("phone", user.phone, uid):
            raise ConflictError(f"Phone {user.phone} is already registered")
        if not await self._claim("handle", user.handle, uid):
            await self._redis.hdel(self._key("user", "phone"), user.phone)
            raise ConflictError(f"Handle @{user.handle} is already taken")

        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.set(self._key("user", uid), json.dumps(user.to_dict()))
            pipe.zadd(self._key("users"), {uid: _score(user.created_at)})
            await pipe.execute()
        return user

    async def update_user(self, user: User) -> User:
        uid = str(user.id)
        current = await self.get_user(user.id)
        if current is None:
            raise ConflictError(f"User {uid} does not exist")

        for index, old, new in (
            ("phone", current.phone, user.phone),
            ("handle", current.handle, user.handle),
        ):
            if old == new:
                continue
            if not await self._claim(index, new, uid):
                label = "Phone" if index == "phone" else "Handle"
                raise ConflictError(f"{label} {new} is already taken")
            await self._redis.hdel(self._key("user", index), old)

        def mutate(doc: dict) -> dict:
            updated = user.to_dict()
            for name in _COUNTER_FIELDS:
                updated[name] = doc.get(name, 0)
            return updated

        doc = await self._update_document(self._key("user", uid), mutate)
        if doc is None:
            raise ConflictError(f"User {uid} does not exist")
        return User.from_dict(doc)

    async def count_followers(self, user_id: UUID) -> int:
        return await self._redis.zcard(self._key("follows", "in", user_id))

    async def count_following(self, user_id: UUID) -> int:
        return await self._redis.zcard(self._key("follows", "out", user_id))

    async def count_posts(self, user_id: UUID) -> int:
        return await self._redis.zcard(self._key("posts", "author", user_id))

    async def set_user_counters(
        self,
        user_id: UUID,
        followers: int,
        following: int,
        posts: int,
        updated_at: datetime,
    ) -> User | None:
        def mutate(doc: dict) -> dict:
            doc["followers_count"] = followers
            doc["following_count"] = following
            doc["posts_count"] = posts
            doc["updated_at"] = updated_at.isoformat()
            return doc

        doc = await self._update_document(self._key("user", user_id), mutate)
        return User.from_dict(doc) if doc else None

    # -- posts -------------------------------------------------------------

    async def _hydrate_posts(self, ids: list[str]) -> list[Post]:
        """Load post documents with counters derived from their index sets."""
        if not ids:
            return []
        async with self._redis.pipeline(transaction=True) as pipe:
            for pid in ids:
                pipe.get(self._key("post", pid))
                pipe.scard(self._key(EngagementKind.LIKE.value, pid))
                pipe.scard(self._key(EngagementKind.SHARE.value, pid))
                pipe.zcard(self._key("posts", "replies", pid))
            results = await pipe.execute()

        posts = []
        for i in range(0, len(results), 4):
            raw, likes, shares, replies = results[i : i + 4]
            if raw is None:
                continue
            post = Post.from_dict(json.loads(raw))
            post.likes_count = likes
            post.shares_count = shares
            post.replies_count = replies
            posts.append(post)
        return posts

    async def insert_post(self, post: Post) -> Post:
        post = replace(post, sequence=await self._redis.incr(self._key("posts", "seq")))
        pid = str(post.id)
        score = _score(post.created_at)
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.set(self._key("post", pid), json.dumps(post.to_dict()))
            pipe.zadd(self._key("posts", "all"), {pid: score})
            pipe.zadd(self._key("posts", "author", post.author_id), {pid: score})
            if post.reply_to_id is not None:
                pipe.zadd(self._key("posts", "replies", post.reply_to_id), {pid: score})
            await pipe.execute()
        return post

    async def get_post(self, post_id: UUID) -> Post | None:
        posts = await self._hydrate_posts([str(post_id)])
        return posts[0] if posts else None

    async def list_posts_by_author(self, author_id: UUID) -> list[Post]:
        ids = await self._redis.zrevrange(self._key("posts", "author", author_id), 0, -1)
        return sorted(await self._hydrate_posts(ids), key=Post.newest_first_key)

    async def list_posts_by_authors(self, author_ids: Iterable[UUID], limit: int) -> list[Post]:
        authors = list(set(author_ids))
        if not authors or limit <= 0:
            return []
        async with self._redis.pipeline(transaction=False) as pipe:
            for author_id in authors:
                pipe.zrevrange(self._key("posts", "author", author_id), 0, limit - 1, withscores=True)
            per_author = await pipe.execute()

        scored = sorted(
            (entry for entries in per_author for entry in entries),
            key=lambda entry: entry[1],
            reverse=True,
        )
        if len(scored) >= limit:
            # Keep every post tied with the last one that fits; the
            # sequence decides between them after hydration.
            cutoff = scored[limit - 1][1]
            scored = [entry for entry in scored if entry[1] >= cutoff]
            truncated = [
                author_id
                for author_id, entries in zip(authors, per_author)
                if len(entries) == limit and entries[-1][1] == cutoff
            ]
            if truncated:
                async with self._redis.pipeline(transaction=False) as pipe:
                    for author_id in truncated:
                        pipe.zrangebyscore(self._key("posts", "author", author_id), cutoff, cutoff)
                    for ids in await pipe.execute():
                        scored.extend((pid, cutoff) for pid in ids)

        ids = list(dict.fromkeys(pid for pid, _ in scored))
        posts = sorted(await self._hydrate_posts(ids), key=Post.newest_first_key)
        return posts[:limit]

    async def list_replies(self, post_id: UUID) -> list[Post]:
        ids = await self._redis.zrange(self._key("posts", "replies", post_id), 0, -1)
        return sorted(await self._hydrate_posts(ids), key=Post.oldest_first_key)

    async def search_posts(self, query: str, limit: int) -> list[Post]:
        needle = query.lower()
        ids = await self._redis.zrevrange(self._key("posts", "all"), 0, -1)
        matches = [
            Post.from_dict(doc)
            for doc in await self._load("post", ids)
            if needle in doc["body"].lower()
        ]
        matches.sort(key=Post.newest_first_key)
        return await self._hydrate_posts([str(p.id) for p in matches[:limit]])

    async def delete_post_tree(self, post_id: UUID) -> list[Post]:
        deleted: list[Post] = []

        async def attempt(pipe) -> None:
            # Every key read below is watched first, so a concurrent reply,
            # like or share aborts EXEC and the whole delete is retried.
            deleted.clear()
            root_id = str(post_id)
            await pipe.watch(self._key("post", root_id), self._key("posts", "replies", root_id))
            root = await self.get_post(post_id)
            if root is None:
                return

            deleted.append(root)
            frontier = [root_id]
            while frontier:
                children: list[str] = []
                for pid in frontier:
                    children.extend(await pipe.zrange(self._key("posts", "replies", pid), 0, -1))
                if children:
                    await pipe.watch(*(self._key("posts", "replies", c) for c in children))
                deleted.extend(await self._hydrate_posts(children))
                frontier = children

            await pipe.watch(
                *(
                    self._key(collection, post.id)
                    for post in deleted
                    for collection in ("post", *(k.value for k in EngagementKind))
                ),
                *(self._key("notifs", "post", post.id) for post in deleted),
            )
            await self._queue_tree_delete(pipe, root, deleted)

        await self._redis.transaction(attempt)
        if deleted:
            logger.debug("post_tree_deleted", post_id=str(post_id), deleted=len(deleted))
        return list(deleted)

    async def _queue_tree_delete(self, pipe, root: Post, deleted: list[Post]) -> None:
        async with self._redis.pipeline(transaction=False) as reads:
            for post in deleted:
                for kind in EngagementKind:
                    reads.smembers(self._key(kind.value, post.id))
                reads.smembers(self._key("notifs", "post", post.id))
            members = await reads.execute()
        notification_ids = set().union(*members[2::3])
        notification_docs = await self._load("notif", sorted(notification_ids))

        pipe.multi()
        for index, post in enumerate(deleted):
            pid = str(post.id)
            pipe.delete(self._key("post", pid))
            pipe.zrem(self._key("posts", "all"), pid)
            pipe.zrem(self._key("posts", "author", post.author_id), pid)
            pipe.delete(self._key("posts", "replies", pid))
            for offset, kind in enumerate(EngagementKind):
                for user_id in members[index * 3 + offset]:
                    pipe.srem(self._key(kind.value, "user", user_id), pid)
                pipe.delete(self._key(kind.value, pid))
            pipe.delete(self._key("notifs", "post", pid))
        for doc in notification_docs:
            pipe.delete(self._key("notif", doc["id"]))
            pipe.zrem(self._key("notifs", doc["user_id"]), doc["id"])
            pipe.srem(self._key("notifs", "unread", doc["user_id"]), doc["id"])
        if root.reply_to_id is not None:
            pipe.zrem(self._key("posts", "replies", root.reply_to_id), str(root.id))

    # -- follows -----------------------------------------------------------

    async def insert_follow(self, follow: Follow) -> bool:
        score = _score(follow.created_at)
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.zadd(
                self._key("follows", "out", follow.follower_id),
                {str(follow.followee_id): score},
                nx=True,
            )
            pipe.zadd(
                self._key("follows", "in", follow.followee_id),
                {str(follow.follower_id): score},
                nx=True,
            )
            added_out, _ = await pipe.execute()
        return added_out == 1

    async def delete_follow(self, follower_id: UUID, followee_id: UUID) -> bool:
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.zrem(self._key("follows", "out", follower_id), str(followee_id))
            pipe.zrem(self._key("follows", "in", followee_id), str(follower_id))
            removed_out, _ = await pipe.execute()
        return removed_out == 1

    async def follow_exists(self, follower_id: UUID, followee_id: UUID) -> bool:
        score = await self._redis.zscore(self._key("follows", "out", follower_id), str(followee_id))
        return score is not None

    async def list_following_ids(self, user_id: UUID) -> list[UUID]:
        ids = await self._redis.zrange(self._key("follows", "out", user_id), 0, -1)
        return [UUID(i) for i in ids]

    async def list_follower_ids(self, user_id: UUID) -> list[UUID]:
        ids = await self._redis.zrange(self._key("follows", "in", user_id), 0, -1)
        return [UUID(i) for i in ids]

    # -- engagement --------------------------------------------------------

    async def insert_engagement(
        self,
        kind: EngagementKind,
        user_id: UUID,
        post_id: UUID,
        created_at: datetime,
    ) -> bool:
        post_key = self._key("post", post_id)

        async def attempt(pipe) -> None:
            # The post is watched: a delete that lands first aborts EXEC.
            if not await pipe.exists(post_key):
                return
            pipe.multi()
            pipe.sadd(self._key(kind.value, post_id), str(user_id))
            pipe.sadd(self._key(kind.value, "user", user_id), str(post_id))

        results = await self._redis.transaction(attempt, post_key)
        return bool(results) and results[0] == 1

    async def delete_engagement(self, kind: EngagementKind, user_id: UUID, post_id: UUID) -> bool:
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.srem(self._key(kind.value, post_id), str(user_id))
            pipe.srem(self._key(kind.value, "user", user_id), str(post_id))
            removed, _ = await pipe.execute()
        return removed == 1

    async def engagement_exists(self, kind: EngagementKind, user_id: UUID, post_id: UUID) -> bool:
        return bool(await self._redis.sismember(self._key(kind.value, post_id), str(user_id)))

    async def engaged_post_ids(
        self,
        kind: EngagementKind,
        user_id: UUID,
        post_ids: Iterable[UUID],
    ) -> set[UUID]:
        ids = list(set(post_ids))
        if not ids:
            return set()
        flags = await self._redis.smismember(
            self._key(kind.value, "user", user_id), [str(pid) for pid in ids]
        )
        return {pid for pid, flag in zip(ids, flags) if flag}

    # -- notifications -----------------------------------------------------

    async def insert_notification(self, notification: Notification) -> Notification:
        nid = str(notification.id)
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.set(self._key("notif", nid), json.dumps(notification.to_dict()))
            pipe.zadd(
                self._key("notifs", notification.user_id), {nid: _score(notification.created_at)}
            )
            if not notification.is_read:
                pipe.sadd(self._key("notifs", "unread", notification.user_id), nid)
            if notification.post_id is not None:
                pipe.sadd(self._key("notifs", "post", notification.post_id), nid)
            await pipe.execute()
        return notification

    async def _notifications(self, user_id: str, ids: list[str]) -> list[Notification]:
        docs = await self._load("notif", ids)
        unread = await self._redis.smembers(self._key("notifs", "unread", user_id))
        notifications = []
        for doc in docs:
            notification = Notification.from_dict(doc)
            notification.is_read = doc["id"] not in unread
            notifications.append(notification)
        return notifications

    async def get_notification(self, notification_id: UUID) -> Notification | None:
        raw = await self._redis.get(self._key("notif", notification_id))
        if raw is None:
            return None
        doc = json.loads(raw)
        notifications = await self._notifications(doc["user_id"], [doc["id"]])
        return notifications[0] if notifications else None

    async def list_notifications(
        self,
        user_id: UUID,
        limit: int,
        unread_only: bool = False,
    ) -> list[Notification]:
        ids = await self._redis.zrevrange(self._key("notifs", user_id), 0, -1)
        if unread_only and ids:
            flags = await self._redis.smismember(self._key("notifs", "unread", user_id), ids)
            ids = [nid for nid, flag in zip(ids, flags) if flag]
        return await self._notifications(str(user_id), ids[:limit])

    async def mark_notification_read(self, notification_id: UUID) -> Notification | None:
        notification = await self.get_notification(notification_id)
        if notification is None:
            return None
        await self._redis.srem(
            self._key("notifs", "unread", notification.user_id), str(notification_id)
        )
        notification.is_read = True
        return notification

    async def mark_all_notifications_read(self, user_id: UUID) -> int:
        key = self._key("notifs", "unread", user_id)
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.scard(key)
            pipe.delete(key)
            count, _ = await pipe.execute()
        return count

    async def count_unread_notifications(self, user_id: UUID) -> int:
        return await self._redis.scard(self._key("notifs", "unread", user_id))

    # -- verification ------------------------------------------------------

    def _pending_claims(self) -> str:
        return self._key("verifs", "pending", "user")

    async def insert_verification_request(self, request: VerificationRequest) -> VerificationRequest:
        rid = str(request.id)
        score = _score(request.submitted_at)
        if request.status == VerificationStatus.PENDING:
            # One pending request per user: the hash field is the claim.
            claimed = await self._redis.hsetnx(self._pending_claims(), str(request.user_id), rid)
            if not claimed:
                raise ConflictError("A pending verification request already exists")
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.set(self._key("verif", rid), json.dumps(request.to_dict()))
            pipe.zadd(self._key("verifs", "user", request.user_id), {rid: score})
            if request.status == VerificationStatus.PENDING:
                pipe.zadd(self._key("verifs", "pending"), {rid: score})
            await pipe.execute()
        return request

    async def get_verification_request(self, request_id: UUID) -> VerificationRequest | None:
        raw = await self._redis.get(self._key("verif", request_id))
        return VerificationRequest.from_dict(json.loads(raw)) if raw else None

    async def list_verification_requests(self, user_id: UUID) -> list[VerificationRequest]:
        ids = await self._redis.zrevrange(self._key("verifs", "user", user_id), 0, -1)
        return [VerificationRequest.from_dict(doc) for doc in await self._load("verif", ids)]

    async def list_pending_verification_requests(self) -> list[VerificationRequest]:
        ids = await self._redis.zrange(self._key("verifs", "pending"), 0, -1)
        return [VerificationRequest.from_dict(doc) for doc in await self._load("verif", ids)]

    async def update_verification_request(self, request: VerificationRequest) -> VerificationRequest:
        rid = str(request.id)
        if not await self._redis.exists(self._key("verif", rid)):
            raise ConflictError(f"Verification request {rid} does not exist")
        async with self._redis.pipeline(transaction=True) as pipe:
            pipe.set(self._key("verif", rid), json.dumps(request.to_dict()))
            if request.status != VerificationStatus.PENDING:
                pipe.zrem(self._key("verifs", "pending"), rid)
                pipe.hdel(self._pending_claims(), str(request.user_id))
            await pipe.execute()
        return request
