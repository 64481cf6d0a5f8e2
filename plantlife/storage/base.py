"""Persistence contract shared by every storage adapter.

Adapters own atomicity: each method is one unit of work, and methods that
change engagement or reply rows leave the affected post's derived counters
equal to the number of rows they count. Post listings order by
``created_at`` and break exact ties by the insertion ``sequence``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from enum import Enum
from typing import Iterable
from uuid import UUID

from plantlife.entities import Follow, Notification, Post, User, VerificationRequest


class EngagementKind(str, Enum):
    LIKE = "like"
    SHARE = "share"


class Storage(ABC):
    """Abstract store; relational, document and in-memory adapters implement it."""

    name: str = "abstract"

    async def close(self) -> None:
        """Release adapter resources."""

    # ------------------------------------------------------------------
    # Users
    # ------------------------------------------------------------------

    @abstractmethod
    async def get_user(self, user_id: UUID) -> User | None:
        raise NotImplementedError

    @abstractmethod
    async def get_users(self, user_ids: Iterable[UUID]) -> dict[UUID, User]:
        raise NotImplementedError

    @abstractmethod
    async def get_user_by_handle(self, handle: str) -> User | None:
        raise NotImplementedError

    @abstractmethod
    async def get_user_by_phone(self, phone: str) -> User | None:
        raise NotImplementedError

    @abstractmethod
    async def list_users(self, limit: int, exclude: set[UUID] | None = None) -> list[User]:
        """Users in registration order, oldest first."""
        raise NotImplementedError

    @abstractmethod
    async def insert_user(self, user: User) -> User:
        """Persist a new user. Raises ConflictError on duplicate phone or handle."""
        raise NotImplementedError

    @abstractmethod
    async def update_user(self, user: User) -> User:
        """Write back the profile and verification fields of an existing user.

        Derived counters are left as stored; only ``set_user_counters`` writes
        them. Returns the stored user. Raises ConflictError on handle clash.
        """
        raise NotImplementedError

    @abstractmethod
    async def count_followers(self, user_id: UUID) -> int:
        raise NotImplementedError

    @abstractmethod
    async def count_following(self, user_id: UUID) -> int:
        raise NotImplementedError

    @abstractmethod
    async def count_posts(self, user_id: UUID) -> int:
        raise NotImplementedError

    @abstractmethod
    async def set_user_counters(
        self,
        user_id: UUID,
        followers: int,
        following: int,
        posts: int,
        updated_at: datetime,
    ) -> User | None:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Posts
    # ------------------------------------------------------------------

    @abstractmethod
    async def insert_post(self, post: Post) -> Post:
        """Persist a post and return it with its insertion ``sequence`` assigned.

        A reply also refreshes its parent's replies_count.
        """
        raise NotImplementedError

    @abstractmethod
    async def get_post(self, post_id: UUID) -> Post | None:
        raise NotImplementedError

    @abstractmethod
    async def list_posts_by_author(self, author_id: UUID) -> list[Post]:
        """Newest first. Timestamp ties keep insertion order."""
        raise NotImplementedError

    @abstractmethod
    async def list_posts_by_authors(self, author_ids: Iterable[UUID], limit: int) -> list[Post]:
        """Newest first, at most ``limit`` posts."""
        raise NotImplementedError

    @abstractmethod
    async def list_replies(self, post_id: UUID) -> list[Post]:
        """Direct children only, oldest first."""
        raise NotImplementedError

    @abstractmethod
    async def search_posts(self, query: str, limit: int) -> list[Post]:
        """Case-insensitive substring match on the body, newest first."""
        raise NotImplementedError

    @abstractmethod
    async def delete_post_tree(self, post_id: UUID) -> list[Post]:
        """Delete a post, its reply subtree and every row referencing them.

        Returns the deleted posts (root first). The surviving parent's
        replies_count is refreshed.
        """
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Social graph
    # ------------------------------------------------------------------

    @abstractmethod
    async def insert_follow(self, follow: Follow) -> bool:
        """Returns False when the edge already exists."""
        raise NotImplementedError

    @abstractmethod
    async def delete_follow(self, follower_id: UUID, followee_id: UUID) -> bool:
        """Returns False when there was no edge."""
        raise NotImplementedError

    @abstractmethod
    async def follow_exists(self, follower_id: UUID, followee_id: UUID) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def list_following_ids(self, user_id: UUID) -> list[UUID]:
        raise NotImplementedError

    @abstractmethod
    async def list_follower_ids(self, user_id: UUID) -> list[UUID]:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Engagement (likes, shares)
    # ------------------------------------------------------------------

    @abstractmethod
    async def insert_engagement(
        self,
        kind: EngagementKind,
        user_id: UUID,
        post_id: UUID,
        created_at: datetime,
    ) -> bool:
        """Returns False when the pair already exists. Refreshes the post counter."""
        raise NotImplementedError

    @abstractmethod
    async def delete_engagement(self, kind: EngagementKind, user_id: UUID, post_id: UUID) -> bool:
        """Returns False when there was no row. Refreshes the post counter."""
        raise NotImplementedError

    @abstractmethod
    async def engagement_exists(self, kind: EngagementKind, user_id: UUID, post_id: UUID) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def engaged_post_ids(
        self,
        kind: EngagementKind,
        user_id: UUID,
        post_ids: Iterable[UUID],
    ) -> set[UUID]:
        """Subset of ``post_ids`` the user has engaged with."""
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    @abstractmethod
    async def insert_notification(self, notification: Notification) -> Notification:
        raise NotImplementedError

    @abstractmethod
    async def get_notification(self, notification_id: UUID) -> Notification | None:
        raise NotImplementedError

    @abstractmethod
    async def list_notifications(
        self,
        user_id: UUID,
        limit: int,
        unread_only: bool = False,
    ) -> list[Notification]:
        """Newest first."""
        raise NotImplementedError

    @abstractmethod
    async def mark_notification_read(self, notification_id: UUID) -> Notification | None:
        raise NotImplementedError

    @abstractmethod
    async def mark_all_notifications_read(self, user_id: UUID) -> int:
        raise NotImplementedError

    @abstractmethod
    async def count_unread_notifications(self, user_id: UUID) -> int:
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Verification requests
    # ------------------------------------------------------------------

    @abstractmethod
    async def insert_verification_request(self, request: VerificationRequest) -> VerificationRequest:
        """Raises ConflictError when the user already has a pending request."""
        raise NotImplementedError

    @abstractmethod
    async def get_verification_request(self, request_id: UUID) -> VerificationRequest | None:
        raise NotImplementedError

    @abstractmethod
    async def list_verification_requests(self, user_id: UUID) -> list[VerificationRequest]:
        """Newest first."""
        raise NotImplementedError

    @abstractmethod
    async def list_pending_verification_requests(self) -> list[VerificationRequest]:
        """Oldest first."""
        raise NotImplementedError

    @abstractmethod
    async def update_verification_request(self, request: VerificationRequest) -> VerificationRequest:
        raise NotImplementedError
