"""Behaviour every storage adapter must share (memory, SQL, document)."""

from datetime import timedelta
from uuid import uuid4

import pytest

from plantlife.entities import (
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
from plantlife.storage import EngagementKind


def _user(clock, handle: str, phone: str) -> User:
    now = clock()
    return User(
        id=uuid4(),
        phone=phone,
        handle=handle,
        display_name=handle.title(),
        created_at=now,
        updated_at=now,
    )


def _post(clock, author: User, body: str = "hello world", reply_to: Post | None = None) -> Post:
    now = clock()
    return Post(
        id=uuid4(),
        author_id=author.id,
        body=body,
        reply_to_id=reply_to.id if reply_to else None,
        created_at=now,
        updated_at=now,
    )


class TestUsers:
    """User documents and their unique keys."""

    @pytest.mark.asyncio
    async def test_insert_and_lookup(self, storage, clock):
        user = _user(clock, "alice", "+15550000001")
        await storage.insert_user(user)

        assert (await storage.get_user(user.id)).handle == "alice"
        assert (await storage.get_user_by_handle("alice")).id == user.id
        assert (await storage.get_user_by_phone("+15550000001")).id == user.id
        assert await storage.get_user(uuid4()) is None
        assert await storage.get_user_by_handle("nobody") is None

    @pytest.mark.asyncio
    async def test_timestamps_are_utc_aware(self, storage, clock):
        user = _user(clock, "alice", "+15550000001")
        await storage.insert_user(user)

        loaded = await storage.get_user(user.id)
        assert loaded.created_at.tzinfo is not None
        assert loaded.created_at == user.created_at

    @pytest.mark.asyncio
    async def test_duplicate_handle_conflicts(self, storage, clock):
        await storage.insert_user(_user(clock, "alice", "+15550000001"))
        with pytest.raises(ConflictError):
            await storage.insert_user(_user(clock, "alice", "+15550000002"))

    @pytest.mark.asyncio
    async def test_duplicate_phone_conflicts(self, storage, clock):
        await storage.insert_user(_user(clock, "alice", "+15550000001"))
        with pytest.raises(ConflictError):
            await storage.insert_user(_user(clock, "bob", "+15550000001"))
        assert await storage.get_user_by_handle("bob") is None

    @pytest.mark.asyncio
    async def test_get_users_skips_unknown_ids(self, storage, clock):
        alice = _user(clock, "alice", "+15550000001")
        bob = _user(clock, "bob", "+15550000002")
        await storage.insert_user(alice)
        await storage.insert_user(bob)

        found = await storage.get_users([alice.id, bob.id, uuid4()])
        assert set(found) == {alice.id, bob.id}

    @pytest.mark.asyncio
    async def test_list_users_oldest_first_with_exclusions(self, storage, clock):
        users = [_user(clock, f"user_{i}", f"+1555000000{i}") for i in range(4)]
        for user in users:
            await storage.insert_user(user)

        listed = await storage.list_users(2, exclude={users[0].id})
        assert [u.id for u in listed] == [users[1].id, users[2].id]

    @pytest.mark.asyncio
    async def test_set_user_counters(self, storage, clock):
        user = _user(clock, "alice", "+15550000001")
        await storage.insert_user(user)

        updated = await storage.set_user_counters(user.id, 3, 2, 1, clock())
        assert (updated.followers_count, updated.following_count, updated.posts_count) == (3, 2, 1)
        assert (await storage.get_user(user.id)).followers_count == 3
        assert await storage.set_user_counters(uuid4(), 0, 0, 0, clock()) is None

    @pytest.mark.asyncio
    async def test_update_user_keeps_stored_counters(self, storage, clock):
        user = _user(clock, "alice", "+15550000001")
        await storage.insert_user(user)
        stale = await storage.get_user(user.id)
        await storage.set_user_counters(user.id, 3, 2, 1, clock())

        stale.bio = "Tomatoes and basil"
        stale.updated_at = clock()
        returned = await storage.update_user(stale)

        loaded = await storage.get_user(user.id)
        assert loaded.bio == "Tomatoes and basil"
        assert (loaded.followers_count, loaded.following_count, loaded.posts_count) == (3, 2, 1)
        assert (returned.followers_count, returned.following_count, returned.posts_count) == (3, 2, 1)


class TestPosts:
    """Posts, reply threads and cascading deletes."""

    @pytest.mark.asyncio
    async def test_reply_refreshes_parent_counter(self, storage, clock):
        alice = _user(clock, "alice", "+15550000001")
        await storage.insert_user(alice)
        root = _post(clock, alice, "root")
        await storage.insert_post(root)
        first = _post(clock, alice, "first", reply_to=root)
        second = _post(clock, alice, "second", reply_to=root)
        await storage.insert_post(first)
        await storage.insert_post(second)

        assert (await storage.get_post(root.id)).replies_count == 2
        assert [p.id for p in await storage.list_replies(root.id)] == [first.id, second.id]
        assert await storage.count_posts(alice.id) == 3

    @pytest.mark.asyncio
    async def test_author_listing_newest_first(self, storage, clock):
        alice = _user(clock, "alice", "+15550000001")
        await storage.insert_user(alice)
        older = _post(clock, alice, "older")
        newer = _post(clock, alice, "newer")
        await storage.insert_post(older)
        await storage.insert_post(newer)

        assert [p.id for p in await storage.list_posts_by_author(alice.id)] == [newer.id, older.id]

    @pytest.mark.asyncio
    async def test_list_posts_by_authors_limits_and_orders(self, storage, clock):
        alice = _user(clock, "alice", "+15550000001")
        bob = _user(clock, "bob", "+15550000002")
        carol = _user(clock, "carol", "+15550000003")
        for user in (alice, bob, carol):
            await storage.insert_user(user)
        a1 = _post(clock, alice, "a1")
        b1 = _post(clock, bob, "b1")
        c1 = _post(clock, carol, "c1")
        a2 = _post(clock, alice, "a2")
        for post in (a1, b1, c1, a2):
            await storage.insert_post(post)

        posts = await storage.list_posts_by_authors([alice.id, bob.id], 2)
        assert [p.id for p in posts] == [a2.id, b1.id]

    @pytest.mark.asyncio
    async def test_insert_assigns_increasing_sequence(self, storage, clock):
        alice = _user(clock, "alice", "+15550000001")
        await storage.insert_user(alice)
        first = await storage.insert_post(_post(clock, alice, "first"))
        second = await storage.insert_post(_post(clock, alice, "second"))

        assert 0 < first.sequence < second.sequence
        assert (await storage.get_post(second.id)).sequence == second.sequence

    @pytest.mark.asyncio
    async def test_equal_timestamps_keep_insertion_order(self, storage, clock):
        alice = _user(clock, "alice", "+15550000001")
        await storage.insert_user(alice)
        root = _post(clock, alice, "root")
        await storage.insert_post(root)
        clock.step = timedelta(0)
        posts = [_post(clock, alice, f"tied {i}") for i in range(4)]
        replies = [_post(clock, alice, f"reply {i}", reply_to=root) for i in range(3)]
        for post in posts + replies:
            await storage.insert_post(post)

        listed = await storage.list_posts_by_author(alice.id)
        assert [p.id for p in listed] == [p.id for p in posts + replies] + [root.id]
        assert [p.id for p in await storage.list_replies(root.id)] == [r.id for r in replies]
        assert [p.id for p in await storage.search_posts("tied", 2)] == [posts[0].id, posts[1].id]

    @pytest.mark.asyncio
    async def test_list_posts_by_authors_breaks_ties_at_the_limit(self, storage, clock):
        alice = _user(clock, "alice", "+15550000001")
        bob = _user(clock, "bob", "+15550000002")
        await storage.insert_user(alice)
        await storage.insert_user(bob)
        clock.step = timedelta(0)
        b0 = _post(clock, bob, "b0")
        a0 = _post(clock, alice, "a0")
        a1 = _post(clock, alice, "a1")
        a2 = _post(clock, alice, "a2")
        for post in (b0, a0, a1, a2):
            await storage.insert_post(post)

        posts = await storage.list_posts_by_authors([alice.id, bob.id], 2)
        assert [p.id for p in posts] == [b0.id, a0.id]
        posts = await storage.list_posts_by_authors([alice.id], 2)
        assert [p.id for p in posts] == [a0.id, a1.id]

    @pytest.mark.asyncio
    async def test_search_is_case_insensitive(self, storage, clock):
        alice = _user(clock, "alice", "+15550000001")
        await storage.insert_user(alice)
        tomato = _post(clock, alice, "My Tomato plants are thriving")
        await storage.insert_post(tomato)
        await storage.insert_post(_post(clock, alice, "Basil update"))

        assert [p.id for p in await storage.search_posts("tomato", 10)] == [tomato.id]
        assert await storage.search_posts("cucumber", 10) == []

    @pytest.mark.asyncio
    async def test_search_treats_wildcards_literally(self, storage, clock):
        alice = _user(clock, "alice", "+15550000001")
        await storage.insert_user(alice)
        await storage.insert_post(_post(clock, alice, "growth up 50 percent"))
        literal = _post(clock, alice, "growth up 50% this week")
        await storage.insert_post(literal)

        assert [p.id for p in await storage.search_posts("50%", 10)] == [literal.id]

    @pytest.mark.asyncio
    async def test_delete_tree_removes_subtree_and_references(self, storage, clock):
        alice = _user(clock, "alice", "+15550000001")
        bob = _user(clock, "bob", "+15550000002")
        await storage.insert_user(alice)
        await storage.insert_user(bob)
        root = _post(clock, alice, "root")
        child = _post(clock, bob, "child", reply_to=root)
        grandchild = _post(clock, alice, "grandchild", reply_to=child)
        sibling = _post(clock, bob, "sibling", reply_to=root)
        for post in (root, child, grandchild, sibling):
            await storage.insert_post(post)
        await storage.insert_engagement(EngagementKind.LIKE, alice.id, grandchild.id, clock())
        await storage.insert_notification(
            Notification(
                id=uuid4(),
                user_id=alice.id,
                from_user_id=bob.id,
                kind=NotificationKind.REPLY,
                message="Bob replied to your post",
                post_id=child.id,
                created_at=clock(),
            )
        )

        deleted = await storage.delete_post_tree(child.id)

        assert deleted[0].id == child.id
        assert {p.id for p in deleted} == {child.id, grandchild.id}
        assert await storage.get_post(child.id) is None
        assert await storage.get_post(grandchild.id) is None
        parent = await storage.get_post(root.id)
        assert parent.replies_count == 1
        assert [p.id for p in await storage.list_replies(root.id)] == [sibling.id]
        assert not await storage.engagement_exists(EngagementKind.LIKE, alice.id, grandchild.id)
        assert await storage.list_notifications(alice.id, 10) == []
        assert await storage.count_posts(alice.id) == 1
        assert await storage.count_posts(bob.id) == 1

    @pytest.mark.asyncio
    async def test_delete_missing_post_returns_empty(self, storage):
        assert await storage.delete_post_tree(uuid4()) == []


class TestFollows:
    """Directed follow edges."""

    @pytest.mark.asyncio
    async def test_insert_is_idempotent(self, storage, clock):
        alice = _user(clock, "alice", "+15550000001")
        bob = _user(clock, "bob", "+15550000002")
        await storage.insert_user(alice)
        await storage.insert_user(bob)

        assert await storage.insert_follow(Follow(alice.id, bob.id, clock()))
        assert not await storage.insert_follow(Follow(alice.id, bob.id, clock()))
        assert await storage.follow_exists(alice.id, bob.id)
        assert not await storage.follow_exists(bob.id, alice.id)
        assert await storage.count_followers(bob.id) == 1
        assert await storage.count_following(alice.id) == 1
        assert await storage.list_following_ids(alice.id) == [bob.id]
        assert await storage.list_follower_ids(bob.id) == [alice.id]

    @pytest.mark.asyncio
    async def test_delete_reports_whether_an_edge_existed(self, storage, clock):
        alice = _user(clock, "alice", "+15550000001")
        bob = _user(clock, "bob", "+15550000002")
        await storage.insert_user(alice)
        await storage.insert_user(bob)
        await storage.insert_follow(Follow(alice.id, bob.id, clock()))

        assert await storage.delete_follow(alice.id, bob.id)
        assert not await storage.delete_follow(alice.id, bob.id)
        assert await storage.count_followers(bob.id) == 0


class TestEngagement:
    """Likes and shares keyed by (user, post)."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("kind", list(EngagementKind))
    async def test_counter_tracks_rows(self, storage, clock, kind):
        alice = _user(clock, "alice", "+15550000001")
        bob = _user(clock, "bob", "+15550000002")
        await storage.insert_user(alice)
        await storage.insert_user(bob)
        post = _post(clock, alice)
        await storage.insert_post(post)
        counter = f"{kind.value}s_count"

        assert await storage.insert_engagement(kind, alice.id, post.id, clock())
        assert await storage.insert_engagement(kind, bob.id, post.id, clock())
        assert not await storage.insert_engagement(kind, bob.id, post.id, clock())
        assert getattr(await storage.get_post(post.id), counter) == 2

        assert await storage.delete_engagement(kind, bob.id, post.id)
        assert not await storage.delete_engagement(kind, bob.id, post.id)
        assert getattr(await storage.get_post(post.id), counter) == 1

    @pytest.mark.asyncio
    async def test_engagement_on_missing_post_is_rejected(self, storage, clock):
        alice = _user(clock, "alice", "+15550000001")
        await storage.insert_user(alice)
        assert not await storage.insert_engagement(EngagementKind.LIKE, alice.id, uuid4(), clock())

    @pytest.mark.asyncio
    async def test_engaged_post_ids_is_a_subset(self, storage, clock):
        alice = _user(clock, "alice", "+15550000001")
        await storage.insert_user(alice)
        liked = _post(clock, alice, "liked")
        other = _post(clock, alice, "other")
        await storage.insert_post(liked)
        await storage.insert_post(other)
        await storage.insert_engagement(EngagementKind.LIKE, alice.id, liked.id, clock())

        found = await storage.engaged_post_ids(EngagementKind.LIKE, alice.id, [liked.id, other.id])
        assert found == {liked.id}
        assert await storage.engaged_post_ids(EngagementKind.SHARE, alice.id, [liked.id]) == set()
        assert await storage.engaged_post_ids(EngagementKind.LIKE, alice.id, []) == set()


class TestNotifications:
    """Notification records and read flags."""

    async def _seed(self, storage, clock, count: int = 3):
        alice = _user(clock, "alice", "+15550000001")
        await storage.insert_user(alice)
        notifications = []
        for i in range(count):
            notification = Notification(
                id=uuid4(),
                user_id=alice.id,
                kind=NotificationKind.FOLLOW,
                message=f"follower {i}",
                created_at=clock(),
            )
            await storage.insert_notification(notification)
            notifications.append(notification)
        return alice, notifications

    @pytest.mark.asyncio
    async def test_listing_newest_first_with_limit(self, storage, clock):
        alice, notifications = await self._seed(storage, clock)

        listed = await storage.list_notifications(alice.id, 2)
        assert [n.id for n in listed] == [notifications[2].id, notifications[1].id]
        assert await storage.count_unread_notifications(alice.id) == 3

    @pytest.mark.asyncio
    async def test_mark_one_and_all_read(self, storage, clock):
        alice, notifications = await self._seed(storage, clock)

        marked = await storage.mark_notification_read(notifications[0].id)
        assert marked.is_read
        assert (await storage.get_notification(notifications[0].id)).is_read
        unread = await storage.list_notifications(alice.id, 10, unread_only=True)
        assert {n.id for n in unread} == {notifications[1].id, notifications[2].id}

        assert await storage.mark_all_notifications_read(alice.id) == 2
        assert await storage.count_unread_notifications(alice.id) == 0
        assert await storage.mark_all_notifications_read(alice.id) == 0
        assert await storage.mark_notification_read(uuid4()) is None


class TestVerificationRequests:
    """Verification request records."""

    @pytest.mark.asyncio
    async def test_pending_queue_and_review(self, storage, clock):
        alice = _user(clock, "alice", "+15550000001")
        bob = _user(clock, "bob", "+15550000002")
        await storage.insert_user(alice)
        await storage.insert_user(bob)
        first = VerificationRequest(
            id=uuid4(),
            user_id=alice.id,
            category=VerificationCategory.STUDENT,
            submitted_at=clock(),
        )
        second = VerificationRequest(
            id=uuid4(),
            user_id=bob.id,
            category=VerificationCategory.STUDENT,
            submitted_at=clock(),
        )
        await storage.insert_verification_request(first)
        await storage.insert_verification_request(second)

        pending = await storage.list_pending_verification_requests()
        assert [r.id for r in pending] == [first.id, second.id]

        first.status = VerificationStatus.REJECTED
        first.reviewed_by = bob.id
        first.reviewed_at = clock()
        await storage.update_verification_request(first)

        assert [r.id for r in await storage.list_pending_verification_requests()] == [second.id]
        loaded = await storage.get_verification_request(first.id)
        assert loaded.status == VerificationStatus.REJECTED
        assert loaded.reviewed_by == bob.id
        assert [r.id for r in await storage.list_verification_requests(alice.id)] == [first.id]

    @pytest.mark.asyncio
    async def test_one_pending_request_per_user(self, storage, clock):
        alice = _user(clock, "alice", "+15550000001")
        await storage.insert_user(alice)
        first = VerificationRequest(
            id=uuid4(),
            user_id=alice.id,
            category=VerificationCategory.STUDENT,
            submitted_at=clock(),
        )
        await storage.insert_verification_request(first)

        with pytest.raises(ConflictError):
            await storage.insert_verification_request(
                VerificationRequest(
                    id=uuid4(),
                    user_id=alice.id,
                    category=VerificationCategory.STUDENT,
                    submitted_at=clock(),
                )
            )
        assert [r.id for r in await storage.list_verification_requests(alice.id)] == [first.id]

        first.status = VerificationStatus.REJECTED
        first.reviewed_at = clock()
        await storage.update_verification_request(first)
        retry = VerificationRequest(
            id=uuid4(),
            user_id=alice.id,
            category=VerificationCategory.STUDENT,
            submitted_at=clock(),
        )
        await storage.insert_verification_request(retry)
        assert [r.id for r in await storage.list_pending_verification_requests()] == [retry.id]
