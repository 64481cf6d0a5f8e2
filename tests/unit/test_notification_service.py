"""Tests for NotificationService."""

from uuid import uuid4

import pytest

from plantlife.entities import NotificationKind
from plantlife.exceptions import ForbiddenError, NotFoundError, UnauthenticatedError
from plantlife.services.notification_service import NotificationService, describe
from tests.factories import UserFactory


class TestDescribe:
    def test_messages(self):
        assert describe(NotificationKind.LIKE, "Alice") == "Alice liked your post"
        assert describe(NotificationKind.REPLY, "Bob") == "Bob replied to your post"
        assert describe(NotificationKind.FOLLOW, "") == "Someone started following you"


class TestNotificationService:
    """Emit, list and mark-read."""

    @pytest.mark.asyncio
    async def test_emit_and_list_newest_first(self, services):
        alice = await UserFactory.create(services, handle="alice")
        bob = await UserFactory.create(services, handle="bob")
        first = await services.notifications.emit(
            alice.id, bob.id, NotificationKind.FOLLOW, "Bob started following you"
        )
        second = await services.notifications.emit(
            alice.id, bob.id, NotificationKind.LIKE, "Bob liked your post"
        )

        listed = await services.notifications.list_for(alice.id)

        assert [n.id for n in listed] == [second.id, first.id]
        assert all(not n.is_read for n in listed)
        assert await services.notifications.unread_count(alice.id) == 2
        assert await services.notifications.list_for(bob.id) == []

    @pytest.mark.asyncio
    async def test_page_size_caps_requested_limit(self, memory_services):
        alice = await UserFactory.create(memory_services)
        service = NotificationService(memory_services.storage, page_size=2)
        for _ in range(4):
            await service.emit(alice.id, None, NotificationKind.FOLLOW, "hello")

        assert len(await service.list_for(alice.id, limit=10)) == 2

    @pytest.mark.asyncio
    async def test_mark_read(self, services):
        alice = await UserFactory.create(services, handle="alice")
        notification = await services.notifications.emit(
            alice.id, None, NotificationKind.FOLLOW, "hello"
        )

        marked = await services.notifications.mark_read(notification.id, alice.id)
        again = await services.notifications.mark_read(notification.id, alice.id)

        assert marked.is_read and again.is_read
        assert await services.notifications.unread_count(alice.id) == 0
        assert await services.notifications.list_for(alice.id, unread_only=True) == []

    @pytest.mark.asyncio
    async def test_mark_read_of_someone_else(self, services):
        alice = await UserFactory.create(services, handle="alice")
        bob = await UserFactory.create(services, handle="bob")
        notification = await services.notifications.emit(
            alice.id, bob.id, NotificationKind.FOLLOW, "hello"
        )

        with pytest.raises(ForbiddenError):
            await services.notifications.mark_read(notification.id, bob.id)
        with pytest.raises(NotFoundError):
            await services.notifications.mark_read(uuid4(), alice.id)

    @pytest.mark.asyncio
    async def test_mark_all_read(self, services):
        alice = await UserFactory.create(services)
        for _ in range(3):
            await services.notifications.emit(alice.id, None, NotificationKind.FOLLOW, "hello")

        assert await services.notifications.mark_all_read(alice.id) == 3
        assert await services.notifications.unread_count(alice.id) == 0

    @pytest.mark.asyncio
    async def test_requires_identity(self, services):
        with pytest.raises(UnauthenticatedError):
            await services.notifications.list_for(None)
        with pytest.raises(UnauthenticatedError):
            await services.notifications.mark_all_read(None)
