"""Identity service: accounts, profiles and derived social counters."""

import re
from dataclasses import replace
from typing import Any, Callable
from uuid import UUID, uuid4

from plantlife.entities import AccountCategory, NewUser, User
from plantlife.exceptions import (
    ConflictError,
    NotFoundError,
    UnauthenticatedError,
    ValidationError,
)
from plantlife.logging_config import get_logger
from plantlife.storage import Storage
from plantlife.utils import utcnow

logger = get_logger(__name__)

HANDLE_PATTERN = re.compile(r"^[a-z0-9_]{3,30}$")
PHONE_PATTERN = re.compile(r"^\+?[0-9]{7,15}$")
DISPLAY_NAME_MAX_LENGTH = 50
BIO_MAX_LENGTH = 160

PROFILE_FIELDS = frozenset(
    {"display_name", "bio", "location", "website", "profile_image_url"}
)


def normalize_handle(handle: str) -> str:
    """Handles are stored lower-case without the leading ``@``."""
    return handle.strip().lstrip("@").lower()


def normalize_phone(phone: str) -> str:
    return re.sub(r"[\s\-().]", "", phone.strip())


def _validate_handle(handle: str) -> None:
    if not HANDLE_PATTERN.match(handle):
        raise ValidationError(
            "Handle must be 3-30 characters of letters, digits or underscores",
            field="handle",
        )


def _validate_phone(phone: str) -> None:
    if not PHONE_PATTERN.match(phone):
        raise ValidationError("Phone number is malformed", field="phone")


def _validate_profile(changes: dict[str, Any]) -> None:
    display_name = changes.get("display_name")
    if "display_name" in changes:
        if not display_name or not display_name.strip():
            raise ValidationError("Display name cannot be empty", field="display_name")
        if len(display_name) > DISPLAY_NAME_MAX_LENGTH:
            raise ValidationError(
                f"Display name exceeds {DISPLAY_NAME_MAX_LENGTH} characters",
                field="display_name",
            )
    bio = changes.get("bio")
    if bio is not None and len(bio) > BIO_MAX_LENGTH:
        raise ValidationError(f"Bio exceeds {BIO_MAX_LENGTH} characters", field="bio")


class IdentityService:
    def __init__(self, storage: Storage, clock: Callable = utcnow):
        self.storage = storage
        self.clock = clock

    async def get(self, user_id: UUID) -> User | None:
        return await self.storage.get_user(user_id)

    async def require(self, user_id: UUID) -> User:
        user = await self.storage.get_user(user_id)
        if user is None:
            raise NotFoundError("User", str(user_id))
        return user

    async def get_by_handle(self, handle: str) -> User | None:
        return await self.storage.get_user_by_handle(normalize_handle(handle))

    async def require_by_handle(self, handle: str) -> User:
        user = await self.get_by_handle(handle)
        if user is None:
            raise NotFoundError("User", f"@{normalize_handle(handle)}")
        return user

    async def get_by_phone(self, phone: str) -> User | None:
        return await self.storage.get_user_by_phone(normalize_phone(phone))

    def _prepare(self, data: NewUser) -> NewUser:
        data = replace(
            data,
            phone=normalize_phone(data.phone),
            handle=normalize_handle(data.handle),
            display_name=(data.display_name or "").strip(),
            account_category=AccountCategory(data.account_category),
        )
        _validate_phone(data.phone)
        _validate_handle(data.handle)
        _validate_profile({"display_name": data.display_name, "bio": data.bio})
        return data

    async def create(self, data: NewUser) -> User:
        """Register a new account. Phone and handle must both be unused."""
        data = self._prepare(data)
        if await self.storage.get_user_by_phone(data.phone) is not None:
            raise ConflictError(f"Phone {data.phone} is already registered")
        if await self.storage.get_user_by_handle(data.handle) is not None:
            raise ConflictError(f"Handle @{data.handle} is already taken")

        now = self.clock()
        user = User(
            id=uuid4(),
            phone=data.phone,
            handle=data.handle,
            display_name=data.display_name,
            bio=data.bio,
            location=data.location,
            website=data.website,
            profile_image_url=data.profile_image_url,
            account_category=data.account_category,
            is_admin=data.is_admin,
            created_at=now,
            updated_at=now,
        )
        await self.storage.insert_user(user)
        logger.info("user_created", user_id=str(user.id), handle=user.handle, phone=user.phone)
        return user

    async def upsert(self, data: NewUser) -> User:
        """Create the account for ``data.phone`` or update the existing one."""
        data = self._prepare(data)
        existing = await self.storage.get_user_by_phone(data.phone)
        if existing is None:
            return await self.create(data)

        owner = await self.storage.get_user_by_handle(data.handle)
        if owner is not None and owner.id != existing.id:
            raise ConflictError(f"Handle @{data.handle} is already taken")

        updated = replace(
            existing,
            handle=data.handle,
            display_name=data.display_name,
            bio=data.bio if data.bio is not None else existing.bio,
            location=data.location if data.location is not None else existing.location,
            website=data.website if data.website is not None else existing.website,
            profile_image_url=data.profile_image_url or existing.profile_image_url,
            account_category=data.account_category,
            updated_at=self.clock(),
        )
        updated = await self.storage.update_user(updated)
        logger.info("user_upserted", user_id=str(updated.id), handle=updated.handle)
        return updated

    async def update_profile(self, actor_id: UUID | None, **changes: Any) -> User:
        """Edit profile fields of the caller's own account."""
        if actor_id is None:
            raise UnauthenticatedError()
        unknown = set(changes) - PROFILE_FIELDS
        if unknown:
            raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")
        _validate_profile(changes)

        user = await self.require(actor_id)
        if "display_name" in changes:
            changes["display_name"] = changes["display_name"].strip()
        updated = await self.storage.update_user(
            replace(user, updated_at=self.clock(), **changes)
        )
        logger.info("profile_updated", user_id=str(actor_id), fields=sorted(changes))
        return updated

    async def recompute_counters(self, user_id: UUID) -> User:
        """Re-derive followers, following and posts counts from source rows."""
        followers = await self.storage.count_followers(user_id)
        following = await self.storage.count_following(user_id)
        posts = await self.storage.count_posts(user_id)
        user = await self.storage.set_user_counters(
            user_id, followers, following, posts, self.clock()
        )
        if user is None:
            raise NotFoundError("User", str(user_id))
        logger.debug(
            "user_counters_recomputed",
            user_id=str(user_id),
            followers=followers,
            following=following,
            posts=posts,
        )
        return user

    async def _users_in_order(self, ids: list[UUID]) -> list[User]:
        users = await self.storage.get_users(ids)
        return [users[uid] for uid in ids if uid in users]

    async def list_followers(self, user_id: UUID) -> list[User]:
        return await self._users_in_order(await self.storage.list_follower_ids(user_id))

    async def list_following(self, user_id: UUID) -> list[User]:
        return await self._users_in_order(await self.storage.list_following_ids(user_id))

    async def suggestions(self, actor_id: UUID | None, limit: int = 5) -> list[User]:
        """Accounts the caller does not follow yet, oldest accounts first."""
        exclude: set[UUID] = set()
        if actor_id is not None:
            exclude = {actor_id, *await self.storage.list_following_ids(actor_id)}
        return await self.storage.list_users(limit, exclude=exclude)
