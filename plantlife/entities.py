"""Backend-neutral records returned by every storage adapter."""

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from plantlife.utils import ensure_utc, utcnow


class AccountCategory(str, Enum):
    """Kind of account chosen at registration."""

    STUDENT = "student"
    FARMER = "farmer"
    ENTHUSIAST = "enthusiast"
    PROFESSOR_SCIENTIST = "professor_scientist"


class VerificationCategory(str, Enum):
    """Categories a user can be verified under."""

    STUDENT = "student"
    PROFESSOR_SCIENTIST = "professor_scientist"


class VerificationStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


class NotificationKind(str, Enum):
    LIKE = "like"
    SHARE = "share"
    FOLLOW = "follow"
    REPLY = "reply"


# Fields (de)serialized as UUID / datetime / enum by ``_Record``.
_UUID_FIELDS = {
    "id",
    "author_id",
    "reply_to_id",
    "user_id",
    "from_user_id",
    "post_id",
    "follower_id",
    "followee_id",
    "reviewed_by",
}
_DATETIME_FIELDS = {"created_at", "updated_at", "submitted_at", "reviewed_at"}


class _Record:
    """Mixin: flat dict conversion used by the document store."""

    _enums: dict[str, type[Enum]] = {}

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        for key, value in data.items():
            if isinstance(value, UUID):
                data[key] = str(value)
            elif isinstance(value, datetime):
                data[key] = value.isoformat()
            elif isinstance(value, Enum):
                data[key] = value.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]):
        known = {f.name for f in fields(cls)}
        values: dict[str, Any] = {}
        for key, value in data.items():
            if key not in known:
                continue
            if value is not None and key in _UUID_FIELDS:
                value = UUID(str(value))
            elif value is not None and key in _DATETIME_FIELDS:
                value = ensure_utc(datetime.fromisoformat(value))
            elif value is not None and key in cls._enums:
                value = cls._enums[key](value)
            values[key] = value
        return cls(**values)


@dataclass
class User(_Record):
    """A registered account with derived social counters."""

    id: UUID
    phone: str
    handle: str
    display_name: str
    bio: str | None = None
    location: str | None = None
    website: str | None = None
    profile_image_url: str | None = None
    account_category: AccountCategory = AccountCategory.ENTHUSIAST
    is_verified: bool = False
    verification_category: VerificationCategory | None = None
    is_admin: bool = False
    followers_count: int = 0
    following_count: int = 0
    posts_count: int = 0
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    _enums = {
        "account_category": AccountCategory,
        "verification_category": VerificationCategory,
    }


@dataclass
class Post(_Record):
    """A post or a reply (when ``reply_to_id`` is set)."""

    id: UUID
    author_id: UUID
    body: str
    reply_to_id: UUID | None = None
    media_url: str | None = None
    likes_count: int = 0
    shares_count: int = 0
    replies_count: int = 0
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)
    # Assigned by the storage adapter on insert, strictly increasing.
    sequence: int = 0

    def newest_first_key(self) -> tuple[float, int]:
        """Sort key: newest first, exact timestamp ties in insertion order."""
        return (-self.created_at.timestamp(), self.sequence)

    def oldest_first_key(self) -> tuple[datetime, int]:
        return (self.created_at, self.sequence)


@dataclass
class Follow(_Record):
    follower_id: UUID
    followee_id: UUID
    created_at: datetime = field(default_factory=utcnow)


@dataclass
class Notification(_Record):
    id: UUID
    user_id: UUID
    kind: NotificationKind
    message: str
    from_user_id: UUID | None = None
    post_id: UUID | None = None
    is_read: bool = False
    created_at: datetime = field(default_factory=utcnow)

    _enums = {"kind": NotificationKind}


@dataclass
class VerificationRequest(_Record):
    id: UUID
    user_id: UUID
    category: VerificationCategory
    institute_name: str | None = None
    proof_of_work_url: str | None = None
    selfie_url: str | None = None
    status: VerificationStatus = VerificationStatus.PENDING
    reviewed_by: UUID | None = None
    admin_notes: str | None = None
    submitted_at: datetime = field(default_factory=utcnow)
    reviewed_at: datetime | None = None

    _enums = {
        "category": VerificationCategory,
        "status": VerificationStatus,
    }


@dataclass
class NewUser:
    """Input for IdentityService.create / upsert."""

    phone: str
    handle: str
    display_name: str
    account_category: AccountCategory = AccountCategory.ENTHUSIAST
    bio: str | None = None
    location: str | None = None
    website: str | None = None
    profile_image_url: str | None = None
    is_admin: bool = False


@dataclass
class TimelinePost:
    """A post denormalized with its author and the viewer's engagement flags."""

    post: Post
    author: User | None
    is_liked: bool = False
    is_shared: bool = False
