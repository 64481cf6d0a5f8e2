"""Pydantic v2 request/response schemas for all endpoints."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from plantlife.entities import (
    AccountCategory,
    NotificationKind,
    TimelinePost,
    VerificationCategory,
    VerificationStatus,
)

# ---------------------------------------------------------------------------
# Auth + users
# ---------------------------------------------------------------------------


class RegisterRequest(BaseModel):
    phone: str = Field(..., max_length=32)
    handle: str = Field(..., max_length=31)
    display_name: str = Field(..., max_length=100)
    account_category: AccountCategory = AccountCategory.ENTHUSIAST
    bio: str | None = None
    location: str | None = Field(default=None, max_length=100)
    website: str | None = Field(default=None, max_length=200)
    profile_image_url: str | None = None


class TokenRequest(BaseModel):
    phone: str = Field(..., max_length=32)


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    handle: str
    display_name: str
    bio: str | None
    location: str | None
    website: str | None
    profile_image_url: str | None
    account_category: AccountCategory
    is_verified: bool
    verification_category: VerificationCategory | None
    followers_count: int
    following_count: int
    posts_count: int
    created_at: datetime


class MeResponse(UserResponse):
    phone: str
    is_admin: bool
    updated_at: datetime


class TokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: MeResponse


class ProfileUpdateRequest(BaseModel):
    display_name: str | None = Field(default=None, max_length=100)
    bio: str | None = None
    location: str | None = Field(default=None, max_length=100)
    website: str | None = Field(default=None, max_length=200)
    profile_image_url: str | None = None


class FollowResponse(BaseModel):
    following: bool
    changed: bool


class FollowStatusResponse(BaseModel):
    is_following: bool


# ---------------------------------------------------------------------------
# Posts
# ---------------------------------------------------------------------------


class PostCreateRequest(BaseModel):
    body: str
    reply_to_id: UUID | None = None
    media_url: str | None = None


class PostResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    author_id: UUID
    body: str
    reply_to_id: UUID | None
    media_url: str | None
    likes_count: int
    shares_count: int
    replies_count: int
    created_at: datetime
    updated_at: datetime


class TimelinePostResponse(PostResponse):
    author: UserResponse | None = None
    is_liked: bool = False
    is_shared: bool = False

    @classmethod
    def from_entry(cls, entry: TimelinePost) -> "TimelinePostResponse":
        post = PostResponse.model_validate(entry.post)
        return cls(
            **post.model_dump(),
            author=UserResponse.model_validate(entry.author) if entry.author else None,
            is_liked=entry.is_liked,
            is_shared=entry.is_shared,
        )


class EngagementResponse(BaseModel):
    post_id: UUID
    likes_count: int
    shares_count: int
    active: bool


class PostDeletedResponse(BaseModel):
    deleted_ids: list[UUID]


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    kind: NotificationKind
    message: str
    from_user_id: UUID | None
    post_id: UUID | None
    is_read: bool
    created_at: datetime


class NotificationListResponse(BaseModel):
    items: list[NotificationResponse]
    unread_count: int


class UnreadCountResponse(BaseModel):
    count: int


class MarkAllReadResponse(BaseModel):
    updated: int


# ---------------------------------------------------------------------------
# Verification
# ---------------------------------------------------------------------------


class VerificationSubmitRequest(BaseModel):
    category: str
    institute_name: str | None = Field(default=None, max_length=200)
    proof_of_work_url: str | None = None
    selfie_url: str | None = None


class VerificationRequestResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    user_id: UUID
    category: VerificationCategory
    institute_name: str | None
    proof_of_work_url: str | None
    selfie_url: str | None
    status: VerificationStatus
    reviewed_by: UUID | None
    admin_notes: str | None
    submitted_at: datetime
    reviewed_at: datetime | None


class VerificationReviewRequest(BaseModel):
    status: str
    admin_notes: str | None = None


class VerificationStatusResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    is_verified: bool
    verification_category: VerificationCategory | None
    account_category: AccountCategory
    latest_request: VerificationRequestResponse | None
    can_apply: bool
    deadline: datetime | None


# ---------------------------------------------------------------------------
# Moderation
# ---------------------------------------------------------------------------


class ModerationCheckRequest(BaseModel):
    body: str


class ModerationCheckResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    is_valid: bool
    category: str
    confidence: int
    reason: str | None
    suggestions: list[str] = Field(default_factory=list)
    quality_score: int = 0
