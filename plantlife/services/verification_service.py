"""Verification requests for student and professor/scientist accounts."""

from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from typing import Callable
from uuid import UUID, uuid4

from plantlife.entities import (
    AccountCategory,
    User,
    VerificationCategory,
    VerificationRequest,
    VerificationStatus,
)
from plantlife.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidOperationError,
    NotFoundError,
    UnauthenticatedError,
    ValidationError,
)
from plantlife.logging_config import get_logger
from plantlife.services.identity_service import IdentityService
from plantlife.storage import Storage
from plantlife.utils import utcnow

logger = get_logger(__name__)

DEFAULT_WINDOW_DAYS = 7


@dataclass
class VerificationOverview:
    is_verified: bool
    verification_category: VerificationCategory | None
    account_category: AccountCategory
    latest_request: VerificationRequest | None
    can_apply: bool
    deadline: datetime | None


class VerificationService:
    def __init__(
        self,
        storage: Storage,
        identity: IdentityService,
        window_days: int = DEFAULT_WINDOW_DAYS,
        clock: Callable = utcnow,
    ):
        self.storage = storage
        self.identity = identity
        self.window = timedelta(days=window_days)
        self.clock = clock

    def deadline_for(self, user: User) -> datetime | None:
        """Professor/scientist accounts must apply before this moment."""
        if user.account_category == AccountCategory.PROFESSOR_SCIENTIST and not user.is_verified:
            return user.created_at + self.window
        return None

    def can_apply(self, user: User) -> bool:
        if user.is_verified:
            return False
        if user.account_category == AccountCategory.STUDENT:
            return True
        if user.account_category == AccountCategory.PROFESSOR_SCIENTIST:
            return self.clock() - user.created_at <= self.window
        return False

    async def submit(
        self,
        actor_id: UUID | None,
        category: VerificationCategory | str,
        institute_name: str | None = None,
        proof_of_work_url: str | None = None,
        selfie_url: str | None = None,
    ) -> VerificationRequest:
        if actor_id is None:
            raise UnauthenticatedError()
        try:
            category = VerificationCategory(category)
        except ValueError:
            raise ValidationError(
                f"Unknown verification category {category!r}", field="category"
            ) from None

        user = await self.identity.require(actor_id)
        if user.is_verified:
            raise InvalidOperationError("User is already verified")

        existing = await self.storage.list_verification_requests(actor_id)
        if any(r.status == VerificationStatus.PENDING for r in existing):
            raise ConflictError("You already have a pending verification request")

        if category.value != user.account_category.value:
            raise ForbiddenError(
                f"Only {category.value} accounts can apply for {category.value} verification"
            )

        if category == VerificationCategory.PROFESSOR_SCIENTIST:
            if self.clock() - user.created_at > self.window:
                raise ValidationError(
                    "Verification deadline missed: professor/scientist verification must be "
                    f"applied within {self.window.days} days of account creation"
                )
            if not (institute_name and proof_of_work_url and selfie_url):
                raise ValidationError(
                    "Institute name, proof of work, and selfie are required for "
                    "professor/scientist verification"
                )

        request = VerificationRequest(
            id=uuid4(),
            user_id=actor_id,
            category=category,
            institute_name=institute_name,
            proof_of_work_url=proof_of_work_url,
            selfie_url=selfie_url,
            submitted_at=self.clock(),
        )
        await self.storage.insert_verification_request(request)
        logger.info(
            "verification_requested",
            user_id=str(actor_id),
            request_id=str(request.id),
            category=category.value,
        )
        return request

    async def list_for(self, user_id: UUID | None) -> list[VerificationRequest]:
        if user_id is None:
            raise UnauthenticatedError()
        return await self.storage.list_verification_requests(user_id)

    async def _require_admin(self, reviewer_id: UUID | None) -> User:
        if reviewer_id is None:
            raise UnauthenticatedError()
        reviewer = await self.identity.require(reviewer_id)
        if not reviewer.is_admin:
            raise ForbiddenError("Admin access required")
        return reviewer

    async def list_pending(self, reviewer_id: UUID | None) -> list[VerificationRequest]:
        await self._require_admin(reviewer_id)
        return await self.storage.list_pending_verification_requests()

    async def review(
        self,
        reviewer_id: UUID | None,
        request_id: UUID,
        status: VerificationStatus | str,
        admin_notes: str | None = None,
    ) -> VerificationRequest:
        reviewer = await self._require_admin(reviewer_id)
        try:
            status = VerificationStatus(status)
        except ValueError:
            status = None
        if status not in (VerificationStatus.APPROVED, VerificationStatus.REJECTED):
            raise ValidationError('Invalid status. Must be "approved" or "rejected"', field="status")

        request = await self.storage.get_verification_request(request_id)
        if request is None:
            raise NotFoundError("Verification request", str(request_id))
        if request.status != VerificationStatus.PENDING:
            raise InvalidOperationError(f"Request was already {request.status.value}")

        reviewed = replace(
            request,
            status=status,
            reviewed_by=reviewer.id,
            admin_notes=admin_notes,
            reviewed_at=self.clock(),
        )
        await self.storage.update_verification_request(reviewed)

        if status == VerificationStatus.APPROVED:
            user = await self.identity.require(request.user_id)
            await self.storage.update_user(
                replace(
                    user,
                    is_verified=True,
                    verification_category=request.category,
                    updated_at=self.clock(),
                )
            )
        logger.info(
            "verification_reviewed",
            request_id=str(request_id),
            reviewer_id=str(reviewer.id),
            status=status.value,
        )
        return reviewed

    async def status(self, user_id: UUID | None) -> VerificationOverview:
        if user_id is None:
            raise UnauthenticatedError()
        user = await self.identity.require(user_id)
        requests = await self.storage.list_verification_requests(user_id)
        return VerificationOverview(
            is_verified=user.is_verified,
            verification_category=user.verification_category,
            account_category=user.account_category,
            latest_request=requests[0] if requests else None,
            can_apply=self.can_apply(user),
            deadline=self.deadline_for(user),
        )
