"""Tests for VerificationService."""

import asyncio
from uuid import uuid4

import pytest

from plantlife.entities import AccountCategory, VerificationCategory, VerificationStatus
from plantlife.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidOperationError,
    NotFoundError,
    ValidationError,
)
from tests.factories import UserFactory

EVIDENCE = {
    "institute_name": "Wageningen University",
    "proof_of_work_url": "https://example.org/thesis.pdf",
    "selfie_url": "https://example.org/selfie.jpg",
}


async def _professor(services):
    return await UserFactory.create(
        services, handle="prof", account_category=AccountCategory.PROFESSOR_SCIENTIST
    )


async def _student(services):
    return await UserFactory.create(
        services, handle="student", account_category=AccountCategory.STUDENT
    )


async def _admin(services):
    return await UserFactory.create(services, handle="admin", is_admin=True)


class TestSubmit:
    """Submitting verification requests."""

    @pytest.mark.asyncio
    async def test_professor_within_window(self, services, clock):
        prof = await _professor(services)
        clock.advance(days=6)

        request = await services.verification.submit(
            prof.id, VerificationCategory.PROFESSOR_SCIENTIST, **EVIDENCE
        )

        assert request.status == VerificationStatus.PENDING
        assert request.institute_name == "Wageningen University"

    @pytest.mark.asyncio
    async def test_professor_after_window(self, services, clock):
        prof = await _professor(services)
        clock.advance(days=8)

        with pytest.raises(ValidationError, match="deadline missed"):
            await services.verification.submit(prof.id, "professor_scientist", **EVIDENCE)

    @pytest.mark.asyncio
    async def test_professor_needs_evidence(self, services):
        prof = await _professor(services)
        with pytest.raises(ValidationError, match="selfie"):
            await services.verification.submit(
                prof.id, VerificationCategory.PROFESSOR_SCIENTIST, institute_name="Somewhere"
            )

    @pytest.mark.asyncio
    async def test_student_has_no_deadline(self, services, clock):
        student = await _student(services)
        clock.advance(days=90)

        request = await services.verification.submit(student.id, "student")

        assert request.category == VerificationCategory.STUDENT

    @pytest.mark.asyncio
    async def test_category_must_match_account(self, services):
        student = await _student(services)
        enthusiast = await UserFactory.create(services, handle="fan")

        with pytest.raises(ForbiddenError):
            await services.verification.submit(student.id, "professor_scientist", **EVIDENCE)
        with pytest.raises(ForbiddenError):
            await services.verification.submit(enthusiast.id, "student")

    @pytest.mark.asyncio
    async def test_unknown_category(self, services):
        student = await _student(services)
        with pytest.raises(ValidationError):
            await services.verification.submit(student.id, "astronaut")

    @pytest.mark.asyncio
    async def test_one_pending_request_at_a_time(self, services):
        student = await _student(services)
        await services.verification.submit(student.id, "student")
        with pytest.raises(ConflictError):
            await services.verification.submit(student.id, "student")

    @pytest.mark.asyncio
    async def test_simultaneous_submissions_leave_one_pending(self, concurrent_services):
        student = await _student(concurrent_services)

        results = await asyncio.gather(
            concurrent_services.verification.submit(student.id, "student"),
            concurrent_services.verification.submit(student.id, "student"),
            return_exceptions=True,
        )

        accepted = [r for r in results if not isinstance(r, BaseException)]
        rejected = [r for r in results if isinstance(r, BaseException)]
        assert len(accepted) == 1
        assert len(rejected) == 1 and isinstance(rejected[0], ConflictError)
        pending = await concurrent_services.storage.list_pending_verification_requests()
        assert [r.id for r in pending] == [accepted[0].id]

    @pytest.mark.asyncio
    async def test_unknown_user(self, services):
        with pytest.raises(NotFoundError):
            await services.verification.submit(uuid4(), "student")


class TestReview:
    """Admin review of pending requests."""

    @pytest.mark.asyncio
    async def test_approval_verifies_user(self, services):
        admin = await _admin(services)
        student = await _student(services)
        request = await services.verification.submit(student.id, "student")

        reviewed = await services.verification.review(
            admin.id, request.id, "approved", admin_notes="Student card checked"
        )

        assert reviewed.status == VerificationStatus.APPROVED
        assert reviewed.reviewed_by == admin.id
        user = await services.identity.require(student.id)
        assert user.is_verified
        assert user.verification_category == VerificationCategory.STUDENT
        assert await services.verification.list_pending(admin.id) == []
        with pytest.raises(InvalidOperationError):
            await services.verification.submit(student.id, "student")

    @pytest.mark.asyncio
    async def test_rejection_allows_a_new_request(self, services):
        admin = await _admin(services)
        student = await _student(services)
        request = await services.verification.submit(student.id, "student")

        await services.verification.review(admin.id, request.id, VerificationStatus.REJECTED)

        assert not (await services.identity.require(student.id)).is_verified
        again = await services.verification.submit(student.id, "student")
        history = await services.verification.list_for(student.id)
        assert [r.id for r in history] == [again.id, request.id]

    @pytest.mark.asyncio
    async def test_review_rules(self, services):
        admin = await _admin(services)
        student = await _student(services)
        request = await services.verification.submit(student.id, "student")

        with pytest.raises(ForbiddenError):
            await services.verification.review(student.id, request.id, "approved")
        with pytest.raises(ValidationError):
            await services.verification.review(admin.id, request.id, "pending")
        with pytest.raises(NotFoundError):
            await services.verification.review(admin.id, uuid4(), "approved")

        await services.verification.review(admin.id, request.id, "rejected")
        with pytest.raises(InvalidOperationError):
            await services.verification.review(admin.id, request.id, "approved")

    @pytest.mark.asyncio
    async def test_pending_queue_is_admin_only(self, services):
        student = await _student(services)
        with pytest.raises(ForbiddenError):
            await services.verification.list_pending(student.id)


class TestStatus:
    """Verification overview."""

    @pytest.mark.asyncio
    async def test_professor_status_reports_deadline(self, services, clock):
        prof = await _professor(services)

        overview = await services.verification.status(prof.id)
        assert overview.can_apply
        assert overview.deadline == prof.created_at + services.verification.window
        assert overview.latest_request is None

        clock.advance(days=8)
        assert not (await services.verification.status(prof.id)).can_apply

    @pytest.mark.asyncio
    async def test_enthusiast_cannot_apply(self, services):
        fan = await UserFactory.create(services, handle="fan")
        overview = await services.verification.status(fan.id)
        assert not overview.can_apply
        assert overview.deadline is None
