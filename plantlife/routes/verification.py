"""Verification endpoints for applicants and admin reviewers."""

from uuid import UUID

from fastapi import APIRouter, Depends

from plantlife.auth import get_current_user
from plantlife.dependencies import get_services
from plantlife.entities import User
from plantlife.schemas import (
    VerificationRequestResponse,
    VerificationReviewRequest,
    VerificationStatusResponse,
    VerificationSubmitRequest,
)
from plantlife.services import Services

router = APIRouter(prefix="/api", tags=["verification"])


@router.post(
    "/verification/requests",
    response_model=VerificationRequestResponse,
    status_code=201,
)
async def submit_request(
    body: VerificationSubmitRequest,
    services: Services = Depends(get_services),
    user: User = Depends(get_current_user),
):
    request = await services.verification.submit(
        user.id,
        body.category,
        institute_name=body.institute_name,
        proof_of_work_url=body.proof_of_work_url,
        selfie_url=body.selfie_url,
    )
    return VerificationRequestResponse.model_validate(request)


@router.get("/verification/requests", response_model=list[VerificationRequestResponse])
async def list_my_requests(
    services: Services = Depends(get_services),
    user: User = Depends(get_current_user),
):
    requests = await services.verification.list_for(user.id)
    return [VerificationRequestResponse.model_validate(r) for r in requests]


@router.get("/verification/status", response_model=VerificationStatusResponse)
async def verification_status(
    services: Services = Depends(get_services),
    user: User = Depends(get_current_user),
):
    return VerificationStatusResponse.model_validate(await services.verification.status(user.id))


@router.get(
    "/admin/verification/pending",
    response_model=list[VerificationRequestResponse],
)
async def list_pending(
    services: Services = Depends(get_services),
    user: User = Depends(get_current_user),
):
    """Pending requests, oldest first. Admins only."""
    requests = await services.verification.list_pending(user.id)
    return [VerificationRequestResponse.model_validate(r) for r in requests]


@router.post(
    "/admin/verification/{request_id}/review",
    response_model=VerificationRequestResponse,
)
async def review_request(
    request_id: UUID,
    body: VerificationReviewRequest,
    services: Services = Depends(get_services),
    user: User = Depends(get_current_user),
):
    reviewed = await services.verification.review(
        user.id, request_id, body.status, body.admin_notes
    )
    return VerificationRequestResponse.model_validate(reviewed)
