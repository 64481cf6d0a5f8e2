"""Moderation preview for the post composer."""

from fastapi import APIRouter

from plantlife.schemas import ModerationCheckRequest, ModerationCheckResponse
from plantlife.services.moderation import filter_post_content, quality_score

router = APIRouter(prefix="/api/moderation", tags=["moderation"])


@router.post("/check", response_model=ModerationCheckResponse)
async def check_content(body: ModerationCheckRequest):
    """Run the post filter without creating anything."""
    result = filter_post_content(body.body)
    return ModerationCheckResponse(
        is_valid=result.is_valid,
        category=result.category,
        confidence=result.confidence,
        reason=result.reason,
        suggestions=result.suggestions,
        quality_score=quality_score(body.body),
    )
