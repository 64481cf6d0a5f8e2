"""User endpoints: profiles, profile feeds, follow graph, suggestions."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query

from plantlife.auth import get_current_user, get_current_user_optional
from plantlife.dependencies import get_services
from plantlife.entities import User
from plantlife.schemas import (
    FollowResponse,
    FollowStatusResponse,
    MeResponse,
    ProfileUpdateRequest,
    TimelinePostResponse,
    UserResponse,
)
from plantlife.services import Services

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/suggestions", response_model=list[UserResponse])
async def who_to_follow(
    limit: int = Query(5, ge=1, le=50),
    services: Services = Depends(get_services),
    viewer: User | None = Depends(get_current_user_optional),
):
    """Accounts the caller does not follow yet."""
    users = await services.identity.suggestions(viewer.id if viewer else None, limit)
    return [UserResponse.model_validate(u) for u in users]


@router.patch("/me", response_model=MeResponse)
async def update_profile(
    body: ProfileUpdateRequest,
    services: Services = Depends(get_services),
    user: User = Depends(get_current_user),
):
    updated = await services.identity.update_profile(
        user.id, **body.model_dump(exclude_unset=True)
    )
    return MeResponse.model_validate(updated)


@router.get("/{handle}", response_model=UserResponse)
async def get_profile(
    handle: str,
    services: Services = Depends(get_services),
):
    return UserResponse.model_validate(await services.identity.require_by_handle(handle))


@router.get("/{handle}/posts", response_model=list[TimelinePostResponse])
async def get_user_posts(
    handle: str,
    services: Services = Depends(get_services),
    viewer: User | None = Depends(get_current_user_optional),
):
    entries = await services.timeline.user_posts(handle, viewer.id if viewer else None)
    return [TimelinePostResponse.from_entry(e) for e in entries]


@router.get("/{handle}/followers", response_model=list[UserResponse])
async def get_followers(
    handle: str,
    services: Services = Depends(get_services),
):
    user = await services.identity.require_by_handle(handle)
    return [UserResponse.model_validate(u) for u in await services.identity.list_followers(user.id)]


@router.get("/{handle}/following", response_model=list[UserResponse])
async def get_following(
    handle: str,
    services: Services = Depends(get_services),
):
    user = await services.identity.require_by_handle(handle)
    return [UserResponse.model_validate(u) for u in await services.identity.list_following(user.id)]


@router.post("/{user_id}/follow", response_model=FollowResponse)
async def follow(
    user_id: UUID,
    services: Services = Depends(get_services),
    user: User = Depends(get_current_user),
):
    changed = await services.effects.run(await services.graph.follow(user.id, user_id))
    return FollowResponse(following=True, changed=changed)


@router.delete("/{user_id}/follow", response_model=FollowResponse)
async def unfollow(
    user_id: UUID,
    services: Services = Depends(get_services),
    user: User = Depends(get_current_user),
):
    changed = await services.effects.run(await services.graph.unfollow(user.id, user_id))
    return FollowResponse(following=False, changed=changed)


@router.get("/{user_id}/following-status", response_model=FollowStatusResponse)
async def following_status(
    user_id: UUID,
    services: Services = Depends(get_services),
    user: User = Depends(get_current_user),
):
    """Whether the caller follows ``user_id``."""
    return FollowStatusResponse(is_following=await services.graph.is_following(user.id, user_id))
