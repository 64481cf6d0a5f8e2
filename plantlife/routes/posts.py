"""Post endpoints: create, timeline, search, threads, delete, likes and shares."""

from uuid import UUID

from fastapi import APIRouter, Depends, Query

from plantlife.auth import get_current_user, get_current_user_optional
from plantlife.dependencies import get_services
from plantlife.entities import Post, User
from plantlife.schemas import (
    EngagementResponse,
    PostCreateRequest,
    PostDeletedResponse,
    TimelinePostResponse,
)
from plantlife.services import Services

router = APIRouter(prefix="/api/posts", tags=["posts"])


async def _entries(
    services: Services, posts: list[Post], viewer: User | None
) -> list[TimelinePostResponse]:
    enriched = await services.timeline.enrich(posts, viewer.id if viewer else None)
    return [TimelinePostResponse.from_entry(e) for e in enriched]


@router.post("", response_model=TimelinePostResponse, status_code=201)
async def create_post(
    body: PostCreateRequest,
    services: Services = Depends(get_services),
    user: User = Depends(get_current_user),
):
    post = await services.effects.run(
        await services.content.create(user.id, body.body, body.reply_to_id, body.media_url)
    )
    return (await _entries(services, [post], user))[0]


@router.get("/timeline", response_model=list[TimelinePostResponse])
async def timeline(
    services: Services = Depends(get_services),
    user: User = Depends(get_current_user),
):
    """The caller's own posts plus those of everyone they follow, newest first."""
    entries = await services.timeline.timeline_for(user.id)
    return [TimelinePostResponse.from_entry(e) for e in entries]


@router.get("/search", response_model=list[TimelinePostResponse])
async def search_posts(
    q: str = Query(..., min_length=1, max_length=100),
    limit: int = Query(20, ge=1, le=100),
    services: Services = Depends(get_services),
    viewer: User | None = Depends(get_current_user_optional),
):
    return await _entries(services, await services.content.search(q, limit), viewer)


@router.get("/{post_id}", response_model=TimelinePostResponse)
async def get_post(
    post_id: UUID,
    services: Services = Depends(get_services),
    viewer: User | None = Depends(get_current_user_optional),
):
    post = await services.content.require(post_id)
    return (await _entries(services, [post], viewer))[0]


@router.get("/{post_id}/replies", response_model=list[TimelinePostResponse])
async def get_replies(
    post_id: UUID,
    services: Services = Depends(get_services),
    viewer: User | None = Depends(get_current_user_optional),
):
    """Direct replies, oldest first."""
    await services.content.require(post_id)
    return await _entries(services, await services.content.list_replies(post_id), viewer)


@router.delete("/{post_id}", response_model=PostDeletedResponse)
async def delete_post(
    post_id: UUID,
    services: Services = Depends(get_services),
    user: User = Depends(get_current_user),
):
    deleted = await services.effects.run(await services.content.delete(post_id, user.id))
    return PostDeletedResponse(deleted_ids=[p.id for p in deleted])


def _engagement(post: Post, active: bool) -> EngagementResponse:
    return EngagementResponse(
        post_id=post.id,
        likes_count=post.likes_count,
        shares_count=post.shares_count,
        active=active,
    )


@router.post("/{post_id}/like", response_model=EngagementResponse)
async def like_post(
    post_id: UUID,
    services: Services = Depends(get_services),
    user: User = Depends(get_current_user),
):
    post = await services.effects.run(await services.engagement.like(user.id, post_id))
    return _engagement(post, True)


@router.delete("/{post_id}/like", response_model=EngagementResponse)
async def unlike_post(
    post_id: UUID,
    services: Services = Depends(get_services),
    user: User = Depends(get_current_user),
):
    post = await services.effects.run(await services.engagement.unlike(user.id, post_id))
    return _engagement(post, False)


@router.post("/{post_id}/share", response_model=EngagementResponse)
async def share_post(
    post_id: UUID,
    services: Services = Depends(get_services),
    user: User = Depends(get_current_user),
):
    post = await services.effects.run(await services.engagement.share(user.id, post_id))
    return _engagement(post, True)


@router.delete("/{post_id}/share", response_model=EngagementResponse)
async def unshare_post(
    post_id: UUID,
    services: Services = Depends(get_services),
    user: User = Depends(get_current_user),
):
    post = await services.effects.run(await services.engagement.unshare(user.id, post_id))
    return _engagement(post, False)
