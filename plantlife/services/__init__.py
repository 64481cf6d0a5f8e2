"""Core services wired over one storage adapter."""

from dataclasses import dataclass
from typing import Callable

from plantlife.config import Settings
from plantlife.services.content_service import ContentService
from plantlife.services.effects import EffectDispatcher
from plantlife.services.engagement_service import EngagementService
from plantlife.services.graph_service import GraphService
from plantlife.services.identity_service import IdentityService
from plantlife.services.moderation import filter_post_content
from plantlife.services.notification_service import NotificationService
from plantlife.services.push import Broadcaster, EventHub
from plantlife.services.timeline_service import TimelineService
from plantlife.services.verification_service import VerificationService
from plantlife.storage import Storage
from plantlife.utils import utcnow


@dataclass
class Services:
    storage: Storage
    identity: IdentityService
    graph: GraphService
    content: ContentService
    engagement: EngagementService
    timeline: TimelineService
    notifications: NotificationService
    verification: VerificationService
    effects: EffectDispatcher
    hub: EventHub


def build_services(
    storage: Storage,
    settings: Settings,
    hub: EventHub | None = None,
    broadcaster: Broadcaster | None = None,
    clock: Callable = utcnow,
) -> Services:
    """Wire every service over ``storage``.

    Events go to ``broadcaster`` when given, otherwise straight to ``hub``.
    """
    hub = hub or EventHub()
    identity = IdentityService(storage, clock=clock)
    notifications = NotificationService(
        storage, page_size=settings.notification_page_size, clock=clock
    )
    return Services(
        storage=storage,
        identity=identity,
        graph=GraphService(storage, identity, clock=clock),
        content=ContentService(
            storage,
            identity,
            max_length=settings.post_max_length,
            moderator=filter_post_content if settings.moderation_active else None,
            search_limit=settings.search_page_size,
            clock=clock,
        ),
        engagement=EngagementService(storage, identity, clock=clock),
        timeline=TimelineService(storage, identity, page_size=settings.timeline_page_size),
        notifications=notifications,
        verification=VerificationService(
            storage, identity, window_days=settings.verification_window_days, clock=clock
        ),
        effects=EffectDispatcher(notifications, broadcaster or hub),
        hub=hub,
    )


__all__ = ["Services", "build_services"]
