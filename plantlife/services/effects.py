"""Post-commit effects returned by mutators and delivered afterwards.

Mutating service calls return an ``Outcome``: the value plus the
notifications and push events the change implies. The caller hands the
outcome to ``EffectDispatcher.run`` once the mutation has been stored, so a
failed notification write can never undo the mutation itself.
"""

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar
from uuid import UUID

from plantlife.entities import NotificationKind
from plantlife.logging_config import get_logger
from plantlife.services.push import Broadcaster

logger = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class NotificationIntent:
    user_id: UUID
    from_user_id: UUID | None
    kind: NotificationKind
    message: str
    post_id: UUID | None = None


@dataclass(frozen=True)
class BroadcastIntent:
    event: str
    payload: dict[str, Any]


Effect = NotificationIntent | BroadcastIntent


@dataclass
class Outcome(Generic[T]):
    value: T
    effects: list[Effect] = field(default_factory=list)

    @property
    def notifications(self) -> list[NotificationIntent]:
        return [e for e in self.effects if isinstance(e, NotificationIntent)]

    @property
    def broadcasts(self) -> list[BroadcastIntent]:
        return [e for e in self.effects if isinstance(e, BroadcastIntent)]


class EffectDispatcher:
    """Delivers effects in order; every failure is logged and dropped."""

    def __init__(self, notifications, broadcaster: Broadcaster):
        self._notifications = notifications
        self._broadcaster = broadcaster

    async def dispatch(self, effects: list[Effect]) -> None:
        for effect in effects:
            if isinstance(effect, NotificationIntent):
                try:
                    await self._notifications.emit(
                        target_user_id=effect.user_id,
                        from_user_id=effect.from_user_id,
                        kind=effect.kind,
                        post_id=effect.post_id,
                        message=effect.message,
                    )
                except Exception as e:
                    logger.warning(
                        "notification_emit_failed",
                        user_id=str(effect.user_id),
                        kind=effect.kind.value,
                        error=str(e),
                    )
            else:
                await self._broadcaster.broadcast(effect.event, effect.payload)

    async def run(self, outcome: Outcome[T]) -> T:
        """Dispatch the outcome's effects and return its value."""
        await self.dispatch(outcome.effects)
        return outcome.value
