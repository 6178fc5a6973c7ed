"""Post-commit effects.

Once an order write has committed, the follow-up work (realtime publish,
tracking snapshot, cache version bump) is described as a list of effect
objects and handed to the active ``EffectDispatcher``. The order event
handlers look the dispatcher up through get_dispatcher(); the engine
registers its own when it is built. Each effect runs on its own: a
failure is logged and dropped, and never stops the effects after it or
touches the committed write.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field

import structlog

from orderflow.counters.sequence import BusinessSequence
from orderflow.realtime.bus import EventBus
from orderflow.realtime.tracking import TrackingBoard

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class PublishEvent:
    event_type: str
    channels: tuple[str, ...]
    payload: dict = field(default_factory=dict)


@dataclass(frozen=True)
class SyncTracking:
    order_id: str
    status: str
    rider_id: str | None = None
    tracking_token: str | None = None
    remove: bool = False


@dataclass(frozen=True)
class BumpOrdersVersion:
    business_id: str


Effect = PublishEvent | SyncTracking | BumpOrdersVersion


@dataclass
class DispatchReport:
    succeeded: list[Effect] = field(default_factory=list)
    failed: list[Effect] = field(default_factory=list)
    delivered: int = 0


class EffectDispatcher:
    def __init__(self, bus: EventBus, tracking: TrackingBoard, sequence: BusinessSequence) -> None:
        self.bus = bus
        self.tracking = tracking
        self.sequence = sequence

    def run(self, effects: Iterable[Effect]) -> DispatchReport:
        report = DispatchReport()
        for effect in effects:
            try:
                self._apply(effect, report)
            except Exception:
                logger.warning("Post-commit effect failed", effect=type(effect).__name__, exc_info=True)
                report.failed.append(effect)
            else:
                report.succeeded.append(effect)
        return report

    def _apply(self, effect: Effect, report: DispatchReport) -> None:
        if isinstance(effect, PublishEvent):
            report.delivered += self.bus.publish(effect.event_type, effect.channels, effect.payload)
        elif isinstance(effect, SyncTracking):
            if effect.remove:
                self.tracking.remove(effect.order_id)
            else:
                self.tracking.update(effect.order_id, effect.status, effect.rider_id, effect.tracking_token)
        elif isinstance(effect, BumpOrdersVersion):
            self.sequence.bump_orders_version(effect.business_id)
        else:
            raise TypeError(f"Unknown effect: {effect!r}")


_current_dispatcher: EffectDispatcher | None = None


def get_dispatcher() -> EffectDispatcher | None:
    return _current_dispatcher


def set_dispatcher(dispatcher: EffectDispatcher) -> None:
    global _current_dispatcher
    _current_dispatcher = dispatcher


def reset_dispatcher() -> None:
    global _current_dispatcher
    _current_dispatcher = None
