"""Event Bus — typed publish addressed by channel names.

Delivery is synchronous and lossy: the bus reduces polling latency, it is
never the system of record.
"""

import json
from collections.abc import Callable, Iterable
from datetime import UTC, datetime

import structlog

from orderflow.realtime.gateway import SubscriptionRegistry, normalize_channels

logger = structlog.get_logger(__name__)


def owner_channel(business_id: str) -> str:
    return f"owner:{business_id}"


def rider_channel(rider_id: str) -> str:
    return f"rider:{rider_id}"


def order_channel(order_id: str) -> str:
    return f"order:{order_id}"


def order_channels(business_id: str, order_id: str, rider_id: str | None = None) -> list[str]:
    channels = [owner_channel(business_id), order_channel(order_id)]
    if rider_id:
        channels.append(rider_channel(rider_id))
    return channels


def _utcnow() -> datetime:
    return datetime.now(UTC)


class EventBus:
    def __init__(self, registry: SubscriptionRegistry, clock: Callable[[], datetime] = _utcnow) -> None:
        self.registry = registry
        self.clock = clock

    def publish(self, event_type: str, channels: Iterable[str] | None, payload: dict | None = None) -> int:
        """Deliver an envelope to matching open connections; returns the count."""
        targets = normalize_channels(channels)
        envelope = json.dumps(
            {
                "type": event_type,
                "channels": targets,
                "payload": payload or {},
                "at": self.clock().isoformat(),
            },
            default=str,
        )
        delivered = self.registry.deliver(envelope, targets)
        logger.debug("Event published", event_type=event_type, channels=targets, delivered=delivered)
        return delivered
