"""Realtime Gateway — per-connection channel interest and delivery.

A connection declares interest either at connect time (query parameters) or
by sending ``{"type": "subscribe" | "unsubscribe", "channels": [...]}``.
Interest lives only as long as the connection; there is no replay, so a
reconnecting client re-fetches authoritative state.

The registry takes no locks: one instance is owned by one process and only
touched from the event loop thread.
"""

import json
from collections.abc import Iterable, Mapping
from datetime import UTC, datetime
from typing import Protocol

import structlog

logger = structlog.get_logger(__name__)

MAX_CHANNELS_PER_CONNECTION = 50
MAX_CHANNEL_LENGTH = 128


class Connection(Protocol):
    """Anything that can take a text frame without blocking."""

    @property
    def is_open(self) -> bool: ...

    def send(self, message: str) -> None: ...


def normalize_channels(raw: Iterable | str | None) -> list[str]:
    if raw is None:
        return []
    if isinstance(raw, str):
        raw = raw.split(",")
    seen: dict[str, None] = {}
    for channel in raw:
        cleaned = str(channel or "").strip()
        if cleaned and len(cleaned) <= MAX_CHANNEL_LENGTH:
            seen.setdefault(cleaned, None)
    return list(seen)


def parse_initial_channels(params: Mapping[str, str]) -> list[str]:
    """Channels requested through connect-time query parameters."""
    channels = normalize_channels(params.get("channel"))
    channels += normalize_channels(params.get("channels"))

    business_id = params.get("businessId") or params.get("restaurantId")
    if business_id:
        channels.append(f"owner:{business_id}")
    if params.get("riderId"):
        channels.append(f"rider:{params['riderId']}")
    if params.get("orderId"):
        channels.append(f"order:{params['orderId']}")
    return normalize_channels(channels)


class SubscriptionRegistry:
    def __init__(self) -> None:
        self._interest: dict[Connection, set[str]] = {}

    def connect(self, connection: Connection, channels: Iterable[str] = ()) -> int:
        self._interest.setdefault(connection, set())
        return self.subscribe(connection, channels)

    def disconnect(self, connection: Connection) -> None:
        self._interest.pop(connection, None)

    def subscribe(self, connection: Connection, channels: Iterable[str]) -> int:
        interest = self._interest.setdefault(connection, set())
        for channel in normalize_channels(channels):
            if len(interest) >= MAX_CHANNELS_PER_CONNECTION:
                break
            interest.add(channel)
        return len(interest)

    def unsubscribe(self, connection: Connection, channels: Iterable[str]) -> int:
        interest = self._interest.get(connection)
        if interest is None:
            return 0
        interest.difference_update(normalize_channels(channels))
        return len(interest)

    def channels_for(self, connection: Connection) -> set[str]:
        return set(self._interest.get(connection, ()))

    def deliver(self, message: str, channels: Iterable[str]) -> int:
        """Send ``message`` to every open connection interested in ``channels``.

        An empty channel list addresses every open connection.
        """
        targets = set(channels)
        delivered = 0
        for connection, interest in list(self._interest.items()):
            if not connection.is_open:
                continue
            if targets and not (interest & targets):
                continue
            try:
                connection.send(message)
            except Exception:
                logger.warning("Realtime send failed", exc_info=True)
                continue
            delivered += 1
        return delivered

    def __len__(self) -> int:
        return len(self._interest)


class RealtimeGateway:
    """Speaks the connection protocol on top of a ``SubscriptionRegistry``."""

    def __init__(self, registry: SubscriptionRegistry) -> None:
        self.registry = registry

    def _reply(self, connection: Connection, body: dict) -> None:
        try:
            connection.send(json.dumps(body))
        except Exception:
            logger.warning("Realtime reply failed", reply_type=body.get("type"), exc_info=True)

    def open(self, connection: Connection, params: Mapping[str, str] | None = None) -> list[str]:
        channels = parse_initial_channels(params or {})
        self.registry.connect(connection, channels)
        subscribed = sorted(self.registry.channels_for(connection))
        self._reply(
            connection,
            {
                "type": "welcome",
                "channels": subscribed,
                "at": datetime.now(UTC).isoformat(),
            },
        )
        return subscribed

    def close(self, connection: Connection) -> None:
        self.registry.disconnect(connection)

    def handle_message(self, connection: Connection, raw: str) -> None:
        text = (raw or "").strip()
        if text.lower() == "ping":
            self._reply_raw(connection, "pong")
            return

        try:
            message = json.loads(text)
        except ValueError:
            self._reply(connection, {"type": "error", "message": "Invalid message"})
            return
        if not isinstance(message, dict):
            self._reply(connection, {"type": "error", "message": "Invalid message"})
            return

        kind = message.get("type")
        if kind == "ping":
            self._reply(connection, {"type": "pong", "at": datetime.now(UTC).isoformat()})
        elif kind == "subscribe":
            channels = normalize_channels(message.get("channels"))
            total = self.registry.subscribe(connection, channels)
            self._reply(connection, {"type": "subscribed", "channels": channels, "total": total})
        elif kind == "unsubscribe":
            channels = normalize_channels(message.get("channels"))
            total = self.registry.unsubscribe(connection, channels)
            self._reply(connection, {"type": "unsubscribed", "channels": channels, "total": total})
        else:
            self._reply(connection, {"type": "error", "message": f"Unknown message type: {kind}"})

    def _reply_raw(self, connection: Connection, text: str) -> None:
        try:
            connection.send(text)
        except Exception:
            logger.warning("Realtime reply failed", exc_info=True)
