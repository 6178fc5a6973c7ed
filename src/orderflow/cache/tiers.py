"""Cache tiers.

``LocalTier`` is a process-local map with per-entry expiry. It takes no
locks: it is owned by one engine instance and only touched from the event
loop thread. Expired entries are swept every ``prune_every`` writes, and
once ``max_entries`` is reached the oldest writes are evicted, so keys left
behind by a version bump do not accumulate.

``SharedTier`` is the cross-instance backstop. ``RedisSharedTier`` is the
production implementation; ``MemorySharedTier`` stands in for it in
development and tests.
"""

import json
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

import redis


class LocalTier:
    def __init__(
        self,
        clock: Callable[[], float] = time.monotonic,
        max_entries: int | None = 4096,
        prune_every: int = 256,
    ) -> None:
        self._entries: dict[str, tuple[Any, float]] = {}
        self._clock = clock
        self.max_entries = max_entries
        self.prune_every = max(1, prune_every)
        self._writes = 0

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at <= self._clock():
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        if ttl_seconds <= 0:
            return
        self._writes += 1
        full = self.max_entries is not None and len(self._entries) >= self.max_entries
        if full or self._writes % self.prune_every == 0:
            self.prune()
        self._entries.pop(key, None)
        if self.max_entries is not None:
            while len(self._entries) >= self.max_entries:
                del self._entries[next(iter(self._entries))]
        self._entries[key] = (value, self._clock() + ttl_seconds)

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def prune(self) -> int:
        now = self._clock()
        expired = [key for key, (_, expires_at) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class SharedTier(ABC):
    @abstractmethod
    def get(self, key: str) -> Any | None: ...

    @abstractmethod
    def set(self, key: str, value: Any, ttl_seconds: float) -> None: ...

    @abstractmethod
    def delete(self, key: str) -> None: ...

    @abstractmethod
    def claim(self, key: str, ttl_seconds: float) -> bool:
        """Set ``key`` only if no live value holds it. True when this caller won."""


class MemorySharedTier(SharedTier):
    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._store = LocalTier(clock=clock, max_entries=None)
        self._claim_guard = threading.Lock()

    def get(self, key):
        return self._store.get(key)

    def set(self, key, value, ttl_seconds):
        # Values cross a serialization boundary in the real tier.
        self._store.set(key, json.loads(json.dumps(value, default=str)), ttl_seconds)

    def delete(self, key):
        self._store.delete(key)

    def claim(self, key, ttl_seconds):
        with self._claim_guard:
            if self._store.get(key) is not None:
                return False
            self._store.set(key, True, ttl_seconds)
            return True


class RedisSharedTier(SharedTier):
    """JSON values under a key prefix, expiring with ``SETEX``."""

    def __init__(self, client: redis.Redis, prefix: str = "orderflow:") -> None:
        self.client = client
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str, prefix: str = "orderflow:") -> "RedisSharedTier":
        return cls(redis.from_url(url, socket_timeout=0.5, socket_connect_timeout=0.5), prefix=prefix)

    def get(self, key):
        raw = self.client.get(self.prefix + key)
        if raw is None:
            return None
        return json.loads(raw)

    def set(self, key, value, ttl_seconds):
        self.client.setex(self.prefix + key, max(1, int(ttl_seconds)), json.dumps(value, default=str))

    def delete(self, key):
        self.client.delete(self.prefix + key)

    def claim(self, key, ttl_seconds):
        return bool(self.client.set(self.prefix + key, "1", nx=True, ex=max(1, int(ttl_seconds))))
