"""Two-tier read cache.

Reads try the local tier, then the shared tier (backfilling the local tier on
a shared hit). Writes always land in the local tier, with the TTL capped,
and best-effort in the shared tier. The cache is a latency optimization:
a shared-tier failure is logged and treated as a miss or a skipped write.
"""

from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import structlog

from orderflow.cache.tiers import LocalTier, SharedTier

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CacheLookup:
    hit: bool
    value: Any = None
    source: str | None = None  # "local" | "shared"


MISS = CacheLookup(hit=False)


class CacheLayer:
    def __init__(
        self,
        local: LocalTier,
        shared: SharedTier | None = None,
        local_ttl_cap: float = 5.0,
        backfill_ttl: float = 3.0,
    ) -> None:
        self.local = local
        self.shared = shared
        self.local_ttl_cap = local_ttl_cap
        self.backfill_ttl = backfill_ttl

    def lookup(self, key: str) -> CacheLookup:
        value = self.local.get(key)
        if value is not None:
            return CacheLookup(hit=True, value=value, source="local")

        if self.shared is None:
            return MISS
        try:
            value = self.shared.get(key)
        except Exception:
            logger.warning("Shared cache read failed", key=key, exc_info=True)
            return MISS
        if value is None:
            return MISS

        self.local.set(key, value, min(self.backfill_ttl, self.local_ttl_cap))
        return CacheLookup(hit=True, value=value, source="shared")

    def get(self, key: str) -> Any | None:
        return self.lookup(key).value

    def set(self, key: str, value: Any, ttl_seconds: float) -> None:
        if value is None:
            return
        self.local.set(key, value, min(ttl_seconds, self.local_ttl_cap))
        if self.shared is None:
            return
        try:
            self.shared.set(key, value, ttl_seconds)
        except Exception:
            logger.warning("Shared cache write failed", key=key, exc_info=True)

    def get_or_compute(self, key: str, ttl_seconds: float, compute: Callable[[], Any]) -> Any:
        found = self.lookup(key)
        if found.hit:
            return found.value
        value = compute()
        self.set(key, value, ttl_seconds)
        return value
