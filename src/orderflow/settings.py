"""Engine tunables read from the environment.

Infrastructure (databases, brokers, event store) is configured through
``domain.toml``; everything the lifecycle engine itself needs lives here.
"""

import os
from collections.abc import Mapping
from dataclasses import dataclass


def _float(environ: Mapping[str, str], name: str, default: float) -> float:
    raw = environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


@dataclass(frozen=True)
class Settings:
    # Idempotency
    staleness_window_seconds: float = 30.0
    failure_reason_max_length: int = 200
    fingerprint_bucket_seconds: float = 60.0

    # Pricing
    subtotal_tolerance: float = 2.0
    total_tolerance: float = 5.0
    default_tax_rate: float = 5.0
    currency: str = "INR"

    # Cache
    local_ttl_cap_seconds: float = 5.0
    local_backfill_ttl_seconds: float = 3.0
    local_cache_max_entries: int = 4096
    status_lite_ttl_seconds: float = 3.0
    status_full_ttl_seconds: float = 30.0
    business_orders_ttl_seconds: float = 15.0
    menu_ttl_seconds: float = 3600.0
    tracking_ttl_seconds: float = 6 * 3600.0

    # Reads
    scan_limit: int = 500

    redis_url: str | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "Settings":
        env = os.environ if environ is None else environ
        return cls(
            staleness_window_seconds=_float(env, "ORDERFLOW_STALENESS_WINDOW", cls.staleness_window_seconds),
            fingerprint_bucket_seconds=_float(env, "ORDERFLOW_FINGERPRINT_BUCKET", cls.fingerprint_bucket_seconds),
            subtotal_tolerance=_float(env, "ORDERFLOW_SUBTOTAL_TOLERANCE", cls.subtotal_tolerance),
            total_tolerance=_float(env, "ORDERFLOW_TOTAL_TOLERANCE", cls.total_tolerance),
            default_tax_rate=_float(env, "ORDERFLOW_DEFAULT_TAX_RATE", cls.default_tax_rate),
            currency=env.get("ORDERFLOW_CURRENCY", cls.currency),
            local_ttl_cap_seconds=_float(env, "ORDERFLOW_LOCAL_TTL_CAP", cls.local_ttl_cap_seconds),
            local_cache_max_entries=int(
                _float(env, "ORDERFLOW_LOCAL_CACHE_MAX_ENTRIES", cls.local_cache_max_entries)
            ),
            status_lite_ttl_seconds=_float(env, "ORDERFLOW_STATUS_LITE_TTL", cls.status_lite_ttl_seconds),
            status_full_ttl_seconds=_float(env, "ORDERFLOW_STATUS_FULL_TTL", cls.status_full_ttl_seconds),
            business_orders_ttl_seconds=_float(env, "ORDERFLOW_BUSINESS_ORDERS_TTL", cls.business_orders_ttl_seconds),
            menu_ttl_seconds=_float(env, "ORDERFLOW_MENU_TTL", cls.menu_ttl_seconds),
            scan_limit=int(_float(env, "ORDERFLOW_SCAN_LIMIT", cls.scan_limit)),
            redis_url=env.get("REDIS_URL") or None,
        )
