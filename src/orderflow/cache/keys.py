"""Version-stamped cache keys.

A mutation never deletes entries; it bumps the version, so every key built
afterwards differs from the ones built before it.
"""

from collections.abc import Iterable


def menu_key(business_id: str, menu_version: int | str) -> str:
    return f"menu:{business_id}:v{menu_version}"


def order_status_key(business_id: str, orders_version: int, order_ref: str, view: str) -> str:
    return f"order_status:{business_id}:v{orders_version}:{order_ref}:{view}"


def business_orders_key(
    business_id: str,
    orders_version: int,
    statuses: Iterable[str] | None = None,
    view: str = "full",
) -> str:
    scope = ",".join(sorted(statuses)) if statuses else "all"
    return f"business_orders:{business_id}:v{orders_version}:{scope}:{view}"


def tracking_key(order_id: str) -> str:
    return f"tracking:{order_id}"
