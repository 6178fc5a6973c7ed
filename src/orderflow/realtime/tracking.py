"""Live tracking snapshots, one per in-flight order.

Clients watching an order read the snapshot instead of the order record.
Snapshots are kept in the shared cache tier so every instance sees them.
"""

from datetime import UTC, datetime

from orderflow.cache.keys import tracking_key
from orderflow.cache.tiers import SharedTier


class TrackingBoard:
    def __init__(self, store: SharedTier, ttl_seconds: float = 6 * 3600.0) -> None:
        self.store = store
        self.ttl_seconds = ttl_seconds

    def update(self, order_id: str, status: str, rider_id: str | None, tracking_token: str | None) -> dict:
        snapshot = {
            "status": status,
            "updated_at": datetime.now(UTC).isoformat(),
            "rider_id": rider_id,
            "token": tracking_token,
        }
        self.store.set(tracking_key(order_id), snapshot, self.ttl_seconds)
        return snapshot

    def remove(self, order_id: str) -> None:
        self.store.delete(tracking_key(order_id))

    def get(self, order_id: str) -> dict | None:
        return self.store.get(tracking_key(order_id))
