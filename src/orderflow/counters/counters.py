"""BusinessCounters aggregate — per-business monotonically increasing counters.

``last_seating_number`` backs the human-facing shared-seating tokens.
``orders_version`` is the stamp embedded in order-related cache keys; every
order mutation for the business increments it.
"""

from datetime import UTC, datetime

from protean.fields import DateTime, Identifier, Integer

from orderflow.domain import orderflow


@orderflow.aggregate
class BusinessCounters:
    business_id = Identifier(identifier=True, required=True)
    last_seating_number = Integer(default=0, min_value=0)
    orders_version = Integer(default=0, min_value=0)
    updated_at = DateTime()

    def next_seating_number(self) -> int:
        self.last_seating_number = (self.last_seating_number or 0) + 1
        self.updated_at = datetime.now(UTC)
        return self.last_seating_number

    def bump_orders_version(self) -> int:
        self.orders_version = (self.orders_version or 0) + 1
        self.updated_at = datetime.now(UTC)
        return self.orders_version
