"""Orderflow bounded context — order lifecycle for multi-tenant fulfillment.

Customers place orders against a business (restaurant, shop or street
vendor), staff move them through a fulfillment-mode-specific status
workflow, and riders deliver. Uses CQRS (not event sourcing): orders,
idempotency records and per-business counters are stored as current state.
"""

from protean.domain import Domain

orderflow = Domain(name="orderflow")
