"""Order status vocabulary and per-fulfillment-mode transition tables.

Each fulfillment mode owns a forward-edge table over the shared status
vocabulary:

    pickup:   PENDING → CONFIRMED → PREPARING → READY_FOR_PICKUP → PICKED_UP
    dine-in:  PENDING → CONFIRMED → PREPARING → {READY, READY_FOR_PICKUP} → DELIVERED
    delivery: PENDING → CONFIRMED → PREPARING → PREPARED → READY_FOR_PICKUP
              → DISPATCHED → DELIVERED, plus the rider leg
              (REACHED_RESTAURANT, PICKED_UP, ON_THE_WAY, RIDER_ARRIVED,
              DELIVERY_ATTEMPTED, FAILED_DELIVERY, RETURNED_TO_RESTAURANT)

Every mode allows PENDING → REJECTED and cancellation before the kitchen
has finished. Car orders share the dine-in table; an unrecognised mode falls
back to the generic table, which mirrors dine-in.
"""

from enum import Enum


class OrderStatus(Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    PREPARING = "preparing"
    PREPARED = "prepared"
    READY = "ready"
    READY_FOR_PICKUP = "ready_for_pickup"
    DISPATCHED = "dispatched"
    REACHED_RESTAURANT = "reached_restaurant"
    PICKED_UP = "picked_up"
    ON_THE_WAY = "on_the_way"
    RIDER_ARRIVED = "rider_arrived"
    DELIVERY_ATTEMPTED = "delivery_attempted"
    FAILED_DELIVERY = "failed_delivery"
    RETURNED_TO_RESTAURANT = "returned_to_restaurant"
    DELIVERED = "delivered"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


class FulfillmentMode(Enum):
    DELIVERY = "delivery"
    PICKUP = "pickup"
    DINE_IN = "dine-in"
    CAR_ORDER = "car-order"


class TransitionTable(Enum):
    PICKUP = "pickup"
    DINE_IN = "dine-in"
    DELIVERY = "delivery"
    GENERIC = "generic"


S = OrderStatus

_OPENING_EDGES = {
    S.PENDING: {S.CONFIRMED, S.REJECTED, S.CANCELLED},
    S.CONFIRMED: {S.PREPARING, S.CANCELLED},
}

_PICKUP_EDGES = {
    **_OPENING_EDGES,
    S.PREPARING: {S.READY_FOR_PICKUP, S.CANCELLED},
    S.READY_FOR_PICKUP: {S.PICKED_UP},
    S.PICKED_UP: set(),  # terminal for pickup
}

_DINE_IN_EDGES = {
    **_OPENING_EDGES,
    S.PREPARING: {S.READY, S.READY_FOR_PICKUP, S.CANCELLED},
    S.READY: {S.DELIVERED},
    S.READY_FOR_PICKUP: {S.DELIVERED},
}

_DELIVERY_EDGES = {
    **_OPENING_EDGES,
    S.PREPARING: {S.PREPARED, S.CANCELLED},
    S.PREPARED: {S.READY_FOR_PICKUP},
    S.READY_FOR_PICKUP: {S.DISPATCHED, S.ON_THE_WAY},
    S.DISPATCHED: {S.DELIVERED, S.REACHED_RESTAURANT, S.ON_THE_WAY},
    S.REACHED_RESTAURANT: {S.PICKED_UP, S.ON_THE_WAY},
    S.PICKED_UP: {S.ON_THE_WAY},
    S.ON_THE_WAY: {S.RIDER_ARRIVED, S.DELIVERY_ATTEMPTED},
    S.RIDER_ARRIVED: {S.DELIVERED},
    S.DELIVERY_ATTEMPTED: {S.FAILED_DELIVERY, S.ON_THE_WAY},
    S.FAILED_DELIVERY: {S.RETURNED_TO_RESTAURANT, S.ON_THE_WAY},
}

TRANSITION_TABLES: dict[TransitionTable, dict[OrderStatus, set[OrderStatus]]] = {
    TransitionTable.PICKUP: _PICKUP_EDGES,
    TransitionTable.DINE_IN: _DINE_IN_EDGES,
    TransitionTable.DELIVERY: _DELIVERY_EDGES,
    TransitionTable.GENERIC: _DINE_IN_EDGES,
}

# No outbound edges in any table.
TERMINAL_STATUSES = frozenset({S.DELIVERED, S.REJECTED, S.CANCELLED, S.RETURNED_TO_RESTAURANT})

# Realtime tracking snapshots are dropped once an order reaches one of these.
FINAL_STATUSES = TERMINAL_STATUSES

# Status-cache entries are never written for these.
UNCACHEABLE_STATUSES = frozenset({S.DELIVERED, S.REJECTED, S.CANCELLED})

# Entering one of these with a rider id assigns the rider.
RIDER_ASSIGNING_STATUSES = frozenset({S.READY_FOR_PICKUP, S.DISPATCHED})

ACTIVE_STATUSES = frozenset(set(OrderStatus) - TERMINAL_STATUSES - {S.PICKED_UP})

# A later order on the same tab joins the seating token of any of these.
TAB_TOKEN_STATUSES = frozenset(set(OrderStatus) - {S.REJECTED, S.CANCELLED, S.RETURNED_TO_RESTAURANT})

SHARED_SEATING_MODES = frozenset({FulfillmentMode.DINE_IN, FulfillmentMode.CAR_ORDER})


def table_for(mode: str | None, has_seating: bool = False) -> TransitionTable:
    """Pick the transition table for an order's fulfillment mode."""
    if mode == FulfillmentMode.DELIVERY.value:
        return TransitionTable.DELIVERY
    if mode == FulfillmentMode.PICKUP.value:
        return TransitionTable.PICKUP
    if mode in (FulfillmentMode.DINE_IN.value, FulfillmentMode.CAR_ORDER.value) or has_seating:
        return TransitionTable.DINE_IN
    return TransitionTable.GENERIC


def allowed_targets(table: TransitionTable, current: OrderStatus) -> set[OrderStatus]:
    return set(TRANSITION_TABLES[table].get(current, set()))


def can_transition(table: TransitionTable, current: OrderStatus, target: OrderStatus) -> bool:
    """Same-state is always allowed; otherwise the edge must be in the table."""
    if current == target:
        return True
    if current in TERMINAL_STATUSES:
        return False
    if target == S.REJECTED and current != S.PENDING:
        return False
    return target in TRANSITION_TABLES[table].get(current, set())
