"""Order domain events — immutable facts about order state changes."""

from protean.fields import DateTime, Float, Identifier, Integer, String, Text

from orderflow.domain import orderflow


@orderflow.event(part_of="Order")
class OrderPlaced:
    """A customer order was accepted and persisted."""

    __version__ = 1

    order_id = Identifier(required=True)
    business_id = Identifier(required=True)
    customer_id = String()
    fulfillment_mode = String(required=True)
    status = String(required=True)
    payment_status = String(required=True)
    payment_method = String()
    grand_total = Float(required=True)
    seating_token = String()
    items = Text(required=True)  # JSON list of item dicts
    placed_at = DateTime(required=True)


@orderflow.event(part_of="Order")
class OrderStatusChanged:
    """An order moved along an edge of its transition table."""

    __version__ = 1

    order_id = Identifier(required=True)
    business_id = Identifier(required=True)
    previous_status = String(required=True)
    new_status = String(required=True)
    sequence = Integer(required=True)
    actor_id = String()
    role = String()
    tracking_token = String()
    rider_id = String()
    note = String()
    changed_at = DateTime(required=True)


@orderflow.event(part_of="Order")
class OrderPaymentSettled:
    """An order was paid as part of a tab settlement."""

    __version__ = 1

    order_id = Identifier(required=True)
    business_id = Identifier(required=True)
    payment_method = String(required=True)
    gateway_reference = String()
    tab_id = String()
    amount = Float(required=True)
    settled_at = DateTime(required=True)
