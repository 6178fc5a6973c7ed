"""Order placement — command and handler.

The handler persists the priced order and completes the idempotency record
for the same key in one unit of work, so a key is never left processing
behind an order that exists.
"""

import json

from protean import handle
from protean.fields import Boolean, Identifier, String, Text
from protean.utils.globals import current_domain

from orderflow.domain import orderflow
from orderflow.idempotency.coordinator import complete_reservation
from orderflow.order.order import Order, Pricing


@orderflow.command(part_of="Order")
class PlaceOrder:
    idempotency_key = String(required=True, max_length=255)
    business_id = Identifier(required=True)
    fulfillment_mode = String(required=True, max_length=20)
    items = Text(required=True)  # JSON: list of priced line dicts
    pricing = Text(required=True)  # JSON: Pricing fields
    tracking_token = String(required=True, max_length=64)
    customer_id = String(max_length=100)
    is_guest = Boolean(default=False)
    actor_role = String(max_length=50)
    customer_name = String(max_length=255)
    customer_phone = String(max_length=50)
    delivery_address = Text()  # JSON: {"line", "lat", "lng"}
    payment_method = String(max_length=50)
    payment_status = String(required=True, max_length=30)
    seating_token = String(max_length=20)
    tab_id = String(max_length=100)
    table_id = String(max_length=100)
    customer_order_id = String(max_length=50)


def placement_payload(order: Order) -> dict:
    """The creation response, also replayed to duplicate submissions."""
    return {
        "message": "Order placed successfully",
        "order_id": str(order.id),
        "tracking_token": order.tracking_token,
        "status": order.status,
        "payment_method": order.payment_method,
        "payment_status": order.payment_status,
        "seating_token": order.seating_token,
        "tab_id": order.tab_id,
        "customer_order_id": order.customer_order_id,
        "grand_total": order.pricing.grand_total,
    }


@orderflow.command_handler(part_of=Order)
class PlaceOrderHandler:
    @handle(PlaceOrder)
    def place_order(self, command):
        address = json.loads(command.delivery_address) if command.delivery_address else None
        order = Order.create(
            business_id=command.business_id,
            fulfillment_mode=command.fulfillment_mode,
            items_data=json.loads(command.items),
            pricing=Pricing(**json.loads(command.pricing)),
            tracking_token=command.tracking_token,
            customer_id=command.customer_id,
            is_guest=command.is_guest,
            actor_role=command.actor_role,
            customer_name=command.customer_name,
            customer_phone=command.customer_phone,
            delivery_address=address,
            payment_method=command.payment_method,
            payment_status=command.payment_status,
            seating_token=command.seating_token,
            tab_id=command.tab_id,
            table_id=command.table_id,
            customer_order_id=command.customer_order_id,
            idempotency_key=command.idempotency_key,
        )
        current_domain.repository_for(Order).add(order)

        payload = placement_payload(order)
        complete_reservation(command.idempotency_key, payload, str(order.id))
        return payload
