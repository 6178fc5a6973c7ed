"""Order event handlers — committed order facts become post-commit effects.

Order events are dispatched when the unit of work that raised them commits,
so a publish, tracking update or version bump only ever follows a write
that landed. A rolled-back batch raises nothing here.
"""

import structlog
from protean.utils.mixins import handle

from orderflow.domain import orderflow
from orderflow.lifecycle.effects import BumpOrdersVersion, Effect, PublishEvent, SyncTracking, get_dispatcher
from orderflow.order.events import OrderPaymentSettled, OrderPlaced, OrderStatusChanged
from orderflow.order.order import Order
from orderflow.order.status import FINAL_STATUSES, OrderStatus
from orderflow.realtime.bus import order_channel, order_channels, owner_channel

logger = structlog.get_logger(__name__)

ORDER_CREATED = "order.created"
STATUS_UPDATED = "order.status.updated"
PAYMENT_SETTLED = "order.payment.settled"


def placement_effects(event: OrderPlaced) -> list[Effect]:
    order_id = str(event.order_id)
    business_id = str(event.business_id)
    return [
        PublishEvent(
            event_type=ORDER_CREATED,
            channels=tuple(order_channels(business_id, order_id)),
            payload={
                "order_id": order_id,
                "business_id": business_id,
                "status": event.status,
                "payment_status": event.payment_status,
                "fulfillment_mode": event.fulfillment_mode,
                "seating_token": event.seating_token,
            },
        ),
        BumpOrdersVersion(business_id=business_id),
    ]


def status_change_effects(event: OrderStatusChanged) -> list[Effect]:
    order_id = str(event.order_id)
    business_id = str(event.business_id)
    return [
        SyncTracking(
            order_id=order_id,
            status=event.new_status,
            rider_id=event.rider_id,
            tracking_token=event.tracking_token,
            remove=OrderStatus(event.new_status) in FINAL_STATUSES,
        ),
        PublishEvent(
            event_type=STATUS_UPDATED,
            channels=tuple(order_channels(business_id, order_id, event.rider_id)),
            payload={
                "order_id": order_id,
                "business_id": business_id,
                "status": event.new_status,
                "previous_status": event.previous_status,
                "rider_id": event.rider_id,
            },
        ),
        BumpOrdersVersion(business_id=business_id),
    ]


def settlement_effects(event: OrderPaymentSettled) -> list[Effect]:
    order_id = str(event.order_id)
    business_id = str(event.business_id)
    return [
        PublishEvent(
            event_type=PAYMENT_SETTLED,
            channels=(owner_channel(business_id), order_channel(order_id)),
            payload={
                "order_id": order_id,
                "tab_id": event.tab_id,
                "amount": event.amount,
                "payment_method": event.payment_method,
            },
        ),
        BumpOrdersVersion(business_id=business_id),
    ]


def _dispatch(event, effects: list[Effect]) -> None:
    dispatcher = get_dispatcher()
    if dispatcher is None:
        logger.debug("No effect dispatcher registered", event_type=type(event).__name__)
        return
    dispatcher.run(effects)


@orderflow.event_handler(part_of=Order)
class OrderEffectsHandler:
    """Hands the effects of each committed order event to the dispatcher."""

    @handle(OrderPlaced)
    def on_order_placed(self, event: OrderPlaced) -> None:
        _dispatch(event, placement_effects(event))

    @handle(OrderStatusChanged)
    def on_status_changed(self, event: OrderStatusChanged) -> None:
        _dispatch(event, status_change_effects(event))

    @handle(OrderPaymentSettled)
    def on_payment_settled(self, event: OrderPaymentSettled) -> None:
        _dispatch(event, settlement_effects(event))
