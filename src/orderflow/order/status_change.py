"""Bulk status change — command and handler.

Every order in the batch moves inside one unit of work: if any of them
cannot take the edge when it is written, none of the batch is persisted
and no status event is raised.
"""

import json

import structlog
from protean import handle
from protean.fields import String, Text
from protean.utils.globals import current_domain

from orderflow.domain import orderflow
from orderflow.order.order import Order
from orderflow.order.status import OrderStatus

logger = structlog.get_logger(__name__)


@orderflow.command(part_of="Order")
class TransitionOrderStatus:
    order_ids = Text(required=True)  # JSON: list of order ids
    target_status = String(required=True, max_length=50)
    actor_id = String(max_length=100)
    role = String(max_length=50)
    note = String(max_length=500)
    rider_id = String(max_length=100)
    reason = String(max_length=500)


@orderflow.command_handler(part_of=Order)
class TransitionOrderStatusHandler:
    @handle(TransitionOrderStatus)
    def transition_orders(self, command):
        target = OrderStatus(command.target_status)
        repo = current_domain.repository_for(Order)
        moved = []
        for order_id in json.loads(command.order_ids):
            order = repo.get(order_id)
            previous = order.status
            if not order.transition_to(
                target,
                actor_id=command.actor_id,
                role=command.role,
                note=command.note,
                rider_id=command.rider_id,
                reason=command.reason,
            ):
                continue
            repo.add(order)
            moved.append(order_id)
            logger.info(
                "Order status updated",
                order_id=order_id,
                business_id=str(order.business_id),
                previous_status=previous,
                new_status=target.value,
                actor_id=command.actor_id,
            )
        return moved
