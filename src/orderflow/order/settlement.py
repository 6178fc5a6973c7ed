"""Tab payment — command and handler.

Marks every billed order of a settled tab paid in one unit of work.
"""

import json

from protean import handle
from protean.fields import String, Text
from protean.utils.globals import current_domain

from orderflow.domain import orderflow
from orderflow.order.order import Order


@orderflow.command(part_of="Order")
class RecordTabPayment:
    tab_id = String(required=True, max_length=100)
    order_ids = Text(required=True)  # JSON: list of order ids
    payment_method = String(required=True, max_length=50)
    gateway_reference = String(max_length=255)


@orderflow.command_handler(part_of=Order)
class RecordTabPaymentHandler:
    @handle(RecordTabPayment)
    def record_tab_payment(self, command):
        repo = current_domain.repository_for(Order)
        order_ids = json.loads(command.order_ids)
        for order_id in order_ids:
            order = repo.get(order_id)
            order.mark_paid(command.payment_method, command.gateway_reference)
            repo.add(order)
        return len(order_ids)
