"""Tab settlement — pay every open order on a dine-in tab in one charge.

The gateway is charged first; the orders are then marked paid together by
the ``RecordTabPayment`` handler, and each paid order publishes its own
``order.payment.settled`` event once that write commits.
"""

import hashlib
import json

import structlog
from protean.exceptions import ValidationError
from protean.utils.globals import current_domain

from orderflow.access.port import ActorContext, Permission
from orderflow.errors import Conflict, Forbidden, NotFound, PaymentDeclined
from orderflow.order.order import PaymentStatus
from orderflow.order.reads import OrderReads
from orderflow.order.settlement import RecordTabPayment
from orderflow.order.status import OrderStatus
from orderflow.payments.port import PaymentGateway
from orderflow.settings import Settings

logger = structlog.get_logger(__name__)

CASH_METHODS = frozenset({"cash", "cod", "pay_at_counter", "cash_at_counter"})
_UNBILLABLE = {OrderStatus.REJECTED.value, OrderStatus.CANCELLED.value}


class TabSettlement:
    def __init__(self, gateway: PaymentGateway, reads: OrderReads, settings: Settings | None = None) -> None:
        self.gateway = gateway
        self.reads = reads
        self.settings = settings or Settings()

    def settle(self, tab_id: str, actor: ActorContext, payment_method: str) -> dict:
        if not actor.can(Permission.PROCESS_PAYMENT) or not actor.business_id:
            raise Forbidden(f"Missing permission: {Permission.PROCESS_PAYMENT.value}")

        orders = self.reads.orders_on_tab(tab_id, business_id=actor.business_id)
        if not orders:
            raise NotFound("No orders found for this tab")
        unpaid = [o for o in orders if o.payment_status != PaymentStatus.PAID.value and o.status not in _UNBILLABLE]
        if not unpaid:
            raise Conflict("Tab is already settled", code="ALREADY_SETTLED")

        amount = round(sum(o.pricing.grand_total for o in unpaid), 2)
        order_ids = sorted(str(o.id) for o in unpaid)
        reference = None
        if payment_method not in CASH_METHODS:
            key = "settle_" + hashlib.sha256(f"{tab_id}:{','.join(order_ids)}".encode()).hexdigest()[:32]
            result = self.gateway.create_charge(amount, self.settings.currency, payment_method, tab_id, key)
            if not result.success:
                logger.warning("Tab charge declined", tab_id=tab_id, reason=result.failure_reason)
                raise PaymentDeclined(result.failure_reason or "Payment declined")
            reference = result.gateway_reference

        try:
            current_domain.process(
                RecordTabPayment(
                    tab_id=tab_id,
                    order_ids=json.dumps(order_ids),
                    payment_method=payment_method,
                    gateway_reference=reference,
                ),
                asynchronous=False,
            )
        except ValidationError as exc:
            if "payment_status" in exc.messages:
                raise Conflict("Tab is already settled", code="ALREADY_SETTLED") from exc
            raise

        logger.info("Tab settled", tab_id=tab_id, business_id=actor.business_id, amount=amount, orders=len(unpaid))
        return {
            "tab_id": tab_id,
            "settled_count": len(unpaid),
            "amount": amount,
            "gateway_reference": reference,
        }
