"""Order creation pipeline.

resolve customer → confirm business is open → reserve idempotency key →
price → allocate seating token (shared-seating modes) → ``PlaceOrder``.

The ``PlaceOrder`` handler writes the order and completes the key's
idempotency record in one unit of work; the order events it raises drive
the post-commit effects. Any error after the reservation marks the record
failed before re-raising.
"""

import json
import secrets

import structlog
from protean.utils.globals import current_domain

from orderflow.access.port import AccessResolver, ActorContext
from orderflow.catalog.port import BusinessProfile, CatalogOracle
from orderflow.counters.sequence import BusinessSequence
from orderflow.errors import OrderValidationError
from orderflow.idempotency.coordinator import IdempotencyCoordinator
from orderflow.lifecycle.requests import Cart, CustomerContext, FulfillmentContext
from orderflow.order.order import PaymentStatus
from orderflow.order.placement import PlaceOrder
from orderflow.order.reads import OrderReads
from orderflow.order.status import SHARED_SEATING_MODES, FulfillmentMode
from orderflow.pricing.gate import PricingGate

logger = structlog.get_logger(__name__)

TAB_PREFIX = "tab_"
COUNTER_PAYMENT_METHODS = frozenset({"pay_at_counter", "cash_at_counter", "counter"})


def new_tracking_token() -> str:
    return secrets.token_hex(12)


def new_tab_id() -> str:
    return TAB_PREFIX + secrets.token_hex(8)


class OrderCreation:
    def __init__(
        self,
        access: AccessResolver,
        catalog: CatalogOracle,
        pricing: PricingGate,
        coordinator: IdempotencyCoordinator,
        sequence: BusinessSequence,
        reads: OrderReads,
    ) -> None:
        self.access = access
        self.catalog = catalog
        self.pricing = pricing
        self.coordinator = coordinator
        self.sequence = sequence
        self.reads = reads

    def create(
        self,
        idempotency_key: str,
        customer: CustomerContext,
        cart: Cart,
        fulfillment: FulfillmentContext,
    ) -> dict:
        cart.validate()
        mode = fulfillment.validate()
        if fulfillment.tab_id and not fulfillment.tab_id.startswith(TAB_PREFIX):
            raise OrderValidationError("Tab ids start with 'tab_'", code="INVALID_TAB_ID")

        actor = self.access.resolve(customer.token)
        profile = self.catalog.get_business(cart.business_id)
        if not profile.is_open:
            raise OrderValidationError(f"{profile.name} is not accepting orders right now", code="BUSINESS_CLOSED")

        reservation = self.coordinator.reserve(idempotency_key)
        if reservation.duplicate:
            return {**(reservation.payload or {}), "duplicate": True}

        try:
            payload = self._place(reservation.key, actor, customer, profile, cart, fulfillment, mode)
        except Exception as exc:
            self._mark_failed(reservation.key, exc)
            raise

        logger.info(
            "Order created",
            order_id=payload["order_id"],
            business_id=cart.business_id,
            fulfillment_mode=mode.value,
            grand_total=payload["grand_total"],
        )
        return {**payload, "duplicate": False}

    # -------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------
    def _place(
        self,
        key: str,
        actor: ActorContext,
        customer: CustomerContext,
        profile: BusinessProfile,
        cart: Cart,
        fulfillment: FulfillmentContext,
        mode: FulfillmentMode,
    ) -> dict:
        quote = self.pricing.quote(profile, cart, fulfillment)

        seating_token = tab_id = None
        if mode in SHARED_SEATING_MODES or profile.business_type == "street-vendor":
            tab_id = fulfillment.tab_id or new_tab_id()
            seating_token = self._seating_token(profile.business_id, fulfillment.tab_id)

        payment_status = (
            PaymentStatus.PAY_AT_COUNTER if cart.payment_method in COUNTER_PAYMENT_METHODS else PaymentStatus.PENDING
        )
        command = PlaceOrder(
            idempotency_key=key,
            business_id=profile.business_id,
            fulfillment_mode=mode.value,
            items=json.dumps([line.to_dict() for line in quote.lines]),
            pricing=json.dumps(quote.pricing_fields()),
            tracking_token=new_tracking_token(),
            customer_id=actor.actor_id,
            is_guest=actor.is_guest,
            actor_role=actor.role,
            customer_name=customer.name or actor.name,
            customer_phone=customer.phone or actor.phone,
            delivery_address=json.dumps(fulfillment.address.to_dict()) if fulfillment.address else None,
            payment_method=cart.payment_method,
            payment_status=payment_status.value,
            seating_token=seating_token,
            tab_id=tab_id,
            table_id=fulfillment.table_id,
            customer_order_id=cart.customer_order_id,
        )
        return current_domain.process(command, asynchronous=False)

    def _seating_token(self, business_id: str, tab_id: str | None) -> str:
        """Join the tab's existing seating token, else allocate a new one."""
        if tab_id:
            existing = self.reads.seated_order_on_tab(business_id, tab_id)
            if existing is not None:
                return existing.seating_token
        return self.sequence.allocate_seating_token(business_id)

    def _mark_failed(self, key: str, exc: Exception) -> None:
        reason = getattr(exc, "message", None) or str(exc) or type(exc).__name__
        try:
            self.coordinator.fail(key, reason)
        except Exception:
            logger.error("Could not mark idempotency record failed", idempotency_key=key, exc_info=True)
