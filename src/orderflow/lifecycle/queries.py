"""Read side: order status projections and the business's live order list.

Both reads are cached under keys stamped with the business's orders version,
so any order mutation (which bumps the version) makes earlier entries
unreachable. Orders in a final state are never cached.
"""

from collections.abc import Iterable
from dataclasses import dataclass

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from orderflow.access.port import ActorContext, Permission
from orderflow.cache.keys import business_orders_key, order_status_key
from orderflow.cache.layer import CacheLayer
from orderflow.catalog.port import CatalogOracle
from orderflow.counters.sequence import BusinessSequence
from orderflow.errors import Forbidden, NotFound, OrderValidationError
from orderflow.lifecycle.creation import TAB_PREFIX
from orderflow.order.order import Order, PaymentStatus
from orderflow.order.reads import OrderReads
from orderflow.order.status import SHARED_SEATING_MODES, UNCACHEABLE_STATUSES, FulfillmentMode, OrderStatus
from orderflow.settings import Settings

_EXCLUDED_FROM_TOTALS = {OrderStatus.REJECTED.value, OrderStatus.CANCELLED.value}


@dataclass(frozen=True)
class ViewerContext:
    actor: ActorContext
    tracking_token: str | None = None


def _iso(value) -> str | None:
    return value.isoformat() if value else None


# ---------------------------------------------------------------------------
# Payload builders
# ---------------------------------------------------------------------------
def lite_payload(order: Order) -> dict:
    return {
        "order": {
            "id": str(order.id),
            "customer_order_id": order.customer_order_id,
            "business_id": str(order.business_id),
            "status": order.status,
            "customer_name": order.customer_name,
            "customer_phone": order.customer_phone,
            "fulfillment_mode": order.fulfillment_mode,
            "seating_token": order.seating_token,
            "table_id": order.table_id,
            "tab_id": order.tab_id,
            "is_car_order": order.fulfillment_mode == FulfillmentMode.CAR_ORDER.value,
            "tracking_token": order.tracking_token,
            "created_at": _iso(order.created_at),
        }
    }


def aggregate_group(orders: list[Order]) -> dict:
    """Combine co-located orders sharing a seating token or tab.

    Rejected and cancelled orders are listed as batches but contribute
    neither items nor money.
    """
    batches, items = [], []
    totals = {"subtotal": 0.0, "cgst": 0.0, "sgst": 0.0, "delivery_charge": 0.0, "grand_total": 0.0}
    payment_states = set()

    for order in sorted(orders, key=lambda o: o.created_at):
        batches.append({"id": str(order.id), "status": order.status, "created_at": _iso(order.created_at)})
        payment_states.add(order.payment_status)
        if order.status in _EXCLUDED_FROM_TOTALS:
            continue
        items.extend(item.to_dict() for item in order.items)
        for name in totals:
            totals[name] += getattr(order.pricing, name) or 0.0

    if PaymentStatus.PAID.value in payment_states:
        payment_status = PaymentStatus.PAID.value
    elif PaymentStatus.PAY_AT_COUNTER.value in payment_states:
        payment_status = PaymentStatus.PAY_AT_COUNTER.value
    else:
        payment_status = PaymentStatus.PENDING.value

    return {
        "batches": batches,
        "items": items,
        **{name: round(value, 2) for name, value in totals.items()},
        "payment_status": payment_status,
    }


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------
class OrderQueries:
    def __init__(
        self,
        cache: CacheLayer,
        sequence: BusinessSequence,
        reads: OrderReads,
        catalog: CatalogOracle,
        settings: Settings | None = None,
    ) -> None:
        self.cache = cache
        self.sequence = sequence
        self.reads = reads
        self.catalog = catalog
        self.settings = settings or Settings()

    # -------------------------------------------------------------------
    # Order status
    # -------------------------------------------------------------------
    def resolve_order(self, order_ref: str) -> Order:
        ref = (order_ref or "").strip()
        if not ref:
            raise OrderValidationError("Order id is missing", code="ORDER_ID_REQUIRED")
        if ref.startswith(TAB_PREFIX):
            orders = self.reads.orders_on_tab(ref)
            if not orders:
                raise NotFound("No orders found for this tab")
            return orders[0]
        try:
            return current_domain.repository_for(Order).get(ref)
        except ObjectNotFoundError as exc:
            raise NotFound("Order not found") from exc

    @staticmethod
    def can_read(order: Order, viewer: ViewerContext, party: Iterable[Order] = ()) -> bool:
        """``party`` holds the orders seated with ``order``; any of their tracking tokens opens it."""
        if viewer.tracking_token and any(viewer.tracking_token == o.tracking_token for o in (order, *party)):
            return True
        actor = viewer.actor
        if actor.is_guest:
            return False
        if actor.actor_id and actor.actor_id == order.customer_id:
            return True
        if actor.role == "rider":
            return actor.actor_id == order.rider_id
        return actor.business_id == str(order.business_id) and actor.can(Permission.VIEW_ORDERS)

    def get_order_status(self, order_ref: str, viewer: ViewerContext, lite: bool = False) -> dict:
        order = self.resolve_order(order_ref)
        if not self.can_read(order, viewer):
            if not (viewer.tracking_token and self.can_read(order, viewer, self._party(order))):
                raise Forbidden("Tracking token required")

        business_id = str(order.business_id)
        view = "lite" if lite else "full"
        key = order_status_key(business_id, self.sequence.orders_version(business_id), order_ref.strip(), view)

        found = self.cache.lookup(key)
        if found.hit:
            return {"payload": found.value, "cache": "L1-HIT" if found.source == "local" else "HIT", "lite": lite}

        payload = lite_payload(order) if lite else self.full_payload(order)
        if OrderStatus(order.status) in UNCACHEABLE_STATUSES:
            return {"payload": payload, "cache": "SKIP", "lite": lite}

        ttl = self.settings.status_lite_ttl_seconds if lite else self.settings.status_full_ttl_seconds
        self.cache.set(key, payload, ttl)
        return {"payload": payload, "cache": "MISS", "lite": lite}

    def full_payload(self, order: Order) -> dict:
        profile = self.catalog.get_business(str(order.business_id))
        group = self._group_for(order)

        pricing = order.pricing
        body = lite_payload(order)["order"]
        body.update(
            {
                "items": [item.to_dict() for item in order.items],
                "batches": [],
                "subtotal": pricing.subtotal,
                "cgst": pricing.cgst,
                "sgst": pricing.sgst,
                "delivery_charge": pricing.delivery_charge,
                "fees_total": pricing.fees_total,
                "discount": pricing.discount,
                "grand_total": pricing.grand_total,
                "payment_status": order.payment_status,
                "payment_method": order.payment_method,
                "delivery_address": order.address,
                "rider_id": order.rider_id,
                "rejection_reason": order.rejection_reason,
                "cancellation_reason": order.cancellation_reason,
                "delivered_at": _iso(order.delivered_at),
                "history": [entry.to_dict() for entry in order.timeline()],
            }
        )
        if group is not None:
            body.update(group)

        location = {"lat": profile.location.lat, "lng": profile.location.lng} if profile.location else None
        return {
            "order": body,
            "business": {
                "id": profile.business_id,
                "name": profile.name,
                "phone": profile.phone,
                "business_type": profile.business_type,
                "location": location,
            },
        }

    def _party(self, order: Order) -> list[Order]:
        """Orders on the same tab or sharing the seating token."""
        business_id = str(order.business_id)
        party: dict[str, Order] = {}
        if order.tab_id:
            party.update((str(o.id), o) for o in self.reads.orders_on_tab(order.tab_id, business_id=business_id))
        if order.seating_token:
            party.update(
                (str(o.id), o) for o in self.reads.orders_with_seating_token(business_id, order.seating_token)
            )
        return list(party.values())

    def _group_for(self, order: Order) -> dict | None:
        if FulfillmentMode(order.fulfillment_mode) not in SHARED_SEATING_MODES:
            return None
        business_id = str(order.business_id)
        if order.seating_token:
            orders = self.reads.orders_with_seating_token(business_id, order.seating_token)
        elif order.tab_id:
            orders = self.reads.orders_on_tab(order.tab_id, business_id=business_id)
        else:
            return None
        return aggregate_group(orders) if orders else None

    # -------------------------------------------------------------------
    # Business live orders
    # -------------------------------------------------------------------
    def list_business_orders(self, actor: ActorContext, statuses: list[str] | None = None) -> list[dict]:
        if not actor.can(Permission.VIEW_ORDERS) or not actor.business_id:
            raise Forbidden(f"Missing permission: {Permission.VIEW_ORDERS.value}")
        wanted = sorted({self._valid_status(status) for status in statuses or []})

        show_customers = actor.can(Permission.VIEW_CUSTOMERS)
        show_payments = actor.can(Permission.VIEW_PAYMENTS)
        view = f"c{int(show_customers)}p{int(show_payments)}"
        business_id = actor.business_id
        key = business_orders_key(business_id, self.sequence.orders_version(business_id), wanted, view)

        def compute() -> list[dict]:
            orders = self.reads.orders_for_business(business_id, wanted or None)
            return [self._summary(order, show_customers, show_payments) for order in orders]

        return self.cache.get_or_compute(key, self.settings.business_orders_ttl_seconds, compute)

    @staticmethod
    def _valid_status(raw: str) -> str:
        try:
            return OrderStatus(raw.strip().lower()).value
        except ValueError as exc:
            raise OrderValidationError(f"Unknown status: {raw}", code="INVALID_STATUS") from exc

    @staticmethod
    def _summary(order: Order, show_customers: bool, show_payments: bool) -> dict:
        summary = {
            "id": str(order.id),
            "status": order.status,
            "fulfillment_mode": order.fulfillment_mode,
            "seating_token": order.seating_token,
            "tab_id": order.tab_id,
            "table_id": order.table_id,
            "rider_id": order.rider_id,
            "item_count": sum(item.quantity for item in order.items),
            "created_at": _iso(order.created_at),
        }
        if show_customers:
            summary.update(
                {
                    "customer_id": order.customer_id,
                    "customer_name": order.customer_name,
                    "customer_phone": order.customer_phone,
                }
            )
        if show_payments:
            summary.update(
                {
                    "grand_total": order.pricing.grand_total,
                    "payment_status": order.payment_status,
                    "payment_method": order.payment_method,
                }
            )
        return summary
