"""Order aggregate (CQRS) — the system of record for a customer order.

An order is created once, in PENDING, with a single history entry. From then
on its status only moves along an edge of the transition table picked for its
fulfillment mode (see ``orderflow.order.status``). Every accepted move appends
exactly one entry to ``history``; entries are never edited or removed.
"""

import json
from datetime import UTC, datetime
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import (
    Boolean,
    DateTime,
    Float,
    HasMany,
    Identifier,
    Integer,
    String,
    Text,
    ValueObject,
)

from orderflow.domain import orderflow
from orderflow.order.events import OrderPaymentSettled, OrderPlaced, OrderStatusChanged
from orderflow.order.status import (
    ACTIVE_STATUSES,
    RIDER_ASSIGNING_STATUSES,
    FulfillmentMode,
    OrderStatus,
    TransitionTable,
    can_transition,
    table_for,
)


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class PaymentStatus(Enum):
    PENDING = "pending"
    PAY_AT_COUNTER = "pay_at_counter"
    PAID = "paid"
    FAILED = "failed"


# ---------------------------------------------------------------------------
# Value Objects
# ---------------------------------------------------------------------------
@orderflow.value_object(part_of="Order")
class Pricing:
    """Server-computed money breakdown. All amounts are non-negative."""

    subtotal = Float(required=True, min_value=0.0)
    cgst = Float(default=0.0, min_value=0.0)
    sgst = Float(default=0.0, min_value=0.0)
    delivery_charge = Float(default=0.0, min_value=0.0)
    packaging_charge = Float(default=0.0, min_value=0.0)
    tip = Float(default=0.0, min_value=0.0)
    convenience_fee = Float(default=0.0, min_value=0.0)
    platform_fee = Float(default=0.0, min_value=0.0)
    service_fee = Float(default=0.0, min_value=0.0)
    discount = Float(default=0.0, min_value=0.0)
    grand_total = Float(required=True, min_value=0.0)

    @property
    def tax_total(self) -> float:
        return (self.cgst or 0.0) + (self.sgst or 0.0)

    @property
    def fees_total(self) -> float:
        return sum(
            value or 0.0
            for value in (
                self.packaging_charge,
                self.tip,
                self.convenience_fee,
                self.platform_fee,
                self.service_fee,
            )
        )


# ---------------------------------------------------------------------------
# Entities
# ---------------------------------------------------------------------------
@orderflow.entity(part_of="Order")
class OrderItem:
    item_id = String(required=True, max_length=100)
    name = String(required=True, max_length=255)
    unit_price = Float(required=True, min_value=0.0)
    quantity = Integer(required=True, min_value=1)
    modifiers = Text()  # JSON list of {"name", "price"}

    @property
    def modifier_list(self) -> list[dict]:
        return json.loads(self.modifiers) if self.modifiers else []

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "name": self.name,
            "unit_price": self.unit_price,
            "quantity": self.quantity,
            "modifiers": self.modifier_list,
        }


@orderflow.entity(part_of="Order")
class StatusEntry:
    """One immutable line of the order's status history."""

    sequence = Integer(required=True, min_value=1)
    status = String(required=True, max_length=50, choices=OrderStatus)
    timestamp = DateTime(required=True)
    actor_id = String(max_length=100)
    role = String(max_length=50)
    note = String(max_length=500)

    def to_dict(self) -> dict:
        return {
            "sequence": self.sequence,
            "status": self.status,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
            "actor_id": self.actor_id,
            "role": self.role,
            "note": self.note,
        }


# ---------------------------------------------------------------------------
# Aggregate Root (CQRS)
# ---------------------------------------------------------------------------
@orderflow.aggregate
class Order:
    business_id = Identifier(required=True)
    customer_id = String(max_length=100)
    is_guest = Boolean(default=False)
    customer_name = String(max_length=255)
    customer_phone = String(max_length=50)
    delivery_address = Text()  # JSON {"line", "lat", "lng"}
    items = HasMany(OrderItem)
    pricing = ValueObject(Pricing)
    status = String(
        max_length=50,
        choices=OrderStatus,
        default=OrderStatus.PENDING.value,
    )
    payment_status = String(
        max_length=50,
        choices=PaymentStatus,
        default=PaymentStatus.PENDING.value,
    )
    payment_method = String(max_length=50)
    payment_reference = String(max_length=255)
    fulfillment_mode = String(required=True, max_length=20, choices=FulfillmentMode)
    tracking_token = String(max_length=64)
    seating_token = String(max_length=20)
    tab_id = String(max_length=100)
    table_id = String(max_length=100)
    rider_id = String(max_length=100)
    rejection_reason = String(max_length=500)
    failure_reason = String(max_length=500)
    cancellation_reason = String(max_length=500)
    delivered_at = DateTime()
    returned_at = DateTime()
    customer_order_id = String(max_length=50)
    idempotency_key = String(max_length=255)
    history = HasMany(StatusEntry)
    created_at = DateTime()
    updated_at = DateTime()

    # -------------------------------------------------------------------
    # Factory method
    # -------------------------------------------------------------------
    @classmethod
    def create(
        cls,
        business_id: str,
        fulfillment_mode: str,
        items_data: list[dict],
        pricing: Pricing,
        tracking_token: str,
        customer_id: str | None = None,
        is_guest: bool = False,
        actor_role: str | None = None,
        **details,
    ):
        """Create a new PENDING order with its initial history entry.

        ``details`` carries the optional descriptive fields (customer name and
        phone, delivery address, payment method, seating token, tab and table
        ids, customer order id, idempotency key).
        """
        now = datetime.now(UTC)
        address = details.pop("delivery_address", None)
        order = cls(
            business_id=business_id,
            fulfillment_mode=fulfillment_mode,
            customer_id=customer_id,
            is_guest=is_guest,
            pricing=pricing,
            tracking_token=tracking_token,
            delivery_address=json.dumps(address) if address else None,
            status=OrderStatus.PENDING.value,
            created_at=now,
            updated_at=now,
            **details,
        )
        for item_data in items_data:
            modifiers = item_data.get("modifiers") or []
            order.add_items(
                OrderItem(
                    item_id=item_data["item_id"],
                    name=item_data["name"],
                    unit_price=item_data["unit_price"],
                    quantity=item_data["quantity"],
                    modifiers=json.dumps(modifiers) if modifiers else None,
                )
            )
        order.add_history(
            StatusEntry(
                sequence=1,
                status=OrderStatus.PENDING.value,
                timestamp=now,
                actor_id=customer_id,
                role=actor_role or ("guest" if is_guest else "customer"),
                note="Order created",
            )
        )
        order.raise_(
            OrderPlaced(
                order_id=str(order.id),
                business_id=business_id,
                customer_id=customer_id,
                fulfillment_mode=fulfillment_mode,
                status=order.status,
                payment_status=order.payment_status,
                payment_method=order.payment_method,
                grand_total=pricing.grand_total,
                seating_token=order.seating_token,
                items=json.dumps(items_data),
                placed_at=now,
            )
        )
        return order

    # -------------------------------------------------------------------
    # Derived state
    # -------------------------------------------------------------------
    @property
    def transition_table(self) -> TransitionTable:
        return table_for(self.fulfillment_mode, has_seating=bool(self.tab_id or self.table_id))

    @property
    def current_status(self) -> OrderStatus:
        return OrderStatus(self.status)

    @property
    def is_active(self) -> bool:
        return self.current_status in ACTIVE_STATUSES

    @property
    def address(self) -> dict | None:
        return json.loads(self.delivery_address) if self.delivery_address else None

    def timeline(self) -> list[StatusEntry]:
        """History entries in append order."""
        return sorted(self.history, key=lambda entry: entry.sequence)

    def can_move_to(self, target: OrderStatus) -> bool:
        return can_transition(self.transition_table, self.current_status, target)

    # -------------------------------------------------------------------
    # Invariant-guarded mutations
    # -------------------------------------------------------------------
    def assign_tracking_token(self, token: str) -> None:
        if self.tracking_token and self.tracking_token != token:
            raise ValidationError({"tracking_token": ["Tracking token cannot be changed once assigned"]})
        self.tracking_token = token

    def transition_to(
        self,
        target: OrderStatus,
        actor_id: str | None = None,
        role: str | None = None,
        note: str | None = None,
        rider_id: str | None = None,
        reason: str | None = None,
    ) -> bool:
        """Move to ``target``. Returns False for a same-state no-op."""
        current = self.current_status
        if current == target:
            return False
        if not self.can_move_to(target):
            raise ValidationError({"status": [f"Cannot transition from {current.value} to {target.value}"]})

        now = datetime.now(UTC)
        self.status = target.value

        if target == OrderStatus.REJECTED:
            self.rejection_reason = reason or "Rejected by business"
        elif target == OrderStatus.CANCELLED:
            self.cancellation_reason = reason
        elif target == OrderStatus.DELIVERED:
            self.delivered_at = now
        elif target == OrderStatus.FAILED_DELIVERY:
            self.failure_reason = reason or "Customer unreachable"
        elif target == OrderStatus.RETURNED_TO_RESTAURANT:
            self.returned_at = now

        if rider_id and target in RIDER_ASSIGNING_STATUSES:
            self.rider_id = rider_id

        sequence = len(self.history) + 1
        self.add_history(
            StatusEntry(
                sequence=sequence,
                status=target.value,
                timestamp=now,
                actor_id=actor_id,
                role=role,
                note=note,
            )
        )
        self.updated_at = now
        self.raise_(
            OrderStatusChanged(
                order_id=str(self.id),
                business_id=str(self.business_id),
                previous_status=current.value,
                new_status=target.value,
                sequence=sequence,
                actor_id=actor_id,
                role=role,
                rider_id=self.rider_id,
                note=note,
                tracking_token=self.tracking_token,
                changed_at=now,
            )
        )
        return True

    def mark_paid(self, payment_method: str, gateway_reference: str | None = None) -> None:
        if self.payment_status == PaymentStatus.PAID.value:
            raise ValidationError({"payment_status": ["Order is already paid"]})
        now = datetime.now(UTC)
        self.payment_status = PaymentStatus.PAID.value
        self.payment_method = payment_method
        self.payment_reference = gateway_reference
        self.updated_at = now
        self.raise_(
            OrderPaymentSettled(
                order_id=str(self.id),
                business_id=str(self.business_id),
                payment_method=payment_method,
                gateway_reference=gateway_reference,
                tab_id=self.tab_id,
                amount=self.pricing.grand_total if self.pricing else 0.0,
                settled_at=now,
            )
        )
