"""Inputs to the lifecycle engine's operations."""

import math
from dataclasses import dataclass

from orderflow.errors import OrderValidationError
from orderflow.order.status import FulfillmentMode

MAX_LINES = 100
MAX_QUANTITY = 500


@dataclass(frozen=True)
class CartLine:
    item_id: str
    quantity: int
    modifiers: tuple[str, ...] = ()


@dataclass(frozen=True)
class Cart:
    business_id: str
    items: tuple[CartLine, ...]
    claimed_subtotal: float
    claimed_total: float | None = None
    payment_method: str = "cod"
    packaging_charge: float = 0.0
    tip: float = 0.0
    convenience_fee: float = 0.0
    platform_fee: float = 0.0
    service_fee: float = 0.0
    discount: float = 0.0
    loyalty_discount: float = 0.0
    customer_order_id: str | None = None

    def validate(self) -> None:
        if not (self.business_id or "").strip():
            raise OrderValidationError("Business id is required", code="BUSINESS_REQUIRED")
        if not self.items:
            raise OrderValidationError("Cart is empty", code="EMPTY_CART")
        if len(self.items) > MAX_LINES:
            raise OrderValidationError("Too many cart lines", code="CART_TOO_LARGE")
        for line in self.items:
            if not (line.item_id or "").strip():
                raise OrderValidationError("Cart line is missing an item id", code="INVALID_ITEM")
            if not isinstance(line.quantity, int) or not 1 <= line.quantity <= MAX_QUANTITY:
                raise OrderValidationError(
                    f"Invalid quantity for item {line.item_id}",
                    code="INVALID_QUANTITY",
                )
        if self.claimed_subtotal is None or self.claimed_subtotal < 0:
            raise OrderValidationError("Claimed subtotal is required", code="SUBTOTAL_REQUIRED")
        for name in (
            "claimed_subtotal",
            "claimed_total",
            "packaging_charge",
            "tip",
            "convenience_fee",
            "platform_fee",
            "service_fee",
            "discount",
            "loyalty_discount",
        ):
            value = getattr(self, name)
            if value is not None and not math.isfinite(value):
                raise OrderValidationError(f"{name} must be a finite amount", code="INVALID_AMOUNT", field=name)


@dataclass(frozen=True)
class DeliveryAddress:
    line: str | None = None
    lat: float | None = None
    lng: float | None = None

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lng is not None

    def to_dict(self) -> dict:
        return {"line": self.line, "lat": self.lat, "lng": self.lng}


@dataclass(frozen=True)
class FulfillmentContext:
    mode: str
    address: DeliveryAddress | None = None
    tab_id: str | None = None
    table_id: str | None = None

    def validate(self) -> FulfillmentMode:
        try:
            return FulfillmentMode(self.mode)
        except ValueError as exc:
            raise OrderValidationError(f"Unknown fulfillment mode: {self.mode}", code="INVALID_FULFILLMENT_MODE") from exc


@dataclass(frozen=True)
class CustomerContext:
    token: str | None = None
    name: str | None = None
    phone: str | None = None


@dataclass(frozen=True)
class TransitionExtra:
    rider_id: str | None = None
    reason: str | None = None
    note: str | None = None
    business_id: str | None = None
