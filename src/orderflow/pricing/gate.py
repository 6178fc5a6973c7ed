"""Pricing & Eligibility Gate.

The client-submitted subtotal is never trusted: the canonical subtotal is
recomputed from the catalog snapshot and the claimed one must sit within a
small absolute tolerance of it. Taxes, delivery, fees and discounts are then
folded in and the claimed grand total is checked against a second, larger
tolerance.
"""

import math
from dataclasses import asdict, dataclass

import structlog

from orderflow.cache.keys import menu_key
from orderflow.cache.layer import CacheLayer
from orderflow.catalog.port import BusinessProfile, CatalogOracle, MenuItem
from orderflow.errors import OrderValidationError, PriceMismatch
from orderflow.fares.port import FareCalculator
from orderflow.fares.standard import haversine_km
from orderflow.lifecycle.requests import Cart, FulfillmentContext
from orderflow.order.status import FulfillmentMode
from orderflow.settings import Settings

logger = structlog.get_logger(__name__)


def money(value: float | None) -> float:
    """Round to two decimals and clamp at zero."""
    return max(0.0, round(float(value or 0.0), 2))


@dataclass(frozen=True)
class PricedLine:
    item_id: str
    name: str
    unit_price: float
    quantity: int
    modifiers: list[dict]

    @property
    def line_total(self) -> float:
        return self.unit_price * self.quantity

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "name": self.name,
            "unit_price": self.unit_price,
            "quantity": self.quantity,
            "modifiers": self.modifiers,
        }


@dataclass(frozen=True)
class PriceQuote:
    lines: list[PricedLine]
    subtotal: float
    cgst: float
    sgst: float
    delivery_charge: float
    packaging_charge: float
    tip: float
    convenience_fee: float
    platform_fee: float
    service_fee: float
    discount: float
    grand_total: float
    delivery_reason: str | None = None

    def pricing_fields(self) -> dict:
        return {
            "subtotal": self.subtotal,
            "cgst": self.cgst,
            "sgst": self.sgst,
            "delivery_charge": self.delivery_charge,
            "packaging_charge": self.packaging_charge,
            "tip": self.tip,
            "convenience_fee": self.convenience_fee,
            "platform_fee": self.platform_fee,
            "service_fee": self.service_fee,
            "discount": self.discount,
            "grand_total": self.grand_total,
        }


class PricingGate:
    def __init__(
        self,
        catalog: CatalogOracle,
        fares: FareCalculator,
        cache: CacheLayer,
        settings: Settings | None = None,
    ) -> None:
        self.catalog = catalog
        self.fares = fares
        self.cache = cache
        self.settings = settings or Settings()

    # -------------------------------------------------------------------
    # Catalog snapshot
    # -------------------------------------------------------------------
    def menu_for(self, profile: BusinessProfile) -> dict[str, MenuItem]:
        key = menu_key(profile.business_id, profile.menu_version)
        raw = self.cache.get_or_compute(
            key,
            self.settings.menu_ttl_seconds,
            lambda: {item_id: asdict(item) for item_id, item in self.catalog.get_menu(profile.business_id).items()},
        )
        return {item_id: MenuItem(**data) for item_id, data in raw.items()}

    # -------------------------------------------------------------------
    # Subtotal
    # -------------------------------------------------------------------
    def price_lines(self, menu: dict[str, MenuItem], cart: Cart) -> list[PricedLine]:
        lines = []
        for line in cart.items:
            item = menu.get(line.item_id)
            if item is None:
                raise OrderValidationError(f"Unknown item: {line.item_id}", code="UNKNOWN_ITEM")
            if not item.available:
                raise OrderValidationError(f"Item is not available: {item.name}", code="ITEM_UNAVAILABLE")

            modifiers = []
            for name in line.modifiers:
                if name not in item.modifiers:
                    raise OrderValidationError(
                        f"Unknown modifier {name!r} for item {line.item_id}",
                        code="UNKNOWN_MODIFIER",
                    )
                modifiers.append({"name": name, "price": item.modifiers[name]})

            unit_price = item.price + sum(m["price"] for m in modifiers)
            lines.append(
                PricedLine(
                    item_id=item.item_id,
                    name=item.name,
                    unit_price=round(unit_price, 2),
                    quantity=line.quantity,
                    modifiers=modifiers,
                )
            )
        return lines

    def check_subtotal(self, claimed: float, recomputed: float) -> None:
        if not math.isfinite(float(claimed)) or abs(float(claimed) - recomputed) > self.settings.subtotal_tolerance:
            raise PriceMismatch(
                "Cart subtotal does not match current prices",
                claimed=claimed,
                expected=recomputed,
            )

    # -------------------------------------------------------------------
    # Delivery
    # -------------------------------------------------------------------
    def delivery_charge(
        self,
        profile: BusinessProfile,
        subtotal: float,
        fulfillment: FulfillmentContext,
    ) -> tuple[float, str | None]:
        if fulfillment.mode != FulfillmentMode.DELIVERY.value:
            return 0.0, None

        address = fulfillment.address
        if address is None or not address.has_coordinates:
            raise OrderValidationError("Delivery address with coordinates is required", code="ADDRESS_REQUIRED")
        if profile.location is None:
            raise OrderValidationError("This business does not deliver", code="DELIVERY_NOT_AVAILABLE")

        distance = haversine_km(profile.location.lat, profile.location.lng, address.lat, address.lng)
        quote = self.fares.quote(distance, subtotal, profile.delivery)
        if not quote.allowed:
            raise OrderValidationError(quote.reason or "Delivery not available", code="DELIVERY_NOT_AVAILABLE")
        return money(quote.charge), quote.reason

    # -------------------------------------------------------------------
    # Full quote
    # -------------------------------------------------------------------
    def quote(self, profile: BusinessProfile, cart: Cart, fulfillment: FulfillmentContext) -> PriceQuote:
        menu = self.menu_for(profile)
        lines = self.price_lines(menu, cart)
        subtotal = money(sum(line.line_total for line in lines))
        self.check_subtotal(cart.claimed_subtotal, subtotal)

        cgst = sgst = 0.0
        if profile.tax_enabled:
            rate = profile.tax_rate if profile.tax_rate is not None else self.settings.default_tax_rate
            cgst = sgst = money(subtotal * (rate / 2) / 100)

        delivery_charge, delivery_reason = self.delivery_charge(profile, subtotal, fulfillment)

        fees = {
            "packaging_charge": money(cart.packaging_charge),
            "tip": money(cart.tip),
            "convenience_fee": money(cart.convenience_fee),
            "platform_fee": money(cart.platform_fee),
            "service_fee": money(cart.service_fee),
        }
        discount = money(money(cart.discount) + money(cart.loyalty_discount))
        grand_total = money(subtotal + cgst + sgst + delivery_charge + sum(fees.values()) - discount)

        claimed_total = cart.claimed_total
        tolerance = self.settings.total_tolerance
        if claimed_total is not None and (
            not math.isfinite(float(claimed_total)) or abs(float(claimed_total) - grand_total) > tolerance
        ):
            raise PriceMismatch(
                "Order total does not match the computed total",
                code="GRAND_TOTAL_MISMATCH",
                claimed=cart.claimed_total,
                expected=grand_total,
            )

        logger.debug(
            "Order priced",
            business_id=profile.business_id,
            subtotal=subtotal,
            grand_total=grand_total,
            delivery_charge=delivery_charge,
        )
        return PriceQuote(
            lines=lines,
            subtotal=subtotal,
            cgst=cgst,
            sgst=sgst,
            delivery_charge=delivery_charge,
            discount=discount,
            grand_total=grand_total,
            delivery_reason=delivery_reason,
            **fees,
        )
