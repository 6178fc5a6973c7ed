"""Standard fare calculator.

Straight-line distance is scaled by the business's road-distance factor
before any rule is applied. Orders beyond the delivery radius are refused.
Otherwise the charge follows the configured charge type:

    fixed                flat fee
    per-km               base fee covers ``base_distance_km``, then per km
    free-over            flat fee, waived at or above a subtotal threshold
    tiered               fee of the highest tier whose minimum the subtotal meets
    order-slab-distance  slab fee by subtotal, plus whole extra km beyond a base

A free-delivery zone (radius and/or minimum order) zeroes the charge for every
type except tiered and order-slab-distance.
"""

import math

from orderflow.catalog.port import DeliverySettings
from orderflow.fares.port import FareCalculator, FareQuote

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = math.sin(d_lat / 2) ** 2 + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


class StandardFareCalculator(FareCalculator):
    def quote(self, distance_km, subtotal, settings):
        if not settings.enabled:
            return FareQuote(allowed=False, reason="Delivery is not available from this business")

        road_factor = max(1.0, settings.road_distance_factor or 1.0)
        road_km = max(0.0, distance_km) * road_factor
        if road_km > settings.radius_km:
            return FareQuote(
                allowed=False,
                road_distance_km=round(road_km, 1),
                reason=(
                    f"Delivery not available. You are {road_km:.1f}km away by road (max: {settings.radius_km:g}km)"
                ),
            )

        charge, reason, kind = self._base_charge(road_km, subtotal, settings)

        if kind not in ("tiered", "order-slab-distance") and charge > 0 and self._in_free_zone(road_km, subtotal, settings):
            charge, reason, kind = 0.0, "Free delivery zone", "override-free"

        return FareQuote(
            allowed=True,
            charge=float(max(0, round(charge))),
            reason=reason,
            road_distance_km=round(road_km, 1),
            kind=kind,
        )

    # -------------------------------------------------------------------
    # Charge rules
    # -------------------------------------------------------------------
    def _base_charge(self, road_km: float, subtotal: float, s: DeliverySettings) -> tuple[float, str, str]:
        if s.charge_type == "fixed":
            return s.fixed_charge, "Fixed delivery charge", "fixed"

        if s.charge_type == "per-km":
            if road_km <= s.base_distance_km:
                return s.fixed_charge, f"Base fare within {s.base_distance_km:g}km", "per-km"
            extra = road_km - s.base_distance_km
            return s.fixed_charge + extra * s.per_km_charge, f"Base + {extra:.1f}km extra", "per-km"

        if s.charge_type == "free-over":
            if subtotal >= s.free_delivery_threshold:
                return 0.0, f"Free delivery for orders >= {s.free_delivery_threshold:g}", "threshold"
            return s.fixed_charge, f"Free for orders >= {s.free_delivery_threshold:g}", "threshold"

        if s.charge_type == "tiered":
            for tier in sorted(s.tiers, key=lambda t: t.min_order, reverse=True):
                if subtotal >= tier.min_order:
                    return tier.fee, f"Fee for orders >= {tier.min_order:g}", "tiered"
            return s.fixed_charge, "Standard fee", "tiered"

        if s.charge_type == "order-slab-distance":
            slabs = sorted((slab for slab in s.order_slabs if slab.max_order > 0), key=lambda slab: slab.max_order)
            base_fee = next((slab.fee for slab in slabs if subtotal < slab.max_order), s.order_slab_above_fee)
            included = max(0.0, s.order_slab_base_distance_km)
            if road_km <= included:
                return base_fee, f"Order slab base fee for {included:g}km", "order-slab-distance"
            extra_km = math.ceil(road_km - included)
            per_km = max(0.0, s.order_slab_per_km_fee)
            return base_fee + extra_km * per_km, f"Order slab base + {extra_km}km extra", "order-slab-distance"

        return 0.0, "", "none"

    def _in_free_zone(self, road_km: float, subtotal: float, s: DeliverySettings) -> bool:
        has_radius_rule = s.free_delivery_radius_km > 0
        has_min_order_rule = s.free_delivery_min_order is not None and s.free_delivery_min_order > 0
        if not (has_radius_rule or has_min_order_rule):
            return False
        within_radius = road_km <= s.free_delivery_radius_km if has_radius_rule else True
        meets_min_order = s.free_delivery_min_order is None or subtotal >= s.free_delivery_min_order
        return within_radius and meets_min_order
