"""Business/catalog oracle port (read-only).

Supplies canonical item prices, open/closed status, tax configuration and
delivery settings for a business. Menu editing happens elsewhere.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field


@dataclass(frozen=True)
class GeoPoint:
    lat: float
    lng: float


@dataclass(frozen=True)
class DeliveryTier:
    min_order: float
    fee: float


@dataclass(frozen=True)
class OrderSlab:
    max_order: float
    fee: float


@dataclass(frozen=True)
class DeliverySettings:
    enabled: bool = True
    charge_type: str = "fixed"  # fixed | per-km | free-over | tiered | order-slab-distance
    fixed_charge: float = 0.0
    base_distance_km: float = 0.0
    per_km_charge: float = 0.0
    free_delivery_threshold: float = 0.0
    tiers: tuple[DeliveryTier, ...] = ()
    order_slabs: tuple[OrderSlab, ...] = ()
    order_slab_above_fee: float = 0.0
    order_slab_base_distance_km: float = 1.0
    order_slab_per_km_fee: float = 15.0
    radius_km: float = 10.0
    road_distance_factor: float = 1.0
    free_delivery_radius_km: float = 0.0
    free_delivery_min_order: float | None = None


@dataclass(frozen=True)
class BusinessProfile:
    business_id: str
    name: str
    is_open: bool = True
    business_type: str = "restaurant"  # restaurant | shop | street-vendor
    tax_enabled: bool = True
    tax_rate: float | None = None
    location: GeoPoint | None = None
    delivery: DeliverySettings = field(default_factory=DeliverySettings)
    menu_version: int = 1
    phone: str | None = None


@dataclass(frozen=True)
class MenuItem:
    item_id: str
    name: str
    price: float
    available: bool = True
    modifiers: dict[str, float] = field(default_factory=dict)


class CatalogOracle(ABC):
    @abstractmethod
    def get_business(self, business_id: str) -> BusinessProfile:
        """Raises ``NotFound`` for an unknown business."""
        ...

    @abstractmethod
    def get_menu(self, business_id: str) -> dict[str, MenuItem]:
        """Current menu keyed by item id."""
        ...
