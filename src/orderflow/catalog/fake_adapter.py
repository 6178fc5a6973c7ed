"""Configurable in-memory catalog for development and testing.

Can be told to fail so callers can exercise their upstream-failure paths.
"""

from dataclasses import replace

from orderflow.catalog.port import BusinessProfile, CatalogOracle, MenuItem
from orderflow.errors import NotFound, UpstreamFailure


class FakeCatalog(CatalogOracle):
    def __init__(self) -> None:
        self.businesses: dict[str, BusinessProfile] = {}
        self.menus: dict[str, dict[str, MenuItem]] = {}
        self.should_succeed: bool = True
        self.failure_reason: str = "Catalog unavailable"
        self.calls: list[dict] = []

    def configure(self, should_succeed: bool, failure_reason: str = "Catalog unavailable") -> None:
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def add_business(self, profile: BusinessProfile, items: list[MenuItem] | None = None) -> BusinessProfile:
        self.businesses[profile.business_id] = profile
        self.menus[profile.business_id] = {item.item_id: item for item in items or []}
        return profile

    def set_open(self, business_id: str, is_open: bool) -> None:
        self.businesses[business_id] = replace(self.businesses[business_id], is_open=is_open)

    def update_price(self, business_id: str, item_id: str, price: float) -> None:
        """Change a price and bump the menu version, as a menu edit would."""
        item = self.menus[business_id][item_id]
        self.menus[business_id][item_id] = replace(item, price=price)
        profile = self.businesses[business_id]
        self.businesses[business_id] = replace(profile, menu_version=profile.menu_version + 1)

    def _check(self) -> None:
        if not self.should_succeed:
            raise UpstreamFailure(self.failure_reason)

    def get_business(self, business_id):
        self.calls.append({"method": "get_business", "business_id": business_id})
        self._check()
        profile = self.businesses.get(business_id)
        if profile is None:
            raise NotFound(f"Business {business_id} not found")
        return profile

    def get_menu(self, business_id):
        self.calls.append({"method": "get_menu", "business_id": business_id})
        self._check()
        if business_id not in self.menus:
            raise NotFound(f"Business {business_id} not found")
        return dict(self.menus[business_id])
