import pytest
from orderflow.access import reset_resolver
from orderflow.access.fake_adapter import FakeAccessResolver
from orderflow.cache.tiers import MemorySharedTier
from orderflow.catalog import reset_catalog
from orderflow.catalog.fake_adapter import FakeCatalog
from orderflow.catalog.port import BusinessProfile, GeoPoint, MenuItem
from orderflow.fares import reset_fare_calculator
from orderflow.fares.fake_adapter import FakeFareCalculator
from orderflow.lifecycle.effects import reset_dispatcher
from orderflow.lifecycle.engine import build_engine
from orderflow.lifecycle.requests import (
    Cart,
    CartLine,
    CustomerContext,
    DeliveryAddress,
    FulfillmentContext,
)
from orderflow.payments import reset_gateway
from orderflow.payments.fake_adapter import FakeGateway
from orderflow.settings import Settings
from protean.integrations.pytest import DomainFixture

BUSINESS_ID = "biz-001"
VENDOR_ID = "biz-002"
RIVAL_ID = "biz-999"


@pytest.fixture(scope="session")
def orderflow_bed():
    from orderflow.domain import orderflow

    bed = DomainFixture(orderflow)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(orderflow_bed):
    with orderflow_bed.domain_context():
        yield


@pytest.fixture(autouse=True)
def _reset_ports():
    yield
    reset_resolver()
    reset_catalog()
    reset_fare_calculator()
    reset_gateway()
    reset_dispatcher()


# ---------------------------------------------------------------------------
# Test doubles
# ---------------------------------------------------------------------------
class RecordingConnection:
    """Realtime connection that keeps every frame it is sent."""

    def __init__(self, fail: bool = False) -> None:
        self.sent: list[str] = []
        self.is_open = True
        self.fail = fail

    def send(self, message: str) -> None:
        if self.fail:
            raise ConnectionError("socket closed")
        self.sent.append(message)


@pytest.fixture()
def make_connection():
    return RecordingConnection


@pytest.fixture()
def catalog():
    catalog = FakeCatalog()
    catalog.add_business(
        BusinessProfile(
            business_id=BUSINESS_ID,
            name="Dosa Corner",
            tax_enabled=False,
            location=GeoPoint(lat=12.9716, lng=77.5946),
            phone="+91-80-1234-5678",
        ),
        [
            MenuItem(item_id="x", name="Masala Dosa", price=100.0, modifiers={"extra-butter": 20.0}),
            MenuItem(item_id="y", name="Filter Coffee", price=40.0),
            MenuItem(item_id="z", name="Rava Idli", price=60.0, available=False),
        ],
    )
    catalog.add_business(
        BusinessProfile(business_id=VENDOR_ID, name="Chaat Cart", business_type="street-vendor", tax_enabled=False),
        [MenuItem(item_id="p", name="Pani Puri", price=60.0)],
    )
    return catalog


@pytest.fixture()
def access():
    access = FakeAccessResolver()
    access.register("owner-token", "owner-001", "owner", business_id=BUSINESS_ID)
    access.register("chef-token", "chef-001", "chef", business_id=BUSINESS_ID)
    access.register("cashier-token", "cashier-001", "cashier", business_id=BUSINESS_ID)
    access.register("rider-token", "rider-001", "rider")
    access.register("other-rider-token", "rider-002", "rider")
    access.register("customer-token", "cust-001", "customer", name="Asha", phone="+91-98450-00001")
    access.register("rival-token", "owner-999", "owner", business_id=RIVAL_ID)
    return access


@pytest.fixture()
def fares():
    return FakeFareCalculator(charge=30.0)


@pytest.fixture()
def payments():
    return FakeGateway()


@pytest.fixture()
def shared():
    return MemorySharedTier()


@pytest.fixture()
def settings():
    return Settings()


@pytest.fixture()
def engine(settings, shared, access, catalog, fares, payments):
    return build_engine(
        settings,
        shared=shared,
        access=access,
        catalog=catalog,
        fares=fares,
        payments=payments,
    )


# ---------------------------------------------------------------------------
# Actors
# ---------------------------------------------------------------------------
@pytest.fixture()
def owner(access):
    return access.resolve("owner-token")


@pytest.fixture()
def chef(access):
    return access.resolve("chef-token")


@pytest.fixture()
def cashier(access):
    return access.resolve("cashier-token")


@pytest.fixture()
def rider(access):
    return access.resolve("rider-token")


@pytest.fixture()
def customer(access):
    return access.resolve("customer-token")


# ---------------------------------------------------------------------------
# Order placement
# ---------------------------------------------------------------------------
@pytest.fixture()
def place_order(engine):
    """Place an order through the engine; returns the creation payload."""

    def _place(
        key="k1",
        mode="pickup",
        items=(("x", 2),),
        claimed_subtotal=None,
        token="customer-token",
        business_id=BUSINESS_ID,
        address=None,
        tab_id=None,
        table_id=None,
        **cart_fields,
    ):
        lines = tuple(CartLine(item_id=item_id, quantity=qty) for item_id, qty in items)
        if claimed_subtotal is None:
            menu = engine.pricing.catalog.get_menu(business_id)
            claimed_subtotal = sum(menu[item_id].price * qty for item_id, qty in items)
        if mode == "delivery" and address is None:
            address = DeliveryAddress(line="12 MG Road", lat=12.9750, lng=77.6000)
        return engine.create_order(
            key,
            CustomerContext(token=token),
            Cart(business_id=business_id, items=lines, claimed_subtotal=claimed_subtotal, **cart_fields),
            FulfillmentContext(mode=mode, address=address, tab_id=tab_id, table_id=table_id),
        )

    return _place
