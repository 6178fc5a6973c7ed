"""Tests for the indexed, scanning and fallback read strategies."""

from datetime import UTC, datetime, timedelta

import pytest
from orderflow.order.order import Order, Pricing
from orderflow.order.reads import (
    FallbackOrderReads,
    IndexedOrderReads,
    OrderReads,
    QueryUnavailable,
    ScanOrderReads,
)
from orderflow.order.status import OrderStatus
from protean import current_domain

BASE_TIME = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


def _persist_order(minute, business_id="biz-001", tab_id=None, seating_token=None, status=None):
    order = Order.create(
        business_id=business_id,
        fulfillment_mode="dine-in",
        items_data=[{"item_id": "x", "name": "Masala Dosa", "unit_price": 100.0, "quantity": 1}],
        pricing=Pricing(subtotal=100.0, grand_total=100.0),
        tracking_token=f"trk-{minute}",
        tab_id=tab_id,
        seating_token=seating_token,
    )
    order.created_at = BASE_TIME + timedelta(minutes=minute)
    if status is not None:
        order.status = status.value
    current_domain.repository_for(Order).add(order)
    return order


class Unavailable(OrderReads):
    def orders_on_tab(self, tab_id, business_id=None):
        raise QueryUnavailable("no index on tab_id")

    def orders_with_seating_token(self, business_id, seating_token):
        raise QueryUnavailable("no index on seating_token")

    def orders_for_business(self, business_id, statuses=None):
        raise QueryUnavailable("no index on business_id")


@pytest.fixture(params=["indexed", "scan", "fallback"])
def reads(request):
    return {
        "indexed": IndexedOrderReads(),
        "scan": ScanOrderReads(scan_limit=100),
        "fallback": FallbackOrderReads(Unavailable(), ScanOrderReads(scan_limit=100)),
    }[request.param]


class TestGroupedReads:
    def test_orders_on_tab_newest_first(self, reads):
        first = _persist_order(1, tab_id="tab_a")
        second = _persist_order(2, tab_id="tab_a")
        _persist_order(3, tab_id="tab_b")

        found = reads.orders_on_tab("tab_a")

        assert [str(o.id) for o in found] == [str(second.id), str(first.id)]

    def test_orders_on_tab_scoped_to_business(self, reads):
        _persist_order(1, tab_id="tab_a")
        _persist_order(2, tab_id="tab_a", business_id="biz-002")
        assert len(reads.orders_on_tab("tab_a", business_id="biz-001")) == 1

    def test_orders_with_seating_token(self, reads):
        _persist_order(1, seating_token="4-QK")
        _persist_order(2, seating_token="4-QK")
        _persist_order(3, seating_token="5-AB")
        assert len(reads.orders_with_seating_token("biz-001", "4-QK")) == 2

    def test_orders_for_business_with_status_filter(self, reads):
        _persist_order(1)
        _persist_order(2, status=OrderStatus.CONFIRMED)
        _persist_order(3, business_id="biz-002")

        assert len(reads.orders_for_business("biz-001")) == 2
        confirmed = reads.orders_for_business("biz-001", ["confirmed"])
        assert [o.status for o in confirmed] == ["confirmed"]

    def test_seated_order_on_tab_skips_cancelled_orders(self, reads):
        open_order = _persist_order(1, tab_id="tab_a", seating_token="3-AB")
        _persist_order(2, tab_id="tab_a", seating_token="4-CD", status=OrderStatus.CANCELLED)
        assert str(reads.seated_order_on_tab("biz-001", "tab_a").id) == str(open_order.id)

    def test_served_orders_keep_the_tab_seated(self, reads):
        served = _persist_order(1, tab_id="tab_a", seating_token="3-AB", status=OrderStatus.DELIVERED)
        assert str(reads.seated_order_on_tab("biz-001", "tab_a").id) == str(served.id)

    @pytest.mark.parametrize(
        "status", [OrderStatus.REJECTED, OrderStatus.CANCELLED, OrderStatus.RETURNED_TO_RESTAURANT]
    )
    def test_closed_orders_release_the_tab(self, reads, status):
        _persist_order(1, tab_id="tab_a", seating_token="3-AB", status=status)
        assert reads.seated_order_on_tab("biz-001", "tab_a") is None

    def test_seated_order_on_empty_tab(self, reads):
        assert reads.seated_order_on_tab("biz-001", "tab_none") is None

    def test_unscoped_tab_lookup_is_not_capped_by_the_scan(self):
        for minute in range(5):
            _persist_order(minute)
        target = _persist_order(10, tab_id="tab_far")
        found = ScanOrderReads(scan_limit=3).orders_on_tab("tab_far")
        assert [str(o.id) for o in found] == [str(target.id)]


class TestFallback:
    def test_primary_answer_is_used(self):
        _persist_order(1, tab_id="tab_a")
        reads = FallbackOrderReads(IndexedOrderReads(), Unavailable())
        assert len(reads.orders_on_tab("tab_a")) == 1

    def test_scan_limit_bounds_the_fetch(self):
        for minute in range(5):
            _persist_order(minute)
        assert len(ScanOrderReads(scan_limit=3).orders_for_business("biz-001")) == 3
