"""Application tests for idempotent order creation through the engine."""

import json
import re
import threading

import pytest
from orderflow.domain import orderflow
from orderflow.errors import (
    Conflict,
    InternalError,
    NotFound,
    OrderValidationError,
    PriceMismatch,
    Unauthorized,
    UpstreamFailure,
)
from orderflow.idempotency.record import IdempotencyRecord, IdempotencyState
from orderflow.lifecycle.requests import DeliveryAddress
from orderflow.order.order import Order
from protean import current_domain
from protean.exceptions import ObjectNotFoundError

BUSINESS_ID = "biz-001"


def _stored_orders():
    return current_domain.repository_for(Order)._dao.query.all().items


def _record(key):
    return current_domain.repository_for(IdempotencyRecord).get(key)


class TestCreateOrder:
    def test_creates_pending_order(self, place_order):
        result = place_order(key="k1", items=(("x", 2),), claimed_subtotal=200.0)

        assert result["duplicate"] is False
        assert result["status"] == "pending"
        assert result["grand_total"] == 200.0
        order = current_domain.repository_for(Order).get(result["order_id"])
        assert order.pricing.subtotal == 200.0
        assert len(order.history) == 1

    def test_tracking_token_issued(self, place_order):
        result = place_order()
        order = current_domain.repository_for(Order).get(result["order_id"])
        assert result["tracking_token"] == order.tracking_token
        assert len(order.tracking_token) == 24

    def test_customer_identity_recorded(self, place_order):
        result = place_order()
        order = current_domain.repository_for(Order).get(result["order_id"])
        assert order.customer_id == "cust-001"
        assert order.customer_name == "Asha"
        assert order.is_guest is False

    def test_guest_order(self, place_order):
        result = place_order(token=None)
        order = current_domain.repository_for(Order).get(result["order_id"])
        assert order.customer_id is None
        assert order.is_guest is True

    def test_completes_idempotency_record(self, place_order):
        result = place_order(key="k1")
        record = _record("k1")
        assert record.state == IdempotencyState.COMPLETED.value
        assert record.order_id == result["order_id"]

    def test_counter_payment(self, place_order):
        result = place_order(payment_method="pay_at_counter")
        assert result["payment_status"] == "pay_at_counter"

    def test_customer_order_id_echoed(self, place_order):
        assert place_order(customer_order_id="A-17")["customer_order_id"] == "A-17"

    def test_delivery_order_includes_charge(self, place_order):
        result = place_order(mode="delivery", address=DeliveryAddress(line="12 MG Road", lat=12.975, lng=77.6))
        assert result["grand_total"] == 230.0


class TestIdempotentReplay:
    def test_same_key_returns_same_order(self, place_order):
        first = place_order(key="k1", claimed_subtotal=200.0)
        second = place_order(key="k1", claimed_subtotal=200.0)

        assert second["duplicate"] is True
        assert second["order_id"] == first["order_id"]
        assert second["tracking_token"] == first["tracking_token"]
        assert len(_stored_orders()) == 1

    def test_replay_skips_pricing(self, place_order, catalog):
        place_order(key="k1")
        catalog.update_price(BUSINESS_ID, "x", 500.0)
        assert place_order(key="k1", claimed_subtotal=200.0)["duplicate"] is True

    def test_different_keys_create_different_orders(self, place_order):
        first = place_order(key="k1")
        second = place_order(key="k2")
        assert first["order_id"] != second["order_id"]
        assert len(_stored_orders()) == 2


class TestRejections:
    def test_price_mismatch(self, place_order):
        with pytest.raises(PriceMismatch):
            place_order(key="k2", items=(("x", 2),), claimed_subtotal=150.0)
        assert _stored_orders() == []

    def test_order_and_completion_commit_together(self, place_order, engine, make_connection, monkeypatch):
        def lost_write(*args, **kwargs):
            raise RuntimeError("idempotency store unavailable")

        monkeypatch.setattr("orderflow.order.placement.complete_reservation", lost_write)
        connection = make_connection()
        engine.subscribe(connection, [f"owner:{BUSINESS_ID}"])

        with pytest.raises(InternalError):
            place_order(key="k1")

        assert _stored_orders() == []
        assert _record("k1").state == IdempotencyState.FAILED.value
        assert connection.sent == []
        assert engine.sequence.orders_version(BUSINESS_ID) == 0

    def test_failure_marks_record_failed(self, place_order):
        with pytest.raises(PriceMismatch):
            place_order(key="k2", claimed_subtotal=150.0)
        record = _record("k2")
        assert record.state == IdempotencyState.FAILED.value
        assert "subtotal" in record.failure_reason

    def test_unknown_business(self, place_order):
        with pytest.raises(NotFound):
            place_order(business_id="biz-404", claimed_subtotal=100.0)

    def test_closed_business_reserves_nothing(self, place_order, catalog):
        catalog.set_open(BUSINESS_ID, False)
        with pytest.raises(OrderValidationError) as exc:
            place_order(key="k1")
        assert exc.value.code == "BUSINESS_CLOSED"
        with pytest.raises(ObjectNotFoundError):
            _record("k1")

    def test_catalog_outage(self, place_order, catalog):
        catalog.configure(should_succeed=False)
        with pytest.raises(UpstreamFailure):
            place_order(claimed_subtotal=200.0)

    def test_bad_token(self, place_order):
        with pytest.raises(Unauthorized):
            place_order(token="forged")

    def test_empty_cart(self, place_order):
        with pytest.raises(OrderValidationError) as exc:
            place_order(items=(), claimed_subtotal=0.0)
        assert exc.value.code == "EMPTY_CART"

    def test_invalid_quantity(self, place_order):
        with pytest.raises(OrderValidationError) as exc:
            place_order(items=(("x", 0),), claimed_subtotal=0.0)
        assert exc.value.code == "INVALID_QUANTITY"

    def test_unknown_fulfillment_mode(self, place_order):
        with pytest.raises(OrderValidationError) as exc:
            place_order(mode="drone")
        assert exc.value.code == "INVALID_FULFILLMENT_MODE"

    def test_blank_key(self, place_order):
        with pytest.raises(OrderValidationError) as exc:
            place_order(key="  ")
        assert exc.value.code == "IDEMPOTENCY_KEY_REQUIRED"

    def test_tab_id_must_be_prefixed(self, place_order):
        with pytest.raises(OrderValidationError) as exc:
            place_order(mode="dine-in", tab_id="table-4")
        assert exc.value.code == "INVALID_TAB_ID"


class TestSharedSeating:
    def test_dine_in_order_opens_a_tab(self, place_order):
        result = place_order(mode="dine-in")
        assert result["tab_id"].startswith("tab_")
        assert re.match(r"^1-[A-Z]{2}$", result["seating_token"])

    def test_orders_on_the_same_tab_share_the_token(self, place_order):
        first = place_order(key="k1", mode="dine-in", tab_id="tab_window")
        second = place_order(key="k2", mode="dine-in", tab_id="tab_window")
        assert second["seating_token"] == first["seating_token"]
        assert second["tab_id"] == "tab_window"

    def test_new_tab_gets_next_number(self, place_order):
        place_order(key="k1", mode="dine-in", tab_id="tab_window")
        second = place_order(key="k2", mode="car-order", tab_id="tab_parking")
        assert second["seating_token"].startswith("2-")

    def test_closed_tab_order_does_not_lend_its_token(self, place_order, engine, owner):
        first = place_order(key="k1", mode="dine-in", tab_id="tab_window")
        engine.transition_order_status([first["order_id"]], "cancelled", owner)
        second = place_order(key="k2", mode="dine-in", tab_id="tab_window")
        assert second["seating_token"] != first["seating_token"]

    def test_street_vendor_pickup_gets_a_token(self, place_order):
        result = place_order(business_id="biz-002", items=(("p", 1),))
        assert result["seating_token"] is not None

    def test_pickup_has_no_token(self, place_order):
        result = place_order(mode="pickup")
        assert result["seating_token"] is None
        assert result["tab_id"] is None


class TestPostCommitEffects:
    def test_owner_is_notified(self, place_order, engine, make_connection):
        connection = make_connection()
        engine.subscribe(connection, [f"owner:{BUSINESS_ID}"])

        result = place_order()

        envelope = json.loads(connection.sent[-1])
        assert envelope["type"] == "order.created"
        assert envelope["payload"]["order_id"] == result["order_id"]

    def test_orders_version_bumped(self, place_order, engine):
        place_order()
        assert engine.sequence.orders_version(BUSINESS_ID) == 1

    def test_replay_does_not_bump_version(self, place_order, engine):
        place_order(key="k1")
        place_order(key="k1")
        assert engine.sequence.orders_version(BUSINESS_ID) == 1

    def test_publish_failure_does_not_fail_creation(self, place_order, engine, monkeypatch):
        def broken_publish(*args, **kwargs):
            raise ConnectionError("bus down")

        monkeypatch.setattr(engine.bus, "publish", broken_publish)

        result = place_order()

        assert result["status"] == "pending"
        assert engine.sequence.orders_version(BUSINESS_ID) == 1


class TestConcurrentCreation:
    def test_same_key_from_many_threads_creates_one_order(self, place_order):
        results, conflicts = [], []
        barrier = threading.Barrier(6)

        def submit():
            with orderflow.domain_context():
                barrier.wait()
                try:
                    results.append(place_order(key="checkout-42"))
                except Conflict as exc:
                    conflicts.append(exc.code)

        threads = [threading.Thread(target=submit) for _ in range(6)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(_stored_orders()) == 1
        assert len({result["order_id"] for result in results}) == 1
        assert [result["duplicate"] for result in results].count(False) == 1
        assert set(conflicts) <= {"ALREADY_PROCESSING"}
        assert len(results) + len(conflicts) == 6
