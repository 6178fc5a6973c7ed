"""Application tests for cached order status reads and the live order list."""

import pytest
from orderflow.access.port import ActorContext
from orderflow.errors import Forbidden, NotFound, OrderValidationError
from orderflow.lifecycle.engine import build_engine
from orderflow.lifecycle.queries import ViewerContext

BUSINESS_ID = "biz-001"


def _as_guest(token=None):
    return ViewerContext(actor=ActorContext.guest(), tracking_token=token)


@pytest.fixture()
def placed(place_order):
    return place_order(key="k1", mode="pickup")


class TestOrderStatus:
    def test_miss_then_local_hit(self, engine, placed):
        viewer = _as_guest(placed["tracking_token"])

        first = engine.get_order_status(placed["order_id"], viewer)
        second = engine.get_order_status(placed["order_id"], viewer)

        assert first["cache"] == "MISS"
        assert second["cache"] == "L1-HIT"
        assert second["payload"] == first["payload"]

    def test_full_payload(self, engine, placed):
        payload = engine.get_order_status(placed["order_id"], _as_guest(placed["tracking_token"]))["payload"]
        assert payload["order"]["status"] == "pending"
        assert payload["order"]["grand_total"] == 200.0
        assert len(payload["order"]["history"]) == 1
        assert payload["business"]["name"] == "Dosa Corner"

    def test_lite_payload_is_cached_separately(self, engine, placed):
        viewer = _as_guest(placed["tracking_token"])
        engine.get_order_status(placed["order_id"], viewer)
        lite = engine.get_order_status(placed["order_id"], viewer, lite=True)
        assert lite["cache"] == "MISS"
        assert lite["lite"] is True
        assert "history" not in lite["payload"]["order"]

    def test_shared_tier_serves_other_instances(self, engine, placed, shared, access, catalog, fares, payments):
        viewer = _as_guest(placed["tracking_token"])
        engine.get_order_status(placed["order_id"], viewer)

        sibling = build_engine(engine.settings, shared=shared, access=access, catalog=catalog, fares=fares, payments=payments)

        assert sibling.get_order_status(placed["order_id"], viewer)["cache"] == "HIT"
        assert sibling.get_order_status(placed["order_id"], viewer)["cache"] == "L1-HIT"

    def test_mutation_invalidates_by_version(self, engine, owner, placed):
        viewer = _as_guest(placed["tracking_token"])
        engine.get_order_status(placed["order_id"], viewer)

        engine.transition_order_status([placed["order_id"]], "confirmed", owner)
        result = engine.get_order_status(placed["order_id"], viewer)

        assert result["cache"] == "MISS"
        assert result["payload"]["order"]["status"] == "confirmed"

    def test_final_orders_are_not_cached(self, engine, owner, placed):
        engine.transition_order_status([placed["order_id"]], "cancelled", owner)
        viewer = _as_guest(placed["tracking_token"])
        assert engine.get_order_status(placed["order_id"], viewer)["cache"] == "SKIP"
        assert engine.get_order_status(placed["order_id"], viewer)["cache"] == "SKIP"

    def test_wrong_token_is_forbidden(self, engine, placed):
        with pytest.raises(Forbidden):
            engine.get_order_status(placed["order_id"], _as_guest("not-the-token"))

    def test_customer_reads_own_order(self, engine, customer, placed):
        assert engine.get_order_status(placed["order_id"], ViewerContext(actor=customer))["payload"]

    def test_business_staff_reads(self, engine, chef, placed):
        assert engine.get_order_status(placed["order_id"], ViewerContext(actor=chef))["payload"]

    def test_rival_business_is_forbidden(self, engine, access, placed):
        rival = access.resolve("rival-token")
        with pytest.raises(Forbidden):
            engine.get_order_status(placed["order_id"], ViewerContext(actor=rival))

    def test_unknown_order(self, engine):
        with pytest.raises(NotFound):
            engine.get_order_status("ord-missing", _as_guest("x"))

    def test_blank_reference(self, engine):
        with pytest.raises(OrderValidationError):
            engine.get_order_status(" ", _as_guest("x"))


class TestTabs:
    def test_tab_reference_resolves_newest_order(self, engine, owner, place_order):
        first = place_order(key="k1", mode="dine-in", tab_id="tab_window")
        second = place_order(key="k2", mode="dine-in", tab_id="tab_window", items=(("y", 1),))

        result = engine.get_order_status("tab_window", ViewerContext(actor=owner))

        assert result["payload"]["order"]["id"] in {first["order_id"], second["order_id"]}
        assert result["payload"]["order"]["tab_id"] == "tab_window"

    def test_group_totals_across_the_tab(self, engine, place_order):
        first = place_order(key="k1", mode="dine-in", tab_id="tab_window")
        place_order(key="k2", mode="dine-in", tab_id="tab_window", items=(("y", 1),))

        order = engine.get_order_status(first["order_id"], _as_guest(first["tracking_token"]))["payload"]["order"]

        assert len(order["batches"]) == 2
        assert order["grand_total"] == 240.0
        assert len(order["items"]) == 2

    def test_cancelled_batch_excluded_from_totals(self, engine, owner, place_order):
        first = place_order(key="k1", mode="dine-in", tab_id="tab_window")
        second = place_order(key="k2", mode="dine-in", tab_id="tab_window", items=(("y", 1),))
        engine.transition_order_status([second["order_id"]], "cancelled", owner)

        order = engine.get_order_status(first["order_id"], _as_guest(first["tracking_token"]))["payload"]["order"]

        assert len(order["batches"]) == 2
        assert order["grand_total"] == 200.0

    def test_served_batch_keeps_the_tab_together(self, engine, owner, place_order):
        first = place_order(key="k1", mode="dine-in", tab_id="tab_window")
        for status in ("confirmed", "preparing", "ready", "delivered"):
            engine.transition_order_status([first["order_id"]], status, owner)
        second = place_order(key="k2", mode="dine-in", tab_id="tab_window", items=(("y", 1),))

        assert second["seating_token"] == first["seating_token"]
        order = engine.get_order_status(second["order_id"], _as_guest(second["tracking_token"]))["payload"]["order"]
        assert len(order["batches"]) == 2
        assert order["grand_total"] == 240.0

    def test_first_batch_token_opens_the_whole_tab(self, engine, place_order):
        first = place_order(key="k1", mode="dine-in", tab_id="tab_window")
        second = place_order(key="k2", mode="dine-in", tab_id="tab_window", items=(("y", 1),))

        by_tab = engine.get_order_status("tab_window", _as_guest(first["tracking_token"]))
        by_id = engine.get_order_status(second["order_id"], _as_guest(first["tracking_token"]))

        assert len(by_tab["payload"]["order"]["batches"]) == 2
        assert by_id["payload"]["order"]["id"] == second["order_id"]

    def test_token_from_another_tab_is_forbidden(self, engine, place_order):
        place_order(key="k1", mode="dine-in", tab_id="tab_window")
        stranger = place_order(key="k2", mode="dine-in", tab_id="tab_patio")
        with pytest.raises(Forbidden):
            engine.get_order_status("tab_window", _as_guest(stranger["tracking_token"]))

    def test_unknown_tab(self, engine):
        with pytest.raises(NotFound):
            engine.get_order_status("tab_nobody", _as_guest("x"))


class TestBusinessOrders:
    def test_owner_sees_everything(self, engine, owner, placed):
        orders = engine.list_business_orders(owner)
        assert len(orders) == 1
        summary = orders[0]
        assert summary["id"] == placed["order_id"]
        assert summary["customer_name"] == "Asha"
        assert summary["grand_total"] == 200.0
        assert summary["item_count"] == 2

    def test_chef_sees_redacted_summaries(self, engine, chef, placed):
        summary = engine.list_business_orders(chef)[0]
        assert "customer_phone" not in summary
        assert "grand_total" not in summary

    def test_redacted_and_full_views_do_not_share_cache(self, engine, owner, chef, placed):
        engine.list_business_orders(chef)
        assert "customer_name" in engine.list_business_orders(owner)[0]

    def test_status_filter(self, engine, owner, place_order):
        first = place_order(key="k1")
        place_order(key="k2")
        engine.transition_order_status([first["order_id"]], "confirmed", owner)

        confirmed = engine.list_business_orders(owner, ["confirmed"])

        assert [o["id"] for o in confirmed] == [first["order_id"]]

    def test_list_refreshes_after_new_order(self, engine, owner, place_order):
        place_order(key="k1")
        assert len(engine.list_business_orders(owner)) == 1
        place_order(key="k2")
        assert len(engine.list_business_orders(owner)) == 2

    def test_customer_is_forbidden(self, engine, customer):
        with pytest.raises(Forbidden):
            engine.list_business_orders(customer)

    def test_invalid_status_filter(self, engine, owner):
        with pytest.raises(OrderValidationError) as exc:
            engine.list_business_orders(owner, ["teleported"])
        assert exc.value.code == "INVALID_STATUS"
