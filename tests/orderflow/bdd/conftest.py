"""Shared BDD fixtures and step definitions for the order lifecycle."""

import pytest
from orderflow.errors import OrderflowError
from orderflow.lifecycle.requests import TransitionExtra
from orderflow.order.order import Order
from protean import current_domain
from pytest_bdd import given, parsers, then, when

BUSINESS_ID = "biz-001"


def _order(order_id):
    return current_domain.repository_for(Order).get(order_id)


def _statuses(path):
    return [status.strip() for status in path.split(",") if status.strip()]


# ---------------------------------------------------------------------------
# Scenario state
# ---------------------------------------------------------------------------
@pytest.fixture()
def outcome():
    """Container for what the When steps produced."""
    return {"results": [], "error": None, "order_id": None}


def _attempt(outcome, action):
    try:
        return action()
    except OrderflowError as exc:
        outcome["error"] = exc
        return None


def _move(engine, actor, outcome, status, **extra):
    _attempt(
        outcome,
        lambda: engine.transition_order_status([outcome["order_id"]], status, actor, TransitionExtra(**extra)),
    )


# ---------------------------------------------------------------------------
# Given steps
# ---------------------------------------------------------------------------
@given(parsers.cfparse('"{name}" sells item "{item_id}" at {price:f}'))
def _(catalog, name, item_id, price):
    assert catalog.get_business(BUSINESS_ID).name == name
    if catalog.get_menu(BUSINESS_ID)[item_id].price != price:
        catalog.update_price(BUSINESS_ID, item_id, price)


@given(parsers.cfparse('"{name}" is closed'))
def _(catalog, name):
    assert catalog.get_business(BUSINESS_ID).name == name
    catalog.set_open(BUSINESS_ID, False)


@given(parsers.cfparse('a pending "{mode}" order'))
def _(place_order, outcome, mode):
    result = place_order(key=f"bdd-{mode}", mode=mode)
    outcome["results"].append(result)
    outcome["order_id"] = result["order_id"]


# ---------------------------------------------------------------------------
# When steps
# ---------------------------------------------------------------------------
@when(parsers.cfparse('the owner moves the order to "{status}"'))
def _(engine, owner, outcome, status):
    _move(engine, owner, outcome, status)


@when(parsers.cfparse('the owner moves the order through "{path}"'))
def _(engine, owner, outcome, path):
    for status in _statuses(path):
        _move(engine, owner, outcome, status)


@when(parsers.cfparse('the owner hands the order to rider "{rider_id}"'))
def _(engine, owner, outcome, rider_id):
    _move(engine, owner, outcome, "ready_for_pickup", rider_id=rider_id)


@when(parsers.cfparse('the rider moves the order through "{path}"'))
def _(engine, rider, outcome, path):
    for status in _statuses(path):
        _move(engine, rider, outcome, status)


# ---------------------------------------------------------------------------
# Then steps
# ---------------------------------------------------------------------------
@then(parsers.cfparse('the order status is "{status}"'))
def _(outcome, status):
    assert _order(outcome["order_id"]).status == status


@then(parsers.re(r"the order history has (?P<count>\d+) entr(?:y|ies)"))
def _(outcome, count):
    assert len(_order(outcome["order_id"]).history) == int(count)


@then(parsers.cfparse('the request fails with "{code}"'))
def _(outcome, code):
    assert outcome["error"] is not None
    assert outcome["error"].code == code
