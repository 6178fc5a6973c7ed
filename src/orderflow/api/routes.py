"""FastAPI routes for the order lifecycle."""

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Response

from orderflow.api.dependencies import get_engine
from orderflow.api.schemas import (
    CreateOrderRequest,
    CreateOrderResponse,
    SettleTabRequest,
    SettleTabResponse,
    TransitionRequest,
    TransitionResponse,
)
from orderflow.errors import OrderflowError
from orderflow.idempotency.coordinator import fingerprint
from orderflow.lifecycle.engine import OrderLifecycleEngine
from orderflow.lifecycle.queries import ViewerContext
from orderflow.lifecycle.requests import (
    Cart,
    CartLine,
    CustomerContext,
    DeliveryAddress,
    FulfillmentContext,
    TransitionExtra,
)


@contextmanager
def _http_errors() -> Iterator[None]:
    try:
        yield
    except OrderflowError as exc:
        raise HTTPException(status_code=exc.status_code, detail=exc.to_dict()) from exc


def _bearer(authorization: str | None) -> str | None:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    return authorization[len("Bearer ") :].strip() or None


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=CreateOrderResponse)
async def create_order(
    body: CreateOrderRequest,
    response: Response,
    idempotency_key: str | None = Header(default=None),
    authorization: str | None = Header(default=None),
    engine: OrderLifecycleEngine = Depends(get_engine),
) -> CreateOrderResponse:
    """Place an order. Replaying the same Idempotency-Key returns the original result."""
    token = _bearer(authorization)
    cart = Cart(
        business_id=body.business_id,
        items=tuple(
            CartLine(
                item_id=line.item_id,
                quantity=line.quantity,
                modifiers=tuple(line.modifiers),
            )
            for line in body.items
        ),
        claimed_subtotal=body.claimed_subtotal,
        claimed_total=body.claimed_total,
        payment_method=body.payment_method,
        packaging_charge=body.packaging_charge,
        tip=body.tip,
        convenience_fee=body.convenience_fee,
        platform_fee=body.platform_fee,
        service_fee=body.service_fee,
        discount=body.discount,
        loyalty_discount=body.loyalty_discount,
        customer_order_id=body.customer_order_id,
    )
    fulfillment = FulfillmentContext(
        mode=body.fulfillment_mode,
        address=DeliveryAddress(**body.address.model_dump()) if body.address else None,
        tab_id=body.tab_id,
        table_id=body.table_id,
    )
    key = idempotency_key or fingerprint(
        business_id=body.business_id,
        customer_id=token or body.customer_phone,
        items=[line.model_dump() for line in body.items],
        amount=body.claimed_total if body.claimed_total is not None else body.claimed_subtotal,
        now=datetime.now(UTC),
        bucket_seconds=engine.settings.fingerprint_bucket_seconds,
    )

    with _http_errors():
        result = engine.create_order(
            key,
            CustomerContext(token=token, name=body.customer_name, phone=body.customer_phone),
            cart,
            fulfillment,
        )
    if result["duplicate"]:
        response.status_code = 200
    return CreateOrderResponse(**result)


@order_router.get("/{order_ref}/status")
async def get_order_status(
    order_ref: str,
    lite: bool = False,
    token: str | None = None,
    authorization: str | None = Header(default=None),
    engine: OrderLifecycleEngine = Depends(get_engine),
) -> dict:
    """Status of an order, or of the newest order on a tab (``tab_...``)."""
    with _http_errors():
        actor = engine.access.resolve(_bearer(authorization))
        result = engine.get_order_status(order_ref, ViewerContext(actor=actor, tracking_token=token), lite=lite)
    return {**result["payload"], "cache": result["cache"]}


@order_router.post("/status", response_model=TransitionResponse)
async def transition_orders(
    body: TransitionRequest,
    authorization: str | None = Header(default=None),
    engine: OrderLifecycleEngine = Depends(get_engine),
) -> TransitionResponse:
    """Move one or more orders to a new status.

    Staff act on their own business's orders; a customer may cancel their own
    order while it is pending or confirmed.
    """
    with _http_errors():
        actor = engine.access.resolve(_bearer(authorization))
        result = engine.transition_order_status(
            body.order_ids,
            body.status,
            actor,
            TransitionExtra(rider_id=body.rider_id, reason=body.reason, note=body.note),
        )
    return TransitionResponse(**result)


@order_router.get("")
async def list_orders(
    status: list[str] | None = Query(default=None),
    authorization: str | None = Header(default=None),
    engine: OrderLifecycleEngine = Depends(get_engine),
) -> list[dict]:
    """Live orders of the caller's business."""
    with _http_errors():
        actor = engine.access.resolve(_bearer(authorization))
        return engine.list_business_orders(actor, status)


# ---------------------------------------------------------------------------
# Tab Router
# ---------------------------------------------------------------------------
tab_router = APIRouter(prefix="/tabs", tags=["tabs"])


@tab_router.post("/{tab_id}/settle", response_model=SettleTabResponse)
async def settle_tab(
    tab_id: str,
    body: SettleTabRequest,
    authorization: str | None = Header(default=None),
    engine: OrderLifecycleEngine = Depends(get_engine),
) -> SettleTabResponse:
    with _http_errors():
        actor = engine.access.resolve(_bearer(authorization))
        result = engine.settle_tab(tab_id, actor, body.payment_method)
    return SettleTabResponse(**result)
