"""Pydantic API schemas for the order lifecycle.

These are the external API contracts. The routes translate them into the
engine's request dataclasses.
"""

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------
class CartLineRequest(BaseModel):
    item_id: str
    quantity: int = Field(ge=1)
    modifiers: list[str] = []
    unit_price: float | None = Field(default=None, description="Ignored. Lines are priced from the catalog.")


class AddressRequest(BaseModel):
    line: str | None = None
    lat: float | None = None
    lng: float | None = None


class CreateOrderRequest(BaseModel):
    business_id: str
    fulfillment_mode: str
    items: list[CartLineRequest]
    claimed_subtotal: float
    claimed_total: float | None = None
    payment_method: str = "cod"
    packaging_charge: float = 0.0
    tip: float = 0.0
    convenience_fee: float = 0.0
    platform_fee: float = 0.0
    service_fee: float = 0.0
    discount: float = 0.0
    loyalty_discount: float = 0.0
    customer_name: str | None = None
    customer_phone: str | None = None
    customer_order_id: str | None = None
    address: AddressRequest | None = None
    tab_id: str | None = None
    table_id: str | None = None

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "business_id": "biz-001",
                    "fulfillment_mode": "pickup",
                    "items": [{"item_id": "masala-dosa", "quantity": 2}],
                    "claimed_subtotal": 200.0,
                }
            ]
        }
    }


class TransitionRequest(BaseModel):
    order_ids: list[str]
    status: str
    rider_id: str | None = None
    reason: str | None = None
    note: str | None = None


class SettleTabRequest(BaseModel):
    payment_method: str


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------
class CreateOrderResponse(BaseModel):
    message: str
    order_id: str
    tracking_token: str
    status: str
    duplicate: bool
    payment_method: str | None = None
    payment_status: str | None = None
    seating_token: str | None = None
    tab_id: str | None = None
    customer_order_id: str | None = None
    grand_total: float


class TransitionResponse(BaseModel):
    processed_count: int


class SettleTabResponse(BaseModel):
    tab_id: str
    settled_count: int
    amount: float
    gateway_reference: str | None = None
