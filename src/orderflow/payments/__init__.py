"""Payment gateway factory — PAYMENT_GATEWAY selects the implementation.

Tab settlement charges card and UPI tabs through the active gateway; cash
settlements never reach it. ``fake`` approves every charge and
``fake-declining`` declines every one, so settlement failure paths can be
exercised against a running service. Production gateways are registered by
deployment code through set_gateway().
"""

import os

from orderflow.payments.port import PaymentGateway

_current_gateway: PaymentGateway | None = None


def get_gateway() -> PaymentGateway:
    global _current_gateway
    if _current_gateway is None:
        adapter = os.environ.get("PAYMENT_GATEWAY", "fake")
        if adapter in ("fake", "fake-declining"):
            from orderflow.payments.fake_adapter import FakeGateway

            gateway = FakeGateway()
            if adapter == "fake-declining":
                gateway.configure(should_succeed=False, failure_reason="Declined by test gateway")
            _current_gateway = gateway
        else:
            raise ValueError(f"Unknown payment gateway: {adapter}")
    return _current_gateway


def set_gateway(gateway: PaymentGateway) -> None:
    global _current_gateway
    _current_gateway = gateway


def reset_gateway() -> None:
    global _current_gateway
    _current_gateway = None
