"""Configurable fake payment gateway for development and testing.

Simulates a gateway without external calls; it can be told to decline so
settlement failure paths can be exercised.
"""

from uuid import uuid4

from orderflow.payments.port import ChargeResult, PaymentGateway


class FakeGateway(PaymentGateway):
    def __init__(self) -> None:
        self.should_succeed: bool = True
        self.failure_reason: str = "Card declined"
        self.calls: list[dict] = []

    def configure(self, should_succeed: bool, failure_reason: str = "Card declined") -> None:
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def create_charge(self, amount, currency, payment_method, reference, idempotency_key):
        self.calls.append(
            {
                "method": "create_charge",
                "amount": amount,
                "currency": currency,
                "payment_method": payment_method,
                "reference": reference,
                "idempotency_key": idempotency_key,
            }
        )
        if self.should_succeed:
            return ChargeResult(
                success=True,
                gateway_reference=f"fake_txn_{uuid4().hex[:12]}",
                gateway_status="succeeded",
            )
        return ChargeResult(success=False, gateway_status="failed", failure_reason=self.failure_reason)
