"""Payment gateway port.

Payment-method-specific flows hand the gateway an amount and get back a
gateway reference. Card, UPI and cash-at-counter specifics live behind
the adapter.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class ChargeResult:
    success: bool
    gateway_reference: str | None = None
    gateway_status: str | None = None
    failure_reason: str | None = None


class PaymentGateway(ABC):
    @abstractmethod
    def create_charge(
        self,
        amount: float,
        currency: str,
        payment_method: str,
        reference: str,
        idempotency_key: str,
    ) -> ChargeResult:
        """Charge ``amount`` for ``reference`` (an order or tab id)."""
        ...
