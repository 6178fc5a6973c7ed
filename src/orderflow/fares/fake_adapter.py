"""Fare calculator returning a fixed, configurable quote."""

from orderflow.fares.port import FareCalculator, FareQuote


class FakeFareCalculator(FareCalculator):
    def __init__(self, charge: float = 30.0) -> None:
        self.allowed: bool = True
        self.charge: float = charge
        self.reason: str = "Out of delivery range"
        self.calls: list[dict] = []

    def configure(self, allowed: bool, charge: float = 0.0, reason: str = "Out of delivery range") -> None:
        self.allowed = allowed
        self.charge = charge
        self.reason = reason

    def quote(self, distance_km, subtotal, settings):
        self.calls.append({"method": "quote", "distance_km": distance_km, "subtotal": subtotal})
        if not self.allowed:
            return FareQuote(allowed=False, reason=self.reason)
        return FareQuote(allowed=True, charge=self.charge, reason="Flat test fare", kind="fixed")
