"""Fare calculator port.

A fare calculator is a pure function of distance, order value and the
business's delivery settings. It never performs I/O.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

from orderflow.catalog.port import DeliverySettings


@dataclass(frozen=True)
class FareQuote:
    allowed: bool
    charge: float = 0.0
    reason: str = ""
    road_distance_km: float | None = None
    kind: str | None = None


class FareCalculator(ABC):
    @abstractmethod
    def quote(self, distance_km: float, subtotal: float, settings: DeliverySettings) -> FareQuote:
        """Quote delivery for a straight-line ``distance_km``."""
        ...
