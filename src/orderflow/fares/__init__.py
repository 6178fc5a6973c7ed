"""Fare calculator factory — FARE_CALCULATOR selects the implementation."""

import os

from orderflow.fares.port import FareCalculator

_current_calculator: FareCalculator | None = None


def get_fare_calculator() -> FareCalculator:
    """Return the active fare calculator. Defaults to StandardFareCalculator."""
    global _current_calculator
    if _current_calculator is None:
        adapter = os.environ.get("FARE_CALCULATOR", "standard")
        if adapter == "standard":
            from orderflow.fares.standard import StandardFareCalculator

            _current_calculator = StandardFareCalculator()
        elif adapter == "fake":
            from orderflow.fares.fake_adapter import FakeFareCalculator

            _current_calculator = FakeFareCalculator()
        else:
            raise ValueError(f"Unknown fare calculator: {adapter}")
    return _current_calculator


def set_fare_calculator(calculator: FareCalculator) -> None:
    global _current_calculator
    _current_calculator = calculator


def reset_fare_calculator() -> None:
    global _current_calculator
    _current_calculator = None
