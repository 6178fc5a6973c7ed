"""Transactional increments of the per-business counters."""

import random
import string

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from orderflow.counters.counters import BusinessCounters
from orderflow.utils.locks import KeyedLocks


def format_seating_token(number: int, rng: random.Random) -> str:
    """``<sequence>-<two uppercase letters>``, e.g. ``17-QK``."""
    suffix = "".join(rng.choice(string.ascii_uppercase) for _ in range(2))
    return f"{number}-{suffix}"


class BusinessSequence:
    """Serializes every read-modify-write of a business's counters."""

    def __init__(self, locks: KeyedLocks | None = None, rng: random.Random | None = None) -> None:
        self.locks = locks or KeyedLocks()
        self.rng = rng or random.Random()

    def _repo(self):
        return current_domain.repository_for(BusinessCounters)

    def _load(self, business_id: str) -> BusinessCounters:
        try:
            return self._repo().get(business_id)
        except ObjectNotFoundError:
            return BusinessCounters(business_id=business_id)

    def allocate_seating_token(self, business_id: str) -> str:
        with self.locks.hold(f"counters:{business_id}"):
            counters = self._load(business_id)
            number = counters.next_seating_number()
            self._repo().add(counters)
        return format_seating_token(number, self.rng)

    def bump_orders_version(self, business_id: str) -> int:
        with self.locks.hold(f"counters:{business_id}"):
            counters = self._load(business_id)
            version = counters.bump_orders_version()
            self._repo().add(counters)
        return version

    def orders_version(self, business_id: str) -> int:
        try:
            return self._repo().get(business_id).orders_version or 0
        except ObjectNotFoundError:
            return 0
