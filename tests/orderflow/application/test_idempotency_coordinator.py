"""Application tests for key reservation, replay and stale-record recovery."""

import threading
from datetime import UTC, datetime, timedelta

import pytest
from orderflow.cache.tiers import MemorySharedTier
from orderflow.domain import orderflow
from orderflow.errors import Conflict, OrderValidationError
from orderflow.idempotency.coordinator import IdempotencyCoordinator, complete_reservation
from orderflow.idempotency.record import IdempotencyRecord, IdempotencyState
from orderflow.settings import Settings
from orderflow.utils.locks import KeyedLocks
from protean import current_domain


class Clock:
    def __init__(self) -> None:
        self.now = datetime(2026, 3, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture()
def clock():
    return Clock()


@pytest.fixture()
def coordinator(clock):
    return IdempotencyCoordinator(settings=Settings(staleness_window_seconds=30.0), clock=clock)


class TestReserve:
    def test_first_reservation(self, coordinator):
        reservation = coordinator.reserve("k1")
        assert reservation.duplicate is False
        record = current_domain.repository_for(IdempotencyRecord).get("k1")
        assert record.state == IdempotencyState.PROCESSING.value

    def test_key_is_trimmed(self, coordinator):
        assert coordinator.reserve("  k1 ").key == "k1"

    def test_in_flight_key_conflicts(self, coordinator, clock):
        coordinator.reserve("k1")
        clock.advance(10)
        with pytest.raises(Conflict) as exc:
            coordinator.reserve("k1")
        assert exc.value.code == "ALREADY_PROCESSING"
        assert exc.value.details["retry_after"] == 20.0

    def test_completed_key_replays(self, coordinator):
        coordinator.reserve("k1")
        coordinator.complete("k1", {"order_id": "ord-1"}, "ord-1")
        reservation = coordinator.reserve("k1")
        assert reservation.duplicate is True
        assert reservation.payload == {"order_id": "ord-1"}

    def test_completed_key_replays_forever(self, coordinator, clock):
        coordinator.reserve("k1")
        coordinator.complete("k1", {"order_id": "ord-1"}, "ord-1")
        clock.advance(86400)
        assert coordinator.reserve("k1").duplicate is True

    def test_failed_key_blocks_within_window(self, coordinator, clock):
        coordinator.reserve("k1")
        coordinator.fail("k1", "Cart subtotal does not match current prices")
        clock.advance(5)
        with pytest.raises(Conflict) as exc:
            coordinator.reserve("k1")
        assert exc.value.details["state"] == "failed"

    def test_stale_processing_record_is_reclaimed(self, coordinator, clock):
        coordinator.reserve("k1")
        clock.advance(31)
        assert coordinator.reserve("k1").duplicate is False
        record = current_domain.repository_for(IdempotencyRecord).get("k1")
        assert record.started_at == clock.now

    def test_stale_failed_record_is_reclaimed(self, coordinator, clock):
        coordinator.reserve("k1")
        coordinator.fail("k1", "boom")
        clock.advance(30)
        assert coordinator.reserve("k1").duplicate is False
        record = current_domain.repository_for(IdempotencyRecord).get("k1")
        assert record.state == IdempotencyState.PROCESSING.value
        assert record.failure_reason is None

    def test_key_too_long(self, coordinator):
        with pytest.raises(OrderValidationError) as exc:
            coordinator.reserve("k" * 256)
        assert exc.value.code == "IDEMPOTENCY_KEY_INVALID"


class TestFail:
    def test_fail_only_applies_to_processing(self, coordinator):
        coordinator.reserve("k1")
        coordinator.complete("k1", {"order_id": "ord-1"}, "ord-1")
        coordinator.fail("k1", "late failure")
        record = current_domain.repository_for(IdempotencyRecord).get("k1")
        assert record.state == IdempotencyState.COMPLETED.value

    def test_fail_unknown_key_is_ignored(self, coordinator):
        coordinator.fail("missing", "boom")


class TestConcurrentReservations:
    def test_exactly_one_winner(self):
        coordinator = IdempotencyCoordinator(settings=Settings(), locks=KeyedLocks())
        outcomes = []
        barrier = threading.Barrier(8)

        def attempt():
            with orderflow.domain_context():
                barrier.wait()
                try:
                    coordinator.reserve("shared-key")
                    outcomes.append("won")
                except Conflict:
                    outcomes.append("conflict")

        threads = [threading.Thread(target=attempt) for _ in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert outcomes.count("won") == 1
        assert outcomes.count("conflict") == 7

    def test_locks_are_released_after_use(self):
        locks = KeyedLocks()
        coordinator = IdempotencyCoordinator(settings=Settings(), locks=locks)
        for index in range(20):
            coordinator.reserve(f"key-{index}")
            coordinator.fail(f"key-{index}", "boom")
        assert len(locks) == 0


class UnreachableClaims(MemorySharedTier):
    def claim(self, key, ttl_seconds):
        raise ConnectionError("shared tier down")


class TestCrossInstanceClaims:
    """Two engine instances share the claim tier but not their local locks."""

    @pytest.fixture()
    def claims(self):
        return MemorySharedTier()

    def _instance(self, claims, clock):
        return IdempotencyCoordinator(settings=Settings(), locks=KeyedLocks(), clock=clock, claims=claims)

    def test_second_instance_loses_the_race(self, claims, clock, monkeypatch):
        first = self._instance(claims, clock)
        second = self._instance(claims, clock)
        first.reserve("k1")
        # The second instance read the store before the first one's write landed.
        monkeypatch.setattr(second, "_load", lambda key: None)
        with pytest.raises(Conflict) as exc:
            second.reserve("k1")
        assert exc.value.code == "ALREADY_PROCESSING"

    def test_stale_record_is_reclaimed_by_one_instance(self, claims, clock, monkeypatch):
        first = self._instance(claims, clock)
        second = self._instance(claims, clock)
        first.reserve("k1")
        clock.advance(31)
        stale = current_domain.repository_for(IdempotencyRecord).get("k1")

        assert first.reserve("k1").duplicate is False
        monkeypatch.setattr(second, "_load", lambda key: stale)
        with pytest.raises(Conflict):
            second.reserve("k1")

    def test_unreachable_claim_tier_falls_back_to_the_local_lock(self, clock):
        coordinator = self._instance(UnreachableClaims(), clock)
        assert coordinator.reserve("k1").duplicate is False


class TestCompleteReservation:
    def test_completes_a_processing_record(self, coordinator):
        coordinator.reserve("k1")
        complete_reservation("k1", {"order_id": "ord-1"}, "ord-1")
        record = current_domain.repository_for(IdempotencyRecord).get("k1")
        assert record.is_completed
        assert record.payload == {"order_id": "ord-1"}
