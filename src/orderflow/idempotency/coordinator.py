"""Idempotency Coordinator — at most one successful creation per key.

``reserve`` is a read-modify-write on the key's record. Inside one process it
is serialized by a per-key lock; across instances each caller must also win
a claim on the shared tier for the record generation it read, so concurrent
callers with the same key see exactly one winner. A completed record replays
its stored response; a processing or failed record younger than the
staleness window blocks the key with a Conflict.

The order write and the completion of its record commit together in the
placement handler's unit of work; see ``complete_reservation``.
"""

import hashlib
import json
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import UTC, datetime

import structlog
from protean.exceptions import ExpectedVersionError, ObjectNotFoundError
from protean.utils.globals import current_domain

from orderflow.cache.tiers import SharedTier
from orderflow.errors import Conflict, OrderValidationError
from orderflow.idempotency.record import IdempotencyRecord, IdempotencyState
from orderflow.settings import Settings
from orderflow.utils.locks import KeyedLocks

logger = structlog.get_logger(__name__)

MAX_KEY_LENGTH = 255


@dataclass(frozen=True)
class Reservation:
    key: str
    duplicate: bool
    payload: dict | None = None


def _utcnow() -> datetime:
    return datetime.now(UTC)


def fingerprint(
    business_id: str,
    customer_id: str | None,
    items: Iterable[dict],
    amount: float,
    now: datetime,
    bucket_seconds: float = 60.0,
) -> str:
    """Deterministic key for callers that cannot mint their own token.

    Submissions of the same cart by the same customer within one time bucket
    collapse onto the same key.
    """
    lines = sorted(
        (
            str(item.get("item_id") or item.get("id")),
            int(item.get("quantity") or 0),
            tuple(sorted(str(m.get("name", m)) if isinstance(m, dict) else str(m) for m in item.get("modifiers") or [])),
        )
        for item in items
    )
    bucket = int(now.timestamp() // bucket_seconds)
    material = json.dumps(
        [str(business_id), str(customer_id or ""), lines, round(float(amount), 2), bucket],
        separators=(",", ":"),
    )
    return "fp_" + hashlib.sha256(material.encode("utf-8")).hexdigest()


def complete_reservation(key: str, payload: dict, order_id: str, now: datetime | None = None) -> IdempotencyRecord:
    """Mark the key's record completed in the caller's unit of work."""
    now = now or _utcnow()
    repo = current_domain.repository_for(IdempotencyRecord)
    try:
        record = repo.get(key)
    except ObjectNotFoundError:
        record = IdempotencyRecord.start(key, now)
    record.complete(payload, order_id, now)
    repo.add(record)
    return record


class IdempotencyCoordinator:
    def __init__(
        self,
        settings: Settings | None = None,
        locks: KeyedLocks | None = None,
        clock: Callable[[], datetime] = _utcnow,
        claims: SharedTier | None = None,
    ) -> None:
        self.settings = settings or Settings()
        self.locks = locks or KeyedLocks()
        self.clock = clock
        self.claims = claims

    def _repo(self):
        return current_domain.repository_for(IdempotencyRecord)

    def _load(self, key: str) -> IdempotencyRecord | None:
        try:
            return self._repo().get(key)
        except ObjectNotFoundError:
            return None

    @staticmethod
    def validate_key(key: str | None) -> str:
        cleaned = (key or "").strip()
        if not cleaned:
            raise OrderValidationError("Idempotency key is required", code="IDEMPOTENCY_KEY_REQUIRED")
        if len(cleaned) > MAX_KEY_LENGTH:
            raise OrderValidationError("Idempotency key is too long", code="IDEMPOTENCY_KEY_INVALID")
        return cleaned

    def reserve(self, key: str) -> Reservation:
        key = self.validate_key(key)
        with self.locks.hold(key):
            now = self.clock()
            record = self._load(key)

            if record is not None and record.is_completed:
                logger.info("Duplicate creation replayed", idempotency_key=key, order_id=record.order_id)
                return Reservation(key=key, duplicate=True, payload=record.payload)

            window = self.settings.staleness_window_seconds
            if record is not None and not record.is_stale(now, window):
                retry_after = max(0.0, window - record.age(now).total_seconds())
                raise Conflict(
                    "Order creation already in progress for this key",
                    code="ALREADY_PROCESSING",
                    state=record.state,
                    retry_after=round(retry_after, 1),
                )

            self._claim(key, record)
            if record is None:
                record = IdempotencyRecord.start(key, now)
            else:
                logger.warning(
                    "Reclaiming stale idempotency record",
                    idempotency_key=key,
                    previous_state=record.state,
                )
                record.restart(now)
            try:
                self._repo().add(record)
            except ExpectedVersionError as exc:
                raise Conflict(
                    "Order creation already in progress for this key",
                    code="ALREADY_PROCESSING",
                    state=IdempotencyState.PROCESSING.value,
                ) from exc
            return Reservation(key=key, duplicate=False)

    def _claim(self, key: str, record: IdempotencyRecord | None) -> None:
        """Win the key across instances for the record generation just read."""
        if self.claims is None:
            return
        generation = record.started_at.isoformat() if record is not None else "new"
        window = self.settings.staleness_window_seconds
        try:
            won = self.claims.claim(f"idempotency:{key}:{generation}", window)
        except Exception:
            logger.warning(
                "Idempotency claim unavailable, falling back to the local lock",
                idempotency_key=key,
                exc_info=True,
            )
            return
        if not won:
            raise Conflict(
                "Order creation already in progress for this key",
                code="ALREADY_PROCESSING",
                state=IdempotencyState.PROCESSING.value,
                retry_after=round(window, 1),
            )

    def complete(self, key: str, payload: dict, order_id: str) -> None:
        with self.locks.hold(key):
            complete_reservation(key, payload, order_id, self.clock())

    def fail(self, key: str, reason: str) -> None:
        with self.locks.hold(key):
            record = self._load(key)
            if record is None or record.state != IdempotencyState.PROCESSING.value:
                return
            record.fail(reason, self.clock(), max_length=self.settings.failure_reason_max_length)
            self._repo().add(record)
