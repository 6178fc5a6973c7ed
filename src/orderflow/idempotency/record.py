"""IdempotencyRecord aggregate — one per caller-supplied creation key.

State Machine:
    PROCESSING → COMPLETED
    PROCESSING → FAILED
    {PROCESSING, FAILED} → PROCESSING   (only once the record is stale)
"""

import json
from datetime import UTC, datetime, timedelta
from enum import Enum

from protean.exceptions import ValidationError
from protean.fields import DateTime, Identifier, String, Text

from orderflow.domain import orderflow


class IdempotencyState(Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


@orderflow.aggregate
class IdempotencyRecord:
    key = String(identifier=True, required=True, max_length=255)
    state = String(
        max_length=20,
        choices=IdempotencyState,
        default=IdempotencyState.PROCESSING.value,
    )
    started_at = DateTime(required=True)
    finished_at = DateTime()
    completed_payload = Text()  # JSON response replayed to duplicates
    order_id = Identifier()
    failure_reason = String(max_length=200)

    @classmethod
    def start(cls, key: str, now: datetime | None = None):
        return cls(
            key=key,
            state=IdempotencyState.PROCESSING.value,
            started_at=now or datetime.now(UTC),
        )

    @property
    def payload(self) -> dict | None:
        return json.loads(self.completed_payload) if self.completed_payload else None

    @property
    def is_completed(self) -> bool:
        return self.state == IdempotencyState.COMPLETED.value

    def age(self, now: datetime) -> timedelta:
        started = self.started_at
        if started.tzinfo is None:
            started = started.replace(tzinfo=UTC)
        return now - started

    def is_stale(self, now: datetime, window_seconds: float) -> bool:
        return self.age(now) >= timedelta(seconds=window_seconds)

    def restart(self, now: datetime) -> None:
        if self.is_completed:
            raise ValidationError({"state": ["A completed key cannot be reserved again"]})
        self.state = IdempotencyState.PROCESSING.value
        self.started_at = now
        self.finished_at = None
        self.failure_reason = None

    def complete(self, payload: dict, order_id: str, now: datetime) -> None:
        self.state = IdempotencyState.COMPLETED.value
        self.completed_payload = json.dumps(payload, default=str)
        self.order_id = order_id
        self.finished_at = now

    def fail(self, reason: str, now: datetime, max_length: int = 200) -> None:
        if self.is_completed:
            raise ValidationError({"state": ["A completed key cannot be marked failed"]})
        self.state = IdempotencyState.FAILED.value
        self.failure_reason = (reason or "Unknown error")[:max_length]
        self.finished_at = now
