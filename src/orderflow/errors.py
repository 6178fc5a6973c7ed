"""Error taxonomy for the order lifecycle.

Every rejection carries a stable ``code`` that clients can branch on and the
HTTP status the API layer renders it with. Protean's own exceptions raised
from aggregate invariants are translated into this taxonomy at the engine
boundary (see ``translate_domain_error``).
"""

from typing import Any

from protean.exceptions import ExpectedVersionError, ObjectNotFoundError, ValidationError


class OrderflowError(Exception):
    """Base class for every error surfaced by the lifecycle engine."""

    code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(self, message: str, code: str | None = None, **details: Any) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details

    def to_dict(self) -> dict:
        body = {"code": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class OrderValidationError(OrderflowError):
    """Malformed or missing input."""

    code = "VALIDATION_ERROR"
    status_code = 400


class PriceMismatch(OrderflowError):
    """Claimed amounts deviate from the recomputed ones beyond tolerance."""

    code = "PRICE_MISMATCH"
    status_code = 400


class Unauthorized(OrderflowError):
    code = "UNAUTHORIZED"
    status_code = 401


class Forbidden(OrderflowError):
    code = "FORBIDDEN"
    status_code = 403


class NotFound(OrderflowError):
    code = "NOT_FOUND"
    status_code = 404


class Conflict(OrderflowError):
    """Invalid transition edge, or a creation already in flight."""

    code = "CONFLICT"
    status_code = 409


class PaymentDeclined(OrderflowError):
    code = "PAYMENT_DECLINED"
    status_code = 402


class UpstreamFailure(OrderflowError):
    """Transient failure in an external collaborator."""

    code = "UPSTREAM_FAILURE"
    status_code = 502


class InternalError(OrderflowError):
    pass


def translate_domain_error(exc: Exception) -> OrderflowError:
    """Map Protean exceptions onto the orderflow taxonomy."""
    if isinstance(exc, OrderflowError):
        return exc
    if isinstance(exc, ValidationError):
        if "status" in exc.messages:
            return Conflict("Invalid status transition", code="INVALID_TRANSITION", messages=exc.messages)
        return OrderValidationError("Invalid order data", messages=exc.messages)
    if isinstance(exc, ObjectNotFoundError):
        return NotFound(str(exc) or "Not found")
    if isinstance(exc, ExpectedVersionError):
        return Conflict("The record changed while it was being updated", code="CONCURRENT_UPDATE")
    return InternalError("Unexpected error")
