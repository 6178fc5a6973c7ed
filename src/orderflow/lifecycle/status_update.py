"""Bulk status transitions.

Every requested order is loaded and checked (existence, business scope,
capability, table edge) before the batch is handed to the
``TransitionOrderStatus`` handler, so a bad id or an invalid edge rejects
the whole batch. The handler re-checks each edge as it writes, inside one
unit of work: an order that moved concurrently fails the batch as a whole
instead of leaving it half applied.
"""

import json

import structlog
from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from orderflow.access.port import ActorContext
from orderflow.errors import NotFound, OrderValidationError
from orderflow.lifecycle.requests import TransitionExtra
from orderflow.lifecycle.transitions import parse_status, plan_transition
from orderflow.order.order import Order
from orderflow.order.status_change import TransitionOrderStatus

logger = structlog.get_logger(__name__)

MAX_BATCH = 50


def _unique_ids(order_ids) -> list[str]:
    seen: dict[str, None] = {}
    for order_id in order_ids or []:
        cleaned = str(order_id or "").strip()
        if cleaned:
            seen.setdefault(cleaned, None)
    return list(seen)


class StatusTransitions:
    def transition(
        self,
        order_ids: list[str],
        target_status: str,
        actor: ActorContext,
        extra: TransitionExtra | None = None,
    ) -> dict:
        extra = extra or TransitionExtra()
        ids = _unique_ids(order_ids)
        if not ids:
            raise OrderValidationError("At least one order id is required", code="ORDER_IDS_REQUIRED")
        if len(ids) > MAX_BATCH:
            raise OrderValidationError(f"At most {MAX_BATCH} orders per request", code="BATCH_TOO_LARGE")
        target = parse_status(target_status)

        repo = current_domain.repository_for(Order)
        plans = []
        for order_id in ids:
            try:
                order = repo.get(order_id)
            except ObjectNotFoundError as exc:
                raise NotFound(f"Order {order_id} not found", order_id=order_id) from exc
            if extra.business_id and str(order.business_id) != extra.business_id:
                raise NotFound(f"Order {order_id} not found", order_id=order_id)
            plans.append(plan_transition(order, target, actor, extra))

        pending = [plan.order_id for plan in plans if not plan.is_noop]
        if pending:
            moved = current_domain.process(
                TransitionOrderStatus(
                    order_ids=json.dumps(pending),
                    target_status=target.value,
                    actor_id=actor.actor_id,
                    role=actor.role,
                    note=extra.note,
                    rider_id=extra.rider_id,
                    reason=extra.reason,
                ),
                asynchronous=False,
            )
            logger.info("Status batch applied", target_status=target.value, requested=len(ids), moved=len(moved))

        return {"processed_count": len(plans)}
