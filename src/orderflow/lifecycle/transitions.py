"""Status transition planning.

``plan_transition`` decides, without writing anything, whether an actor may
move an order to a target status. Staff act within their own business and
riders only on orders assigned to them. A customer holds no status
permission but may cancel their own order while it is still pending or
confirmed.
"""

from dataclasses import dataclass

from orderflow.access.port import ActorContext, Permission
from orderflow.errors import Conflict, Forbidden, OrderValidationError
from orderflow.lifecycle.requests import TransitionExtra
from orderflow.order.order import Order
from orderflow.order.status import OrderStatus, allowed_targets

CUSTOMER_CANCELLABLE = frozenset({OrderStatus.PENDING, OrderStatus.CONFIRMED})


@dataclass(frozen=True)
class TransitionPlan:
    order_id: str
    business_id: str
    current: OrderStatus
    target: OrderStatus

    @property
    def is_noop(self) -> bool:
        return self.current == self.target


def parse_status(raw: str) -> OrderStatus:
    try:
        return OrderStatus((raw or "").strip().lower())
    except ValueError as exc:
        raise OrderValidationError(f"Unknown status: {raw}", code="INVALID_STATUS") from exc


def required_permission(extra: TransitionExtra) -> Permission:
    return Permission.ASSIGN_RIDER if extra.rider_id else Permission.UPDATE_ORDER_STATUS


def is_own_cancellation(actor: ActorContext, order: Order, target: OrderStatus) -> bool:
    return (
        target == OrderStatus.CANCELLED
        and not actor.is_guest
        and not actor.is_staff
        and actor.actor_id is not None
        and actor.actor_id == order.customer_id
    )


def authorize(actor: ActorContext, order: Order, extra: TransitionExtra, target: OrderStatus | None = None) -> None:
    if target is not None and is_own_cancellation(actor, order, target):
        if extra.rider_id:
            raise Forbidden("Customers cannot assign riders")
        if order.current_status not in CUSTOMER_CANCELLABLE | {OrderStatus.CANCELLED}:
            raise Forbidden("You can only cancel pending or confirmed orders", code="CANCELLATION_WINDOW_CLOSED")
        return

    permission = required_permission(extra)
    if not actor.can(permission):
        raise Forbidden(f"Missing permission: {permission.value}", permission=permission.value)

    if actor.role == "rider":
        if order.rider_id != actor.actor_id:
            raise Forbidden("Order is not assigned to this rider")
    elif actor.business_id != str(order.business_id):
        raise Forbidden("Order belongs to another business")


def plan_transition(order: Order, target: OrderStatus, actor: ActorContext, extra: TransitionExtra) -> TransitionPlan:
    authorize(actor, order, extra, target)
    current = order.current_status
    if current != target and not order.can_move_to(target):
        allowed = sorted(status.value for status in allowed_targets(order.transition_table, current))
        raise Conflict(
            f"Cannot move order {order.id} from {current.value} to {target.value}",
            code="INVALID_TRANSITION",
            order_id=str(order.id),
            current=current.value,
            allowed=allowed,
        )
    return TransitionPlan(
        order_id=str(order.id),
        business_id=str(order.business_id),
        current=current,
        target=target,
    )
