"""Identity & permission resolver port.

The resolver turns request credentials into an ``ActorContext`` once per
request. The engine only ever checks capabilities on that context; how
credentials are verified is the adapter's business.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum


class Permission(Enum):
    VIEW_ORDERS = "view_orders"
    UPDATE_ORDER_STATUS = "update_order_status"
    VIEW_DINE_IN_ORDERS = "view_dine_in_orders"
    MANAGE_DINE_IN = "manage_dine_in"
    PROCESS_PAYMENT = "process_payment"
    REFUND_ORDER = "refund_order"
    ASSIGN_RIDER = "assign_rider"
    VIEW_PAYMENTS = "view_payments"
    VIEW_CUSTOMERS = "view_customers"


P = Permission

ROLE_PERMISSIONS: dict[str, frozenset[Permission]] = {
    "owner": frozenset(Permission),
    "street-vendor": frozenset(Permission),
    "manager": frozenset(
        {
            P.VIEW_ORDERS,
            P.UPDATE_ORDER_STATUS,
            P.VIEW_DINE_IN_ORDERS,
            P.MANAGE_DINE_IN,
            P.PROCESS_PAYMENT,
            P.ASSIGN_RIDER,
            P.VIEW_PAYMENTS,
            P.VIEW_CUSTOMERS,
        }
    ),
    "chef": frozenset({P.VIEW_ORDERS, P.UPDATE_ORDER_STATUS, P.VIEW_DINE_IN_ORDERS}),
    "waiter": frozenset({P.VIEW_ORDERS, P.UPDATE_ORDER_STATUS, P.VIEW_DINE_IN_ORDERS, P.MANAGE_DINE_IN}),
    "cashier": frozenset({P.VIEW_ORDERS, P.VIEW_DINE_IN_ORDERS, P.PROCESS_PAYMENT, P.VIEW_PAYMENTS}),
    "order_taker": frozenset({P.VIEW_ORDERS, P.UPDATE_ORDER_STATUS, P.VIEW_CUSTOMERS}),
    "rider": frozenset({P.UPDATE_ORDER_STATUS}),
    "customer": frozenset(),
    "guest": frozenset(),
}

STAFF_ROLES = frozenset(ROLE_PERMISSIONS) - {"customer", "guest", "rider"}


def permissions_for(role: str) -> frozenset[Permission]:
    return ROLE_PERMISSIONS.get(role, frozenset())


@dataclass(frozen=True)
class ActorContext:
    actor_id: str | None
    role: str
    business_id: str | None = None
    permissions: frozenset[Permission] = field(default_factory=frozenset)
    name: str | None = None
    phone: str | None = None

    @classmethod
    def for_role(cls, actor_id: str | None, role: str, business_id: str | None = None, **kwargs) -> "ActorContext":
        return cls(
            actor_id=actor_id,
            role=role,
            business_id=business_id,
            permissions=permissions_for(role),
            **kwargs,
        )

    @classmethod
    def guest(cls) -> "ActorContext":
        return cls(actor_id=None, role="guest")

    @property
    def is_guest(self) -> bool:
        return self.actor_id is None

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES

    def can(self, permission: Permission) -> bool:
        return permission in self.permissions


class AccessResolver(ABC):
    @abstractmethod
    def resolve(self, token: str | None, business_id: str | None = None) -> ActorContext:
        """Resolve credentials, optionally scoped to ``business_id``.

        Raises ``Unauthorized`` for bad credentials and ``Forbidden`` when
        the actor has no standing in the requested business.
        """
        ...
