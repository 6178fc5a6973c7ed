"""Read strategies for multi-order lookups.

Lookups that group orders (by tab, by seating token, by business) need
store-side filtering and ordering. When a store cannot serve such a query,
the same lookup is answered by a broad fetch scoped to the business followed
by filtering and sorting in process. Both strategies implement
``OrderReads`` so callers never know which one answered.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable

import structlog
from protean.utils.globals import current_domain

from orderflow.order.order import Order
from orderflow.order.status import TAB_TOKEN_STATUSES, OrderStatus

logger = structlog.get_logger(__name__)

GROUP_LIMIT = 120


class QueryUnavailable(Exception):
    """The store cannot serve a filtered or ordered query."""


def _newest_first(orders: Iterable[Order]) -> list[Order]:
    return sorted(orders, key=lambda o: o.created_at, reverse=True)


class OrderReads(ABC):
    @abstractmethod
    def orders_on_tab(self, tab_id: str, business_id: str | None = None) -> list[Order]:
        """Orders sharing a tab, newest first."""

    @abstractmethod
    def orders_with_seating_token(self, business_id: str, seating_token: str) -> list[Order]:
        """Orders sharing a seating token, newest first."""

    @abstractmethod
    def orders_for_business(self, business_id: str, statuses: Iterable[str] | None = None) -> list[Order]:
        """A business's orders, optionally restricted to ``statuses``, newest first."""

    def seated_order_on_tab(self, business_id: str, tab_id: str) -> Order | None:
        """Newest order on the tab still holding its seating token, served ones included."""
        for order in self.orders_on_tab(tab_id, business_id=business_id):
            if OrderStatus(order.status) in TAB_TOKEN_STATUSES and order.seating_token:
                return order
        return None


class IndexedOrderReads(OrderReads):
    """Pushes filtering and ordering down to the store."""

    def _query(self, limit: int = GROUP_LIMIT, **filters) -> list[Order]:
        dao = current_domain.repository_for(Order)._dao
        try:
            return dao.query.filter(**filters).order_by("-created_at").limit(limit).all().items
        except NotImplementedError as exc:
            raise QueryUnavailable(str(exc)) from exc

    def orders_on_tab(self, tab_id, business_id=None):
        filters = {"tab_id": tab_id}
        if business_id:
            filters["business_id"] = business_id
        return self._query(**filters)

    def orders_with_seating_token(self, business_id, seating_token):
        return self._query(business_id=business_id, seating_token=seating_token)

    def orders_for_business(self, business_id, statuses=None):
        filters = {"business_id": business_id}
        if statuses:
            filters["status__in"] = list(statuses)
        return self._query(limit=500, **filters)


class ScanOrderReads(OrderReads):
    """Broad fetch, then filter and sort in process."""

    def __init__(self, scan_limit: int = 500) -> None:
        self.scan_limit = scan_limit

    def _scan(self, business_id: str | None, **equals) -> list[Order]:
        dao = current_domain.repository_for(Order)._dao
        query = dao.query
        if business_id:
            query = query.filter(business_id=business_id)
        if equals:
            query = query.filter(**equals)
        return query.limit(self.scan_limit).all().items

    def _select(
        self,
        business_id: str | None,
        predicate: Callable[[Order], bool],
        limit: int,
        **equals,
    ) -> list[Order]:
        return _newest_first(o for o in self._scan(business_id, **equals) if predicate(o))[:limit]

    def orders_on_tab(self, tab_id, business_id=None):
        # Without a business to scope the scan, a plain equality filter on the
        # tab keeps the fetch from stopping at the scan limit.
        equals = {} if business_id else {"tab_id": tab_id}
        return self._select(business_id, lambda o: o.tab_id == tab_id, GROUP_LIMIT, **equals)

    def orders_with_seating_token(self, business_id, seating_token):
        return self._select(business_id, lambda o: o.seating_token == seating_token, GROUP_LIMIT)

    def orders_for_business(self, business_id, statuses=None):
        wanted = set(statuses) if statuses else None
        return self._select(
            business_id,
            lambda o: wanted is None or o.status in wanted,
            self.scan_limit,
        )


class FallbackOrderReads(OrderReads):
    """Tries ``primary`` and answers from ``fallback`` when it is unavailable."""

    def __init__(self, primary: OrderReads, fallback: OrderReads) -> None:
        self.primary = primary
        self.fallback = fallback

    def _run(self, name: str, *args, **kwargs) -> list[Order]:
        try:
            return getattr(self.primary, name)(*args, **kwargs)
        except QueryUnavailable as exc:
            logger.warning("Indexed query unavailable, scanning instead", query=name, error=str(exc))
            return getattr(self.fallback, name)(*args, **kwargs)

    def orders_on_tab(self, tab_id, business_id=None):
        return self._run("orders_on_tab", tab_id, business_id=business_id)

    def orders_with_seating_token(self, business_id, seating_token):
        return self._run("orders_with_seating_token", business_id, seating_token)

    def orders_for_business(self, business_id, statuses=None):
        return self._run("orders_for_business", business_id, statuses=statuses)


def default_reads(scan_limit: int = 500) -> OrderReads:
    return FallbackOrderReads(IndexedOrderReads(), ScanOrderReads(scan_limit=scan_limit))
