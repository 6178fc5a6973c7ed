"""Order Lifecycle Engine — the operations the core exposes.

The engine wires the components together and owns the process-local state
(local cache tier, subscription registry). ``build_engine`` constructs one
at process start; tests build isolated instances the same way. Building an
engine registers its effect dispatcher with the order event handlers.
"""

import functools

import structlog
from protean.exceptions import ExpectedVersionError, ObjectNotFoundError, ValidationError

from orderflow.access import get_resolver
from orderflow.access.port import AccessResolver, ActorContext
from orderflow.cache.layer import CacheLayer
from orderflow.cache.tiers import LocalTier, MemorySharedTier, RedisSharedTier, SharedTier
from orderflow.catalog import get_catalog
from orderflow.catalog.port import CatalogOracle
from orderflow.counters.sequence import BusinessSequence
from orderflow.errors import OrderflowError, translate_domain_error
from orderflow.fares import get_fare_calculator
from orderflow.fares.port import FareCalculator
from orderflow.idempotency.coordinator import IdempotencyCoordinator
from orderflow.lifecycle.creation import OrderCreation
from orderflow.lifecycle.effects import EffectDispatcher, set_dispatcher
from orderflow.lifecycle.queries import OrderQueries, ViewerContext
from orderflow.lifecycle.requests import Cart, CustomerContext, FulfillmentContext, TransitionExtra
from orderflow.lifecycle.settlement import TabSettlement
from orderflow.lifecycle.status_update import StatusTransitions
from orderflow.order.reads import OrderReads, default_reads
from orderflow.payments import get_gateway
from orderflow.payments.port import PaymentGateway
from orderflow.pricing.gate import PricingGate
from orderflow.realtime.bus import EventBus
from orderflow.realtime.gateway import Connection, RealtimeGateway, SubscriptionRegistry
from orderflow.realtime.tracking import TrackingBoard
from orderflow.settings import Settings
from orderflow.utils.locks import KeyedLocks

logger = structlog.get_logger(__name__)


def _domain_errors_translated(method):
    @functools.wraps(method)
    def wrapper(*args, **kwargs):
        try:
            return method(*args, **kwargs)
        except OrderflowError:
            raise
        except (ValidationError, ObjectNotFoundError, ExpectedVersionError) as exc:
            raise translate_domain_error(exc) from exc
        except Exception as exc:
            logger.exception("Unexpected engine failure", operation=method.__name__)
            raise translate_domain_error(exc) from exc

    return wrapper


class OrderLifecycleEngine:
    def __init__(
        self,
        settings: Settings,
        cache: CacheLayer,
        registry: SubscriptionRegistry,
        tracking: TrackingBoard,
        access: AccessResolver,
        catalog: CatalogOracle,
        fares: FareCalculator,
        payments: PaymentGateway,
        reads: OrderReads,
        locks: KeyedLocks | None = None,
    ) -> None:
        locks = locks or KeyedLocks()
        self.settings = settings
        self.cache = cache
        self.registry = registry
        self.access = access
        self.tracking = tracking
        self.bus = EventBus(registry)
        self.gateway = RealtimeGateway(registry)
        self.sequence = BusinessSequence(locks=locks)
        self.coordinator = IdempotencyCoordinator(settings=settings, locks=locks, claims=cache.shared)
        self.dispatcher = EffectDispatcher(self.bus, tracking, self.sequence)
        set_dispatcher(self.dispatcher)
        self.pricing = PricingGate(catalog, fares, cache, settings)
        self.creation = OrderCreation(
            access=access,
            catalog=catalog,
            pricing=self.pricing,
            coordinator=self.coordinator,
            sequence=self.sequence,
            reads=reads,
        )
        self.transitions = StatusTransitions()
        self.queries = OrderQueries(cache, self.sequence, reads, catalog, settings)
        self.settlement = TabSettlement(payments, reads, settings)

    # -------------------------------------------------------------------
    # Creation and transitions
    # -------------------------------------------------------------------
    @_domain_errors_translated
    def create_order(
        self,
        idempotency_key: str,
        customer: CustomerContext,
        cart: Cart,
        fulfillment: FulfillmentContext,
    ) -> dict:
        return self.creation.create(idempotency_key, customer, cart, fulfillment)

    @_domain_errors_translated
    def transition_order_status(
        self,
        order_ids: list[str],
        target_status: str,
        actor: ActorContext,
        extra: TransitionExtra | None = None,
    ) -> dict:
        return self.transitions.transition(order_ids, target_status, actor, extra)

    @_domain_errors_translated
    def settle_tab(self, tab_id: str, actor: ActorContext, payment_method: str) -> dict:
        return self.settlement.settle(tab_id, actor, payment_method)

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    @_domain_errors_translated
    def get_order_status(self, order_ref: str, viewer: ViewerContext, lite: bool = False) -> dict:
        return self.queries.get_order_status(order_ref, viewer, lite=lite)

    @_domain_errors_translated
    def list_business_orders(self, actor: ActorContext, statuses: list[str] | None = None) -> list[dict]:
        return self.queries.list_business_orders(actor, statuses)

    # -------------------------------------------------------------------
    # Realtime
    # -------------------------------------------------------------------
    def subscribe(self, connection: Connection, channels: list[str]) -> int:
        return self.registry.subscribe(connection, channels)

    def unsubscribe(self, connection: Connection, channels: list[str]) -> int:
        return self.registry.unsubscribe(connection, channels)

    def publish(self, event_type: str, channels: list[str], payload: dict | None = None) -> int:
        return self.bus.publish(event_type, channels, payload)

    def shutdown(self) -> None:
        self.cache.local.clear()
        logger.info("Engine shut down", open_connections=len(self.registry))


def build_shared_tier(settings: Settings) -> SharedTier:
    if settings.redis_url:
        return RedisSharedTier.from_url(settings.redis_url)
    return MemorySharedTier()


def build_engine(
    settings: Settings | None = None,
    *,
    shared: SharedTier | None = None,
    access: AccessResolver | None = None,
    catalog: CatalogOracle | None = None,
    fares: FareCalculator | None = None,
    payments: PaymentGateway | None = None,
    reads: OrderReads | None = None,
) -> OrderLifecycleEngine:
    """Build an engine with fresh process-local state.

    Collaborators default to the ones registered with the port factories.
    """
    settings = settings or Settings.from_env()
    shared = shared if shared is not None else build_shared_tier(settings)
    cache = CacheLayer(
        LocalTier(max_entries=settings.local_cache_max_entries),
        shared,
        local_ttl_cap=settings.local_ttl_cap_seconds,
        backfill_ttl=settings.local_backfill_ttl_seconds,
    )
    return OrderLifecycleEngine(
        settings=settings,
        cache=cache,
        registry=SubscriptionRegistry(),
        tracking=TrackingBoard(shared, ttl_seconds=settings.tracking_ttl_seconds),
        access=access or get_resolver(),
        catalog=catalog or get_catalog(),
        fares=fares or get_fare_calculator(),
        payments=payments or get_gateway(),
        reads=reads or default_reads(settings.scan_limit),
    )
