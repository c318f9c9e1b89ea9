"""Store service - the coordination layer presentation code talks to.

Owns the gateway handle, shared state, catalog, ledger, reconciler,
orchestrator and update listener, and wires them to one event dispatcher.
"""

from typing import Callable, Dict, Iterable, List, Optional

from iap_entitlements.errors import GatewayUnavailable, UnknownOutcome
from iap_entitlements.logging_config import get_logger
from iap_entitlements.models import (
    EntitlementSnapshot,
    Product,
    ProductCategory,
    PurchaseStatus,
)
from iap_entitlements.models.events import StateChangeEvent, StateTopic
from iap_entitlements.repositories.catalog_cache import CatalogCache
from iap_entitlements.repositories.consumable_ledger import ConsumableLedger
from iap_entitlements.repositories.key_value_store import (
    InMemoryKeyValueStore,
    JsonFileKeyValueStore,
    KeyValueStore,
)
from iap_entitlements.repositories.store_state import StoreState
from iap_entitlements.services.entitlement_reconciler import (
    DEFAULT_FIXED_TERM_PERIOD,
    EntitlementReconciler,
)
from iap_entitlements.services.event_dispatcher import StateEventDispatcher
from iap_entitlements.services.purchase_orchestrator import PurchaseOrchestrator
from iap_entitlements.services.store_gateway import StoreGateway
from iap_entitlements.services.update_listener import UpdateListener
from iap_entitlements.utils.clock import system_clock
from iap_entitlements.verification import verify

logger = get_logger(__name__)


class StoreService:
    """Purchase core facade.

    Lifecycle: ``await start()`` once, ``await shutdown()`` once. Queries
    read immutable snapshots and never block on gateway calls.
    """

    def __init__(
        self,
        gateway: StoreGateway,
        product_ids: Iterable[str],
        storage: Optional[KeyValueStore] = None,
        fixed_term_period: str = DEFAULT_FIXED_TERM_PERIOD,
        clock: Optional[Callable[[], int]] = None,
        dispatcher: Optional[StateEventDispatcher] = None,
    ):
        """Initialize store service.

        Args:
            gateway: Store gateway
            product_ids: Products to load into the catalog at startup
            storage: Ledger persistence handle (in-memory if not provided)
            fixed_term_period: ISO 8601 term of fixed-term products
            clock: Callable returning current time in millis (defaults to wall clock)
            dispatcher: Event dispatcher (a fresh one if not provided)
        """
        clock = clock or system_clock
        self._product_ids = list(product_ids)
        self._gateway = gateway
        self._dispatcher = dispatcher or StateEventDispatcher(clock=clock)
        self._state = StoreState(self._dispatcher)
        self._catalog = CatalogCache(gateway, self._dispatcher)
        self._ledger = ConsumableLedger(storage or InMemoryKeyValueStore(), self._dispatcher)
        self._reconciler = EntitlementReconciler(
            gateway, self._catalog, self._state, fixed_term_period, clock=clock
        )
        self._orchestrator = PurchaseOrchestrator(
            gateway, self._state, self._ledger, self._reconciler
        )
        self._listener = UpdateListener(gateway, self._state, self._ledger, self._reconciler)
        self._started = False
        self._stopped = False

    @classmethod
    def from_config(cls, gateway: StoreGateway, config, **kwargs) -> "StoreService":
        """Build a service from a loaded ``Config``.

        Args:
            gateway: Store gateway
            config: iap_entitlements.config.Config instance
            **kwargs: Passed through to the constructor (clock, dispatcher)
        """
        ledger_path = config.ledger_path
        storage = JsonFileKeyValueStore(ledger_path) if ledger_path else InMemoryKeyValueStore()
        return cls(
            gateway,
            config.product_ids,
            storage=storage,
            fixed_term_period=config.fixed_term_period,
            **kwargs,
        )

    # Lifecycle

    async def start(self) -> None:
        """Start listening, load the catalog, reconcile and load balances.

        Gateway failures here are logged; the service starts with whatever
        state could be built.

        Raises:
            RuntimeError: If called twice
        """
        if self._started:
            raise RuntimeError("Store service already started")
        self._started = True
        logger.info("store_service_starting", products=len(self._product_ids))

        self._listener.start()

        try:
            await self._catalog.load(self._product_ids)
        except GatewayUnavailable as e:
            logger.error("store_service_catalog_unavailable", error=str(e))

        try:
            await self._reconciler.reconcile()
        except GatewayUnavailable as e:
            logger.error("store_service_entitlements_unavailable", error=str(e))

        self._ledger.load(self._product_ids)
        logger.info("store_service_started")

    async def shutdown(self) -> None:
        """Stop the update listener and wait for it. Idempotent."""
        if self._stopped:
            return
        self._stopped = True
        logger.info("store_service_shutting_down")
        await self._listener.stop()
        logger.info("store_service_stopped")

    # Catalog

    async def reload_catalog(self) -> None:
        """Fetch the catalog again.

        Raises:
            GatewayUnavailable: If the fetch failed; the previous catalog is kept
        """
        await self._catalog.load(self._product_ids)

    @property
    def catalog(self) -> CatalogCache:
        return self._catalog

    def products(self, category: ProductCategory) -> List[Product]:
        return self._catalog.products(category)

    # Purchasing

    async def purchase(self, product_id: str) -> PurchaseStatus:
        """Buy a catalog product.

        Returns:
            Resulting purchase status; FAILED if the product is not in the catalog
        """
        product = self._catalog.find(product_id)
        if product is None:
            status = PurchaseStatus.failed(
                f"Product is not available: {product_id}", error_type="ProductNotFound"
            )
            self._state.set_status(status, product_id=product_id)
            return status
        return await self._orchestrator.purchase(product)

    async def restore_purchases(self) -> EntitlementSnapshot:
        """Run a reconciliation pass on demand.

        Raises:
            GatewayUnavailable: If the entitlements feed failed
        """
        return await self._reconciler.reconcile()

    @property
    def purchase_status(self) -> PurchaseStatus:
        return self._state.purchase_status

    @property
    def pending_product_ids(self) -> frozenset:
        return self._state.pending_product_ids

    def is_pending(self, product_id: str) -> bool:
        return self._state.is_pending(product_id)

    # Entitlements

    @property
    def entitlements(self) -> EntitlementSnapshot:
        return self._state.entitlements

    def is_purchased(self, product: Product) -> bool:
        """Whether the user currently owns a non-consumable product."""
        category = product.ownership
        if category is None:
            return False
        return product.id in self._state.entitlements.for_category(category)

    def purchased_products(self, category: ProductCategory) -> List[Product]:
        """Owned catalog products of a category, ascending by price."""
        owned = self._state.entitlements.for_category(category)
        return [p for p in self._catalog.products(category) if p.id in owned]

    # Consumables

    def balance(self, product_id: str) -> int:
        return self._ledger.get_balance(product_id)

    def balances(self) -> Dict[str, int]:
        return self._ledger.snapshot()

    def consume(self, product_id: str, amount: int = 1) -> bool:
        """Spend consumable credits; False if the balance does not cover it."""
        return self._ledger.consume(product_id, amount)

    # Notifications

    def subscribe(
        self,
        callback: Callable[[StateChangeEvent], None],
        topic: Optional[StateTopic] = None,
    ) -> Callable[[], None]:
        """Subscribe to state changes. Returns the unsubscribe callable."""
        return self._dispatcher.subscribe(callback, topic)

    # Pass-through UI triggers

    async def present_code_redemption(self) -> None:
        try:
            await self._gateway.present_code_redemption()
        except Exception as e:
            self._report_ui_failure("present_code_redemption", e)

    async def manage_subscriptions(self) -> None:
        try:
            await self._gateway.manage_subscriptions()
        except Exception as e:
            self._report_ui_failure("manage_subscriptions", e)

    async def request_refund(self, product_id: str) -> None:
        """Request a refund for the latest transaction of a product."""
        try:
            latest = await self._gateway.latest_transaction(product_id)
            if latest is None:
                raise UnknownOutcome(f"no transaction for {product_id}")
            transaction = verify(latest)
            await self._gateway.request_refund(transaction.transaction_id)
            logger.info(
                "refund_requested",
                product_id=product_id,
                transaction_id=transaction.transaction_id,
            )
        except Exception as e:
            self._report_ui_failure("request_refund", e, product_id=product_id)

    def _report_ui_failure(
        self, operation: str, error: Exception, product_id: Optional[str] = None
    ) -> None:
        logger.warning(
            "store_ui_request_failed",
            operation=operation,
            error=str(error),
            error_type=type(error).__name__,
        )
        self._state.set_status(PurchaseStatus.from_error(error), product_id=product_id)

    @property
    def listener(self) -> UpdateListener:
        return self._listener

    def __repr__(self) -> str:
        return f"StoreService(catalog={self._catalog!r}, state={self._state!r})"
