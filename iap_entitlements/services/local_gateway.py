"""Local store gateway - in-process emulator of a storefront.

Serves a configured catalog, generates transactions, returns scripted
purchase outcomes and feeds a live update queue. Used for development
without a real storefront and as the gateway in tests.
"""

import asyncio
from collections import defaultdict, deque
from typing import AsyncIterator, Callable, Deque, Dict, Iterable, List, Optional

from iap_entitlements.errors import GatewayUnavailable, VerificationFailure
from iap_entitlements.logging_config import get_logger
from iap_entitlements.models import (
    Product,
    ProductCategory,
    PurchaseOutcome,
    PurchaseResult,
    RenewalState,
    TransactionRecord,
    VerificationResult,
)
from iap_entitlements.services.store_gateway import StoreGateway
from iap_entitlements.utils.clock import system_clock
from iap_entitlements.utils.token_generator import (
    DEFAULT_TRANSACTION_PREFIX,
    generate_transaction_id,
)

logger = get_logger(__name__)


class ScriptedPurchase:
    """One queued purchase outcome for a product."""

    def __init__(
        self,
        outcome: PurchaseOutcome = PurchaseOutcome.SUCCESS,
        verified: bool = True,
        error: Optional[Exception] = None,
    ):
        self.outcome = outcome
        self.verified = verified
        self.error = error


class LocalStoreGateway(StoreGateway):
    """Store gateway backed by in-memory state.

    Purchases succeed and verify unless an outcome was scripted with
    ``script_purchase``. Non-consumable transactions are kept in an
    entitlement history until revoked.
    """

    def __init__(
        self,
        products: Iterable[Product],
        clock: Optional[Callable[[], int]] = None,
        transaction_prefix: str = DEFAULT_TRANSACTION_PREFIX,
    ):
        """Initialize local gateway.

        Args:
            products: Catalog served by ``fetch_products``
            clock: Callable returning current time in millis (defaults to wall clock)
            transaction_prefix: Prefix of generated transaction ids
        """
        self._products: List[Product] = list(products)
        self._clock = clock or system_clock
        self._prefix = transaction_prefix
        self._scripts: Dict[str, Deque[ScriptedPurchase]] = defaultdict(deque)
        self._history: List[TransactionRecord] = []
        self._revoked: set[str] = set()
        self._extra_entitlements: List[VerificationResult] = []
        self._group_states: Dict[str, RenewalState] = {}
        self._updates: "asyncio.Queue[VerificationResult]" = asyncio.Queue()
        self._updates_claimed = False

        self.fetch_error: Optional[Exception] = None
        self.host_available = True
        self.finished_transaction_ids: List[str] = []
        self.refund_requests: List[str] = []
        self.ui_requests: List[str] = []
        self.purchase_calls: List[str] = []

    # Scripting

    def script_purchase(
        self,
        product_id: str,
        outcome: PurchaseOutcome = PurchaseOutcome.SUCCESS,
        verified: bool = True,
        error: Optional[Exception] = None,
    ) -> None:
        """Queue the outcome of the next purchase of a product.

        Args:
            product_id: Product the outcome applies to
            outcome: Outcome to return
            verified: For SUCCESS, whether the transaction passes verification
            error: If set, the purchase call raises this error instead
        """
        self._scripts[product_id].append(ScriptedPurchase(outcome, verified, error))

    def set_subscription_group_state(self, group_id: str, state: RenewalState) -> None:
        self._group_states[group_id] = state

    def add_entitlement_result(self, result: VerificationResult) -> None:
        """Inject a raw entry into the entitlements feed (e.g., an unverified one)."""
        self._extra_entitlements.append(result)

    def record_transaction(self, product: Product) -> TransactionRecord:
        """Create a transaction for a product as if it had been bought."""
        transaction = TransactionRecord(
            transaction_id=generate_transaction_id(self._prefix, self._clock()),
            product_id=product.id,
            category=product.category,
            purchase_time_millis=self._clock(),
        )
        self._history.append(transaction)
        logger.debug(
            "local_transaction_recorded",
            product_id=product.id,
            transaction_id=transaction.transaction_id,
        )
        return transaction

    def approve_pending(self, product_id: str) -> TransactionRecord:
        """Resolve a pending purchase and deliver it through the update feed.

        Raises:
            KeyError: If the product is not in the catalog
        """
        transaction = self.record_transaction(self._get_product(product_id))
        self.emit_update(VerificationResult.verified(transaction))
        return transaction

    def revoke(self, transaction_id: str) -> None:
        """Remove a transaction from the entitlement history (refund approved)."""
        self._revoked.add(transaction_id)
        logger.info("local_transaction_revoked", transaction_id=transaction_id)

    def emit_update(self, result: VerificationResult) -> None:
        """Push an event into the live transaction update feed."""
        self._updates.put_nowait(result)

    @property
    def history(self) -> List[TransactionRecord]:
        return list(self._history)

    def _get_product(self, product_id: str) -> Product:
        for product in self._products:
            if product.id == product_id:
                return product
        raise KeyError(f"Product not found: {product_id}")

    def _require_host(self, operation: str) -> None:
        if not self.host_available:
            raise GatewayUnavailable(operation)

    # StoreGateway

    async def fetch_products(self, product_ids: Iterable[str]) -> List[Product]:
        if self.fetch_error is not None:
            raise self.fetch_error
        wanted = set(product_ids)
        return [p for p in self._products if p.id in wanted]

    async def purchase(self, product: Product) -> PurchaseResult:
        self.purchase_calls.append(product.id)
        scripts = self._scripts.get(product.id)
        script = scripts.popleft() if scripts else ScriptedPurchase()

        if script.error is not None:
            raise script.error
        if script.outcome == PurchaseOutcome.PENDING:
            return PurchaseResult.pending()
        if script.outcome == PurchaseOutcome.USER_CANCELLED:
            return PurchaseResult.user_cancelled()
        if script.outcome == PurchaseOutcome.UNKNOWN:
            return PurchaseResult.unknown()

        transaction = self.record_transaction(product)
        if script.verified:
            return PurchaseResult.success(VerificationResult.verified(transaction))
        return PurchaseResult.success(
            VerificationResult.unverified(
                VerificationFailure("invalid signature", transaction.transaction_id),
                transaction,
            )
        )

    async def current_entitlements(self) -> AsyncIterator[VerificationResult]:
        for transaction in list(self._history):
            if transaction.transaction_id in self._revoked:
                continue
            if transaction.category == ProductCategory.CONSUMABLE:
                continue
            yield VerificationResult.verified(transaction)
        for result in list(self._extra_entitlements):
            yield result

    async def transaction_updates(self) -> AsyncIterator[VerificationResult]:
        if self._updates_claimed:
            raise GatewayUnavailable("transaction_updates")
        self._updates_claimed = True
        while True:
            yield await self._updates.get()

    async def finish(self, transaction_id: str) -> None:
        self.finished_transaction_ids.append(transaction_id)

    async def subscription_group_state(self, product: Product) -> Optional[RenewalState]:
        if product.subscription_group_id is None:
            return None
        return self._group_states.get(product.subscription_group_id)

    async def latest_transaction(self, product_id: str) -> Optional[VerificationResult]:
        for transaction in reversed(self._history):
            if transaction.product_id == product_id:
                return VerificationResult.verified(transaction)
        return None

    async def present_code_redemption(self) -> None:
        self._require_host("present_code_redemption")
        self.ui_requests.append("code_redemption")

    async def manage_subscriptions(self) -> None:
        self._require_host("manage_subscriptions")
        self.ui_requests.append("manage_subscriptions")

    async def request_refund(self, transaction_id: str) -> None:
        self._require_host("request_refund")
        self.refund_requests.append(transaction_id)
