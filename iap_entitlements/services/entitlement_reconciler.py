"""Entitlement reconciler - re-derives purchased sets from the gateway.

Responsibilities:
- Walk the gateway's current-entitlements feed
- Skip entries that fail verification without aborting the pass
- Apply the client-side fixed-term expiry policy on every pass
- Replace the whole entitlement snapshot at the end of the pass
"""

from typing import Callable, Optional

from iap_entitlements.errors import GatewayUnavailable
from iap_entitlements.logging_config import get_logger
from iap_entitlements.models import (
    EntitlementSnapshot,
    ProductCategory,
    RenewalState,
    TransactionRecord,
)
from iap_entitlements.repositories.catalog_cache import CatalogCache
from iap_entitlements.repositories.store_state import StoreState
from iap_entitlements.services.store_gateway import StoreGateway
from iap_entitlements.utils.billing_period import add_billing_period
from iap_entitlements.utils.clock import system_clock
from iap_entitlements.verification import verify

logger = get_logger(__name__)

DEFAULT_FIXED_TERM_PERIOD = "P1Y"


class EntitlementReconciler:
    """Rebuilds the entitlement snapshot from the gateway's transaction history.

    Passes triggered by the orchestrator and by the update listener may
    interleave; each one ends in a single atomic snapshot replacement, so the
    last finished pass wins.
    """

    def __init__(
        self,
        gateway: StoreGateway,
        catalog: CatalogCache,
        state: StoreState,
        fixed_term_period: str = DEFAULT_FIXED_TERM_PERIOD,
        clock: Optional[Callable[[], int]] = None,
    ):
        """Initialize reconciler.

        Args:
            gateway: Store gateway providing the entitlements feed
            catalog: Catalog used to resolve purchased product ids
            state: Shared state receiving the snapshot
            fixed_term_period: ISO 8601 term of fixed-term products
            clock: Callable returning current time in millis (defaults to wall clock)
        """
        self._gateway = gateway
        self._catalog = catalog
        self._state = state
        self._fixed_term_period = fixed_term_period
        self._clock = clock or system_clock

    def fixed_term_expiry_millis(self, transaction: TransactionRecord) -> int:
        """Expiry of a fixed-term purchase (Unix millis)."""
        return add_billing_period(transaction.purchase_time_millis, self._fixed_term_period)

    async def reconcile(self) -> EntitlementSnapshot:
        """Run one reconciliation pass.

        Returns:
            The snapshot that was installed

        Raises:
            GatewayUnavailable: If the entitlements feed itself failed; the
                previous snapshot is kept
        """
        now_millis = self._clock()
        one_time: set[str] = set()
        fixed_term: set[str] = set()
        auto_renewing: set[str] = set()
        skipped = 0

        try:
            async for result in self._gateway.current_entitlements():
                try:
                    transaction = verify(result)
                except Exception as e:
                    skipped += 1
                    logger.warning(
                        "entitlement_verification_failed",
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                    continue

                category = ProductCategory.parse(transaction.category)
                product_id = transaction.product_id

                if category == ProductCategory.ONE_TIME:
                    if self._catalog.contains(product_id, category):
                        one_time.add(product_id)

                elif category == ProductCategory.FIXED_TERM:
                    if self._catalog.contains(product_id, category):
                        expiry_millis = self.fixed_term_expiry_millis(transaction)
                        if now_millis < expiry_millis:
                            fixed_term.add(product_id)
                        else:
                            logger.debug(
                                "fixed_term_entitlement_expired",
                                product_id=product_id,
                                expiry_millis=expiry_millis,
                            )

                elif category == ProductCategory.AUTO_RENEWING:
                    if self._catalog.contains(product_id, category):
                        auto_renewing.add(product_id)

                else:
                    logger.debug(
                        "entitlement_category_skipped",
                        product_id=product_id,
                        category=transaction.category,
                    )
        except Exception as e:
            logger.error(
                "entitlements_feed_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            if isinstance(e, GatewayUnavailable):
                raise
            raise GatewayUnavailable("current_entitlements", e) from e

        snapshot = EntitlementSnapshot(
            one_time=frozenset(one_time),
            fixed_term=frozenset(fixed_term),
            auto_renewing=frozenset(auto_renewing),
            subscription_group_state=await self._subscription_group_state(),
        )
        self._state.replace_entitlements(snapshot)

        logger.info(
            "reconciliation_completed",
            one_time=len(one_time),
            fixed_term=len(fixed_term),
            auto_renewing=len(auto_renewing),
            skipped=skipped,
        )
        return snapshot

    async def _subscription_group_state(self) -> Optional[RenewalState]:
        """Renewal state of the first auto-renewing product's group, best-effort."""
        subscriptions = self._catalog.auto_renewing
        if not subscriptions:
            return None
        try:
            return await self._gateway.subscription_group_state(subscriptions[0])
        except Exception as e:
            logger.warning(
                "subscription_group_state_unavailable",
                product_id=subscriptions[0].id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return None
