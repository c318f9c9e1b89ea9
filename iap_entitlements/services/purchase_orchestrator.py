"""Purchase orchestrator - drives one purchase attempt through the gateway.

State machine: Idle -> Attempting -> {Success, Pending, Cancelled, Failed}.
Pending is resolved later by the update listener.
"""

from iap_entitlements.errors import GatewayUnavailable, LedgerIOFailure, UnknownOutcome
from iap_entitlements.logging_config import get_logger, purchase_log_context
from iap_entitlements.models import (
    Product,
    ProductCategory,
    PurchaseOutcome,
    PurchaseResult,
    PurchaseStatus,
)
from iap_entitlements.repositories.consumable_ledger import ConsumableLedger
from iap_entitlements.repositories.store_state import StoreState
from iap_entitlements.services.entitlement_reconciler import EntitlementReconciler
from iap_entitlements.services.store_gateway import StoreGateway
from iap_entitlements.verification import verify

logger = get_logger(__name__)


class PurchaseOrchestrator:
    """Runs purchase attempts and records their outcome in the shared state.

    The resulting status is also returned for convenience; observers get it
    through the STATUS topic.
    """

    def __init__(
        self,
        gateway: StoreGateway,
        state: StoreState,
        ledger: ConsumableLedger,
        reconciler: EntitlementReconciler,
    ):
        self._gateway = gateway
        self._state = state
        self._ledger = ledger
        self._reconciler = reconciler

    async def purchase(self, product: Product) -> PurchaseStatus:
        """Attempt to buy a product.

        Args:
            product: Product to buy

        Returns:
            The status the attempt ended in
        """
        with purchase_log_context(product.id):
            return await self._attempt(product)

    async def _attempt(self, product: Product) -> PurchaseStatus:
        # Attempt boundary: the previous attempt's status no longer applies.
        self._state.set_status(PurchaseStatus.unknown(), product_id=product.id)
        logger.info("purchase_attempt_started", category=product.category)
        marker = self._state.resolution_marker(product.id)

        try:
            result = await self._gateway.purchase(product)
        except Exception as e:
            logger.error(
                "purchase_gateway_call_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            return self._fail(product, e)

        outcome = result.outcome if isinstance(result, PurchaseResult) else None

        if outcome == PurchaseOutcome.SUCCESS:
            return await self._complete(product, result)

        if outcome == PurchaseOutcome.PENDING:
            self._state.add_pending(product.id, since_marker=marker)
            return self._finish_attempt(product, PurchaseStatus.pending())

        if outcome == PurchaseOutcome.USER_CANCELLED:
            self._state.remove_pending(product.id)
            return self._finish_attempt(product, PurchaseStatus.cancelled())

        logger.warning("purchase_outcome_unknown", outcome=repr(result))
        return self._fail(product, UnknownOutcome(outcome or result))

    async def _complete(self, product: Product, result: PurchaseResult) -> PurchaseStatus:
        try:
            if result.verification is None:
                raise UnknownOutcome(result)
            transaction = verify(result.verification)
        except Exception as e:
            # Not finished: stays available for re-verification and restore.
            logger.warning(
                "purchase_verification_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            return self._fail(product, e)

        self._state.remove_pending(product.id)

        if ProductCategory.parse(transaction.category) == ProductCategory.CONSUMABLE:
            try:
                self._ledger.add(
                    transaction.product_id, 1, transaction_id=transaction.transaction_id
                )
            except LedgerIOFailure as e:
                # Not finished: the update feed redelivers it.
                logger.error(
                    "purchase_credit_failed",
                    transaction_id=transaction.transaction_id,
                    error=str(e),
                )
                return self._fail(product, e)

        try:
            await self._reconciler.reconcile()
        except GatewayUnavailable as e:
            logger.warning("purchase_reconciliation_failed", error=str(e))

        try:
            await self._gateway.finish(transaction.transaction_id)
        except Exception as e:
            logger.error(
                "transaction_finish_failed",
                transaction_id=transaction.transaction_id,
                error=str(e),
                error_type=type(e).__name__,
            )

        return self._finish_attempt(product, PurchaseStatus.success(transaction.product_id))

    def _fail(self, product: Product, error: BaseException) -> PurchaseStatus:
        self._state.remove_pending(product.id)
        return self._finish_attempt(product, PurchaseStatus.from_error(error))

    def _finish_attempt(self, product: Product, status: PurchaseStatus) -> PurchaseStatus:
        self._state.set_status(status, product_id=product.id)
        logger.info("purchase_attempt_finished", status=str(status))
        return status
