"""Update listener - background consumer of the gateway's transaction feed.

Responsibilities:
- Consume renewals, refunds, restores and externally completed purchases
- Resolve pending purchases and credit consumables
- Re-run reconciliation and finish each handled transaction
- Survive every per-event error; stop only on explicit cancellation
"""

import asyncio
from typing import Optional

from iap_entitlements.errors import GatewayUnavailable, LedgerIOFailure
from iap_entitlements.logging_config import get_logger, purchase_log_context
from iap_entitlements.models import (
    ProductCategory,
    PurchaseStatus,
    TransactionRecord,
    VerificationResult,
)
from iap_entitlements.repositories.consumable_ledger import ConsumableLedger
from iap_entitlements.repositories.store_state import StoreState
from iap_entitlements.services.entitlement_reconciler import EntitlementReconciler
from iap_entitlements.services.store_gateway import StoreGateway
from iap_entitlements.verification import verify

logger = get_logger(__name__)


class UpdateListener:
    """One long-lived asyncio task iterating ``transaction_updates()``.

    Holds only the handles it needs (gateway, state, ledger, reconciler),
    shared with the coordinator. ``stop()`` cancels the task and waits for
    it to exit.
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
        self._task: Optional[asyncio.Task] = None
        self._handled = 0
        self._rejected = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def handled_count(self) -> int:
        """Number of updates applied and finished."""
        return self._handled

    @property
    def rejected_count(self) -> int:
        """Number of updates that were skipped because of an error."""
        return self._rejected

    def start(self) -> asyncio.Task:
        """Start the listener task on the running event loop.

        Raises:
            RuntimeError: If the listener was already started
        """
        if self._task is not None:
            raise RuntimeError("Update listener already started")
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name="transaction-update-listener"
        )
        logger.info("update_listener_started")
        return self._task

    async def stop(self) -> None:
        """Cancel the listener and wait until it has exited. Idempotent."""
        task = self._task
        if task is None or task.done():
            return
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        logger.info("update_listener_stopped", handled=self._handled, rejected=self._rejected)

    async def _run(self) -> None:
        try:
            async for result in self._gateway.transaction_updates():
                try:
                    await self.handle_update(result)
                except Exception as e:
                    self._rejected += 1
                    logger.error(
                        "transaction_update_failed",
                        error=str(e),
                        error_type=type(e).__name__,
                        exc_info=True,
                    )
        except asyncio.CancelledError:
            logger.info("update_listener_cancelled")
            raise
        except Exception as e:
            logger.error(
                "transaction_updates_feed_failed",
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
        else:
            logger.info("transaction_updates_feed_ended")

    async def handle_update(self, result: VerificationResult) -> bool:
        """Apply one transaction update.

        Args:
            result: Verification result from the update feed

        Returns:
            True if the update was applied and finished, False if it was skipped
        """
        try:
            transaction = verify(result)
        except Exception as e:
            self._rejected += 1
            logger.warning(
                "transaction_update_verification_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            return False

        with purchase_log_context(transaction.product_id, transaction.transaction_id):
            return await self._apply(transaction)

    async def _apply(self, transaction: TransactionRecord) -> bool:
        logger.info("transaction_update_received", category=transaction.category)

        if ProductCategory.parse(transaction.category) == ProductCategory.CONSUMABLE:
            try:
                self._ledger.add(
                    transaction.product_id, 1, transaction_id=transaction.transaction_id
                )
            except LedgerIOFailure as e:
                # Not finished: the gateway redelivers it.
                self._rejected += 1
                logger.error("transaction_update_credit_failed", error=str(e))
                return False

        # A pending purchase stays pending until its credit is durable.
        was_pending = self._state.remove_pending(transaction.product_id, from_update=True)

        try:
            await self._reconciler.reconcile()
        except GatewayUnavailable as e:
            logger.warning("transaction_update_reconciliation_failed", error=str(e))

        if was_pending:
            self._state.settle_pending_status(
                PurchaseStatus.success(transaction.product_id), product_id=transaction.product_id
            )

        await self._gateway.finish(transaction.transaction_id)
        self._handled += 1
        return True
