"""Consumable ledger - durable per-product credit balances.

Consumed purchases leave no entitlement record at the store, so the only
evidence of an unspent consumable is this ledger.
"""

import threading
from typing import Dict, Iterable, Optional

from iap_entitlements.errors import LedgerIOFailure
from iap_entitlements.logging_config import get_logger
from iap_entitlements.models.events import StateTopic
from iap_entitlements.repositories.key_value_store import KeyValueStore
from iap_entitlements.services.event_dispatcher import StateEventDispatcher
from iap_entitlements.state_logger import log_balance_change

logger = get_logger(__name__)

CONSUMABLE_KEY_PREFIX = "consumable.balance."


def balance_key(product_id: str) -> str:
    """Persistence key of a product's balance."""
    return CONSUMABLE_KEY_PREFIX + product_id


class ConsumableLedger:
    """Non-negative integer balance per consumable product.

    Every mutation is an atomic add or an atomic check-and-subtract under a
    single ledger lock, independent of the shared state lock. The in-memory
    mirror only holds strictly positive balances and is only updated after
    the persistence handle accepted the write.
    """

    def __init__(
        self,
        storage: KeyValueStore,
        dispatcher: Optional[StateEventDispatcher] = None,
    ):
        """Initialize the ledger.

        Args:
            storage: Persistence handle
            dispatcher: Publishes LEDGER events when balances change
        """
        self._storage = storage
        self._dispatcher = dispatcher
        self._lock = threading.RLock()
        self._balances: Dict[str, int] = {}

    def load(self, product_ids: Iterable[str]) -> Dict[str, int]:
        """Populate the mirror from storage for the given product ids.

        Args:
            product_ids: All known product ids

        Returns:
            Snapshot of strictly positive balances
        """
        with self._lock:
            balances = {}
            for product_id in product_ids:
                value = self._storage.get_int(balance_key(product_id))
                if value > 0:
                    balances[product_id] = value
            self._balances = balances
            snapshot = dict(balances)
            self._publish(snapshot)

        logger.info("consumable_ledger_loaded", products_with_balance=len(snapshot))
        return snapshot

    def get_balance(self, product_id: str) -> int:
        """Current balance, 0 for unknown ids."""
        with self._lock:
            return max(0, self._storage.get_int(balance_key(product_id)))

    def add(self, product_id: str, amount: int = 1, transaction_id: Optional[str] = None) -> int:
        """Credit ``amount`` units.

        Amounts <= 0 are no-ops.

        Args:
            product_id: Consumable product id
            amount: Units to credit
            transaction_id: Transaction being credited, for the audit log

        Returns:
            New balance

        Raises:
            LedgerIOFailure: If the new balance could not be persisted; the
                balance is unchanged
        """
        with self._lock:
            current = self.get_balance(product_id)
            if amount <= 0:
                return current
            new_balance = current + amount
            self._persist(product_id, new_balance)
            log_balance_change(
                product_id, current, new_balance, reason="credit", transaction_id=transaction_id
            )
            return new_balance

    def consume(self, product_id: str, amount: int = 1) -> bool:
        """Spend ``amount`` units if the balance covers it.

        Args:
            product_id: Consumable product id
            amount: Units to spend

        Returns:
            True if the balance was reduced and persisted; False if the
            balance was insufficient or storage failed (balance unchanged)
        """
        amount = max(0, amount)
        with self._lock:
            current = self.get_balance(product_id)
            if current < amount:
                logger.info(
                    "consumable_insufficient_balance",
                    product_id=product_id,
                    balance=current,
                    requested=amount,
                )
                return False
            if amount == 0:
                return True
            new_balance = current - amount
            try:
                self._persist(product_id, new_balance)
            except LedgerIOFailure as e:
                logger.error(
                    "consumable_consume_failed",
                    product_id=product_id,
                    requested=amount,
                    error=str(e.cause),
                    error_type=type(e.cause).__name__,
                )
                return False
            log_balance_change(product_id, current, new_balance, reason="consume")
            return True

    def snapshot(self) -> Dict[str, int]:
        """Strictly positive balances, for observers."""
        with self._lock:
            return dict(self._balances)

    def _persist(self, product_id: str, value: int) -> None:
        """Write a balance and refresh the mirror. Caller holds the lock."""
        try:
            self._storage.set_int(balance_key(product_id), value)
        except Exception as e:
            raise LedgerIOFailure(product_id, e) from e

        if value > 0:
            self._balances[product_id] = value
        else:
            self._balances.pop(product_id, None)
        self._publish(dict(self._balances))

    def _publish(self, snapshot: Dict[str, int]) -> None:
        if self._dispatcher is not None:
            self._dispatcher.publish(StateTopic.LEDGER, balances=snapshot)

    def __repr__(self) -> str:
        return f"ConsumableLedger(products_with_balance={len(self._balances)})"
