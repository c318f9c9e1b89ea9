"""Shared observable state of the purchase core.

One bundle (pending set, purchase status, entitlement snapshot) guarded by
one lock. The lock is only held for a synchronous transition, never across
an awaited gateway call, so the purchase orchestrator and the update
listener can both write without racing.
"""

import threading
from typing import Dict, FrozenSet, Optional

from iap_entitlements.models import EntitlementSnapshot, PurchaseStatus, PurchaseStatusKind
from iap_entitlements.models.events import StateTopic
from iap_entitlements.services.event_dispatcher import StateEventDispatcher
from iap_entitlements.state_logger import (
    log_entitlements_replaced,
    log_pending_change,
    log_purchase_status_change,
)


def _all_ids(snapshot: EntitlementSnapshot) -> FrozenSet[str]:
    return snapshot.one_time | snapshot.fixed_term | snapshot.auto_renewing


class StoreState:
    """Pending set, purchase status and entitlement snapshot.

    Readers always get immutable copies, so no observer can see a
    partially-replaced entitlement snapshot.
    """

    def __init__(self, dispatcher: Optional[StateEventDispatcher] = None):
        self._lock = threading.RLock()
        self._dispatcher = dispatcher
        self._pending: FrozenSet[str] = frozenset()
        self._resolutions: Dict[str, int] = {}
        self._status = PurchaseStatus.unknown()
        self._entitlements = EntitlementSnapshot()

    # Pending set

    @property
    def pending_product_ids(self) -> FrozenSet[str]:
        with self._lock:
            return self._pending

    def is_pending(self, product_id: str) -> bool:
        with self._lock:
            return product_id in self._pending

    def resolution_marker(self, product_id: str) -> int:
        """Number of update-feed resolutions recorded for a product so far.

        Taken before an awaited purchase call and handed back to
        ``add_pending``, so an update that resolves the product while the
        attempt is in flight wins over its late pending result.
        """
        with self._lock:
            return self._resolutions.get(product_id, 0)

    def add_pending(self, product_id: str, since_marker: Optional[int] = None) -> bool:
        """Mark a product as awaiting external resolution.

        Args:
            product_id: Product the gateway reported as pending
            since_marker: Value of ``resolution_marker`` taken before the
                purchase call; if the product was resolved since, it is not added

        Returns:
            True if the product is newly pending
        """
        with self._lock:
            if since_marker is not None and self._resolutions.get(product_id, 0) != since_marker:
                log_pending_change(
                    product_id,
                    added=False,
                    pending_count=len(self._pending),
                    reason="resolved_before_pending",
                )
                return False
            if product_id in self._pending:
                return False
            self._pending = self._pending | {product_id}
            log_pending_change(product_id, added=True, pending_count=len(self._pending))
            self._publish(StateTopic.PENDING, pending_product_ids=sorted(self._pending))
            return True

    def remove_pending(self, product_id: str, from_update: bool = False) -> bool:
        """Resolve a product. No-op on the set if it was not pending.

        Args:
            product_id: Product to resolve
            from_update: True when the transaction update feed resolved it;
                only those resolutions move the resolution marker

        Returns:
            True if the product was pending
        """
        with self._lock:
            if from_update:
                self._resolutions[product_id] = self._resolutions.get(product_id, 0) + 1
            if product_id not in self._pending:
                return False
            self._pending = self._pending - {product_id}
            log_pending_change(product_id, added=False, pending_count=len(self._pending))
            self._publish(StateTopic.PENDING, pending_product_ids=sorted(self._pending))
            return True

    # Purchase status

    @property
    def purchase_status(self) -> PurchaseStatus:
        with self._lock:
            return self._status

    def set_status(self, status: PurchaseStatus, product_id: Optional[str] = None) -> None:
        """Replace the current purchase status and log the transition."""
        with self._lock:
            old_status = self._status
            self._status = status
            if old_status != status:
                log_purchase_status_change(old_status, status, product_id=product_id)
            self._publish(StateTopic.STATUS, status=status.model_dump(mode="json"))

    def settle_pending_status(
        self, status: PurchaseStatus, product_id: Optional[str] = None
    ) -> bool:
        """Replace the status only while it is still Pending.

        Used when the update feed resolves a deferred purchase; a newer
        attempt that already moved the status on is left alone.

        Returns:
            True if the status was replaced
        """
        with self._lock:
            if self._status.kind != PurchaseStatusKind.PENDING:
                return False
            self.set_status(status, product_id=product_id)
            return True

    # Entitlements

    @property
    def entitlements(self) -> EntitlementSnapshot:
        with self._lock:
            return self._entitlements

    def replace_entitlements(self, snapshot: EntitlementSnapshot) -> None:
        """Swap in a new snapshot as a whole."""
        with self._lock:
            old = self._entitlements
            self._entitlements = snapshot
            log_entitlements_replaced(
                _all_ids(old),
                _all_ids(snapshot),
                subscription_group_state=(
                    snapshot.subscription_group_state.value
                    if snapshot.subscription_group_state
                    else None
                ),
            )
            self._publish(StateTopic.ENTITLEMENTS, **snapshot.model_dump(mode="json"))

    def _publish(self, topic: StateTopic, **payload) -> None:
        if self._dispatcher is not None:
            self._dispatcher.publish(topic, **payload)

    def __repr__(self) -> str:
        return (
            f"StoreState(pending={len(self._pending)}, status={self._status}, "
            f"entitled={len(_all_ids(self._entitlements))})"
        )
