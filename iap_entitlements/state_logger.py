"""Simple state change logging for purchases, entitlements and balances.

Tracks state transitions with before/after values for debugging and auditing.
"""

from typing import Any, Iterable, Optional

from iap_entitlements.logging_config import get_logger

logger = get_logger(__name__)


def _short(transaction_id: Optional[str]) -> Optional[str]:
    if transaction_id is None:
        return None
    return transaction_id[:20] + "..." if len(transaction_id) > 20 else transaction_id


def log_purchase_status_change(
    old_status: Any,
    new_status: Any,
    product_id: Optional[str] = None,
    **extra_context: Any,
) -> None:
    """Log purchase status change.

    Args:
        old_status: Previous status
        new_status: New status
        product_id: Product the attempt was for
        **extra_context: Additional context
    """
    logger.info(
        "purchase_status_changed",
        product_id=product_id,
        old_status=str(old_status),
        new_status=str(new_status),
        **extra_context,
    )


def log_pending_change(
    product_id: str,
    added: bool,
    pending_count: int,
    **extra_context: Any,
) -> None:
    """Log a product entering or leaving the pending set."""
    logger.info(
        "pending_set_changed",
        product_id=product_id,
        change="added" if added else "removed",
        pending_count=pending_count,
        **extra_context,
    )


def log_entitlements_replaced(
    old_ids: Iterable[str],
    new_ids: Iterable[str],
    **extra_context: Any,
) -> None:
    """Log the difference between two entitlement snapshots.

    Args:
        old_ids: All purchased ids before the pass
        new_ids: All purchased ids after the pass
        **extra_context: Additional context (subscription group state, etc.)
    """
    old_set, new_set = set(old_ids), set(new_ids)
    logger.info(
        "entitlements_replaced",
        granted=sorted(new_set - old_set),
        revoked=sorted(old_set - new_set),
        entitled_count=len(new_set),
        **extra_context,
    )


def log_balance_change(
    product_id: str,
    old_balance: int,
    new_balance: int,
    reason: str,
    transaction_id: Optional[str] = None,
    **extra_context: Any,
) -> None:
    """Log consumable balance change.

    Args:
        product_id: Consumable product id
        old_balance: Balance before the change
        new_balance: Balance after the change
        reason: "credit" or "consume"
        transaction_id: Transaction that caused a credit, if any
        **extra_context: Additional context
    """
    logger.info(
        "consumable_balance_changed",
        product_id=product_id,
        old_balance=old_balance,
        new_balance=new_balance,
        reason=reason,
        transaction_id=_short(transaction_id),
        **extra_context,
    )
