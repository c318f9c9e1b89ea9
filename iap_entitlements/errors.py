"""Exception hierarchy for the purchase core.

Every exception carries typed attributes; presentation code only ever sees
the human-readable message through ``PurchaseStatus``.
"""

from typing import Optional


class StoreError(Exception):
    """Base exception for all purchase core errors."""

    pass


class VerificationFailure(StoreError):
    """Raised when the gateway rejected a transaction's signature.

    Gateways should raise this (or their own error) from an unverified
    result; the core re-raises the original object unchanged.
    """

    def __init__(self, message: str, transaction_id: Optional[str] = None) -> None:
        self.message = message
        self.transaction_id = transaction_id
        super().__init__(f"Transaction failed verification: {message}")


class UnknownOutcome(StoreError):
    """Raised when the gateway returned an unrecognized purchase result."""

    def __init__(self, outcome: object = None) -> None:
        self.outcome = outcome
        super().__init__(f"Unknown purchase outcome: {outcome!r}")


class LedgerIOFailure(StoreError):
    """Raised when persisting a consumable balance failed."""

    def __init__(self, product_id: str, cause: Exception) -> None:
        self.product_id = product_id
        self.cause = cause
        super().__init__(f"Could not persist balance for {product_id}: {cause}")


class GatewayUnavailable(StoreError):
    """Raised when a store gateway call failed or its host context is missing."""

    def __init__(self, operation: str, cause: Optional[Exception] = None) -> None:
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Store gateway unavailable during {operation}{detail}")
