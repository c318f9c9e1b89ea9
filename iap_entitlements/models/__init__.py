"""Pydantic models for products, transactions, purchase status and state events."""

from .product import Product, ProductCategory

from .transaction import (
    PurchaseOutcome,
    PurchaseResult,
    RenewalState,
    TransactionRecord,
    VerificationResult,
)

from .status import PurchaseStatus, PurchaseStatusKind

from .entitlements import EntitlementSnapshot

from .events import StateChangeEvent, StateTopic

from .config import EntitlementPolicyConfig, LedgerConfig, StoreSettings

__all__ = [
    # Products
    "Product",
    "ProductCategory",
    # Transactions
    "PurchaseOutcome",
    "PurchaseResult",
    "RenewalState",
    "TransactionRecord",
    "VerificationResult",
    # Status
    "PurchaseStatus",
    "PurchaseStatusKind",
    # Entitlements
    "EntitlementSnapshot",
    # Events
    "StateChangeEvent",
    "StateTopic",
    # Configuration
    "EntitlementPolicyConfig",
    "LedgerConfig",
    "StoreSettings",
]
