"""Transaction models produced by the store gateway.

The core never constructs a TransactionRecord for its own bookkeeping;
it only classifies records handed over by the gateway and folds their
effects into the ledger or the entitlement snapshot.
"""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator


class TransactionRecord(BaseModel):
    """A single store transaction."""

    transaction_id: str = Field(..., description="Unique transaction id")
    product_id: str = Field(..., description="Purchased product id")
    category: str = Field(..., description="Ownership category of the product")
    purchase_time_millis: int = Field(..., description="Purchase time (Unix millis)")

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "transaction_id": "local_txn_a1b2c3d4e5f6a7b8_1700000000000",
                "product_id": "nonconsumable.lifetime",
                "category": "one_time",
                "purchase_time_millis": 1700000000000,
            }
        }


class VerificationResult(BaseModel):
    """Gateway verification outcome for one transaction.

    Exactly one of two shapes: verified (carries the transaction) or
    unverified (carries the gateway's original error, and the transaction
    payload when the gateway has one).
    """

    transaction: Optional[TransactionRecord] = None
    error: Optional[Exception] = None

    @model_validator(mode="after")
    def _check_shape(self) -> "VerificationResult":
        if self.error is None and self.transaction is None:
            raise ValueError("verified result requires a transaction")
        return self

    @property
    def is_verified(self) -> bool:
        return self.error is None

    @classmethod
    def verified(cls, transaction: TransactionRecord) -> "VerificationResult":
        return cls(transaction=transaction)

    @classmethod
    def unverified(
        cls, error: Exception, transaction: Optional[TransactionRecord] = None
    ) -> "VerificationResult":
        return cls(transaction=transaction, error=error)

    class Config:
        arbitrary_types_allowed = True
        frozen = True


class PurchaseOutcome(str, Enum):
    """Outcome of a gateway purchase call."""

    SUCCESS = "success"
    PENDING = "pending"
    USER_CANCELLED = "user_cancelled"
    UNKNOWN = "unknown"


class PurchaseResult(BaseModel):
    """Result of a gateway purchase call.

    ``verification`` is only set for SUCCESS.
    """

    outcome: PurchaseOutcome
    verification: Optional[VerificationResult] = None

    @classmethod
    def success(cls, verification: VerificationResult) -> "PurchaseResult":
        return cls(outcome=PurchaseOutcome.SUCCESS, verification=verification)

    @classmethod
    def pending(cls) -> "PurchaseResult":
        return cls(outcome=PurchaseOutcome.PENDING)

    @classmethod
    def user_cancelled(cls) -> "PurchaseResult":
        return cls(outcome=PurchaseOutcome.USER_CANCELLED)

    @classmethod
    def unknown(cls) -> "PurchaseResult":
        return cls(outcome=PurchaseOutcome.UNKNOWN)

    class Config:
        frozen = True


class RenewalState(str, Enum):
    """Renewal state of a subscription group."""

    SUBSCRIBED = "subscribed"
    EXPIRED = "expired"
    IN_BILLING_RETRY_PERIOD = "in_billing_retry_period"
    IN_GRACE_PERIOD = "in_grace_period"
    REVOKED = "revoked"
