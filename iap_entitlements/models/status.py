"""Purchase status - the single observable result channel of a purchase attempt."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class PurchaseStatusKind(str, Enum):
    """Kind of the current purchase status."""

    SUCCESS = "success"
    PENDING = "pending"
    CANCELLED = "cancelled"
    FAILED = "failed"
    UNKNOWN = "unknown"


class PurchaseStatus(BaseModel):
    """Tagged union {Success(product_id), Pending, Cancelled, Failed(reason), Unknown}."""

    kind: PurchaseStatusKind = Field(default=PurchaseStatusKind.UNKNOWN)
    product_id: Optional[str] = Field(None, description="Set for SUCCESS")
    reason: Optional[str] = Field(None, description="Human-readable cause, set for FAILED")
    error_type: Optional[str] = Field(None, description="Error class name, set for FAILED")

    @classmethod
    def success(cls, product_id: str) -> "PurchaseStatus":
        return cls(kind=PurchaseStatusKind.SUCCESS, product_id=product_id)

    @classmethod
    def pending(cls) -> "PurchaseStatus":
        return cls(kind=PurchaseStatusKind.PENDING)

    @classmethod
    def cancelled(cls) -> "PurchaseStatus":
        return cls(kind=PurchaseStatusKind.CANCELLED)

    @classmethod
    def unknown(cls) -> "PurchaseStatus":
        return cls(kind=PurchaseStatusKind.UNKNOWN)

    @classmethod
    def failed(cls, reason: str, error_type: Optional[str] = None) -> "PurchaseStatus":
        return cls(kind=PurchaseStatusKind.FAILED, reason=reason, error_type=error_type)

    @classmethod
    def from_error(cls, error: BaseException) -> "PurchaseStatus":
        """Build a FAILED status without leaking the exception object."""
        reason = str(error) or type(error).__name__
        return cls.failed(
            f"There was an error completing your purchase: {reason}",
            error_type=type(error).__name__,
        )

    def __str__(self) -> str:
        if self.kind == PurchaseStatusKind.SUCCESS:
            return f"success({self.product_id})"
        if self.kind == PurchaseStatusKind.FAILED:
            return f"failed({self.reason})"
        return self.kind.value

    class Config:
        frozen = True
