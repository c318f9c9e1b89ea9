"""Entitlement snapshot produced by one reconciliation pass."""

from typing import Optional

from pydantic import BaseModel, Field

from .product import ProductCategory
from .transaction import RenewalState


class EntitlementSnapshot(BaseModel):
    """Purchased product ids per ownership category.

    Replaced as a whole on every reconciliation pass, never merged.
    """

    one_time: frozenset[str] = Field(default_factory=frozenset)
    fixed_term: frozenset[str] = Field(default_factory=frozenset)
    auto_renewing: frozenset[str] = Field(default_factory=frozenset)
    subscription_group_state: Optional[RenewalState] = None

    def for_category(self, category: ProductCategory) -> frozenset[str]:
        """Purchased ids for a category (consumables are never entitled)."""
        if category == ProductCategory.ONE_TIME:
            return self.one_time
        if category == ProductCategory.FIXED_TERM:
            return self.fixed_term
        if category == ProductCategory.AUTO_RENEWING:
            return self.auto_renewing
        return frozenset()

    class Config:
        frozen = True
