"""Product models.

Products are immutable once fetched from the store gateway.
"""

from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class ProductCategory(str, Enum):
    """Ownership model of a purchasable product."""

    ONE_TIME = "one_time"  # Owned forever once bought
    CONSUMABLE = "consumable"  # Spent on use, tracked by the local ledger
    FIXED_TERM = "fixed_term"  # Owned for a fixed term, expired client-side
    AUTO_RENEWING = "auto_renewing"  # Subscription, expired by the gateway

    @classmethod
    def parse(cls, value: object) -> Optional["ProductCategory"]:
        """Return the category for a raw value, or None if unrecognized."""
        try:
            return cls(value)
        except ValueError:
            return None


class Product(BaseModel):
    """Product descriptor returned by the store gateway."""

    id: str = Field(..., description="Globally unique product identifier")
    category: str = Field(..., description="Ownership category (see ProductCategory)")
    price: Decimal = Field(..., description="Display price, used for ordering")
    title: str = Field(default="", description="Human-readable title")
    description: str = Field(default="", description="Product description")
    currency: str = Field(default="USD", description="ISO 4217 currency code")
    subscription_group_id: Optional[str] = Field(
        None, description="Subscription group, auto-renewing products only"
    )

    @property
    def ownership(self) -> Optional[ProductCategory]:
        """Parsed ownership category, None if the gateway sent an unknown one."""
        return ProductCategory.parse(self.category)

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "id": "credits.pack",
                "category": "consumable",
                "price": "1.99",
                "title": "Credit Pack",
                "description": "One credit",
                "currency": "USD",
            }
        }
