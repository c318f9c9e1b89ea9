"""Configuration models loaded from store.yaml."""

from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from iap_entitlements.utils.billing_period import validate_billing_period

from .product import Product


class LedgerConfig(BaseModel):
    """Consumable ledger persistence settings."""

    path: Optional[str] = Field(
        None, description="JSON file backing the ledger; in-memory when omitted"
    )


class EntitlementPolicyConfig(BaseModel):
    """Client-side entitlement policy."""

    fixed_term_period: str = Field(
        default="P1Y", description="ISO 8601 term of fixed-term products"
    )

    @field_validator("fixed_term_period")
    @classmethod
    def _valid_period(cls, value: str) -> str:
        if not validate_billing_period(value):
            raise ValueError(f"Invalid fixed_term_period: {value!r}")
        return value


class StoreSettings(BaseModel):
    """Complete store.yaml configuration."""

    product_ids: list[str] = Field(default_factory=list, description="Products loaded at startup")
    ledger: LedgerConfig = Field(default_factory=LedgerConfig)
    entitlements: EntitlementPolicyConfig = Field(default_factory=EntitlementPolicyConfig)
    local_catalog: list[Product] = Field(
        default_factory=list, description="Products served by the local gateway"
    )

    @model_validator(mode="after")
    def _unique_ids(self) -> "StoreSettings":
        for name, ids in (
            ("product_ids", self.product_ids),
            ("local_catalog", [p.id for p in self.local_catalog]),
        ):
            duplicates = sorted({i for i in ids if ids.count(i) > 1})
            if duplicates:
                raise ValueError(f"Duplicate product ids in {name}: {duplicates}")
        return self

    class Config:
        json_schema_extra = {
            "example": {
                "product_ids": ["nonconsumable.lifetime", "consumable.week"],
                "ledger": {"path": "data/ledger.json"},
                "entitlements": {"fixed_term_period": "P1Y"},
            }
        }
