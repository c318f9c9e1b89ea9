"""State change events published to coordination-layer subscribers."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class StateTopic(str, Enum):
    """Observable state bundle that changed."""

    CATALOG = "catalog"
    ENTITLEMENTS = "entitlements"
    PENDING = "pending"
    STATUS = "status"
    LEDGER = "ledger"


class StateChangeEvent(BaseModel):
    """One change of one observable state bundle.

    ``payload`` carries a copy of the new value of the bundle, so
    subscribers never need to call back into the state to read it.
    """

    topic: StateTopic
    payload: dict[str, Any] = Field(default_factory=dict)
    event_time_millis: int = Field(..., description="Event timestamp (Unix millis)")

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "topic": "pending",
                "payload": {"pending_product_ids": ["consumable.week"]},
                "event_time_millis": 1700000000000,
            }
        }
