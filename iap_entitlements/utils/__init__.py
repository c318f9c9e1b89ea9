"""Utility functions and helpers."""

from iap_entitlements.utils.billing_period import (
    add_billing_period,
    parse_billing_period,
    validate_billing_period,
)
from iap_entitlements.utils.clock import VirtualClock, system_clock
from iap_entitlements.utils.token_generator import (
    generate_transaction_id,
    validate_transaction_id,
)

__all__ = [
    # Clocks
    "VirtualClock",
    "system_clock",
    # Transaction ids
    "generate_transaction_id",
    "validate_transaction_id",
    # Billing periods
    "parse_billing_period",
    "validate_billing_period",
    "add_billing_period",
]
