"""Store gateway contract.

The gateway is the boundary to the storefront: product catalog fetch,
payment sheet, signature verification and system UI. The core is written
against this single capability set; platform and version differences are
absorbed by the concrete gateway.
"""

from abc import ABC, abstractmethod
from typing import AsyncIterator, Iterable, List, Optional

from iap_entitlements.models import (
    Product,
    PurchaseResult,
    RenewalState,
    VerificationResult,
)


class StoreGateway(ABC):
    """Asynchronous store gateway.

    Implementations raise on transport failures; the core maps those to
    GatewayUnavailable or to a FAILED purchase status.
    """

    @abstractmethod
    async def fetch_products(self, product_ids: Iterable[str]) -> List[Product]:
        """Fetch product descriptors for exactly the given ids."""

    @abstractmethod
    async def purchase(self, product: Product) -> PurchaseResult:
        """Run the payment flow for a product."""

    @abstractmethod
    def current_entitlements(self) -> AsyncIterator[VerificationResult]:
        """Iterate currently valid non-consumable transactions.

        Finite; every call starts a fresh iteration.
        """

    @abstractmethod
    def transaction_updates(self) -> AsyncIterator[VerificationResult]:
        """Iterate the live transaction event feed.

        Conceptually infinite and not restartable.
        """

    @abstractmethod
    async def finish(self, transaction_id: str) -> None:
        """Acknowledge a transaction so the gateway stops redelivering it."""

    @abstractmethod
    async def subscription_group_state(self, product: Product) -> Optional[RenewalState]:
        """Renewal state of the product's subscription group, best-effort."""

    @abstractmethod
    async def latest_transaction(self, product_id: str) -> Optional[VerificationResult]:
        """Most recent transaction for a product, None if there is none."""

    @abstractmethod
    async def present_code_redemption(self) -> None:
        """Show the offer code redemption sheet."""

    @abstractmethod
    async def manage_subscriptions(self) -> None:
        """Show the subscription management sheet."""

    @abstractmethod
    async def request_refund(self, transaction_id: str) -> None:
        """Start a refund request for a transaction."""
