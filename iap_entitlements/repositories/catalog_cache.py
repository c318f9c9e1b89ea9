"""Catalog cache - fetched products classified by ownership category.

Loaded once at startup; every load fully replaces the previous contents.
"""

import threading
from typing import Dict, Iterable, List, Optional, Tuple

from iap_entitlements.errors import GatewayUnavailable
from iap_entitlements.logging_config import get_logger
from iap_entitlements.models import Product, ProductCategory
from iap_entitlements.models.events import StateTopic
from iap_entitlements.services.event_dispatcher import StateEventDispatcher
from iap_entitlements.services.store_gateway import StoreGateway

logger = get_logger(__name__)


def sort_by_price(products: Iterable[Product]) -> List[Product]:
    """Sort ascending by price; ties keep their original order."""
    return sorted(products, key=lambda p: p.price)


class CatalogCache:
    """In-memory product catalog split into the four ownership categories.

    Thread-safe for reads; ``load`` swaps the whole catalog in one step.
    """

    def __init__(
        self,
        gateway: StoreGateway,
        dispatcher: Optional[StateEventDispatcher] = None,
    ):
        """Initialize an empty catalog.

        Args:
            gateway: Store gateway used to fetch products
            dispatcher: Publishes CATALOG events after each load
        """
        self._gateway = gateway
        self._dispatcher = dispatcher
        self._lock = threading.RLock()
        self._by_category: Dict[ProductCategory, Tuple[Product, ...]] = {
            category: () for category in ProductCategory
        }

    async def load(self, product_ids: Iterable[str]) -> None:
        """Fetch and classify products.

        Products with an unrecognized category, or that were not requested,
        are dropped.

        Args:
            product_ids: Ids to fetch

        Raises:
            GatewayUnavailable: If the fetch failed; the previous contents are kept
        """
        requested = set(product_ids)
        try:
            fetched = await self._gateway.fetch_products(requested)
        except Exception as e:
            logger.error(
                "catalog_load_failed",
                requested=len(requested),
                error=str(e),
                error_type=type(e).__name__,
            )
            if isinstance(e, GatewayUnavailable):
                raise
            raise GatewayUnavailable("fetch_products", e) from e

        buckets: Dict[ProductCategory, List[Product]] = {c: [] for c in ProductCategory}
        dropped = []
        for product in fetched:
            category = product.ownership
            if category is None or product.id not in requested:
                dropped.append(product.id)
                continue
            buckets[category].append(product)

        classified = {c: tuple(sort_by_price(items)) for c, items in buckets.items()}

        with self._lock:
            self._by_category = classified
            if self._dispatcher is not None:
                self._dispatcher.publish(
                    StateTopic.CATALOG,
                    products={c.value: [p.id for p in items] for c, items in classified.items()},
                )

        if dropped:
            logger.warning("catalog_products_dropped", product_ids=dropped)
        logger.info(
            "catalog_loaded",
            **{c.value: len(items) for c, items in classified.items()},
        )

    def products(self, category: ProductCategory) -> List[Product]:
        """Products of a category, ascending by price."""
        with self._lock:
            return list(self._by_category[category])

    def find(
        self, product_id: str, category: Optional[ProductCategory] = None
    ) -> Optional[Product]:
        """Find a product by id, optionally within one category only."""
        with self._lock:
            categories = [category] if category is not None else list(ProductCategory)
            for c in categories:
                for product in self._by_category[c]:
                    if product.id == product_id:
                        return product
            return None

    def contains(self, product_id: str, category: ProductCategory) -> bool:
        return self.find(product_id, category) is not None

    def all_products(self) -> List[Product]:
        with self._lock:
            return [p for c in ProductCategory for p in self._by_category[c]]

    def all_product_ids(self) -> List[str]:
        return [p.id for p in self.all_products()]

    @property
    def one_time(self) -> List[Product]:
        return self.products(ProductCategory.ONE_TIME)

    @property
    def consumables(self) -> List[Product]:
        return self.products(ProductCategory.CONSUMABLE)

    @property
    def fixed_term(self) -> List[Product]:
        return self.products(ProductCategory.FIXED_TERM)

    @property
    def auto_renewing(self) -> List[Product]:
        return self.products(ProductCategory.AUTO_RENEWING)

    def __len__(self) -> int:
        return len(self.all_products())

    def __repr__(self) -> str:
        return f"CatalogCache(products={len(self)})"
