"""Read-only product catalog with a short-lived snapshot cache."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Protocol, Sequence

from .exceptions import ProductNotFoundError
from .models import Product


logger = logging.getLogger("billing")


class ProductRepository(Protocol):
    """Persistence operations required by the product catalog."""

    def list_products(self) -> Sequence[Product]:
        ...


@dataclass
class _CatalogSnapshot:
    products: Dict[str, Product]
    expires_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class ProductCatalog:
    """Looks up priced products by code.

    Products are loaded in one query and kept for ``ttl_seconds`` so that a
    price change in storage reaches callers without a deploy. A TTL of zero
    reads storage on every lookup.
    """

    def __init__(
        self,
        repository: ProductRepository,
        *,
        ttl_seconds: int = 300,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._repository = repository
        self._ttl = timedelta(seconds=max(0, ttl_seconds))
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._snapshot: Optional[_CatalogSnapshot] = None
        self._lock = threading.Lock()

    def _products(self) -> Dict[str, Product]:
        now = self._clock()
        with self._lock:
            snapshot = self._snapshot
            if snapshot is not None and not snapshot.is_expired(now):
                return snapshot.products
            products = {product.code: product for product in self._repository.list_products()}
            if self._ttl:
                self._snapshot = _CatalogSnapshot(products=products, expires_at=now + self._ttl)
            logger.debug("Loaded %s billing products", len(products))
            return products

    def get_product(self, code: str) -> Product:
        """Return the product for ``code`` or raise :class:`ProductNotFoundError`."""

        product = self._products().get(code)
        if product is None:
            raise ProductNotFoundError(code)
        return product

    def find_product(self, code: str) -> Optional[Product]:
        return self._products().get(code)

    def list_active_products(self) -> List[Product]:
        return [product for product in self._products().values() if product.is_active]

    def is_product_active(self, code: str) -> bool:
        product = self.find_product(code)
        return bool(product and product.is_active)

    def invalidate(self) -> None:
        with self._lock:
            self._snapshot = None


__all__ = ["ProductCatalog", "ProductRepository"]
