"""
Domain: Product stock snapshot.

Read model of sellable products and their available quantity, owned by the
catalog subsystem and refreshed independently.

The snapshot is advisory: it keeps drafts from asking for obviously unavailable
quantities, but the transaction gateway is the final arbiter of stock
sufficiency at commit time.

This module contains only pure domain types: no I/O, no database, no frameworks.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Protocol

from .money import ZERO


@dataclass(frozen=True, slots=True)
class ProductStock:
    """
    Immutable stock snapshot entry for a single product.

    available_quantity is current stock minus reserved stock, as computed by
    the catalog's `products_with_stock` view.
    """

    product_id: str
    name: str
    unit_price: Decimal
    available_quantity: int
    category: Optional[str] = None
    sku: Optional[str] = None
    min_stock: int = 0

    def __post_init__(self) -> None:
        if self.available_quantity < 0:
            raise ValueError("available_quantity must be non-negative")
        if self.unit_price < ZERO:
            raise ValueError("unit_price must be non-negative")

    @property
    def in_stock(self) -> bool:
        return self.available_quantity > 0

    @property
    def is_low_stock(self) -> bool:
        """Low stock iff available quantity is at or below the configured minimum."""
        return self.available_quantity <= self.min_stock


@dataclass(frozen=True, slots=True)
class ProductFilter:
    """Filter criteria for listing snapshot products."""
    search: Optional[str] = None  # matched against name and SKU
    category: Optional[str] = None
    in_stock_only: bool = False

    def matches(self, product: ProductStock) -> bool:
        if self.in_stock_only and not product.in_stock:
            return False
        if self.category and product.category != self.category:
            return False
        if self.search:
            term = self.search.strip().lower()
            haystack = [product.name.lower()]
            if product.sku:
                haystack.append(product.sku.lower())
            if not any(term in text for text in haystack):
                return False
        return True


class StockSnapshotProvider(Protocol):
    """Read-only contract consumed by the draft builder."""

    def get(self, product_id: str) -> Optional[ProductStock]:
        ...

    def get_available(self, product_id: str) -> int:
        ...

    def list(self, product_filter: Optional[ProductFilter] = None) -> List[ProductStock]:
        ...


class StockSnapshot:
    """
    In-memory stock snapshot taken at a point in time.

    Iteration order follows the order products were loaded in.
    """

    def __init__(self, products: Iterable[ProductStock] = ()):
        self._by_id: Dict[str, ProductStock] = {}
        for product in products:
            self._by_id[product.product_id] = product

    def __len__(self) -> int:
        return len(self._by_id)

    def __contains__(self, product_id: object) -> bool:
        return product_id in self._by_id

    def get(self, product_id: str) -> Optional[ProductStock]:
        return self._by_id.get(product_id)

    def get_available(self, product_id: str) -> int:
        """Available quantity for `product_id`; unknown products have none."""

        product = self._by_id.get(product_id)
        return product.available_quantity if product is not None else 0

    def list(self, product_filter: Optional[ProductFilter] = None) -> List[ProductStock]:
        products = list(self._by_id.values())
        if product_filter is None:
            return products
        return [p for p in products if product_filter.matches(p)]

    def low_stock_count(self) -> int:
        return sum(1 for p in self._by_id.values() if p.is_low_stock)

    def with_product(self, product: ProductStock) -> "StockSnapshot":
        """Return a new snapshot with `product` inserted or replaced."""

        updated = dict(self._by_id)
        updated[product.product_id] = product
        return StockSnapshot(updated.values())


__all__ = [
    "ProductStock",
    "ProductFilter",
    "StockSnapshot",
    "StockSnapshotProvider",
]
