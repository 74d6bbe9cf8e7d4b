"""
Product stock repository (read-only).

Loads the stock snapshot from the catalog's `products_with_stock` view
(current stock minus reserved stock as `available_stock`). Catalog CRUD lives
elsewhere; this module only reads.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, List, Mapping, Optional

from supabase import Client  # type: ignore[import-not-found]

from domain.money import to_money
from domain.product import ProductFilter, ProductStock, StockSnapshot
from repositories.client import get_supabase
from repositories.store_errors import execute_or_raise

# Keep these aligned with your database schema.
_PRODUCTS_VIEW: str = "products_with_stock"
_PRODUCT_COLUMNS: str = "id, name, sku, category, sale_price, available_stock, min_stock"


def _row_to_product(row: Mapping[str, Any]) -> ProductStock:
    """Convert a `products_with_stock` row into a ProductStock."""

    # An oversold product reports negative availability; nothing more can be sold.
    available = max(0, int(row.get("available_stock") or 0))
    return ProductStock(
        product_id=str(row["id"]),
        name=str(row["name"]),
        unit_price=to_money(str(row.get("sale_price") or Decimal("0"))),
        available_quantity=available,
        category=row.get("category"),
        sku=row.get("sku"),
        min_stock=int(row.get("min_stock") or 0),
    )


class SupabaseStockRepository:
    """
    Stock snapshot provider backed by Supabase.

    `get`, `get_available` and `list` read the last loaded snapshot; call
    `refresh()` to reload it. The first read loads it on demand.
    """

    def __init__(self, client: Optional[Client] = None, venue_id: Optional[str] = None):
        self._client = client
        self._venue_id = venue_id
        self._snapshot: Optional[StockSnapshot] = None

    @property
    def client(self) -> Client:
        return self._client if self._client is not None else get_supabase()

    def refresh(self) -> StockSnapshot:
        """
        Reload active products from the store.

        Returns:
            The new StockSnapshot

        Raises:
            SaleError: If the store rejects the query or is unreachable
        """

        query = self.client.table(_PRODUCTS_VIEW).select(_PRODUCT_COLUMNS).eq("status", "active")
        if self._venue_id:
            query = query.eq("club_id", self._venue_id)

        rows = execute_or_raise("load product stock", lambda: query.order("name").execute()) or []
        self._snapshot = StockSnapshot(_row_to_product(row) for row in rows)
        return self._snapshot

    def snapshot(self) -> StockSnapshot:
        if self._snapshot is None:
            return self.refresh()
        return self._snapshot

    def get(self, product_id: str) -> Optional[ProductStock]:
        return self.snapshot().get(product_id)

    def get_available(self, product_id: str) -> int:
        return self.snapshot().get_available(product_id)

    def list(self, product_filter: Optional[ProductFilter] = None) -> List[ProductStock]:
        return self.snapshot().list(product_filter)


__all__ = ["SupabaseStockRepository"]
