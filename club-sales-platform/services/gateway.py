"""
Transaction gateway contract.

The gateway is the only component allowed to persist sales and move stock.
Every write operation is atomic: the sale row, its item rows and the matching
stock movement are applied together or not at all. The lifecycle manager
relies on this and never compensates for partial failures itself.

Write operations either return their success payload or raise one of the
domain errors (`InsufficientStockError`, `TerminalSaleError`,
`SaleNotFoundError`, `SaleRejectedError`, `GatewayUnavailableError`).
A `False` result means the store applied nothing.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING, List, Optional, Protocol

from domain.aggregation import Period
from domain.sale import Sale, SaleStatus

if TYPE_CHECKING:
    from services.commands import SubmitSaleCommand, UpdateSaleDetailsCommand


class SaleReader(Protocol):
    """Read access to persisted sales of the current venue."""

    def get_sale(self, sale_id: str) -> Optional[Sale]:
        ...

    def list_sales(
        self,
        period: Optional[Period] = None,
        status: Optional[SaleStatus] = None,
    ) -> List[Sale]:
        ...


class TransactionGateway(SaleReader, Protocol):
    """Atomic write operations against the durable store."""

    def create_sale(self, command: "SubmitSaleCommand") -> str:
        """Create sale + items and decrement stock per item; returns the sale id."""
        ...

    def add_item(
        self,
        sale_id: str,
        product_id: str,
        quantity: int,
        unit_price: Optional[Decimal] = None,
    ) -> str:
        """Insert an item and decrement stock by `quantity`; returns the item id."""
        ...

    def update_item(
        self,
        item_id: str,
        quantity: Optional[int] = None,
        unit_price: Optional[Decimal] = None,
    ) -> bool:
        """Adjust an item and move stock by the quantity delta (new - old)."""
        ...

    def remove_item(self, item_id: str) -> bool:
        """Delete an item and restore its quantity to stock."""
        ...

    def transition_status(
        self,
        sale_id: str,
        new_status: SaleStatus,
        reason: Optional[str] = None,
    ) -> bool:
        """Change status; cancel/refund restore stock for every remaining item."""
        ...

    def update_sale(self, sale_id: str, changes: "UpdateSaleDetailsCommand") -> bool:
        """Update header fields (payment, discount, notes, attribution)."""
        ...


__all__ = [
    "SaleReader",
    "TransactionGateway",
]
