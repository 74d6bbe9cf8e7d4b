"""
Domain: Sale draft (cart).

A draft is the client-local, unpersisted sale being composed at the bar. It
accumulates line items against the stock snapshot before submission.

Contract excerpts implemented here:
- Adding a product already in the draft increments its quantity by one,
  clamped to the available quantity.
- Every line always has quantity >= 1; setting a quantity <= 0 removes it.
- Quantities are clamped to [1, available_quantity] of the snapshot.
- Unit prices are captured when the product is added (a price snapshot).
- Discount and tax are only checked against the subtotal at submission.

The stock clamp is advisory. The transaction gateway re-validates stock at
commit time and its rejection is the only authoritative failure.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Dict, List, Optional

from .errors import InsufficientStockError, SaleValidationError
from .money import ZERO, MoneyLike, to_money
from .product import StockSnapshotProvider
from .sale import PaymentMethod, require_whole_quantity


@dataclass(frozen=True, slots=True)
class DraftLineItem:
    """
    A product line in a draft.

    product_id doubles as the line's item id: a draft holds at most one line
    per product.
    """

    product_id: str
    product_name: str
    quantity: int
    unit_price: Decimal

    @property
    def item_id(self) -> str:
        return self.product_id

    @property
    def line_total(self) -> Decimal:
        return self.unit_price * self.quantity


class SaleDraft:
    """
    Mutable, single-session cart.

    The draft never talks to the backend. Submitting it is the lifecycle
    manager's job, and a failed submission leaves the draft as it was.
    """

    def __init__(
        self,
        stock: StockSnapshotProvider,
        payment_method: PaymentMethod = PaymentMethod.CASH,
        notes: Optional[str] = None,
    ):
        self._stock = stock
        self._lines: Dict[str, DraftLineItem] = {}
        self.discount_amount: Decimal = ZERO
        self.tax_amount: Decimal = ZERO
        self.payment_method = payment_method
        self.notes = notes

    @property
    def items(self) -> List[DraftLineItem]:
        return list(self._lines.values())

    @property
    def is_empty(self) -> bool:
        return not self._lines

    def get(self, item_id: str) -> Optional[DraftLineItem]:
        return self._lines.get(item_id)

    def use_stock(self, stock: StockSnapshotProvider) -> None:
        """Switch to a refreshed stock snapshot; existing lines are left as-is."""
        self._stock = stock

    def add_item(self, product_id: str) -> DraftLineItem:
        """
        Add one unit of `product_id`.

        Raises:
            SaleValidationError: If the product is not in the snapshot
            InsufficientStockError: If the product has no available stock
        """

        product = self._stock.get(product_id)
        if product is None:
            raise SaleValidationError(f"Unknown product: {product_id}")

        available = self._stock.get_available(product_id)
        existing = self._lines.get(product_id)

        if available < 1:
            requested = 1 if existing is None else existing.quantity + 1
            raise InsufficientStockError(product_id, requested=requested, available=available)

        if existing is None:
            line = DraftLineItem(
                product_id=product_id,
                product_name=product.name,
                quantity=1,
                unit_price=to_money(product.unit_price),
            )
        else:
            line = replace(existing, quantity=min(existing.quantity + 1, available))

        self._lines[product_id] = line
        return line

    def set_quantity(self, item_id: str, quantity: int) -> Optional[DraftLineItem]:
        """
        Set the quantity of a line.

        Returns the updated line, or None when `quantity <= 0` removed it.

        Raises:
            SaleValidationError: If the line does not exist or the quantity is
                not a whole number
            InsufficientStockError: If the snapshot now reports no stock for
                the product (the line is left unchanged)
        """

        existing = self._require_line(item_id)

        quantity = require_whole_quantity(quantity)
        if quantity <= 0:
            del self._lines[item_id]
            return None

        available = self._stock.get_available(existing.product_id)
        if available < 1:
            raise InsufficientStockError(existing.product_id, requested=quantity, available=available)

        line = replace(existing, quantity=min(quantity, available))
        self._lines[item_id] = line
        return line

    def set_unit_price(self, item_id: str, unit_price: MoneyLike) -> DraftLineItem:
        """Override the captured price of a line (manual per-line discount)."""

        existing = self._require_line(item_id)
        price = to_money(unit_price)
        if price < ZERO:
            raise SaleValidationError("unit_price must be non-negative")

        line = replace(existing, unit_price=price)
        self._lines[item_id] = line
        return line

    def remove(self, item_id: str) -> None:
        self._require_line(item_id)
        del self._lines[item_id]

    def set_discount(self, amount: MoneyLike) -> None:
        # Compared against the subtotal only at submission.
        discount = to_money(amount)
        if discount < ZERO:
            raise SaleValidationError("discount_amount must be non-negative")
        self.discount_amount = discount

    def set_tax(self, amount: MoneyLike) -> None:
        tax = to_money(amount)
        if tax < ZERO:
            raise SaleValidationError("tax_amount must be non-negative")
        self.tax_amount = tax

    def clear(self) -> None:
        """Reset the draft after a successful submission."""

        self._lines.clear()
        self.discount_amount = ZERO
        self.tax_amount = ZERO
        self.notes = None

    def _require_line(self, item_id: str) -> DraftLineItem:
        line = self._lines.get(item_id)
        if line is None:
            raise SaleValidationError(f"Draft has no line for item: {item_id}")
        return line


__all__ = [
    "DraftLineItem",
    "SaleDraft",
]
