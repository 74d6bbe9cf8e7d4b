"""
Domain: Sale aggregate.

Contract excerpts implemented here:
- A Sale is owned by the durable store; the client holds a read/edit proxy.
- subtotal = sum of line totals; total = subtotal - discount + tax; the total
  is never negative.
- Status moves pending -> completed, and pending/completed -> cancelled or
  refunded. Cancelled and refunded are terminal: nothing about the sale may
  change afterwards.

This module contains only pure domain entities: no I/O, no database, no frameworks.
All timestamps must be passed explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, FrozenSet, Mapping, Optional, Tuple

from .errors import SaleValidationError, TerminalSaleError
from .money import ZERO
from .time import require_utc_timestamp


class PaymentMethod(str, Enum):
    CASH = "cash"
    TRANSFER = "transfer"
    CREDIT = "credit"
    DEBIT = "debit"
    MIXED = "mixed"


class SaleStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    def can_transition_to(self, target: "SaleStatus") -> bool:
        return target in _TRANSITIONS[self]


TERMINAL_STATUSES: FrozenSet[SaleStatus] = frozenset({SaleStatus.CANCELLED, SaleStatus.REFUNDED})
EDITABLE_STATUSES: FrozenSet[SaleStatus] = frozenset({SaleStatus.PENDING, SaleStatus.COMPLETED})

_TRANSITIONS: Dict[SaleStatus, FrozenSet[SaleStatus]] = {
    SaleStatus.PENDING: frozenset({SaleStatus.COMPLETED, SaleStatus.CANCELLED, SaleStatus.REFUNDED}),
    SaleStatus.COMPLETED: frozenset({SaleStatus.CANCELLED, SaleStatus.REFUNDED}),
    SaleStatus.CANCELLED: frozenset(),
    SaleStatus.REFUNDED: frozenset(),
}


@dataclass(frozen=True, slots=True)
class SaleItem:
    """
    Persisted line item of a sale.

    product_name and unit_price are snapshots taken when the item was added;
    later catalog changes do not affect them.
    """

    item_id: str
    sale_id: str
    product_id: str
    product_name: str
    unit_price: Decimal
    quantity: int
    line_total: Decimal
    product_sku: Optional[str] = None
    product_category: Optional[str] = None
    created_at: Optional[datetime] = None

    def __post_init__(self) -> None:
        if self.quantity < 1:
            raise ValueError("quantity must be at least 1")
        if self.unit_price < ZERO:
            raise ValueError("unit_price must be non-negative")
        if self.created_at is not None:
            require_utc_timestamp("created_at", self.created_at)


@dataclass(frozen=True, slots=True)
class Sale:
    """
    Immutable snapshot of a persisted sale and its items.

    Amounts are stored as reported by the store; `computed_subtotal` and
    `computed_total` recompute them from the items for local validation.
    """

    sale_id: str
    sale_number: str
    sale_date: datetime
    employee_id: Optional[str]
    employee_name: str
    payment_method: PaymentMethod
    status: SaleStatus
    subtotal: Decimal
    total_amount: Decimal
    discount_amount: Decimal = ZERO
    tax_amount: Decimal = ZERO
    items: Tuple[SaleItem, ...] = ()
    venue_id: Optional[str] = None
    employee_category: Optional[str] = None
    payment_details: Optional[Mapping[str, Any]] = None
    notes: Optional[str] = None
    refund_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    _items_by_id: Mapping[str, SaleItem] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        require_utc_timestamp("sale_date", self.sale_date)
        if self.created_at is not None:
            require_utc_timestamp("created_at", self.created_at)
        if self.updated_at is not None:
            require_utc_timestamp("updated_at", self.updated_at)
        if self.discount_amount < ZERO:
            raise ValueError("discount_amount must be non-negative")
        if self.tax_amount < ZERO:
            raise ValueError("tax_amount must be non-negative")
        if self.total_amount < ZERO:
            raise ValueError("total_amount must be non-negative")
        object.__setattr__(self, "_items_by_id", {item.item_id: item for item in self.items})

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def is_editable(self) -> bool:
        return self.status in EDITABLE_STATUSES

    @property
    def items_count(self) -> int:
        return len(self.items)

    @property
    def computed_subtotal(self) -> Decimal:
        return sum((item.line_total for item in self.items), ZERO)

    @property
    def computed_total(self) -> Decimal:
        return self.computed_subtotal - self.discount_amount + self.tax_amount

    def find_item(self, item_id: str) -> Optional[SaleItem]:
        return self._items_by_id.get(item_id)

    def quantities_by_product(self) -> Dict[str, int]:
        """Total quantity of each product across the sale's items."""

        totals: Dict[str, int] = {}
        for item in self.items:
            totals[item.product_id] = totals.get(item.product_id, 0) + item.quantity
        return totals

    def ensure_editable(self) -> None:
        """
        Raise TerminalSaleError unless the sale can still be mutated.

        Callers must check this even when the UI already disables editing.
        """

        if not self.is_editable:
            raise TerminalSaleError(self.sale_id, self.status.value)


def require_whole_quantity(quantity: Any) -> int:
    """Quantities are whole units; floats, bools and numeric strings are rejected."""

    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise SaleValidationError(f"quantity must be a whole number, got {quantity!r}")
    return quantity


__all__ = [
    "PaymentMethod",
    "SaleStatus",
    "SaleItem",
    "Sale",
    "TERMINAL_STATUSES",
    "EDITABLE_STATUSES",
    "require_whole_quantity",
]
