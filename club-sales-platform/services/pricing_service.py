"""
Pricing service for sale totals.

Pure functions, no I/O:
- subtotal = sum(quantity * unit_price)
- total = subtotal - discount + tax

All values are Decimal cents; products are computed exactly and only the
final amounts are quantized.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Iterable, List, Protocol

from domain.draft import SaleDraft
from domain.errors import SaleValidationError
from domain.money import DEFAULT_CURRENCY, ZERO, MoneyLike, to_money


class PricedLine(Protocol):
    quantity: int
    unit_price: Decimal


@dataclass(frozen=True, slots=True)
class QuoteLine:
    """Line of a sale quote."""
    product_id: str
    product_name: str
    quantity: int
    unit_price: Decimal
    line_total: Decimal


@dataclass(frozen=True, slots=True)
class SaleQuote:
    """
    Priced breakdown of a draft.

    A quote with a negative total is still returned so the UI can show it;
    it cannot be submitted.
    """
    lines: List[QuoteLine]
    subtotal: Decimal
    discount_amount: Decimal
    tax_amount: Decimal
    total_amount: Decimal
    currency: str

    @property
    def total_items(self) -> int:
        """Total number of units in this quote."""
        return sum(line.quantity for line in self.lines)

    @property
    def is_payable(self) -> bool:
        return self.total_amount >= ZERO


def calculate_subtotal(lines: Iterable[PricedLine]) -> Decimal:
    subtotal = sum((Decimal(line.unit_price) * line.quantity for line in lines), ZERO)
    return to_money(subtotal)


def calculate_total(
    subtotal: MoneyLike,
    discount: MoneyLike = ZERO,
    tax: MoneyLike = ZERO,
) -> Decimal:
    return to_money(to_money(subtotal) - to_money(discount) + to_money(tax))


def require_payable_total(total: Decimal) -> None:
    """
    Reject negative totals before anything reaches the gateway.

    Raises:
        SaleValidationError: If total < 0
    """

    if total < ZERO:
        raise SaleValidationError(
            f"Sale total cannot be negative (total: {total}). "
            "Reduce the discount or add items."
        )


def calculate_sale_quote(draft: SaleDraft, currency: str = DEFAULT_CURRENCY) -> SaleQuote:
    """
    Price a draft.

    Example:
        quote = calculate_sale_quote(draft)
        if not quote.is_payable:
            print(f"Discount exceeds subtotal by {-quote.total_amount}")
    """

    lines = [
        QuoteLine(
            product_id=item.product_id,
            product_name=item.product_name,
            quantity=item.quantity,
            unit_price=item.unit_price,
            line_total=to_money(item.line_total),
        )
        for item in draft.items
    ]
    subtotal = calculate_subtotal(draft.items)

    return SaleQuote(
        lines=lines,
        subtotal=subtotal,
        discount_amount=draft.discount_amount,
        tax_amount=draft.tax_amount,
        total_amount=calculate_total(subtotal, draft.discount_amount, draft.tax_amount),
        currency=currency,
    )


__all__ = [
    "QuoteLine",
    "SaleQuote",
    "calculate_subtotal",
    "calculate_total",
    "require_payable_total",
    "calculate_sale_quote",
]
