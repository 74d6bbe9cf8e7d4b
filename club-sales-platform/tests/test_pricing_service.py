"""
Tests for `services/pricing_service.py`.

Covers contract rules:
- subtotal = sum(quantity * unit_price); total = subtotal - discount + tax.
- Amounts are exact decimal cents.
- Negative totals are reported, and refused before submission.
"""

from __future__ import annotations

from decimal import Decimal

import pytest

from domain.draft import SaleDraft
from domain.errors import SaleValidationError
from services.pricing_service import (
    calculate_sale_quote,
    calculate_subtotal,
    calculate_total,
    require_payable_total,
)


def test_quote_with_discount_and_tax(stock) -> None:
    """Scenario: 2 x 10.00 + 1 x 2500.00, discount 5, tax 0."""

    draft = SaleDraft(stock)
    draft.add_item("gin")
    draft.add_item("gin")
    draft.add_item("beer")
    draft.set_discount("5")

    quote = calculate_sale_quote(draft)

    assert quote.subtotal == Decimal("2520.00")
    assert quote.total_amount == Decimal("2515.00")
    assert quote.total_items == 3
    assert quote.currency == "ARS"
    assert quote.is_payable


def test_simple_quote_matches_hand_computed_total(stock) -> None:
    """Scenario: 2 x 10.00 with discount 5.00 totals 15.00."""

    draft = SaleDraft(stock)
    draft.add_item("gin")
    draft.set_quantity("gin", 2)
    draft.set_discount("5.00")

    quote = calculate_sale_quote(draft)

    assert quote.subtotal == Decimal("20.00")
    assert quote.total_amount == Decimal("15.00")


def test_discount_above_subtotal_is_not_payable(stock) -> None:
    """Scenario: subtotal 10.00 with discount 15.00 yields -5.00 and cannot be paid."""

    draft = SaleDraft(stock)
    draft.add_item("gin")
    draft.set_discount("15.00")

    quote = calculate_sale_quote(draft)

    assert quote.total_amount == Decimal("-5.00")
    assert not quote.is_payable
    with pytest.raises(SaleValidationError):
        require_payable_total(quote.total_amount)


def test_totals_have_no_float_drift() -> None:
    """Verify 0.1 + 0.2 style sums stay exact."""

    class Line:
        def __init__(self, quantity: int, unit_price: str):
            self.quantity = quantity
            self.unit_price = Decimal(unit_price)

    subtotal = calculate_subtotal([Line(1, "0.10"), Line(1, "0.20"), Line(3, "33.33")])

    assert subtotal == Decimal("100.29")
    assert calculate_total(subtotal, 0.29, "0") == Decimal("100.00")


def test_empty_draft_totals_zero(stock) -> None:
    """Verify an empty draft prices to zero."""

    quote = calculate_sale_quote(SaleDraft(stock))

    assert quote.subtotal == Decimal("0.00")
    assert quote.total_amount == Decimal("0.00")
    assert quote.lines == []
