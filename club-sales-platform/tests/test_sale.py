"""
Tests for `domain/sale.py`.

Covers contract rules:
- Sale.sale_date is required and must be a UTC timestamp.
- Sale is immutable (frozen).
- Status transitions follow the lifecycle; cancelled and refunded are terminal.
"""

from __future__ import annotations

from dataclasses import FrozenInstanceError
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from domain.errors import TerminalSaleError
from domain.sale import PaymentMethod, Sale, SaleItem, SaleStatus


def _sale(**overrides) -> Sale:
    fields = dict(
        sale_id="s1",
        sale_number="V-0001",
        sale_date=datetime(2026, 3, 14, 2, 0, tzinfo=timezone.utc),
        employee_id="emp-1",
        employee_name="Lucia",
        payment_method=PaymentMethod.CASH,
        status=SaleStatus.COMPLETED,
        subtotal=Decimal("20.00"),
        total_amount=Decimal("20.00"),
    )
    fields.update(overrides)
    return Sale(**fields)


def test_sale_date_must_be_utc() -> None:
    """Verify sale_date enforces UTC timezone-aware timestamp."""

    with pytest.raises(ValueError):
        _sale(sale_date=datetime(2026, 3, 14, 2, 0))

    with pytest.raises(ValueError):
        _sale(sale_date=datetime(2026, 3, 14, 2, 0, tzinfo=timezone(timedelta(hours=-3))))


def test_sale_is_immutable() -> None:
    """Verify Sale cannot be mutated after creation (frozen entity)."""

    sale = _sale()

    with pytest.raises(FrozenInstanceError):
        sale.status = SaleStatus.CANCELLED  # type: ignore[misc]


def test_negative_amounts_are_rejected() -> None:
    with pytest.raises(ValueError):
        _sale(discount_amount=Decimal("-1"))
    with pytest.raises(ValueError):
        _sale(total_amount=Decimal("-0.01"))


def test_sale_item_quantity_must_be_positive() -> None:
    with pytest.raises(ValueError):
        SaleItem("i1", "s1", "gin", "Gin Tonic", Decimal("10.00"), 0, Decimal("0.00"))


@pytest.mark.parametrize(
    ("source", "target", "allowed"),
    [
        (SaleStatus.PENDING, SaleStatus.COMPLETED, True),
        (SaleStatus.PENDING, SaleStatus.CANCELLED, True),
        (SaleStatus.COMPLETED, SaleStatus.REFUNDED, True),
        (SaleStatus.COMPLETED, SaleStatus.PENDING, False),
        (SaleStatus.CANCELLED, SaleStatus.REFUNDED, False),
        (SaleStatus.REFUNDED, SaleStatus.COMPLETED, False),
    ],
)
def test_status_transitions(source, target, allowed) -> None:
    assert source.can_transition_to(target) is allowed


def test_terminal_sale_is_not_editable() -> None:
    """Verify ensure_editable raises for cancelled and refunded sales."""

    for status in (SaleStatus.CANCELLED, SaleStatus.REFUNDED):
        sale = _sale(status=status)
        assert sale.is_terminal
        with pytest.raises(TerminalSaleError):
            sale.ensure_editable()

    _sale(status=SaleStatus.PENDING).ensure_editable()


def test_computed_totals_and_item_lookup() -> None:
    """Verify totals are recomputed from items and items are found by id."""

    items = (
        SaleItem("i1", "s1", "gin", "Gin Tonic", Decimal("10.00"), 2, Decimal("20.00")),
        SaleItem("i2", "s1", "gin", "Gin Tonic", Decimal("10.00"), 1, Decimal("10.00")),
        SaleItem("i3", "s1", "beer", "Cerveza", Decimal("2500.00"), 1, Decimal("2500.00")),
    )
    sale = _sale(items=items, discount_amount=Decimal("30.00"), tax_amount=Decimal("5.00"))

    assert sale.computed_subtotal == Decimal("2530.00")
    assert sale.computed_total == Decimal("2505.00")
    assert sale.items_count == 3
    assert sale.find_item("i3").product_id == "beer"
    assert sale.find_item("missing") is None
    assert sale.quantities_by_product() == {"gin": 3, "beer": 1}
