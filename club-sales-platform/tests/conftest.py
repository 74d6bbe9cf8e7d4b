"""
Pytest configuration and shared fixtures.

This file adds the parent directory to the Python path so that tests
can import from the domain, repositories, and services modules.

It also provides:
- A stock snapshot with a few bar products
- InMemoryGateway: an atomic, in-memory TransactionGateway that tracks stock
- Sale builders for aggregation tests
"""

from __future__ import annotations

import sys
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from itertools import count
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

import pytest

# Add the club-sales-platform directory to the Python path
# so tests can import domain, repositories, etc.
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from domain.errors import (  # noqa: E402
    InsufficientStockError,
    SaleError,
    SaleNotFoundError,
    TerminalSaleError,
)
from domain.money import ZERO, to_money  # noqa: E402
from domain.product import ProductStock, StockSnapshot  # noqa: E402
from domain.sale import PaymentMethod, Sale, SaleItem, SaleStatus  # noqa: E402

BASE_TIME = datetime(2026, 3, 14, 1, 30, tzinfo=timezone.utc)


def bar_products() -> List[ProductStock]:
    return [
        ProductStock("fernet", "Fernet con Coca", Decimal("4500.00"), 3, category="tragos", sku="FER-01", min_stock=5),
        ProductStock("beer", "Cerveza Tirada", Decimal("2500.00"), 10, category="cervezas", sku="CER-01", min_stock=2),
        ProductStock("water", "Agua Mineral", Decimal("1000.00"), 0, category="sin alcohol", sku="AGU-01", min_stock=1),
        ProductStock("gin", "Gin Tonic", Decimal("10.00"), 50, category="tragos", sku="GIN-01"),
    ]


class InMemoryGateway:
    """
    TransactionGateway fake with all-or-nothing writes and stock tracking.

    Set `fail_next` to an exception to make the next write raise it.
    """

    def __init__(self, products: Iterable[ProductStock]):
        self.products: Dict[str, ProductStock] = {p.product_id: p for p in products}
        self.stock: Dict[str, int] = {p.product_id: p.available_quantity for p in self.products.values()}
        self.sales: Dict[str, Sale] = {}
        self.calls: List[str] = []
        self.created_keys: Dict[str, str] = {}
        self.fail_next: Optional[SaleError] = None
        self._sale_seq = count(1)
        self._item_seq = count(1)

    # Reads

    def get_sale(self, sale_id: str) -> Optional[Sale]:
        return self.sales.get(sale_id)

    def list_sales(self, period=None, status=None) -> List[Sale]:
        sales = [
            s for s in self.sales.values()
            if (period is None or period.contains(s.sale_date)) and (status is None or s.status == status)
        ]
        return sorted(sales, key=lambda s: s.sale_date, reverse=True)

    # Writes

    def create_sale(self, command) -> str:
        self._record("create_sale")
        if command.idempotency_key in self.created_keys:
            return self.created_keys[command.idempotency_key]

        requested: Dict[str, int] = {}
        for line in command.items:
            requested[line.product_id] = requested.get(line.product_id, 0) + line.quantity
        for product_id, quantity in requested.items():
            self._require_stock(product_id, quantity)

        number = next(self._sale_seq)
        sale_id = f"sale-{number}"
        items = []
        for line in command.items:
            self.stock[line.product_id] -= line.quantity
            items.append(self._new_item(sale_id, line.product_id, line.quantity, line.unit_price))

        sale = Sale(
            sale_id=sale_id,
            sale_number=f"V-{number:04d}",
            sale_date=BASE_TIME + timedelta(minutes=number),
            employee_id=command.employee_id,
            employee_name=command.employee_name,
            employee_category=command.employee_category,
            payment_method=command.payment_method,
            payment_details=command.payment_details,
            status=command.status,
            subtotal=ZERO,
            total_amount=ZERO,
            discount_amount=command.discount_amount,
            tax_amount=command.tax_amount,
            notes=command.notes,
        )
        self.sales[sale_id] = self._priced(sale, items)
        self.created_keys[command.idempotency_key] = sale_id
        return sale_id

    def add_item(self, sale_id, product_id, quantity, unit_price=None) -> str:
        self._record("add_item")
        sale = self._editable(sale_id)
        self._require_stock(product_id, quantity)
        price = unit_price if unit_price is not None else self.products[product_id].unit_price
        item = self._new_item(sale_id, product_id, quantity, price)
        self.stock[product_id] -= quantity
        self.sales[sale_id] = self._priced(sale, [*sale.items, item])
        return item.item_id

    def update_item(self, item_id, quantity=None, unit_price=None) -> bool:
        self._record("update_item")
        sale, item = self._find_item(item_id)
        self._editable(sale.sale_id)
        new_quantity = item.quantity if quantity is None else quantity
        delta = new_quantity - item.quantity
        if delta > 0:
            self._require_stock(item.product_id, delta)
        self.stock[item.product_id] -= delta
        price = item.unit_price if unit_price is None else unit_price
        updated = replace(item, quantity=new_quantity, unit_price=price, line_total=to_money(price * new_quantity))
        items = [updated if i.item_id == item_id else i for i in sale.items]
        self.sales[sale.sale_id] = self._priced(sale, items)
        return True

    def remove_item(self, item_id) -> bool:
        self._record("remove_item")
        sale, item = self._find_item(item_id)
        self._editable(sale.sale_id)
        self.stock[item.product_id] += item.quantity
        self.sales[sale.sale_id] = self._priced(sale, [i for i in sale.items if i.item_id != item_id])
        return True

    def transition_status(self, sale_id, new_status, reason=None) -> bool:
        self._record("transition_status")
        sale = self._editable(sale_id)
        if new_status in (SaleStatus.CANCELLED, SaleStatus.REFUNDED):
            for item in sale.items:
                self.stock[item.product_id] += item.quantity
        self.sales[sale_id] = replace(sale, status=new_status, refund_reason=reason)
        return True

    def update_sale(self, sale_id, changes) -> bool:
        self._record("update_sale")
        sale = self._editable(sale_id)
        fields = {k: v for k, v in changes.model_dump().items() if v is not None}
        self.sales[sale_id] = self._priced(replace(sale, **fields), list(sale.items))
        return True

    # Helpers

    def _record(self, operation: str) -> None:
        self.calls.append(operation)
        if self.fail_next is not None:
            error, self.fail_next = self.fail_next, None
            raise error

    def _require_stock(self, product_id: str, quantity: int) -> None:
        available = self.stock.get(product_id, 0)
        if quantity > available:
            raise InsufficientStockError(product_id, requested=quantity, available=available)

    def _editable(self, sale_id: str) -> Sale:
        sale = self.sales.get(sale_id)
        if sale is None:
            raise SaleNotFoundError(sale_id)
        if sale.is_terminal:
            raise TerminalSaleError(sale_id, sale.status.value)
        return sale

    def _find_item(self, item_id: str):
        for sale in self.sales.values():
            item = sale.find_item(item_id)
            if item is not None:
                return sale, item
        raise SaleNotFoundError(item_id, f"Unknown item: {item_id}")

    def _new_item(self, sale_id: str, product_id: str, quantity: int, unit_price: Decimal) -> SaleItem:
        product = self.products[product_id]
        return SaleItem(
            item_id=f"item-{next(self._item_seq)}",
            sale_id=sale_id,
            product_id=product_id,
            product_name=product.name,
            product_category=product.category,
            unit_price=unit_price,
            quantity=quantity,
            line_total=to_money(unit_price * quantity),
        )

    @staticmethod
    def _priced(sale: Sale, items: List[SaleItem]) -> Sale:
        subtotal = to_money(sum((i.line_total for i in items), ZERO))
        total = to_money(subtotal - sale.discount_amount + sale.tax_amount)
        return replace(sale, items=tuple(items), subtotal=subtotal, total_amount=total)


@pytest.fixture
def products() -> List[ProductStock]:
    return bar_products()


@pytest.fixture
def stock(products) -> StockSnapshot:
    return StockSnapshot(products)


@pytest.fixture
def gateway(products) -> InMemoryGateway:
    return InMemoryGateway(products)


@pytest.fixture
def make_sale() -> Callable[..., Sale]:
    """Factory for persisted sales used by aggregation and change feed tests."""

    sequence = count(1)

    def _make(
        total: str = "100.00",
        status: SaleStatus = SaleStatus.COMPLETED,
        employee: str = "Lucia",
        category: Optional[str] = "bartender",
        method: PaymentMethod = PaymentMethod.CASH,
        at: datetime = BASE_TIME,
        items: Iterable[tuple] = (),
        sale_id: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> Sale:
        number = next(sequence)
        sale_id = sale_id or f"s-{number}"
        sale_items = tuple(
            SaleItem(
                item_id=f"{sale_id}-i{index}",
                sale_id=sale_id,
                product_id=name.lower(),
                product_name=name,
                product_category=item_category,
                unit_price=Decimal(price),
                quantity=quantity,
                line_total=to_money(Decimal(price) * quantity),
            )
            for index, (name, item_category, price, quantity) in enumerate(items)
        )
        amount = Decimal(total)
        return Sale(
            sale_id=sale_id,
            sale_number=f"V-{number:04d}",
            sale_date=at,
            employee_id=f"emp-{employee.lower()}",
            employee_name=employee,
            employee_category=category,
            payment_method=method,
            status=status,
            subtotal=amount,
            total_amount=amount,
            items=sale_items,
            notes=notes,
        )

    return _make


@pytest.fixture
def make_gateway() -> Callable[[Iterable[ProductStock]], InMemoryGateway]:
    return InMemoryGateway
