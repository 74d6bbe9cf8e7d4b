"""
Dashboard service.

Fetches completed sales for the selected period (and the period before it)
and derives every dashboard view from them with the pure reductions in
`domain.aggregation`.

Filter scope, per view:
- Hourly sales: payment method and employee category
- Payment methods: employee category
- Top products: product category
- Top employees: employee category
- KPIs: unfiltered
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone, tzinfo
from typing import Callable, List, Optional, Sequence

from domain.aggregation import (
    NIGHT_HOURS,
    EmployeeRanking,
    HourBucket,
    KpiSummary,
    PaymentMethodShare,
    Period,
    ProductRanking,
    TimeRange,
    compute_kpis,
    hourly_histogram,
    previous_period,
    rank_employees,
    rank_payment_methods,
    rank_products,
    resolve_period,
)
from domain.product import StockSnapshot
from domain.sale import PaymentMethod, Sale, SaleStatus
from services.gateway import SaleReader

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class DashboardFilters:
    """Dashboard filter selection. None means "all"."""
    time_range: TimeRange = TimeRange.LAST_30_DAYS
    date_from: Optional[date] = None  # custom range only
    date_to: Optional[date] = None
    payment_method: Optional[PaymentMethod] = None
    employee_category: Optional[str] = None
    product_category: Optional[str] = None


@dataclass(frozen=True, slots=True)
class DashboardSnapshot:
    period: Period
    hourly_sales: List[HourBucket]
    payment_methods: List[PaymentMethodShare]
    top_products: List[ProductRanking]
    top_employees: List[EmployeeRanking]
    kpis: KpiSummary


class DashboardService:
    """
    Builds dashboard snapshots for one venue.

    Args:
        reader: Source of persisted sales
        load_stock: Returns a fresh stock snapshot (for the low-stock KPI)
        count_active_staff: Returns the number of active employees
        tz: Venue timezone used for day boundaries and hour buckets
        hours: Hour labels of the hourly histogram
    """

    def __init__(
        self,
        reader: SaleReader,
        load_stock: Optional[Callable[[], StockSnapshot]] = None,
        count_active_staff: Optional[Callable[[], int]] = None,
        tz: tzinfo = timezone.utc,
        hours: Sequence[str] = NIGHT_HOURS,
    ):
        self._reader = reader
        self._load_stock = load_stock
        self._count_active_staff = count_active_staff
        self._tz = tz
        self._hours = tuple(hours)

    def build(self, filters: DashboardFilters, now: Optional[datetime] = None) -> DashboardSnapshot:
        now = now or datetime.now(timezone.utc)
        period = resolve_period(filters.time_range, now, filters.date_from, filters.date_to, tz=self._tz)
        before = previous_period(period)

        current_sales = self._reader.list_sales(period=period, status=SaleStatus.COMPLETED)
        previous_sales = self._reader.list_sales(period=before, status=SaleStatus.COMPLETED)

        by_category = self._by_employee_category(current_sales, filters.employee_category)
        hourly_source = [
            sale for sale in by_category
            if filters.payment_method is None or sale.payment_method == filters.payment_method
        ]

        low_stock = self._load_stock().low_stock_count() if self._load_stock else 0
        active_staff = self._count_active_staff() if self._count_active_staff else 0

        snapshot = DashboardSnapshot(
            period=period,
            hourly_sales=hourly_histogram(hourly_source, hours=self._hours, tz=self._tz),
            payment_methods=rank_payment_methods(by_category),
            top_products=rank_products(current_sales, category=filters.product_category),
            top_employees=rank_employees(by_category),
            kpis=compute_kpis(
                current_sales,
                previous_sales,
                active_staff=active_staff,
                low_stock_products=low_stock,
            ),
        )
        logger.info(
            "Dashboard built",
            extra={
                "time_range": filters.time_range.value,
                "sales_count": snapshot.kpis.sales_count,
                "previous_sales_count": len(previous_sales),
            },
        )
        return snapshot

    @staticmethod
    def _by_employee_category(sales: List[Sale], category: Optional[str]) -> List[Sale]:
        if category is None:
            return list(sales)
        return [sale for sale in sales if sale.employee_category == category]


__all__ = [
    "DashboardFilters",
    "DashboardSnapshot",
    "DashboardService",
]
