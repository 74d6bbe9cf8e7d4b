"""
Domain: Sales aggregation for dashboards.

Pure reductions over sequences of persisted sales. Unless stated otherwise,
only completed sales are counted: pending sales are not final yet, and
cancelled/refunded ones have had their stock reversed.

Contract excerpts implemented here:
- Average is sum/count, and 0 when there are no sales.
- Growth % is (current - previous) / previous * 100, defined as 0 when the
  previous value is 0, which also reports growth from zero (0 -> 500) as 0%.
- Rankings are sorted by amount, descending, and ties keep the order in which
  groups were first seen (stable sort).
- Hour histograms always contain every configured hour label, even with no data.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone, tzinfo
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from .errors import SaleValidationError
from .money import ZERO, to_money
from .sale import PaymentMethod, Sale, SaleStatus
from .time import require_utc_timestamp

# The venue operates overnight; the default dashboard shows 00:00 to 07:00.
NIGHT_HOURS: Tuple[str, ...] = tuple(f"{hour:02d}:00" for hour in range(0, 8))
ALL_HOURS: Tuple[str, ...] = tuple(f"{hour:02d}:00" for hour in range(0, 24))

DEFAULT_TOP_N = 10


class TimeRange(str, Enum):
    TODAY = "today"
    LAST_7_DAYS = "7d"
    LAST_30_DAYS = "30d"
    LAST_90_DAYS = "90d"
    MONTH = "month"
    CUSTOM = "custom"


@dataclass(frozen=True, slots=True)
class Period:
    """Inclusive UTC time window [start, end]."""
    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        require_utc_timestamp("start", self.start)
        require_utc_timestamp("end", self.end)
        if self.end < self.start:
            raise ValueError("Period end must not be before its start")

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end


@dataclass(frozen=True, slots=True)
class SalesSummary:
    sales_count: int
    total_amount: Decimal
    average_amount: Decimal


@dataclass(frozen=True, slots=True)
class EmployeeRanking:
    employee_name: str
    employee_category: Optional[str]
    sales_count: int
    total_amount: Decimal
    average_amount: Decimal


@dataclass(frozen=True, slots=True)
class ProductRanking:
    product_name: str
    product_category: Optional[str]
    quantity_sold: int
    total_revenue: Decimal
    average_price: Decimal


@dataclass(frozen=True, slots=True)
class PaymentMethodShare:
    payment_method: PaymentMethod
    sales_count: int
    total_amount: Decimal
    percentage: float


@dataclass(frozen=True, slots=True)
class HourBucket:
    hour: str
    sales_count: int
    total_amount: Decimal
    average_amount: Decimal


@dataclass(frozen=True, slots=True)
class StatusCounts:
    pending: int
    completed: int
    cancelled: int
    refunded: int


@dataclass(frozen=True, slots=True)
class KpiSummary:
    total_amount: Decimal
    sales_count: int
    sales_growth: float
    count_growth: float
    active_staff: int
    low_stock_products: int


def _average(total: Decimal, count: int) -> Decimal:
    return to_money(total / count) if count else ZERO


def completed_only(sales: Iterable[Sale]) -> List[Sale]:
    return [sale for sale in sales if sale.status == SaleStatus.COMPLETED]


def summarize_sales(sales: Iterable[Sale], include_all_statuses: bool = False) -> SalesSummary:
    """Count, total and average amount of the (completed) sales."""

    selected = list(sales) if include_all_statuses else completed_only(sales)
    total = sum((sale.total_amount for sale in selected), ZERO)
    return SalesSummary(
        sales_count=len(selected),
        total_amount=total,
        average_amount=_average(total, len(selected)),
    )


def growth_percent(current: Decimal | int, previous: Decimal | int) -> float:
    """
    Period-over-period growth in percent.

    Returns 0.0 when `previous` is 0; never NaN, never infinite.
    """

    previous_value = Decimal(str(previous))
    if previous_value == 0:
        return 0.0
    current_value = Decimal(str(current))
    return float((current_value - previous_value) / previous_value * 100)


def rank_employees(sales: Iterable[Sale], limit: Optional[int] = DEFAULT_TOP_N) -> List[EmployeeRanking]:
    """Completed sales grouped by employee name, highest amount first."""

    groups: Dict[str, List] = {}
    for sale in completed_only(sales):
        group = groups.setdefault(sale.employee_name, [sale.employee_category, 0, ZERO])
        group[1] += 1
        group[2] += sale.total_amount

    rankings = [
        EmployeeRanking(
            employee_name=name,
            employee_category=category,
            sales_count=count,
            total_amount=amount,
            average_amount=_average(amount, count),
        )
        for name, (category, count, amount) in groups.items()
    ]
    rankings.sort(key=lambda r: r.total_amount, reverse=True)
    return rankings if limit is None else rankings[:limit]


def rank_products(
    sales: Iterable[Sale],
    limit: Optional[int] = DEFAULT_TOP_N,
    category: Optional[str] = None,
) -> List[ProductRanking]:
    """
    Items of completed sales grouped by product name, highest revenue first.

    average_price is the mean unit price over the item rows, not weighted by
    quantity.
    """

    groups: Dict[str, List] = {}
    for sale in completed_only(sales):
        for item in sale.items:
            group = groups.setdefault(item.product_name, [item.product_category, 0, ZERO, ZERO, 0])
            group[1] += item.quantity
            group[2] += item.line_total
            group[3] += item.unit_price
            group[4] += 1

    rankings = [
        ProductRanking(
            product_name=name,
            product_category=product_category,
            quantity_sold=quantity,
            total_revenue=revenue,
            average_price=_average(price_sum, rows),
        )
        for name, (product_category, quantity, revenue, price_sum, rows) in groups.items()
    ]
    if category is not None:
        rankings = [r for r in rankings if r.product_category == category]
    rankings.sort(key=lambda r: r.total_revenue, reverse=True)
    return rankings if limit is None else rankings[:limit]


def rank_payment_methods(sales: Iterable[Sale], limit: Optional[int] = None) -> List[PaymentMethodShare]:
    """Completed sales grouped by payment method with their share of the total."""

    selected = completed_only(sales)
    grand_total = sum((sale.total_amount for sale in selected), ZERO)

    groups: Dict[PaymentMethod, List] = {}
    for sale in selected:
        group = groups.setdefault(sale.payment_method, [0, ZERO])
        group[0] += 1
        group[1] += sale.total_amount

    shares = [
        PaymentMethodShare(
            payment_method=method,
            sales_count=count,
            total_amount=amount,
            percentage=float(amount / grand_total * 100) if grand_total > 0 else 0.0,
        )
        for method, (count, amount) in groups.items()
    ]
    shares.sort(key=lambda s: s.total_amount, reverse=True)
    return shares if limit is None else shares[:limit]


def hourly_histogram(
    sales: Iterable[Sale],
    hours: Sequence[str] = NIGHT_HOURS,
    tz: tzinfo = timezone.utc,
) -> List[HourBucket]:
    """
    Completed sales bucketed by the local hour of their sale date.

    Every label in `hours` is present in the result, in the given order.
    Sales whose hour is not one of the labels are ignored.
    """

    counts: Dict[str, int] = {hour: 0 for hour in hours}
    amounts: Dict[str, Decimal] = {hour: ZERO for hour in hours}

    for sale in completed_only(sales):
        label = sale.sale_date.astimezone(tz).strftime("%H:00")
        if label in counts:
            counts[label] += 1
            amounts[label] += sale.total_amount

    return [
        HourBucket(
            hour=hour,
            sales_count=counts[hour],
            total_amount=amounts[hour],
            average_amount=_average(amounts[hour], counts[hour]),
        )
        for hour in counts
    ]


def count_by_status(sales: Iterable[Sale]) -> StatusCounts:
    counts = {status: 0 for status in SaleStatus}
    for sale in sales:
        counts[sale.status] += 1
    return StatusCounts(
        pending=counts[SaleStatus.PENDING],
        completed=counts[SaleStatus.COMPLETED],
        cancelled=counts[SaleStatus.CANCELLED],
        refunded=counts[SaleStatus.REFUNDED],
    )


def filter_sales(
    sales: Iterable[Sale],
    search: Optional[str] = None,
    payment_method: Optional[PaymentMethod] = None,
    status: Optional[SaleStatus] = None,
    employee_name: Optional[str] = None,
    period: Optional[Period] = None,
) -> List[Sale]:
    """
    Filter a sales list the way the sales history screen does.

    `search` matches the sale number, employee name or notes; `employee_name`
    is a case-insensitive substring match. Statuses are not restricted.
    """

    term = search.strip().lower() if search else ""
    employee_term = employee_name.strip().lower() if employee_name else ""

    result: List[Sale] = []
    for sale in sales:
        if term and not (
            term in sale.sale_number.lower()
            or term in sale.employee_name.lower()
            or (sale.notes is not None and term in sale.notes.lower())
        ):
            continue
        if payment_method is not None and sale.payment_method != payment_method:
            continue
        if status is not None and sale.status != status:
            continue
        if employee_term and employee_term not in sale.employee_name.lower():
            continue
        if period is not None and not period.contains(sale.sale_date):
            continue
        result.append(sale)
    return result


def resolve_period(
    time_range: TimeRange,
    now: datetime,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    tz: tzinfo = timezone.utc,
) -> Period:
    """
    Translate a dashboard time range into a UTC period.

    Day boundaries (today, month, custom dates) are taken in the venue
    timezone `tz`. A custom range without dates defaults to the last 7 days.

    Raises:
        SaleValidationError: If a custom range starts after it ends (a start
            date in the future counts, since the end defaults to `now`)
    """

    require_utc_timestamp("now", now)
    local_now = now.astimezone(tz)

    def start_of(day: date) -> datetime:
        return datetime.combine(day, time.min, tzinfo=tz).astimezone(timezone.utc)

    def end_of(day: date) -> datetime:
        return datetime.combine(day, time.max, tzinfo=tz).astimezone(timezone.utc)

    if time_range == TimeRange.TODAY:
        return Period(start_of(local_now.date()), end_of(local_now.date()))
    if time_range == TimeRange.LAST_7_DAYS:
        return Period(now - timedelta(days=7), now)
    if time_range == TimeRange.LAST_30_DAYS:
        return Period(now - timedelta(days=30), now)
    if time_range == TimeRange.LAST_90_DAYS:
        return Period(now - timedelta(days=90), now)
    if time_range == TimeRange.MONTH:
        first = local_now.date().replace(day=1)
        next_month = (first + timedelta(days=32)).replace(day=1)
        return Period(start_of(first), end_of(next_month - timedelta(days=1)))

    start = start_of(date_from) if date_from is not None else now - timedelta(days=7)
    end = end_of(date_to) if date_to is not None else now
    if end < start:
        raise SaleValidationError(
            f"Invalid date range {date_from} .. {date_to or local_now.date()}: start is after end"
        )
    return Period(start, end)


def previous_period(period: Period) -> Period:
    """The window of equal length ending just before `period` starts."""

    length = period.end - period.start
    end = period.start - timedelta(microseconds=1)
    return Period(end - length, end)


def compute_kpis(
    current: Iterable[Sale],
    previous: Iterable[Sale],
    active_staff: int = 0,
    low_stock_products: int = 0,
) -> KpiSummary:
    now_summary = summarize_sales(current)
    before_summary = summarize_sales(previous)
    return KpiSummary(
        total_amount=now_summary.total_amount,
        sales_count=now_summary.sales_count,
        sales_growth=growth_percent(now_summary.total_amount, before_summary.total_amount),
        count_growth=growth_percent(now_summary.sales_count, before_summary.sales_count),
        active_staff=active_staff,
        low_stock_products=low_stock_products,
    )


__all__ = [
    "ALL_HOURS",
    "NIGHT_HOURS",
    "TimeRange",
    "Period",
    "SalesSummary",
    "EmployeeRanking",
    "ProductRanking",
    "PaymentMethodShare",
    "HourBucket",
    "StatusCounts",
    "KpiSummary",
    "completed_only",
    "summarize_sales",
    "growth_percent",
    "rank_employees",
    "rank_products",
    "rank_payment_methods",
    "hourly_histogram",
    "count_by_status",
    "filter_sales",
    "resolve_period",
    "previous_period",
    "compute_kpis",
]
