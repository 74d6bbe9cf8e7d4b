"""
Wiring for a point-of-sale session.

Builds the Supabase-backed repositories and the services on top of them from
environment settings, so every component shares one venue scope and one venue
timezone.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from repositories.client import Settings, get_settings
from repositories.employee_repository import SupabaseStaffRepository
from repositories.product_repository import SupabaseStockRepository
from repositories.realtime import SupabaseChangeFeed
from repositories.sale_repository import SupabaseTransactionGateway
from services.change_feed_service import ChangeFeedSubscriber
from services.dashboard_service import DashboardService
from services.sale_lifecycle_service import SaleLifecycleManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SalesConsole:
    settings: Settings
    stock: SupabaseStockRepository
    staff: SupabaseStaffRepository
    gateway: SupabaseTransactionGateway
    lifecycle: SaleLifecycleManager
    change_feed: ChangeFeedSubscriber
    feed: SupabaseChangeFeed
    dashboard: DashboardService


def build_sales_console(settings: Optional[Settings] = None) -> SalesConsole:
    """
    Compose the repositories and services for the configured venue.

    No network calls are made here; clients are created on first use.
    """

    settings = settings if settings is not None else get_settings()
    venue_id = settings.venue_id

    stock = SupabaseStockRepository(venue_id=venue_id)
    staff = SupabaseStaffRepository(venue_id=venue_id)
    gateway = SupabaseTransactionGateway(venue_id=venue_id)

    console = SalesConsole(
        settings=settings,
        stock=stock,
        staff=staff,
        gateway=gateway,
        lifecycle=SaleLifecycleManager(gateway),
        change_feed=ChangeFeedSubscriber(gateway, venue_id=venue_id),
        feed=SupabaseChangeFeed(),
        dashboard=DashboardService(
            gateway,
            load_stock=stock.refresh,
            count_active_staff=staff.count_active_employees,
            tz=settings.tz,
        ),
    )
    logger.info(
        "Sales console configured",
        extra={"venue_id": venue_id, "venue_timezone": settings.venue_timezone},
    )
    return console


__all__ = ["SalesConsole", "build_sales_console"]
