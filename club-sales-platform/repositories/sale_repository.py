"""
Sale repository (Supabase transaction gateway).

Implements `services.gateway.TransactionGateway` on top of Supabase:
- Writes go through PostgreSQL functions, each one atomic together with the
  stock movements it implies (fn_create_sale, fn_add_sale_item,
  fn_update_sale_item, fn_remove_sale_item, fn_cancel_refund_sale,
  fn_update_sale).
- Reads come from the `sales` table with its `sale_items` embedded.

This module enforces no business rules; the lifecycle manager does. Store
errors are translated into the domain error taxonomy by
`repositories.store_errors`; `{"success": false}` results become rejections
here.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Mapping, Optional

from supabase import Client  # type: ignore[import-not-found]

from domain.aggregation import Period
from domain.errors import (
    InsufficientStockError,
    SaleError,
    SaleNotFoundError,
    SaleRejectedError,
    TerminalSaleError,
)
from domain.money import ZERO, to_money
from domain.sale import PaymentMethod, Sale, SaleItem, SaleStatus
from domain.time import parse_utc_datetime, to_iso_utc
from repositories.client import get_supabase
from repositories.store_errors import execute_or_raise
from services.commands import SubmitSaleCommand, UpdateSaleDetailsCommand

logger = logging.getLogger(__name__)

# Keep these aligned with your database schema.
_SALES_TABLE: str = "sales"
_SALE_COLUMNS: str = "*, sale_items(*)"
_VENUE_COLUMN: str = "club_id"


def _money(value: Any) -> Decimal:
    return ZERO if value is None else to_money(str(value))


def _optional_datetime(value: Any) -> Optional[datetime]:
    return parse_utc_datetime(value) if value else None


def _row_to_item(row: Mapping[str, Any]) -> SaleItem:
    """Convert a `sale_items` row into a SaleItem."""

    return SaleItem(
        item_id=str(row["id"]),
        sale_id=str(row["sale_id"]),
        product_id=str(row["product_id"]),
        product_name=str(row.get("product_name") or ""),
        unit_price=_money(row.get("unit_price")),
        quantity=int(row["quantity"]),
        line_total=_money(row.get("line_total")),
        product_sku=row.get("product_sku"),
        product_category=row.get("product_category"),
        created_at=_optional_datetime(row.get("created_at")),
    )


def _row_to_sale(row: Mapping[str, Any]) -> Sale:
    """Convert a `sales` row (with embedded `sale_items`) into a Sale."""

    items = tuple(_row_to_item(item) for item in row.get("sale_items") or [])
    employee_id = row.get("employee_id")
    venue_id = row.get(_VENUE_COLUMN)

    return Sale(
        sale_id=str(row["id"]),
        sale_number=str(row.get("sale_number") or ""),
        sale_date=parse_utc_datetime(row["sale_date"]),
        employee_id=str(employee_id) if employee_id is not None else None,
        employee_name=str(row.get("employee_name") or ""),
        employee_category=row.get("employee_category"),
        payment_method=PaymentMethod(str(row["payment_method"])),
        status=SaleStatus(str(row["status"])),
        subtotal=_money(row.get("subtotal")),
        discount_amount=_money(row.get("discount_amount")),
        tax_amount=_money(row.get("tax_amount")),
        total_amount=_money(row.get("total_amount")),
        items=items,
        venue_id=str(venue_id) if venue_id is not None else None,
        payment_details=row.get("payment_details"),
        notes=row.get("notes"),
        refund_reason=row.get("refund_reason"),
        created_at=_optional_datetime(row.get("created_at")),
        updated_at=_optional_datetime(row.get("updated_at")),
    )


def _rejection_from_result(result: Mapping[str, Any], sale_id: Optional[str]) -> SaleError:
    """Build the error for a `{"success": false, "error": ..., "message": ...}` result."""

    error_code = result.get("error")
    message = str(result.get("message") or error_code or "Operation rejected by the store")
    if error_code == "INSUFFICIENT_STOCK":
        return InsufficientStockError(
            product_id=result.get("product_id"),
            requested=result.get("requested"),
            available=result.get("available"),
            message=message,
        )
    if error_code == "NOT_FOUND":
        return SaleNotFoundError(sale_id or "", message)
    if error_code == "TERMINAL_STATE":
        return TerminalSaleError(sale_id or "", message=message)
    return SaleRejectedError(message, code=error_code)


class SupabaseTransactionGateway:
    """
    Transaction gateway backed by Supabase RPC functions.

    Args:
        client: Supabase client (defaults to the shared one from repositories.client)
        venue_id: Restrict reads to one venue (`club_id`)
    """

    def __init__(self, client: Optional[Client] = None, venue_id: Optional[str] = None):
        self._client = client
        self._venue_id = venue_id

    @property
    def client(self) -> Client:
        return self._client if self._client is not None else get_supabase()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_sale(self, sale_id: str) -> Optional[Sale]:
        """
        Retrieve a single sale with its items.

        Returns:
            Sale or None if not found
        """

        query = self.client.table(_SALES_TABLE).select(_SALE_COLUMNS).eq("id", sale_id)
        if self._venue_id:
            query = query.eq(_VENUE_COLUMN, self._venue_id)

        try:
            rows = execute_or_raise("get_sale", lambda: query.limit(1).execute(), sale_id) or []
        except SaleNotFoundError:
            return None

        if not rows:
            return None
        return _row_to_sale(rows[0])

    def list_sales(
        self,
        period: Optional[Period] = None,
        status: Optional[SaleStatus] = None,
    ) -> List[Sale]:
        """
        List sales, newest first.

        Args:
            period: Inclusive sale_date range (UTC)
            status: Only sales in this status
        """

        query = self.client.table(_SALES_TABLE).select(_SALE_COLUMNS)
        if self._venue_id:
            query = query.eq(_VENUE_COLUMN, self._venue_id)
        if period is not None:
            query = query.gte("sale_date", to_iso_utc(period.start)).lte("sale_date", to_iso_utc(period.end))
        if status is not None:
            query = query.eq("status", status.value)

        rows = execute_or_raise("list_sales", lambda: query.order("sale_date", desc=True).execute()) or []
        return [_row_to_sale(row) for row in rows]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def create_sale(self, command: SubmitSaleCommand) -> str:
        params: Dict[str, Any] = {
            "p_employee_user_id": command.employee_id,
            "p_employee_name": command.employee_name,
            "p_employee_category": command.employee_category,
            "p_items": [
                {
                    "product_id": line.product_id,
                    "quantity": line.quantity,
                    "unit_price": str(line.unit_price),
                }
                for line in command.items
            ],
            "p_payment_method": command.payment_method.value,
            "p_payment_details": command.payment_details,
            "p_discount_amount": str(command.discount_amount),
            "p_tax_amount": str(command.tax_amount),
            "p_notes": command.notes,
            "p_status": command.status.value,
            "p_idempotency_key": command.idempotency_key,
        }
        result = self._rpc("fn_create_sale", params)
        return self._extract_id(result, "sale_id", "fn_create_sale")

    def add_item(
        self,
        sale_id: str,
        product_id: str,
        quantity: int,
        unit_price: Optional[Decimal] = None,
    ) -> str:
        params = {
            "p_sale_id": sale_id,
            "p_product_id": product_id,
            "p_quantity": quantity,
            "p_unit_price": str(unit_price) if unit_price is not None else None,
        }
        result = self._rpc("fn_add_sale_item", params, sale_id)
        return self._extract_id(result, "item_id", "fn_add_sale_item")

    def update_item(
        self,
        item_id: str,
        quantity: Optional[int] = None,
        unit_price: Optional[Decimal] = None,
    ) -> bool:
        params = {
            "p_item_id": item_id,
            "p_quantity": quantity,
            "p_unit_price": str(unit_price) if unit_price is not None else None,
        }
        return self._applied(self._rpc("fn_update_sale_item", params))

    def remove_item(self, item_id: str) -> bool:
        return self._applied(self._rpc("fn_remove_sale_item", {"p_item_id": item_id}))

    def transition_status(
        self,
        sale_id: str,
        new_status: SaleStatus,
        reason: Optional[str] = None,
    ) -> bool:
        if new_status in (SaleStatus.CANCELLED, SaleStatus.REFUNDED):
            params = {"p_sale_id": sale_id, "p_action": new_status.value, "p_reason": reason}
            return self._applied(self._rpc("fn_cancel_refund_sale", params, sale_id))

        params = {"p_sale_id": sale_id, "p_status": new_status.value}
        return self._applied(self._rpc("fn_update_sale", params, sale_id))

    def update_sale(self, sale_id: str, changes: UpdateSaleDetailsCommand) -> bool:
        params = {
            "p_sale_id": sale_id,
            "p_employee_user_id": changes.employee_id,
            "p_employee_name": changes.employee_name,
            "p_employee_category": changes.employee_category,
            "p_payment_method": changes.payment_method.value if changes.payment_method else None,
            "p_payment_details": changes.payment_details,
            "p_discount_amount": str(changes.discount_amount) if changes.discount_amount is not None else None,
            "p_notes": changes.notes,
        }
        return self._applied(self._rpc("fn_update_sale", params, sale_id))

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _rpc(self, name: str, params: Mapping[str, Any], sale_id: Optional[str] = None) -> Any:
        result = execute_or_raise(
            name, lambda: self.client.rpc(name, dict(params)).execute(), sale_id, error_code="RPC_ERROR"
        )
        if isinstance(result, dict) and result.get("success") is False:
            logger.warning(
                "Supabase function rejected the operation",
                extra={"operation": name, "sale_id": sale_id, "error_code": result.get("error")},
            )
            raise _rejection_from_result(result, sale_id)
        return result

    @staticmethod
    def _extract_id(result: Any, key: str, operation: str) -> str:
        if isinstance(result, list) and len(result) == 1:
            result = result[0]
        if isinstance(result, dict):
            value = result.get(key) or result.get("id")
        else:
            value = result
        if not value:
            raise SaleRejectedError(f"{operation} returned no {key}", code="RPC_ERROR")
        return str(value)

    @staticmethod
    def _applied(result: Any) -> bool:
        if isinstance(result, bool):
            return result
        if isinstance(result, dict) and "success" in result:
            return bool(result["success"])
        # Void functions return no data
        return True


__all__ = ["SupabaseTransactionGateway"]
