"""
Supabase call execution and error translation.

Every repository runs its `.execute()` calls through `execute_or_raise`, so
store failures surface in the domain error taxonomy:
- postgrest APIError -> SaleNotFoundError / InsufficientStockError /
  TerminalSaleError / SaleRejectedError
- httpx transport errors -> GatewayUnavailableError
- a response carrying `error` -> SaleRejectedError
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Optional

import httpx
from postgrest.exceptions import APIError

from domain.errors import (
    GatewayUnavailableError,
    InsufficientStockError,
    SaleError,
    SaleNotFoundError,
    SaleRejectedError,
    TerminalSaleError,
)

logger = logging.getLogger(__name__)

# PostgREST "no rows" and PL/pgSQL no_data_found.
_NOT_FOUND_CODES = frozenset({"PGRST116", "P0002"})
_STOCK_MARKERS = ("insufficient stock", "stock insuficiente", "not enough stock", "sin stock")
_TERMINAL_MARKERS = ("terminal", "cancelled", "refunded", "cancelada", "reembolsada")
_NOT_FOUND_MARKERS = ("not found", "no encontrad", "no existe")


def _api_error_payload(exc: APIError) -> Dict[str, Any]:
    try:
        payload = exc.json() if callable(getattr(exc, "json", None)) else {}
    except (TypeError, ValueError):
        payload = {}
    return payload if isinstance(payload, dict) else {}


def translate_api_error(exc: APIError, sale_id: Optional[str] = None) -> SaleError:
    """Map a PostgREST error onto the domain error taxonomy."""

    code = getattr(exc, "code", None)
    message = getattr(exc, "message", None) or str(exc)
    text = message.lower()

    if code in _NOT_FOUND_CODES or any(marker in text for marker in _NOT_FOUND_MARKERS):
        return SaleNotFoundError(sale_id or "", message)
    if any(marker in text for marker in _STOCK_MARKERS):
        return InsufficientStockError(message=message)
    if any(marker in text for marker in _TERMINAL_MARKERS):
        return TerminalSaleError(sale_id or "", message=message)
    return SaleRejectedError(message, code=code or "API_ERROR")


def execute_or_raise(
    operation: str,
    call: Callable[[], Any],
    sale_id: Optional[str] = None,
    error_code: str = "QUERY_ERROR",
) -> Any:
    """
    Run a Supabase call and return its `data`.

    Args:
        operation: Name used in logs and error messages
        call: Zero-argument callable that performs `.execute()`
        sale_id: Sale the call concerns, if any
        error_code: Code for a response that carries an `error`

    Raises:
        SaleError: One of the domain errors listed in the module docstring
    """

    try:
        response = call()
    except APIError as exc:
        # supabase-py raises APIError for some successful JSON results of RPC functions
        payload = _api_error_payload(exc)
        if payload.get("success") is True:
            return payload
        logger.warning(
            "Supabase operation failed",
            extra={"operation": operation, "sale_id": sale_id, "error_code": getattr(exc, "code", None)},
        )
        raise translate_api_error(exc, sale_id) from exc
    except httpx.HTTPError as exc:
        logger.warning(
            "Supabase unreachable",
            extra={"operation": operation, "sale_id": sale_id},
            exc_info=True,
        )
        raise GatewayUnavailableError(f"Supabase unreachable during {operation}: {exc}") from exc

    error = getattr(response, "error", None)
    if error:
        raise SaleRejectedError(f"Failed to {operation}: {error}", code=error_code)
    return getattr(response, "data", None)


__all__ = [
    "execute_or_raise",
    "translate_api_error",
]
