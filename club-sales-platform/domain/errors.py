"""
Domain: Sale error taxonomy.

- SaleValidationError: rejected locally, before any remote call.
- SaleRejectedError (and subclasses): rejected by the transaction gateway, or
  by the local re-check of the same rule.
- GatewayUnavailableError: transport or availability failure.

None of these are retried automatically.
"""

from __future__ import annotations

from typing import Optional


class SaleError(Exception):
    """Base class for every sale lifecycle failure."""


class SaleValidationError(SaleError, ValueError):
    """Raised when an operation is invalid before reaching the gateway."""


class SaleRejectedError(SaleError):
    """Raised when the gateway refuses an operation."""

    def __init__(self, message: str, code: Optional[str] = None):
        self.code = code
        super().__init__(message)


class InsufficientStockError(SaleRejectedError):
    """Raised when a product does not have enough stock for the operation."""

    def __init__(
        self,
        product_id: Optional[str] = None,
        requested: Optional[int] = None,
        available: Optional[int] = None,
        message: Optional[str] = None,
    ):
        self.product_id = product_id
        self.requested = requested
        self.available = available
        if message is None:
            message = (
                f"Insufficient stock for product {product_id}. "
                f"Requested: {requested}, Available: {available}"
            )
        super().__init__(message, code="INSUFFICIENT_STOCK")


class TerminalSaleError(SaleRejectedError):
    """Raised when a cancelled or refunded sale is mutated."""

    def __init__(self, sale_id: str, status: Optional[str] = None, message: Optional[str] = None):
        self.sale_id = sale_id
        self.status = status
        if message is None:
            message = f"Sale {sale_id} is {status or 'closed'} and can no longer be modified"
        super().__init__(message, code="TERMINAL_STATE")


class SaleNotFoundError(SaleRejectedError):
    """Raised when a sale, sale item or product id is unknown."""

    def __init__(self, sale_id: str, message: Optional[str] = None):
        self.sale_id = sale_id
        super().__init__(message or f"Sale not found: {sale_id}", code="NOT_FOUND")


class GatewayUnavailableError(SaleError):
    """Raised when the backend cannot be reached or times out."""


__all__ = [
    "SaleError",
    "SaleValidationError",
    "SaleRejectedError",
    "InsufficientStockError",
    "TerminalSaleError",
    "SaleNotFoundError",
    "GatewayUnavailableError",
]
