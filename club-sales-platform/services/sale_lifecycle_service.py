"""
Sale lifecycle service.

Owns the state machine of persisted sales and is the only caller of the
transaction gateway's write operations.

Handles:
- Draft submission through an idempotent SubmitSaleCommand
- Item add/update/remove on pending or completed sales
- Confirmation (pending -> completed), cancellation and refund
- Header corrections (payment method, discount, notes, attribution)

Rules enforced locally, before any remote call:
- The sale is reloaded and must still be pending or completed; the caller's
  view of the sale is never trusted.
- Quantities are >= 1, prices and discounts are >= 0.
- The total resulting from the operation is never negative.
- Cancel and refund need a non-blank reason.

Stock is never adjusted here: each gateway operation moves stock atomically
with the rows it writes. Failures are raised unchanged and never retried, so
the caller's draft or edit state stays intact for a manual retry.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from decimal import Decimal
from typing import Callable, Optional

from domain.errors import (
    SaleError,
    SaleNotFoundError,
    SaleRejectedError,
    SaleValidationError,
    TerminalSaleError,
)
from domain.money import ZERO, MoneyLike, to_money
from domain.sale import Sale, SaleItem, SaleStatus, require_whole_quantity
from services.commands import SubmitSaleCommand, UpdateSaleDetailsCommand
from services.gateway import TransactionGateway
from services.pricing_service import calculate_subtotal, calculate_total, require_payable_total

logger = logging.getLogger(__name__)

# Recent submissions remembered per session; the store deduplicates the rest by key.
SUBMITTED_KEYS_LIMIT: int = 256


class SaleLifecycleManager:
    """
    Sale lifecycle operations for one client session.

    Every method blocks until the gateway answers and returns the sale as
    reloaded from the store afterwards.

    Example:
        manager = SaleLifecycleManager(SupabaseTransactionGateway())
        command = SubmitSaleCommand.from_draft(draft, attribution)
        sale = manager.submit(command)      # retry with the same command on failure
        sale = manager.cancel(sale.sale_id, "Customer changed their mind")
    """

    def __init__(self, gateway: TransactionGateway, submitted_keys_limit: int = SUBMITTED_KEYS_LIMIT):
        self._gateway = gateway
        self._submitted: OrderedDict[str, str] = OrderedDict()
        self._submitted_keys_limit = submitted_keys_limit

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def submit(self, command: SubmitSaleCommand) -> Sale:
        """
        Persist a new sale.

        A command whose idempotency key was already submitted successfully
        returns the existing sale instead of creating another one.

        Raises:
            SaleValidationError: If the total would be negative
            InsufficientStockError: If the store lacks stock for an item
            SaleRejectedError: For any other rejection by the store
            GatewayUnavailableError: If the store cannot be reached
        """

        existing_id = self._submitted.get(command.idempotency_key)
        if existing_id is not None:
            self._submitted.move_to_end(command.idempotency_key)
            logger.info(
                "Duplicate sale submission resolved to existing sale",
                extra={"idempotency_key": command.idempotency_key, "sale_id": existing_id},
            )
            return self._load(existing_id)

        subtotal = calculate_subtotal(command.items)
        total = calculate_total(subtotal, command.discount_amount, command.tax_amount)
        require_payable_total(total)

        try:
            sale_id = self._gateway.create_sale(command)
        except SaleError as exc:
            logger.warning(
                "Sale submission rejected",
                extra={
                    "idempotency_key": command.idempotency_key,
                    "error_type": type(exc).__name__,
                    "error_detail": str(exc),
                },
            )
            raise

        self._remember_submission(command.idempotency_key, sale_id)
        logger.info(
            "Sale submitted",
            extra={
                "sale_id": sale_id,
                "idempotency_key": command.idempotency_key,
                "items_count": len(command.items),
                "total_amount": str(total),
                "status": command.status.value,
            },
        )
        return self._load(sale_id)

    # ------------------------------------------------------------------
    # Item mutations
    # ------------------------------------------------------------------

    def add_item(
        self,
        sale_id: str,
        product_id: str,
        quantity: int,
        unit_price: Optional[MoneyLike] = None,
    ) -> Sale:
        """
        Add an item to a pending or completed sale.

        Without `unit_price` the store uses the product's current price.
        """

        sale = self._load_editable(sale_id)
        quantity = require_whole_quantity(quantity)
        if quantity < 1:
            raise SaleValidationError("quantity must be at least 1")

        price = self._non_negative_price(unit_price)
        if price is not None:
            self._require_payable(sale, sale.computed_subtotal + price * quantity)

        self._perform(
            "add_item",
            sale_id,
            lambda: self._gateway.add_item(sale_id, product_id, quantity, price),
        )
        return self._load(sale_id)

    def update_item(
        self,
        sale_id: str,
        item_id: str,
        quantity: Optional[int] = None,
        unit_price: Optional[MoneyLike] = None,
    ) -> Sale:
        """
        Change the quantity and/or unit price of an item.

        The store moves stock by the quantity delta (new - old). Quantities
        below 1 are rejected; use `remove_item` to drop an item.
        """

        if quantity is None and unit_price is None:
            raise SaleValidationError("Nothing to update: give a quantity or a unit price")

        sale = self._load_editable(sale_id)
        item = self._require_item(sale, item_id)

        if quantity is not None and require_whole_quantity(quantity) < 1:
            raise SaleValidationError("quantity must be at least 1; remove the item instead")
        price = self._non_negative_price(unit_price)

        new_quantity = item.quantity if quantity is None else quantity
        new_price = item.unit_price if price is None else price
        self._require_payable(
            sale,
            sale.computed_subtotal - item.line_total + new_price * new_quantity,
        )

        self._perform(
            "update_item",
            sale_id,
            lambda: self._gateway.update_item(item_id, quantity, price),
        )
        return self._load(sale_id)

    def remove_item(self, sale_id: str, item_id: str) -> Sale:
        """Delete an item; the store restores its quantity to stock."""

        sale = self._load_editable(sale_id)
        item = self._require_item(sale, item_id)
        self._require_payable(sale, sale.computed_subtotal - item.line_total)

        self._perform("remove_item", sale_id, lambda: self._gateway.remove_item(item_id))
        return self._load(sale_id)

    # ------------------------------------------------------------------
    # Status transitions
    # ------------------------------------------------------------------

    def complete(self, sale_id: str) -> Sale:
        """Confirm a pending sale."""

        return self._transition(sale_id, SaleStatus.COMPLETED, reason=None)

    def cancel(self, sale_id: str, reason: str) -> Sale:
        """Cancel a sale; the store restores stock for all remaining items."""

        return self._transition(sale_id, SaleStatus.CANCELLED, self._require_reason(reason))

    def refund(self, sale_id: str, reason: str) -> Sale:
        """Refund a sale; stock is restored exactly as for a cancellation."""

        return self._transition(sale_id, SaleStatus.REFUNDED, self._require_reason(reason))

    # ------------------------------------------------------------------
    # Header changes
    # ------------------------------------------------------------------

    def update_details(self, sale_id: str, changes: UpdateSaleDetailsCommand) -> Sale:
        if changes.is_empty:
            raise SaleValidationError("Nothing to update")

        sale = self._load_editable(sale_id)
        if changes.discount_amount is not None:
            projected = calculate_total(sale.computed_subtotal, changes.discount_amount, sale.tax_amount)
            require_payable_total(projected)

        self._perform("update_details", sale_id, lambda: self._gateway.update_sale(sale_id, changes))
        return self._load(sale_id)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _transition(self, sale_id: str, target: SaleStatus, reason: Optional[str]) -> Sale:
        sale = self._load(sale_id)
        if not sale.status.can_transition_to(target):
            if sale.is_terminal:
                raise TerminalSaleError(sale_id, sale.status.value)
            raise SaleValidationError(
                f"Sale {sale_id} cannot move from {sale.status.value} to {target.value}"
            )

        self._perform(
            f"transition_to_{target.value}",
            sale_id,
            lambda: self._gateway.transition_status(sale_id, target, reason),
        )
        return self._load(sale_id)

    def _remember_submission(self, idempotency_key: str, sale_id: str) -> None:
        self._submitted[idempotency_key] = sale_id
        while len(self._submitted) > self._submitted_keys_limit:
            self._submitted.popitem(last=False)

    def _load(self, sale_id: str) -> Sale:
        sale = self._gateway.get_sale(sale_id)
        if sale is None:
            raise SaleNotFoundError(sale_id)
        return sale

    def _load_editable(self, sale_id: str) -> Sale:
        sale = self._load(sale_id)
        try:
            sale.ensure_editable()
        except TerminalSaleError:
            logger.warning(
                "Mutation attempted on closed sale",
                extra={"sale_id": sale_id, "status": sale.status.value},
            )
            raise
        return sale

    @staticmethod
    def _require_item(sale: Sale, item_id: str) -> SaleItem:
        item = sale.find_item(item_id)
        if item is None:
            raise SaleNotFoundError(sale.sale_id, f"Sale {sale.sale_id} has no item {item_id}")
        return item

    @staticmethod
    def _require_reason(reason: Optional[str]) -> str:
        text = (reason or "").strip()
        if not text:
            raise SaleValidationError("A reason is required to cancel or refund a sale")
        return text

    @staticmethod
    def _non_negative_price(unit_price: Optional[MoneyLike]) -> Optional[Decimal]:
        if unit_price is None:
            return None
        price = to_money(unit_price)
        if price < ZERO:
            raise SaleValidationError("unit_price must be non-negative")
        return price

    @staticmethod
    def _require_payable(sale: Sale, projected_subtotal: Decimal) -> None:
        require_payable_total(calculate_total(projected_subtotal, sale.discount_amount, sale.tax_amount))

    def _perform(self, operation: str, sale_id: str, call: Callable[[], object]) -> None:
        try:
            result = call()
        except SaleError as exc:
            logger.warning(
                "Sale operation rejected",
                extra={
                    "operation": operation,
                    "sale_id": sale_id,
                    "error_type": type(exc).__name__,
                    "error_detail": str(exc),
                },
            )
            raise

        if result is False:
            logger.warning(
                "Sale operation not applied",
                extra={"operation": operation, "sale_id": sale_id},
            )
            raise SaleRejectedError(
                f"The store did not apply {operation} to sale {sale_id}",
                code="NOT_APPLIED",
            )

        logger.info("Sale operation applied", extra={"operation": operation, "sale_id": sale_id})


__all__ = [
    "SaleLifecycleManager",
]
