"""
Sale lifecycle commands.

Pydantic models validating what crosses the lifecycle manager boundary.

A SubmitSaleCommand carries an idempotency key. Retrying the *same* command
object (after a timeout, or a double click) reuses the key, so the manager and
the store can recognize the retry instead of creating a second sale.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from domain.attribution import Attribution, resolve_attribution
from domain.draft import SaleDraft
from domain.errors import SaleValidationError
from domain.money import ZERO, to_money
from domain.sale import PaymentMethod, SaleStatus


class SaleLineCommand(BaseModel):
    """Single line of a sale submission."""
    product_id: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=1)
    unit_price: Decimal = Field(..., ge=0)

    class Config:
        frozen = True

    @field_validator("unit_price")
    @classmethod
    def _quantize_price(cls, value: Decimal) -> Decimal:
        return to_money(value)


class SubmitSaleCommand(BaseModel):
    """Request to persist a new sale."""
    idempotency_key: str = Field(default_factory=lambda: str(uuid4()), min_length=1)
    employee_id: Optional[str] = None
    employee_name: str = Field(..., min_length=1)
    employee_category: Optional[str] = None
    items: List[SaleLineCommand] = Field(..., min_length=1)
    payment_method: PaymentMethod
    payment_details: Optional[Dict[str, Any]] = None
    discount_amount: Decimal = Field(default=ZERO, ge=0)
    tax_amount: Decimal = Field(default=ZERO, ge=0)
    notes: Optional[str] = None
    status: SaleStatus = SaleStatus.COMPLETED

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "idempotency_key": "6f1c2a8e-4d0b-4a57-9c61-2b7a8f0d9e11",
                "employee_id": "0b6f8f0e-2f0c-4f7e-9a1d-0c1b2a3d4e5f",
                "employee_name": "Lucia Fernandez",
                "employee_category": "bartender",
                "items": [
                    {"product_id": "fernet-750", "quantity": 2, "unit_price": "4500.00"}
                ],
                "payment_method": "cash",
                "discount_amount": "0.00",
                "tax_amount": "0.00",
                "status": "completed",
            }
        }

    @field_validator("discount_amount", "tax_amount")
    @classmethod
    def _quantize_amounts(cls, value: Decimal) -> Decimal:
        return to_money(value)

    @field_validator("status")
    @classmethod
    def _initial_status(cls, value: SaleStatus) -> SaleStatus:
        if value not in (SaleStatus.PENDING, SaleStatus.COMPLETED):
            raise ValueError("A new sale must start as pending or completed")
        return value

    @classmethod
    def from_draft(
        cls,
        draft: SaleDraft,
        attribution: Attribution,
        status: SaleStatus = SaleStatus.COMPLETED,
        payment_details: Optional[Dict[str, Any]] = None,
        idempotency_key: Optional[str] = None,
    ) -> "SubmitSaleCommand":
        """
        Build a submission from a draft.

        The attribution variant is resolved here, once, into the employee
        fields stored on the sale.

        Raises:
            SaleValidationError: If the draft is empty or holds invalid values
        """

        try:
            resolved = resolve_attribution(attribution)
            fields: Dict[str, Any] = {
                "employee_id": resolved.employee_id,
                "employee_name": resolved.employee_name,
                "employee_category": resolved.employee_category,
                "items": [
                    SaleLineCommand(
                        product_id=line.product_id,
                        quantity=line.quantity,
                        unit_price=line.unit_price,
                    )
                    for line in draft.items
                ],
                "payment_method": draft.payment_method,
                "payment_details": payment_details,
                "discount_amount": draft.discount_amount,
                "tax_amount": draft.tax_amount,
                "notes": draft.notes,
                "status": status,
            }
            if idempotency_key is not None:
                fields["idempotency_key"] = idempotency_key
            return cls(**fields)
        except ValueError as exc:
            # pydantic.ValidationError is a ValueError
            raise SaleValidationError(f"Invalid sale submission: {exc}") from exc


class UpdateSaleDetailsCommand(BaseModel):
    """
    Header changes for an existing sale. Fields left as None are unchanged.

    Employee fields are only meant for authorized corrections of attribution.
    """
    payment_method: Optional[PaymentMethod] = None
    payment_details: Optional[Dict[str, Any]] = None
    discount_amount: Optional[Decimal] = Field(default=None, ge=0)
    notes: Optional[str] = None
    employee_id: Optional[str] = None
    employee_name: Optional[str] = Field(default=None, min_length=1)
    employee_category: Optional[str] = None

    class Config:
        frozen = True

    @field_validator("discount_amount")
    @classmethod
    def _quantize_discount(cls, value: Optional[Decimal]) -> Optional[Decimal]:
        return None if value is None else to_money(value)

    @classmethod
    def correct_attribution(cls, attribution: Attribution) -> "UpdateSaleDetailsCommand":
        resolved = resolve_attribution(attribution)
        return cls(
            employee_id=resolved.employee_id,
            employee_name=resolved.employee_name,
            employee_category=resolved.employee_category,
        )

    @property
    def is_empty(self) -> bool:
        return all(value is None for value in self.model_dump().values())


__all__ = [
    "SaleLineCommand",
    "SubmitSaleCommand",
    "UpdateSaleDetailsCommand",
]
