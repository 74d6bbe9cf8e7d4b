"""
Domain: Money helpers.

All monetary values are fixed-point decimals with two places. Binary floats
are never used for arithmetic: any float input is converted through its
string representation before quantizing.

Amounts are in the venue currency (Argentine pesos).
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

MoneyLike = Union[Decimal, int, float, str]

CENTS = Decimal("0.01")
ZERO = Decimal("0.00")
DEFAULT_CURRENCY = "ARS"


def to_money(value: MoneyLike) -> Decimal:
    """
    Convert a value to a Decimal quantized to cents (ROUND_HALF_UP).

    Raises:
        ValueError: If the value is not a finite number
    """

    if isinstance(value, bool):
        raise ValueError("Money amount cannot be a boolean")
    if isinstance(value, Decimal):
        amount = value
    else:
        text = str(value).strip()
        # Venue staff type decimal commas ("12,50").
        if "," in text and "." not in text:
            text = text.replace(",", ".", 1)
        try:
            amount = Decimal(text)
        except InvalidOperation as exc:
            raise ValueError(f"Invalid money amount: {value!r}") from exc

    if not amount.is_finite():
        raise ValueError(f"Money amount must be finite, got {value!r}")
    return amount.quantize(CENTS, rounding=ROUND_HALF_UP)

