"""
Domain: Sale attribution.

A sale is recorded on behalf of either an employee (bartender, cashier,
waiter, ...) or a venue admin. The variant is resolved once, when the sale is
submitted, into the immutable (employee_id, employee_name, employee_category)
triple stored on the sale.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

ADMIN_CATEGORY = "admin"


@dataclass(frozen=True, slots=True)
class EmployeeAttribution:
    employee_id: str
    name: str
    category: str


@dataclass(frozen=True, slots=True)
class AdminAttribution:
    admin_id: str
    name: str


Attribution = Union[EmployeeAttribution, AdminAttribution]


@dataclass(frozen=True, slots=True)
class ResolvedAttribution:
    """Identity fields written onto a sale."""
    employee_id: Optional[str]
    employee_name: str
    employee_category: str


def resolve_attribution(attribution: Attribution) -> ResolvedAttribution:
    """
    Resolve an attribution variant into the fields stored on a sale.

    Raises:
        ValueError: If the display name is blank
        TypeError: If `attribution` is not a known variant
    """

    if isinstance(attribution, EmployeeAttribution):
        resolved = ResolvedAttribution(
            employee_id=attribution.employee_id,
            employee_name=attribution.name.strip(),
            employee_category=attribution.category,
        )
    elif isinstance(attribution, AdminAttribution):
        resolved = ResolvedAttribution(
            employee_id=attribution.admin_id,
            employee_name=attribution.name.strip(),
            employee_category=ADMIN_CATEGORY,
        )
    else:
        raise TypeError(f"Unsupported attribution type: {type(attribution)!r}")

    if not resolved.employee_name:
        raise ValueError("Attribution name must not be blank")
    return resolved


__all__ = [
    "ADMIN_CATEGORY",
    "AdminAttribution",
    "Attribution",
    "EmployeeAttribution",
    "ResolvedAttribution",
    "resolve_attribution",
]
