"""
Domain: Sale change notifications.

Events carry only the operation and the affected sale id; subscribers refetch
the sale itself from the store.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class ChangeOperation(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True, slots=True)
class SaleChangeEvent:
    operation: ChangeOperation
    sale_id: str
    venue_id: Optional[str] = None  # None when the source does not report it
