"""
Staff directory repository (read-only).

Lists the people a sale can be attributed to: active admins and active
employees. Employee CRUD lives elsewhere.
"""

from __future__ import annotations

from typing import Any, List, Mapping, Optional

from supabase import Client  # type: ignore[import-not-found]

from domain.attribution import AdminAttribution, Attribution, EmployeeAttribution
from repositories.client import get_supabase
from repositories.store_errors import execute_or_raise

_ADMINS_TABLE: str = "admins"
_EMPLOYEES_TABLE: str = "employees"


def _row_to_admin(row: Mapping[str, Any]) -> AdminAttribution:
    return AdminAttribution(admin_id=str(row["user_id"]), name=str(row.get("full_name") or ""))


def _row_to_employee(row: Mapping[str, Any]) -> EmployeeAttribution:
    return EmployeeAttribution(
        employee_id=str(row["user_id"]),
        name=str(row.get("full_name") or ""),
        category=str(row.get("category") or "employee"),
    )


class SupabaseStaffRepository:
    def __init__(self, client: Optional[Client] = None, venue_id: Optional[str] = None):
        self._client = client
        self._venue_id = venue_id

    @property
    def client(self) -> Client:
        return self._client if self._client is not None else get_supabase()

    def _active_rows(self, table: str, columns: str) -> List[Mapping[str, Any]]:
        query = self.client.table(table).select(columns).eq("status", "active")
        if self._venue_id:
            query = query.eq("club_id", self._venue_id)

        return execute_or_raise(f"list {table}", lambda: query.order("full_name").execute()) or []

    def list_attributable_staff(self) -> List[Attribution]:
        """
        Active admins first, then active employees, each sorted by name.

        Rows without a name cannot be attributed and are skipped.
        """

        admins = [_row_to_admin(row) for row in self._active_rows(_ADMINS_TABLE, "user_id, full_name")]
        employees = [
            _row_to_employee(row)
            for row in self._active_rows(_EMPLOYEES_TABLE, "user_id, full_name, category")
        ]
        staff: List[Attribution] = [*admins, *employees]
        return [person for person in staff if person.name.strip()]

    def count_active_employees(self) -> int:
        return len(self._active_rows(_EMPLOYEES_TABLE, "user_id, full_name"))


__all__ = ["SupabaseStaffRepository"]
