"""
Domain row transforms: projected CSV records -> relational rows.

Each dataset kind that persists rows has a target table, a conflict key the
store upserts on, and a transform that coerces the string-typed projected
values and drops rows that cannot satisfy the key.

    roster / payroll_lines -> employees  ON (personal_identification_number)
    sales                  -> sales      ON (branch_id, sale_date)
    purchases              -> purchases  ON (branch_id, invoice_number)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from ..ingest.schemas import DatasetKind

_FALSY = {"no", "n", "false", "0", "inactive", "inactivo", "inactiva"}

Row = Dict[str, Any]


@dataclass(frozen=True)
class TablePlan:
    """Where and how one dataset kind is persisted."""

    table: str
    conflict_columns: Tuple[str, ...]
    transform: Callable[[Sequence[Mapping[str, Any]], str], List[Row]]


# =============================================================================
# Coercion helpers
# =============================================================================


def _text(value: Any) -> str:
    return "" if value is None else str(value).strip()


def _first(row: Mapping[str, Any], *keys: str) -> str:
    for key in keys:
        value = _text(row.get(key))
        if value:
            return value
    return ""


def parse_amount(value: Any) -> float:
    """Parse '1,234.50' / '$ 99' style amounts; unparseable -> 0.0."""
    cleaned = _text(value).replace("$", "").replace(",", "").replace(" ", "")
    if not cleaned:
        return 0.0
    try:
        return float(Decimal(cleaned))
    except InvalidOperation:
        return 0.0


def parse_count(value: Any) -> int:
    return int(parse_amount(value))


def parse_active(value: Any) -> bool:
    """Blank or unrecognized flags default to active."""
    lowered = _text(value).lower()
    if lowered in _FALSY:
        return False
    return True


def _today() -> str:
    return date.today().isoformat()


# =============================================================================
# Transforms
# =============================================================================


def transform_employees(rows: Sequence[Mapping[str, Any]], branch_id: str) -> List[Row]:
    """Roster and payroll-line records -> employees rows."""
    employees: List[Row] = []
    for row in rows:
        identifier = _first(row, "code", "personal_identification_number")
        full_name = _text(row.get("employee"))
        if full_name:
            first_name, _, last_name = full_name.partition(" ")
            last_name = last_name.strip()
        else:
            first_name = _text(row.get("first_name"))
            last_name = _text(row.get("last_name"))

        if not identifier or not first_name:
            continue

        employee: Row = {
            "personal_identification_number": identifier,
            "first_name": first_name,
            "last_name": last_name,
            "email": _text(row.get("email")) or None,
            "employee_role": _text(row.get("employee_role")) or "employee",
            "is_active": parse_active(row.get("is_active")),
            "branch_id": branch_id,
        }
        if "amount" in row:
            employee["salary"] = parse_amount(row.get("amount"))
        if "total_hours" in row:
            employee["hours_worked"] = parse_amount(row.get("total_hours"))
        employees.append(employee)
    return employees


def transform_sales(rows: Sequence[Mapping[str, Any]], branch_id: str) -> List[Row]:
    """Daily POS sales records -> sales rows; non-positive totals are dropped."""
    sales: List[Row] = []
    for row in rows:
        sale = {
            "branch_id": branch_id,
            "sale_date": _text(row.get("date")) or _today(),
            "total": parse_amount(row.get("total")),
            "tips": parse_amount(row.get("tips")),
            "tax": parse_amount(row.get("tax")),
            "transaction_count": parse_count(row.get("transaction_count")),
            "origin": "csv",
        }
        if sale["total"] > 0:
            sales.append(sale)
    return sales


def transform_purchases(rows: Sequence[Mapping[str, Any]], branch_id: str) -> List[Row]:
    """Supplier invoice records -> purchases rows."""
    purchases: List[Row] = []
    for row in rows:
        purchase = {
            "branch_id": branch_id,
            "supplier": _text(row.get("supplier")),
            "invoice_number": _text(row.get("invoice_number")),
            "purchase_date": _text(row.get("date")) or _today(),
            "subtotal": parse_amount(row.get("subtotal")),
            "tax": parse_amount(row.get("tax")),
            "total": parse_amount(row.get("total")),
            "origin": "csv",
        }
        if purchase["supplier"] and purchase["invoice_number"] and purchase["total"] > 0:
            purchases.append(purchase)
    return purchases


TABLE_PLANS: Mapping[DatasetKind, TablePlan] = {
    DatasetKind.ROSTER: TablePlan(
        table="employees",
        conflict_columns=("personal_identification_number",),
        transform=transform_employees,
    ),
    DatasetKind.PAYROLL_LINES: TablePlan(
        table="employees",
        conflict_columns=("personal_identification_number",),
        transform=transform_employees,
    ),
    DatasetKind.SALES: TablePlan(
        table="sales",
        conflict_columns=("branch_id", "sale_date"),
        transform=transform_sales,
    ),
    DatasetKind.PURCHASES: TablePlan(
        table="purchases",
        conflict_columns=("branch_id", "invoice_number"),
        transform=transform_purchases,
    ),
}


def plan_for(kind: DatasetKind | str) -> Optional[TablePlan]:
    """Persistence plan for a kind, or None when the kind keeps no relational rows."""
    return TABLE_PLANS.get(DatasetKind(kind))
