"""
Sampling validation for projected rows.

Checks only the leading rows of a file: enough to catch a wrong column
binding or an export with blank identifiers, cheap enough to run on every
preview. Issues are advisory; structural gating happens on `missing`.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from typing import TYPE_CHECKING, Any, Dict, List, Literal, Optional, Sequence

from .schemas import DatasetSchema

if TYPE_CHECKING:
    from .parse import TabularParseResult

SAMPLE_SIZE = 10
MAX_ISSUES_PER_FIELD = 3
EMPTY_FILE_MESSAGE = "file is empty"

_DATE_FORMATS = ("%Y-%m-%d", "%Y_%m_%d", "%d/%m/%Y", "%d-%m-%Y", "%m/%d/%Y", "%Y/%m/%d")


def _is_blank(value: Any) -> bool:
    return value is None or value == ""


def validate_sample(rows: Sequence[Dict[str, Any]], schema: DatasetSchema) -> List[str]:
    """Return human-readable issues for required fields left empty in the sample."""
    if not rows:
        return [EMPTY_FILE_MESSAGE]

    sample = rows[:SAMPLE_SIZE]
    issues: List[str] = []

    for field_name in schema.required_fields:
        empty_count = 0
        for idx, row in enumerate(sample):
            if _is_blank(row.get(field_name)):
                empty_count += 1
                if empty_count <= MAX_ISSUES_PER_FIELD:
                    issues.append(f"Row {idx + 1}: '{field_name}' is empty")

        if empty_count > MAX_ISSUES_PER_FIELD:
            issues.append(
                f"...and {empty_count - MAX_ISSUES_PER_FIELD} more rows with '{field_name}' empty"
            )

    return issues


# =============================================================================
# Typed structure checks
# =============================================================================


@dataclass(frozen=True)
class ColumnRule:
    """Expectation for one canonical column of a parse result."""

    field: str
    required: bool = False
    type: Optional[Literal["string", "number", "date"]] = None


def _looks_like_number(value: str) -> bool:
    try:
        float(value.replace(",", ""))
    except ValueError:
        return False
    return True


def _looks_like_date(value: str) -> bool:
    for fmt in _DATE_FORMATS:
        try:
            datetime.strptime(value, fmt)
        except ValueError:
            continue
        return True
    try:
        date.fromisoformat(value[:10])
    except ValueError:
        return False
    return True


def validate_structure(result: "TabularParseResult", rules: Sequence[ColumnRule]) -> List[str]:
    """
    Check required columns and value types over the leading sample.

    Type checks only run when every required column is present.
    """
    errors: List[str] = []

    for rule in rules:
        if rule.required and rule.field not in result.headers:
            errors.append(f"Required column missing: '{rule.field}'")

    if errors or not result.data:
        return errors

    sample = result.data[:SAMPLE_SIZE]
    for rule in rules:
        if rule.type is None or rule.type == "string" or rule.field not in result.headers:
            continue
        for idx, row in enumerate(sample):
            value = row.get(rule.field)
            if _is_blank(value):
                continue
            text = str(value)
            if rule.type == "number" and not _looks_like_number(text):
                errors.append(f"Row {idx + 1}: '{rule.field}' must be a number, found '{text}'")
            elif rule.type == "date" and not _looks_like_date(text):
                errors.append(f"Row {idx + 1}: '{rule.field}' must be a valid date, found '{text}'")

    return errors
