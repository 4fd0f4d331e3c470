"""
branchdesk - Transposed Matrix Processor

Attendance exports from the POS come as a grid: one employee per row, one
date per column, hours in the cells. This module detects that shape from
the header row and melts it into per-employee totals.

Usage:
    from branchdesk.ingest.matrix import is_transposed_matrix, melt_transposed_matrix

    if is_transposed_matrix(table.headers):
        result = melt_transposed_matrix(table.rows, table.headers)
        result.aggregate_total
"""

from __future__ import annotations

import logging
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence

import pandas as pd

logger = logging.getLogger(__name__)

DATE_HEADER_PATTERNS = (
    re.compile(r"^\d{4}-\d{2}-\d{2}$"),  # 2025-08-01
    re.compile(r"^\d{4}_\d{2}_\d{2}$"),  # 2025_08_01
    re.compile(r"^\d{2}/\d{2}/\d{4}$"),  # 01/08/2025
    re.compile(r"^\d{2}-\d{2}-\d{4}$"),  # 01-08-2025
)
DATE_COLUMN_THRESHOLD = 0.5
HOURS_BUCKET_WIDTH = 40

_HOURS_MINUTES = re.compile(r"^(\d+):(\d{1,2})$")


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class EntityTotals:
    """Melted values for one matrix row."""

    entity_id: str
    values_by_column_key: Dict[str, float]
    total: float
    count_non_zero: int


@dataclass
class TransposedMatrixResult:
    """Per-entity totals plus aggregates over every kept entity."""

    per_entity: List[EntityTotals] = field(default_factory=list)
    column_keys: List[str] = field(default_factory=list)
    period_start: Optional[str] = None
    period_end: Optional[str] = None
    aggregate_total: float = 0.0
    aggregate_count: int = 0

    @property
    def average_per_day(self) -> float:
        if self.aggregate_count == 0:
            return 0.0
        return round(self.aggregate_total / self.aggregate_count, 2)


# =============================================================================
# Detection
# =============================================================================


def looks_like_date_header(header: str) -> bool:
    cleaned = header.strip()
    return any(pattern.match(cleaned) for pattern in DATE_HEADER_PATTERNS)


def is_transposed_matrix(headers: Sequence[str]) -> bool:
    """True when more than half of the headers after the first look like dates."""
    candidates = list(headers[1:])
    if not candidates:
        return False
    date_count = sum(1 for header in candidates if looks_like_date_header(header))
    return date_count > len(candidates) * DATE_COLUMN_THRESHOLD


# =============================================================================
# Melt
# =============================================================================


def parse_hours(cell: Any) -> Optional[float]:
    """
    Parse an hours cell as H:MM or a bare decimal.

    Returns None for blank, "0", non-numeric and non-positive cells so they
    are not counted as worked days.
    """
    text = "" if cell is None else str(cell).strip()
    if not text or text == "0":
        return None

    match = _HOURS_MINUTES.match(text)
    if match:
        hours = int(match.group(1)) + int(match.group(2)) / 60
    elif ":" in text:
        return None
    else:
        try:
            hours = float(text)
        except ValueError:
            return None

    if not math.isfinite(hours) or hours <= 0:
        return None
    return hours


def melt_transposed_matrix(
    rows: Sequence[Mapping[str, Any]],
    headers: Sequence[str],
) -> TransposedMatrixResult:
    """
    Melt an entity-by-date grid into per-entity totals.

    The first header names the entity column; every other header matching a
    date pattern becomes a column key (sorted). Entities whose total is zero
    are dropped entirely.
    """
    if not headers:
        return TransposedMatrixResult()

    entity_column = headers[0]
    column_keys = sorted({h for h in headers[1:] if looks_like_date_header(h)})
    period_start = column_keys[0] if column_keys else None
    period_end = column_keys[-1] if column_keys else None

    if not rows or not column_keys:
        return TransposedMatrixResult(
            column_keys=column_keys,
            period_start=period_start,
            period_end=period_end,
        )

    frame = pd.DataFrame(
        [{key: row.get(key) for key in [entity_column, *column_keys]} for row in rows],
        columns=[entity_column, *column_keys],
        dtype=object,
    )
    frame["_row"] = range(len(frame))
    frame["_entity"] = frame[entity_column].map(lambda v: "" if v is None else str(v).strip())

    long = frame.melt(
        id_vars=["_row", "_entity"],
        value_vars=column_keys,
        var_name="column_key",
        value_name="raw",
    )
    long["value"] = long["raw"].map(parse_hours)
    long = long[(long["_entity"] != "") & long["value"].notna()]

    per_entity: List[EntityTotals] = []
    for _, group in long.groupby("_row", sort=True):
        group = group.sort_values("column_key")
        values = {str(k): float(v) for k, v in zip(group["column_key"], group["value"])}
        total = round(sum(values.values()), 2)
        if total <= 0:
            continue
        per_entity.append(
            EntityTotals(
                entity_id=str(group["_entity"].iloc[0]),
                values_by_column_key=values,
                total=total,
                count_non_zero=len(values),
            )
        )

    result = TransposedMatrixResult(
        per_entity=per_entity,
        column_keys=column_keys,
        period_start=period_start,
        period_end=period_end,
        aggregate_total=round(sum(e.total for e in per_entity), 2),
        aggregate_count=sum(e.count_non_zero for e in per_entity),
    )
    logger.info(
        "[matrix] Melted %d rows x %d date columns -> %d entities, %.2f total over %d days",
        len(rows),
        len(column_keys),
        len(per_entity),
        result.aggregate_total,
        result.aggregate_count,
    )
    return result


# =============================================================================
# Preview & Summary
# =============================================================================


def to_preview_rows(result: TransposedMatrixResult) -> List[Dict[str, Any]]:
    """Flatten a melt result into one preview record per entity."""
    return [
        {
            "employee": entity.entity_id,
            "total_hours": entity.total,
            "days_worked": entity.count_non_zero,
            "average_hours_per_day": (
                round(entity.total / entity.count_non_zero, 2) if entity.count_non_zero else 0
            ),
        }
        for entity in result.per_entity
    ]


def summarize_matrix(result: TransposedMatrixResult) -> Dict[str, Any]:
    """
    Headline figures for the upload manifest.

    Includes a distribution of entities per 40-hour bucket, keyed
    "{low}-{low + 39} hours".
    """
    distribution: Dict[str, int] = {}
    for entity in result.per_entity:
        low = math.floor(entity.total / HOURS_BUCKET_WIDTH) * HOURS_BUCKET_WIDTH
        label = f"{low}-{low + HOURS_BUCKET_WIDTH - 1} hours"
        distribution[label] = distribution.get(label, 0) + 1

    return {
        "period": {"start": result.period_start, "end": result.period_end},
        "total_employees": len(result.per_entity),
        "total_hours": result.aggregate_total,
        "total_days": result.aggregate_count,
        "average_hours": result.average_per_day,
        "hours_distribution": distribution,
    }
