"""
Intake preview: pick the right pipeline for an uploaded file.

Attendance uploads may arrive either as one-row-per-employee tables or as
employee-by-date grids; the header row decides which pipeline runs. The
preview carries whatever the commit step needs: the parse result that gates
persistence, the rows to upsert and the totals for the manifest.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from .column_mapper import ColumnMapping
from .matrix import (
    TransposedMatrixResult,
    is_transposed_matrix,
    melt_transposed_matrix,
    summarize_matrix,
    to_preview_rows,
)
from .parse import TabularParseResult, build_parse_result, read_table
from .schemas import DatasetKind, get_schema

logger = logging.getLogger(__name__)

NO_MATRIX_VALUES_MESSAGE = "No valid attendance values found"


@dataclass
class FilePreview:
    """Everything the caller shows before the user confirms the save."""

    dataset_kind: DatasetKind
    parse_result: TabularParseResult
    matrix: Optional[TransposedMatrixResult] = None
    totals: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_matrix(self) -> bool:
        return self.matrix is not None

    @property
    def can_persist(self) -> bool:
        if self.matrix is not None:
            return bool(self.matrix.per_entity)
        return self.parse_result.can_persist


def _to_float(value: Any) -> float:
    try:
        return float(str(value).replace(",", ""))
    except (TypeError, ValueError):
        return 0.0


def payroll_totals(rows: List[Dict[str, Any]]) -> Dict[str, float]:
    """Sum payroll amounts by code and by cost center."""
    by_code: Dict[str, float] = {}
    by_center: Dict[str, float] = {}
    for row in rows:
        amount = _to_float(row.get("amount"))
        code = row.get("code") or "No code"
        center = row.get("cost_center") or "No cost center"
        by_code[code] = by_code.get(code, 0.0) + amount
        by_center[center] = by_center.get(center, 0.0) + amount
    return {**by_code, **by_center}


def _matrix_preview(parsed: TabularParseResult, matrix: TransposedMatrixResult) -> TabularParseResult:
    data = to_preview_rows(matrix)
    return TabularParseResult(
        data=data,
        original_data=parsed.original_data,
        headers=["employee", "total_hours", "days_worked", "average_hours_per_day"],
        original_headers=parsed.original_headers,
        mappings=[ColumnMapping(source=parsed.original_headers[0], target="employee")],
        unmapped=[],
        missing=[],
        row_count=len(data),
        errors=[] if matrix.per_entity else [NO_MATRIX_VALUES_MESSAGE],
    )


def preview_bytes(content: bytes, dataset_kind: DatasetKind | str) -> FilePreview:
    """Parse a file, melting attendance grids when the header row calls for it."""
    kind = DatasetKind(dataset_kind)
    table = read_table(content)
    parsed = build_parse_result(table, get_schema(kind))

    if kind in (DatasetKind.ATTENDANCE, DatasetKind.PAYROLL_LINES) and is_transposed_matrix(
        table.headers
    ):
        matrix = melt_transposed_matrix(table.rows, table.headers)
        summary = summarize_matrix(matrix)
        totals: Dict[str, Any] = {
            "total_employees": summary["total_employees"],
            "total_hours": summary["total_hours"],
            "total_days": summary["total_days"],
            "average_hours": summary["average_hours"],
            **summary["hours_distribution"],
        }
        logger.info("[intake] %s upload detected as transposed matrix", kind.value)
        return FilePreview(
            dataset_kind=kind,
            parse_result=_matrix_preview(parsed, matrix),
            matrix=matrix,
            totals=totals,
        )

    totals = payroll_totals(parsed.data) if kind == DatasetKind.PAYROLL_LINES else {}
    return FilePreview(dataset_kind=kind, parse_result=parsed, totals=totals)


async def preview_file(content: bytes, dataset_kind: DatasetKind | str) -> FilePreview:
    return await asyncio.to_thread(preview_bytes, content, dataset_kind)
