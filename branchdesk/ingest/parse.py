"""
branchdesk/ingest/parse.py
==========================
Tabular parsing for third-party spreadsheet exports.

Turns raw file bytes into a uniform TabularParseResult:
1. Decode as UTF-8 (a leading BOM is tolerated)
2. Sniff the delimiter among comma, semicolon, tab and pipe
3. First non-empty line is the header; empty lines are skipped
4. Every cell stays a string (no numeric coercion, identifiers keep their
   leading zeros) and is trimmed
5. Column Mapper -> Row Projector -> Sampling Validator

Malformed rows are kept and reported in `errors`; a file that cannot be
decoded or tokenized raises ParseError and yields no partial result.

Usage:
    from branchdesk.ingest.parse import parse_tabular

    result = await parse_tabular(content, "roster")
    if result.missing:
        print("cannot save, missing:", result.missing)
"""

from __future__ import annotations

import asyncio
import csv
import io
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from ..errors import ParseError
from .column_mapper import ColumnMapping, map_columns, project_rows
from .schemas import DatasetKind, DatasetSchema, get_schema
from .validation import validate_sample

logger = logging.getLogger(__name__)

CANDIDATE_DELIMITERS = ",;\t|"
SNIFF_SAMPLE_BYTES = 8192


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class RawTable:
    """Header row plus string-typed records, before any mapping."""

    headers: List[str]
    rows: List[Dict[str, str]]
    errors: List[str] = field(default_factory=list)
    delimiter: str = ","


@dataclass
class TabularParseResult:
    """Result of parsing one upload attempt against one schema."""

    data: List[Dict[str, Any]]
    original_data: List[Dict[str, str]]
    headers: List[str]
    original_headers: List[str]
    mappings: List[ColumnMapping]
    unmapped: List[str]
    missing: List[str]
    row_count: int
    errors: List[str]

    @property
    def can_persist(self) -> bool:
        return not self.missing

    def to_dict(self) -> Dict[str, Any]:
        return {
            "headers": self.headers,
            "original_headers": self.original_headers,
            "mappings": [{"source": m.source, "target": m.target} for m in self.mappings],
            "unmapped": self.unmapped,
            "missing": self.missing,
            "row_count": self.row_count,
            "errors": self.errors,
        }


# =============================================================================
# Raw table reading
# =============================================================================


def _decode(content: bytes) -> str:
    try:
        return content.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise ParseError(f"Error parsing CSV: file is not valid UTF-8 ({exc})", decode=True) from exc


def _guess_delimiter(text: str) -> str:
    sample = text[:SNIFF_SAMPLE_BYTES]
    try:
        return csv.Sniffer().sniff(sample, delimiters=CANDIDATE_DELIMITERS).delimiter
    except csv.Error:
        return ","


def _dedupe_headers(cells: Sequence[str]) -> List[str]:
    """Suffix repeated header names with _1, _2, ... so no column is lost."""
    taken: set[str] = set()
    counts: Dict[str, int] = {}
    headers: List[str] = []
    for cell in cells:
        name = cell
        suffix = counts.get(cell, 0)
        while name in taken:
            suffix += 1
            name = f"{cell}_{suffix}"
        counts[cell] = suffix
        taken.add(name)
        headers.append(name)
    return headers


def _is_empty_line(record: Sequence[str]) -> bool:
    return not record or (len(record) == 1 and not record[0].strip())


def read_table(content: bytes) -> RawTable:
    """Decode and tokenize delimited text into a RawTable."""
    text = _decode(content)
    delimiter = _guess_delimiter(text)
    reader = csv.reader(io.StringIO(text, newline=""), delimiter=delimiter)

    headers: List[str] | None = None
    rows: List[Dict[str, str]] = []
    errors: List[str] = []

    try:
        for record in reader:
            if _is_empty_line(record):
                continue
            cells = [cell.strip() for cell in record]
            if headers is None:
                headers = _dedupe_headers(cells)
                continue

            row_number = len(rows) + 1
            if len(cells) < len(headers):
                errors.append(
                    f"Row {row_number}: too few fields, expected {len(headers)} but parsed {len(cells)}"
                )
                cells.extend([""] * (len(headers) - len(cells)))
            elif len(cells) > len(headers):
                errors.append(
                    f"Row {row_number}: too many fields, expected {len(headers)} but parsed {len(cells)}"
                )
                cells = cells[: len(headers)]
            rows.append(dict(zip(headers, cells)))
    except csv.Error as exc:
        raise ParseError(f"Error parsing CSV: line {reader.line_num}: {exc}") from exc

    return RawTable(headers=headers or [], rows=rows, errors=errors, delimiter=delimiter)


# =============================================================================
# Schema-aware parsing
# =============================================================================


def build_parse_result(table: RawTable, schema: DatasetSchema) -> TabularParseResult:
    """Run mapping, projection and sampling validation over a raw table."""
    mapping = map_columns(table.headers, schema)
    data = project_rows(table.rows, mapping.mappings)
    headers = list(dict.fromkeys([m.target for m in mapping.mappings] + mapping.unmapped))
    issues = validate_sample(data, schema)

    return TabularParseResult(
        data=data,
        original_data=table.rows,
        headers=headers,
        original_headers=list(table.headers),
        mappings=list(mapping.mappings),
        unmapped=list(mapping.unmapped),
        missing=list(mapping.missing),
        row_count=len(data),
        errors=list(table.errors) + issues,
    )


def parse_tabular_bytes(content: bytes, dataset_kind: DatasetKind | str) -> TabularParseResult:
    """Synchronous core of parse_tabular."""
    schema = get_schema(dataset_kind)
    table = read_table(content)
    result = build_parse_result(table, schema)
    logger.info(
        "[intake] Parsed %d rows as %s (delimiter=%r, mapped=%d, unmapped=%d, missing=%d, issues=%d)",
        result.row_count,
        schema.name,
        table.delimiter,
        len(result.mappings),
        len(result.unmapped),
        len(result.missing),
        len(result.errors),
    )
    return result


async def parse_tabular(content: bytes, dataset_kind: DatasetKind | str) -> TabularParseResult:
    """
    Parse raw file bytes against a dataset schema.

    Args:
        content: Raw bytes of the uploaded file
        dataset_kind: Registry key of the expected document shape

    Returns:
        TabularParseResult (check `missing` before persisting)

    Raises:
        ParseError: file could not be decoded or tokenized
    """
    return await asyncio.to_thread(parse_tabular_bytes, content, dataset_kind)
