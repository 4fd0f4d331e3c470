# branchdesk/ingest/__init__.py
"""
Ingest Module - heuristic CSV intake

Components:
    - Schema registry: the document shapes we accept
    - Column mapper / row projector: raw headers -> canonical fields
    - Sampling validator: advisory content checks
    - Tabular parser: bytes -> TabularParseResult
    - Matrix processor: employee-by-date attendance grids

Usage:
    from branchdesk.ingest import parse_tabular, is_transposed_matrix
"""

from branchdesk.ingest.column_mapper import (
    ColumnMapper,
    ColumnMapping,
    ColumnMappingResult,
    map_columns,
    normalize_header,
    project_rows,
)
from branchdesk.ingest.matrix import (
    EntityTotals,
    TransposedMatrixResult,
    is_transposed_matrix,
    melt_transposed_matrix,
)
from branchdesk.ingest.parse import RawTable, TabularParseResult, parse_tabular, read_table
from branchdesk.ingest.preview import FilePreview, preview_file
from branchdesk.ingest.schemas import SCHEMA_REGISTRY, DatasetKind, DatasetSchema, get_schema
from branchdesk.ingest.validation import validate_sample

__all__ = [
    "ColumnMapper",
    "ColumnMapping",
    "ColumnMappingResult",
    "DatasetKind",
    "DatasetSchema",
    "EntityTotals",
    "FilePreview",
    "RawTable",
    "SCHEMA_REGISTRY",
    "TabularParseResult",
    "TransposedMatrixResult",
    "get_schema",
    "is_transposed_matrix",
    "map_columns",
    "melt_transposed_matrix",
    "normalize_header",
    "parse_tabular",
    "preview_file",
    "project_rows",
    "read_table",
    "validate_sample",
]
