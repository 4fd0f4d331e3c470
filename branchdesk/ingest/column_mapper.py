"""
branchdesk - Column Mapper

Maps messy spreadsheet headers to the canonical fields of a dataset schema.
Two tiers, evaluated per target field in schema order (required first):
1. Exact match: normalized header equals a normalized alias
2. Partial match: normalized header contains, or is contained in, an alias

The first header (in file order) that matches wins; a header bound to one
field is not offered to later fields. A required field left without a header
only because its match is taken gets a second chance: the holder moves to
another free header when it can, otherwise the header is shared.

Usage:
    from branchdesk.ingest.column_mapper import map_columns, project_rows

    result = map_columns(headers, get_schema("roster"))
    if result.missing:
        # block persistence
    rows = project_rows(raw_rows, result.mappings)
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple

from .schemas import DatasetSchema

logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^a-z0-9]+")


def normalize_header(name: str) -> str:
    """Lowercase, collapse non-alphanumeric runs to one space, trim, join with '_'."""
    collapsed = _NON_ALNUM.sub(" ", name.lower()).strip()
    return collapsed.replace(" ", "_")


# =============================================================================
# Data Classes
# =============================================================================


@dataclass(frozen=True)
class ColumnMapping:
    """One raw header bound to one canonical field."""

    source: str
    target: str
    match_type: str = "exact"  # "exact" or "partial"


@dataclass
class ColumnMappingResult:
    """Complete result of column mapping."""

    mappings: List[ColumnMapping] = field(default_factory=list)
    unmapped: List[str] = field(default_factory=list)
    missing: List[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        """True when every required field found a header."""
        return not self.missing

    @property
    def source_to_target(self) -> Dict[str, str]:
        return {m.source: m.target for m in self.mappings}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "mappings": [
                {"source": m.source, "target": m.target, "match_type": m.match_type}
                for m in self.mappings
            ],
            "unmapped": list(self.unmapped),
            "missing": list(self.missing),
            "is_valid": self.is_valid,
        }


# =============================================================================
# Column Mapper Class
# =============================================================================


class ColumnMapper:
    """Maps raw headers onto one dataset schema."""

    def __init__(self, schema: DatasetSchema):
        self.schema = schema
        self._normalized_aliases: Dict[str, List[str]] = {
            target: [normalize_header(alias) for alias in schema.aliases_for(target)]
            for target in schema.all_fields
        }

    def map_columns(self, headers: Sequence[str]) -> ColumnMappingResult:
        normalized_headers = [normalize_header(h) for h in headers]
        chosen: Dict[str, Tuple[int, str]] = {}
        bound: Set[int] = set()

        for target in self.schema.all_fields:
            match = self._find(normalized_headers, self._normalized_aliases[target], bound)
            if match is not None:
                bound.add(match[0])
                chosen[target] = match

        for target in self.schema.required_fields:
            if target not in chosen:
                match = self._recover_required(target, normalized_headers, chosen, bound)
                if match is not None:
                    chosen[target] = match

        result = ColumnMappingResult()
        for target in self.schema.all_fields:
            if target in chosen:
                index, match_type = chosen[target]
                result.mappings.append(
                    ColumnMapping(source=headers[index], target=target, match_type=match_type)
                )
            elif target in self.schema.required_fields:
                result.missing.append(target)

        result.unmapped = [h for i, h in enumerate(headers) if i not in bound]

        if result.missing:
            logger.info(
                "[mapper] %s: missing required %s (headers=%s)",
                self.schema.name,
                result.missing,
                list(headers),
            )
        return result

    def _recover_required(
        self,
        target: str,
        normalized_headers: Sequence[str],
        chosen: Dict[str, Tuple[int, str]],
        bound: Set[int],
    ) -> Optional[Tuple[int, str]]:
        """
        Second chance for a required field starved by exclusive binding.

        The field takes the header it matches from its current holder when the
        holder can move to another free header; otherwise the header is shared.
        Only headers already bound are considered, free ones were tried first.
        """
        match = self._find(
            normalized_headers,
            self._normalized_aliases[target],
            set(range(len(normalized_headers))) - bound,
        )
        if match is None:
            return None

        index = match[0]
        holder = next(t for t, (i, _) in chosen.items() if i == index)
        relocated = self._find(normalized_headers, self._normalized_aliases[holder], bound)
        if relocated is not None:
            chosen[holder] = relocated
            bound.add(relocated[0])
            logger.debug(
                "[mapper] %s: moved %s to %r so %s can use %r",
                self.schema.name,
                holder,
                normalized_headers[relocated[0]],
                target,
                normalized_headers[index],
            )
        else:
            logger.debug(
                "[mapper] %s: %r shared by %s and %s",
                self.schema.name,
                normalized_headers[index],
                holder,
                target,
            )
        return match

    def _find(
        self,
        normalized_headers: Sequence[str],
        aliases: Sequence[str],
        skip: Set[int],
    ) -> Optional[Tuple[int, str]]:
        index = self._find_exact(normalized_headers, aliases, skip)
        if index is not None:
            return index, "exact"
        index = self._find_partial(normalized_headers, aliases, skip)
        if index is not None:
            return index, "partial"
        return None

    @staticmethod
    def _find_exact(
        normalized_headers: Sequence[str],
        aliases: Sequence[str],
        bound: Set[int],
    ) -> Optional[int]:
        alias_set = set(aliases)
        for index, header in enumerate(normalized_headers):
            if index in bound or not header:
                continue
            if header in alias_set:
                return index
        return None

    @staticmethod
    def _find_partial(
        normalized_headers: Sequence[str],
        aliases: Sequence[str],
        bound: Set[int],
    ) -> Optional[int]:
        for index, header in enumerate(normalized_headers):
            if index in bound or not header:
                continue
            if any(alias and (alias in header or header in alias) for alias in aliases):
                return index
        return None


def map_columns(headers: Sequence[str], schema: DatasetSchema) -> ColumnMappingResult:
    """Convenience function: map headers against a schema."""
    return ColumnMapper(schema).map_columns(headers)


# =============================================================================
# Row Projection
# =============================================================================


def project_rows(
    rows: Sequence[Dict[str, Any]],
    mappings: Sequence[ColumnMapping],
) -> List[Dict[str, Any]]:
    """
    Re-key raw records using a mapping.

    Every mapped target is copied from its source; raw keys that no mapping
    consumed pass through unchanged so extra columns survive.
    """
    consumed = {m.source for m in mappings}
    projected: List[Dict[str, Any]] = []
    for row in rows:
        out: Dict[str, Any] = {m.target: row.get(m.source) for m in mappings}
        for key, value in row.items():
            if key not in consumed:
                # a passthrough column never shadows a mapped target
                out.setdefault(key, value)
        projected.append(out)
    return projected
