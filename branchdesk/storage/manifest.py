"""
Artifact naming, content digests and the upload manifest.

Layout in the uploads bucket (human-browsable, chronologically sortable):

    {tenant}/{dataset}/{YYYY}/{MM}/{epochMillis}-{slug}.csv
    {tenant}/{dataset}/{YYYY}/{MM}/{epochMillis}-{slug}.manifest.json

The digest is stored inside the manifest, not in the path.
"""

from __future__ import annotations

import hashlib
import re
from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

ARTIFACT_SUFFIX = ".csv"
MANIFEST_SUFFIX = ".manifest.json"

_SLUG_SEPARATORS = re.compile(r"[^a-z0-9]+")


def compute_content_digest(content: bytes) -> str:
    """Compute SHA-256 hash of file content."""
    return hashlib.sha256(content).hexdigest()


def slugify_filename(filename: str) -> str:
    """Lowercase, collapse every non-[a-z0-9] run to '-', strip edge hyphens."""
    return _SLUG_SEPARATORS.sub("-", filename.lower()).strip("-")


def build_base_path(tenant_id: str, dataset_kind: str, filename: str, now: datetime) -> str:
    epoch_millis = int(now.timestamp() * 1000)
    return (
        f"{tenant_id}/{dataset_kind}/{now.year:04d}/{now.month:02d}/"
        f"{epoch_millis}-{slugify_filename(filename)}"
    )


def manifest_path_for(artifact_path: str) -> str:
    """Swap a trailing .csv (any case) for .manifest.json."""
    return re.sub(r"\.csv$", MANIFEST_SUFFIX, artifact_path, flags=re.IGNORECASE)


class UploadPeriod(BaseModel):
    month: int = Field(ge=1, le=12)
    year: int


class UploadMetadata(BaseModel):
    """Caller-supplied description of the file being uploaded."""

    filename: str
    row_count: int = Field(ge=0)
    columns: List[str] = Field(default_factory=list)
    period: Optional[UploadPeriod] = None
    totals: Optional[Dict[str, Any]] = None
    source_kind: Literal["csv", "api"] = "csv"
    branch_id: Optional[str] = None


class UploadManifest(BaseModel):
    """Side-record written next to every raw artifact. Never rewritten."""

    model_config = ConfigDict(frozen=True)

    tenant_id: str
    dataset_type: str
    filename: str
    row_count: int
    column_list: List[str]
    content_hash: str
    uploaded_by: str
    uploaded_at: datetime
    period: Optional[UploadPeriod] = None
    totals: Optional[Dict[str, Any]] = None
    source_kind: Literal["csv", "api"] = "csv"

    def to_json_bytes(self) -> bytes:
        return self.model_dump_json(indent=2).encode("utf-8")
