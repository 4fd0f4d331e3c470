"""
Browse previously uploaded artifacts and their manifests.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Iterator, List, Optional

from pydantic import ValidationError

from ..ingest.schemas import DatasetKind
from .manifest import ARTIFACT_SUFFIX, MANIFEST_SUFFIX, UploadManifest, manifest_path_for
from .stores import ObjectStore, StoredObject

logger = logging.getLogger(__name__)

LIST_PAGE_SIZE = 100


@dataclass(frozen=True)
class ArtifactInfo:
    path: str
    name: str
    size: int = 0
    updated_at: str = ""

    @property
    def manifest_path(self) -> str:
        return manifest_path_for(self.path)


def _is_artifact(name: str) -> bool:
    lowered = name.lower()
    return lowered.endswith(ARTIFACT_SUFFIX) and not lowered.endswith(MANIFEST_SUFFIX)


def _list_all(store: ObjectStore, prefix: str, page_size: int = LIST_PAGE_SIZE) -> Iterator[StoredObject]:
    """Every entry under prefix, one page at a time."""
    offset = 0
    while True:
        page = store.list(prefix, limit=page_size, offset=offset)
        yield from page
        if len(page) < page_size:
            return
        offset += page_size


def _artifacts_in(store: ObjectStore, prefix: str, page_size: int) -> List[ArtifactInfo]:
    return [
        ArtifactInfo(
            path=f"{prefix}/{item.name}",
            name=item.name,
            size=item.size,
            updated_at=item.updated_at,
        )
        for item in _list_all(store, prefix, page_size)
        if not item.is_folder and _is_artifact(item.name)
    ]


def list_artifacts(
    store: ObjectStore,
    tenant_id: str,
    dataset_kind: DatasetKind | str,
    *,
    page_size: int = LIST_PAGE_SIZE,
) -> List[ArtifactInfo]:
    """
    All CSV artifacts of one tenant and dataset, newest first.

    Dated artifacts live under {tenant}/{kind}/YYYY/MM. CSVs dropped directly
    in {tenant}/{kind} predate that layout and are listed after them, most
    recently updated first.
    """
    root = f"{tenant_id}/{DatasetKind(dataset_kind).value}"
    root_items = list(_list_all(store, root, page_size))

    dated: List[ArtifactInfo] = []
    for year in root_items:
        if not year.is_folder:
            continue
        year_prefix = f"{root}/{year.name}"
        for month in _list_all(store, year_prefix, page_size):
            if month.is_folder:
                dated.extend(_artifacts_in(store, f"{year_prefix}/{month.name}", page_size))

    loose = [
        ArtifactInfo(path=f"{root}/{item.name}", name=item.name, size=item.size, updated_at=item.updated_at)
        for item in root_items
        if not item.is_folder and _is_artifact(item.name)
    ]

    # YYYY/MM/{epochMillis}-... sorts chronologically as text
    dated.sort(key=lambda a: a.path, reverse=True)
    loose.sort(key=lambda a: (a.updated_at, a.name), reverse=True)
    logger.debug("[artifacts] %d dated and %d loose artifacts under %s", len(dated), len(loose), root)
    return dated + loose


def read_manifest(store: ObjectStore, artifact_path: str) -> Optional[UploadManifest]:
    """Manifest for an artifact, or None when it is missing or unreadable."""
    path = manifest_path_for(artifact_path)
    try:
        raw = store.download(path)
    except Exception as exc:
        logger.info("[artifacts] No manifest at %s: %s", path, exc)
        return None
    try:
        return UploadManifest.model_validate(json.loads(raw))
    except (ValueError, ValidationError) as exc:
        logger.warning("[artifacts] Invalid manifest at %s: %s", path, exc)
        return None


def download_artifact(store: ObjectStore, path: str) -> bytes:
    return store.download(path)
