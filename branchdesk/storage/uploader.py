"""
branchdesk/storage/uploader.py
==============================
Content-addressed upload of one accepted CSV file.

Order of effects (each step only runs if the previous one succeeded):

    1. resolve the uploading principal            -> AuthError
    2. transform + upsert domain rows             -> PersistenceError
    3. SHA-256 digest of the raw bytes
    4. {tenant}/{kind}/{YYYY}/{MM}/{epochMillis}-{slug}
    5. put {base}.csv (no overwrite)              -> ArtifactError
    6. put {base}.manifest.json                   -> ManifestError
       (artifact deleted before raising)
    7. record the digest in upload_digests (best-effort)

Relational rows are idempotent on their conflict keys and are not rolled
back when a later step fails. A raw artifact never outlives a failed
manifest write unless the compensating delete itself fails, in which case
the orphan is reported to the monitoring sink.

Every store call runs on a worker thread bounded by a deadline; a call that
misses it raises UploadTimeoutError. A put that times out keeps running on
its thread, so it is given the same deadline again to settle before the
compensating delete.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, TypeVar

from ..errors import (
    ArtifactError,
    AuthError,
    ManifestError,
    PersistenceError,
    UploadTimeoutError,
)
from ..ingest.schemas import DatasetKind
from .audit import MonitoringSink
from .deadlines import call_with_deadline, resolve_deadline
from .manifest import (
    ARTIFACT_SUFFIX,
    MANIFEST_SUFFIX,
    UploadManifest,
    UploadMetadata,
    build_base_path,
    compute_content_digest,
)
from .stores import AuthProvider, ObjectStore, RelationalStore
from .transforms import plan_for

logger = logging.getLogger(__name__)

DIGEST_TABLE = "upload_digests"
DIGEST_CONFLICT_COLUMNS = ("tenant_id", "dataset_type", "content_hash")

CSV_CONTENT_TYPE = "text/csv"
MANIFEST_CONTENT_TYPE = "application/json"

T = TypeVar("T")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class UploadResult:
    artifact_path: str
    manifest_path: str
    content_hash: str
    rows_upserted: int = 0
    duplicate_of: Optional[str] = None


class ContentAddressedUploader:
    """
    Persists domain rows, the raw artifact and its manifest.

    Args:
        relational: store for domain rows and the digest index
        objects: bucket holding artifacts and manifests
        auth: resolves the uploading principal
        io_timeout: default per-call deadline in seconds
            (Settings.UPLOAD_IO_TIMEOUT_SECONDS when omitted)
        clock: wall clock used for paths and uploaded_at
        sink: receives orphaned-artifact reports
    """

    def __init__(
        self,
        relational: RelationalStore,
        objects: ObjectStore,
        auth: AuthProvider,
        *,
        io_timeout: Optional[float] = None,
        clock: Callable[[], datetime] = _utcnow,
        sink: Optional[MonitoringSink] = None,
    ):
        self.relational = relational
        self.objects = objects
        self.auth = auth
        self.io_timeout = io_timeout
        self.clock = clock
        self.sink = sink or MonitoringSink()

    def _deadline(self, timeout: Optional[float]) -> float:
        return resolve_deadline(timeout, self.io_timeout)

    async def _call(self, step: str, timeout: float, func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        return await call_with_deadline(step, timeout, func, *args, **kwargs)

    # -------------------------------------------------------------------------
    # steps
    # -------------------------------------------------------------------------

    async def _persist_rows(
        self,
        kind: DatasetKind,
        domain_rows: Sequence[Mapping[str, Any]],
        branch_id: str,
        timeout: float,
    ) -> int:
        plan = plan_for(kind)
        if plan is None:
            logger.warning(
                "[upload] %s has no relational table; %d rows not persisted",
                kind.value,
                len(domain_rows),
            )
            return 0

        rows = plan.transform(domain_rows, branch_id)
        if not rows:
            logger.info("[upload] No %s rows survived transform", kind.value)
            return 0

        try:
            await self._call(
                "upsert",
                timeout,
                self.relational.upsert,
                plan.table,
                rows,
                plan.conflict_columns,
            )
        except UploadTimeoutError:
            raise
        except Exception as exc:
            logger.error("[upload] Upsert into %s failed: %s", plan.table, exc)
            raise PersistenceError(
                f"Failed to save {kind.value} rows: {exc}",
                table=plan.table,
            ) from exc

        logger.info("[upload] Upserted %d rows into %s", len(rows), plan.table)
        return len(rows)

    async def _find_duplicate(
        self, tenant_id: str, kind: DatasetKind, digest: str, timeout: float
    ) -> Optional[str]:
        try:
            rows: List[Dict[str, Any]] = await self._call(
                "digest_lookup",
                timeout,
                self.relational.select,
                DIGEST_TABLE,
                {"tenant_id": tenant_id, "dataset_type": kind.value, "content_hash": digest},
                1,
            )
        except Exception as exc:
            logger.warning("[upload] Digest lookup failed, continuing: %s", exc)
            return None
        if not rows:
            return None
        return rows[0].get("artifact_path")

    async def _record_digest(
        self, tenant_id: str, kind: DatasetKind, digest: str, artifact_path: str, timeout: float
    ) -> None:
        row = {
            "tenant_id": tenant_id,
            "dataset_type": kind.value,
            "content_hash": digest,
            "artifact_path": artifact_path,
        }
        try:
            await self._call(
                "digest_record",
                timeout,
                self.relational.upsert,
                DIGEST_TABLE,
                [row],
                DIGEST_CONFLICT_COLUMNS,
            )
        except Exception as exc:
            logger.warning("[upload] Digest index write failed for %s: %s", artifact_path, exc)

    async def _remove_objects(self, paths: List[str], timeout: float) -> bool:
        try:
            await self._call("artifact_delete", timeout, self.objects.delete, paths)
        except Exception as exc:
            logger.error("[upload] Could not remove orphaned objects %s: %s", paths, exc)
            await self.sink.report("orphaned_artifact", str(exc), artifact_path=paths[0])
            return False
        logger.info("[upload] Removed %s after a failed upload", paths)
        return True

    async def _discard_late_write(
        self, exc: UploadTimeoutError, paths: List[str], timeout: float
    ) -> bool:
        """
        Compensate for a put that missed its deadline.

        The worker thread may still land the object, so wait (bounded) for it
        to settle before deleting; a put still running after that is reported
        as a possible orphan instead.
        """
        if exc.pending is not None:
            done, _ = await asyncio.wait({exc.pending}, timeout=timeout)
            if not done:
                logger.error(
                    "[upload] %s still running after %.1fs; %s may be orphaned",
                    exc.step,
                    timeout,
                    paths,
                )
                await self.sink.report(
                    "possible_orphaned_artifact",
                    f"{exc.step} still running after its deadline",
                    artifact_path=paths[0],
                )
                return False
        return await self._remove_objects(paths, timeout)

    # -------------------------------------------------------------------------
    # public
    # -------------------------------------------------------------------------

    async def upload(
        self,
        content: bytes,
        tenant_id: str,
        dataset_kind: DatasetKind | str,
        metadata: UploadMetadata,
        domain_rows: Optional[Sequence[Mapping[str, Any]]] = None,
        *,
        timeout: Optional[float] = None,
    ) -> UploadResult:
        kind = DatasetKind(dataset_kind)
        deadline = self._deadline(timeout)
        log_ctx = {"tenant": tenant_id, "dataset": kind.value}

        user_id = await self._call("auth", deadline, self.auth.current_user_id)
        if not user_id:
            raise AuthError("User is not authenticated", tenant_id=tenant_id)

        rows_upserted = 0
        if domain_rows:
            rows_upserted = await self._persist_rows(
                kind, domain_rows, metadata.branch_id or tenant_id, deadline
            )

        digest = compute_content_digest(content)
        duplicate_of = await self._find_duplicate(tenant_id, kind, digest, deadline)
        if duplicate_of:
            logger.info("[upload] Same bytes already stored at %s", duplicate_of, extra=log_ctx)

        now = self.clock()
        base_path = build_base_path(tenant_id, kind.value, metadata.filename, now)
        artifact_path = base_path + ARTIFACT_SUFFIX
        manifest_path = base_path + MANIFEST_SUFFIX

        try:
            await self._call(
                "artifact_put",
                deadline,
                self.objects.put,
                artifact_path,
                content,
                CSV_CONTENT_TYPE,
                overwrite=False,
            )
        except UploadTimeoutError as exc:
            await self._discard_late_write(exc, [artifact_path], deadline)
            raise
        except Exception as exc:
            logger.error("[upload] Artifact upload failed: %s", exc, extra=log_ctx)
            raise ArtifactError(
                f"Failed to upload raw file: {exc}",
                artifact_path=artifact_path,
            ) from exc

        manifest = UploadManifest(
            tenant_id=tenant_id,
            dataset_type=kind.value,
            filename=metadata.filename,
            row_count=metadata.row_count,
            column_list=list(metadata.columns),
            content_hash=digest,
            uploaded_by=user_id,
            uploaded_at=now,
            period=metadata.period,
            totals=metadata.totals,
            source_kind=metadata.source_kind,
        )
        try:
            await self._call(
                "manifest_put",
                deadline,
                self.objects.put,
                manifest_path,
                manifest.to_json_bytes(),
                MANIFEST_CONTENT_TYPE,
                overwrite=False,
            )
        except UploadTimeoutError as exc:
            await self._discard_late_write(exc, [artifact_path, manifest_path], deadline)
            raise
        except Exception as exc:
            logger.error("[upload] Manifest upload failed: %s", exc, extra=log_ctx)
            removed = await self._remove_objects([artifact_path], deadline)
            raise ManifestError(
                f"Failed to upload manifest: {exc}",
                artifact_removed=removed,
                artifact_path=artifact_path,
            ) from exc

        if not duplicate_of:
            await self._record_digest(tenant_id, kind, digest, artifact_path, deadline)

        logger.info(
            "[upload] Stored %s (%d bytes, sha256=%s)",
            artifact_path,
            len(content),
            digest[:12],
            extra=log_ctx,
        )
        return UploadResult(
            artifact_path=artifact_path,
            manifest_path=manifest_path,
            content_hash=digest,
            rows_upserted=rows_upserted,
            duplicate_of=duplicate_of,
        )


async def upload_with_manifest(
    uploader: ContentAddressedUploader,
    content: bytes,
    tenant_id: str,
    dataset_kind: DatasetKind | str,
    metadata: UploadMetadata,
    domain_rows: Optional[Sequence[Mapping[str, Any]]] = None,
    *,
    timeout: Optional[float] = None,
) -> UploadResult:
    """Functional entry point; see ContentAddressedUploader.upload."""
    return await uploader.upload(
        content, tenant_id, dataset_kind, metadata, domain_rows, timeout=timeout
    )
