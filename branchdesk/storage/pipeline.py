"""
Commit step: turn a confirmed preview into durable state.

The structural gate lives here so that no caller can persist a file whose
required columns were never found, or an attendance grid with no usable
values. Audit and cursor writes follow the upload and never mask its
outcome.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..errors import EmptyDatasetError, IntakeError, StructuralError
from ..ingest.preview import FilePreview
from .audit import MonitoringSink, SyncAuditEntry, advance_sync_cursor, append_audit_entry
from .deadlines import resolve_deadline
from .manifest import UploadMetadata, UploadPeriod
from .stores import RelationalStore
from .uploader import ContentAddressedUploader, UploadResult

logger = logging.getLogger(__name__)


async def commit_upload(
    uploader: ContentAddressedUploader,
    audit_store: RelationalStore,
    preview: FilePreview,
    content: bytes,
    tenant_id: str,
    filename: str,
    *,
    branch_id: Optional[str] = None,
    period: Optional[UploadPeriod] = None,
    sink: Optional[MonitoringSink] = None,
    timeout: Optional[float] = None,
) -> UploadResult:
    parsed = preview.parse_result
    kind = preview.dataset_kind
    if parsed.missing:
        raise StructuralError(parsed.missing, tenant_id=tenant_id, dataset=kind.value)
    if not preview.can_persist:
        raise EmptyDatasetError(
            "; ".join(parsed.errors) or "Nothing in the file can be saved",
            tenant_id=tenant_id,
            dataset=kind.value,
        )
    deadline = resolve_deadline(timeout, uploader.io_timeout)

    metadata = UploadMetadata(
        filename=filename,
        row_count=parsed.row_count,
        columns=list(parsed.headers),
        period=period,
        totals=preview.totals or None,
        branch_id=branch_id,
    )

    try:
        result = await uploader.upload(
            content,
            tenant_id,
            kind,
            metadata,
            parsed.data,
            timeout=timeout,
        )
    except IntakeError as exc:
        logger.error("[commit] %s upload for %s failed: %s", kind.value, tenant_id, exc.to_log_dict())
        await append_audit_entry(
            audit_store,
            SyncAuditEntry(
                tenant_id=tenant_id,
                dataset_type=kind.value,
                outcome="error",
                message=exc.message,
            ),
            sink,
            timeout=deadline,
        )
        raise

    await append_audit_entry(
        audit_store,
        SyncAuditEntry(
            tenant_id=tenant_id,
            dataset_type=kind.value,
            outcome="ok",
            message=f"Imported {parsed.row_count} rows from {filename}",
            artifact_path=result.artifact_path,
            manifest_path=result.manifest_path,
        ),
        sink,
        timeout=deadline,
    )
    await advance_sync_cursor(audit_store, tenant_id, kind.value, sink, timeout=deadline)
    return result
