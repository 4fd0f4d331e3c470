# branchdesk/storage/__init__.py
"""
Storage Module - durable side of the intake pipeline

Components:
    - Store contracts and Supabase adapters
    - Content-addressed uploader (rows, raw artifact, manifest)
    - Sync audit log and cursors
    - Deadline-bounded store calls
    - Artifact browser

Usage:
    from branchdesk.storage import ContentAddressedUploader, commit_upload
"""

from branchdesk.storage.artifacts import ArtifactInfo, download_artifact, list_artifacts, read_manifest
from branchdesk.storage.audit import (
    MonitoringSink,
    SyncAuditEntry,
    advance_sync_cursor,
    append_audit_entry,
)
from branchdesk.storage.deadlines import call_with_deadline, resolve_deadline
from branchdesk.storage.manifest import (
    UploadManifest,
    UploadMetadata,
    UploadPeriod,
    compute_content_digest,
    manifest_path_for,
)
from branchdesk.storage.pipeline import commit_upload
from branchdesk.storage.stores import (
    AuthProvider,
    ObjectStore,
    RelationalStore,
    StaticAuthProvider,
    StoredObject,
    SupabaseAuthProvider,
    SupabaseObjectStore,
    SupabaseRelationalStore,
)
from branchdesk.storage.uploader import ContentAddressedUploader, UploadResult, upload_with_manifest

__all__ = [
    "ArtifactInfo",
    "AuthProvider",
    "ContentAddressedUploader",
    "MonitoringSink",
    "ObjectStore",
    "RelationalStore",
    "StaticAuthProvider",
    "StoredObject",
    "SupabaseAuthProvider",
    "SupabaseObjectStore",
    "SupabaseRelationalStore",
    "SyncAuditEntry",
    "UploadManifest",
    "UploadMetadata",
    "UploadPeriod",
    "UploadResult",
    "advance_sync_cursor",
    "append_audit_entry",
    "call_with_deadline",
    "commit_upload",
    "compute_content_digest",
    "download_artifact",
    "list_artifacts",
    "manifest_path_for",
    "read_manifest",
    "resolve_deadline",
    "upload_with_manifest",
]
