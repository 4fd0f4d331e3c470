"""
Sync audit trail and sync cursors.

Both writes happen after the primary durability goals (rows, artifact,
manifest) are met, so they are best-effort: a failure is logged and handed
to the MonitoringSink, never raised to the caller. Both run off the event
loop under the same per-call deadline as the uploader.

Tables:
    sync_log      append-only, one row per ingestion attempt
    sync_cursors  one row per (tenant_id, dataset), last successful sync
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Literal, Optional

import httpx
from pydantic import BaseModel, model_validator

from ..core_config import get_settings
from .deadlines import call_with_deadline, resolve_deadline
from .stores import RelationalStore

logger = logging.getLogger(__name__)

AUDIT_TABLE = "sync_log"
CURSOR_TABLE = "sync_cursors"
CURSOR_CONFLICT_COLUMNS = ("tenant_id", "dataset")

_DEFAULT_WEBHOOK_TIMEOUT = 3.0

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# =============================================================================
# Monitoring sink
# =============================================================================


class MonitoringSink:
    """
    Destination for failures that must not block the pipeline but must not
    vanish either: dropped audit rows, failed cursor writes, orphaned
    artifacts.

    Always logs on the dedicated "branchdesk.monitoring" logger; also posts to
    a Discord webhook when one is configured.
    """

    def __init__(self, webhook_url: Optional[str] = None, timeout: float = _DEFAULT_WEBHOOK_TIMEOUT):
        self.webhook_url = webhook_url
        self.timeout = timeout
        self._log = logging.getLogger("branchdesk.monitoring")

    @classmethod
    def from_settings(cls) -> "MonitoringSink":
        return cls(webhook_url=get_settings().discord_webhook_url)

    async def report(self, event: str, message: str, **context: Any) -> None:
        self._log.error("[monitoring] %s: %s %s", event, message, context)
        if not self.webhook_url:
            return

        details = " ".join(f"{k}={v}" for k, v in context.items())
        content = f"[ERROR] {event}: {message} {details}".strip()
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.webhook_url, json={"content": content})
                response.raise_for_status()
        except httpx.HTTPError as exc:
            self._log.warning("Discord alert failed: %s", exc)


# =============================================================================
# Audit entries
# =============================================================================


class SyncAuditEntry(BaseModel):
    """One append-only sync_log row."""

    tenant_id: str
    dataset_type: str
    source_kind: Literal["csv", "api"] = "csv"
    outcome: Literal["ok", "error", "pending"]
    message: str
    artifact_path: Optional[str] = None
    manifest_path: Optional[str] = None
    finished_at: Optional[datetime] = None

    @model_validator(mode="after")
    def _finished_unless_pending(self) -> "SyncAuditEntry":
        if self.outcome == "pending":
            self.finished_at = None
        elif self.finished_at is None:
            self.finished_at = _utcnow()
        return self

    def to_row(self) -> Dict[str, Any]:
        return self.model_dump(mode="json")


async def append_audit_entry(
    store: RelationalStore,
    entry: SyncAuditEntry,
    sink: Optional[MonitoringSink] = None,
    *,
    timeout: Optional[float] = None,
) -> bool:
    """Insert one sync_log row. Returns False (after reporting) on failure."""
    try:
        await call_with_deadline(
            "audit_insert",
            resolve_deadline(timeout),
            store.insert,
            AUDIT_TABLE,
            [entry.to_row()],
        )
    except Exception as exc:
        logger.error(
            "[audit] Failed to record %s entry for %s/%s: %s",
            entry.outcome,
            entry.tenant_id,
            entry.dataset_type,
            exc,
        )
        await (sink or MonitoringSink()).report(
            "audit_write_failed",
            str(exc),
            tenant=entry.tenant_id,
            dataset=entry.dataset_type,
            outcome=entry.outcome,
        )
        return False

    logger.info(
        "[audit] Recorded %s entry for %s/%s",
        entry.outcome,
        entry.tenant_id,
        entry.dataset_type,
    )
    return True


async def advance_sync_cursor(
    store: RelationalStore,
    tenant_id: str,
    dataset_kind: str,
    sink: Optional[MonitoringSink] = None,
    clock: Clock = _utcnow,
    *,
    timeout: Optional[float] = None,
) -> bool:
    """Upsert the (tenant, dataset) cursor to now. Returns False on failure."""
    row = {
        "tenant_id": tenant_id,
        "dataset": dataset_kind,
        "last_sync_at": clock().isoformat(),
    }
    try:
        await call_with_deadline(
            "cursor_upsert",
            resolve_deadline(timeout),
            store.upsert,
            CURSOR_TABLE,
            [row],
            CURSOR_CONFLICT_COLUMNS,
        )
    except Exception as exc:
        logger.error("[audit] Failed to advance cursor %s/%s: %s", tenant_id, dataset_kind, exc)
        await (sink or MonitoringSink()).report(
            "cursor_write_failed",
            str(exc),
            tenant=tenant_id,
            dataset=dataset_kind,
        )
        return False

    logger.debug("[audit] Cursor %s/%s -> %s", tenant_id, dataset_kind, row["last_sync_at"])
    return True
