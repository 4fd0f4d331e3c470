"""
Unit tests for the sync audit log, cursors and monitoring sink.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from branchdesk.storage.audit import (
    MonitoringSink,
    SyncAuditEntry,
    advance_sync_cursor,
    append_audit_entry,
)


class TestSyncAuditEntry:
    """Tests for the audit row model."""

    def test_finished_at_set_for_terminal_outcomes(self):
        entry = SyncAuditEntry(tenant_id="t", dataset_type="roster", outcome="ok", message="done")
        assert entry.finished_at is not None

    def test_pending_has_no_finished_at(self):
        entry = SyncAuditEntry(
            tenant_id="t",
            dataset_type="roster",
            outcome="pending",
            message="started",
            finished_at=datetime(2025, 8, 1, tzinfo=timezone.utc),
        )
        assert entry.finished_at is None

    def test_row_is_json_ready(self):
        entry = SyncAuditEntry(
            tenant_id="t",
            dataset_type="sales",
            outcome="error",
            message="boom",
            finished_at=datetime(2025, 8, 1, tzinfo=timezone.utc),
        )

        row = entry.to_row()

        assert row["finished_at"].startswith("2025-08-01T00:00:00")
        assert row["source_kind"] == "csv"
        assert row["artifact_path"] is None


class TestAppendAuditEntry:
    """append_audit_entry never raises."""

    @pytest.mark.asyncio
    async def test_inserts_into_sync_log(self, relational):
        entry = SyncAuditEntry(tenant_id="t", dataset_type="roster", outcome="ok", message="done")

        assert await append_audit_entry(relational, entry) is True
        [row] = relational.rows("sync_log")
        assert row["outcome"] == "ok"
        assert row["tenant_id"] == "t"

    @pytest.mark.asyncio
    async def test_failure_is_reported_not_raised(self, relational, sink):
        relational.fail_tables.add("sync_log")
        entry = SyncAuditEntry(tenant_id="t", dataset_type="roster", outcome="ok", message="done")

        assert await append_audit_entry(relational, entry, sink) is False
        [(event, message, context)] = sink.reports
        assert event == "audit_write_failed"
        assert "rejected" in message
        assert context == {"tenant": "t", "dataset": "roster", "outcome": "ok"}

    @pytest.mark.asyncio
    async def test_slow_insert_does_not_block_event_loop(self, relational):
        relational.delay_seconds = 0.3
        entry = SyncAuditEntry(tenant_id="t", dataset_type="roster", outcome="ok", message="done")
        gaps = []

        async def ticker():
            loop = asyncio.get_running_loop()
            last = loop.time()
            while True:
                await asyncio.sleep(0.02)
                now = loop.time()
                gaps.append(now - last)
                last = now

        task = asyncio.create_task(ticker())
        try:
            assert await append_audit_entry(relational, entry, timeout=2.0) is True
        finally:
            task.cancel()

        assert gaps
        assert max(gaps) < 0.2

    @pytest.mark.asyncio
    async def test_insert_past_deadline_is_reported(self, relational, sink):
        relational.delay_seconds = 0.3
        entry = SyncAuditEntry(tenant_id="t", dataset_type="roster", outcome="error", message="x")

        assert await append_audit_entry(relational, entry, sink, timeout=0.05) is False
        [(event, message, _context)] = sink.reports
        assert event == "audit_write_failed"
        assert "audit_insert" in message


class TestAdvanceSyncCursor:
    """advance_sync_cursor upserts one row per tenant/dataset."""

    @pytest.mark.asyncio
    async def test_upserts_on_tenant_and_dataset(self, relational):
        first = datetime(2025, 8, 1, tzinfo=timezone.utc)
        second = datetime(2025, 8, 2, tzinfo=timezone.utc)

        await advance_sync_cursor(relational, "t", "roster", clock=lambda: first)
        await advance_sync_cursor(relational, "t", "roster", clock=lambda: second)
        await advance_sync_cursor(relational, "t", "sales", clock=lambda: first)

        cursors = relational.rows("sync_cursors")
        assert len(cursors) == 2
        roster = next(c for c in cursors if c["dataset"] == "roster")
        assert roster["last_sync_at"] == second.isoformat()

    @pytest.mark.asyncio
    async def test_failure_is_reported_not_raised(self, relational, sink):
        relational.fail_tables.add("sync_cursors")

        assert await advance_sync_cursor(relational, "t", "roster", sink) is False
        assert sink.reports[0][0] == "cursor_write_failed"

    @pytest.mark.asyncio
    async def test_upsert_past_deadline_is_reported(self, relational, sink):
        relational.delay_seconds = 0.3

        assert await advance_sync_cursor(relational, "t", "roster", sink, timeout=0.05) is False
        assert sink.reports[0][0] == "cursor_write_failed"


def _mock_async_client(response=None, error=None):
    client = AsyncMock()
    if error is not None:
        client.post.side_effect = error
    else:
        client.post.return_value = response
    client.__aenter__.return_value = client
    client.__aexit__.return_value = None
    return client


class TestMonitoringSink:
    """Tests for the logger + Discord sink."""

    @pytest.mark.asyncio
    async def test_logs_without_webhook(self, caplog):
        sink = MonitoringSink()

        with caplog.at_level(logging.ERROR, logger="branchdesk.monitoring"):
            with patch("branchdesk.storage.audit.httpx.AsyncClient") as client_cls:
                await sink.report("audit_write_failed", "boom", tenant="t")

        client_cls.assert_not_called()
        assert "audit_write_failed" in caplog.text

    @pytest.mark.asyncio
    async def test_posts_to_webhook(self):
        sink = MonitoringSink(webhook_url="https://discord.test/webhook")
        response = MagicMock()
        client = _mock_async_client(response=response)

        with patch("branchdesk.storage.audit.httpx.AsyncClient", return_value=client) as client_cls:
            await sink.report("orphaned_artifact", "delete failed", artifact_path="t/a.csv")

        client_cls.assert_called_once_with(timeout=3.0)
        client.post.assert_awaited_once()
        args, kwargs = client.post.call_args
        assert args[0] == "https://discord.test/webhook"
        assert kwargs["json"]["content"].startswith("[ERROR] orphaned_artifact: delete failed")
        assert "artifact_path=t/a.csv" in kwargs["json"]["content"]
        response.raise_for_status.assert_called_once()

    @pytest.mark.asyncio
    async def test_webhook_failure_swallowed(self, caplog):
        sink = MonitoringSink(webhook_url="https://discord.test/webhook")
        client = _mock_async_client(error=httpx.ConnectError("unreachable"))

        with patch("branchdesk.storage.audit.httpx.AsyncClient", return_value=client):
            await sink.report("audit_write_failed", "boom")

        assert "Discord alert failed" in caplog.text

    def test_from_settings(self, monkeypatch):
        monkeypatch.setenv("DISCORD_WEBHOOK_URL", "https://discord.test/hook")
        assert MonitoringSink.from_settings().webhook_url == "https://discord.test/hook"
