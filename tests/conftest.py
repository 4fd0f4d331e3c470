"""
tests/conftest.py

Pytest configuration and shared fixtures for the branchdesk test suite.

Nothing here talks to Supabase: the relational store, object store and auth
provider are in-memory fakes with the same shape as the production
adapters, plus failure switches for the rollback and timeout paths.
"""

from __future__ import annotations

import os
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence, Set, Tuple

import pytest

from branchdesk.core_config import reset_settings
from branchdesk.storage.audit import MonitoringSink
from branchdesk.storage.stores import StaticAuthProvider, StoredObject
from branchdesk.storage.uploader import ContentAddressedUploader

# =============================================================================
# GLOBAL TEST CONFIGURATION
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Keep tests on dev settings with placeholder credentials."""
    os.environ.setdefault("SUPABASE_MODE", "dev")
    os.environ.setdefault("SUPABASE_URL", "https://test.supabase.co")
    os.environ.setdefault("SUPABASE_SERVICE_ROLE_KEY", "test-service-role-key")


@pytest.fixture(autouse=True)
def reset_settings_cache():
    """Reset the settings cache before and after each test."""
    reset_settings()
    yield
    reset_settings()


# =============================================================================
# FAKE STORES
# =============================================================================


class FakeRelationalStore:
    """Dict-of-lists relational store with upsert-by-key semantics."""

    def __init__(self, events: Optional[List[Tuple[str, str]]] = None):
        self.tables: Dict[str, List[Dict[str, Any]]] = {}
        self.events = events if events is not None else []
        self.fail_tables: Set[str] = set()
        self.delay_seconds = 0.0

    def _maybe_fail(self, table: str) -> None:
        if self.delay_seconds:
            time.sleep(self.delay_seconds)
        if table in self.fail_tables:
            raise RuntimeError(f"{table} write rejected")

    def upsert(
        self,
        table: str,
        rows: Sequence[Mapping[str, Any]],
        conflict_columns: Sequence[str],
    ) -> None:
        self._maybe_fail(table)
        self.events.append(("upsert", table))
        existing = self.tables.setdefault(table, [])
        for row in rows:
            key = tuple(row.get(c) for c in conflict_columns)
            for index, current in enumerate(existing):
                if tuple(current.get(c) for c in conflict_columns) == key:
                    existing[index] = {**current, **row}
                    break
            else:
                existing.append(dict(row))

    def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> None:
        self._maybe_fail(table)
        self.events.append(("insert", table))
        self.tables.setdefault(table, []).extend(dict(r) for r in rows)

    def select(
        self,
        table: str,
        filters: Mapping[str, Any],
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        if table in self.fail_tables:
            raise RuntimeError(f"{table} read rejected")
        matches = [
            dict(row)
            for row in self.tables.get(table, [])
            if all(row.get(k) == v for k, v in filters.items())
        ]
        return matches[:limit] if limit is not None else matches

    def rows(self, table: str) -> List[Dict[str, Any]]:
        return self.tables.get(table, [])


class FakeObjectStore:
    """Path-keyed object store; folders are implied by '/' separators."""

    def __init__(self, events: Optional[List[Tuple[str, str]]] = None):
        self.objects: Dict[str, Tuple[bytes, str]] = {}
        self.events = events if events is not None else []
        self.fail_put_suffixes: Set[str] = set()
        self.fail_delete = False
        self.deleted: List[str] = []
        self.put_delay_seconds: Dict[str, float] = {}
        self.list_calls: List[Tuple[str, int, int]] = []

    def put(self, path: str, data: bytes, content_type: str, *, overwrite: bool = False) -> None:
        for suffix, delay in self.put_delay_seconds.items():
            if path.endswith(suffix):
                time.sleep(delay)
        if any(path.endswith(suffix) for suffix in self.fail_put_suffixes):
            raise RuntimeError(f"put rejected for {path}")
        if path in self.objects and not overwrite:
            raise RuntimeError(f"{path} already exists")
        self.events.append(("put", path))
        self.objects[path] = (data, content_type)

    def delete(self, paths: Sequence[str]) -> None:
        if self.fail_delete:
            raise RuntimeError("delete rejected")
        for path in paths:
            self.events.append(("delete", path))
            self.deleted.append(path)
            self.objects.pop(path, None)

    def list(self, prefix: str, *, limit: int = 100, offset: int = 0) -> List[StoredObject]:
        self.list_calls.append((prefix, limit, offset))
        base = prefix.rstrip("/") + "/"
        children: Dict[str, StoredObject] = {}
        for path, (data, _) in self.objects.items():
            if not path.startswith(base):
                continue
            head, sep, _rest = path[len(base):].partition("/")
            if sep:
                children.setdefault(head, StoredObject(name=head, is_folder=True))
            else:
                children[head] = StoredObject(name=head, is_folder=False, size=len(data))
        listing = sorted(children.values(), key=lambda o: o.name, reverse=True)
        return listing[offset : offset + limit]

    def download(self, path: str) -> bytes:
        if path not in self.objects:
            raise FileNotFoundError(path)
        return self.objects[path][0]


class SteppingClock:
    """Deterministic clock advancing one second per read."""

    def __init__(self, start: Optional[datetime] = None):
        self.current = start or datetime(2025, 8, 15, 12, 0, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        value = self.current
        self.current = self.current.replace(second=(self.current.second + 1) % 60)
        return value


class RecordingSink(MonitoringSink):
    """MonitoringSink that remembers reports instead of posting them."""

    def __init__(self):
        super().__init__(webhook_url=None)
        self.reports: List[Tuple[str, str, Dict[str, Any]]] = []

    async def report(self, event: str, message: str, **context: Any) -> None:
        self.reports.append((event, message, context))


# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def events() -> List[Tuple[str, str]]:
    return []


@pytest.fixture
def relational(events) -> FakeRelationalStore:
    return FakeRelationalStore(events)


@pytest.fixture
def objects(events) -> FakeObjectStore:
    return FakeObjectStore(events)


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def clock() -> SteppingClock:
    return SteppingClock()


@pytest.fixture
def uploader(relational, objects, sink, clock) -> ContentAddressedUploader:
    return ContentAddressedUploader(
        relational,
        objects,
        StaticAuthProvider("user-123"),
        io_timeout=2.0,
        clock=clock,
        sink=sink,
    )


ROSTER_CSV = (
    b"Personal identification number,Name,Lastname,Employee Rol,Active? (Yes/No),Email\n"
    b"8-123-456,Ana,Gomez,cashier,yes,ana@example.com\n"
    b"8-222-333,Luis,Perez Diaz,cook,no,\n"
)

ATTENDANCE_MATRIX_CSV = (
    b"empleado,2025-08-01,2025-08-02,2025-08-03\n"
    b"Ana,8:30,0,7.25\n"
    b"Luis,8,8,\n"
    b"Marta,,0,\n"
)


@pytest.fixture
def roster_csv() -> bytes:
    return ROSTER_CSV


@pytest.fixture
def attendance_matrix_csv() -> bytes:
    return ATTENDANCE_MATRIX_CSV
