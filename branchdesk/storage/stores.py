"""
branchdesk - Store Contracts & Supabase Adapters

The intake pipeline only needs a handful of operations from its two
external stores, so it talks to them through small protocols:

    RelationalStore: upsert by conflict key, append-only insert, equality select
    ObjectStore:     put (optionally no-overwrite), delete, list, download
    AuthProvider:    who is uploading

The Supabase adapters below are the production implementations; tests use
in-memory fakes with the same shape.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence

from supabase import Client

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredObject:
    """One entry of an object-store listing."""

    name: str
    is_folder: bool
    size: int = 0
    updated_at: str = ""


class RelationalStore(Protocol):
    def upsert(
        self,
        table: str,
        rows: Sequence[Mapping[str, Any]],
        conflict_columns: Sequence[str],
    ) -> None: ...

    def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> None: ...

    def select(
        self,
        table: str,
        filters: Mapping[str, Any],
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]: ...


class ObjectStore(Protocol):
    def put(self, path: str, data: bytes, content_type: str, *, overwrite: bool = False) -> None: ...

    def delete(self, paths: Sequence[str]) -> None: ...

    def list(self, prefix: str, *, limit: int = 100, offset: int = 0) -> List[StoredObject]: ...

    def download(self, path: str) -> bytes: ...


class AuthProvider(Protocol):
    def current_user_id(self) -> Optional[str]: ...


# =============================================================================
# Supabase adapters
# =============================================================================


class SupabaseRelationalStore:
    """PostgREST-backed relational store."""

    def __init__(self, client: Client):
        self._client = client

    def upsert(
        self,
        table: str,
        rows: Sequence[Mapping[str, Any]],
        conflict_columns: Sequence[str],
    ) -> None:
        if not rows:
            return
        self._client.table(table).upsert(
            [dict(r) for r in rows],
            on_conflict=",".join(conflict_columns),
        ).execute()
        logger.debug("[store] Upserted %d rows into %s on (%s)", len(rows), table, conflict_columns)

    def insert(self, table: str, rows: Sequence[Mapping[str, Any]]) -> None:
        if not rows:
            return
        self._client.table(table).insert([dict(r) for r in rows]).execute()

    def select(
        self,
        table: str,
        filters: Mapping[str, Any],
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        query = self._client.table(table).select("*")
        for column, value in filters.items():
            query = query.eq(column, value)
        if limit is not None:
            query = query.limit(limit)
        response = query.execute()
        return list(response.data or [])


class SupabaseObjectStore:
    """Supabase Storage bucket."""

    def __init__(self, client: Client, bucket: str):
        self._client = client
        self.bucket = bucket

    def _bucket(self) -> Any:
        return self._client.storage.from_(self.bucket)

    def put(self, path: str, data: bytes, content_type: str, *, overwrite: bool = False) -> None:
        self._bucket().upload(
            path,
            data,
            file_options={
                "content-type": content_type,
                "upsert": "true" if overwrite else "false",
            },
        )

    def delete(self, paths: Sequence[str]) -> None:
        self._bucket().remove(list(paths))

    def list(self, prefix: str, *, limit: int = 100, offset: int = 0) -> List[StoredObject]:
        items = self._bucket().list(
            prefix,
            {"limit": limit, "offset": offset, "sortBy": {"column": "name", "order": "desc"}},
        )
        listing: List[StoredObject] = []
        for item in items or []:
            metadata = item.get("metadata")
            listing.append(
                StoredObject(
                    name=item["name"],
                    # folders come back without metadata
                    is_folder=not metadata,
                    size=int((metadata or {}).get("size") or 0),
                    updated_at=item.get("updated_at") or item.get("created_at") or "",
                )
            )
        return listing

    def download(self, path: str) -> bytes:
        return self._bucket().download(path)


class SupabaseAuthProvider:
    """Resolves the uploader from a user access token."""

    def __init__(self, client: Client, access_token: Optional[str]):
        self._client = client
        self._access_token = access_token

    def current_user_id(self) -> Optional[str]:
        if not self._access_token:
            return None
        try:
            response = self._client.auth.get_user(self._access_token)
        except Exception as exc:
            logger.warning("[auth] Could not resolve user from access token: %s", exc)
            return None
        user = getattr(response, "user", None)
        return getattr(user, "id", None)


class StaticAuthProvider:
    """Fixed principal, for service accounts and the CLI."""

    def __init__(self, user_id: Optional[str]):
        self._user_id = user_id

    def current_user_id(self) -> Optional[str]:
        return self._user_id
