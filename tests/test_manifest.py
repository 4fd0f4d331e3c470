"""
Unit tests for artifact naming and manifests.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from branchdesk.storage.manifest import (
    UploadManifest,
    UploadMetadata,
    UploadPeriod,
    build_base_path,
    compute_content_digest,
    manifest_path_for,
    slugify_filename,
)


class TestDigest:
    """Tests for compute_content_digest."""

    def test_known_value(self):
        assert (
            compute_content_digest(b"")
            == "e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855"
        )

    def test_stable_and_content_sensitive(self):
        assert compute_content_digest(b"a,b\n1,2\n") == compute_content_digest(b"a,b\n1,2\n")
        assert compute_content_digest(b"a,b\n1,2\n") != compute_content_digest(b"a,b\n1,3\n")


class TestPaths:
    """Tests for slug and path construction."""

    @pytest.mark.parametrize(
        "filename,slug",
        [
            ("Roster August.CSV", "roster-august-csv"),
            ("__planilla (final) v2.csv", "planilla-final-v2-csv"),
            ("ñandú.csv", "and-csv"),
        ],
    )
    def test_slugify(self, filename, slug):
        assert slugify_filename(filename) == slug

    def test_base_path_layout(self):
        now = datetime(2025, 8, 5, 9, 30, tzinfo=timezone.utc)

        path = build_base_path("tenant-1", "roster", "Roster.csv", now)

        assert path == f"tenant-1/roster/2025/08/{int(now.timestamp() * 1000)}-roster-csv"

    @pytest.mark.parametrize(
        "artifact,manifest",
        [
            ("t/roster/2025/08/1-a.csv", "t/roster/2025/08/1-a.manifest.json"),
            ("t/roster/2025/08/1-a.CSV", "t/roster/2025/08/1-a.manifest.json"),
            ("t/roster/2025/08/1-csv-data.csv", "t/roster/2025/08/1-csv-data.manifest.json"),
        ],
    )
    def test_manifest_path_for(self, artifact, manifest):
        assert manifest_path_for(artifact) == manifest


class TestModels:
    """Tests for the pydantic metadata and manifest models."""

    def test_period_month_bounds(self):
        with pytest.raises(ValidationError):
            UploadPeriod(month=13, year=2025)

    def test_negative_row_count_rejected(self):
        with pytest.raises(ValidationError):
            UploadMetadata(filename="a.csv", row_count=-1)

    def test_manifest_json(self):
        manifest = UploadManifest(
            tenant_id="t",
            dataset_type="roster",
            filename="a.csv",
            row_count=2,
            column_list=["first_name"],
            content_hash="abc",
            uploaded_by="user-1",
            uploaded_at=datetime(2025, 8, 5, tzinfo=timezone.utc),
            period=UploadPeriod(month=8, year=2025),
        )

        payload = json.loads(manifest.to_json_bytes())

        assert payload["content_hash"] == "abc"
        assert payload["period"] == {"month": 8, "year": 2025}
        assert payload["source_kind"] == "csv"
        assert payload["uploaded_at"].startswith("2025-08-05T00:00:00")

    def test_manifest_is_frozen(self):
        manifest = UploadManifest(
            tenant_id="t",
            dataset_type="roster",
            filename="a.csv",
            row_count=0,
            column_list=[],
            content_hash="abc",
            uploaded_by="u",
            uploaded_at=datetime(2025, 8, 5, tzinfo=timezone.utc),
        )
        with pytest.raises(ValidationError):
            manifest.row_count = 5
