"""
Unit tests for intake previews (pipeline selection and totals).
"""

from __future__ import annotations

import pytest

from branchdesk.ingest.preview import (
    NO_MATRIX_VALUES_MESSAGE,
    payroll_totals,
    preview_bytes,
    preview_file,
)
from branchdesk.ingest.schemas import DatasetKind


class TestMatrixPreview:
    """Attendance grids are melted into per-employee preview rows."""

    def test_attendance_matrix_detected(self, attendance_matrix_csv):
        preview = preview_bytes(attendance_matrix_csv, "attendance")

        assert preview.is_matrix
        assert preview.dataset_kind is DatasetKind.ATTENDANCE
        assert preview.parse_result.headers == [
            "employee",
            "total_hours",
            "days_worked",
            "average_hours_per_day",
        ]
        assert preview.parse_result.row_count == 2
        assert preview.parse_result.missing == []
        assert preview.can_persist

    def test_matrix_totals_for_manifest(self, attendance_matrix_csv):
        preview = preview_bytes(attendance_matrix_csv, "attendance")

        assert preview.totals["total_employees"] == 2
        assert preview.totals["total_hours"] == 31.75
        assert preview.totals["total_days"] == 4
        assert preview.totals["average_hours"] == 7.94
        assert preview.totals["0-39 hours"] == 2

    def test_matrix_without_values_blocks_persist(self):
        content = b"empleado,2025-08-01,2025-08-02\nAna,0,\nLuis,,0\n"

        preview = preview_bytes(content, "attendance")

        assert preview.is_matrix
        assert preview.parse_result.errors == [NO_MATRIX_VALUES_MESSAGE]
        assert not preview.can_persist

    def test_matrix_only_for_hour_datasets(self):
        content = b"fecha,2025-08-01,2025-08-02\nx,1,2\n"
        assert not preview_bytes(content, "sales").is_matrix


class TestFlatPreview:
    """One-row-per-record files go through the column mapper."""

    def test_flat_attendance(self):
        preview = preview_bytes(b"empleado,total_horas\nAna,40\n", "attendance")

        assert not preview.is_matrix
        assert preview.parse_result.data == [{"employee": "Ana", "total_hours": "40"}]
        assert preview.totals == {}

    def test_payroll_totals_by_code_and_center(self):
        content = (
            b"Codigo,Empleado,Monto,Centro\n"
            b"E1,Ana,100.50,Cocina\n"
            b"E2,Luis,200,Cocina\n"
        )

        preview = preview_bytes(content, "payroll_lines")

        assert preview.parse_result.missing == []
        assert preview.totals == {"E1": 100.5, "E2": 200.0, "Cocina": 300.5}

    def test_payroll_totals_defaults(self):
        totals = payroll_totals([{"amount": "1,000"}, {"amount": "x", "code": "B"}])

        assert totals == {"No code": 1000.0, "B": 0.0, "No cost center": 1000.0}

    def test_missing_columns_block_persist(self):
        preview = preview_bytes(b"Name\nAna\n", "roster")
        assert not preview.can_persist

    @pytest.mark.asyncio
    async def test_async_preview(self, attendance_matrix_csv):
        preview = await preview_file(attendance_matrix_csv, DatasetKind.ATTENDANCE)
        assert preview.is_matrix
