"""
Tests for the intake error taxonomy.
"""

from __future__ import annotations

import pytest

from branchdesk.errors import (
    ERR_PARSE_DECODE,
    ERR_PARSE_TOKENIZE,
    ArtifactError,
    AuthError,
    EmptyDatasetError,
    ErrorCategory,
    IntakeError,
    ManifestError,
    ParseError,
    PersistenceError,
    StructuralError,
    UploadTimeoutError,
)


class TestErrorCodes:
    """Every intake exception carries a stable code."""

    @pytest.mark.parametrize(
        "exc,code",
        [
            (StructuralError(["first_name"]), "BDK-STRUCTURE-101"),
            (EmptyDatasetError("No valid attendance values found"), "BDK-STRUCTURE-102"),
            (ParseError("bad"), "BDK-PARSE-202"),
            (ParseError("bad", decode=True), "BDK-PARSE-201"),
            (AuthError("no user"), "BDK-AUTH-401"),
            (PersistenceError("rejected"), "BDK-STORE-501"),
            (ArtifactError("rejected"), "BDK-STORE-502"),
            (ManifestError("rejected", artifact_removed=True), "BDK-STORE-503"),
            (UploadTimeoutError("upsert", 1.0), "BDK-STORE-504"),
        ],
    )
    def test_codes(self, exc, code):
        assert isinstance(exc, IntakeError)
        assert str(exc.error_code) == code

    def test_decode_flag_does_not_leak_to_class(self):
        ParseError("bad", decode=True)
        assert ParseError.error_code == ERR_PARSE_TOKENIZE
        assert ParseError("bad", decode=True).error_code == ERR_PARSE_DECODE

    def test_structural_message(self):
        exc = StructuralError(["code", "amount"])
        assert exc.message == "Missing required columns: code, amount"
        assert exc.missing == ["code", "amount"]

    def test_timeout_message_and_retryable(self):
        exc = UploadTimeoutError("manifest_put", 2.5)
        assert str(exc) == "Step 'manifest_put' timed out after 2.5s"
        assert exc.error_code.retryable

    def test_to_log_dict(self):
        exc = ManifestError("boom", artifact_removed=False, artifact_path="t/a.csv")

        log = exc.to_log_dict()

        assert log == {
            "error_code": "BDK-STORE-503",
            "error_category": ErrorCategory.STORE.value,
            "error_message": "boom",
            "retryable": False,
            "artifact_removed": False,
            "artifact_path": "t/a.csv",
        }
