"""
branchdesk - Error Taxonomy

Structured error classification for the intake pipeline.
Every failure the pipeline raises carries a stable error_code that can be:
- Aggregated in logs
- Shown to support staff next to the underlying message
- Used to decide whether the "save" affordance stays blocked

Error Code Format: BDK-{CATEGORY}-{NUMBER}
- STRUCTURE (100-199): Required columns missing, or no usable values
- PARSE (200-299): File could not be decoded or tokenized
- AUTH (400-499): No authenticated principal
- STORE (500-599): Relational store, object store and deadline failures
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Sequence


class ErrorCategory(str, Enum):
    """Error category for classification."""

    STRUCTURE = "STRUCTURE"
    PARSE = "PARSE"
    AUTH = "AUTH"
    STORE = "STORE"


@dataclass(frozen=True)
class ErrorCode:
    """Immutable error code definition."""

    code: str
    category: ErrorCategory
    message: str
    blocking: bool = True
    retryable: bool = False

    def __str__(self) -> str:
        return self.code


ERR_STRUCTURE_MISSING_COLUMNS = ErrorCode(
    code="BDK-STRUCTURE-101",
    category=ErrorCategory.STRUCTURE,
    message="Required columns are missing",
)
ERR_STRUCTURE_NO_VALUES = ErrorCode(
    code="BDK-STRUCTURE-102",
    category=ErrorCategory.STRUCTURE,
    message="No usable values found",
)
ERR_PARSE_DECODE = ErrorCode(
    code="BDK-PARSE-201",
    category=ErrorCategory.PARSE,
    message="File is not valid UTF-8",
)
ERR_PARSE_TOKENIZE = ErrorCode(
    code="BDK-PARSE-202",
    category=ErrorCategory.PARSE,
    message="File could not be tokenized as delimited text",
)
ERR_AUTH_NO_PRINCIPAL = ErrorCode(
    code="BDK-AUTH-401",
    category=ErrorCategory.AUTH,
    message="User is not authenticated",
)
ERR_STORE_UPSERT = ErrorCode(
    code="BDK-STORE-501",
    category=ErrorCategory.STORE,
    message="Relational upsert was rejected",
)
ERR_STORE_ARTIFACT = ErrorCode(
    code="BDK-STORE-502",
    category=ErrorCategory.STORE,
    message="Raw artifact upload failed",
)
ERR_STORE_MANIFEST = ErrorCode(
    code="BDK-STORE-503",
    category=ErrorCategory.STORE,
    message="Manifest upload failed",
)
ERR_STORE_TIMEOUT = ErrorCode(
    code="BDK-STORE-504",
    category=ErrorCategory.STORE,
    message="External call exceeded its deadline",
    retryable=True,
)


class IntakeError(Exception):
    """Base class for every failure raised by the intake pipeline."""

    error_code: ErrorCode = ErrorCode(
        code="BDK-INTERNAL-999",
        category=ErrorCategory.STORE,
        message="Unexpected intake failure",
    )

    def __init__(self, message: str, **context: Any) -> None:
        super().__init__(message)
        self.message = message
        self.context = context

    def to_log_dict(self) -> dict[str, Any]:
        """Convert to dict suitable for structured logging."""
        return {
            "error_code": str(self.error_code),
            "error_category": self.error_code.category.value,
            "error_message": self.message,
            "retryable": self.error_code.retryable,
            **self.context,
        }


class StructuralError(IntakeError):
    """Required canonical fields could not be mapped; nothing may be persisted."""

    error_code = ERR_STRUCTURE_MISSING_COLUMNS

    def __init__(self, missing: Sequence[str], **context: Any) -> None:
        self.missing = list(missing)
        super().__init__(
            "Missing required columns: " + ", ".join(self.missing),
            missing=self.missing,
            **context,
        )


class EmptyDatasetError(StructuralError):
    """Columns mapped but nothing in the file can be saved (e.g. an all-blank attendance grid)."""

    error_code = ERR_STRUCTURE_NO_VALUES

    def __init__(self, message: str, **context: Any) -> None:
        self.missing = []
        IntakeError.__init__(self, message, **context)


class ParseError(IntakeError):
    """The file could not be decoded or tokenized. Fatal for the attempt."""

    error_code = ERR_PARSE_TOKENIZE

    def __init__(self, message: str, *, decode: bool = False, **context: Any) -> None:
        if decode:
            self.error_code = ERR_PARSE_DECODE
        super().__init__(message, **context)


class AuthError(IntakeError):
    error_code = ERR_AUTH_NO_PRINCIPAL


class PersistenceError(IntakeError):
    error_code = ERR_STORE_UPSERT


class ArtifactError(IntakeError):
    error_code = ERR_STORE_ARTIFACT


class ManifestError(IntakeError):
    """Manifest upload failed; the raw artifact was (or was attempted to be) removed."""

    error_code = ERR_STORE_MANIFEST

    def __init__(self, message: str, *, artifact_removed: bool, **context: Any) -> None:
        self.artifact_removed = artifact_removed
        super().__init__(message, artifact_removed=artifact_removed, **context)


class UploadTimeoutError(IntakeError):
    """An external call did not complete before its deadline."""

    error_code = ERR_STORE_TIMEOUT

    def __init__(
        self,
        step: str,
        timeout: float,
        *,
        pending: Optional["asyncio.Future[Any]"] = None,
        **context: Any,
    ) -> None:
        self.step = step
        self.timeout = timeout
        # worker future of the abandoned call; it may still complete
        self.pending = pending
        super().__init__(
            f"Step '{step}' timed out after {timeout:.1f}s",
            step=step,
            timeout=timeout,
            **context,
        )
