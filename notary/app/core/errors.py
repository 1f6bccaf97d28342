"""
Error taxonomy for the Document Integrity Pipeline.

Every failure that crosses a component boundary is one of the classes
below. Each class carries the HTTP status it maps to and whether the
caller may retry the same request.

"Not found" and "mismatch" outcomes of a verification are NOT errors;
they are first-class VerificationResult statuses.
"""

from __future__ import annotations

from typing import Any, Optional


class NotaryError(Exception):
    """Base class for all pipeline failures."""

    status_code: int = 500
    retryable: bool = False
    error_code: str = "notary_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_payload(self) -> dict[str, Any]:
        return {
            "error": self.error_code,
            "detail": self.message,
            "retryable": self.retryable,
        }


# ---------------------------------------------------------------------------
# Client input errors
# ---------------------------------------------------------------------------

class UnsupportedFormat(NotaryError):
    """Declared file type is outside pdf|docx|txt."""

    status_code = 415
    error_code = "unsupported_format"


class ExtractionError(NotaryError):
    """The extractor could not produce text (corrupt, encrypted, empty)."""

    status_code = 422
    error_code = "extraction_error"


class UnsupportedAlgorithm(NotaryError):
    """Requested digest algorithm is not implemented."""

    status_code = 400
    error_code = "unsupported_algorithm"


# ---------------------------------------------------------------------------
# Ledger errors
# ---------------------------------------------------------------------------

class LedgerUnavailable(NotaryError):
    """
    Transient infrastructure failure (network, timeout, configuration).

    A timeout after submission does NOT imply the write was dropped.
    """

    status_code = 503
    retryable = True
    error_code = "ledger_unavailable"


class LedgerRejected(NotaryError):
    """The ledger refused the write (e.g. key already registered)."""

    status_code = 409
    error_code = "ledger_rejected"


class AnchoringFailed(NotaryError):
    """
    The version was persisted locally but could not be anchored.

    Carries the persisted (unanchored) version so the partial state is
    visible to the caller and can be reconciled later.
    """

    error_code = "anchoring_failed"

    def __init__(self, version: Any, cause: NotaryError) -> None:
        super().__init__(
            f"Version persisted but not anchored: {cause.message}"
        )
        self.version = version
        self.cause = cause
        self.status_code = cause.status_code
        self.retryable = cause.retryable

    def to_payload(self) -> dict[str, Any]:
        payload = super().to_payload()
        payload["cause"] = self.cause.error_code
        payload["version"] = self.version.model_dump(
            mode="json",
            by_alias=True,
            exclude={"raw_text", "canonical_content"},
        )
        return payload


# ---------------------------------------------------------------------------
# Store errors
# ---------------------------------------------------------------------------

class VersionConflict(NotaryError):
    """Version number assignment raced twice in a row."""

    status_code = 409
    retryable = True
    error_code = "version_conflict"


class AlreadyAnchored(NotaryError):
    """A ledger receipt is already recorded for this version."""

    status_code = 409
    error_code = "already_anchored"


class NotFound(NotaryError):
    """Unknown contract or version."""

    status_code = 404
    error_code = "not_found"

    def __init__(self, kind: str, identifier: Optional[str]) -> None:
        super().__init__(f"{kind} not found: {identifier}")
        self.kind = kind
        self.identifier = identifier
