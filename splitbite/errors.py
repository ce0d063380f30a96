"""
Error taxonomy shared by the pipeline, the split engine and the ledger.

Every error carries a machine-checkable ``kind`` and the HTTP status the API
layer answers with. Handlers in ``splitbite.error_handlers`` render them as
``{"error": kind, "message": ...}``.
"""
from __future__ import annotations


class SplitBiteError(Exception):
    kind = "internal_error"
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> dict[str, str]:
        return {"error": self.kind, "message": self.message}


class ConfigurationError(SplitBiteError):
    """Missing credentials or settings. Never retried."""
    kind = "configuration_error"
    status_code = 500


class ExtractionFailure(SplitBiteError):
    """OCR or LLM stage failed or returned unusable data."""
    kind = "extraction_failure"
    status_code = 502


class StructuredParseError(ExtractionFailure):
    """LLM response was not a usable receipt object."""


class CompletionTransportError(ExtractionFailure):
    """Text-completion call failed (network, timeout, API error)."""


class TransientOcrError(ExtractionFailure):
    """OCR call failed for a reason that may go away on retry."""


class DocumentNotFoundError(ExtractionFailure):
    kind = "document_not_found"
    status_code = 404


class ValidationError(SplitBiteError):
    kind = "validation_error"
    status_code = 422


class StateError(SplitBiteError):
    """Operation rejected before mutation (bad amount, unknown person, ...)."""
    kind = "state_error"
    status_code = 400


class UnauthorizedError(SplitBiteError):
    kind = "unauthorized"
    status_code = 401


class NotFoundError(SplitBiteError):
    kind = "not_found"
    status_code = 404


class ConflictError(SplitBiteError):
    kind = "conflict"
    status_code = 409


ERROR_TYPES: dict[str, type[SplitBiteError]] = {
    cls.kind: cls
    for cls in (
        ConfigurationError,
        ExtractionFailure,
        DocumentNotFoundError,
        ValidationError,
        StateError,
        UnauthorizedError,
        NotFoundError,
        ConflictError,
    )
}
