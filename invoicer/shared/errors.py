"""Error codes, error payloads and the exception hierarchy.

Parsing layers never raise; these exceptions cross the boundaries where a
failure has to be visible to the caller (AI unavailability, corrupted
numbering state, caller-supplied data that fails validation).
"""

from typing import Any, Literal

from pydantic import BaseModel, Field

ErrorCode = Literal[
    "EXTRACTION_INCOMPLETE",
    "INVALID_INPUT",
    "AI_SERVICE_UNAVAILABLE",
    "STORAGE_QUOTA_EXCEEDED",
    "NETWORK_ERROR",
]


class ErrorResponse(BaseModel):
    """Structured error payload returned to callers.

    Attributes:
        error_code: Machine-readable error category
        message: Human-readable summary
        details: Per-field or contextual details
    """

    error_code: ErrorCode = Field(serialization_alias="errorCode")
    message: str
    details: dict[str, str] = Field(default_factory=dict)


class InvoicerError(Exception):
    """Base exception for all invoicer errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        self.message = message
        self.details = details or {}
        super().__init__(message)


class AIExtractionError(InvoicerError):
    """AI extraction could not produce a result.

    Covers missing credentials, transport failures, timeouts and unparseable
    responses. Always recoverable: callers fall back to regex extraction.
    """

    def __init__(self, reason: str, provider: str | None = None) -> None:
        self.reason = reason
        self.provider = provider
        super().__init__(f"AI extraction failed: {reason}", {"provider": provider})


class AIResponseParseError(InvoicerError):
    """Model output did not contain a usable JSON object."""


class InvoiceNumberFormatError(InvoicerError):
    """Persisted or supplied invoice number does not match PREFIX-YYYY-NNN."""

    def __init__(self, value: str, prefix: str = "INV") -> None:
        self.value = value
        super().__init__(
            f"Invalid invoice number format: {value!r}. Expected format: {prefix}-YYYY-###",
            {"value": value},
        )


class ValidationFailedError(InvoicerError):
    """Caller-supplied data failed one or more format checks."""

    def __init__(self, response: ErrorResponse) -> None:
        self.response = response
        super().__init__(response.message, dict(response.details))


class StorageError(InvoicerError):
    """Key-value store read or write failed."""
