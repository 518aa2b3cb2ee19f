"""Error taxonomy for the ingestion pipeline.

Every error is contained at file granularity by the orchestrator; the
message of each exception is what the operator sees on the file's card.
"""

from __future__ import annotations


class IngestError(Exception):
    """Base class for per-file ingestion failures."""


class ServerUnavailableError(IngestError):
    """Raised when the RAG server cannot be reached (connection failure)."""


class UploadTimeoutError(IngestError):
    """Raised when an upload exceeds its timeout."""


class ServerRejectedError(IngestError):
    """Raised when the server answers with a non-2xx status or a malformed body."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class InvalidTransitionError(IngestError):
    """Raised when a progress patch requests an illegal status transition."""
