"""
Error taxonomy for the ingestion and retrieval pipeline.

Every error raised by the core derives from MindSiftError and carries a
machine-readable ``code`` plus the HTTP status the API layer renders it with.

    InvalidInput          malformed identifiers or missing fields, never retried
    NotAvailable          captions do not exist upstream, never retried
    TransientNetwork      retryable upstream failure, bounded retries
    AlreadyInProgress     lock contention, caller may try again later
    PartialFailure        one batch member failed, logged and isolated
    DownstreamUnavailable embedding/model provider unreachable
"""

from typing import Optional


class MindSiftError(Exception):
    """Base exception for the MindSift core."""

    code: str = "internal_error"
    http_status: int = 500

    def __init__(self, message: str = "", *, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code


class InvalidInput(MindSiftError):
    """Raised for malformed identifiers or missing required fields."""

    code = "invalid_input"
    http_status = 422


class VideoNotFound(InvalidInput):
    """Raised when a video id is well-formed but unknown to the store."""

    code = "video_not_found"
    http_status = 404


class NotAvailable(MindSiftError):
    """Raised when the upstream resource (captions) does not exist."""

    code = "not_available"
    http_status = 404


class TransientNetwork(MindSiftError):
    """Raised on retryable upstream failures."""

    code = "transient_network"
    http_status = 503


class AlreadyInProgress(MindSiftError):
    """Raised when another process holds the ingestion lease for a video."""

    code = "already_in_progress"
    http_status = 409


class PartialFailure(MindSiftError):
    """Recorded when one member of a batch fails while the rest succeed."""

    code = "partial_failure"
    http_status = 500

    def __init__(self, message: str = "", *, item_index: Optional[int] = None):
        super().__init__(message)
        self.item_index = item_index


class DownstreamUnavailable(MindSiftError):
    """Raised when the embedding or language-model provider is unreachable."""

    code = "downstream_unavailable"
    http_status = 503
