"""Domain-specific exceptions for INVU Sync.

This module defines custom exceptions that are part of the public API.
All exceptions inherit from InvuSyncError for easy catching.

Two families matter to callers:

- Request-level errors (InvalidRequestError, StorageWriteError, ConfigError)
  abort the whole sync and are turned into an HTTP error response.
- Branch-level errors (UpstreamError subclasses) are captured per branch by
  the orchestrator and reported in the summary array, never re-raised.
"""

from __future__ import annotations


class InvuSyncError(Exception):
    """Base exception for all INVU Sync errors.

    Users can catch this exception to handle any INVU Sync error.
    """

    pass


class ConfigError(InvuSyncError):
    """Raised when there is a configuration error.

    This exception is raised when:
    - A numeric environment setting cannot be parsed
    - Storage credentials are required but not configured
    - INVU_TOKENS_JSON is not a JSON object
    """

    pass


class InvalidRequestError(InvuSyncError):
    """Raised when client input is invalid. Maps to HTTP 400."""

    status_code = 400


class InvalidDateError(InvalidRequestError):
    """Raised when a date is not YYYY-MM-DD, a known literal, or a real calendar day."""

    pass


class InvalidRangeError(InvalidRequestError):
    """Raised when a range is inverted (desde > hasta, fini > ffin) or malformed."""

    pass


class UnknownBranchError(InvalidRequestError):
    """Raised when a branch key is not one of the configured branches."""

    pass


class UpstreamError(InvuSyncError):
    """Raised when a call to the POS provider fails.

    Attributes:
        source: URL that was requested (never contains the token).
        status: HTTP status returned by the provider, if any.
        detail: Truncated response body or transport error text.
    """

    kind = "upstream"

    def __init__(
        self,
        message: str,
        *,
        source: str | None = None,
        status: int | None = None,
        detail: str | None = None,
    ) -> None:
        super().__init__(message)
        self.source = source
        self.status = status
        self.detail = detail


class MissingCredentialError(UpstreamError):
    """Raised when no token is configured for a branch."""

    kind = "missing-credential"


class UpstreamAuthError(UpstreamError):
    """Raised when the provider answers 401 or 403.

    Callers may use this to trigger a credential refresh; this package does
    not renew tokens itself.
    """

    kind = "auth"


class UpstreamFormatError(UpstreamError):
    """Raised when the provider returns a body that is not JSON or holds unusable values."""

    kind = "format"


class UpstreamTimeoutError(UpstreamError):
    """Raised on timeout or connection failure after retries are exhausted."""

    kind = "timeout"


class UpstreamHTTPError(UpstreamError):
    """Raised on any other non-2xx status (4xx is not retried, 5xx after retries)."""

    kind = "http"


class StorageError(InvuSyncError):
    """Base class for failures talking to the relational store."""

    pass


class StorageWriteError(StorageError):
    """Raised when the durable upsert fails.

    Fatal for the whole request: the sync is reported as failed even if every
    branch fetch succeeded.
    """

    pass


class StorageReadError(StorageError):
    """Raised when reading rows back from the store fails."""

    pass
