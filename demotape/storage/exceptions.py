"""
Exception classes for Demotape.

Each exception distinguishes a failure mode that callers handle differently:
recoverable transfer interruptions keep partial downloads around, while
authentication, not-found and hard transfer failures reset the track state
and surface a message to the user.

Exception Hierarchy:
    DemotapeError (base)
        StorageUnavailable - local document root cannot be read or written
        AuthRejected - Dropbox refused the access token
        RemoteNotFound - entry was deleted or moved upstream
        TransferInterrupted - network interruption, resumable
        TransferFailed - unrecoverable transfer failure
        PlaybackError - audio engine fault
"""

from typing import Optional


class DemotapeError(Exception):
    """
    Base exception for all Demotape errors.

    Attributes:
        message: Human-readable error description, safe to show to the user.
        details: Optional dictionary with additional context (paths, status codes).
    """

    def __init__(self, message: str, details: Optional[dict] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class StorageUnavailable(DemotapeError):
    """
    Raised when the local document root cannot be read.

    Example:
        raise StorageUnavailable(
            "Cannot read document directory",
            details={'path': '/data/documents', 'original_error': 'Permission denied'}
        )
    """
    pass


class AuthRejected(DemotapeError):
    """Raised when Dropbox rejects the bearer token (HTTP 401)."""
    pass


class RemoteNotFound(DemotapeError):
    """
    Raised when a remote entry no longer exists.

    Dropbox reports this as HTTP 409 with a ``path/not_found`` error summary.
    """
    pass


class TransferInterrupted(DemotapeError):
    """
    Raised when a transfer stops part-way for a transient reason.

    The partial file is kept so the next explicit request can resume it.

    Attributes:
        bytes_written: Bytes present locally when the transfer stopped.
    """

    def __init__(self, message: str, details: Optional[dict] = None, bytes_written: int = 0) -> None:
        super().__init__(message, details)
        self.bytes_written = bytes_written


class TransferFailed(DemotapeError):
    """Raised for unrecoverable transfer errors (any other non-2xx response)."""
    pass


class PlaybackError(DemotapeError):
    """Raised or reported when the audio engine faults; playback is stopped, never retried."""
    pass
