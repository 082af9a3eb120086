"""Custom exceptions for the downloads module."""


class DownloadError(Exception):
    """Base exception for download-related errors."""

    pass


# --- Transfer errors ---


class NetworkError(DownloadError):
    """
    Raised when the artifact host cannot be reached.

    This can happen when:
    - DNS resolution or TCP connect fails
    - TLS handshake fails
    - Request times out before any byte arrives
    """

    pass


class HttpStatusError(DownloadError):
    """
    Raised when the artifact host answers with an unexpected status.

    This can happen when:
    - Resource is gated and the token lacks access (403)
    - Token is missing or expired (401)
    - File was removed from the repository (404)
    """

    def __init__(self, status_code: int, message: str | None = None):
        super().__init__(message or f"HTTP error code: {status_code}")
        self.status_code = status_code

    @property
    def is_gated(self) -> bool:
        """True when the host requires license acknowledgement."""
        return self.status_code == 403


class PartialArtifactError(DownloadError):
    """
    Raised when a transfer ends before the whole file arrived.

    This can happen when:
    - Connection dropped mid-stream
    - Server closed the response early

    The worker resumes from the bytes on disk rather than failing.
    """

    pass


class InsufficientDiskSpaceError(DownloadError):
    """
    Raised when not enough disk space for download.

    This can happen when:
    - Disk is full
    - Remaining bytes + safety buffer exceed free space
    """

    pass


# --- Post-processing errors ---


class ArchiveExtractionError(DownloadError):
    """
    Raised when a downloaded zip artifact cannot be extracted.

    This can happen when:
    - Archive is corrupted
    - An entry would be written outside the target directory
    """

    pass


# --- Scheduling errors ---


class JobNotFoundError(DownloadError):
    """
    Raised when a job id is not tracked by the scheduler.

    This can happen when:
    - Job already reached a terminal state
    - Job belongs to a previous process and was never re-submitted
    """

    pass
