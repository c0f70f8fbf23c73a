"""Error taxonomy for kelvin-submit.

Every stage of the pipeline raises a subclass of ``KelvinSubmitError``. The
command driver is the only place that turns these into process exit codes.
"""

from __future__ import annotations


class KelvinSubmitError(Exception):
    """Base class for all errors reported to the user."""

    stage: str = "submit"
    exit_code: int = 1


class ConfigError(KelvinSubmitError):
    """Missing or invalid configuration, raised before any I/O."""

    stage = "configuration"
    exit_code = 2


class ScanError(KelvinSubmitError):
    """Workspace root is missing, unreadable or has no manifest."""

    stage = "scan"
    exit_code = 3


class ArchiveError(KelvinSubmitError):
    """A file could not be read or the archive could not be written."""

    stage = "archive"
    exit_code = 4


class UploadError(KelvinSubmitError):
    """Base class for failures of the upload request."""

    stage = "upload"


class AuthError(UploadError):
    exit_code = 5

    def __init__(self, status_code: int) -> None:
        self.status_code = status_code
        super().__init__(f"upload rejected: invalid or expired token (HTTP {status_code})")


class NotFoundError(UploadError):
    exit_code = 6

    def __init__(self, url: str) -> None:
        self.url = url
        super().__init__(f"upload rejected: assignment not found at {url} (check the assignment ID and Kelvin URL)")


class ServerError(UploadError):
    """The server answered with an unexpected status code.

    Attributes:
        status_code: HTTP status returned by the server.
        body: Raw response body, kept for diagnostics.
    """

    exit_code = 7

    def __init__(self, status_code: int, body: str) -> None:
        self.status_code = status_code
        self.body = body
        detail = body.strip()
        if len(detail) > 200:
            detail = detail[:200] + "..."
        message = f"upload failed: server returned HTTP {status_code}"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class TransportError(UploadError):
    exit_code = 8

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(f"upload failed: could not reach server ({reason})")
