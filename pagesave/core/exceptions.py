"""Exceptions raised while saving pages.

Everything derives from ``PageSaveError``. ``UploadCancelledError`` is not a
failure: the coordinator ends the task quietly when it sees one.
"""

from __future__ import annotations

from typing import Any


class PageSaveError(Exception):
    """Base exception for all pagesave errors.

    ``link`` points the user at a help page and is forwarded with the error
    notification sent back to the session.
    """

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        link: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.link = link

    def __str__(self) -> str:
        if not self.details:
            return self.message
        extra = ", ".join(f"{k}={v}" for k, v in self.details.items())
        return f"{self.message} ({extra})"


# =============================================================================
# Settings and input
# =============================================================================


class _FieldError(PageSaveError):
    def __init__(self, message: str, field: str | None = None, value: Any = None):
        details: dict[str, Any] = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = repr(value)
        super().__init__(message, details)
        self.field = field
        self.value = value


class ConfigurationError(_FieldError):
    """A setting is missing or cannot be parsed."""


class ValidationError(_FieldError):
    """An event or command argument carries an unusable value."""


class InvalidURLError(ValidationError):
    def __init__(self, url: str, reason: str = ""):
        message = f"Invalid URL: {url}" + (f" ({reason})" if reason else "")
        super().__init__(message, field="url")
        self.url = url
        self.reason = reason


# =============================================================================
# Transport
# =============================================================================


class ConnectionError(PageSaveError):
    """The destination host could not be talked to."""

    def __init__(self, message: str, url: str | None = None):
        super().__init__(message, {"url": url} if url else None)
        self.url = url


class NetworkError(ConnectionError):
    def __init__(self, url: str, cause: str | None = None):
        super().__init__(f"Request to {url} failed" + (f": {cause}" if cause else ""), url)
        self.cause = cause


class ServerUnreachableError(ConnectionError):
    def __init__(self, url: str):
        super().__init__(f"Cannot connect to {url}", url)


# =============================================================================
# Authentication
# =============================================================================


class AuthenticationError(PageSaveError):
    """The destination refused our credentials."""

    def __init__(self, url: str | None = None, reason: str = ""):
        message = "Authentication failed" + (f": {reason}" if reason else "")
        super().__init__(message, {"url": url} if url else None)
        self.url = url
        self.reason = reason


class InvalidTokenError(AuthenticationError):
    """Access token rejected; a refresh may fix it."""

    def __init__(self, url: str | None = None):
        super().__init__(url, "invalid_token")


class UnknownTokenError(AuthenticationError):
    """Refresh token revoked or never issued; only a new authorization helps."""

    def __init__(self, url: str | None = None):
        super().__init__(url, "unknown_token")


# =============================================================================
# Cancellation
# =============================================================================


class UploadCancelledError(PageSaveError):
    """The save was cancelled by the user or by a dismissed prompt.

    Treated as a clean end of the task: never logged as a failure and never
    reported to the session as an error.
    """

    def __init__(self, reason: str = "upload_cancelled"):
        super().__init__(reason)
        self.reason = reason


# =============================================================================
# Operation Errors
# =============================================================================


class DestinationError(PageSaveError):
    """Failure of one destination, tagged with the destination name."""

    def __init__(
        self,
        message: str,
        destination: str,
        details: dict[str, Any] | None = None,
        link: str | None = None,
    ):
        super().__init__(f"{message} ({destination})", details, link)
        self.destination = destination
        self.reason = message


class UploadError(PageSaveError):
    """A destination backend returned an unexpected response."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        full_details = details or {}
        if status_code is not None:
            full_details["status_code"] = status_code
        super().__init__(message, full_details)
        self.status_code = status_code


class ReassemblyError(PageSaveError):
    """A fragmented payload could not be reassembled or decoded."""

    def __init__(self, session_id: Any, reason: str):
        super().__init__(
            f"Failed to reassemble page data: {reason}",
            {"session": session_id},
        )
        self.session_id = session_id
        self.reason = reason


class TaskInProgressError(PageSaveError):
    """A session tried to start a second save while one is in flight."""

    def __init__(self, session_id: Any, task_id: str | None):
        super().__init__(
            "A save is already in progress for this tab",
            {"session": session_id, "task": task_id},
        )
        self.session_id = session_id
        self.task_id = task_id


class CompanionError(PageSaveError):
    """The companion process failed or returned an error."""


class NotarizationError(PageSaveError):
    """The timestamp notarization service rejected the request."""
