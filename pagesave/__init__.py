"""pagesave - Deliver saved web pages to local or remote storage.

This package provides the background side of a page-saving workflow:
- Reassemble page payloads sent in fragments or binary chunks
- Resolve filename conflicts, interactively when asked to
- Save to the downloads directory, WebDAV, Google Drive, GitHub or a
  companion program, with cancellation at any point
"""

__version__ = "0.1.0"

from pagesave.core.config import Config
from pagesave.core.exceptions import (
    AuthenticationError,
    ConfigurationError,
    DestinationError,
    PageSaveError,
    UploadCancelledError,
    ValidationError,
)
from pagesave.services.coordinator import SessionCoordinator

__all__ = [
    "__version__",
    "Config",
    "SessionCoordinator",
    "PageSaveError",
    "AuthenticationError",
    "ConfigurationError",
    "DestinationError",
    "UploadCancelledError",
    "ValidationError",
]
