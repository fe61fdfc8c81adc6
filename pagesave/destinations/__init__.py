"""Destination backends for pagesave.

This module provides one client per place a page can be saved to:
- WebDAV server (basic or digest authentication)
- Google Drive (OAuth bearer token, resumable uploads)
- GitHub repository (contents API)
- Companion process (native messaging)
- Local downloads directory

These are internal implementation details. Use `DestinationDispatcher` from
`pagesave.services.dispatcher` as the public API.
"""

from pagesave.destinations.base import (
    Destination,
    UploadOptions,
    UploadResult,
    resolve_remote_filename,
    uniquify_filename,
)
from pagesave.destinations.companion import Companion
from pagesave.destinations.constants import (
    COMPANION,
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    GDRIVE,
    GITHUB,
    PROMPT_MESSAGE,
    WEBDAV,
)
from pagesave.destinations.gdrive import GDrive, GDriveAuth
from pagesave.destinations.github import GitHub
from pagesave.destinations.local import (
    DownloadIndex,
    DownloadRequest,
    LocalDownloader,
    to_file_url,
)
from pagesave.destinations.webdav import WebDAV

__all__ = [
    # Constants
    "COMPANION",
    "DEFAULT_HTTP_TIMEOUT_SECONDS",
    "GDRIVE",
    "GITHUB",
    "PROMPT_MESSAGE",
    "WEBDAV",
    # Contract
    "Destination",
    "UploadOptions",
    "UploadResult",
    "resolve_remote_filename",
    "uniquify_filename",
    # Backends
    "Companion",
    "GDrive",
    "GDriveAuth",
    "GitHub",
    "WebDAV",
    # Local downloads
    "DownloadIndex",
    "DownloadRequest",
    "LocalDownloader",
    "to_file_url",
]
