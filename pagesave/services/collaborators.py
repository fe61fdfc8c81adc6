"""Interfaces to the collaborators around a save, with default implementations.

The coordinator only depends on the abstract classes below. The defaults make
the command line usable on a desktop: pages open through ``click.launch``,
compressed pages are zip archives, bookmarks live in a JSON file.
"""

from __future__ import annotations

import asyncio
import io
import json
import logging
import tempfile
import zipfile
from abc import ABC, abstractmethod
from collections.abc import Hashable
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import click
import httpx

from pagesave.core.blobs import BlobStore
from pagesave.core.config import BOOKMARKS_FILE
from pagesave.core.exceptions import NotarizationError
from pagesave.core.validation import sanitize_filename

logger = logging.getLogger(__name__)

WOLEET_ANCHOR_URL = "https://api.woleet.io/v1/anchor"
ZIP_MIMETYPE = "application/zip"


# =============================================================================
# Session Channel
# =============================================================================


class SessionChannel(ABC):
    """Notifications back to the session that sent a payload."""

    session_id: Hashable = None

    @abstractmethod
    def on_edit(self) -> None:
        """The page was opened in the editor."""

    @abstractmethod
    def on_end(self) -> None:
        """The save ended (completed, skipped or cancelled)."""

    @abstractmethod
    def on_error(self, message: str, link: Optional[str] = None) -> None:
        """The save failed."""

    @abstractmethod
    def on_upload_progress(self, offset: int, size: int) -> None:
        """Bytes acknowledged so far by the destination."""

    @abstractmethod
    async def prompt(self, message: str, value: str) -> Optional[str]:
        """Ask the user for a value; None when dismissed or disconnected."""

    @abstractmethod
    def send(self, message: dict[str, Any]) -> None:
        """Send a raw message to the session."""

    def close(self) -> None:
        """Resolve pending prompts as dismissed."""


# =============================================================================
# Editor and Viewer
# =============================================================================


class EditorLauncher(ABC):
    @abstractmethod
    async def open(self, filename: str, content: str | bytes) -> None: ...


class SavedPageViewer(ABC):
    @abstractmethod
    async def open(self, handle: str, filename: str) -> bool:
        """Display the page behind a blob handle.

        Returns:
            True if the viewer took the handle and will release it.
        """


def _write_temp(filename: str, content: str | bytes) -> Path:
    directory = Path(tempfile.mkdtemp(prefix="pagesave-"))
    path = directory / Path(sanitize_filename(filename)).name
    if isinstance(content, str):
        path.write_text(content, encoding="utf-8")
    else:
        path.write_bytes(content)
    return path


class ClickEditor(EditorLauncher):
    """Opens a temporary copy of the page with the default application."""

    async def open(self, filename: str, content: str | bytes) -> None:
        path = await asyncio.to_thread(_write_temp, filename, content)
        logger.info("Opening %s for editing", path)
        await asyncio.to_thread(click.launch, str(path))


class ClickViewer(SavedPageViewer):
    """Copies the blob to a temporary file, launches it and releases the handle."""

    def __init__(self, blobs: BlobStore):
        self.blobs = blobs

    async def open(self, handle: str, filename: str) -> bool:
        try:
            path = await asyncio.to_thread(_write_temp, filename, self.blobs.read(handle))
        finally:
            self.blobs.release(handle)
        await asyncio.to_thread(click.launch, str(path))
        return True


# =============================================================================
# Page Compressor
# =============================================================================


@dataclass
class CompressedPage:
    data: bytes
    mime_type: str = ZIP_MIMETYPE


class PageCompressor(ABC):
    @abstractmethod
    async def compress(self, page_data: dict[str, Any], options: dict[str, Any]) -> CompressedPage:
        """Turn a structured page record into a single binary document."""


class ZipPageCompressor(PageCompressor):
    """Packs ``content`` as index.html and each named resource beside it.

    Resources are read from ``page_data["resources"]``, a mapping of kind to a
    list of ``{"name", "content"}`` entries.
    """

    async def compress(self, page_data: dict[str, Any], options: dict[str, Any]) -> CompressedPage:
        if options.get("password"):
            logger.warning("Password protection is not supported by the zip compressor")
        return CompressedPage(data=await asyncio.to_thread(self._build, page_data, options))

    @staticmethod
    def _build(page_data: dict[str, Any], options: dict[str, Any]) -> bytes:
        root = ""
        if options.get("create_root_directory"):
            root = Path(page_data.get("filename") or "page").stem + "/"
        buffer = io.BytesIO()
        with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as archive:
            archive.writestr(root + "index.html", page_data.get("content") or "")
            for kind, entries in (page_data.get("resources") or {}).items():
                for entry in entries or []:
                    name = entry.get("name")
                    if not name:
                        continue
                    archive.writestr(f"{root}{kind}/{name}", entry.get("content") or b"")
            if options.get("insert_text_body") and page_data.get("textContent"):
                archive.writestr(root + "index.txt", page_data["textContent"])
        return buffer.getvalue()


# =============================================================================
# Bookmarks
# =============================================================================


class BookmarkStore(ABC):
    @abstractmethod
    def update(self, bookmark_id: str, url: str) -> None: ...


class JsonBookmarkStore(BookmarkStore):
    """Bookmark URLs keyed by id in a JSON file."""

    def __init__(self, path: Optional[Path] = None):
        self.path = path or BOOKMARKS_FILE

    def load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        with open(self.path, encoding="utf-8") as f:
            return json.load(f)

    def update(self, bookmark_id: str, url: str) -> None:
        bookmarks = self.load()
        bookmarks[bookmark_id] = url
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump(bookmarks, f, indent=2)
        logger.debug("Bookmark %s now points to %s", bookmark_id, url)


# =============================================================================
# Notarization
# =============================================================================


class Notarizer:
    """Anchors a page hash with a timestamping service."""

    def __init__(
        self,
        api_url: Optional[str] = None,
        *,
        timeout: float = 30,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = api_url or WOLEET_ANCHOR_URL
        self.timeout = timeout
        self._transport = transport

    async def anchor(self, page_hash: str, api_key: Optional[str]) -> dict[str, Any]:
        """Submit a hash for anchoring.

        Raises:
            NotarizationError: If no key is set or the service refuses.
        """
        if not api_key:
            raise NotarizationError("A notarization API key is required")
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                resp = await client.post(
                    self.api_url,
                    json={"name": page_hash, "hash": page_hash, "public": True},
                    headers={"Authorization": f"Bearer {api_key}"},
                )
        except httpx.TransportError as e:
            raise NotarizationError(f"Notarization service unreachable: {e}") from e
        if not resp.is_success:
            raise NotarizationError(
                f"Notarization failed: HTTP {resp.status_code}",
                {"status_code": resp.status_code},
            )
        return resp.json()
