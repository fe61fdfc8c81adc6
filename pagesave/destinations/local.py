"""Local filesystem downloads and their history index."""

from __future__ import annotations

import asyncio
import json
import logging
import re
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Optional, Union

from pagesave.core.config import DEFAULT_DOWNLOADS_DIR, DOWNLOAD_INDEX_FILE
from pagesave.core.exceptions import UploadCancelledError, UploadError
from pagesave.core.validation import encode_sharp_character, sanitize_filename
from pagesave.destinations.base import PromptCallback, as_bytes, uniquify_filename
from pagesave.destinations.constants import (
    CONFLICT_ACTION_OVERWRITE,
    CONFLICT_ACTION_PROMPT,
    MAX_UNIQUIFY_ATTEMPTS,
)

logger = logging.getLogger(__name__)


# =============================================================================
# Download Index
# =============================================================================


class DownloadIndex:
    """History of completed local downloads, one JSON object per line."""

    def __init__(self, index_file: Optional[Path] = None):
        self.index_file = index_file or DOWNLOAD_INDEX_FILE

    def _entries(self) -> list[dict]:
        if not self.index_file.exists():
            return []
        entries = []
        with open(self.index_file, encoding="utf-8") as f:
            for line_number, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(json.loads(line))
                except json.JSONDecodeError:
                    logger.warning(
                        "Skipping malformed line %d in %s", line_number, self.index_file
                    )
        return entries

    def search(self, pattern: Union[str, re.Pattern]) -> list[str]:
        """Paths of recorded downloads matching pattern that still exist."""
        regex = re.compile(pattern) if isinstance(pattern, str) else pattern
        matches = []
        for entry in self._entries():
            path = entry.get("path")
            if path and regex.search(path) and Path(path).exists():
                matches.append(path)
        return matches

    def record(self, path: Path) -> None:
        """Append a completed download."""
        self.index_file.parent.mkdir(parents=True, exist_ok=True)
        entry = {"path": str(path), "timestamp": datetime.now().isoformat()}
        with open(self.index_file, "a", encoding="utf-8") as f:
            f.write(json.dumps(entry) + "\n")


# =============================================================================
# Local Downloader
# =============================================================================


@dataclass
class DownloadRequest:
    """What the coordinator asks the local downloader to write."""

    filename: str
    content: Union[str, bytes]
    save_as: bool = False
    conflict_action: str = "uniquify"
    incognito: bool = False
    replacement_character: Optional[str] = None


class LocalDownloader:
    """Writes pages below the downloads directory."""

    def __init__(
        self,
        directory: Optional[Path] = None,
        index: Optional[DownloadIndex] = None,
        replacement_character: str = "_",
    ):
        self.directory = Path(directory or DEFAULT_DOWNLOADS_DIR)
        self.index = index or DownloadIndex()
        self.replacement_character = replacement_character

    def target_name(self, filename: str, replacement_character: Optional[str] = None) -> str:
        """Name the page is written under, relative to the downloads directory."""
        return sanitize_filename(filename, replacement_character or self.replacement_character)

    def _target(self, filename: str, replacement_character: Optional[str] = None) -> Path:
        return self.directory / self.target_name(filename, replacement_character)

    async def download(
        self,
        request: DownloadRequest,
        prompt: Optional[PromptCallback] = None,
    ) -> Path:
        """Write the page and return the path it was written to.

        Raises:
            UploadCancelledError: If a save-as or conflict prompt is dismissed.
            UploadError: If no free name was found or the write failed.
        """
        filename = request.filename
        if request.save_as:
            filename = await self._ask(filename, prompt)
        path = await self._resolve(
            filename, request.conflict_action, prompt, request.replacement_character
        )

        data = as_bytes(request.content)
        try:
            await asyncio.to_thread(_write, path, data)
        except OSError as e:
            raise UploadError(f"Cannot write {path}: {e.strerror or e}") from e
        logger.info("Saved %s (%d bytes)", path, len(data))

        if not request.incognito:
            self.index.record(path)
        return path

    async def _resolve(
        self,
        filename: str,
        action: str,
        prompt: Optional[PromptCallback],
        replacement_character: Optional[str] = None,
    ) -> Path:
        path = self._target(filename, replacement_character)
        if action == CONFLICT_ACTION_OVERWRITE or not path.exists():
            return path
        if action == CONFLICT_ACTION_PROMPT:
            while path.exists():
                filename = await self._ask(filename, prompt)
                path = self._target(filename, replacement_character)
            return path
        for index in range(1, MAX_UNIQUIFY_ATTEMPTS + 1):
            candidate = self._target(uniquify_filename(filename, index), replacement_character)
            if not candidate.exists():
                return candidate
        raise UploadError(f"No free filename found for {filename}")

    @staticmethod
    async def _ask(filename: str, prompt: Optional[PromptCallback]) -> str:
        answer = await prompt(filename) if prompt else None
        if not answer:
            raise UploadCancelledError()
        return answer


def _write(path: Path, data: bytes) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(data)


def to_file_url(path: Union[str, Path]) -> str:
    """``file:///`` URL for a download path, with ``#`` percent-encoded."""
    posix = Path(path).as_posix()
    return "file:///" + encode_sharp_character(posix.lstrip("/"))
