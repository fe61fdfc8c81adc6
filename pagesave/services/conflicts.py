"""Filename conflict pre-flight for local downloads."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from pagesave.destinations.constants import CONFLICT_ACTION_SKIP, CONFLICT_ACTION_UNIQUIFY
from pagesave.destinations.local import DownloadIndex

logger = logging.getLogger(__name__)


def filename_pattern(filename: str) -> str:
    """Regex matching a recorded path that ends with filename."""
    return r"(\\|/)" + re.escape(filename) + "$"


@dataclass(frozen=True)
class ConflictResolution:
    skip: bool
    action: str


class ConflictResolver:
    """Turns the requested conflict action into what the downloader applies.

    ``skip`` is answered here against the download history and is never
    forwarded: when nothing matches, the downloader uniquifies instead.
    """

    def __init__(self, index: DownloadIndex):
        self.index = index

    def resolve(self, filename: str, conflict_action: str) -> ConflictResolution:
        if conflict_action != CONFLICT_ACTION_SKIP:
            return ConflictResolution(skip=False, action=conflict_action)
        matches = self.index.search(filename_pattern(filename))
        if matches:
            logger.info("Skipping %s, already downloaded as %s", filename, matches[0])
            return ConflictResolution(skip=True, action=CONFLICT_ACTION_SKIP)
        return ConflictResolution(skip=False, action=CONFLICT_ACTION_UNIQUIFY)
