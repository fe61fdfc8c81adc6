"""Service layer for pagesave.

Provides the components that turn session messages into saved pages.
"""

from __future__ import annotations

from .collaborators import (
    BookmarkStore,
    ClickEditor,
    ClickViewer,
    CompressedPage,
    EditorLauncher,
    JsonBookmarkStore,
    Notarizer,
    PageCompressor,
    SavedPageViewer,
    SessionChannel,
    ZipPageCompressor,
)
from .conflicts import ConflictResolution, ConflictResolver, filename_pattern
from .coordinator import SessionCoordinator
from .dispatcher import DestinationDispatcher, DestinationKind, select_destination
from .reassembler import ChunkReassembler, CompletePayload
from .tasks import TaskRegistry
from .tokens import TokenManager, TokenState

__all__ = [
    "ChunkReassembler",
    "CompletePayload",
    "ConflictResolution",
    "ConflictResolver",
    "filename_pattern",
    "TokenManager",
    "TokenState",
    "DestinationDispatcher",
    "DestinationKind",
    "select_destination",
    "TaskRegistry",
    "SessionCoordinator",
    "SessionChannel",
    "BookmarkStore",
    "JsonBookmarkStore",
    "EditorLauncher",
    "ClickEditor",
    "SavedPageViewer",
    "ClickViewer",
    "PageCompressor",
    "ZipPageCompressor",
    "CompressedPage",
    "Notarizer",
]
