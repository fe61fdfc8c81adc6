"""Ephemeral binary-object handles.

A handle (``blob:<uuid>``) names bytes held in memory between the moment a
payload is produced and the moment it has been delivered or displayed. The
component that creates a handle releases it exactly once.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass

logger = logging.getLogger(__name__)

BLOB_SCHEME = "blob:"


@dataclass
class Blob:
    """Bytes behind a handle."""

    data: bytes
    mime_type: str = "application/octet-stream"

    @property
    def size(self) -> int:
        return len(self.data)


class BlobStore:
    """Registry of live handles."""

    def __init__(self) -> None:
        self._blobs: dict[str, Blob] = {}

    def create(self, data: bytes, mime_type: str = "application/octet-stream") -> str:
        """Store bytes and return a new handle."""
        handle = f"{BLOB_SCHEME}{uuid.uuid4()}"
        self._blobs[handle] = Blob(data=data, mime_type=mime_type)
        logger.debug("Created %s (%d bytes)", handle, len(data))
        return handle

    def get(self, handle: str) -> Blob:
        """Look up a live handle.

        Raises:
            KeyError: If the handle was never created or already released.
        """
        try:
            return self._blobs[handle]
        except KeyError:
            raise KeyError(f"Unknown or released handle: {handle}") from None

    def read(self, handle: str) -> bytes:
        return self.get(handle).data

    def release(self, handle: str) -> bool:
        """Free a handle.

        Returns:
            True if the handle was live, False if it was already released.
        """
        if self._blobs.pop(handle, None) is None:
            logger.warning("Handle %s released twice or never created", handle)
            return False
        logger.debug("Released %s", handle)
        return True

    def __contains__(self, handle: object) -> bool:
        return handle in self._blobs

    def __len__(self) -> int:
        return len(self._blobs)
