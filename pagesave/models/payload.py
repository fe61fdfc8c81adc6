"""Assembled payload ready for dispatch."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from .event import MIMETYPE_HTML, SessionEvent


@dataclass
class PayloadDescriptor:
    """Complete page content plus the flags the session selected for it."""

    filename: str
    content: Union[str, bytes]
    request: SessionEvent
    mime_type: str = MIMETYPE_HTML
    blob_handle: Optional[str] = None

    @property
    def compressed(self) -> bool:
        """Binary content produced by the page compressor."""
        return isinstance(self.content, bytes)

    @property
    def task_id(self) -> Optional[str]:
        return self.request.task_id

    def content_bytes(self) -> bytes:
        """Content as bytes (text is UTF-8 encoded)."""
        if isinstance(self.content, bytes):
            return self.content
        return self.content.encode("utf-8")

    @property
    def size(self) -> int:
        return len(self.content_bytes())
