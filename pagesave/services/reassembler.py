"""Reassembly of payloads split across several session events."""

from __future__ import annotations

import logging
from collections.abc import Hashable
from dataclasses import dataclass, field
from typing import Any, Optional

from pagesave.core.envelope import EnvelopeDecodeError, EnvelopeParser
from pagesave.core.exceptions import ReassemblyError
from pagesave.models import SessionEvent

logger = logging.getLogger(__name__)


@dataclass
class CompletePayload:
    """A fully received payload.

    Exactly one of ``text`` (truncated-text mode or single message) and
    ``record`` (structured-binary mode) is set.
    """

    event: SessionEvent
    text: Optional[str] = None
    record: Optional[dict[str, Any]] = None
    # Inbound blob handle kept alive for the viewer
    blob_handle: Optional[str] = None

    @property
    def structured(self) -> bool:
        return self.record is not None


def page_record(record: dict[str, Any]) -> dict[str, Any]:
    """The page inside a decoded record.

    A record may be the page itself or a whole message carrying it under
    ``pageData``.
    """
    page = record.get("pageData")
    if isinstance(page, dict):
        return {"filename": record.get("filename"), **page}
    return record


@dataclass
class _Buffer:
    fragments: list[str] = field(default_factory=list)
    parser: Optional[EnvelopeParser] = None


class ChunkReassembler:
    """Per-session fragment buffers.

    A buffer is opened by the first fragment of a session and removed as
    soon as its payload completes or fails to decode.
    """

    def __init__(self) -> None:
        self._buffers: dict[Hashable, _Buffer] = {}

    def ingest(self, session_id: Hashable, event: SessionEvent) -> Optional[CompletePayload]:
        """Feed one event.

        Returns:
            The complete payload, or None while more fragments are expected.

        Raises:
            ReassemblyError: If the binary stream cannot be decoded.
        """
        if event.compress_content:
            return self._ingest_chunk(session_id, event)
        if event.truncated:
            return self._ingest_fragment(session_id, event)
        return CompletePayload(event=event, text=event.content or "")

    def _ingest_fragment(
        self, session_id: Hashable, event: SessionEvent
    ) -> Optional[CompletePayload]:
        buffer = self._buffers.setdefault(session_id, _Buffer())
        buffer.fragments.append(event.content or "")
        if not event.finished:
            return None
        del self._buffers[session_id]
        logger.debug(
            "Session %s: reassembled %d text fragments", session_id, len(buffer.fragments)
        )
        return CompletePayload(event=event, text="".join(buffer.fragments))

    def _ingest_chunk(self, session_id: Hashable, event: SessionEvent) -> Optional[CompletePayload]:
        if event.page_data is not None and session_id not in self._buffers:
            # Structured page sent inline rather than as an envelope stream
            return CompletePayload(event=event, record=event.page_data)
        buffer = self._buffers.setdefault(session_id, _Buffer())
        if buffer.parser is None:
            buffer.parser = EnvelopeParser()
        if event.data:
            buffer.parser.feed(event.data)
            return None

        # Empty chunk: end of stream
        del self._buffers[session_id]
        try:
            record = buffer.parser.finish()
        except EnvelopeDecodeError as e:
            raise ReassemblyError(session_id, str(e)) from e
        logger.debug(
            "Session %s: decoded %d bytes in %d chunks",
            session_id,
            buffer.parser.bytes_received,
            buffer.parser.chunk_count,
        )
        return CompletePayload(event=event, record=page_record(record))

    def discard(self, session_id: Hashable) -> bool:
        """Drop any partial payload of a session."""
        return self._buffers.pop(session_id, None) is not None

    def pending_sessions(self) -> list[Hashable]:
        """Sessions with an incomplete payload."""
        return list(self._buffers)
