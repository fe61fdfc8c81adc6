"""Streaming binary envelope for structured page data.

Records are MessagePack documents: every value carries its own type tag and
length, so nested maps, arrays and byte strings can be parsed incrementally
without knowing the total size up front. The same format is used for chunks
coming from a capture session and for chunks sent back to it for a
foreground save.
"""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

import msgpack

DEFAULT_CHUNK_SIZE = 8 * 1024 * 1024


class EnvelopeDecodeError(ValueError):
    """Raised when buffered bytes do not form exactly one record."""


def serialize(record: dict[str, Any], chunk_size: int = DEFAULT_CHUNK_SIZE) -> Iterator[bytes]:
    """Encode a record and yield it as consecutive chunks.

    Args:
        record: Mapping of named fields (nested dicts, lists, str, bytes,
            numbers, booleans and None).
        chunk_size: Maximum size of each yielded chunk.

    Yields:
        Non-empty byte chunks; concatenated they form one envelope.
    """
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    packed = msgpack.packb(record, use_bin_type=True)
    for offset in range(0, len(packed), chunk_size):
        yield packed[offset : offset + chunk_size]


class EnvelopeParser:
    """Incremental parser fed with chunks in arrival order."""

    def __init__(self) -> None:
        self._unpacker = msgpack.Unpacker(
            raw=False,
            strict_map_key=False,
            max_buffer_size=0,
        )
        self._received = 0
        self._chunks = 0

    @property
    def bytes_received(self) -> int:
        return self._received

    @property
    def chunk_count(self) -> int:
        return self._chunks

    def feed(self, chunk: bytes) -> None:
        """Append one chunk of the stream."""
        self._unpacker.feed(chunk)
        self._received += len(chunk)
        self._chunks += 1

    def finish(self) -> dict[str, Any]:
        """Decode the buffered stream into its record.

        Raises:
            EnvelopeDecodeError: If the stream is empty, truncated, malformed,
                has trailing bytes, or does not hold a mapping.
        """
        if not self._received:
            raise EnvelopeDecodeError("no data received")
        try:
            record = self._unpacker.unpack()
        except msgpack.OutOfData:
            raise EnvelopeDecodeError(
                f"stream truncated after {self._received} bytes"
            ) from None
        except ValueError as e:
            raise EnvelopeDecodeError(f"malformed stream: {e}") from e

        if self._unpacker.tell() != self._received:
            raise EnvelopeDecodeError(
                f"{self._received - self._unpacker.tell()} trailing bytes after record"
            )
        if not isinstance(record, dict):
            raise EnvelopeDecodeError(f"expected a mapping, got {type(record).__name__}")
        return record


def parse(data: bytes) -> dict[str, Any]:
    """Decode a complete envelope held in memory."""
    parser = EnvelopeParser()
    parser.feed(data)
    return parser.finish()
