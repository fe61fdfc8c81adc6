"""Companion process hand-off over native messaging.

Each message is a JSON document preceded by its byte length as an unsigned
32-bit little-endian integer, on the process's stdin and stdout.
"""

from __future__ import annotations

import asyncio
import json
import logging
import struct
from typing import Any, Optional

from pagesave.core.exceptions import CompanionError
from pagesave.destinations.base import Content, Destination, UploadOptions, UploadResult
from pagesave.destinations.constants import COMPANION

logger = logging.getLogger(__name__)

HEADER = struct.Struct("<I")


def encode_message(message: dict[str, Any]) -> bytes:
    body = json.dumps(message).encode("utf-8")
    return HEADER.pack(len(body)) + body


def decode_message(data: bytes) -> dict[str, Any]:
    """Decode the first framed message in data.

    Raises:
        CompanionError: If the frame is incomplete or not a JSON object.
    """
    if len(data) < HEADER.size:
        raise CompanionError("Companion closed its output without answering")
    (length,) = HEADER.unpack_from(data)
    body = data[HEADER.size : HEADER.size + length]
    if len(body) < length:
        raise CompanionError(f"Companion response truncated ({len(body)} of {length} bytes)")
    try:
        message = json.loads(body)
    except json.JSONDecodeError as e:
        raise CompanionError(f"Companion sent invalid JSON: {e}") from e
    if not isinstance(message, dict):
        raise CompanionError("Companion response is not an object")
    return message


class Companion(Destination):
    """Hands the page to an external companion program."""

    name = COMPANION

    def __init__(self, command: list[str], **kwargs: Any) -> None:
        super().__init__(**kwargs)
        if not command:
            raise CompanionError("No companion command configured")
        self.command = command
        self._process: Optional[asyncio.subprocess.Process] = None

    def abort(self) -> None:
        super().abort()
        if self._process is not None and self._process.returncode is None:
            self._process.kill()

    async def upload(
        self,
        filename: str,
        content: Content,
        options: UploadOptions,
    ) -> UploadResult:
        if isinstance(content, bytes):
            raise CompanionError("The companion only accepts text pages")
        request = {
            "method": "save",
            "pageData": {
                "filename": filename,
                "content": content,
                "filenameConflictAction": options.filename_conflict_action,
            },
        }
        self._check_aborted()
        try:
            self._process = await asyncio.create_subprocess_exec(
                *self.command,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise CompanionError(f"Cannot start companion {self.command[0]}: {e}") from e

        try:
            stdout, stderr = await self._run(
                lambda: self._process.communicate(encode_message(request))
            )
        finally:
            if self._process.returncode is None:
                self._process.kill()
                await self._process.wait()

        if stderr:
            logger.debug("Companion stderr: %s", stderr.decode("utf-8", "replace").strip())
        response = decode_message(stdout)
        if response.get("error"):
            raise CompanionError(str(response["error"]))
        return UploadResult(url=response.get("url"))
