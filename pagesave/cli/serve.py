"""JSON-lines server: sessions talk to the coordinator over stdin/stdout.

Input lines::

    {"sessionId": "tab-1", "id": 7, "message": {"method": "downloads.download", ...}}
    {"sessionId": "tab-1", "promptReply": {"id": 1, "value": "page (copy).html"}}
    {"sessionId": "tab-1", "close": true}

Output lines are replies (``{"sessionId", "id", "reply"}``) and
notifications (``{"sessionId", "event", ...}``).
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys
from collections.abc import Hashable
from typing import IO, Any, Callable, Optional

import click
import pydantic

from pagesave.cli.common import Context, global_options, handle_errors
from pagesave.services import SessionChannel, SessionCoordinator

logger = logging.getLogger(__name__)

Writer = Callable[[dict[str, Any]], None]


def line_writer(stream: IO[str]) -> Writer:
    def write(message: dict[str, Any]) -> None:
        stream.write(json.dumps(message, default=str) + "\n")
        stream.flush()

    return write


class JsonLinesChannel(SessionChannel):
    """Session whose notifications are written as JSON lines."""

    def __init__(self, session_id: Hashable, write: Writer):
        self.session_id = session_id
        self._write = write
        self._prompts: dict[int, asyncio.Future] = {}
        self._next_prompt_id = 1
        self.closed = False

    def _notify(self, event: str, **fields: Any) -> None:
        self._write({"sessionId": self.session_id, "event": event, **fields})

    def on_edit(self) -> None:
        self._notify("edit")

    def on_end(self) -> None:
        self._notify("end")

    def on_error(self, message: str, link: Optional[str] = None) -> None:
        if link:
            self._notify("error", message=message, link=link)
        else:
            self._notify("error", message=message)

    def on_upload_progress(self, offset: int, size: int) -> None:
        self._notify("progress", offset=offset, size=size)

    async def prompt(self, message: str, value: str) -> Optional[str]:
        if self.closed:
            return None
        prompt_id = self._next_prompt_id
        self._next_prompt_id += 1
        future = asyncio.get_running_loop().create_future()
        self._prompts[prompt_id] = future
        self._notify("prompt", id=prompt_id, message=message, value=value)
        try:
            return await future
        finally:
            self._prompts.pop(prompt_id, None)

    def resolve_prompt(self, prompt_id: int, value: Optional[str]) -> bool:
        future = self._prompts.get(prompt_id)
        if future is None or future.done():
            logger.warning("Session %s: no pending prompt %s", self.session_id, prompt_id)
            return False
        future.set_result(value)
        return True

    def send(self, message: dict[str, Any]) -> None:
        self._notify("message", message=message)

    def close(self) -> None:
        self.closed = True
        for future in self._prompts.values():
            if not future.done():
                future.set_result(None)


class JsonLinesServer:
    """Reads session lines and runs each message as its own asyncio task."""

    def __init__(self, coordinator: SessionCoordinator, write: Writer):
        self.coordinator = coordinator
        self._write = write
        self.sessions: dict[Hashable, JsonLinesChannel] = {}
        self._tasks: set[asyncio.Task] = set()

    def channel(self, session_id: Hashable) -> JsonLinesChannel:
        if session_id not in self.sessions:
            self.sessions[session_id] = JsonLinesChannel(session_id, self._write)
        return self.sessions[session_id]

    async def serve(self, stream: IO[str]) -> None:
        """Process lines until end of input, then close every session."""
        while True:
            line = await asyncio.to_thread(stream.readline)
            if not line:
                break
            if line.strip():
                self.handle_line(line)
            # Let newly started messages run before reading on
            await asyncio.sleep(0)

        for session_id in list(self.sessions):
            self.close_session(session_id)
        results = await asyncio.gather(*self._tasks, return_exceptions=True)
        for result in results:
            if isinstance(result, Exception):
                logger.error("Message handling failed: %s", result)

    def handle_line(self, line: str) -> None:
        try:
            request = json.loads(line)
        except json.JSONDecodeError as e:
            logger.error("Ignoring invalid JSON line: %s", e)
            return
        if not isinstance(request, dict):
            logger.error("Ignoring line that is not an object")
            return

        session_id = request.get("sessionId")
        if "promptReply" in request:
            reply = request["promptReply"] or {}
            self.channel(session_id).resolve_prompt(reply.get("id"), reply.get("value"))
        elif request.get("close"):
            self.close_session(session_id)
        elif "message" in request:
            task = asyncio.ensure_future(
                self._handle_message(session_id, request.get("id"), request["message"])
            )
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)
        else:
            logger.warning("Ignoring line without message for session %s", session_id)

    async def _handle_message(self, session_id: Hashable, request_id: Any, message: Any) -> None:
        channel = self.channel(session_id)
        try:
            reply = await self.coordinator.on_message(message, channel)
        except pydantic.ValidationError as e:
            logger.error("Session %s sent an invalid message: %s", session_id, e)
            reply = {"error": f"Invalid message: {e.error_count()} validation error(s)"}
        if request_id is not None:
            self._write({"sessionId": session_id, "id": request_id, "reply": reply})

    def close_session(self, session_id: Hashable) -> None:
        channel = self.sessions.pop(session_id, None)
        if channel is not None:
            self.coordinator.close_session(channel)


@click.command()
@click.option(
    "--input",
    "input_file",
    type=click.File("r"),
    default="-",
    help="Read session lines from a file instead of stdin",
)
@global_options
@handle_errors
def serve(ctx: Context, input_file: IO[str]) -> None:
    """Run the coordinator over JSON lines on stdin/stdout.

    Example:
        pagesave serve < session.jsonl
    """
    server = JsonLinesServer(ctx.get_coordinator(), line_writer(sys.stdout))
    asyncio.run(server.serve(input_file))
