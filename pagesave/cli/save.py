"""One-shot save of a local page file."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Optional

import click

from pagesave.cli.common import Context, ExitCode, global_options, handle_errors
from pagesave.core.envelope import serialize
from pagesave.core.output import create_progress, print_error, print_success
from pagesave.core.validation import CONFLICT_ACTIONS
from pagesave.destinations.constants import CONFLICT_ACTION_UNIQUIFY
from pagesave.services import SessionChannel

logger = logging.getLogger(__name__)

DESTINATION_FLAGS = {
    "webdav": "saveWithWebDAV",
    "gdrive": "saveToGDrive",
    "github": "saveToGitHub",
    "companion": "saveWithCompanion",
}


class TerminalChannel(SessionChannel):
    """Reports a single save on the terminal."""

    session_id = "cli"

    def __init__(self) -> None:
        self.ended = False
        self.error: Optional[str] = None
        self._progress = None
        self._progress_task = None

    def on_edit(self) -> None:
        click.echo("Opening page in editor...", err=True)

    def on_end(self) -> None:
        self._stop_progress()
        self.ended = True

    def on_error(self, message: str, link: Optional[str] = None) -> None:
        self._stop_progress()
        self.error = f"{message} ({link})" if link else message

    def on_upload_progress(self, offset: int, size: int) -> None:
        if self._progress is None:
            self._progress = create_progress()
            self._progress.start()
            self._progress_task = self._progress.add_task("Uploading", total=size)
        self._progress.update(self._progress_task, completed=offset)

    def _stop_progress(self) -> None:
        if self._progress is not None:
            self._progress.stop()
            self._progress = None

    async def prompt(self, message: str, value: str) -> Optional[str]:
        answer = await asyncio.to_thread(click.prompt, message, default=value, err=True)
        return answer.strip() or None

    def send(self, message: dict[str, Any]) -> None:
        logger.debug("Session message: %s", message.get("method"))


def build_message(
    blob_url: str,
    filename: str,
    destination: Optional[str],
    conflict_action: str,
    compress: bool,
    open_saved_page: bool,
) -> dict[str, Any]:
    message: dict[str, Any] = {
        "method": "downloads.download",
        "blobURL": blob_url,
        "filename": filename,
        "compressContent": compress,
        "backgroundSave": True,
        "filenameConflictAction": conflict_action,
        "openSavedPage": open_saved_page,
    }
    if destination:
        message[DESTINATION_FLAGS[destination]] = True
    return message


@click.command()
@click.argument("page", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--filename", "-f", help="Name to save under (defaults to the file name)")
@click.option("--webdav", "destination", flag_value="webdav", help="Save to the WebDAV server")
@click.option("--gdrive", "destination", flag_value="gdrive", help="Save to Google Drive")
@click.option("--github", "destination", flag_value="github", help="Commit to GitHub")
@click.option("--companion", "destination", flag_value="companion", help="Hand to the companion")
@click.option(
    "--conflict-action",
    type=click.Choice(CONFLICT_ACTIONS),
    default=CONFLICT_ACTION_UNIQUIFY,
    help="What to do when the name is taken",
)
@click.option("--compress", is_flag=True, help="Save as a compressed archive")
@click.option("--open", "open_saved_page", is_flag=True, help="Open the saved page")
@global_options
@handle_errors
def save(
    ctx: Context,
    page: Path,
    filename: Optional[str],
    destination: Optional[str],
    conflict_action: str,
    compress: bool,
    open_saved_page: bool,
) -> None:
    """Save a local HTML page through the coordinator.

    Example:
        pagesave save page.html
        pagesave save page.html --webdav --conflict-action skip
    """
    coordinator = ctx.get_coordinator()
    filename = filename or page.name
    content = page.read_text(encoding="utf-8")

    if compress:
        record = {"filename": filename, "content": content}
        data = b"".join(serialize(record))
    else:
        data = content.encode("utf-8")
    blob_url = coordinator.blobs.create(data)

    channel = TerminalChannel()
    message = build_message(
        blob_url, filename, destination, conflict_action, compress, open_saved_page
    )
    asyncio.run(coordinator.on_message(message, channel))

    if channel.error:
        print_error(channel.error)
        raise SystemExit(ExitCode.GENERAL_ERROR)
    print_success(f"Saved {filename}")
