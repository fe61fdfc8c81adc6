"""Destination dispatch.

Picks exactly one destination for a payload and runs its upload under the
task's cancellation rules:

1. the cancelled flag is checked before a client is built;
2. the client's ``abort`` becomes the task's cancel callback, then the flag
   is checked again right before the first network call;
3. failures come back as ``DestinationError`` tagged with the destination
   name, except cancellations which are re-raised untouched.
"""

from __future__ import annotations

import base64
import logging
from enum import Enum
from typing import Optional

import httpx

from pagesave.core.config import Config
from pagesave.core.envelope import DEFAULT_CHUNK_SIZE, serialize
from pagesave.core.exceptions import (
    ConfigurationError,
    DestinationError,
    UploadCancelledError,
    ValidationError,
)
from pagesave.core.validation import encode_sharp_character
from pagesave.destinations import (
    Companion,
    Destination,
    DownloadRequest,
    GDrive,
    GitHub,
    LocalDownloader,
    UploadOptions,
    UploadResult,
    WebDAV,
    to_file_url,
)
from pagesave.destinations.constants import (
    COMPANION,
    GDRIVE,
    GITHUB,
    PROMPT_MESSAGE,
    WEBDAV,
)
from pagesave.models import PayloadDescriptor, SessionEvent
from pagesave.services.collaborators import BookmarkStore, SessionChannel
from pagesave.services.conflicts import ConflictResolution, ConflictResolver
from pagesave.services.tasks import TaskRegistry
from pagesave.services.tokens import TokenManager

logger = logging.getLogger(__name__)

FOREGROUND_METHOD = "content.download"


class DestinationKind(Enum):
    EDITOR = "editor"
    CLIPBOARD = "clipboard"
    WEBDAV = "webdav"
    GDRIVE = "gdrive"
    GITHUB = "github"
    COMPANION = "companion"
    FOREGROUND = "foreground"
    LOCAL = "local"


# Name appended to errors of each remote kind
DESTINATION_LABELS = {
    DestinationKind.WEBDAV: WEBDAV,
    DestinationKind.GDRIVE: GDRIVE,
    DestinationKind.GITHUB: GITHUB,
    DestinationKind.COMPANION: COMPANION,
}


def select_destination(event: SessionEvent) -> DestinationKind:
    """First selected destination in precedence order.

    A compressed page that was not saved in the background goes back to the
    session, which downloads it itself.
    """
    precedence = (
        (event.open_editor, DestinationKind.EDITOR),
        (event.save_to_clipboard, DestinationKind.CLIPBOARD),
        (event.save_with_webdav, DestinationKind.WEBDAV),
        (event.save_to_gdrive, DestinationKind.GDRIVE),
        (event.save_to_github, DestinationKind.GITHUB),
        (event.save_with_companion, DestinationKind.COMPANION),
        (event.foreground_save, DestinationKind.FOREGROUND),
        (event.compress_content and not event.background_save, DestinationKind.FOREGROUND),
    )
    for selected, kind in precedence:
        if selected:
            return kind
    return DestinationKind.LOCAL


class DestinationDispatcher:
    """Runs the upload branch selected by a payload's flags."""

    def __init__(
        self,
        registry: TaskRegistry,
        downloader: LocalDownloader,
        conflicts: ConflictResolver,
        *,
        config: Optional[Config] = None,
        tokens: Optional[TokenManager] = None,
        bookmarks: Optional[BookmarkStore] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self.registry = registry
        self.downloader = downloader
        self.conflicts = conflicts
        self.config = config or Config()
        self.tokens = tokens
        self.bookmarks = bookmarks
        self.transport = transport
        self.chunk_size = chunk_size

    def preflight(
        self, kind: DestinationKind, filename: str, event: SessionEvent
    ) -> Optional[ConflictResolution]:
        """Answer a local ``skip`` from the download history.

        Remote destinations check for existing files themselves, so only
        local downloads get a resolution; other kinds return None.
        """
        if kind is not DestinationKind.LOCAL:
            return None
        target = self.downloader.target_name(filename, event.filename_replacement_character)
        return self.conflicts.resolve(target, event.filename_conflict_action)

    async def dispatch(
        self,
        task_id: str,
        payload: PayloadDescriptor,
        session: SessionChannel,
        resolution: Optional[ConflictResolution] = None,
    ) -> Optional[UploadResult]:
        """Deliver a payload to its destination.

        ``resolution`` is the result of an earlier :meth:`preflight`; local
        downloads run it here when it is not given.

        Returns:
            The upload result, or None for a foreground hand-off.

        Raises:
            UploadCancelledError: If the task was cancelled or a prompt was
                dismissed.
            DestinationError: If a remote destination failed.
        """
        kind = select_destination(payload.request)
        if kind in (DestinationKind.EDITOR, DestinationKind.CLIPBOARD):
            raise ValidationError(f"{kind.value} saves are not dispatched", field="destination")

        self.registry.ensure_active(task_id)
        logger.debug("Task %s: dispatching to %s", task_id, kind.value)

        if kind is DestinationKind.FOREGROUND:
            self._send_foreground(task_id, payload, session)
            return None
        if kind is DestinationKind.LOCAL:
            result = await self._download(task_id, payload, session, resolution)
        else:
            result = await self._upload_remote(kind, task_id, payload, session)

        self._update_bookmark(task_id, payload.request, result)
        return result

    # -------------------------------------------------------------------------
    # Remote destinations
    # -------------------------------------------------------------------------

    async def _upload_remote(
        self,
        kind: DestinationKind,
        task_id: str,
        payload: PayloadDescriptor,
        session: SessionChannel,
    ) -> UploadResult:
        event = payload.request
        filename = payload.filename
        if kind is not DestinationKind.COMPANION:
            filename = encode_sharp_character(filename)
        options = UploadOptions(
            filename_conflict_action=event.filename_conflict_action,
            prompt=lambda value: session.prompt(PROMPT_MESSAGE, value),
            content_type=payload.mime_type,
        )

        try:
            if kind is DestinationKind.GDRIVE:
                options.on_progress = session.on_upload_progress
                return await self._upload_gdrive(task_id, filename, payload, options)
            client = self._build_client(kind, event)
            return await self._upload_with(task_id, client, filename, payload, options)
        except (UploadCancelledError, DestinationError):
            raise
        except Exception as e:
            raise DestinationError(
                str(e) or type(e).__name__,
                DESTINATION_LABELS[kind],
                link=getattr(e, "link", None),
            ) from e

    def _build_client(self, kind: DestinationKind, event: SessionEvent) -> Destination:
        settings = dict(timeout=self.config.timeout, transport=self.transport)
        if kind is DestinationKind.WEBDAV:
            url = event.webdav_url or self.config.webdav.url
            if not url:
                raise ConfigurationError("No WebDAV server URL set", field="webdav.url")
            return WebDAV(
                url,
                event.webdav_user or self.config.webdav.username,
                event.webdav_password or self.config.webdav.password,
                auth_scheme=self.config.webdav.auth_scheme,
                **settings,
            )
        if kind is DestinationKind.GITHUB:
            github = self.config.github
            token = event.github_token or github.token
            user = event.github_user or github.user
            repository = event.github_repository or github.repository
            if not (token and user and repository):
                raise ConfigurationError(
                    "GitHub token, user and repository are required", field="github"
                )
            branch = event.github_branch or github.branch
            return GitHub(token, user, repository, branch, **settings)
        return Companion(self.config.companion_command, **settings)

    async def _upload_gdrive(
        self,
        task_id: str,
        filename: str,
        payload: PayloadDescriptor,
        options: UploadOptions,
    ) -> UploadResult:
        if self.tokens is None:
            raise ConfigurationError("No Google Drive client configured", field="gdrive.client_id")

        async def upload(credential) -> UploadResult:
            client = GDrive(
                credential.access_token,
                timeout=self.config.timeout,
                transport=self.transport,
            )
            return await self._upload_with(task_id, client, filename, payload, options)

        return await self.tokens.run(
            upload, force_web_auth_flow=payload.request.force_web_auth_flow
        )

    async def _upload_with(
        self,
        task_id: str,
        client: Destination,
        filename: str,
        payload: PayloadDescriptor,
        options: UploadOptions,
    ) -> UploadResult:
        self.registry.set_cancel_callback(task_id, client.abort)
        try:
            self.registry.ensure_active(task_id)
            result = await client.upload(filename, payload.content, options)
            await result.wait()
        finally:
            self.registry.set_cancel_callback(task_id, None)
        logger.info("Task %s: saved to %s", task_id, result.url or client.name)
        return result

    # -------------------------------------------------------------------------
    # Local destinations
    # -------------------------------------------------------------------------

    async def _download(
        self,
        task_id: str,
        payload: PayloadDescriptor,
        session: SessionChannel,
        resolution: Optional[ConflictResolution] = None,
    ) -> UploadResult:
        event = payload.request
        resolution = resolution or self.preflight(DestinationKind.LOCAL, payload.filename, event)
        if resolution.skip:
            return UploadResult(skipped=True)

        request = DownloadRequest(
            filename=payload.filename,
            content=payload.content,
            save_as=event.confirm_filename,
            conflict_action=resolution.action,
            incognito=event.incognito,
            replacement_character=event.filename_replacement_character,
        )
        self.registry.ensure_active(task_id)
        path = await self.downloader.download(
            request, lambda value: session.prompt(PROMPT_MESSAGE, value)
        )
        return UploadResult(url=to_file_url(path))

    def _send_foreground(
        self,
        task_id: str,
        payload: PayloadDescriptor,
        session: SessionChannel,
    ) -> None:
        record = {
            "filename": payload.filename,
            "taskId": task_id,
            "foregroundSave": True,
            "content": payload.content,
        }
        for chunk in serialize(record, self.chunk_size):
            session.send(
                {"method": FOREGROUND_METHOD, "data": base64.b64encode(chunk).decode("ascii")}
            )
        session.send({"method": FOREGROUND_METHOD})

    def _update_bookmark(
        self,
        task_id: str,
        event: SessionEvent,
        result: UploadResult,
    ) -> None:
        if not (event.replace_bookmark_url and event.bookmark_id and result.url):
            return
        # A cancel that raced with the final response still wins
        self.registry.ensure_active(task_id)
        if self.bookmarks is None:
            logger.warning("No bookmark store, %s not updated", event.bookmark_id)
            return
        self.bookmarks.update(event.bookmark_id, result.url)

