"""Entry point for messages coming from capture sessions.

``SessionCoordinator.on_message`` classifies each message by the suffix of
its ``method``. Payload messages go through reassembly, then the save
pipeline; every save ends with exactly one ``on_end`` or ``on_error``
notification, and blob handles created for it are released on every path
unless the viewer took them over.
"""

from __future__ import annotations

import base64
import logging
import uuid
from collections.abc import Hashable
from typing import Any, Optional

from pagesave.core.blobs import BlobStore
from pagesave.core.envelope import EnvelopeDecodeError, parse
from pagesave.core.exceptions import (
    NotarizationError,
    ReassemblyError,
    TaskInProgressError,
    UploadCancelledError,
)
from pagesave.core.logging import AuditLogger, LogContext, get_audit_logger
from pagesave.models import PayloadDescriptor, SessionEvent
from pagesave.services.collaborators import (
    ClickEditor,
    ClickViewer,
    EditorLauncher,
    Notarizer,
    PageCompressor,
    SavedPageViewer,
    SessionChannel,
    ZipPageCompressor,
)
from pagesave.services.dispatcher import DestinationDispatcher, DestinationKind, select_destination
from pagesave.services.reassembler import ChunkReassembler, CompletePayload, page_record
from pagesave.services.tasks import TaskRegistry
from pagesave.services.tokens import TokenManager

logger = logging.getLogger(__name__)

CLIPBOARD_METHOD = "content.copyToClipboard"


class SessionCoordinator:
    """Drives reassembly, dispatch and notifications for every session."""

    def __init__(
        self,
        dispatcher: DestinationDispatcher,
        registry: TaskRegistry,
        *,
        tokens: Optional[TokenManager] = None,
        reassembler: Optional[ChunkReassembler] = None,
        blobs: Optional[BlobStore] = None,
        compressor: Optional[PageCompressor] = None,
        editor: Optional[EditorLauncher] = None,
        viewer: Optional[SavedPageViewer] = None,
        notarizer: Optional[Notarizer] = None,
        audit: Optional[AuditLogger] = None,
    ):
        self.dispatcher = dispatcher
        self.registry = registry
        self.tokens = tokens
        self.reassembler = reassembler or ChunkReassembler()
        self.blobs = blobs or BlobStore()
        self.compressor = compressor or ZipPageCompressor()
        self.editor = editor or ClickEditor()
        self.viewer = viewer or ClickViewer(self.blobs)
        self.notarizer = notarizer or Notarizer()
        self.audit = audit or get_audit_logger()
        # Session id -> task id of the save in flight
        self._active: dict[Hashable, str] = {}

    async def on_message(self, message: dict[str, Any], session: SessionChannel) -> dict[str, Any]:
        """Handle one message from a session and return the reply."""
        event = SessionEvent.model_validate(message)
        method = event.method

        if method.endswith(".download"):
            await self._on_download(event, session)
            return {}
        if method.endswith(".disableGDrive"):
            revoked = await self.tokens.revoke() if self.tokens else False
            return {"revoked": revoked}
        if method.endswith(".end"):
            return await self._on_end(event)
        if method.endswith(".getInfo"):
            return {"tasks": self.registry.get_tasks_info()}
        if method.endswith(".cancel"):
            if event.task_id:
                self.registry.cancel(event.task_id)
            return {}
        if method.endswith(".cancelAll"):
            self.registry.cancel_all()
            return {}

        logger.debug("Ignoring message with method %r", method)
        return {}

    def close_session(self, session: SessionChannel) -> None:
        """Tear a session down: partial payloads dropped, prompts dismissed."""
        if self.reassembler.discard(session.session_id):
            logger.debug("Session %s closed with an incomplete payload", session.session_id)
        session.close()

    def active_task(self, session_id: Hashable) -> Optional[str]:
        return self._active.get(session_id)

    async def _on_end(self, event: SessionEvent) -> dict[str, Any]:
        reply: dict[str, Any] = {}
        if event.page_hash:
            try:
                reply["notarization"] = await self.notarizer.anchor(
                    event.page_hash, event.woleet_key
                )
            except NotarizationError as e:
                logger.error("Notarization of %s failed: %s", event.page_hash, e)
                reply["error"] = str(e)
        if event.task_id:
            self.registry.on_save_end(event.task_id)
        return reply

    # -------------------------------------------------------------------------
    # Payload path
    # -------------------------------------------------------------------------

    async def _on_download(self, event: SessionEvent, session: SessionChannel) -> None:
        try:
            if event.blob_url:
                complete = self._read_blob(session.session_id, event)
            else:
                complete = self.reassembler.ingest(session.session_id, event)
        except ReassemblyError as e:
            logger.error("Session %s: %s", session.session_id, e)
            if event.task_id:
                self.registry.on_save_end(event.task_id)
            session.on_error(str(e))
            return
        if complete is not None:
            await self.save(complete, session)

    def _read_blob(self, session_id: Hashable, event: SessionEvent) -> CompletePayload:
        """Read a payload handed over as a blob handle.

        The handle is released here unless it holds a text page the viewer
        will open after the save.
        """
        handle = event.blob_url
        keep = False
        try:
            try:
                data = self.blobs.read(handle)
            except KeyError as e:
                raise ReassemblyError(session_id, str(e.args[0])) from e
            if event.compress_content:
                try:
                    return CompletePayload(event=event, record=page_record(parse(data)))
                except EnvelopeDecodeError as e:
                    raise ReassemblyError(session_id, str(e)) from e
            try:
                text = data.decode("utf-8")
            except UnicodeDecodeError as e:
                raise ReassemblyError(session_id, f"page is not valid UTF-8 text: {e}") from e
            keep = event.open_saved_page
            return CompletePayload(event=event, text=text, blob_handle=handle if keep else None)
        finally:
            if not keep and handle in self.blobs:
                self.blobs.release(handle)

    async def save(self, complete: CompletePayload, session: SessionChannel) -> None:
        """Run one save to its terminal state and notify the session."""
        event = complete.event
        session_id = session.session_id
        task_id = event.task_id or uuid.uuid4().hex

        in_flight = self._active.get(session_id)
        if in_flight is not None:
            if complete.blob_handle in self.blobs:
                self.blobs.release(complete.blob_handle)
            error = TaskInProgressError(session_id, in_flight)
            logger.warning("Session %s: %s", session_id, error)
            session.on_error(str(error))
            return

        self._active[session_id] = task_id
        self.registry.register(task_id, session_id)
        kind = select_destination(event)
        filename = event.filename or (complete.record or {}).get("filename") or ""

        handle = complete.blob_handle
        handed_off = False
        failure: Optional[Exception] = None
        outcome = "failed"
        url: Optional[str] = None

        with LogContext("save", logger, task=task_id, destination=kind.value) as ctx:
            try:
                # Resolved before compression so a skipped save costs nothing
                resolution = self.dispatcher.preflight(kind, filename, event)
                if resolution is not None and resolution.skip:
                    outcome = "skipped"
                    ctx.info("Skipped, %s was already downloaded", filename)
                else:
                    if complete.structured:
                        page = await self.compressor.compress(
                            complete.record, event.compression_options()
                        )
                        handle = self.blobs.create(page.data, page.mime_type)
                        payload = PayloadDescriptor(
                            filename, self.blobs.read(handle), event, page.mime_type, handle
                        )
                    else:
                        text = complete.text or ""
                        if handle is None and event.open_saved_page:
                            handle = self.blobs.create(text.encode("utf-8"), event.mime_type)
                        payload = PayloadDescriptor(filename, text, event, event.mime_type, handle)

                    if kind is DestinationKind.EDITOR:
                        session.on_edit()
                        await self.editor.open(filename, payload.content)
                        outcome = "completed"
                    elif kind is DestinationKind.CLIPBOARD:
                        self._copy_to_clipboard(payload, session)
                        outcome = "completed"
                    else:
                        result = await self.dispatcher.dispatch(
                            task_id, payload, session, resolution
                        )
                        url = result.url if result else None
                        outcome = "skipped" if result and result.skipped else "completed"
                        if outcome == "completed" and event.open_saved_page:
                            handed_off = await self.viewer.open(handle, filename)
            except UploadCancelledError:
                outcome = "cancelled"
                ctx.info("Save cancelled")
            except Exception as e:
                failure = e
                logger.exception("Task %s: save of %s failed", task_id, filename)
            finally:
                if handle is not None and not handed_off and handle in self.blobs:
                    self.blobs.release(handle)
                self._active.pop(session_id, None)
                self.registry.on_save_end(task_id)
                self.audit.log_save(
                    outcome,
                    task_id=task_id,
                    session_id=session_id,
                    destination=kind.value,
                    filename=filename,
                    url=url,
                    duration=ctx.elapsed,
                )

        if failure is None:
            session.on_end()
        else:
            session.on_error(str(failure), getattr(failure, "link", None))

    @staticmethod
    def _copy_to_clipboard(payload: PayloadDescriptor, session: SessionChannel) -> None:
        message: dict[str, Any] = {"method": CLIPBOARD_METHOD, "filename": payload.filename}
        if payload.compressed:
            message["data"] = base64.b64encode(payload.content_bytes()).decode("ascii")
        else:
            message["content"] = payload.content
        session.send(message)
