"""Tests for pagesave.services.dispatcher module."""

from __future__ import annotations

import asyncio
import base64
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from pagesave.core.auth import Credential, CredentialStore
from pagesave.core.config import Config
from pagesave.core.envelope import parse
from pagesave.core.exceptions import DestinationError, UploadCancelledError, ValidationError
from pagesave.destinations import GDriveAuth, GitHub
from pagesave.destinations.local import DownloadIndex, LocalDownloader
from pagesave.models import PayloadDescriptor, SessionEvent
from pagesave.services.conflicts import ConflictResolver
from pagesave.services.dispatcher import (
    FOREGROUND_METHOD,
    DestinationDispatcher,
    DestinationKind,
    select_destination,
)
from pagesave.services.tasks import TaskRegistry
from pagesave.services.tokens import TokenManager

WEBDAV_URL = "https://dav.example.org/pages"


def make_dispatcher(temp_dir: Path, handler=None, **kwargs) -> DestinationDispatcher:
    index = DownloadIndex(temp_dir / "downloads.jsonl")
    return DestinationDispatcher(
        TaskRegistry(),
        LocalDownloader(temp_dir / "Downloads", index),
        ConflictResolver(index),
        transport=httpx.MockTransport(handler) if handler else None,
        **kwargs,
    )


def make_payload(content="<html></html>", **fields) -> PayloadDescriptor:
    event = SessionEvent.model_validate(
        {"method": "content.download", "taskId": "t1", "filename": "page.html", **fields}
    )
    return PayloadDescriptor(event.filename, content, event)


def github_settings() -> dict:
    return {
        "saveToGitHub": True,
        "githubToken": "ghp_token",
        "githubUser": "alice",
        "githubRepository": "pages",
    }


# =============================================================================
# Destination selection
# =============================================================================


class TestSelectDestination:
    def test_default_is_local(self):
        assert select_destination(SessionEvent()) is DestinationKind.LOCAL

    def test_precedence(self):
        event = SessionEvent.model_validate(
            {
                "saveToClipboard": True,
                "saveWithWebDAV": True,
                "saveToGDrive": True,
                "foregroundSave": True,
            }
        )
        assert select_destination(event) is DestinationKind.CLIPBOARD

        event.save_to_clipboard = False
        assert select_destination(event) is DestinationKind.WEBDAV

        event.save_with_webdav = False
        assert select_destination(event) is DestinationKind.GDRIVE

        event.save_to_gdrive = False
        assert select_destination(event) is DestinationKind.FOREGROUND

    def test_compressed_without_background_goes_to_session(self):
        event = SessionEvent.model_validate({"compressContent": True})
        assert select_destination(event) is DestinationKind.FOREGROUND

        event.background_save = True
        assert select_destination(event) is DestinationKind.LOCAL

    def test_text_without_background_is_local(self):
        event = SessionEvent.model_validate({"content": "<p>x</p>"})
        assert select_destination(event) is DestinationKind.LOCAL

    def test_remote_flag_wins_over_foreground_fallback(self):
        event = SessionEvent.model_validate({"compressContent": True, "saveWithWebDAV": True})
        assert select_destination(event) is DestinationKind.WEBDAV

    def test_editor_first(self):
        event = SessionEvent.model_validate({"openEditor": True, "saveToGitHub": True})
        assert select_destination(event) is DestinationKind.EDITOR

    async def test_editor_is_not_dispatched(self, temp_dir, channel):
        dispatcher = make_dispatcher(temp_dir)
        with pytest.raises(ValidationError):
            await dispatcher.dispatch("t1", make_payload(openEditor=True), channel)


# =============================================================================
# Local and foreground
# =============================================================================


class TestLocalDispatch:
    async def test_download_returns_file_url(self, temp_dir, channel):
        dispatcher = make_dispatcher(temp_dir)
        payload = make_payload(filename="a#b.html")

        result = await dispatcher.dispatch("t1", payload, channel)

        assert result.url.startswith("file:///")
        assert result.url.endswith("a%23b.html")
        assert (temp_dir / "Downloads" / "a#b.html").read_text() == "<html></html>"

    async def test_skip_already_downloaded(self, temp_dir, channel):
        dispatcher = make_dispatcher(temp_dir)
        await dispatcher.dispatch("t1", make_payload(), channel)

        result = await dispatcher.dispatch(
            "t2", make_payload("new", filenameConflictAction="skip"), channel
        )

        assert result.skipped is True
        assert (temp_dir / "Downloads" / "page.html").read_text() == "<html></html>"

    async def test_skip_matches_sanitized_name(self, temp_dir, channel):
        dispatcher = make_dispatcher(temp_dir)
        await dispatcher.dispatch("t1", make_payload(filename="a:b.html"), channel)

        result = await dispatcher.dispatch(
            "t2", make_payload("new", filename="a:b.html", filenameConflictAction="skip"), channel
        )

        assert result.skipped is True
        assert sorted(p.name for p in (temp_dir / "Downloads").iterdir()) == ["a_b.html"]

    async def test_replacement_character_from_event(self, temp_dir, channel):
        dispatcher = make_dispatcher(temp_dir)

        await dispatcher.dispatch(
            "t1", make_payload(filename="a:b.html", filenameReplacementCharacter="-"), channel
        )

        assert (temp_dir / "Downloads" / "a-b.html").exists()

    def test_preflight_only_for_local(self, temp_dir):
        dispatcher = make_dispatcher(temp_dir)
        event = SessionEvent.model_validate({"filenameConflictAction": "skip"})

        assert dispatcher.preflight(DestinationKind.WEBDAV, "page.html", event) is None
        resolution = dispatcher.preflight(DestinationKind.LOCAL, "page.html", event)
        assert resolution.skip is False
        assert resolution.action == "uniquify"

    async def test_conflict_prompt_uses_channel(self, temp_dir, channel):
        dispatcher = make_dispatcher(temp_dir)
        await dispatcher.dispatch("t1", make_payload(), channel)
        channel.answers.append("renamed.html")

        result = await dispatcher.dispatch(
            "t2", make_payload(filenameConflictAction="prompt"), channel
        )

        assert result.url.endswith("renamed.html")
        assert channel.prompts[0][1] == "page.html"

    async def test_foreground_chunks(self, temp_dir, channel):
        dispatcher = make_dispatcher(temp_dir, chunk_size=16)
        content = "<html>" + "x" * 100 + "</html>"

        result = await dispatcher.dispatch(
            "t1", make_payload(content, foregroundSave=True), channel
        )

        assert result is None
        assert all(message["method"] == FOREGROUND_METHOD for message in channel.sent)
        *chunks, last = channel.sent
        assert "data" not in last
        assert len(chunks) > 1
        data = b"".join(base64.b64decode(message["data"]) for message in chunks)
        assert parse(data) == {
            "filename": "page.html",
            "taskId": "t1",
            "foregroundSave": True,
            "content": content,
        }
        assert not (temp_dir / "Downloads").exists()


# =============================================================================
# Remote destinations
# =============================================================================


class TestRemoteDispatch:
    async def test_cancelled_before_dispatch(self, temp_dir, channel):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(404)

        dispatcher = make_dispatcher(temp_dir, handler)
        dispatcher.registry.cancel("t1")

        with pytest.raises(UploadCancelledError):
            await dispatcher.dispatch(
                "t1", make_payload(saveWithWebDAV=True, webDAVURL=WEBDAV_URL), channel
            )

        assert requests == []

    async def test_webdav_error_names_destination(self, temp_dir, channel):
        def handler(request):
            return httpx.Response(404 if request.method == "HEAD" else 500)

        dispatcher = make_dispatcher(temp_dir, handler)

        with pytest.raises(DestinationError) as exc_info:
            await dispatcher.dispatch(
                "t1", make_payload(saveWithWebDAV=True, webDAVURL=WEBDAV_URL), channel
            )

        assert str(exc_info.value).endswith("(WebDAV)")
        assert exc_info.value.destination == "WebDAV"

    async def test_webdav_from_config_and_sharp_encoding(self, temp_dir, channel):
        paths = []

        def handler(request):
            paths.append(request.url.raw_path)
            return httpx.Response(404 if request.method == "HEAD" else 201)

        config = Config()
        config.webdav.url = WEBDAV_URL
        dispatcher = make_dispatcher(temp_dir, handler, config=config)

        result = await dispatcher.dispatch(
            "t1", make_payload(filename="a#b.html", saveWithWebDAV=True), channel
        )

        assert result.url == f"{WEBDAV_URL}/a%23b.html"
        assert paths[-1] == b"/pages/a%23b.html"

    async def test_missing_webdav_url(self, temp_dir, channel):
        dispatcher = make_dispatcher(temp_dir)
        with pytest.raises(DestinationError, match=r"\(WebDAV\)$"):
            await dispatcher.dispatch("t1", make_payload(saveWithWebDAV=True), channel)

    async def test_bookmark_updated_on_success(self, temp_dir, channel):
        dispatcher = make_dispatcher(
            temp_dir,
            lambda request: httpx.Response(404 if request.method == "HEAD" else 201),
            bookmarks=MagicMock(),
        )

        result = await dispatcher.dispatch(
            "t1",
            make_payload(
                saveWithWebDAV=True,
                webDAVURL=WEBDAV_URL,
                replaceBookmarkURL=True,
                bookmarkId="b1",
            ),
            channel,
        )

        dispatcher.bookmarks.update.assert_called_once_with("b1", result.url)

    async def test_cancel_during_github_push(self, temp_dir, channel, monkeypatch):
        started = asyncio.Event()
        aborts = []
        original_abort = GitHub.abort

        def counting_abort(self):
            aborts.append(self)
            original_abort(self)

        monkeypatch.setattr(GitHub, "abort", counting_abort)

        async def handler(request):
            if request.method == "GET":
                return httpx.Response(404)
            started.set()
            await asyncio.Event().wait()

        dispatcher = make_dispatcher(temp_dir, handler, bookmarks=MagicMock())
        payload = make_payload(replaceBookmarkURL=True, bookmarkId="b1", **github_settings())
        task = asyncio.create_task(dispatcher.dispatch("t1", payload, channel))
        await started.wait()

        dispatcher.registry.cancel("t1")
        dispatcher.registry.cancel("t1")

        with pytest.raises(UploadCancelledError):
            await task
        assert len(aborts) == 1
        dispatcher.bookmarks.update.assert_not_called()

    async def test_github_branch_from_event(self, temp_dir, channel):
        def handler(request):
            if request.method == "GET":
                return httpx.Response(404)
            return httpx.Response(201, json={})

        dispatcher = make_dispatcher(temp_dir, handler)

        result = await dispatcher.dispatch(
            "t1", make_payload(githubBranch="archive", **github_settings()), channel
        )

        assert "/blob/archive/" in result.url

    async def test_github_requires_token(self, temp_dir, channel):
        dispatcher = make_dispatcher(temp_dir)
        with pytest.raises(DestinationError, match=r"\(GitHub\)$"):
            await dispatcher.dispatch("t1", make_payload(saveToGitHub=True), channel)

    async def test_callback_cleared_after_upload(self, temp_dir, channel):
        dispatcher = make_dispatcher(
            temp_dir, lambda request: httpx.Response(404 if request.method == "HEAD" else 201)
        )
        await dispatcher.dispatch(
            "t1", make_payload(saveWithWebDAV=True, webDAVURL=WEBDAV_URL), channel
        )
        assert dispatcher.registry._tasks["t1"].cancel_callback is None


# =============================================================================
# Google Drive
# =============================================================================


class TestGDriveDispatch:
    def _tokens(self, temp_dir, drive, launcher=None) -> TokenManager:
        auth = GDriveAuth(
            "client-id",
            None,
            ["https://www.googleapis.com/auth/drive.file"],
            "http://127.0.0.1:8765",
            transport=httpx.MockTransport(drive),
        )
        return TokenManager(CredentialStore(temp_dir / ".credential"), auth, launcher)

    async def test_interactive_authorization(self, temp_dir, channel, drive):
        launcher = AsyncMock(return_value="http://127.0.0.1:8765/?code=abc")
        tokens = self._tokens(temp_dir, drive, launcher)
        dispatcher = make_dispatcher(temp_dir, drive, tokens=tokens)
        content = "<html>" + "x" * 50 + "</html>"

        result = await dispatcher.dispatch("t1", make_payload(content, saveToGDrive=True), channel)

        launcher.assert_awaited_once()
        assert tokens.store.get().access_token == "good"
        assert result.url.startswith("https://drive.google.com/file/d/")
        offsets = [offset for offset, _ in channel.progress]
        assert offsets == sorted(offsets)
        assert channel.progress[-1] == (len(content), len(content))

    async def test_refreshes_once_then_fails(self, temp_dir, channel, drive):
        tokens = self._tokens(temp_dir, drive, AsyncMock())
        tokens.store.set(Credential(access_token="stale", refresh_token="refresh"))
        drive.token_responses.append(httpx.Response(200, json={"access_token": "still-bad"}))
        dispatcher = make_dispatcher(temp_dir, drive, tokens=tokens)

        with pytest.raises(DestinationError) as exc_info:
            await dispatcher.dispatch("t1", make_payload(saveToGDrive=True), channel)

        assert str(exc_info.value).endswith("(Google Drive)")
        assert len(drive.token_forms) == 1
        assert drive.count("GET", "/drive/v3/files") == 2

    async def test_refresh_then_success(self, temp_dir, channel, drive):
        tokens = self._tokens(temp_dir, drive, AsyncMock())
        tokens.store.set(Credential(access_token="stale", refresh_token="refresh"))
        dispatcher = make_dispatcher(temp_dir, drive, tokens=tokens)

        result = await dispatcher.dispatch("t1", make_payload(saveToGDrive=True), channel)

        assert result.skipped is False
        assert tokens.store.get().access_token == "good"

    async def test_without_client(self, temp_dir, channel):
        dispatcher = make_dispatcher(temp_dir)
        with pytest.raises(DestinationError, match=r"\(Google Drive\)$"):
            await dispatcher.dispatch("t1", make_payload(saveToGDrive=True), channel)
