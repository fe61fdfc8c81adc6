"""Tests for pagesave.destinations.gdrive module."""

from __future__ import annotations

from unittest.mock import AsyncMock
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from pagesave.core.exceptions import (
    AuthenticationError,
    InvalidTokenError,
    UnknownTokenError,
    UploadCancelledError,
    ValidationError,
)
from pagesave.destinations import GDrive, GDriveAuth, UploadOptions
from pagesave.destinations.constants import GDRIVE_FOLDER_MIMETYPE


def make_auth(drive) -> GDriveAuth:
    return GDriveAuth(
        "client-id",
        "client-secret",
        ["https://www.googleapis.com/auth/drive.file"],
        "http://127.0.0.1:8765",
        transport=httpx.MockTransport(drive),
    )


def make_gdrive(drive, token: str = "good", chunk_size: int = 4) -> GDrive:
    return GDrive(token, chunk_size=chunk_size, transport=httpx.MockTransport(drive))


# =============================================================================
# GDriveAuth Tests
# =============================================================================


class TestGDriveAuth:
    def test_authorization_url(self, drive):
        auth = make_auth(drive)

        params = parse_qs(urlparse(auth.authorization_url()).query)

        assert params["client_id"] == ["client-id"]
        assert params["response_type"] == ["code"]
        assert params["access_type"] == ["offline"]
        assert "prompt" not in params

    def test_authorization_url_forces_consent(self, drive):
        auth = make_auth(drive)
        params = parse_qs(urlparse(auth.authorization_url(force_consent=True)).query)
        assert params["prompt"] == ["consent"]

    def test_extract_auth_code(self):
        assert GDriveAuth.extract_auth_code("http://127.0.0.1:8765/?code=4%2Fabc&scope=x") == (
            "4/abc"
        )

    def test_extract_auth_code_denied(self):
        with pytest.raises(UploadCancelledError):
            GDriveAuth.extract_auth_code("http://127.0.0.1:8765/?error=access_denied")

    def test_extract_auth_code_missing(self):
        with pytest.raises(AuthenticationError):
            GDriveAuth.extract_auth_code("http://127.0.0.1:8765/")

    async def test_exchange_code(self, drive):
        credential = await make_auth(drive).exchange_code("abc")

        assert credential.access_token == "good"
        assert credential.refresh_token == "refresh"
        assert credential.expires_at is not None
        assert drive.token_forms[0]["grant_type"] == "authorization_code"
        assert drive.token_forms[0]["client_secret"] == "client-secret"

    async def test_refresh_keeps_refresh_token(self, drive):
        drive.token_responses.append(httpx.Response(200, json={"access_token": "new"}))

        credential = await make_auth(drive).refresh("refresh")

        assert credential.access_token == "new"
        assert credential.refresh_token == "refresh"

    async def test_refresh_invalid_grant(self, drive):
        drive.token_responses.append(httpx.Response(400, json={"error": "invalid_grant"}))

        with pytest.raises(UnknownTokenError):
            await make_auth(drive).refresh("revoked")

    async def test_refresh_without_token(self, drive):
        with pytest.raises(UnknownTokenError):
            await make_auth(drive).refresh(None)
        assert drive.requests == []

    async def test_token_server_error(self, drive):
        drive.token_responses.append(httpx.Response(500))
        with pytest.raises(AuthenticationError):
            await make_auth(drive).exchange_code("abc")

    async def test_revoke(self, drive):
        await make_auth(drive).revoke("good")
        assert drive.revoked == ["good"]


# =============================================================================
# GDrive Upload Tests
# =============================================================================


class TestGDriveUpload:
    async def test_resumable_upload_reports_progress(self, drive):
        progress = []
        content = "0123456789"

        result = await make_gdrive(drive).upload(
            "page.html", content, UploadOptions(on_progress=lambda o, s: progress.append((o, s)))
        )

        file_id = result.url.split("/")[-2]
        assert drive.files[file_id]["content"] == b"0123456789"
        assert progress == [(4, 10), (8, 10), (10, 10)]
        assert result.url == GDrive.file_url(file_id)

    async def test_empty_content(self, drive):
        result = await make_gdrive(drive).upload("empty.html", "", UploadOptions())
        file_id = result.url.split("/")[-2]
        assert drive.files[file_id]["content"] == b""

    async def test_folders_are_created_once(self, drive):
        gdrive = make_gdrive(drive, chunk_size=1024)

        await gdrive.upload("news/2026/a.html", "a", UploadOptions())
        await gdrive.upload("news/2026/b.html", "b", UploadOptions())

        folders = [f for f in drive.files.values() if f["mimeType"] == GDRIVE_FOLDER_MIMETYPE]
        assert sorted(f["name"] for f in folders) == ["2026", "news"]
        year = next(i for i, f in drive.files.items() if f["name"] == "2026")
        pages = [f["name"] for f in drive.files.values() if f["parent"] == year]
        assert sorted(pages) == ["a.html", "b.html"]

    async def test_uniquify(self, drive):
        drive.add("page.html")

        await make_gdrive(drive, chunk_size=1024).upload("page.html", "x", UploadOptions())

        names = sorted(f["name"] for f in drive.files.values())
        assert names == ["page (1).html", "page.html"]

    async def test_overwrite_replaces_content(self, drive):
        file_id = drive.add("page.html", content=b"old")

        result = await make_gdrive(drive, chunk_size=1024).upload(
            "page.html", "new", UploadOptions(filename_conflict_action="overwrite")
        )

        assert result.url == GDrive.file_url(file_id)
        assert drive.files[file_id]["content"] == b"new"
        assert len(drive.files) == 1

    async def test_skip(self, drive):
        file_id = drive.add("page.html")

        result = await make_gdrive(drive).upload(
            "page.html", "x", UploadOptions(filename_conflict_action="skip")
        )

        assert result.skipped is True
        assert result.url == GDrive.file_url(file_id)
        assert drive.sessions == {}

    async def test_prompt(self, drive):
        drive.add("page.html")
        prompt = AsyncMock(return_value="other.html")

        await make_gdrive(drive, chunk_size=1024).upload(
            "page.html", "x", UploadOptions(filename_conflict_action="prompt", prompt=prompt)
        )

        assert "other.html" in {f["name"] for f in drive.files.values()}

    async def test_invalid_token(self, drive):
        with pytest.raises(InvalidTokenError):
            await make_gdrive(drive, token="expired").upload("page.html", "x", UploadOptions())

    @pytest.mark.parametrize("filename", ["", "/", "//"])
    async def test_empty_filename(self, drive, filename):
        with pytest.raises(ValidationError):
            await make_gdrive(drive).upload(filename, "x", UploadOptions())
        assert drive.requests == []
