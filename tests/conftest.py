"""Pytest configuration and fixtures for pagesave tests."""

from __future__ import annotations

import json
import re
import tempfile
from pathlib import Path
from typing import Any, Generator, Optional
from urllib.parse import parse_qs

import httpx
import pytest

from pagesave.services import SessionChannel


class RecordingChannel(SessionChannel):
    """Session channel that records every notification."""

    def __init__(self, session_id: str = "tab-1", answers: Optional[list] = None):
        self.session_id = session_id
        self.events: list[tuple] = []
        self.progress: list[tuple[int, int]] = []
        self.prompts: list[tuple[str, str]] = []
        self.sent: list[dict[str, Any]] = []
        self.answers = list(answers or [])
        self.closed = False

    def on_edit(self) -> None:
        self.events.append(("edit",))

    def on_end(self) -> None:
        self.events.append(("end",))

    def on_error(self, message: str, link: Optional[str] = None) -> None:
        self.events.append(("error", message, link))

    def on_upload_progress(self, offset: int, size: int) -> None:
        self.progress.append((offset, size))

    async def prompt(self, message: str, value: str) -> Optional[str]:
        self.prompts.append((message, value))
        return self.answers.pop(0) if self.answers else None

    def send(self, message: dict[str, Any]) -> None:
        self.sent.append(message)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def channel() -> RecordingChannel:
    return RecordingChannel()


@pytest.fixture
def sample_config_yaml() -> str:
    """Sample config YAML content."""
    return """
output_format: table
timeout: 45

downloads:
  directory: /tmp/pagesave-downloads
  replacement_character: "-"

webdav:
  url: https://dav.example.org/pages
  username: alice
  auth_scheme: digest

github:
  user: alice
  repository: saved-pages
  branch: archive

gdrive:
  client_id: client-123.apps.googleusercontent.com

companion_command:
  - pagesave-companion
  - --stdio
"""


FOLDER = "application/vnd.google-apps.folder"
QUERY = re.compile(r"name = '(?P<name>[^']*)' and '(?P<parent>[^']*)' in parents")
SESSION_PREFIX = "https://uploads.example.org/session/"


class FakeDrive:
    """Routes Drive v3 and OAuth requests to in-memory state.

    ``valid_tokens`` holds the access tokens the files API accepts; any other
    bearer token gets a 401.
    """

    def __init__(self, valid_tokens=("good",)):
        self.valid_tokens = set(valid_tokens)
        self.files: dict[str, dict] = {}
        self.sessions: dict[str, dict] = {}
        self.requests: list[httpx.Request] = []
        self.token_forms: list[dict] = []
        self.token_responses: list[httpx.Response] = []
        self.revoked: list[str] = []
        self._next_id = 0

    def add(self, name, parent="root", mime_type="text/html", content=b""):
        file_id = self._new_id()
        self.files[file_id] = {
            "name": name,
            "parent": parent,
            "mimeType": mime_type,
            "content": content,
        }
        return file_id

    def _new_id(self):
        self._next_id += 1
        return f"id{self._next_id}"

    def count(self, method, path):
        return sum(
            1 for r in self.requests if r.method == method and r.url.path == path
        )

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        url = str(request.url)
        if request.url.host == "oauth2.googleapis.com":
            return self._oauth(request)
        if url.startswith(SESSION_PREFIX):
            return self._put_chunk(request)
        token = request.headers.get("Authorization", "").removeprefix("Bearer ")
        if token not in self.valid_tokens:
            return httpx.Response(401, json={"error": {"status": "UNAUTHENTICATED"}})
        path = request.url.path
        if path == "/drive/v3/files" and request.method == "GET":
            return self._list(request)
        if path == "/drive/v3/files" and request.method == "POST":
            body = json.loads(request.content)
            file_id = self.add(body["name"], body["parents"][0], body["mimeType"])
            return httpx.Response(200, json={"id": file_id})
        if path.startswith("/upload/drive/v3/files"):
            return self._start(request)
        return httpx.Response(404)

    def _oauth(self, request):
        if request.url.path == "/revoke":
            self.revoked.append(request.url.params["token"])
            return httpx.Response(200)
        form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
        self.token_forms.append(form)
        if self.token_responses:
            return self.token_responses.pop(0)
        return httpx.Response(
            200,
            json={"access_token": "good", "refresh_token": "refresh", "expires_in": 3600},
        )

    def _list(self, request):
        query = request.url.params["q"]
        match = QUERY.search(query)
        folders_only = f"mimeType = '{FOLDER}'" in query
        found = [
            {"id": file_id}
            for file_id, entry in self.files.items()
            if entry["name"] == match["name"]
            and entry["parent"] == match["parent"]
            and (not folders_only or entry["mimeType"] == FOLDER)
        ]
        return httpx.Response(200, json={"files": found})

    def _start(self, request):
        body = json.loads(request.content)
        session_id = str(len(self.sessions) + 1)
        if request.method == "PATCH":
            file_id = request.url.path.rsplit("/", 1)[1]
        else:
            file_id = self.add(body["name"], body["parents"][0])
        self.sessions[session_id] = {
            "file_id": file_id,
            "size": int(request.headers["X-Upload-Content-Length"]),
            "data": b"",
        }
        return httpx.Response(200, headers={"Location": SESSION_PREFIX + session_id})

    def _put_chunk(self, request):
        session = self.sessions[str(request.url).removeprefix(SESSION_PREFIX)]
        session["data"] += request.content
        received = len(session["data"])
        if received < session["size"]:
            return httpx.Response(308, headers={"Range": f"bytes=0-{received - 1}"})
        self.files[session["file_id"]]["content"] = session["data"]
        return httpx.Response(200, json={"id": session["file_id"]})


@pytest.fixture
def drive() -> FakeDrive:
    return FakeDrive()
