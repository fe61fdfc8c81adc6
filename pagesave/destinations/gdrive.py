"""Google Drive destination and its OAuth client.

``GDriveAuth`` talks to the OAuth endpoints (authorization URL, code
exchange, refresh, revocation). ``GDrive`` uploads with an access token
through the resumable upload protocol so progress can be reported chunk by
chunk. Credential caching and the refresh-and-retry policy live in
``pagesave.services.tokens``.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Any, Optional
from urllib.parse import parse_qs, urlencode, urlparse

import httpx

from pagesave.core.auth import Credential
from pagesave.core.exceptions import (
    AuthenticationError,
    InvalidTokenError,
    NetworkError,
    ServerUnreachableError,
    UnknownTokenError,
    UploadCancelledError,
    UploadError,
    ValidationError,
)
from pagesave.destinations.base import (
    Content,
    Destination,
    UploadOptions,
    UploadResult,
    as_bytes,
    resolve_remote_filename,
)
from pagesave.destinations.constants import (
    CONFLICT_ACTION_OVERWRITE,
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    GDRIVE,
    GDRIVE_AUTH_URL,
    GDRIVE_CHUNK_SIZE,
    GDRIVE_FILES_URL,
    GDRIVE_FOLDER_MIMETYPE,
    GDRIVE_REVOKE_URL,
    GDRIVE_TOKEN_URL,
    GDRIVE_UPLOAD_URL,
    USER_AGENT,
)

logger = logging.getLogger(__name__)


# =============================================================================
# OAuth
# =============================================================================


class GDriveAuth:
    """OAuth 2.0 installed-app flow against Google's endpoints."""

    def __init__(
        self,
        client_id: str,
        client_secret: Optional[str],
        scopes: list[str],
        redirect_uri: str,
        *,
        timeout: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.client_id = client_id
        self.client_secret = client_secret
        self.scopes = scopes
        self.redirect_uri = redirect_uri
        self.timeout = timeout
        self._transport = transport

    def _make_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
            headers={"User-Agent": USER_AGENT},
        )

    def authorization_url(self, force_consent: bool = False) -> str:
        """URL of the page where the user grants access."""
        params = {
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "response_type": "code",
            "scope": " ".join(self.scopes),
            "access_type": "offline",
        }
        if force_consent:
            params["prompt"] = "consent"
        return f"{GDRIVE_AUTH_URL}?{urlencode(params)}"

    @staticmethod
    def extract_auth_code(redirect_url: str) -> str:
        """Pull the authorization code out of the redirect URL.

        Raises:
            UploadCancelledError: If the user denied access.
            AuthenticationError: If the URL carries no code.
        """
        query = parse_qs(urlparse(redirect_url).query)
        if query.get("error") == ["access_denied"]:
            raise UploadCancelledError()
        codes = query.get("code")
        if not codes:
            raise AuthenticationError(reason="Authorization code not found in redirect URL")
        return codes[0]

    async def exchange_code(self, code: str) -> Credential:
        """Trade an authorization code for a credential."""
        data = await self._token_request(
            {
                "code": code,
                "redirect_uri": self.redirect_uri,
                "grant_type": "authorization_code",
            }
        )
        return self._credential(data)

    async def refresh(self, refresh_token: Optional[str]) -> Credential:
        """Get a new access token from a refresh token.

        Raises:
            UnknownTokenError: If no refresh token is cached or Google no
                longer knows it.
            AuthenticationError: For any other refusal.
        """
        if not refresh_token:
            raise UnknownTokenError(GDRIVE_TOKEN_URL)
        data = await self._token_request(
            {"refresh_token": refresh_token, "grant_type": "refresh_token"}
        )
        credential = self._credential(data)
        credential.refresh_token = credential.refresh_token or refresh_token
        return credential

    async def _post(self, url: str, **kwargs: Any) -> httpx.Response:
        try:
            async with self._make_client() as client:
                return await client.post(url, **kwargs)
        except httpx.ConnectError as e:
            raise ServerUnreachableError(url) from e
        except httpx.TransportError as e:
            raise NetworkError(url, str(e)) from e

    async def revoke(self, token: str) -> None:
        """Revoke a token on Google's side."""
        resp = await self._post(GDRIVE_REVOKE_URL, params={"token": token})
        if resp.status_code not in (200, 400):
            # 400: token already invalid
            raise AuthenticationError(
                GDRIVE_REVOKE_URL, f"Revocation failed: HTTP {resp.status_code}"
            )

    async def _token_request(self, form: dict[str, str]) -> dict[str, Any]:
        form = {"client_id": self.client_id, **form}
        if self.client_secret:
            form["client_secret"] = self.client_secret
        resp = await self._post(GDRIVE_TOKEN_URL, data=form)
        if resp.status_code == 400 and _error_code(resp) == "invalid_grant":
            raise UnknownTokenError(GDRIVE_TOKEN_URL)
        if not resp.is_success:
            raise AuthenticationError(
                GDRIVE_TOKEN_URL, _error_code(resp) or f"HTTP {resp.status_code}"
            )
        return resp.json()

    @staticmethod
    def _credential(data: dict[str, Any]) -> Credential:
        expires_in = data.get("expires_in")
        return Credential(
            access_token=data.get("access_token"),
            refresh_token=data.get("refresh_token"),
            expires_at=(
                datetime.now() + timedelta(seconds=int(expires_in)) if expires_in else None
            ),
        )


def _error_code(resp: httpx.Response) -> Optional[str]:
    try:
        body = resp.json()
    except ValueError:
        return None
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict):
        return error.get("status") or error.get("message")
    return error


# =============================================================================
# Upload
# =============================================================================


class GDrive(Destination):
    """Resumable uploads into My Drive; ``/`` in filenames creates folders."""

    name = GDRIVE

    def __init__(
        self,
        access_token: str,
        *,
        chunk_size: int = GDRIVE_CHUNK_SIZE,
        root_folder: str = "root",
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.access_token = access_token
        self.chunk_size = chunk_size
        self.root_folder = root_folder

    def _check(self, resp: httpx.Response, expected: tuple[int, ...] = ()) -> None:
        if resp.status_code == 401:
            raise InvalidTokenError(str(resp.request.url))
        self._check_response(resp, expected)

    async def upload(
        self,
        filename: str,
        content: Content,
        options: UploadOptions,
    ) -> UploadResult:
        parts = [part for part in filename.split("/") if part]
        if not parts:
            raise ValidationError("Filename is empty", field="filename", value=filename)
        *folders, name = parts
        data = as_bytes(content)
        headers = {"Authorization": f"Bearer {self.access_token}"}
        async with self._make_client(headers=headers) as client:
            parent = self.root_folder
            for folder in folders:
                parent = await self._ensure_folder(client, folder, parent)

            existing: dict[str, str] = {}

            async def exists(candidate: str) -> bool:
                file_id = await self._find(client, candidate, parent)
                if file_id:
                    existing[candidate] = file_id
                return file_id is not None

            target, skipped = await resolve_remote_filename(
                name,
                options.filename_conflict_action,
                exists,
                options.prompt,
            )
            if skipped:
                return UploadResult(url=self.file_url(existing[target]), skipped=True)
            if (
                options.filename_conflict_action == CONFLICT_ACTION_OVERWRITE
                and target not in existing
            ):
                await exists(target)

            session_url = await self._start_session(
                client,
                target,
                parent,
                len(data),
                options.content_type,
                existing.get(target),
            )
            file_id = await self._send_chunks(client, session_url, data, options)
            return UploadResult(url=self.file_url(file_id))

    @staticmethod
    def file_url(file_id: str) -> str:
        return f"https://drive.google.com/file/d/{file_id}/view"

    async def _find(
        self,
        client: httpx.AsyncClient,
        name: str,
        parent: str,
        mime_type: Optional[str] = None,
    ) -> Optional[str]:
        escaped = name.replace("\\", "\\\\").replace("'", "\\'")
        query = f"name = '{escaped}' and '{parent}' in parents and trashed = false"
        if mime_type:
            query += f" and mimeType = '{mime_type}'"
        resp = await self._request(
            client, "GET", GDRIVE_FILES_URL, params={"q": query, "fields": "files(id)"}
        )
        self._check(resp)
        files = resp.json().get("files", [])
        return files[0]["id"] if files else None

    async def _ensure_folder(self, client: httpx.AsyncClient, name: str, parent: str) -> str:
        folder_id = await self._find(client, name, parent, GDRIVE_FOLDER_MIMETYPE)
        if folder_id:
            return folder_id
        resp = await self._request(
            client,
            "POST",
            GDRIVE_FILES_URL,
            json={"name": name, "parents": [parent], "mimeType": GDRIVE_FOLDER_MIMETYPE},
        )
        self._check(resp)
        return resp.json()["id"]

    async def _start_session(
        self,
        client: httpx.AsyncClient,
        name: str,
        parent: str,
        size: int,
        content_type: str,
        file_id: Optional[str],
    ) -> str:
        headers = {
            "X-Upload-Content-Type": content_type,
            "X-Upload-Content-Length": str(size),
        }
        if file_id:
            # Overwrite keeps the existing file and replaces its content
            resp = await self._request(
                client,
                "PATCH",
                f"{GDRIVE_UPLOAD_URL}/{file_id}",
                params={"uploadType": "resumable"},
                json={"name": name},
                headers=headers,
            )
        else:
            resp = await self._request(
                client,
                "POST",
                GDRIVE_UPLOAD_URL,
                params={"uploadType": "resumable"},
                json={"name": name, "parents": [parent]},
                headers=headers,
            )
        self._check(resp)
        location = resp.headers.get("Location")
        if not location:
            raise UploadError("Upload session URL missing from response", resp.status_code)
        return location

    async def _send_chunks(
        self,
        client: httpx.AsyncClient,
        session_url: str,
        data: bytes,
        options: UploadOptions,
    ) -> str:
        size = len(data)
        offset = 0
        while True:
            chunk = data[offset : offset + self.chunk_size]
            if chunk:
                content_range = f"bytes {offset}-{offset + len(chunk) - 1}/{size}"
            else:
                content_range = f"bytes */{size}"
            resp = await self._request(
                client,
                "PUT",
                session_url,
                content=chunk,
                headers={"Content-Range": content_range},
            )
            if resp.status_code == 308:
                offset = _next_offset(resp, offset + len(chunk))
                if options.on_progress:
                    options.on_progress(offset, size)
                continue
            self._check(resp, expected=(200, 201))
            if options.on_progress:
                options.on_progress(size, size)
            return resp.json()["id"]


def _next_offset(resp: httpx.Response, default: int) -> int:
    """Offset after the last byte the server acknowledged (``Range: bytes=0-N``)."""
    range_header = resp.headers.get("Range")
    if not range_header:
        return default
    try:
        return int(range_header.rsplit("-", 1)[1]) + 1
    except (IndexError, ValueError):
        logger.warning("Ignoring malformed Range header %r", range_header)
        return default
