"""WebDAV destination (basic or digest authentication)."""

from __future__ import annotations

import logging
import posixpath
from typing import Optional
from urllib.parse import quote

import httpx

from pagesave.core.validation import validate_server_url
from pagesave.destinations.base import (
    Content,
    Destination,
    UploadOptions,
    UploadResult,
    as_bytes,
    resolve_remote_filename,
)
from pagesave.destinations.constants import WEBDAV

logger = logging.getLogger(__name__)


class WebDAV(Destination):
    """Uploads pages with PUT, creating missing collections with MKCOL."""

    name = WEBDAV

    def __init__(
        self,
        url: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        *,
        auth_scheme: str = "basic",
        **kwargs,
    ) -> None:
        super().__init__(**kwargs)
        self.base_url = validate_server_url(url)
        self.username = username
        self.password = password
        self.auth_scheme = auth_scheme

    def _auth(self) -> Optional[httpx.Auth]:
        if not self.username:
            return None
        if self.auth_scheme == "digest":
            return httpx.DigestAuth(self.username, self.password or "")
        return httpx.BasicAuth(self.username, self.password or "")

    def file_url(self, filename: str) -> str:
        """Absolute URL of filename on the server (``%`` escapes are kept)."""
        return f"{self.base_url}/{quote(filename.lstrip('/'), safe='/%')}"

    async def upload(
        self,
        filename: str,
        content: Content,
        options: UploadOptions,
    ) -> UploadResult:
        async with self._make_client(auth=self._auth()) as client:

            async def exists(name: str) -> bool:
                resp = await self._request(client, "HEAD", self.file_url(name))
                if resp.status_code == 404:
                    return False
                self._check_response(resp)
                return True

            target, skipped = await resolve_remote_filename(
                filename,
                options.filename_conflict_action,
                exists,
                options.prompt,
            )
            url = self.file_url(target)
            if skipped:
                logger.info("Skipping upload, %s already exists", url)
                return UploadResult(url=url, skipped=True)

            body = as_bytes(content)
            headers = {"Content-Type": options.content_type}
            resp = await self._request(client, "PUT", url, content=body, headers=headers)
            if resp.status_code == 409:
                # Parent collection missing
                await self._create_collections(client, target)
                resp = await self._request(client, "PUT", url, content=body, headers=headers)
            self._check_response(resp)
            return UploadResult(url=url)

    async def _create_collections(self, client: httpx.AsyncClient, filename: str) -> None:
        directory = posixpath.dirname(filename.lstrip("/"))
        if not directory:
            return
        path = ""
        for segment in directory.split("/"):
            path = posixpath.join(path, segment)
            resp = await self._request(client, "MKCOL", self.file_url(path) + "/")
            # 405: collection already exists
            self._check_response(resp, expected=(200, 201, 405))
