"""GitHub repository destination (contents API)."""

from __future__ import annotations

import asyncio
import base64
import logging
from typing import Any
from urllib.parse import quote

import httpx

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
    GITHUB,
    GITHUB_API_URL,
    GITHUB_WEB_URL,
)

logger = logging.getLogger(__name__)


class GitHub(Destination):
    """Commits each page as one file on a branch.

    ``upload`` returns as soon as the target path is known; the commit itself
    runs in ``UploadResult.push_task``.
    """

    name = GITHUB

    def __init__(
        self,
        token: str,
        user: str,
        repository: str,
        branch: str = "main",
        *,
        api_url: str = GITHUB_API_URL,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self.token = token
        self.user = user
        self.repository = repository
        self.branch = branch or "main"
        self.api_url = api_url.rstrip("/")

    def contents_url(self, path: str) -> str:
        return (
            f"{self.api_url}/repos/{self.user}/{self.repository}"
            f"/contents/{quote(path.lstrip('/'), safe='/%')}"
        )

    def web_url(self, path: str) -> str:
        return (
            f"{GITHUB_WEB_URL}/{self.user}/{self.repository}"
            f"/blob/{self.branch}/{quote(path.lstrip('/'), safe='/%')}"
        )

    async def upload(
        self,
        filename: str,
        content: Content,
        options: UploadOptions,
    ) -> UploadResult:
        client = self._make_client(
            headers={
                "Authorization": f"Bearer {self.token}",
                "Accept": "application/vnd.github+json",
            }
        )
        try:
            known_shas: dict[str, str] = {}

            async def exists(path: str) -> bool:
                resp = await self._request(
                    client, "GET", self.contents_url(path), params={"ref": self.branch}
                )
                if resp.status_code == 404:
                    return False
                self._check_response(resp)
                sha = resp.json().get("sha")
                if sha:
                    known_shas[path] = sha
                return True

            target, skipped = await resolve_remote_filename(
                filename,
                options.filename_conflict_action,
                exists,
                options.prompt,
            )
            if (
                options.filename_conflict_action == CONFLICT_ACTION_OVERWRITE
                and target not in known_shas
            ):
                # Replacing a file needs its current blob sha
                await exists(target)
            url = self.web_url(target)
            if skipped:
                await client.aclose()
                return UploadResult(url=url, skipped=True)

            body: dict[str, Any] = {
                "message": f"Add {target}",
                "content": base64.b64encode(as_bytes(content)).decode("ascii"),
                "branch": self.branch,
            }
            if target in known_shas:
                body["sha"] = known_shas[target]
        except BaseException:
            await client.aclose()
            raise

        push_task = asyncio.ensure_future(self._push(client, target, body))
        return UploadResult(url=url, push_task=push_task)

    async def _push(self, client: httpx.AsyncClient, path: str, body: dict[str, Any]) -> None:
        try:
            resp = await self._request(client, "PUT", self.contents_url(path), json=body)
            self._check_response(resp)
            logger.debug("Committed %s to %s/%s", path, self.repository, self.branch)
        finally:
            await client.aclose()
