"""Destination contract shared by every backend.

A destination exposes exactly two operations: ``upload`` and ``abort``.
``abort`` is synchronous so it can be installed as a task's cancel callback;
it cancels whatever network call the destination is currently awaiting.
"""

from __future__ import annotations

import asyncio
import logging
import posixpath
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, ClassVar, Optional, TypeVar, Union

import httpx

from pagesave.core.exceptions import (
    AuthenticationError,
    NetworkError,
    ServerUnreachableError,
    UploadCancelledError,
    UploadError,
    ValidationError,
)
from pagesave.destinations.constants import (
    CONFLICT_ACTION_OVERWRITE,
    CONFLICT_ACTION_PROMPT,
    CONFLICT_ACTION_SKIP,
    CONFLICT_ACTION_UNIQUIFY,
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    MAX_UNIQUIFY_ATTEMPTS,
    USER_AGENT,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

PromptCallback = Callable[[str], Awaitable[Optional[str]]]
ProgressCallback = Callable[[int, int], None]
Content = Union[str, bytes]


# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class UploadOptions:
    """Per-upload options passed to ``Destination.upload``."""

    filename_conflict_action: str = CONFLICT_ACTION_UNIQUIFY
    prompt: Optional[PromptCallback] = None
    on_progress: Optional[ProgressCallback] = None
    content_type: str = "text/html"


@dataclass
class UploadResult:
    """Location of the saved page.

    ``push_task`` is set by destinations that return the final URL before the
    data transfer has finished; callers await it with ``wait``.
    """

    url: Optional[str] = None
    push_task: Optional[asyncio.Future] = None
    skipped: bool = False

    async def wait(self) -> None:
        if self.push_task is not None:
            await self.push_task


# =============================================================================
# Destination
# =============================================================================


class Destination(ABC):
    """Base class for upload backends."""

    name: ClassVar[str] = "destination"

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.timeout = timeout
        self._transport = transport
        self._aborted = False
        self._inflight: Optional[asyncio.Future] = None

    @abstractmethod
    async def upload(
        self,
        filename: str,
        content: Content,
        options: UploadOptions,
    ) -> UploadResult:
        """Persist content under filename and return where it ended up."""

    def abort(self) -> None:
        """Interrupt the current network operation and refuse new ones."""
        self._aborted = True
        if self._inflight is not None and not self._inflight.done():
            logger.debug("Aborting in-flight %s request", self.name)
            self._inflight.cancel()

    @property
    def aborted(self) -> bool:
        return self._aborted

    def _check_aborted(self) -> None:
        if self._aborted:
            raise UploadCancelledError()

    async def _run(self, factory: Callable[[], Awaitable[T]]) -> T:
        """Await one network step so that ``abort`` can interrupt it."""
        self._check_aborted()
        task = asyncio.ensure_future(factory())
        self._inflight = task
        try:
            return await task
        except asyncio.CancelledError:
            if self._aborted:
                raise UploadCancelledError() from None
            raise
        finally:
            self._inflight = None

    def _make_client(self, **kwargs: Any) -> httpx.AsyncClient:
        headers = {"User-Agent": USER_AGENT, **kwargs.pop("headers", {})}
        return httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
            follow_redirects=True,
            headers=headers,
            **kwargs,
        )

    async def _request(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """Send one abortable request, mapping transport failures."""
        try:
            return await self._run(lambda: client.request(method, url, **kwargs))
        except httpx.ConnectError as e:
            raise ServerUnreachableError(url) from e
        except httpx.TimeoutException as e:
            raise NetworkError(url, f"Timeout after {self.timeout}s") from e
        except httpx.TransportError as e:
            raise NetworkError(url, str(e)) from e

    def _check_response(self, resp: httpx.Response, expected: tuple[int, ...] = ()) -> None:
        """Raise a typed error for an unexpected status code."""
        if resp.status_code in expected or (not expected and resp.is_success):
            return
        url = str(resp.request.url)
        if resp.status_code in (401, 403):
            raise AuthenticationError(url, f"HTTP {resp.status_code}")
        raise UploadError(
            f"HTTP {resp.status_code} {resp.reason_phrase}".strip(),
            status_code=resp.status_code,
        )


# =============================================================================
# Conflict Helpers
# =============================================================================


def uniquify_filename(filename: str, index: int) -> str:
    """Return ``dir/name (index).ext`` for ``dir/name.ext``."""
    directory, basename = posixpath.split(filename)
    stem, ext = posixpath.splitext(basename)
    return posixpath.join(directory, f"{stem} ({index}){ext}")


async def resolve_remote_filename(
    filename: str,
    action: str,
    exists: Callable[[str], Awaitable[bool]],
    prompt: Optional[PromptCallback] = None,
) -> tuple[str, bool]:
    """Pick the remote filename according to the conflict action.

    Args:
        filename: Requested filename.
        action: One of uniquify, overwrite, skip, prompt.
        exists: Coroutine telling whether a remote name is taken.
        prompt: Asks the session for another name; None or empty means the
            user dismissed the prompt.

    Returns:
        Tuple of (filename to write, skipped).

    Raises:
        UploadCancelledError: If the prompt is dismissed.
        UploadError: If no free "name (N)" variant was found.
        ValidationError: If the action is unknown.
    """
    if action == CONFLICT_ACTION_OVERWRITE or not await exists(filename):
        return filename, False

    if action == CONFLICT_ACTION_SKIP:
        return filename, True

    if action == CONFLICT_ACTION_UNIQUIFY:
        for index in range(1, MAX_UNIQUIFY_ATTEMPTS + 1):
            candidate = uniquify_filename(filename, index)
            if not await exists(candidate):
                return candidate, False
        raise UploadError(f"No free filename found for {filename}")

    if action == CONFLICT_ACTION_PROMPT:
        while True:
            answer = await prompt(filename) if prompt else None
            if not answer:
                raise UploadCancelledError()
            filename = answer
            if not await exists(filename):
                return filename, False

    raise ValidationError(
        f"Invalid filename conflict action: {action}",
        field="filenameConflictAction",
        value=action,
    )


def as_bytes(content: Content) -> bytes:
    if isinstance(content, bytes):
        return content
    return content.encode("utf-8")
