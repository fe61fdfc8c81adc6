"""Google Drive credential lifecycle.

Acquisition (cached or interactive), the single refresh-and-retry on an
invalid token, and revocation.
"""

from __future__ import annotations

import asyncio
import logging
import webbrowser
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, Optional, TypeVar

import click

from pagesave.core.auth import Credential, CredentialStore
from pagesave.core.exceptions import (
    InvalidTokenError,
    PageSaveError,
    UnknownTokenError,
    UploadCancelledError,
)
from pagesave.destinations.gdrive import GDriveAuth

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Receives the authorization URL, returns the URL the browser was redirected
# to (None when the user gave up)
AuthFlowLauncher = Callable[[str], Awaitable[Optional[str]]]


class TokenState(Enum):
    NO_CREDENTIAL = "no_credential"
    AUTHORIZING = "authorizing"
    AUTHORIZED = "authorized"
    REFRESHING = "refreshing"
    REVOKED = "revoked"


async def launch_in_browser(auth_url: str) -> Optional[str]:
    """Open the consent page and ask for the redirect URL on the terminal."""
    click.echo(f"Opening {auth_url}", err=True)
    webbrowser.open(auth_url)
    answer = await asyncio.to_thread(
        click.prompt,
        "Paste the full URL your browser was redirected to",
        default="",
        show_default=False,
        err=True,
    )
    return answer.strip() or None


class TokenManager:
    """Owns the process-wide Google Drive credential."""

    def __init__(
        self,
        store: CredentialStore,
        auth: GDriveAuth,
        launch_auth_flow: Optional[AuthFlowLauncher] = None,
    ):
        self.store = store
        self.auth = auth
        self.launch_auth_flow = launch_auth_flow or launch_in_browser
        self.state = TokenState.AUTHORIZED if store.has_credential() else TokenState.NO_CREDENTIAL

    async def acquire(self, force: bool = False, force_web_auth_flow: bool = False) -> Credential:
        """Return a usable credential, authorizing interactively if needed.

        Args:
            force: Ignore the cached credential.
            force_web_auth_flow: Make the consent page ask again even if the
                account already granted access.

        Raises:
            UploadCancelledError: If the user dismissed the authorization.
            AuthenticationError: If the code exchange failed.
        """
        if not force:
            cached = self.store.get()
            if cached is not None and cached.access_token:
                self.state = TokenState.AUTHORIZED
                return cached

        self.state = TokenState.AUTHORIZING
        try:
            auth_url = self.auth.authorization_url(force_consent=force or force_web_auth_flow)
            redirect_url = await self.launch_auth_flow(auth_url)
            if not redirect_url:
                raise UploadCancelledError()
            code = self.auth.extract_auth_code(redirect_url)
            credential = await self.auth.exchange_code(code)
        except Exception:
            self.store.remove()
            self.state = TokenState.NO_CREDENTIAL
            raise

        self.store.set(credential)
        self.state = TokenState.AUTHORIZED
        logger.info("Google Drive authorization granted")
        return credential

    async def run(
        self,
        operation: Callable[[Credential], Awaitable[T]],
        *,
        force_web_auth_flow: bool = False,
    ) -> T:
        """Run an operation with a credential, refreshing it at most once.

        An ``InvalidTokenError`` from the operation triggers one refresh (or
        a new authorization when the refresh token is unknown) and a single
        retry. A second ``InvalidTokenError`` propagates.
        """
        credential = await self.acquire(force_web_auth_flow=force_web_auth_flow)
        retried = False
        while True:
            try:
                return await operation(credential)
            except InvalidTokenError:
                if retried:
                    raise
                retried = True
                logger.debug("Access token rejected, refreshing")
                credential = await self._refresh(credential, force_web_auth_flow)

    async def _refresh(self, credential: Credential, force_web_auth_flow: bool) -> Credential:
        self.state = TokenState.REFRESHING
        try:
            refreshed = await self.auth.refresh(credential.refresh_token)
        except UnknownTokenError:
            logger.info("Refresh token no longer valid, authorizing again")
            return await self.acquire(force=True, force_web_auth_flow=force_web_auth_flow)
        except Exception:
            self.state = TokenState.AUTHORIZED
            raise
        self.store.set(refreshed)
        self.state = TokenState.AUTHORIZED
        return refreshed

    async def revoke(self) -> bool:
        """Forget the credential locally, then revoke it remotely.

        Returns:
            True if the remote revocation succeeded.
        """
        credential = self.store.get()
        self.store.remove()
        self.state = TokenState.REVOKED

        token = credential.revocation_token if credential else None
        if not token:
            return False
        try:
            await self.auth.revoke(token)
        except PageSaveError as e:
            logger.warning("Remote token revocation failed: %s", e)
            return False
        return True

    def status(self) -> dict[str, Any]:
        credential = self.store.get()
        return {
            "state": self.state.value,
            "authorized": credential is not None and bool(credential.access_token),
            "expires_at": (
                credential.expires_at.isoformat()
                if credential is not None and credential.expires_at
                else None
            ),
        }
