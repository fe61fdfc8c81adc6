"""Tests for pagesave.services.tokens module."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock

import pytest

from pagesave.core.auth import Credential, CredentialStore
from pagesave.core.exceptions import (
    AuthenticationError,
    InvalidTokenError,
    UnknownTokenError,
    UploadCancelledError,
)
from pagesave.services.tokens import TokenManager, TokenState

AUTH_URL = "https://accounts.example.org/auth"
REDIRECT = "http://127.0.0.1:8765/?code=abc"


@pytest.fixture
def store(temp_dir: Path) -> CredentialStore:
    return CredentialStore(temp_dir / ".credential")


@pytest.fixture
def auth() -> MagicMock:
    mock = MagicMock()
    mock.authorization_url.return_value = AUTH_URL
    mock.extract_auth_code.return_value = "abc"
    mock.exchange_code = AsyncMock(
        return_value=Credential(access_token="fresh", refresh_token="refresh")
    )
    mock.refresh = AsyncMock(
        return_value=Credential(access_token="refreshed", refresh_token="refresh")
    )
    mock.revoke = AsyncMock()
    return mock


# =============================================================================
# Acquisition
# =============================================================================


class TestAcquire:
    async def test_cached_credential(self, store, auth):
        store.set(Credential(access_token="cached"))
        launcher = AsyncMock()
        manager = TokenManager(store, auth, launcher)

        credential = await manager.acquire()

        assert credential.access_token == "cached"
        launcher.assert_not_awaited()
        assert manager.state == TokenState.AUTHORIZED

    async def test_interactive_flow_persists(self, store, auth):
        launcher = AsyncMock(return_value=REDIRECT)
        manager = TokenManager(store, auth, launcher)
        assert manager.state == TokenState.NO_CREDENTIAL

        credential = await manager.acquire()

        assert credential.access_token == "fresh"
        launcher.assert_awaited_once_with(AUTH_URL)
        auth.extract_auth_code.assert_called_once_with(REDIRECT)
        auth.authorization_url.assert_called_once_with(force_consent=False)
        assert store.get().access_token == "fresh"
        assert manager.state == TokenState.AUTHORIZED

    async def test_force_web_auth_flow_forces_consent(self, store, auth):
        manager = TokenManager(store, auth, AsyncMock(return_value=REDIRECT))
        await manager.acquire(force_web_auth_flow=True)
        auth.authorization_url.assert_called_once_with(force_consent=True)

    async def test_dismissed_flow_cancels(self, store, auth):
        store.set(Credential(refresh_token="stale"))
        manager = TokenManager(store, auth, AsyncMock(return_value=None))

        with pytest.raises(UploadCancelledError):
            await manager.acquire()

        assert store.get() is None
        assert manager.state == TokenState.NO_CREDENTIAL

    async def test_exchange_failure_clears_store(self, store, auth):
        auth.exchange_code.side_effect = AuthenticationError(reason="bad code")
        manager = TokenManager(store, auth, AsyncMock(return_value=REDIRECT))

        with pytest.raises(AuthenticationError):
            await manager.acquire()

        assert not store.cache_file.exists()
        assert manager.state == TokenState.NO_CREDENTIAL


# =============================================================================
# Refresh and retry
# =============================================================================


class TestRun:
    async def test_success_without_refresh(self, store, auth):
        store.set(Credential(access_token="cached"))
        manager = TokenManager(store, auth, AsyncMock())
        operation = AsyncMock(return_value="ok")

        assert await manager.run(operation) == "ok"
        auth.refresh.assert_not_awaited()

    async def test_retry_once_after_refresh(self, store, auth):
        store.set(Credential(access_token="old", refresh_token="refresh"))
        manager = TokenManager(store, auth, AsyncMock())
        operation = AsyncMock(side_effect=[InvalidTokenError(), "ok"])

        result = await manager.run(operation)

        assert result == "ok"
        auth.refresh.assert_awaited_once_with("refresh")
        assert operation.await_args_list[1].args[0].access_token == "refreshed"
        assert store.get().access_token == "refreshed"

    async def test_second_invalid_token_propagates(self, store, auth):
        store.set(Credential(access_token="old", refresh_token="refresh"))
        manager = TokenManager(store, auth, AsyncMock())
        operation = AsyncMock(side_effect=InvalidTokenError())

        with pytest.raises(InvalidTokenError):
            await manager.run(operation)

        assert operation.await_count == 2
        auth.refresh.assert_awaited_once()

    async def test_unknown_refresh_token_reauthorizes(self, store, auth):
        store.set(Credential(access_token="old", refresh_token="revoked"))
        auth.refresh.side_effect = UnknownTokenError()
        launcher = AsyncMock(return_value=REDIRECT)
        manager = TokenManager(store, auth, launcher)
        operation = AsyncMock(side_effect=[InvalidTokenError(), "ok"])

        assert await manager.run(operation) == "ok"

        launcher.assert_awaited_once()
        auth.authorization_url.assert_called_once_with(force_consent=True)
        assert operation.await_args_list[1].args[0].access_token == "fresh"

    async def test_other_errors_are_not_retried(self, store, auth):
        store.set(Credential(access_token="old"))
        manager = TokenManager(store, auth, AsyncMock())
        operation = AsyncMock(side_effect=RuntimeError("boom"))

        with pytest.raises(RuntimeError):
            await manager.run(operation)

        assert operation.await_count == 1


# =============================================================================
# Revocation
# =============================================================================


class TestRevoke:
    async def test_revoke(self, store, auth):
        store.set(Credential(access_token="token"))
        manager = TokenManager(store, auth, AsyncMock())

        assert await manager.revoke() is True

        auth.revoke.assert_awaited_once_with("token")
        assert store.get() is None
        assert manager.state == TokenState.REVOKED

    async def test_local_removal_survives_remote_failure(self, store, auth):
        store.set(Credential(access_token="token"))
        auth.revoke.side_effect = AuthenticationError(reason="HTTP 500")
        manager = TokenManager(store, auth, AsyncMock())

        assert await manager.revoke() is False
        assert store.get() is None

    async def test_revoke_without_credential(self, store, auth):
        manager = TokenManager(store, auth, AsyncMock())
        assert await manager.revoke() is False
        auth.revoke.assert_not_awaited()

    def test_status(self, store, auth):
        manager = TokenManager(store, auth, AsyncMock())
        assert manager.status() == {
            "state": "no_credential",
            "authorized": False,
            "expires_at": None,
        }
