"""Credential persistence for the Google Drive destination.

One credential set is shared process-wide and survives restarts in a small
JSON file readable only by its owner.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path

from pagesave.core.config import CREDENTIAL_FILE

logger = logging.getLogger(__name__)


# =============================================================================
# Credential
# =============================================================================


@dataclass
class Credential:
    """Bearer/refresh token pair with metadata."""

    access_token: str | None = None
    refresh_token: str | None = None
    revokable_access_token: str | None = None
    expires_at: datetime | None = None

    def is_expired(self) -> bool:
        """Check if the access token has expired."""
        if self.expires_at:
            return datetime.now() >= self.expires_at
        return False

    @property
    def revocation_token(self) -> str | None:
        """Token to hand to the revocation endpoint."""
        return self.access_token or self.revokable_access_token

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "accessToken": self.access_token,
            "refreshToken": self.refresh_token,
            "revokableAccessToken": self.revokable_access_token,
            "expiresAt": self.expires_at.isoformat() if self.expires_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Credential:
        """Create from dictionary."""
        return cls(
            access_token=data.get("accessToken"),
            refresh_token=data.get("refreshToken"),
            revokable_access_token=data.get("revokableAccessToken"),
            expires_at=(
                datetime.fromisoformat(data["expiresAt"]) if data.get("expiresAt") else None
            ),
        )


# =============================================================================
# CredentialStore
# =============================================================================


class CredentialStore:
    """Reads and writes the cached credential."""

    def __init__(self, cache_file: Path | None = None):
        """Initialize credential store.

        Args:
            cache_file: Path to credential cache file.
        """
        self.cache_file = cache_file or CREDENTIAL_FILE

    def get(self) -> Credential | None:
        """Load the cached credential.

        Returns:
            Cached credential, or None when missing or unreadable.
        """
        if not self.cache_file.exists():
            return None

        try:
            with open(self.cache_file) as f:
                data = json.load(f)
            return Credential.from_dict(data)
        except (json.JSONDecodeError, KeyError, ValueError, AttributeError):
            logger.warning("Discarding unreadable credential cache %s", self.cache_file)
            self.remove()
            return None

    def set(self, credential: Credential) -> Credential:
        """Persist a credential.

        Args:
            credential: Credential to store.

        Returns:
            The stored credential.
        """
        self.cache_file.parent.mkdir(parents=True, exist_ok=True)

        with open(self.cache_file, "w") as f:
            json.dump(credential.to_dict(), f)

        # Owner read/write only
        try:
            os.chmod(self.cache_file, 0o600)
        except OSError:
            pass  # May fail on some systems

        return credential

    def remove(self) -> bool:
        """Delete the cached credential.

        Returns:
            True if a cache file was removed.
        """
        if self.cache_file.exists():
            try:
                self.cache_file.unlink()
                return True
            except OSError as e:
                logger.warning("Could not remove credential cache: %s", e)
        return False

    def has_credential(self) -> bool:
        """Check if a usable access token is cached."""
        credential = self.get()
        return credential is not None and bool(credential.access_token)
