"""Configuration management for pagesave.

Supports a YAML config file and environment variable overrides.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from pagesave.core.exceptions import ConfigurationError

# =============================================================================
# Constants
# =============================================================================

CONFIG_DIR = Path.home() / ".config" / "pagesave"
CONFIG_FILE = CONFIG_DIR / "config.yaml"
CREDENTIAL_FILE = CONFIG_DIR / ".credential"
DOWNLOAD_INDEX_FILE = CONFIG_DIR / "downloads.jsonl"
BOOKMARKS_FILE = CONFIG_DIR / "bookmarks.json"

DEFAULT_DOWNLOADS_DIR = Path.home() / "Downloads"
DEFAULT_TIMEOUT = 30

GDRIVE_SCOPES = ["https://www.googleapis.com/auth/drive.file"]
GDRIVE_REDIRECT_URI = "http://127.0.0.1:8765"

# Environment variable names
ENV_DOWNLOADS_DIR = "PAGESAVE_DOWNLOADS_DIR"
ENV_WEBDAV_URL = "PAGESAVE_WEBDAV_URL"
ENV_WEBDAV_USER = "PAGESAVE_WEBDAV_USER"
ENV_WEBDAV_PASSWORD = "PAGESAVE_WEBDAV_PASSWORD"
ENV_GITHUB_TOKEN = "PAGESAVE_GITHUB_TOKEN"
ENV_GDRIVE_CLIENT_ID = "PAGESAVE_GDRIVE_CLIENT_ID"
ENV_GDRIVE_CLIENT_SECRET = "PAGESAVE_GDRIVE_CLIENT_SECRET"
ENV_TIMEOUT = "PAGESAVE_TIMEOUT"


# =============================================================================
# Sections
# =============================================================================


@dataclass
class DownloadSettings:
    """Local download destination."""

    directory: Path = DEFAULT_DOWNLOADS_DIR
    replacement_character: str = "_"

    def to_dict(self) -> dict[str, Any]:
        return {
            "directory": str(self.directory),
            "replacement_character": self.replacement_character,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DownloadSettings":
        return cls(
            directory=Path(data.get("directory", DEFAULT_DOWNLOADS_DIR)).expanduser(),
            replacement_character=data.get("replacement_character", "_"),
        )


@dataclass
class WebDAVSettings:
    """WebDAV server used by ``--webdav`` saves."""

    url: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None
    auth_scheme: str = "basic"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization (password excluded)."""
        return {
            "url": self.url,
            "username": self.username,
            "auth_scheme": self.auth_scheme,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WebDAVSettings":
        return cls(
            url=data.get("url"),
            username=data.get("username"),
            password=data.get("password"),
            auth_scheme=data.get("auth_scheme", "basic"),
        )


@dataclass
class GitHubSettings:
    """GitHub repository used by ``--github`` saves."""

    user: Optional[str] = None
    repository: Optional[str] = None
    branch: str = "main"
    token: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization (token excluded)."""
        return {
            "user": self.user,
            "repository": self.repository,
            "branch": self.branch,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GitHubSettings":
        return cls(
            user=data.get("user"),
            repository=data.get("repository"),
            branch=data.get("branch", "main"),
            token=data.get("token"),
        )


@dataclass
class GDriveSettings:
    """OAuth client used for the Google Drive destination."""

    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    scopes: list[str] = field(default_factory=lambda: list(GDRIVE_SCOPES))
    redirect_uri: str = GDRIVE_REDIRECT_URI

    def to_dict(self) -> dict[str, Any]:
        return {
            "client_id": self.client_id,
            "scopes": self.scopes,
            "redirect_uri": self.redirect_uri,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "GDriveSettings":
        return cls(
            client_id=data.get("client_id"),
            client_secret=data.get("client_secret"),
            scopes=list(data.get("scopes") or GDRIVE_SCOPES),
            redirect_uri=data.get("redirect_uri", GDRIVE_REDIRECT_URI),
        )


# =============================================================================
# Config
# =============================================================================


@dataclass
class Config:
    """Application configuration."""

    output_format: str = "table"
    timeout: int = DEFAULT_TIMEOUT
    downloads: DownloadSettings = field(default_factory=DownloadSettings)
    webdav: WebDAVSettings = field(default_factory=WebDAVSettings)
    github: GitHubSettings = field(default_factory=GitHubSettings)
    gdrive: GDriveSettings = field(default_factory=GDriveSettings)
    companion_command: list[str] = field(default_factory=list)
    notarization_url: Optional[str] = None

    @classmethod
    def load(cls, config_path: Optional[Path] = None) -> "Config":
        """Load config from file with environment variable overrides.

        Priority (highest to lowest):
        1. Environment variables
        2. Config file
        3. Defaults

        Args:
            config_path: Optional path to config file.

        Returns:
            Loaded configuration.
        """
        path = config_path or CONFIG_FILE
        config = cls()

        # Load from file if exists
        if path.exists():
            try:
                with open(path) as f:
                    data = yaml.safe_load(f) or {}

                config.output_format = data.get("output_format", "table")
                config.timeout = int(data.get("timeout", DEFAULT_TIMEOUT))
                config.downloads = DownloadSettings.from_dict(data.get("downloads") or {})
                config.webdav = WebDAVSettings.from_dict(data.get("webdav") or {})
                config.github = GitHubSettings.from_dict(data.get("github") or {})
                config.gdrive = GDriveSettings.from_dict(data.get("gdrive") or {})
                config.companion_command = list(data.get("companion_command") or [])
                config.notarization_url = data.get("notarization_url")
            except Exception as e:
                raise ConfigurationError(f"Failed to load config: {e}")

        # Environment variable overrides
        if downloads_dir := os.getenv(ENV_DOWNLOADS_DIR):
            config.downloads.directory = Path(downloads_dir).expanduser()
        if url := os.getenv(ENV_WEBDAV_URL):
            config.webdav.url = url
        if user := os.getenv(ENV_WEBDAV_USER):
            config.webdav.username = user
        if password := os.getenv(ENV_WEBDAV_PASSWORD):
            config.webdav.password = password
        if token := os.getenv(ENV_GITHUB_TOKEN):
            config.github.token = token
        if client_id := os.getenv(ENV_GDRIVE_CLIENT_ID):
            config.gdrive.client_id = client_id
        if client_secret := os.getenv(ENV_GDRIVE_CLIENT_SECRET):
            config.gdrive.client_secret = client_secret
        if timeout := os.getenv(ENV_TIMEOUT):
            try:
                config.timeout = int(timeout)
            except ValueError:
                raise ConfigurationError(
                    "Timeout must be an integer", field=ENV_TIMEOUT, value=timeout
                )

        return config

    def save(self, config_path: Optional[Path] = None) -> None:
        """Save config to file (excludes secrets).

        Args:
            config_path: Optional path to config file.
        """
        path = config_path or CONFIG_FILE
        path.parent.mkdir(parents=True, exist_ok=True)

        data = {
            "output_format": self.output_format,
            "timeout": self.timeout,
            "downloads": self.downloads.to_dict(),
            "webdav": self.webdav.to_dict(),
            "github": self.github.to_dict(),
            "gdrive": self.gdrive.to_dict(),
            "companion_command": self.companion_command,
            "notarization_url": self.notarization_url,
        }

        with open(path, "w") as f:
            yaml.dump(data, f, default_flow_style=False, sort_keys=False)

    def to_display_dict(self) -> dict[str, Any]:
        """Flatten the config for ``pagesave config show``."""
        return {
            "downloads_dir": str(self.downloads.directory),
            "webdav_url": self.webdav.url,
            "webdav_user": self.webdav.username,
            "github_repository": (
                f"{self.github.user}/{self.github.repository}"
                if self.github.user and self.github.repository
                else None
            ),
            "github_branch": self.github.branch,
            "gdrive_client_id": self.gdrive.client_id,
            "companion_command": " ".join(self.companion_command) or None,
            "timeout": self.timeout,
        }
