"""Common CLI utilities, decorators, and helpers."""

from __future__ import annotations

import sys
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar

import click
import httpx

from pagesave.core.auth import CredentialStore
from pagesave.core.config import (
    BOOKMARKS_FILE,
    CONFIG_DIR,
    CREDENTIAL_FILE,
    DOWNLOAD_INDEX_FILE,
    Config,
)
from pagesave.core.exceptions import (
    AuthenticationError,
    ConnectionError,
    PageSaveError,
    UploadCancelledError,
)
from pagesave.core.logging import setup_logging
from pagesave.core.output import OutputFormat, print_error
from pagesave.destinations import DownloadIndex, GDriveAuth, LocalDownloader
from pagesave.services import (
    ConflictResolver,
    DestinationDispatcher,
    JsonBookmarkStore,
    Notarizer,
    SessionCoordinator,
    TaskRegistry,
    TokenManager,
)
from pagesave.services.tokens import AuthFlowLauncher

F = TypeVar("F", bound=Callable[..., Any])


# =============================================================================
# Wiring
# =============================================================================


def build_token_manager(
    config: Config,
    *,
    state_dir: Optional[Path] = None,
    launch_auth_flow: Optional[AuthFlowLauncher] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Optional[TokenManager]:
    """Token manager for Google Drive, or None without an OAuth client id."""
    gdrive = config.gdrive
    if not gdrive.client_id:
        return None
    state_dir = state_dir or CONFIG_DIR
    auth = GDriveAuth(
        gdrive.client_id,
        gdrive.client_secret,
        gdrive.scopes,
        gdrive.redirect_uri,
        timeout=config.timeout,
        transport=transport,
    )
    return TokenManager(CredentialStore(state_dir / CREDENTIAL_FILE.name), auth, launch_auth_flow)


def build_coordinator(
    config: Config,
    *,
    state_dir: Optional[Path] = None,
    launch_auth_flow: Optional[AuthFlowLauncher] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> SessionCoordinator:
    """Assemble a coordinator with the default collaborators."""
    state_dir = state_dir or CONFIG_DIR
    registry = TaskRegistry()
    index = DownloadIndex(state_dir / DOWNLOAD_INDEX_FILE.name)
    tokens = build_token_manager(
        config,
        state_dir=state_dir,
        launch_auth_flow=launch_auth_flow,
        transport=transport,
    )
    dispatcher = DestinationDispatcher(
        registry,
        LocalDownloader(
            config.downloads.directory,
            index,
            config.downloads.replacement_character,
        ),
        ConflictResolver(index),
        config=config,
        tokens=tokens,
        bookmarks=JsonBookmarkStore(state_dir / BOOKMARKS_FILE.name),
        transport=transport,
    )
    return SessionCoordinator(
        dispatcher,
        registry,
        tokens=tokens,
        notarizer=Notarizer(config.notarization_url, timeout=config.timeout, transport=transport),
    )


# =============================================================================
# Context Object
# =============================================================================


class Context:
    """CLI context object passed to commands."""

    def __init__(self) -> None:
        self.config: Optional[Config] = None
        self.config_path: Optional[Path] = None
        self.output_format: OutputFormat = OutputFormat.TABLE
        self.quiet: bool = False
        self.verbose: bool = False
        self.coordinator: Optional[SessionCoordinator] = None

    def get_coordinator(self) -> SessionCoordinator:
        """Get or create the session coordinator."""
        if self.coordinator is not None:
            return self.coordinator
        if self.config is None:
            self.config = Config.load(self.config_path)
        self.coordinator = build_coordinator(self.config)
        return self.coordinator


pass_context = click.make_pass_decorator(Context, ensure=True)


# =============================================================================
# Global Options
# =============================================================================


def global_options(f: F) -> F:
    """Add global options to a command."""

    @click.option(
        "--config",
        "config_path",
        type=click.Path(dir_okay=False, path_type=Path),
        envvar="PAGESAVE_CONFIG",
        help="Config file to use",
    )
    @click.option(
        "--output",
        "-o",
        "output_format",
        type=click.Choice(["json", "table"]),
        default="table",
        help="Output format",
    )
    @click.option(
        "--quiet",
        "-q",
        is_flag=True,
        help="Only show errors",
    )
    @click.option(
        "--verbose",
        "-v",
        is_flag=True,
        help="Enable verbose output",
    )
    @pass_context
    @wraps(f)
    def wrapper(
        ctx: Context,
        config_path: Optional[Path],
        output_format: str,
        quiet: bool,
        verbose: bool,
        *args: Any,
        **kwargs: Any,
    ) -> Any:
        """Populate context from global options and invoke the command."""
        ctx.config_path = config_path
        ctx.output_format = OutputFormat.from_string(output_format)
        ctx.quiet = quiet
        ctx.verbose = verbose

        setup_logging(quiet=quiet, verbose=verbose)

        ctx.config = Config.load(config_path)

        return f(ctx, *args, **kwargs)

    return wrapper  # type: ignore


# =============================================================================
# Error Handling
# =============================================================================


def handle_errors(f: F) -> F:
    """Handle common errors and convert to CLI exceptions."""

    @wraps(f)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        """Capture errors and exit with consistent messaging."""
        try:
            return f(*args, **kwargs)
        except UploadCancelledError:
            print_error("Cancelled")
            sys.exit(ExitCode.USER_CANCELLED)
        except AuthenticationError as e:
            print_error(str(e))
            sys.exit(ExitCode.AUTH_ERROR)
        except ConnectionError as e:
            print_error(str(e))
            sys.exit(ExitCode.NETWORK_ERROR)
        except PageSaveError as e:
            print_error(str(e))
            sys.exit(ExitCode.GENERAL_ERROR)
        except click.ClickException:
            raise
        except Exception as e:
            print_error(f"Unexpected error: {e}")
            sys.exit(ExitCode.GENERAL_ERROR)

    return wrapper  # type: ignore


# =============================================================================
# Exit Codes
# =============================================================================


class ExitCode:
    """Standard exit codes."""

    SUCCESS = 0
    GENERAL_ERROR = 1
    AUTH_ERROR = 2
    NETWORK_ERROR = 3
    USER_CANCELLED = 5
