"""Google Drive authorization commands for pagesave."""

from __future__ import annotations

import asyncio

import click

from pagesave.cli.common import ExitCode, build_token_manager
from pagesave.core.config import Config
from pagesave.core.exceptions import AuthenticationError, UploadCancelledError
from pagesave.core.output import (
    print_error,
    print_json,
    print_key_value,
    print_success,
    print_warning,
)
from pagesave.services import TokenManager


def _token_manager() -> TokenManager:
    tokens = build_token_manager(Config.load())
    if tokens is None:
        print_error(
            "No Google Drive client configured. Set gdrive.client_id in the config "
            "or PAGESAVE_GDRIVE_CLIENT_ID."
        )
        raise SystemExit(ExitCode.GENERAL_ERROR)
    return tokens


@click.group()
def auth() -> None:
    """Manage the Google Drive credential."""
    pass


@auth.command("login")
@click.option("--force", is_flag=True, help="Authorize again even if a credential is cached")
@click.option("--output", "-o", type=click.Choice(["table", "json"]), default="table")
def auth_login(force: bool, output: str) -> None:
    """Authorize pagesave to upload to Google Drive.

    Opens the consent page in a browser, then asks for the URL the browser
    was redirected to.

    Example:
        pagesave auth login
        pagesave auth login --force
    """
    tokens = _token_manager()
    try:
        credential = asyncio.run(tokens.acquire(force=force, force_web_auth_flow=force))
    except UploadCancelledError as e:
        print_warning("Authorization cancelled")
        raise SystemExit(ExitCode.USER_CANCELLED) from e
    except AuthenticationError as e:
        print_error(str(e))
        raise SystemExit(ExitCode.AUTH_ERROR) from e

    expires_at = credential.expires_at.isoformat() if credential.expires_at else None
    if output == "json":
        print_json({"status": "authorized", "expires_at": expires_at})
    else:
        print_success("Google Drive authorized")
        if expires_at:
            click.echo(f"Access token valid until {expires_at}")


@auth.command("logout")
def auth_logout() -> None:
    """Forget the credential and revoke it on Google's side.

    Example:
        pagesave auth logout
    """
    tokens = _token_manager()
    had_credential = tokens.store.has_credential()
    revoked = asyncio.run(tokens.revoke())

    if not had_credential:
        print_warning("No cached credential found")
    elif revoked:
        print_success("Logged out and revoked access")
    else:
        print_success("Logged out")
        print_warning("Remote revocation failed, the token will expire on its own")


@auth.command("status")
@click.option("--output", "-o", type=click.Choice(["table", "json"]), default="table")
def auth_status(output: str) -> None:
    """Show whether a Google Drive credential is cached.

    Example:
        pagesave auth status
    """
    tokens = _token_manager()
    status = tokens.status()
    if output == "json":
        print_json(status)
    else:
        print_key_value(status, title="Google Drive")
