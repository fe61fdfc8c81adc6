"""Config commands for pagesave."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import click

from pagesave.core import config as config_module
from pagesave.core.config import Config
from pagesave.core.exceptions import ConfigurationError, InvalidURLError
from pagesave.core.output import print_error, print_json, print_key_value, print_success
from pagesave.core.validation import validate_server_url


@click.group()
def config() -> None:
    """Manage pagesave configuration."""
    pass


@config.command("init")
@click.option(
    "--downloads-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Directory for local saves",
)
@click.option("--webdav-url", default=None, help="WebDAV server URL")
@click.option("--webdav-user", default=None, help="WebDAV user name")
@click.option("--github-user", default=None, help="GitHub account owning the repository")
@click.option("--github-repository", default=None, help="GitHub repository for saved pages")
@click.option("--github-branch", default="main", help="GitHub branch")
@click.option("--gdrive-client-id", default=None, help="Google OAuth client id")
@click.option("--force", is_flag=True, help="Overwrite existing config")
def config_init(
    downloads_dir: Optional[Path],
    webdav_url: Optional[str],
    webdav_user: Optional[str],
    github_user: Optional[str],
    github_repository: Optional[str],
    github_branch: str,
    gdrive_client_id: Optional[str],
    force: bool,
) -> None:
    """Create the configuration file.

    Passwords and tokens are never written; set them through environment
    variables (PAGESAVE_WEBDAV_PASSWORD, PAGESAVE_GITHUB_TOKEN,
    PAGESAVE_GDRIVE_CLIENT_SECRET).

    Example:
        pagesave config init --webdav-url https://dav.example.org/pages
    """
    config_file = config_module.CONFIG_FILE
    if config_file.exists() and not force:
        print_error(f"{config_file} already exists. Use --force to overwrite.")
        raise SystemExit(1)

    cfg = Config()
    if downloads_dir:
        cfg.downloads.directory = downloads_dir.expanduser()
    if webdav_url:
        try:
            cfg.webdav.url = validate_server_url(webdav_url)
        except InvalidURLError as e:
            print_error(str(e))
            raise SystemExit(1)
    cfg.webdav.username = webdav_user
    cfg.github.user = github_user
    cfg.github.repository = github_repository
    cfg.github.branch = github_branch
    cfg.gdrive.client_id = gdrive_client_id

    cfg.save(config_file)

    print_success(f"Configuration saved to {config_file}")
    print_key_value(cfg.to_display_dict())


@config.command("show")
@click.option("--output", "-o", type=click.Choice(["json", "table"]), default="table")
def config_show(output: str) -> None:
    """Show current configuration (secrets are not displayed)."""
    try:
        cfg = Config.load()
    except ConfigurationError as e:
        print_error(str(e))
        raise SystemExit(1)

    data = {"config_file": str(config_module.CONFIG_FILE), **cfg.to_display_dict()}
    if output == "json":
        print_json(data)
    else:
        print_key_value(data, title="Configuration")
