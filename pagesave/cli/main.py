"""Main CLI entry point for pagesave."""

from __future__ import annotations

import click

from pagesave import __version__

# Import command groups
from pagesave.cli.auth import auth
from pagesave.cli.config_cmd import config
from pagesave.cli.save import save
from pagesave.cli.serve import serve

# =============================================================================
# Main CLI Group
# =============================================================================


@click.group()
@click.version_option(version=__version__, prog_name="pagesave")
def cli() -> None:
    """pagesave - Deliver saved web pages to local or remote storage.

    Reassembles page payloads from capture sessions and saves them to the
    downloads directory, a WebDAV server, Google Drive, GitHub or a
    companion program.

    Get started:

      pagesave config init       # Create config file

      pagesave auth login        # Authorize Google Drive

      pagesave save page.html    # Save a page

    Use --help on any command for more information.
    """
    pass


# =============================================================================
# Register Commands
# =============================================================================

cli.add_command(config)
cli.add_command(auth)
cli.add_command(save)
cli.add_command(serve)


# =============================================================================
# Entry Point
# =============================================================================


def main() -> None:
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
