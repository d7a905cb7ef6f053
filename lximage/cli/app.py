"""Main Typer application — imports and registers all CLI commands.

Entry point: ``lximage`` (configured via pyproject.toml console_scripts).

Commands: build, check.
"""

from __future__ import annotations

import logging

import typer
from rich.console import Console
from rich.logging import RichHandler

from lximage.cli.commands.build import build_cmd
from lximage.cli.commands.check import check_cmd
from lximage.config import settings

app = typer.Typer(
    name="lximage",
    help="lximage: build LX-branded ZFS container images from root-filesystem archives.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
    context_settings={"help_option_names": ["-h", "--help"]},
)

# Register subcommands
app.command(name="build", help="Build an image and manifest from an archive.")(build_cmd)
app.command(name="check", help="Check that the host build tools are installed.")(check_cmd)


def configure_logging(level: str) -> None:
    """Route library logging through Rich on stderr."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


@app.callback()
def main_callback() -> None:
    """lximage: build LX-branded ZFS container images."""
    configure_logging(settings.effective_log_level)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
