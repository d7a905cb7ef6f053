"""``lximage check`` — verify the host tools a build drives are installed.

Reports on ``zfs``, GNU ``tar``, ``crle`` and, when configured, the
external manifest tool.  Exits 1 if any required tool is missing.
"""

from __future__ import annotations

import shutil

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from lximage.config import BuilderSettings, settings

console = Console()


def required_tools(config: BuilderSettings) -> list[tuple[str, str]]:
    """Return ``(role, executable)`` pairs the configured build needs."""
    tools = [
        ("Dataset manager", config.zfs_bin),
        ("Archive extractor", config.tar_bin),
        ("Linker config", config.crle_bin),
    ]
    if config.uses_file_inspector:
        tools.append(("Archive inspector", config.file_bin))
    if not config.uses_builtin_manifest:
        tools.append(("Manifest tool", config.manifest_tool))
    return tools


def _locate(executable: str) -> tuple[bool, str]:
    """Check if *executable* is available on PATH."""
    path = shutil.which(executable)
    if path:
        return True, path
    return False, "not found on PATH"


def check_cmd() -> None:
    """Check that zfs, tar, crle and the manifest tool are installed."""
    table = Table(
        show_header=True,
        header_style="bold cyan",
        expand=True,
    )
    table.add_column("Component", min_width=16)
    table.add_column("Command", min_width=12)
    table.add_column("Status", width=10, justify="center")
    table.add_column("Details")

    all_ok = True
    for role, executable in required_tools(settings):
        ok, detail = _locate(executable)
        if not ok:
            all_ok = False
        status = "[green]OK[/green]" if ok else "[red]MISSING[/red]"
        table.add_row(role, executable, status, detail)

    if settings.uses_builtin_manifest:
        table.add_row("Manifest tool", "builtin", "[green]OK[/green]", "generated in-process")

    if all_ok:
        overall = "[bold green]All build tools available.[/bold green]"
        border_style = "green"
    else:
        overall = "[bold red]Some build tools are missing.[/bold red]"
        border_style = "red"

    console.print()
    console.print(
        Panel(
            table,
            title="[bold]Build Host Check[/bold]",
            subtitle=overall,
            border_style=border_style,
            padding=(1, 2),
        )
    )
    console.print()

    if not all_ok:
        raise typer.Exit(code=1)
