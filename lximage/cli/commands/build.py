"""``lximage build`` — build an LX image from a root-filesystem archive.

Produces ``<name>-<YYYYMMDD>.zfs.gz`` and ``<name>-<YYYYMMDD>.json`` in the
output directory (the current directory by default).  Any failure prints a
single ``ERROR:`` line and exits with status 1.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console

from lximage.cli.renderer import ReportRenderer
from lximage.config import settings
from lximage.core.errors import ImageBuildError
from lximage.core.pipeline import ImageBuilder
from lximage.models.build import BuildRequest

console = Console()
err_console = Console(stderr=True)


def build_cmd(
    tarball: str = typer.Option(
        None,
        "--tarball",
        "-t",
        help="Absolute path to the root-filesystem archive.",
    ),
    kernel: str = typer.Option(
        None,
        "--kernel",
        "-k",
        help="Kernel version the image reports (e.g. 3.13.0).",
    ),
    min_platform: str = typer.Option(
        None,
        "--min-platform",
        "-m",
        help="Minimum platform build stamp (e.g. 20150316T201553Z).",
    ),
    image_name: str = typer.Option(
        None,
        "--image-name",
        "-i",
        help="Image name; the build date is appended to it.",
    ),
    description: str = typer.Option(
        None,
        "--description",
        "-d",
        help="Human-readable image description.",
    ),
    url: str = typer.Option(
        None,
        "--url",
        "-u",
        help="Documentation URL recorded in the manifest.",
    ),
    output_dir: Path = typer.Option(
        None,
        "--output-dir",
        "-o",
        help="Directory for the image and manifest (default: current directory).",
    ),
    show_transitions: bool = typer.Option(
        False,
        "--show-transitions",
        help="Print the build's state transitions after a successful run.",
    ),
) -> None:
    """Build an LX image and its manifest from a root-filesystem archive."""
    try:
        request = BuildRequest.from_options(
            archive_path=Path(tarball) if tarball is not None else None,
            kernel_version=kernel,
            min_platform=min_platform,
            image_name=image_name,
            description=description,
            homepage=url if url is not None else settings.default_homepage,
            output_dir=output_dir if output_dir is not None else Path.cwd(),
        )
        report = ImageBuilder.from_settings(settings).build(request)
    except ImageBuildError as exc:
        err_console.print(f"ERROR: {exc}", markup=False, highlight=False, soft_wrap=True)
        raise typer.Exit(code=1)

    ReportRenderer(console=console).print_report(report, show_transitions=show_transitions)

    # Print the artifact paths plainly for scripting
    console.print(str(report.artifacts.image_path), markup=False, highlight=False, soft_wrap=True)
    console.print(str(report.artifacts.manifest_path), markup=False, highlight=False, soft_wrap=True)
