"""Rich terminal renderer for build reports.

Color scheme
------------
- green     : stages reached on the way to REPORTED
- bold red  : FAILED
"""

from __future__ import annotations

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from lximage.models.build import BuildReport
from lximage.models.stages import BuildState, StageTransition

_STATE_STYLES: dict[BuildState, str] = {
    BuildState.FAILED: "bold red",
    BuildState.REPORTED: "bold green",
}


class ReportRenderer:
    """Renders ``BuildReport`` and transition histories as Rich output.

    Parameters
    ----------
    console:
        Rich Console instance.  A new one is created if not provided.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    def render_transitions(self, transitions: list[StageTransition]) -> Table:
        table = Table(show_header=True, header_style="bold cyan", expand=False)
        table.add_column("#", justify="right", style="dim")
        table.add_column("From")
        table.add_column("To")
        table.add_column("At (UTC)", style="dim")
        table.add_column("Detail")

        for index, transition in enumerate(transitions, start=1):
            style = _STATE_STYLES.get(transition.to_state, "green")
            table.add_row(
                str(index),
                transition.from_state.value,
                f"[{style}]{transition.to_state.value}[/{style}]",
                transition.timestamp_utc.strftime("%H:%M:%S"),
                transition.detail or "",
            )
        return table

    def render_report(self, report: BuildReport) -> Panel:
        lines = [
            "[bold green]Image build complete![/bold green]",
            "",
            f"[bold]Build:[/bold]          {report.identity.name}",
            f"[bold]Archive type:[/bold]   {report.classification.value}",
            f"[bold]Dataset:[/bold]        {report.dataset_name} (destroyed)",
            f"[bold]Image:[/bold]          {report.artifacts.image_path}",
            f"[bold]Manifest:[/bold]       {report.artifacts.manifest_path}",
        ]
        return Panel(
            "\n".join(lines),
            title="[bold]lximage[/bold]",
            border_style="green",
            padding=(1, 2),
        )

    def print_report(self, report: BuildReport, *, show_transitions: bool = False) -> None:
        self.console.print()
        self.console.print(self.render_report(report))
        if show_transitions:
            self.console.print(self.render_transitions(report.transitions))
        self.console.print()
