"""Rich table view of a single snapshot, for running a plugin by hand."""

from __future__ import annotations

from typing import Optional

from rich.console import Console
from rich.table import Table

from snapmetrics import __version__
from snapmetrics.graphs import GraphRegistry
from snapmetrics.metrics import MetricSnapshot


def build_table(snapshot: MetricSnapshot, registry: GraphRegistry, title: str = "") -> Table:
    table = Table(
        title=title or None,
        caption=f"snapmetrics v{__version__}  {snapshot.timestamp:%Y-%m-%d %H:%M:%S %Z}",
        show_header=True,
        header_style="bold",
    )
    table.add_column("Graph", style="dim")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_column("Kind", width=7, justify="center")

    for graph_name, graph in registry.items():
        for metric in graph.metrics:
            if metric.name not in snapshot:
                continue
            kind = "[cyan]diff[/cyan]" if metric.diff else "gauge"
            table.add_row(
                f"{graph.label} ({graph_name})",
                metric.label,
                f"{snapshot[metric.name]:,.2f}",
                kind,
            )
    return table


def print_snapshot(
    snapshot: MetricSnapshot,
    registry: GraphRegistry,
    title: str = "",
    console: Optional[Console] = None,
):
    """Print raw values; diff metrics are shown as the cumulative counter."""
    console = console or Console()
    console.print(build_table(snapshot, registry, title=title))
