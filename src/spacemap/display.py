"""Rich terminal display for spacemap."""

import logging
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from rich.tree import Tree

from spacemap.models import (
    AnalyzeResult,
    DeleteResult,
    Settings,
    SizedNode,
    VolumeInfo,
    VolumeListing,
    format_size,
)

console = Console()
error_console = Console(stderr=True)


def configure_logging(verbose: bool = False) -> None:
    """Route library logging through rich on stderr."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=error_console, show_path=False, rich_tracebacks=True)],
        force=True,
    )


def usage_color(used_percent: float) -> str:
    if used_percent >= 90:
        return "red"
    elif used_percent >= 75:
        return "yellow"
    return "green"


def show_volumes(listing: VolumeListing) -> None:
    """Display the volume table."""
    table = Table(title="Volumes", show_header=True, header_style="bold")
    table.add_column("Name")
    table.add_column("Path")
    table.add_column("Total", justify="right")
    table.add_column("Used", justify="right")
    table.add_column("Free", justify="right")
    table.add_column("Usage", justify="right")

    for volume in listing.volumes:
        color = usage_color(volume.used_percent)
        marker = " [dim](approx.)[/dim]" if volume.approximate else ""
        table.add_row(
            f"{volume.name}{marker}",
            volume.path,
            format_size(volume.total_bytes),
            format_size(volume.used_bytes),
            f"[bold]{format_size(volume.available_bytes)}[/bold]",
            f"[{color}]{volume.used_percent:.0f}%[/{color}]",
        )

    console.print(table)
    if listing.degraded:
        console.print("[yellow]Volume listing failed; sizes shown may be stale or approximate.[/yellow]")
    if listing.last_updated:
        console.print(f"[dim]Last updated: {listing.last_updated:%Y-%m-%d %H:%M:%S}[/dim]")


def show_status(volume: VolumeInfo) -> None:
    """Display quick status for one volume."""
    used_percent = volume.used_percent

    if used_percent >= 90:
        status = "[red]CRITICAL[/red]"
    elif used_percent >= 75:
        status = "[yellow]WARNING[/yellow]"
    else:
        status = "[green]OK[/green]"

    console.print(f"Disk Status ({volume.path}): {status}")
    console.print(f"  Total: {format_size(volume.total_bytes)}")
    console.print(f"  Used:  {format_size(volume.used_bytes)} ({used_percent:.0f}%)")
    console.print(f"  Free:  {format_size(volume.available_bytes)}")


def node_label(node: SizedNode) -> str:
    """One-line label for a tree node, with estimate/skip/error markers."""
    name = f"[bold blue]{node.name}/[/bold blue]" if node.is_directory else node.name
    if node.skipped:
        return f"[dim]{node.name} (skipped)[/dim]"
    if node.error:
        return f"[red]{node.name}[/red] [dim]({node.error})[/dim]"
    size = format_size(node.size_bytes)
    if node.estimated:
        return f"{name}  [yellow]~{size} (estimate)[/yellow]"
    return f"{name}  [green]{size}[/green]"


def build_tree(
    node: SizedNode,
    max_depth: int = 2,
    max_children: int = 10,
    tree: Optional[Tree] = None,
) -> Tree:
    """Render a sized node as a rich Tree, largest children first."""
    if tree is None:
        tree = Tree(node_label(node))
    if max_depth <= 0:
        return tree

    shown = node.children[:max_children]
    for child in shown:
        branch = tree.add(node_label(child))
        if child.is_directory and child.children:
            build_tree(child, max_depth - 1, max_children, branch)

    hidden = node.children[max_children:]
    if hidden:
        hidden_size = sum(c.size_bytes for c in hidden)
        tree.add(f"[dim]... {len(hidden)} more ({format_size(hidden_size)})[/dim]")
    return tree


def show_analysis(result: AnalyzeResult, max_children: int = 10, max_depth: int = 2) -> None:
    """Display an analysis result."""
    if not result.success:
        console.print(f"[red]Error: {result.message}[/red]")
        return

    console.print(build_tree(result.tree, max_depth=max_depth, max_children=max_children))
    source = "cache" if result.from_cache else "fresh scan"
    if result.last_updated:
        console.print(f"[dim]{result.path} - {source}, {result.last_updated:%Y-%m-%d %H:%M:%S}[/dim]")


def show_delete_result(result: DeleteResult) -> None:
    """Display result of a deletion."""
    if result.dry_run and result.success:
        console.print(f"[yellow]DRY RUN[/yellow] {result.message}")
    elif result.success:
        console.print(f"[green]✓[/green] {result.message}")
    else:
        console.print(f"[red]✗[/red] {result.path}: {result.message}")


def show_settings(settings: Settings) -> None:
    """Display current settings."""
    table = Table(title="Settings", show_header=True, header_style="bold")
    table.add_column("Key")
    table.add_column("Value")
    for key, value in settings.model_dump().items():
        if isinstance(value, list):
            value = ", ".join(value) or "-"
        table.add_row(key, str(value))
    console.print(table)


def show_cache_stats(stats: dict) -> None:
    """Display scan cache statistics."""
    table = Table(show_header=False)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    table.add_row("Cached paths", str(stats["entries"]))
    table.add_row("Cached volumes", str(stats["volumes"]))
    updated = stats.get("last_updated")
    table.add_row("Last updated", f"{updated:%Y-%m-%d %H:%M:%S}" if updated else "never")
    console.print(table)


def confirm_action(message: str) -> bool:
    """Ask for confirmation."""
    from rich.prompt import Confirm

    return Confirm.ask(message)
