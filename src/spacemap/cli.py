"""CLI interface for spacemap."""

import asyncio
import json
from typing import Awaitable, Callable, Optional, TypeVar

import typer

from spacemap import __version__
from spacemap.analyzer import DiskAnalyzer
from spacemap.display import (
    configure_logging,
    confirm_action,
    console,
    show_analysis,
    show_cache_stats,
    show_delete_result,
    show_settings,
    show_status,
    show_volumes,
)
from spacemap.models import Settings
from spacemap.paths import normalize, primary_root
from spacemap.settings import load_settings, update_settings

T = TypeVar("T")

app = typer.Typer(
    name="spacemap",
    help="Disk space analyzer with a persistent scan cache",
    add_completion=False,
    no_args_is_help=True,
)


def create_analyzer() -> DiskAnalyzer:
    return DiskAnalyzer.from_config()


def run_with_analyzer(action: Callable[[DiskAnalyzer], Awaitable[T]]) -> T:
    """Run an async action against a started analyzer."""

    async def runner() -> T:
        async with create_analyzer() as analyzer:
            return await action(analyzer)

    return asyncio.run(runner())


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"spacemap version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        None,
        "--version",
        "-v",
        help="Show version and exit.",
        callback=version_callback,
        is_eager=True,
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Show debug logging."),
) -> None:
    """spacemap - find out where your disk space went."""
    configure_logging(verbose)


@app.command()
def volumes(
    refresh: bool = typer.Option(False, "--refresh", "-r", help="Re-enumerate instead of using the cache"),
) -> None:
    """List mounted volumes and their usage."""
    listing = run_with_analyzer(lambda analyzer: analyzer.list_volumes(force_refresh=refresh))
    show_volumes(listing)


@app.command()
def status() -> None:
    """Show usage of the primary volume."""
    listing = run_with_analyzer(lambda analyzer: analyzer.list_volumes())
    if not listing.volumes:
        console.print("[red]No volumes found[/red]")
        raise typer.Exit(1)

    root = primary_root()
    volume = next((v for v in listing.volumes if normalize(v.path) == root), listing.volumes[0])
    show_status(volume)


@app.command()
def analyze(
    paths: list[str] = typer.Argument(..., help="Paths to analyze ('root' for the primary volume)"),
    refresh: bool = typer.Option(False, "--refresh", "-r", help="Rescan instead of using cached results"),
    depth: Optional[int] = typer.Option(None, "--depth", "-d", min=0, help="Exact-scan depth (forces a rescan)"),
    show: int = typer.Option(10, "--show", "-n", min=1, help="Children shown per directory"),
    json_output: bool = typer.Option(False, "--json", help="Print results as JSON"),
) -> None:
    """Analyze disk usage of one or more paths."""

    async def analyze_all(analyzer: DiskAnalyzer):
        return await asyncio.gather(
            *(analyzer.analyze(p, force_refresh=refresh, max_depth=depth) for p in paths)
        )

    if not json_output:
        console.print(f"[bold blue]Analyzing {', '.join(paths)}...[/bold blue]\n")

    results = run_with_analyzer(analyze_all)

    if json_output:
        typer.echo(json.dumps([r.model_dump(mode="json") for r in results], indent=2))
    else:
        for result in results:
            show_analysis(result, max_children=show)
            console.print()

    if not all(r.success for r in results):
        raise typer.Exit(1)


@app.command()
def delete(
    path: str = typer.Argument(..., help="File or directory to delete"),
    yes: bool = typer.Option(False, "-y", "--yes", help="Skip confirmation prompt"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would be deleted"),
) -> None:
    """Delete a file or directory and update cached sizes."""
    if not yes and not dry_run:
        if not confirm_action(f"Permanently delete {normalize(path)}?"):
            console.print("[yellow]Cancelled[/yellow]")
            raise typer.Exit(0)

    result = run_with_analyzer(lambda analyzer: analyzer.delete(path, dry_run=dry_run))
    show_delete_result(result)

    if not result.success:
        raise typer.Exit(1)


def _parse_assignment(assignment: str) -> tuple[str, object]:
    key, sep, value = assignment.partition("=")
    key = key.strip()
    if not sep or not key:
        raise typer.BadParameter(f"Expected key=value, got '{assignment}'")

    field = Settings.model_fields.get(key)
    if field is not None and field.annotation == list[str]:
        return key, [p.strip() for p in value.split(",") if p.strip()]
    return key, value.strip()


@app.command()
def config(
    assignments: Optional[list[str]] = typer.Option(
        None, "--set", "-s", help="Update a setting, e.g. --set show_hidden_files=true"
    ),
) -> None:
    """Show or update settings."""
    if assignments:
        changes = dict(_parse_assignment(a) for a in assignments)
        try:
            settings = update_settings(**changes)
        except ValueError as e:
            console.print(f"[red]Error: {e}[/red]")
            raise typer.Exit(1)
        console.print("[green]Settings saved[/green]")
    else:
        settings = load_settings()

    show_settings(settings)


@app.command()
def cache(
    clear: bool = typer.Option(False, "--clear", help="Discard all cached results"),
) -> None:
    """Show scan cache statistics, or clear the cache."""

    async def action(analyzer: DiskAnalyzer) -> dict:
        if clear:
            await analyzer.cache.clear()
        return analyzer.cache.stats()

    stats = run_with_analyzer(action)
    if clear:
        console.print("[green]Cache cleared[/green]")
    show_cache_stats(stats)


if __name__ == "__main__":
    app()
