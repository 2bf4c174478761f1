"""CLI for watchstate."""

import os
from pathlib import Path

import click
import yaml
from rich.console import Console
from rich.table import Table

from watchstate import __version__
from watchstate.activity import ActivityLog
from watchstate.completed import CompletedSeriesDetector
from watchstate.config import Config, ConfigError
from watchstate.events import EventChannel, RewatchCompleted, WriteFailed
from watchstate.metadata import MetadataClient
from watchstate.models import Series
from watchstate.rewatch import (
    ExplicitRewatch,
    InferredRewatch,
    is_series_fully_watched,
    next_rewatch_episode,
    rewatch_progress,
    rewatch_status,
)
from watchstate.storage import StorageError, TreeStore
from watchstate.toggles import ToggleMode
from watchstate.tracker import TrackerError, WatchTracker

console = Console()


def get_data_dir() -> Path:
    """Get data directory from env or default."""
    env_dir = os.environ.get("WATCHSTATE_DATA_DIR")
    if env_dir:
        return Path(env_dir)
    return Path.cwd() / "data"


def load_config(verbose: bool = False) -> Config:
    config = Config(data_dir=get_data_dir())
    try:
        config.load()
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1)
    config.configure_logging(verbose=verbose)
    return config


def build_tracker(config: Config) -> WatchTracker:
    try:
        store = TreeStore(data_dir=config.data_dir)
    except StorageError as e:
        console.print(f"[red]Storage error:[/red] {e}")
        raise SystemExit(2)

    events = EventChannel()
    events.subscribe(
        RewatchCompleted,
        lambda event: console.print(f"[green]✓ Rewatch #{event.round} complete![/green]"),
    )
    events.subscribe(
        WriteFailed,
        lambda event: console.print(f"[red]Could not save changes:[/red] {event.error}"),
    )

    metadata = None
    if config.metadata_configured:
        metadata = MetadataClient(api_key=config.tmdb_api_key, language=config.language)

    return WatchTracker(
        store,
        config.user_id,
        events=events,
        activity=ActivityLog(data_dir=config.data_dir),
        metadata=metadata,
    )


def get_series_or_exit(tracker: WatchTracker, nmr: int) -> Series:
    try:
        return tracker.get_series(nmr)
    except TrackerError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1)


def run_toggle(action):
    """Run a tracker call, mapping failures to exit codes."""
    try:
        return action()
    except TrackerError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1)
    except StorageError:
        # WriteFailed handler already reported it
        console.print("[dim]Nothing was changed. Try again.[/dim]")
        raise SystemExit(2)


def describe_rewatch(series: Series) -> str:
    status = rewatch_status(series)
    if isinstance(status, ExplicitRewatch):
        progress = rewatch_progress(series)
        return f"#{status.round} {progress.current}/{progress.total} ({progress.percent}%)"
    if isinstance(status, InferredRewatch):
        return f"#{status.round} (not started)"
    return "-"


@click.group()
@click.version_option(version=__version__)
def cli():
    """Watchstate - track watched episodes and rewatches."""
    pass


@cli.command()
def setup():
    """Interactive setup wizard."""
    config = Config(data_dir=get_data_dir())

    if config.exists():
        console.print(
            "[yellow]Configuration already exists at:[/yellow] "
            f"{config.config_path}"
        )
        if not click.confirm("Overwrite existing configuration?"):
            console.print("[dim]Setup cancelled.[/dim]")
            return

    console.print("\n[bold]Watchstate Setup[/bold]\n")

    user_id = click.prompt("User id", type=str)
    api_key = click.prompt("TMDB API key (optional)", default="", show_default=False, type=str)

    try:
        config.set_user(user_id.strip())
        config.set_tmdb_credentials(api_key.strip())
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {e}")
        raise SystemExit(1)
    config.save()

    console.print("\n[green]✓ Setup complete![/green]")
    console.print(f"  Config saved to: {config.config_path}")


@cli.command("import")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--verbose", is_flag=True, help="Show detailed progress")
def import_series(path, verbose):
    """Import series from a YAML or JSON file."""
    config = load_config(verbose)
    tracker = build_tracker(config)

    with open(path) as f:
        data = yaml.safe_load(f)

    entries = data if isinstance(data, list) else [data]
    imported = 0
    for entry in entries:
        if not isinstance(entry, dict) or entry.get("nmr") is None:
            console.print("[yellow]Skipping entry without nmr[/yellow]")
            continue
        run_toggle(lambda: tracker.add_series(Series.from_dict(entry)))
        imported += 1

    console.print(f"[green]✓ Imported {imported} series[/green]")


@cli.command()
@click.argument("nmr", type=int, required=False)
def status(nmr):
    """Show watch progress for all series, or episodes of one series."""
    config = load_config()
    tracker = build_tracker(config)

    if nmr is not None:
        series = get_series_or_exit(tracker, nmr)
        table = Table(title=series.title)
        table.add_column("Season", style="cyan")
        table.add_column("Episode")
        table.add_column("Name")
        table.add_column("Watched", style="green")
        for season in series.seasons:
            for episode in season.episodes:
                watched = f"{episode.watch_count}x" if episode.watched else ""
                table.add_row(str(season.season_number), str(episode.id), episode.name, watched)
        console.print(table)
        console.print(f"[dim]Rewatch: {describe_rewatch(series)}[/dim]")
        return

    all_series = tracker.list_series()
    if not all_series:
        console.print("[yellow]No series found.[/yellow]")
        console.print("Run [bold]watchstate import[/bold] to add some.")
        return

    table = Table(title="Watch Status")
    table.add_column("Nmr", style="cyan")
    table.add_column("Title")
    table.add_column("Watched", style="green")
    table.add_column("Rewatch")
    for series in all_series:
        episodes = series.episodes()
        watched = sum(1 for e in episodes if e.watched)
        label = f"{watched}/{len(episodes)}"
        if is_series_fully_watched(series):
            label += " ✓"
        table.add_row(str(series.nmr), series.title, label, describe_rewatch(series))
    console.print(table)


@cli.command()
@click.argument("nmr", type=int)
@click.argument("season", type=int)
@click.argument("episode", type=int, required=False)
@click.option(
    "--mode",
    type=click.Choice([m.value for m in ToggleMode]),
    default=ToggleMode.NORMAL.value,
    help="Toggle direction",
)
@click.option("--verbose", is_flag=True, help="Show detailed progress")
def toggle(nmr, season, episode, mode, verbose):
    """Toggle an episode, or a whole season when EPISODE is omitted."""
    config = load_config(verbose)
    tracker = build_tracker(config)
    toggle_mode = ToggleMode(mode)

    if episode is None:
        result = run_toggle(lambda: tracker.toggle_season(nmr, season, toggle_mode))
    else:
        result = run_toggle(lambda: tracker.toggle_episode(nmr, season, episode, toggle_mode))

    if not result.changed:
        console.print("[yellow]Nothing changed.[/yellow]")
        return
    console.print(
        f"[green]✓ Updated[/green] ({len(result.newly_watched)} watched, "
        f"{len(result.rewatched)} rewatched, {len(result.unwatched)} unwatched)"
    )


@cli.command()
@click.argument("nmr", type=int)
@click.argument("episode_ids", type=int, nargs=-1, required=True)
@click.option("--unwatched", is_flag=True, help="Mark as unwatched instead")
def mark(nmr, episode_ids, unwatched):
    """Mark selected episodes watched or unwatched across seasons."""
    config = load_config()
    tracker = build_tracker(config)

    result = run_toggle(lambda: tracker.toggle_episodes(nmr, episode_ids, watched=not unwatched))
    if not result.changed:
        console.print("[yellow]Nothing changed.[/yellow]")
        return
    console.print(f"[green]✓ Marked {len(episode_ids)} episodes[/green]")


@cli.command("mark-upto")
@click.argument("nmr", type=int)
@click.argument("season", type=int)
def mark_upto(nmr, season):
    """Mark SEASON and every earlier season watched."""
    config = load_config()
    tracker = build_tracker(config)

    result = run_toggle(lambda: tracker.mark_up_to_season(nmr, season))
    console.print(f"[green]✓ {len(result.newly_watched)} episodes marked watched[/green]")


@cli.group()
def rewatch():
    """Start, stop and follow rewatches."""
    pass


@rewatch.command("start")
@click.argument("nmr", type=int)
@click.option("--continue", "continue_existing", is_flag=True, help="Continue the current pass")
def rewatch_start(nmr, continue_existing):
    """Start a rewatch of a series."""
    config = load_config()
    tracker = build_tracker(config)

    state = run_toggle(lambda: tracker.start_rewatch(nmr, continue_existing=continue_existing))
    verb = "continued" if continue_existing else "started"
    console.print(f"[green]✓ Rewatch #{state.round} {verb}[/green]")


@rewatch.command("stop")
@click.argument("nmr", type=int)
def rewatch_stop(nmr):
    """Stop the active rewatch."""
    config = load_config()
    tracker = build_tracker(config)

    run_toggle(lambda: tracker.stop_rewatch(nmr))
    console.print("[green]✓ Rewatch stopped[/green]")


@rewatch.command("next")
@click.argument("nmr", type=int)
def rewatch_next(nmr):
    """Show the next episode to rewatch."""
    config = load_config()
    tracker = build_tracker(config)
    series = get_series_or_exit(tracker, nmr)

    upcoming = next_rewatch_episode(series)
    if upcoming is None:
        console.print("[yellow]No rewatch episode pending.[/yellow]")
        return
    console.print(
        f"Season {upcoming.season_number}, episode {upcoming.episode_index + 1}: "
        f"[bold]{upcoming.episode.name}[/bold] "
        f"({upcoming.current_watch_count}/{upcoming.target_watch_count})"
    )


@cli.command()
@click.option("--verbose", is_flag=True, help="Show detailed progress")
def completed(verbose):
    """List series that were just fully watched and have ended."""
    config = load_config(verbose)
    tracker = build_tracker(config)
    detector = CompletedSeriesDetector(tracker.store, cooldown=config.cooldown)

    found = tracker.check_completed(detector)
    if not found:
        console.print("[dim]No newly completed series.[/dim]")
        return

    table = Table(title="Completed Series")
    table.add_column("Id", style="cyan")
    table.add_column("Title", style="green")
    table.add_column("Status")
    for series in found:
        table.add_row(str(series.id), series.title, series.status or "")
    console.print(table)
    console.print("Run [bold]watchstate notified ID[/bold] or [bold]watchstate dismiss ID[/bold].")


@cli.command()
@click.argument("series_id", type=int)
def notified(series_id):
    """Acknowledge a completed series."""
    config = load_config()
    tracker = build_tracker(config)
    detector = CompletedSeriesDetector(tracker.store, cooldown=config.cooldown)

    if not run_toggle(lambda: detector.mark_notified(series_id, config.user_id)):
        console.print(f"[yellow]No completion record for series {series_id}.[/yellow]")
        return
    console.print("[green]✓ Marked as notified[/green]")


@cli.command()
@click.argument("series_id", type=int)
def dismiss(series_id):
    """Hide a completed series notice for one cooldown window."""
    config = load_config()
    tracker = build_tracker(config)
    detector = CompletedSeriesDetector(tracker.store, cooldown=config.cooldown)

    run_toggle(lambda: detector.dismiss(series_id, config.user_id))
    console.print(f"[green]✓ Dismissed for {config.cooldown_days} days[/green]")


@cli.command()
def validate():
    """Validate configuration and test the TMDB connection."""
    config = Config(data_dir=get_data_dir())

    if not config.exists():
        console.print("[red]Configuration not found.[/red]")
        console.print("Run [bold]watchstate setup[/bold] to configure.")
        raise SystemExit(1)

    try:
        config.load()
    except ConfigError as e:
        console.print(f"[red]Invalid configuration:[/red] {e}")
        raise SystemExit(1)

    console.print(f"[dim]User:[/dim] {config.user_id}")

    if not config.metadata_configured:
        console.print("[dim]TMDB lookups disabled.[/dim]")
        return

    console.print("\n[dim]Testing TMDB connection...[/dim]")
    client = MetadataClient(api_key=config.tmdb_api_key, language=config.language)
    if client.test_connection():
        console.print("[green]✓ Connection valid![/green]")
    else:
        console.print("[red]✗ Connection failed.[/red]")
        raise SystemExit(2)


if __name__ == "__main__":
    cli()
