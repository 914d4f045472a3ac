from __future__ import annotations

import asyncio
import contextlib
import importlib.metadata as md
import logging
import signal
from datetime import timedelta
from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from .config import PaceloopConfig, load_config, resolve_config_path
from .core.events import Event, SessionEventType
from .core.filter import PositionFilter
from .core.tracker import SessionTracker
from .domain.models import ActivityType, RawSample, Session
from .infrastructure.database import AsyncSessionRepository
from .infrastructure.location import (
    GpsdLocationProvider,
    LocationProvider,
    ReplayLocationProvider,
    circle_walk,
)

# Typer application: tests import this
app = typer.Typer(no_args_is_help=True, add_completion=False, help="PaceLoop CLI")
console = Console()


def _load(config: Path | None) -> PaceloopConfig:
    resolved = resolve_config_path(config)
    if not resolved.exists():
        return PaceloopConfig()
    return load_config(resolved)


def _setup_logging(cfg: PaceloopConfig, verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else cfg.logging.level,
        format="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


@app.command()
def version() -> None:
    """Print version information."""
    try:
        console.print(f"paceloop {md.version('paceloop')}")
    except md.PackageNotFoundError:
        from . import __version__

        console.print(f"paceloop {__version__}")


@app.command(name="config-validate")
def config_validate(path: Path = typer.Argument(Path("configs/paceloop.yml"))) -> None:
    """Validate a configuration file."""
    resolved = resolve_config_path(path)
    console.print(f"Using config: {resolved}")
    try:
        cfg = load_config(resolved)
    except (OSError, ValueError) as exc:
        console.print(f"Config validation failed: {exc}")
        raise typer.Exit(code=1)
    console.print("Config OK. Key settings:")
    console.print(f"- user: {cfg.user_id}")
    console.print(f"- database: {cfg.storage.db_path}")
    console.print(f"- min accuracy: {cfg.filter.min_accuracy_m} m")
    console.print(f"- split unit: {cfg.tracker.split_unit_km} km")


class _SimClock:
    """Clock that follows replayed sample timestamps."""

    def __init__(self, now) -> None:
        self.now = now

    def __call__(self):
        return self.now


async def _simulate(
    cfg: PaceloopConfig,
    activity: ActivityType,
    samples: list[RawSample],
    realtime: bool,
    save: bool,
) -> Session | None:
    store = None
    if save:
        store = AsyncSessionRepository(cfg.storage.db_path)
        await store.init_schema()

    def on_split(event: Event) -> None:
        console.print(f"[cyan]{event.data.formatted_splits[-1]}[/cyan]")

    if realtime:
        provider = ReplayLocationProvider(
            samples, interval_s=cfg.tracker.tick_interval_s, restamp=True
        )
        tracker = SessionTracker(
            cfg.user_id, PositionFilter(provider, cfg.filter), store, cfg.tracker
        )
        tracker.events.subscribe(SessionEventType.SPLIT_RECORDED, on_split)
        await tracker.start(activity)
        while provider.subscription_count:
            await asyncio.sleep(0.2)
        return await tracker.stop()

    # Accelerated: feed samples directly and let the clock follow them
    clock = _SimClock(samples[0].timestamp - timedelta(seconds=1))
    provider = ReplayLocationProvider([], initial_fix=samples[0].coordinate)
    tracker = SessionTracker(
        cfg.user_id,
        PositionFilter(provider, cfg.filter),
        store,
        cfg.tracker.model_copy(update={"tick_interval_s": 3600.0}),
        clock=clock,
    )
    tracker.events.subscribe(SessionEventType.SPLIT_RECORDED, on_split)
    await tracker.start(activity)
    for sample in samples[1:]:
        clock.now = sample.timestamp
        tracker.handle_tick()
        tracker.position_filter.process(sample)
    return await tracker.stop()


def _print_summary(session: Session) -> None:
    table = Table(title=f"{session.activity_type.value} {session.id[:8]}")
    table.add_column("Metric")
    table.add_column("Value", justify="right")
    table.add_row("Status", session.status.value)
    table.add_row("Distance (km)", session.formatted_distance)
    table.add_row("Duration", session.formatted_duration)
    table.add_row(f"Primary ({session.primary_metric_label})", session.primary_metric_value)
    table.add_row("Route points", str(len(session.route_points)))
    for split in session.formatted_splits:
        table.add_row("Split", split)
    console.print(table)


@app.command()
def simulate(
    activity: str = typer.Option("Running", "--activity", "-a"),
    samples: int = typer.Option(600, "--samples", "-n", min=2),
    speed: float | None = typer.Option(None, "--speed", help="Simulated speed in m/s"),
    realtime: bool = typer.Option(False, "--realtime", help="Replay at tick pace"),
    save: bool = typer.Option(True, "--save/--no-save"),
    config: Path | None = typer.Option(None, "--config", "-c"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Run a workout against a synthetic circular track."""
    cfg = _load(config)
    _setup_logging(cfg, verbose)
    track = circle_walk(
        cfg.gps.mock_lat,
        cfg.gps.mock_lon,
        speed_mps=speed or cfg.gps.mock_speed_mps,
        count=samples,
    )
    completed = asyncio.run(_simulate(cfg, ActivityType(activity), track, realtime, save))
    if completed is None:
        console.print("[yellow]No session recorded[/yellow]")
        raise typer.Exit(code=1)
    _print_summary(completed)


def _live_provider(cfg: PaceloopConfig) -> LocationProvider:
    if cfg.gps.mock_mode:
        track = circle_walk(
            cfg.gps.mock_lat, cfg.gps.mock_lon, speed_mps=cfg.gps.mock_speed_mps, count=86_400
        )
        return ReplayLocationProvider(track, interval_s=1.0, restamp=True)
    return GpsdLocationProvider(cfg.gps)


async def _track(cfg: PaceloopConfig, activity: ActivityType, duration: float | None) -> Session | None:
    store = AsyncSessionRepository(cfg.storage.db_path)
    await store.init_schema()

    tracker = SessionTracker(
        cfg.user_id, PositionFilter(_live_provider(cfg), cfg.filter), store, cfg.tracker
    )

    @tracker.events.on(SessionEventType.SPLIT_RECORDED)
    def on_split(event: Event) -> None:
        console.print(f"[cyan]{event.data.formatted_splits[-1]}[/cyan]")

    stop_requested = asyncio.Event()
    with contextlib.suppress(NotImplementedError):
        asyncio.get_running_loop().add_signal_handler(signal.SIGINT, stop_requested.set)

    await tracker.start(activity)
    console.print("Tracking... press Ctrl+C to finish.")
    try:
        await asyncio.wait_for(stop_requested.wait(), timeout=duration)
    except asyncio.TimeoutError:
        pass
    return await tracker.stop()


@app.command()
def track(
    activity: str = typer.Option("Running", "--activity", "-a"),
    duration: float | None = typer.Option(None, "--duration", help="Stop after N seconds"),
    config: Path | None = typer.Option(None, "--config", "-c"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Track a live workout from gpsd (or the mock track) and save it."""
    cfg = _load(config)
    _setup_logging(cfg, verbose)
    completed = asyncio.run(_track(cfg, ActivityType(activity), duration))
    if completed is None:
        raise typer.Exit(code=1)
    _print_summary(completed)


@app.command()
def history(
    user: str | None = typer.Option(None, "--user", "-u"),
    limit: int = typer.Option(20, "--limit", min=1),
    config: Path | None = typer.Option(None, "--config", "-c"),
) -> None:
    """List stored sessions, newest first."""
    cfg = _load(config)

    async def _fetch() -> list[Session]:
        repo = AsyncSessionRepository(cfg.storage.db_path)
        await repo.init_schema()
        return await repo.get_sessions(user or cfg.user_id, limit=limit)

    sessions = asyncio.run(_fetch())
    if not sessions:
        console.print("No sessions recorded.")
        return

    table = Table(title="Sessions")
    for column in ("ID", "Started", "Type", "Distance (km)", "Duration", "Pace"):
        table.add_column(column)
    for s in sessions:
        table.add_row(
            s.id[:8],
            s.start_time.strftime("%Y-%m-%d %H:%M"),
            s.activity_type.value,
            s.formatted_distance,
            s.formatted_duration,
            s.formatted_pace,
        )
    console.print(table)


@app.command()
def stats(
    user: str | None = typer.Option(None, "--user", "-u"),
    config: Path | None = typer.Option(None, "--config", "-c"),
) -> None:
    """Show lifetime totals for a user."""
    cfg = _load(config)

    async def _fetch():
        repo = AsyncSessionRepository(cfg.storage.db_path)
        await repo.init_schema()
        return await repo.get_user_stats(user or cfg.user_id)

    totals = asyncio.run(_fetch())
    console.print(totals.to_dict())


def launch() -> None:
    """Entry point when executed as a module/script."""
    cli()


# Click command export for the console script
cli = typer.main.get_command(app)

__all__ = ["app", "cli"]

if __name__ == "__main__":
    launch()
