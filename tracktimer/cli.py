from __future__ import annotations

import asyncio
import contextlib
import importlib.metadata as md
import signal
from pathlib import Path
from typing import Iterator

import typer
from rich.console import Console
from rich.table import Table

from .config import TrackTimerConfig, load_config, resolve_config_path, setup_logging
from .core.events import Event, EventBus, EventType
from .core.recorder import RouteRecorder
from .core.session import TrackSession
from .domain.errors import InvalidRecord, PersistenceFailure, TrackTimerError
from .domain.models import GeoPoint, RouteRecord
from .infrastructure.database import AsyncRouteRepository, RouteRepository
from .infrastructure.gps import AsyncGPSClient, SimulatedGPSClient, calculate_distance, center_point
from .tools.formatting import format_date, format_distance, format_elapsed, format_speed

app = typer.Typer(no_args_is_help=True, add_completion=False, help="TrackTimer CLI")
console = Console()

ConfigOption = typer.Option(Path("configs/tracktimer.yml"), "--config", "-c")
DbOption = typer.Option(None, "--db", help="Override storage.db_path")


def _load(config: Path, db: Path | None = None) -> TrackTimerConfig:
    cfg = load_config(resolve_config_path(config))
    if db is not None:
        cfg.storage.db_path = db
    setup_logging(cfg.logging)
    return cfg


def _parse_point(text: str) -> GeoPoint:
    try:
        return GeoPoint.parse(text)
    except ValueError as exc:
        raise typer.BadParameter(f"expected LAT,LON: {exc}") from exc


def _record_lines(record: RouteRecord) -> list[str]:
    return [
        f"Route #{record.id}" + (f" - {record.name}" if record.name else ""),
        f"Date: {format_date(record.start_time_ms)}",
        f"From: {record.start_point}  To: {record.end_point}",
        f"Center: {center_point(record.start_point, record.end_point)}",
        f"Time: {format_elapsed(record.elapsed_ms)}",
        f"Distance: {format_distance(record.distance_m)}",
        f"Avg Speed: {format_speed(record.average_speed_kmh)}",
        f"Notes: {record.notes or '-'}",
    ]


@app.command()
def version() -> None:
    """Print version information."""
    try:
        console.print(f"tracktimer {md.version('tracktimer')}")
    except md.PackageNotFoundError:
        from . import __version__

        console.print(f"tracktimer {__version__}")
    raise typer.Exit(code=0)


@app.command(name="config-validate")
def config_validate(path: Path = typer.Argument(Path("configs/tracktimer.yml"))) -> None:
    """Validate and show resolved configuration."""
    resolved = resolve_config_path(path)
    console.print(f"Using config: {resolved}")
    try:
        cfg = load_config(resolved)
    except ValueError as exc:
        console.print(f"Config validation failed: {exc}")
        raise typer.Exit(code=1) from exc
    console.print("Config OK.")
    console.print(f"- database: {cfg.storage.db_path}")
    console.print(f"- gpsd: {cfg.location.gpsd_host}:{cfg.location.gpsd_port}")
    console.print(f"- interval: {cfg.location.interval_ms} ms (fastest {cfg.location.fastest_interval_ms} ms)")


@app.command()
def history(
    limit: int | None = typer.Option(None, "--limit", "-n"),
    config: Path = ConfigOption,
    db: Path | None = DbOption,
) -> None:
    """List saved routes, most recent first."""
    cfg = _load(config, db)
    records = RouteRepository(cfg.storage.db_path).list_all(limit=limit)
    if not records:
        console.print("No saved routes.")
        return

    table = Table(title="Saved routes")
    for column in ("ID", "Date", "Name", "Time", "Distance", "Avg Speed"):
        table.add_column(column)
    for r in records:
        table.add_row(
            str(r.id),
            format_date(r.start_time_ms),
            r.name or "",
            format_elapsed(r.elapsed_ms),
            format_distance(r.distance_m),
            format_speed(r.average_speed_kmh),
        )
    console.print(table)


@app.command()
def show(
    record_id: int = typer.Argument(...),
    config: Path = ConfigOption,
    db: Path | None = DbOption,
) -> None:
    """Show one saved route."""
    cfg = _load(config, db)
    record = RouteRepository(cfg.storage.db_path).get_by_id(record_id)
    if record is None:
        console.print(f"Route {record_id} not found")
        raise typer.Exit(code=1)
    for line in _record_lines(record):
        console.print(line)


@app.command()
def rename(
    record_id: int = typer.Argument(...),
    name: str | None = typer.Option(None, "--name"),
    notes: str | None = typer.Option(None, "--notes"),
    config: Path = ConfigOption,
    db: Path | None = DbOption,
) -> None:
    """Set the name and notes of a saved route."""
    cfg = _load(config, db)
    if not RouteRepository(cfg.storage.db_path).update_details(record_id, name, notes):
        console.print(f"Route {record_id} not found")
        raise typer.Exit(code=1)
    console.print(f"Route {record_id} updated")


@app.command()
def delete(
    record_id: int = typer.Argument(...),
    config: Path = ConfigOption,
    db: Path | None = DbOption,
) -> None:
    """Delete a saved route."""
    cfg = _load(config, db)
    if not RouteRepository(cfg.storage.db_path).delete_by_id(record_id):
        console.print(f"Route {record_id} not found")
        raise typer.Exit(code=1)
    console.print(f"Route {record_id} deleted")


@app.command()
def export(
    dest: Path = typer.Argument(Path("routes.csv")),
    config: Path = ConfigOption,
    db: Path | None = DbOption,
) -> None:
    """Export saved routes to CSV."""
    cfg = _load(config, db)
    count = RouteRepository(cfg.storage.db_path).export_csv(dest)
    console.print({"exported": count, "dest": str(dest)})


@app.command()
def track(
    start: str = typer.Option(..., "--start", help="Start point as LAT,LON"),
    end: str = typer.Option(..., "--end", help="End point as LAT,LON"),
    simulate: bool = typer.Option(False, "--simulate", help="Walk a simulated path instead of gpsd"),
    steps: int = typer.Option(10, "--steps", min=1, help="Simulated fixes from start to end"),
    duration: float | None = typer.Option(None, "--duration", help="Stop after N seconds"),
    save: bool = typer.Option(True, "--save/--no-save"),
    name: str | None = typer.Option(None, "--name"),
    notes: str | None = typer.Option(None, "--notes"),
    config: Path = ConfigOption,
    db: Path | None = DbOption,
) -> None:
    """Record a route between START and END and optionally save it."""
    cfg = _load(config, db)
    start_point = _parse_point(start)
    end_point = _parse_point(end)
    console.print(
        f"Route {start_point} -> {end_point} "
        f"({format_distance(calculate_distance(start_point, end_point))} direct)"
    )
    try:
        record = asyncio.run(
            _track(cfg, start_point, end_point, simulate, steps, duration, save, name, notes)
        )
    except TrackTimerError as exc:
        console.print(f"Tracking failed: {exc}")
        raise typer.Exit(code=1) from exc
    if record is not None:
        for line in _record_lines(record):
            console.print(line)


@contextlib.contextmanager
def _stop_on_signals(stop_requested: asyncio.Event) -> Iterator[None]:
    """Turn SIGINT/SIGTERM into a stop request instead of aborting the route."""
    loop = asyncio.get_running_loop()

    def _request_stop(_signum, _frame):
        loop.call_soon_threadsafe(stop_requested.set)

    previous = {sig: signal.signal(sig, _request_stop) for sig in (signal.SIGINT, signal.SIGTERM)}
    try:
        yield
    finally:
        for sig, handler in previous.items():
            signal.signal(sig, handler)


async def _track(
    cfg: TrackTimerConfig,
    start: GeoPoint,
    end: GeoPoint,
    simulate: bool,
    steps: int,
    duration: float | None,
    save: bool,
    name: str | None,
    notes: str | None,
) -> RouteRecord | None:
    bus = EventBus()
    await bus.start()
    store = AsyncRouteRepository(cfg.storage.db_path)
    await store.init_schema()
    session = TrackSession(bus=bus)
    recorder = RouteRecorder(session, store, bus=bus)

    @bus.on(EventType.SAMPLE_ACCEPTED)
    async def _show_progress(event: Event) -> None:
        snap = event.data
        console.print(
            f"{format_elapsed(snap.elapsed_ms)}  "
            f"{format_distance(snap.distance_m)}  "
            f"{format_speed(snap.average_speed_kmh)}"
        )

    @bus.on(EventType.SAMPLE_REJECTED)
    async def _warn_rejected(event: Event) -> None:
        console.print(f"[yellow]Dropped out-of-order sample at {event.data.timestamp_ms}[/yellow]")

    if simulate:
        provider: AsyncGPSClient = SimulatedGPSClient(
            start, end, steps=steps, interval_ms=cfg.location.interval_ms
        )
    else:
        provider = AsyncGPSClient(cfg.location.gpsd_config())

    try:
        return await _record_route(recorder, provider, start, end, duration, save, name, notes)
    finally:
        await bus.stop()


async def _record_route(
    recorder: RouteRecorder,
    provider: AsyncGPSClient,
    start: GeoPoint,
    end: GeoPoint,
    duration: float | None,
    save: bool,
    name: str | None,
    notes: str | None,
) -> RouteRecord | None:
    session = recorder.session
    session.set_start_point(start)
    session.set_end_point(end)
    session.start()

    stop_requested = asyncio.Event()
    with _stop_on_signals(stop_requested):
        feed_task = asyncio.create_task(recorder.feed(provider))
        stop_task = asyncio.create_task(stop_requested.wait())
        done, _ = await asyncio.wait(
            {feed_task, stop_task}, timeout=duration, return_when=asyncio.FIRST_COMPLETED
        )
        stop_task.cancel()
        if feed_task not in done:
            console.print("Stop requested" if stop_task in done else "Duration reached")
            feed_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await feed_task

    snap = session.stop()
    console.print(f"Stopped after {format_elapsed(snap.elapsed_ms)}")

    if not save:
        recorder.discard()
        return None
    try:
        return await recorder.save(name=name, notes=notes)
    except (InvalidRecord, PersistenceFailure) as exc:
        console.print(f"Route not saved: {exc}")
        recorder.discard()
        return None


# Click command object for testing
cli = typer.main.get_command(app)
