import asyncio
import logging
import signal
from functools import partial
from pathlib import Path
from typing import Any, Dict, Optional
import typer
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich.logging import RichHandler
from rich.markup import escape
from tracetail.models import LogItem, RawLogItem, TraceLogItem, TrivialLogItem
from tracetail.orchestrator.app import LogTailApp
from tracetail.orchestrator.engine import run_terminal_app
from tracetail.orchestrator.session import ConnectionClosed, IngestionSession
from tracetail.orchestrator.state import ApplicationState
from tracetail.orchestrator.terminal import KeyboardInput, TerminalSession
from tracetail.orchestrator.views import describe_item
from tracetail.utils import TraceCache, load_config, validate_config
from tracetail.vendors import StreamConnectionError


# Setup logging
logging.basicConfig(
    level=logging.INFO,
    format="%(message)s",
    handlers=[RichHandler(rich_tracebacks=True)]
)
logger = logging.getLogger(__name__)

# CLI setup
app = typer.Typer(help="Live terminal viewer for streamed structured logs")
console = Console()

_file_handler: Optional[logging.Handler] = None


def setup_logging(log_file: str, verbose: bool = False, live: bool = False):
    """Configure logging based on verbosity."""
    global _file_handler

    # Set console log level
    if live:
        # The alternate screen owns the terminal; diagnostics go to the log file only
        level = logging.CRITICAL
    else:
        level = logging.DEBUG if verbose else logging.INFO

    # Update console handler
    for handler in logging.getLogger().handlers:
        if isinstance(handler, RichHandler):
            handler.setLevel(level)

    log_path = Path(log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    if _file_handler is not None:
        logging.getLogger().removeHandler(_file_handler)
        _file_handler.close()

    # Also log to file (always at least INFO)
    _file_handler = logging.FileHandler(log_path, encoding="utf-8")
    _file_handler.setFormatter(
        logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    )
    _file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    logging.getLogger().addHandler(_file_handler)
    logging.getLogger().setLevel(logging.DEBUG if verbose else logging.INFO)


def _load_configuration(
    config_path: Optional[Path],
    base_url: Optional[str] = None,
    cache_size: Optional[int] = None,
    time_to_idle: Optional[float] = None,
) -> Dict[str, Any]:
    """Load configuration, apply command-line overrides and surface friendly errors."""
    try:
        cfg = load_config(config_path) if config_path else load_config()
    except Exception as exc:
        console.print(f"[red]Error loading config: {escape(str(exc))}[/red]")
        raise typer.Exit(1)

    if base_url is not None:
        cfg["stream"]["base_url"] = base_url
    if cache_size is not None:
        cfg["cache"]["max_capacity"] = cache_size
    if time_to_idle is not None:
        cfg["cache"]["time_to_idle_seconds"] = time_to_idle

    errors = validate_config(cfg)
    if errors:
        console.print(f"[red]Invalid options: {escape('; '.join(errors))}[/red]")
        raise typer.Exit(1)

    return cfg


def _build_app(cfg: Dict[str, Any]) -> LogTailApp:
    """Open the stream and assemble the application state around it."""
    traces = TraceCache(cfg["cache"]["max_capacity"], cfg["cache"]["time_to_idle_seconds"])
    try:
        session = IngestionSession.from_config(cfg, traces)
    except StreamConnectionError as exc:
        console.print(f"[red]Error connecting to {escape(cfg['stream']['base_url'])}: {escape(str(exc))}[/red]")
        raise typer.Exit(1)

    state = ApplicationState(traces=traces, session=session, max_items=cfg["ui"].get("max_items", 200))

    reconnect = None
    if cfg["stream"].get("reconnect"):
        reconnect = partial(IngestionSession.from_config, cfg, traces)

    return LogTailApp(state, reconnect=reconnect)


def _print_item(item: LogItem) -> None:
    kind, tag, content = describe_item(item)
    payload = item.payload
    if isinstance(payload, TraceLogItem):
        console.print(f"[cyan]{escape(kind)}[/cyan] [magenta]{escape(tag)}[/magenta]: {escape(content)}")
    elif isinstance(payload, TrivialLogItem):
        console.print(f"[magenta]{escape(tag)}[/magenta]: {escape(content)}")
    else:
        console.print(f"[dim]{escape(content)}[/dim]")


def _render_summary(state: ApplicationState, title: str) -> None:
    """Pretty-print what a non-interactive run consumed."""
    kinds = state.kinds
    table = Table(title=title)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Records", str(state.counter))
    table.add_row("├─ Trivial", str(kinds[TrivialLogItem]))
    table.add_row("├─ Trace", str(kinds[TraceLogItem]))
    table.add_row("└─ Raw", str(kinds[RawLogItem]))
    table.add_row("Traces Cached", str(len(state.traces)))
    table.add_row("Skipped Lines", str(state.skipped))
    console.print(table)


async def _run_tui(tail_app: LogTailApp) -> None:
    loop = asyncio.get_running_loop()
    main_task = asyncio.current_task()
    try:
        # Termination goes through cancellation so the terminal guard still runs
        loop.add_signal_handler(signal.SIGTERM, main_task.cancel)
    except (NotImplementedError, RuntimeError):
        pass

    try:
        await run_terminal_app(tail_app, TerminalSession(console), KeyboardInput())
    finally:
        # A cancelled update can leave a step blocked on the socket in a worker
        # thread, holding the response; wake it before closing off the loop
        tail_app.abort()
        await asyncio.to_thread(tail_app.close)


@app.command()
def tail(
    base_url: Optional[str] = typer.Option(None, "--base-url", help="Log source base URL"),
    cache_size: Optional[int] = typer.Option(None, "--cache-size", help="Maximum cached traces"),
    time_to_idle: Optional[float] = typer.Option(None, "--tti", help="Trace idle expiry in seconds"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Enable verbose output"),
    config: Optional[Path] = typer.Option(None, "-c", "--config", help="Custom config file"),
):
    """Open the live terminal view of a log stream."""
    cfg = _load_configuration(config, base_url, cache_size, time_to_idle)
    setup_logging(cfg["output"]["log_file"], verbose, live=True)
    tail_app = _build_app(cfg)

    try:
        asyncio.run(_run_tui(tail_app))
    except ConnectionClosed as exc:
        console.print(f"[red]Log stream ended: {escape(str(exc))}[/red]")
        logger.error("Log stream ended", exc_info=True)
        raise typer.Exit(1)
    except (KeyboardInterrupt, asyncio.CancelledError):
        console.print("[yellow]Interrupted[/yellow]")
    except Exception as exc:
        console.print(f"[red]Error: {escape(str(exc))}[/red]")
        logger.error("Terminal session failed", exc_info=True)
        raise typer.Exit(1)

    console.print(f"[bold]Records received:[/bold] {tail_app.state.counter}")


@app.command()
def stream(
    base_url: Optional[str] = typer.Option(None, "--base-url", help="Log source base URL"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Enable verbose output"),
    config: Optional[Path] = typer.Option(None, "-c", "--config", help="Custom config file"),
):
    """Print records as they arrive, without the terminal view."""
    cfg = _load_configuration(config, base_url)
    setup_logging(cfg["output"]["log_file"], verbose)
    tail_app = _build_app(cfg)

    console.print(Panel.fit(
        f"[bold blue]Streaming[/bold blue] {escape(cfg['stream']['base_url'])}",
        title="tracetail"
    ))

    try:
        while True:
            item = tail_app.ingest_one()
            if item is not None:
                _print_item(item)
    except ConnectionClosed as exc:
        console.print(f"\n[red]Log stream ended: {escape(str(exc))}[/red]")
        _render_summary(tail_app.state, "Stream Summary")
        raise typer.Exit(1)
    except KeyboardInterrupt:
        _render_summary(tail_app.state, "Stream Summary")
    finally:
        tail_app.close()


@app.command()
def replay(
    log_file: Path = typer.Argument(..., help="Newline-delimited JSON records to replay"),
    quiet: bool = typer.Option(False, "-q", "--quiet", help="Only print the summary"),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Enable verbose output"),
    config: Optional[Path] = typer.Option(None, "-c", "--config", help="Custom config file"),
):
    """Feed a recorded stream through the parser and trace cache (no network)."""
    if not log_file.exists():
        console.print(f"[red]Error: Log file not found: {log_file}[/red]")
        raise typer.Exit(1)

    cfg = _load_configuration(config)
    setup_logging(cfg["output"]["log_file"], verbose)

    traces = TraceCache(cfg["cache"]["max_capacity"], cfg["cache"]["time_to_idle_seconds"])
    with open(log_file, "r", encoding="utf-8") as f:
        session = IngestionSession(f, traces)
        state = ApplicationState(traces=traces, session=session, max_items=cfg["ui"].get("max_items", 200))
        replay_app = LogTailApp(state)
        try:
            while True:
                item = replay_app.ingest_one()
                if item is not None and not quiet:
                    _print_item(item)
        except ConnectionClosed:
            logger.info(f"Reached end of {log_file}")

    _render_summary(state, "Replay Summary")


if __name__ == "__main__":
    app()
