"""Typer CLI entrypoint for the WhatsApp bridge."""

from __future__ import annotations

import signal
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer
import yaml
from rich import box
from rich.console import Console
from rich.table import Table

from .bridge import Bridge
from .capture import BrowserCaptureSource
from .config import BridgeConfig, ConfigRepository
from .logging_conf import BRIDGE_LOG, available_logs, configure_logging, tail_log
from .publisher import BasePublisher, FilePublisher, NatsPublisher
from .scheduler import APSchedulerAdapter
from .ui import render_stats

app = typer.Typer(
    help="Relay WhatsApp Web events to NATS.",
    no_args_is_help=True,
    rich_markup_mode=None,
)
config_app = typer.Typer(
    name="config",
    help="Inspect or initialise the bridge configuration.",
    no_args_is_help=True,
    rich_markup_mode=None,
)
log_app = typer.Typer(
    name="log",
    help="Inspect bridge log files.",
    no_args_is_help=True,
    rich_markup_mode=None,
)

console = Console()


@dataclass
class AppState:
    repository: ConfigRepository
    config: BridgeConfig
    verbose: bool = False

    @property
    def project_root(self) -> Path:
        return self.repository.locator.project_root

    @property
    def logs_dir(self) -> Path:
        return self.repository.locator.logs_dir


def build_state(verbose: bool) -> AppState:
    repository = ConfigRepository()
    config = repository.load()
    configure_logging(verbose=verbose, log_dir=repository.locator.logs_dir)
    return AppState(repository=repository, config=config, verbose=verbose)


def _get_state(ctx: typer.Context) -> AppState:
    state = ctx.obj
    if state is None:
        state = build_state(verbose=False)
        ctx.obj = state
    return state


def build_capture(state: AppState, headless: bool | None = None) -> BrowserCaptureSource:
    browser_config = state.config.browser
    if headless is not None:
        browser_config = browser_config.model_copy(update={"headless": headless})
    return BrowserCaptureSource(
        browser_config,
        user_data_dir=state.config.resolved_user_data_dir(state.project_root),
    )


def build_publisher(state: AppState, dry_run: Path | None = None) -> BasePublisher:
    if dry_run is not None:
        return FilePublisher(dry_run, subjects=state.config.nats.subjects())
    return NatsPublisher(state.config.nats)


def build_bridge(
    state: AppState,
    dry_run: Path | None = None,
    headless: bool | None = None,
    stats_interval: float | None = None,
) -> Bridge:
    config = state.config
    if stats_interval is not None:
        config = config.model_copy(
            update={
                "stats": config.stats.model_copy(
                    update={"enabled": stats_interval > 0, "display_interval_seconds": stats_interval or 30.0}
                )
            }
        )
    return Bridge(
        config,
        build_capture(state, headless),
        build_publisher(state, dry_run),
        scheduler=APSchedulerAdapter(),
        console=console,
        verbose=state.verbose,
    )


app.add_typer(config_app, name="config", help="Inspect or initialise the configuration.")
app.add_typer(log_app, name="log", help="Inspect bridge log files.")


def _stop_handler(bridge: Bridge, reason: str):
    def handle(signum, frame) -> None:  # noqa: ANN001
        # Browser waits block the main thread; abort them instead of flagging.
        if bridge.starting:
            raise KeyboardInterrupt(reason)
        bridge.request_stop(reason)

    return handle


def _install_signal_handlers(bridge: Bridge) -> None:
    signal.signal(signal.SIGINT, _stop_handler(bridge, "interrupted"))
    signal.signal(signal.SIGTERM, _stop_handler(bridge, "terminated"))
    if hasattr(signal, "SIGUSR1"):
        # Stats locks may be held by the interrupted frame; reset off-thread.
        signal.signal(
            signal.SIGUSR1,
            lambda *_: threading.Thread(target=bridge.reset_stats, name="stats-reset", daemon=True).start(),
        )


@app.callback()
def main(
    ctx: typer.Context, verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging.", is_flag=True)
) -> None:
    ctx.obj = build_state(verbose)


@app.command("launch", help="Open the browser profile and wait for the WhatsApp Web login.")
def launch(
    ctx: typer.Context,
    headless: bool = typer.Option(False, "--headless", help="Run Chromium without a window.", is_flag=True),
) -> None:
    state = _get_state(ctx)
    capture = build_capture(state, headless or None)
    try:
        capture.launch()
        console.print("Scan the QR code in the browser window to log in.", style="cyan")
        if capture.wait_for_authentication():
            console.print("Authenticated; the session is stored in the browser profile.", style="green")
        else:
            console.print("Authentication timed out.", style="red")
            raise typer.Exit(code=1)
    finally:
        capture.close()


@app.command("run", help="Start relaying events until stopped.")
def run(
    ctx: typer.Context,
    dry_run: Optional[Path] = typer.Option(
        None, "--dry-run", help="Write payloads to a JSONL file instead of NATS."
    ),
    headless: bool = typer.Option(False, "--headless", help="Run Chromium without a window.", is_flag=True),
    stats_interval: Optional[float] = typer.Option(
        None, "--stats-interval", help="Print statistics every N seconds (0 disables)."
    ),
) -> None:
    state = _get_state(ctx)
    bridge = build_bridge(state, dry_run=dry_run, headless=headless or None, stats_interval=stats_interval)
    _install_signal_handlers(bridge)
    try:
        reason = bridge.run()
    except KeyboardInterrupt as exc:
        console.print("Bridge interrupted during startup", style="yellow")
        raise typer.Exit(code=130) from exc
    except Exception as exc:  # noqa: BLE001
        console.print(f"Bridge failed: {exc}", style="red")
        raise typer.Exit(code=1) from exc
    console.print(render_stats(bridge.snapshot(), state.config.nats.subjects()))
    console.print(f"Bridge stopped: {reason}", style="cyan")
    if reason not in ("interrupted", "terminated", "stop_requested"):
        raise typer.Exit(code=2)


@config_app.command("show", help="Print the active configuration.")
def config_show(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    console.print(f"# {state.repository.path}", style="dim")
    console.print(
        yaml.safe_dump(state.config.model_dump(mode="json"), allow_unicode=True, sort_keys=False),
        markup=False,
    )


@config_app.command("init", help="Write the default configuration file.")
def config_init(
    ctx: typer.Context,
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file.", is_flag=True),
) -> None:
    state = _get_state(ctx)
    path = state.repository.path
    if path.exists() and not force and state.config != BridgeConfig():
        console.print(f"Configuration already customised: {path} (use --force to reset)", style="yellow")
        raise typer.Exit(code=1)
    state.config = state.repository.reset()
    console.print(f"Default configuration written to {path}", style="green")


@log_app.command("list", help="List the available log files.")
def log_list(ctx: typer.Context) -> None:
    state = _get_state(ctx)
    logs = list(available_logs(state.logs_dir))
    if not logs:
        console.print("No log files yet.", style="dim")
        return
    table = Table(box=box.SIMPLE_HEAD)
    table.add_column("File", style="green")
    table.add_column("Size", justify="right")
    for path in logs:
        table.add_row(path.name, f"{path.stat().st_size} B")
    console.print(table)


@log_app.command("show", help="Show the last lines of a log file.")
def log_show(
    ctx: typer.Context,
    name: str = typer.Argument(BRIDGE_LOG, help="Log file name."),
    tail: int = typer.Option(100, "--tail", help="Number of lines to show."),
) -> None:
    state = _get_state(ctx)
    filename = name if name.endswith(".log") else f"{name}.log"
    lines = tail_log(state.logs_dir / filename, tail)
    if not lines:
        console.print("No log entries yet.", style="dim")
        return
    console.print(f"{filename} · last {len(lines)} lines", style="cyan")
    console.print("".join(lines), markup=False, highlight=False)


def cli() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    cli()
