"""CLI for ggufswitch — Typer app for listing and switching models.

Defines the main Typer app, the AppContext dataclass for backend dependency
injection, and helper utilities (run_async, json_output, error_handler).
Running ``ggufswitch`` without a subcommand starts the interactive switch.
"""

from __future__ import annotations

import asyncio
import json
import logging
import signal
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, TypeVar

import pydantic
import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ggufswitch.config import SwitcherSettings, get_settings
from ggufswitch.container import ContainerController
from ggufswitch.errors import RestartFailedError, SwitchError
from ggufswitch.health import HealthProbe
from ggufswitch.inventory import enumerate_models, resolve_current, select_model
from ggufswitch.lock import SwitchLock
from ggufswitch.models import SwitchOutcome, SwitchResult, SwitchState
from ggufswitch.pointer import ModelPointer
from ggufswitch.switcher import ModelSwitcher

logger = logging.getLogger(__name__)

if TYPE_CHECKING:
    from collections.abc import Coroutine, Generator
    from types import FrameType

    from ggufswitch.models import ModelFile

_console = Console()
_err_console = Console(stderr=True)

_TROUBLESHOOTING: tuple[str, ...] = (
    "Check if the model file is corrupted",
    "Verify model format is compatible with llama.cpp",
    "Check available system memory (model may be too large)",
)

_STATE_MESSAGES: dict[SwitchState, str] = {
    SwitchState.RESTARTING: "Restarting container {container}...",
    SwitchState.HEALTH_POLLING: "Waiting for model to load (timeout: {max_wait:g}s)...",
    SwitchState.ROLLING_BACK: "Attempting rollback to previous model...",
}


# ---------------------------------------------------------------------------
# AppContext — backend dependency container
# ---------------------------------------------------------------------------


@dataclass
class AppContext:
    """Container for the switcher's collaborators.

    Provides a single object through which CLI commands can access the
    pointer, Docker and health probe without coupling to their construction.
    """

    settings: SwitcherSettings
    pointer: ModelPointer
    container: ContainerController
    probe: HealthProbe
    switcher: ModelSwitcher


def create_context(settings: SwitcherSettings | None = None) -> AppContext:
    """Create and wire up all backend dependencies.

    Parameters
    ----------
    settings:
        Settings to build from. Defaults to :func:`get_settings`.
    """
    settings = settings if settings is not None else get_settings()

    pointer = ModelPointer(
        settings.models_dir,
        pointer_name=settings.pointer_name,
        backup_name=settings.backup_name,
    )
    container = ContainerController()
    probe = HealthProbe(settings.health_url, request_timeout=settings.request_timeout)
    switcher = ModelSwitcher(
        pointer=pointer,
        container=container,
        probe=probe,
        policy=settings.retry_policy(),
        lock=SwitchLock(settings.lock_path),
        container_name=settings.container_name,
        log_lines=settings.log_lines,
        rollback_settle=settings.rollback_settle,
    )
    return AppContext(
        settings=settings,
        pointer=pointer,
        container=container,
        probe=probe,
        switcher=switcher,
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


T = TypeVar("T")


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run an async coroutine from synchronous Typer command code."""
    return asyncio.run(coro)


def json_output(data: Any, *, as_json: bool) -> Any:
    """Conditionally print data as JSON or return it for Rich formatting.

    Returns None if printed as JSON, otherwise the original data.
    """
    if as_json:
        print(json.dumps(data, indent=2, default=str))
        return None
    return data


@contextmanager
def error_handler() -> Generator[None, None, None]:
    """Render known failures as a red status line and exit with code 1.

    SystemExit and KeyboardInterrupt are allowed to propagate.
    """
    try:
        yield
    except (SystemExit, KeyboardInterrupt):
        raise
    except SwitchError as exc:
        error(str(exc))
        raise typer.Exit(1) from exc
    except pydantic.ValidationError as exc:
        error(f"Invalid configuration: {exc}")
        raise typer.Exit(1) from exc


def _raise_system_exit(signum: int, frame: FrameType | None) -> None:
    raise SystemExit(128 + signum)


def _install_sigterm_handler() -> None:
    """Turn SIGTERM into SystemExit so scoped cleanup (the lock) still runs."""
    signal.signal(signal.SIGTERM, _raise_system_exit)


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


# ---------------------------------------------------------------------------
# Status lines
# ---------------------------------------------------------------------------


def log(message: str) -> None:
    _console.print(f"[blue]\\[{datetime.now():%H:%M:%S}][/blue] {escape(message)}")


def success(message: str) -> None:
    _console.print(f"[green]✓[/green] {escape(message)}")


def warn(message: str) -> None:
    _console.print(f"[yellow]⚠[/yellow] {escape(message)}")


def error(message: str) -> None:
    _err_console.print(f"[red]✗[/red] {escape(message)}")


# ---------------------------------------------------------------------------
# Main app
# ---------------------------------------------------------------------------

app = typer.Typer(
    name="ggufswitch",
    help="Hot-swap the GGUF model served by a llama.cpp container.",
)


def run_cli() -> None:
    """Entry point for the ``ggufswitch`` console script."""
    app()


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context) -> None:
    """Interactive model switcher. Runs ``switch`` when no command is given."""
    with error_handler():
        _configure_logging(get_settings().log_level)
    if ctx.invoked_subcommand is None:
        switch()


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command("list")
def list_models(
    as_json: bool = typer.Option(False, "--json", help="Output as JSON."),
) -> None:
    """List model files and mark the active one."""
    with error_handler():
        app_ctx = create_context()
        models = enumerate_models(app_ctx.settings.models_dir, app_ctx.settings.model_pattern)
        current = app_ctx.pointer.current_name()

        rows = [
            {
                "index": i,
                "name": m.name,
                "size_bytes": m.size_bytes,
                "current": m.name == current,
            }
            for i, m in enumerate(models)
        ]
        if json_output(rows, as_json=as_json) is None:
            return
        _console.print(_models_table(models, current))


@app.command()
def status(
    as_json: bool = typer.Option(False, "--json", help="Output as JSON."),
) -> None:
    """Show the active model, history markers, container and health state."""

    async def _cmd() -> None:
        with error_handler():
            app_ctx = create_context()
            settings = app_ctx.settings
            await app_ctx.container.ping()
            running = await app_ctx.container.is_running(settings.container_name)
            healthy = await app_ctx.probe.check() if running else False
            history = app_ctx.pointer.read_history()

            data = {
                "current": app_ctx.pointer.current_name(),
                "dangling": app_ctx.pointer.is_dangling(),
                "last_selected": history["last_selected"],
                "previous": history["previous"],
                "container": settings.container_name,
                "container_running": running,
                "healthy": healthy,
                "health_url": settings.health_url,
            }
            if json_output(data, as_json=as_json) is None:
                return

            if data["current"] is None:
                warn("No current model symlink found")
            elif data["dangling"]:
                warn(f"Current model symlink points to missing file: {data['current']}")
            else:
                success(f"Currently loaded model: {data['current']}")
            if data["previous"]:
                log(f"Previous model: {data['previous']}")
            if running:
                success(f"Container '{settings.container_name}' is running")
            else:
                warn(f"Container '{settings.container_name}' is not running")
            if healthy:
                success(f"Server is healthy: {settings.health_url}")
            elif running:
                warn(f"Server is not answering: {settings.health_url}")

    run_async(_cmd())


@app.command()
def switch() -> None:
    """Pick a model interactively and switch the server to it."""
    _install_sigterm_handler()

    async def _cmd() -> SwitchResult | None:
        with error_handler():
            app_ctx = create_context()
            settings = app_ctx.settings
            switcher = app_ctx.switcher

            await switcher.preflight()
            log(f"Scanning for models in {settings.models_dir}...")
            models = enumerate_models(settings.models_dir, settings.model_pattern)

            current = resolve_current(app_ctx.pointer)
            if current is not None:
                success(f"Currently loaded model: {current}")
            else:
                warn("No current model symlink found")

            if await app_ctx.container.is_running(settings.container_name):
                success(f"Container '{settings.container_name}' is running")
            else:
                warn(f"Container '{settings.container_name}' is not running")

            _console.print()
            _console.print(_models_table(models, current))
            _console.print("  q) quit")

            choice = typer.prompt("\nChoose model index", default="", show_default=False)
            if choice.strip().lower() == "q":
                log("Operation cancelled")
                return None

            target = select_model(choice, models)
            log(f"Switching to model: {target.name}")

            _attach_progress(switcher, settings)
            try:
                result = await switcher.switch(target)
            except RestartFailedError as exc:
                _console.print()
                error(str(exc))
                warn(f"Symlink still points to {target.name}; no rollback performed")
                lines = await app_ctx.container.logs(
                    settings.container_name, tail=settings.log_lines
                )
                _print_diagnostics(lines, settings)
                raise typer.Exit(1) from exc
            _report(result, settings)
            return result
        return None

    result = run_async(_cmd())
    if result is not None and not result.success:
        raise typer.Exit(1)


# ---------------------------------------------------------------------------
# Rendering
# ---------------------------------------------------------------------------


def _models_table(models: list[ModelFile], current: str | None) -> Table:
    table = Table(title="Available models", title_justify="left")
    table.add_column("#", justify="right", style="cyan")
    table.add_column("Model")
    table.add_column("Size", justify="right")
    table.add_column("")
    for i, model in enumerate(models):
        marker = "[green](current)[/green]" if model.name == current else ""
        table.add_row(str(i), escape(model.name), model.size_human, marker)
    return table


def _attach_progress(switcher: ModelSwitcher, settings: SwitcherSettings) -> None:
    """Attach progress rendering to the switcher's state and poll callbacks."""

    def _on_state(state: SwitchState) -> None:
        template = _STATE_MESSAGES.get(state)
        if template is not None:
            log(template.format(container=settings.container_name, max_wait=settings.max_wait))
        elif state == SwitchState.SWAPPED:
            success("Symlink updated")

    def _on_poll(attempt: int, healthy: bool) -> None:
        if not healthy:
            _console.print(".", end="")

    switcher.on_state = _on_state
    switcher.on_poll = _on_poll


def _report(result: SwitchResult, settings: SwitcherSettings) -> None:
    """Print the final status lines for a switch result."""
    outcome = result.outcome
    if outcome == SwitchOutcome.UNCHANGED:
        success(result.message or f"Model '{result.model}' is already loaded")
        return
    if outcome == SwitchOutcome.DEFERRED:
        warn(result.message or "Container not running")
        warn("Please start it manually:  docker compose up -d")
        return
    if outcome == SwitchOutcome.COMMITTED:
        _console.print()
        success(f"Model successfully loaded: {result.model}")
        success("Server is healthy and responding")
        log(f"Models endpoint: {settings.health_url}")
        return

    _console.print()
    error(result.message or "Model switch failed")
    if outcome == SwitchOutcome.ROLLED_BACK:
        if result.rollback_healthy:
            success(f"Rollback successful - previous model restored: {result.previous_model}")
        else:
            warn("Rollback may not have fully succeeded")
    else:
        warn("No rollback performed")

    _print_diagnostics(result.container_logs, settings)


def _print_diagnostics(lines: list[str], settings: SwitcherSettings) -> None:
    """Print the container log tail and troubleshooting steps."""
    error(f"Model switch failed. Container logs (last {settings.log_lines} lines):")
    _console.print("-" * 40)
    for line in lines:
        _console.print(line, markup=False, highlight=False)
    _console.print("-" * 40)
    error("Troubleshooting steps:")
    for i, step in enumerate(_TROUBLESHOOTING, start=1):
        error(f"{i}. {step}")
    error(
        f"{len(_TROUBLESHOOTING) + 1}. Review full container logs: "
        f"docker logs {settings.container_name}"
    )
