"""Typer CLI entry point for fault-boundary."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated, Any

import structlog
import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from fault_boundary import __version__
from fault_boundary.config import Settings, format_validation_error
from fault_boundary.host import ProtectedRegion
from fault_boundary.logging import configure_logging
from fault_boundary.recovery import (
    FaultClass,
    ManualScheduler,
    RecoveryController,
    backoff_delay_ms,
    decide_retry,
)

logger: structlog.stdlib.BoundLogger = structlog.get_logger(__name__)

console = Console()
err_console = Console(stderr=True)

app = typer.Typer(
    name="fault-boundary",
    help="Inspect and simulate fault recovery for protected render regions.",
    no_args_is_help=True,
)

_CLASS_STYLE = {
    FaultClass.RETRYABLE: "[green]retryable[/green]",
    FaultClass.NON_RETRYABLE: "[red]non-retryable[/red]",
    FaultClass.EXHAUSTED: "[yellow]exhausted[/yellow]",
}

ConfigOption = Annotated[
    Path | None,
    typer.Option("--config", "-c", help="Path to config YAML file."),
]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _load_settings(
    config_path: Path | None = None,
    **overrides: Any,
) -> Settings:
    """Load settings, printing a readable panel on validation errors."""
    from pydantic import ValidationError

    try:
        return Settings.load(config_path=config_path, **overrides)
    except ValidationError as exc:
        err_console.print(
            Panel(
                format_validation_error(exc),
                title="Configuration Error",
                border_style="red",
            )
        )
        raise typer.Exit(code=1) from exc


def _version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold]fault-boundary[/bold] {__version__}")
        raise typer.Exit


@app.callback()
def common(
    version: Annotated[
        bool | None,
        typer.Option(
            "--version",
            "-V",
            help="Show version and exit.",
            callback=_version_callback,
            is_eager=True,
        ),
    ] = None,
) -> None:
    """fault-boundary global options."""


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


@app.command()
def classify(
    message: Annotated[str, typer.Argument(help="Fault message text to classify.")],
    retry_count: Annotated[
        int,
        typer.Option("--retry-count", "-n", min=0, help="Resets already performed."),
    ] = 0,
    config: ConfigOption = None,
) -> None:
    """Show how a fault message would be handled."""
    settings = _load_settings(config)
    decision = decide_retry(message, retry_count, settings.recovery.to_policy())

    table = Table(title="Fault Classification", show_header=False)
    table.add_column("Field", style="cyan")
    table.add_column("Value")
    table.add_row("Message", message)
    table.add_row("Retry count", str(retry_count))
    table.add_row("Class", _CLASS_STYLE[decision.fault_class])
    table.add_row(
        "Automatic reset",
        f"in {decision.delay_ms} ms" if decision.delay_ms is not None else "none",
    )
    console.print(table)


@app.command()
def schedule(config: ConfigOption = None) -> None:
    """Print the automatic reset backoff schedule."""
    settings = _load_settings(config)
    recovery = settings.recovery

    table = Table(title="Backoff Schedule")
    table.add_column("Attempt", justify="right", style="cyan")
    table.add_column("Retry count", justify="right")
    table.add_column("Delay (ms)", justify="right")
    for retry_count in range(recovery.max_retries):
        delay = backoff_delay_ms(
            retry_count,
            base_delay_ms=recovery.base_delay_ms,
            max_delay_ms=recovery.max_delay_ms,
        )
        table.add_row(str(retry_count + 1), str(retry_count), str(delay))
    console.print(table)
    console.print(
        f"[dim]After {recovery.max_retries} resets only manual or "
        "key-driven resets remain.[/dim]"
    )


@app.command()
def simulate(
    messages: Annotated[
        list[str],
        typer.Argument(help="Fault messages raised by successive render attempts."),
    ],
    label: Annotated[
        str | None,
        typer.Option("--label", "-l", help="Protected region label."),
    ] = None,
    config: ConfigOption = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Show controller log events."),
    ] = False,
) -> None:
    """Replay render faults against a controller on a virtual clock.

    Each render attempt raises the next message; once they run out the
    region renders normally. Exits 1 if the region ends up failed.
    """
    overrides: dict[str, Any] = {}
    if label:
        overrides["boundary"] = {"context_label": label}
    if verbose:
        overrides["logging"] = {"level": "DEBUG"}
    settings = _load_settings(config, **overrides)
    configure_logging(
        level=settings.logging.level,
        fmt=settings.logging.format,
        log_file=settings.logging.file,
    )

    scheduler = ManualScheduler()
    timeline: list[tuple[float, str, str]] = []
    pending = iter(messages)

    def render_subtree(_props: object) -> str:
        message = next(pending, None)
        if message is not None:
            raise RuntimeError(message)
        return "rendered"

    def on_fault(fault: BaseException, _context: dict[str, Any]) -> None:
        timeline.append((scheduler.now_ms, "fault", str(fault)))

    controller = RecoveryController.from_settings(
        settings, scheduler=scheduler, on_fault=on_fault
    )
    controller.add_reset_listener(
        lambda trigger, state: timeline.append(
            (scheduler.now_ms, "reset", f"{trigger} (retry count {state.retry_count})")
        )
    )

    with ProtectedRegion(
        render_subtree,
        controller=controller,
        show_details=settings.boundary.show_details,
    ) as region:
        region.render()
        while controller.has_pending_timer:
            delay = controller.pending_delay_ms or 0
            timeline.append((scheduler.now_ms, "scheduled", f"reset in {delay} ms"))
            scheduler.advance(delay)
        logger.debug(
            "simulation_complete",
            failed=controller.failed,
            retry_count=controller.retry_count,
            elapsed_ms=scheduler.now_ms,
        )

        table = Table(title=f"Recovery Timeline: {controller.context_label}")
        table.add_column("t (ms)", justify="right", style="cyan")
        table.add_column("Event")
        table.add_column("Detail")
        for at_ms, event, detail in timeline:
            table.add_row(f"{at_ms:.0f}", event, detail)
        console.print(table)

        if controller.failed:
            record = controller.current_fault
            message = record.message if record is not None else ""
            fault_class = decide_retry(
                message, controller.retry_count, controller.policy
            ).fault_class
            console.print(
                f"[red]Region failed[/red] ({_CLASS_STYLE[fault_class]}) "
                f"after {controller.retry_count} resets."
            )
            raise typer.Exit(code=1)

    console.print(
        f"[green]Region recovered[/green] after {controller.retry_count} resets."
    )


@app.command(name="config")
def show_config(config: ConfigOption = None) -> None:
    """Print the resolved settings as JSON."""
    settings = _load_settings(config)
    console.print_json(settings.model_dump_json())


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
