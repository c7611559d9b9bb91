"""
CLI interface for Token Meter.

Provides command-line access to the usage log and its aggregated metrics.
"""

import json
import sys
from pathlib import Path
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.table import Table

from token_meter.config.loader import (
    DEFAULT_CONFIG_PATH,
    UsageConfig,
    default_config,
    load_usage_config,
    write_default_config,
)
from token_meter.config.logging_setup import setup_logging
from token_meter.core.aggregation import MetricsResponse
from token_meter.core.query import InvalidQueryError, get_metrics, parse_metrics_query
from token_meter.demo.seed_demo_data import seed_demo_data
from token_meter.runtime import UsageRuntime
from token_meter.storage.json_store import LoadError, StoreError
from token_meter.storage.models import format_timestamp

app = typer.Typer()
console = Console()

EXIT_CODE_OK = 0
EXIT_CODE_ERROR = 1

ConfigOption = typer.Option(
    None, "--config", "-c", help="Path to YAML configuration file"
)
PathOption = typer.Option(
    None, "--path", "-p", help="Usage log path (overrides the config file)"
)


def _resolve_config(config: Optional[Path], path: Optional[Path]) -> UsageConfig:
    """Pick the configuration for a command.

    An explicit --path wins, then an explicit --config, then the default
    config file if present, then built-in defaults.
    """
    if path is not None:
        return default_config(path)
    if config is not None:
        return load_usage_config(config)
    if Path(DEFAULT_CONFIG_PATH).exists():
        return load_usage_config(DEFAULT_CONFIG_PATH)
    return default_config()


def _load_config_or_exit(config: Optional[Path], path: Optional[Path]) -> UsageConfig:
    try:
        usage_config = _resolve_config(config, path)
    except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
        console.print(f"[red]Invalid configuration:[/] {e}")
        sys.exit(EXIT_CODE_ERROR)
    setup_logging(usage_config.logging.level)
    return usage_config


@app.callback(invoke_without_command=True)
def main(ctx: typer.Context):
    """Token Meter CLI."""
    if ctx.invoked_subcommand is None:
        console.print("Token Meter - Use --help to see available commands")


@app.command()
def init(
    config: Path = typer.Option(
        Path(DEFAULT_CONFIG_PATH), "--config", "-c", help="Where to write the config file"
    )
):
    """Write a default configuration file."""
    try:
        written = write_default_config(config)
    except FileExistsError:
        console.print(f"[yellow]![/] Config already exists at {config}")
        sys.exit(EXIT_CODE_OK)
    except OSError as e:
        console.print(f"[red]Error writing config:[/] {e}")
        sys.exit(EXIT_CODE_ERROR)
    console.print(f"[green]✓[/] Wrote default configuration to {written}")


@app.command()
def status(
    config: Optional[Path] = ConfigOption,
    path: Optional[Path] = PathOption,
):
    """Show where usage is stored and how many events it holds."""
    usage_config = _load_config_or_exit(config, path)
    log_path = Path(usage_config.store.path)

    if not usage_config.statistics.enabled:
        console.print("[yellow]Statistics are disabled[/]")
    console.print(f"Usage log: {log_path}")

    if not log_path.exists():
        console.print("[dim]No usage recorded yet[/]")
        return

    with UsageRuntime.from_config(default_config(log_path)) as runtime:
        try:
            events = runtime.store.load()
        except LoadError as e:
            console.print(f"[red]Error:[/] {e}")
            sys.exit(EXIT_CODE_ERROR)

    console.print(f"Size: {log_path.stat().st_size:,} bytes")
    console.print(f"Events: {len(events):,}")
    if events:
        console.print(f"Last event: {format_timestamp(events[-1].timestamp)}")


@app.command()
def metrics(
    from_: Optional[str] = typer.Option(
        None, "--from", help="RFC3339 start of the window (default: 24 hours ago)"
    ),
    to: Optional[str] = typer.Option(
        None, "--to", help="RFC3339 end of the window (default: now)"
    ),
    model: Optional[str] = typer.Option(
        None, "--model", "-m", help="Only count this model (exact match)"
    ),
    as_json: bool = typer.Option(
        False, "--json", help="Print the metrics response as JSON"
    ),
    config: Optional[Path] = ConfigOption,
    path: Optional[Path] = PathOption,
):
    """
    Show aggregated token usage for a time window.

    Totals, a per-model breakdown and an hourly time series are computed
    from the usage log. Events still buffered by a running proxy are not
    included until they are flushed.
    """
    try:
        query = parse_metrics_query(from_, to, model)
    except InvalidQueryError as e:
        _print_error(str(e), as_json)
        sys.exit(EXIT_CODE_ERROR)

    usage_config = _load_config_or_exit(config, path)

    with UsageRuntime.from_config(usage_config) as runtime:
        try:
            response = get_metrics(runtime.store, query)
        except LoadError:
            _print_error("failed to load usage events", as_json)
            sys.exit(EXIT_CODE_ERROR)

    if as_json:
        typer.echo(json.dumps(response.to_dict(), indent=2))
        return

    _display_metrics(response, query)


@app.command("seed-demo")
def seed_demo(
    count: int = typer.Option(24, "--count", "-n", min=1, help="Number of demo events"),
    config: Optional[Path] = ConfigOption,
    path: Optional[Path] = PathOption,
):
    """Append demo usage events to the log."""
    usage_config = _load_config_or_exit(config, path)
    log_path = usage_config.store.path

    try:
        with UsageRuntime.from_config(default_config(log_path)) as runtime:
            written = seed_demo_data(runtime.store, count)
    except StoreError as e:
        console.print(f"[red]Error writing demo data:[/] {e}")
        sys.exit(EXIT_CODE_ERROR)

    console.print(f"[green]✓[/] Wrote {written} demo events to {log_path}")


def _print_error(reason: str, as_json: bool) -> None:
    if as_json:
        typer.echo(json.dumps({"error": reason}))
    else:
        console.print(f"[red]Error:[/] {reason}")


def _display_metrics(response: MetricsResponse, query) -> None:
    """Display metrics as rich tables."""
    console.print("\n[bold]Token Usage[/bold]")
    console.print(
        f"{format_timestamp(query.from_time)} → {format_timestamp(query.to_time)}"
        + (f"  model={query.model}" if query.model else "")
    )
    console.print("-" * 40)
    console.print(f"Tokens: {response.totals.tokens:,}")
    console.print(f"Requests: {response.totals.requests:,}")

    if not response.by_model:
        console.print("\n[dim]No usage recorded in this window.[/]")
        return

    by_model = Table(title="By model")
    by_model.add_column("Model")
    by_model.add_column("Tokens", justify="right")
    by_model.add_column("Requests", justify="right")
    for m in response.by_model:
        by_model.add_row(m.model or "(none)", f"{m.tokens:,}", f"{m.requests:,}")
    console.print(by_model)

    hourly = Table(title="Hourly")
    hourly.add_column("Hour (UTC)")
    hourly.add_column("Tokens", justify="right")
    hourly.add_column("Requests", justify="right")
    for b in response.timeseries:
        hourly.add_row(format_timestamp(b.bucket_start), f"{b.tokens:,}", f"{b.requests:,}")
    console.print(hourly)


if __name__ == "__main__":
    app()
