"""
CLI interface for the usage collector.

Provides command-line access to collection, identity configuration, health
checks, reports and the background scheduler.
"""

import logging
import sys
from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Optional

import typer
import yaml
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from usage_collector.config.identity import IdentityStore
from usage_collector.config.loader import CollectorConfig, resolve_config, resolve_storage_root
from usage_collector.core.pipeline import CollectionError, CollectionResult, UsageCollector, default_locator
from usage_collector.core.reconciliation import HealthChecker
from usage_collector.core.scheduler import CollectorScheduler
from usage_collector.storage.reports import METRICS_DIR_NAME, list_metric_files, load_report, metrics_file_name
from usage_collector.storage.state_store import StateStore

app = typer.Typer()
console = Console()

EXIT_CODE_PASS = 0
EXIT_CODE_FAIL = 1

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


@dataclass
class Components:
    """Collaborators wired from one configuration."""
    config: CollectorConfig
    state_store: StateStore
    identity_store: IdentityStore
    storage_root: Path
    collector: UsageCollector
    checker: HealthChecker


def build_components(config: CollectorConfig) -> Components:
    """Wire the stores, collector and checker for a configuration."""
    identity_store = IdentityStore(
        config.state_root,
        mirror_dir=lambda identity: resolve_storage_root(config, identity),
    )
    identity = identity_store.load()
    storage_root = resolve_storage_root(config, identity)
    state_store = StateStore(config.state_root, mirror_dir=lambda: storage_root)
    collector = UsageCollector(
        state_store,
        storage_root,
        identity=identity,
        locator=default_locator(config.log_directories),
        archive_daily=config.archive_daily,
    )
    checker = HealthChecker(state_store, storage_root)
    return Components(
        config=config,
        state_store=state_store,
        identity_store=identity_store,
        storage_root=storage_root,
        collector=collector,
        checker=checker,
    )


def _components(ctx: typer.Context) -> Components:
    return build_components(ctx.obj["config"])


@app.callback(invoke_without_command=True)
def main(
    ctx: typer.Context,
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to a YAML collector config file"
    ),
    log_level: str = typer.Option(
        "INFO",
        "--log-level",
        "-l",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)"
    ),
):
    """Editor usage collector CLI."""
    logging.basicConfig(level=getattr(logging, log_level.upper(), logging.INFO), format=LOG_FORMAT)
    try:
        config = resolve_config(config_path)
    except (FileNotFoundError, yaml.YAMLError, ValueError) as e:
        console.print(f"[red]Error loading config:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    ctx.obj = {"config": config}
    if ctx.invoked_subcommand is None:
        console.print("Usage collector - Use --help to see available commands")


@app.command()
def collect(
    ctx: typer.Context,
    force: bool = typer.Option(
        False,
        "--force",
        "-f",
        help="Re-read every log file from the start and rebuild reports"
    ),
):
    """Collect new editor log content and update the usage reports."""
    components = _components(ctx)
    if not components.identity_store.is_configured():
        console.print("[yellow]Identity not configured, events will be attributed to Unknown.[/]")
        console.print("Run `usage-collector configure` to set your name, company and team.")

    try:
        result = components.collector.collect(automatic=False, force_all=force)
    except CollectionError as e:
        console.print(f"[red]Error:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    _display_collection_result(result, components.storage_root)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def configure(
    ctx: typer.Context,
    name: str = typer.Option(..., "--name", prompt="Your name", help="Your name"),
    company: str = typer.Option(..., "--company", prompt="Company name", help="Company name"),
    team: str = typer.Option(..., "--team", prompt="Team name", help="Team name"),
):
    """Set the identity attached to every usage event."""
    components = _components(ctx)
    try:
        identity = components.identity_store.save(name, company, team)
    except (ValueError, OSError) as e:
        console.print(f"[red]Error saving configuration:[/] {str(e)}")
        sys.exit(EXIT_CODE_FAIL)

    storage_root = resolve_storage_root(components.config, identity)
    console.print(f"[green]✓[/] Configured for {identity.name} ({identity.company} / {identity.team})")
    console.print(f"Reports will be saved to: {storage_root}")
    sys.exit(EXIT_CODE_PASS)


@app.command()
def health(
    ctx: typer.Context,
    recover: bool = typer.Option(
        False,
        "--recover",
        "-r",
        help="Run a forced collection if the check requests one"
    ),
):
    """Check that reports and tracking state are consistent."""
    components = _components(ctx)
    status = components.checker.perform_health_check()

    console.print(f"\n[bold]Health check[/bold] ({status.timestamp})")
    console.print("-" * 40)
    console.print(f"Logs directory: {status.logs_directory}")
    console.print(f"Log files: {status.log_file_count}")
    console.print(f"Metrics files: {status.metrics_file_count}")
    for issue in status.issues:
        console.print(f"[red]✗[/] {escape(issue)}")
    for warning in status.warnings:
        console.print(f"[yellow]![/] {escape(warning)}")

    if status.healthy:
        console.print("[green]✓[/] Healthy")
        sys.exit(EXIT_CODE_PASS)

    if status.needs_recollection and recover:
        console.print("\nRunning forced collection to recover...")
        try:
            result = components.collector.collect(automatic=False, force_all=True)
        except CollectionError as e:
            console.print(f"[red]Error:[/] {str(e)}")
            sys.exit(EXIT_CODE_FAIL)
        _display_collection_result(result, components.storage_root)
        sys.exit(EXIT_CODE_PASS)

    if status.needs_recollection:
        console.print("\nRun `usage-collector health --recover` to rebuild the reports.")
    sys.exit(EXIT_CODE_FAIL)


@app.command()
def report(
    ctx: typer.Context,
    day: Optional[str] = typer.Option(
        None,
        "--date",
        "-d",
        help="Show the report for one date (YYYY-MM-DD)"
    ),
):
    """Show usage reports."""
    components = _components(ctx)
    metrics_dir = components.storage_root / METRICS_DIR_NAME

    if day is not None:
        try:
            date.fromisoformat(day)
        except ValueError:
            console.print(f"[red]Error:[/] invalid date '{day}', expected YYYY-MM-DD")
            sys.exit(EXIT_CODE_FAIL)
        rows = load_report(metrics_dir / metrics_file_name(day))
        if not rows:
            console.print(f"\n[bold yellow]No usage recorded for {day}[/]")
            sys.exit(EXIT_CODE_PASS)
        _display_report_rows(day, rows)
        sys.exit(EXIT_CODE_PASS)

    files = list_metric_files(metrics_dir)
    if not files:
        console.print("\n[bold yellow]No usage reports found[/]")
        console.print("Run `usage-collector collect` to build them.\n")
        sys.exit(EXIT_CODE_PASS)

    table = Table(title="Usage reports")
    table.add_column("Date")
    table.add_column("Rows", justify="right")
    table.add_column("Requests", justify="right")
    for path in files:
        rows = load_report(path)
        table.add_row(
            path.stem.replace("metrics_", "", 1),
            str(len(rows)),
            str(sum(int(r.get("numRequests", 0)) for r in rows)),
        )
    console.print(table)
    sys.exit(EXIT_CODE_PASS)


@app.command()
def watch(ctx: typer.Context):
    """Collect and check health periodically until interrupted."""
    components = _components(ctx)
    config = components.config
    scheduler = CollectorScheduler(
        components.collector,
        components.checker,
        collection_interval_minutes=config.collection_interval_minutes,
        health_check_interval_minutes=config.health_check_interval_minutes,
    )
    console.print(
        f"Collecting every {config.collection_interval_minutes} min, "
        f"health check every {config.health_check_interval_minutes} min. Press Ctrl+C to stop."
    )
    scheduler.start()
    sys.exit(EXIT_CODE_PASS)


@app.command("reset-state")
def reset_state(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
):
    """Forget collection and parsing progress so every log is read again."""
    components = _components(ctx)
    if not yes and not typer.confirm("Reset collection and parsing state?"):
        console.print("Aborted.")
        sys.exit(EXIT_CODE_PASS)

    components.state_store.reset_collection_state()
    components.state_store.reset_parsing_state()
    console.print("[green]✓[/] Collection and parsing state reset")
    sys.exit(EXIT_CODE_PASS)


def _display_collection_result(result: CollectionResult, storage_root: Path):
    """Summarize a collection run."""
    if result.skipped:
        console.print("[yellow]A collection is already in progress.[/]")
        return
    if not result.candidate_files:
        console.print("\n[bold yellow]No editor log files found[/]")
        console.print("Make sure the editor has been run with the assistant enabled.\n")
        return
    if not result.new_files and result.total_records == 0:
        console.print("[green]✓[/] No new logs detected")
        return

    console.print(f"[green]✓[/] Collected {len(result.new_files)} log file(s)")
    console.print(f"New log lines stored: {result.copied_lines}")
    if result.parse is not None:
        console.print(f"Events parsed: {result.parse.total_records}")
        console.print(f"Report rows updated: {result.parse.aggregated_metrics}")
    for archive in result.archives:
        console.print(f"Archive written: {archive.name}")
    console.print(f"Saved to: {storage_root}")


def _display_report_rows(day: str, rows):
    """Render one date's report as a table."""
    table = Table(title=f"Usage on {day}")
    table.add_column("Source")
    table.add_column("Served by")
    table.add_column("Action")
    table.add_column("Requests", justify="right")
    for row in rows:
        table.add_row(
            escape(str(row.get("source", ""))),
            escape(str(row.get("servedBy", ""))),
            escape(str(row.get("action", ""))),
            str(row.get("numRequests", 0)),
        )
    console.print(table)


if __name__ == "__main__":
    app()
