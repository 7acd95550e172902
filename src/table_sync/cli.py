"""
Table Sync CLI - Command Line Interface.

Primary-key based table synchronization between two databases.

Commands:
    run      Synchronize tables from source to target
    analyze  Count per-table differences (dry run)
    preview  Show sampled differing rows for one table
    config   Manage configuration
"""

from __future__ import annotations

import json
import time
import uuid
from pathlib import Path
from typing import Any, Optional

import typer
from rich.console import Console
from rich.table import Table

from table_sync import __version__
from table_sync.config import (
    PREVIEW_MAX_LIMIT,
    ContentMode,
    Settings,
    SyncConfig,
    SyncMode,
    load_settings,
)
from table_sync.core.engine import SyncEngine
from table_sync.core.events import (
    EVENT_SYNC_DONE,
    EVENT_SYNC_LOG,
    EVENT_SYNC_PROGRESS,
    EVENT_SYNC_START,
    Reporter,
    SyncLogEvent,
    SyncProgressEvent,
)
from table_sync.exceptions import SyncError
from table_sync.utils.display import (
    ProgressDisplay,
    print_analysis,
    print_error,
    print_info,
    print_preview,
    print_success,
    print_summary,
    print_warning,
)
from table_sync.utils.logger import setup_logging


# Create the Typer app
app = typer.Typer(
    name="table-sync",
    help="Primary-key based table synchronization between databases.",
    add_completion=True,
    rich_markup_mode="rich",
)

console = Console()

JOB_TEMPLATE = """\
# Table Sync job file
tables = ["users"]
content = "data"          # data | schema | both
mode = "insert_update"    # insert_update | insert_only | full_overwrite
autoAddColumns = false

[sourceConfig]
type = "sqlite"
path = "source.db"

[targetConfig]
type = "d1"
accountId = ""
database = ""             # D1 database UUID
apiToken = ""

[tableOptions.users]
insert = true
update = true
delete = false
"""


def version_callback(value: bool) -> None:
    """Print version and exit."""
    if value:
        console.print(f"[bold cyan]table-sync[/bold cyan] version {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool = typer.Option(
        False,
        "--version",
        "-v",
        callback=version_callback,
        is_eager=True,
        help="Show version and exit.",
    ),
) -> None:
    """Table Sync - primary-key based table synchronization."""
    pass


def _emit(event: str, data: dict[str, Any]) -> None:
    """Write one event as a JSON line on stdout."""
    typer.echo(json.dumps({"event": event, "data": data}, default=str, ensure_ascii=False))


# =============================================================================
# RUN Command
# =============================================================================
@app.command()
def run(
    job: Path = typer.Option(
        ...,
        "--job",
        "-j",
        help="Path to job file (TOML or JSON).",
        exists=True,
        file_okay=True,
        dir_okay=False,
        resolve_path=True,
    ),
    tables: Optional[list[str]] = typer.Option(
        None,
        "--table",
        help="Tables to sync (can be repeated, overrides job file).",
    ),
    mode: Optional[SyncMode] = typer.Option(
        None,
        "--mode",
        "-m",
        help="Sync mode (overrides job file).",
    ),
    content: Optional[ContentMode] = typer.Option(
        None,
        "--content",
        help="What to sync (overrides job file).",
    ),
    auto_add_columns: Optional[bool] = typer.Option(
        None,
        "--auto-add-columns/--no-auto-add-columns",
        help="Add columns missing on the target before applying changes.",
    ),
    job_id: Optional[str] = typer.Option(
        None,
        "--job-id",
        help="Job id attached to emitted events (generated if not set).",
    ),
    config_file: Path = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to settings file.",
        exists=True,
    ),
    json_events: bool = typer.Option(
        False,
        "--json",
        help="Emit events and the result as JSON lines instead of the live display.",
    ),
    quiet: bool = typer.Option(
        False,
        "--quiet",
        "-q",
        help="Minimal output.",
    ),
) -> None:
    """
    Synchronize tables from the source database to the target database.

    Example:
        table-sync run --job ./users-job.toml --mode insert_only
    """
    settings = _load_app_settings(config_file)
    sync_config = _build_job(
        job,
        tables=tables,
        mode=mode,
        content=content,
        auto_add_columns=auto_add_columns,
        job_id=job_id,
    )
    if not sync_config.job_id.strip():
        sync_config = sync_config.model_copy(update={"job_id": uuid.uuid4().hex[:12]})

    show_display = not (quiet or json_events)
    setup_logging(settings.logging, level="WARNING" if (quiet or show_display) else None)

    display = ProgressDisplay() if show_display else None

    def on_log(event: SyncLogEvent) -> None:
        if json_events:
            _emit(EVENT_SYNC_LOG, event.to_dict())
        elif display:
            display.on_log(event)

    def on_progress(event: SyncProgressEvent) -> None:
        if json_events:
            _emit(EVENT_SYNC_PROGRESS, event.to_dict())
        elif display:
            display.on_progress(event)

    engine = SyncEngine(Reporter(on_log=on_log, on_progress=on_progress))

    if json_events:
        _emit(EVENT_SYNC_START, {"jobId": sync_config.job_id, "tables": sync_config.tables})

    started = time.monotonic()
    try:
        if display:
            display.start(
                operation="run",
                source=sync_config.source_config.summary(),
                destination=sync_config.target_config.summary(),
                total_tables=len(sync_config.tables),
            )
        result = engine.run_sync(sync_config)
    finally:
        if display:
            display.stop()
    duration = time.monotonic() - started

    if json_events:
        _emit(EVENT_SYNC_DONE, {"jobId": sync_config.job_id, **result.to_dict()})
    elif not quiet:
        console.print()
        print_summary(result, duration)

    if not result.success:
        if not json_events:
            print_error(result.message)
        raise typer.Exit(1)

    failed = result.failed_tables
    if failed:
        if not json_events:
            print_warning(f"{len(failed)} table(s) failed:")
            for report in failed[:10]:
                print_error(f"  • {report.table}: {report.message}")
            if len(failed) > 10:
                print_info(f"  ... and {len(failed) - 10} more")
        raise typer.Exit(1)

    if not json_events:
        print_success("Sync completed successfully!")


# =============================================================================
# ANALYZE Command
# =============================================================================
@app.command()
def analyze(
    job: Path = typer.Option(
        ...,
        "--job",
        "-j",
        help="Path to job file (TOML or JSON).",
        exists=True,
        dir_okay=False,
        resolve_path=True,
    ),
    tables: Optional[list[str]] = typer.Option(
        None,
        "--table",
        help="Tables to analyze (can be repeated, overrides job file).",
    ),
    content: Optional[ContentMode] = typer.Option(
        None,
        "--content",
        help="What to sync (overrides job file).",
    ),
    config_file: Path = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to settings file.",
        exists=True,
    ),
    as_json: bool = typer.Option(
        False,
        "--json",
        help="Print the result as JSON.",
    ),
) -> None:
    """
    Count the rows a sync would insert, update and delete per table.

    Example:
        table-sync analyze --job ./users-job.toml
    """
    settings = _load_app_settings(config_file)
    setup_logging(settings.logging, level="WARNING")

    sync_config = _build_job(job, tables=tables, content=content)
    result = SyncEngine().analyze(sync_config)

    if as_json:
        typer.echo(json.dumps(result.to_dict(), ensure_ascii=False))
    elif result.success:
        print_analysis(result)

    if not result.success:
        if not as_json:
            print_error(result.message)
        raise typer.Exit(1)


# =============================================================================
# PREVIEW Command
# =============================================================================
@app.command()
def preview(
    table: str = typer.Argument(..., help="Table to preview."),
    job: Path = typer.Option(
        ...,
        "--job",
        "-j",
        help="Path to job file (TOML or JSON).",
        exists=True,
        dir_okay=False,
        resolve_path=True,
    ),
    limit: Optional[int] = typer.Option(
        None,
        "--limit",
        "-l",
        help=f"Sample rows per partition (max {PREVIEW_MAX_LIMIT}).",
    ),
    config_file: Path = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to settings file.",
        exists=True,
    ),
    as_json: bool = typer.Option(
        False,
        "--json",
        help="Print the preview as JSON.",
    ),
) -> None:
    """
    Show sampled rows a sync would insert, update and delete for one table.

    Example:
        table-sync preview users --job ./users-job.toml --limit 20
    """
    settings = _load_app_settings(config_file)
    setup_logging(settings.logging, level="WARNING")

    sync_config = _build_job(job, require_tables=False)
    try:
        result = SyncEngine().preview(
            sync_config,
            table,
            limit=limit if limit is not None else settings.preview_limit,
        )
    except SyncError as e:
        print_error(str(e))
        raise typer.Exit(1)

    if as_json:
        typer.echo(json.dumps(result.to_dict(), default=str, ensure_ascii=False))
    else:
        print_preview(result)


# =============================================================================
# CONFIG Command
# =============================================================================
@app.command()
def config(
    show: bool = typer.Option(
        False,
        "--show",
        help="Show current configuration.",
    ),
    init: bool = typer.Option(
        False,
        "--init",
        help="Write the current settings to a config file.",
    ),
    job_template: bool = typer.Option(
        False,
        "--job-template",
        help="Write an example job file.",
    ),
    output: Path = typer.Option(
        None,
        "--output",
        "-o",
        help="Output path (default: config.toml or job.toml).",
    ),
) -> None:
    """Manage configuration."""
    if init:
        target = output or Path("config.toml")
        Settings().to_file(target)
        print_success(f"Generated config file: {target}")
        return

    if job_template:
        target = output or Path("job.toml")
        target.write_text(JOB_TEMPLATE)
        print_success(f"Generated job file: {target}")
        return

    if show:
        settings = Settings()
        table = Table(title="Current Configuration", border_style="cyan")
        table.add_column("Setting", style="cyan")
        table.add_column("Value")

        table.add_row("Preview Limit", f"{settings.preview_limit} rows")
        table.add_row("Log Level", settings.logging.level)
        table.add_row("Log Format", settings.logging.format)
        table.add_row("Log File", str(settings.logging.file or "[dim]not set[/dim]"))

        console.print(table)
        return

    # Default: show help
    console.print(
        "Use --show to view config, --init to create a config file "
        "or --job-template to create a job file."
    )


# =============================================================================
# Helper Functions
# =============================================================================
def _load_app_settings(config_file: Path | None) -> Settings:
    try:
        return load_settings(config_file)
    except (OSError, ValueError) as e:
        print_error(f"Invalid config file: {e}")
        raise typer.Exit(1)


def _build_job(
    job_file: Path,
    require_tables: bool = True,
    **overrides: Any,
) -> SyncConfig:
    """Load a job file and apply CLI overrides."""
    try:
        sync_config = SyncConfig.from_file(job_file)
    except (OSError, ValueError) as e:
        print_error(f"Invalid job file: {e}")
        raise typer.Exit(1)

    update: dict[str, Any] = {}
    if overrides.get("tables"):
        update["tables"] = list(overrides["tables"])
    if overrides.get("mode") is not None:
        update["mode"] = overrides["mode"].value
    if overrides.get("content") is not None:
        update["content"] = overrides["content"].value
    if overrides.get("auto_add_columns") is not None:
        update["auto_add_columns"] = overrides["auto_add_columns"]
    if overrides.get("job_id"):
        update["job_id"] = overrides["job_id"]

    if update:
        sync_config = sync_config.model_copy(update=update)

    if require_tables and not sync_config.tables:
        print_error("No tables to sync. Set `tables` in the job file or pass --table.")
        raise typer.Exit(1)

    return sync_config


if __name__ == "__main__":
    app()
