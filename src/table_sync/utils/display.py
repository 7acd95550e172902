"""
Rich Terminal Display Components.

Provides console UI for:
- Live job progress fed by engine progress events
- Per-table sync summary
- Analysis and preview tables
- Status messages
"""

from __future__ import annotations

import json
from typing import Any

from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table
from rich.text import Text

from table_sync.core.diff import TableDiffPreview
from table_sync.core.engine import SyncAnalyzeResult, SyncResult, TableStatus
from table_sync.core.events import SyncLogEvent, SyncProgressEvent


console = Console()

_STATUS_STYLES = {
    TableStatus.SYNCED: "[green]✓ synced[/green]",
    TableStatus.SKIPPED: "[yellow]- skipped[/yellow]",
    TableStatus.FAILED: "[red]✗ failed[/red]",
    TableStatus.UNSUPPORTED: "[magenta]? unsupported[/magenta]",
}

_LOG_STYLES = {"info": "dim", "warn": "yellow", "error": "red"}

# Last log lines kept on screen below the progress bar
_LOG_TAIL = 6


class ProgressDisplay:
    """
    Rich terminal UI for sync progress.

    Shows:
    - Overall table progress bar
    - Current table and stage
    - Tail of the job log

    Example:
        display = ProgressDisplay()
        display.start("run", source="sqlite:a.db", destination="d1:xyz", total_tables=3)

        reporter = Reporter(on_log=display.on_log, on_progress=display.on_progress)
        SyncEngine(reporter).run_sync(config)

        display.stop()
    """

    def __init__(self) -> None:
        self.progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold blue]{task.description}"),
            BarColumn(bar_width=40),
            TaskProgressColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=console,
        )
        self._live: Live | None = None
        self._task_id: Any = None
        self._stats: dict[str, Any] = {}
        self._log_tail: list[SyncLogEvent] = []

    def start(
        self,
        operation: str,
        source: str,
        destination: str,
        total_tables: int,
    ) -> None:
        """Start the progress display."""
        self._stats = {
            "operation": operation,
            "source": source,
            "destination": destination,
            "total_tables": total_tables,
            "current_table": "",
            "stage": "",
        }
        self._log_tail = []

        self._task_id = self.progress.add_task(
            f"[cyan]{operation.upper()}",
            total=max(total_tables, 1),
        )

        self._live = Live(
            self._build_display(),
            console=console,
            refresh_per_second=4,
        )
        self._live.start()

    def stop(self) -> None:
        """Stop the progress display."""
        if self._live:
            self._live.stop()
            self._live = None

    def on_progress(self, event: SyncProgressEvent) -> None:
        """Reporter hook: move the bar and show the current stage."""
        self._stats["current_table"] = event.table
        self._stats["stage"] = event.stage
        if self._task_id is not None:
            self.progress.update(self._task_id, completed=event.current, total=max(event.total, 1))
        self._refresh()

    def on_log(self, event: SyncLogEvent) -> None:
        """Reporter hook: keep the last few log lines visible."""
        self._log_tail.append(event)
        del self._log_tail[:-_LOG_TAIL]
        self._refresh()

    def _refresh(self) -> None:
        if self._live:
            self._live.update(self._build_display())

    def _build_display(self) -> Panel:
        """Build the display panel."""
        op = self._stats.get("operation", "sync").upper()
        title = f"[bold white]Table Sync - {op}[/bold white]"

        info_table = Table.grid(padding=(0, 2))
        info_table.add_column(style="dim")
        info_table.add_column()
        info_table.add_row("Source:", self._stats.get("source", ""))
        info_table.add_row("Target:", self._stats.get("destination", ""))

        status_text = Text()
        current = self._stats.get("current_table", "")
        if current:
            status_text.append("Table: ", style="dim")
            status_text.append(current, style="bold cyan")
            status_text.append("  ")
        stage = self._stats.get("stage", "")
        if stage:
            status_text.append(stage, style="italic")

        log_text = Text()
        for event in self._log_tail:
            log_text.append(event.message + "\n", style=_LOG_STYLES.get(event.level, ""))

        display = Group(
            info_table,
            Text(),  # Spacer
            self.progress,
            status_text,
            Text(),  # Spacer
            log_text,
        )

        return Panel(
            display,
            title=title,
            border_style="blue",
            padding=(1, 2),
        )

    def __enter__(self) -> "ProgressDisplay":
        return self

    def __exit__(self, *args: Any) -> None:
        self.stop()


def print_summary(result: SyncResult, duration: float) -> None:
    """Print per-table results and totals after a run."""
    table = Table(title="Sync Summary", border_style="green" if result.success else "red")

    table.add_column("Table", style="cyan")
    table.add_column("Status")
    table.add_column("Inserted", justify="right")
    table.add_column("Updated", justify="right")
    table.add_column("Deleted", justify="right")
    table.add_column("Message", style="dim")

    for report in result.tables:
        table.add_row(
            report.table,
            _STATUS_STYLES.get(report.status, report.status.value),
            f"{report.inserted:,}",
            f"{report.updated:,}",
            f"{report.deleted:,}",
            Text(report.message),
        )

    console.print(table)
    console.print(
        f"Tables synced: [bold]{result.tables_synced}[/bold]/{len(result.tables)}  "
        f"Rows: [green]+{result.rows_inserted:,}[/green] "
        f"[yellow]~{result.rows_updated:,}[/yellow] "
        f"[red]-{result.rows_deleted:,}[/red]  "
        f"Duration: {duration:.1f}s"
    )


def print_analysis(result: SyncAnalyzeResult) -> None:
    """Print the per-table diff counts of an analyze job."""
    table = Table(title="Analysis", border_style="blue")

    table.add_column("Table", style="cyan")
    table.add_column("PK")
    table.add_column("Sync?", justify="center")
    table.add_column("Insert", justify="right")
    table.add_column("Update", justify="right")
    table.add_column("Delete", justify="right")
    table.add_column("Same", justify="right")
    table.add_column("Message", style="dim")

    for summary in result.tables:
        table.add_row(
            summary.table,
            summary.pk_column or "-",
            "[green]yes[/green]" if summary.can_sync else "[red]no[/red]",
            f"{summary.inserts:,}",
            f"{summary.updates:,}",
            f"{summary.deletes:,}",
            f"{summary.same:,}",
            Text(summary.message),
        )

    console.print(table)


def _format_row(row: dict[str, Any]) -> Text:
    return Text(json.dumps(row, default=str, ensure_ascii=False))


def print_preview(preview: TableDiffPreview) -> None:
    """Print sampled rows of each diff partition for one table."""
    console.print(
        f"[bold]{preview.table}[/bold] (pk: {preview.pk_column})  "
        f"insert: {preview.total_inserts:,}  "
        f"update: {preview.total_updates:,}  "
        f"delete: {preview.total_deletes:,}"
    )

    if preview.inserts:
        table = Table(title=f"Inserts ({len(preview.inserts)} of {preview.total_inserts})",
                      border_style="green")
        table.add_column("PK", style="cyan")
        table.add_column("Row")
        for item in preview.inserts:
            table.add_row(item.pk, _format_row(item.row))
        console.print(table)

    if preview.updates:
        table = Table(title=f"Updates ({len(preview.updates)} of {preview.total_updates})",
                      border_style="yellow")
        table.add_column("PK", style="cyan")
        table.add_column("Column")
        table.add_column("Target", style="red")
        table.add_column("Source", style="green")
        for item in preview.updates:
            for i, column in enumerate(item.changed_columns):
                table.add_row(
                    item.pk if i == 0 else "",
                    column,
                    Text(str(item.target.get(column))),
                    Text(str(item.source.get(column))),
                )
        console.print(table)

    if preview.deletes:
        table = Table(title=f"Deletes ({len(preview.deletes)} of {preview.total_deletes})",
                      border_style="red")
        table.add_column("PK", style="cyan")
        table.add_column("Row")
        for item in preview.deletes:
            table.add_row(item.pk, _format_row(item.row))
        console.print(table)

    if not (preview.inserts or preview.updates or preview.deletes):
        print_success("No differences")


def print_error(message: str) -> None:
    """Print an error message."""
    console.print(f"[red bold]Error:[/red bold] {message}")


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green bold]✓[/green bold] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow bold]⚠[/yellow bold] {message}")


def print_info(message: str) -> None:
    """Print an info message."""
    console.print(f"[blue]ℹ[/blue] {message}")
