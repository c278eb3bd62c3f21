"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path
from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from lesson_cache.models.config import CacheConfig
from lesson_cache.models.content import OfflineContentRecord
from lesson_cache.models.report import IntegrityReport
from lesson_cache.utils.formatting import format_size, format_timestamp


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__

    suggestions_map = {
        "ConfigurationError": [
            "• Run `lesson-cache init` to create a configuration file.",
            "• Run `lesson-cache validate` to see which setting is rejected.",
        ],
        "InvalidContentError": [
            "• Every descriptor needs a non-empty 'id' that has no path separators"
            " and does not start with '.'.",
            "• 'mediaUrls' must be a list of absolute URLs.",
        ],
        "IndexPersistenceError": [
            "• The index file may be corrupt or not writable.",
            "• Check the 'index_path' setting and its directory permissions.",
        ],
        "JSONDecodeError": [
            "• The descriptor file is not valid JSON.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -vv for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(str(error))

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(Text("\n".join(suggestions)))

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config_data: dict[str, Any]):
    """Displays the current configuration."""
    console = Console()
    content = "\n".join(f"{key} = {value}" for key, value in config_data.items())
    console.print(
        Panel(
            content,
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def print_validation_table(config: CacheConfig):
    """Displays a summary of the validated settings."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()

    table.add_row("Download Dir:", f"[dim]{config.download_dir}[/dim]")
    table.add_row("Index:", f"[dim]{config.index_path}[/dim] ({config.index_key})")
    table.add_row("Parallel Fetches:", str(config.max_concurrent_fetches))
    table.add_row("Fetch Attempts:", str(config.fetch_attempts))
    if config.remote_sync:
        table.add_row(
            "Remote Sync:",
            f"[green]✓ Firestore[/green] collection '{config.content_collection}'",
        )
    else:
        table.add_row("Remote Sync:", "✗ Disabled")
    table.add_row("JSON Event Log:", config.log_dir or "✗ Disabled")

    console.print(
        Panel(
            table,
            title="[bold green]✓ Validated Settings[/bold green]",
            border_style="green",
        )
    )


def print_records_table(records: list[OfflineContentRecord]):
    """Displays every cached content item."""
    console = Console()
    if not records:
        console.print("[dim]Nothing is cached yet.[/dim]")
        return

    table = Table(title=f"Cached Content ({len(records)})", box=box.SIMPLE_HEAD)
    table.add_column("ID", style="cyan")
    table.add_column("Title")
    table.add_column("Media", justify="right", style="green")
    table.add_column("Size", justify="right")
    table.add_column("Downloaded", style="dim")

    for record in records:
        extra = record.model_extra or {}
        title = str(extra.get("title") or extra.get("name") or "")
        size = sum(p.stat().st_size for p in record.local_paths if p.is_file())
        table.add_row(
            record.id,
            title,
            str(len(record.media_urls)),
            format_size(size),
            format_timestamp(record.downloaded_at),
        )
    console.print(table)


def print_record(record: OfflineContentRecord):
    """Displays one cached record as JSON."""
    Console().print_json(data=record.to_json_dict())


def print_integrity_report(report: IntegrityReport):
    """Displays the outcome of a cache verification pass."""
    console = Console()
    if report.error:
        console.print(f"[red]✗ Verification failed: {report.error}[/red]")
        return

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan", justify="right")
    table.add_column()
    table.add_row("Checked:", str(report.checked))
    table.add_row(
        "Missing Files:", ", ".join(report.missing_files) or "[green]none[/green]"
    )
    table.add_row("Stale:", ", ".join(report.stale) or "[green]none[/green]")
    table.add_row(
        "Orphans Removed:", ", ".join(report.orphans_removed) or "[green]none[/green]"
    )
    if report.failed:
        table.add_row("Failed:", f"[red]{', '.join(report.failed)}[/red]")

    style = "green" if report.is_clean else "yellow"
    title = "✓ Cache Intact" if report.is_clean else "⚠ Cache Repaired"
    console.print(
        Panel(table, title=f"[bold {style}]{title}[/bold {style}]", border_style=style)
    )
