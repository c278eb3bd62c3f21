"""
Defines the command-line interface for the cache manager using Typer.
"""

import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any

import typer
from rich.console import Console
from rich.logging import RichHandler

from lesson_cache import __version__
from lesson_cache.core.offline_manager import OfflineManager
from lesson_cache.exceptions import ConfigurationError, LessonCacheError
from lesson_cache.models.config import CacheConfig
from lesson_cache.storage.config_manager import ConfigManager

from .formatters import (
    format_error_with_suggestions,
    print_config,
    print_integrity_report,
    print_record,
    print_records_table,
    print_validation_table,
)

console = Console()

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("lesson_cache")

app = typer.Typer(
    name="lesson-cache",
    help="Keep learning content available offline. Use 'lesson-cache <command> --help' for more info.",
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "lesson-cache"


def get_data_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("LOCALAPPDATA", "~\\AppData\\Local"))
    else:
        base_dir = Path(os.getenv("XDG_DATA_HOME", "~/.local/share"))
    return base_dir.expanduser() / "lesson-cache"


def _config_manager(ctx: typer.Context) -> ConfigManager:
    return ConfigManager(ctx.obj["config_file"], get_data_dir())


def _load_config(
    ctx: typer.Context, cli_options: dict[str, Any] | None = None
) -> CacheConfig:
    try:
        return _config_manager(ctx).load_config(cli_options)
    except ConfigurationError as e:
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e


def _run_with_manager(config: CacheConfig, action):
    """Runs `action(manager)` inside a fully initialized manager."""

    async def _runner():
        async with OfflineManager.from_config(config) as manager:
            return await action(manager)

    try:
        return asyncio.run(_runner())
    except LessonCacheError as e:
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    config_file: Path | None = typer.Option(  # noqa: B008
        None,
        "--config",
        "-c",
        envvar="LESSON_CACHE_CONFIG",
        help="Path to the configuration file.",
    ),
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-vv for debug and event traces).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current configuration."
    ),
):
    """Offline content cache for learning bundles."""
    if version:
        console.print(f"[bold]lesson-cache[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    ctx.obj = {"config_file": config_file or get_config_dir() / "config.ini"}

    logging.getLogger("lesson_cache").setLevel("DEBUG" if verbose >= 2 else "INFO")
    # Event traces duplicate the regular log lines; show them only when debugging.
    logging.getLogger("lesson_cache.events").setLevel(
        "DEBUG" if verbose >= 2 else "CRITICAL"
    )

    if show_config:
        manager = _config_manager(ctx)
        if not manager.config_file_path.is_file():
            console.print(
                "[red]✗ Config file not found.[/] Run [cyan]lesson-cache init[/cyan]"
                " first."
            )
            raise typer.Exit(code=1)
        config = _load_config(ctx)
        print_config(
            manager.config_file_path,
            config.model_dump(exclude={"config_path"}, mode="json"),
        )
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    ctx: typer.Context,
    download_dir: Path | None = typer.Option(  # noqa: B008
        None, "--download-dir", help="Where cached content is stored."
    ),
    index_path: Path | None = typer.Option(  # noqa: B008
        None, "--index-path", help="File holding the cache index."
    ),
    credentials: str = typer.Option(
        "", "--credentials", help="Firebase service account JSON file."
    ),
    project_id: str = typer.Option("", "--project-id", help="Firebase project id."),
    collection: str = typer.Option(
        "content", "--collection", help="Firestore collection of content records."
    ),
    no_remote_sync: bool = typer.Option(
        False, "--no-remote-sync", help="Do not mirror cache state to Firestore."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing configuration file."
    ),
):
    """Create a configuration file."""
    manager = _config_manager(ctx)
    if (
        manager.config_file_path.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    settings: dict[str, Any] = {
        "firebase_credentials": credentials,
        "firebase_project_id": project_id,
        "content_collection": collection,
        "remote_sync": not no_remote_sync,
    }
    if download_dir:
        settings["download_dir"] = str(download_dir.expanduser().absolute())
    if index_path:
        settings["index_path"] = str(index_path.expanduser().absolute())

    try:
        manager.save_new_config(settings)
    except ConfigurationError as e:
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e
    console.print(
        f"[bold green]✓ Configuration saved to '{manager.config_file_path}'[/bold green]"
    )


def _read_descriptors(sources: list[Path], use_stdin: bool) -> list[dict[str, Any]]:
    """Reads descriptor objects (or lists of them) from JSON files or stdin."""
    documents = []
    if use_stdin:
        documents.append(json.loads(sys.stdin.read()))
    for source in sources:
        with open(source, encoding="utf-8") as f:
            documents.append(json.load(f))

    descriptors = []
    for document in documents:
        items = document if isinstance(document, list) else [document]
        for item in items:
            if not isinstance(item, dict):
                raise ValueError("Each descriptor must be a JSON object.")
            descriptors.append(item)
    return descriptors


@app.command(name="download")
def download_command(
    ctx: typer.Context,
    descriptors: list[Path] | None = typer.Argument(  # noqa: B008
        None, help="JSON files holding a content descriptor or a list of them."
    ),
    stdin: bool = typer.Option(
        False, "--stdin", help="Read one JSON document of descriptors from stdin."
    ),
    no_remote_sync: bool = typer.Option(
        False, "--no-remote-sync", help="Skip the Firestore mirror for this run."
    ),
):
    """Download content bundles for offline use."""
    try:
        items = _read_descriptors(descriptors or [], stdin)
    except (OSError, ValueError) as e:
        console.print(format_error_with_suggestions(e))
        raise typer.Exit(code=1) from e

    if not items:
        console.print(
            "[red]✗ No descriptors provided.[/red] "
            "Use: [cyan]lesson-cache download <FILE>[/cyan] or [cyan]--stdin[/cyan]"
        )
        raise typer.Exit(code=1)

    config = _load_config(ctx, {"remote_sync": False} if no_remote_sync else None)

    async def _download(manager: OfflineManager) -> list[bool]:
        return await asyncio.gather(*(manager.download_content(d) for d in items))

    results = _run_with_manager(config, _download)
    succeeded = sum(results)
    failed = len(results) - succeeded
    if failed:
        console.print(f"[yellow]⚠ {succeeded} cached, {failed} failed.[/yellow]")
        raise typer.Exit(code=1)
    console.print(f"[bold green]✓ {succeeded} content item(s) cached.[/bold green]")


@app.command()
def remove(
    ctx: typer.Context,
    content_ids: list[str] = typer.Argument(..., help="Ids of content to remove."),  # noqa: B008
):
    """Remove cached content and its files."""
    config = _load_config(ctx)

    async def _remove(manager: OfflineManager) -> list[bool]:
        return [await manager.remove_content(cid) for cid in content_ids]

    results = _run_with_manager(config, _remove)
    if not all(results):
        raise typer.Exit(code=1)
    console.print(f"[green]✓ Removed {len(results)} content item(s).[/green]")


@app.command(name="list")
def list_command(ctx: typer.Context):
    """List cached content."""
    config = _load_config(ctx)

    async def _list(manager: OfflineManager):
        return await manager.get_downloaded_content_list()

    print_records_table(_run_with_manager(config, _list))


@app.command()
def show(
    ctx: typer.Context,
    content_id: str = typer.Argument(..., help="Id of the cached content."),
):
    """Show the cached record of one content item."""
    config = _load_config(ctx)

    async def _show(manager: OfflineManager):
        return await manager.get_offline_content(content_id)

    record = _run_with_manager(config, _show)
    if record is None:
        console.print(f"[yellow]'{content_id}' is not cached.[/yellow]")
        raise typer.Exit(code=1)
    print_record(record)


@app.command()
def verify(
    ctx: typer.Context,
    known_ids: Path | None = typer.Option(  # noqa: B008
        None,
        "--known-ids",
        help="File of content ids that still exist remotely, one per line.",
    ),
):
    """Check cached files against the index and repair what is broken."""
    ids = None
    if known_ids:
        try:
            with open(known_ids, encoding="utf-8") as f:
                ids = [line.strip() for line in f if line.strip()]
        except OSError as e:
            console.print(format_error_with_suggestions(e))
            raise typer.Exit(code=1) from e

    config = _load_config(ctx)

    async def _verify(manager: OfflineManager):
        return await manager.verify_cache_integrity(ids)

    report = _run_with_manager(config, _verify)
    print_integrity_report(report)
    if report.error or report.failed:
        raise typer.Exit(code=1)


@app.command()
def validate(ctx: typer.Context):
    """Validate the current configuration."""
    print_validation_table(_load_config(ctx))
