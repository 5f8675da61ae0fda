"""
CLI for TeleBlob.

Commands:
    teleblob upload PATH - Upload an image or video
    teleblob get MEDIA_ID - Fetch media bytes (cached after first fetch)
    teleblob info MEDIA_ID - Show public metadata
    teleblob list - List recent uploads
    teleblob delete MEDIA_ID - Forget an upload and drop its cached copy
    teleblob cache stats|sweep|clear - Cache administration
    teleblob config - Show current configuration
    teleblob version - Print version

Exit codes: 0 success, 1 remote or storage failure, 2 not found, 3 invalid input.
"""

from __future__ import annotations

import asyncio
import json
import mimetypes
from pathlib import Path
from typing import Annotated, Any, Coroutine, Optional, TypeVar

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from teleblob import __version__
from teleblob.cache.file_cache import FileCache
from teleblob.cache.sweeper import CacheSweeper
from teleblob.config import Settings, clear_settings_cache, get_settings
from teleblob.exceptions import MediaNotFoundError, MediaValidationError, TeleBlobError
from teleblob.logging import setup_logging
from teleblob.service import MediaService

T = TypeVar("T")

EXIT_FAILURE = 1
EXIT_NOT_FOUND = 2
EXIT_INVALID = 3

app = typer.Typer(
    name="teleblob",
    help="TeleBlob - media storage on Telegram with a local disk cache",
    no_args_is_help=True,
)
cache_app = typer.Typer(help="Inspect and maintain the local cache", no_args_is_help=True)
app.add_typer(cache_app, name="cache")

console = Console()
error_console = Console(stderr=True)


def _get_settings_safe() -> Settings | None:
    """Get settings, returning None if configuration is invalid."""
    try:
        clear_settings_cache()
        return get_settings()
    except Exception:
        return None


def _load_settings() -> Settings:
    settings = _get_settings_safe()
    if settings is None:
        error_console.print(
            "[red]Error:[/red] Configuration is invalid. "
            "Run 'teleblob config' to see what's missing."
        )
        raise typer.Exit(EXIT_FAILURE)
    setup_logging(settings.LOG_LEVEL, settings.LOG_FILE)
    return settings


def _run(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine and map TeleBlob errors onto exit codes."""
    try:
        return asyncio.run(coro)
    except MediaNotFoundError as e:
        error_console.print(f"[red]Not found:[/red] {e.message}")
        raise typer.Exit(EXIT_NOT_FOUND)
    except MediaValidationError as e:
        error_console.print(f"[red]Rejected:[/red] {e}")
        raise typer.Exit(EXIT_INVALID)
    except TeleBlobError as e:
        error_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(EXIT_FAILURE)


def _format_size(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB"):
        if value < 1024:
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"


@app.command()
def upload(
    path: Annotated[
        Path,
        typer.Argument(help="File to upload", exists=True, dir_okay=False, readable=True),
    ],
    content_type: Annotated[
        Optional[str],
        typer.Option("--content-type", "-t", help="MIME type (guessed from the name if omitted)"),
    ] = None,
) -> None:
    """Upload an image or video and print its media ID."""
    settings = _load_settings()
    effective_type = content_type or mimetypes.guess_type(path.name)[0]
    if effective_type is None:
        error_console.print(
            "[red]Rejected:[/red] Could not determine the content type; pass --content-type."
        )
        raise typer.Exit(EXIT_INVALID)

    content = path.read_bytes()

    async def _upload() -> Any:
        async with MediaService.from_settings(settings) as service:
            return await service.upload(content, path.name, effective_type)

    record = _run(_upload())
    console.print(
        Panel(
            f"[bold]Media ID:[/bold] {record.media_id}\n"
            f"[bold]Type:[/bold] {record.content_type}\n"
            f"[bold]Size:[/bold] {_format_size(record.size)}\n"
            f"[bold]Name:[/bold] {record.original_name}",
            title="[bold green]Uploaded[/bold green]",
            border_style="green",
        )
    )


@app.command()
def get(
    media_id: Annotated[str, typer.Argument(help="Media ID returned by upload")],
    output: Annotated[
        Optional[Path],
        typer.Option("--output", "-o", help="Where to write the file (default: original name)"),
    ] = None,
) -> None:
    """Fetch media bytes and write them to a file."""
    settings = _load_settings()

    async def _fetch() -> Any:
        async with MediaService.from_settings(settings) as service:
            return await service.fetch(media_id)

    payload = _run(_fetch())
    target = output if output is not None else Path(Path(payload.display_name).name)
    target.write_bytes(payload.data)

    console.print(
        f"Wrote {_format_size(payload.size)} ({payload.content_type}) to {target} "
        f"[dim]cache {payload.cache_status.value}[/dim]"
    )


@app.command()
def info(media_id: Annotated[str, typer.Argument(help="Media ID")]) -> None:
    """Show public metadata for one upload."""
    settings = _load_settings()

    async def _info() -> dict[str, Any]:
        async with MediaService.from_settings(settings) as service:
            return await service.get_info(media_id)

    console.print_json(json.dumps(_run(_info())))


@app.command(name="list")
def list_media(
    limit: Annotated[int, typer.Option("--limit", "-n", min=1, help="Maximum rows")] = 100,
) -> None:
    """List recent uploads."""
    settings = _load_settings()

    async def _list() -> list[dict[str, Any]]:
        async with MediaService.from_settings(settings) as service:
            return await service.list_media(limit)

    rows = _run(_list())

    table = Table(title=f"Media ({len(rows)})", show_header=True)
    table.add_column("Media ID", style="cyan")
    table.add_column("Name")
    table.add_column("Type", style="green")
    table.add_column("Size", justify="right")
    table.add_column("Created")
    for row in rows:
        table.add_row(
            row["media_id"],
            row["original_name"],
            row["content_type"],
            _format_size(row["size"]),
            row["created_at"],
        )
    console.print(table)


@app.command()
def delete(media_id: Annotated[str, typer.Argument(help="Media ID")]) -> None:
    """Forget an upload and drop its cached copy."""
    settings = _load_settings()

    async def _delete() -> None:
        async with MediaService.from_settings(settings) as service:
            await service.delete(media_id)

    _run(_delete())
    console.print(f"Deleted {media_id}")


def _open_cache(settings: Settings) -> FileCache:
    return FileCache(settings.CACHE_DIR, settings.CACHE_TTL_SECONDS)


@cache_app.command("stats")
def cache_stats() -> None:
    """Show how many entries the cache holds."""
    settings = _load_settings()
    stats = _open_cache(settings).stats()

    table = Table(title=f"Cache {settings.CACHE_DIR}", show_header=True)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green", justify="right")
    table.add_row("Entries", str(stats.entries))
    table.add_row("Fresh", str(stats.fresh))
    table.add_row("Expired", str(stats.expired))
    table.add_row("Size", _format_size(stats.total_bytes))
    table.add_row("TTL", f"{settings.CACHE_TTL_SECONDS}s")
    console.print(table)


@cache_app.command("sweep")
def cache_sweep(
    every: Annotated[
        Optional[int],
        typer.Option("--every", min=1, help="Keep running, sweeping every N seconds"),
    ] = None,
) -> None:
    """Delete expired cache entries."""
    settings = _load_settings()
    cache = _open_cache(settings)

    if every is None:
        deleted = _run_sweep_once(cache)
        console.print(f"Deleted {deleted} expired entries")
        return

    async def _watch() -> None:
        sweeper = CacheSweeper(cache, every)
        await sweeper.sweep_once()
        sweeper.start()
        try:
            await asyncio.Event().wait()
        finally:
            await sweeper.stop()

    console.print(f"Sweeping every {every}s, Ctrl-C to stop")
    try:
        _run(_watch())
    except KeyboardInterrupt:
        console.print("Stopped")


def _run_sweep_once(cache: FileCache) -> int:
    try:
        return cache.sweep_expired()
    except TeleBlobError as e:
        error_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(EXIT_FAILURE)


@cache_app.command("clear")
def cache_clear(
    yes: Annotated[bool, typer.Option("--yes", "-y", help="Do not ask for confirmation")] = False,
) -> None:
    """Delete every cache entry."""
    settings = _load_settings()
    if not yes:
        typer.confirm(f"Delete everything in {settings.CACHE_DIR}?", abort=True)

    try:
        deleted = _open_cache(settings).clear_all()
    except TeleBlobError as e:
        error_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(EXIT_FAILURE)
    console.print(f"Deleted {deleted} entries")


@app.command()
def config() -> None:
    """Show current configuration with the bot token redacted."""
    console.print()
    console.print("[bold]TeleBlob Configuration[/bold]")
    console.print()

    settings = _get_settings_safe()

    if settings is None:
        error_console.print("[red]Configuration is invalid or incomplete.[/red]")
        error_console.print()
        error_console.print("Required environment variables:")
        error_console.print("  - TELEGRAM_BOT_TOKEN (<bot id>:<secret>)")
        error_console.print("  - TELEGRAM_CHAT_ID")
        error_console.print()
        error_console.print("Create a .env file or set environment variables.")
        raise typer.Exit(EXIT_FAILURE)

    table = Table(title="Settings", show_header=True)
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for key, value in settings.redacted_display().items():
        display_value = str(value) if value is not None else "[dim]not set[/dim]"
        table.add_row(key, display_value)

    console.print(table)
    console.print()


@app.command()
def version() -> None:
    """Print the version number."""
    console.print(f"teleblob version {__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
