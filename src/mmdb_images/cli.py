"""Typer-based CLI entry point."""

from __future__ import annotations

import functools
import logging
from concurrent.futures import CancelledError
from datetime import timedelta
from pathlib import Path
from typing import List, Optional

import typer
from rich import print
from rich.logging import RichHandler
from rich.table import Table

from .appctx import ImageCacheContext
from .domain.models import cache_key_for_url, poster_url
from .errors import CacheError, ImageCacheError, SettingsError
from .infrastructure.services.disk_store import DiskStore
from .settings.manager import SettingsManager

app = typer.Typer(help="Inspect and warm the MMDB image cache")

_state: dict = {"settings_path": None}


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
        force=True,
    )


def _load_settings() -> SettingsManager:
    manager = SettingsManager(_state["settings_path"])
    manager.load()
    return manager


def _handle_errors(func):
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except SettingsError as exc:
            typer.echo(f"Settings error: {exc}", err=True)
            raise typer.Exit(1) from exc
        except ImageCacheError as exc:
            typer.echo(f"Error: {exc}", err=True)
            raise typer.Exit(1) from exc

    return wrapper


@app.callback()
def main(
    settings: Optional[Path] = typer.Option(None, "--settings", help="Settings JSON file"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable debug logging"),
) -> None:
    _state["settings_path"] = settings
    _configure_logging(verbose)


def _fetch_all(urls: List[str]) -> int:
    context = ImageCacheContext(config=_load_settings().to_config())
    failures = 0
    try:
        table = Table("URL", "Size", "Cost", "Source")
        for url in urls:
            key = cache_key_for_url(url)
            if context.memory.contains(key):
                source = "memory"
            elif context.disk.contains(key):
                source = "disk"
            else:
                source = "network"
            try:
                image = context.cache.image(url).result()
            except (CacheError, CancelledError) as exc:
                failures += 1
                table.add_row(url, "-", "-", f"[red]{exc}")
                continue
            table.add_row(url, f"{image.width}x{image.height}", str(image.cost), source)
        print(table)
    finally:
        context.close()
    return failures


@app.command()
@_handle_errors
def fetch(urls: List[str] = typer.Argument(..., help="Image URLs to load")) -> None:
    """Load images through the cache, warming memory and disk."""

    if _fetch_all(urls):
        raise typer.Exit(1)


@app.command()
@_handle_errors
def poster(path: str = typer.Argument(..., help="TMDB poster path, e.g. /abc.jpg")) -> None:
    """Fetch a TMDB poster by its path."""

    url = poster_url(path)
    if url is None:
        raise typer.BadParameter("poster path must not be empty")
    if _fetch_all([url]):
        raise typer.Exit(1)


@app.command()
@_handle_errors
def clean(
    days: Optional[float] = typer.Option(None, "--days", help="Retention window in days"),
) -> None:
    """Remove disk entries not accessed within the retention window."""

    config = _load_settings().to_config()
    retention = timedelta(days=days) if days is not None else config.disk_retention
    store = DiskStore(config.disk_directory)
    try:
        removed = store.remove_expired(retention)
    finally:
        store.shutdown()
    print(f"[green]Removed {removed} expired entries from {config.disk_directory}")


@app.command()
@_handle_errors
def clear() -> None:
    """Remove every disk entry."""

    config = _load_settings().to_config()
    store = DiskStore(config.disk_directory)
    try:
        removed = store.remove_all()
    finally:
        store.shutdown()
    print(f"[green]Removed {removed} entries from {config.disk_directory}")


@app.command()
@_handle_errors
def info() -> None:
    """Show the effective settings and disk usage."""

    manager = _load_settings()
    config = manager.to_config()
    store = DiskStore(config.disk_directory)
    try:
        entries = store.entry_count()
        size = store.size_bytes()
    finally:
        store.shutdown()

    table = Table("Setting", "Value")
    table.add_row("settings file", str(manager.path))
    table.add_row("memory.max_total_cost", str(config.max_total_cost))
    table.add_row("memory.max_entry_count", str(config.max_entry_count))
    table.add_row("disk.directory", str(config.disk_directory))
    table.add_row("disk.retention", str(config.disk_retention))
    table.add_row("disk.entries", str(entries))
    table.add_row("disk.size_bytes", str(size))
    table.add_row("transport.timeout_sec", str(config.timeout_sec))
    table.add_row("transport.workers", str(config.workers))
    print(table)


if __name__ == "__main__":  # pragma: no cover
    app()
