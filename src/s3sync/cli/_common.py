"""Shared utilities for all CLI command modules.

Provides the Rich console instance, logging setup, the shared
store options, and engine construction from config + flags.
"""

from __future__ import annotations

import functools
import logging
from pathlib import Path
from typing import Any, Callable, Optional

import click
from rich.console import Console
from rich.progress import (
    BarColumn,
    DownloadColumn,
    Progress,
    TextColumn,
    TransferSpeedColumn,
)

from ..engine import SyncEngine, load_config
from ..errors import S3SyncError
from ..models import StoreBackend, SyncConfig

console = Console()
logger = logging.getLogger("s3sync.cli")

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(verbose: bool = False) -> None:
    """Configure root logging once for the CLI process."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format=LOG_FORMAT,
    )
    if not verbose:
        # botocore is chatty at INFO about credential discovery
        logging.getLogger("botocore").setLevel(logging.WARNING)


def store_options(func: Callable) -> Callable:
    """Attach the flags that select and configure the object store."""
    options = [
        click.option("--bucket", "-b", default=None, help="Bucket name."),
        click.option(
            "--backend",
            default=None,
            type=click.Choice([b.value for b in StoreBackend]),
            help="Object store backend.",
        ),
        click.option("--endpoint", "endpoint_url", default=None, help="Service endpoint URL."),
        click.option("--region", default=None, help="Signing region."),
        click.option("--profile", default=None, help="AWS shared-config profile."),
        click.option(
            "--local-root",
            default=None,
            type=click.Path(file_okay=False, path_type=Path),
            help="Root directory for the local backend.",
        ),
    ]
    for option in reversed(options):
        func = option(func)
    return func


def build_config(
    ctx: click.Context, must_exist: bool = True, **overrides: Any
) -> SyncConfig:
    """Effective config: YAML file, then env, then CLI flags."""
    config_path = (ctx.obj or {}).get("config_path")
    return load_config(config_path, overrides=overrides, must_exist=must_exist)


def build_engine(
    ctx: click.Context,
    on_progress: Optional[Callable[[int], None]] = None,
    **overrides: Any,
) -> SyncEngine:
    """Create a SyncEngine from config and CLI flags."""
    return SyncEngine(build_config(ctx, **overrides), on_progress=on_progress)


def fail(message: str) -> None:
    """Print a single diagnostic line and exit non-zero."""
    console.print(f"[bold red]Error:[/] {message}")
    raise SystemExit(1)


def reports_errors(func: Callable) -> Callable:
    """Turn any S3SyncError escaping a command into one diagnostic line."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except S3SyncError as exc:
            logger.debug("Command failed", exc_info=True)
            fail(str(exc))

    return wrapper


def format_size(size: Optional[int]) -> str:
    """Human-readable byte count."""
    if size is None:
        return "-"
    if size < 1024:
        return f"{size} B"
    value = size / 1024
    for unit in ("KB", "MB"):
        if value < 1024:
            return f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"


class TransferProgress:
    """Byte progress bar that appears on the first transferred chunk.

    Usable as the ``on_progress`` callback of a SyncEngine. boto3 may
    call it from transfer worker threads; Rich's Progress is locked.
    """

    def __init__(self, description: str = "Transferring"):
        self.description = description
        self._progress = Progress(
            TextColumn("  [cyan]{task.description}[/]"),
            BarColumn(),
            DownloadColumn(),
            TransferSpeedColumn(),
            console=console,
            transient=True,
        )
        self._task: Optional[int] = None

    def __call__(self, nbytes: int) -> None:
        if self._task is None:
            self._progress.start()
            self._task = self._progress.add_task(self.description, total=None)
        self._progress.advance(self._task, nbytes)

    def __enter__(self) -> "TransferProgress":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        if self._task is not None:
            self._progress.stop()
