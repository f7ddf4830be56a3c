"""Pull command: download an archive by key."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import click

from ._common import (
    TransferProgress,
    build_engine,
    console,
    format_size,
    reports_errors,
    store_options,
)


def register_pull_commands(main: click.Group) -> None:
    """Register the pull command."""

    @main.command("pull")
    @click.argument("key")
    @store_options
    @click.option(
        "--dest",
        "-d",
        default=None,
        type=click.Path(file_okay=False, path_type=Path),
        help="Directory to download into (default: current directory).",
    )
    @click.pass_context
    @reports_errors
    def pull(ctx, key: str, dest: Optional[Path], **store):
        """Download KEY from the bucket, overwriting any local file of that name.

        Examples:

            s3sync pull photos.tar.gz --bucket my-backups

            s3sync pull photos.tar.gz -b my-backups -d /tmp/restore
        """
        with TransferProgress("Downloading") as progress:
            engine = build_engine(ctx, on_progress=progress, **store)
            result = engine.pull(key, dest_dir=dest)

        console.print(
            f"\n  [green]Downloaded[/] [cyan]{key}[/] "
            f"({format_size(result.bytes_written)}) -> {result.path}\n"
        )
