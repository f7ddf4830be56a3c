"""Push commands: push (alias sync) and status."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import click
from rich.panel import Panel

from ..models import SyncAction
from ._common import (
    TransferProgress,
    build_engine,
    console,
    format_size,
    reports_errors,
    store_options,
)


def register_push_commands(main: click.Group) -> None:
    """Register push, sync, and status."""

    @click.command("push")
    @click.argument("folder", required=False, type=click.Path(path_type=Path))
    @store_options
    @click.option("--force", "-f", is_flag=True, help="Recreate the archive even if it exists.")
    @click.option("--clean", is_flag=True, help="Delete the local archive once the bucket has it.")
    @click.option("--make-bucket", is_flag=True, help="Create the bucket first.")
    @click.option(
        "--output-dir",
        default=None,
        type=click.Path(file_okay=False, path_type=Path),
        help="Where the archive is written (default: current directory).",
    )
    @click.pass_context
    @reports_errors
    def push(ctx, folder: Optional[Path], force, clean, make_bucket, output_dir, **store):
        """Upload FOLDER as <name>.tar.gz if the bucket's copy is missing or stale.

        Examples:

            s3sync push ./photos --bucket my-backups

            s3sync push ./photos -b my-backups --force --clean
        """
        with TransferProgress("Uploading") as progress:
            engine = build_engine(
                ctx,
                on_progress=progress,
                force=force or None,
                clean=clean or None,
                make_bucket=make_bucket or None,
                output_dir=output_dir,
                **store,
            )
            result = engine.push(folder)

        archive = result.archive
        verb = "Reused" if archive.reused else "Created"
        console.print(
            f"\n  {verb} archive [cyan]{archive.archive_name}[/] "
            f"({format_size(archive.size)}, [dim]{archive.short_digest}[/])"
        )
        if result.decision.action == SyncAction.UPLOAD:
            console.print(f"  [yellow]{result.decision.reason}[/]")
            console.print(
                f"  [green]Uploaded[/] to [cyan]{result.remote.bucket}[/]"
            )
        else:
            console.print("  [green]Remote archive is up to date.[/] Nothing to be done.")
        if result.cleaned:
            console.print(f"  [dim]Deleted local copy of {archive.archive_name}[/]")
        elif engine.config.clean:
            console.print(f"  [yellow]Could not delete {archive.path}[/]")
        console.print()

    main.add_command(push)
    main.add_command(push, name="sync")

    @main.command("status")
    @click.argument("folder", type=click.Path(path_type=Path))
    @store_options
    @click.option("--force", "-f", is_flag=True, help="Recreate the archive even if it exists.")
    @click.option(
        "--output-dir",
        default=None,
        type=click.Path(file_okay=False, path_type=Path),
        help="Where the archive is written (default: current directory).",
    )
    @click.pass_context
    @reports_errors
    def status(ctx, folder: Path, force, output_dir, **store):
        """Show what push would do for FOLDER, without transferring."""
        engine = build_engine(ctx, force=force or None, output_dir=output_dir, **store)
        archive, remote, decision = engine.check(folder)

        if remote.exists:
            stored = remote.stored_digest
            remote_line = (
                f"Remote: [green]present[/] ({format_size(remote.size)})\n"
                f"Stored digest: {stored if stored is not None else '[yellow]none[/]'}"
            )
        else:
            remote_line = "Remote: [yellow]absent[/]"

        action_style = "green" if decision.action == SyncAction.SKIP else "yellow"
        console.print()
        console.print(
            Panel(
                f"Archive: [cyan]{archive.archive_name}[/] "
                f"({'reused' if archive.reused else 'created'})\n"
                f"Digest: {archive.digest} [dim]({archive.short_digest})[/]\n"
                f"{remote_line}\n"
                f"Decision: [bold {action_style}]{decision.action.value.upper()}[/] "
                f"[dim]{decision.reason}[/]",
                title=f"{remote.bucket}/{remote.key}",
                border_style="cyan",
            )
        )
        console.print()
