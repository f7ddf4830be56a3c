"""Remote commands: list and mb."""

from __future__ import annotations

import click
from rich.table import Table

from ._common import build_engine, console, format_size, reports_errors, store_options


def register_remote_commands(main: click.Group) -> None:
    """Register list and mb."""

    @main.command("list")
    @store_options
    @click.option("--prefix", "-p", default="", help="Only keys starting with this prefix.")
    @click.pass_context
    @reports_errors
    def list_objects(ctx, prefix: str, **store):
        """List archives in the bucket.

        Examples:

            s3sync list --bucket my-backups
        """
        engine = build_engine(ctx, **store)
        listings = engine.list_remote(prefix=prefix)

        if not listings:
            console.print("\n[dim]No objects found.[/]\n")
            return

        table = Table(show_header=True, header_style="bold", box=None, padding=(0, 2))
        table.add_column("Key", style="cyan")
        table.add_column("Size", justify="right")
        table.add_column("Last modified", style="dim")

        for item in listings:
            modified = item.last_modified.isoformat()[:19] if item.last_modified else "-"
            table.add_row(item.key, format_size(item.size), modified)

        console.print(f"\n[bold]{len(listings)}[/] object(s):\n")
        console.print(table)
        console.print()

    @main.command("mb")
    @click.argument("bucket_name")
    @store_options
    @click.pass_context
    @reports_errors
    def make_bucket(ctx, bucket_name: str, **store):
        """Create BUCKET_NAME and wait until it exists."""
        store["bucket"] = bucket_name
        engine = build_engine(ctx, **store)
        console.print(f"\n  Creating bucket [cyan]{bucket_name}[/]...", end=" ")
        engine.make_bucket()
        console.print("[green]done[/]\n")
