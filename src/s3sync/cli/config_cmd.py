"""Config commands: init and show."""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import click
import yaml

from ..engine import default_config_path, save_config
from ._common import build_config, console, reports_errors, store_options


def register_config_commands(main: click.Group) -> None:
    """Register the config command group."""

    @main.group("config")
    def config():
        """Manage the s3sync configuration file."""

    @config.command("init")
    @store_options
    @click.option(
        "--output-dir",
        default=None,
        type=click.Path(file_okay=False, path_type=Path),
        help="Default archive directory.",
    )
    @click.pass_context
    @reports_errors
    def config_init(ctx, output_dir: Optional[Path], **store):
        """Write the effective settings to the config file.

        Examples:

            s3sync config init --bucket my-backups --region eu-central-1
        """
        cfg = build_config(ctx, must_exist=False, output_dir=output_dir, **store)
        path = save_config(cfg, (ctx.obj or {}).get("config_path"))
        console.print(f"\n  [green]Config written:[/] {path}\n")

    @config.command("show")
    @click.pass_context
    @reports_errors
    def config_show(ctx):
        """Print the effective configuration as YAML."""
        cfg = build_config(ctx)
        source = (ctx.obj or {}).get("config_path") or default_config_path()
        console.print(f"[dim]# {source}[/]")
        console.print(
            yaml.dump(cfg.model_dump(mode="json", exclude_none=True), default_flow_style=False),
            markup=False,
        )
