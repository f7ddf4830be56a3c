"""
s3sync CLI: push a folder to object storage, only when it changed.

The main Click group is defined here and all subcommands are
registered via register functions from their own modules.

Entry point: s3sync.cli:main
"""

from __future__ import annotations

from pathlib import Path
from typing import Optional

import click

from .. import __version__
from ._common import setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="s3sync")
@click.option(
    "--config",
    "config_path",
    default=None,
    type=click.Path(dir_okay=False, path_type=Path),
    help="Config file (default: $S3SYNC_HOME/config.yaml).",
)
@click.option("-v", "--verbose", is_flag=True, help="Log debug output.")
@click.pass_context
def main(ctx: click.Context, config_path: Optional[Path], verbose: bool):
    """s3sync: content-addressed folder sync to object storage.

    Packages a folder into <name>.tar.gz, fingerprints it, and uploads
    it only when the bucket's copy is missing or stale.
    """
    setup_logging(verbose)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path


# ---------------------------------------------------------------------------
# Register all command groups/commands from modular files
# ---------------------------------------------------------------------------

from .push import register_push_commands
from .pull import register_pull_commands
from .remote import register_remote_commands
from .config_cmd import register_config_commands

register_push_commands(main)
register_pull_commands(main)
register_remote_commands(main)
register_config_commands(main)
