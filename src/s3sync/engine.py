"""
Sync Engine -- orchestrates packaging, probing, and transfer.

One run does at most one packaging pass, one fingerprint, one probe,
and one transfer:

    s3sync push foo/  ->  package -> fingerprint -> probe -> decide -> upload?
    s3sync pull KEY   ->  probe -> download
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path
from typing import Any, Callable, Optional, Union

import yaml
from pydantic import ValidationError

from . import S3SYNC_HOME
from .archive import package
from .decision import decide
from .errors import ConfigError
from .models import (
    DownloadResult,
    LocalArchive,
    RemoteListing,
    RemoteObject,
    SyncAction,
    SyncConfig,
    SyncDecision,
    SyncResult,
)
from .remote import probe
from .storage import ObjectStore, create_store
from .transfer import TransferEngine

logger = logging.getLogger("s3sync.engine")

ENV_OVERRIDES = {
    "S3SYNC_BUCKET": "bucket",
    "S3SYNC_ENDPOINT": "endpoint_url",
    "S3SYNC_REGION": "region",
    "S3SYNC_PROFILE": "profile",
}


def default_config_path() -> Path:
    """``$S3SYNC_HOME/config.yaml`` (``~/.s3sync/config.yaml`` by default)."""
    return Path(S3SYNC_HOME).expanduser() / "config.yaml"


def load_config(
    path: Optional[Path] = None,
    overrides: Optional[dict[str, Any]] = None,
    must_exist: bool = True,
) -> SyncConfig:
    """Build the effective configuration.

    Precedence, lowest first: YAML file, ``S3SYNC_*`` environment
    variables, ``overrides`` (CLI flags; None values are ignored).

    Args:
        path: Explicit config file.
        overrides: Field values that win over everything else.
        must_exist: Reject an explicit ``path`` that does not exist.
            ``config init`` turns this off to create a new file.

    Raises:
        ConfigError: If the file is missing (when explicit and required),
            unreadable, not a mapping, or holds invalid values.
    """
    config_file = Path(path).expanduser() if path else default_config_path()
    data: dict[str, Any] = {}

    if config_file.exists():
        try:
            loaded = yaml.safe_load(config_file.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as exc:
            raise ConfigError(f"Could not read config {config_file}: {exc}") from exc
        if loaded is not None and not isinstance(loaded, dict):
            raise ConfigError(f"Config {config_file} must be a mapping")
        data.update(loaded or {})
        logger.debug("Loaded config from %s", config_file)
    elif path and must_exist:
        raise ConfigError(f"Config file not found: {config_file}")

    for env_var, field in ENV_OVERRIDES.items():
        value = os.environ.get(env_var)
        if value:
            data[field] = value

    for field, value in (overrides or {}).items():
        if value is not None:
            data[field] = value

    try:
        return SyncConfig(**data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid configuration: {exc}") from exc


def save_config(config: SyncConfig, path: Optional[Path] = None) -> Path:
    """Persist a configuration as YAML.

    Returns:
        The path written.
    """
    config_file = Path(path).expanduser() if path else default_config_path()
    try:
        config_file.parent.mkdir(parents=True, exist_ok=True)
        data = config.model_dump(mode="json", exclude_none=True)
        config_file.write_text(
            yaml.dump(data, default_flow_style=False), encoding="utf-8"
        )
    except OSError as exc:
        raise ConfigError(f"Could not write config {config_file}: {exc}") from exc
    logger.info("Saved config to %s", config_file)
    return config_file


class SyncEngine:
    """Runs a sync against one object store.

    Args:
        config: Effective configuration.
        store: Object store to use. Built from ``config`` when omitted.
        cancel: Event that aborts in-flight transfers when set.
        on_progress: Byte-count callback for progress display.
    """

    def __init__(
        self,
        config: SyncConfig,
        store: Optional[ObjectStore] = None,
        cancel: Optional[threading.Event] = None,
        on_progress: Optional[Callable[[int], None]] = None,
    ):
        self.config = config
        self.store = store or create_store(config)
        self.transfer = TransferEngine(
            self.store, cancel=cancel, on_progress=on_progress
        )

    def _bucket(self, bucket: Optional[str]) -> str:
        name = bucket or self.config.bucket
        if not name:
            raise ConfigError("Must specify bucket name")
        return name

    def make_bucket(self, bucket: Optional[str] = None) -> str:
        """Create the bucket and wait for it to exist."""
        name = self._bucket(bucket)
        logger.info("Creating bucket %s on %s", name, self.store.name)
        self.store.create_bucket(name)
        return name

    def package(
        self, folder: Union[str, Path, None], force: Optional[bool] = None
    ) -> LocalArchive:
        """Package ``folder`` according to the configured output settings."""
        if not folder:
            raise ConfigError("Must specify folder to upload")
        return package(
            folder,
            force=self.config.force if force is None else force,
            output_dir=self.config.output_dir,
            compress_level=self.config.compress_level,
        )

    def check(
        self,
        folder: Union[str, Path, None],
        bucket: Optional[str] = None,
        force: Optional[bool] = None,
    ) -> tuple[LocalArchive, RemoteObject, SyncDecision]:
        """Package, probe, and decide without transferring anything."""
        name = self._bucket(bucket)
        archive = self.package(folder, force=force)
        remote = probe(self.store, archive.archive_name, name)
        decision = decide(archive.digest, remote)
        logger.info(
            "Decision for %s: %s (%s)",
            archive.archive_name, decision.action.value, decision.reason,
        )
        return archive, remote, decision

    def push(
        self,
        folder: Union[str, Path, None],
        bucket: Optional[str] = None,
        force: Optional[bool] = None,
        clean: Optional[bool] = None,
    ) -> SyncResult:
        """Upload ``folder`` as an archive if the remote copy is missing or stale.

        With ``clean``, the local archive is removed once the remote
        holds the same bytes (after an upload or a matching skip).

        Returns:
            SyncResult describing what happened.
        """
        name = self._bucket(bucket)
        if not folder:
            raise ConfigError("Must specify folder to upload")
        if self.config.make_bucket:
            self.make_bucket(name)

        archive, remote, decision = self.check(folder, name, force=force)

        uploaded = False
        if decision.action == SyncAction.UPLOAD:
            self.transfer.upload(archive, name)
            uploaded = True
        else:
            logger.info("Remote archive %s already exists; not uploading", remote.key)

        cleaned = False
        if self.config.clean if clean is None else clean:
            cleaned = self.transfer.delete(archive.path)

        return SyncResult(
            archive=archive,
            remote=remote,
            decision=decision,
            uploaded=uploaded,
            cleaned=cleaned,
        )

    def pull(
        self,
        key: str,
        bucket: Optional[str] = None,
        dest_dir: Optional[Path] = None,
    ) -> DownloadResult:
        """Download ``key`` after confirming it exists.

        Raises:
            NotExistError: If the probe finds no such object.
        """
        name = self._bucket(bucket)
        remote = probe(self.store, key, name)
        return self.transfer.download(remote, dest_dir=dest_dir)

    def list_remote(
        self, bucket: Optional[str] = None, prefix: str = ""
    ) -> list[RemoteListing]:
        """List objects in the bucket."""
        return self.store.list(self._bucket(bucket), prefix=prefix)
