"""
Pydantic models for the sync engine: archives, remote snapshots,
decisions, and configuration.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .fingerprint import short_fingerprint

DEFAULT_ENDPOINT = "https://s3.wasabisys.com"
DEFAULT_REGION = "us-east-1"


class StoreBackend(str, Enum):
    """Supported object-storage backends."""

    S3 = "s3"
    LOCAL = "local"


class SyncAction(str, Enum):
    """What a sync run should do with the local archive."""

    SKIP = "skip"
    UPLOAD = "upload"
    # Reserved for human-resolved cases; the current policy never emits it.
    CONFLICT = "conflict"


class LocalArchive(BaseModel):
    """A tar.gz archive on disk derived from a source directory."""

    source_path: Path
    archive_name: str
    path: Path
    digest: str
    size: int = 0
    reused: bool = False

    @property
    def short_digest(self) -> str:
        """Seven-character hex fingerprint for display."""
        return short_fingerprint(self.digest)


class RemoteObject(BaseModel):
    """Snapshot of what the store knows about one key.

    ``stored_digest`` is None when the object carries no digest
    metadata, and ``""`` when the metadata is present but empty.
    """

    model_config = ConfigDict(frozen=True)

    key: str
    bucket: str
    exists: bool = False
    stored_digest: Optional[str] = None
    size: Optional[int] = None
    last_modified: Optional[datetime] = None

    @property
    def short_digest(self) -> Optional[str]:
        """Display fingerprint of the stored digest, if it decodes."""
        if not self.stored_digest:
            return None
        try:
            return short_fingerprint(self.stored_digest)
        except ValueError:
            return None


class SyncDecision(BaseModel):
    """Result of comparing a local digest with a remote snapshot."""

    model_config = ConfigDict(frozen=True)

    action: SyncAction
    reason: str


class RemoteListing(BaseModel):
    """One row of a bucket listing."""

    key: str
    size: int = 0
    last_modified: Optional[datetime] = None


class DownloadResult(BaseModel):
    """Where a download landed and how many bytes it wrote."""

    path: Path
    bytes_written: int


class SyncResult(BaseModel):
    """Outcome of a push run."""

    archive: LocalArchive
    remote: RemoteObject
    decision: SyncDecision
    uploaded: bool = False
    cleaned: bool = False


class SyncConfig(BaseModel):
    """Complete sync configuration.

    Loaded from YAML, then overridden by environment variables and
    CLI flags.
    """

    backend: StoreBackend = StoreBackend.S3
    bucket: Optional[str] = None

    # S3-compatible endpoint
    endpoint_url: Optional[str] = DEFAULT_ENDPOINT
    region: str = DEFAULT_REGION
    profile: Optional[str] = None
    connect_timeout: float = 10.0
    read_timeout: float = 60.0

    # Local directory store
    local_root: Optional[Path] = None

    # Packaging
    output_dir: Optional[Path] = None
    compress_level: int = Field(default=6, ge=0, le=9)

    # Run behaviour
    force: bool = False
    clean: bool = False
    make_bucket: bool = False


class ObjectHead(BaseModel):
    """What a metadata-only probe returns for an existing object."""

    metadata: dict[str, str] = Field(default_factory=dict)
    size: Optional[int] = None
    last_modified: Optional[datetime] = None
