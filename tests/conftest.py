"""Shared test fixtures for s3sync."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from s3sync.models import StoreBackend, SyncConfig
from s3sync.storage import LocalObjectStore

BUCKET = "test-bucket"


@pytest.fixture
def sample_tree(tmp_path: Path) -> Path:
    """A small folder with nested files and a symlink.

    Layout:
        foo/a.txt          "hi"
        foo/sub/b.txt      "nested"
        foo/sub/link.txt -> ../a.txt
        foo/empty/
    """
    root = tmp_path / "src" / "foo"
    (root / "sub").mkdir(parents=True)
    (root / "empty").mkdir()
    (root / "a.txt").write_bytes(b"hi")
    (root / "sub" / "b.txt").write_bytes(b"nested")
    os.symlink("../a.txt", root / "sub" / "link.txt")
    return root


@pytest.fixture
def out_dir(tmp_path: Path) -> Path:
    """Directory archives are written into."""
    d = tmp_path / "out"
    d.mkdir()
    return d


@pytest.fixture
def store_root(tmp_path: Path) -> Path:
    """Root of a LocalObjectStore with one bucket created."""
    root = tmp_path / "store"
    (root / BUCKET).mkdir(parents=True)
    return root


@pytest.fixture
def local_store(store_root: Path) -> LocalObjectStore:
    """A LocalObjectStore with ``test-bucket`` ready."""
    return LocalObjectStore(store_root)


@pytest.fixture
def local_config(store_root: Path, out_dir: Path) -> SyncConfig:
    """Config pointing at the local store and the archive directory."""
    return SyncConfig(
        backend=StoreBackend.LOCAL,
        bucket=BUCKET,
        local_root=store_root,
        output_dir=out_dir,
    )


@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch) -> Path:
    """Point the default config path at an empty home and clear S3SYNC_* env."""
    home = tmp_path / "home"
    monkeypatch.setattr("s3sync.engine.S3SYNC_HOME", str(home))
    for var in ("S3SYNC_BUCKET", "S3SYNC_ENDPOINT", "S3SYNC_REGION", "S3SYNC_PROFILE"):
        monkeypatch.delenv(var, raising=False)
    return home
