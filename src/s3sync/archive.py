"""
Deterministic folder packaging.

A folder ``foo/`` becomes ``foo.tar.gz``: a tar stream wrapped in a
single gzip layer. Entries are written depth-first, sorted by name
within each directory, with symlinks stored as links. The gzip header
carries no timestamp or file name, so packaging an unchanged tree
twice produces byte-identical archives and the same fingerprint.

Layout inside the tarball:
    foo/
    foo/a.txt
    foo/sub/
    foo/sub/link -> ../a.txt
"""

from __future__ import annotations

import gzip
import logging
import os
import stat
import tarfile
import tempfile
from pathlib import Path
from typing import Iterator, Optional, Union

from .errors import ArchiveIOError, ConfigError, NotFoundError
from .fingerprint import digest_file
from .models import LocalArchive

logger = logging.getLogger("s3sync.archive")

ARCHIVE_SUFFIX = ".tar.gz"


def resolve_source(source_dir: Union[str, Path]) -> Path:
    """Make ``source_dir`` absolute and check that it is a directory.

    Symlinks in the path are kept so the archive is named after the
    path the user gave, not its target.

    Raises:
        NotFoundError: If the path does not exist or is not a directory.
    """
    source = Path(os.path.abspath(os.path.expanduser(str(source_dir))))
    try:
        st = os.stat(source)
    except OSError as exc:
        raise NotFoundError(f"Source folder not found: {source} ({exc})") from exc
    if not stat.S_ISDIR(st.st_mode):
        raise NotFoundError(f"Source is not a directory: {source}")
    return source


def archive_name_for(source: Path) -> str:
    """``<basename>.tar.gz`` for a resolved source directory.

    Raises:
        ConfigError: If the path has no base name (e.g. ``/``).
    """
    if not source.name:
        raise ConfigError(f"Cannot derive an archive name from {source}")
    return f"{source.name}{ARCHIVE_SUFFIX}"


def _iter_entries(
    path: Path, arcname: str, skip: set[str]
) -> Iterator[tuple[Path, str]]:
    """Yield ``(path, arcname)`` pre-order, children sorted by name."""
    yield path, arcname
    if path.is_symlink() or not path.is_dir():
        return
    with os.scandir(path) as it:
        children = sorted(it, key=lambda e: e.name)
    for child in children:
        if os.path.realpath(child.path) in skip:
            continue
        yield from _iter_entries(Path(child.path), f"{arcname}/{child.name}", skip)


def _add_entry(tar: tarfile.TarFile, path: Path, arcname: str) -> bool:
    info = tar.gettarinfo(str(path), arcname=arcname)
    if info is None:
        logger.warning("Skipping unsupported file type: %s", path)
        return False
    info.mtime = int(info.mtime)
    if info.isreg():
        with open(path, "rb") as f:
            tar.addfile(info, f)
    else:
        tar.addfile(info)
    return True


def write_archive(
    source: Path, archive_path: Path, compress_level: int = 6
) -> int:
    """Write ``source`` as a tar.gz to ``archive_path``.

    The archive is built under a temporary name in the same directory
    and renamed into place only when complete.

    Args:
        source: Absolute directory to package.
        archive_path: Final archive location.
        compress_level: gzip level, 0-9.

    Returns:
        Number of entries written.

    Raises:
        ArchiveIOError: On any read or write failure. Nothing is left
            under ``archive_path`` or the temporary name.
    """
    out_dir = archive_path.parent
    try:
        out_dir.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{archive_path.name}.", suffix=".tmp", dir=out_dir
        )
    except OSError as exc:
        raise ArchiveIOError(f"Cannot write to {out_dir}: {exc}") from exc

    skip = {os.path.realpath(archive_path), os.path.realpath(tmp_name)}
    walk_root = Path(os.path.realpath(source))
    count = 0
    committed = False
    try:
        with os.fdopen(fd, "wb") as raw:
            with gzip.GzipFile(
                filename="",
                mode="wb",
                fileobj=raw,
                compresslevel=compress_level,
                mtime=0,
            ) as gz:
                with tarfile.open(
                    fileobj=gz, mode="w", format=tarfile.PAX_FORMAT
                ) as tar:
                    for path, arcname in _iter_entries(walk_root, source.name, skip):
                        if _add_entry(tar, path, arcname):
                            count += 1
        os.replace(tmp_name, archive_path)
        committed = True
    except OSError as exc:
        raise ArchiveIOError(
            f"Could not create archive {archive_path.name}: {exc}"
        ) from exc
    finally:
        if not committed:
            Path(tmp_name).unlink(missing_ok=True)

    return count


def package(
    source_dir: Union[str, Path],
    force: bool = False,
    output_dir: Optional[Path] = None,
    compress_level: int = 6,
) -> LocalArchive:
    """Package a folder into ``<name>.tar.gz`` and fingerprint it.

    An archive that already exists is reused as-is unless ``force``
    is set. Its digest is always recomputed from the bytes on disk.

    Args:
        source_dir: Folder to package.
        force: Rebuild the archive even if it already exists.
        output_dir: Where the archive lives. Defaults to the cwd.
        compress_level: gzip level, 0-9.

    Returns:
        LocalArchive describing the file on disk.

    Raises:
        NotFoundError: If ``source_dir`` is missing or not a directory.
        ArchiveIOError: If packaging or hashing fails.
    """
    source = resolve_source(source_dir)
    name = archive_name_for(source)
    archive_path = Path(os.path.abspath(output_dir or Path.cwd())) / name

    reused = archive_path.is_file() and not force
    if reused:
        logger.info("Local archive %s already exists; not recreating", name)
    else:
        logger.info("Creating archive %s from %s", name, source)
        count = write_archive(source, archive_path, compress_level)
        logger.info("Created archive %s (%d entries)", name, count)

    archive_digest = digest_file(archive_path)
    try:
        size = archive_path.stat().st_size
    except OSError as exc:
        raise ArchiveIOError(f"Could not stat {archive_path}: {exc}") from exc

    return LocalArchive(
        source_path=source,
        archive_name=name,
        path=archive_path,
        digest=archive_digest,
        size=size,
        reused=reused,
    )
