"""
Transfers: upload, download, and the local clean-up step.

No retries live here. Each failure is raised once with enough
context (operation, bucket, key, cause) for the caller to decide.
A transfer can be cancelled through a ``threading.Event`` checked on
every progress tick.
"""

from __future__ import annotations

import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Callable, Optional, Union

from .errors import ArchiveIOError, NotExistError, TransferCancelled
from .models import DownloadResult, LocalArchive, RemoteObject
from .remote import DIGEST_METADATA_KEY
from .storage import ObjectStore, ProgressCallback

logger = logging.getLogger("s3sync.transfer")


class TransferEngine:
    """Moves archives between the local disk and an object store.

    Args:
        store: Object-storage collaborator.
        cancel: Set this event to abort an in-flight transfer.
        on_progress: Called with the byte count of each chunk moved.
    """

    def __init__(
        self,
        store: ObjectStore,
        cancel: Optional[threading.Event] = None,
        on_progress: Optional[Callable[[int], None]] = None,
    ):
        self.store = store
        self.cancel = cancel
        self.on_progress = on_progress

    def _callback(self, operation: str, bucket: str, key: str) -> ProgressCallback:
        def tick(nbytes: int) -> None:
            if self.cancel is not None and self.cancel.is_set():
                raise TransferCancelled(operation, bucket, key)
            if self.on_progress and nbytes:
                self.on_progress(nbytes)

        return tick

    def upload(self, archive: LocalArchive, bucket: str) -> None:
        """Stream a local archive to ``bucket`` under its archive name.

        The digest travels both as ``Content-MD5`` and as the
        ``md5chksum`` metadata value that probes read back.

        Raises:
            ArchiveIOError: If the local archive cannot be opened.
            TransportError: If the store rejects or drops the upload.
        """
        key = archive.archive_name
        logger.info("Uploading %s to %s (%d bytes)", key, bucket, archive.size)
        try:
            with open(archive.path, "rb") as body:
                self.store.put(
                    bucket,
                    key,
                    body,
                    archive.size,
                    {DIGEST_METADATA_KEY: archive.digest},
                    content_md5=archive.digest,
                    callback=self._callback("upload", bucket, key),
                )
        except OSError as exc:
            raise ArchiveIOError(f"Could not read {archive.path}: {exc}") from exc
        logger.info("Upload of %s finished", key)

    def download(
        self, remote: RemoteObject, dest_dir: Optional[Path] = None
    ) -> DownloadResult:
        """Stream a remote object to ``dest_dir/<key>``.

        An existing local file of that name is overwritten. Bytes land
        in a temporary file first, so a failed or cancelled download
        leaves the previous file untouched.

        Raises:
            NotExistError: If the snapshot says the object is absent.
            TransportError: If the store fails mid-transfer.
            ArchiveIOError: If the local file cannot be written.
        """
        if not remote.exists:
            raise NotExistError(
                f"Remote archive {remote.bucket}/{remote.key} does not exist"
            )

        target_dir = Path(os.path.abspath(dest_dir or Path.cwd()))
        dest = target_dir / Path(remote.key).name

        tmp_name = None
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{dest.name}.", suffix=".part", dir=target_dir
            )
            with os.fdopen(fd, "wb") as out:
                written = self.store.get(
                    remote.bucket,
                    remote.key,
                    out,
                    callback=self._callback("download", remote.bucket, remote.key),
                )
            os.replace(tmp_name, dest)
            tmp_name = None
        except OSError as exc:
            raise ArchiveIOError(f"Could not write {dest}: {exc}") from exc
        finally:
            if tmp_name:
                Path(tmp_name).unlink(missing_ok=True)

        logger.info("Downloaded %s (%d bytes)", remote.key, written)
        return DownloadResult(path=dest, bytes_written=written)

    def delete(self, path: Union[str, Path]) -> bool:
        """Remove a local archive after a successful upload.

        Best effort: a failure is logged and reported, never raised,
        and never undoes the upload.

        Returns:
            True if the file was removed.
        """
        try:
            Path(path).unlink()
        except OSError as exc:
            logger.warning("Could not delete local archive %s: %s", path, exc)
            return False
        logger.info("Deleted local copy of %s", path)
        return True
