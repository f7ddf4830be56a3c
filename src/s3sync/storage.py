"""
Object-storage backends -- where the archive lives remotely.

Each store exposes the same small capability set: a metadata-only
probe, a streaming upload with metadata, a streaming download, a
listing, and bucket creation. Provider error codes are interpreted
here and nowhere else.

S3: any S3-compatible endpoint (AWS, Wasabi, MinIO, R2) via boto3.
Local: a directory per bucket. For USB drives, NAS, and offline use.
"""

from __future__ import annotations

import json
import logging
import os
import re
import tempfile
import threading
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, BinaryIO, Callable, Optional

import boto3
from boto3.exceptions import Boto3Error
from boto3.s3.transfer import TransferConfig
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from .errors import ConfigError, TransportError
from .fingerprint import digest_file
from .models import ObjectHead, RemoteListing, StoreBackend, SyncConfig

logger = logging.getLogger("s3sync.storage")

ProgressCallback = Callable[[int], None]

NOT_FOUND_CODES = {"404", "NotFound", "NoSuchKey"}
COPY_CHUNK = 1024 * 1024
# Temporary upload files: .<name>.<random>.part
TEMP_PART = re.compile(r"^\..+\.[a-z0-9_]{8}\.part$")


class ObjectStore(ABC):
    """Abstract object-storage collaborator."""

    @abstractmethod
    def head(self, bucket: str, key: str) -> Optional[ObjectHead]:
        """Probe an object without transferring its body.

        Returns:
            ObjectHead if the object exists, None if it does not.

        Raises:
            TransportError: For any failure other than "not found".
        """

    @abstractmethod
    def put(
        self,
        bucket: str,
        key: str,
        body: BinaryIO,
        size: int,
        metadata: dict[str, str],
        content_md5: Optional[str] = None,
        callback: Optional[ProgressCallback] = None,
    ) -> None:
        """Stream ``body`` to ``bucket/key`` with user metadata.

        ``callback`` is called with the number of bytes sent since the
        previous call. If it raises, the upload is abandoned and no
        object becomes visible under ``key``.
        """

    @abstractmethod
    def get(
        self,
        bucket: str,
        key: str,
        fileobj: BinaryIO,
        callback: Optional[ProgressCallback] = None,
    ) -> int:
        """Stream ``bucket/key`` into ``fileobj``.

        Returns:
            Number of bytes written.
        """

    @abstractmethod
    def list(self, bucket: str, prefix: str = "") -> list[RemoteListing]:
        """List objects in a bucket, sorted by key."""

    @abstractmethod
    def create_bucket(self, bucket: str) -> None:
        """Create a bucket and wait until it exists."""

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable store name."""


def is_not_found(exc: Any) -> bool:
    """True if a botocore ``ClientError`` means the key does not exist."""
    response = getattr(exc, "response", None) or {}
    code = str(response.get("Error", {}).get("Code", ""))
    status = response.get("ResponseMetadata", {}).get("HTTPStatusCode")
    return code in NOT_FOUND_CODES or status == 404


class S3ObjectStore(ObjectStore):
    """S3-compatible object storage via boto3.

    The client is created lazily so that constructing the store never
    touches the network or the credential chain.

    Args:
        endpoint_url: Service endpoint. None uses the AWS default.
        region: Signing region.
        profile: Named profile from the AWS shared config.
        connect_timeout: Seconds to wait for a connection.
        read_timeout: Seconds to wait on a socket read.
        client: Pre-built boto3 S3 client (tests inject a mock here).
    """

    def __init__(
        self,
        endpoint_url: Optional[str] = None,
        region: Optional[str] = None,
        profile: Optional[str] = None,
        connect_timeout: float = 10.0,
        read_timeout: float = 60.0,
        client: Any = None,
    ):
        self.endpoint_url = endpoint_url
        self.region = region
        self.profile = profile
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self._client = client

        self.transfer_config = TransferConfig()

    @property
    def name(self) -> str:
        return "s3"

    @property
    def client(self) -> Any:
        if self._client is None:
            self._client = self._make_client()
        return self._client

    def _make_client(self) -> Any:
        session = boto3.Session(
            profile_name=self.profile, region_name=self.region
        )
        config = Config(
            connect_timeout=self.connect_timeout,
            read_timeout=self.read_timeout,
            retries={"total_max_attempts": 1},
        )
        logger.debug(
            "Creating S3 client (endpoint=%s, region=%s, profile=%s)",
            self.endpoint_url, self.region, self.profile,
        )
        return session.client(
            "s3", endpoint_url=self.endpoint_url, config=config
        )

    def head(self, bucket: str, key: str) -> Optional[ObjectHead]:
        try:
            resp = self.client.head_object(Bucket=bucket, Key=key)
        except ClientError as exc:
            if is_not_found(exc):
                logger.debug("No object at %s/%s", bucket, key)
                return None
            raise TransportError("head", bucket, key, exc) from exc
        except BotoCoreError as exc:
            raise TransportError("head", bucket, key, exc) from exc

        return ObjectHead(
            metadata=resp.get("Metadata") or {},
            size=resp.get("ContentLength"),
            last_modified=resp.get("LastModified"),
        )

    def put(
        self,
        bucket: str,
        key: str,
        body: BinaryIO,
        size: int,
        metadata: dict[str, str],
        content_md5: Optional[str] = None,
        callback: Optional[ProgressCallback] = None,
    ) -> None:
        try:
            if size < self.transfer_config.multipart_threshold:
                # Single request: the server verifies Content-MD5.
                if callback:
                    callback(0)
                extra: dict[str, Any] = {}
                if content_md5:
                    extra["ContentMD5"] = content_md5
                self.client.put_object(
                    Bucket=bucket,
                    Key=key,
                    Body=body,
                    Metadata=metadata,
                    **extra,
                )
                if callback:
                    callback(size)
            else:
                # Multipart: parts are checksummed individually and an
                # abandoned upload is aborted by the transfer manager.
                self.client.upload_fileobj(
                    body,
                    bucket,
                    key,
                    ExtraArgs={"Metadata": metadata},
                    Callback=callback,
                    Config=self.transfer_config,
                )
        except TransportError:
            raise
        except (ClientError, BotoCoreError, Boto3Error) as exc:
            raise TransportError("upload", bucket, key, exc) from exc

    def get(
        self,
        bucket: str,
        key: str,
        fileobj: BinaryIO,
        callback: Optional[ProgressCallback] = None,
    ) -> int:
        # Ranged parts land out of order, so count ticks rather than tell().
        received = 0
        lock = threading.Lock()

        def tick(nbytes: int) -> None:
            nonlocal received
            with lock:
                received += nbytes
            if callback:
                callback(nbytes)

        try:
            self.client.download_fileobj(
                bucket,
                key,
                fileobj,
                Callback=tick,
                Config=self.transfer_config,
            )
        except TransportError:
            raise
        except (ClientError, BotoCoreError, Boto3Error) as exc:
            raise TransportError("download", bucket, key, exc) from exc
        return received

    def list(self, bucket: str, prefix: str = "") -> list[RemoteListing]:
        listings: list[RemoteListing] = []
        try:
            paginator = self.client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
                for obj in page.get("Contents", []) or []:
                    listings.append(
                        RemoteListing(
                            key=obj["Key"],
                            size=obj.get("Size", 0),
                            last_modified=obj.get("LastModified"),
                        )
                    )
        except (ClientError, BotoCoreError) as exc:
            raise TransportError("list", bucket, None, exc) from exc
        return sorted(listings, key=lambda item: item.key)

    def create_bucket(self, bucket: str) -> None:
        kwargs: dict[str, Any] = {"Bucket": bucket}
        if self.region and self.region != "us-east-1":
            kwargs["CreateBucketConfiguration"] = {
                "LocationConstraint": self.region
            }
        try:
            self.client.create_bucket(**kwargs)
            logger.info("Waiting for bucket %s to be created", bucket)
            self.client.get_waiter("bucket_exists").wait(Bucket=bucket)
        except (ClientError, BotoCoreError) as exc:
            raise TransportError("create-bucket", bucket, None, exc) from exc


class LocalObjectStore(ObjectStore):
    """Directory-backed store: ``<root>/<bucket>/<key>``.

    User metadata lives in ``<root>/<bucket>/.s3sync-meta/<key>.json``
    with lowercased keys, the way S3 returns them. Objects are written
    to a temporary file and renamed, so a key is either complete or
    absent.
    """

    META_DIR = ".s3sync-meta"

    def __init__(self, root: Path):
        self.root = Path(root).expanduser()

    @property
    def name(self) -> str:
        return "local"

    def _bucket_dir(self, bucket: str, operation: str, key: Optional[str] = None) -> Path:
        bucket_dir = self.root / bucket
        if not bucket_dir.is_dir():
            raise TransportError(
                operation, bucket, key,
                FileNotFoundError(f"No such bucket: {bucket_dir}"),
            )
        return bucket_dir

    def _object_path(self, bucket_dir: Path, key: str) -> Path:
        path = (bucket_dir / key).resolve()
        if bucket_dir.resolve() not in path.parents:
            raise ConfigError(f"Key escapes bucket: {key!r}")
        return path

    def _meta_path(self, bucket_dir: Path, key: str) -> Path:
        return bucket_dir / self.META_DIR / f"{key}.json"

    def head(self, bucket: str, key: str) -> Optional[ObjectHead]:
        bucket_dir = self._bucket_dir(bucket, "head", key)
        path = self._object_path(bucket_dir, key)
        if not path.is_file():
            return None

        metadata: dict[str, str] = {}
        meta_path = self._meta_path(bucket_dir, key)
        try:
            st = path.stat()
            if meta_path.exists():
                metadata = json.loads(meta_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as exc:
            raise TransportError("head", bucket, key, exc) from exc

        return ObjectHead(
            metadata=metadata,
            size=st.st_size,
            last_modified=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
        )

    def put(
        self,
        bucket: str,
        key: str,
        body: BinaryIO,
        size: int,
        metadata: dict[str, str],
        content_md5: Optional[str] = None,
        callback: Optional[ProgressCallback] = None,
    ) -> None:
        bucket_dir = self._bucket_dir(bucket, "upload", key)
        path = self._object_path(bucket_dir, key)
        meta_path = self._meta_path(bucket_dir, key)

        tmp_name = None
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{path.name}.", suffix=".part", dir=path.parent
            )
            with os.fdopen(fd, "wb") as out:
                _copy_stream(body, out, callback)

            if content_md5 and digest_file(Path(tmp_name)) != content_md5:
                raise TransportError(
                    "upload", bucket, key,
                    ValueError("Content-MD5 does not match the uploaded bytes"),
                )

            # Drop the old tag first: a failed sidecar write leaves the
            # object untagged, never carrying the previous digest.
            meta_path.unlink(missing_ok=True)
            os.replace(tmp_name, path)
            tmp_name = None
            _write_json_atomic(
                meta_path, {k.lower(): v for k, v in metadata.items()}
            )
        except OSError as exc:
            raise TransportError("upload", bucket, key, exc) from exc
        finally:
            if tmp_name:
                Path(tmp_name).unlink(missing_ok=True)

    def get(
        self,
        bucket: str,
        key: str,
        fileobj: BinaryIO,
        callback: Optional[ProgressCallback] = None,
    ) -> int:
        bucket_dir = self._bucket_dir(bucket, "download", key)
        path = self._object_path(bucket_dir, key)
        try:
            with open(path, "rb") as src:
                return _copy_stream(src, fileobj, callback)
        except OSError as exc:
            raise TransportError("download", bucket, key, exc) from exc

    def list(self, bucket: str, prefix: str = "") -> list[RemoteListing]:
        bucket_dir = self._bucket_dir(bucket, "list")
        listings: list[RemoteListing] = []
        for path in sorted(bucket_dir.rglob("*")):
            rel = path.relative_to(bucket_dir)
            if rel.parts[0] == self.META_DIR or not path.is_file():
                continue
            if TEMP_PART.match(path.name):
                continue
            key = rel.as_posix()
            if not key.startswith(prefix):
                continue
            st = path.stat()
            listings.append(
                RemoteListing(
                    key=key,
                    size=st.st_size,
                    last_modified=datetime.fromtimestamp(
                        st.st_mtime, tz=timezone.utc
                    ),
                )
            )
        return listings

    def create_bucket(self, bucket: str) -> None:
        try:
            (self.root / bucket).mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise TransportError("create-bucket", bucket, None, exc) from exc
        logger.info("Local bucket ready: %s", self.root / bucket)


def _copy_stream(
    src: BinaryIO, dst: BinaryIO, callback: Optional[ProgressCallback]
) -> int:
    total = 0
    for chunk in iter(lambda: src.read(COPY_CHUNK), b""):
        dst.write(chunk)
        total += len(chunk)
        if callback:
            callback(len(chunk))
    return total


def _write_json_atomic(path: Path, data: dict[str, str]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(json.dumps(data, indent=2), encoding="utf-8")
    os.replace(tmp, path)


def create_store(config: SyncConfig) -> ObjectStore:
    """Factory function to create the configured store.

    Args:
        config: Sync configuration.

    Returns:
        Instantiated ObjectStore.

    Raises:
        ConfigError: If the backend is unsupported or underconfigured.
    """
    if config.backend == StoreBackend.S3:
        return S3ObjectStore(
            endpoint_url=config.endpoint_url,
            region=config.region,
            profile=config.profile,
            connect_timeout=config.connect_timeout,
            read_timeout=config.read_timeout,
        )
    if config.backend == StoreBackend.LOCAL:
        if not config.local_root:
            raise ConfigError("The local backend needs local_root")
        return LocalObjectStore(config.local_root)
    raise ConfigError(f"Unsupported backend: {config.backend}")
