"""
Remote state probes.

A probe is a single metadata-only lookup. "Not found" is an answer,
not an error: it becomes ``RemoteObject(exists=False)``. Every other
failure propagates as ``TransportError``.
"""

from __future__ import annotations

import logging
from typing import Mapping, Optional

from .models import RemoteObject
from .storage import ObjectStore

logger = logging.getLogger("s3sync.remote")

DIGEST_METADATA_KEY = "md5chksum"


def extract_digest(metadata: Mapping[str, str]) -> Optional[str]:
    """Find the stored digest in object metadata, ignoring key case.

    boto3 hands back ``md5chksum``; other SDKs canonicalize header
    names to ``Md5chksum``.

    Returns:
        The stored value (possibly ``""``), or None if the key is absent.
    """
    for name, value in metadata.items():
        if name.lower() == DIGEST_METADATA_KEY:
            return value
    return None


def probe(store: ObjectStore, key: str, bucket: str) -> RemoteObject:
    """Fetch a fresh snapshot of ``bucket/key``.

    Args:
        store: Object-storage collaborator.
        key: Object key (the archive name).
        bucket: Bucket name.

    Returns:
        RemoteObject; ``exists`` is False when the object is absent.

    Raises:
        TransportError: For any failure other than "not found".
    """
    head = store.head(bucket, key)
    if head is None:
        logger.info("No remote archive found at %s/%s", bucket, key)
        return RemoteObject(key=key, bucket=bucket, exists=False)

    stored = extract_digest(head.metadata)
    if stored is None:
        logger.info("Remote %s/%s exists but carries no digest", bucket, key)
    return RemoteObject(
        key=key,
        bucket=bucket,
        exists=True,
        stored_digest=stored,
        size=head.size,
        last_modified=head.last_modified,
    )
