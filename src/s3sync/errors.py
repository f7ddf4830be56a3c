"""
Error taxonomy for s3sync.

Every failure the core raises is an ``S3SyncError``. The CLI catches
the base class and turns it into a single diagnostic line.
"""

from __future__ import annotations

from typing import Optional


class S3SyncError(Exception):
    """Base class for all s3sync failures."""


class ConfigError(S3SyncError):
    """A required setting is missing or the config file is unusable."""


class NotFoundError(S3SyncError):
    """A source directory (or remote object) does not exist."""


class NotExistError(NotFoundError):
    """Download requested for a remote object that does not exist."""


class ArchiveIOError(S3SyncError):
    """Local filesystem failure while packaging, hashing, writing or deleting."""


class TransportError(S3SyncError):
    """Object-storage failure: network, authorization, or provider error.

    Attributes:
        operation: What was being attempted (``head``, ``upload``, ...).
        bucket: Target bucket.
        key: Target key, if any.
        cause: The underlying exception.
    """

    def __init__(
        self,
        operation: str,
        bucket: str,
        key: Optional[str] = None,
        cause: Optional[BaseException] = None,
    ):
        self.operation = operation
        self.bucket = bucket
        self.key = key
        self.cause = cause
        target = f"{bucket}/{key}" if key else bucket
        message = f"{operation} failed for {target}"
        if cause is not None:
            message = f"{message}: {cause}"
        super().__init__(message)


class TransferCancelled(TransportError):
    """An in-flight transfer was aborted by the caller."""
