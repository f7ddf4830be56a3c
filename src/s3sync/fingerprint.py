"""
Content fingerprints for archives.

The digest is an MD5 over the full archive bytes, base64-encoded.
MD5 is what S3 expects in ``Content-MD5``, and the same value is
stored under the ``md5chksum`` metadata key that existing archives
already carry. The short hex fingerprint is for display only.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import logging
from pathlib import Path
from typing import BinaryIO, Union

from .errors import ArchiveIOError

logger = logging.getLogger("s3sync.fingerprint")

CHUNK_SIZE = 64 * 1024
SHORT_LENGTH = 7


def _encode(raw: bytes) -> str:
    return base64.b64encode(raw).decode("ascii")


def digest_stream(stream: BinaryIO) -> str:
    """Digest a binary stream from its current position to EOF.

    Args:
        stream: Readable binary file object.

    Returns:
        Base64-encoded MD5 of the bytes read.
    """
    h = hashlib.md5()
    for chunk in iter(lambda: stream.read(CHUNK_SIZE), b""):
        h.update(chunk)
    return _encode(h.digest())


def digest_bytes(data: bytes) -> str:
    """Digest an in-memory byte string."""
    return _encode(hashlib.md5(data).digest())


def digest_file(path: Path) -> str:
    """Digest a file on disk in a single streaming pass.

    Args:
        path: File to hash.

    Returns:
        Base64-encoded MD5 digest.

    Raises:
        ArchiveIOError: If the file cannot be read.
    """
    try:
        with open(path, "rb") as f:
            result = digest_stream(f)
    except OSError as exc:
        raise ArchiveIOError(f"Could not hash {path}: {exc}") from exc
    logger.debug("Digest of %s: %s", path, result)
    return result


def digest(source: Union[bytes, str, Path, BinaryIO]) -> str:
    """Digest bytes, a path, or a binary file object."""
    if isinstance(source, (bytes, bytearray, memoryview)):
        return digest_bytes(bytes(source))
    if isinstance(source, (str, Path)):
        return digest_file(Path(source))
    return digest_stream(source)


def to_hex(value: str) -> str:
    """Re-encode a base64 digest as lowercase hex.

    Raises:
        ValueError: If ``value`` is not valid base64.
    """
    try:
        raw = base64.b64decode(value, validate=True)
    except binascii.Error as exc:
        raise ValueError(f"Not a base64 digest: {value!r}") from exc
    return raw.hex()


def short_fingerprint(value: str, length: int = SHORT_LENGTH) -> str:
    """First ``length`` hex characters of a digest, or fewer if shorter."""
    hexed = to_hex(value)
    return hexed[:length]
