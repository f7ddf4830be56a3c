"""
The sync decision: skip or upload.

A pure function of the local digest and a remote snapshot. Anything
short of a positive digest match uploads.
"""

from __future__ import annotations

from .models import RemoteObject, SyncAction, SyncDecision


def decide(local_digest: str, remote: RemoteObject) -> SyncDecision:
    """Compare a local digest against a remote snapshot.

    Args:
        local_digest: Full digest of the local archive.
        remote: Snapshot from :func:`s3sync.remote.probe`.

    Returns:
        SyncDecision with ``SKIP`` only when the remote object exists
        and its stored digest equals ``local_digest``.
    """
    if not remote.exists:
        return SyncDecision(
            action=SyncAction.UPLOAD, reason="remote archive does not exist"
        )
    if remote.stored_digest is None:
        return SyncDecision(
            action=SyncAction.UPLOAD, reason="remote archive has no stored digest"
        )
    if remote.stored_digest != local_digest:
        return SyncDecision(
            action=SyncAction.UPLOAD,
            reason=(
                f"digest mismatch (local: {local_digest}, "
                f"remote: {remote.stored_digest})"
            ),
        )
    return SyncDecision(
        action=SyncAction.SKIP, reason="remote archive is up to date"
    )
