"""
s3sync: content-addressed folder sync to object storage.

Packages a folder into a single deterministic tar.gz archive,
fingerprints it, and uploads it only when the remote copy is
missing or stale.
"""

import os

__version__ = "0.3.0"

S3SYNC_HOME = os.environ.get("S3SYNC_HOME", "~/.s3sync")
