"""
Version Resolver — Latest version a reader should see by default.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..backend.replicas import ReplicaSet
from ..models.secret import SecretMetadata

logger = logging.getLogger(__name__)


def latest_usable_version(metadata: SecretMetadata) -> Optional[int]:
    """
    Scan from current_version down to oldest_version (inclusive).

    Returns the first version that is neither soft-deleted nor destroyed,
    or None. Versions absent from the history map are skipped, and the
    scan never goes below version 1.
    """
    lowest = max(metadata.oldest_version, 1)
    for version in range(metadata.current_version, lowest - 1, -1):
        info = metadata.version_info(version)
        if info is not None and info.is_live:
            return version
    return None


def get_latest_version(replicas: ReplicaSet, path: str) -> Optional[int]:
    """
    Latest usable version of path, or None.

    A path that was never created is not an error. Backend failures other
    than "not found" propagate.
    """
    metadata = replicas.read_metadata(path)
    if metadata is None:
        logger.debug(f"No metadata for {path}", extra={"secret_path": path})
        return None
    return latest_usable_version(metadata)
