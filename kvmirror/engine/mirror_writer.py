"""
Mirror Writer — Value-free copies of secret versions.

The mirror tree holds the same keys and version numbers as the real
secrets, with every value blanked, so CI jobs can see which keys exist
at which version without reading them.
"""

from __future__ import annotations

import logging
from typing import Dict, Mapping

from ..backend.replicas import ReplicaSet
from ..errors import VersionInvariantViolation

logger = logging.getLogger(__name__)

PLACEHOLDER = ""


def derive_mirror(data: Mapping[str, object]) -> Dict[str, str]:
    """Same keys as data, every value replaced by the placeholder."""
    return {key: PLACEHOLDER for key in data}


def write_mirror_version(
    replicas: ReplicaSet,
    mirror: str,
    data: Mapping[str, object],
    target_version: int,
) -> int:
    """
    Materialize mirror version target_version from data's key set.

    The mirror must currently be exactly one version behind; any other
    position would make mirror version numbers diverge from the real
    secret's. The write itself is check-and-set guarded on the same
    position.
    """
    expected = target_version - 1
    metadata = replicas.read_metadata(mirror)
    current = metadata.current_version if metadata is not None else 0

    if current != expected:
        raise VersionInvariantViolation(mirror, current, expected)

    written = replicas.write_version(mirror, derive_mirror(data), cas=expected)
    logger.info(
        f"Mirror {mirror} written at version {written} ({len(data)} keys)",
        extra={"secret_path": mirror, "version": written},
    )
    return written
