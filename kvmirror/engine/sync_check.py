"""
Sync Check — Drift detection between secrets and their mirrors.

For every logical path found in either tree, compares:
- the current version number of the secret and of its mirror
- whether every version either side knows about is readable
  (soft-deleted and destroyed versions both count as deleted)

Only read operations are issued. A path that cannot be read is
reported with its error instead of aborting the whole audit.
"""

from __future__ import annotations

import logging
from typing import Dict, List

from ..backend.replicas import ReplicaSet
from ..errors import KVMirrorError
from ..models.secret import DriftInfo
from .paths import DEFAULT_MIRROR_PREFIX, is_mirror_path, logical_path, mirror_path

logger = logging.getLogger(__name__)


def collect_logical_paths(
    replicas: ReplicaSet,
    root: str = "",
    mirror_prefix: str = DEFAULT_MIRROR_PREFIX,
) -> List[str]:
    """Every path below root, with mirror paths folded onto their secret path."""
    root = root.strip("/")
    found = replicas.walk(root)
    if root and not is_mirror_path(root, mirror_prefix):
        found += replicas.walk(mirror_path(root, mirror_prefix))
    return sorted({logical_path(p, mirror_prefix) for p in found})


def read_drift_info(
    replicas: ReplicaSet,
    path: str,
    mirror_prefix: str = DEFAULT_MIRROR_PREFIX,
) -> DriftInfo:
    info = DriftInfo()

    secret = replicas.read_metadata(path)
    if secret is not None:
        info.secret_version = secret.current_version
        info.secret_versions = secret.versions

    mirror = replicas.read_metadata(mirror_path(path, mirror_prefix))
    if mirror is not None:
        info.mirror_version = mirror.current_version
        info.mirror_versions = mirror.versions

    return info


def is_in_sync(info: DriftInfo) -> bool:
    """
    Same current version and same readability for every known version.

    A destroyed version counts as deleted: both leave the version unreadable.
    """
    if info.error is not None:
        return False
    if info.secret_version != info.mirror_version:
        return False

    for version in set(info.secret_versions) | set(info.mirror_versions):
        secret = info.secret_versions.get(version)
        mirror = info.mirror_versions.get(version)
        if secret is None or mirror is None:
            return False
        if secret.is_live != mirror.is_live:
            return False
    return True


def check_sync(
    replicas: ReplicaSet,
    root: str = "",
    mirror_prefix: str = DEFAULT_MIRROR_PREFIX,
) -> Dict[str, DriftInfo]:
    """
    Audit every secret below root.

    Returns a map of logical path -> DriftInfo containing only the paths
    that are out of sync or could not be read.
    """
    paths = collect_logical_paths(replicas, root, mirror_prefix)
    drift: Dict[str, DriftInfo] = {}

    for path in paths:
        try:
            info = read_drift_info(replicas, path, mirror_prefix)
        except KVMirrorError as e:
            logger.error(f"Could not audit {path}: {e}", extra={"secret_path": path})
            drift[path] = DriftInfo(error=str(e))
            continue

        if not is_in_sync(info):
            logger.warning(
                f"{path} is out of sync (secret v{info.secret_version}, mirror v{info.mirror_version})",
                extra={"secret_path": path},
            )
            drift[path] = info

    logger.info(f"Checked {len(paths)} path(s), {len(drift)} out of sync")
    return drift
