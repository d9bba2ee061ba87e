"""
Resync — Repair one mirror version from its secret version.

Decision table (primary deleted × mirror version exists). A destroyed
version counts as deleted on either side:

    primary   mirror       action
    -------   ----------   ---------------------------------
    deleted   deleted      none
    deleted   live         soft-delete mirror version
    deleted   missing      create empty mirror version, delete it
    live      deleted      undelete mirror version
    live      live         none
    live      missing      create mirror version from primary keys

Creating a mirror version requires the mirror to sit exactly one version
behind; otherwise VersionInvariantViolation is raised and nothing is
written. A destroyed mirror version cannot be brought back for a live
secret version; VersionDestroyed is raised instead. A second resync of
the same version is always a no-op.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..backend.replicas import ReplicaSet
from ..errors import SecretNotFound, VersionDestroyed
from ..models.secret import ResyncOutcome
from ..persistence.ledger import OperationLedger
from .mirror_writer import write_mirror_version
from .paths import DEFAULT_MIRROR_PREFIX, mirror_path

logger = logging.getLogger(__name__)


def resync(
    replicas: ReplicaSet,
    path: str,
    version: Optional[int] = None,
    mirror_prefix: str = DEFAULT_MIRROR_PREFIX,
    ledger: Optional[OperationLedger] = None,
) -> ResyncOutcome:
    """
    Bring mirror version `version` of path in line with the secret.

    Args:
        replicas: Replicas to read from (first) and write to (all)
        path: Full secret path (without the mirror prefix)
        version: Version to repair; None means the current version
        mirror_prefix: Mirror tree root
        ledger: Optional operation ledger

    Returns:
        What was done, as a ResyncOutcome
    """
    record = replicas.read_version(path, version or None)
    if record is None:
        raise SecretNotFound(path, version)

    target = record.version
    mirror = mirror_path(path, mirror_prefix)
    mirror_record = replicas.read_version(mirror, target)

    if not record.is_live:
        if mirror_record is None:
            write_mirror_version(replicas, mirror, record.data, target)
            replicas.soft_delete(mirror, target)
            outcome = ResyncOutcome.CREATED_AND_DELETED
        elif not mirror_record.is_live:
            outcome = ResyncOutcome.ALREADY_SYNCED
        else:
            replicas.soft_delete(mirror, target)
            outcome = ResyncOutcome.DELETED
    else:
        if mirror_record is None:
            write_mirror_version(replicas, mirror, record.data, target)
            outcome = ResyncOutcome.CREATED
        elif mirror_record.destroyed:
            raise VersionDestroyed(mirror, target)
        elif mirror_record.is_deleted:
            replicas.undelete(mirror, target)
            outcome = ResyncOutcome.UNDELETED
        else:
            outcome = ResyncOutcome.ALREADY_SYNCED

    if outcome.changed:
        logger.info(
            f"Resynced {mirror} version {target}: {outcome.value}",
            extra={"secret_path": path, "version": target},
        )
        if ledger is not None:
            ledger.emit("mirror_resynced", path, version=target, details={"outcome": outcome.value})
    else:
        logger.info(
            f"{mirror} version {target} already in sync",
            extra={"secret_path": path, "version": target},
        )

    return outcome
