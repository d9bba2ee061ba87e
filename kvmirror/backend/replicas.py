"""
Replica Set — Fan-out of writes over equivalent backend endpoints.

Reads go to the first replica only. Writes are applied to every replica
in configuration order and stop at the first failure. Replicas already
written are NOT rolled back: the engine accepts that a partial write
leaves replicas apart, and check-sync / resync are the recovery path.
"""

from __future__ import annotations

import logging
import os
from typing import Callable, Dict, List, Optional, Sequence, TypeVar

from ..config.models import SecretScope
from ..errors import BackendError, BackendWriteFailure, ConfigurationError
from ..models.secret import SecretMetadata, SecretVersion
from .base import SecretReplica
from .vault import VaultReplica

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ReplicaSet:
    """Ordered list of replicas that must all observe the same writes."""

    def __init__(self, replicas: Sequence[SecretReplica]):
        if not replicas:
            raise ConfigurationError("at least one backend replica is required")
        self.replicas: List[SecretReplica] = list(replicas)

    @property
    def primary(self) -> SecretReplica:
        return self.replicas[0]

    @property
    def addresses(self) -> List[str]:
        return [r.address for r in self.replicas]

    def close(self) -> None:
        for replica in self.replicas:
            replica.close()

    def __enter__(self) -> "ReplicaSet":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ─── Reads (first replica) ──────────────────────────────

    def read_version(self, path: str, version: Optional[int] = None) -> Optional[SecretVersion]:
        return self.primary.read_version(path, version)

    def read_metadata(self, path: str) -> Optional[SecretMetadata]:
        return self.primary.read_metadata(path)

    def list_children(self, path: str) -> Optional[List[str]]:
        return self.primary.list_children(path)

    def walk(self, root: str = "") -> List[str]:
        """Recursively list every secret path below root."""
        base = root.strip("/")
        children = self.list_children(base)
        if not children:
            return []

        result: List[str] = []
        for child in children:
            full = f"{base}/{child}" if base else child
            if child.endswith("/"):
                result.extend(self.walk(full))
            else:
                result.append(full)
        return result

    # ─── Writes (all replicas) ──────────────────────────────

    def _fan_out(self, action: str, path: str, call: Callable[[SecretReplica], T]) -> List[T]:
        results: List[T] = []
        for replica in self.replicas:
            try:
                results.append(call(replica))
            except BackendWriteFailure:
                raise
            except BackendError as e:
                raise BackendWriteFailure(e.message, address=replica.address, path=path) from e
            logger.debug(
                f"{action} {path} on {replica.address}",
                extra={"secret_path": path, "replica": replica.address},
            )
        return results

    def write_version(
        self,
        path: str,
        data: Dict[str, object],
        cas: Optional[int] = None,
    ) -> int:
        versions = self._fan_out(
            "wrote", path, lambda r: r.write_version(path, data, cas=cas)
        )
        if len(set(versions)) > 1:
            logger.warning(
                f"Replicas assigned different versions to {path}: "
                + ", ".join(f"{a}={v}" for a, v in zip(self.addresses, versions)),
                extra={"secret_path": path},
            )
        return versions[0]

    def write_metadata(self, path: str, custom_metadata: Dict[str, str]) -> None:
        self._fan_out("wrote metadata of", path, lambda r: r.write_metadata(path, custom_metadata))

    def patch_metadata(self, path: str, custom_metadata: Dict[str, Optional[str]]) -> None:
        self._fan_out("patched metadata of", path, lambda r: r.patch_metadata(path, custom_metadata))

    def soft_delete(self, path: str, version: int) -> None:
        self._fan_out("deleted", path, lambda r: r.soft_delete(path, [version]))

    def undelete(self, path: str, version: int) -> None:
        self._fan_out("undeleted", path, lambda r: r.undelete(path, [version]))

    def destroy_metadata(self, path: str) -> None:
        self._fan_out("destroyed", path, lambda r: r.destroy_metadata(path))


def build_replicas(
    scope: SecretScope,
    token: Optional[str] = None,
    timeout: Optional[float] = None,
) -> ReplicaSet:
    """
    Create Vault replicas for every endpoint of a scope.

    Token defaults to VAULT_TOKEN, timeout to VAULT_TIMEOUT_SECONDS (10s).
    """
    token = token or os.environ.get("VAULT_TOKEN")
    if timeout is None:
        timeout = float(os.environ.get("VAULT_TIMEOUT_SECONDS", "10"))

    if not token:
        logger.warning("VAULT_TOKEN is not set, requests will be unauthenticated")

    return ReplicaSet([
        VaultReplica(
            endpoint,
            token=token,
            namespace=scope.namespace,
            mount=scope.mount,
            timeout=timeout,
        )
        for endpoint in scope.endpoints
    ])
