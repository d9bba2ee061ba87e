"""
Memory Replica — In-process KV v2 backend.

Implements the same versioning rules as the HTTP backend (check-and-set,
soft delete, undelete, permanent destroy, merge-patch of custom metadata)
without a server. Used by the test-suite and for local dry runs.

Every mutating call is appended to ``mutations`` so callers can assert
that a code path did not write.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Dict, List, Optional, Tuple

from ..errors import BackendError, VersionConflict
from ..models.secret import SecretMetadata, SecretVersion, VersionInfo
from .base import SecretReplica

logger = logging.getLogger(__name__)


@dataclass
class _StoredVersion:
    data: Dict[str, object]
    created_time: str
    deletion_time: str = ""
    destroyed: bool = False


@dataclass
class _StoredSecret:
    current_version: int = 0
    versions: Dict[int, _StoredVersion] = field(default_factory=dict)
    custom_metadata: Dict[str, str] = field(default_factory=dict)
    created_time: str = ""
    updated_time: str = ""

    @property
    def oldest_version(self) -> int:
        return min(self.versions) if self.versions else 0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class MemoryReplica(SecretReplica):
    """Dictionary-backed replica."""

    def __init__(self, address: str = "memory://primary", clock: Optional[Callable[[], datetime]] = None):
        self._address = address
        self._clock = clock or _utcnow
        self._secrets: Dict[str, _StoredSecret] = {}
        self.mutations: List[Tuple[str, str]] = []

    @property
    def address(self) -> str:
        return self._address

    def _now_iso(self) -> str:
        return self._clock().isoformat().replace("+00:00", "Z")

    @staticmethod
    def _norm(path: str) -> str:
        return path.strip("/")

    # ─── Reads ──────────────────────────────────────────────

    def read_version(self, path: str, version: Optional[int] = None) -> Optional[SecretVersion]:
        entry = self._secrets.get(self._norm(path))
        if entry is None:
            return None

        number = version or entry.current_version
        stored = entry.versions.get(number)
        if stored is None:
            return None

        hidden = bool(stored.deletion_time) or stored.destroyed
        return SecretVersion(
            version=number,
            data={} if hidden else copy.deepcopy(stored.data),
            created_time=stored.created_time,
            deletion_time=stored.deletion_time,
            destroyed=stored.destroyed,
            custom_metadata=dict(entry.custom_metadata),
        )

    def read_metadata(self, path: str) -> Optional[SecretMetadata]:
        entry = self._secrets.get(self._norm(path))
        if entry is None:
            return None

        return SecretMetadata(
            current_version=entry.current_version,
            oldest_version=entry.oldest_version,
            versions={
                number: VersionInfo(
                    created_time=stored.created_time,
                    deletion_time=stored.deletion_time,
                    destroyed=stored.destroyed,
                )
                for number, stored in entry.versions.items()
            },
            custom_metadata=dict(entry.custom_metadata),
            created_time=entry.created_time,
            updated_time=entry.updated_time,
        )

    def list_children(self, path: str) -> Optional[List[str]]:
        base = self._norm(path)
        prefix = f"{base}/" if base else ""

        children = set()
        for key in self._secrets:
            if not key.startswith(prefix):
                continue
            head, sep, _ = key[len(prefix):].partition("/")
            children.add(head + sep)

        return sorted(children) or None

    # ─── Writes ─────────────────────────────────────────────

    def write_version(
        self,
        path: str,
        data: Dict[str, object],
        cas: Optional[int] = None,
    ) -> int:
        key = self._norm(path)
        entry = self._secrets.get(key)
        current = entry.current_version if entry else 0

        if cas is not None and cas != current:
            raise VersionConflict(key, cas, self.address)

        now = self._now_iso()
        if entry is None:
            entry = _StoredSecret(created_time=now)
            self._secrets[key] = entry

        entry.current_version = current + 1
        entry.versions[entry.current_version] = _StoredVersion(
            data=copy.deepcopy(data),
            created_time=now,
        )
        entry.updated_time = now
        self.mutations.append(("write_version", key))
        return entry.current_version

    def write_metadata(self, path: str, custom_metadata: Dict[str, str]) -> None:
        key = self._norm(path)
        now = self._now_iso()
        entry = self._secrets.setdefault(key, _StoredSecret(created_time=now))
        entry.custom_metadata = dict(custom_metadata)
        entry.updated_time = now
        self.mutations.append(("write_metadata", key))

    def patch_metadata(self, path: str, custom_metadata: Dict[str, Optional[str]]) -> None:
        key = self._norm(path)
        entry = self._secrets.get(key)
        if entry is None:
            raise BackendError(
                f"error while patching metadata of {key} on {self.address}: not found",
                address=self.address,
                path=key,
            )

        for name, value in custom_metadata.items():
            if value is None:
                entry.custom_metadata.pop(name, None)
            else:
                entry.custom_metadata[name] = value
        entry.updated_time = self._now_iso()
        self.mutations.append(("patch_metadata", key))

    def soft_delete(self, path: str, versions: List[int]) -> None:
        key = self._norm(path)
        entry = self._secrets.get(key)
        self.mutations.append(("soft_delete", key))
        if entry is None:
            return

        now = self._now_iso()
        for number in versions:
            stored = entry.versions.get(number)
            if stored is None or stored.destroyed or stored.deletion_time:
                continue
            stored.deletion_time = now

    def undelete(self, path: str, versions: List[int]) -> None:
        key = self._norm(path)
        entry = self._secrets.get(key)
        self.mutations.append(("undelete", key))
        if entry is None:
            return

        for number in versions:
            stored = entry.versions.get(number)
            if stored is None or stored.destroyed:
                continue
            stored.deletion_time = ""

    def destroy_metadata(self, path: str) -> None:
        key = self._norm(path)
        self._secrets.pop(key, None)
        self.mutations.append(("destroy_metadata", key))

    def destroy_versions(self, path: str, versions: List[int]) -> None:
        """Permanently wipe single versions, as KV v2's destroy endpoint does."""
        key = self._norm(path)
        entry = self._secrets.get(key)
        self.mutations.append(("destroy_versions", key))
        if entry is None:
            return

        for number in versions:
            stored = entry.versions.get(number)
            if stored is not None:
                stored.data = {}
                stored.destroyed = True
