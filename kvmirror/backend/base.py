"""
Replica Base Class — Interface for one KV v2 backend endpoint.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Dict, List, Optional

from ..models.secret import SecretMetadata, SecretVersion


class SecretReplica(ABC):
    """
    Abstract handle on a single versioned key-value endpoint.

    Paths are relative to the KV mount (no ``data/`` or ``metadata/``
    segment). Reads of missing paths or versions return None rather than
    raising; every other failure raises BackendError naming the address.
    """

    @property
    @abstractmethod
    def address(self) -> str:
        """Endpoint address, used in error messages."""
        pass

    @abstractmethod
    def read_version(self, path: str, version: Optional[int] = None) -> Optional[SecretVersion]:
        """
        Read one version (the current one when version is None or 0).

        A soft-deleted version comes back with empty data and
        deletion_time set. None means the version never existed or the
        path is unknown.
        """
        pass

    @abstractmethod
    def read_metadata(self, path: str) -> Optional[SecretMetadata]:
        pass

    @abstractmethod
    def write_version(
        self,
        path: str,
        data: Dict[str, object],
        cas: Optional[int] = None,
    ) -> int:
        """
        Append a new version and return its number.

        With cas set, the write only succeeds if the path's current
        version equals cas (0 for a path that does not exist yet);
        otherwise VersionConflict is raised.
        """
        pass

    @abstractmethod
    def write_metadata(self, path: str, custom_metadata: Dict[str, str]) -> None:
        """Replace the path's custom metadata."""
        pass

    @abstractmethod
    def patch_metadata(self, path: str, custom_metadata: Dict[str, Optional[str]]) -> None:
        """Merge-patch custom metadata; a None value removes the key."""
        pass

    @abstractmethod
    def soft_delete(self, path: str, versions: List[int]) -> None:
        pass

    @abstractmethod
    def undelete(self, path: str, versions: List[int]) -> None:
        pass

    @abstractmethod
    def destroy_metadata(self, path: str) -> None:
        """Permanently remove the path with all its versions."""
        pass

    @abstractmethod
    def list_children(self, path: str) -> Optional[List[str]]:
        """
        List the immediate children of a directory.

        Sub-directories end with "/". None means there is no directory
        at this path.
        """
        pass

    def close(self) -> None:
        """Release connections held by the replica."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.address!r})"
