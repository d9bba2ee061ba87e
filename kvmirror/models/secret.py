"""
Secret Models — Pydantic schemas for KV v2 records.

These mirror the shapes a KV v2 backend returns:
- SecretMetadata: per-path version history and custom metadata
- SecretVersion: one version's data plus its deletion state

Version maps are keyed by int; the backend's string keys ("1", "2")
are coerced on validation.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class VersionInfo(BaseModel):
    """Deletion state of a single version, as listed in metadata."""

    created_time: Optional[str] = None
    deletion_time: str = ""
    destroyed: bool = False

    @field_validator("deletion_time", mode="before")
    @classmethod
    def _none_means_not_deleted(cls, value: Any) -> str:
        return value or ""

    @property
    def is_deleted(self) -> bool:
        return bool(self.deletion_time)

    @property
    def is_live(self) -> bool:
        """Readable by default: neither soft-deleted nor destroyed."""
        return not self.is_deleted and not self.destroyed


class SecretMetadata(BaseModel):
    """Metadata record of one path."""

    current_version: int = 0
    oldest_version: int = 0
    versions: Dict[int, VersionInfo] = Field(default_factory=dict)
    custom_metadata: Dict[str, str] = Field(default_factory=dict)
    created_time: Optional[str] = None
    updated_time: Optional[str] = None

    @field_validator("custom_metadata", "versions", mode="before")
    @classmethod
    def _null_is_empty(cls, value: Any) -> Any:
        return value or {}

    def version_info(self, version: int) -> Optional[VersionInfo]:
        return self.versions.get(version)

    def deletion_flags(self) -> Dict[int, bool]:
        """Version number -> soft-deleted, in ascending version order."""
        return {v: self.versions[v].is_deleted for v in sorted(self.versions)}


class SecretVersion(BaseModel):
    """One version of a secret, as returned by a versioned read."""

    version: int
    data: Dict[str, Any] = Field(default_factory=dict)
    created_time: Optional[str] = None
    deletion_time: str = ""
    destroyed: bool = False
    custom_metadata: Dict[str, str] = Field(default_factory=dict)

    @field_validator("data", "custom_metadata", mode="before")
    @classmethod
    def _null_is_empty(cls, value: Any) -> Any:
        return value or {}

    @field_validator("deletion_time", mode="before")
    @classmethod
    def _none_means_not_deleted(cls, value: Any) -> str:
        return value or ""

    @property
    def is_deleted(self) -> bool:
        return bool(self.deletion_time)

    @property
    def is_live(self) -> bool:
        return not self.is_deleted and not self.destroyed

    def keys(self) -> List[str]:
        return sorted(self.data)


class DriftInfo(BaseModel):
    """
    What the auditor saw for one logical path.

    A version of -1 means the tree has no metadata for the path at all.
    """

    secret_version: int = -1
    secret_versions: Dict[int, VersionInfo] = Field(default_factory=dict)
    mirror_version: int = -1
    mirror_versions: Dict[int, VersionInfo] = Field(default_factory=dict)
    error: Optional[str] = None

    def secret_deletions(self) -> Dict[int, bool]:
        """Version -> unreadable (soft-deleted or destroyed)."""
        return {v: not self.secret_versions[v].is_live for v in sorted(self.secret_versions)}

    def mirror_deletions(self) -> Dict[int, bool]:
        return {v: not self.mirror_versions[v].is_live for v in sorted(self.mirror_versions)}


class ResyncOutcome(str, Enum):
    """Terminal result of a single-version mirror repair."""

    ALREADY_SYNCED = "already_synced"
    DELETED = "deleted"
    CREATED_AND_DELETED = "created_and_deleted"
    UNDELETED = "undeleted"
    CREATED = "created"

    @property
    def changed(self) -> bool:
        return self is not ResyncOutcome.ALREADY_SYNCED


class SweepReport(BaseModel):
    """Result of one retention sweep over a scope."""

    dry_run: bool = True
    candidates: List[str] = Field(default_factory=list)
    destroyed: List[str] = Field(default_factory=list)
    errors: Dict[str, str] = Field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors
