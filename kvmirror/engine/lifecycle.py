"""
Secret Lifecycle — Versioned mutations of a secret and its mirror.

Every mutation is applied to the real secret and to its value-free
mirror (``ci/<path>``) on every replica of the scope:

1. create: version 1 (or next after a fully deleted history) plus metadata
2. update: merge changes into the latest usable version, write version N+1
3. delete / undelete: soft-delete or restore one version on both trees
4. destroy: soft-delete all versions and schedule permanent destruction

Reads (get, list, diff, metadata, duplicates) only touch the first replica.

## Usage

    from kvmirror.engine.lifecycle import SecretLifecycle

    lifecycle = SecretLifecycle(scope, replicas, prompt=click.confirm)
    record = lifecycle.create("app/db", {"password": "s3cr3t"}, metadata)
    lifecycle.update("app/db", {"user": "admin", "password": None})
"""

from __future__ import annotations

import difflib
import logging
from datetime import timedelta
from typing import Dict, List, Mapping, Optional

import yaml

from ..backend.replicas import ReplicaSet
from ..config.models import SecretScope
from ..errors import (
    BackendError,
    ConfirmationDeclined,
    InvalidMetadata,
    InvalidSecretData,
    MandatoryMetadata,
    MetadataEmpty,
    MetadataKeyExists,
    MetadataKeyNotFound,
    MetadataWriteFailure,
    NotASecretDirectory,
    SameVersionDiff,
    SecretAlreadyExists,
    SecretDataKeyNotFound,
    SecretNotFound,
    SecretPathNotFound,
    VersionInvariantViolation,
)
from ..models.secret import SecretMetadata, SecretVersion
from ..persistence.ledger import OperationLedger
from .clock import Clock, utc_now
from .locks import PathLocks, default_locks
from .mirror_writer import write_mirror_version
from .paths import is_mirror_path, mirror_path, primary_path
from .prompts import ConfirmationPrompt, always_confirm
from .versions import get_latest_version, latest_usable_version

logger = logging.getLogger(__name__)

MANDATORY_METADATA = ("owner", "source", "usage")
DESTROY_NOT_BEFORE_KEY = "destroy_secret_not_before"
DESTROY_DATE_FORMAT = "%Y-%m-%d"


def validate_secret_data(data: Mapping[str, object]) -> None:
    if not data:
        raise InvalidSecretData("secret data cannot be empty")
    for key, value in data.items():
        if not key or value is None or value == "":
            raise InvalidSecretData(f"input cannot contain any empty value (key {key!r})")


def validate_metadata(metadata: Mapping[str, str]) -> None:
    for key in MANDATORY_METADATA:
        if not metadata.get(key):
            raise InvalidMetadata(f"metadata {key} is mandatory")
    for key, value in metadata.items():
        if not key or not value:
            raise InvalidMetadata(f"metadata key and value cannot be empty (key {key!r})")


class SecretLifecycle:
    """
    Lifecycle operations for secrets of one scope.

    Paths passed to public methods are relative to the scope prefix.
    """

    def __init__(
        self,
        scope: SecretScope,
        replicas: ReplicaSet,
        prompt: Optional[ConfirmationPrompt] = None,
        clock: Optional[Clock] = None,
        ledger: Optional[OperationLedger] = None,
        locks: Optional[PathLocks] = None,
    ):
        self.scope = scope
        self.replicas = replicas
        self.prompt = prompt or always_confirm
        self.clock = clock or utc_now
        self.ledger = ledger
        self.locks = locks or default_locks

    # ─── Helpers ────────────────────────────────────────────

    def path_of(self, path: str) -> str:
        return primary_path(self.scope, path)

    def mirror_of(self, full_path: str) -> str:
        return mirror_path(full_path, self.scope.mirror_prefix)

    def _describe(self, path: str) -> str:
        return f"[{self.scope.label},path:{path.strip('/')}]"

    def _confirm(self, message: str, skip: bool = False) -> None:
        if skip:
            return
        if not self.prompt(message):
            raise ConfirmationDeclined()

    def _record(self, event_type: str, full_path: str, version: Optional[int] = None, **details) -> None:
        if self.ledger is None:
            return
        self.ledger.emit(
            event_type,
            full_path,
            version=version,
            details=details or None,
            scope=self.scope.label,
        )

    def _require_metadata(self, full_path: str) -> SecretMetadata:
        metadata = self.replicas.read_metadata(full_path)
        if metadata is None:
            raise SecretNotFound(full_path)
        return metadata

    def _delete_both(self, full_path: str, version: int) -> None:
        self.replicas.soft_delete(full_path, version)
        self.replicas.soft_delete(self.mirror_of(full_path), version)

    def _require_mirror_at(self, mirror: str, position: int) -> None:
        """The mirror must sit at the same version as the secret before a write."""
        metadata = self.replicas.read_metadata(mirror)
        current = metadata.current_version if metadata is not None else 0
        if current != position:
            raise VersionInvariantViolation(mirror, current, position)

    # ─── Reads ──────────────────────────────────────────────

    def get(
        self,
        path: str,
        version: Optional[int] = None,
        key_filter: Optional[str] = None,
    ) -> SecretVersion:
        """
        Read one version (latest usable one when version is None).

        key_filter keeps only data keys containing the given substring.
        """
        full = self.path_of(path)
        if not version:
            version = get_latest_version(self.replicas, full)
            if version is None:
                raise SecretNotFound(full)

        record = self.replicas.read_version(full, version)
        if record is None:
            raise SecretNotFound(full, version)

        if key_filter:
            matched = {k: v for k, v in record.data.items() if key_filter in k}
            if not matched:
                raise SecretDataKeyNotFound(key_filter, full)
            record = record.model_copy(update={"data": matched})

        return record

    def get_metadata(self, path: str) -> SecretMetadata:
        return self._require_metadata(self.path_of(path))

    def list_secrets(self, path: str = "") -> List[str]:
        """List the direct children of a directory (sub-directories end with '/')."""
        full = self.path_of(path)
        children = self.replicas.list_children(full)
        if children is not None:
            return sorted(children)

        if self.replicas.read_metadata(full) is not None:
            raise NotASecretDirectory(full)
        raise SecretPathNotFound(full)

    def diff(self, path: str, base_version: int, diff_version: Optional[int] = None) -> str:
        """Unified diff between two versions rendered as YAML (latest when diff_version is None)."""
        if diff_version is not None and base_version == diff_version:
            raise SameVersionDiff(base_version)

        full = self.path_of(path)
        base = self.replicas.read_version(full, base_version)
        if base is None:
            raise SecretNotFound(full, base_version)
        other = self.replicas.read_version(full, diff_version)
        if other is None:
            raise SecretNotFound(full, diff_version)
        if base.version == other.version:
            raise SameVersionDiff(base.version)

        before = yaml.safe_dump(base.data, default_flow_style=False, sort_keys=True)
        after = yaml.safe_dump(other.data, default_flow_style=False, sort_keys=True)
        lines = difflib.unified_diff(
            before.splitlines(keepends=True),
            after.splitlines(keepends=True),
            fromfile=f"version {base.version}",
            tofile=f"version {other.version}",
        )
        return "".join(lines)

    def find_duplicates(self, value: str, root: str = "") -> Dict[str, List[str]]:
        """Map of secret path -> data keys whose latest usable value equals value."""
        if not value:
            raise InvalidSecretData("value to search cannot be empty")

        matches: Dict[str, List[str]] = {}
        for full in self.replicas.walk(self.path_of(root)):
            if is_mirror_path(full, self.scope.mirror_prefix):
                continue
            latest = get_latest_version(self.replicas, full)
            if latest is None:
                continue
            record = self.replicas.read_version(full, latest)
            if record is None:
                continue
            keys = sorted(k for k, v in record.data.items() if v == value)
            if keys:
                matches[full] = keys

        logger.info(f"Found value in {len(matches)} secret(s) below {self.path_of(root)}")
        return matches

    # ─── Mutations ──────────────────────────────────────────

    def create(
        self,
        path: str,
        data: Dict[str, object],
        metadata: Dict[str, str],
    ) -> SecretVersion:
        """
        Create a secret with its mirror and custom metadata.

        A path whose every version is deleted or destroyed can be created
        again; the new version continues the existing numbering.
        """
        validate_secret_data(data)
        validate_metadata(metadata)

        full = self.path_of(path)
        mirror = self.mirror_of(full)

        with self.locks.hold(full):
            existing = self.replicas.read_metadata(full)
            if existing is not None and latest_usable_version(existing) is not None:
                raise SecretAlreadyExists(full)
            current = existing.current_version if existing is not None else 0
            self._require_mirror_at(mirror, current)

            version = self.replicas.write_version(full, dict(data), cas=current)
            write_mirror_version(self.replicas, mirror, data, version)

            try:
                self.replicas.write_metadata(full, dict(metadata))
            except BackendError as e:
                raise MetadataWriteFailure(
                    f"secret is created but metadata could not be added: {e.message}",
                    path=full,
                ) from e

        logger.info(
            f"Created {full} at version {version}",
            extra={"secret_path": full, "version": version},
        )
        self._record("secret_created", full, version, keys=sorted(data))
        return SecretVersion(version=version, data=dict(data), custom_metadata=dict(metadata))

    def update(self, path: str, changes: Mapping[str, Optional[object]]) -> SecretVersion:
        """
        Merge changes into the latest usable version and write the result.

        A None value removes the key. The mirror receives the merged key set.
        """
        if not changes:
            raise InvalidSecretData("no change requested")
        for key, value in changes.items():
            if not key or value == "":
                raise InvalidSecretData(f"input cannot contain any empty value (key {key!r})")

        full = self.path_of(path)
        mirror = self.mirror_of(full)

        with self.locks.hold(full):
            metadata = self._require_metadata(full)
            latest = latest_usable_version(metadata)
            if latest is None:
                raise SecretNotFound(full)

            current = self.replicas.read_version(full, latest)
            if current is None:
                raise SecretNotFound(full, latest)
            self._require_mirror_at(mirror, metadata.current_version)

            merged = dict(current.data)
            for key, value in changes.items():
                if value is None:
                    merged.pop(key, None)
                else:
                    merged[key] = value
            if not merged:
                raise InvalidSecretData("update would leave the secret without any key")

            version = self.replicas.write_version(full, merged, cas=metadata.current_version)
            write_mirror_version(self.replicas, mirror, merged, version)

        removed = sorted(k for k, v in changes.items() if v is None)
        logger.info(
            f"Updated {full} from version {latest} to {version}",
            extra={"secret_path": full, "version": version},
        )
        self._record(
            "secret_updated",
            full,
            version,
            base_version=latest,
            changed=sorted(k for k, v in changes.items() if v is not None),
            removed=removed,
        )
        return SecretVersion(
            version=version,
            data=merged,
            custom_metadata=metadata.custom_metadata,
        )

    def delete(
        self,
        path: str,
        version: Optional[int] = None,
        skip_confirm: bool = False,
    ) -> Optional[int]:
        """
        Soft-delete one version (the latest usable one by default).

        Returns the deleted version, or None when nothing was left to delete.
        Deleting an already deleted version is a no-op on the backend.
        """
        full = self.path_of(path)
        target = version if version and version > 0 else get_latest_version(self.replicas, full)
        if target is None:
            logger.info(f"No usable version left to delete for {full}", extra={"secret_path": full})
            return None

        self._confirm(
            f"You are about to delete the version {target} of secret {self._describe(path)}. "
            "Do you want to confirm this action?",
            skip_confirm,
        )

        with self.locks.hold(full):
            self._delete_both(full, target)

        logger.info(f"Deleted version {target} of {full}", extra={"secret_path": full, "version": target})
        self._record("version_deleted", full, target)
        return target

    def undelete(self, path: str, version: int, skip_confirm: bool = False) -> int:
        """Restore a soft-deleted version on both trees."""
        if not version or version < 1:
            raise InvalidSecretData("a version to undelete is required")

        full = self.path_of(path)
        self._confirm(
            f"You are about to undelete the version {version} of secret {self._describe(path)}. "
            "Do you want to confirm this action?",
            skip_confirm,
        )

        with self.locks.hold(full):
            self.replicas.undelete(full, version)
            self.replicas.undelete(self.mirror_of(full), version)

        logger.info(f"Undeleted version {version} of {full}", extra={"secret_path": full, "version": version})
        self._record("version_undeleted", full, version)
        return version

    def destroy(self, path: str) -> str:
        """
        Soft-delete every version newer than the oldest and schedule the
        secret for permanent destruction.

        Asks twice; there is no way to skip the confirmation. Returns the
        destroy-not-before date (YYYY-MM-DD).
        """
        full = self.path_of(path)
        not_before = (self.clock() + timedelta(days=self.scope.destroy_delay_days)).strftime(
            DESTROY_DATE_FORMAT
        )

        self._confirm(
            f"You are about to mark the secret {self._describe(path)} to be destroyed "
            f"on {not_before}. All versions will be deleted. This is a destructive action. "
            "Do you want to confirm this action?"
        )
        self._confirm("Are you really sure of what you are doing?")

        with self.locks.hold(full):
            metadata = self._require_metadata(full)
            deleted = list(range(metadata.current_version, metadata.oldest_version, -1))
            for version in deleted:
                self._delete_both(full, version)
            self.replicas.patch_metadata(full, {DESTROY_NOT_BEFORE_KEY: not_before})

        logger.info(
            f"Marked {full} for destruction on {not_before} ({len(deleted)} version(s) deleted)",
            extra={"secret_path": full},
        )
        self._record("secret_marked_for_destruction", full, not_before=not_before, deleted=deleted)
        return not_before

    # ─── Custom metadata ────────────────────────────────────

    def create_metadata_key(self, path: str, key: str, value: str) -> None:
        if not key or not value:
            raise InvalidMetadata("metadata key and value cannot be empty")

        full = self.path_of(path)
        metadata = self._require_metadata(full)
        if not metadata.custom_metadata:
            raise MetadataEmpty(full)
        if key in metadata.custom_metadata:
            raise MetadataKeyExists(key, full)

        self.replicas.patch_metadata(full, {key: value})
        logger.info(f"Added metadata {key} to {full}", extra={"secret_path": full})
        self._record("metadata_changed", full, action="create", key=key)

    def update_metadata_key(self, path: str, key: str, value: str) -> None:
        if not key or not value:
            raise InvalidMetadata("metadata key and value cannot be empty")

        full = self.path_of(path)
        metadata = self._require_metadata(full)
        if key not in metadata.custom_metadata:
            raise MetadataKeyNotFound(key, full)

        self.replicas.patch_metadata(full, {key: value})
        logger.info(f"Updated metadata {key} of {full}", extra={"secret_path": full})
        self._record("metadata_changed", full, action="update", key=key)

    def delete_metadata_key(self, path: str, key: str, skip_confirm: bool = False) -> None:
        if not key:
            raise InvalidMetadata("metadata key cannot be empty")
        if key in MANDATORY_METADATA:
            raise MandatoryMetadata(key)

        full = self.path_of(path)
        metadata = self._require_metadata(full)
        if not metadata.custom_metadata:
            raise MetadataEmpty(full)
        if key not in metadata.custom_metadata:
            raise MetadataKeyNotFound(key, full)

        self._confirm(
            f"You are about to delete the metadata {key} of secret {self._describe(path)}. "
            "Do you want to confirm this action?",
            skip_confirm,
        )

        self.replicas.patch_metadata(full, {key: None})
        logger.info(f"Deleted metadata {key} of {full}", extra={"secret_path": full})
        self._record("metadata_changed", full, action="delete", key=key)
