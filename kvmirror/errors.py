"""
Errors — Exception taxonomy for the secret engine.

All engine failures derive from KVMirrorError so the CLI can surface
them verbatim. Backend failures always name the replica address.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class KVMirrorError(Exception):
    """Base class for every engine error."""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.path = path
        self.details = details or {}
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        if self.path:
            return f"{self.message} ({self.path})"
        return self.message


# --- Lookup ---


class SecretNotFound(KVMirrorError):
    """The secret (or the requested version) does not exist."""

    def __init__(self, path: Optional[str] = None, version: Optional[int] = None):
        message = "secret does not exist"
        if version:
            message = f"secret version {version} does not exist"
        super().__init__(message, path=path, details={"version": version})


class SecretPathNotFound(KVMirrorError):
    """Nothing is stored at or below the given path."""

    def __init__(self, path: Optional[str] = None):
        super().__init__("secret path does not exist", path=path)


class NotASecretDirectory(KVMirrorError):
    """A list was requested on a secret instead of a directory."""

    def __init__(self, path: Optional[str] = None):
        super().__init__("can't list a secret, you must provide a path", path=path)


class SecretDataKeyNotFound(KVMirrorError):
    """No data key matched the requested filter."""

    def __init__(self, key_filter: str, path: Optional[str] = None):
        super().__init__(f"secret data key not found: {key_filter}", path=path)


# --- Input / preconditions ---


class SecretAlreadyExists(KVMirrorError):
    """Create was called on a path that already resolves to a version."""

    def __init__(self, path: Optional[str] = None):
        super().__init__("secret already exists", path=path)


class InvalidSecretData(KVMirrorError):
    """Secret payload is empty or carries empty values."""


class InvalidMetadata(KVMirrorError):
    """Custom metadata is missing a mandatory field or has an empty key/value."""


class InvalidJWTSecret(KVMirrorError):
    """A JWT signing key is too short or not hexadecimal."""

    def __init__(self) -> None:
        super().__init__("secret is invalid for HMAC-SHA256")


class InvalidJSONSecretData(KVMirrorError):
    """A secret value that should hold a JSON config does not parse."""


class OwnerMismatch(KVMirrorError):
    def __init__(self, path: Optional[str] = None):
        super().__init__("owner mismatch while updating secret", path=path)


class MandatoryMetadata(KVMirrorError):
    """A mandatory metadata key cannot be deleted."""

    def __init__(self, key: str):
        super().__init__(f"metadata {key} is mandatory and can't be deleted")


class MetadataEmpty(KVMirrorError):
    """The secret carries no custom metadata at all."""

    def __init__(self, path: Optional[str] = None):
        super().__init__("secret's metadata are empty, this should be impossible", path=path)


class MetadataKeyExists(KVMirrorError):
    def __init__(self, key: str, path: Optional[str] = None):
        super().__init__(f"metadata {key} already exists", path=path)


class MetadataKeyNotFound(KVMirrorError):
    def __init__(self, key: str, path: Optional[str] = None):
        super().__init__(
            f"metadata {key} not found, create the metadata before updating it",
            path=path,
        )


class MetadataWriteFailure(KVMirrorError):
    """Secret data was written but its custom metadata could not be."""


class SameVersionDiff(KVMirrorError):
    def __init__(self, version: int):
        super().__init__(f"no need to compare version {version} with itself")


class ConfirmationDeclined(KVMirrorError):
    """The operator did not confirm a mutating action."""

    def __init__(self) -> None:
        super().__init__("action not confirmed by user")


# --- Versioning ---


class VersionInvariantViolation(KVMirrorError):
    """
    The mirror is not exactly one version behind the version being rebuilt.

    Single-version repair cannot fix this; an operator has to look at the
    mirror history first.
    """

    def __init__(self, path: str, found: int, expected: int):
        self.found = found
        self.expected = expected
        super().__init__(
            f"unexpected version {found} for CI secret, expected: {expected}",
            path=path,
            details={"found": found, "expected": expected},
        )


class VersionDestroyed(KVMirrorError):
    """A mirror version was destroyed and cannot be restored to match a live secret."""

    def __init__(self, path: str, version: int):
        self.version = version
        super().__init__(
            f"CI secret version {version} is destroyed and cannot be undeleted",
            path=path,
            details={"version": version},
        )


class VersionConflict(KVMirrorError):
    """A check-and-set guarded write was rejected by the backend."""

    def __init__(self, path: str, expected: Optional[int], address: Optional[str] = None):
        self.expected = expected
        self.address = address
        where = f" on {address}" if address else ""
        super().__init__(
            f"concurrent write detected{where}: current version is no longer {expected}",
            path=path,
            details={"expected": expected, "replica": address},
        )


# --- Backend ---


class BackendError(KVMirrorError):
    """A replica call failed. The message names the replica address."""

    def __init__(self, message: str, address: Optional[str] = None, path: Optional[str] = None):
        self.address = address
        super().__init__(message, path=None, details={"replica": address, "path": path})


class BackendWriteFailure(BackendError):
    """A write to one of the replicas failed; earlier replicas are not rolled back."""


# --- Aggregates ---


class SecretsNotSynced(KVMirrorError):
    def __init__(self, count: int):
        super().__init__(
            f"{count} secret(s) are not synced with their ci counterpart",
            details={"count": count},
        )


class SweepFailed(KVMirrorError):
    """One or more paths could not be processed by the retention sweep."""

    def __init__(self, errors: Dict[str, str]):
        self.errors = errors
        super().__init__(
            f"retention sweep failed for {len(errors)} path(s)",
            details={"errors": errors},
        )


class ConfigurationError(KVMirrorError):
    """Configuration is missing or invalid."""
