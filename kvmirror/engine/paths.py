"""
Secret Paths — Mapping between logical, primary and mirror locations.

    primary:  <prefix>/<path>
    mirror:   ci/<prefix>/<path>
"""

from __future__ import annotations

from ..config.models import SecretScope

DEFAULT_MIRROR_PREFIX = "ci"


def primary_path(scope: SecretScope, path: str) -> str:
    """Full path of the real secret for a path relative to the scope prefix."""
    relative = path.strip("/")
    if not relative:
        return scope.secret_prefix
    return f"{scope.secret_prefix}/{relative}"


def mirror_path(path: str, mirror_prefix: str = DEFAULT_MIRROR_PREFIX) -> str:
    return f"{mirror_prefix}/{path.strip('/')}"


def is_mirror_path(path: str, mirror_prefix: str = DEFAULT_MIRROR_PREFIX) -> bool:
    return path.strip("/").startswith(f"{mirror_prefix}/")


def logical_path(path: str, mirror_prefix: str = DEFAULT_MIRROR_PREFIX) -> str:
    """Strip one leading mirror segment, if any."""
    path = path.strip("/")
    if is_mirror_path(path, mirror_prefix):
        return path[len(mirror_prefix) + 1:]
    return path
