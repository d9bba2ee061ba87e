"""
Config Models — Pydantic schemas for secret.yml.

    mount: kv
    mirror_prefix: ci
    destroy_delay_days: 8
    parent_namespace: platform
    clusters:
      primary: {endpoint: https://vault-a:8200}
    platforms:
      common: {clusters: [primary]}
      dev:
        clusters: [primary]
        environments: {de: dev-aws-de-fra-1}
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field

COMMON = "common"


class ClusterConfig(BaseModel):
    """One backend replica."""

    endpoint: str


class PlatformConfig(BaseModel):
    """A platform: the replicas it writes to and its environment prefixes."""

    clusters: List[str] = Field(default_factory=list)
    environments: Dict[str, str] = Field(default_factory=dict)
    namespace: Optional[str] = None


class KVMirrorConfig(BaseModel):
    """The secret.yml schema."""

    mount: str = "kv"
    mirror_prefix: str = "ci"
    destroy_delay_days: int = 8
    parent_namespace: Optional[str] = None
    ledger_file: Optional[Path] = None
    clusters: Dict[str, ClusterConfig] = Field(default_factory=dict)
    platforms: Dict[str, PlatformConfig] = Field(default_factory=dict)

    def platform_names(self) -> List[str]:
        return sorted(self.platforms)


@dataclass(frozen=True)
class SecretScope:
    """
    Everything an operation needs to know about where secrets live.

    Built once per command by resolve_scope() and passed explicitly to
    every engine call.
    """

    platform: str
    environment: str
    secret_prefix: str
    endpoints: Tuple[str, ...]
    namespace: Optional[str] = None
    mount: str = "kv"
    mirror_prefix: str = "ci"
    destroy_delay_days: int = 8

    @property
    def label(self) -> str:
        """Human-readable scope, as shown in confirmation prompts."""
        if self.platform == COMMON:
            return f"platform:{COMMON}"
        return f"platform:{self.platform},environment:{self.environment or COMMON}"
