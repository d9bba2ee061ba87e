"""
Backend — KV v2 replica handles.

A ReplicaSet groups equivalent replicas: reads hit the first one, writes
go to all of them in order.
"""

from .base import SecretReplica
from .memory import MemoryReplica
from .replicas import ReplicaSet, build_replicas
from .vault import VaultReplica

__all__ = [
    "MemoryReplica",
    "ReplicaSet",
    "SecretReplica",
    "VaultReplica",
    "build_replicas",
]
