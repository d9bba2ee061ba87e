"""
Shared fixtures for engine and CLI tests.

Two in-memory replicas behind one ReplicaSet, a pinned clock and a
recording confirmation prompt, so every lifecycle operation can run
without a Vault server.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Dict, List

import pytest

from kvmirror.backend.memory import MemoryReplica
from kvmirror.backend.replicas import ReplicaSet
from kvmirror.config.models import SecretScope
from kvmirror.engine.clock import fixed_clock
from kvmirror.engine.lifecycle import SecretLifecycle
from kvmirror.engine.locks import PathLocks

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)

METADATA = {"owner": "payments", "source": "vendor", "usage": "api"}


class RecordingPrompt:
    """Confirmation prompt that records messages and returns fixed answers."""

    def __init__(self, *answers: bool):
        self.answers: List[bool] = list(answers)
        self.messages: List[str] = []

    def __call__(self, message: str) -> bool:
        self.messages.append(message)
        if not self.answers:
            return True
        return self.answers.pop(0)


def seed(replicas: ReplicaSet, path: str, *payloads: Dict[str, object]) -> int:
    """Write successive versions directly, bypassing the lifecycle."""
    version = 0
    for payload in payloads:
        version = replicas.write_version(path, dict(payload))
    return version


@pytest.fixture
def clock():
    return fixed_clock(NOW)


@pytest.fixture
def scope() -> SecretScope:
    return SecretScope(
        platform="common",
        environment="",
        secret_prefix="common",
        endpoints=("memory://a", "memory://b"),
    )


@pytest.fixture
def primary(clock) -> MemoryReplica:
    return MemoryReplica("memory://a", clock=clock)


@pytest.fixture
def secondary(clock) -> MemoryReplica:
    return MemoryReplica("memory://b", clock=clock)


@pytest.fixture
def replicas(primary, secondary) -> ReplicaSet:
    return ReplicaSet([primary, secondary])


@pytest.fixture
def prompt() -> RecordingPrompt:
    return RecordingPrompt()


@pytest.fixture
def lifecycle(scope, replicas, prompt, clock) -> SecretLifecycle:
    return SecretLifecycle(scope, replicas, prompt=prompt, clock=clock, locks=PathLocks())
