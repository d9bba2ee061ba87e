"""
Path Locks — Per-path advisory locks for lifecycle mutations.

Create and Update read the current version and then write version+1.
Holding the path lock for the whole read-modify-write keeps two
mutations of the same path in this process from interleaving. Writers in
other processes are caught by the backend check-and-set guard instead.

A path's lock only lives while some thread holds or waits on it.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class _Entry:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = threading.RLock()
        self.users = 0


class PathLocks:
    """Registry of one lock per secret path currently in use."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, _Entry] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    def __contains__(self, path: str) -> bool:
        with self._guard:
            return path in self._locks

    @contextmanager
    def hold(self, path: str) -> Iterator[None]:
        with self._guard:
            entry = self._locks.get(path)
            if entry is None:
                entry = self._locks[path] = _Entry()
            entry.users += 1

        try:
            with entry.lock:
                yield
        finally:
            with self._guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._locks[path]


# Shared by every lifecycle instance in the process
default_locks = PathLocks()
