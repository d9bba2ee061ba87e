"""
Operation Ledger — Append-only NDJSON record of secret mutations.

Each line is one JSON object (newline-delimited JSON). Events are never
edited, only appended. Entries carry paths, versions and key names,
never secret values.
"""

from __future__ import annotations

import json
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, List, Optional
from uuid import uuid4


class OperationLedger:
    """
    Append-only NDJSON ledger writer.

    Usage:
        ledger = OperationLedger(Path("audit/secrets.ndjson"))
        ledger.emit("secret_created", "common/app/db", version=1)
    """

    def __init__(self, path: Path):
        self.path = Path(path)
        self._write_lock = threading.Lock()
        self._ensure_exists()

    def _ensure_exists(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if not self.path.exists():
            self.path.touch()

    def emit(
        self,
        event_type: str,
        secret_path: str,
        version: Optional[int] = None,
        level: str = "info",
        details: Optional[Dict[str, Any]] = None,
        scope: Optional[str] = None,
    ) -> str:
        """
        Append one event and return its generated event_id.

        Args:
            event_type: secret_created, secret_updated, version_deleted, ...
            secret_path: Full primary path of the secret
            version: Version the event applies to, if any
            level: info, warning or error
            details: Additional event details (never values)
            scope: Scope label (platform/environment)
        """
        event_id = f"E-{uuid4().hex[:8].upper()}"
        now = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")

        entry: Dict[str, Any] = {
            "ts_iso": now,
            "event_id": event_id,
            "level": level,
            "type": event_type,
            "secret_path": secret_path,
        }

        if version is not None:
            entry["version"] = version
        if scope is not None:
            entry["scope"] = scope
        if details is not None:
            entry["details"] = details

        # Lifecycle calls on different paths may emit concurrently
        with self._write_lock, self.path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(entry) + "\n")

        return event_id

    def read_all(self) -> List[Dict[str, Any]]:
        """Return every event, oldest first."""
        with self.path.open("r", encoding="utf-8") as f:
            return [json.loads(line) for line in f if line.strip()]

    def events_for(self, secret_path: str) -> List[Dict[str, Any]]:
        """History of one secret path, oldest first."""
        return [e for e in self.read_all() if e.get("secret_path") == secret_path]
