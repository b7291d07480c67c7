"""
Durable snapshot storage for the conversation store.

A snapshot is a single JSON object mapping conversation identity to an
ordered list of ``{role, content}`` records. It is read wholesale at startup
and overwritten wholesale on every mutation.
"""

import json
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from copy import deepcopy
from pathlib import Path
from typing import Any

Snapshot = dict[str, list[dict[str, Any]]]


class SnapshotStorage(ABC):
    """Base class for conversation snapshot backends."""

    @abstractmethod
    def load(self) -> Snapshot:
        """Return the stored snapshot, or an empty dict when none exists."""
        pass

    @abstractmethod
    def save(self, snapshot: Snapshot) -> None:
        """Replace the stored snapshot."""
        pass


class InMemoryStorage(SnapshotStorage):
    """Keeps the snapshot in memory. Used for tests and ephemeral runs."""

    def __init__(self, initial: Snapshot | None = None):
        self._snapshot: Snapshot = deepcopy(initial) if initial else {}
        self.save_count = 0

    def load(self) -> Snapshot:
        return deepcopy(self._snapshot)

    def save(self, snapshot: Snapshot) -> None:
        self._snapshot = deepcopy(snapshot)
        self.save_count += 1


class JsonFileStorage(SnapshotStorage):
    """Stores the snapshot as a JSON file.

    Writes go to a temporary file in the target directory which is then
    moved over the old snapshot, so a crash mid-write leaves the previous
    snapshot intact.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path).expanduser()
        self._write_lock = threading.Lock()

    def load(self) -> Snapshot:
        if not self.path.exists():
            return {}

        data = json.loads(self.path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"Snapshot in {self.path} is not a JSON object")
        return data

    def save(self, snapshot: Snapshot) -> None:
        with self._write_lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                dir=self.path.parent,
                prefix=f".{self.path.name}.",
                suffix=".tmp",
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(snapshot, f, ensure_ascii=False, indent=2)
                os.replace(tmp_name, self.path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
