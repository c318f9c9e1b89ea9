"""Key/value persistence handles for the consumable ledger.

Two implementations of the same get/set-by-key interface:
- InMemoryKeyValueStore: dictionary-backed, for tests and ephemeral runs
- JsonFileKeyValueStore: JSON file on disk, survives process restarts
"""

import json
import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, List, Optional, Union


class KeyValueStore(ABC):
    """Integer settings store addressed by string keys."""

    @abstractmethod
    def get_int(self, key: str) -> int:
        """Return the integer stored under ``key``, 0 if absent."""

    @abstractmethod
    def set_int(self, key: str, value: int) -> None:
        """Store ``value`` under ``key``.

        Raises:
            OSError: If the value could not be persisted
        """

    @abstractmethod
    def keys(self) -> List[str]:
        """Return all stored keys."""


class InMemoryKeyValueStore(KeyValueStore):
    """Dictionary-backed store. Thread-safe."""

    def __init__(self, initial: Optional[Dict[str, int]] = None):
        self._values: Dict[str, int] = dict(initial or {})
        self._lock = threading.RLock()

    def get_int(self, key: str) -> int:
        with self._lock:
            return self._values.get(key, 0)

    def set_int(self, key: str, value: int) -> None:
        with self._lock:
            self._values[key] = int(value)

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._values.keys())

    def __repr__(self) -> str:
        return f"InMemoryKeyValueStore(keys={len(self._values)})"


class JsonFileKeyValueStore(KeyValueStore):
    """JSON-file-backed store.

    The whole file is rewritten on every ``set_int`` through a temporary file
    and ``os.replace``, so a crash never leaves a half-written ledger. The
    in-memory copy is only updated after the write succeeded.
    """

    def __init__(self, path: Union[str, Path]):
        """Initialize and load the store.

        Args:
            path: JSON file path; created on first write if missing

        Raises:
            OSError: If the existing file cannot be read
            ValueError: If the existing file is not a JSON object of integers
        """
        self._path = Path(path)
        self._lock = threading.RLock()
        self._values: Dict[str, int] = self._read()

    def _read(self) -> Dict[str, int]:
        if not self._path.exists():
            return {}
        with open(self._path, encoding="utf-8") as f:
            raw = json.load(f)
        if not isinstance(raw, dict):
            raise ValueError(f"Ledger file must contain a JSON object: {self._path}")
        return {str(k): int(v) for k, v in raw.items()}

    def _write(self, values: Dict[str, int]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=self._path.parent, prefix=self._path.name, suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(values, f, indent=2, sort_keys=True)
            os.replace(tmp_path, self._path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    @property
    def path(self) -> Path:
        return self._path

    def get_int(self, key: str) -> int:
        with self._lock:
            return self._values.get(key, 0)

    def set_int(self, key: str, value: int) -> None:
        with self._lock:
            updated = dict(self._values)
            updated[key] = int(value)
            self._write(updated)
            self._values = updated

    def keys(self) -> List[str]:
        with self._lock:
            return list(self._values.keys())

    def __repr__(self) -> str:
        return f"JsonFileKeyValueStore(path={str(self._path)!r})"
