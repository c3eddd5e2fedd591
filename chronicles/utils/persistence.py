"""
Durable key-value storage for the learner save slot.

Provides backends with a minimal get/set/delete contract:
- FileStorage: one JSON document per key, atomic replace on write
- MemoryStorage: dict-backed, for tests and hosts without a filesystem
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
import threading
from pathlib import Path
from typing import Dict, Optional

from ..config import config
from ..exceptions import StorageError

logger = logging.getLogger(__name__)


class KeyValueStorage:
    """
    Minimal durable key-value contract.

    Backends raise StorageError on I/O failure; callers decide whether to
    absorb it.
    """

    def get(self, key: str) -> Optional[str]:
        """Return stored text for key, or None if absent."""
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        """Store text under key, replacing any previous value."""
        raise NotImplementedError

    def delete(self, key: str) -> None:
        """Remove key. Deleting a missing key is not an error."""
        raise NotImplementedError

    def contains(self, key: str) -> bool:
        return self.get(key) is not None


class MemoryStorage(KeyValueStorage):
    """Dict-backed storage."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._items: Dict[str, str] = dict(initial or {})
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            return self._items.get(key)

    def set(self, key: str, value: str) -> None:
        if not isinstance(value, str):
            raise StorageError(f"MemoryStorage only stores text, got {type(value).__name__}")
        with self._lock:
            self._items[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._items.pop(key, None)

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._items)


class FileStorage(KeyValueStorage):
    """
    Stores each key as ``<key>.json`` under a directory.

    Features:
    - Atomic writes (temporary file + os.replace)
    - Key sanitization so keys cannot escape the directory
    - Thread-safe file operations
    """

    _KEY_PATTERN = re.compile(r"[^A-Za-z0-9._-]")

    def __init__(self, directory: Path | str | None = None):
        """
        Initialize file storage.

        Args:
            directory: Directory to store documents (default: config data_dir)
        """
        self.directory = Path(directory) if directory else config.persistence.data_dir
        self._lock = threading.Lock()

    def _path_for(self, key: str) -> Path:
        safe = self._KEY_PATTERN.sub("_", key)
        if not safe or safe in {".", ".."}:
            raise StorageError(f"Invalid storage key: {key!r}")
        return self.directory / f"{safe}.json"

    def get(self, key: str) -> Optional[str]:
        filepath = self._path_for(key)
        with self._lock:
            if not filepath.exists():
                return None
            try:
                return filepath.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                raise StorageError(f"Failed to read {filepath}: {e}") from e

    def set(self, key: str, value: str) -> None:
        filepath = self._path_for(key)
        with self._lock:
            try:
                self.directory.mkdir(parents=True, exist_ok=True)
                fd, tmp_name = tempfile.mkstemp(
                    dir=self.directory, prefix=f".{filepath.stem}-", suffix=".tmp"
                )
                try:
                    with os.fdopen(fd, "w", encoding="utf-8") as f:
                        f.write(value)
                    os.replace(tmp_name, filepath)
                except BaseException:
                    Path(tmp_name).unlink(missing_ok=True)
                    raise
            except OSError as e:
                raise StorageError(f"Failed to write {filepath}: {e}") from e

    def delete(self, key: str) -> None:
        filepath = self._path_for(key)
        with self._lock:
            try:
                filepath.unlink(missing_ok=True)
            except OSError as e:
                raise StorageError(f"Failed to delete {filepath}: {e}") from e


# Global storage instance
_storage: Optional[FileStorage] = None


def get_storage() -> FileStorage:
    """Get or create the global file storage rooted at the configured data dir."""
    global _storage
    if _storage is None:
        _storage = FileStorage()
        logger.debug("Using file storage at %s", _storage.directory)
    return _storage
