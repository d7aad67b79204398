"""
Keyed Storage
=============

A small keyed string store with a finite byte quota, standing in for the
per-device storage the engine persists its caches to.

Backends:
    - MemoryStore: in-process dict (tests, ephemeral sessions)
    - FileStore: one JSON file per key under a directory
"""

import os
import re
import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional


logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Base class for storage failures."""


class StorageQuotaExceeded(StorageError):
    """Raised when a write would push the store past its quota."""


class KeyValueStore:
    """
    Keyed string store with an optional byte quota.

    Subclasses implement the raw _read/_write/_remove/_sizes primitives;
    quota accounting is shared here.
    """

    def __init__(self, quota_bytes: Optional[int] = None):
        self.quota_bytes = quota_bytes

    def _read(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def _write(self, key: str, value: str) -> None:
        raise NotImplementedError

    def _remove(self, key: str) -> None:
        raise NotImplementedError

    def _sizes(self) -> Dict[str, int]:
        raise NotImplementedError

    def keys(self) -> List[str]:
        return list(self._sizes().keys())

    def used_bytes(self) -> int:
        return sum(self._sizes().values())

    def get(self, key: str) -> Optional[str]:
        return self._read(key)

    def set(self, key: str, value: str) -> None:
        """
        Store a value.

        Raises:
            StorageQuotaExceeded: if the write would exceed the quota
        """
        if self.quota_bytes is not None:
            sizes = self._sizes()
            new_total = sum(sizes.values()) - sizes.get(key, 0) + _size(value)
            if new_total > self.quota_bytes:
                raise StorageQuotaExceeded(
                    f"Writing {key!r} needs {new_total} bytes, quota is {self.quota_bytes}"
                )
        self._write(key, value)

    def delete(self, key: str) -> None:
        self._remove(key)

    def clear(self) -> int:
        """Remove every key. Returns number of keys deleted."""
        count = 0
        for key in self.keys():
            self._remove(key)
            count += 1
        return count


class MemoryStore(KeyValueStore):
    """In-memory store."""

    def __init__(self, quota_bytes: Optional[int] = None):
        super().__init__(quota_bytes)
        self._data: Dict[str, str] = {}

    def _read(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def _write(self, key: str, value: str) -> None:
        self._data[key] = value

    def _remove(self, key: str) -> None:
        self._data.pop(key, None)

    def _sizes(self) -> Dict[str, int]:
        return {k: _size(v) for k, v in self._data.items()}


class FileStore(KeyValueStore):
    """File-based store: one file per key."""

    def __init__(self, directory: str, quota_bytes: Optional[int] = None):
        """
        Initialize store.

        Args:
            directory: Directory for store files (created if missing)
            quota_bytes: Maximum total size of stored values
        """
        super().__init__(quota_bytes)
        self.directory = Path(directory).expanduser()
        self.directory.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        safe = re.sub(r"[^A-Za-z0-9._-]", "_", key)
        return self.directory / f"{safe}.json"

    def _read(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except (IOError, UnicodeDecodeError) as e:
            logger.warning("Could not read store key %s: %s", key, e)
            return None

    def _write(self, key: str, value: str) -> None:
        path = self._path(key)
        tmp = path.with_suffix(".tmp")
        try:
            tmp.write_text(value, encoding="utf-8")
            os.replace(tmp, path)
        except IOError as e:
            raise StorageError(f"Could not write {key!r}: {e}") from e

    def _remove(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            pass

    def _sizes(self) -> Dict[str, int]:
        return {p.stem: p.stat().st_size for p in self.directory.glob("*.json")}


def _size(value: str) -> int:
    return len(value.encode("utf-8"))


# =========================================================================
# JSON HELPERS
# =========================================================================

def load_json(store: KeyValueStore, key: str) -> Optional[Any]:
    """
    Read and decode a JSON value.

    Unreadable or corrupt data is treated as a cache miss.
    """
    raw = store.get(key)
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        logger.warning("Discarding corrupt cache entry %s: %s", key, e)
        return None


def save_json(
    store: KeyValueStore,
    key: str,
    data: Any,
    purge_keys: Iterable[str] = ()
) -> bool:
    """
    Encode and write a JSON value, surviving a full store.

    On a quota failure the `purge_keys` are removed and the write is retried
    once. A second failure is logged, never raised.

    Returns:
        True if the value was written
    """
    value = json.dumps(data, separators=(",", ":"))
    try:
        store.set(key, value)
        return True
    except StorageQuotaExceeded as e:
        logger.warning("Storage quota exceeded writing %s, purging snapshots: %s", key, e)
    except StorageError as e:
        logger.warning("Failed to write %s: %s", key, e)
        return False

    for purge_key in purge_keys:
        store.delete(purge_key)

    try:
        store.set(key, value)
        return True
    except StorageError as e:
        logger.warning("Giving up on %s after purge: %s", key, e)
        return False
