"""Key-value persistence collaborators.

The engine only needs two operations:

    load(key)        -> str | None   (None when absent)
    save(key, blob)  -> bool         (False when the write did not happen)

FileKeyValueStore keeps one JSON blob per key under <data_dir>/kv/, named by
key_filename(): the readable slug plus a short hash of the raw key, since
different keys can share a slug ("Player One" and "player-one").
MemoryKeyValueStore keeps blobs in a dict and can simulate a storage quota,
which is how tests drive the cleanup-and-retry path.
"""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path
from typing import Protocol

from .core import kv_dir, slugify

logger = logging.getLogger(__name__)


def key_filename(key: str) -> str:
    """Filename for `key`: session_p1 → session-p1-<12 hex chars>.json."""
    digest = hashlib.sha256(key.encode("utf-8")).hexdigest()[:12]
    return f"{slugify(key)}-{digest}.json"


class KeyValueStore(Protocol):
    def load(self, key: str) -> str | None: ...

    def save(self, key: str, blob: str) -> bool: ...


class FileKeyValueStore:
    """One file per key. Directory defaults to the initialised data dir."""

    def __init__(self, directory: Path | None = None) -> None:
        self._dir = directory

    def _path(self, key: str) -> Path:
        directory = self._dir or kv_dir()
        return directory / key_filename(key)

    def load(self, key: str) -> str | None:
        path = self._path(key)
        if not path.is_file():
            return None
        try:
            return path.read_text()
        except OSError as e:
            logger.warning("Could not read %s: %s", path, e)
            return None

    def save(self, key: str, blob: str) -> bool:
        path = self._path(key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(blob)
        except OSError as e:
            logger.warning("Could not write %s: %s", path, e)
            return False
        return True


class MemoryKeyValueStore:
    """In-process store. `quota` caps the size of a single blob (chars)."""

    def __init__(self, quota: int | None = None) -> None:
        self.blobs: dict[str, str] = {}
        self.quota = quota
        self.save_calls = 0

    def load(self, key: str) -> str | None:
        return self.blobs.get(key)

    def save(self, key: str, blob: str) -> bool:
        self.save_calls += 1
        if self.quota is not None and len(blob) > self.quota:
            return False
        self.blobs[key] = blob
        return True
