"""
Per-session checksum cache used for optimistic edit concurrency.
"""

import hashlib
import logging
import threading
from collections import OrderedDict
from typing import Optional

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 10_000


class ChecksumStore:
    """
    Thread safe map from absolute path to the SHA-256 of its last known content.

    An entry is recorded after a full-file read or a successful write/edit.
    An edit whose current on-disk checksum differs from the recorded one is
    refused. The store is bounded: the least recently used entry is evicted
    once ``max_entries`` is exceeded, after which that path behaves as if it
    had never been read.

    Usage:
        store = ChecksumStore()
        store.update("/ws/a.txt", store.compute(b"hello"))
        assert store.get("/ws/a.txt") == store.compute(b"hello")
    """

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES):
        self.max_entries = max_entries
        self._entries: "OrderedDict[str, str]" = OrderedDict()
        self._lock = threading.RLock()

    @staticmethod
    def compute(data: bytes) -> str:
        """Return the hex SHA-256 digest of ``data``."""
        return hashlib.sha256(data).hexdigest()

    def get(self, path: str) -> Optional[str]:
        """Return the recorded checksum for ``path``, or None."""
        with self._lock:
            checksum = self._entries.get(path)
            if checksum is not None:
                self._entries.move_to_end(path)
            return checksum

    def update(self, path: str, checksum: str) -> None:
        """Record ``checksum`` as the last known content of ``path``."""
        with self._lock:
            self._entries[path] = checksum
            self._entries.move_to_end(path)
            while len(self._entries) > self.max_entries:
                evicted, _ = self._entries.popitem(last=False)
                logger.debug(f"Evicted checksum for {evicted}")

    def discard(self, path: str) -> None:
        with self._lock:
            self._entries.pop(path, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, path: object) -> bool:
        with self._lock:
            return path in self._entries
