"""In-memory cache for parsed playbooks."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pathlib import Path

    from ontoloom.methodology.playbook import MethodologyPlaybook

DEFAULT_MAX_ENTRIES = 10


@dataclass
class CacheEntry:
    """A parsed playbook with the mtime of the file it came from."""

    playbook: MethodologyPlaybook
    created_at: float
    mtime: float


class PlaybookCache:
    """Bounded playbook cache keyed by resolved path.

    An entry is dropped when its file's mtime changes or the file disappears.
    When full, the oldest entry is evicted first.
    """

    def __init__(self, max_entries: int = DEFAULT_MAX_ENTRIES) -> None:
        self._store: dict[str, CacheEntry] = {}
        self._max_entries = max_entries

    def get(self, path: Path) -> MethodologyPlaybook | None:
        """Get a cached playbook, or None if miss or stale."""
        key = str(path.resolve())
        entry = self._store.get(key)
        if entry is None:
            return None

        try:
            mtime = path.stat().st_mtime
        except OSError:
            del self._store[key]
            return None
        if mtime != entry.mtime:
            del self._store[key]
            return None

        return entry.playbook

    def put(self, path: Path, playbook: MethodologyPlaybook) -> None:
        """Store a playbook; unreadable files are not cached."""
        key = str(path.resolve())
        try:
            mtime = path.stat().st_mtime
        except OSError:
            return

        self._store.pop(key, None)
        while len(self._store) >= self._max_entries:
            oldest = next(iter(self._store))
            del self._store[oldest]
        self._store[key] = CacheEntry(
            playbook=playbook,
            created_at=time.monotonic(),
            mtime=mtime,
        )

    def invalidate(self, path: Path | None = None) -> None:
        """Drop one entry, or everything when *path* is None."""
        if path is None:
            self._store.clear()
            return
        self._store.pop(str(path.resolve()), None)

    def stats(self) -> dict[str, int]:
        """Return cache statistics."""
        return {"entries": len(self._store), "max_entries": self._max_entries}
