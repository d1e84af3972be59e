"""
Per-identifier mutation locks.

Lifecycle mutations (submit, approve, unapprove, rotate, delete, expiry) on
the same asset must not interleave: two rotates writing temporary files and
renaming over the same target can corrupt the asset. Each identifier gets
its own lock, created on first use and dropped once nobody holds or waits
for it.
"""

from __future__ import annotations

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from uuid import UUID


@dataclass
class _Entry:
    lock: threading.Lock = field(default_factory=threading.Lock)
    users: int = 0


class KeyedLockTable:
    """Table of locks keyed by asset identifier."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._entries: dict[UUID, _Entry] = {}

    @contextmanager
    def lock(self, asset_id: UUID) -> Iterator[None]:
        """Hold the mutation lock for asset_id for the duration of the block."""
        with self._guard:
            entry = self._entries.get(asset_id)
            if entry is None:
                entry = _Entry()
                self._entries[asset_id] = entry
            entry.users += 1

        entry.lock.acquire()
        try:
            yield
        finally:
            entry.lock.release()
            with self._guard:
                entry.users -= 1
                if entry.users == 0:
                    del self._entries[asset_id]

    def is_locked(self, asset_id: UUID) -> bool:
        with self._guard:
            entry = self._entries.get(asset_id)
            return entry is not None and entry.lock.locked()

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)
