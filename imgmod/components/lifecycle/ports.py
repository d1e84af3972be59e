"""
Lifecycle component port definitions.
"""

from __future__ import annotations

from contextlib import AbstractContextManager
from typing import Protocol
from uuid import UUID

from imgmod.core.ports.transform import TransformPort


class CacheInvalidatorPort(Protocol):
    """The part of the rendition cache lifecycle operations need."""

    def invalidate(self, asset_id: UUID) -> int:
        """Remove all cache entries for asset_id, returning the count removed."""
        ...


class LockTablePort(Protocol):
    """Per-identifier mutual exclusion."""

    def lock(self, asset_id: UUID) -> AbstractContextManager[None]:
        """Hold the mutation lock for asset_id."""
        ...


__all__ = ["CacheInvalidatorPort", "LockTablePort", "TransformPort"]
