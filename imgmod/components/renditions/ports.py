"""
Renditions component port definitions.
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol
from uuid import UUID

from imgmod.core.entities import RenditionKey
from imgmod.core.ports.auth import AuthorizerPort
from imgmod.core.ports.transform import TransformPort


class RenditionCachePort(Protocol):
    """Rendition cache as seen by the resolver."""

    def cache_path(self, key: RenditionKey) -> Path: ...

    def exists(self, key: RenditionKey) -> bool: ...

    def read(self, key: RenditionKey) -> bytes:
        """Raises NotFound if the entry vanished."""
        ...

    def generation(self, asset_id: UUID) -> int: ...

    def store(self, key: RenditionKey, data: bytes, *, generation: int | None = None) -> bool: ...


__all__ = ["AuthorizerPort", "RenditionCachePort", "TransformPort"]
