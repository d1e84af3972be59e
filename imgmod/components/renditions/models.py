"""
Renditions component models.
"""

from __future__ import annotations

from dataclasses import dataclass
from uuid import UUID

from imgmod.core.entities import RenditionKey, Stage


@dataclass(frozen=True)
class Rendition:
    """Bytes produced for one read request."""

    asset_id: UUID
    key: RenditionKey
    stage: Stage
    data: bytes
    media_type: str
    from_cache: bool = False
    cached: bool = False

    @property
    def filename(self) -> str:
        return f"{self.asset_id}.{self.media_type.rsplit('/', 1)[-1]}"
