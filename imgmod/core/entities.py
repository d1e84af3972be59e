"""
Domain entities for the image moderation service.

An asset is identified by a random UUID assigned at upload time and lives in
exactly one of the approval stages at any moment. Renditions are derived
files addressed by (asset id, width, height, quality).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from uuid import UUID

from imgmod.core.errors import InvalidIdentifier

# Token used in cache file names for a width/height the caller left out.
UNSPECIFIED = "UNSPEC"


class Stage(str, Enum):
    """Mutually exclusive approval stages an asset can occupy."""

    PENDING = "pending"
    UNAPPROVED = "unapproved"
    ORIGINAL = "original"


class LocateMode(str, Enum):
    """Which stages a stage lookup may report."""

    REVIEWED_ONLY = "reviewed_only"
    INCLUDE_UNREVIEWED = "include_unreviewed"


def validate_asset_id(asset_id: UUID) -> UUID:
    """Reject the nil identifier before any storage access."""
    if asset_id.int == 0:
        raise InvalidIdentifier(str(asset_id))
    return asset_id


def parse_asset_id(value: str) -> UUID:
    """Parse textual identifier; malformed and nil values are client errors."""
    try:
        asset_id = UUID(value)
    except (TypeError, ValueError) as e:
        raise InvalidIdentifier(value) from e
    return validate_asset_id(asset_id)


@dataclass(frozen=True)
class RenditionKey:
    """
    Cache key for one rendition.

    Width and height stay None when the caller did not request them, so
    that "unspecified" and an explicit 0 never share a cache file.
    """

    asset_id: UUID
    width: int | None
    height: int | None
    quality: int

    @property
    def crop(self) -> bool:
        """Centre-crop to the exact box only when both sides are requested."""
        return self.width is not None and self.height is not None

    def file_stem(self) -> str:
        width = UNSPECIFIED if self.width is None else str(self.width)
        height = UNSPECIFIED if self.height is None else str(self.height)
        return f"{self.asset_id}-{width}x{height}-{self.quality}"


@dataclass(frozen=True)
class RenditionTarget:
    """Effective resize target after filling missing sides from the source."""

    width: int
    height: int
    quality: int
    crop: bool = False

    @classmethod
    def from_key(cls, key: RenditionKey, native: tuple[int, int]) -> RenditionTarget:
        native_width, native_height = native
        return cls(
            width=native_width if key.width is None else key.width,
            height=native_height if key.height is None else key.height,
            quality=key.quality,
            crop=key.crop,
        )


@dataclass
class CacheInformation:
    """Aggregate statistics over the rendition cache directory."""

    entries: int = 0
    total_size: int = 0
    width_count: dict[int | None, int] = field(default_factory=dict)
    height_count: dict[int | None, int] = field(default_factory=dict)
    quality_count: dict[int, int] = field(default_factory=dict)

    def add(self, key: RenditionKey, size: int) -> None:
        self.entries += 1
        self.total_size += size
        self.width_count[key.width] = self.width_count.get(key.width, 0) + 1
        self.height_count[key.height] = self.height_count.get(key.height, 0) + 1
        self.quality_count[key.quality] = self.quality_count.get(key.quality, 0) + 1

    def to_dict(self) -> dict[str, Any]:
        def _labels(counts: dict[Any, int]) -> dict[str, int]:
            return {
                (UNSPECIFIED if k is None else str(k)): v
                for k, v in sorted(counts.items(), key=lambda kv: (kv[0] is None, kv[0] or 0))
            }

        return {
            "entries": self.entries,
            "total_size": self.total_size,
            "width_count": _labels(self.width_count),
            "height_count": _labels(self.height_count),
            "quality_count": _labels(self.quality_count),
        }
