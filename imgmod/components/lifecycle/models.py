"""
Lifecycle component result models.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from uuid import UUID

from imgmod.core.entities import Stage


@dataclass(frozen=True)
class FileIdentification:
    """Magic-header signature of a supported upload type."""

    file_type: str
    extension: str
    header: bytes


@dataclass(frozen=True)
class UploadResult:
    asset_id: UUID
    file_type: str
    size_bytes: int


@dataclass(frozen=True)
class TransitionResult:
    asset_id: UUID
    from_stage: Stage
    to_stage: Stage
    cache_entries_removed: int = 0


@dataclass(frozen=True)
class RotateResult:
    asset_id: UUID
    stage: Stage
    degrees: int
    cache_entries_removed: int = 0


@dataclass(frozen=True)
class DeleteResult:
    asset_id: UUID
    removed_from: list[Stage] = field(default_factory=list)
    raw_removed: bool = False
    cache_entries_removed: int = 0
