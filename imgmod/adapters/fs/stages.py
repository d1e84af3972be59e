"""
Stage directories and the asset locator.

Each approval stage is a directory holding `<id>.<canonical-extension>`
files; raw companions live in their own directory as `<id>.*`. Lookups
build the canonical path and stat it, they never scan a stage directory.
"""

from __future__ import annotations

import logging
import os
import stat
from dataclasses import dataclass
from pathlib import Path
from uuid import UUID

from imgmod.config.models import ServiceConfig
from imgmod.core.entities import LocateMode, Stage
from imgmod.core.errors import IOFailure, NotFound

logger = logging.getLogger(__name__)

RAW_SUFFIX = "raw"


@dataclass(frozen=True)
class StageDirectories:
    """Filesystem location of each stage."""

    pending: Path
    unapproved: Path
    original: Path
    raw: Path
    extension: str = "webp"

    @classmethod
    def from_config(cls, config: ServiceConfig) -> StageDirectories:
        storage = config.storage
        return cls(
            pending=storage.path(storage.pending_dir),
            unapproved=storage.path(storage.unapproved_dir),
            original=storage.path(storage.original_dir),
            raw=storage.path(storage.raw_dir),
            extension=config.images.canonical_extension,
        )

    def directory(self, stage: Stage) -> Path:
        if stage is Stage.PENDING:
            return self.pending
        if stage is Stage.UNAPPROVED:
            return self.unapproved
        return self.original

    def file_name(self, asset_id: UUID) -> str:
        return f"{asset_id}.{self.extension}"

    def asset_path(self, stage: Stage, asset_id: UUID) -> Path:
        return self.directory(stage) / self.file_name(asset_id)

    def raw_path(self, asset_id: UUID) -> Path:
        return self.raw / f"{asset_id}.{RAW_SUFFIX}"

    def ensure(self) -> None:
        for path in (self.pending, self.unapproved, self.original, self.raw):
            path.mkdir(parents=True, exist_ok=True)


class AssetLocator:
    """Resolve which stage holds an asset and where its file is."""

    # Pending is only consulted for LocateMode.INCLUDE_UNREVIEWED.
    SEARCH_ORDER = (Stage.UNAPPROVED, Stage.ORIGINAL)

    def __init__(self, stages: StageDirectories) -> None:
        self.stages = stages

    def find(self, stage: Stage, asset_id: UUID) -> Path | None:
        """Return the asset path in stage, or None if it is not there."""
        path = self.stages.asset_path(stage, asset_id)
        try:
            st = path.stat()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.error("Unable to stat %s for %s: %s", path, asset_id, e)
            raise IOFailure("locate", path) from e
        if not stat.S_ISREG(st.st_mode):
            return None
        return path

    def locate(self, stage: Stage, asset_id: UUID) -> Path:
        """
        Return the canonical path of asset_id in stage.

        Raises:
            NotFound: If the stage holds no such asset
            IOFailure: On any other filesystem error
        """
        path = self.find(stage, asset_id)
        if path is None:
            raise NotFound(asset_id, stage.value)
        return path

    def locate_stage(
        self,
        asset_id: UUID,
        mode: LocateMode = LocateMode.REVIEWED_ONLY,
    ) -> Stage:
        """Return the first stage holding asset_id in fixed priority order."""
        order = self.SEARCH_ORDER
        if mode is LocateMode.INCLUDE_UNREVIEWED:
            order = order + (Stage.PENDING,)

        for stage in order:
            if self.find(stage, asset_id) is not None:
                return stage

        raise NotFound(asset_id)

    def stages_holding(self, asset_id: UUID, stages: tuple[Stage, ...] = tuple(Stage)) -> list[Stage]:
        """Every stage that currently has a file for asset_id."""
        return [stage for stage in stages if self.find(stage, asset_id) is not None]

    def find_raw(self, asset_id: UUID) -> Path | None:
        """First raw companion whose name starts with the identifier."""
        prefix = str(asset_id)
        exact = self.stages.raw_path(asset_id)
        if exact.is_file():
            return exact
        try:
            with os.scandir(self.stages.raw) as entries:
                for entry in entries:
                    if entry.name.startswith(prefix) and entry.is_file():
                        return Path(entry.path)
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.error("Unable to read raw directory %s: %s", self.stages.raw, e)
            raise IOFailure("find_raw", self.stages.raw) from e
        return None
