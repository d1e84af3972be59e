"""
Reclaim component - delete Pending uploads nobody submitted in time.

One sweep enumerates the Pending directory and removes every regular,
non-hidden file last modified before now minus the retention window,
followed by its raw companion. Per-entry failures are logged and skipped so
one bad entry never aborts the rest of the sweep.
"""

from __future__ import annotations

import logging
import os
from contextlib import AbstractContextManager, nullcontext
from dataclasses import dataclass, field
from uuid import UUID

from imgmod.adapters.fs.stages import AssetLocator, StageDirectories
from imgmod.components.lifecycle.ports import LockTablePort
from imgmod.core.errors import IOFailure
from imgmod.core.ports.clock import ClockPort

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    """Outcome of one sweep cycle."""

    scanned: int = 0
    deleted: list[str] = field(default_factory=list)
    raw_deleted: list[str] = field(default_factory=list)
    errors: int = 0


def identifier_from_name(name: str) -> UUID | None:
    """Asset id encoded in a stage file name, if it is one."""
    try:
        return UUID(name.split(".", 1)[0])
    except ValueError:
        return None


class ReclamationSweeper:
    """Expires stale Pending uploads and their raw companions."""

    def __init__(
        self,
        stages: StageDirectories,
        clock: ClockPort,
        *,
        retention_seconds: float = 3600.0,
        locks: LockTablePort | None = None,
        locator: AssetLocator | None = None,
    ) -> None:
        self.stages = stages
        self.clock = clock
        self.retention_seconds = retention_seconds
        self.locks = locks
        self.locator = locator or AssetLocator(stages)

    def sweep(self) -> SweepResult:
        result = SweepResult()
        threshold = self.clock.now_utc().timestamp() - self.retention_seconds

        logger.info("Starting deletion of old pending files.")
        try:
            with os.scandir(self.stages.pending) as entries:
                for entry in entries:
                    self._handle_entry(entry, threshold, result)
        except OSError as e:
            logger.error("Unable to read pending path %s: %s", self.stages.pending, e)
            result.errors += 1

        logger.info(
            "Finished deletion of old pending files: %d scanned, %d deleted, %d errors.",
            result.scanned,
            len(result.deleted),
            result.errors,
        )
        return result

    def _lock(self, asset_id: UUID | None) -> AbstractContextManager[None]:
        if self.locks is None or asset_id is None:
            return nullcontext()
        return self.locks.lock(asset_id)

    def _handle_entry(self, entry: os.DirEntry[str], threshold: float, result: SweepResult) -> None:
        if entry.name.startswith("."):
            return

        try:
            if not entry.is_file(follow_symlinks=False):
                return
            modified = entry.stat(follow_symlinks=False).st_mtime
        except FileNotFoundError:
            return
        except OSError as e:
            logger.error("Unable to get metadata for '%s': %s", entry.path, e)
            result.errors += 1
            return

        result.scanned += 1
        if modified >= threshold:
            return

        asset_id = identifier_from_name(entry.name)
        with self._lock(asset_id):
            try:
                os.remove(entry.path)
            except FileNotFoundError:
                # Submitted or deleted since the scan started.
                return
            except OSError as e:
                logger.error("Unable to delete '%s': %s", entry.path, e)
                result.errors += 1
                return

            logger.info("Deleted %s", entry.path)
            result.deleted.append(entry.name)
            if asset_id is None:
                # Not an asset file; no raw companion belongs to it.
                return
            self._delete_raw(asset_id, result)

    def _delete_raw(self, asset_id: UUID, result: SweepResult) -> None:
        try:
            raw = self.locator.find_raw(asset_id)
        except IOFailure:
            result.errors += 1
            return
        if raw is None:
            return
        try:
            raw.unlink()
        except FileNotFoundError:
            return
        except OSError as e:
            logger.error("Unable to delete raw companion '%s': %s", raw, e)
            result.errors += 1
            return
        logger.info("Deleted %s", raw)
        result.raw_deleted.append(raw.name)
