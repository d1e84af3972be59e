"""
Filesystem rendition cache.

Cache files are named `<id>-<W|UNSPEC>x<H|UNSPEC>-<Q>.<ext>` inside one
flat directory. Entries are written once (temp file + rename) and only ever
removed wholesale per identifier.

Key behaviors:
- cache_path is a pure function of the key
- exists is an advisory check, not a lock
- invalidate scans the directory and removes every file prefixed by the id
- Each identifier carries an in-process generation counter; a store that
  began before an invalidate of the same identifier is discarded
"""

from __future__ import annotations

import logging
import os
import threading
from collections.abc import Iterator
from pathlib import Path
from uuid import UUID, uuid4

from imgmod.core.entities import UNSPECIFIED, CacheInformation, RenditionKey
from imgmod.core.errors import IOFailure, NotFound

logger = logging.getLogger(__name__)


def _parse_dimension(value: str) -> int | None:
    if value == UNSPECIFIED:
        return None
    return int(value)


def parse_cache_file_name(name: str) -> RenditionKey:
    """
    Recover the rendition key from a cache file name.

    Raises ValueError for names that do not follow the cache layout.
    """
    stem, dot, _ext = name.rpartition(".")
    if not dot or not stem:
        raise ValueError("No file extension found")

    # "<uuid>-<W>x<H>-<Q>": the uuid itself contains dashes, split from the right.
    parts = stem.rsplit("-", 2)
    if len(parts) != 3:
        raise ValueError("Unrecognized cache file name")
    raw_id, dimensions, raw_quality = parts

    try:
        asset_id = UUID(raw_id)
    except ValueError as e:
        raise ValueError("Invalid UUID") from e

    sides = dimensions.split("x")
    if len(sides) != 2:
        raise ValueError("Invalid dimensions")

    try:
        width = _parse_dimension(sides[0])
        height = _parse_dimension(sides[1])
    except ValueError as e:
        raise ValueError("Invalid dimensions") from e

    try:
        quality = int(raw_quality)
    except ValueError as e:
        raise ValueError("Invalid quality") from e

    return RenditionKey(asset_id=asset_id, width=width, height=height, quality=quality)


class RenditionCache:
    """Rendition files addressed by RenditionKey."""

    def __init__(self, directory: str | Path, *, extension: str = "webp", create_dirs: bool = True) -> None:
        self.directory = Path(directory)
        self.extension = extension
        self._lock = threading.Lock()
        self._generations: dict[UUID, int] = {}

        if create_dirs:
            self.directory.mkdir(parents=True, exist_ok=True)

    # --- Addressing ---

    def cache_path(self, key: RenditionKey) -> Path:
        return self.directory / f"{key.file_stem()}.{self.extension}"

    def exists(self, key: RenditionKey) -> bool:
        return self.cache_path(key).is_file()

    def read(self, key: RenditionKey) -> bytes:
        """Read a cached rendition. Raises NotFound if it vanished."""
        path = self.cache_path(key)
        try:
            with open(path, "rb") as f:
                return f.read()
        except FileNotFoundError as e:
            raise NotFound(key.asset_id, "cache") from e
        except OSError as e:
            logger.error("Unable to read cache entry %s: %s", path, e)
            raise IOFailure("cache_read", path) from e

    # --- Population ---

    def generation(self, asset_id: UUID) -> int:
        """Current invalidation generation for asset_id."""
        with self._lock:
            return self._generations.get(asset_id, 0)

    def store(self, key: RenditionKey, data: bytes, *, generation: int | None = None) -> bool:
        """
        Persist rendition bytes for key.

        If generation is given and the identifier was invalidated since it was
        read, the bytes may derive from a superseded asset and are dropped.
        Returns True if the entry was written.
        """
        target = self.cache_path(key)
        tmp = self.directory / f".{key.file_stem()}.{uuid4().hex}.tmp"

        try:
            with open(tmp, "wb") as f:
                f.write(data)
        except OSError as e:
            logger.error("Unable to write cache entry %s: %s", tmp, e)
            self._discard(tmp)
            raise IOFailure("cache_store", target) from e

        with self._lock:
            if generation is not None and self._generations.get(key.asset_id, 0) != generation:
                logger.info("Dropping stale rendition for %s (invalidated while computing)", key.asset_id)
                self._discard(tmp)
                return False
            try:
                os.replace(tmp, target)
            except OSError as e:
                logger.error("Unable to move cache entry into place %s: %s", target, e)
                self._discard(tmp)
                raise IOFailure("cache_store", target) from e

        logger.info("Cached rendition %s", target.name)
        return True

    # --- Invalidation ---

    def invalidate(self, asset_id: UUID) -> int:
        """
        Remove every cache entry for asset_id.

        Tolerates entries that are already gone; any other error propagates.
        Returns the number of files removed.
        """
        prefix = str(asset_id)
        removed = 0
        with self._lock:
            self._generations[asset_id] = self._generations.get(asset_id, 0) + 1
            for entry in self._iter_files():
                if not entry.name.startswith(prefix):
                    continue
                if self._remove(Path(entry.path)):
                    removed += 1

        if removed:
            logger.info("Invalidated %d cache entries for %s", removed, asset_id)
        return removed

    def purge(self) -> int:
        """Remove every cache entry."""
        removed = 0
        with self._lock:
            for entry in self._iter_files():
                try:
                    key = parse_cache_file_name(entry.name)
                except ValueError:
                    continue
                self._generations[key.asset_id] = self._generations.get(key.asset_id, 0) + 1
                if self._remove(Path(entry.path)):
                    removed += 1

        logger.info("Purged %d cache entries", removed)
        return removed

    def entries(self, asset_id: UUID | None = None) -> list[RenditionKey]:
        """Keys of the cache entries on disk, optionally for one identifier."""
        keys = []
        for entry in self._iter_files():
            try:
                key = parse_cache_file_name(entry.name)
            except ValueError:
                continue
            if asset_id is None or key.asset_id == asset_id:
                keys.append(key)
        return keys

    def status(self) -> CacheInformation:
        """Collect entry and size statistics over the whole cache."""
        info = CacheInformation()
        for entry in self._iter_files():
            try:
                key = parse_cache_file_name(entry.name)
            except ValueError as e:
                logger.warning("Could not determine cache entry for file %s: %s", entry.name, e)
                continue
            try:
                size = entry.stat().st_size
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.error("Unable to stat cache entry %s: %s", entry.path, e)
                raise IOFailure("cache_status", entry.path) from e
            info.add(key, size)
        return info

    # --- Internals ---

    def _iter_files(self) -> Iterator[os.DirEntry[str]]:
        """Regular, non-hidden files in the cache directory."""
        try:
            with os.scandir(self.directory) as it:
                for entry in it:
                    if entry.name.startswith("."):
                        continue
                    try:
                        is_file = entry.is_file()
                    except OSError as e:
                        logger.error("Unable to read dir entry %s: %s", entry.path, e)
                        raise IOFailure("cache_scan", entry.path) from e
                    if is_file:
                        yield entry
        except FileNotFoundError:
            return
        except OSError as e:
            logger.error("Unable to read cache path %s: %s", self.directory, e)
            raise IOFailure("cache_scan", self.directory) from e

    def _remove(self, path: Path) -> bool:
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.error("Unable to delete %s: %s", path, e)
            raise IOFailure("cache_delete", path) from e
        logger.debug("Deleted %s", path)
        return True

    @staticmethod
    def _discard(path: Path) -> None:
        try:
            path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Unable to remove temporary file %s: %s", path, e)
