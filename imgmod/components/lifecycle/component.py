"""
Lifecycle component - upload, moderation transitions, rotation and deletion.

Stage transitions are single rename calls between stage directories, so a
crash mid-transition leaves the asset in exactly one stage.

Transitions:
- submit: Pending -> Unapproved
- approve: Pending or Unapproved -> Original (invalidates cache)
- unapprove: Original -> Unapproved (invalidates cache)
- rotate: in place in Unapproved or Original (invalidates cache)
- delete: removes from every stage, the raw companion and the cache

Invariants:
- An asset is in at most one of Pending, Unapproved, Original
- Every mutation of an asset removes its cache entries before it completes
- Mutations on one identifier are serialized through the lock table
- Raw companions are only removed together with their asset
"""

from __future__ import annotations

import logging
import math
import os
from pathlib import Path
from uuid import UUID, uuid4

from imgmod.adapters.fs.stages import AssetLocator, StageDirectories
from imgmod.core.entities import Stage, validate_asset_id
from imgmod.core.errors import (
    BackendFailure,
    Conflict,
    EmptyUpload,
    InvalidRotation,
    IOFailure,
    NotFound,
    UnsupportedImage,
    UploadTooLarge,
)
from imgmod.core.ports.transform import TransformError, TransformPort, UndecodableImageError

from .models import (
    DeleteResult,
    FileIdentification,
    RotateResult,
    TransitionResult,
    UploadResult,
)
from .ports import CacheInvalidatorPort, LockTablePort

logger = logging.getLogger(__name__)

FILE_MAPPINGS: tuple[FileIdentification, ...] = (
    FileIdentification("JPEG", "jpg", bytes([0xFF, 0xD8, 0xFF])),
    FileIdentification("PNG", "png", bytes([0x89, 0x50, 0x4E, 0x47, 0x0D, 0x0A, 0x1A, 0x0A])),
    FileIdentification("WEBP", "webp", b"RIFF"),
    FileIdentification(
        "HEIF",
        "heic",
        bytes([0x00, 0x00, 0x00, 0x18, 0x66, 0x74, 0x79, 0x70, 0x68, 0x65, 0x69, 0x63]),
    ),
    FileIdentification(
        "AVIF",
        "avif",
        bytes([0x00, 0x00, 0x00, 0x1C, 0x66, 0x74, 0x79, 0x70, 0x61, 0x76, 0x69, 0x66]),
    ),
)

ROTATIONS = (90, 180, 270)


# --- Helper Functions ---


def detect_file_type(data: bytes) -> FileIdentification | None:
    """Identify an upload by its leading magic bytes."""
    for mapping in FILE_MAPPINGS:
        if data.startswith(mapping.header):
            return mapping
    return None


def normalise_rotation(degrees: float, *, allow_zero: bool = False) -> int:
    """
    Validate a rotation angle, returning it as an int.

    Only 90, 180 and 270 are accepted; 0 only where a no-op is meaningful
    (upload). Raises InvalidRotation without touching storage.
    """
    if not math.isfinite(degrees) or int(degrees) != degrees:
        raise InvalidRotation(degrees)
    value = int(degrees)
    if value in ROTATIONS or (allow_zero and value == 0):
        return value
    raise InvalidRotation(degrees)


def write_atomic(path: Path, data: bytes) -> None:
    """Write data next to path and rename it over path."""
    tmp = path.parent / f".{path.name}.{uuid4().hex}.tmp"
    try:
        with open(tmp, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp, path)
    except OSError:
        try:
            tmp.unlink()
        except FileNotFoundError:
            pass
        raise


def unlink_if_present(path: Path) -> bool:
    """Remove path; False if it did not exist. Other errors propagate."""
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    return True


# --- Service ---


class LifecycleService:
    """Moves assets between stages and mutates them in place."""

    def __init__(
        self,
        stages: StageDirectories,
        locator: AssetLocator,
        cache: CacheInvalidatorPort,
        backend: TransformPort,
        locks: LockTablePort,
        *,
        pending_quality: int = 80,
        max_upload_bytes: int = 12 * 1024 * 1024,
    ) -> None:
        self.stages = stages
        self.locator = locator
        self.cache = cache
        self.backend = backend
        self.locks = locks
        self.pending_quality = pending_quality
        self.max_upload_bytes = max_upload_bytes

    # --- Upload ---

    def upload(self, data: bytes, angle: float = 0) -> UploadResult:
        """
        Store a new upload in Pending, keeping the untouched bytes as raw companion.

        The pending copy is decoded, optionally rotated and re-encoded to the
        canonical format.
        """
        if not data:
            raise EmptyUpload()
        if len(data) > self.max_upload_bytes:
            raise UploadTooLarge(len(data), self.max_upload_bytes)

        degrees = normalise_rotation(angle, allow_zero=True)

        file_id = detect_file_type(data)
        if file_id is None:
            raise UnsupportedImage()

        asset_id = uuid4()
        raw_path = self.stages.raw_path(asset_id)
        pending_path = self.stages.asset_path(Stage.PENDING, asset_id)
        logger.info("Received %s upload %s with size %dB", file_id.file_type, asset_id, len(data))

        try:
            write_atomic(raw_path, data)
        except OSError as e:
            logger.error("Unable to save raw image %s to %s: %s", asset_id, raw_path, e)
            raise IOFailure("upload_raw", raw_path) from e

        try:
            encoded = self.backend.rotate(data, degrees, self.pending_quality)
        except UndecodableImageError as e:
            self._drop_raw(raw_path)
            raise UnsupportedImage("Image data could not be decoded") from e
        except TransformError as e:
            logger.error("Error while encoding upload %s (angle=%s): %s", asset_id, degrees, e)
            self._drop_raw(raw_path)
            raise BackendFailure(asset_id, "upload") from e

        try:
            write_atomic(pending_path, encoded)
        except OSError as e:
            logger.error("Unable to save pending image %s to %s: %s", asset_id, pending_path, e)
            self._drop_raw(raw_path)
            raise IOFailure("upload_pending", pending_path) from e

        logger.info("Saved pending image %s", pending_path)
        return UploadResult(asset_id=asset_id, file_type=file_id.file_type, size_bytes=len(data))

    def _drop_raw(self, raw_path: Path) -> None:
        try:
            unlink_if_present(raw_path)
        except OSError as e:
            logger.error("Unable to remove raw companion %s: %s", raw_path, e)

    # --- Transitions ---

    def submit(self, asset_id: UUID) -> TransitionResult:
        return self._transition(asset_id, (Stage.PENDING,), Stage.UNAPPROVED, invalidate=False)

    def approve(self, asset_id: UUID) -> TransitionResult:
        return self._transition(asset_id, (Stage.UNAPPROVED, Stage.PENDING), Stage.ORIGINAL)

    def unapprove(self, asset_id: UUID) -> TransitionResult:
        return self._transition(asset_id, (Stage.ORIGINAL,), Stage.UNAPPROVED)

    def _current_stage(self, asset_id: UUID) -> Stage:
        """The single stage holding asset_id; Conflict if more than one does."""
        held = self.locator.stages_holding(asset_id)
        if not held:
            raise NotFound(asset_id)
        if len(held) > 1:
            logger.error("Asset %s found in multiple stages: %s", asset_id, [s.value for s in held])
            raise Conflict(asset_id, [s.value for s in held])
        return held[0]

    def _transition(
        self,
        asset_id: UUID,
        sources: tuple[Stage, ...],
        target: Stage,
        *,
        invalidate: bool = True,
    ) -> TransitionResult:
        validate_asset_id(asset_id)

        with self.locks.lock(asset_id):
            current = self._current_stage(asset_id)
            if current not in sources:
                raise NotFound(asset_id, "/".join(s.value for s in sources))

            source_path = self.stages.asset_path(current, asset_id)
            target_path = self.stages.asset_path(target, asset_id)
            try:
                os.rename(source_path, target_path)
            except FileNotFoundError as e:
                raise NotFound(asset_id, current.value) from e
            except OSError as e:
                logger.error("Unable to move %s to %s: %s", source_path, target_path, e)
                raise IOFailure("move", source_path) from e
            logger.info("Moved '%s' to '%s'", source_path, target_path)

            removed = self.cache.invalidate(asset_id) if invalidate else 0

        return TransitionResult(
            asset_id=asset_id,
            from_stage=current,
            to_stage=target,
            cache_entries_removed=removed,
        )

    # --- Rotation ---

    def rotate(self, asset_id: UUID, degrees: float) -> RotateResult:
        """
        Rotate a reviewed asset clockwise in place.

        The asset is read fully into memory and the result written to a
        temporary file that is renamed over the original.
        """
        angle = normalise_rotation(degrees)
        validate_asset_id(asset_id)

        with self.locks.lock(asset_id):
            stage = self._current_stage(asset_id)
            if stage is Stage.PENDING:
                raise NotFound(asset_id, "unapproved/original")

            path = self.stages.asset_path(stage, asset_id)
            try:
                with open(path, "rb") as f:
                    data = f.read()
            except FileNotFoundError as e:
                raise NotFound(asset_id, stage.value) from e
            except OSError as e:
                logger.error("Error while reading image %s at %s: %s", asset_id, path, e)
                raise IOFailure("rotate_read", path) from e

            try:
                rotated = self.backend.rotate(data, angle, self.pending_quality)
            except TransformError as e:
                logger.error("Error while rotating image %s by %d: %s", asset_id, angle, e)
                raise BackendFailure(asset_id, "rotate") from e

            try:
                write_atomic(path, rotated)
            except OSError as e:
                logger.error("Error while saving rotated image %s at %s: %s", asset_id, path, e)
                raise IOFailure("rotate_write", path) from e
            logger.info("Rotated %s by %d degrees in %s", asset_id, angle, stage.value)

            removed = self.cache.invalidate(asset_id)

        return RotateResult(asset_id=asset_id, stage=stage, degrees=angle, cache_entries_removed=removed)

    # --- Deletion ---

    def delete(self, asset_id: UUID) -> DeleteResult:
        """
        Remove asset_id from every stage, its raw companion and its renditions.

        Every stage is tried even though at most one should hold the asset.
        """
        validate_asset_id(asset_id)

        removed_from: list[Stage] = []
        failure: IOFailure | None = None
        raw_removed = False

        with self.locks.lock(asset_id):
            for stage in Stage:
                path = self.stages.asset_path(stage, asset_id)
                try:
                    if unlink_if_present(path):
                        removed_from.append(stage)
                        logger.info("Deleted '%s'", path)
                except OSError as e:
                    logger.error("Error while removing '%s': %s", path, e)
                    failure = failure or IOFailure("delete", path)

            if removed_from:
                raw_path = self.locator.find_raw(asset_id)
                if raw_path is not None:
                    try:
                        raw_removed = unlink_if_present(raw_path)
                    except OSError as e:
                        logger.error("Error while removing raw companion '%s': %s", raw_path, e)
                        failure = failure or IOFailure("delete_raw", raw_path)

            cache_removed = self.cache.invalidate(asset_id)

        if failure is not None:
            raise failure
        if not removed_from:
            raise NotFound(asset_id)

        return DeleteResult(
            asset_id=asset_id,
            removed_from=removed_from,
            raw_removed=raw_removed,
            cache_entries_removed=cache_removed,
        )
