"""
Transform backend port.

The core never touches pixels itself: decoding, probing, rotation and
resize/re-encode all go through this interface.

Key behaviors expected from implementations:
- Errors are raised as TransformError; undecodable input as UndecodableImageError
- Outputs are deterministic for identical inputs (cache entries rely on it)
- Resizing without crop never upscales past the source resolution
"""

from __future__ import annotations

from pathlib import Path
from typing import Protocol


class TransformPort(Protocol):
    """Pixel-level image operations."""

    def probe_dimensions(self, path: Path) -> tuple[int, int]:
        """
        Report (width, height) of the image stored at path.

        Raises:
            TransformError: If the file cannot be decoded
        """
        ...

    def rotate(self, data: bytes, degrees: int, quality: int) -> bytes:
        """
        Rotate image bytes clockwise and re-encode to the canonical format.

        degrees is one of 0, 90, 180, 270; 0 only re-encodes.

        Raises:
            UndecodableImageError: If data is not a decodable image
            TransformError: On any other backend failure
        """
        ...

    def resize_encode(
        self,
        path: Path,
        width: int,
        height: int,
        quality: int,
        *,
        crop: bool = False,
    ) -> bytes:
        """
        Produce rendition bytes for the image at path.

        With crop, the image is scaled to cover width x height and the centre
        is cut out. Without crop, it is scaled down to fit inside the box,
        preserving aspect ratio.
        """
        ...


class TransformError(Exception):
    """Base class for transform backend errors."""


class UndecodableImageError(TransformError):
    """Raised when input bytes are not a decodable image."""
