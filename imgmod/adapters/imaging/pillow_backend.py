"""Pillow implementation of the transform backend."""

from __future__ import annotations

import logging
from io import BytesIO
from pathlib import Path

from PIL import Image, ImageOps, UnidentifiedImageError

from imgmod.core.ports.transform import TransformError, UndecodableImageError

logger = logging.getLogger(__name__)

PIL_FORMATS = {
    "webp": "WEBP",
    "png": "PNG",
    "jpg": "JPEG",
    "jpeg": "JPEG",
    "avif": "AVIF",
}

# Clockwise rotation expressed as Pillow transpositions (Pillow rotates counter-clockwise).
CLOCKWISE_TRANSPOSE = {
    90: Image.Transpose.ROTATE_270,
    180: Image.Transpose.ROTATE_180,
    270: Image.Transpose.ROTATE_90,
}


def _normalise_mode(img: Image.Image) -> Image.Image:
    """Convert to a mode every output encoder accepts."""
    if img.mode in ("RGB", "RGBA"):
        return img
    if "A" in img.getbands() or (img.mode == "P" and "transparency" in img.info):
        return img.convert("RGBA")
    return img.convert("RGB")


class PillowTransformBackend:
    """
    Decode, rotate, resize and encode images with Pillow.

    canonical_extension selects the format stage files are written in,
    rendition_extension the format returned to readers.
    """

    def __init__(
        self,
        canonical_extension: str = "webp",
        rendition_extension: str = "webp",
    ) -> None:
        self.canonical_format = self._format_for(canonical_extension)
        self.rendition_format = self._format_for(rendition_extension)

    @staticmethod
    def _format_for(extension: str) -> str:
        try:
            return PIL_FORMATS[extension.lower()]
        except KeyError:
            raise ValueError(f"Unsupported image extension: {extension}") from None

    def _encode(self, img: Image.Image, fmt: str, quality: int) -> bytes:
        buffer = BytesIO()
        img = _normalise_mode(img)
        if fmt == "JPEG" and img.mode == "RGBA":
            img = img.convert("RGB")
        img.save(buffer, format=fmt, quality=quality)
        return buffer.getvalue()

    def probe_dimensions(self, path: Path) -> tuple[int, int]:
        try:
            with Image.open(path) as img:
                return img.size
        except UnidentifiedImageError as e:
            raise UndecodableImageError(f"Cannot identify image {path}") from e
        except (OSError, ValueError, Image.DecompressionBombError) as e:
            raise TransformError(f"Cannot probe {path}: {e}") from e

    def rotate(self, data: bytes, degrees: int, quality: int) -> bytes:
        if degrees not in (0, *CLOCKWISE_TRANSPOSE):
            raise TransformError(f"Unsupported rotation: {degrees}")
        try:
            with Image.open(BytesIO(data)) as img:
                img.load()
                if degrees:
                    img = img.transpose(CLOCKWISE_TRANSPOSE[degrees])
                return self._encode(img, self.canonical_format, quality)
        except UnidentifiedImageError as e:
            raise UndecodableImageError("Cannot identify image data") from e
        except (OSError, ValueError, Image.DecompressionBombError) as e:
            raise TransformError(f"Rotation failed: {e}") from e

    def resize_encode(
        self,
        path: Path,
        width: int,
        height: int,
        quality: int,
        *,
        crop: bool = False,
    ) -> bytes:
        # A zero-sized request is degenerate but valid; render a single pixel.
        box = (max(width, 1), max(height, 1))
        try:
            with Image.open(path) as img:
                img.load()
                if crop:
                    out = ImageOps.fit(img, box, method=Image.Resampling.LANCZOS, centering=(0.5, 0.5))
                else:
                    out = img.copy()
                    out.thumbnail(box, Image.Resampling.LANCZOS)
                return self._encode(out, self.rendition_format, quality)
        except UnidentifiedImageError as e:
            raise UndecodableImageError(f"Cannot identify image {path}") from e
        except (OSError, ValueError, Image.DecompressionBombError) as e:
            raise TransformError(f"Resize failed for {path}: {e}") from e
