"""
Error taxonomy for asset lifecycle and rendition operations.

Client errors (InvalidIdentifier, InvalidRotation, upload validation) are
raised before any I/O. NotFound is expected control flow. BackendFailure and
IOFailure are always logged where they are raised and reach callers only as
opaque internal errors.
"""

from __future__ import annotations


class ImageServiceError(Exception):
    """Base class for all service errors."""


class InvalidIdentifier(ImageServiceError):
    """Raised for a nil or malformed asset identifier."""

    def __init__(self, value: str) -> None:
        self.value = value
        super().__init__(f"Invalid asset identifier: {value!r}")


class InvalidRotation(ImageServiceError):
    """Raised when a rotation angle is not an accepted multiple of 90."""

    def __init__(self, degrees: float) -> None:
        self.degrees = degrees
        super().__init__(f"Rotation must be 90, 180 or 270 degrees, got {degrees}")


class NotFound(ImageServiceError):
    """Raised when an asset or rendition is absent."""

    def __init__(self, asset_id: object, where: str = "") -> None:
        self.asset_id = asset_id
        self.where = where
        suffix = f" in {where}" if where else ""
        super().__init__(f"Asset not found{suffix}: {asset_id}")


class Unauthorized(ImageServiceError):
    """Raised when the authorizer rejects a credential."""

    def __init__(self) -> None:
        super().__init__("Authorization failed")


class Conflict(ImageServiceError):
    """Raised when on-disk state violates the one-stage-per-asset invariant."""

    def __init__(self, asset_id: object, stages: list[str]) -> None:
        self.asset_id = asset_id
        self.stages = stages
        super().__init__(f"Asset {asset_id} present in multiple stages: {', '.join(stages)}")


class BackendFailure(ImageServiceError):
    """Raised when the transform backend fails for an asset."""

    def __init__(self, asset_id: object, operation: str) -> None:
        self.asset_id = asset_id
        self.operation = operation
        super().__init__(f"Transform backend failed during {operation} for {asset_id}")


class IOFailure(ImageServiceError):
    """Raised for filesystem errors other than 'does not exist'."""

    def __init__(self, operation: str, path: object) -> None:
        self.operation = operation
        self.path = path
        super().__init__(f"Filesystem error during {operation}: {path}")


# --- Upload validation ---


class EmptyUpload(ImageServiceError):
    """Raised when an upload carries no bytes."""

    def __init__(self) -> None:
        super().__init__("Empty file provided")


class UploadTooLarge(ImageServiceError):
    """Raised when an upload exceeds the configured size limit."""

    def __init__(self, size: int, limit: int) -> None:
        self.size = size
        self.limit = limit
        super().__init__(f"Upload of {size} bytes exceeds limit of {limit} bytes")


class UnsupportedImage(ImageServiceError):
    """Raised when the upload is not a recognised image type."""

    def __init__(self, reason: str = "File type could not be determined or is not supported") -> None:
        super().__init__(reason)
