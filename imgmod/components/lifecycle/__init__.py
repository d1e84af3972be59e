"""
Lifecycle component - asset upload and moderation state machine.
"""

from .component import (
    FILE_MAPPINGS,
    ROTATIONS,
    LifecycleService,
    detect_file_type,
    normalise_rotation,
    unlink_if_present,
    write_atomic,
)
from .models import (
    DeleteResult,
    FileIdentification,
    RotateResult,
    TransitionResult,
    UploadResult,
)
from .ports import CacheInvalidatorPort, LockTablePort

__all__ = [
    # Service
    "LifecycleService",
    # Helper functions
    "detect_file_type",
    "normalise_rotation",
    "unlink_if_present",
    "write_atomic",
    # Configuration
    "FILE_MAPPINGS",
    "ROTATIONS",
    # Output models
    "DeleteResult",
    "FileIdentification",
    "RotateResult",
    "TransitionResult",
    "UploadResult",
    # Ports
    "CacheInvalidatorPort",
    "LockTablePort",
]
