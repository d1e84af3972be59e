"""
Renditions component - resized/re-encoded reads with visibility rules.
"""

from .component import MEDIA_TYPES, RenditionResolver
from .models import Rendition
from .ports import RenditionCachePort

__all__ = [
    "MEDIA_TYPES",
    "Rendition",
    "RenditionCachePort",
    "RenditionResolver",
]
