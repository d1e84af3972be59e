from imgmod.adapters.fs.rendition_cache import RenditionCache, parse_cache_file_name
from imgmod.adapters.fs.stages import AssetLocator, StageDirectories

__all__ = [
    "AssetLocator",
    "RenditionCache",
    "StageDirectories",
    "parse_cache_file_name",
]
