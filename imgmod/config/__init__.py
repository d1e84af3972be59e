"""
Service configuration: pydantic models loaded from YAML with env overrides.
"""

from imgmod.config.loader import (
    ensure_directories,
    load_config,
    load_config_from_env,
    parse_methods,
    validate_startup,
)
from imgmod.config.models import (
    CorsConfig,
    ImagesConfig,
    ServiceConfig,
    StorageConfig,
    SweeperConfig,
)

__all__ = [
    "CorsConfig",
    "ImagesConfig",
    "ServiceConfig",
    "StorageConfig",
    "SweeperConfig",
    "ensure_directories",
    "load_config",
    "load_config_from_env",
    "parse_methods",
    "validate_startup",
]
