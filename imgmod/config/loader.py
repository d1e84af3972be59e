import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from imgmod.config.models import ServiceConfig

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config.yml"

KNOWN_METHODS = {"GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"}


def _strip_fences(content: str) -> str:
    """Return the first ```yaml block if present, otherwise the whole text."""
    yaml_lines = []
    in_block = False
    found_block = False

    for line in content.splitlines():
        s_line = line.strip()
        if s_line.startswith("```yaml"):
            in_block = True
            found_block = True
            continue
        if in_block and s_line.startswith("```"):
            break
        if in_block:
            yaml_lines.append(line)

    return "\n".join(yaml_lines) if found_block else content


def _split_list(value: str) -> list[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def apply_env_overrides(data: dict[str, Any], env: Mapping[str, str]) -> dict[str, Any]:
    """Environment variables win over values from the config file."""
    if "IMGMOD_DATA_DIR" in env:
        data.setdefault("storage", {})["data_dir"] = env["IMGMOD_DATA_DIR"]
    if "API_KEY_HASHES" in env:
        data["api_key_hashes"] = _split_list(env["API_KEY_HASHES"])
    if "CORS_ALLOWED_ORIGINS" in env:
        data.setdefault("cors", {})["allowed_origins"] = _split_list(env["CORS_ALLOWED_ORIGINS"])
    if "CORS_ALLOWED_METHODS" in env:
        data.setdefault("cors", {})["allowed_methods"] = _split_list(env["CORS_ALLOWED_METHODS"])
    return data


def parse_methods(methods: list[str]) -> list[str]:
    """Normalise CORS methods, dropping the ones HTTP does not know."""
    parsed = []
    for method in methods:
        upper = method.upper()
        if upper in KNOWN_METHODS:
            parsed.append(upper)
        else:
            logger.warning("Ignoring unknown CORS method %r", method)
    return parsed


def load_config(path: Path, env: Mapping[str, str] | None = None) -> ServiceConfig:
    """
    Load and validate the service configuration.
    Raises FileNotFoundError if file missing.
    Raises ValueError if YAML or schema invalid.
    """
    if not path.exists():
        raise FileNotFoundError(f"Config file not found at: {path}")

    with open(path) as f:
        content = f.read()

    try:
        data = yaml.safe_load(_strip_fences(content)) or {}
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML syntax in config file: {e}") from e

    if not isinstance(data, dict):
        raise ValueError("Config file must contain a mapping at the top level")

    data = apply_env_overrides(data, os.environ if env is None else env)

    try:
        config = ServiceConfig.model_validate(data)
    except ValidationError as e:
        raise ValueError(f"Config validation failed:\n{e}") from e

    config.cors.allowed_methods = parse_methods(config.cors.allowed_methods)
    return config


def load_config_from_env(env: Mapping[str, str] | None = None) -> ServiceConfig:
    env = os.environ if env is None else env
    return load_config(Path(env.get("CONFIG_PATH", DEFAULT_CONFIG_PATH)), env)


def ensure_directories(config: ServiceConfig) -> None:
    """Create every stage directory and the cache directory."""
    storage = config.storage
    for name in (
        storage.pending_dir,
        storage.unapproved_dir,
        storage.original_dir,
        storage.raw_dir,
        storage.cache_dir,
    ):
        storage.path(name).mkdir(parents=True, exist_ok=True)


def validate_startup(config: ServiceConfig) -> None:
    """Fail fast on settings the service cannot run without."""
    if not config.api_key_hashes:
        raise ValueError("At least one API key hash must be configured (API_KEY_HASHES)")
