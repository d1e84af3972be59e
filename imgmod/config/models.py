from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field, model_validator


class StorageConfig(BaseModel):
    data_dir: Path = Path("data")
    pending_dir: str = "pending"
    unapproved_dir: str = "unapproved"
    original_dir: str = "originals"
    raw_dir: str = "raw"
    cache_dir: str = "cache"

    def path(self, name: str) -> Path:
        return self.data_dir / name


class CorsConfig(BaseModel):
    allowed_origins: list[str]
    allowed_methods: list[str] = Field(default_factory=lambda: ["GET"])


class ImagesConfig(BaseModel):
    canonical_extension: str = "webp"
    rendition_extension: str = "webp"
    pending_quality: int = Field(default=80, ge=1, le=100)
    default_quality: int = Field(default=100, ge=1, le=100)
    max_upload_bytes: int = Field(default=12 * 1024 * 1024, gt=0)


class SweeperConfig(BaseModel):
    enabled: bool = True
    interval_seconds: float = Field(default=900.0, gt=0)
    retention_seconds: float = Field(default=3600.0, gt=0)

    @model_validator(mode="after")
    def _retention_exceeds_interval(self) -> SweeperConfig:
        if self.retention_seconds <= self.interval_seconds:
            raise ValueError("sweeper.retention_seconds must exceed sweeper.interval_seconds")
        return self


class ServiceConfig(BaseModel):
    """Process configuration, built once at startup and passed to every component."""

    storage: StorageConfig = Field(default_factory=StorageConfig)
    api_key_hashes: list[str] = Field(default_factory=list)
    cors: CorsConfig
    images: ImagesConfig = Field(default_factory=ImagesConfig)
    sweeper: SweeperConfig = Field(default_factory=SweeperConfig)
