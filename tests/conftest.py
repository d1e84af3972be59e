from datetime import UTC, datetime
from io import BytesIO
from pathlib import Path
from uuid import UUID

import pytest
from PIL import Image

from imgmod.adapters.auth.crypto import StaticAuthorizer
from imgmod.adapters.clock import FixedClock
from imgmod.adapters.fs.rendition_cache import RenditionCache
from imgmod.adapters.fs.stages import AssetLocator, StageDirectories
from imgmod.config.loader import ensure_directories
from imgmod.config.models import CorsConfig, ServiceConfig, StorageConfig, SweeperConfig
from imgmod.context import ServiceContext
from imgmod.core.entities import Stage
from imgmod.core.ports.transform import TransformError
from imgmod.core.services.locks import KeyedLockTable

API_KEY = "moderator-secret"
PNG_HEADER = b"\x89PNG\r\n\x1a\n"


class FakeTransformBackend:
    """Deterministic stand-in for the Pillow backend that records every call."""

    def __init__(self, dimensions: tuple[int, int] = (640, 480)) -> None:
        self.dimensions = dimensions
        self.fail = False
        self.probe_calls: list[Path] = []
        self.rotate_calls: list[tuple[int, int]] = []
        self.resize_calls: list[tuple[Path, int, int, int, bool]] = []

    def probe_dimensions(self, path: Path) -> tuple[int, int]:
        self.probe_calls.append(path)
        if self.fail:
            raise TransformError("probe failed")
        return self.dimensions

    def rotate(self, data: bytes, degrees: int, quality: int) -> bytes:
        self.rotate_calls.append((degrees, quality))
        if self.fail:
            raise TransformError("rotate failed")
        return f"rot{degrees}:".encode() + data

    def resize_encode(
        self,
        path: Path,
        width: int,
        height: int,
        quality: int,
        *,
        crop: bool = False,
    ) -> bytes:
        self.resize_calls.append((path, width, height, quality, crop))
        if self.fail:
            raise TransformError("resize failed")
        source = path.read_bytes()
        return f"{width}x{height}@{quality}:{int(crop)}|".encode() + source


def make_image_bytes(
    size: tuple[int, int] = (40, 20),
    color: tuple[int, int, int] = (200, 30, 30),
    fmt: str = "PNG",
) -> bytes:
    buffer = BytesIO()
    Image.new("RGB", size, color).save(buffer, format=fmt)
    return buffer.getvalue()


def put_asset(stages: StageDirectories, stage: Stage, asset_id: UUID, data: bytes = b"image") -> Path:
    path = stages.asset_path(stage, asset_id)
    path.write_bytes(data)
    return path


@pytest.fixture
def config(tmp_path):
    return ServiceConfig(
        storage=StorageConfig(data_dir=tmp_path / "data"),
        cors=CorsConfig(allowed_origins=["http://localhost:3000"]),
        sweeper=SweeperConfig(enabled=False),
    )


@pytest.fixture
def stages(config):
    ensure_directories(config)
    return StageDirectories.from_config(config)


@pytest.fixture
def locator(stages):
    return AssetLocator(stages)


@pytest.fixture
def cache(config):
    return RenditionCache(config.storage.path(config.storage.cache_dir))


@pytest.fixture
def locks():
    return KeyedLockTable()


@pytest.fixture
def backend():
    return FakeTransformBackend()


@pytest.fixture
def authorizer():
    return StaticAuthorizer([API_KEY])


@pytest.fixture
def clock():
    return FixedClock(datetime(2026, 1, 1, 12, 0, tzinfo=UTC))


@pytest.fixture
def service_context(config, backend, authorizer, clock):
    """Fully wired context over tmp_path with the fake backend."""
    return ServiceContext.create(config, backend=backend, authorizer=authorizer, clock=clock)
