from __future__ import annotations

from dataclasses import dataclass

from imgmod.adapters.auth.crypto import Argon2ApiKeyAuthorizer
from imgmod.adapters.clock import SystemClock
from imgmod.adapters.fs.rendition_cache import RenditionCache
from imgmod.adapters.fs.stages import AssetLocator, StageDirectories
from imgmod.adapters.imaging.pillow_backend import PillowTransformBackend
from imgmod.adapters.sweeper import ReclamationScheduler
from imgmod.components.lifecycle import LifecycleService
from imgmod.components.reclaim import ReclamationSweeper
from imgmod.components.renditions import RenditionResolver
from imgmod.config.loader import ensure_directories
from imgmod.config.models import ServiceConfig
from imgmod.core.ports.auth import AuthorizerPort
from imgmod.core.ports.clock import ClockPort
from imgmod.core.ports.transform import TransformPort
from imgmod.core.services.locks import KeyedLockTable


@dataclass
class ServiceContext:
    config: ServiceConfig
    stages: StageDirectories
    locator: AssetLocator
    cache: RenditionCache
    backend: TransformPort
    authorizer: AuthorizerPort
    locks: KeyedLockTable
    lifecycle: LifecycleService
    resolver: RenditionResolver
    sweeper: ReclamationSweeper
    scheduler: ReclamationScheduler

    @classmethod
    def create(
        cls,
        config: ServiceConfig,
        *,
        backend: TransformPort | None = None,
        authorizer: AuthorizerPort | None = None,
        clock: ClockPort | None = None,
    ) -> ServiceContext:
        ensure_directories(config)

        # Adapters
        stages = StageDirectories.from_config(config)
        locator = AssetLocator(stages)
        cache = RenditionCache(
            config.storage.path(config.storage.cache_dir),
            extension=config.images.rendition_extension,
        )
        backend = backend or PillowTransformBackend(
            canonical_extension=config.images.canonical_extension,
            rendition_extension=config.images.rendition_extension,
        )
        authorizer = authorizer or Argon2ApiKeyAuthorizer(config.api_key_hashes)
        locks = KeyedLockTable()

        # Components
        lifecycle = LifecycleService(
            stages=stages,
            locator=locator,
            cache=cache,
            backend=backend,
            locks=locks,
            pending_quality=config.images.pending_quality,
            max_upload_bytes=config.images.max_upload_bytes,
        )
        resolver = RenditionResolver(
            locator,
            cache,
            backend,
            authorizer,
            default_quality=config.images.default_quality,
            rendition_extension=config.images.rendition_extension,
        )
        sweeper = ReclamationSweeper(
            stages,
            clock or SystemClock(),
            retention_seconds=config.sweeper.retention_seconds,
            locks=locks,
            locator=locator,
        )
        scheduler = ReclamationScheduler(sweeper, config.sweeper.interval_seconds)

        return cls(
            config=config,
            stages=stages,
            locator=locator,
            cache=cache,
            backend=backend,
            authorizer=authorizer,
            locks=locks,
            lifecycle=lifecycle,
            resolver=resolver,
            sweeper=sweeper,
            scheduler=scheduler,
        )
